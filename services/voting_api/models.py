"""Pydantic models for request/response validation."""
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from ballot_engine import Candidate, PhaseStatus, Voter, format_countdown


class PhaseResponse(BaseModel):
    """Current phase of the election window."""

    phase: Literal["waiting", "active", "ended"] = Field(..., description="Voting phase")
    starts_at: datetime = Field(..., description="Window start (inclusive)")
    ends_at: datetime = Field(..., description="Window end (exclusive)")
    server_time: datetime = Field(..., description="Instant the phase was resolved at")
    time_until_start_ms: Optional[int] = Field(default=None, description="Milliseconds until voting opens")
    time_until_end_ms: Optional[int] = Field(default=None, description="Milliseconds until voting closes")
    countdown: str = Field(default="00:00:00", description="Countdown as HH:MM:SS")

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "phase": "active",
            "starts_at": "2025-11-23T18:00:00+05:30",
            "ends_at": "2025-11-23T20:00:00+05:30",
            "server_time": "2025-11-23T18:05:00+05:30",
            "time_until_start_ms": None,
            "time_until_end_ms": 6900000,
            "countdown": "01:55:00"
        }
    })

    @classmethod
    def from_status(cls, status: PhaseStatus, starts_at: datetime, ends_at: datetime) -> 'PhaseResponse':
        def millis(delta):
            return int(delta.total_seconds() * 1000) if delta is not None else None

        return cls(
            phase=status.phase.value,
            starts_at=starts_at,
            ends_at=ends_at,
            server_time=status.now,
            time_until_start_ms=millis(status.time_until_start),
            time_until_end_ms=millis(status.time_until_end),
            countdown=format_countdown(status.countdown),
        )


class LoginRequest(BaseModel):
    """Login request: the voter id as typed. Trimming happens server-side."""

    voter_id: str = Field(..., description="Voter ID")

    model_config = ConfigDict(json_schema_extra={"example": {"voter_id": "A123"}})


class VoterOut(BaseModel):
    voter_id: str
    name: str
    is_admin: bool
    has_voted: bool

    @classmethod
    def from_voter(cls, voter: Voter) -> 'VoterOut':
        return cls(**voter.to_dict())


class LoginResponse(BaseModel):
    access_token: str = Field(..., description="Bearer token for the voting session")
    token_type: str = Field(default="bearer")
    voter: VoterOut


class CandidateOut(BaseModel):
    """Candidate card. ``vote_count`` is omitted when the caller may not see counts."""

    candidate_id: str
    display_name: str
    localized_name: str = ""
    image_ref: Optional[str] = None
    vote_count: Optional[int] = None

    @classmethod
    def from_candidate(cls, candidate: Candidate, show_count: bool) -> 'CandidateOut':
        data = candidate.to_dict()
        if not show_count:
            data["vote_count"] = None
        return cls(**data)


class CastVoteRequest(BaseModel):
    candidate_id: str = Field(..., description="Candidate to vote for")

    model_config = ConfigDict(json_schema_extra={"example": {"candidate_id": "C1"}})


class CastVoteResponse(BaseModel):
    """Vote submission response model."""

    status: Literal["accepted"] = Field(default="accepted")
    voter_id: str
    candidate_id: str
    message: str = Field(default="Your vote has been recorded successfully!")


class ResultsResponse(BaseModel):
    """Ranked results."""

    final: bool = Field(..., description="True once voting has ended")
    candidates: list[CandidateOut] = Field(..., description="Candidates by vote count, descending")
    winner: Optional[CandidateOut] = Field(default=None, description="Top candidate; ties go to name order")
    is_tie: bool = Field(default=False, description="More than one candidate shares the top count")
    total_votes: int = Field(..., description="Total ballots cast")
    eligible_voters: Optional[int] = Field(default=None, description="Registered voters")


class HealthResponse(BaseModel):
    """Health check response model."""

    status: Literal["healthy", "unhealthy"] = Field(..., description="Overall health status")
    services: dict = Field(..., description="Status of individual services")
    timestamp: datetime = Field(..., description="Health check timestamp")


class ErrorResponse(BaseModel):
    """Error response model."""

    error: str = Field(..., description="Error type")
    message: str = Field(..., description="Error message")
    details: dict = Field(default_factory=dict, description="Additional error details")

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "error": "AlreadyVoted",
            "message": "You have already cast your vote",
            "details": {}
        }
    })
