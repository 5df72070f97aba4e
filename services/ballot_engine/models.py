"""
Data models shared by the engine, the API service and the client.

This module contains:
- Voter and Candidate records as the store returns them
- RejectionReason and CastResult for the ballot casting protocol
- StoreReceipt: what a store's atomic cast procedure reports
- Identifier validation helpers
"""

from dataclasses import dataclass, asdict, replace
from enum import Enum
from typing import Optional, Dict, Any

from .errors import ValidationError

MAX_IDENTIFIER_LENGTH = 64


@dataclass(frozen=True)
class Voter:
    """
    Registered voter.

    Attributes:
        voter_id: Unique, immutable, case-sensitive identifier
        name: Display name
        is_admin: Admins may see live counts while voting is active
        has_voted: Flipped exactly once, by the ballot casting protocol
    """
    voter_id: str
    name: str
    is_admin: bool = False
    has_voted: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Voter':
        return cls(
            voter_id=data["voter_id"],
            name=data["name"],
            is_admin=bool(data.get("is_admin", False)),
            has_voted=bool(data.get("has_voted", False)),
        )

    def mark_voted(self) -> 'Voter':
        """Cached copy reflecting an accepted cast. Advisory only."""
        return replace(self, has_voted=True)


@dataclass(frozen=True)
class Candidate:
    """
    Candidate on the ballot.

    Attributes:
        candidate_id: Unique identifier
        display_name: Name used for ordering and display
        localized_name: Name in the local script
        image_ref: Optional image URL or path
        vote_count: Tally, never decreases
    """
    candidate_id: str
    display_name: str
    localized_name: str = ""
    image_ref: Optional[str] = None
    vote_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Candidate':
        return cls(
            candidate_id=str(data["candidate_id"]),
            display_name=data["display_name"],
            localized_name=data.get("localized_name") or "",
            image_ref=data.get("image_ref"),
            vote_count=int(data.get("vote_count") or 0),
        )


class RejectionReason(str, Enum):
    """Why a cast was refused. All of these are terminal."""
    VOTING_NOT_ACTIVE = "VotingNotActive"
    UNKNOWN_VOTER = "UnknownVoter"
    ALREADY_VOTED = "AlreadyVoted"
    UNKNOWN_CANDIDATE = "UnknownCandidate"


REJECTION_MESSAGES = {
    RejectionReason.VOTING_NOT_ACTIVE: "Voting is not currently active",
    RejectionReason.UNKNOWN_VOTER: "Invalid Voter ID. Please check and try again.",
    RejectionReason.ALREADY_VOTED: "You have already cast your vote",
    RejectionReason.UNKNOWN_CANDIDATE: "Candidate not found",
}


@dataclass(frozen=True)
class CastResult:
    """Outcome of one cast: accepted, or rejected with a reason."""
    accepted: bool
    voter_id: str
    candidate_id: str
    reason: Optional[RejectionReason] = None
    message: str = "Your vote has been recorded successfully!"

    @classmethod
    def accept(cls, voter_id: str, candidate_id: str) -> 'CastResult':
        return cls(accepted=True, voter_id=voter_id, candidate_id=candidate_id)

    @classmethod
    def reject(
        cls,
        voter_id: str,
        candidate_id: str,
        reason: RejectionReason,
        message: Optional[str] = None
    ) -> 'CastResult':
        return cls(
            accepted=False,
            voter_id=voter_id,
            candidate_id=candidate_id,
            reason=reason,
            message=message or REJECTION_MESSAGES[reason],
        )


@dataclass(frozen=True)
class StoreReceipt:
    """
    Report of a store's atomic cast procedure.

    Mirrors the ``{success, message}`` contract of the procedure; ``reason``
    is set whenever ``success`` is false.
    """
    success: bool
    message: str
    reason: Optional[RejectionReason] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'StoreReceipt':
        reason = data.get("reason")
        return cls(
            success=bool(data["success"]),
            message=data.get("message") or "",
            reason=RejectionReason(reason) if reason else None,
        )


def normalize_identifier(value: Optional[str], field: str = "identifier") -> str:
    """
    Trim an identifier and reject empty or oversized input locally.

    Args:
        value: Raw identifier as typed by the user
        field: Field name used in the error message

    Returns:
        str: Trimmed identifier, case preserved

    Raises:
        ValidationError: If the identifier is empty or malformed
    """
    if value is None or not isinstance(value, str):
        raise ValidationError(f"Please enter your {field}", field=field)

    cleaned = value.strip()
    if not cleaned:
        raise ValidationError(f"Please enter your {field}", field=field)
    if len(cleaned) > MAX_IDENTIFIER_LENGTH:
        raise ValidationError(
            f"{field} must be at most {MAX_IDENTIFIER_LENGTH} characters",
            field=field,
        )
    return cleaned
