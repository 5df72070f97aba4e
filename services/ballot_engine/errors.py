"""
Error taxonomy for the voting session engine.

Business-rule rejections are terminal and surfaced verbatim to the caller.
StoreUnavailable is the only retryable kind: retrying a whole cast after it
is safe because a voter can only ever be accepted once.
"""

from typing import Any, Dict, Optional


class VotingError(Exception):
    """Base class for every error the engine reports to a caller."""

    code = "VotingError"
    default_message = "Voting request failed"
    retryable = False

    def __init__(self, message: Optional[str] = None, **details: Any):
        self.message = message or self.default_message
        self.details: Dict[str, Any] = details
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the error payload returned by the API."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(VotingError):
    """Empty or malformed identifier; never reaches the store."""

    code = "ValidationError"
    default_message = "Please enter a valid identifier"


class UnknownVoter(VotingError):
    code = "UnknownVoter"
    default_message = "Invalid Voter ID. Please check and try again."


class UnknownCandidate(VotingError):
    code = "UnknownCandidate"
    default_message = "Candidate not found"


class AlreadyVoted(VotingError):
    code = "AlreadyVoted"
    default_message = "You have already cast your vote"


class VotingNotActive(VotingError):
    code = "VotingNotActive"
    default_message = "Voting is not currently active"


class ResultsUnavailable(VotingError):
    code = "ResultsUnavailable"
    default_message = "Results are available once voting has ended"


class NotAuthenticated(VotingError):
    code = "NotAuthenticated"
    default_message = "Please log in with your Voter ID"


class StoreUnavailable(VotingError):
    """Transient infrastructure failure. Safe to retry the whole call."""

    code = "StoreUnavailable"
    default_message = "Voting service is temporarily unavailable, please try again"
    retryable = True


ERRORS_BY_CODE = {
    cls.code: cls
    for cls in (
        ValidationError,
        UnknownVoter,
        UnknownCandidate,
        AlreadyVoted,
        VotingNotActive,
        ResultsUnavailable,
        NotAuthenticated,
        StoreUnavailable,
    )
}


def error_from_payload(payload: Dict[str, Any]) -> VotingError:
    """
    Rebuild a VotingError from an API error payload.

    Args:
        payload: Dictionary with 'error', 'message' and optional 'details'

    Returns:
        VotingError: Instance of the matching subclass (base class if unknown)
    """
    error_cls = ERRORS_BY_CODE.get(payload.get("error"), VotingError)
    return error_cls(payload.get("message"), **(payload.get("details") or {}))
