"""Voter lookup and authentication."""

import logging

from .errors import UnknownVoter
from .models import Voter, normalize_identifier
from .store import BallotStore

logger = logging.getLogger(__name__)


class VoterDirectory:
    """
    Read side of the voter records.

    The write side (``mark_voted``) lives inside the store's atomic cast
    procedure; it is not exposed here.
    """

    def __init__(self, store: BallotStore):
        self.store = store

    async def authenticate(self, voter_id: str) -> Voter:
        """
        Identify a voter by id.

        Args:
            voter_id: Identifier as entered; surrounding whitespace is ignored

        Returns:
            Voter: The single matching record

        Raises:
            ValidationError: If the identifier is empty after trimming
            UnknownVoter: If zero or several records match
            StoreUnavailable: If the store cannot be reached
        """
        voter_id = normalize_identifier(voter_id, field="Voter ID")
        matches = await self.store.fetch_voters(voter_id)

        if len(matches) != 1:
            if matches:
                logger.error(f"Ambiguous voter id {voter_id!r}: {len(matches)} records")
            raise UnknownVoter(voter_id=voter_id)

        return matches[0]

    async def find(self, voter_id: str):
        """Like authenticate, but returns None instead of raising UnknownVoter."""
        try:
            return await self.authenticate(voter_id)
        except UnknownVoter:
            return None
