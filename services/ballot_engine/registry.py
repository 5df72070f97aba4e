"""Candidate lookup."""

from typing import List, Optional

from .errors import UnknownCandidate
from .models import Candidate, normalize_identifier
from .store import BallotStore


def name_order(candidate: Candidate):
    """Sort key giving a total, insertion-independent order."""
    return (candidate.display_name, candidate.candidate_id)


class CandidateRegistry:
    """
    Read side of the candidate records.

    Counters only change through the store's atomic cast procedure.
    """

    def __init__(self, store: BallotStore):
        self.store = store

    async def list(self) -> List[Candidate]:
        """All candidates sorted by display name ascending."""
        candidates = await self.store.fetch_candidates()
        return sorted(candidates, key=name_order)

    async def find(self, candidate_id: str) -> Optional[Candidate]:
        for candidate in await self.store.fetch_candidates():
            if candidate.candidate_id == candidate_id:
                return candidate
        return None

    async def get(self, candidate_id: str) -> Candidate:
        candidate_id = normalize_identifier(candidate_id, field="candidate choice")
        candidate = await self.find(candidate_id)
        if candidate is None:
            raise UnknownCandidate(candidate_id=candidate_id)
        return candidate
