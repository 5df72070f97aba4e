"""
Store contract consumed by the engine, and the in-memory reference store.

A store owns the voter and candidate records and provides one atomic
compound procedure, ``cast_ballot``. The store, not the engine, is
responsible for the lock or transaction that makes the procedure atomic.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections import defaultdict
from typing import Dict, Iterable, List, Optional

from .errors import StoreUnavailable
from .models import Candidate, RejectionReason, REJECTION_MESSAGES, StoreReceipt, Voter

logger = logging.getLogger(__name__)


class BallotStore(ABC):
    """
    Opaque transactional store for voters and candidates.

    Implementations translate their driver errors into
    ``errors.StoreUnavailable``.
    """

    async def initialize(self) -> None:
        """Open connections. No-op by default."""

    async def close(self) -> None:
        """Release connections. No-op by default."""

    @abstractmethod
    async def fetch_candidates(self) -> List[Candidate]:
        """Fetch every candidate ordered by display name."""

    @abstractmethod
    async def fetch_voters(self, voter_id: str) -> List[Voter]:
        """Fetch voters matching ``voter_id`` exactly (case-sensitive)."""

    @abstractmethod
    async def cast_ballot(self, voter_id: str, candidate_id: str) -> StoreReceipt:
        """
        Atomically mark the voter as voted and add one to the candidate.

        Must re-check that the voter exists and has not voted, and that the
        candidate exists, under the same guard that applies the update.
        Either both records change or neither does.
        """

    @abstractmethod
    async def check_health(self) -> bool:
        """Return True if the store is reachable."""

    async def count_voters(self) -> int:
        """Number of registered voters, used for turnout."""
        return 0


def _receipt_rejected(reason: RejectionReason) -> StoreReceipt:
    return StoreReceipt(success=False, message=REJECTION_MESSAGES[reason], reason=reason)


class InMemoryStore(BallotStore):
    """
    Process-local store guarded by one asyncio lock per voter.

    Casts for different voters take different locks, so they never wait on
    each other. The counter add happens without yielding to the event loop,
    which makes it atomic with respect to every other coroutine.
    """

    def __init__(
        self,
        voters: Iterable[Voter] = (),
        candidates: Iterable[Candidate] = (),
        commit_delay: float = 0.0
    ):
        self._voters: Dict[str, Voter] = {v.voter_id: v for v in voters}
        self._candidates: Dict[str, Candidate] = {c.candidate_id: c for c in candidates}
        self._counts: Dict[str, int] = {
            c.candidate_id: c.vote_count for c in self._candidates.values()
        }
        self._voter_locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        # Widens the window between the pre-check and the commit in tests
        self.commit_delay = commit_delay
        self.available = True

    def add_voter(self, voter: Voter) -> None:
        self._voters[voter.voter_id] = voter

    def add_candidate(self, candidate: Candidate) -> None:
        self._candidates[candidate.candidate_id] = candidate
        self._counts[candidate.candidate_id] = candidate.vote_count

    def _ensure_available(self) -> None:
        if not self.available:
            raise StoreUnavailable(backend="memory")

    async def fetch_candidates(self) -> List[Candidate]:
        self._ensure_available()
        await asyncio.sleep(0)
        candidates = [
            Candidate(
                candidate_id=c.candidate_id,
                display_name=c.display_name,
                localized_name=c.localized_name,
                image_ref=c.image_ref,
                vote_count=self._counts[c.candidate_id],
            )
            for c in self._candidates.values()
        ]
        return sorted(candidates, key=lambda c: (c.display_name, c.candidate_id))

    async def fetch_voters(self, voter_id: str) -> List[Voter]:
        self._ensure_available()
        await asyncio.sleep(0)
        voter = self._voters.get(voter_id)
        return [voter] if voter else []

    async def count_voters(self) -> int:
        self._ensure_available()
        return len(self._voters)

    def _mark_voted(self, voter_id: str) -> bool:
        """Flip ``has_voted``. False signals a conflict. Caller holds the voter lock."""
        voter = self._voters[voter_id]
        if voter.has_voted:
            return False
        self._voters[voter_id] = voter.mark_voted()
        return True

    def _increment_vote(self, candidate_id: str) -> bool:
        """Atomic add on the candidate counter. False if the candidate is unknown."""
        if candidate_id not in self._counts:
            return False
        self._counts[candidate_id] += 1
        return True

    async def cast_ballot(self, voter_id: str, candidate_id: str) -> StoreReceipt:
        self._ensure_available()

        async with self._voter_locks[voter_id]:
            if self.commit_delay:
                await asyncio.sleep(self.commit_delay)
            self._ensure_available()

            # Everything below runs without awaiting: indivisible check-and-flip
            if voter_id not in self._voters:
                return _receipt_rejected(RejectionReason.UNKNOWN_VOTER)
            if self._voters[voter_id].has_voted:
                return _receipt_rejected(RejectionReason.ALREADY_VOTED)
            if candidate_id not in self._counts:
                return _receipt_rejected(RejectionReason.UNKNOWN_CANDIDATE)

            self._mark_voted(voter_id)
            self._increment_vote(candidate_id)

        logger.debug(f"Ballot stored in memory: voter={voter_id}, candidate={candidate_id}")
        return StoreReceipt(success=True, message="Vote cast successfully")

    async def check_health(self) -> bool:
        return self.available

    def snapshot(self) -> Dict[str, int]:
        """Current counts by candidate id."""
        return dict(self._counts)

    def voter(self, voter_id: str) -> Optional[Voter]:
        return self._voters.get(voter_id)
