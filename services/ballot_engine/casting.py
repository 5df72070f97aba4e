"""
Ballot casting protocol.

Checks, in order and stopping at the first failure:

1. the election is in its active phase
2. the voter exists
3. the voter has not voted yet
4. the candidate exists

Checks 2-4 read possibly stale data and are repeated by the store's atomic
cast procedure under its own guard. Only the store's answer decides whether
a ballot was accepted; the pre-checks exist to reject early without taking
the guard.
"""

import asyncio
import logging
import time
from datetime import datetime
from typing import Optional

from .directory import VoterDirectory
from .errors import StoreUnavailable, UnknownCandidate, UnknownVoter
from .models import CastResult, RejectionReason, normalize_identifier
from .phase import ElectionWindow, SystemClock, resolve_phase
from .registry import CandidateRegistry
from .store import BallotStore

logger = logging.getLogger(__name__)


class BallotCastingProtocol:
    """Validates a cast and hands it to the store's atomic procedure."""

    def __init__(
        self,
        window: ElectionWindow,
        store: BallotStore,
        directory: Optional[VoterDirectory] = None,
        registry: Optional[CandidateRegistry] = None,
        clock=None,
        store_timeout: Optional[float] = None
    ):
        self.window = window
        self.store = store
        self.directory = directory or VoterDirectory(store)
        self.registry = registry or CandidateRegistry(store)
        self.clock = clock or SystemClock()
        self.store_timeout = store_timeout

    async def _call_store(self, awaitable):
        if self.store_timeout is None:
            return await awaitable
        try:
            return await asyncio.wait_for(awaitable, timeout=self.store_timeout)
        except asyncio.TimeoutError:
            logger.error(f"Store call exceeded {self.store_timeout}s")
            raise StoreUnavailable(reason="timeout")

    async def cast_vote(
        self,
        voter_id: str,
        candidate_id: str,
        now: Optional[datetime] = None
    ) -> CastResult:
        """
        Cast one ballot.

        Args:
            voter_id: Voter casting the ballot
            candidate_id: Candidate receiving the vote
            now: Instant of the cast (defaults to the protocol's clock)

        Returns:
            CastResult: accepted, or rejected with the first failing reason

        Raises:
            ValidationError: If an identifier is empty after trimming
            StoreUnavailable: On store failure or timeout; safe to retry
        """
        voter_id = normalize_identifier(voter_id, field="Voter ID")
        candidate_id = normalize_identifier(candidate_id, field="candidate choice")
        now = now or self.clock.now()
        start_time = time.time()

        status = resolve_phase(now, self.window)
        if not status.is_active:
            return self._rejected(voter_id, candidate_id, RejectionReason.VOTING_NOT_ACTIVE)

        try:
            voter = await self._call_store(self.directory.authenticate(voter_id))
        except UnknownVoter:
            return self._rejected(voter_id, candidate_id, RejectionReason.UNKNOWN_VOTER)

        if voter.has_voted:
            return self._rejected(voter_id, candidate_id, RejectionReason.ALREADY_VOTED)

        try:
            await self._call_store(self.registry.get(candidate_id))
        except UnknownCandidate:
            return self._rejected(voter_id, candidate_id, RejectionReason.UNKNOWN_CANDIDATE)

        receipt = await self._call_store(self.store.cast_ballot(voter_id, candidate_id))

        if not receipt.success:
            return self._rejected(
                voter_id,
                candidate_id,
                receipt.reason or RejectionReason.ALREADY_VOTED,
                receipt.message or None,
            )

        logger.info(
            f"Ballot accepted: voter={voter_id}, candidate={candidate_id}, "
            f"latency={time.time() - start_time:.3f}s"
        )
        return CastResult.accept(voter_id, candidate_id)

    def _rejected(
        self,
        voter_id: str,
        candidate_id: str,
        reason: RejectionReason,
        message: Optional[str] = None
    ) -> CastResult:
        logger.warning(
            f"Ballot rejected: voter={voter_id}, candidate={candidate_id}, reason={reason.value}"
        )
        return CastResult.reject(voter_id, candidate_id, reason, message)
