"""Voting session engine: wires the components around one store and one window."""

import logging
from typing import List, Optional, Tuple

from .casting import BallotCastingProtocol
from .directory import VoterDirectory
from .models import Candidate, CastResult, Voter
from .phase import ElectionWindow, PhaseStatus, SystemClock, resolve_phase
from .registry import CandidateRegistry
from .store import BallotStore
from .tally import Standings, TallyView, can_see_counts

logger = logging.getLogger(__name__)


class VotingEngine:
    """
    Entry point for the client-facing operations.

    All phase-dependent branching goes through ``phase()`` so it is decided in
    one place.
    """

    def __init__(
        self,
        window: ElectionWindow,
        store: BallotStore,
        clock=None,
        store_timeout: Optional[float] = None
    ):
        self.window = window
        self.store = store
        self.clock = clock or SystemClock()
        self.directory = VoterDirectory(store)
        self.registry = CandidateRegistry(store)
        self.tally = TallyView(self.registry)
        self.protocol = BallotCastingProtocol(
            window,
            store,
            directory=self.directory,
            registry=self.registry,
            clock=self.clock,
            store_timeout=store_timeout,
        )

    def phase(self) -> PhaseStatus:
        return resolve_phase(self.clock.now(), self.window)

    async def login(self, voter_id: str) -> Voter:
        voter = await self.directory.authenticate(voter_id)
        logger.info(f"Voter authenticated: {voter.voter_id}")
        return voter

    async def list_candidates(
        self,
        viewer: Optional[Voter] = None
    ) -> Tuple[List[Candidate], bool]:
        """
        Candidates in name order, and whether the viewer may see their counts.

        Counts are not stripped here; the caller decides how to hide them.
        """
        candidates = await self.registry.list()
        return candidates, can_see_counts(self.phase().phase, viewer)

    async def cast_vote(self, voter_id: str, candidate_id: str) -> CastResult:
        return await self.protocol.cast_vote(voter_id, candidate_id, now=self.clock.now())

    async def results(self, viewer: Optional[Voter] = None) -> Standings:
        return await self.tally.visible_results(self.phase().phase, viewer)
