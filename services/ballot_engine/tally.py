"""
Read-only tally and results.

Ranking is by vote count descending, then by display name and candidate id
ascending. The winner is the first ranked candidate, so a tie at the top
always resolves to the candidate that comes first in name order.
"""

from dataclasses import dataclass, replace
from typing import List, Optional

from .errors import ResultsUnavailable
from .models import Candidate, Voter
from .phase import Phase
from .registry import CandidateRegistry


def rank_order(candidate: Candidate):
    return (-candidate.vote_count, candidate.display_name, candidate.candidate_id)


def rank(candidates: List[Candidate]) -> List[Candidate]:
    return sorted(candidates, key=rank_order)


def pick_winner(candidates: List[Candidate]) -> Optional[Candidate]:
    ranked = rank(candidates)
    return ranked[0] if ranked else None


def has_tie(candidates: List[Candidate]) -> bool:
    """True if more than one candidate shares the top count."""
    if not candidates:
        return False
    top = max(c.vote_count for c in candidates)
    return sum(1 for c in candidates if c.vote_count == top) > 1


def can_see_counts(phase: Phase, viewer: Optional[Voter]) -> bool:
    """Counts are public once voting has ended, and visible to admins in every phase."""
    if phase is Phase.ENDED:
        return True
    return viewer is not None and viewer.is_admin


@dataclass(frozen=True)
class Standings:
    """Snapshot of the ranked tally."""
    ranked: List[Candidate]
    winner: Optional[Candidate]
    is_tie: bool
    total_votes: int
    final: bool


class TallyView:
    """Aggregates candidate counters into ranked results."""

    def __init__(self, registry: CandidateRegistry):
        self.registry = registry

    async def results(self) -> List[Candidate]:
        return rank(await self.registry.list())

    async def winner(self) -> Optional[Candidate]:
        """Top candidate, or None when there are no candidates."""
        return pick_winner(await self.registry.list())

    async def is_tie(self) -> bool:
        return has_tie(await self.registry.list())

    async def total_votes(self) -> int:
        return sum(c.vote_count for c in await self.registry.list())

    async def standings(self) -> Standings:
        ranked = await self.results()
        return Standings(
            ranked=ranked,
            winner=ranked[0] if ranked else None,
            is_tie=has_tie(ranked),
            total_votes=sum(c.vote_count for c in ranked),
            final=False,
        )

    async def visible_results(self, phase: Phase, viewer: Optional[Voter] = None) -> Standings:
        """
        Standings for a viewer, honouring result visibility.

        Raises:
            ResultsUnavailable: Before the end of voting, for non-admin viewers
        """
        if not can_see_counts(phase, viewer):
            raise ResultsUnavailable(phase=phase.value)

        standings = await self.standings()
        if phase is Phase.ENDED:
            return replace(standings, final=True)
        return standings
