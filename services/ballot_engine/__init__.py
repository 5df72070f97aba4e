"""
Voting session engine.

This package contains the parts of the voting system with invariants to
protect:
- Phase resolution against the election window
- Voter directory and candidate registry
- The ballot casting protocol (exactly-once voting)
- Tally and results
- The store contract and an in-memory reference store
"""

from .casting import BallotCastingProtocol
from .directory import VoterDirectory
from .engine import VotingEngine
from .errors import (
    AlreadyVoted,
    NotAuthenticated,
    ResultsUnavailable,
    StoreUnavailable,
    UnknownCandidate,
    UnknownVoter,
    ValidationError,
    VotingError,
    VotingNotActive,
)
from .models import (
    Candidate,
    CastResult,
    RejectionReason,
    StoreReceipt,
    Voter,
    normalize_identifier,
)
from .phase import (
    ElectionWindow,
    FixedClock,
    Phase,
    PhaseStatus,
    SystemClock,
    format_countdown,
    phase_ticks,
    resolve_phase,
)
from .registry import CandidateRegistry
from .store import BallotStore, InMemoryStore
from .tally import Standings, TallyView

__all__ = [
    'AlreadyVoted',
    'BallotCastingProtocol',
    'BallotStore',
    'Candidate',
    'CandidateRegistry',
    'CastResult',
    'ElectionWindow',
    'FixedClock',
    'InMemoryStore',
    'NotAuthenticated',
    'Phase',
    'PhaseStatus',
    'RejectionReason',
    'ResultsUnavailable',
    'Standings',
    'StoreReceipt',
    'StoreUnavailable',
    'SystemClock',
    'TallyView',
    'UnknownCandidate',
    'UnknownVoter',
    'ValidationError',
    'Voter',
    'VoterDirectory',
    'VotingEngine',
    'VotingError',
    'VotingNotActive',
    'format_countdown',
    'normalize_identifier',
    'phase_ticks',
    'resolve_phase',
]

__version__ = '1.0.0'
