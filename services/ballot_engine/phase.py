"""
Voting phase resolution.

The phase is never stored: it is derived from the current time and the
configured election window, which is half-open ``[starts_at, ends_at)``.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import AsyncIterator, Optional


class Phase(str, Enum):
    """Phase of the election relative to its window."""
    WAITING = "waiting"
    ACTIVE = "active"
    ENDED = "ended"


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC so comparisons never mix naive and aware."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@dataclass(frozen=True)
class ElectionWindow:
    """
    Immutable voting window.

    Attributes:
        starts_at: First instant at which casting is accepted (inclusive)
        ends_at: First instant at which casting is refused (exclusive)
    """
    starts_at: datetime
    ends_at: datetime

    def __post_init__(self):
        object.__setattr__(self, "starts_at", ensure_utc(self.starts_at))
        object.__setattr__(self, "ends_at", ensure_utc(self.ends_at))
        if self.starts_at >= self.ends_at:
            raise ValueError(
                f"Election window must start before it ends "
                f"({self.starts_at.isoformat()} >= {self.ends_at.isoformat()})"
            )

    @property
    def duration(self) -> timedelta:
        return self.ends_at - self.starts_at


@dataclass(frozen=True)
class PhaseStatus:
    """Result of resolving the phase at one instant."""
    phase: Phase
    now: datetime
    time_until_start: Optional[timedelta] = None
    time_until_end: Optional[timedelta] = None

    @property
    def is_active(self) -> bool:
        return self.phase is Phase.ACTIVE

    @property
    def countdown(self) -> Optional[timedelta]:
        """Remaining time shown to voters: to the start while waiting, to the end while active."""
        if self.phase is Phase.WAITING:
            return self.time_until_start
        if self.phase is Phase.ACTIVE:
            return self.time_until_end
        return None


def resolve_phase(now: datetime, window: ElectionWindow) -> PhaseStatus:
    """
    Map the current time onto a voting phase.

    Args:
        now: Current instant
        window: Configured election window

    Returns:
        PhaseStatus: Phase plus the time left until the next transition
    """
    now = ensure_utc(now)

    if now < window.starts_at:
        return PhaseStatus(
            phase=Phase.WAITING,
            now=now,
            time_until_start=window.starts_at - now,
        )

    if now < window.ends_at:
        return PhaseStatus(
            phase=Phase.ACTIVE,
            now=now,
            time_until_end=window.ends_at - now,
        )

    return PhaseStatus(phase=Phase.ENDED, now=now)


def format_countdown(delta: Optional[timedelta]) -> str:
    """
    Render a countdown as HH:MM:SS.

    Hours are not wrapped at 24. Missing or negative deltas render as zero.
    """
    if not delta or delta.total_seconds() <= 0:
        return "00:00:00"
    total_seconds = int(delta.total_seconds())
    hours, remainder = divmod(total_seconds, 3600)
    minutes, seconds = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"


class SystemClock:
    """Wall clock in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock:
    """Manually driven clock for tests and simulations."""

    def __init__(self, now: datetime):
        self._now = ensure_utc(now)

    def now(self) -> datetime:
        return self._now

    def set(self, now: datetime) -> None:
        self._now = ensure_utc(now)

    def advance(self, delta: timedelta) -> datetime:
        self._now = self._now + delta
        return self._now


async def phase_ticks(
    window: ElectionWindow,
    clock,
    interval: float = 1.0
) -> AsyncIterator[PhaseStatus]:
    """
    Re-evaluate the phase every ``interval`` seconds.

    Local polling only: the loop reads the clock and never touches shared
    state, so consecutive ticks need no ordering guarantee.
    """
    while True:
        yield resolve_phase(clock.now(), window)
        await asyncio.sleep(interval)
