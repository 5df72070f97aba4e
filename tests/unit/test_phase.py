"""Tests for phase resolution against the election window."""

from datetime import datetime, timedelta, timezone

import pytest

from ballot_engine import (
    ElectionWindow,
    FixedClock,
    Phase,
    format_countdown,
    phase_ticks,
    resolve_phase,
)

START = datetime(2025, 11, 23, 18, 0, tzinfo=timezone.utc)
END = datetime(2025, 11, 23, 20, 0, tzinfo=timezone.utc)


@pytest.fixture
def window():
    return ElectionWindow(START, END)


class TestResolvePhase:
    """Boundaries are inclusive at the start and exclusive at the end."""

    def test_start_instant_is_active(self, window):
        assert resolve_phase(START, window).phase is Phase.ACTIVE

    def test_end_instant_is_ended(self, window):
        assert resolve_phase(END, window).phase is Phase.ENDED

    def test_one_millisecond_before_start_is_waiting(self, window):
        status = resolve_phase(START - timedelta(milliseconds=1), window)

        assert status.phase is Phase.WAITING
        assert status.time_until_start == timedelta(milliseconds=1)

    def test_one_millisecond_before_end_is_active(self, window):
        status = resolve_phase(END - timedelta(milliseconds=1), window)

        assert status.phase is Phase.ACTIVE
        assert status.time_until_end == timedelta(milliseconds=1)

    def test_waiting_reports_time_until_start(self, window):
        status = resolve_phase(START - timedelta(hours=2, minutes=30), window)

        assert status.phase is Phase.WAITING
        assert status.time_until_start == timedelta(hours=2, minutes=30)
        assert status.time_until_end is None
        assert status.countdown == timedelta(hours=2, minutes=30)

    def test_active_reports_time_until_end(self, window):
        status = resolve_phase(START + timedelta(minutes=5), window)

        assert status.is_active
        assert status.time_until_end == timedelta(hours=1, minutes=55)
        assert status.time_until_start is None

    def test_ended_has_no_countdown(self, window):
        status = resolve_phase(END + timedelta(days=1), window)

        assert status.phase is Phase.ENDED
        assert status.countdown is None

    def test_is_pure(self, window):
        now = START + timedelta(minutes=1)
        assert resolve_phase(now, window) == resolve_phase(now, window)

    def test_naive_now_is_treated_as_utc(self, window):
        naive = datetime(2025, 11, 23, 18, 30)
        assert resolve_phase(naive, window).phase is Phase.ACTIVE

    def test_other_timezones_compare_by_instant(self, window):
        ist = timezone(timedelta(hours=5, minutes=30))
        # 23:29 IST is 17:59 UTC
        assert resolve_phase(datetime(2025, 11, 23, 23, 29, tzinfo=ist), window).phase is Phase.WAITING
        # 23:30 IST is 18:00 UTC
        assert resolve_phase(datetime(2025, 11, 23, 23, 30, tzinfo=ist), window).phase is Phase.ACTIVE

    def test_phase_values_are_strings(self):
        assert [p.value for p in Phase] == ["waiting", "active", "ended"]


class TestElectionWindow:

    def test_rejects_inverted_window(self):
        with pytest.raises(ValueError):
            ElectionWindow(END, START)

    def test_rejects_empty_window(self):
        with pytest.raises(ValueError):
            ElectionWindow(START, START)

    def test_is_immutable(self, window):
        with pytest.raises(AttributeError):
            window.starts_at = END

    def test_duration(self, window):
        assert window.duration == timedelta(hours=2)


class TestFormatCountdown:

    @pytest.mark.parametrize("delta, expected", [
        (timedelta(hours=1, minutes=55), "01:55:00"),
        (timedelta(seconds=59), "00:00:59"),
        (timedelta(hours=26, minutes=1, seconds=2), "26:01:02"),
        (timedelta(milliseconds=999), "00:00:00"),
        (timedelta(seconds=-5), "00:00:00"),
        (None, "00:00:00"),
    ])
    def test_format(self, delta, expected):
        assert format_countdown(delta) == expected


@pytest.mark.asyncio
class TestPhaseTicks:

    async def test_ticks_follow_the_clock(self, window):
        clock = FixedClock(START - timedelta(seconds=1))
        phases = []

        async for status in phase_ticks(window, clock, interval=0):
            phases.append(status.phase)
            if len(phases) == 3:
                break
            clock.advance(timedelta(seconds=1))
            if len(phases) == 2:
                clock.set(END)

        assert phases == [Phase.WAITING, Phase.ACTIVE, Phase.ENDED]

    async def test_ticks_do_not_change_the_clock(self, window):
        clock = FixedClock(START)

        async for status in phase_ticks(window, clock, interval=0):
            break

        assert clock.now() == START
        assert status.phase is Phase.ACTIVE
