"""
tests/test_streak_engine.py — Unit Tests for the Streak Transition
===================================================================

Pure functions only (no database).
"""

from __future__ import annotations

import random
from datetime import UTC, date, datetime, timedelta, timezone

import pytest

from streakboard.database.models import ActivityCategory
from streakboard.engine.streaks import (
    StreakState,
    StreakSummary,
    advance_streak,
    normalize_day,
    replay_streak,
)

D1 = date(2026, 1, 1)


def _day(n: int) -> date:
    return D1 + timedelta(days=n - 1)


# ---------------------------------------------------------------------------
# advance_streak
# ---------------------------------------------------------------------------
class TestAdvanceStreak:
    def test_first_event_starts_streak(self):
        assert advance_streak(None, D1) == StreakState(1, 1, D1)

    def test_state_without_last_active_date_restarts(self):
        state = StreakState(current_streak=0, longest_streak=4, last_active_date=None)
        assert advance_streak(state, D1) == StreakState(1, 4, D1)

    def test_state_without_last_active_date_and_zero_longest(self):
        assert advance_streak(StreakState(), D1) == StreakState(1, 1, D1)

    def test_consecutive_day_extends(self):
        state = StreakState(2, 5, _day(2))
        assert advance_streak(state, _day(3)) == StreakState(3, 5, _day(3))

    def test_consecutive_day_raises_longest(self):
        state = StreakState(5, 5, _day(5))
        assert advance_streak(state, _day(6)) == StreakState(6, 6, _day(6))

    def test_gap_resets_current_keeps_longest(self):
        state = StreakState(3, 3, _day(3))
        assert advance_streak(state, _day(6)) == StreakState(1, 3, _day(6))

    def test_same_day_is_noop(self):
        state = StreakState(2, 2, _day(2))
        assert advance_streak(state, _day(2)) is state

    def test_earlier_day_is_noop(self):
        state = StreakState(2, 2, _day(5))
        assert advance_streak(state, _day(1)) is state

    def test_days_1_2_3_6_gap_resets(self):
        state = replay_streak([_day(1), _day(2), _day(3)])
        assert (state.current_streak, state.longest_streak) == (3, 3)
        state = advance_streak(state, _day(6))
        assert (state.current_streak, state.longest_streak) == (1, 3)
        assert state.last_active_date == _day(6)

    def test_duplicate_same_day_equals_single(self):
        once = replay_streak([_day(1), _day(2)])
        twice = replay_streak([_day(1), _day(2), _day(2)])
        assert once == twice

    def test_consecutive_run_length(self):
        state = None
        for n in range(1, 11):
            state = advance_streak(state, _day(n))
            assert state.current_streak == n
            assert state.longest_streak == n

    def test_longest_never_decreases(self):
        rng = random.Random(1234)
        for _ in range(50):
            state = None
            longest = 0
            for _ in range(40):
                state = advance_streak(state, _day(rng.randint(1, 60)))
                assert state.longest_streak >= longest
                assert state.current_streak <= state.longest_streak
                longest = state.longest_streak

    def test_last_active_date_never_moves_backwards(self):
        rng = random.Random(99)
        state = None
        last = None
        for _ in range(100):
            state = advance_streak(state, _day(rng.randint(1, 30)))
            if last is not None:
                assert state.last_active_date >= last
            last = state.last_active_date


# ---------------------------------------------------------------------------
# replay_streak
# ---------------------------------------------------------------------------
class TestReplayStreak:
    def test_empty_returns_initial(self):
        assert replay_streak([]) is None
        initial = StreakState(2, 3, D1)
        assert replay_streak([], initial) is initial

    def test_longest_tracks_best_run(self):
        days = [_day(n) for n in (1, 2, 3, 4, 8, 9, 15)]
        assert replay_streak(days) == StreakState(1, 4, _day(15))


# ---------------------------------------------------------------------------
# normalize_day
# ---------------------------------------------------------------------------
class TestNormalizeDay:
    def test_aware_datetime_converted_to_utc(self):
        plus_five = timezone(timedelta(hours=5))
        assert normalize_day(datetime(2026, 1, 2, 1, 0, tzinfo=plus_five)) == date(2026, 1, 1)

    def test_naive_datetime_treated_as_utc(self):
        assert normalize_day(datetime(2026, 1, 2, 23, 59)) == date(2026, 1, 2)

    def test_utc_midnight_boundary(self):
        assert normalize_day(datetime(2026, 1, 2, 0, 0, tzinfo=UTC)) == date(2026, 1, 2)

    def test_date_passthrough(self):
        assert normalize_day(D1) == D1


# ---------------------------------------------------------------------------
# State validation
# ---------------------------------------------------------------------------
class TestStreakState:
    def test_defaults_are_empty(self):
        assert StreakState() == StreakState(0, 0, None)

    def test_negative_rejected(self):
        with pytest.raises(ValueError):
            StreakState(current_streak=-1, longest_streak=0)

    def test_current_above_longest_rejected(self):
        with pytest.raises(ValueError):
            StreakState(current_streak=3, longest_streak=2)

    def test_summary_round_trip_to_state(self):
        state = StreakState(2, 7, D1)
        summary = StreakSummary.from_state("u1", ActivityCategory.WORKOUT, state)
        assert summary.state == state
        assert summary.to_dict() == {
            "user_id": "u1",
            "category": "Workout",
            "current_streak": 2,
            "longest_streak": 7,
            "last_active_date": "2026-01-01",
        }
