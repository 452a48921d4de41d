"""
streakboard.engine.streaks — Streak Transition Function
========================================================

Pure calculation module.  No DB I/O.

:func:`advance_streak` is the single implementation of the streak rule.  The
online updater applies it to one event at a time; the backfill job folds it
over a user's whole history with :func:`replay_streak`.  Nothing else may
re-implement the rule.

Rules, with ``diff`` = new day − last active day in whole days:

    no state            → 1 / 1 / day
    no last active day  → 1 / max(longest, 1) / day
    diff < 0            → unchanged (out-of-order event)
    diff == 0           → unchanged (already counted today)
    diff == 1           → current + 1
    diff > 1            → current reset to 1
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import UTC, date, datetime
from functools import reduce

from streakboard.database.models import ActivityCategory

__all__ = [
    "StreakState",
    "StreakSummary",
    "advance_streak",
    "normalize_day",
    "replay_streak",
]


# ---------------------------------------------------------------------------
# State records
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class StreakState:
    """Counters for one (user, category) key."""

    current_streak: int = 0
    longest_streak: int = 0
    last_active_date: date | None = None

    def __post_init__(self) -> None:
        if self.current_streak < 0 or self.longest_streak < 0:
            raise ValueError(
                f"Streak counters must be >= 0 "
                f"(current={self.current_streak}, longest={self.longest_streak})"
            )
        if self.current_streak > self.longest_streak:
            raise ValueError(
                f"current_streak ({self.current_streak}) exceeds "
                f"longest_streak ({self.longest_streak})"
            )


@dataclass(frozen=True, slots=True)
class StreakSummary:
    """A :class:`StreakState` together with the key it belongs to."""

    user_id: str
    category: ActivityCategory
    current_streak: int
    longest_streak: int
    last_active_date: date | None

    @classmethod
    def from_state(
        cls, user_id: str, category: ActivityCategory, state: StreakState
    ) -> StreakSummary:
        return cls(
            user_id=user_id,
            category=category,
            current_streak=state.current_streak,
            longest_streak=state.longest_streak,
            last_active_date=state.last_active_date,
        )

    @property
    def state(self) -> StreakState:
        return StreakState(
            current_streak=self.current_streak,
            longest_streak=self.longest_streak,
            last_active_date=self.last_active_date,
        )

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "category": self.category.value,
            "current_streak": self.current_streak,
            "longest_streak": self.longest_streak,
            "last_active_date": (
                self.last_active_date.isoformat() if self.last_active_date else None
            ),
        }


# ---------------------------------------------------------------------------
# Day normalization
# ---------------------------------------------------------------------------
def normalize_day(value: datetime | date) -> date:
    """Return the UTC calendar day of *value*, dropping the time of day.

    Naive datetimes are taken to already be in UTC.
    """
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(UTC)
        return value.date()
    return value


# ---------------------------------------------------------------------------
# Transition
# ---------------------------------------------------------------------------
def advance_streak(state: StreakState | None, day: date) -> StreakState:
    """Apply one active *day* to *state* and return the next state."""
    if state is None:
        return StreakState(current_streak=1, longest_streak=1, last_active_date=day)

    if state.last_active_date is None:
        return StreakState(
            current_streak=1,
            longest_streak=max(state.longest_streak, 1),
            last_active_date=day,
        )

    diff = (day - state.last_active_date).days
    if diff <= 0:
        # Same day is already counted; earlier days are ignored.
        return state

    current = state.current_streak + 1 if diff == 1 else 1
    return StreakState(
        current_streak=current,
        longest_streak=max(state.longest_streak, current),
        last_active_date=day,
    )


def replay_streak(
    days: Iterable[date], initial: StreakState | None = None
) -> StreakState | None:
    """Fold :func:`advance_streak` over *days* in the order given.

    Returns *initial* unchanged when *days* is empty.
    """
    return reduce(advance_streak, days, initial)
