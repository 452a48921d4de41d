"""
streakboard.exceptions — Domain errors
=======================================
"""

from __future__ import annotations


class StreakboardError(Exception):
    """Base class for errors raised by the streak engine."""


class StreakConflictError(StreakboardError):
    """A streak row kept changing underneath the updater.

    Raised after the optimistic retry budget is exhausted.
    """

    def __init__(self, user_id: str, category: str, attempts: int) -> None:
        super().__init__(
            f"Streak {user_id}:{category} still conflicting after {attempts} attempts"
        )
        self.user_id = user_id
        self.category = category
        self.attempts = attempts


class BackfillAlreadyRunningError(StreakboardError):
    """Another process holds the backfill job lock."""

    def __init__(self, lock_name: str, owner: str | None) -> None:
        super().__init__(f"Job lock {lock_name!r} is held by {owner or 'unknown'}")
        self.lock_name = lock_name
        self.owner = owner
