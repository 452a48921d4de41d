"""
streakboard.services.streak_service — Online Streak Updater
============================================================

Called synchronously by the activity subsystem right after it has durably
stored a new activity.  Each call does one key lookup and at most one
compare-and-set write; if a concurrent write wins, the key is re-read and
the transition applied again on the fresh state.

Streak updates are a best-effort side channel.  Use
:meth:`StreakUpdater.handle_activity_event` from the activity flow: it
never raises persistence errors, so a failing streak write can't roll back
the activity that triggered it.

Usage::

    updater = StreakUpdater.from_config(StreakStore(engine), load_config())
    updater.handle_activity_event(ActivityEvent.from_payload(user_id, category))
"""

from __future__ import annotations

import logging
from datetime import date, datetime

from sqlalchemy.exc import SQLAlchemyError

from streakboard.config import StreakboardConfig
from streakboard.database.models import ActivityCategory
from streakboard.engine.events import ActivityEvent
from streakboard.engine.streaks import StreakSummary, advance_streak, normalize_day
from streakboard.exceptions import StreakConflictError
from streakboard.services.streak_store import StreakStore

logger = logging.getLogger(__name__)


class StreakUpdater:
    """Incremental, per-event streak updates."""

    def __init__(self, store: StreakStore, *, max_attempts: int = 5) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.store = store
        self.max_attempts = max_attempts

    @classmethod
    def from_config(cls, store: StreakStore, config: StreakboardConfig) -> StreakUpdater:
        """Build an updater using ``updater.max_attempts`` from *config*."""
        return cls(store, max_attempts=config.updater_max_attempts)

    def record_activity(
        self,
        user_id: str,
        category: ActivityCategory,
        occurred_at: datetime | date,
    ) -> StreakSummary:
        """Apply one activity to the (user, category) streak and persist it.

        Returns the resulting summary.  Duplicate same-day and out-of-order
        events return the stored summary without writing.

        Raises
        ------
        TypeError
            If *category* is not an :class:`ActivityCategory`.
        StreakConflictError
            If every attempt lost a race with another writer.
        """
        if not isinstance(category, ActivityCategory):
            raise TypeError(
                f"category must be an ActivityCategory, got {type(category).__name__}"
            )
        day = normalize_day(occurred_at)

        for attempt in range(1, self.max_attempts + 1):
            stored = self.store.get(user_id, category)
            current = stored.state if stored else None
            next_state = advance_streak(current, day)

            if stored is not None and next_state == current:
                return StreakSummary.from_state(user_id, category, next_state)

            written = self.store.upsert(
                user_id,
                category,
                next_state,
                expected_version=stored.version if stored else None,
            )
            if written:
                logger.debug(
                    "Streak %s:%s → current=%d longest=%d (%s)",
                    user_id, category.value,
                    next_state.current_streak, next_state.longest_streak, day,
                )
                return StreakSummary.from_state(user_id, category, next_state)

            logger.info(
                "Streak %s:%s changed concurrently, retrying (attempt %d/%d)",
                user_id, category.value, attempt, self.max_attempts,
            )

        raise StreakConflictError(user_id, category.value, self.max_attempts)

    def handle_activity_event(self, event: ActivityEvent) -> StreakSummary | None:
        """Inbound hook for the activity subsystem.

        Returns ``None`` when the event has no category or when the update
        failed; failures are logged, never raised.
        """
        if not event.is_streak_eligible:
            logger.debug("Event for user %s has no category; skipping", event.user_id)
            return None

        try:
            return self.record_activity(event.user_id, event.category, event.occurred_at)
        except (SQLAlchemyError, StreakConflictError):
            logger.exception(
                "Streak update failed for %s:%s; activity is unaffected",
                event.user_id, event.category.value,
            )
        except ValueError:
            # Stored counters violate current <= longest; backfill repairs them.
            logger.exception(
                "Corrupted streak row for %s:%s; run the backfill job to repair",
                event.user_id, event.category.value,
            )
        return None
