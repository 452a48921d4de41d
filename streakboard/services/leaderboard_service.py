"""
streakboard.services.leaderboard_service — Per-category streak leaderboards
============================================================================

Read path only.  Ranks stored streaks per category and joins a public user
summary from :class:`UserDirectory` (one batched lookup for all categories).

Ranking key, highest first:
    longest_streak → current_streak → most recently updated → user id (asc)

A missing profile gets a placeholder summary; a corrupted streak row is
logged and left out.  Neither fails the query.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, date, datetime

from streakboard.config import StreakboardConfig, default_config
from streakboard.database.models import ActivityCategory
from streakboard.engine.streaks import StreakSummary
from streakboard.services.streak_store import StreakStore, summary_from_row
from streakboard.services.user_directory import UserDirectory, UserSummary

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Output records
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class LeaderboardEntry:
    rank: int
    category: ActivityCategory
    user_id: str
    current_streak: int
    longest_streak: int
    last_active_date: date | None
    user: UserSummary

    def to_dict(self) -> dict:
        return {
            "category": self.category.value,
            "rank": self.rank,
            "currentStreak": self.current_streak,
            "longestStreak": self.longest_streak,
            "lastActiveDate": (
                self.last_active_date.isoformat() if self.last_active_date else None
            ),
            "user": self.user.to_dict(),
        }


@dataclass
class CategoryLeaderboard:
    category: ActivityCategory
    entries: list[LeaderboardEntry] = field(default_factory=list)
    generated_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict:
        return {
            "category": self.category.value,
            "generatedAt": self.generated_at.isoformat(),
            "entries": [entry.to_dict() for entry in self.entries],
        }


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------
class LeaderboardService:
    def __init__(
        self,
        store: StreakStore,
        directory: UserDirectory,
        config: StreakboardConfig | None = None,
    ) -> None:
        self.store = store
        self.directory = directory
        self.config = config or default_config()

    def clamp_limit(self, limit: int | None) -> int:
        """Default to the configured limit and clamp to ``[1, max_limit]``."""
        if limit is None:
            return self.config.leaderboard_default_limit
        return min(max(int(limit), 1), self.config.leaderboard_max_limit)

    @staticmethod
    def resolve_categories(
        categories: Iterable[ActivityCategory] | None,
    ) -> list[ActivityCategory]:
        """All categories when none are given; duplicates dropped in order."""
        resolved = list(dict.fromkeys(categories or ()))
        return resolved or list(ActivityCategory)

    def get_leaderboards(
        self,
        limit: int | None = None,
        categories: Iterable[ActivityCategory] | None = None,
    ) -> list[CategoryLeaderboard]:
        """Return one ranked leaderboard per requested category."""
        size = self.clamp_limit(limit)
        ranked: list[tuple[ActivityCategory, list[StreakSummary]]] = []

        for category in self.resolve_categories(categories):
            ranked.append((category, self._top_valid(category, size)))

        profiles = self.directory.get_summaries(
            {s.user_id for _, summaries in ranked for s in summaries}
        )

        generated_at = datetime.now(UTC)
        return [
            CategoryLeaderboard(
                category=category,
                entries=[
                    LeaderboardEntry(
                        rank=index,
                        category=category,
                        user_id=s.user_id,
                        current_streak=s.current_streak,
                        longest_streak=s.longest_streak,
                        last_active_date=s.last_active_date,
                        user=profiles.get(s.user_id) or self.directory.placeholder(s.user_id),
                    )
                    for index, s in enumerate(summaries, start=1)
                ],
                generated_at=generated_at,
            )
            for category, summaries in ranked
        ]

    def _top_valid(self, category: ActivityCategory, size: int) -> list[StreakSummary]:
        """Read pages of ranked rows until *size* valid summaries are found.

        Corrupted rows don't count toward *size*.
        """
        summaries: list[StreakSummary] = []
        offset = 0
        while len(summaries) < size:
            rows = self.store.top_for_category(category, size, offset=offset)
            for row in rows:
                try:
                    summaries.append(summary_from_row(row))
                except ValueError as exc:
                    logger.warning(
                        "Leaving corrupted streak %s:%s out of the leaderboard: %s",
                        row.user_id, row.category, exc,
                    )
            if len(rows) < size:
                break
            offset += len(rows)
        return summaries[:size]
