"""
streakboard.services.user_directory — Public user summaries
============================================================

Read-only view over the profile subsystem's ``users`` table, used to
decorate leaderboard rows.  Lookups are always batched.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass

from sqlalchemy import Engine, select

from streakboard.config import StreakboardConfig, default_config
from streakboard.database.engine import get_session
from streakboard.database.models import User

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class UserSummary:
    """Public profile snippet shown next to a leaderboard row."""

    id: str
    name: str
    username: str
    avatar: str

    def to_dict(self) -> dict[str, str]:
        return {
            "id": self.id,
            "name": self.name,
            "username": self.username,
            "avatar": self.avatar,
        }


class UserDirectory:
    def __init__(self, engine: Engine, config: StreakboardConfig | None = None) -> None:
        self.engine = engine
        self.config = config or default_config()

    def placeholder(self, user_id: str) -> UserSummary:
        """Summary used when the profile is missing."""
        return UserSummary(
            id=user_id,
            name=self.config.placeholder_name,
            username="",
            avatar=self.config.default_avatar,
        )

    def get_summaries(self, user_ids: Iterable[str]) -> dict[str, UserSummary]:
        """Look up several users in one query.

        Users without a profile are absent from the result; callers fall
        back to :meth:`placeholder`.
        """
        ids = {uid for uid in user_ids if uid}
        if not ids:
            return {}

        with get_session(self.engine) as session:
            rows = session.execute(
                select(User.id, User.name, User.username, User.image)
                .where(User.id.in_(ids))
            ).all()

        summaries = {
            row.id: UserSummary(
                id=row.id,
                name=row.name or row.username or self.config.placeholder_name,
                username=row.username or "",
                avatar=row.image or self.config.default_avatar,
            )
            for row in rows
        }
        if len(summaries) < len(ids):
            logger.debug("%d of %d users have no profile", len(ids) - len(summaries), len(ids))
        return summaries
