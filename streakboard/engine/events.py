"""
streakboard.engine.events — ActivityEvent and category parsing
===============================================================

The event envelope handed to the streak engine by the activity subsystem.
Raw payloads are validated here, at the ingestion boundary, so everything
downstream works with an :class:`ActivityCategory` or ``None`` and a
timezone-aware timestamp.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import UTC, datetime

from streakboard.database.models import ActivityCategory

logger = logging.getLogger(__name__)

__all__ = ["ActivityEvent", "parse_category", "require_category"]

_SEPARATORS = re.compile(r"[\s_\-]+")

# "deep work", "deep-work", "DEEP_WORK" all map to the same member
_CATEGORY_LOOKUP: dict[str, ActivityCategory] = {}
for _member in ActivityCategory:
    _CATEGORY_LOOKUP[_SEPARATORS.sub(" ", _member.value).strip().lower()] = _member
    _CATEGORY_LOOKUP[_SEPARATORS.sub(" ", _member.name).strip().lower()] = _member


def _lookup(raw: str) -> ActivityCategory | None:
    return _CATEGORY_LOOKUP.get(_SEPARATORS.sub(" ", raw).strip().lower())


def parse_category(raw: ActivityCategory | str | None) -> ActivityCategory | None:
    """Coerce *raw* to an :class:`ActivityCategory`.

    Absent or blank values return ``None``.  Unknown values also return
    ``None`` (logged); they simply don't take part in streaks.
    """
    if raw is None or isinstance(raw, ActivityCategory):
        return raw
    if not isinstance(raw, str) or not raw.strip():
        return None
    category = _lookup(raw)
    if category is None:
        logger.warning("Ignoring unknown activity category %r", raw)
    return category


def require_category(raw: ActivityCategory | str) -> ActivityCategory:
    """Strict variant of :func:`parse_category` for user-supplied filters."""
    if isinstance(raw, ActivityCategory):
        return raw
    category = _lookup(raw) if isinstance(raw, str) else None
    if category is None:
        raise ValueError(f"Unknown activity category: {raw!r}")
    return category


# ---------------------------------------------------------------------------
# ActivityEvent — one logged activity
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class ActivityEvent:
    """An activity occurrence as seen by the streak engine.

    ``category`` is ``None`` for activities that don't count toward streaks
    (for example a freeform reply).
    """

    user_id: str
    category: ActivityCategory | None
    occurred_at: datetime

    @classmethod
    def from_payload(
        cls,
        user_id: str,
        category: ActivityCategory | str | None,
        occurred_at: datetime | None = None,
    ) -> ActivityEvent:
        """Validate raw values from the activity subsystem.

        Raises
        ------
        ValueError
            If *user_id* is blank.
        """
        user_id = str(user_id).strip() if user_id is not None else ""
        if not user_id:
            raise ValueError("ActivityEvent requires a user_id")

        ts = occurred_at or datetime.now(UTC)
        if ts.tzinfo is None:
            ts = ts.replace(tzinfo=UTC)

        return cls(user_id=user_id, category=parse_category(category), occurred_at=ts)

    @property
    def is_streak_eligible(self) -> bool:
        return self.category is not None
