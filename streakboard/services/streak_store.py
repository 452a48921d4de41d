"""
streakboard.services.streak_store — Streak Store
=================================================

The only writer of the ``streaks`` table.  One instance is built per process
from an :class:`~sqlalchemy.Engine` and handed to the updater, the
leaderboard query and the backfill job.

Writes come in two shapes:

* :meth:`StreakStore.upsert` — compare-and-set on the row ``version`` for the
  online path.  Returns ``False`` when another writer got there first so the
  caller can re-read and re-apply the transition.
* :meth:`StreakStore.bulk_overwrite` — chunked ``INSERT … ON CONFLICT DO
  UPDATE`` for the backfill job.  Rows are only touched when their values
  actually change, and every touch bumps ``version`` so an in-flight online
  update retries against the backfilled row.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime

from sqlalchemy import Engine, Row, or_, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from streakboard.database.engine import get_session
from streakboard.database.models import ActivityCategory, Streak
from streakboard.engine.streaks import StreakState, StreakSummary

logger = logging.getLogger(__name__)

StreakKey = tuple[str, ActivityCategory]

_CATEGORY_ORDER = {c: i for i, c in enumerate(ActivityCategory)}


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class StoredStreak:
    """A state read from the store plus the version it was read at."""

    state: StreakState
    version: int


@dataclass
class BulkWriteResult:
    """Outcome of :meth:`StreakStore.bulk_overwrite`.

    ``matched`` rows already existed, ``modified`` of those had different
    values, ``upserted`` rows were newly inserted.
    """

    matched: int = 0
    modified: int = 0
    upserted: int = 0
    written_keys: list[StreakKey] = field(default_factory=list)
    failed_keys: list[StreakKey] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed_keys


# ---------------------------------------------------------------------------
# Row conversion
# ---------------------------------------------------------------------------
def state_from_row(row: Streak | Row) -> StreakState:
    """Build a :class:`StreakState` from a stored row.

    Raises ``ValueError`` for corrupted counters.
    """
    return StreakState(
        current_streak=row.current_streak,
        longest_streak=row.longest_streak,
        last_active_date=row.last_active_date,
    )


def summary_from_row(row: Streak | Row) -> StreakSummary:
    """Build a :class:`StreakSummary` from a stored row.

    Raises ``ValueError`` for an unknown category or corrupted counters.
    """
    return StreakSummary.from_state(
        row.user_id, ActivityCategory(row.category), state_from_row(row)
    )


def _dialect_insert(engine: Engine):
    name = engine.dialect.name
    if name == "postgresql":
        return postgresql.insert
    if name == "sqlite":
        return sqlite.insert
    raise NotImplementedError(f"Bulk upsert is not supported on {name!r}")


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------
class StreakStore:
    """Durable keyed streak state, one record per (user, category)."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    # -------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------
    def get(self, user_id: str, category: ActivityCategory) -> StoredStreak | None:
        """Return the stored state for a key, or ``None`` if never active."""
        with get_session(self.engine) as session:
            row = session.scalar(
                select(Streak).where(
                    Streak.user_id == user_id,
                    Streak.category == category.value,
                )
            )
            if row is None:
                return None
            return StoredStreak(state=state_from_row(row), version=row.version)

    def get_many(
        self, keys: Iterable[tuple[str | None, ActivityCategory | None]]
    ) -> dict[StreakKey, StreakSummary]:
        """Batched lookup of several keys in one query.

        This is the read the activity subsystem uses to decorate a page of
        posts with their authors' streaks, so it never loops over ``get``.
        Keys with a blank user id or no category are ignored, as are
        corrupted rows.
        """
        wanted: set[StreakKey] = {
            (user_id, category)
            for user_id, category in keys
            if user_id and category is not None
        }
        if not wanted:
            return {}

        user_ids = {user_id for user_id, _ in wanted}
        categories = {category.value for _, category in wanted}

        summaries: dict[StreakKey, StreakSummary] = {}
        with get_session(self.engine) as session:
            rows = session.scalars(
                select(Streak).where(
                    Streak.user_id.in_(user_ids),
                    Streak.category.in_(categories),
                )
            ).all()
            for row in rows:
                try:
                    summary = summary_from_row(row)
                except ValueError:
                    logger.warning("Skipping corrupted streak row %r", row)
                    continue
                key = (summary.user_id, summary.category)
                if key in wanted:
                    summaries[key] = summary
        return summaries

    def for_user(self, user_id: str) -> list[StreakSummary]:
        """All streaks of one user, in category order."""
        with get_session(self.engine) as session:
            rows = session.scalars(
                select(Streak).where(Streak.user_id == user_id)
            ).all()
            summaries = []
            for row in rows:
                try:
                    summaries.append(summary_from_row(row))
                except ValueError:
                    logger.warning("Skipping corrupted streak row %r", row)
        return sorted(summaries, key=lambda s: _CATEGORY_ORDER[s.category])

    def top_for_category(
        self, category: ActivityCategory, limit: int, offset: int = 0
    ) -> list[Row]:
        """Highest-ranked raw rows for *category*, starting at *offset*.

        Ordered by longest streak, then current streak, then most recently
        updated, then user id so the order is total and pages don't overlap.
        """
        with get_session(self.engine) as session:
            return list(
                session.execute(
                    select(
                        Streak.user_id,
                        Streak.category,
                        Streak.current_streak,
                        Streak.longest_streak,
                        Streak.last_active_date,
                        Streak.updated_at,
                    )
                    .where(Streak.category == category.value)
                    .order_by(
                        Streak.longest_streak.desc(),
                        Streak.current_streak.desc(),
                        Streak.updated_at.desc(),
                        Streak.user_id.asc(),
                    )
                    .limit(limit)
                    .offset(offset)
                ).all()
            )

    # -------------------------------------------------------------------
    # Online write path
    # -------------------------------------------------------------------
    def upsert(
        self,
        user_id: str,
        category: ActivityCategory,
        state: StreakState,
        *,
        expected_version: int | None,
    ) -> bool:
        """Atomically write *state* if the row is still at *expected_version*.

        ``expected_version=None`` means the caller saw no row; the write is an
        insert and loses to any concurrent insert of the same key.

        Returns ``True`` when the row was written, ``False`` on conflict.
        """
        now = datetime.now(UTC)
        try:
            with get_session(self.engine) as session:
                if expected_version is None:
                    session.add(Streak(
                        user_id=user_id,
                        category=category.value,
                        current_streak=state.current_streak,
                        longest_streak=state.longest_streak,
                        last_active_date=state.last_active_date,
                        version=1,
                        created_at=now,
                        updated_at=now,
                    ))
                    session.flush()
                    return True

                result = session.execute(
                    update(Streak)
                    .where(
                        Streak.user_id == user_id,
                        Streak.category == category.value,
                        Streak.version == expected_version,
                    )
                    .values(
                        current_streak=state.current_streak,
                        longest_streak=state.longest_streak,
                        last_active_date=state.last_active_date,
                        version=Streak.version + 1,
                        updated_at=now,
                    )
                    .execution_options(synchronize_session=False)
                )
                return result.rowcount == 1
        except IntegrityError:
            # Unique (user_id, category) caught a concurrent insert.
            logger.debug("Insert conflict for streak %s:%s", user_id, category.value)
            return False

    # -------------------------------------------------------------------
    # Backfill write path
    # -------------------------------------------------------------------
    def bulk_overwrite(
        self, summaries: Sequence[StreakSummary], *, chunk_size: int = 500
    ) -> BulkWriteResult:
        """Overwrite stored state for every key in *summaries*.

        Each chunk commits on its own; a failing chunk is logged and its keys
        reported in ``failed_keys`` while later chunks still run.
        """
        if chunk_size < 1:
            raise ValueError("chunk_size must be >= 1")

        result = BulkWriteResult()
        insert = _dialect_insert(self.engine)
        table = Streak.__table__

        for start in range(0, len(summaries), chunk_size):
            chunk = summaries[start:start + chunk_size]
            keys: list[StreakKey] = [(s.user_id, s.category) for s in chunk]
            now = datetime.now(UTC)

            stmt = insert(table)
            stmt = stmt.on_conflict_do_update(
                index_elements=[table.c.user_id, table.c.category],
                set_={
                    "current_streak": stmt.excluded.current_streak,
                    "longest_streak": stmt.excluded.longest_streak,
                    "last_active_date": stmt.excluded.last_active_date,
                    "version": table.c.version + 1,
                    "updated_at": stmt.excluded.updated_at,
                },
                where=or_(
                    table.c.current_streak != stmt.excluded.current_streak,
                    table.c.longest_streak != stmt.excluded.longest_streak,
                    table.c.last_active_date.is_distinct_from(
                        stmt.excluded.last_active_date
                    ),
                ),
            )

            try:
                with get_session(self.engine) as session:
                    existing = self._existing_values(session, chunk)
                    matched = modified = upserted = 0
                    for s in chunk:
                        before = existing.get((s.user_id, s.category.value))
                        if before is None:
                            upserted += 1
                            continue
                        matched += 1
                        if before != (
                            s.current_streak, s.longest_streak, s.last_active_date
                        ):
                            modified += 1

                    session.execute(stmt, [
                        {
                            "user_id": s.user_id,
                            "category": s.category.value,
                            "current_streak": s.current_streak,
                            "longest_streak": s.longest_streak,
                            "last_active_date": s.last_active_date,
                            "version": 1,
                            "created_at": now,
                            "updated_at": now,
                        }
                        for s in chunk
                    ])
            except SQLAlchemyError as exc:
                logger.exception(
                    "Bulk overwrite failed for %d streaks starting at offset %d",
                    len(chunk), start,
                )
                result.failed_keys.extend(keys)
                result.errors.append(f"{type(exc).__name__}: {exc}")
                continue

            result.matched += matched
            result.modified += modified
            result.upserted += upserted
            result.written_keys.extend(keys)

        return result

    @staticmethod
    def _existing_values(
        session, chunk: Sequence[StreakSummary]
    ) -> dict[tuple[str, str], tuple]:
        rows = session.execute(
            select(
                Streak.user_id,
                Streak.category,
                Streak.current_streak,
                Streak.longest_streak,
                Streak.last_active_date,
            ).where(Streak.user_id.in_({s.user_id for s in chunk}))
        ).all()
        return {
            (row.user_id, row.category): (
                row.current_streak, row.longest_streak, row.last_active_date
            )
            for row in rows
        }
