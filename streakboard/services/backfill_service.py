"""
streakboard.services.backfill_service — Full Streak Recomputation
==================================================================

Offline repair / disaster-recovery job.  Rebuilds every streak from the
complete ``posts`` history instead of trusting what is stored:

    1. Read every post that carries a category (id, user, category, time).
    2. Group by (user_id, category); sort each group by (created_at, id).
    3. Replay each group from the empty state through ``replay_streak`` —
       the same transition the online updater uses.
    4. Overwrite the stored rows for those keys (keys with no posts are left
       alone).

Because each run is a full deterministic replay, running it twice over an
unchanged log stores the same values; the second run reports
``modified=0, upserted=0``.

Groups are independent, so replay can be spread over a thread pool.  Two
backfills must not write at the same time; a row in ``job_locks``
serializes them across processes.
"""

from __future__ import annotations

import logging
import os
import socket
from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

from sqlalchemy import Engine, delete, select, update
from sqlalchemy.exc import IntegrityError

from streakboard.database.engine import get_session
from streakboard.database.models import ActivityCategory, JobLock, Post
from streakboard.engine.streaks import StreakSummary, normalize_day, replay_streak
from streakboard.exceptions import BackfillAlreadyRunningError
from streakboard.services.streak_store import StreakKey, StreakStore

logger = logging.getLogger(__name__)

BACKFILL_LOCK = "streak-backfill"

_CATEGORY_ORDER = {c: i for i, c in enumerate(ActivityCategory)}


# ---------------------------------------------------------------------------
# Report
# ---------------------------------------------------------------------------
@dataclass
class BackfillReport:
    events_read: int = 0
    skipped_events: int = 0
    groups: int = 0
    dry_run: bool = False
    matched: int = 0
    modified: int = 0
    upserted: int = 0
    written_keys: list[StreakKey] = field(default_factory=list)
    failed_keys: list[StreakKey] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def ok(self) -> bool:
        return not self.failed_keys

    def to_dict(self) -> dict:
        return {
            "events_read": self.events_read,
            "skipped_events": self.skipped_events,
            "groups": self.groups,
            "dry_run": self.dry_run,
            "matched": self.matched,
            "modified": self.modified,
            "upserted": self.upserted,
            "written": len(self.written_keys),
            "failed_keys": [
                {"user_id": user_id, "category": category.value}
                for user_id, category in self.failed_keys
            ],
            "errors": list(self.errors),
            "timestamp": self.timestamp.isoformat(),
        }


# ---------------------------------------------------------------------------
# Job lock
# ---------------------------------------------------------------------------
def default_lock_owner() -> str:
    return f"{socket.gethostname()}:{os.getpid()}"


def acquire_job_lock(
    engine: Engine,
    name: str,
    owner: str,
    *,
    stale_after_seconds: int = 3600,
) -> None:
    """Take the named lock or raise :class:`BackfillAlreadyRunningError`.

    A lock older than *stale_after_seconds* is assumed abandoned (crashed
    run) and taken over.
    """
    now = datetime.now(UTC)
    try:
        with get_session(engine) as session:
            held = session.get(JobLock, name)
            if held is None:
                session.add(JobLock(name=name, owner=owner, acquired_at=now))
                session.flush()
                return

            acquired_at = held.acquired_at
            if acquired_at.tzinfo is None:
                acquired_at = acquired_at.replace(tzinfo=UTC)
            if now - acquired_at < timedelta(seconds=stale_after_seconds):
                raise BackfillAlreadyRunningError(name, held.owner)

            taken = session.execute(
                update(JobLock)
                .where(JobLock.name == name, JobLock.acquired_at == held.acquired_at)
                .values(owner=owner, acquired_at=now)
                .execution_options(synchronize_session=False)
            )
            if taken.rowcount != 1:
                raise BackfillAlreadyRunningError(name, None)
            logger.warning(
                "Took over stale job lock %r from %s (held since %s)",
                name, held.owner, acquired_at.isoformat(),
            )
    except IntegrityError:
        raise BackfillAlreadyRunningError(name, None) from None


def release_job_lock(engine: Engine, name: str, owner: str) -> None:
    with get_session(engine) as session:
        session.execute(
            delete(JobLock).where(JobLock.name == name, JobLock.owner == owner)
        )


# ---------------------------------------------------------------------------
# Event log read + replay
# ---------------------------------------------------------------------------
def load_event_groups(
    engine: Engine,
) -> tuple[dict[StreakKey, list[tuple[datetime, int]]], int, int]:
    """Read categorized posts grouped by key.

    Returns ``(groups, events_read, skipped_events)``; each group holds
    ``(created_at, post_id)`` pairs sorted ascending.
    """
    groups: dict[StreakKey, list[tuple[datetime, int]]] = defaultdict(list)
    events_read = 0
    skipped = 0

    with get_session(engine) as session:
        rows = session.execute(
            select(Post.id, Post.user_id, Post.category, Post.created_at)
            .where(Post.category.is_not(None))
            .order_by(Post.user_id, Post.category, Post.created_at, Post.id)
        ).all()

    for row in rows:
        events_read += 1
        try:
            category = ActivityCategory(row.category)
        except ValueError:
            skipped += 1
            continue
        if not row.user_id or row.created_at is None:
            skipped += 1
            continue
        groups[(row.user_id, category)].append((row.created_at, row.id))

    for events in groups.values():
        events.sort()

    if skipped:
        logger.warning("Backfill: skipped %d posts with unusable data", skipped)
    return dict(groups), events_read, skipped


def _replay_group(key: StreakKey, events: list[tuple[datetime, int]]) -> StreakSummary:
    user_id, category = key
    state = replay_streak(normalize_day(created_at) for created_at, _ in events)
    return StreakSummary.from_state(user_id, category, state)


def compute_summaries(
    groups: dict[StreakKey, list[tuple[datetime, int]]],
    *,
    workers: int = 1,
) -> list[StreakSummary]:
    """Replay every group from scratch; output is in deterministic key order."""
    keys = sorted(groups, key=lambda k: (k[0], _CATEGORY_ORDER[k[1]]))
    if workers <= 1 or len(keys) < 2:
        return [_replay_group(key, groups[key]) for key in keys]

    with ThreadPoolExecutor(max_workers=workers) as pool:
        return list(pool.map(lambda key: _replay_group(key, groups[key]), keys))


def _compute_report(
    engine: Engine, *, dry_run: bool, workers: int
) -> tuple[BackfillReport, list[StreakSummary]]:
    groups, events_read, skipped = load_event_groups(engine)
    summaries = compute_summaries(groups, workers=workers)
    logger.info(
        "Backfill: %d posts with categories → %d streak groups",
        events_read, len(summaries),
    )
    if dry_run:
        logger.info("Backfill dry run complete; no changes were made.")

    report = BackfillReport(
        events_read=events_read,
        skipped_events=skipped,
        groups=len(summaries),
        dry_run=dry_run,
    )
    return report, summaries


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def recompute_streaks(
    engine: Engine,
    store: StreakStore,
    *,
    dry_run: bool = False,
    workers: int = 1,
    chunk_size: int = 500,
    lock_owner: str | None = None,
    lock_stale_after_seconds: int = 3600,
) -> BackfillReport:
    """Rebuild all streaks from the post history.

    Args:
        engine: engine holding the ``posts`` log and ``job_locks``.
        store: the streak store to overwrite.
        dry_run: compute and count only; nothing is written and no lock taken.

    Raises:
        BackfillAlreadyRunningError: another backfill holds the lock.  Raised
            before the post log is read.
    """
    if dry_run:
        return _compute_report(engine, dry_run=True, workers=workers)[0]

    owner = lock_owner or default_lock_owner()
    acquire_job_lock(
        engine, BACKFILL_LOCK, owner, stale_after_seconds=lock_stale_after_seconds
    )
    try:
        report, summaries = _compute_report(engine, dry_run=False, workers=workers)
        if not summaries:
            logger.info("Backfill: no streaks to write.")
            return report
        result = store.bulk_overwrite(summaries, chunk_size=chunk_size)
    finally:
        release_job_lock(engine, BACKFILL_LOCK, owner)

    report.matched = result.matched
    report.modified = result.modified
    report.upserted = result.upserted
    report.written_keys = result.written_keys
    report.failed_keys = result.failed_keys
    report.errors = result.errors

    if result.ok:
        logger.info(
            "Backfill complete: upserted=%d matched=%d modified=%d",
            result.upserted, result.matched, result.modified,
        )
    else:
        logger.error(
            "Backfill partially failed: %d of %d streaks not written "
            "(upserted=%d matched=%d modified=%d); re-run to finish",
            len(result.failed_keys), len(summaries),
            result.upserted, result.matched, result.modified,
        )
    return report
