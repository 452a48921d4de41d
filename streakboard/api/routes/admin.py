"""
streakboard.api.routes.admin — Admin operations
================================================

JWT-protected trigger for the streak backfill job.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy import Engine

from streakboard.api.deps import get_config, get_current_admin, get_engine, get_streak_store
from streakboard.config import StreakboardConfig
from streakboard.exceptions import BackfillAlreadyRunningError
from streakboard.services.backfill_service import recompute_streaks
from streakboard.services.streak_store import StreakStore

router = APIRouter(prefix="/admin/streaks", tags=["admin"])


class FailedKey(BaseModel):
    user_id: str
    category: str


class BackfillResult(BaseModel):
    """Counts reported by one backfill run."""
    events_read: int
    skipped_events: int
    groups: int
    dry_run: bool
    matched: int
    modified: int
    upserted: int
    written: int
    failed_keys: list[FailedKey]
    errors: list[str]
    timestamp: str


@router.post("/backfill", response_model=BackfillResult)
def trigger_backfill(
    engine: Engine = Depends(get_engine),
    store: StreakStore = Depends(get_streak_store),
    config: StreakboardConfig = Depends(get_config),
    admin: dict = Depends(get_current_admin),
    dry_run: bool = Query(True),
):
    """Recompute every streak from the post history."""
    try:
        report = recompute_streaks(
            engine,
            store,
            dry_run=dry_run,
            workers=config.backfill_workers,
            chunk_size=config.backfill_chunk_size,
            lock_owner=f"api:{admin.get('sub', 'unknown')}",
            lock_stale_after_seconds=config.backfill_lock_stale_after_seconds,
        )
    except BackfillAlreadyRunningError as exc:
        raise HTTPException(409, str(exc))
    return BackfillResult(**report.to_dict())
