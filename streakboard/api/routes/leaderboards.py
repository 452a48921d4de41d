"""
streakboard.api.routes.leaderboards — Read-only streak endpoints
=================================================================
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError

from streakboard.api.deps import get_leaderboard_service, get_streak_store
from streakboard.engine.events import require_category
from streakboard.services.leaderboard_service import LeaderboardService
from streakboard.services.streak_store import StreakStore

logger = logging.getLogger(__name__)

router = APIRouter(tags=["leaderboards"])


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class UserSummaryOut(BaseModel):
    id: str
    name: str
    username: str
    avatar: str


class LeaderboardEntryOut(BaseModel):
    category: str
    rank: int
    currentStreak: int
    longestStreak: int
    lastActiveDate: str | None
    user: UserSummaryOut


class CategoryLeaderboardOut(BaseModel):
    category: str
    generatedAt: str
    entries: list[LeaderboardEntryOut]


class LeaderboardsResponse(BaseModel):
    leaderboards: list[CategoryLeaderboardOut]


class StreakOut(BaseModel):
    category: str
    currentStreak: int
    longestStreak: int
    lastActiveDate: str | None


class UserStreaksResponse(BaseModel):
    userId: str
    streaks: list[StreakOut]


def _parse_limit(raw: str | None) -> int | None:
    """Unparseable limits are treated as absent."""
    if raw is None or not raw.strip():
        return None
    try:
        return int(float(raw.strip()))
    except (ValueError, OverflowError):
        return None


# ---------------------------------------------------------------------------
# GET /leaderboards
# ---------------------------------------------------------------------------
@router.get("/leaderboards", response_model=LeaderboardsResponse)
def get_leaderboards(
    limit: str | None = Query(None),
    category: list[str] | None = Query(None),
    service: LeaderboardService = Depends(get_leaderboard_service),
):
    """Per-category streak leaderboards (limit clamped to 1..50)."""
    try:
        categories = [require_category(c) for c in category or []]
    except ValueError as exc:
        raise HTTPException(422, str(exc))

    try:
        boards = service.get_leaderboards(limit=_parse_limit(limit), categories=categories)
    except SQLAlchemyError:
        logger.exception("[leaderboards][GET] query failed")
        raise HTTPException(500, "Unable to load leaderboards right now.")

    return {"leaderboards": [board.to_dict() for board in boards]}


# ---------------------------------------------------------------------------
# GET /streaks/{user_id}
# ---------------------------------------------------------------------------
@router.get("/streaks/{user_id}", response_model=UserStreaksResponse)
def get_user_streaks(
    user_id: str,
    store: StreakStore = Depends(get_streak_store),
):
    """Every streak one user has, in category order."""
    try:
        summaries = store.for_user(user_id)
    except SQLAlchemyError:
        logger.exception("[streaks][GET] lookup failed for %s", user_id)
        raise HTTPException(500, "Unable to load streaks right now.")

    return {
        "userId": user_id,
        "streaks": [
            {
                "category": s.category.value,
                "currentStreak": s.current_streak,
                "longestStreak": s.longest_streak,
                "lastActiveDate": (
                    s.last_active_date.isoformat() if s.last_active_date else None
                ),
            }
            for s in summaries
        ],
    }
