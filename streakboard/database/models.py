"""
streakboard.database.models — SQLAlchemy 2.0 Data Models
=========================================================

Tables:
- streaks    — One streak record per (user, category); the only streak state
- users      — Read-only profile snapshot owned by the profile subsystem
- posts      — Read-only activity log owned by the activity subsystem
- job_locks  — Cross-process lock rows for offline jobs (backfill)
"""

from __future__ import annotations

import enum
from datetime import date, datetime

from sqlalchemy import (
    Date,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all Streakboard ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class ActivityCategory(enum.StrEnum):
    """Closed set of activity kinds that participate in streak tracking."""
    DEEP_WORK = "Deep Work"
    STARTUP_TASK = "Startup Task"
    WORKOUT = "Workout"
    RECHARGE = "Recharge"
    NETWORKING = "Networking"


# ---------------------------------------------------------------------------
# Streak — one row per (user, category)
# ---------------------------------------------------------------------------
class Streak(Base):
    """Durable streak counters for a single (user, category) key.

    ``version`` is bumped by every write so the online updater can do a
    compare-and-set against the row it read.
    """
    __tablename__ = "streaks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    category: Mapped[str] = mapped_column(String(32), nullable=False)
    current_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    longest_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_active_date: Mapped[date | None] = mapped_column(Date, default=None)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("user_id", "category", name="uq_streaks_user_category"),
        Index(
            "ix_streaks_category_rank",
            "category",
            "longest_streak",
            "current_streak",
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<Streak user={self.user_id} category={self.category!r} "
            f"current={self.current_streak} longest={self.longest_streak}>"
        )


# ---------------------------------------------------------------------------
# User — profile snapshot (read-only here)
# ---------------------------------------------------------------------------
class User(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str | None] = mapped_column(String(100), default=None)
    username: Mapped[str | None] = mapped_column(String(50), default=None)
    image: Mapped[str | None] = mapped_column(Text, default=None)

    def __repr__(self) -> str:
        return f"<User id={self.id} username={self.username!r}>"


# ---------------------------------------------------------------------------
# Post — activity log (read-only here)
# ---------------------------------------------------------------------------
class Post(Base):
    """An activity logged by a user.

    ``category`` is NULL for freeform posts such as replies; those never
    participate in streaks.
    """
    __tablename__ = "posts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    category: Mapped[str | None] = mapped_column(String(32), default=None)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        Index("ix_posts_user_category_time", "user_id", "category", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Post id={self.id} user={self.user_id} category={self.category!r}>"


# ---------------------------------------------------------------------------
# JobLock — serializes offline jobs across processes
# ---------------------------------------------------------------------------
class JobLock(Base):
    __tablename__ = "job_locks"

    name: Mapped[str] = mapped_column(String(64), primary_key=True)
    owner: Mapped[str | None] = mapped_column(String(128), default=None)
    acquired_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )

    def __repr__(self) -> str:
        return f"<JobLock name={self.name!r} owner={self.owner!r}>"
