"""
Streakboard — Activity Streaks & Leaderboards
==============================================
Turns the unordered stream of logged activities (deep work, startup tasks,
workouts, recharge, networking) into durable per-user, per-category streak
counters and serves ranked leaderboards from them.

Package layout::

    streakboard/
    ├── config.py          # YAML → typed Python config
    ├── exceptions.py      # Domain errors
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + session/async helpers
    │   └── models.py      # ORM models (streaks, users, posts, job_locks)
    ├── engine/
    │   ├── events.py      # ActivityEvent + category parsing
    │   └── streaks.py     # StreakState + the transition function
    ├── services/
    │   ├── streak_store.py        # Only writer of streak state
    │   ├── streak_service.py      # Online per-event updater
    │   ├── user_directory.py      # Batched public user summaries
    │   ├── leaderboard_service.py # Ranked per-category leaderboards
    │   └── backfill_service.py    # Full recomputation from the post log
    ├── jobs/
    │   └── backfill.py    # CLI: python -m streakboard.jobs.backfill
    └── api/
        ├── main.py        # FastAPI app
        ├── deps.py        # Dependency providers + admin JWT guard
        └── routes/        # Leaderboard + admin endpoints
"""

__version__ = "0.1.0"
