"""
streakboard.config — YAML Configuration Loader
===============================================

Reads ``config.yaml`` for tuning values of the streak engine (leaderboard
limits, placeholder profile, retry budget, backfill batching).  Secrets and
the database URL are **not** stored here; they come from the environment
(``.env`` via python-dotenv).

Usage::

    from streakboard.config import load_config

    cfg = load_config()                 # reads ./config.yaml by default
    print(cfg.leaderboard_max_limit)    # 50
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import yaml

DEFAULT_AVATAR = (
    "https://cdn.pixabay.com/photo/2015/10/05/22/37/"
    "blank-profile-picture-973460_960_720.png"
)


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class StreakboardConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    # Leaderboard
    leaderboard_default_limit: int = 10
    leaderboard_max_limit: int = 50
    placeholder_name: str = "Hustler"
    default_avatar: str = DEFAULT_AVATAR

    # Online updater
    updater_max_attempts: int = 5  # CAS retries per event before giving up

    # Backfill
    backfill_chunk_size: int = 500
    backfill_workers: int = 1
    backfill_lock_stale_after_seconds: int = 3600


def default_config() -> StreakboardConfig:
    """Return the built-in defaults (used by tests and when no file exists)."""
    return StreakboardConfig()


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "config.yaml") -> StreakboardConfig:
    """Read *path* and return a :class:`StreakboardConfig` instance.

    Sections and keys that are missing fall back to the defaults on
    :class:`StreakboardConfig`.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    ValueError
        If a limit is not a positive integer or the defaults are inconsistent.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    defaults = default_config()
    leaderboard = raw.get("leaderboard") or {}
    updater = raw.get("updater") or {}
    backfill = raw.get("backfill") or {}

    cfg = StreakboardConfig(
        leaderboard_default_limit=int(
            leaderboard.get("default_limit", defaults.leaderboard_default_limit)
        ),
        leaderboard_max_limit=int(
            leaderboard.get("max_limit", defaults.leaderboard_max_limit)
        ),
        placeholder_name=str(
            leaderboard.get("placeholder_name", defaults.placeholder_name)
        ),
        default_avatar=str(
            leaderboard.get("default_avatar", defaults.default_avatar)
        ),
        updater_max_attempts=int(
            updater.get("max_attempts", defaults.updater_max_attempts)
        ),
        backfill_chunk_size=int(
            backfill.get("chunk_size", defaults.backfill_chunk_size)
        ),
        backfill_workers=int(backfill.get("workers", defaults.backfill_workers)),
        backfill_lock_stale_after_seconds=int(
            backfill.get(
                "lock_stale_after_seconds",
                defaults.backfill_lock_stale_after_seconds,
            )
        ),
    )
    _validate(cfg)
    return cfg


def _validate(cfg: StreakboardConfig) -> None:
    for name in (
        "leaderboard_default_limit",
        "leaderboard_max_limit",
        "updater_max_attempts",
        "backfill_chunk_size",
        "backfill_workers",
    ):
        if getattr(cfg, name) < 1:
            raise ValueError(f"{name} must be >= 1, got {getattr(cfg, name)}")
    if cfg.leaderboard_default_limit > cfg.leaderboard_max_limit:
        raise ValueError(
            "leaderboard.default_limit must not exceed leaderboard.max_limit"
        )
