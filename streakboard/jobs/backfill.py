"""
streakboard.jobs.backfill — Entry point for the streak backfill job
====================================================================

Wiring:
1. Load .env (DATABASE_URL).
2. Load config.yaml if present, otherwise built-in defaults.
3. Create the engine and store, then replay the full post history.

Run with::

    python -m streakboard.jobs.backfill --dry-run
    python -m streakboard.jobs.backfill --workers 4

Exit codes: 0 success, 1 failure or partial failure, 2 another backfill is
already running.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

from streakboard.config import default_config, load_config
from streakboard.database.engine import create_db_engine
from streakboard.exceptions import BackfillAlreadyRunningError
from streakboard.services.backfill_service import recompute_streaks
from streakboard.services.streak_store import StreakStore

logger = logging.getLogger("streakboard.backfill")


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="streakboard-backfill",
        description="Recompute every streak from the full activity history.",
    )
    parser.add_argument(
        "--dry-run", action="store_true",
        help="compute and print counts without writing",
    )
    parser.add_argument("--workers", type=int, default=None, help="replay threads")
    parser.add_argument(
        "--chunk-size", type=int, default=None, help="rows per bulk write",
    )
    parser.add_argument(
        "--config", default="config.yaml", help="path to config.yaml",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
        datefmt="%H:%M:%S",
    )
    args = _parse_args(argv)

    load_dotenv()
    cfg = load_config(args.config) if Path(args.config).exists() else default_config()

    try:
        engine = create_db_engine()
    except RuntimeError as exc:
        logger.critical("%s", exc)
        return 1

    try:
        report = recompute_streaks(
            engine,
            StreakStore(engine),
            dry_run=args.dry_run,
            workers=args.workers or cfg.backfill_workers,
            chunk_size=args.chunk_size or cfg.backfill_chunk_size,
            lock_stale_after_seconds=cfg.backfill_lock_stale_after_seconds,
        )
    except BackfillAlreadyRunningError as exc:
        logger.error("%s", exc)
        return 2
    except Exception:
        logger.exception("Streak backfill failed")
        return 1
    finally:
        engine.dispose()

    print(f"Found {report.events_read} posts with activity categories.")
    print(f"Computed {report.groups} streak summaries.")
    if report.dry_run:
        print("Dry run complete. No database changes were made.")
        return 0
    print("Backfill complete:")
    print(
        f" - upserts: {report.upserted}, matched: {report.matched}, "
        f"modified: {report.modified}"
    )
    if not report.ok:
        print(
            f" - written: {len(report.written_keys)}, "
            f"failed: {len(report.failed_keys)} streaks (safe to re-run)"
        )
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
