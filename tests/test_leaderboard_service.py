"""
tests/test_leaderboard_service.py — Leaderboard Query
======================================================
"""

from __future__ import annotations

from datetime import UTC, date, datetime
from unittest.mock import MagicMock

import pytest

from streakboard.config import DEFAULT_AVATAR, default_config
from streakboard.database.models import ActivityCategory, Streak
from streakboard.services.leaderboard_service import LeaderboardService
from streakboard.services.user_directory import UserDirectory

WORKOUT = ActivityCategory.WORKOUT
D1 = date(2026, 1, 1)


@pytest.fixture
def add_streaks(db_session):
    """Insert streak rows given as (user_id, category, current, longest, updated_at)."""

    def _add(*rows):
        db_session.add_all([
            Streak(
                user_id=user_id,
                category=category.value if isinstance(category, ActivityCategory) else category,
                current_streak=current,
                longest_streak=longest,
                last_active_date=D1,
                version=1,
                updated_at=updated_at or datetime(2026, 1, 1, tzinfo=UTC),
            )
            for user_id, category, current, longest, updated_at in rows
        ])
        db_session.commit()

    return _add


@pytest.fixture
def directory(db_engine):
    return UserDirectory(db_engine)


@pytest.fixture
def service(store, directory):
    return LeaderboardService(store, directory, default_config())


class TestClampAndCategories:
    @pytest.mark.parametrize(("limit", "expected"), [
        (None, 10), (0, 1), (-5, 1), (1, 1), (25, 25), (50, 50), (1000, 50),
    ])
    def test_clamp_limit(self, service, limit, expected):
        assert service.clamp_limit(limit) == expected

    def test_all_categories_by_default(self):
        assert LeaderboardService.resolve_categories(None) == list(ActivityCategory)
        assert LeaderboardService.resolve_categories([]) == list(ActivityCategory)

    def test_duplicates_collapsed_in_order(self):
        assert LeaderboardService.resolve_categories(
            [WORKOUT, ActivityCategory.RECHARGE, WORKOUT]
        ) == [WORKOUT, ActivityCategory.RECHARGE]


class TestRanking:
    def test_sorted_by_longest_then_current(self, service, add_streaks):
        add_streaks(
            ("a", WORKOUT, 1, 5, None),
            ("b", WORKOUT, 4, 5, None),
            ("c", WORKOUT, 7, 7, None),
            ("d", WORKOUT, 2, 2, None),
        )
        [board] = service.get_leaderboards(categories=[WORKOUT])
        assert [e.user_id for e in board.entries] == ["c", "b", "a", "d"]
        assert [e.rank for e in board.entries] == [1, 2, 3, 4]

    def test_ties_broken_by_recency_then_user_id(self, service, add_streaks):
        add_streaks(
            ("old", WORKOUT, 3, 3, datetime(2026, 1, 1, tzinfo=UTC)),
            ("new", WORKOUT, 3, 3, datetime(2026, 1, 9, tzinfo=UTC)),
            ("zed", WORKOUT, 3, 3, datetime(2026, 1, 5, tzinfo=UTC)),
            ("abe", WORKOUT, 3, 3, datetime(2026, 1, 5, tzinfo=UTC)),
        )
        [board] = service.get_leaderboards(categories=[WORKOUT])
        assert [e.user_id for e in board.entries] == ["new", "abe", "zed", "old"]

    def test_limit_applied_per_category(self, service, add_streaks):
        add_streaks(*[(f"u{i}", WORKOUT, 1, i, None) for i in range(1, 6)])
        add_streaks(("x", ActivityCategory.RECHARGE, 1, 1, None))
        boards = service.get_leaderboards(limit=2, categories=[WORKOUT, ActivityCategory.RECHARGE])
        assert [len(b.entries) for b in boards] == [2, 1]
        assert [e.longest_streak for e in boards[0].entries] == [5, 4]

    def test_limit_zero_clamped_to_one(self, service, add_streaks):
        add_streaks(("a", WORKOUT, 1, 1, None), ("b", WORKOUT, 2, 2, None))
        [board] = service.get_leaderboards(limit=0, categories=[WORKOUT])
        assert [e.user_id for e in board.entries] == ["b"]

    def test_every_category_returned_even_if_empty(self, service):
        boards = service.get_leaderboards()
        assert [b.category for b in boards] == list(ActivityCategory)
        assert all(b.entries == [] for b in boards)

    def test_corrupted_row_omitted_and_ranks_contiguous(self, service, add_streaks, caplog):
        add_streaks(
            ("good1", WORKOUT, 3, 9, None),
            ("broken", WORKOUT, 12, 8, None),  # current > longest
            ("good2", WORKOUT, 1, 2, None),
        )
        [board] = service.get_leaderboards(categories=[WORKOUT])
        assert [(e.rank, e.user_id) for e in board.entries] == [(1, "good1"), (2, "good2")]
        assert "broken" in caplog.text

    def test_corrupted_top_row_does_not_take_a_slot(self, service, add_streaks):
        add_streaks(
            ("bad", WORKOUT, 500, 99, None),
            ("good", WORKOUT, 2, 2, None),
        )
        [board] = service.get_leaderboards(limit=1, categories=[WORKOUT])
        assert [(e.rank, e.user_id) for e in board.entries] == [(1, "good")]

    def test_page_of_corrupted_rows_is_read_past(self, service, add_streaks):
        add_streaks(
            ("bad1", WORKOUT, 50, 40, None),
            ("bad2", WORKOUT, 50, 30, None),
            ("bad3", WORKOUT, 50, 20, None),
            ("ok1", WORKOUT, 1, 3, None),
            ("ok2", WORKOUT, 1, 2, None),
            ("ok3", WORKOUT, 1, 1, None),
        )
        [board] = service.get_leaderboards(limit=2, categories=[WORKOUT])
        assert [e.user_id for e in board.entries] == ["ok1", "ok2"]


class TestUserEnrichment:
    def test_profiles_joined(self, service, add_streaks, add_users):
        add_users(("a", "Ada Lovelace", "ada", "https://img/ada.png"))
        add_streaks(("a", WORKOUT, 1, 1, None))
        [board] = service.get_leaderboards(categories=[WORKOUT])
        assert board.entries[0].user.to_dict() == {
            "id": "a",
            "name": "Ada Lovelace",
            "username": "ada",
            "avatar": "https://img/ada.png",
        }

    def test_missing_profile_gets_placeholder(self, service, add_streaks):
        add_streaks(("ghost", WORKOUT, 1, 1, None))
        [board] = service.get_leaderboards(categories=[WORKOUT])
        user = board.entries[0].user
        assert (user.id, user.name, user.username, user.avatar) == (
            "ghost", "Hustler", "", DEFAULT_AVATAR,
        )

    def test_name_falls_back_to_username(self, service, add_streaks, add_users):
        add_users(("a", None, "ada", None))
        add_streaks(("a", WORKOUT, 1, 1, None))
        [board] = service.get_leaderboards(categories=[WORKOUT])
        assert board.entries[0].user.name == "ada"
        assert board.entries[0].user.avatar == DEFAULT_AVATAR

    def test_single_batched_profile_lookup(self, store, directory, add_streaks):
        add_streaks(
            ("a", WORKOUT, 1, 1, None),
            ("b", ActivityCategory.RECHARGE, 1, 1, None),
            ("a", ActivityCategory.DEEP_WORK, 1, 1, None),
        )
        spy = MagicMock(wraps=directory)
        LeaderboardService(store, spy).get_leaderboards()
        spy.get_summaries.assert_called_once()
        assert set(spy.get_summaries.call_args.args[0]) == {"a", "b"}


class TestSerialization:
    def test_to_dict_shape(self, service, add_streaks):
        add_streaks(("a", WORKOUT, 2, 3, None))
        [board] = service.get_leaderboards(categories=[WORKOUT])
        payload = board.to_dict()
        assert payload["category"] == "Workout"
        assert "generatedAt" in payload
        assert payload["entries"][0] == {
            "category": "Workout",
            "rank": 1,
            "currentStreak": 2,
            "longestStreak": 3,
            "lastActiveDate": "2026-01-01",
            "user": {
                "id": "a",
                "name": "Hustler",
                "username": "",
                "avatar": DEFAULT_AVATAR,
            },
        }
