"""
tests/test_ranking_service.py — Rank Refresh & Leaderboard Integration Tests
=============================================================================
"""

from __future__ import annotations

from unittest.mock import patch

from conftest import PNG_BYTES
from sqlalchemy.orm import Session

from memeboard.constants import FEATURED_RANK_CUTOFF
from memeboard.database.models import Profile
from memeboard.services import post_service, ranking_service, settings_service
from memeboard.services.profile_service import author_dict


def _seed_profiles(engine, xp_by_id: dict[str, int]) -> None:
    with Session(engine) as session:
        for pid, xp in xp_by_id.items():
            session.add(Profile(id=pid, username=f"user-{pid}", xp=xp, level=1))
        session.commit()


def _ranks(engine) -> dict[str, int | None]:
    with Session(engine) as session:
        return {p.id: p.rank for p in session.query(Profile).all()}


class TestRefreshRanks:
    def test_dense_ranks_with_ties(self, db_engine):
        _seed_profiles(db_engine, {"a": 30, "b": 50, "c": 30, "d": 0})
        result = ranking_service.refresh_ranks(db_engine)
        assert result["ranked"] == 4
        assert result["updated"] == 4
        assert _ranks(db_engine) == {"b": 1, "a": 2, "c": 2, "d": 3}

    def test_rerun_is_idempotent(self, db_engine):
        _seed_profiles(db_engine, {"a": 5, "b": 7})
        ranking_service.refresh_ranks(db_engine)
        before = _ranks(db_engine)
        again = ranking_service.refresh_ranks(db_engine)
        assert again["updated"] == 0
        assert _ranks(db_engine) == before

    def test_only_changed_rows_written(self, db_engine):
        _seed_profiles(db_engine, {"a": 5, "b": 7, "c": 1})
        ranking_service.refresh_ranks(db_engine)
        with Session(db_engine) as session:
            session.get(Profile, "a").xp = 100
            session.commit()
        result = ranking_service.refresh_ranks(db_engine)
        assert result["updated"] == 2
        assert _ranks(db_engine) == {"a": 1, "b": 2, "c": 3}

    def test_empty_population(self, db_engine):
        assert ranking_service.refresh_ranks(db_engine)["ranked"] == 0


class TestLeaderboard:
    def test_ordered_by_xp_then_id(self, db_engine, cache):
        _seed_profiles(db_engine, {"b": 10, "a": 10, "c": 99})
        board = ranking_service.get_leaderboard(db_engine, cache)
        assert board["refreshed"] is True
        assert [p["id"] for p in board["profiles"]] == ["c", "a", "b"]
        assert [p["rank"] for p in board["profiles"]] == [1, 2, 2]
        assert board["profiles"][0]["badge"] is not None

    def test_capped_at_leaderboard_size(self, db_engine, cache):
        _seed_profiles(db_engine, {f"p{i:03d}": i for i in range(60)})
        board = ranking_service.get_leaderboard(db_engine, cache)
        assert len(board["profiles"]) == 50
        assert board["profiles"][0]["xp"] == 59

        assert len(ranking_service.get_leaderboard(db_engine, cache, limit=5)["profiles"]) == 5
        assert len(ranking_service.get_leaderboard(db_engine, cache, limit=500)["profiles"]) == 50

    def test_failed_refresh_serves_stale_ranks(self, db_engine, cache):
        _seed_profiles(db_engine, {"a": 1, "b": 2})
        ranking_service.refresh_ranks(db_engine)
        with Session(db_engine) as session:
            session.get(Profile, "a").xp = 50
            session.commit()

        with patch.object(ranking_service, "refresh_ranks", side_effect=RuntimeError("boom")):
            board = ranking_service.get_leaderboard(db_engine, cache)

        assert board["refreshed"] is False
        by_id = {p["id"]: p for p in board["profiles"]}
        assert by_id["a"]["rank"] == 2  # stale
        assert [p["id"] for p in board["profiles"]] == ["a", "b"]

    def test_refresh_on_read_can_be_disabled(self, db_engine, cache):
        settings_service.upsert_setting(
            db_engine, cache, key="ranking.refresh_on_read", value=False,
        )
        _seed_profiles(db_engine, {"a": 1})
        board = ranking_service.get_leaderboard(db_engine, cache)
        assert board["refreshed"] is False
        assert board["profiles"][0]["rank"] is None


class TestFeaturedAuthors:
    def test_top_ranks_are_featured(self):
        def _author(rank):
            return author_dict(Profile(id="a", username="user-a", xp=0, level=1, rank=rank))

        assert _author(1)["featured"] is True
        assert _author(FEATURED_RANK_CUTOFF)["featured"] is True
        assert _author(FEATURED_RANK_CUTOFF + 1)["featured"] is False
        assert _author(None)["featured"] is False

    def test_feed_reflects_refreshed_rank(self, db_engine, cache, store, make_profile):
        author = make_profile("author", "author")
        post = post_service.create_post(
            db_engine, cache, store, author,
            filename="m.png", content=PNG_BYTES, content_type="image/png",
        )
        assert post_service.get_post(db_engine, post["id"])["author"]["featured"] is False
        ranking_service.refresh_ranks(db_engine)
        assert post_service.get_post(db_engine, post["id"])["author"]["featured"] is True
