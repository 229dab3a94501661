"""
tests/test_engagement_service.py — Posts, Likes, Comments & XP Integration Tests
=================================================================================
Service-level tests against an in-memory SQLite database via the shared
conftest fixtures.  Covers counter maintenance, experience awards in the
same transaction, optional clawback and the post delete cascade.
"""

from __future__ import annotations

import pytest
from conftest import PNG_BYTES
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from memeboard.database.models import Comment, Like, Post, Profile, XpLedger
from memeboard.errors import ConflictError, NotFoundError, UnauthorizedError, ValidationError
from memeboard.services import engagement_service, post_service, profile_service
from memeboard.services.experience_service import ledger_for


def _xp(engine, user_id: str) -> tuple[int, int]:
    with Session(engine) as session:
        p = session.get(Profile, user_id)
        return p.xp, p.level


def _post(engine, cache, store, user_id: str, caption: str | None = "hi") -> dict:
    return post_service.create_post(
        engine, cache, store, user_id,
        filename="meme.png", content=PNG_BYTES, content_type="image/png", caption=caption,
    )


@pytest.fixture
def author(make_profile):
    return make_profile("author", "author")


@pytest.fixture
def fan(make_profile):
    return make_profile("fan", "fan")


# ===========================================================================
# Scenarios
# ===========================================================================
class TestScenarios:
    def test_upload_then_like(self, db_engine, cache, store, author, fan):
        """Upload awards +10 to the author; a like from someone else awards +2."""
        post = _post(db_engine, cache, store, author)
        assert _xp(db_engine, author) == (10, 1)

        result = engagement_service.like_post(db_engine, cache, fan, post["id"])
        assert result == {"post_id": post["id"], "like_count": 1, "liked": True}
        assert _xp(db_engine, author) == (12, 1)
        assert _xp(db_engine, fan) == (0, 1)

    def test_like_then_unlike_restores_count(self, db_engine, cache, store, author, fan):
        post = _post(db_engine, cache, store, author)
        engagement_service.like_post(db_engine, cache, fan, post["id"])
        result = engagement_service.unlike_post(db_engine, cache, fan, post["id"])
        assert result["like_count"] == 0
        assert result["liked"] is False

        viewed = post_service.get_post(db_engine, post["id"], viewer_id=fan)
        assert viewed["like_count"] == 0
        assert viewed["liked_by_me"] is False

    def test_double_like_is_a_conflict(self, db_engine, cache, store, author, fan):
        post = _post(db_engine, cache, store, author)
        engagement_service.like_post(db_engine, cache, fan, post["id"])
        with pytest.raises(ConflictError):
            engagement_service.like_post(db_engine, cache, fan, post["id"])

        with Session(db_engine) as session:
            likes = session.scalar(select(func.count()).select_from(Like))
            assert likes == 1
            assert session.get(Post, post["id"]).like_count == 1
        # No second award for the rejected like
        assert _xp(db_engine, author) == (12, 1)


# ===========================================================================
# Posts
# ===========================================================================
class TestCreatePost:
    def test_stores_blob_and_public_url(self, db_engine, cache, store, author):
        post = _post(db_engine, cache, store, author)
        assert post["image_url"].startswith("http://testserver/api/storage/memes/author-")
        assert post["image_url"].endswith(".png")
        assert post["author"]["username"] == "author"
        files = list((store.root / "memes").iterdir())
        assert len(files) == 1

    def test_empty_caption_becomes_none(self, db_engine, cache, store, author):
        assert _post(db_engine, cache, store, author, caption="   ")["caption"] is None

    def test_rejects_long_caption(self, db_engine, cache, store, author):
        with pytest.raises(ValidationError):
            _post(db_engine, cache, store, author, caption="x" * 501)

    def test_rejects_non_image(self, db_engine, cache, store, author):
        with pytest.raises(ValidationError, match="image"):
            post_service.create_post(
                db_engine, cache, store, author,
                filename="notes.txt", content=b"hello", content_type="text/plain",
            )

    def test_requires_registered_profile(self, db_engine, cache, store):
        with pytest.raises(NotFoundError):
            _post(db_engine, cache, store, "ghost")
        assert list((store.root / "memes").iterdir()) == []

    def test_blob_removed_when_db_write_fails(self, db_engine, cache, store, author, monkeypatch):
        def _boom(*args, **kwargs):
            raise RuntimeError("db down")

        monkeypatch.setattr(post_service, "apply_award", _boom)
        with pytest.raises(RuntimeError):
            _post(db_engine, cache, store, author)

        assert list((store.root / "memes").iterdir()) == []
        with Session(db_engine) as session:
            assert session.scalar(select(func.count()).select_from(Post)) == 0

    def test_publishes_change(self, db_engine, cache, store, feed, author):
        seen = []
        feed.subscribe("posts", seen.append)
        post = post_service.create_post(
            db_engine, cache, store, author,
            filename="a.png", content=PNG_BYTES, content_type="image/png", feed=feed,
        )
        assert [(c.event, c.record["id"]) for c in seen] == [("INSERT", post["id"])]


class TestFeed:
    def test_paging_and_liked_by_me(self, db_engine, cache, store, author, fan):
        ids = [_post(db_engine, cache, store, author, caption=str(i))["id"] for i in range(3)]
        engagement_service.like_post(db_engine, cache, fan, ids[0])

        first = post_service.list_feed(db_engine, fan, page=0, page_size=2)
        assert len(first["posts"]) == 2
        assert first["has_more"] is True

        second = post_service.list_feed(db_engine, fan, page=1, page_size=2)
        assert len(second["posts"]) == 1
        assert second["has_more"] is False

        everything = first["posts"] + second["posts"]
        assert {p["id"] for p in everything} == set(ids)
        liked = {p["id"]: p["liked_by_me"] for p in everything}
        assert liked[ids[0]] is True
        assert liked[ids[1]] is False

    def test_anonymous_viewer(self, db_engine, cache, store, author, fan):
        post = _post(db_engine, cache, store, author)
        engagement_service.like_post(db_engine, cache, fan, post["id"])
        page = post_service.list_feed(db_engine, None)
        assert page["posts"][0]["liked_by_me"] is False

    def test_negative_page_rejected(self, db_engine):
        with pytest.raises(ValidationError):
            post_service.list_feed(db_engine, None, page=-1)

    def test_user_posts(self, db_engine, cache, store, author, fan):
        _post(db_engine, cache, store, author)
        _post(db_engine, cache, store, fan)
        posts = post_service.list_user_posts(db_engine, author, None)
        assert [p["user_id"] for p in posts] == [author]


class TestDeletePost:
    def test_cascades_likes_and_comments(self, db_engine, cache, store, author, fan):
        post = _post(db_engine, cache, store, author)
        engagement_service.like_post(db_engine, cache, fan, post["id"])
        engagement_service.add_comment(db_engine, cache, fan, post["id"], "lol")

        post_service.delete_post(db_engine, cache, store, author, post["id"])

        with Session(db_engine) as session:
            assert session.get(Post, post["id"]) is None
            assert session.scalar(select(func.count()).select_from(Like)) == 0
            assert session.scalar(select(func.count()).select_from(Comment)) == 0
        assert post_service.list_feed(db_engine, None)["posts"] == []
        assert list((store.root / "memes").iterdir()) == []
        with pytest.raises(NotFoundError):
            engagement_service.list_comments(db_engine, post["id"])

    def test_keeps_xp_without_clawback(self, db_engine, cache, store, author, fan):
        post = _post(db_engine, cache, store, author)
        engagement_service.like_post(db_engine, cache, fan, post["id"])
        post_service.delete_post(db_engine, cache, store, author, post["id"])
        assert _xp(db_engine, author) == (12, 1)

    def test_only_owner_may_delete(self, db_engine, cache, store, author, fan):
        post = _post(db_engine, cache, store, author)
        with pytest.raises(UnauthorizedError):
            post_service.delete_post(db_engine, cache, store, fan, post["id"])

    def test_missing_post(self, db_engine, cache, store, author):
        with pytest.raises(NotFoundError):
            post_service.delete_post(db_engine, cache, store, author, "nope")


# ===========================================================================
# Likes
# ===========================================================================
class TestLikes:
    def test_unlike_without_like(self, db_engine, cache, store, author, fan):
        post = _post(db_engine, cache, store, author)
        with pytest.raises(NotFoundError, match="not liked"):
            engagement_service.unlike_post(db_engine, cache, fan, post["id"])

    def test_like_missing_post(self, db_engine, cache, fan):
        with pytest.raises(NotFoundError):
            engagement_service.like_post(db_engine, cache, fan, "missing")

    def test_self_like_awards_author(self, db_engine, cache, store, author):
        post = _post(db_engine, cache, store, author)
        engagement_service.like_post(db_engine, cache, author, post["id"])
        assert _xp(db_engine, author) == (12, 1)

    def test_relike_awards_again(self, db_engine, cache, store, author, fan):
        post = _post(db_engine, cache, store, author)
        engagement_service.like_post(db_engine, cache, fan, post["id"])
        engagement_service.unlike_post(db_engine, cache, fan, post["id"])
        engagement_service.like_post(db_engine, cache, fan, post["id"])
        assert _xp(db_engine, author) == (14, 1)

    def test_counter_never_negative(self, db_engine, cache, store, author, fan):
        post = _post(db_engine, cache, store, author)
        engagement_service.like_post(db_engine, cache, fan, post["id"])
        with Session(db_engine) as session:
            session.get(Post, post["id"]).like_count = 0
            session.commit()
        result = engagement_service.unlike_post(db_engine, cache, fan, post["id"])
        assert result["like_count"] == 0


# ===========================================================================
# Comments
# ===========================================================================
class TestComments:
    def test_add_awards_commenter_and_counts(self, db_engine, cache, store, author, fan):
        post = _post(db_engine, cache, store, author)
        comment = engagement_service.add_comment(db_engine, cache, fan, post["id"], "  nice  ")
        assert comment["content"] == "nice"
        assert comment["author"]["username"] == "fan"
        assert _xp(db_engine, fan) == (3, 1)
        assert post_service.get_post(db_engine, post["id"])["comment_count"] == 1

    @pytest.mark.parametrize("content", ["", "   ", "x" * 1001])
    def test_rejects_bad_content(self, db_engine, cache, store, author, fan, content):
        post = _post(db_engine, cache, store, author)
        with pytest.raises(ValidationError):
            engagement_service.add_comment(db_engine, cache, fan, post["id"], content)

    def test_list_newest_first(self, db_engine, cache, store, author, fan):
        post = _post(db_engine, cache, store, author)
        engagement_service.add_comment(db_engine, cache, fan, post["id"], "first")
        engagement_service.add_comment(db_engine, cache, author, post["id"], "second")
        comments = engagement_service.list_comments(db_engine, post["id"])
        assert [c["content"] for c in comments] == ["second", "first"]

    def test_delete_by_author_only(self, db_engine, cache, store, author, fan):
        post = _post(db_engine, cache, store, author)
        comment = engagement_service.add_comment(db_engine, cache, fan, post["id"], "hey")
        with pytest.raises(UnauthorizedError):
            engagement_service.delete_comment(db_engine, cache, author, comment["id"])

        engagement_service.delete_comment(db_engine, cache, fan, comment["id"])
        assert post_service.get_post(db_engine, post["id"])["comment_count"] == 0
        assert engagement_service.list_comments(db_engine, post["id"]) == []
        # Default policy keeps the award
        assert _xp(db_engine, fan) == (3, 1)

    def test_publishes_changes_for_post(self, db_engine, cache, store, feed, author, fan):
        post = _post(db_engine, cache, store, author)
        seen = []
        feed.subscribe(
            "comments", seen.append,
            predicate=lambda c: c.record.get("post_id") == post["id"],
        )
        comment = engagement_service.add_comment(
            db_engine, cache, fan, post["id"], "hey", feed=feed,
        )
        engagement_service.delete_comment(db_engine, cache, fan, comment["id"], feed=feed)
        assert [c.event for c in seen] == ["INSERT", "DELETE"]
        assert seen[-1].record["comment_count"] == 0


# ===========================================================================
# Clawback enabled
# ===========================================================================
class TestClawback:
    def test_unlike_reverses_like_award(self, db_engine, clawback_cache, store, author, fan):
        post = _post(db_engine, clawback_cache, store, author)
        engagement_service.like_post(db_engine, clawback_cache, fan, post["id"])
        engagement_service.unlike_post(db_engine, clawback_cache, fan, post["id"])
        assert _xp(db_engine, author) == (10, 1)

        entries = ledger_for(db_engine, author)
        assert entries[0]["reversal"] is True
        assert entries[0]["xp_delta"] == -2

    def test_comment_delete_reverses(self, db_engine, clawback_cache, store, author, fan):
        post = _post(db_engine, clawback_cache, store, author)
        comment = engagement_service.add_comment(db_engine, clawback_cache, fan, post["id"], "x")
        engagement_service.delete_comment(db_engine, clawback_cache, fan, comment["id"])
        assert _xp(db_engine, fan) == (0, 1)

    def test_post_delete_reverses_everything_it_earned(
        self, db_engine, clawback_cache, store, author, fan,
    ):
        post = _post(db_engine, clawback_cache, store, author)
        engagement_service.like_post(db_engine, clawback_cache, fan, post["id"])
        engagement_service.add_comment(db_engine, clawback_cache, fan, post["id"], "x")
        post_service.delete_post(db_engine, clawback_cache, store, author, post["id"])

        assert _xp(db_engine, author) == (0, 1)
        assert _xp(db_engine, fan) == (0, 1)
        with Session(db_engine) as session:
            net = session.scalar(select(func.sum(XpLedger.xp_delta)))
            assert net == 0

    def test_reversal_never_exceeds_grant(self, db_engine, clawback_cache, store, author, fan):
        post = _post(db_engine, clawback_cache, store, author)
        engagement_service.like_post(db_engine, clawback_cache, fan, post["id"])
        engagement_service.unlike_post(db_engine, clawback_cache, fan, post["id"])
        engagement_service.like_post(db_engine, clawback_cache, fan, post["id"])
        engagement_service.unlike_post(db_engine, clawback_cache, fan, post["id"])
        assert _xp(db_engine, author) == (10, 1)


# ===========================================================================
# Profiles
# ===========================================================================
class TestProfiles:
    def test_register_defaults(self, db_engine):
        profile = profile_service.register_profile(db_engine, "u1", "  alice ")
        assert profile["username"] == "alice"
        assert (profile["xp"], profile["level"], profile["rank"]) == (0, 1, None)

    def test_duplicate_username_case_insensitive(self, db_engine):
        profile_service.register_profile(db_engine, "u1", "Alice")
        with pytest.raises(ConflictError):
            profile_service.register_profile(db_engine, "u2", "alice")

    def test_register_twice(self, db_engine):
        profile_service.register_profile(db_engine, "u1", "alice")
        with pytest.raises(ConflictError):
            profile_service.register_profile(db_engine, "u1", "bob")

    @pytest.mark.parametrize("name", ["", "ab", "x" * 31])
    def test_username_length(self, db_engine, name):
        with pytest.raises(ValidationError):
            profile_service.register_profile(db_engine, "u1", name)

    def test_update_bio_and_name(self, db_engine, author):
        updated = profile_service.update_profile(db_engine, author, username="renamed", bio=" hi ")
        assert (updated["username"], updated["bio"]) == ("renamed", "hi")
        cleared = profile_service.update_profile(db_engine, author, bio="")
        assert cleared["bio"] is None

    def test_avatar(self, db_engine, store, author):
        updated = profile_service.set_avatar(
            db_engine, store, author,
            filename="me.jpg", content=PNG_BYTES, content_type="image/jpeg",
        )
        assert "/api/storage/avatars/author-" in updated["avatar_url"]

    def test_stats(self, db_engine, cache, store, author, fan):
        post = _post(db_engine, cache, store, author)
        engagement_service.like_post(db_engine, cache, fan, post["id"])
        engagement_service.add_comment(db_engine, cache, fan, post["id"], "x")
        stats = profile_service.get_profile_stats(db_engine, author)
        assert stats == {
            "posts": 1, "likes_received": 1, "comments_received": 1, "comments_written": 0,
        }
