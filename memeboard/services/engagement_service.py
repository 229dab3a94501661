"""
memeboard.services.engagement_service — Likes, Comments & Counters
===================================================================

``posts.like_count`` and ``posts.comment_count`` are denormalized.  Each
mutation here changes the Like/Comment row, the counter and the author's
experience in ONE transaction, so they commit or fail together.  The
counters are bumped with SQL expressions (``like_count = like_count + 1``)
so concurrent writers serialize on the post row instead of overwriting
each other.  :mod:`memeboard.services.reconciliation_service` repairs any
drift that slips through anyway.

After a comment mutation commits, a change is published on the
``comments`` table so open comment threads refetch.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy import case, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from memeboard.constants import MAX_COMMENT_LENGTH
from memeboard.database.engine import get_session
from memeboard.database.models import ActionKind, Comment, Like, Post
from memeboard.engine.events import XpAward, like_subject_id
from memeboard.errors import ConflictError, NotFoundError, UnauthorizedError, ValidationError
from memeboard.services.experience_service import apply_award, reverse_awards
from memeboard.services.profile_service import author_dict, require_profile

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from memeboard.engine.cache import ConfigCache
    from memeboard.services.change_feed import ChangeFeed

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Counter primitives
# ---------------------------------------------------------------------------
def _bump(session: Session, post_id: str, column, step: int) -> int:
    """Atomically add *step* to a counter column, never going below zero."""
    attr = getattr(Post, column)
    if step >= 0:
        new_value = attr + step
    else:
        new_value = case((attr + step >= 0, attr + step), else_=0)
    session.execute(
        update(Post)
        .where(Post.id == post_id)
        .values({column: new_value})
        .execution_options(synchronize_session=False)
    )
    return session.scalar(select(attr).where(Post.id == post_id)) or 0


def _require_post(session: Session, post_id: str) -> Post:
    post = session.get(Post, post_id)
    if post is None:
        raise NotFoundError(f"Post {post_id} not found")
    return post


def comment_dict(c: Comment) -> dict:
    return {
        "id": c.id,
        "post_id": c.post_id,
        "user_id": c.user_id,
        "content": c.content,
        "created_at": c.created_at.isoformat() if c.created_at else None,
        "author": author_dict(c.author),
    }


# ---------------------------------------------------------------------------
# Likes
# ---------------------------------------------------------------------------
def like_post(engine: Engine, cache: ConfigCache | None, user_id: str, post_id: str) -> dict:
    """Record a like and award the post's author.

    Raises :class:`ConflictError` if *user_id* already likes the post.
    Returns ``{"post_id", "like_count", "liked"}`` with the committed count.
    """
    try:
        with get_session(engine) as session:
            require_profile(session, user_id)
            post = _require_post(session, post_id)
            if session.get(Like, (post_id, user_id)) is not None:
                raise ConflictError("Post already liked")

            session.add(Like(post_id=post_id, user_id=user_id))
            session.flush()
            like_count = _bump(session, post_id, "like_count", +1)
            apply_award(session, cache, XpAward(
                profile_id=post.user_id,
                action=ActionKind.POST_LIKED,
                subject_id=like_subject_id(post_id, user_id),
            ))
    except IntegrityError as exc:
        # Concurrent like from the same user won the primary key
        raise ConflictError("Post already liked") from exc

    logger.debug("User %s liked post %s (%d likes)", user_id, post_id, like_count)
    return {"post_id": post_id, "like_count": like_count, "liked": True}


def unlike_post(engine: Engine, cache: ConfigCache | None, user_id: str, post_id: str) -> dict:
    """Remove a like.  Raises :class:`NotFoundError` if there is none."""
    with get_session(engine) as session:
        _require_post(session, post_id)
        like = session.get(Like, (post_id, user_id))
        if like is None:
            raise NotFoundError("Post is not liked")
        session.delete(like)
        session.flush()
        like_count = _bump(session, post_id, "like_count", -1)
        reverse_awards(session, cache, [like_subject_id(post_id, user_id)])

    logger.debug("User %s unliked post %s (%d likes)", user_id, post_id, like_count)
    return {"post_id": post_id, "like_count": like_count, "liked": False}


def liked_post_ids(session: Session, user_id: str | None, post_ids: list[str]) -> set[str]:
    """Subset of *post_ids* that *user_id* likes (one query)."""
    if not user_id or not post_ids:
        return set()
    return set(session.scalars(
        select(Like.post_id).where(Like.user_id == user_id, Like.post_id.in_(post_ids))
    ).all())


# ---------------------------------------------------------------------------
# Comments
# ---------------------------------------------------------------------------
def list_comments(engine: Engine, post_id: str) -> list[dict]:
    """All comments on a post, newest first, with author blocks."""
    with get_session(engine) as session:
        _require_post(session, post_id)
        rows = session.scalars(
            select(Comment)
            .where(Comment.post_id == post_id)
            .order_by(Comment.created_at.desc(), Comment.id)
        ).all()
        return [comment_dict(c) for c in rows]


def add_comment(
    engine: Engine,
    cache: ConfigCache | None,
    user_id: str,
    post_id: str,
    content: str,
    *,
    feed: ChangeFeed | None = None,
) -> dict:
    """Create a comment, bump the counter and award the commenter."""
    text = (content or "").strip()
    if not text:
        raise ValidationError("Comment cannot be empty")
    if len(text) > MAX_COMMENT_LENGTH:
        raise ValidationError(f"Comment must be at most {MAX_COMMENT_LENGTH} characters")

    with get_session(engine) as session:
        require_profile(session, user_id)
        _require_post(session, post_id)
        comment = Comment(post_id=post_id, user_id=user_id, content=text)
        session.add(comment)
        session.flush()
        comment_count = _bump(session, post_id, "comment_count", +1)
        apply_award(session, cache, XpAward(
            profile_id=user_id,
            action=ActionKind.COMMENT_CREATED,
            subject_id=comment.id,
        ))
        result = comment_dict(comment)

    if feed is not None:
        feed.publish_event(
            "comments", "INSERT",
            id=result["id"], post_id=post_id, comment_count=comment_count,
        )
    return result


def delete_comment(
    engine: Engine,
    cache: ConfigCache | None,
    user_id: str,
    comment_id: str,
    *,
    feed: ChangeFeed | None = None,
) -> None:
    """Delete the caller's own comment."""
    with get_session(engine) as session:
        comment = session.get(Comment, comment_id)
        if comment is None:
            raise NotFoundError(f"Comment {comment_id} not found")
        if comment.user_id != user_id:
            raise UnauthorizedError("You can only delete your own comments")
        post_id = comment.post_id
        session.delete(comment)
        session.flush()
        comment_count = _bump(session, post_id, "comment_count", -1)
        reverse_awards(session, cache, [comment_id])

    if feed is not None:
        feed.publish_event(
            "comments", "DELETE",
            id=comment_id, post_id=post_id, comment_count=comment_count,
        )
