"""
memeboard.services.post_service — Upload, Feed & Deletion
==========================================================

Creating a post stores the image in the ``memes`` bucket, inserts the
post and awards the author in one transaction; if that transaction fails
the uploaded blob is removed again.

Deleting a post removes its likes and comments explicitly before the post
row itself, so no counter or record is left pointing at a missing post.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy import delete, select
from sqlalchemy.orm import Session, selectinload

from memeboard.constants import MAX_CAPTION_LENGTH, MEMES_BUCKET
from memeboard.database.engine import get_session
from memeboard.database.models import ActionKind, Comment, Like, Post
from memeboard.engine.events import XpAward
from memeboard.errors import NotFoundError, UnauthorizedError, ValidationError
from memeboard.services.engagement_service import liked_post_ids
from memeboard.services.experience_service import apply_award, reverse_awards
from memeboard.services.profile_service import author_dict, require_profile
from memeboard.services.storage_service import validate_image

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from memeboard.engine.cache import ConfigCache
    from memeboard.services.change_feed import ChangeFeed
    from memeboard.services.storage_service import BlobStore

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 50


def post_dict(p: Post, liked_by_me: bool = False) -> dict:
    return {
        "id": p.id,
        "user_id": p.user_id,
        "image_url": p.image_url,
        "caption": p.caption,
        "like_count": p.like_count,
        "comment_count": p.comment_count,
        "created_at": p.created_at.isoformat() if p.created_at else None,
        "author": author_dict(p.author),
        "liked_by_me": liked_by_me,
    }


def _clean_caption(caption: str | None) -> str | None:
    if caption is None:
        return None
    caption = caption.strip()
    if len(caption) > MAX_CAPTION_LENGTH:
        raise ValidationError(f"Caption must be at most {MAX_CAPTION_LENGTH} characters")
    return caption or None


def _with_likes(session: Session, posts: list[Post], viewer_id: str | None) -> list[dict]:
    liked = liked_post_ids(session, viewer_id, [p.id for p in posts])
    return [post_dict(p, p.id in liked) for p in posts]


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------
def create_post(
    engine: Engine,
    cache: ConfigCache | None,
    store: BlobStore,
    user_id: str,
    *,
    filename: str,
    content: bytes,
    content_type: str | None,
    caption: str | None = None,
    feed: ChangeFeed | None = None,
) -> dict:
    """Upload an image and publish it as a new post (+10 XP by default)."""
    ext = validate_image(filename, content, content_type)
    caption = _clean_caption(caption)

    with get_session(engine) as session:
        require_profile(session, user_id)

    path = store.unique_path(MEMES_BUCKET, user_id, ext)
    store.upload_blob(MEMES_BUCKET, path, content)

    try:
        with get_session(engine) as session:
            post = Post(
                user_id=user_id,
                image_url=store.get_public_url(MEMES_BUCKET, path),
                image_path=path,
                caption=caption,
            )
            session.add(post)
            session.flush()
            apply_award(session, cache, XpAward(
                profile_id=user_id,
                action=ActionKind.POST_CREATED,
                subject_id=post.id,
            ))
            result = post_dict(post)
    except Exception:
        store.delete_blob(MEMES_BUCKET, path)
        raise

    logger.info("User %s created post %s", user_id, result["id"])
    if feed is not None:
        feed.publish_event("posts", "INSERT", id=result["id"], user_id=user_id)
    return result


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------
def list_feed(
    engine: Engine,
    viewer_id: str | None,
    *,
    page: int = 0,
    page_size: int = DEFAULT_PAGE_SIZE,
) -> dict:
    """One page of the home feed, newest first.

    ``has_more`` is False once a page comes back short.
    """
    if page < 0:
        raise ValidationError("Page must be >= 0")
    page_size = max(1, min(page_size, MAX_PAGE_SIZE))

    with get_session(engine) as session:
        posts = session.scalars(
            select(Post)
            .options(selectinload(Post.author))
            .order_by(Post.created_at.desc(), Post.id.desc())
            .offset(page * page_size)
            .limit(page_size)
        ).all()
        return {
            "page": page,
            "page_size": page_size,
            "has_more": len(posts) == page_size,
            "posts": _with_likes(session, list(posts), viewer_id),
        }


def list_user_posts(engine: Engine, profile_id: str, viewer_id: str | None) -> list[dict]:
    """Every post by one profile, newest first."""
    with get_session(engine) as session:
        posts = session.scalars(
            select(Post)
            .options(selectinload(Post.author))
            .where(Post.user_id == profile_id)
            .order_by(Post.created_at.desc(), Post.id.desc())
        ).all()
        return _with_likes(session, list(posts), viewer_id)


def get_post(engine: Engine, post_id: str, viewer_id: str | None = None) -> dict:
    with get_session(engine) as session:
        post = session.get(Post, post_id)
        if post is None:
            raise NotFoundError(f"Post {post_id} not found")
        return _with_likes(session, [post], viewer_id)[0]


# ---------------------------------------------------------------------------
# Delete
# ---------------------------------------------------------------------------
def delete_post(
    engine: Engine,
    cache: ConfigCache | None,
    store: BlobStore,
    user_id: str,
    post_id: str,
    *,
    feed: ChangeFeed | None = None,
) -> None:
    """Delete the caller's own post together with its likes and comments."""
    with get_session(engine) as session:
        post = session.get(Post, post_id)
        if post is None:
            raise NotFoundError(f"Post {post_id} not found")
        if post.user_id != user_id:
            raise UnauthorizedError("You can only delete your own posts")

        comment_ids = list(session.scalars(
            select(Comment.id).where(Comment.post_id == post_id)
        ).all())
        reverse_awards(
            session, cache, [post_id, *comment_ids], subject_prefix=f"{post_id}:",
        )

        likes_deleted = session.execute(
            delete(Like).where(Like.post_id == post_id)
        ).rowcount
        comments_deleted = session.execute(
            delete(Comment).where(Comment.post_id == post_id)
        ).rowcount
        image_path = post.image_path
        session.delete(post)

    logger.info(
        "Deleted post %s (%d likes, %d comments)", post_id, likes_deleted, comments_deleted,
    )

    if image_path:
        try:
            store.delete_blob(MEMES_BUCKET, image_path)
        except Exception:
            logger.exception("Failed to remove blob for deleted post %s", post_id)

    if feed is not None:
        feed.publish_event("posts", "DELETE", id=post_id, user_id=user_id)
        feed.publish_event("comments", "DELETE", post_id=post_id, cascade=True)
