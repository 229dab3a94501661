"""
memeboard.services.profile_service — Registration & Profile Edits
==================================================================

Profiles are created once per identity (the JWT ``sub``) and are editable
only by that identity: username, bio and avatar.  Experience, level and
rank belong to the system and are never written here.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from memeboard.constants import (
    AVATARS_BUCKET,
    FEATURED_RANK_CUTOFF,
    MAX_BIO_LENGTH,
    USERNAME_MAX_LENGTH,
    USERNAME_MIN_LENGTH,
)
from memeboard.database.engine import get_session
from memeboard.database.models import Comment, Post, Profile
from memeboard.errors import ConflictError, NotFoundError, ValidationError
from memeboard.services.storage_service import validate_image

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from memeboard.services.storage_service import BlobStore

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Helpers shared with other services
# ---------------------------------------------------------------------------
def profile_dict(p: Profile) -> dict:
    return {
        "id": p.id,
        "username": p.username,
        "avatar_url": p.avatar_url,
        "bio": p.bio,
        "xp": p.xp,
        "level": p.level,
        "rank": p.rank,
        "created_at": p.created_at.isoformat() if p.created_at else None,
        "updated_at": p.updated_at.isoformat() if p.updated_at else None,
    }


def author_dict(p: Profile | None) -> dict | None:
    """Compact author block embedded in posts and comments.

    ``featured`` marks authors ranked in the top ``FEATURED_RANK_CUTOFF``,
    whose posts carry a "#rank" badge.
    """
    if p is None:
        return None
    return {
        "id": p.id,
        "username": p.username,
        "avatar_url": p.avatar_url,
        "level": p.level,
        "rank": p.rank,
        "featured": p.rank is not None and p.rank <= FEATURED_RANK_CUTOFF,
    }


def require_profile(session: Session, user_id: str) -> Profile:
    profile = session.get(Profile, user_id)
    if profile is None:
        raise NotFoundError("Profile not found; register a username first")
    return profile


def _clean_username(raw: str) -> str:
    username = (raw or "").strip()
    if not (USERNAME_MIN_LENGTH <= len(username) <= USERNAME_MAX_LENGTH):
        raise ValidationError(
            f"Username must be {USERNAME_MIN_LENGTH}-{USERNAME_MAX_LENGTH} characters"
        )
    return username


def _username_taken(session: Session, username: str, exclude_id: str | None = None) -> bool:
    query = select(Profile.id).where(func.lower(Profile.username) == username.lower())
    if exclude_id is not None:
        query = query.where(Profile.id != exclude_id)
    return session.scalar(query) is not None


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------
def get_profile(engine: Engine, profile_id: str) -> dict:
    with get_session(engine) as session:
        profile = session.get(Profile, profile_id)
        if profile is None:
            raise NotFoundError(f"Profile {profile_id} not found")
        return profile_dict(profile)


def get_profile_stats(engine: Engine, profile_id: str) -> dict:
    """Post count plus likes and comments received across all posts."""
    with get_session(engine) as session:
        if session.get(Profile, profile_id) is None:
            raise NotFoundError(f"Profile {profile_id} not found")
        row = session.execute(
            select(
                func.count(Post.id).label("posts"),
                func.coalesce(func.sum(Post.like_count), 0).label("likes"),
                func.coalesce(func.sum(Post.comment_count), 0).label("comments"),
            ).where(Post.user_id == profile_id)
        ).one()
        comments_written = session.scalar(
            select(func.count()).select_from(Comment).where(Comment.user_id == profile_id)
        ) or 0
        return {
            "posts": int(row.posts or 0),
            "likes_received": int(row.likes or 0),
            "comments_received": int(row.comments or 0),
            "comments_written": int(comments_written),
        }


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------
def register_profile(engine: Engine, user_id: str, username: str) -> dict:
    """Create the profile for a freshly authenticated identity."""
    username = _clean_username(username)
    try:
        with get_session(engine) as session:
            if session.get(Profile, user_id) is not None:
                raise ConflictError("Profile already registered")
            if _username_taken(session, username):
                raise ConflictError(f"Username {username!r} is taken")
            profile = Profile(id=user_id, username=username, xp=0, level=1)
            session.add(profile)
            session.flush()
            result = profile_dict(profile)
    except IntegrityError as exc:
        # Lost a race with another registration
        raise ConflictError(f"Username {username!r} is taken") from exc

    logger.info("Registered profile %s (%s)", user_id, username)
    return result


def update_profile(
    engine: Engine,
    user_id: str,
    *,
    username: str | None = None,
    bio: str | None = None,
) -> dict:
    """Change the caller's own username and/or bio.

    An empty bio clears it.  Raises :class:`ConflictError` on a taken name.
    """
    try:
        with get_session(engine) as session:
            profile = require_profile(session, user_id)
            if username is not None:
                username = _clean_username(username)
                if _username_taken(session, username, exclude_id=user_id):
                    raise ConflictError(f"Username {username!r} is taken")
                profile.username = username
            if bio is not None:
                bio = bio.strip()
                if len(bio) > MAX_BIO_LENGTH:
                    raise ValidationError(f"Bio must be at most {MAX_BIO_LENGTH} characters")
                profile.bio = bio or None
            session.flush()
            return profile_dict(profile)
    except IntegrityError as exc:
        raise ConflictError("Username is taken") from exc


def set_avatar(
    engine: Engine,
    store: BlobStore,
    user_id: str,
    *,
    filename: str,
    content: bytes,
    content_type: str | None,
) -> dict:
    """Upload a new avatar image and point the profile at it."""
    ext = validate_image(filename, content, content_type)
    with get_session(engine) as session:
        require_profile(session, user_id)

    path = store.unique_path(AVATARS_BUCKET, user_id, ext)
    store.upload_blob(AVATARS_BUCKET, path, content)
    try:
        with get_session(engine) as session:
            profile = require_profile(session, user_id)
            profile.avatar_url = store.get_public_url(AVATARS_BUCKET, path)
            session.flush()
            return profile_dict(profile)
    except Exception:
        store.delete_blob(AVATARS_BUCKET, path)
        raise
