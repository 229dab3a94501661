"""
memeboard.database.models — SQLAlchemy 2.0 Data Models
=======================================================

Tables:
- profiles   — One row per registered identity (xp, level, cached rank)
- posts      — Uploaded memes with denormalized like/comment counters
- likes      — At most one per (post, user)
- comments   — Text replies on a post
- xp_ledger  — Append-only journal of every experience award and reversal
- settings   — Key-value gameplay tuning (JSON values)
"""

from __future__ import annotations

import enum
import uuid
from datetime import UTC, datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(UTC)


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all memeboard ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class ActionKind(enum.StrEnum):
    """User actions that earn experience."""
    POST_CREATED = "post_created"
    POST_LIKED = "post_liked"
    COMMENT_CREATED = "comment_created"


# ---------------------------------------------------------------------------
# Profiles — one row per identity
# ---------------------------------------------------------------------------
class Profile(Base):
    __tablename__ = "profiles"

    # Opaque id issued by the identity provider (JWT ``sub``)
    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    username: Mapped[str] = mapped_column(String(30), nullable=False, unique=True)
    avatar_url: Mapped[str | None] = mapped_column(String(500), default=None)
    bio: Mapped[str | None] = mapped_column(Text, default=None)
    xp: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    level: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    rank: Mapped[int | None] = mapped_column(Integer, default=None)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(),
        onupdate=_utcnow,
    )

    posts: Mapped[list[Post]] = relationship(back_populates="author")

    __table_args__ = (
        CheckConstraint("xp >= 0", name="ck_profiles_xp_non_negative"),
        CheckConstraint("level >= 1", name="ck_profiles_level_positive"),
        Index("ix_profiles_xp_desc", "xp"),
    )

    def __repr__(self) -> str:
        return f"<Profile id={self.id} name={self.username!r} xp={self.xp} lvl={self.level}>"


# ---------------------------------------------------------------------------
# Posts — the memes themselves
# ---------------------------------------------------------------------------
class Post(Base):
    __tablename__ = "posts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False
    )
    image_url: Mapped[str] = mapped_column(String(500), nullable=False)
    image_path: Mapped[str | None] = mapped_column(String(300), default=None)  # bucket-relative
    caption: Mapped[str | None] = mapped_column(String(500), default=None)
    like_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    comment_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now()
    )

    author: Mapped[Profile] = relationship(back_populates="posts")

    __table_args__ = (
        CheckConstraint("like_count >= 0", name="ck_posts_like_count_non_negative"),
        CheckConstraint("comment_count >= 0", name="ck_posts_comment_count_non_negative"),
        Index("ix_posts_created_at", "created_at"),
        Index("ix_posts_user_created", "user_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Post id={self.id} user={self.user_id} likes={self.like_count}>"


# ---------------------------------------------------------------------------
# Likes — composite identity, one per (post, user)
# ---------------------------------------------------------------------------
class Like(Base):
    __tablename__ = "likes"

    post_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("posts.id", ondelete="CASCADE"), primary_key=True
    )
    user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("profiles.id", ondelete="CASCADE"), primary_key=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now()
    )

    __table_args__ = (
        Index("ix_likes_user", "user_id"),
    )

    def __repr__(self) -> str:
        return f"<Like post={self.post_id} user={self.user_id}>"


# ---------------------------------------------------------------------------
# Comments
# ---------------------------------------------------------------------------
class Comment(Base):
    __tablename__ = "comments"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    post_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("posts.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now()
    )

    author: Mapped[Profile] = relationship()

    __table_args__ = (
        Index("ix_comments_post_created", "post_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Comment id={self.id} post={self.post_id} user={self.user_id}>"


# ---------------------------------------------------------------------------
# XpLedger — append-only award journal
# ---------------------------------------------------------------------------
class XpLedger(Base):
    """One row per experience award or reversal.

    ``subject_id`` names the record that triggered the award (post id,
    ``<post_id>:<user_id>`` for likes, comment id) so a reversal can
    cancel exactly what that record earned.
    """
    __tablename__ = "xp_ledger"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    profile_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False
    )
    action: Mapped[str] = mapped_column(String(30), nullable=False)
    subject_id: Mapped[str] = mapped_column(String(110), nullable=False)
    xp_delta: Mapped[int] = mapped_column(Integer, nullable=False)
    reversal: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now()
    )

    __table_args__ = (
        Index("ix_xp_ledger_subject", "subject_id"),
        Index("ix_xp_ledger_profile_time", "profile_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<XpLedger id={self.id} profile={self.profile_id} {self.action} {self.xp_delta:+d}>"


# ---------------------------------------------------------------------------
# Settings — key-value gameplay tuning
# ---------------------------------------------------------------------------
class Setting(Base):
    """Key-value configuration store.

    Award sizes, level breakpoints and leaderboard knobs live here so
    admins can adjust them without redeploying.  Values are stored as JSON
    strings; typed accessors live in :class:`~memeboard.engine.cache.ConfigCache`.
    """
    __tablename__ = "settings"

    key: Mapped[str] = mapped_column(String(100), primary_key=True)
    value_json: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(String(50), nullable=False, default="general")
    description: Mapped[str | None] = mapped_column(Text, default=None)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(),
        onupdate=_utcnow,
    )

    __table_args__ = (
        Index("ix_settings_category", "category"),
    )

    def __repr__(self) -> str:
        return f"<Setting key={self.key!r} category={self.category!r}>"
