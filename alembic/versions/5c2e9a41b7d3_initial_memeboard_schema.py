"""Initial memeboard schema: profiles, posts, likes, comments, xp_ledger, settings

Revision ID: 5c2e9a41b7d3
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "5c2e9a41b7d3"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at",
        sa.DateTime(timezone=True),
        nullable=True,
        server_default=sa.func.now(),
    )


def upgrade() -> None:
    """Create all memeboard tables."""
    op.create_table(
        "profiles",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("username", sa.String(30), nullable=False, unique=True),
        sa.Column("avatar_url", sa.String(500), nullable=True),
        sa.Column("bio", sa.Text(), nullable=True),
        sa.Column("xp", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("level", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("rank", sa.Integer(), nullable=True),
        _created_at(),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=True,
            server_default=sa.func.now(),
        ),
        sa.CheckConstraint("xp >= 0", name="ck_profiles_xp_non_negative"),
        sa.CheckConstraint("level >= 1", name="ck_profiles_level_positive"),
    )
    op.create_index("ix_profiles_xp_desc", "profiles", ["xp"])

    op.create_table(
        "posts",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "user_id", sa.String(64),
            sa.ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("image_url", sa.String(500), nullable=False),
        sa.Column("image_path", sa.String(300), nullable=True),
        sa.Column("caption", sa.String(500), nullable=True),
        sa.Column("like_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("comment_count", sa.Integer(), nullable=False, server_default="0"),
        _created_at(),
        sa.CheckConstraint("like_count >= 0", name="ck_posts_like_count_non_negative"),
        sa.CheckConstraint("comment_count >= 0", name="ck_posts_comment_count_non_negative"),
    )
    op.create_index("ix_posts_created_at", "posts", ["created_at"])
    op.create_index("ix_posts_user_created", "posts", ["user_id", "created_at"])

    op.create_table(
        "likes",
        sa.Column(
            "post_id", sa.String(36),
            sa.ForeignKey("posts.id", ondelete="CASCADE"), primary_key=True,
        ),
        sa.Column(
            "user_id", sa.String(64),
            sa.ForeignKey("profiles.id", ondelete="CASCADE"), primary_key=True,
        ),
        _created_at(),
    )
    op.create_index("ix_likes_user", "likes", ["user_id"])

    op.create_table(
        "comments",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "post_id", sa.String(36),
            sa.ForeignKey("posts.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column(
            "user_id", sa.String(64),
            sa.ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("content", sa.Text(), nullable=False),
        _created_at(),
    )
    op.create_index("ix_comments_post_created", "comments", ["post_id", "created_at"])

    op.create_table(
        "xp_ledger",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "profile_id", sa.String(64),
            sa.ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("action", sa.String(30), nullable=False),
        sa.Column("subject_id", sa.String(110), nullable=False),
        sa.Column("xp_delta", sa.Integer(), nullable=False),
        sa.Column("reversal", sa.Boolean(), nullable=False, server_default=sa.false()),
        _created_at(),
    )
    op.create_index("ix_xp_ledger_subject", "xp_ledger", ["subject_id"])
    op.create_index("ix_xp_ledger_profile_time", "xp_ledger", ["profile_id", "created_at"])

    op.create_table(
        "settings",
        sa.Column("key", sa.String(100), primary_key=True),
        sa.Column("value_json", sa.Text(), nullable=False),
        sa.Column("category", sa.String(50), nullable=False, server_default="general"),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=True,
            server_default=sa.func.now(),
        ),
    )
    op.create_index("ix_settings_category", "settings", ["category"])


def downgrade() -> None:
    """Drop all memeboard tables."""
    op.drop_index("ix_settings_category", table_name="settings")
    op.drop_table("settings")

    op.drop_index("ix_xp_ledger_profile_time", table_name="xp_ledger")
    op.drop_index("ix_xp_ledger_subject", table_name="xp_ledger")
    op.drop_table("xp_ledger")

    op.drop_index("ix_comments_post_created", table_name="comments")
    op.drop_table("comments")

    op.drop_index("ix_likes_user", table_name="likes")
    op.drop_table("likes")

    op.drop_index("ix_posts_user_created", table_name="posts")
    op.drop_index("ix_posts_created_at", table_name="posts")
    op.drop_table("posts")

    op.drop_index("ix_profiles_xp_desc", table_name="profiles")
    op.drop_table("profiles")
