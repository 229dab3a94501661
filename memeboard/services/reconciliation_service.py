"""
memeboard.services.reconciliation_service — Counter Reconciliation
===================================================================

Periodic job that validates ``posts.like_count`` / ``posts.comment_count``
against the actual ``likes`` and ``comments`` rows and corrects drift.

How it works:
    1. Lock every post row (``SELECT ... FOR UPDATE``).
    2. ``COUNT(*)`` likes and comments grouped by post.
    3. Compare against the denormalized counters on every post.
    4. On mismatch, overwrite the counter with the true count.
    5. Log all corrections for audit.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from sqlalchemy import Engine, Select, func, select, update

from memeboard.database.engine import get_session
from memeboard.database.models import Comment, Like, Post

logger = logging.getLogger(__name__)

_COUNTERS = (
    ("like_count", Like),
    ("comment_count", Comment),
)


def locked_posts_query() -> Select:
    """Post counters, row-locked until the reconciling transaction commits.

    No like or comment increment can land between the count and the write.
    SQLite has no ``FOR UPDATE``; its single writer gives the same guarantee.
    """
    return (
        select(Post.id, Post.like_count, Post.comment_count)
        .order_by(Post.id)
        .with_for_update()
    )


def reconcile_counters(engine: Engine) -> dict:
    """Validate post counters against raw like/comment rows and fix drift.

    Returns ``{"checked": N, "corrected": M, "corrections": [...], "timestamp": iso}``.
    """
    corrections: list[dict] = []

    with get_session(engine) as session:
        posts = session.execute(locked_posts_query()).all()

        truth: dict[str, dict[str, int]] = {}
        for column, model in _COUNTERS:
            rows = session.execute(
                select(model.post_id, func.count().label("actual")).group_by(model.post_id)
            ).all()
            truth[column] = {row.post_id: row.actual for row in rows}

        checked = 0
        for post in posts:
            for column, _model in _COUNTERS:
                checked += 1
                stored = getattr(post, column)
                actual = truth[column].get(post.id, 0)
                if stored == actual:
                    continue
                corrections.append({
                    "post_id": post.id,
                    "counter": column,
                    "stored": stored,
                    "actual": actual,
                    "diff": actual - stored,
                })
                session.execute(
                    update(Post)
                    .where(Post.id == post.id)
                    .values({column: actual})
                    .execution_options(synchronize_session=False)
                )

    if corrections:
        logger.warning(
            "Counter reconciliation: corrected %d/%d counters: %s",
            len(corrections), checked, corrections,
        )
    else:
        logger.info("Counter reconciliation: all %d counters match", checked)

    return {
        "checked": checked,
        "corrected": len(corrections),
        "corrections": corrections,
        "timestamp": datetime.now(UTC).isoformat(),
    }
