"""
memeboard.services.ranking_service — Rank Refresh & Leaderboard Read
=====================================================================

``profiles.rank`` is a cached snapshot, not a live value.  It is
recomputed over the whole population by :func:`refresh_ranks`, which runs

* on the server-owned schedule (:mod:`memeboard.services.scheduler`), and
* right before a leaderboard read when ``ranking.refresh_on_read`` is on.

Concurrent refreshes need no coordination: the result depends only on the
experience snapshot, so the last writer writes the same ranks (or newer).
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy import select, update

from memeboard.constants import DEFAULT_LEADERBOARD_SIZE, RANK_BADGES
from memeboard.database.engine import get_session
from memeboard.database.models import Profile
from memeboard.engine.ranking import assign_dense_ranks

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from memeboard.engine.cache import ConfigCache

logger = logging.getLogger(__name__)


def refresh_ranks(engine: Engine) -> dict:
    """Recompute dense ranks for every profile.

    Only rows whose rank changed are written.  Returns
    ``{"ranked": N, "updated": M, "timestamp": iso}``.
    """
    with get_session(engine) as session:
        snapshot = session.execute(
            select(Profile.id, Profile.xp, Profile.rank)
        ).all()
        current = {row.id: row.rank for row in snapshot}
        entries = assign_dense_ranks((row.id, row.xp) for row in snapshot)

        changes = [
            {"id": e.profile_id, "rank": e.rank}
            for e in entries
            if current.get(e.profile_id) != e.rank
        ]
        if changes:
            # ORM bulk UPDATE by primary key
            session.execute(update(Profile), changes)

    logger.debug("Rank refresh: %d ranked, %d updated", len(entries), len(changes))
    return {
        "ranked": len(entries),
        "updated": len(changes),
        "timestamp": datetime.now(UTC).isoformat(),
    }


def _leaderboard_entry(p: Profile, position: int) -> dict:
    return {
        "id": p.id,
        "username": p.username,
        "avatar_url": p.avatar_url,
        "xp": p.xp,
        "level": p.level,
        "rank": p.rank,
        "position": position,
        "badge": RANK_BADGES[p.rank - 1] if p.rank and p.rank <= len(RANK_BADGES) else None,
    }


def get_leaderboard(
    engine: Engine,
    cache: ConfigCache | None = None,
    *,
    limit: int | None = None,
) -> dict:
    """Top profiles by experience (ties by id), at most ``ranking.leaderboard_size``.

    A failed pre-read refresh is logged and the read proceeds with the
    ranks from the last successful run.
    """
    max_size = DEFAULT_LEADERBOARD_SIZE
    refresh_on_read = True
    if cache is not None:
        max_size = cache.get_int("ranking.leaderboard_size", DEFAULT_LEADERBOARD_SIZE)
        refresh_on_read = cache.get_bool("ranking.refresh_on_read", True)
    size = max_size if limit is None else max(1, min(limit, max_size))

    refreshed = False
    if refresh_on_read:
        try:
            refresh_ranks(engine)
            refreshed = True
        except Exception:
            logger.warning("Rank refresh before leaderboard read failed; serving stale ranks",
                           exc_info=True)

    with get_session(engine) as session:
        rows = session.scalars(
            select(Profile).order_by(Profile.xp.desc(), Profile.id).limit(size)
        ).all()
        return {
            "refreshed": refreshed,
            "size": size,
            "profiles": [_leaderboard_entry(p, i + 1) for i, p in enumerate(rows)],
        }
