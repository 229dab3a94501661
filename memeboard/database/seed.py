"""
memeboard.database.seed — Default Settings Seeder
==================================================

Baseline gameplay settings seeded on first startup.  Idempotent — only
inserts keys that don't already exist, so admin edits are never
overwritten.
"""

from __future__ import annotations

import json
import logging

from sqlalchemy import Engine
from sqlalchemy.orm import Session

from memeboard.constants import DEFAULT_LEADERBOARD_SIZE, DEFAULT_LEVEL_BREAKPOINTS
from memeboard.database.models import Setting

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Default settings catalogue
# ---------------------------------------------------------------------------
DEFAULT_SETTINGS: dict[str, tuple[object, str, str]] = {
    "experience.award.post_created": (10, "experience", "XP awarded to the author of a new post"),
    "experience.award.post_liked": (2, "experience", "XP awarded to a post's author per like"),
    "experience.award.comment_created": (3, "experience", "XP awarded to a comment's author"),
    "experience.clawback_on_reversal": (
        False, "experience",
        "Reverse earlier awards on unlike / comment deletion / post deletion",
    ),
    "leveling.breakpoints": (
        DEFAULT_LEVEL_BREAKPOINTS, "leveling",
        "Ascending XP thresholds; the Nth entry is the XP needed for level N",
    ),
    "ranking.leaderboard_size": (
        DEFAULT_LEADERBOARD_SIZE, "ranking", "Profiles returned by the leaderboard",
    ),
    "ranking.refresh_on_read": (
        True, "ranking", "Recompute ranks right before serving the leaderboard",
    ),
}
"""Each entry maps ``key`` → ``(default_value, category, description)``."""


# ---------------------------------------------------------------------------
# Seeder
# ---------------------------------------------------------------------------
def seed_default_settings(engine: Engine) -> None:
    """Insert default settings that don't yet exist."""
    session = Session(engine)
    inserted = 0
    try:
        for key, (value, category, desc) in DEFAULT_SETTINGS.items():
            if session.get(Setting, key) is None:
                session.add(Setting(
                    key=key,
                    value_json=json.dumps(value),
                    category=category,
                    description=desc,
                ))
                inserted += 1
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()

    if inserted:
        logger.info("Seeded %d default settings.", inserted)
