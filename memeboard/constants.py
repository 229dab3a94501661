"""
memeboard.constants — Shared Constants
=======================================

Single source of truth for upload/content limits and presentation
constants.  Import from here instead of duplicating in services and routes.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Storage buckets
# ---------------------------------------------------------------------------
MEMES_BUCKET = "memes"
AVATARS_BUCKET = "avatars"

# ---------------------------------------------------------------------------
# Upload & content limits
# ---------------------------------------------------------------------------
MAX_IMAGE_BYTES = 5 * 1024 * 1024  # 5 MB
ALLOWED_IMAGE_EXTENSIONS: set[str] = {".png", ".jpg", ".jpeg", ".gif", ".webp"}

MAX_CAPTION_LENGTH = 500
MAX_COMMENT_LENGTH = 1000
MAX_BIO_LENGTH = 500
USERNAME_MIN_LENGTH = 3
USERNAME_MAX_LENGTH = 30

# ---------------------------------------------------------------------------
# Gamification defaults (overridable through the ``settings`` table)
# ---------------------------------------------------------------------------
DEFAULT_LEVEL_BREAKPOINTS: list[int] = [
    0, 100, 250, 500, 1000, 2000, 3500, 5500, 8000, 12000,
]
"""XP needed to *enter* each level: index 0 → level 1, index 1 → level 2, …"""

DEFAULT_LEADERBOARD_SIZE = 50

# Rank badge shown next to the top three on the leaderboard
RANK_BADGES: list[str] = ["\U0001f3c6", "\U0001f948", "\U0001f949"]  # 🏆🥈🥉

# Profiles at or above this rank get a "#N" badge on their posts
FEATURED_RANK_CUTOFF = 10
