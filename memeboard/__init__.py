"""
memeboard — Meme Sharing with Experience, Levels & a Ranked Leaderboard
=========================================================================
Users register, upload images with captions, like and comment on posts,
earn experience points, and climb a dense-ranked leaderboard.

Package layout::

    memeboard/
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Upload limits, default level breakpoints
    ├── errors.py          # Validation / Unauthorized / NotFound / Conflict / Transient
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + async helper
    │   ├── models.py      # profiles, posts, likes, comments, xp_ledger, settings
    │   └── seed.py        # Default gameplay settings
    ├── engine/
    │   ├── events.py      # ActionKind + base award table
    │   ├── experience.py  # Pure award / reversal math
    │   ├── levels.py      # Configurable step-function level calculator
    │   ├── ranking.py     # Dense rank assignment
    │   └── cache.py       # In-memory settings cache
    ├── services/
    │   ├── experience_service.py    # Ledger-backed XP application
    │   ├── post_service.py          # Upload, feed, delete (with cascade)
    │   ├── engagement_service.py    # Likes, comments, counters
    │   ├── ranking_service.py       # Rank refresh + leaderboard read
    │   ├── reconciliation_service.py # Counter drift repair
    │   ├── profile_service.py       # Registration + profile edits
    │   ├── settings_service.py      # Settings CRUD
    │   ├── storage_service.py       # Blob store (buckets on disk)
    │   ├── change_feed.py           # Publish/subscribe change notifications
    │   └── scheduler.py             # Recurring rank refresh + reconciliation
    ├── api/
    │   ├── main.py        # FastAPI app
    │   ├── deps.py        # Engine, cache, JWT auth dependencies
    │   └── routes/        # posts, profiles, leaderboard, admin
    └── client/
        ├── api.py         # Async httpx client
        └── views.py       # Optimistic feed / profile / comment / leaderboard views
"""

__version__ = "0.1.0"
