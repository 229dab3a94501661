"""
memeboard.config — YAML Configuration Loader
=============================================

Reads ``config.yaml`` for **infrastructure-only** settings (storage
location, public URL, job intervals).  Gameplay tuning values (XP awards,
level breakpoints, leaderboard size) live in the ``settings`` database
table, editable from the admin endpoints.

Usage::

    from memeboard.config import load_config

    cfg = load_config()              # reads ./config.yaml by default
    print(cfg.community_name)        # "Memeboard Dev"
    print(cfg.rank_refresh_seconds)  # 30
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

import yaml


# ---------------------------------------------------------------------------
# Typed settings object — infrastructure only.
# Gameplay tuning lives in the DB ``settings`` table.
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class MemeboardConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    # Identity
    community_name: str

    # HTTP
    api_port: int
    public_base_url: str  # Prefix for blob URLs handed to clients

    # Blob storage root (one sub-directory per bucket)
    storage_dir: str

    # Background jobs
    rank_refresh_seconds: int = 30
    reconcile_minutes: int = 10

    # Feed paging
    feed_page_size: int = 10


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path | None = None) -> MemeboardConfig:
    """Read *path* and return a :class:`MemeboardConfig` instance.

    Parameters
    ----------
    path:
        Filesystem path to the YAML configuration file.  Defaults to
        ``$MEMEBOARD_CONFIG`` or ``config.yaml`` in the working directory.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    KeyError
        If a required key is missing from the YAML file.
    """
    if path is None:
        path = os.getenv("MEMEBOARD_CONFIG", "config.yaml")
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    return MemeboardConfig(
        community_name=raw["community_name"],
        api_port=int(raw["api_port"]),
        public_base_url=str(raw["public_base_url"]).rstrip("/"),
        storage_dir=str(raw["storage_dir"]),
        rank_refresh_seconds=int(raw.get("rank_refresh_seconds", 30)),
        reconcile_minutes=int(raw.get("reconcile_minutes", 10)),
        feed_page_size=int(raw.get("feed_page_size", 10)),
    )
