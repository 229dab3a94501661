"""
memeboard.engine.cache — In-Memory Settings Cache
==================================================

Gameplay settings (award sizes, level breakpoints, leaderboard knobs) are
read on every like and comment, so they are cached in memory and reloaded
whenever :mod:`memeboard.services.settings_service` writes the table.
"""

from __future__ import annotations

import json
import logging
import threading
from typing import TYPE_CHECKING, Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from memeboard.database.models import Setting

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)


class ConfigCache:
    """Thread-safe in-memory copy of the ``settings`` table.

    Usage:
        cache = ConfigCache(engine)
        cache.load_all()

        award = cache.get_int("experience.award.post_liked", default=2)
        breakpoints = cache.get_setting("leveling.breakpoints")
    """

    def __init__(self, engine: Engine) -> None:
        self._engine = engine
        self._lock = threading.Lock()
        # key → parsed JSON value
        self._settings: dict[str, Any] = {}

    # -------------------------------------------------------------------
    # Loading
    # -------------------------------------------------------------------
    def load_all(self) -> None:
        """Load every setting from the DB. Call on startup and after writes."""
        with Session(self._engine) as session:
            rows = session.scalars(select(Setting)).all()
            parsed: dict[str, Any] = {}
            for row in rows:
                try:
                    parsed[row.key] = json.loads(row.value_json)
                except (json.JSONDecodeError, TypeError):
                    parsed[row.key] = row.value_json

        with self._lock:
            self._settings = parsed
        logger.info("ConfigCache loaded: %d settings", len(parsed))

    def handle_notify(self, table_name: str) -> None:
        """Reload after a change notification for *table_name*."""
        table_name = table_name.strip().lower()
        if table_name == "settings":
            self.load_all()
        else:
            logger.warning("Unknown table in cache notification: %s, ignoring", table_name)

    # -------------------------------------------------------------------
    # Typed setting accessors (thread-safe)
    # -------------------------------------------------------------------
    def get_setting(self, key: str, default: Any = None) -> Any:
        """Return the parsed JSON value for *key*, or *default*."""
        with self._lock:
            return self._settings.get(key, default)

    def get_int(self, key: str, default: int = 0) -> int:
        val = self.get_setting(key)
        if val is None:
            return default
        try:
            return int(val)
        except (TypeError, ValueError):
            return default

    def get_float(self, key: str, default: float = 0.0) -> float:
        val = self.get_setting(key)
        if val is None:
            return default
        try:
            return float(val)
        except (TypeError, ValueError):
            return default

    def get_bool(self, key: str, default: bool = False) -> bool:
        val = self.get_setting(key)
        if val is None:
            return default
        return bool(val)

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            return dict(self._settings)
