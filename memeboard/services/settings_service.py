"""
memeboard.services.settings_service — Settings CRUD
====================================================

Typed read/write access to the ``settings`` table.  Every write is
validated against the key's expected shape, then the
:class:`~memeboard.engine.cache.ConfigCache` is reloaded.  When the level
breakpoints change, stored levels are recomputed so no profile keeps a
level its experience no longer earns.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from memeboard.database.models import Setting
from memeboard.database.seed import DEFAULT_SETTINGS
from memeboard.engine.levels import BREAKPOINTS_SETTING, validate_breakpoints
from memeboard.errors import ValidationError
from memeboard.services.experience_service import recompute_levels

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from memeboard.engine.cache import ConfigCache

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------
def _non_negative_int(key: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValidationError(f"{key} must be a non-negative integer")
    return value


def _positive_int(key: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ValidationError(f"{key} must be a positive integer")
    return value


def _boolean(key: str, value: Any) -> bool:
    if not isinstance(value, bool):
        raise ValidationError(f"{key} must be true or false")
    return value


def _breakpoints(key: str, value: Any) -> list[int]:
    try:
        return validate_breakpoints(value)
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc


_VALIDATORS = {
    "experience.award.post_created": _non_negative_int,
    "experience.award.post_liked": _non_negative_int,
    "experience.award.comment_created": _non_negative_int,
    "experience.clawback_on_reversal": _boolean,
    BREAKPOINTS_SETTING: _breakpoints,
    "ranking.leaderboard_size": _positive_int,
    "ranking.refresh_on_read": _boolean,
}


def validate_setting(key: str, value: Any) -> Any:
    """Return the normalized *value* for *key* or raise :class:`ValidationError`."""
    validator = _VALIDATORS.get(key)
    if validator is None:
        raise ValidationError(f"Unknown setting: {key}")
    return validator(key, value)


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------
def setting_dict(row: Setting) -> dict:
    try:
        value = json.loads(row.value_json)
    except (json.JSONDecodeError, TypeError):
        value = row.value_json
    return {
        "key": row.key,
        "value": value,
        "category": row.category,
        "description": row.description,
    }


def get_all_settings(engine: Engine) -> list[dict]:
    """Every setting row, ordered by category then key."""
    with Session(engine) as session:
        rows = session.scalars(
            select(Setting).order_by(Setting.category, Setting.key)
        ).all()
        return [setting_dict(r) for r in rows]


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------
def bulk_upsert(
    engine: Engine,
    cache: ConfigCache | None,
    settings: list[dict],
) -> int:
    """Validate and upsert many settings in one transaction.

    Each dict needs ``key`` and ``value``; ``category`` and ``description``
    are optional.  Nothing is written if any item fails validation.

    Returns the number of rows touched.
    """
    cleaned = [(item, validate_setting(item["key"], item["value"])) for item in settings]

    breakpoints_changed = False
    with Session(engine) as session:
        for item, value in cleaned:
            key = item["key"]
            value_json = json.dumps(value)
            existing = session.get(Setting, key)
            if existing:
                if key == BREAKPOINTS_SETTING and existing.value_json != value_json:
                    breakpoints_changed = True
                existing.value_json = value_json
                if "category" in item:
                    existing.category = item["category"]
                if "description" in item:
                    existing.description = item["description"]
            else:
                _default, category, description = DEFAULT_SETTINGS[key]
                session.add(Setting(
                    key=key,
                    value_json=value_json,
                    category=item.get("category", category),
                    description=item.get("description", description),
                ))
                breakpoints_changed = breakpoints_changed or key == BREAKPOINTS_SETTING
        session.commit()

    logger.info("Updated %d settings: %s", len(cleaned), [item["key"] for item, _ in cleaned])

    if cache is not None:
        cache.handle_notify("settings")
    if breakpoints_changed:
        result = recompute_levels(engine, cache)
        logger.info("Level breakpoints changed; %s", result)
    return len(cleaned)


def upsert_setting(
    engine: Engine,
    cache: ConfigCache | None,
    *,
    key: str,
    value: Any,
) -> dict:
    """Insert or update a single setting and return it."""
    bulk_upsert(engine, cache, [{"key": key, "value": value}])
    with Session(engine) as session:
        return setting_dict(session.get(Setting, key))
