"""
memeboard.api.routes.admin — Settings & maintenance procedures (JWT-protected)
===============================================================================
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy import Engine

from memeboard.api.deps import get_cache, get_current_admin, get_engine
from memeboard.engine.cache import ConfigCache
from memeboard.services import (
    experience_service,
    ranking_service,
    reconciliation_service,
    settings_service,
)

router = APIRouter(prefix="/admin", tags=["admin"])
logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class SettingItem(BaseModel):
    key: str
    value: Any
    category: str | None = None
    description: str | None = None


class SettingsBulkUpdate(BaseModel):
    settings: list[SettingItem]


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------
@router.get("/settings")
def list_settings(
    admin: dict = Depends(get_current_admin),
    engine: Engine = Depends(get_engine),
):
    return {"settings": settings_service.get_all_settings(engine)}


@router.put("/settings")
def update_settings(
    body: SettingsBulkUpdate,
    admin: dict = Depends(get_current_admin),
    engine: Engine = Depends(get_engine),
    cache: ConfigCache = Depends(get_cache),
):
    items = []
    for item in body.settings:
        entry: dict[str, Any] = {"key": item.key, "value": item.value}
        if item.category is not None:
            entry["category"] = item.category
        if item.description is not None:
            entry["description"] = item.description
        items.append(entry)
    count = settings_service.bulk_upsert(engine, cache, items)
    logger.info("Admin %s updated %d settings", admin.get("sub"), count)
    return {"updated": count}


# ---------------------------------------------------------------------------
# Server procedures
# ---------------------------------------------------------------------------
@router.post("/procedures/{name}")
def invoke_procedure(
    name: str,
    admin: dict = Depends(get_current_admin),
    engine: Engine = Depends(get_engine),
    cache: ConfigCache = Depends(get_cache),
):
    """Run a maintenance procedure on demand."""
    procedures = {
        "update_user_ranks": lambda: ranking_service.refresh_ranks(engine),
        "reconcile_counters": lambda: reconciliation_service.reconcile_counters(engine),
        "recompute_levels": lambda: experience_service.recompute_levels(engine, cache),
    }
    procedure = procedures.get(name)
    if procedure is None:
        raise HTTPException(404, f"Unknown procedure: {name}")
    logger.info("Admin %s invoked procedure %s", admin.get("sub"), name)
    return {"procedure": name, "result": procedure()}
