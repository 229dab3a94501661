"""
memeboard.api.routes.leaderboard — Public leaderboard read
===========================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy import Engine

from memeboard.api.deps import get_cache, get_engine
from memeboard.engine.cache import ConfigCache
from memeboard.services import ranking_service

router = APIRouter(tags=["leaderboard"])


@router.get("/leaderboard")
def get_leaderboard(
    limit: int | None = Query(None, ge=1),
    engine: Engine = Depends(get_engine),
    cache: ConfigCache = Depends(get_cache),
):
    return ranking_service.get_leaderboard(engine, cache, limit=limit)
