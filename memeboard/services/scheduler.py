"""
memeboard.services.scheduler — Periodic Background Jobs
=========================================================

Jobs run on an APScheduler :class:`BackgroundScheduler` inside the API
process:

- **Rank refresh** — every ``rank_refresh_seconds`` (default 30),
  recomputes ``profiles.rank`` for the whole population.
- **Counter reconciliation** — every ``reconcile_minutes`` (default 10),
  repairs drifted like/comment counters and stale stored levels.

Each job logs and swallows its own failure so one bad run never
unschedules it; the next tick simply tries again.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from apscheduler.schedulers.background import BackgroundScheduler

from memeboard.services.experience_service import recompute_levels
from memeboard.services.ranking_service import refresh_ranks
from memeboard.services.reconciliation_service import reconcile_counters

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from memeboard.config import MemeboardConfig
    from memeboard.engine.cache import ConfigCache

logger = logging.getLogger(__name__)

RANK_REFRESH_JOB = "rank_refresh"
RECONCILIATION_JOB = "counter_reconciliation"


# ---------------------------------------------------------------------------
# Job bodies
# ---------------------------------------------------------------------------
def rank_refresh_job(engine: Engine) -> None:
    try:
        refresh_ranks(engine)
    except Exception:
        logger.exception("Rank refresh task failed", extra={"task": RANK_REFRESH_JOB})


def reconciliation_job(engine: Engine, cache: ConfigCache) -> None:
    """Fix counter drift, then stored levels."""
    try:
        counters = reconcile_counters(engine)
        levels = recompute_levels(engine, cache)
        logger.info(
            "Reconciliation task complete: counters checked=%d corrected=%d, "
            "levels checked=%d corrected=%d",
            counters["checked"], counters["corrected"],
            levels["checked"], levels["corrected"],
        )
    except Exception:
        logger.exception("Reconciliation task failed", extra={"task": RECONCILIATION_JOB})


# ---------------------------------------------------------------------------
# Builder
# ---------------------------------------------------------------------------
def build_scheduler(
    engine: Engine,
    cache: ConfigCache,
    cfg: MemeboardConfig,
) -> BackgroundScheduler:
    """Return an unstarted scheduler with both jobs registered."""
    scheduler = BackgroundScheduler(timezone="UTC")

    scheduler.add_job(
        rank_refresh_job,
        "interval",
        seconds=cfg.rank_refresh_seconds,
        args=[engine],
        id=RANK_REFRESH_JOB,
        max_instances=1,
        coalesce=True,
    )
    scheduler.add_job(
        reconciliation_job,
        "interval",
        minutes=cfg.reconcile_minutes,
        args=[engine, cache],
        id=RECONCILIATION_JOB,
        max_instances=1,
        coalesce=True,
    )

    logger.info(
        "Scheduler configured: rank refresh every %ds, reconciliation every %dm",
        cfg.rank_refresh_seconds, cfg.reconcile_minutes,
    )
    return scheduler
