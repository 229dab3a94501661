"""
memeboard.services.experience_service — Ledger-backed XP application
=====================================================================

Applies awards and reversals to ``profiles.xp`` / ``profiles.level`` and
journals each one in ``xp_ledger``.

Every function here takes the caller's open :class:`Session` instead of an
engine: an award is part of the same transaction as the like, comment or
post that triggered it, so a failed write fails the action as a whole and
there is nothing to retry separately.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from memeboard.database.engine import get_session
from memeboard.database.models import Profile, XpLedger
from memeboard.engine.events import XpAward
from memeboard.engine.experience import (
    ExperienceResult,
    apply_delta,
    award_amount,
    clawback_enabled,
    reversal_delta,
)
from memeboard.engine.levels import LevelTable
from memeboard.errors import NotFoundError

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from memeboard.engine.cache import ConfigCache

logger = logging.getLogger(__name__)


def _lock_profile(session: Session, profile_id: str) -> Profile:
    """Load *profile_id* with a row lock (``SELECT … FOR UPDATE``)."""
    profile = session.scalar(
        select(Profile)
        .where(Profile.id == profile_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    if profile is None:
        raise NotFoundError(f"Profile {profile_id} not found")
    return profile


def _apply(
    session: Session,
    profile: Profile,
    delta: int,
    levels: LevelTable,
    *,
    action: str,
    subject_id: str,
    reversal: bool,
) -> ExperienceResult:
    result = apply_delta(profile.xp, delta, levels, current_level=profile.level)
    profile.xp = result.new_xp
    profile.level = result.new_level
    session.add(XpLedger(
        profile_id=profile.id,
        action=action,
        subject_id=subject_id,
        xp_delta=result.xp_delta,
        reversal=reversal,
    ))
    if result.leveled_up:
        logger.info(
            "Profile %s reached level %d (%d XP)", profile.id, result.new_level, result.new_xp,
        )
    return result


def apply_award(session: Session, cache: ConfigCache | None, award: XpAward) -> ExperienceResult:
    """Grant the configured XP for *award* inside the caller's transaction."""
    profile = _lock_profile(session, award.profile_id)
    amount = award_amount(award.action, cache)
    return _apply(
        session,
        profile,
        amount,
        LevelTable.from_cache(cache),
        action=award.action.value,
        subject_id=award.subject_id,
        reversal=False,
    )


def reverse_awards(
    session: Session,
    cache: ConfigCache | None,
    subject_ids: Iterable[str] = (),
    *,
    subject_prefix: str | None = None,
) -> list[ExperienceResult]:
    """Take back what the given subjects earned, if clawback is enabled.

    The net ledger total per (profile, action, subject) is reversed, so
    reversing twice never takes more than was granted.  Returns one result
    per subject reversed; empty when clawback is off.
    """
    if not clawback_enabled(cache):
        return []

    ids = list(subject_ids)
    conditions = []
    if ids:
        conditions.append(XpLedger.subject_id.in_(ids))
    if subject_prefix:
        conditions.append(XpLedger.subject_id.startswith(subject_prefix, autoescape=True))
    if not conditions:
        return []

    rows = session.execute(
        select(
            XpLedger.profile_id,
            XpLedger.action,
            XpLedger.subject_id,
            func.sum(XpLedger.xp_delta).label("net"),
        )
        .where(or_(*conditions))
        .group_by(XpLedger.profile_id, XpLedger.action, XpLedger.subject_id)
        .order_by(XpLedger.profile_id, XpLedger.subject_id)
    ).all()

    levels = LevelTable.from_cache(cache)
    results: list[ExperienceResult] = []
    for row in rows:
        delta = reversal_delta(int(row.net or 0))
        if delta == 0:
            continue
        results.append(_apply(
            session,
            _lock_profile(session, row.profile_id),
            delta,
            levels,
            action=row.action,
            subject_id=row.subject_id,
            reversal=True,
        ))
    if results:
        logger.info("Clawed back XP from %d ledger subjects", len(results))
    return results


def recompute_levels(engine: Engine, cache: ConfigCache | None) -> dict[str, int]:
    """Bring every profile's level in line with the current breakpoints.

    Runs after the breakpoint table changes and as part of scheduled
    reconciliation.  Returns ``{"checked": N, "corrected": M}``.
    """
    levels = LevelTable.from_cache(cache)
    corrected = 0
    with get_session(engine) as session:
        profiles = session.scalars(select(Profile)).all()
        for profile in profiles:
            expected = levels.level_for(profile.xp)
            if profile.level != expected:
                profile.level = expected
                corrected += 1

    if corrected:
        logger.warning("Level recompute: corrected %d/%d profiles", corrected, len(profiles))
    return {"checked": len(profiles), "corrected": corrected}


def ledger_for(engine: Engine, profile_id: str, limit: int = 50) -> list[dict]:
    """Most recent ledger entries for one profile, newest first."""
    with get_session(engine) as session:
        rows = session.scalars(
            select(XpLedger)
            .where(XpLedger.profile_id == profile_id)
            .order_by(XpLedger.created_at.desc(), XpLedger.id.desc())
            .limit(limit)
        ).all()
        return [
            {
                "action": row.action,
                "subject_id": row.subject_id,
                "xp_delta": row.xp_delta,
                "reversal": row.reversal,
                "created_at": row.created_at.isoformat() if row.created_at else None,
            }
            for row in rows
        ]
