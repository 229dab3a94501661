"""
memeboard.engine.experience — Experience Ledger math
=====================================================

Pure calculation, no DB I/O.  The persisted side lives in
:mod:`memeboard.services.experience_service`.

Awards (defaults, overridable in ``settings``):

    post_created     → +10 to the post's author
    post_liked       → +2  to the post's author (not the liker)
    comment_created  → +3  to the comment's author

Reversals (unlike, comment deletion, post deletion) only take experience
back when ``experience.clawback_on_reversal`` is enabled.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from memeboard.engine.events import AWARD_SETTING_KEYS, BASE_XP, ActionKind
from memeboard.engine.levels import LevelTable

if TYPE_CHECKING:
    from memeboard.engine.cache import ConfigCache

CLAWBACK_SETTING = "experience.clawback_on_reversal"


@dataclass
class ExperienceResult:
    """Outcome of applying one delta to a profile."""

    xp_delta: int
    new_xp: int
    old_level: int
    new_level: int

    @property
    def leveled_up(self) -> bool:
        return self.new_level > self.old_level

    @property
    def leveled_down(self) -> bool:
        return self.new_level < self.old_level


def award_amount(action: ActionKind, cache: ConfigCache | None = None) -> int:
    """XP granted for *action*, never negative."""
    default = BASE_XP[action]
    if cache is None:
        return default
    return max(cache.get_int(AWARD_SETTING_KEYS[action], default), 0)


def clawback_enabled(cache: ConfigCache | None = None) -> bool:
    if cache is None:
        return False
    return cache.get_bool(CLAWBACK_SETTING, False)


def apply_delta(
    current_xp: int,
    delta: int,
    levels: LevelTable,
    *,
    current_level: int | None = None,
) -> ExperienceResult:
    """Apply *delta* to *current_xp* and recompute the level.

    Experience is clamped at zero, so a reversal larger than the remaining
    balance empties it instead of going negative.  ``xp_delta`` on the
    result is the delta actually applied.
    """
    old_level = current_level if current_level is not None else levels.level_for(current_xp)
    new_xp = max(current_xp + delta, 0)
    return ExperienceResult(
        xp_delta=new_xp - current_xp,
        new_xp=new_xp,
        old_level=old_level,
        new_level=levels.level_for(new_xp),
    )


def reversal_delta(awarded: int) -> int:
    """Delta that cancels an earlier net award of *awarded* XP."""
    return -awarded if awarded > 0 else 0
