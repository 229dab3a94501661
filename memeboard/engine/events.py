"""
memeboard.engine.events — Award envelope and base award table
==============================================================

Every XP-earning action is normalized into an :class:`XpAward` before the
experience ledger applies it.  Award sizes come from the ``settings`` table;
:data:`BASE_XP` holds the fallback values used when a key is missing.
"""

from __future__ import annotations

from dataclasses import dataclass

from memeboard.database.models import ActionKind

__all__ = ["ActionKind", "BASE_XP", "AWARD_SETTING_KEYS", "XpAward", "like_subject_id"]

BASE_XP: dict[ActionKind, int] = {
    ActionKind.POST_CREATED: 10,
    ActionKind.POST_LIKED: 2,      # goes to the post's author, not the liker
    ActionKind.COMMENT_CREATED: 3,
}

AWARD_SETTING_KEYS: dict[ActionKind, str] = {
    kind: f"experience.award.{kind.value}" for kind in ActionKind
}


@dataclass(frozen=True, slots=True)
class XpAward:
    """Who earns experience, for which action, because of which record."""

    profile_id: str
    action: ActionKind
    subject_id: str


def like_subject_id(post_id: str, user_id: str) -> str:
    """Ledger subject for a like; likes have no surrogate id."""
    return f"{post_id}:{user_id}"
