"""
memeboard.engine.ranking — Dense Rank Assignment
=================================================

Pure batch computation over an experience snapshot:

* order by experience descending, profile id ascending (deterministic);
* equal experience shares a rank;
* ranks are dense — after two profiles tied at rank 1 the next is rank 2.

Running it twice on the same snapshot yields the same ranks, so concurrent
refreshes can race on the ``rank`` column without harm.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

__all__ = ["RankEntry", "assign_dense_ranks"]


@dataclass(frozen=True, slots=True)
class RankEntry:
    profile_id: str
    xp: int
    rank: int


def assign_dense_ranks(snapshot: Iterable[tuple[str, int]]) -> list[RankEntry]:
    """Rank ``(profile_id, xp)`` pairs; result is in leaderboard order."""
    ordered = sorted(snapshot, key=lambda row: (-row[1], row[0]))

    entries: list[RankEntry] = []
    rank = 0
    previous_xp: int | None = None
    for profile_id, xp in ordered:
        if xp != previous_xp:
            rank += 1
            previous_xp = xp
        entries.append(RankEntry(profile_id=profile_id, xp=xp, rank=rank))
    return entries
