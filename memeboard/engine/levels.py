"""
memeboard.engine.levels — Level Calculator
===========================================

Levels are a monotonic step function of cumulative experience.  The steps
are an ascending breakpoint table stored in the ``leveling.breakpoints``
setting: ``breakpoints[n]`` is the XP needed to reach level ``n + 1``, and
``breakpoints[0]`` is always ``0`` so every profile starts at level 1.

    >>> table = LevelTable([0, 100, 250])
    >>> table.level_for(0), table.level_for(99), table.level_for(100), table.level_for(10_000)
    (1, 1, 2, 3)
"""

from __future__ import annotations

from bisect import bisect_right
from collections.abc import Sequence
from typing import TYPE_CHECKING

from memeboard.constants import DEFAULT_LEVEL_BREAKPOINTS

if TYPE_CHECKING:
    from memeboard.engine.cache import ConfigCache

BREAKPOINTS_SETTING = "leveling.breakpoints"


def validate_breakpoints(breakpoints: Sequence[object]) -> list[int]:
    """Return *breakpoints* as ints or raise :class:`ValueError`.

    The table must be non-empty, start at 0 and be strictly ascending.
    """
    if isinstance(breakpoints, (str, bytes)) or not isinstance(breakpoints, Sequence):
        raise ValueError("Level breakpoints must be a list of integers")
    if not breakpoints:
        raise ValueError("Level breakpoints must not be empty")

    values: list[int] = []
    for raw in breakpoints:
        if isinstance(raw, bool) or not isinstance(raw, int):
            raise ValueError(f"Level breakpoint {raw!r} is not an integer")
        values.append(raw)

    if values[0] != 0:
        raise ValueError("The first level breakpoint must be 0")
    for prev, cur in zip(values, values[1:]):
        if cur <= prev:
            raise ValueError(
                f"Level breakpoints must be strictly ascending ({prev} → {cur})"
            )
    return values


class LevelTable:
    """Immutable breakpoint table; pure lookups only."""

    __slots__ = ("_breakpoints",)

    def __init__(self, breakpoints: Sequence[int] = DEFAULT_LEVEL_BREAKPOINTS) -> None:
        self._breakpoints: tuple[int, ...] = tuple(validate_breakpoints(breakpoints))

    @classmethod
    def from_cache(cls, cache: ConfigCache | None) -> LevelTable:
        """Build the table from the settings cache, falling back to defaults."""
        if cache is None:
            return cls()
        raw = cache.get_setting(BREAKPOINTS_SETTING)
        if raw is None:
            return cls()
        try:
            return cls(raw)
        except ValueError:
            # Admin writes are validated; only a hand-edited row lands here.
            return cls()

    @property
    def breakpoints(self) -> tuple[int, ...]:
        return self._breakpoints

    @property
    def max_level(self) -> int:
        return len(self._breakpoints)

    def level_for(self, xp: int) -> int:
        """Level reached with *xp* cumulative experience."""
        if xp < 0:
            raise ValueError(f"Experience cannot be negative: {xp}")
        return bisect_right(self._breakpoints, xp)

    def xp_for_level(self, level: int) -> int | None:
        """XP needed to reach *level*, or ``None`` past the top of the table."""
        if level < 1:
            raise ValueError(f"Levels start at 1, got {level}")
        if level > self.max_level:
            return None
        return self._breakpoints[level - 1]

    def __repr__(self) -> str:
        return f"<LevelTable {list(self._breakpoints)}>"


def level_for_xp(xp: int, cache: ConfigCache | None = None) -> int:
    """Convenience wrapper: level for *xp* under the configured table."""
    return LevelTable.from_cache(cache).level_for(xp)
