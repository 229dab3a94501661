"""
tests/test_levels.py — Level Calculator Unit Tests
===================================================
"""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from memeboard.constants import DEFAULT_LEVEL_BREAKPOINTS
from memeboard.engine.cache import ConfigCache
from memeboard.engine.levels import LevelTable, level_for_xp, validate_breakpoints


class TestLevelFor:
    def test_zero_xp_is_level_one(self):
        assert LevelTable().level_for(0) == 1

    @pytest.mark.parametrize(
        "xp, expected",
        [(0, 1), (99, 1), (100, 2), (249, 2), (250, 3), (11999, 9), (12000, 10), (10**9, 10)],
    )
    def test_default_breakpoints(self, xp, expected):
        assert LevelTable().level_for(xp) == expected

    def test_monotonic_over_range(self):
        table = LevelTable()
        levels = [table.level_for(xp) for xp in range(0, 13000, 7)]
        assert levels == sorted(levels)
        assert min(levels) == table.level_for(0)

    def test_negative_xp_rejected(self):
        with pytest.raises(ValueError):
            LevelTable().level_for(-1)

    def test_custom_table(self):
        table = LevelTable([0, 5, 10])
        assert [table.level_for(x) for x in (0, 4, 5, 9, 10, 50)] == [1, 1, 2, 2, 3, 3]
        assert table.max_level == 3


class TestXpForLevel:
    def test_thresholds(self):
        table = LevelTable([0, 100, 250])
        assert table.xp_for_level(1) == 0
        assert table.xp_for_level(3) == 250
        assert table.xp_for_level(4) is None

    def test_level_zero_rejected(self):
        with pytest.raises(ValueError):
            LevelTable().xp_for_level(0)


class TestValidateBreakpoints:
    @pytest.mark.parametrize(
        "bad",
        [[], [5, 10], [0, 10, 10], [0, 20, 10], [0, "10"], [0, True], "0,10", None],
    )
    def test_rejects_invalid_tables(self, bad):
        with pytest.raises(ValueError):
            validate_breakpoints(bad)

    def test_accepts_single_level(self):
        assert validate_breakpoints([0]) == [0]


class TestFromCache:
    def test_reads_configured_table(self):
        cache = MagicMock(spec=ConfigCache)
        cache.get_setting.return_value = [0, 10, 20]
        assert LevelTable.from_cache(cache).breakpoints == (0, 10, 20)
        assert level_for_xp(15, cache) == 2

    def test_falls_back_on_missing_or_broken_setting(self):
        cache = MagicMock(spec=ConfigCache)
        cache.get_setting.return_value = None
        assert LevelTable.from_cache(cache).breakpoints == tuple(DEFAULT_LEVEL_BREAKPOINTS)

        cache.get_setting.return_value = [3, 2, 1]
        assert LevelTable.from_cache(cache).breakpoints == tuple(DEFAULT_LEVEL_BREAKPOINTS)

    def test_no_cache_uses_defaults(self):
        assert LevelTable.from_cache(None).breakpoints == tuple(DEFAULT_LEVEL_BREAKPOINTS)
