from datetime import datetime, timedelta

import pytest

from stockfunnel.analysis.structure import (
    breakout_age,
    find_resistance,
    is_consolidating,
    nearest_resistance_above,
    nearest_swing_low_below,
    pct_change,
    range_pct,
    structure_summary,
    swing_highs,
    swing_lows,
    trend_strength,
)
from stockfunnel.core.types import Bar


def _make_bar(idx: int, high: float, low: float, close: float | None = None) -> Bar:
    close = close if close is not None else (high + low) / 2
    return Bar("TEST", datetime(2025, 1, 1) + timedelta(days=idx), close, high, low, close, 1000.0)


def _flat_with_peak(n: int = 20, peak_at: int = 14, peak: float = 103.0) -> list[Bar]:
    """Flat 99-101 range with a single swing high."""
    return [_make_bar(i, peak if i == peak_at else 101.0, 99.0, 100.0) for i in range(n)]


class TestSwingPoints:
    def test_single_peak_is_swing_high(self):
        assert swing_highs(_flat_with_peak()) == [103.0]

    def test_equal_neighbours_are_not_swings(self):
        bars = [_make_bar(i, 101.0, 99.0) for i in range(10)]
        assert swing_highs(bars) == []
        assert swing_lows(bars) == []

    def test_trough_is_swing_low(self):
        bars = [_make_bar(i, 101.0, 95.0 if i == 5 else 99.0) for i in range(10)]
        assert swing_lows(bars) == [95.0]


class TestRanges:
    def test_range_pct(self):
        bars = [_make_bar(0, 105.0, 100.0), _make_bar(1, 110.0, 101.0)]
        assert range_pct(bars) == pytest.approx(10.0)

    def test_range_pct_empty(self):
        assert range_pct([]) is None

    def test_is_consolidating(self):
        assert is_consolidating(_flat_with_peak(), lookback=10, max_range_pct=5.0)

    def test_wide_range_not_consolidating(self):
        bars = [_make_bar(i, 100.0 + 2 * i, 98.0 + 2 * i) for i in range(10)]
        assert not is_consolidating(bars, lookback=10, max_range_pct=5.0)

    def test_too_few_bars_not_consolidating(self):
        assert not is_consolidating(_flat_with_peak(5, peak_at=2), lookback=10)


class TestLevels:
    def test_find_resistance(self):
        assert find_resistance(_flat_with_peak(), lookback=20) == 103.0

    def test_find_resistance_needs_lookback(self):
        assert find_resistance(_flat_with_peak(10, peak_at=5), lookback=20) is None

    def test_nearest_resistance_above(self):
        bars = _flat_with_peak()
        assert nearest_resistance_above(bars, 100.0) == 103.0
        assert nearest_resistance_above(bars, 104.0) is None

    def test_nearest_swing_low_picks_highest_below(self):
        lows = {4: 95.0, 12: 97.0}
        bars = [_make_bar(i, 105.0, lows.get(i, 99.0)) for i in range(20)]
        assert nearest_swing_low_below(bars, 100.0) == 97.0
        assert nearest_swing_low_below(bars, 96.0) == 95.0


class TestMomentumHelpers:
    def test_pct_change(self):
        assert pct_change([100, 101, 102, 103, 104, 110], 5) == pytest.approx(10.0)

    def test_pct_change_short(self):
        assert pct_change([100, 110], 5) is None

    def test_trend_strength_sign(self):
        assert trend_strength([100 + i for i in range(20)]) > 0
        assert trend_strength([100 - i for i in range(20)]) < 0
        assert trend_strength([1, 2]) is None

    def test_breakout_age(self):
        bars = [_make_bar(i, 101.0, 99.0, 100.0) for i in range(25)]
        bars.append(_make_bar(25, 106.0, 100.0, 105.0))
        bars += [_make_bar(26 + i, 106.0, 103.0, 104.0) for i in range(3)]
        assert breakout_age(bars) == 3

    def test_no_breakout(self):
        bars = [_make_bar(i, 101.0, 99.0, 100.0) for i in range(40)]
        assert breakout_age(bars) is None


class TestStructureSummary:
    def test_higher_highs_higher_lows(self):
        bars = []
        # zig-zag that steps up: peaks every 4 bars
        for i in range(40):
            base = 100 + i * 0.5
            bump = 3.0 if i % 4 == 2 else (-3.0 if i % 4 == 0 else 0.0)
            bars.append(_make_bar(i, base + 1 + bump, base - 1 + bump))
        summary = structure_summary(bars)
        assert summary["pattern"] == "HH-HL"
        assert summary["higher_highs"] and summary["higher_lows"]
        assert summary["trend_strength"] > 0

    def test_insufficient_swings(self):
        bars = [_make_bar(i, 101.0, 99.0) for i in range(30)]
        assert structure_summary(bars)["pattern"] == "insufficient"
