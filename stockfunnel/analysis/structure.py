"""Price-structure helpers shared by the screener, setup detector, ranker and
trade plan builder.

All functions take bars ordered oldest first and never raise on short input;
they return ``None`` (or an empty list) when there is not enough history.
"""
from __future__ import annotations

from typing import Any, Sequence

from stockfunnel.core.types import Bar


def swing_high_indices(bars: Sequence[Bar], width: int = 1) -> list[int]:
    """Indices of bars whose high exceeds the ``width`` bars on each side."""
    out = []
    for i in range(width, len(bars) - width):
        high = bars[i].high
        if all(high > bars[j].high for j in range(i - width, i + width + 1) if j != i):
            out.append(i)
    return out


def swing_low_indices(bars: Sequence[Bar], width: int = 1) -> list[int]:
    """Indices of bars whose low is below the ``width`` bars on each side."""
    out = []
    for i in range(width, len(bars) - width):
        low = bars[i].low
        if all(low < bars[j].low for j in range(i - width, i + width + 1) if j != i):
            out.append(i)
    return out


def swing_highs(bars: Sequence[Bar], width: int = 1) -> list[float]:
    return [bars[i].high for i in swing_high_indices(bars, width)]


def swing_lows(bars: Sequence[Bar], width: int = 1) -> list[float]:
    return [bars[i].low for i in swing_low_indices(bars, width)]


def range_pct(bars: Sequence[Bar]) -> float | None:
    if not bars:
        return None
    low = min(b.low for b in bars)
    if low <= 0:
        return None
    return (max(b.high for b in bars) - low) / low * 100.0


def is_consolidating(bars: Sequence[Bar], lookback: int = 10, max_range_pct: float = 5.0) -> bool:
    """True when the trailing ``lookback`` bars span less than ``max_range_pct``."""
    if len(bars) < lookback:
        return False
    spread = range_pct(bars[-lookback:])
    return spread is not None and round(spread, 2) < max_range_pct


def find_resistance(bars: Sequence[Bar], lookback: int = 20) -> float | None:
    """Highest swing high in the trailing window."""
    if len(bars) < lookback:
        return None
    highs = swing_highs(bars[-lookback:])
    return max(highs) if highs else None


def nearest_swing_low_below(bars: Sequence[Bar], price: float, lookback: int = 20) -> float | None:
    """Highest swing low under ``price`` in the trailing window."""
    if len(bars) < lookback:
        return None
    lows = [low for low in swing_lows(bars[-lookback:]) if low < price]
    return max(lows) if lows else None


def nearest_resistance_above(bars: Sequence[Bar], price: float, lookback: int = 20) -> float | None:
    """Lowest swing high over ``price`` in the trailing window."""
    if len(bars) < lookback:
        return None
    highs = [high for high in swing_highs(bars[-lookback:]) if high > price]
    return min(highs) if highs else None


def pct_change(closes: Sequence[float], periods: int) -> float | None:
    if len(closes) <= periods or closes[-periods - 1] == 0:
        return None
    base = closes[-periods - 1]
    return (closes[-1] - base) / base * 100.0


def breakout_age(bars: Sequence[Bar], lookback: int = 20, window: int = 30) -> int | None:
    """Bars since the most recent close above the prior ``lookback``-bar high.

    Only the last ``window`` bars are searched; ``None`` means no breakout.
    """
    n = len(bars)
    if n <= lookback:
        return None
    for i in range(n - 1, max(lookback, n - window) - 1, -1):
        prior_high = max(b.high for b in bars[i - lookback:i])
        if bars[i].close > prior_high:
            return n - 1 - i
    return None


def trend_strength(closes: Sequence[float], lookback: int = 20) -> float | None:
    """Least-squares slope of the trailing closes as percent of mean price per bar."""
    window = list(closes[-lookback:])
    n = len(window)
    if n < 3:
        return None
    mean_x = (n - 1) / 2
    mean_y = sum(window) / n
    if mean_y == 0:
        return None
    numerator = sum((i - mean_x) * (y - mean_y) for i, y in enumerate(window))
    denominator = sum((i - mean_x) ** 2 for i in range(n))
    return numerator / denominator / mean_y * 100.0


def structure_summary(bars: Sequence[Bar], lookback: int = 50) -> dict[str, Any]:
    """Higher-high/higher-low pattern, breakout age and trend slope."""
    window = list(bars[-lookback:])
    high_idx = swing_high_indices(window, width=2)
    low_idx = swing_low_indices(window, width=2)

    higher_highs = len(high_idx) >= 2 and window[high_idx[-1]].high > window[high_idx[-2]].high
    higher_lows = len(low_idx) >= 2 and window[low_idx[-1]].low > window[low_idx[-2]].low
    lower_highs = len(high_idx) >= 2 and window[high_idx[-1]].high < window[high_idx[-2]].high
    lower_lows = len(low_idx) >= 2 and window[low_idx[-1]].low < window[low_idx[-2]].low

    if higher_highs and higher_lows:
        pattern = "HH-HL"
    elif lower_highs and lower_lows:
        pattern = "LH-LL"
    elif len(high_idx) < 2 or len(low_idx) < 2:
        pattern = "insufficient"
    else:
        pattern = "mixed"

    return {
        "pattern": pattern,
        "higher_highs": higher_highs,
        "higher_lows": higher_lows,
        "breakout_age": breakout_age(bars),
        "trend_strength": trend_strength([b.close for b in window]),
        "swing_high": window[high_idx[-1]].high if high_idx else None,
        "swing_low": window[low_idx[-1]].low if low_idx else None,
    }
