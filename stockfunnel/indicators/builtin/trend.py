from __future__ import annotations

from typing import Sequence

from stockfunnel.core.types import Bar
from stockfunnel.indicators.base import Indicator, true_ranges, wilder_series


class ADX(Indicator):
    def __init__(self, period: int = 14) -> None:
        self.name = "ADX"
        self.period = period
        self.warmup_period = 2 * period + 1

    def calculate(self, bars: Sequence[Bar]) -> float | None:
        if len(bars) < self.warmup_period:
            return None

        period = self.period

        # Step 1: directional movement and true range for each bar pair
        plus_dm: list[float] = []
        minus_dm: list[float] = []
        for prev, cur in zip(bars, bars[1:]):
            high_diff = cur.high - prev.high
            low_diff = prev.low - cur.low
            plus_dm.append(high_diff if high_diff > low_diff and high_diff > 0 else 0.0)
            minus_dm.append(low_diff if low_diff > high_diff and low_diff > 0 else 0.0)
        trs = true_ranges(bars)

        # Step 2: Wilder running sums, one DX per step
        smoothed_plus = sum(plus_dm[:period])
        smoothed_minus = sum(minus_dm[:period])
        smoothed_tr = sum(trs[:period])
        dx_values = [_dx(smoothed_plus, smoothed_minus, smoothed_tr)]

        for i in range(period, len(plus_dm)):
            smoothed_plus = smoothed_plus - smoothed_plus / period + plus_dm[i]
            smoothed_minus = smoothed_minus - smoothed_minus / period + minus_dm[i]
            smoothed_tr = smoothed_tr - smoothed_tr / period + trs[i]
            dx_values.append(_dx(smoothed_plus, smoothed_minus, smoothed_tr))

        # Step 3: ADX is the Wilder average of DX
        series = wilder_series(dx_values, period)
        return series[-1] if series else None


def _dx(plus_dm: float, minus_dm: float, tr: float) -> float:
    if tr == 0:
        return 0.0
    plus_di = 100.0 * plus_dm / tr
    minus_di = 100.0 * minus_dm / tr
    di_sum = plus_di + minus_di
    if di_sum == 0:
        return 0.0
    return 100.0 * abs(plus_di - minus_di) / di_sum


class Supertrend(Indicator):
    """ATR band trend follower.

    Returns ``{"trend": "bullish"|"bearish", "value": band, "direction": 1|-1}``
    where ``value`` is the active trailing band (lower band in an uptrend).
    """

    def __init__(self, period: int = 10, multiplier: float = 3.0) -> None:
        self.name = "SUPERTREND"
        self.period = period
        self.multiplier = multiplier
        self.warmup_period = period + 1

    def calculate(self, bars: Sequence[Bar]) -> dict | None:
        if len(bars) < self.warmup_period:
            return None

        atrs = wilder_series(true_ranges(bars), self.period)
        # atrs[0] belongs to bars[period]
        start = self.period
        final_upper = final_lower = 0.0
        direction = 1
        prev_close = bars[start - 1].close

        for offset, atr in enumerate(atrs):
            bar = bars[start + offset]
            mid = (bar.high + bar.low) / 2
            basic_upper = mid + self.multiplier * atr
            basic_lower = mid - self.multiplier * atr

            if offset == 0:
                final_upper, final_lower = basic_upper, basic_lower
                direction = 1 if bar.close >= mid else -1
            else:
                if basic_upper < final_upper or prev_close > final_upper:
                    final_upper = basic_upper
                if basic_lower > final_lower or prev_close < final_lower:
                    final_lower = basic_lower
                if direction == 1 and bar.close < final_lower:
                    direction = -1
                elif direction == -1 and bar.close > final_upper:
                    direction = 1
            prev_close = bar.close

        return {
            "trend": "bullish" if direction == 1 else "bearish",
            "value": final_lower if direction == 1 else final_upper,
            "direction": direction,
        }
