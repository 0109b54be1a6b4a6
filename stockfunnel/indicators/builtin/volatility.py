from __future__ import annotations

from typing import Sequence

from stockfunnel.core.types import Bar
from stockfunnel.indicators.base import Indicator, true_ranges, wilder_series


class ATR(Indicator):
    def __init__(self, period: int = 14) -> None:
        self.name = "ATR"
        self.warmup_period = period + 1
        self.period = period

    def calculate(self, bars: Sequence[Bar]) -> float | None:
        if len(bars) < self.warmup_period:
            return None
        series = wilder_series(true_ranges(bars), self.period)
        return series[-1] if series else None
