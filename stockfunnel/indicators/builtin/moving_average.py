from __future__ import annotations

from typing import Sequence

from stockfunnel.core.types import Bar
from stockfunnel.indicators.base import Indicator, ema_series


class SMA(Indicator):
    def __init__(self, period: int) -> None:
        self.name = "SMA"
        self.warmup_period = period
        self.period = period

    def calculate(self, bars: Sequence[Bar]) -> float | None:
        if len(bars) < self.period:
            return None
        closes = [b.close for b in bars[-self.period:]]
        return sum(closes) / self.period


class EMA(Indicator):
    def __init__(self, period: int) -> None:
        self.name = "EMA"
        self.warmup_period = period
        self.period = period

    def calculate(self, bars: Sequence[Bar]) -> float | None:
        series = ema_series([b.close for b in bars], self.period)
        return series[-1] if series else None
