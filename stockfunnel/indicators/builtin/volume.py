from __future__ import annotations

from typing import Sequence

from stockfunnel.core.types import Bar
from stockfunnel.indicators.base import Indicator


class VolumeMetrics(Indicator):
    """Latest volume against the average of the trailing window (latest bar included)."""

    def __init__(self, lookback: int = 20) -> None:
        self.name = "VOLUME"
        self.lookback = lookback
        self.warmup_period = 1

    def calculate(self, bars: Sequence[Bar]) -> dict | None:
        if not bars:
            return None
        volumes = [b.volume for b in bars[-self.lookback:]]
        latest = volumes[-1]
        average = sum(volumes) / len(volumes)
        return {
            "latest": latest,
            "average": average,
            "spike_ratio": latest / average if average > 0 else 0.0,
        }
