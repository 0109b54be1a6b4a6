from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Sequence

from stockfunnel.core.types import Bar


class Indicator(ABC):
    """An indicator evaluated over bars ordered oldest first.

    ``calculate`` returns ``None`` when fewer than ``warmup_period`` bars are
    supplied; it never raises for short input.
    """

    name: str
    warmup_period: int

    @abstractmethod
    def calculate(self, bars: Sequence[Bar]) -> float | dict | None: ...


@dataclass(frozen=True)
class IndicatorSpec:
    name: str
    params: dict[str, Any]

    @property
    def key(self) -> str:
        main_param = next(iter(self.params.values()), "")
        return f"{self.name}_{main_param}"


def ema_series(values: Sequence[float], period: int) -> list[float]:
    """EMA seeded with the SMA of the first ``period`` values.

    The result is aligned to ``values[period - 1:]``.
    """
    if period <= 0 or len(values) < period:
        return []
    multiplier = 2 / (period + 1)
    ema = sum(values[:period]) / period
    out = [ema]
    for value in values[period:]:
        ema = (value - ema) * multiplier + ema
        out.append(ema)
    return out


def true_ranges(bars: Sequence[Bar]) -> list[float]:
    """True range for each bar after the first."""
    out = []
    for prev, cur in zip(bars, bars[1:]):
        out.append(max(
            cur.high - cur.low,
            abs(cur.high - prev.close),
            abs(cur.low - prev.close),
        ))
    return out


def wilder_series(values: Sequence[float], period: int) -> list[float]:
    """Wilder-smoothed average seeded with a simple mean."""
    if period <= 0 or len(values) < period:
        return []
    avg = sum(values[:period]) / period
    out = [avg]
    for value in values[period:]:
        avg = (avg * (period - 1) + value) / period
        out.append(avg)
    return out
