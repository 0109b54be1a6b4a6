from __future__ import annotations

from typing import Mapping

from stockfunnel.core.config import UniverseConfig
from stockfunnel.core.types import CandleSeries, Instrument, Timeframe


class BasicFilter:
    """Cheap eligibility checks applied before any candle is loaded.

    The price band only applies when the instrument carries a last traded
    price. Without one the price check is skipped and the instrument passes.
    """

    def __init__(
        self,
        min_price: float = 50.0,
        max_price: float = 50_000.0,
        exclude_penny_stocks: bool = True,
        penny_threshold: float = 10.0,
    ) -> None:
        self.min_price = min_price
        self.max_price = max_price
        self.exclude_penny_stocks = exclude_penny_stocks
        self.penny_threshold = penny_threshold

    @classmethod
    def from_config(cls, config: UniverseConfig) -> BasicFilter:
        return cls(
            min_price=config.min_price,
            max_price=config.max_price,
            exclude_penny_stocks=config.exclude_penny_stocks,
            penny_threshold=config.penny_threshold,
        )

    def rejection_reason(self, instrument: Instrument) -> str | None:
        price = instrument.ltp
        if price is None:
            return None
        if self.exclude_penny_stocks and price < self.penny_threshold:
            return f"Penny stock (LTP {price:.2f} < {self.penny_threshold:g})"
        if price < self.min_price or price > self.max_price:
            return f"LTP {price:.2f} outside [{self.min_price:g}, {self.max_price:g}]"
        return None

    def passes(self, instrument: Instrument) -> bool:
        return self.rejection_reason(instrument) is None

    def filter(self, instruments: list[Instrument]) -> list[Instrument]:
        return [i for i in instruments if self.passes(i)]


class HistoryRequirement:
    """Minimum bar counts per timeframe."""

    def __init__(self, minimums: Mapping[Timeframe, int]) -> None:
        self.minimums = dict(minimums)

    @classmethod
    def swing(cls, min_daily: int = 50) -> HistoryRequirement:
        return cls({Timeframe.D1: min_daily})

    @classmethod
    def longterm(cls, min_daily: int = 100, min_weekly: int = 20) -> HistoryRequirement:
        return cls({Timeframe.D1: min_daily, Timeframe.W1: min_weekly})

    def shortfall(self, series_by_tf: Mapping[Timeframe, CandleSeries | None]) -> str | None:
        """Reason string for the first unmet minimum, or ``None``."""
        for tf, need in self.minimums.items():
            series = series_by_tf.get(tf)
            have = len(series) if series is not None else 0
            if have < need:
                return f"Insufficient {tf.value} history: have {have}, need {need}"
        return None
