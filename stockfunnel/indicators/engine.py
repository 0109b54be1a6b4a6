from __future__ import annotations

import logging
import math
from typing import Any, Sequence

from stockfunnel.core.config import IndicatorConfig
from stockfunnel.core.types import Bar, CandleSeries, IndicatorSet
from stockfunnel.indicators.base import Indicator, IndicatorSpec
from stockfunnel.indicators.builtin.momentum import MACD, RSI
from stockfunnel.indicators.builtin.moving_average import EMA, SMA
from stockfunnel.indicators.builtin.trend import ADX, Supertrend
from stockfunnel.indicators.builtin.volatility import ATR
from stockfunnel.indicators.builtin.volume import VolumeMetrics

logger = logging.getLogger(__name__)

_INDICATOR_REGISTRY: dict[str, type[Indicator]] = {
    "SMA": SMA,
    "EMA": EMA,
    "RSI": RSI,
    "ATR": ATR,
    "ADX": ADX,
    "MACD": MACD,
    "SUPERTREND": Supertrend,
    "VOLUME": VolumeMetrics,
}


class IndicatorEngine:
    def __init__(self) -> None:
        self._indicators: dict[str, Indicator] = {}

    def register(self, spec: IndicatorSpec, key: str | None = None) -> None:
        cls = _INDICATOR_REGISTRY.get(spec.name)
        if cls is None:
            raise ValueError(f"Unknown indicator: {spec.name}")
        self._indicators[key or spec.key] = cls(**spec.params)

    def compute(self, bars: Sequence[Bar]) -> dict[str, float | dict | None]:
        """Evaluate every registered indicator.

        An indicator that raises or yields a non-finite number is reported as
        ``None``; one bad indicator never hides the others.
        """
        results: dict[str, float | dict | None] = {}
        for key, ind in self._indicators.items():
            try:
                results[key] = _sanitize(ind.calculate(bars))
            except Exception as exc:
                logger.warning("Indicator %s failed: %s", key, exc)
                results[key] = None
        return results

    @property
    def max_warmup(self) -> int:
        if not self._indicators:
            return 0
        return max(ind.warmup_period for ind in self._indicators.values())


def _sanitize(value: Any) -> float | dict | None:
    if value is None:
        return None
    if isinstance(value, dict):
        for v in value.values():
            if isinstance(v, float) and not math.isfinite(v):
                return None
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        number = float(value)
        return number if math.isfinite(number) else None
    return None


def build_engine(config: IndicatorConfig) -> IndicatorEngine:
    """Engine registered with the standard funnel indicator set."""
    engine = IndicatorEngine()
    engine.register(IndicatorSpec("EMA", {"period": config.ema_fast}), key="ema20")
    engine.register(IndicatorSpec("EMA", {"period": config.ema_slow}), key="ema50")
    engine.register(IndicatorSpec("EMA", {"period": config.ema_trend}), key="ema200")
    engine.register(IndicatorSpec("RSI", {"period": config.rsi_period}), key="rsi")
    engine.register(IndicatorSpec("ADX", {"period": config.adx_period}), key="adx")
    engine.register(IndicatorSpec("ATR", {"period": config.atr_period}), key="atr")
    engine.register(
        IndicatorSpec("MACD", {
            "fast": config.macd_fast,
            "slow": config.macd_slow,
            "signal": config.macd_signal,
        }),
        key="macd",
    )
    engine.register(
        IndicatorSpec("SUPERTREND", {
            "period": config.supertrend_period,
            "multiplier": config.supertrend_multiplier,
        }),
        key="supertrend",
    )
    engine.register(IndicatorSpec("VOLUME", {"lookback": config.volume_lookback}), key="volume")
    return engine


def compute_indicator_set(
    series: CandleSeries,
    config: IndicatorConfig | None = None,
    engine: IndicatorEngine | None = None,
) -> IndicatorSet:
    engine = engine or build_engine(config or IndicatorConfig())
    values = engine.compute(series.bars)
    return IndicatorSet(
        ema20=values.get("ema20"),
        ema50=values.get("ema50"),
        ema200=values.get("ema200"),
        rsi=values.get("rsi"),
        adx=values.get("adx"),
        atr=values.get("atr"),
        macd=values.get("macd"),
        supertrend=values.get("supertrend"),
        volume=values.get("volume"),
        latest_close=series.latest_close,
    )
