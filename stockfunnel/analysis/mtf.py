"""Multi-timeframe trend and momentum aggregation.

Each available timeframe is scored independently (trend 0-100, momentum
0-100), classified bullish/bearish/neutral, and the results are combined with
style-specific weights. Timeframes that are missing or too short are left out
and the weights of the remaining ones are renormalised.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Mapping

from stockfunnel.analysis.structure import (
    pct_change,
    structure_summary,
    swing_high_indices,
    swing_low_indices,
)
from stockfunnel.core.types import CandleSeries, IndicatorSet, Timeframe

logger = logging.getLogger(__name__)

MIN_CANDLES: dict[Timeframe, int] = {
    Timeframe.M15: 50,
    Timeframe.H1: 30,
    Timeframe.D1: 50,
    Timeframe.W1: 20,
}

SWING_WEIGHTS: dict[Timeframe, float] = {
    Timeframe.W1: 0.20,
    Timeframe.D1: 0.40,
    Timeframe.H1: 0.25,
    Timeframe.M15: 0.15,
}

LONGTERM_WEIGHTS: dict[Timeframe, float] = {
    Timeframe.W1: 0.40,
    Timeframe.D1: 0.35,
    Timeframe.H1: 0.25,
}

_TREND_WEIGHT = 0.6
_MOMENTUM_WEIGHT = 0.4
_MOMENTUM_THRESHOLD_PCT = 2.0
_PRICE_CHANGE_BARS = 5


@dataclass
class TimeframeSnapshot:
    series: CandleSeries
    indicators: IndicatorSet


@dataclass
class TimeframeAnalysis:
    timeframe: Timeframe
    candles_count: int
    latest_close: float | None
    trend_score: float
    momentum_score: float
    trend_direction: str
    momentum_direction: str
    structure: dict[str, Any] = field(default_factory=dict)
    swing_highs: list[float] = field(default_factory=list)
    swing_lows: list[float] = field(default_factory=list)

    @property
    def combined_score(self) -> float:
        return self.trend_score * _TREND_WEIGHT + self.momentum_score * _MOMENTUM_WEIGHT

    def to_dict(self) -> dict[str, Any]:
        return {
            "timeframe": self.timeframe.value,
            "candles_count": self.candles_count,
            "latest_close": self.latest_close,
            "trend_score": self.trend_score,
            "momentum_score": self.momentum_score,
            "trend_direction": self.trend_direction,
            "momentum_direction": self.momentum_direction,
            "structure": self.structure,
        }


@dataclass
class MtfAnalysis:
    timeframes: dict[Timeframe, TimeframeAnalysis]
    multi_timeframe_score: float
    trend_alignment: dict[str, Any]
    momentum_alignment: dict[str, Any]
    support_resistance: dict[str, list[float]]
    entry_recommendations: list[dict[str, Any]]

    @property
    def aligned(self) -> bool:
        return bool(self.trend_alignment.get("aligned"))

    def to_dict(self) -> dict[str, Any]:
        return {
            "multi_timeframe_score": self.multi_timeframe_score,
            "trend_alignment": dict(self.trend_alignment),
            "momentum_alignment": dict(self.momentum_alignment),
            "support_resistance": {k: list(v) for k, v in self.support_resistance.items()},
            "entry_recommendations": list(self.entry_recommendations),
            "timeframes": {tf.value: a.to_dict() for tf, a in self.timeframes.items()},
        }


def trend_score(indicators: IndicatorSet) -> float:
    score = 0.0
    max_score = 0.0

    if indicators.ema20 is not None and indicators.ema50 is not None:
        max_score += 20
        if indicators.ema20 > indicators.ema50:
            score += 20
    if indicators.ema20 is not None and indicators.ema200 is not None:
        max_score += 20
        if indicators.ema20 > indicators.ema200:
            score += 20
    if indicators.supertrend is not None:
        max_score += 30
        if indicators.supertrend_bullish:
            score += 30
    if indicators.adx is not None:
        max_score += 30
        if indicators.adx > 25:
            score += 30
        elif indicators.adx > 20:
            score += 15

    return round(score / max_score * 100, 2) if max_score > 0 else 0.0


def momentum_score(indicators: IndicatorSet, closes: list[float]) -> float:
    score = 0.0
    max_score = 0.0

    if indicators.rsi is not None:
        max_score += 30
        if 50 < indicators.rsi < 70:
            score += 30
        elif 40 < indicators.rsi < 60:
            score += 15
    if indicators.macd is not None:
        max_score += 30
        if indicators.macd_bullish:
            score += 30
    change = pct_change(closes, _PRICE_CHANGE_BARS)
    if change is not None:
        max_score += 40
        if change > 0:
            score += min(40.0, change * 2)

    return round(score / max_score * 100, 2) if max_score > 0 else 0.0


def trend_direction(indicators: IndicatorSet) -> str:
    """Bullish needs a bullish Supertrend and EMA20 above EMA50; missing EMAs read as neutral."""
    if indicators.supertrend is None:
        return "neutral"
    if indicators.supertrend_bearish:
        return "bearish"
    if indicators.ema20 is None or indicators.ema50 is None:
        return "neutral"
    return "bullish" if indicators.ema20 > indicators.ema50 else "neutral"


def momentum_direction(closes: list[float]) -> str:
    change = pct_change(closes, _PRICE_CHANGE_BARS)
    if change is None:
        return "neutral"
    if change > _MOMENTUM_THRESHOLD_PCT:
        return "bullish"
    if change < -_MOMENTUM_THRESHOLD_PCT:
        return "bearish"
    return "neutral"


def _count_directions(directions: list[str]) -> dict[str, Any]:
    return {
        "bullish_count": directions.count("bullish"),
        "bearish_count": directions.count("bearish"),
        "neutral_count": directions.count("neutral"),
        "total": len(directions),
    }


def trend_alignment(directions: list[str]) -> dict[str, Any]:
    counts = _count_directions(directions)
    counts["aligned"] = bool(directions) and (
        counts["bullish_count"] > counts["bearish_count"]
        and counts["bullish_count"] >= math.ceil(len(directions) / 2)
    )
    return counts


def momentum_alignment(directions: list[str]) -> dict[str, Any]:
    counts = _count_directions(directions)
    counts["aligned"] = counts["bullish_count"] > counts["bearish_count"]
    return counts


class MultiTimeframeAnalyzer:
    """Scores a set of per-timeframe snapshots for one instrument.

    Args:
        style: "swing" or "longterm"; selects timeframe weights.
        min_candles: Per-timeframe minimum bar counts; shorter series are ignored.
    """

    def __init__(
        self,
        style: str = "swing",
        min_candles: Mapping[Timeframe, int] | None = None,
    ) -> None:
        if style not in ("swing", "longterm"):
            raise ValueError(f"Unknown trading style: {style}")
        self._style = style
        self._weights = SWING_WEIGHTS if style == "swing" else LONGTERM_WEIGHTS
        self._min_candles = dict(min_candles or MIN_CANDLES)

    @property
    def timeframes(self) -> list[Timeframe]:
        return list(self._weights)

    def analyze(self, snapshots: Mapping[Timeframe, TimeframeSnapshot]) -> MtfAnalysis:
        analyses: dict[Timeframe, TimeframeAnalysis] = {}
        for tf in self._weights:
            snapshot = snapshots.get(tf)
            if snapshot is None:
                continue
            if len(snapshot.series) < self._min_candles.get(tf, 30):
                logger.debug(
                    "%s: %s has %d bars, below minimum; timeframe ignored",
                    snapshot.series.symbol, tf.value, len(snapshot.series),
                )
                continue
            analyses[tf] = self._analyze_timeframe(tf, snapshot)

        trend = trend_alignment([a.trend_direction for a in analyses.values()])
        momentum = momentum_alignment([a.momentum_direction for a in analyses.values()])
        score = self._weighted_score(analyses)
        levels = self._support_resistance(analyses)

        return MtfAnalysis(
            timeframes=analyses,
            multi_timeframe_score=score,
            trend_alignment=trend,
            momentum_alignment=momentum,
            support_resistance=levels,
            entry_recommendations=self._entry_recommendations(analyses, trend, levels, score),
        )

    def _analyze_timeframe(self, tf: Timeframe, snapshot: TimeframeSnapshot) -> TimeframeAnalysis:
        bars = snapshot.series.bars
        closes = snapshot.series.closes
        highs_idx = swing_high_indices(bars, width=2)[-5:]
        lows_idx = swing_low_indices(bars, width=2)[-5:]
        return TimeframeAnalysis(
            timeframe=tf,
            candles_count=len(bars),
            latest_close=snapshot.series.latest_close,
            trend_score=trend_score(snapshot.indicators),
            momentum_score=momentum_score(snapshot.indicators, closes),
            trend_direction=trend_direction(snapshot.indicators),
            momentum_direction=momentum_direction(closes),
            structure=structure_summary(bars) if len(bars) >= 20 else {},
            swing_highs=[bars[i].high for i in highs_idx],
            swing_lows=[bars[i].low for i in lows_idx],
        )

    def _weighted_score(self, analyses: Mapping[Timeframe, TimeframeAnalysis]) -> float:
        total = 0.0
        total_weight = 0.0
        for tf, analysis in analyses.items():
            weight = self._weights.get(tf, 0.0)
            if weight <= 0:
                continue
            total += analysis.combined_score * weight
            total_weight += weight
        if total_weight <= 0:
            return 0.0
        return round(min(100.0, max(0.0, total / total_weight)), 2)

    @staticmethod
    def _support_resistance(analyses: Mapping[Timeframe, TimeframeAnalysis]) -> dict[str, list[float]]:
        supports: list[float] = []
        resistances: list[float] = []
        for tf in (Timeframe.D1, Timeframe.W1):
            if tf in analyses:
                supports += analyses[tf].swing_lows
                resistances += analyses[tf].swing_highs
        hourly = analyses.get(Timeframe.H1)
        if hourly:
            supports += hourly.swing_lows[-3:]
            resistances += hourly.swing_highs[-3:]
        return {
            "support_levels": sorted(set(supports))[-5:][::-1],
            "resistance_levels": sorted(set(resistances))[:5],
            "intraday_support": hourly.swing_lows[-2:] if hourly else [],
            "intraday_resistance": hourly.swing_highs[-2:] if hourly else [],
        }

    @staticmethod
    def _entry_recommendations(
        analyses: Mapping[Timeframe, TimeframeAnalysis],
        trend: dict[str, Any],
        levels: dict[str, list[float]],
        score: float,
    ) -> list[dict[str, Any]]:
        daily = analyses.get(Timeframe.D1)
        if not trend["aligned"] or daily is None or daily.latest_close is None:
            return []

        price = daily.latest_close
        confirmations = sum(
            1 for tf in (Timeframe.H1, Timeframe.M15)
            if tf in analyses
            and analyses[tf].trend_direction == "bullish"
            and analyses[tf].momentum_direction == "bullish"
        )
        confidence = min(100.0, score + 5 * confirmations)
        recommendations = []

        supports = [s for s in levels["support_levels"] if s < price]
        if supports:
            support = supports[0]
            if (price - support) / support * 100 < 3:
                recommendations.append({
                    "type": "support_bounce",
                    "entry_zone": [round(support, 2), round(price, 2)],
                    "stop_loss": round(support * 0.98, 2),
                    "confidence": round(confidence, 2),
                })

        resistances = [r for r in levels["resistance_levels"] if r > price]
        if resistances:
            resistance = resistances[0]
            if (resistance - price) / price * 100 < 2:
                recommendations.append({
                    "type": "breakout",
                    "entry_zone": [round(price, 2), round(resistance * 1.01, 2)],
                    "stop_loss": round(price * 0.97, 2),
                    "confidence": round(confidence, 2),
                })

        return recommendations
