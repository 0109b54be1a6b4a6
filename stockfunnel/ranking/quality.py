"""TradeQualityRanker: scores how good a trade the setup is, not how bullish.

Six sub-scores, each capped, summed to a 0-100 total:

    trend quality        25   EMA 20/50/200 separation + timeframe alignment
    structure quality    20   breakout recency, HH-HL pattern, trend slope
    location quality     20   proximity to EMA20/Supertrend, extension penalties
    volatility quality   15   ATR% band (ideal 2-5%)
    liquidity            10   volume spike ratio tiers
    risk-reward          10   estimated R multiple (zero below 2R)

Location penalties can take that sub-score below zero before it is clamped
back to [0, 20]. The ranked list is cut to ``top_limit`` and numbered from 1.
"""
from __future__ import annotations

import logging
from typing import Any

from stockfunnel.core.candidate import Candidate, QualityFields, ScreenerFields
from stockfunnel.core.config import QualityConfig

logger = logging.getLogger(__name__)

_MAX_TREND = 25.0
_MAX_STRUCTURE = 20.0
_MAX_LOCATION = 20.0
_MAX_VOLATILITY = 15.0
_MAX_LIQUIDITY = 10.0
_MAX_RISK_REWARD = 10.0

_TARGET_R_MULTIPLE = 2.5
_MAX_TARGET_DISTANCE_PCT = 15.0


def _pct(a: float, b: float) -> float:
    return (a - b) / b * 100.0


def score_trend(screener: ScreenerFields) -> float:
    ind = screener.indicators
    score = 0.0
    if ind.ema20 is not None and ind.ema50 is not None and ind.ema200 is not None:
        if ind.ema20 > ind.ema50 > ind.ema200:
            sep_fast = abs(_pct(ind.ema20, ind.ema50))
            sep_slow = abs(_pct(ind.ema50, ind.ema200))
            if sep_fast > 2.0 and sep_slow > 2.0:
                score += 15
            elif sep_fast > 1.0 and sep_slow > 1.0:
                score += 10
            else:
                score += 5
        elif ind.ema20 > ind.ema50:
            score += 5

    alignment = screener.mtf.get("trend_alignment") or {}
    if alignment.get("aligned"):
        bullish = alignment.get("bullish_count", 0)
        if bullish >= 3:
            score += 10
        elif bullish >= 2:
            score += 5
    return round(min(score, _MAX_TREND), 2)


def score_structure(screener: ScreenerFields) -> float:
    structure: dict[str, Any] = screener.metadata.get("structure") or {}
    score = 0.0
    age = structure.get("breakout_age")
    if age is not None:
        if age <= 10:
            score += 10
        elif age <= 20:
            score += 5
    if structure.get("pattern") == "HH-HL":
        score += 5
    strength = structure.get("trend_strength")
    if strength is not None and strength > 0:
        score += 5
    return round(min(score, _MAX_STRUCTURE), 2)


def score_location(screener: ScreenerFields) -> float:
    ind = screener.indicators
    close = ind.latest_close or screener.metadata.get("ltp")
    if not close:
        return 0.0

    score = 0.0
    if ind.ema20 and ind.ema50:
        from_ema20 = abs(_pct(close, ind.ema20))
        from_ema50 = abs(_pct(close, ind.ema50))
        if from_ema20 <= 2.0:
            score += 10
        elif from_ema20 <= 5.0:
            score += 7
        elif from_ema50 <= 10.0:
            score += 5
        if from_ema20 > 10.0:
            score -= 5

    st_value = (ind.supertrend or {}).get("value")
    if st_value:
        from_st = abs(_pct(close, st_value))
        if from_st <= 3.0:
            score += 5
        elif from_st <= 5.0:
            score += 3

    momentum = screener.metadata.get("momentum") or {}
    change_5d = momentum.get("change_5d")
    if change_5d is not None:
        if change_5d > 15.0:
            score -= 10
        elif change_5d > 10.0:
            score -= 5

    return round(min(_MAX_LOCATION, max(0.0, score)), 2)


def score_volatility(screener: ScreenerFields) -> float:
    volatility = screener.metadata.get("volatility") or {}
    atr_pct = volatility.get("atr_percent")
    if atr_pct is None:
        return 0.0
    if 2.0 <= atr_pct <= 5.0:
        return 15.0
    if 1.5 <= atr_pct <= 6.0:
        return 10.0
    if 1.0 <= atr_pct <= 7.0:
        return 5.0
    return 0.0


def score_liquidity(screener: ScreenerFields) -> float:
    volume = screener.indicators.volume or {}
    average = volume.get("average") or 0.0
    if average <= 0:
        return 0.0
    spike = volume.get("spike_ratio")
    if spike is None:
        spike = (volume.get("latest") or 0.0) / average
    if spike >= 1.5:
        return 10.0
    if spike >= 1.2:
        return 7.0
    if spike >= 1.0:
        return 5.0
    return 2.0


def score_risk_reward(screener: ScreenerFields) -> float:
    ind = screener.indicators
    close = ind.latest_close or screener.metadata.get("ltp")
    if not close or not ind.atr or ind.atr <= 0:
        return 0.0

    entry = ind.ema20 if ind.ema20 and close > ind.ema20 else close
    if ind.ema50 and entry > ind.ema50:
        stop = ind.ema50 * 0.98
    else:
        stop = entry - 2 * ind.atr
    risk = abs(entry - stop)
    if risk == 0:
        return 0.0

    levels = (screener.mtf.get("support_resistance") or {}).get("resistance_levels") or []
    above = [level for level in levels if level > entry]
    target = min(above) if above else entry + risk * _TARGET_R_MULTIPLE

    if abs(_pct(target, close)) > _MAX_TARGET_DISTANCE_PCT:
        return 2.0
    rr = abs(target - entry) / risk
    if rr >= 3.0:
        return 10.0
    if rr >= 2.5:
        return 8.0
    if rr >= 2.0:
        return 5.0
    return 0.0


class TradeQualityRanker:
    def __init__(self, config: QualityConfig | None = None) -> None:
        self._config = config or QualityConfig()

    def score(self, candidate: Candidate) -> QualityFields:
        screener = candidate.require_screener()
        breakdown = {
            "trend_quality": score_trend(screener),
            "structure_quality": score_structure(screener),
            "location_quality": score_location(screener),
            "volatility_quality": score_volatility(screener),
            "liquidity": score_liquidity(screener),
            "risk_reward": score_risk_reward(screener),
        }
        return QualityFields(trade_quality_score=round(sum(breakdown.values()), 2), breakdown=breakdown)

    def rank(self, candidates: list[Candidate]) -> list[Candidate]:
        """Score, sort descending and keep the top ``top_limit`` candidates."""
        if not candidates:
            return []

        for candidate in candidates:
            candidate.quality = self.score(candidate)

        ordered = sorted(candidates, key=lambda c: (-c.quality.trade_quality_score, -c.score, c.symbol))
        kept = ordered[: self._config.top_limit]
        for rank, candidate in enumerate(kept, start=1):
            candidate.quality.rank = rank
        for candidate in ordered[self._config.top_limit:]:
            candidate.drop("quality", f"Below top {self._config.top_limit} by trade quality")

        logger.info("Trade quality: kept %d of %d candidates", len(kept), len(candidates))
        return kept
