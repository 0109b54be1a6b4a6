from __future__ import annotations

import logging

from stockfunnel.analysis.structure import pct_change
from stockfunnel.core.candidate import Candidate, ScreenerFields
from stockfunnel.core.config import LongtermConfig
from stockfunnel.core.result import StageResult
from stockfunnel.core.types import CandleSeries, IndicatorSet, Instrument, Timeframe
from stockfunnel.screener.base import BaseScreener, clamp_score, mtf_summary
from stockfunnel.universe.filters import HistoryRequirement

logger = logging.getLogger(__name__)

# Factor points
_PTS_WEEKLY_EMA = 20
_PTS_WEEKLY_SUPERTREND = 20
_PTS_EMA_20_50 = 15
_PTS_EMA_20_200 = 15
_PTS_WEEKLY_ADX = 15
_PTS_WEEKLY_ADX_MODERATE = 10
_PTS_MOMENTUM_PART = 5


def _rsi_in_band(rsi: float | None) -> bool:
    return rsi is not None and 50 <= rsi <= 70


def longterm_base_score(
    daily: IndicatorSet,
    weekly: IndicatorSet | None,
    config: LongtermConfig,
) -> float | None:
    """Normalised 0-100 score weighted toward the weekly trend."""
    weekly = weekly or IndicatorSet()
    score = 0.0
    max_score = 0.0

    if config.require_weekly_trend:
        if weekly.ema20 is not None and weekly.ema50 is not None:
            max_score += _PTS_WEEKLY_EMA
            if weekly.ema20 > weekly.ema50:
                score += _PTS_WEEKLY_EMA
        if weekly.supertrend is not None:
            max_score += _PTS_WEEKLY_SUPERTREND
            if weekly.supertrend_bullish:
                score += _PTS_WEEKLY_SUPERTREND

    if daily.ema20 is not None and daily.ema50 is not None:
        max_score += _PTS_EMA_20_50
        if daily.ema20 > daily.ema50:
            score += _PTS_EMA_20_50

    if daily.ema20 is not None and daily.ema200 is not None:
        max_score += _PTS_EMA_20_200
        if daily.ema20 > daily.ema200:
            score += _PTS_EMA_20_200

    if weekly.adx is not None:
        max_score += _PTS_WEEKLY_ADX
        if weekly.adx > 25:
            score += _PTS_WEEKLY_ADX
        elif weekly.adx > 20:
            score += _PTS_WEEKLY_ADX_MODERATE

    # Momentum: daily RSI, weekly RSI and daily MACD, 5 points each
    if daily.rsi is not None:
        max_score += _PTS_MOMENTUM_PART
        if _rsi_in_band(daily.rsi):
            score += _PTS_MOMENTUM_PART
    if weekly.rsi is not None:
        max_score += _PTS_MOMENTUM_PART
        if _rsi_in_band(weekly.rsi):
            score += _PTS_MOMENTUM_PART
    if daily.macd is not None:
        max_score += _PTS_MOMENTUM_PART
        if daily.macd_bullish:
            score += _PTS_MOMENTUM_PART

    if max_score <= 0:
        return None
    return clamp_score(score / max_score * 100)


class LongtermScreener(BaseScreener):
    screener_type = "longterm"

    @property
    def config(self) -> LongtermConfig:
        return self._settings.longterm

    @property
    def timeframes(self) -> list[Timeframe]:
        if self.config.include_intraday:
            return [Timeframe.D1, Timeframe.W1, Timeframe.H1]
        return [Timeframe.D1, Timeframe.W1]

    @property
    def history_requirement(self) -> HistoryRequirement:
        return HistoryRequirement.longterm(self.config.min_daily_bars, self.config.min_weekly_bars)

    @property
    def limit(self) -> int:
        return self.config.limit

    @property
    def progress_interval(self) -> int:
        return max(1, self.config.progress_interval)

    def _analyze(
        self,
        instrument: Instrument,
        series_by_tf: dict[Timeframe, CandleSeries],
    ) -> StageResult[Candidate]:
        daily = series_by_tf[Timeframe.D1]
        weekly_series = series_by_tf[Timeframe.W1]
        ind = self._indicators(daily)
        weekly = self._indicators(weekly_series)

        base = longterm_base_score(ind, weekly, self.config)
        if base is None:
            return StageResult.skipped("No scorable indicator factors")

        mtf = self._mtf_analysis(series_by_tf)
        mtf_score = mtf["multi_timeframe_score"]
        score = clamp_score(base * self.config.base_weight + mtf_score * self.config.mtf_weight)

        metadata = self._base_metadata(instrument, daily, ind)
        metadata["multi_timeframe"] = mtf_summary(mtf)
        weekly_change = pct_change(weekly_series.closes, 4)
        metadata["weekly"] = {
            "change_4w": round(weekly_change, 2) if weekly_change is not None else None,
            "rsi": weekly.rsi,
            "candles_count": len(weekly_series),
        }

        logger.debug("%s: longterm score %.2f (base %.2f, mtf %.2f)", instrument.symbol, score, base, mtf_score)
        return StageResult.ok(Candidate(
            instrument=instrument,
            screener_type=self.screener_type,
            screener=ScreenerFields(
                score=score,
                base_score=base,
                mtf_score=mtf_score,
                indicators=ind,
                metadata=metadata,
                mtf=mtf,
                weekly_indicators=weekly,
            ),
        ))
