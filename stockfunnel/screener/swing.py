from __future__ import annotations

import logging

from stockfunnel.core.candidate import Candidate, ScreenerFields
from stockfunnel.core.config import SwingConfig
from stockfunnel.core.result import StageResult
from stockfunnel.core.types import CandleSeries, IndicatorSet, Instrument, Timeframe
from stockfunnel.screener.base import BaseScreener, clamp_score, mtf_summary
from stockfunnel.universe.filters import HistoryRequirement

logger = logging.getLogger(__name__)

# Factor points
_PTS_EMA_20_50 = 15
_PTS_EMA_20_200 = 15
_PTS_SUPERTREND = 20
_PTS_ADX = 15
_PTS_ADX_MODERATE = 10
_PTS_RSI = 10
_PTS_RSI_NEUTRAL = 5
_PTS_MACD = 10
_PTS_VOLUME = 15


def swing_base_score(ind: IndicatorSet, config: SwingConfig) -> float | None:
    """Normalised 0-100 technical score over the factors that have data.

    Returns ``None`` when no factor could be scored at all.
    """
    score = 0.0
    max_score = 0.0

    if ind.ema20 is not None and ind.ema50 is not None:
        max_score += _PTS_EMA_20_50
        if ind.ema20 > ind.ema50:
            score += _PTS_EMA_20_50

    if ind.ema20 is not None and ind.ema200 is not None:
        max_score += _PTS_EMA_20_200
        if ind.ema20 > ind.ema200:
            score += _PTS_EMA_20_200

    if ind.supertrend is not None:
        max_score += _PTS_SUPERTREND
        if ind.supertrend_bullish:
            score += _PTS_SUPERTREND

    if ind.adx is not None:
        max_score += _PTS_ADX
        if ind.adx > 25:
            score += _PTS_ADX
        elif ind.adx > 20:
            score += _PTS_ADX_MODERATE

    if ind.rsi is not None:
        max_score += _PTS_RSI
        if 50 < ind.rsi < 70:
            score += _PTS_RSI
        elif 40 < ind.rsi < 60:
            score += _PTS_RSI_NEUTRAL

    if ind.macd is not None:
        max_score += _PTS_MACD
        if ind.macd_bullish:
            score += _PTS_MACD

    if config.require_volume_confirmation and ind.volume is not None:
        max_score += _PTS_VOLUME
        if ind.volume.get("spike_ratio", 0.0) >= config.min_volume_spike:
            score += _PTS_VOLUME

    if max_score <= 0:
        return None
    return clamp_score(score / max_score * 100)


class SwingScreener(BaseScreener):
    screener_type = "swing"

    @property
    def config(self) -> SwingConfig:
        return self._settings.swing

    @property
    def timeframes(self) -> list[Timeframe]:
        if self.config.include_intraday:
            return [Timeframe.D1, Timeframe.W1, Timeframe.H1, Timeframe.M15]
        return [Timeframe.D1, Timeframe.W1]

    @property
    def history_requirement(self) -> HistoryRequirement:
        return HistoryRequirement.swing(self.config.min_daily_bars)

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
        ind = self._indicators(daily)

        base = swing_base_score(ind, self.config)
        if base is None:
            return StageResult.skipped("No scorable indicator factors")

        mtf = self._mtf_analysis(series_by_tf)
        mtf_score = mtf["multi_timeframe_score"]
        score = clamp_score(base * self.config.base_weight + mtf_score * self.config.mtf_weight)

        metadata = self._base_metadata(instrument, daily, ind)
        metadata["multi_timeframe"] = mtf_summary(mtf)

        logger.debug("%s: swing score %.2f (base %.2f, mtf %.2f)", instrument.symbol, score, base, mtf_score)
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
            ),
        ))

