"""Per-instrument analysis loop shared by the swing and long-term screeners.

Pipeline per instrument:
    1. Basic filter on instrument master data (price band, penny stocks)
    2. Load candles for every timeframe the screener needs
    3. Minimum-history check (skip, not fail)
    4. Indicators, multi-timeframe analysis and scoring (``_analyze``)
    5. Persist the candidate record with stage "screened"

Error handling:
    - Any exception for one instrument is logged with its symbol and counted
      as failed; the loop continues.
    - Progress snapshots are emitted every ``progress_interval`` instruments
      and once more on completion.
"""
from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Iterable

from stockfunnel.analysis.mtf import MultiTimeframeAnalyzer, TimeframeSnapshot
from stockfunnel.analysis.structure import pct_change, structure_summary
from stockfunnel.core.candidate import Candidate
from stockfunnel.core.config import Settings
from stockfunnel.core.event_bus import SCREENER_PROGRESS, EventBus
from stockfunnel.core.result import StageResult
from stockfunnel.core.types import CandleSeries, IndicatorSet, Instrument, ScreenerRun, Timeframe
from stockfunnel.data.store import CandleStore, ResultSink
from stockfunnel.indicators.engine import build_engine, compute_indicator_set
from stockfunnel.universe.filters import BasicFilter, HistoryRequirement

logger = logging.getLogger(__name__)

SCREENED_STAGE = "screened"


@dataclass
class ScreenerReport:
    candidates: list[Candidate]
    total: int = 0
    processed: int = 0
    analyzed: int = 0
    skipped: list[dict[str, str]] = field(default_factory=list)
    failed: list[dict[str, str]] = field(default_factory=list)
    duration_secs: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "processed": self.processed,
            "analyzed": self.analyzed,
            "candidates": len(self.candidates),
            "skipped": list(self.skipped),
            "failed": list(self.failed),
            "duration_secs": round(self.duration_secs, 2),
        }


class BaseScreener(ABC):
    screener_type: str = ""

    def __init__(
        self,
        settings: Settings,
        candle_store: CandleStore,
        sink: ResultSink | None = None,
        bus: EventBus | None = None,
    ) -> None:
        self._settings = settings
        self._store = candle_store
        self._sink = sink
        self._bus = bus
        self._basic_filter = BasicFilter.from_config(settings.universe)
        self._engine = build_engine(settings.indicators)
        self._mtf = MultiTimeframeAnalyzer(style=self.screener_type)

    # ------------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------------

    @property
    @abstractmethod
    def timeframes(self) -> list[Timeframe]: ...

    @property
    @abstractmethod
    def history_requirement(self) -> HistoryRequirement: ...

    @property
    @abstractmethod
    def limit(self) -> int: ...

    @property
    @abstractmethod
    def progress_interval(self) -> int: ...

    @abstractmethod
    def _analyze(
        self,
        instrument: Instrument,
        series_by_tf: dict[Timeframe, CandleSeries],
    ) -> StageResult[Candidate]: ...

    # ------------------------------------------------------------------
    # Main loop
    # ------------------------------------------------------------------

    async def run(self, instruments: Iterable[Instrument], run: ScreenerRun) -> ScreenerReport:
        universe = list(instruments)
        t0 = time.monotonic()
        report = ScreenerReport(candidates=[], total=len(universe))
        logger.info("%s screener: starting run %s over %d instruments",
                    self.screener_type, run.key, len(universe))

        candidates: list[Candidate] = []
        for instrument in universe:
            try:
                result = await self._process(instrument)
            except Exception as exc:
                logger.warning("%s screener: failed to analyze %s: %s",
                               self.screener_type, instrument.symbol, exc)
                result = StageResult.failed(exc)

            report.processed += 1
            if result.is_ok:
                report.analyzed += 1
                candidates.append(result.value)
                await self._persist(run, result.value)
            elif result.status == "skipped":
                report.skipped.append({"symbol": instrument.symbol, "reason": result.reason})
            else:
                report.failed.append({"symbol": instrument.symbol, "error": result.reason})

            if report.processed % self.progress_interval == 0:
                await self._emit_progress(run, report, len(candidates), t0, "running")

        candidates.sort(key=lambda c: (-c.score, c.symbol))
        report.candidates = candidates[: self.limit]
        report.duration_secs = time.monotonic() - t0
        run.bump("screened", report.analyzed)
        run.bump("screener_skipped", len(report.skipped))
        run.bump("screener_failed", len(report.failed))
        await self._emit_progress(run, report, len(candidates), t0, "completed")

        logger.info(
            "%s screener: %d processed, %d analyzed, %d skipped, %d failed, %d kept (%.1fs)",
            self.screener_type, report.processed, report.analyzed,
            len(report.skipped), len(report.failed), len(report.candidates), report.duration_secs,
        )
        return report

    async def _process(self, instrument: Instrument) -> StageResult[Candidate]:
        reason = self._basic_filter.rejection_reason(instrument)
        if reason:
            return StageResult.skipped(reason)

        series_by_tf = await self._load(instrument)
        shortfall = self.history_requirement.shortfall(series_by_tf)
        if shortfall:
            return StageResult.skipped(shortfall)

        return self._analyze(instrument, series_by_tf)

    async def _load(self, instrument: Instrument) -> dict[Timeframe, CandleSeries]:
        limits = {
            Timeframe.D1: self._settings.data.daily_history,
            Timeframe.W1: self._settings.data.weekly_history,
            Timeframe.H1: self._settings.data.intraday_history,
            Timeframe.M15: self._settings.data.intraday_history,
        }
        out: dict[Timeframe, CandleSeries] = {}
        for tf in self.timeframes:
            bars = await self._store.load_series(instrument.id, tf, limits[tf])
            if bars:
                out[tf] = CandleSeries.from_unsorted(instrument.symbol, tf, bars)
        return out

    async def _persist(self, run: ScreenerRun, candidate: Candidate) -> None:
        if self._sink is None:
            return
        try:
            await self._sink.save_candidate(run.key, candidate, SCREENED_STAGE)
        except Exception as exc:
            logger.warning("Could not persist screened candidate %s: %s", candidate.symbol, exc)

    async def _emit_progress(
        self,
        run: ScreenerRun,
        report: ScreenerReport,
        candidate_count: int,
        t0: float,
        status: str,
    ) -> None:
        elapsed = time.monotonic() - t0
        snapshot = {
            "screener_type": self.screener_type,
            "total": report.total,
            "processed": report.processed,
            "analyzed": report.analyzed,
            "candidates": candidate_count,
            "skipped": len(report.skipped),
            "failed": len(report.failed),
            "status": status,
            "elapsed": round(elapsed, 2),
            "rate": round(report.processed / elapsed, 2) if elapsed > 0 else 0.0,
        }
        if self._bus is not None:
            await self._bus.emit(SCREENER_PROGRESS, {"run_key": run.key, **snapshot})
        if self._sink is not None:
            try:
                await self._sink.publish_progress(run.key, snapshot)
            except Exception as exc:
                logger.warning("Could not publish screener progress: %s", exc)

    # ------------------------------------------------------------------
    # Shared helpers for subclasses
    # ------------------------------------------------------------------

    def _indicators(self, series: CandleSeries) -> IndicatorSet:
        return compute_indicator_set(series, engine=self._engine)

    def _mtf_analysis(self, series_by_tf: dict[Timeframe, CandleSeries]) -> dict[str, Any]:
        snapshots = {
            tf: TimeframeSnapshot(series=series, indicators=self._indicators(series))
            for tf, series in series_by_tf.items()
            if tf in self._mtf.timeframes
        }
        return self._mtf.analyze(snapshots).to_dict()

    @staticmethod
    def _base_metadata(instrument: Instrument, series: CandleSeries, ind: IndicatorSet) -> dict[str, Any]:
        closes = series.closes
        latest = series.latest_timestamp
        metadata: dict[str, Any] = {
            "ltp": instrument.ltp if instrument.ltp is not None else series.latest_close,
            "sector": instrument.sector,
            "candles_count": len(series),
            "latest_timestamp": latest.isoformat() if latest else None,
            "trend_alignment": trend_flags(ind),
            "volatility": volatility_profile(ind),
            "momentum": momentum_profile(closes, ind),
            "structure": structure_summary(series.bars),
        }
        return metadata


def clamp_score(value: float) -> float:
    return round(min(100.0, max(0.0, value)), 2)


def trend_flags(ind: IndicatorSet) -> list[str]:
    flags = []
    if ind.ema20 is not None and ind.ema50 is not None and ind.ema20 > ind.ema50:
        flags.append("ema_bullish")
    if ind.supertrend_bullish:
        flags.append("supertrend_bullish")
    if ind.macd_bullish:
        flags.append("macd_bullish")
    return flags


def volatility_profile(ind: IndicatorSet) -> dict[str, Any] | None:
    if not ind.atr or not ind.latest_close:
        return None
    atr_pct = round(ind.atr / ind.latest_close * 100, 2)
    if atr_pct < 2:
        level = "low"
    elif atr_pct < 5:
        level = "medium"
    else:
        level = "high"
    return {"atr": ind.atr, "atr_percent": atr_pct, "level": level}


def momentum_profile(closes: list[float], ind: IndicatorSet) -> dict[str, Any] | None:
    change = pct_change(closes, 5)
    if change is None:
        return None
    if ind.rsi is not None and ind.rsi < 30:
        level = "oversold"
    elif ind.rsi is not None and ind.rsi > 70:
        level = "overbought"
    else:
        level = "neutral"
    return {"change_5d": round(change, 2), "rsi": ind.rsi, "level": level}


def mtf_summary(mtf: dict[str, Any]) -> dict[str, Any]:
    return {
        "score": mtf["multi_timeframe_score"],
        "trend_alignment": mtf["trend_alignment"],
        "momentum_alignment": mtf["momentum_alignment"],
        "timeframes_analyzed": list(mtf["timeframes"]),
        "entry_recommendations": mtf["entry_recommendations"],
    }
