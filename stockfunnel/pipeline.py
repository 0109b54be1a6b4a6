"""ScreeningPipeline: universe to final selection in one run.

Stages:
    1. Universe      -> instruments (load failure aborts the run)
    2. Screener      -> scored candidates (swing or longterm)
    3. Setup         -> status per candidate
    4. Quality       -> trade quality score, top N kept
    5. Plan          -> entry/stop/target for actionable setups
    6. AI            -> judge verdicts or quality fallback
    7. Selection     -> portfolio-constrained tiers

Everything after the universe degrades per candidate: a candidate that cannot
be carried forward is dropped with a note, and the run still completes.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from stockfunnel.ai.client import JudgeClient
from stockfunnel.ai.evaluator import AIEvaluator
from stockfunnel.core.cache import Cache, MemoryCache
from stockfunnel.core.candidate import Candidate, TradePlan
from stockfunnel.core.config import Settings
from stockfunnel.core.event_bus import EventBus
from stockfunnel.core.types import ScreenerRun
from stockfunnel.data.store import CandleStore, PortfolioService, ResultSink, SectorLookup
from stockfunnel.plan.builder import TradePlanBuilder
from stockfunnel.plan.longterm import LongtermPlanBuilder
from stockfunnel.ranking.quality import TradeQualityRanker
from stockfunnel.screener import ScreenerReport, create_screener
from stockfunnel.selection.constraints import PortfolioSnapshot
from stockfunnel.selection.selector import FinalSelector, SelectionResult
from stockfunnel.setup.classifier import SetupClassifier
from stockfunnel.universe.loader import UniverseLoader

logger = logging.getLogger(__name__)

STAGE_CLASSIFIED = "classified"
STAGE_PLANNED = "planned"
STAGE_EVALUATED = "ai_evaluated"
STAGE_SELECTED = "selected"


@dataclass
class PipelineResult:
    run: ScreenerRun
    report: ScreenerReport
    screened: list[Candidate] = field(default_factory=list)
    actionable: list[Candidate] = field(default_factory=list)
    evaluated: list[Candidate] = field(default_factory=list)
    selection: SelectionResult = field(default_factory=SelectionResult)

    @property
    def dropped(self) -> list[dict[str, str]]:
        """Every exit from the funnel with the stage and reason, screener skips included."""
        out = [{"symbol": s["symbol"], "stage": "screener", "reason": s["reason"]} for s in self.report.skipped]
        out.extend({"symbol": f["symbol"], "stage": "screener", "reason": f["error"]} for f in self.report.failed)
        for candidate in self.screened:
            out.extend({"symbol": candidate.symbol, **note} for note in candidate.notes)
        return out

    def to_dict(self) -> dict[str, Any]:
        return {
            "run": self.run.to_dict(),
            "screener": self.report.to_dict(),
            "actionable": len(self.actionable),
            "evaluated": len(self.evaluated),
            "selection": self.selection.to_dict(),
            "dropped": self.dropped,
        }


class ScreeningPipeline:
    def __init__(
        self,
        settings: Settings,
        candle_store: CandleStore,
        universe: UniverseLoader,
        portfolio: PortfolioService | None = None,
        sink: ResultSink | None = None,
        judge: JudgeClient | None = None,
        cache: Cache | None = None,
        sectors: SectorLookup | None = None,
        bus: EventBus | None = None,
    ) -> None:
        self._settings = settings
        self._store = candle_store
        self._universe = universe
        self._portfolio = portfolio
        self._sink = sink
        self._bus = bus
        self._ranker = TradeQualityRanker(settings.quality)
        self._swing_plans = TradePlanBuilder(settings.trade_plan)
        self._longterm_plans = LongtermPlanBuilder(settings.trade_plan)
        self._evaluator = AIEvaluator(settings.ai, judge, cache if cache is not None else MemoryCache(),
                                      sink=sink, bus=bus)
        self._selector = FinalSelector(settings.selection, sectors)

    async def run(self, screener_type: str, run_id: str | None = None) -> PipelineResult:
        screener = create_screener(screener_type, self._settings, self._store, sink=self._sink, bus=self._bus)
        run = ScreenerRun(screener_type=screener_type, id=run_id)

        instruments = self._universe.load()
        run.universe_size = len(instruments)

        if self._settings.data.ensure_fresh:
            await self._ensure_fresh(screener.timeframes)

        report = await screener.run(instruments, run)
        result = PipelineResult(run=run, report=report, screened=list(report.candidates))

        classifier = SetupClassifier(self._settings, self._store, self._portfolio)
        classified = await classifier.classify(report.candidates)
        await self._persist(run, classified, STAGE_CLASSIFIED)

        ranked = self._ranker.rank(classified)
        run.bump("ranked", len(ranked))

        capital = await self._capital(screener_type)
        for candidate in ranked:
            if not candidate.require_setup().actionable:
                candidate.drop("setup", candidate.setup.reason)
                continue
            candidate.plan = self._build_plan(candidate, classifier, capital)
            if candidate.plan is None:
                candidate.drop("plan", "No viable trade plan at the minimum risk-reward")
                continue
            result.actionable.append(candidate)
        run.bump("actionable", len(result.actionable))
        await self._persist(run, result.actionable, STAGE_PLANNED)

        result.evaluated = await self._evaluator.evaluate(result.actionable, run)
        await self._persist(run, result.evaluated, STAGE_EVALUATED)

        snapshot = await PortfolioSnapshot.capture(
            self._portfolio, screener_type, self._settings.risk, self._settings.trade_plan.assumed_capital,
        )
        result.selection = self._selector.select(result.evaluated, snapshot)
        run.bump("selected", len(result.selection.selected))
        await self._persist(run, result.selection.selected, STAGE_SELECTED)

        run.completed_at = datetime.now()
        await self._save_run(run)
        logger.info(
            "%s run %s: %d instruments, %d screened, %d actionable, %d evaluated, %d selected",
            screener_type, run.key, run.universe_size, len(result.screened),
            len(result.actionable), len(result.evaluated), len(result.selection.selected),
        )
        return result

    def _build_plan(
        self,
        candidate: Candidate,
        classifier: SetupClassifier,
        capital: float | None,
    ) -> TradePlan | None:
        series = classifier.series_for(candidate)
        if series is None:
            return None
        if candidate.screener_type == "longterm":
            return self._longterm_plans.build(candidate, series, capital)
        return self._swing_plans.build(candidate, series, capital)

    async def _capital(self, bucket: str) -> float | None:
        if self._portfolio is None:
            return None
        try:
            capital = await self._portfolio.available_capital(bucket)
        except Exception as exc:
            logger.warning("Available capital unreadable for %s, sizing on assumed capital: %s", bucket, exc)
            return None
        return capital if capital and capital > 0 else None

    async def _ensure_fresh(self, timeframes) -> None:
        try:
            freshness = await self._store.ensure_fresh(timeframes)
        except Exception as exc:
            logger.warning("Candle freshness check failed, screening on stored bars: %s", exc)
            return
        logger.info("Candle freshness: %s", freshness)

    async def _persist(self, run: ScreenerRun, candidates: list[Candidate], stage: str) -> None:
        if self._sink is None:
            return
        for candidate in candidates:
            try:
                await self._sink.save_candidate(run.key, candidate, stage)
            except Exception as exc:
                logger.warning("Could not persist %s at %s: %s", candidate.symbol, stage, exc)

    async def _save_run(self, run: ScreenerRun) -> None:
        if self._sink is None:
            return
        try:
            await self._sink.save_run(run)
        except Exception as exc:
            logger.warning("Could not save run %s: %s", run.key, exc)
