"""AIEvaluator: asks the external judge about actionable candidates.

Flow:
    1. AI disabled          -> rank by 0.5 score + 0.5 quality, no calls
    2. Daily cap reached    -> rank by trade quality, no calls
    3. Otherwise walk candidates in priority order (0.5 score + 0.5 quality)
       so the best setups are judged before the cap can run out mid-run.

Idempotency:
    Each evaluation is keyed ``"{run.key}-{instrument_id}"``. A verdict in the
    cache is reused; a key already recorded in the sink ledger is never
    submitted again. Every submitted call counts toward the daily cap; the
    count is also written to the sink, so a fresh process picks up the calls
    already made today.

Failures (timeout, transport, malformed output) affect only that candidate,
which falls back to quality ranking behind the approved ones.
"""
from __future__ import annotations

import asyncio
import logging
import time
from datetime import date
from typing import Any, Callable

from stockfunnel.ai.client import JudgeClient
from stockfunnel.ai.prompt import PromptBuilder
from stockfunnel.ai.verdict import Verdict, parse_verdict
from stockfunnel.core.cache import Cache
from stockfunnel.core.candidate import AIFields, Candidate
from stockfunnel.core.config import AIConfig
from stockfunnel.core.event_bus import AI_PROGRESS, EventBus
from stockfunnel.core.exceptions import JudgeError
from stockfunnel.core.types import ScreenerRun
from stockfunnel.data.store import ResultSink

logger = logging.getLogger(__name__)

STATUS_EVALUATED = "evaluated"
STATUS_SKIPPED = "skipped"
STATUS_FAILED = "failed"

_DAY_SECONDS = 24 * 3600


def priority_score(candidate: Candidate) -> float:
    return candidate.score * 0.5 + (candidate.trade_quality_score or 0.0) * 0.5


def _quality_key(candidate: Candidate) -> tuple[float, str]:
    quality = candidate.trade_quality_score
    return (-(quality if quality is not None else candidate.score), candidate.symbol)


def _cut(ordered: list[Candidate], limit: int) -> list[Candidate]:
    for c in ordered[limit:]:
        c.drop("ai", f"Beyond top {limit} for final selection")
    return ordered[:limit]


class AIEvaluator:
    def __init__(
        self,
        config: AIConfig,
        client: JudgeClient | None,
        cache: Cache,
        sink: ResultSink | None = None,
        bus: EventBus | None = None,
        prompt_builder: PromptBuilder | None = None,
        today: Callable[[], date] = date.today,
    ) -> None:
        self._config = config
        self._client = client
        self._cache = cache
        self._sink = sink
        self._bus = bus
        self._prompts = prompt_builder or PromptBuilder()
        self._today = today

    # ------------------------------------------------------------------
    # Daily call counter
    # ------------------------------------------------------------------

    def _counter_key(self) -> str:
        return f"ai_calls:{self._today().isoformat()}"

    def calls_today(self) -> int:
        return int(self._cache.get(self._counter_key()) or 0)

    def _cap_reached(self) -> bool:
        return self.calls_today() >= self._config.max_calls_per_day

    async def _sync_counter(self) -> None:
        if self._sink is None:
            return
        try:
            persisted = await self._sink.ai_calls_on(self._today().isoformat())
        except Exception as exc:
            logger.warning("Could not read persisted AI call count: %s", exc)
            return
        if persisted > self.calls_today():
            self._cache.set(self._counter_key(), persisted, ttl=_DAY_SECONDS)

    async def _count_call(self) -> None:
        count = self._cache.incr(self._counter_key(), ttl=_DAY_SECONDS)
        if self._sink is None:
            return
        try:
            persisted = await self._sink.record_ai_call(self._today().isoformat())
        except Exception as exc:
            logger.warning("Could not persist AI call count: %s", exc)
            return
        if persisted > count:
            self._cache.set(self._counter_key(), persisted, ttl=_DAY_SECONDS)

    # ------------------------------------------------------------------
    # Main entry
    # ------------------------------------------------------------------

    async def evaluate(self, candidates: list[Candidate], run: ScreenerRun) -> list[Candidate]:
        limit = self._config.max_candidates
        if not candidates:
            return []

        if not self._config.enabled or self._client is None:
            logger.info("AI evaluation disabled, ranking %d candidates by score and quality", len(candidates))
            ordered = sorted(candidates, key=lambda c: (-priority_score(c), c.symbol))
            for c in ordered:
                c.ai = self._fallback(run, c, "AI evaluation disabled")
            return _cut(ordered, limit)

        await self._sync_counter()
        if self._cap_reached():
            logger.warning("AI daily call cap (%d) reached, falling back to quality ranking",
                           self._config.max_calls_per_day)
            ordered = sorted(candidates, key=_quality_key)
            for c in ordered:
                c.ai = self._fallback(run, c, "Daily AI call cap reached")
            return _cut(ordered, limit)

        ordered = sorted(candidates, key=lambda c: (-priority_score(c), c.symbol))
        approved: list[Candidate] = []
        fallbacks: list[Candidate] = []
        t0 = time.monotonic()

        for processed, candidate in enumerate(ordered, start=1):
            if candidate.setup is None or not candidate.setup.actionable:
                candidate.ai = AIFields(status=STATUS_SKIPPED, eval_id=self._eval_id(run, candidate),
                                        fallback_reason="Setup not actionable")
                candidate.drop("ai", "Setup not actionable")
                continue

            candidate.ai = await self._evaluate_one(candidate, run)
            if candidate.ai.status == STATUS_EVALUATED:
                if candidate.ai.approved:
                    approved.append(candidate)
                else:
                    reason = ("Judge flagged avoid" if candidate.ai.avoid
                              else f"Confidence {candidate.ai.confidence} below {self._config.min_confidence:g}")
                    candidate.drop("ai", reason)
            else:
                fallbacks.append(candidate)

            await self._emit_progress(run, len(ordered), processed, len(approved), t0, "running")

        await self._emit_progress(run, len(ordered), len(ordered), len(approved), t0, "completed")

        approved.sort(key=lambda c: (-(c.ai.confidence or 0.0), c.symbol))
        fallbacks.sort(key=_quality_key)
        result = _cut(approved + fallbacks, limit)
        logger.info("AI evaluation: %d approved, %d fallback, %d calls this run",
                    len(approved), len(fallbacks), run.ai_calls)
        return result

    # ------------------------------------------------------------------
    # Per-candidate evaluation
    # ------------------------------------------------------------------

    @staticmethod
    def _eval_id(run: ScreenerRun, candidate: Candidate) -> str:
        return f"{run.key}-{candidate.instrument_id}"

    def _fallback(self, run: ScreenerRun, candidate: Candidate, reason: str) -> AIFields:
        return AIFields(status=STATUS_SKIPPED, eval_id=self._eval_id(run, candidate), fallback_reason=reason)

    async def _evaluate_one(self, candidate: Candidate, run: ScreenerRun) -> AIFields:
        eval_id = self._eval_id(run, candidate)
        cache_key = f"ai_eval:{eval_id}"

        cached = self._cache.get(cache_key)
        if cached is not None:
            logger.debug("%s: reusing cached verdict %s", candidate.symbol, eval_id)
            return self._fields(eval_id, Verdict.from_dict(cached))

        record = await self._ledger(eval_id)
        if record is not None:
            if record.get("status") == STATUS_EVALUATED and record.get("verdict"):
                logger.info("%s: already evaluated (%s), reusing verdict", candidate.symbol, eval_id)
                return self._fields(eval_id, Verdict.from_dict(record["verdict"]))
            logger.info("%s: already attempted (%s, %s), not resubmitting",
                        candidate.symbol, eval_id, record.get("status"))
            return AIFields(status=STATUS_FAILED, eval_id=eval_id,
                            fallback_reason=f"Previously {record.get('status')} in this run")

        if self._cap_reached():
            return AIFields(status=STATUS_SKIPPED, eval_id=eval_id, fallback_reason="Daily AI call cap reached")

        try:
            prompt = self._prompts.build(candidate)
        except Exception:
            logger.exception("%s: could not build judge prompt", candidate.symbol)
            return AIFields(status=STATUS_FAILED, eval_id=eval_id, fallback_reason="Prompt build failed")

        await self._count_call()
        run.ai_calls += 1
        try:
            response = await asyncio.wait_for(self._client.evaluate(prompt), timeout=self._config.timeout_seconds)
            verdict = parse_verdict(response.content)
        except asyncio.TimeoutError:
            logger.warning("%s: AI judge timed out after %.0fs", candidate.symbol, self._config.timeout_seconds)
            await self._mark(eval_id, STATUS_FAILED)
            return AIFields(status=STATUS_FAILED, eval_id=eval_id, fallback_reason="Judge timed out")
        except JudgeError as exc:
            logger.warning("%s: %s", candidate.symbol, exc)
            await self._mark(eval_id, STATUS_FAILED)
            return AIFields(status=STATUS_FAILED, eval_id=eval_id, fallback_reason=exc.reason)
        except Exception as exc:
            logger.exception("%s: unexpected AI judge failure", candidate.symbol)
            await self._mark(eval_id, STATUS_FAILED)
            return AIFields(status=STATUS_FAILED, eval_id=eval_id,
                            fallback_reason=f"Unexpected judge error: {type(exc).__name__}")

        run.ai_input_tokens += response.input_tokens
        run.ai_output_tokens += response.output_tokens
        self._cache.set(cache_key, verdict.to_dict(), ttl=self._config.cache_ttl_hours * 3600)
        await self._mark(eval_id, STATUS_EVALUATED, verdict.to_dict())
        return self._fields(eval_id, verdict)

    def _fields(self, eval_id: str, verdict: Verdict) -> AIFields:
        approved = not verdict.avoid and verdict.confidence >= self._config.min_confidence
        return AIFields(
            status=STATUS_EVALUATED,
            eval_id=eval_id,
            confidence=verdict.confidence,
            risk_category=verdict.risk_category,
            stage=verdict.stage,
            momentum_trend=verdict.momentum_trend,
            price_position=verdict.price_position,
            entry_timing=verdict.entry_timing,
            continuation_bias=verdict.continuation_bias,
            holding_days=verdict.holding_days,
            primary_risks=list(verdict.primary_risks),
            summary=verdict.summary,
            avoid=verdict.avoid,
            approved=approved,
        )

    # ------------------------------------------------------------------
    # Sink plumbing
    # ------------------------------------------------------------------

    async def _ledger(self, eval_id: str) -> dict[str, Any] | None:
        if self._sink is None:
            return None
        try:
            return await self._sink.ai_record(eval_id)
        except Exception as exc:
            logger.warning("Could not read AI ledger for %s: %s", eval_id, exc)
            return None

    async def _mark(self, eval_id: str, status: str, verdict: dict[str, Any] | None = None) -> None:
        if self._sink is None:
            return
        try:
            await self._sink.mark_ai(eval_id, status, verdict)
        except Exception as exc:
            logger.warning("Could not record AI status for %s: %s", eval_id, exc)

    async def _emit_progress(
        self,
        run: ScreenerRun,
        total: int,
        processed: int,
        approved: int,
        t0: float,
        status: str,
    ) -> None:
        snapshot = {
            "stage": "ai",
            "total": total,
            "processed": processed,
            "evaluated": approved,
            "calls": run.ai_calls,
            "status": status,
            "elapsed": round(time.monotonic() - t0, 2),
        }
        if self._bus is not None:
            await self._bus.emit(AI_PROGRESS, {"run_key": run.key, **snapshot})
