"""In-memory implementations of the collaborator ports."""
from __future__ import annotations

import json
from typing import Any, Iterable, Mapping

from stockfunnel.core.candidate import Candidate
from stockfunnel.core.types import Bar, ScreenerRun, Timeframe
from stockfunnel.data.store import CandleStore, PortfolioService, Position, ResultSink


class MemoryCandleStore(CandleStore):
    def __init__(self) -> None:
        self._bars: dict[tuple[int, Timeframe], list[Bar]] = {}
        self.fresh_calls: list[list[Timeframe]] = []

    def add(self, instrument_id: int, timeframe: Timeframe, bars: list[Bar]) -> None:
        existing = self._bars.setdefault((instrument_id, timeframe), [])
        existing.extend(bars)
        existing.sort(key=lambda b: b.timestamp)

    async def load_series(self, instrument_id: int, timeframe: Timeframe, limit: int) -> list[Bar]:
        bars = self._bars.get((instrument_id, timeframe), [])
        return list(bars[-limit:]) if limit > 0 else []

    async def ensure_fresh(self, timeframes: Iterable[Timeframe]) -> dict[str, Any]:
        tfs = list(timeframes)
        self.fresh_calls.append(tfs)
        report: dict[str, Any] = {}
        for tf in tfs:
            latest = [bars[-1].timestamp for (_, t), bars in self._bars.items() if t == tf and bars]
            report[tf.value] = max(latest).isoformat() if latest else None
        return report


class StaticPortfolio(PortfolioService):
    """Fixed portfolio state; pass ``None`` for ``risk`` to simulate a missing risk config."""

    def __init__(
        self,
        capital: Mapping[str, float] | None = None,
        equity: float = 100_000.0,
        positions: list[Position] | None = None,
        risk: Mapping[str, Any] | None = None,
        trades_today: int = 0,
    ) -> None:
        self._capital = dict(capital or {"swing": equity, "longterm": equity})
        self._equity = equity
        self._positions = list(positions or [])
        self._risk = dict(risk) if risk is not None else None
        self._trades_today = trades_today

    async def open_positions_for(self, instrument_id: int, bucket: str) -> list[Position]:
        return [p for p in self._positions if p.instrument_id == instrument_id and p.bucket == bucket]

    async def open_positions(self, bucket: str) -> list[Position]:
        return [p for p in self._positions if p.bucket == bucket]

    async def available_capital(self, bucket: str) -> float:
        return self._capital.get(bucket, 0.0)

    async def total_equity(self) -> float:
        return self._equity

    async def risk_config(self) -> Mapping[str, Any]:
        if self._risk is None:
            raise LookupError("risk configuration not set")
        return dict(self._risk)

    async def trades_today(self, bucket: str) -> int:
        return self._trades_today


class MemorySink(ResultSink):
    """Keeps records as JSON text so reloads go through the same serialization as SQLite."""

    def __init__(self) -> None:
        self.candidates: dict[tuple[str, int, str], str] = {}
        self.progress: list[dict[str, Any]] = []
        self.ai_ledger: dict[str, dict[str, Any]] = {}
        self.runs: dict[str, dict[str, Any]] = {}
        self.ai_calls: dict[str, int] = {}

    async def save_candidate(self, run_key: str, candidate: Candidate, stage: str) -> None:
        self.candidates[(run_key, candidate.instrument_id, stage)] = json.dumps(candidate.to_record())

    async def load_candidate(self, run_key: str, instrument_id: int, stage: str) -> Candidate | None:
        raw = self.candidates.get((run_key, instrument_id, stage))
        return Candidate.from_record(json.loads(raw)) if raw is not None else None

    async def publish_progress(self, run_key: str, snapshot: Mapping[str, Any]) -> None:
        self.progress.append({"run_key": run_key, **snapshot})

    async def ai_record(self, eval_id: str) -> dict[str, Any] | None:
        entry = self.ai_ledger.get(eval_id)
        return dict(entry) if entry else None

    async def mark_ai(self, eval_id: str, status: str, verdict: Mapping[str, Any] | None = None) -> None:
        self.ai_ledger[eval_id] = {"status": status, "verdict": dict(verdict) if verdict else None}

    async def ai_calls_on(self, day: str) -> int:
        return self.ai_calls.get(day, 0)

    async def record_ai_call(self, day: str) -> int:
        self.ai_calls[day] = self.ai_calls.get(day, 0) + 1
        return self.ai_calls[day]

    async def save_run(self, run: ScreenerRun) -> None:
        self.runs[run.key] = run.to_dict()
