"""Collaborator ports the funnel reads from and writes to."""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Iterable, Mapping

from stockfunnel.core.candidate import Candidate
from stockfunnel.core.types import Bar, Instrument, ScreenerRun, Timeframe


@dataclass(frozen=True)
class Position:
    instrument_id: int
    symbol: str
    bucket: str = "swing"
    quantity: int = 0
    sector: str | None = None


class CandleStore(ABC):
    @abstractmethod
    async def load_series(self, instrument_id: int, timeframe: Timeframe, limit: int) -> list[Bar]:
        """Most recent ``limit`` bars, oldest first."""

    @abstractmethod
    async def ensure_fresh(self, timeframes: Iterable[Timeframe]) -> dict[str, Any]:
        """Trigger ingestion if needed and report freshness per timeframe."""


class PortfolioService(ABC):
    @abstractmethod
    async def open_positions_for(self, instrument_id: int, bucket: str) -> list[Position]: ...

    @abstractmethod
    async def open_positions(self, bucket: str) -> list[Position]: ...

    @abstractmethod
    async def available_capital(self, bucket: str) -> float: ...

    @abstractmethod
    async def total_equity(self) -> float: ...

    @abstractmethod
    async def risk_config(self) -> Mapping[str, Any]:
        """Keys: max_positions, max_position_pct, max_per_sector, daily_trade_budget."""

    @abstractmethod
    async def trades_today(self, bucket: str) -> int: ...


class SectorLookup(ABC):
    @abstractmethod
    def sector_for(self, instrument: Instrument) -> str | None: ...


class MapSectorLookup(SectorLookup):
    """Symbol to sector map, falling back to the instrument's own sector."""

    def __init__(self, mapping: Mapping[str, str] | None = None) -> None:
        self._mapping = dict(mapping or {})

    def sector_for(self, instrument: Instrument) -> str | None:
        return self._mapping.get(instrument.symbol) or instrument.sector


class ResultSink(ABC):
    """Append-style channel for candidate records, progress and AI ledger."""

    @abstractmethod
    async def save_candidate(self, run_key: str, candidate: Candidate, stage: str) -> None: ...

    @abstractmethod
    async def load_candidate(self, run_key: str, instrument_id: int, stage: str) -> Candidate | None: ...

    @abstractmethod
    async def publish_progress(self, run_key: str, snapshot: Mapping[str, Any]) -> None: ...

    @abstractmethod
    async def ai_record(self, eval_id: str) -> dict[str, Any] | None:
        """Ledger entry ``{"status", "verdict"}`` for an evaluation key, if any."""

    @abstractmethod
    async def mark_ai(self, eval_id: str, status: str, verdict: Mapping[str, Any] | None = None) -> None: ...

    @abstractmethod
    async def ai_calls_on(self, day: str) -> int:
        """Judge calls recorded for an ISO date, across every run and process."""

    @abstractmethod
    async def record_ai_call(self, day: str) -> int: ...

    @abstractmethod
    async def save_run(self, run: ScreenerRun) -> None: ...
