"""Shared market data types."""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Iterable, Sequence

from stockfunnel.core.exceptions import DataError


class Timeframe(str, Enum):
    M15 = "15"
    H1 = "60"
    D1 = "1D"
    W1 = "1W"


@dataclass(frozen=True)
class Bar:
    symbol: str
    timestamp: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float

    @property
    def range_pct(self) -> float:
        if self.low <= 0:
            return 0.0
        return (self.high - self.low) / self.low * 100.0


@dataclass(frozen=True)
class Instrument:
    """A tradable instrument from the instrument master.

    ``ltp`` is the last traded price when the master carries one; the basic
    filter only applies the price band when it is known.
    """

    id: int
    symbol: str
    exchange: str = "NSE"
    segment: str = "equity"
    ltp: float | None = None
    sector: str | None = None


class CandleSeries:
    """Bars for one instrument and timeframe, oldest first.

    Timestamps are strictly increasing; construction fails otherwise.
    """

    def __init__(self, symbol: str, timeframe: Timeframe, bars: Sequence[Bar]) -> None:
        for prev, cur in zip(bars, bars[1:]):
            if cur.timestamp <= prev.timestamp:
                raise DataError(
                    f"[{symbol}] {timeframe.value} bars out of order at {cur.timestamp.isoformat()}"
                )
        self.symbol = symbol
        self.timeframe = timeframe
        self.bars: tuple[Bar, ...] = tuple(bars)

    @classmethod
    def from_unsorted(cls, symbol: str, timeframe: Timeframe, bars: Iterable[Bar]) -> CandleSeries:
        """Sort by timestamp and keep the last bar seen for each timestamp."""
        by_ts: dict[datetime, Bar] = {}
        for bar in bars:
            by_ts[bar.timestamp] = bar
        return cls(symbol, timeframe, [by_ts[ts] for ts in sorted(by_ts)])

    def __len__(self) -> int:
        return len(self.bars)

    def __iter__(self):
        return iter(self.bars)

    def __repr__(self) -> str:
        return f"CandleSeries({self.symbol!r}, {self.timeframe.value}, {len(self.bars)} bars)"

    @property
    def closes(self) -> list[float]:
        return [b.close for b in self.bars]

    @property
    def highs(self) -> list[float]:
        return [b.high for b in self.bars]

    @property
    def lows(self) -> list[float]:
        return [b.low for b in self.bars]

    @property
    def volumes(self) -> list[float]:
        return [b.volume for b in self.bars]

    @property
    def latest_close(self) -> float | None:
        return self.bars[-1].close if self.bars else None

    @property
    def latest_timestamp(self) -> datetime | None:
        return self.bars[-1].timestamp if self.bars else None

    def tail(self, n: int) -> list[Bar]:
        return list(self.bars[-n:]) if n > 0 else []


@dataclass
class IndicatorSet:
    """Latest indicator values for one series.

    Any field may be ``None`` when the series is too short for it. Scoring
    treats a missing factor as absent from both numerator and denominator.
    """

    ema20: float | None = None
    ema50: float | None = None
    ema200: float | None = None
    rsi: float | None = None
    adx: float | None = None
    atr: float | None = None
    macd: dict[str, float] | None = None
    supertrend: dict[str, Any] | None = None
    volume: dict[str, float] | None = None
    latest_close: float | None = None

    @property
    def supertrend_bullish(self) -> bool:
        return bool(self.supertrend) and self.supertrend.get("trend") == "bullish"

    @property
    def supertrend_bearish(self) -> bool:
        return bool(self.supertrend) and self.supertrend.get("trend") == "bearish"

    @property
    def macd_bullish(self) -> bool | None:
        if not self.macd:
            return None
        return self.macd["macd"] > self.macd["signal"]

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> IndicatorSet:
        if not data:
            return cls()
        known = {f for f in cls.__dataclass_fields__}
        return cls(**{k: v for k, v in data.items() if k in known})


@dataclass
class ScreenerRun:
    """One execution of the funnel.

    ``key`` scopes AI idempotency: the run id when one was supplied, otherwise
    the calendar date the run started.
    """

    screener_type: str
    id: str | None = None
    started_at: datetime = field(default_factory=datetime.now)
    completed_at: datetime | None = None
    universe_size: int = 0
    ai_calls: int = 0
    ai_input_tokens: int = 0
    ai_output_tokens: int = 0
    counters: dict[str, int] = field(default_factory=dict)

    @property
    def key(self) -> str:
        return self.id if self.id else self.started_at.date().isoformat()

    def bump(self, counter: str, n: int = 1) -> None:
        self.counters[counter] = self.counters.get(counter, 0) + n

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "key": self.key,
            "screener_type": self.screener_type,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "universe_size": self.universe_size,
            "ai_calls": self.ai_calls,
            "ai_input_tokens": self.ai_input_tokens,
            "ai_output_tokens": self.ai_output_tokens,
            "counters": dict(self.counters),
        }
