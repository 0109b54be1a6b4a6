from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Mapping

from pydantic import ValidationError

from stockfunnel.core.config import RiskConfig
from stockfunnel.data.store import PortfolioService, Position

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PortfolioSnapshot:
    """Point-in-time portfolio limits and usage, read once per selection."""

    max_positions: int
    max_position_pct: float
    max_per_sector: int
    daily_trade_budget: int
    total_equity: float
    available_capital: float
    open_position_count: int = 0
    open_sector_counts: Mapping[str, int] = field(default_factory=dict)
    trades_today: int = 0

    @property
    def max_position_value(self) -> float:
        return self.total_equity * self.max_position_pct

    @classmethod
    def from_defaults(cls, defaults: RiskConfig, equity: float) -> PortfolioSnapshot:
        return cls(
            max_positions=defaults.max_positions,
            max_position_pct=defaults.max_position_pct,
            max_per_sector=defaults.max_per_sector,
            daily_trade_budget=defaults.daily_trade_budget,
            total_equity=equity,
            available_capital=equity,
        )

    @classmethod
    async def capture(
        cls,
        portfolio: PortfolioService | None,
        bucket: str,
        defaults: RiskConfig,
        fallback_equity: float,
    ) -> PortfolioSnapshot:
        """Read the portfolio once; each unreadable value degrades to its default."""
        if portfolio is None:
            logger.warning("No portfolio service, using default risk limits")
            return cls.from_defaults(defaults, fallback_equity)

        risk = await _read_risk(portfolio, defaults)
        equity = await _read(portfolio.total_equity(), fallback_equity, "total equity")
        capital = await _read(portfolio.available_capital(bucket), equity, f"{bucket} capital")
        positions: list[Position] = await _read(portfolio.open_positions(bucket), [], "open positions")
        trades = await _read(portfolio.trades_today(bucket), 0, "trades today")

        sectors = Counter(p.sector for p in positions if p.sector)
        return cls(
            max_positions=risk.max_positions,
            max_position_pct=risk.max_position_pct,
            max_per_sector=risk.max_per_sector,
            daily_trade_budget=risk.daily_trade_budget,
            total_equity=equity,
            available_capital=capital,
            open_position_count=len(positions),
            open_sector_counts=dict(sectors),
            trades_today=int(trades),
        )


async def _read(awaitable: Any, default: Any, label: str) -> Any:
    try:
        value = await awaitable
    except Exception as exc:
        logger.warning("Portfolio %s unavailable, using default %r: %s", label, default, exc)
        return default
    return default if value is None else value


async def _read_risk(portfolio: PortfolioService, defaults: RiskConfig) -> RiskConfig:
    try:
        raw = await portfolio.risk_config()
    except Exception as exc:
        logger.warning("Risk configuration unavailable, using defaults: %s", exc)
        return defaults
    merged = {**defaults.model_dump(), **{k: v for k, v in dict(raw or {}).items() if v is not None}}
    try:
        return RiskConfig.model_validate(merged)
    except ValidationError as exc:
        logger.warning("Risk configuration invalid, using defaults: %s", exc)
        return defaults
