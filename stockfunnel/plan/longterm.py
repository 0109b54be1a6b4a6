from __future__ import annotations

import logging

from stockfunnel.core.candidate import Candidate, LongtermStatus, TradePlan
from stockfunnel.core.config import TradePlanConfig
from stockfunnel.core.types import CandleSeries
from stockfunnel.plan.builder import below_min_rr, size_position, structure_target
from stockfunnel.setup.detector import extract_numeric

logger = logging.getLogger(__name__)

MIN_HORIZON_MONTHS = 6
MAX_HORIZON_MONTHS = 24
_TYPICAL_WEEKLY_ATR_PCT = 5.0


def buy_zone(close: float, ema20: float, ema50: float) -> tuple[float, float]:
    distance = round((close - ema20) / ema20 * 100, 2)
    if -5 <= distance <= 5:
        return round(min(ema20, ema50), 2), round(max(ema20, ema50), 2)
    if 5 < distance <= 10:
        return round(close * 0.97, 2), round(close * 1.03, 2)
    return round(ema20 * 0.95, 2), round(ema20 * 1.05, 2)


def invalid_level(ema50: float, ema200: float | None, atr: float) -> float:
    """Weekly close below this voids the thesis."""
    levels = [ema50 - 2 * atr]
    if ema200 is not None and ema200 < ema50:
        levels.append(ema200)
    return max(levels)


def _clamp_months(months: float) -> int:
    return max(MIN_HORIZON_MONTHS, min(MAX_HORIZON_MONTHS, round(months)))


def time_horizon(atr: float, close: float, adx: float | None) -> tuple[int, int]:
    """Holding period in months; strong trends are expected to pay out sooner.

    Weekly ATR above 5% of price stretches the horizon, by at most half.
    """
    if adx is not None and adx > 25:
        base, upper = 9, 15
    else:
        base, upper = 15, 24
    atr_pct = atr / close * 100 if close > 0 else 0.0
    factor = min(max(atr_pct / _TYPICAL_WEEKLY_ATR_PCT, 1.0), 1.5)
    return _clamp_months(base * factor), _clamp_months(upper * factor)


def add_on_zones(ema20: float, ema50: float) -> list[float]:
    zones = [round(ema20, 2)]
    if ema50 < ema20:
        zones.append(round(ema50, 2))
    zones.append(round(ema20 * 0.95, 2))
    return zones


class LongtermPlanBuilder:
    """Accumulation plan for an ACCUMULATE candidate from weekly indicators.

    ``stop_loss`` carries the invalidation level; entry is the middle of the
    buy zone.
    """

    def __init__(self, config: TradePlanConfig | None = None) -> None:
        self._config = config or TradePlanConfig()

    def build(self, candidate: Candidate, weekly_series: CandleSeries, capital: float | None = None) -> TradePlan | None:
        setup = candidate.require_setup()
        if setup.status != LongtermStatus.ACCUMULATE:
            return None

        ind = candidate.require_screener().weekly_indicators
        if ind is None:
            return None
        cfg = self._config
        close = extract_numeric(ind.latest_close) or weekly_series.latest_close
        ema20 = extract_numeric(ind.ema20)
        ema50 = extract_numeric(ind.ema50)
        ema200 = extract_numeric(ind.ema200)
        atr = extract_numeric(ind.atr)
        if not close or not ema20 or not ema50 or not atr or atr <= 0:
            return None

        zone = buy_zone(close, ema20, ema50)
        entry = round(sum(zone) / 2, 2)
        stop = round(invalid_level(ema50, ema200, atr), 2)
        risk_per_share = round(entry - stop, 2)
        if risk_per_share <= 0:
            return None

        target = round(structure_target(
            weekly_series, entry, entry + risk_per_share * cfg.target_r_multiple, cfg.structure_tolerance,
        ), 2)
        if below_min_rr(entry, stop, target, cfg.min_risk_reward):
            logger.debug("%s: long-term plan rejected, RR %.3f", candidate.symbol, (target - entry) / risk_per_share)
            return None
        risk_reward = round((target - entry) / risk_per_share, 2)

        capital = capital if capital and capital > 0 else cfg.assumed_capital
        sizing = size_position(
            entry, risk_per_share, capital,
            cfg.risk_pct, min(cfg.longterm_allocation_pct, cfg.max_capital_pct),
        )
        return TradePlan(
            entry_price=entry,
            stop_loss=stop,
            take_profit=target,
            quantity=sizing.quantity,
            risk_per_share=risk_per_share,
            risk_amount=sizing.risk_amount,
            risk_reward=risk_reward,
            capital_used=sizing.capital_used,
            setup_type="Weekly EMA pullback" if abs(close - ema20) / ema20 <= 0.05 else "Weekly trend continuation",
            buy_zone=zone,
            time_horizon_months=time_horizon(atr, close, extract_numeric(ind.adx)),
            add_on_zones=add_on_zones(ema20, ema50),
            allocation_pct=cfg.longterm_allocation_pct,
        )
