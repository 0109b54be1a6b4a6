from __future__ import annotations

import logging
import math
from dataclasses import dataclass

from stockfunnel.analysis.structure import nearest_resistance_above, nearest_swing_low_below
from stockfunnel.core.candidate import Candidate, SwingStatus, TradePlan
from stockfunnel.core.config import TradePlanConfig
from stockfunnel.core.types import CandleSeries
from stockfunnel.setup.detector import extract_numeric

logger = logging.getLogger(__name__)

_STRUCTURE_LOOKBACK = 20
_PULLBACK_BAND_PCT = 2.0
# float slack when reward lands exactly on the floor
_RR_EPSILON = 1e-9


@dataclass(frozen=True)
class Sizing:
    quantity: int
    capital_used: float
    risk_amount: float


def size_position(
    entry: float,
    risk_per_share: float,
    capital: float,
    risk_pct: float,
    max_capital_pct: float,
) -> Sizing:
    """Lesser of the risk-budget and concentration limits, floored, at least 1 share."""
    by_risk = math.floor(capital * risk_pct / 100.0 / risk_per_share)
    by_capital = math.floor(capital * max_capital_pct / 100.0 / entry)
    quantity = max(1, min(by_risk, by_capital))
    return Sizing(
        quantity=quantity,
        capital_used=round(quantity * entry, 2),
        risk_amount=round(quantity * risk_per_share, 2),
    )


def below_min_rr(entry: float, stop: float, target: float, min_risk_reward: float) -> bool:
    """Reward measured against the floor directly, never through the rounded ratio."""
    return target - entry < min_risk_reward * (entry - stop) - _RR_EPSILON


def structure_target(
    series: CandleSeries,
    entry: float,
    r_target: float,
    tolerance: float,
) -> float:
    """Nearest swing-high resistance above entry when it lies within ``tolerance`` x the R target."""
    resistance = nearest_resistance_above(series.bars, entry, _STRUCTURE_LOOKBACK)
    if resistance is not None and resistance <= r_target * tolerance:
        return resistance
    return r_target


class TradePlanBuilder:
    """Entry, stop, target and size for a READY swing candidate.

    Returns ``None`` when the candidate is not READY, when ATR is missing or
    zero, or when the plan cannot reach the minimum risk-reward.
    """

    def __init__(self, config: TradePlanConfig | None = None) -> None:
        self._config = config or TradePlanConfig()

    def build(self, candidate: Candidate, series: CandleSeries, capital: float | None = None) -> TradePlan | None:
        setup = candidate.require_setup()
        if setup.status != SwingStatus.READY:
            return None

        cfg = self._config
        ind = candidate.require_screener().indicators
        close = extract_numeric(ind.latest_close) or series.latest_close
        ema20 = extract_numeric(ind.ema20)
        ema50 = extract_numeric(ind.ema50)
        atr = extract_numeric(ind.atr)
        if not close or not ema20 or not atr or atr <= 0:
            return None

        distance = round((close - ema20) / ema20 * 100, 2)
        entry = ema20 if -_PULLBACK_BAND_PCT <= distance <= _PULLBACK_BAND_PCT else close

        stops = [entry - cfg.stop_atr_multiple * atr]
        if ema50 is not None and ema50 < entry:
            stops.append(ema50)
        swing_low = nearest_swing_low_below(series.bars, entry, _STRUCTURE_LOOKBACK)
        if swing_low is not None:
            stops.append(swing_low)
        stop = max(stops)

        risk = entry - stop
        if risk <= 0:
            return None
        target = structure_target(series, entry, entry + risk * cfg.target_r_multiple, cfg.structure_tolerance)

        entry_r, stop_r, target_r = round(entry, 2), round(stop, 2), round(target, 2)
        risk_per_share = round(entry_r - stop_r, 2)
        if risk_per_share <= 0:
            return None
        if below_min_rr(entry_r, stop_r, target_r, cfg.min_risk_reward):
            logger.debug("%s: plan rejected, RR %.3f below %.2f",
                         candidate.symbol, (target_r - entry_r) / risk_per_share, cfg.min_risk_reward)
            return None
        risk_reward = round((target_r - entry_r) / risk_per_share, 2)

        sizing = size_position(
            entry_r, risk_per_share,
            capital if capital and capital > 0 else cfg.assumed_capital,
            cfg.risk_pct, cfg.max_capital_pct,
        )
        return TradePlan(
            entry_price=entry_r,
            stop_loss=stop_r,
            take_profit=target_r,
            quantity=sizing.quantity,
            risk_per_share=risk_per_share,
            risk_amount=sizing.risk_amount,
            risk_reward=risk_reward,
            capital_used=sizing.capital_used,
            setup_type=_setup_type(distance),
            entry_zone=(entry_r, round(entry * 1.02, 2)),
        )


def _setup_type(distance_pct: float) -> str:
    if -2 <= distance_pct <= 2:
        return "EMA pullback"
    if 2 < distance_pct <= 8:
        return "Momentum continuation"
    return "Trend following"
