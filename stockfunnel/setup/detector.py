"""Setup detection: is a bullish candidate tradeable now, or should it wait?

Both detectors are pure. Given the same indicators, bars and position flag
they return the same ``SetupFields``, and each check short-circuits in a
fixed order:

    in position -> not bullish -> missing indicators -> extended
    -> consolidation below resistance -> weak ADX -> overbought RSI
    -> timeframes misaligned -> entry zone -> continuation -> fallback

Swing reads daily indicators and bars; long-term reads the weekly ones.
"""
from __future__ import annotations

import math
from typing import Any

from stockfunnel.analysis.structure import find_resistance, is_consolidating
from stockfunnel.core.candidate import Candidate, LongtermStatus, SetupFields, SwingStatus
from stockfunnel.core.config import SetupConfig
from stockfunnel.core.types import CandleSeries, IndicatorSet

_CONSOLIDATION_BARS = 10
_RESISTANCE_LOOKBACK = 20


def extract_numeric(value: Any) -> float | None:
    """Coerce an indicator value to a finite float, or ``None``."""
    if isinstance(value, dict):
        value = value.get("value")
    if isinstance(value, bool) or value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def is_bullish(ind: IndicatorSet) -> bool:
    ema20 = extract_numeric(ind.ema20)
    ema50 = extract_numeric(ind.ema50)
    return ind.supertrend_bullish and ema20 is not None and ema50 is not None and ema20 > ema50


def _distance_pct(price: float, level: float) -> float:
    return round((price - level) / level * 100, 2)


def _near_resistance(series: CandleSeries, close: float, max_range: float, max_distance: float) -> float | None:
    """Resistance level when price is coiling just below it, else ``None``."""
    bars = series.bars
    if not is_consolidating(bars, _CONSOLIDATION_BARS, max_range):
        return None
    resistance = find_resistance(bars, _RESISTANCE_LOOKBACK)
    if resistance is None or close >= resistance:
        return None
    if round((resistance - close) / close * 100, 2) < max_distance:
        return resistance
    return None


class SwingSetupDetector:
    def __init__(self, config: SetupConfig | None = None) -> None:
        self._config = config or SetupConfig()

    def detect(self, candidate: Candidate, series: CandleSeries, in_position: bool = False) -> SetupFields:
        if in_position:
            return SetupFields(SwingStatus.IN_POSITION, "Already in position")

        ind = candidate.require_screener().indicators
        if not is_bullish(ind):
            return SetupFields(SwingStatus.NOT_READY, "Not bullish")

        cfg = self._config
        close = extract_numeric(ind.latest_close) or series.latest_close
        ema20 = extract_numeric(ind.ema20)
        ema50 = extract_numeric(ind.ema50)
        atr = extract_numeric(ind.atr)
        adx = extract_numeric(ind.adx)
        rsi = extract_numeric(ind.rsi)
        if not (close and ema20 and ema50 and atr):
            return SetupFields(SwingStatus.NOT_READY, "Missing required indicators")

        distance = _distance_pct(close, ema20)

        if distance > cfg.swing_max_extension:
            return SetupFields(
                SwingStatus.WAIT_PULLBACK,
                f"Extended {distance}% above EMA20, wait for pullback",
                invalidate_if=f"Daily close below {ema50:.2f}",
                entry_conditions={
                    "wait_for": f"Pullback to EMA20 ({ema20:.2f}) or 8-10% correction",
                    "distance_from_ema20_pct": distance,
                },
            )

        resistance = _near_resistance(
            series, close, cfg.swing_consolidation_range, cfg.swing_breakout_distance,
        )
        if resistance is not None:
            return SetupFields(
                SwingStatus.WAIT_BREAKOUT,
                f"Near resistance at {resistance:.2f}, wait for breakout",
                invalidate_if=f"Close below {ema20:.2f}",
                entry_conditions={
                    "wait_for": f"Breakout above {resistance:.2f} with volume",
                    "resistance": round(resistance, 2),
                },
            )

        if adx is not None and adx < cfg.min_adx:
            return SetupFields(SwingStatus.NOT_READY, f"Weak trend (ADX {adx:.1f} < {cfg.min_adx:g})")

        if rsi is not None and rsi > cfg.overbought_rsi:
            return SetupFields(
                SwingStatus.WAIT_PULLBACK,
                f"Overbought (RSI {rsi:.1f}), wait for pullback",
                invalidate_if=f"RSI stays above {cfg.overbought_rsi:g} for 3+ days",
                entry_conditions={"wait_for": "RSI pullback to 50-60 zone"},
            )

        if candidate.require_screener().mtf_aligned is False:
            return SetupFields(SwingStatus.NOT_READY, "Multi-timeframe misalignment")

        adx_label = f"{adx:.1f}" if adx is not None else "N/A"
        if cfg.swing_ready_low <= distance <= cfg.swing_ready_high:
            return SetupFields(
                SwingStatus.READY,
                f"Near EMA20 pullback with strong trend (ADX {adx_label})",
                invalidate_if=f"Daily close below {ema50:.2f}",
                entry_conditions={
                    "entry_zone": [round(ema20, 2), round(close, 2)],
                    "trigger": "Price holds above EMA20 on pullback",
                    "distance_from_ema20_pct": distance,
                },
            )

        if 2 <= distance <= cfg.swing_continuation_high and adx is not None and adx > cfg.strong_adx:
            return SetupFields(
                SwingStatus.READY,
                f"Strong uptrend continuation (ADX {adx_label})",
                invalidate_if=f"Daily close below {ema20:.2f}",
                entry_conditions={
                    "entry_zone": [round(close, 2), round(close * 1.02, 2)],
                    "trigger": "Momentum continuation",
                    "distance_from_ema20_pct": distance,
                },
            )

        return SetupFields(SwingStatus.NOT_READY, "Bullish but setup conditions not optimal")


class LongtermSetupDetector:
    """Weekly-chart variant with wider zones and ACCUMULATE instead of READY."""

    def __init__(self, config: SetupConfig | None = None) -> None:
        self._config = config or SetupConfig()

    def detect(self, candidate: Candidate, weekly_series: CandleSeries, in_position: bool = False) -> SetupFields:
        if in_position:
            return SetupFields(LongtermStatus.IN_POSITION, "Already in long-term position")

        screener = candidate.require_screener()
        ind = screener.weekly_indicators
        if ind is None or not is_bullish(ind):
            return SetupFields(LongtermStatus.NOT_READY, "Weekly trend not bullish")

        cfg = self._config
        close = extract_numeric(ind.latest_close) or weekly_series.latest_close
        ema20 = extract_numeric(ind.ema20)
        ema50 = extract_numeric(ind.ema50)
        atr = extract_numeric(ind.atr)
        adx = extract_numeric(ind.adx)
        rsi = extract_numeric(ind.rsi)
        if not (close and ema20 and ema50 and atr):
            return SetupFields(LongtermStatus.NOT_READY, "Missing required weekly indicators")

        distance = _distance_pct(close, ema20)

        if distance > cfg.longterm_max_extension:
            return SetupFields(
                LongtermStatus.WAIT_DIP,
                f"Extended {distance}% above weekly EMA20, wait for dip",
                invalidate_if=f"Weekly close below {ema50:.2f}",
                entry_conditions={
                    "wait_for": f"Dip toward weekly EMA20 ({ema20:.2f})",
                    "distance_from_ema20_pct": distance,
                },
            )

        resistance = _near_resistance(
            weekly_series, close, cfg.longterm_consolidation_range, cfg.longterm_breakout_distance,
        )
        if resistance is not None:
            return SetupFields(
                LongtermStatus.WAIT_BREAKOUT,
                f"Weekly base below resistance at {resistance:.2f}, wait for breakout",
                invalidate_if=f"Weekly close below {ema20:.2f}",
                entry_conditions={
                    "wait_for": f"Weekly close above {resistance:.2f}",
                    "resistance": round(resistance, 2),
                },
            )

        if adx is not None and adx < cfg.min_adx:
            return SetupFields(LongtermStatus.NOT_READY, f"Weak weekly trend (ADX {adx:.1f} < {cfg.min_adx:g})")

        if rsi is not None and rsi > cfg.overbought_rsi:
            return SetupFields(LongtermStatus.NOT_READY, f"Weekly overbought (RSI {rsi:.1f})")

        if screener.mtf_aligned is False:
            return SetupFields(LongtermStatus.NOT_READY, "Multi-timeframe misalignment")

        if cfg.longterm_accumulate_low <= distance <= cfg.longterm_accumulate_high:
            return SetupFields(
                LongtermStatus.ACCUMULATE,
                "Accumulation zone near weekly EMA20",
                invalidate_if=f"Weekly close below {ema50:.2f}",
                entry_conditions={
                    "buy_zone": [round(min(ema20, close), 2), round(max(ema20, close), 2)],
                    "distance_from_ema20_pct": distance,
                },
            )

        if (cfg.longterm_accumulate_high <= distance <= cfg.longterm_max_extension
                and adx is not None and adx > cfg.strong_adx):
            return SetupFields(
                LongtermStatus.ACCUMULATE,
                f"Strong weekly trend continuation (ADX {adx:.1f})",
                invalidate_if=f"Weekly close below {ema20:.2f}",
                entry_conditions={
                    "buy_zone": [round(close * 0.97, 2), round(close, 2)],
                    "distance_from_ema20_pct": distance,
                },
            )

        return SetupFields(LongtermStatus.NOT_READY, "Bullish but accumulation conditions not optimal")
