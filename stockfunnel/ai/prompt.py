from __future__ import annotations

import json
from typing import Any

from stockfunnel.core.candidate import Candidate

PROMPT_VERSION = "1.0.0"

_SYSTEM_MESSAGE = """\
You are a professional trading assistant helping evaluate swing and long-term trade setups.
You do NOT calculate indicators.
You do NOT predict prices.
You do NOT give buy/sell commands.
You only interpret the provided data.

Your job is to analyze:
- How momentum and trend evolved to reach the current setup
- Whether the setup looks early, healthy, or extended
- Whether entry timing is appropriate or should be delayed
- What risks or invalidation conditions exist

You must base your analysis STRICTLY on the provided data.
If information is insufficient, say so explicitly.
Respond ONLY in valid JSON."""

_TASK = """\
Analyze the following trade setup using the provided screener data.

Your tasks:
1. Identify the stage of the move (early, middle, late).
2. Assess whether the current price appears near value or extended.
3. Decide whether the setup is suitable for immediate entry or should wait.
4. Highlight any caution, exhaustion, or failure risks.
5. Clearly state conditions that would invalidate the setup.

Do not calculate indicators. Do not predict future prices. Do not suggest position size.
Use ONLY the data provided below."""

_OUTPUT_SCHEMA = """\
Respond ONLY in valid JSON using this exact structure:
{
  "confidence": number,
  "stage": "early" | "middle" | "late",
  "momentum_trend": "strengthening" | "stable" | "weakening",
  "price_position": "near_value" | "slightly_extended" | "extended",
  "entry_timing": "immediate" | "wait",
  "continuation_bias": "high" | "medium" | "low",
  "risk_category": "low" | "medium" | "high",
  "holding_period_days": "x-y",
  "primary_risks": ["string"],
  "summary": "string",
  "avoid": boolean
}
confidence is 0.0 to 10.0."""


class PromptBuilder:
    """Builds the versioned system and user messages for one candidate."""

    version = PROMPT_VERSION

    def build(self, candidate: Candidate) -> dict[str, Any]:
        return {
            "system_message": _SYSTEM_MESSAGE,
            "user_message": "\n\n".join([_TASK, _OUTPUT_SCHEMA, self.setup_data(candidate)]),
            "version": PROMPT_VERSION,
        }

    def setup_data(self, candidate: Candidate) -> str:
        screener = candidate.require_screener()
        ind = screener.indicators
        close = ind.latest_close or screener.metadata.get("ltp")
        structure = screener.metadata.get("structure") or {}
        data: dict[str, Any] = {
            "symbol": candidate.symbol,
            "strategy": candidate.screener_type,
            "setup_status": candidate.setup.status.value if candidate.setup else None,
            "setup_reason": candidate.setup.reason if candidate.setup else None,
            "scores": {
                "screener_score": screener.score,
                "base_score": screener.base_score,
                "mtf_score": screener.mtf_score,
                "quality_score": candidate.trade_quality_score,
            },
            "trend_alignment": {
                tf: info.get("trend_direction")
                for tf, info in (screener.mtf.get("timeframes") or {}).items()
            },
            "current_price": close,
            "levels": {
                "recent_swing_low": structure.get("swing_low"),
                "recent_swing_high": structure.get("swing_high"),
                "ema20": ind.ema20,
                "ema50": ind.ema50,
                "ema200": ind.ema200,
            },
            "indicator_context": {
                "rsi": ind.rsi,
                "adx": ind.adx,
                "atr_percent": (screener.metadata.get("volatility") or {}).get("atr_percent"),
                "macd_bullish": ind.macd_bullish,
                "supertrend": (ind.supertrend or {}).get("trend"),
                "volume_spike_ratio": (ind.volume or {}).get("spike_ratio"),
                "change_5d": (screener.metadata.get("momentum") or {}).get("change_5d"),
                "structure_pattern": structure.get("pattern"),
            },
        }
        if candidate.plan is not None:
            data["trade_plan"] = {
                "entry": candidate.plan.entry_price,
                "stop_loss": candidate.plan.stop_loss,
                "take_profit": candidate.plan.take_profit,
                "risk_reward": candidate.plan.risk_reward,
            }
        return "SETUP DATA:\n\n" + json.dumps(data, indent=2, default=str)
