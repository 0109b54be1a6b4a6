"""Validation of raw judge output.

The judge's text is never trusted: confidence is clamped to [0, 10] and every
categorical field is coerced into a small fixed vocabulary with a default.
"""
from __future__ import annotations

import json
import math
import re
from dataclasses import asdict, dataclass, field
from typing import Any

from stockfunnel.core.exceptions import JudgeResponseError

STAGES = ("early", "middle", "late")
MOMENTUM_TRENDS = ("strengthening", "stable", "weakening")
PRICE_POSITIONS = ("near_value", "slightly_extended", "extended")
ENTRY_TIMINGS = ("immediate", "wait")
CONTINUATION_BIASES = ("high", "medium", "low")
RISK_CATEGORIES = ("low", "medium", "high")

_FENCE = re.compile(r"```(?:json)?\s*", re.IGNORECASE)
_INTS = re.compile(r"\d+")


@dataclass
class Verdict:
    confidence: float
    risk_category: str = "medium"
    stage: str = "middle"
    momentum_trend: str = "stable"
    price_position: str = "slightly_extended"
    entry_timing: str = "wait"
    continuation_bias: str = "medium"
    holding_days: int | None = None
    primary_risks: list[str] = field(default_factory=list)
    summary: str = ""
    avoid: bool = False

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Verdict:
        known = set(cls.__dataclass_fields__)
        return cls(**{k: v for k, v in data.items() if k in known})


def _choice(value: Any, allowed: tuple[str, ...], default: str) -> str:
    if isinstance(value, str) and value.strip().lower() in allowed:
        return value.strip().lower()
    return default


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "yes", "1")
    return bool(value)


def _confidence(value: Any) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(number):
        return 0.0
    return round(min(10.0, max(0.0, number)), 2)


def _holding_days(value: Any) -> int | None:
    """Upper bound of ranges such as ``"7-14"``; plain integers pass through."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value) if value > 0 else None
    if isinstance(value, str):
        numbers = [int(n) for n in _INTS.findall(value)]
        return max(numbers) if numbers else None
    return None


def _risks(data: dict[str, Any]) -> list[str]:
    raw = data.get("primary_risks", data.get("primary_risk"))
    if isinstance(raw, str):
        return [raw] if raw.strip() else []
    if isinstance(raw, list):
        return [str(r) for r in raw if str(r).strip()]
    return []


def derive_risk_category(stage: str, momentum_trend: str) -> str:
    if stage == "late" or momentum_trend == "weakening":
        return "high"
    if stage == "early" and momentum_trend == "strengthening":
        return "low"
    return "medium"


def parse_verdict(text: str) -> Verdict:
    """Parse and normalise judge output.

    Raises:
        JudgeResponseError: If the text is not a JSON object.
    """
    cleaned = _FENCE.sub("", text or "").replace("```", "").strip()
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        raise JudgeResponseError(f"invalid JSON: {exc.msg}") from exc
    if not isinstance(data, dict):
        raise JudgeResponseError(f"expected a JSON object, got {type(data).__name__}")

    stage = _choice(data.get("stage"), STAGES, "middle")
    momentum_trend = _choice(data.get("momentum_trend"), MOMENTUM_TRENDS, "stable")
    risk_category = _choice(data.get("risk_category") or data.get("risk"), RISK_CATEGORIES, "")
    return Verdict(
        confidence=_confidence(data.get("confidence")),
        risk_category=risk_category or derive_risk_category(stage, momentum_trend),
        stage=stage,
        momentum_trend=momentum_trend,
        price_position=_choice(data.get("price_position"), PRICE_POSITIONS, "slightly_extended"),
        entry_timing=_choice(data.get("entry_timing"), ENTRY_TIMINGS, "wait"),
        continuation_bias=_choice(data.get("continuation_bias"), CONTINUATION_BIASES, "medium"),
        holding_days=_holding_days(data.get("holding_period_days", data.get("holding_days"))),
        primary_risks=_risks(data),
        summary=str(data.get("summary") or data.get("comment") or ""),
        avoid=_as_bool(data.get("avoid", False)),
    )
