"""The candidate record that flows through every funnel stage.

One ``Candidate`` is created per instrument that passes the screener and is
annotated in place. Each stage owns one field group; later stages read the
groups written before them through the ``require_*`` accessors, which raise
``StageOrderError`` when the pipeline was wired out of order.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any

from stockfunnel.core.exceptions import StageOrderError
from stockfunnel.core.types import IndicatorSet, Instrument


class SwingStatus(str, Enum):
    READY = "READY"
    WAIT_PULLBACK = "WAIT_PULLBACK"
    WAIT_BREAKOUT = "WAIT_BREAKOUT"
    NOT_READY = "NOT_READY"
    IN_POSITION = "IN_POSITION"


class LongtermStatus(str, Enum):
    ACCUMULATE = "ACCUMULATE"
    WAIT_DIP = "WAIT_DIP"
    WAIT_BREAKOUT = "WAIT_BREAKOUT"
    NOT_READY = "NOT_READY"
    IN_POSITION = "IN_POSITION"


ACTIONABLE_STATUSES = frozenset({SwingStatus.READY.value, LongtermStatus.ACCUMULATE.value})


@dataclass
class ScreenerFields:
    score: float
    base_score: float
    mtf_score: float
    indicators: IndicatorSet
    metadata: dict[str, Any] = field(default_factory=dict)
    mtf: dict[str, Any] = field(default_factory=dict)
    weekly_indicators: IndicatorSet | None = None

    @property
    def mtf_aligned(self) -> bool | None:
        alignment = self.mtf.get("trend_alignment")
        if not alignment:
            return None
        return bool(alignment.get("aligned"))


@dataclass(frozen=True)
class SetupFields:
    status: SwingStatus | LongtermStatus
    reason: str
    invalidate_if: str | None = None
    entry_conditions: dict[str, Any] = field(default_factory=dict)

    @property
    def actionable(self) -> bool:
        return self.status.value in ACTIONABLE_STATUSES


@dataclass
class QualityFields:
    trade_quality_score: float
    breakdown: dict[str, float] = field(default_factory=dict)
    rank: int = 0


@dataclass
class TradePlan:
    """Executable plan for one candidate.

    For long-term plans ``stop_loss`` is the invalidation level and the
    long-term extras (buy zone, horizon, add-on zones) are populated.
    """

    entry_price: float
    stop_loss: float
    take_profit: float
    quantity: int
    risk_per_share: float
    risk_amount: float
    risk_reward: float
    capital_used: float
    setup_type: str
    entry_zone: tuple[float, float] | None = None
    buy_zone: tuple[float, float] | None = None
    time_horizon_months: tuple[int, int] | None = None
    add_on_zones: list[float] = field(default_factory=list)
    allocation_pct: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TradePlan:
        data = dict(data)
        for key in ("entry_zone", "buy_zone", "time_horizon_months"):
            if data.get(key) is not None:
                data[key] = tuple(data[key])
        return cls(**data)


@dataclass
class AIFields:
    status: str
    eval_id: str
    confidence: float | None = None
    risk_category: str | None = None
    stage: str | None = None
    momentum_trend: str | None = None
    price_position: str | None = None
    entry_timing: str | None = None
    continuation_bias: str | None = None
    holding_days: int | None = None
    primary_risks: list[str] = field(default_factory=list)
    summary: str = ""
    avoid: bool = False
    approved: bool = False
    fallback_reason: str | None = None


@dataclass
class SelectionFields:
    combined_score: float
    tier: str | None = None
    admitted: bool = False
    rejection_reason: str | None = None


@dataclass
class Candidate:
    instrument: Instrument
    screener_type: str
    screener: ScreenerFields | None = None
    setup: SetupFields | None = None
    quality: QualityFields | None = None
    plan: TradePlan | None = None
    ai: AIFields | None = None
    selection: SelectionFields | None = None
    notes: list[dict[str, str]] = field(default_factory=list)

    def __setattr__(self, name: str, value: Any) -> None:
        if name == "setup" and getattr(self, "setup", None) is not None:
            raise StageOrderError("setup", f"{self.symbol} setup status is already assigned")
        super().__setattr__(name, value)

    @property
    def instrument_id(self) -> int:
        return self.instrument.id

    @property
    def symbol(self) -> str:
        return self.instrument.symbol

    @property
    def score(self) -> float:
        return self.require_screener().score

    @property
    def trade_quality_score(self) -> float | None:
        return self.quality.trade_quality_score if self.quality else None

    def require_screener(self) -> ScreenerFields:
        if self.screener is None:
            raise StageOrderError("screener", f"{self.symbol} has no screener fields")
        return self.screener

    def require_setup(self) -> SetupFields:
        if self.setup is None:
            raise StageOrderError("setup", f"{self.symbol} has not been classified")
        return self.setup

    def require_quality(self) -> QualityFields:
        if self.quality is None:
            raise StageOrderError("quality", f"{self.symbol} has not been ranked")
        return self.quality

    def require_plan(self) -> TradePlan:
        if self.plan is None:
            raise StageOrderError("plan", f"{self.symbol} has no trade plan")
        return self.plan

    def drop(self, stage: str, reason: str) -> None:
        """Record why this candidate left the funnel."""
        self.notes.append({"stage": stage, "reason": reason})

    def to_record(self) -> dict[str, Any]:
        """Flatten to a JSON-safe dict for persistence."""
        screener = None
        if self.screener is not None:
            screener = {
                "score": self.screener.score,
                "base_score": self.screener.base_score,
                "mtf_score": self.screener.mtf_score,
                "indicators": self.screener.indicators.to_dict(),
                "metadata": self.screener.metadata,
                "mtf": self.screener.mtf,
                "weekly_indicators": (
                    self.screener.weekly_indicators.to_dict()
                    if self.screener.weekly_indicators else None
                ),
            }
        setup = None
        if self.setup is not None:
            setup = {
                "status": self.setup.status.value,
                "reason": self.setup.reason,
                "invalidate_if": self.setup.invalidate_if,
                "entry_conditions": self.setup.entry_conditions,
            }
        return {
            "instrument": asdict(self.instrument),
            "screener_type": self.screener_type,
            "screener": screener,
            "setup": setup,
            "quality": asdict(self.quality) if self.quality else None,
            "plan": self.plan.to_dict() if self.plan else None,
            "ai": asdict(self.ai) if self.ai else None,
            "selection": asdict(self.selection) if self.selection else None,
            "notes": list(self.notes),
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> Candidate:
        screener = None
        if record.get("screener"):
            raw = record["screener"]
            weekly = raw.get("weekly_indicators")
            screener = ScreenerFields(
                score=raw["score"],
                base_score=raw["base_score"],
                mtf_score=raw["mtf_score"],
                indicators=IndicatorSet.from_dict(raw.get("indicators")),
                metadata=raw.get("metadata") or {},
                mtf=raw.get("mtf") or {},
                weekly_indicators=IndicatorSet.from_dict(weekly) if weekly else None,
            )
        setup = None
        if record.get("setup"):
            raw = record["setup"]
            status_enum = SwingStatus if record["screener_type"] == "swing" else LongtermStatus
            setup = SetupFields(
                status=status_enum(raw["status"]),
                reason=raw["reason"],
                invalidate_if=raw.get("invalidate_if"),
                entry_conditions=raw.get("entry_conditions") or {},
            )
        return cls(
            instrument=Instrument(**record["instrument"]),
            screener_type=record["screener_type"],
            screener=screener,
            setup=setup,
            quality=QualityFields(**record["quality"]) if record.get("quality") else None,
            plan=TradePlan.from_dict(record["plan"]) if record.get("plan") else None,
            ai=AIFields(**record["ai"]) if record.get("ai") else None,
            selection=SelectionFields(**record["selection"]) if record.get("selection") else None,
            notes=list(record.get("notes") or []),
        )
