"""FinalSelector: greedy, portfolio-constrained admission.

Combined score:
    combined = score * 0.3 + trade_quality * 0.4 + ai_confidence * 10 * 0.3

Candidates are walked in combined order and each must pass, in order:
    1. open positions + admitted so far < max_positions
    2. sector positions (open + admitted) < max_per_sector
    3. remaining capital >= capital_floor_ratio * max position value
    4. same-sector admissions this run < max_correlated_picks
    5. trades today + admitted so far < daily_trade_budget

Admission is order-dependent: an earlier candidate can use up the slot a
later one would have needed. Tiers follow admission order.
"""
from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Any

from stockfunnel.core.candidate import Candidate, SelectionFields
from stockfunnel.core.config import SelectionConfig
from stockfunnel.data.store import SectorLookup
from stockfunnel.selection.constraints import PortfolioSnapshot

logger = logging.getLogger(__name__)


@dataclass
class SelectionResult:
    selected: list[Candidate] = field(default_factory=list)
    rejected: list[Candidate] = field(default_factory=list)
    tiers: dict[str, list[Candidate]] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        for tier, members in self.tiers.items():
            out[tier] = [
                {
                    "symbol": c.symbol,
                    "combined_score": c.selection.combined_score,
                    "setup_status": c.setup.status.value if c.setup else None,
                    "plan": c.plan.to_dict() if c.plan else None,
                    "ai_confidence": c.ai.confidence if c.ai else None,
                }
                for c in members
            ]
        out["rejected"] = [
            {"symbol": c.symbol, "reason": c.selection.rejection_reason} for c in self.rejected
        ]
        return out


class FinalSelector:
    def __init__(self, config: SelectionConfig | None = None, sectors: SectorLookup | None = None) -> None:
        self._config = config or SelectionConfig()
        self._sectors = sectors

    def combined_score(self, candidate: Candidate) -> float:
        confidence = candidate.ai.confidence if candidate.ai and candidate.ai.confidence is not None else 0.0
        quality = candidate.trade_quality_score or 0.0
        cfg = self._config
        return round(
            candidate.score * cfg.score_weight
            + quality * cfg.quality_weight
            + confidence * 10 * cfg.confidence_weight,
            2,
        )

    def _sector(self, candidate: Candidate) -> str | None:
        if self._sectors is None:
            return candidate.instrument.sector
        return self._sectors.sector_for(candidate.instrument)

    def select(self, candidates: list[Candidate], snapshot: PortfolioSnapshot) -> SelectionResult:
        result = SelectionResult()
        if not candidates:
            return result

        cfg = self._config
        for c in candidates:
            c.selection = SelectionFields(combined_score=self.combined_score(c))
        ordered = sorted(candidates, key=lambda c: (-c.selection.combined_score, c.symbol))

        remaining_capital = snapshot.available_capital
        position_value = snapshot.max_position_value
        sector_picks: Counter[str] = Counter()

        for candidate in ordered:
            sector = self._sector(candidate)
            admitted = len(result.selected)
            reason = None

            if snapshot.open_position_count + admitted >= snapshot.max_positions:
                reason = f"Max positions ({snapshot.max_positions}) reached"
            elif sector and snapshot.open_sector_counts.get(sector, 0) + sector_picks[sector] >= snapshot.max_per_sector:
                reason = f"Sector cap ({snapshot.max_per_sector}) reached for {sector}"
            elif remaining_capital < cfg.capital_floor_ratio * position_value:
                reason = f"Insufficient capital ({remaining_capital:.2f} remaining)"
            elif sector and sector_picks[sector] >= cfg.max_correlated_picks:
                reason = f"Correlated with {sector_picks[sector]} {sector} picks this run"
            elif snapshot.trades_today + admitted >= snapshot.daily_trade_budget:
                reason = f"Daily trade budget ({snapshot.daily_trade_budget}) exhausted"

            if reason is not None:
                candidate.selection.rejection_reason = reason
                candidate.drop("selection", reason)
                result.rejected.append(candidate)
                continue

            candidate.selection.admitted = True
            result.selected.append(candidate)
            if sector:
                sector_picks[sector] += 1
            cost = candidate.plan.capital_used if candidate.plan else position_value
            remaining_capital -= cost

        size = max(1, cfg.tier_size)
        for index, candidate in enumerate(result.selected):
            tier = "tier_1" if index < size else "tier_2" if index < 2 * size else "tier_3"
            candidate.selection.tier = tier
            result.tiers.setdefault(tier, []).append(candidate)

        logger.info("Final selection: %d admitted, %d rejected", len(result.selected), len(result.rejected))
        return result
