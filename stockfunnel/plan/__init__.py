from __future__ import annotations

from stockfunnel.plan.builder import TradePlanBuilder, size_position
from stockfunnel.plan.longterm import LongtermPlanBuilder

__all__ = ["LongtermPlanBuilder", "TradePlanBuilder", "size_position"]
