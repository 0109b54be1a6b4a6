from __future__ import annotations

from stockfunnel.selection.constraints import PortfolioSnapshot
from stockfunnel.selection.selector import FinalSelector, SelectionResult

__all__ = ["FinalSelector", "PortfolioSnapshot", "SelectionResult"]
