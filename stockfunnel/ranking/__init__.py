from __future__ import annotations

from stockfunnel.ranking.quality import TradeQualityRanker

__all__ = ["TradeQualityRanker"]
