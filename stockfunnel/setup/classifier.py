from __future__ import annotations

import logging
from collections import Counter

from stockfunnel.core.candidate import Candidate
from stockfunnel.core.config import Settings
from stockfunnel.core.types import CandleSeries, Timeframe
from stockfunnel.data.store import CandleStore, PortfolioService
from stockfunnel.setup.detector import LongtermSetupDetector, SwingSetupDetector

logger = logging.getLogger(__name__)

_SERIES_LIMIT = 200


class SetupClassifier:
    """Attaches a setup status to every screened candidate.

    Swing candidates are judged on daily bars, long-term candidates on weekly
    bars. A candidate whose bars cannot be loaded is dropped with a note; a
    failing portfolio lookup is treated as "not in position".
    """

    def __init__(
        self,
        settings: Settings,
        candle_store: CandleStore,
        portfolio: PortfolioService | None = None,
    ) -> None:
        self._store = candle_store
        self._portfolio = portfolio
        self._swing = SwingSetupDetector(settings.setup)
        self._longterm = LongtermSetupDetector(settings.setup)
        self._series: dict[int, CandleSeries] = {}

    async def classify(self, candidates: list[Candidate]) -> list[Candidate]:
        if not candidates:
            return []

        classified: list[Candidate] = []
        for candidate in candidates:
            series = await self._load_series(candidate)
            if series is None:
                candidate.drop("setup", "No candles available for setup detection")
                continue

            self._series[candidate.instrument_id] = series
            in_position = await self._in_position(candidate)
            if candidate.screener_type == "longterm":
                candidate.setup = self._longterm.detect(candidate, series, in_position)
            else:
                candidate.setup = self._swing.detect(candidate, series, in_position)
            classified.append(candidate)

        counts = Counter(c.setup.status.value for c in classified)
        logger.info("Classified %d candidates: %s", len(classified),
                    ", ".join(f"{n} {status}" for status, n in sorted(counts.items())))
        return classified

    def series_for(self, candidate: Candidate) -> CandleSeries | None:
        """Bars the candidate was classified on (daily for swing, weekly for long-term)."""
        return self._series.get(candidate.instrument_id)

    async def _load_series(self, candidate: Candidate) -> CandleSeries | None:
        tf = Timeframe.W1 if candidate.screener_type == "longterm" else Timeframe.D1
        try:
            bars = await self._store.load_series(candidate.instrument_id, tf, _SERIES_LIMIT)
        except Exception as exc:
            logger.error("Failed to load %s series for %s: %s", tf.value, candidate.symbol, exc)
            return None
        if not bars:
            return None
        return CandleSeries.from_unsorted(candidate.symbol, tf, bars)

    async def _in_position(self, candidate: Candidate) -> bool:
        if self._portfolio is None:
            return False
        try:
            positions = await self._portfolio.open_positions_for(candidate.instrument_id, candidate.screener_type)
        except Exception as exc:
            logger.warning("Position lookup failed for %s, assuming none: %s", candidate.symbol, exc)
            return False
        return bool(positions)
