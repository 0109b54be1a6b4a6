"""Instrument universe sources.

A universe that cannot be loaded at all is the one run-fatal condition, so
every source failure is surfaced as ``UniverseLoadError``.
"""
from __future__ import annotations

import io
import logging
from abc import ABC, abstractmethod

import pandas as pd
import requests

from stockfunnel.core.exceptions import UniverseLoadError
from stockfunnel.core.types import Instrument

logger = logging.getLogger(__name__)

_USER_AGENT = "StockFunnel/0.1 (instrument-master; Python/pandas)"
_REQUIRED_COLUMNS = ("id", "symbol")


class InstrumentSource(ABC):
    @abstractmethod
    def fetch(self) -> list[Instrument]: ...


class StaticInstrumentSource(InstrumentSource):
    def __init__(self, instruments: list[Instrument]) -> None:
        self._instruments = list(instruments)

    def fetch(self) -> list[Instrument]:
        return list(self._instruments)


class CsvInstrumentSource(InstrumentSource):
    """Instrument master from a local CSV path or an http(s) URL.

    Required columns: ``id``, ``symbol``. Optional: ``exchange``, ``segment``,
    ``ltp``, ``sector``.
    """

    def __init__(self, location: str, timeout: float = 30.0) -> None:
        self._location = location
        self._timeout = timeout

    def _read_frame(self) -> pd.DataFrame:
        if self._location.startswith(("http://", "https://")):
            resp = requests.get(self._location, headers={"User-Agent": _USER_AGENT}, timeout=self._timeout)
            resp.raise_for_status()
            return pd.read_csv(io.StringIO(resp.text))
        return pd.read_csv(self._location)

    def fetch(self) -> list[Instrument]:
        df = self._read_frame()
        missing = [c for c in _REQUIRED_COLUMNS if c not in df.columns]
        if missing:
            raise UniverseLoadError(f"Instrument master missing columns: {', '.join(missing)}")

        result: list[Instrument] = []
        for _, row in df.iterrows():
            ltp = _cell(row, "ltp")
            result.append(Instrument(
                id=int(row["id"]),
                symbol=str(row["symbol"]).strip(),
                exchange=_cell(row, "exchange") or "NSE",
                segment=_cell(row, "segment") or "equity",
                ltp=float(ltp) if ltp is not None else None,
                sector=_cell(row, "sector"),
            ))
        return result


def _cell(row: pd.Series, column: str):
    """Cell value with blanks and NaN mapped to ``None``."""
    value = row.get(column)
    if value is None or pd.isna(value):
        return None
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return value


class UniverseLoader:
    """Loads and de-duplicates the instrument universe."""

    def __init__(self, source: InstrumentSource) -> None:
        self._source = source

    def load(self) -> list[Instrument]:
        try:
            instruments = self._source.fetch()
        except UniverseLoadError:
            raise
        except Exception as exc:
            raise UniverseLoadError(f"Failed to load instrument universe: {exc}") from exc

        seen: set[int] = set()
        unique: list[Instrument] = []
        for inst in instruments:
            if inst.id in seen:
                continue
            seen.add(inst.id)
            unique.append(inst)

        if not unique:
            raise UniverseLoadError("Instrument universe is empty")

        logger.info("Universe loaded: %d instruments", len(unique))
        return unique
