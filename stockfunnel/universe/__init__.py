from __future__ import annotations

from stockfunnel.universe.filters import BasicFilter, HistoryRequirement
from stockfunnel.universe.loader import (
    CsvInstrumentSource,
    InstrumentSource,
    StaticInstrumentSource,
    UniverseLoader,
)

__all__ = [
    "BasicFilter",
    "CsvInstrumentSource",
    "HistoryRequirement",
    "InstrumentSource",
    "StaticInstrumentSource",
    "UniverseLoader",
]
