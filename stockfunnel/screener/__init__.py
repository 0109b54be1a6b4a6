from __future__ import annotations

from stockfunnel.screener.base import BaseScreener, ScreenerReport
from stockfunnel.screener.longterm import LongtermScreener
from stockfunnel.screener.swing import SwingScreener


def create_screener(screener_type: str, *args, **kwargs) -> BaseScreener:
    if screener_type == "swing":
        return SwingScreener(*args, **kwargs)
    if screener_type == "longterm":
        return LongtermScreener(*args, **kwargs)
    raise ValueError(f"Unknown screener type: {screener_type}")


__all__ = [
    "BaseScreener",
    "LongtermScreener",
    "ScreenerReport",
    "SwingScreener",
    "create_screener",
]
