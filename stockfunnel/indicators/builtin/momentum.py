from __future__ import annotations

from typing import Sequence

from stockfunnel.core.types import Bar
from stockfunnel.indicators.base import Indicator, ema_series


class RSI(Indicator):
    def __init__(self, period: int = 14) -> None:
        self.name = "RSI"
        self.warmup_period = period + 1
        self.period = period

    def calculate(self, bars: Sequence[Bar]) -> float | None:
        if len(bars) < self.warmup_period:
            return None
        closes = [b.close for b in bars]
        deltas = [closes[i] - closes[i - 1] for i in range(1, len(closes))]
        gains = [d if d > 0 else 0.0 for d in deltas]
        losses = [-d if d < 0 else 0.0 for d in deltas]

        avg_gain = sum(gains[: self.period]) / self.period
        avg_loss = sum(losses[: self.period]) / self.period

        for i in range(self.period, len(deltas)):
            avg_gain = (avg_gain * (self.period - 1) + gains[i]) / self.period
            avg_loss = (avg_loss * (self.period - 1) + losses[i]) / self.period

        if avg_loss == 0:
            return 100.0 if avg_gain > 0 else 50.0
        rs = avg_gain / avg_loss
        return 100.0 - (100.0 / (1.0 + rs))


class MACD(Indicator):
    """MACD line, signal line and histogram as a dict."""

    def __init__(self, fast: int = 12, slow: int = 26, signal: int = 9) -> None:
        if fast >= slow:
            raise ValueError("MACD fast period must be shorter than slow period")
        self.name = "MACD"
        self.fast = fast
        self.slow = slow
        self.signal = signal
        self.warmup_period = slow + signal - 1

    def calculate(self, bars: Sequence[Bar]) -> dict | None:
        if len(bars) < self.warmup_period:
            return None
        closes = [b.close for b in bars]
        fast = ema_series(closes, self.fast)
        slow = ema_series(closes, self.slow)
        # align fast to slow: both end on the latest close
        offset = len(fast) - len(slow)
        macd_line = [f - s for f, s in zip(fast[offset:], slow)]
        signal_line = ema_series(macd_line, self.signal)
        if not signal_line:
            return None
        macd_value = macd_line[-1]
        signal_value = signal_line[-1]
        return {
            "macd": macd_value,
            "signal": signal_value,
            "histogram": macd_value - signal_value,
        }
