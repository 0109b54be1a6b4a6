from datetime import datetime, timedelta

import pytest

from stockfunnel.core.exceptions import DataError
from stockfunnel.core.types import Bar, CandleSeries, IndicatorSet, ScreenerRun, Timeframe


def _make_bar(idx: int, close: float = 100.0, symbol: str = "TCS") -> Bar:
    return Bar(
        symbol=symbol,
        timestamp=datetime(2026, 1, 1) + timedelta(days=idx),
        open=close,
        high=close + 1,
        low=close - 1,
        close=close,
        volume=1000.0,
    )


class TestCandleSeries:
    def test_rejects_out_of_order_bars(self):
        with pytest.raises(DataError):
            CandleSeries("TCS", Timeframe.D1, [_make_bar(2), _make_bar(1)])

    def test_rejects_duplicate_timestamps(self):
        with pytest.raises(DataError):
            CandleSeries("TCS", Timeframe.D1, [_make_bar(1), _make_bar(1)])

    def test_from_unsorted_sorts_and_dedupes(self):
        series = CandleSeries.from_unsorted(
            "TCS", Timeframe.D1,
            [_make_bar(3, 103), _make_bar(1, 101), _make_bar(2, 102), _make_bar(3, 999)],
        )
        assert len(series) == 3
        # last bar seen for a timestamp wins
        assert series.closes == [101, 102, 999]

    def test_accessors(self):
        series = CandleSeries("TCS", Timeframe.D1, [_make_bar(i, 100 + i) for i in range(5)])
        assert series.latest_close == 104
        assert series.latest_timestamp == datetime(2026, 1, 5)
        assert series.highs[0] == 101
        assert series.lows[0] == 99
        assert [b.close for b in series.tail(2)] == [103, 104]
        assert series.tail(0) == []

    def test_empty_series(self):
        series = CandleSeries("TCS", Timeframe.W1, [])
        assert series.latest_close is None
        assert series.latest_timestamp is None


class TestBar:
    def test_range_pct(self):
        bar = Bar("TCS", datetime(2026, 1, 1), 100, 110, 100, 105, 1)
        assert bar.range_pct == pytest.approx(10.0)

    def test_range_pct_zero_low(self):
        bar = Bar("TCS", datetime(2026, 1, 1), 0, 1, 0, 1, 1)
        assert bar.range_pct == 0.0


class TestIndicatorSet:
    def test_supertrend_flags(self):
        ind = IndicatorSet(supertrend={"trend": "bullish", "value": 95.0, "direction": 1})
        assert ind.supertrend_bullish is True
        assert ind.supertrend_bearish is False

    def test_missing_supertrend_is_neither(self):
        ind = IndicatorSet()
        assert ind.supertrend_bullish is False
        assert ind.supertrend_bearish is False

    def test_macd_bullish(self):
        assert IndicatorSet(macd={"macd": 1.0, "signal": 0.5, "histogram": 0.5}).macd_bullish is True
        assert IndicatorSet(macd={"macd": 0.1, "signal": 0.5, "histogram": -0.4}).macd_bullish is False
        assert IndicatorSet().macd_bullish is None

    def test_dict_round_trip_ignores_unknown_keys(self):
        ind = IndicatorSet(ema20=100.0, rsi=55.0)
        data = ind.to_dict()
        data["unknown"] = 1
        assert IndicatorSet.from_dict(data) == ind
        assert IndicatorSet.from_dict(None) == IndicatorSet()


class TestScreenerRun:
    def test_key_uses_id_when_given(self):
        assert ScreenerRun("swing", id="run-42").key == "run-42"

    def test_key_defaults_to_start_date(self):
        run = ScreenerRun("swing", started_at=datetime(2026, 10, 19, 9, 15))
        assert run.key == "2026-10-19"

    def test_bump_counters(self):
        run = ScreenerRun("longterm")
        run.bump("screened", 3)
        run.bump("screened")
        assert run.counters == {"screened": 4}
        assert run.to_dict()["counters"] == {"screened": 4}
