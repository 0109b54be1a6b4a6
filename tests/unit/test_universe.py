from datetime import datetime, timedelta

import pytest
import requests

from stockfunnel.core.config import UniverseConfig
from stockfunnel.core.exceptions import UniverseLoadError
from stockfunnel.core.types import Bar, CandleSeries, Instrument, Timeframe
from stockfunnel.universe.filters import BasicFilter, HistoryRequirement
from stockfunnel.universe.loader import (
    CsvInstrumentSource,
    InstrumentSource,
    StaticInstrumentSource,
    UniverseLoader,
)


def _make_instrument(id: int = 1, symbol: str = "TCS", ltp: float | None = 3500.0) -> Instrument:
    return Instrument(id=id, symbol=symbol, ltp=ltp)


def _make_series(tf: Timeframe, n: int) -> CandleSeries:
    bars = [Bar("TCS", datetime(2025, 1, 1) + timedelta(days=i), 1, 2, 0.5, 1, 10) for i in range(n)]
    return CandleSeries("TCS", tf, bars)


class TestBasicFilter:
    def test_price_band(self):
        f = BasicFilter(min_price=50, max_price=50_000)
        assert f.passes(_make_instrument(ltp=100.0))
        assert not f.passes(_make_instrument(ltp=60_000.0))
        assert "outside" in f.rejection_reason(_make_instrument(ltp=40.0))

    def test_penny_stock_reason(self):
        reason = BasicFilter().rejection_reason(_make_instrument(ltp=5.0))
        assert reason.startswith("Penny stock")

    def test_unknown_price_passes(self):
        assert BasicFilter().passes(_make_instrument(ltp=None))

    def test_penny_check_can_be_disabled(self):
        f = BasicFilter(min_price=1, exclude_penny_stocks=False)
        assert f.passes(_make_instrument(ltp=5.0))

    def test_from_config_and_filter(self):
        f = BasicFilter.from_config(UniverseConfig(min_price=100.0, max_price=1000.0))
        kept = f.filter([_make_instrument(1, ltp=50.0), _make_instrument(2, ltp=500.0)])
        assert [i.id for i in kept] == [2]


class TestHistoryRequirement:
    def test_swing_requires_daily(self):
        req = HistoryRequirement.swing(50)
        assert req.shortfall({Timeframe.D1: _make_series(Timeframe.D1, 50)}) is None
        assert req.shortfall({Timeframe.D1: _make_series(Timeframe.D1, 49)}) == (
            "Insufficient 1D history: have 49, need 50"
        )

    def test_longterm_requires_weekly_too(self):
        req = HistoryRequirement.longterm(100, 20)
        reason = req.shortfall({Timeframe.D1: _make_series(Timeframe.D1, 120)})
        assert reason == "Insufficient 1W history: have 0, need 20"


class TestCsvInstrumentSource:
    def test_reads_local_csv(self, tmp_path):
        path = tmp_path / "instruments.csv"
        path.write_text(
            "id,symbol,exchange,ltp,sector\n"
            "1, TCS ,NSE,3500.5,IT\n"
            "2,HDFCBANK,,1600,\n"
        )
        instruments = CsvInstrumentSource(str(path)).fetch()
        assert instruments[0] == Instrument(id=1, symbol="TCS", exchange="NSE", ltp=3500.5, sector="IT")
        assert instruments[1].exchange == "NSE"
        assert instruments[1].sector is None
        assert instruments[1].ltp == 1600.0

    def test_missing_required_column(self, tmp_path):
        path = tmp_path / "bad.csv"
        path.write_text("symbol,ltp\nTCS,1\n")
        with pytest.raises(UniverseLoadError):
            CsvInstrumentSource(str(path)).fetch()

    def test_reads_url(self, monkeypatch):
        calls = {}

        class _Resp:
            text = "id,symbol\n9,WIPRO\n"

            def raise_for_status(self):
                return None

        def fake_get(url, headers=None, timeout=None):
            calls["url"] = url
            calls["headers"] = headers
            return _Resp()

        monkeypatch.setattr(requests, "get", fake_get)
        instruments = CsvInstrumentSource("https://example.com/master.csv").fetch()
        assert [i.symbol for i in instruments] == ["WIPRO"]
        assert calls["url"] == "https://example.com/master.csv"
        assert "User-Agent" in calls["headers"]


class _BrokenSource(InstrumentSource):
    def fetch(self):
        raise OSError("disk gone")


class TestUniverseLoader:
    def test_dedupes_by_id_keeping_first(self):
        loader = UniverseLoader(StaticInstrumentSource([
            _make_instrument(1, "TCS"), _make_instrument(1, "TCS-DUP"), _make_instrument(2, "INFY"),
        ]))
        assert [i.symbol for i in loader.load()] == ["TCS", "INFY"]

    def test_empty_universe_is_fatal(self):
        with pytest.raises(UniverseLoadError):
            UniverseLoader(StaticInstrumentSource([])).load()

    def test_source_failure_wrapped(self):
        with pytest.raises(UniverseLoadError, match="disk gone"):
            UniverseLoader(_BrokenSource()).load()
