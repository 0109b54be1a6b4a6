from datetime import datetime, timedelta

import pytest

from stockfunnel.core.config import LongtermConfig, Settings, SwingConfig
from stockfunnel.core.event_bus import SCREENER_PROGRESS, EventBus
from stockfunnel.core.types import Bar, IndicatorSet, Instrument, ScreenerRun, Timeframe
from stockfunnel.data.memory import MemoryCandleStore, MemorySink
from stockfunnel.screener import LongtermScreener, SwingScreener, create_screener
from stockfunnel.screener.base import SCREENED_STAGE, clamp_score
from stockfunnel.screener.longterm import longterm_base_score
from stockfunnel.screener.swing import swing_base_score

_BULLISH_ST = {"trend": "bullish", "value": 90.0, "direction": 1}


def _make_bars(n: int, start: float = 100.0, step: float = 1.0, tf: Timeframe = Timeframe.D1) -> list[Bar]:
    delta = timedelta(weeks=1) if tf == Timeframe.W1 else timedelta(days=1)
    return [
        Bar("TEST", datetime(2024, 1, 1) + delta * i, start + step * i, start + step * i + 1,
            start + step * i - 1, start + step * i, 1000.0)
        for i in range(n)
    ]


class _FailingStore(MemoryCandleStore):
    def __init__(self, failing_id: int) -> None:
        super().__init__()
        self._failing_id = failing_id

    async def load_series(self, instrument_id, timeframe, limit):
        if instrument_id == self._failing_id:
            raise ConnectionError("candle backend unavailable")
        return await super().load_series(instrument_id, timeframe, limit)


def _make_store(daily: dict[int, int], weekly: dict[int, int] | None = None) -> _FailingStore:
    store = _FailingStore(failing_id=99)
    for instrument_id, n in daily.items():
        store.add(instrument_id, Timeframe.D1, _make_bars(n, start=100.0 + instrument_id))
    for instrument_id, n in (weekly or {}).items():
        store.add(instrument_id, Timeframe.W1, _make_bars(n, start=50.0 + instrument_id, tf=Timeframe.W1))
    return store


class TestSwingBaseScore:
    def test_all_factors_bullish(self):
        ind = IndicatorSet(
            ema20=110.0, ema50=100.0, ema200=90.0, supertrend=_BULLISH_ST, adx=30.0, rsi=60.0,
            macd={"macd": 1.0, "signal": 0.5, "histogram": 0.5},
            volume={"latest": 2000.0, "average": 1000.0, "spike_ratio": 2.0},
        )
        assert swing_base_score(ind, SwingConfig()) == 100.0

    def test_no_factors(self):
        assert swing_base_score(IndicatorSet(), SwingConfig()) is None

    def test_volume_ignored_when_confirmation_off(self):
        ind = IndicatorSet(supertrend=_BULLISH_ST, volume={"latest": 1.0, "average": 1.0, "spike_ratio": 1.0})
        assert swing_base_score(ind, SwingConfig(require_volume_confirmation=False)) == 100.0
        assert swing_base_score(ind, SwingConfig()) == pytest.approx(round(20 / 35 * 100, 2))


class TestLongtermBaseScore:
    def test_weekly_factors_dropped_when_not_required(self):
        daily = IndicatorSet(ema20=110.0, ema50=100.0)
        weekly = IndicatorSet(ema20=90.0, ema50=100.0, supertrend={"trend": "bearish", "value": 1, "direction": -1})
        assert longterm_base_score(daily, weekly, LongtermConfig(require_weekly_trend=False)) == 100.0
        assert longterm_base_score(daily, weekly, LongtermConfig()) == pytest.approx(round(15 / 55 * 100, 2))

    def test_rsi_band_inclusive(self):
        daily = IndicatorSet(rsi=70.0)
        assert longterm_base_score(daily, None, LongtermConfig()) == 100.0


class TestClampScore:
    def test_bounds(self):
        assert clamp_score(120.0) == 100.0
        assert clamp_score(-5.0) == 0.0
        assert clamp_score(55.554) == 55.55


class TestSwingScreener:
    async def test_report_counts_and_reasons(self):
        store = _make_store({1: 250, 2: 30})
        sink = MemorySink()
        screener = SwingScreener(Settings(), store, sink=sink)
        run = ScreenerRun("swing", id="t1")
        instruments = [
            Instrument(1, "GOOD"),
            Instrument(2, "SHORT"),
            Instrument(3, "PENNY", ltp=5.0),
            Instrument(99, "BROKEN"),
        ]

        report = await screener.run(instruments, run)

        assert report.total == 4
        assert report.processed == 4
        assert report.analyzed == 1
        assert [c.symbol for c in report.candidates] == ["GOOD"]
        assert {s["symbol"]: s["reason"] for s in report.skipped} == {
            "SHORT": "Insufficient 1D history: have 30, need 50",
            "PENNY": "Penny stock (LTP 5.00 < 10)",
        }
        assert report.failed == [{"symbol": "BROKEN", "error": "candle backend unavailable"}]
        assert run.counters == {"screened": 1, "screener_skipped": 2, "screener_failed": 1}

        assert ("t1", 1, SCREENED_STAGE) in sink.candidates
        assert sink.progress[-1]["status"] == "completed"
        assert sink.progress[-1]["processed"] == 4

    async def test_candidate_fields(self):
        screener = SwingScreener(Settings(), _make_store({1: 250}))
        report = await screener.run([Instrument(1, "GOOD", sector="IT")], ScreenerRun("swing"))
        candidate = report.candidates[0]
        assert 0.0 <= candidate.score <= 100.0
        assert candidate.screener_type == "swing"
        assert candidate.screener.indicators.ema20 is not None
        metadata = candidate.screener.metadata
        assert metadata["sector"] == "IT"
        assert metadata["candles_count"] == 250
        assert metadata["ltp"] == 350.0
        assert "ema_bullish" in metadata["trend_alignment"]
        assert set(metadata["multi_timeframe"]["timeframes_analyzed"]) == {"1D"}

    async def test_limit_keeps_top_scores(self):
        settings = Settings()
        settings.swing.limit = 1
        store = _make_store({1: 250})
        # a falling series scores lower than the rising one
        store.add(2, Timeframe.D1, _make_bars(250, start=400.0, step=-1.0))
        report = await SwingScreener(settings, store).run(
            [Instrument(2, "FALLING"), Instrument(1, "RISING")], ScreenerRun("swing"),
        )
        assert [c.symbol for c in report.candidates] == ["RISING"]
        assert report.analyzed == 2

    async def test_deterministic(self):
        store = _make_store({1: 250, 2: 120})
        instruments = [Instrument(1, "A"), Instrument(2, "B")]
        first = await SwingScreener(Settings(), store).run(instruments, ScreenerRun("swing"))
        second = await SwingScreener(Settings(), store).run(instruments, ScreenerRun("swing"))
        assert [(c.symbol, c.score) for c in first.candidates] == [(c.symbol, c.score) for c in second.candidates]

    async def test_progress_events(self):
        settings = Settings()
        settings.swing.progress_interval = 1
        bus = EventBus()
        events = []

        async def on_progress(snapshot):
            events.append(snapshot)

        bus.subscribe(SCREENER_PROGRESS, on_progress)
        await SwingScreener(settings, _make_store({1: 250, 2: 250}), bus=bus).run(
            [Instrument(1, "A"), Instrument(2, "B")], ScreenerRun("swing", id="p"),
        )
        assert [e["status"] for e in events] == ["running", "running", "completed"]
        assert all(e["run_key"] == "p" for e in events)

    async def test_empty_universe(self):
        report = await SwingScreener(Settings(), MemoryCandleStore()).run([], ScreenerRun("swing"))
        assert report.candidates == []
        assert report.total == 0


class TestLongtermScreener:
    async def test_weekly_indicators_attached(self):
        store = _make_store({1: 250}, weekly={1: 60})
        report = await LongtermScreener(Settings(), store).run([Instrument(1, "GOOD")], ScreenerRun("longterm"))
        candidate = report.candidates[0]
        assert candidate.screener_type == "longterm"
        assert candidate.screener.weekly_indicators is not None
        assert candidate.screener.weekly_indicators.ema20 is not None
        assert candidate.screener.metadata["weekly"]["candles_count"] == 60
        assert 0.0 <= candidate.score <= 100.0

    async def test_missing_weekly_skipped(self):
        store = _make_store({1: 250})
        report = await LongtermScreener(Settings(), store).run([Instrument(1, "NOWEEK")], ScreenerRun("longterm"))
        assert report.candidates == []
        assert report.skipped == [{"symbol": "NOWEEK", "reason": "Insufficient 1W history: have 0, need 20"}]

    def test_timeframes(self):
        settings = Settings()
        settings.longterm.include_intraday = False
        assert LongtermScreener(settings, MemoryCandleStore()).timeframes == [Timeframe.D1, Timeframe.W1]


class TestFactory:
    def test_create_by_type(self):
        assert isinstance(create_screener("swing", Settings(), MemoryCandleStore()), SwingScreener)
        assert isinstance(create_screener("longterm", Settings(), MemoryCandleStore()), LongtermScreener)

    def test_unknown_type(self):
        with pytest.raises(ValueError):
            create_screener("intraday", Settings(), MemoryCandleStore())
