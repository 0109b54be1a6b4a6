import json

import pytest

from stockfunnel.core.candidate import (
    AIFields,
    Candidate,
    LongtermStatus,
    QualityFields,
    ScreenerFields,
    SelectionFields,
    SetupFields,
    SwingStatus,
    TradePlan,
)
from stockfunnel.core.exceptions import StageOrderError
from stockfunnel.core.types import IndicatorSet, Instrument


def _make_candidate(screener_type: str = "swing", **fields) -> Candidate:
    return Candidate(
        instrument=Instrument(id=7, symbol="INFY", ltp=1500.0, sector="IT"),
        screener_type=screener_type,
        screener=ScreenerFields(
            score=72.5,
            base_score=70.0,
            mtf_score=76.25,
            indicators=IndicatorSet(ema20=1490.0, ema50=1450.0, atr=25.0, latest_close=1500.0,
                                    supertrend={"trend": "bullish", "value": 1440.0, "direction": 1}),
            metadata={"ltp": 1500.0, "structure": {"pattern": "HH-HL"}},
            mtf={"trend_alignment": {"aligned": True, "bullish_count": 2}},
        ),
        **fields,
    )


def _make_plan() -> TradePlan:
    return TradePlan(
        entry_price=1490.0, stop_loss=1440.0, take_profit=1615.0, quantity=8,
        risk_per_share=50.0, risk_amount=400.0, risk_reward=2.5, capital_used=11920.0,
        setup_type="EMA pullback", entry_zone=(1490.0, 1519.8),
    )


class TestSetupWriteOnce:
    def test_setup_can_be_assigned_once(self):
        candidate = _make_candidate()
        candidate.setup = SetupFields(SwingStatus.READY, "ok")
        assert candidate.setup.status == SwingStatus.READY

    def test_second_assignment_raises(self):
        candidate = _make_candidate()
        candidate.setup = SetupFields(SwingStatus.READY, "ok")
        with pytest.raises(StageOrderError):
            candidate.setup = SetupFields(SwingStatus.NOT_READY, "changed my mind")

    def test_other_groups_are_reassignable(self):
        candidate = _make_candidate()
        candidate.quality = QualityFields(trade_quality_score=50.0)
        candidate.quality = QualityFields(trade_quality_score=60.0)
        assert candidate.trade_quality_score == 60.0


class TestStageAccessors:
    def test_require_setup_before_classification(self):
        with pytest.raises(StageOrderError):
            _make_candidate().require_setup()

    def test_require_plan_without_plan(self):
        with pytest.raises(StageOrderError):
            _make_candidate().require_plan()

    def test_score_requires_screener(self):
        candidate = Candidate(instrument=Instrument(id=1, symbol="X"), screener_type="swing")
        with pytest.raises(StageOrderError):
            _ = candidate.score

    def test_trade_quality_none_until_ranked(self):
        assert _make_candidate().trade_quality_score is None


class TestActionable:
    def test_actionable_statuses(self):
        assert SetupFields(SwingStatus.READY, "").actionable
        assert SetupFields(LongtermStatus.ACCUMULATE, "").actionable

    def test_waiting_statuses_not_actionable(self):
        for status in (SwingStatus.WAIT_PULLBACK, SwingStatus.WAIT_BREAKOUT,
                       SwingStatus.NOT_READY, SwingStatus.IN_POSITION):
            assert not SetupFields(status, "").actionable
        assert not SetupFields(LongtermStatus.WAIT_DIP, "").actionable


class TestMtfAligned:
    def test_unknown_when_absent(self):
        candidate = _make_candidate()
        candidate.screener.mtf = {}
        assert candidate.screener.mtf_aligned is None

    def test_false_when_explicitly_misaligned(self):
        candidate = _make_candidate()
        candidate.screener.mtf = {"trend_alignment": {"aligned": False, "bullish_count": 0}}
        assert candidate.screener.mtf_aligned is False


class TestRecordRoundTrip:
    def test_fully_annotated_candidate_survives_json(self):
        candidate = _make_candidate(
            setup=SetupFields(SwingStatus.READY, "Near EMA20", invalidate_if="Daily close below 1450.00",
                              entry_conditions={"entry_zone": [1490.0, 1500.0]}),
            quality=QualityFields(trade_quality_score=68.0, breakdown={"trend_quality": 20.0}, rank=1),
            plan=_make_plan(),
            ai=AIFields(status="evaluated", eval_id="run-1-7", confidence=7.5, approved=True,
                        primary_risks=["earnings"]),
            selection=SelectionFields(combined_score=76.0, tier="tier_1", admitted=True),
        )
        candidate.drop("note", "kept for audit")

        restored = Candidate.from_record(json.loads(json.dumps(candidate.to_record())))

        assert restored == candidate
        assert restored.plan.entry_zone == (1490.0, 1519.8)
        assert restored.setup.status is SwingStatus.READY

    def test_longterm_status_restored_with_longterm_enum(self):
        candidate = _make_candidate("longterm", setup=SetupFields(LongtermStatus.ACCUMULATE, "zone"))
        candidate.screener.weekly_indicators = IndicatorSet(ema20=1400.0)
        restored = Candidate.from_record(json.loads(json.dumps(candidate.to_record())))
        assert restored.setup.status is LongtermStatus.ACCUMULATE
        assert restored.screener.weekly_indicators.ema20 == 1400.0

    def test_drop_records_stage_and_reason(self):
        candidate = _make_candidate()
        candidate.drop("plan", "RR below floor")
        assert candidate.notes == [{"stage": "plan", "reason": "RR below floor"}]
