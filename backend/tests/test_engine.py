"""Tests for the decision engine and its config."""

import pytest

from snapback.core.config import DecisionConfig
from snapback.core.errors import ContextValidationError
from snapback.domain.engine import DecisionEngine


def test_decision_is_deterministic(save_context) -> None:
    engine = DecisionEngine()
    context = save_context(risk_score=72, burst_detected=True, session_file_count=4)
    assert engine.make_decision(context) == engine.make_decision(context)


def test_risk_threshold_boundary(save_context) -> None:
    engine = DecisionEngine(DecisionConfig(risk_threshold=60, notify_threshold=40))
    at_threshold = engine.make_decision(save_context(risk_score=60))
    below = engine.make_decision(save_context(risk_score=59))
    assert at_threshold.create_snapshot is True
    assert at_threshold.reasons == ("risk_threshold",)
    assert below.create_snapshot is False
    assert below.reasons == ()
    assert below.confidence == 0.0
    assert below.show_notification is True


def test_confidence_formula(save_context) -> None:
    engine = DecisionEngine()
    decision = engine.make_decision(save_context(ai_detected=True, ai_confidence=0.8, risk_score=60))
    assert decision.confidence == 0.66
    assert decision.reasons == ("ai_detected", "risk_threshold")
    assert decision.summary == "AI detected (80%), High risk score (60/100)"


def test_reasons_put_tier_one_before_burst(save_context) -> None:
    engine = DecisionEngine()
    decision = engine.make_decision(
        save_context(
            burst_detected=True,
            session_file_count=5,
            contains_critical_files=True,
            critical_file_count=2,
            risk_score=45,
        )
    )
    assert decision.reasons == ("critical_file", "burst_pattern")
    assert decision.summary == "2 critical file(s) modified, Rapid changes detected (5 files)"


def test_burst_needs_minimum_session_files(save_context) -> None:
    engine = DecisionEngine(DecisionConfig(min_files_for_burst=3))
    assert not engine.make_decision(save_context(burst_detected=True, session_file_count=2)).create_snapshot
    assert engine.make_decision(save_context(burst_detected=True, session_file_count=3)).create_snapshot


def test_ai_notify_without_snapshot(save_context) -> None:
    decision = DecisionEngine().make_decision(save_context(ai_detected=True, ai_confidence=0.6, ai_tool_name="copilot"))
    assert decision.create_snapshot is False
    assert decision.show_notification is True
    assert decision.context.ai_tool_name == "copilot"
    assert decision.context.session_id == "sess-1"


@pytest.mark.parametrize(
    "overrides",
    [
        {"repo_id": ""},
        {"session_id": ""},
        {"timestamp": 0},
        {"ai_confidence": 1.5},
        {"risk_score": 101},
        {"risk_score": -1},
        {"session_file_count": -1},
        {"session_duration_ms": -5},
        {"critical_file_count": -1},
        {"files": "src/a.ts"},
    ],
)
def test_validate_context_rejects_out_of_range(save_context, overrides) -> None:
    with pytest.raises(ContextValidationError):
        DecisionEngine().validate_context(save_context(**overrides))


def test_config_is_clamped_and_reset_when_inverted() -> None:
    config = DecisionConfig(risk_threshold=150, notify_threshold=-3, min_files_for_burst=0)
    assert config.risk_threshold == 100
    assert config.notify_threshold == 0
    assert config.min_files_for_burst == 1

    inverted = DecisionConfig(risk_threshold=30, notify_threshold=50)
    assert (inverted.risk_threshold, inverted.notify_threshold) == (60, 40)


def test_update_config_applies_partial_changes(save_context) -> None:
    engine = DecisionEngine()
    engine.update_config(risk_threshold=80)
    assert engine.config.notify_threshold == 40
    assert not engine.make_decision(save_context(risk_score=70)).create_snapshot
