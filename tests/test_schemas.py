"""Tests for the core schemas."""

from datetime import datetime

from npcmind.schemas import (
    ActionType,
    Decision,
    DecisionAction,
    Need,
    NeedsVector,
    Priority,
    ResponseType,
    default_duration,
    fallback_response,
)


def test_needs_vector_clamps_on_construction_and_assignment():
    needs = NeedsVector(energy=12, hunger=-3)
    assert needs.energy == 10
    assert needs.hunger == 0

    needs.social = 15
    assert needs.social == 10


def test_needs_vector_adjust_clamps():
    needs = NeedsVector(energy=9, stress=1)
    needs.adjust({Need.ENERGY: 5, Need.STRESS: -4})
    assert needs.energy == 10
    assert needs.stress == 0


def test_action_type_parse():
    assert ActionType.parse("work_on") is ActionType.WORK_ON
    assert ActionType.parse(" DRINK_COFFEE ") is ActionType.DRINK_COFFEE
    assert ActionType.parse("DANCE") is None
    assert ActionType.parse(None) is None
    assert ActionType.START_CONVERSATION.is_social
    assert not ActionType.WORK_ON.is_social


def test_default_duration_for_unknown_is_idle():
    assert default_duration(None) == default_duration(ActionType.IDLE) == 5000


def test_decision_helpers():
    decision = Decision(
        type=ResponseType.ACTION,
        action=DecisionAction(type=ActionType.WORK_ON, duration=15000),
        priority=Priority.CRITICAL,
        source="critical_needs",
    )
    assert decision.is_critical
    assert decision.action_type is ActionType.WORK_ON
    assert decision.reasoning_text() == "Following routine behavior"

    decision.reasoning += ["Critical energy", "seeking coffee"]
    assert decision.reasoning_text() == "Critical energy; seeking coffee"

    bare = Decision(type=ResponseType.IDLE, priority=Priority.LOW, source="idle")
    assert bare.action_type is None
    assert not bare.is_critical


def test_fallback_response_is_safe_idle():
    now = datetime(2024, 3, 5, 10, 0)
    response = fallback_response("", timestamp=now)
    assert response.character_id == "unknown"
    assert response.is_fallback
    assert response.action.type == "IDLE"
    assert response.action.duration == 5000
    assert response.action.priority is Priority.LOW
    assert response.thought == "Taking a moment to think..."
