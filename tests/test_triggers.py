"""Tests for prompt keyword triggers."""

import pytest

from npcmind.schemas import ActionType, Decision, DecisionAction, Priority, ResponseType
from npcmind.triggers import analyze_triggers, apply_triggers


def work_decision(priority: Priority = Priority.MEDIUM) -> Decision:
    return Decision(
        type=ResponseType.ACTION,
        action=DecisionAction(type=ActionType.WORK_ON, target="report", duration=10000),
        priority=priority,
        source="task_assignment",
    )


def test_no_keywords_detects_nothing():
    analysis = analyze_triggers("Nothing to see here")
    assert analysis.detected == ()
    assert analysis.suggested_pool == "general"
    assert analysis.pressure == "normal"
    assert analysis.primary is None


def test_work_pressure_strength_and_modifiers():
    analysis = analyze_triggers("The deadline is URGENT")

    assert analysis.primary.type == "work_pressure"
    assert analysis.primary.matches == ("deadline", "urgent")
    assert analysis.primary.strength == pytest.approx(2 / 7)
    assert analysis.modifiers == {"work_focus": 1.5, "stress_response": 1.3}
    assert analysis.pressure == "high"
    assert analysis.suggested_pool == "work"


def test_later_category_wins_pool():
    analysis = analyze_triggers("coffee break? That joke was funny")

    assert [trigger.type for trigger in analysis.detected] == ["humor_context", "break_context"]
    assert analysis.suggested_pool == "food"
    assert analysis.pressure == "low"
    assert analysis.social_context == "playful"


def test_work_focus_extends_work_and_raises_priority():
    decision = work_decision()
    modified = apply_triggers(decision, analyze_triggers("deadline tomorrow"))

    assert modified.action.duration == 15000
    assert modified.priority is Priority.HIGH
    assert modified.dialogue_pool == "work"
    assert "Environmental trigger: work_pressure" in modified.reasoning
    assert "Environmental pressure: high" in modified.reasoning
    assert decision.action.duration == 10000


def test_critical_priority_is_kept():
    modified = apply_triggers(work_decision(Priority.CRITICAL), analyze_triggers("deadline"))
    assert modified.priority is Priority.CRITICAL


def test_humor_turns_on_banter():
    modified = apply_triggers(work_decision(), analyze_triggers("what a silly joke"))

    assert modified.include_dialogue
    assert modified.dialogue_intent == "banter"
    assert modified.dialogue_pool == "banter"
    assert modified.action.duration == 10000


def test_unmatched_text_returns_same_decision():
    decision = work_decision()
    assert apply_triggers(decision, analyze_triggers("")) is decision
