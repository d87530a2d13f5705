"""Tests for environment analysis."""

from datetime import datetime

import pytest

from npcmind.context_analyzer import ContextAnalyzer, approachability, conversation_type
from npcmind.schemas import ActionType, AvailableAction, NearbyPerson, Surroundings


def people(count: int, *, mood: str = "neutral", distance: float = 2.0):
    return [NearbyPerson(id=f"p{i}", name=f"Person{i}", distance=distance, mood=mood) for i in range(count)]


@pytest.fixture
def analyzer() -> ContextAnalyzer:
    return ContextAnalyzer()


@pytest.mark.parametrize(
    "name, expected",
    [
        ("private_office", "private"),
        ("open_office", "office"),
        ("Kitchen", "break_room"),
        ("conference_room", "meeting_room"),
        ("lobby", "hallway"),
        ("rooftop", "unknown"),
        ("", "unknown"),
    ],
)
def test_classify_location(analyzer, name, expected):
    assert analyzer.classify_location(name).type == expected


@pytest.mark.parametrize(
    "count, level, description",
    [(0, 0, "empty"), (2, 1, "sparse"), (4, 3, "moderate"), (7, 6, "crowded"), (12, 10, "packed")],
)
def test_crowdedness_levels(analyzer, count, level, description):
    crowd = analyzer.crowdedness(count)
    assert (crowd.level, crowd.description) == (level, description)


def test_privacy_inferred_from_people(analyzer):
    assert analyzer.privacy(None, 0).level == "private"
    assert analyzer.privacy(None, 2).level == "semi_private"
    assert analyzer.privacy(None, 6).level == "public"
    assert analyzer.privacy(9, 6).level == "private"


def test_approachability_and_conversation_type():
    friendly = NearbyPerson(id="f", name="Fay", distance=1, mood="happy")
    busy = NearbyPerson(id="b", name="Ben", distance=6, mood="busy")
    assert approachability(friendly) == 10
    assert approachability(busy) == 1
    assert conversation_type(busy) == "brief_greeting"
    assert conversation_type(friendly) == "casual_chat"


def test_analyze_quiet_office_in_working_hours(analyzer):
    surroundings = Surroundings(
        location="office",
        nearby_people=people(1),
        available_actions=[AvailableAction(type=ActionType.WORK_ON, target="report")],
    )
    analysis = analyzer.analyze(surroundings, now=datetime(2024, 3, 5, 10, 15))

    assert "quiet_environment" in analysis.flags
    assert "good_for_work" in analysis.flags
    assert "working_hours" in analysis.flags
    assert not analysis.crowded
    assert analysis.time.period == "morning"
    assert analysis.time.is_peak_productivity
    assert analysis.resources.work_tools


def test_analyze_crowded_break_room_at_lunch(analyzer):
    surroundings = Surroundings(
        location="break_room",
        nearby_people=people(7, mood="busy"),
        available_actions=[AvailableAction(type=ActionType.DRINK_COFFEE, target="coffee_machine")],
    )
    analysis = analyzer.analyze(surroundings, now=datetime(2024, 3, 5, 12, 10))

    assert analysis.crowded
    assert "lunch_time" in analysis.flags
    assert "good_for_needs" in analysis.flags
    assert "good_for_socializing" not in analysis.flags
    assert set(analysis.social.barriers) == {"too_crowded", "people_busy"}
    assert analysis.modifiers["social_preference"] == pytest.approx(1.5 * 0.8 * 1.4)


def test_rank_actions_prefers_fit(analyzer):
    surroundings = Surroundings(location="break_room")
    analysis = analyzer.analyze(surroundings, now=datetime(2024, 3, 5, 12, 10))
    ranked = analyzer.rank_actions(
        [
            AvailableAction(type=ActionType.WORK_ON, target="report"),
            AvailableAction(type=ActionType.EAT_SNACK, target="fridge"),
        ],
        analysis,
    )
    assert ranked[0].type is ActionType.EAT_SNACK
