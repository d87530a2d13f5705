"""Tests for time-windowed routines."""

import random
from datetime import datetime

import pytest

from npcmind.agent import Agent
from npcmind.config import EngineConfig, RoutineSettings
from npcmind.routines import ContextFlag, HourInRange, NeedBelow, RoutineScheduler
from npcmind.schemas import ActionType, Need, NeedsVector, Trait


TUESDAY_MORNING = datetime(2024, 3, 5, 9, 15)
TUESDAY_AFTERNOON = datetime(2024, 3, 5, 14, 30)
MONDAY_MORNING = datetime(2024, 3, 4, 9, 15)


class FixedRandom(random.Random):
    def __init__(self, value: float) -> None:
        super().__init__(0)
        self.value = value

    def random(self) -> float:
        return self.value


@pytest.fixture
def scheduler() -> RoutineScheduler:
    return RoutineScheduler(rng=FixedRandom(0.99))


def test_predicates():
    agent = Agent(id="a1", name="Avery", needs=NeedsVector(energy=3))
    assert NeedBelow(Need.ENERGY, 5).holds(agent, 9, frozenset())
    assert HourInRange(9, 9.5, inclusive=False).holds(agent, 9.25, frozenset())
    assert not HourInRange(9, 9.5, inclusive=False).holds(agent, 9.5, frozenset())
    assert HourInRange(16.5).holds(agent, 20, frozenset())
    assert ContextFlag("quiet_environment").holds(agent, 9, frozenset({"quiet_environment"}))


def test_afternoon_coffee_is_active_by_hour(scheduler):
    agent = Agent(id="a1", name="Avery", needs=NeedsVector(energy=8))
    routine = scheduler.current_routine(agent, now=TUESDAY_AFTERNOON)

    assert routine is not None
    assert routine.active.name == "afternoon_coffee"
    assert routine.context["time_slot"] == "afternoon"
    action = scheduler.routine_action(routine, agent)
    assert action.type is ActionType.DRINK_COFFEE
    assert action.duration == 8000
    assert action.routine == "afternoon_coffee"


def test_step_selection_uses_needs(scheduler):
    tired = Agent(id="t1", name="Tam", needs=NeedsVector(energy=3))
    rested = Agent(id="r1", name="Ray", needs=NeedsVector(energy=4.5))

    tired_routine = scheduler.current_routine(tired, now=TUESDAY_MORNING)
    assert tired_routine.active.name == "morning_coffee"
    assert [alt.name for alt in tired_routine.alternatives] == ["morning_prep"]
    assert scheduler.routine_action(tired_routine, tired).type is ActionType.DRINK_COFFEE

    rested_routine = scheduler.current_routine(rested, now=TUESDAY_MORNING)
    step = scheduler.routine_action(rested_routine, rested)
    assert (step.type, step.target) == (ActionType.MOVE_TO, "break_room")


def test_personality_and_weekday_modifiers_stack(scheduler):
    agent = Agent(id="o1", name="Ola", needs=NeedsVector(energy=7), traits=[Trait.ORGANIZED])
    routine = scheduler.current_routine(agent, now=MONDAY_MORNING)

    assert routine.active.name == "morning_prep"
    assert routine.active.priority == pytest.approx(0.5 * 1.4 * 1.2)
    assert routine.active.description == "Monday planning and goal setting"
    action = scheduler.routine_action(routine, agent)
    assert (action.target, action.duration) == ("organize_workspace", round(6000 * 1.3))


def test_ambitious_replaces_prep_steps(scheduler):
    agent = Agent(id="a1", name="Avery", needs=NeedsVector(energy=7), traits=[Trait.AMBITIOUS])
    routine = scheduler.current_routine(agent, now=MONDAY_MORNING)
    assert routine.active.name == "morning_prep"
    assert scheduler.routine_action(routine, agent).target == "plan_day"


def test_no_routine_at_night(scheduler):
    agent = Agent(id="a1", name="Avery")
    assert scheduler.current_routine(agent, now=datetime(2024, 3, 5, 21, 0)) is None
    assert scheduler.routine_action(None, agent) is None


def test_should_break(scheduler):
    assert scheduler.should_break(Agent(id="a", name="A", needs=NeedsVector(energy=1)))
    assert scheduler.should_break(Agent(id="b", name="B", needs=NeedsVector(stress=9)))
    assert not scheduler.should_break(Agent(id="c", name="C", needs=NeedsVector(stress=0)))

    chaotic = Agent(id="d", name="D", traits=[Trait.CHAOTIC])
    assert RoutineScheduler(rng=FixedRandom(0.05)).should_break(chaotic)
    assert not RoutineScheduler(rng=FixedRandom(0.5)).should_break(chaotic)


def test_next_routine_wraps_to_tomorrow(scheduler):
    agent = Agent(id="a1", name="Avery")

    early = scheduler.next_routine(agent, now=datetime(2024, 3, 5, 8, 0))
    assert early.routine.name == "morning_coffee"
    assert early.hours_until == pytest.approx(1.0)

    late = scheduler.next_routine(agent, now=datetime(2024, 3, 5, 17, 30))
    assert late.routine.name == "morning_coffee"
    assert late.hours_until == pytest.approx(15.5)
    assert late.starts_at == datetime(2024, 3, 6, 9, 0)


def test_stats_and_alignment(scheduler):
    agent = Agent(id="l1", name="Lee", traits=[Trait.LAZY])
    scheduler.record(agent, "afternoon_coffee", completed=True, duration_ms=8000)
    scheduler.record(agent, "afternoon_coffee", completed=True, duration_ms=8000)
    scheduler.record(agent, "focused_work", completed=False)

    stats = scheduler.stats(agent)
    assert (stats.total, stats.completed, stats.interrupted) == (3, 2, 1)
    assert stats.most_common == "afternoon_coffee"
    assert stats.average_duration_ms == pytest.approx(16000 / 3)
    assert stats.personality_alignment == pytest.approx((0.7 + 0.7 + 0.3) / 3)

    assert scheduler.stats(Agent(id="n", name="N")).total == 0


def test_history_keeps_a_recent_window():
    config = EngineConfig(routines=RoutineSettings(history_limit=3))
    scheduler = RoutineScheduler(config, rng=FixedRandom(0.99))
    agent = Agent(id="l1", name="Lee", traits=[Trait.LAZY])
    scheduler.record(agent, "focused_work", completed=False)
    scheduler.record(agent, "focused_work", completed=False)
    for _ in range(3):
        scheduler.record(agent, "afternoon_coffee", completed=True, duration_ms=8000)

    assert len(scheduler.history["l1"]) == 3
    stats = scheduler.stats(agent)
    assert (stats.total, stats.completed, stats.interrupted) == (3, 3, 0)
    assert stats.most_common == "afternoon_coffee"
    assert stats.average_duration_ms == pytest.approx(8000)
    assert stats.personality_alignment == pytest.approx(0.7)
