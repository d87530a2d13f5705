"""Time-windowed daily routines with typed trigger predicates.

A routine is active when the current hour falls inside its window and at
least one of its triggers holds. Triggers are small frozen dataclasses
evaluated directly against the agent and the environment flags; nothing is
parsed or evaluated from strings.
"""

from __future__ import annotations

import random
from collections import deque
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Any, Deque, Dict, FrozenSet, List, Optional, Protocol, Sequence, Tuple, Union

from npcmind.agent import Agent
from npcmind.config import DEFAULT_CONFIG, EngineConfig
from npcmind.schemas import ActionType, Need, Trait, default_duration


# ============================================================================
# Predicates
# ============================================================================


class Predicate(Protocol):
    def holds(self, agent: Agent, hour: float, flags: FrozenSet[str]) -> bool:
        ...


@dataclass(frozen=True)
class NeedBelow:
    need: Need
    value: float

    def holds(self, agent: Agent, hour: float, flags: FrozenSet[str]) -> bool:
        return agent.needs.value(self.need) < self.value


@dataclass(frozen=True)
class NeedAtLeast:
    need: Need
    value: float

    def holds(self, agent: Agent, hour: float, flags: FrozenSet[str]) -> bool:
        return agent.needs.value(self.need) >= self.value


@dataclass(frozen=True)
class HourInRange:
    """``start <= hour`` and, when ``end`` is set, ``hour < end`` (or ``<=`` if inclusive)."""

    start: float
    end: Optional[float] = None
    inclusive: bool = True

    def holds(self, agent: Agent, hour: float, flags: FrozenSet[str]) -> bool:
        if hour < self.start:
            return False
        if self.end is None:
            return True
        return hour <= self.end if self.inclusive else hour < self.end


@dataclass(frozen=True)
class ContextFlag:
    name: str

    def holds(self, agent: Agent, hour: float, flags: FrozenSet[str]) -> bool:
        return self.name in flags


TriggerPredicate = Union[NeedBelow, NeedAtLeast, HourInRange, ContextFlag]


# ============================================================================
# Definitions
# ============================================================================


@dataclass(frozen=True)
class RoutineStep:
    action: ActionType
    target: Optional[str] = None
    duration_ms: Optional[int] = None

    @property
    def duration(self) -> int:
        return self.duration_ms if self.duration_ms is not None else default_duration(self.action)


@dataclass(frozen=True)
class RoutineDefinition:
    name: str
    start: float
    end: float
    triggers: Tuple[TriggerPredicate, ...]
    steps: Tuple[RoutineStep, ...]
    priority: float
    description: str = ""
    duration_scale: float = 1.0

    def in_window(self, hour: float) -> bool:
        return self.start <= hour <= self.end


def _work(target: str, duration_ms: int) -> RoutineStep:
    return RoutineStep(ActionType.WORK_ON, target, duration_ms)


_TO_BREAK_ROOM = RoutineStep(ActionType.MOVE_TO, "break_room")

DEFAULT_ROUTINES: Tuple[RoutineDefinition, ...] = (
    RoutineDefinition(
        name="morning_coffee",
        start=9,
        end=10,
        triggers=(HourInRange(9, 10), NeedBelow(Need.ENERGY, 5)),
        steps=(_TO_BREAK_ROOM, RoutineStep(ActionType.DRINK_COFFEE)),
        priority=0.7,
        description="Morning coffee and energy restoration",
    ),
    RoutineDefinition(
        name="lunch_break",
        start=12,
        end=13,
        triggers=(HourInRange(12, 13), NeedBelow(Need.HUNGER, 4)),
        steps=(_TO_BREAK_ROOM, RoutineStep(ActionType.EAT_SNACK), RoutineStep(ActionType.SOCIALIZE)),
        priority=0.8,
        description="Lunch break and social time",
    ),
    RoutineDefinition(
        name="afternoon_coffee",
        start=14,
        end=16,
        triggers=(HourInRange(14, 16), NeedBelow(Need.ENERGY, 4)),
        steps=(RoutineStep(ActionType.DRINK_COFFEE),),
        priority=0.6,
        description="Afternoon energy boost",
    ),
    RoutineDefinition(
        name="focused_work",
        start=10,
        end=12,
        triggers=(HourInRange(10, 12), NeedAtLeast(Need.ENERGY, 6), ContextFlag("quiet_environment")),
        steps=(RoutineStep(ActionType.WORK_ON),),
        priority=0.8,
        description="Peak productivity period",
    ),
    RoutineDefinition(
        name="morning_prep",
        start=9,
        end=9.5,
        triggers=(HourInRange(9, 9.5, inclusive=False),),
        steps=(
            _work("organize_workspace", 6000),
            _work("check_emails", 4000),
            _work("plan_day", 5000),
        ),
        priority=0.5,
        description="Morning preparation and organization",
    ),
    RoutineDefinition(
        name="end_of_day",
        start=16.5,
        end=17,
        triggers=(HourInRange(16.5),),
        steps=(
            _work("wrap_up_tasks", 8000),
            _work("organize_workspace", 6000),
            _work("plan_tomorrow", 5000),
        ),
        priority=0.6,
        description="End of day wrap-up",
    ),
    RoutineDefinition(
        name="social_break",
        start=15,
        end=15.5,
        triggers=(NeedBelow(Need.SOCIAL, 5), ContextFlag("people_nearby")),
        steps=(RoutineStep(ActionType.START_CONVERSATION), RoutineStep(ActionType.SOCIALIZE)),
        priority=0.4,
        description="Social interaction break",
    ),
)


@dataclass(frozen=True)
class RoutineModifier:
    priority: float = 1.0
    duration: float = 1.0
    steps: Optional[Tuple[RoutineStep, ...]] = None
    description: Optional[str] = None


PERSONALITY_MODIFIERS: Dict[Trait, Dict[str, RoutineModifier]] = {
    Trait.AMBITIOUS: {
        "focused_work": RoutineModifier(priority=1.2, duration=1.3),
        "morning_prep": RoutineModifier(
            priority=1.3,
            steps=(_work("plan_day", 5000), _work("set_goals", 5000), _work("prioritize_tasks", 5000)),
        ),
        "social_break": RoutineModifier(priority=0.8),
    },
    Trait.LAZY: {
        "focused_work": RoutineModifier(priority=0.7, duration=0.8),
        "morning_coffee": RoutineModifier(priority=1.3, duration=1.2),
        "afternoon_coffee": RoutineModifier(priority=1.2),
        "morning_prep": RoutineModifier(priority=0.6),
    },
    Trait.EXTROVERTED: {
        "social_break": RoutineModifier(priority=1.4),
        "lunch_break": RoutineModifier(priority=1.2, duration=1.2),
        "morning_coffee": RoutineModifier(
            steps=(_TO_BREAK_ROOM, RoutineStep(ActionType.DRINK_COFFEE), RoutineStep(ActionType.SOCIALIZE)),
        ),
    },
    Trait.INTROVERTED: {
        "social_break": RoutineModifier(priority=0.6),
        "focused_work": RoutineModifier(priority=1.1),
        "morning_prep": RoutineModifier(priority=1.1),
    },
    Trait.ORGANIZED: {
        "morning_prep": RoutineModifier(priority=1.4, duration=1.3),
        "end_of_day": RoutineModifier(priority=1.3, duration=1.2),
        "focused_work": RoutineModifier(priority=1.1),
    },
    Trait.CHAOTIC: {
        "morning_prep": RoutineModifier(priority=0.6),
        "end_of_day": RoutineModifier(priority=0.7),
    },
    Trait.PROFESSIONAL: {
        "focused_work": RoutineModifier(priority=1.2),
        "morning_prep": RoutineModifier(priority=1.1),
        "social_break": RoutineModifier(
            steps=(RoutineStep(ActionType.SOCIALIZE, "professional_networking"),),
        ),
    },
}

# Keyed by datetime.weekday(): Monday is 0.
WEEKDAY_MODIFIERS: Dict[int, Dict[str, RoutineModifier]] = {
    0: {
        "morning_prep": RoutineModifier(priority=1.2, description="Monday planning and goal setting"),
        "focused_work": RoutineModifier(priority=1.1),
    },
    1: {"focused_work": RoutineModifier(priority=1.2, description="Peak productivity day")},
    2: {"social_break": RoutineModifier(priority=1.1, description="Mid-week social connections")},
    3: {
        "focused_work": RoutineModifier(priority=1.1),
        "end_of_day": RoutineModifier(priority=1.1),
    },
    4: {
        "social_break": RoutineModifier(priority=1.3, description="Friday social energy"),
        "end_of_day": RoutineModifier(priority=1.2, description="Week wrap-up"),
        "lunch_break": RoutineModifier(duration=1.2, description="Extended Friday lunch"),
    },
}

DAY_NAMES = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


def fractional_hour(now: datetime) -> float:
    return now.hour + now.minute / 60


def time_slot(hour: float) -> str:
    if hour < 9:
        return "early_morning"
    if hour < 12:
        return "morning"
    if hour < 14:
        return "lunch"
    if hour < 17:
        return "afternoon"
    if hour < 19:
        return "evening"
    return "night"


# ============================================================================
# Results
# ============================================================================


@dataclass(frozen=True)
class RoutineContext:
    active: RoutineDefinition
    alternatives: Tuple[RoutineDefinition, ...]
    context: Dict[str, Any]


@dataclass(frozen=True)
class RoutineAction:
    type: ActionType
    target: Optional[str]
    duration: int
    priority: float
    routine: str
    reasoning: str


@dataclass(frozen=True)
class NextRoutine:
    routine: RoutineDefinition
    hours_until: float
    starts_at: datetime


@dataclass(frozen=True)
class RoutineRecord:
    routine: str
    completed: bool
    duration_ms: int = 0


@dataclass
class RoutineStats:
    total: int = 0
    completed: int = 0
    interrupted: int = 0
    most_common: Optional[str] = None
    average_duration_ms: float = 0.0
    personality_alignment: float = 0.5


# ============================================================================
# Scheduler
# ============================================================================


class RoutineScheduler:
    """Select the routine an agent should follow right now."""

    def __init__(
        self,
        config: EngineConfig = DEFAULT_CONFIG,
        *,
        routines: Sequence[RoutineDefinition] = DEFAULT_ROUTINES,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.config = config
        self.routines = {routine.name: routine for routine in routines}
        self.rng = rng or random.Random()
        self.history: Dict[str, Deque[RoutineRecord]] = {}

    def is_active(self, routine: RoutineDefinition, agent: Agent, hour: float, flags: FrozenSet[str]) -> bool:
        if not routine.in_window(hour):
            return False
        return any(trigger.holds(agent, hour, flags) for trigger in routine.triggers)

    def modified(self, routine: RoutineDefinition, agent: Agent, weekday: int) -> RoutineDefinition:
        """Apply personality then weekday modifiers multiplicatively."""

        modifiers = [
            PERSONALITY_MODIFIERS.get(trait, {}).get(routine.name) for trait in agent.traits
        ]
        modifiers.append(WEEKDAY_MODIFIERS.get(weekday, {}).get(routine.name))

        priority = routine.priority
        duration_scale = routine.duration_scale
        steps = routine.steps
        description = routine.description
        for modifier in modifiers:
            if modifier is None:
                continue
            priority *= modifier.priority
            duration_scale *= modifier.duration
            if modifier.steps is not None:
                steps = modifier.steps
            if modifier.description is not None:
                description = modifier.description
        return replace(
            routine,
            priority=priority,
            duration_scale=duration_scale,
            steps=steps,
            description=description,
        )

    def current_routine(
        self,
        agent: Agent,
        *,
        now: datetime,
        flags: FrozenSet[str] = frozenset(),
    ) -> Optional[RoutineContext]:
        hour = fractional_hour(now)
        weekday = now.weekday()
        active = [
            self.modified(routine, agent, weekday)
            for routine in self.routines.values()
            if self.is_active(routine, agent, hour, flags)
        ]
        if not active:
            return None
        active.sort(key=lambda routine: routine.priority, reverse=True)
        return RoutineContext(
            active=active[0],
            alternatives=tuple(active[1:]),
            context={"hour": hour, "day": DAY_NAMES[weekday], "time_slot": time_slot(hour)},
        )

    @staticmethod
    def _select_step(routine: RoutineDefinition, agent: Agent) -> RoutineStep:
        steps = routine.steps
        needs = agent.needs
        if len(steps) > 1:
            by_action = {step.action: step for step in steps}
            if routine.name == "lunch_break":
                if needs.hunger < 4 and ActionType.EAT_SNACK in by_action:
                    return by_action[ActionType.EAT_SNACK]
                if (
                    needs.social < 6
                    and Trait.INTROVERTED not in agent.traits
                    and ActionType.SOCIALIZE in by_action
                ):
                    return by_action[ActionType.SOCIALIZE]
            elif routine.name == "morning_coffee":
                if needs.energy < 4 and ActionType.DRINK_COFFEE in by_action:
                    return by_action[ActionType.DRINK_COFFEE]
            elif routine.name == "focused_work":
                if needs.energy >= 5 and ActionType.WORK_ON in by_action:
                    return by_action[ActionType.WORK_ON]
        return steps[0]

    def routine_action(self, routine_context: Optional[RoutineContext], agent: Agent) -> Optional[RoutineAction]:
        if routine_context is None or not routine_context.active.steps:
            return None
        routine = routine_context.active
        step = self._select_step(routine, agent)
        return RoutineAction(
            type=step.action,
            target=step.target,
            duration=round(step.duration * routine.duration_scale),
            priority=routine.priority,
            routine=routine.name,
            reasoning=f"Following {routine.name} routine - {routine.description}",
        )

    def should_break(self, agent: Agent) -> bool:
        needs = agent.needs
        critical = self.config.needs.critical
        if any(needs.value(need) <= critical for need in Need if need is not Need.STRESS):
            return True
        if needs.stress >= self.config.needs.satisfied:
            return True
        return Trait.CHAOTIC in agent.traits and self.rng.random() < 0.1

    def next_routine(self, agent: Agent, *, now: datetime) -> Optional[NextRoutine]:
        """The routine whose window opens soonest after ``now`` (wrapping to tomorrow)."""

        hour = fractional_hour(now)
        best: Optional[RoutineDefinition] = None
        best_wait = float("inf")
        for routine in self.routines.values():
            wait = routine.start - hour
            if wait < 0:
                wait += 24
            if wait < best_wait:
                best, best_wait = routine, wait
        if best is None:
            return None
        return NextRoutine(
            routine=self.modified(best, agent, now.weekday()),
            hours_until=best_wait,
            starts_at=now + timedelta(hours=best_wait),
        )

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    def record(self, agent: Agent, routine: str, *, completed: bool, duration_ms: int = 0) -> None:
        window = self.history.setdefault(agent.id, deque(maxlen=self.config.routines.history_limit))
        window.append(
            RoutineRecord(routine=routine, completed=completed, duration_ms=duration_ms)
        )

    def stats(self, agent: Agent) -> RoutineStats:
        records = list(self.history.get(agent.id, ()))
        result = RoutineStats(total=len(records))
        if not records:
            return result

        counts: Dict[str, int] = {}
        for record in records:
            counts[record.routine] = counts.get(record.routine, 0) + 1
        result.completed = sum(1 for record in records if record.completed)
        result.interrupted = result.total - result.completed
        result.most_common = max(counts, key=counts.__getitem__)
        result.average_duration_ms = sum(record.duration_ms for record in records) / len(records)
        result.personality_alignment = self._alignment(agent, records)
        return result

    def _alignment(self, agent: Agent, records: Sequence[RoutineRecord]) -> float:
        if not agent.traits:
            return 0.5
        scores: List[float] = []
        for record in records:
            if record.routine not in self.routines:
                continue
            score = 0.5
            for trait in agent.traits:
                modifier = PERSONALITY_MODIFIERS.get(trait, {}).get(record.routine)
                if modifier is None:
                    continue
                if modifier.priority > 1:
                    score += 0.2
                elif modifier.priority < 1:
                    score -= 0.2
            scores.append(score)
        if not scores:
            return 0.5
        return max(0.0, min(1.0, sum(scores) / len(scores)))
