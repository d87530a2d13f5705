"""Decision context assembly.

Everything a single evaluation needs is gathered once, up front, into an
immutable ``DecisionContext``. Tier rules, personality modifiers and the
trigger pass read from it; none of them re-derive state or reach back into
the live ``Agent``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from types import MappingProxyType
from typing import TYPE_CHECKING, FrozenSet, List, Mapping, Optional, Tuple

from npcmind.agent import Agent
from npcmind.context_analyzer import ContextAnalyzer, EnvironmentAnalysis
from npcmind.memory import MemoryPatterns, PatternExtractor
from npcmind.needs import NeedsModel, NeedsPriority
from npcmind.routines import RoutineAction, RoutineContext, RoutineScheduler
from npcmind.schemas import AvailableAction, NearbyPerson, NeedsVector, Surroundings, Trait
from npcmind.social import SocialAnalysis, SocialGraph

if TYPE_CHECKING:
    from npcmind.personality import PersonalityModel


@dataclass(frozen=True)
class DecisionContext:
    """Snapshot of one agent's situation for one evaluation."""

    agent_id: str
    name: str
    now: datetime
    needs: NeedsVector
    traits: Tuple[Trait, ...]
    resolved_traits: Tuple[Trait, ...]
    personality_weights: Mapping[str, float]
    needs_priority: NeedsPriority
    surroundings: Surroundings
    environment: EnvironmentAnalysis
    memory_patterns: MemoryPatterns
    social: SocialAnalysis
    routine: Optional[RoutineContext]
    routine_action: Optional[RoutineAction]
    routine_interrupted: bool
    known_people: FrozenSet[str]
    current_task: Optional[str] = None
    prompt_text: str = ""

    @property
    def location(self) -> str:
        return self.surroundings.location

    @property
    def hour(self) -> int:
        return self.now.hour

    @property
    def nearby_people(self) -> List[NearbyPerson]:
        return self.surroundings.nearby_people

    @property
    def available_actions(self) -> List[AvailableAction]:
        return self.surroundings.available_actions

    @property
    def flags(self) -> FrozenSet[str]:
        return self.environment.flags

    @property
    def is_working_hours(self) -> bool:
        return self.environment.time.is_working_hours

    def has_trait(self, trait: Trait) -> bool:
        return trait in self.resolved_traits

    def weight(self, key: str) -> float:
        return self.personality_weights.get(key, 1.0)


def build_decision_context(
    agent: Agent,
    surroundings: Surroundings,
    *,
    now: datetime,
    needs_model: NeedsModel,
    personality: "PersonalityModel",
    analyzer: ContextAnalyzer,
    extractor: PatternExtractor,
    social_graph: SocialGraph,
    routines: RoutineScheduler,
    prompt_text: str = "",
) -> DecisionContext:
    """Run every analysis once and freeze the results.

    Conflicting traits are resolved here, against this evaluation's needs
    and crowd, and the resolution lives only in the returned context.
    """

    needs = agent.needs.model_copy()
    environment = analyzer.analyze(surroundings, now=now)
    resolved = personality.resolve(agent.traits, needs, len(surroundings.nearby_people))
    weights = personality.weights(resolved)
    needs_priority = needs_model.evaluate(needs, now=now, personality_weights=weights)
    patterns = extractor.extract_from(agent.memory)
    social = social_graph.analyze_situation(agent, surroundings.nearby_people, location=surroundings.location)
    routine = routines.current_routine(agent, now=now, flags=environment.flags)
    interrupted = routine is not None and routines.should_break(agent)
    routine_action = None if interrupted else routines.routine_action(routine, agent)

    current_task = None
    if surroundings.current_task is not None:
        current_task = surroundings.current_task.name
    elif agent.current_task:
        current_task = agent.current_task

    return DecisionContext(
        agent_id=agent.id,
        name=agent.name,
        now=now,
        needs=needs,
        traits=tuple(agent.traits),
        resolved_traits=tuple(resolved),
        personality_weights=MappingProxyType(dict(weights)),
        needs_priority=needs_priority,
        surroundings=surroundings.model_copy(deep=True),
        environment=environment,
        memory_patterns=patterns,
        social=social,
        routine=routine,
        routine_action=routine_action,
        routine_interrupted=interrupted,
        known_people=frozenset(patterns.recent_conversations) | frozenset(patterns.known_people),
        current_task=current_task,
        prompt_text=prompt_text,
    )
