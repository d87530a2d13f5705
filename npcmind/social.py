"""Social graph: relationships, groups, opportunities and barriers.

Relationships are recomputed on every analysis from two sources: how often
the other person shows up in the agent's memory (``InteractionHistory``)
and a symmetric personality-compatibility table. Nothing here is stored
between evaluations.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Optional, Protocol, Sequence, Tuple

from npcmind.agent import Agent, AgentRegistry
from npcmind.config import DEFAULT_CONFIG, EngineConfig
from npcmind.schemas import ActionType, MemoryEntry, NearbyPerson, Trait


COMPATIBILITY: Dict[Trait, Dict[Trait, float]] = {
    Trait.EXTROVERTED: {Trait.EXTROVERTED: 0.3, Trait.INTROVERTED: -0.1, Trait.GOSSIP: 0.4},
    Trait.INTROVERTED: {Trait.INTROVERTED: 0.2, Trait.EXTROVERTED: -0.1, Trait.PROFESSIONAL: 0.3},
    Trait.AMBITIOUS: {Trait.AMBITIOUS: 0.2, Trait.LAZY: -0.4, Trait.PROFESSIONAL: 0.3},
    Trait.LAZY: {Trait.LAZY: 0.2, Trait.AMBITIOUS: -0.4, Trait.CHAOTIC: 0.1},
    Trait.ORGANIZED: {Trait.ORGANIZED: 0.3, Trait.CHAOTIC: -0.5, Trait.PROFESSIONAL: 0.4},
    Trait.CHAOTIC: {Trait.CHAOTIC: 0.1, Trait.ORGANIZED: -0.5, Trait.LAZY: 0.1},
    Trait.GOSSIP: {Trait.GOSSIP: 0.4, Trait.PROFESSIONAL: -0.2, Trait.EXTROVERTED: 0.3},
    Trait.PROFESSIONAL: {Trait.PROFESSIONAL: 0.3, Trait.GOSSIP: -0.2, Trait.AMBITIOUS: 0.3},
}

CONFIDENCE_MOODS: Dict[str, float] = {
    "happy": 0.2,
    "friendly": 0.3,
    "neutral": 0.0,
    "busy": -0.3,
    "focused": -0.2,
    "stressed": -0.4,
}

SEVERITY_SCORES = {"low": 1, "medium": 2, "high": 3}
SEVERITY_PENALTIES = {"low": 0.9, "medium": 0.8, "high": 0.6}

HIERARCHY_RELATIONS = ("supervisor", "subordinate")


def pair_key(a: str, b: str) -> Tuple[str, str]:
    """Unordered pair key: the same for (a, b) and (b, a)."""

    return (a, b) if a <= b else (b, a)


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


# ============================================================================
# Interaction history
# ============================================================================


class InteractionHistory(Protocol):
    def interactions(self, agent: Agent, person: NearbyPerson) -> Sequence[MemoryEntry]:
        ...


class MemoryInteractionHistory:
    """Treat every memory entry mentioning the person as an interaction."""

    def interactions(self, agent: Agent, person: NearbyPerson) -> Sequence[MemoryEntry]:
        return agent.memory.mentions(person.id, person.name)


# ============================================================================
# Results
# ============================================================================


@dataclass(frozen=True)
class RelationshipEdge:
    key: Tuple[str, str]
    type: str
    familiarity: float
    sentiment: float
    compatibility: float
    interaction_count: int


@dataclass(frozen=True)
class GroupFormation:
    members: Tuple[str, ...]
    approachability: float
    dominant_mood: str
    activity: str

    @property
    def size(self) -> int:
        return len(self.members)

    @property
    def kind(self) -> str:
        return "pair" if self.size == 2 else "group"


@dataclass(frozen=True)
class SocialOpportunity:
    type: str
    targets: Tuple[str, ...]
    confidence: float
    priority: float
    topics: Tuple[str, ...] = ()

    @property
    def target(self) -> str:
        return self.targets[0]


@dataclass(frozen=True)
class SocialBarrier:
    type: str
    severity: str
    description: str
    affected_actions: FrozenSet[str] = frozenset()
    target: Optional[str] = None


@dataclass(frozen=True)
class SocialRecommendation:
    action: ActionType
    targets: Tuple[str, ...]
    confidence: float
    priority: float
    reasoning: str


@dataclass
class SocialInfluence:
    social: float = 0.0
    stress: float = 0.0
    energy: float = 0.0
    mood: str = "no_change"


@dataclass
class SocialAnalysis:
    people: List[NearbyPerson] = field(default_factory=list)
    relationship_map: Dict[str, RelationshipEdge] = field(default_factory=dict)
    group_formations: List[GroupFormation] = field(default_factory=list)
    opportunities: List[SocialOpportunity] = field(default_factory=list)
    barriers: List[SocialBarrier] = field(default_factory=list)
    recommended_actions: List[SocialRecommendation] = field(default_factory=list)
    climate: str = "isolated"

    def relationship(self, person: NearbyPerson) -> Optional[RelationshipEdge]:
        return self.relationship_map.get(person.id)

    def edge_for(self, reference: str) -> Optional[RelationshipEdge]:
        """Look up an edge by person id or display name."""

        if reference in self.relationship_map:
            return self.relationship_map[reference]
        for person in self.people:
            if person.name == reference:
                return self.relationship_map.get(person.id)
        return None


# ============================================================================
# Graph
# ============================================================================


class SocialGraph:
    """Analyse who is around an agent and how approachable they are."""

    def __init__(
        self,
        config: EngineConfig = DEFAULT_CONFIG,
        *,
        history: Optional[InteractionHistory] = None,
        registry: Optional[AgentRegistry] = None,
    ) -> None:
        self.config = config
        self.history: InteractionHistory = history or MemoryInteractionHistory()
        self.registry = registry

    # ------------------------------------------------------------------
    # Relationships
    # ------------------------------------------------------------------

    def _traits_of(self, person: NearbyPerson) -> Sequence[Trait]:
        if self.registry is None:
            return ()
        other = self.registry.get(person.id)
        return other.traits if other is not None else ()

    @staticmethod
    def _directional(traits_a: Sequence[Trait], traits_b: Sequence[Trait]) -> Optional[float]:
        total = 0.0
        factors = 0
        for trait_a in traits_a:
            row = COMPATIBILITY.get(trait_a, {})
            for trait_b in traits_b:
                if trait_b in row:
                    total += row[trait_b]
                    factors += 1
        return total / factors if factors else None

    @classmethod
    def compatibility(cls, traits_a: Sequence[Trait], traits_b: Sequence[Trait]) -> float:
        """Symmetric compatibility in [-1, 1]; averages both lookup directions."""

        forward = cls._directional(traits_a, traits_b)
        backward = cls._directional(traits_b, traits_a)
        values = [value for value in (forward, backward) if value is not None]
        if not values:
            return 0.0
        return _clamp(sum(values) / len(values), -1.0, 1.0)

    def relationship(self, agent: Agent, person: NearbyPerson) -> RelationshipEdge:
        entries = self.history.interactions(agent, person)
        count = len(entries)
        compatibility = self.compatibility(agent.traits, self._traits_of(person))

        gain = self.config.social.familiarity_gain
        familiarity = min(0.95, 0.5 + gain * count) if count else 0.5
        if count == 0:
            kind = "colleague"
        elif familiarity > 0.9:
            kind = "close_friend"
        elif familiarity > 0.7:
            kind = "friend"
        else:
            kind = "acquaintance"
        if person.relation in HIERARCHY_RELATIONS:
            kind = person.relation

        emotions = Counter(entry.emotion for entry in entries)
        drift = self.config.social.sentiment_change * (emotions["positive"] - emotions["negative"])
        sentiment = _clamp(compatibility + drift, -1.0, 1.0)

        return RelationshipEdge(
            key=pair_key(agent.id, person.id),
            type=kind,
            familiarity=familiarity,
            sentiment=sentiment,
            compatibility=compatibility,
            interaction_count=count,
        )

    # ------------------------------------------------------------------
    # Groups
    # ------------------------------------------------------------------

    def _group_by_proximity(self, people: Sequence[NearbyPerson]) -> List[List[NearbyPerson]]:
        radius = self.config.social.conversation_distance
        groups: List[List[NearbyPerson]] = []
        seen: set[str] = set()
        for person in people:
            if person.id in seen:
                continue
            seen.add(person.id)
            group = [person]
            for other in people:
                if other.id in seen:
                    continue
                if other.distance <= radius and abs(person.distance - other.distance) <= 2:
                    group.append(other)
                    seen.add(other.id)
            groups.append(group)
        return groups

    @staticmethod
    def dominant_mood(group: Sequence[NearbyPerson]) -> str:
        counts = Counter(person.mood or "neutral" for person in group)
        return counts.most_common(1)[0][0]

    def group_approachability(self, group: Sequence[NearbyPerson]) -> float:
        score = 0.5
        if len(group) <= 2:
            score += 0.3
        elif len(group) >= self.config.social.max_comfortable_group:
            score -= 0.4
        mood = self.dominant_mood(group)
        if mood in ("happy", "friendly"):
            score += 0.2
        elif mood in ("busy", "focused"):
            score -= 0.3
        return _clamp(score, 0.0, 1.0)

    @staticmethod
    def infer_activity(mood: str, location: str) -> str:
        lowered = location.lower()
        if mood in ("busy", "focused"):
            return "working"
        if mood == "stressed":
            return "problem-solving"
        if "meeting" in lowered or "conference" in lowered:
            return "planning"
        if any(hint in lowered for hint in ("break", "kitchen", "lounge", "cafeteria")):
            return "gossiping"
        return "chatting"

    def group_formations(self, people: Sequence[NearbyPerson], *, location: str = "") -> List[GroupFormation]:
        if len(people) < 2:
            return []
        formations = []
        for group in self._group_by_proximity(people):
            if len(group) < 2:
                continue
            mood = self.dominant_mood(group)
            formations.append(
                GroupFormation(
                    members=tuple(person.name for person in group),
                    approachability=self.group_approachability(group),
                    dominant_mood=mood,
                    activity=self.infer_activity(mood, location),
                )
            )
        return formations

    # ------------------------------------------------------------------
    # Opportunities
    # ------------------------------------------------------------------

    @staticmethod
    def _in_group(person: NearbyPerson, people: Sequence[NearbyPerson]) -> bool:
        return any(
            other.id != person.id and abs(other.distance - person.distance) <= 2 for other in people
        )

    @staticmethod
    def conversation_confidence(agent: Agent, person: NearbyPerson, edge: RelationshipEdge) -> float:
        confidence = 0.5
        if Trait.EXTROVERTED in agent.traits:
            confidence += 0.3
        if Trait.INTROVERTED in agent.traits:
            confidence -= 0.2
        if Trait.PROFESSIONAL in agent.traits and edge.type == "colleague":
            confidence += 0.1
        confidence += edge.familiarity * 0.3
        confidence += max(0.0, edge.sentiment * 0.2)
        confidence += CONFIDENCE_MOODS.get(person.mood, 0.0)
        return _clamp(confidence, 0.0, 1.0)

    @staticmethod
    def suggest_topics(agent: Agent, edge: RelationshipEdge) -> Tuple[str, ...]:
        topics = ["greeting", "weather"]
        if edge.type in ("colleague", "supervisor"):
            topics += ["work_projects", "deadlines", "workplace_news"]
        if edge.type in ("friend", "close_friend"):
            topics += ["personal_life", "hobbies", "weekend_plans"]
        if edge.familiarity > 0.7:
            topics += ["shared_experiences", "inside_jokes"]
        if Trait.GOSSIP in agent.traits:
            topics += ["office_rumors", "people_updates"]
        if Trait.PROFESSIONAL in agent.traits:
            topics += ["industry_trends", "professional_development"]
        if Trait.AMBITIOUS in agent.traits:
            topics += ["career_goals", "opportunities"]
        return tuple(topics)

    @staticmethod
    def opportunity_priority(agent: Agent, edge: RelationshipEdge, kind: str) -> float:
        priority = 0.5
        if agent.needs.social < 5:
            priority += (5 - agent.needs.social) * 0.1
        if Trait.EXTROVERTED in agent.traits:
            priority += 0.2
        if Trait.INTROVERTED in agent.traits and kind == "one_on_one_conversation":
            priority += 0.1
        if Trait.GOSSIP in agent.traits and kind == "information_gathering":
            priority += 0.3
        if edge.sentiment > 0.5:
            priority += 0.2
        if edge.type == "supervisor" and Trait.AMBITIOUS in agent.traits:
            priority += 0.3
        return _clamp(priority, 0.0, 1.0)

    def group_join_priority(self, agent: Agent, group: GroupFormation) -> float:
        settings = self.config.social
        priority = 0.3
        if Trait.EXTROVERTED in agent.traits:
            priority += 0.4
        if Trait.INTROVERTED in agent.traits:
            priority -= 0.2
        if group.size <= settings.optimal_group_size:
            priority += 0.2
        elif group.size >= settings.max_comfortable_group:
            priority -= 0.3
        if group.activity in ("chatting", "gossiping") and Trait.GOSSIP in agent.traits:
            priority += 0.3
        return _clamp(priority, 0.0, 1.0)

    def opportunities(
        self,
        agent: Agent,
        people: Sequence[NearbyPerson],
        relationships: Dict[str, RelationshipEdge],
        groups: Sequence[GroupFormation],
    ) -> List[SocialOpportunity]:
        found: List[SocialOpportunity] = []
        for person in people:
            edge = relationships[person.id]
            if person.distance <= self.config.social.conversation_distance and not self._in_group(person, people):
                found.append(
                    SocialOpportunity(
                        type="one_on_one_conversation",
                        targets=(person.name,),
                        confidence=self.conversation_confidence(agent, person, edge),
                        priority=self.opportunity_priority(agent, edge, "one_on_one_conversation"),
                        topics=self.suggest_topics(agent, edge),
                    )
                )
            if Trait.AMBITIOUS in agent.traits and edge.type == "supervisor":
                found.append(SocialOpportunity("networking", (person.name,), 0.6, 0.8))
            if Trait.GOSSIP in agent.traits and edge.familiarity < 0.7:
                found.append(SocialOpportunity("information_gathering", (person.name,), 0.7, 0.6))
            if edge.type == "subordinate" and agent.experience > 3:
                found.append(SocialOpportunity("mentoring", (person.name,), 0.8, 0.5))

        for group in groups:
            if (
                group.approachability > 0.5
                and group.size <= self.config.social.max_comfortable_group
            ):
                found.append(
                    SocialOpportunity(
                        type="join_group",
                        targets=group.members,
                        confidence=group.approachability,
                        priority=self.group_join_priority(agent, group),
                    )
                )
        found.sort(key=lambda item: item.priority, reverse=True)
        return found

    # ------------------------------------------------------------------
    # Barriers
    # ------------------------------------------------------------------

    def barriers(
        self,
        agent: Agent,
        people: Sequence[NearbyPerson],
        relationships: Dict[str, RelationshipEdge],
    ) -> List[SocialBarrier]:
        introverted = Trait.INTROVERTED in agent.traits
        found: List[SocialBarrier] = []
        if len(people) > self.config.social.crowd_threshold:
            found.append(
                SocialBarrier(
                    type="overcrowding",
                    severity="high" if introverted else "medium",
                    description="Too many people in area",
                    affected_actions=frozenset({"socialize", "join_group"}),
                )
            )
        for person in people:
            edge = relationships[person.id]
            if edge.sentiment < -0.3:
                found.append(
                    SocialBarrier(
                        type="negative_relationship",
                        severity="high",
                        description=f"Poor relationship with {person.name}",
                        affected_actions=frozenset({"start_conversation"}),
                        target=person.name,
                    )
                )
        if agent.needs.energy < 3:
            found.append(
                SocialBarrier(
                    type="low_energy",
                    severity="high" if introverted else "medium",
                    description="Too tired for social interaction",
                    affected_actions=frozenset({"start_conversation", "join_group"}),
                )
            )
        if agent.needs.stress > 7:
            found.append(
                SocialBarrier(
                    type="high_stress",
                    severity="high",
                    description="Too stressed to socialize comfortably",
                    affected_actions=frozenset({"socialize"}),
                )
            )
        if Trait.PROFESSIONAL in agent.traits:
            found.append(
                SocialBarrier(
                    type="professional_boundaries",
                    severity="low",
                    description="Maintaining professional distance",
                    affected_actions=frozenset({"socialize"}),
                )
            )
        return found

    # ------------------------------------------------------------------
    # Recommendations and climate
    # ------------------------------------------------------------------

    @staticmethod
    def recommendations(
        opportunities: Sequence[SocialOpportunity],
        barriers: Sequence[SocialBarrier],
    ) -> List[SocialRecommendation]:
        results: List[SocialRecommendation] = []
        for opportunity in opportunities:
            if opportunity.type in ("one_on_one_conversation", "networking", "information_gathering"):
                action = ActionType.START_CONVERSATION
                reasoning = {
                    "one_on_one_conversation": f"Good opportunity to talk with {opportunity.target}",
                    "networking": "Career networking opportunity",
                    "information_gathering": "Opportunity to gather information",
                }[opportunity.type]
            elif opportunity.type == "join_group":
                action = ActionType.SOCIALIZE
                reasoning = "Could join the group conversation"
            else:
                continue
            confidence = opportunity.confidence
            if any(action.value.lower() in barrier.affected_actions for barrier in barriers):
                confidence *= 0.8
            results.append(
                SocialRecommendation(
                    action=action,
                    targets=opportunity.targets,
                    confidence=confidence,
                    priority=opportunity.priority,
                    reasoning=reasoning,
                )
            )
        results.sort(key=lambda item: item.priority, reverse=True)
        return results

    @staticmethod
    def climate(people_count: int, opportunities: int, barriers: Sequence[SocialBarrier]) -> str:
        if people_count == 0:
            return "isolated"
        severity = sum(SEVERITY_SCORES.get(barrier.severity, 1) for barrier in barriers)
        if severity > 6:
            return "tense"
        if opportunities == 0:
            return "unfavorable"
        if opportunities > people_count:
            return "vibrant"
        if opportunities >= people_count * 0.5:
            return "favorable"
        return "neutral"

    def analyze_situation(
        self,
        agent: Agent,
        nearby: Sequence[NearbyPerson],
        *,
        location: str = "",
    ) -> SocialAnalysis:
        people = [person for person in nearby if person.id != agent.id]
        if not people:
            return SocialAnalysis(climate="isolated")

        relationships = {person.id: self.relationship(agent, person) for person in people}
        groups = self.group_formations(people, location=location)
        opportunities = self.opportunities(agent, people, relationships, groups)
        barriers = self.barriers(agent, people, relationships)
        return SocialAnalysis(
            people=list(people),
            relationship_map=relationships,
            group_formations=groups,
            opportunities=opportunities,
            barriers=barriers,
            recommended_actions=self.recommendations(opportunities, barriers),
            climate=self.climate(len(people), len(opportunities), barriers),
        )

    # ------------------------------------------------------------------
    # Influence
    # ------------------------------------------------------------------

    @staticmethod
    def social_influence(agent: Agent, analysis: SocialAnalysis) -> SocialInfluence:
        """Need deltas the current company exerts on ``agent``."""

        influence = SocialInfluence()
        count = len(analysis.people)
        if Trait.EXTROVERTED in agent.traits and count > 0:
            influence.social += min(2.0, count * 0.3)
            influence.energy += min(1.0, count * 0.2)
        if Trait.INTROVERTED in agent.traits and count > 3:
            influence.energy -= (count - 3) * 0.2
            influence.stress += (count - 3) * 0.1

        edges = analysis.relationship_map.values()
        positive = sum(1 for edge in edges if edge.sentiment > 0.3)
        negative = sum(1 for edge in edges if edge.sentiment < -0.3)
        if positive:
            influence.social += positive * 0.2
            influence.mood = "positive"
        if negative:
            influence.stress += negative * 0.3
            influence.mood = "negative"
        return influence

    @staticmethod
    def action_modifier(
        agent: Agent,
        action_type: ActionType,
        target: Optional[str],
        analysis: SocialAnalysis,
    ) -> float:
        modifier = 1.0
        edge = analysis.edge_for(target) if target else None
        if edge is not None:
            if action_type is ActionType.START_CONVERSATION:
                if edge.sentiment > 0.3:
                    modifier *= 1.3
                elif edge.sentiment < -0.3:
                    modifier *= 0.6
            if edge.type == "supervisor":
                modifier *= 1.1 if Trait.PROFESSIONAL in agent.traits else 0.9

        for barrier in analysis.barriers:
            if action_type.value.lower() in barrier.affected_actions:
                modifier *= SEVERITY_PENALTIES.get(barrier.severity, 0.8)
        return _clamp(modifier, 0.5, 1.5)
