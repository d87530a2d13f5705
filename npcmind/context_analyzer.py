"""Environment analysis for a single decision.

``ContextAnalyzer.analyze`` turns the host-supplied ``Surroundings`` into an
``EnvironmentAnalysis``: location category, crowding, privacy, social
openings, resources, time-of-day context, combined behavioural multipliers
and a set of boolean flags that routine triggers and tier rules key off.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, FrozenSet, List, Mapping, Optional, Sequence, Tuple

from npcmind.config import DEFAULT_CONFIG, EngineConfig
from npcmind.schemas import ActionType, AvailableAction, NearbyPerson, Surroundings


LOCATION_KEYWORDS: Dict[str, Tuple[str, ...]] = {
    "office": ("office", "workspace", "desk", "cubicle"),
    "break_room": ("break_room", "kitchen", "lounge", "cafeteria"),
    "meeting_room": ("meeting_room", "conference_room", "boardroom"),
    "hallway": ("hallway", "corridor", "entrance", "lobby"),
    "private": ("private_office", "manager_office", "bathroom"),
    "outdoor": ("patio", "balcony", "parking", "garden"),
}

# "private_office" contains "office"; check the more specific categories first.
_LOCATION_ORDER = ("private", "break_room", "meeting_room", "hallway", "outdoor", "office")

LOCATION_BEHAVIORS: Dict[str, Dict[str, float]] = {
    "office": {"work_bonus": 1.3, "social_penalty": 0.8, "formality": 7},
    "break_room": {
        "social_bonus": 1.5,
        "work_penalty": 0.4,
        "formality": 3,
        "needs_satisfaction_bonus": 1.4,
    },
    "meeting_room": {"formality": 9, "social_bonus": 1.2, "work_bonus": 1.1},
    "hallway": {"brief_interaction_bonus": 1.3, "movement_bonus": 1.2},
    "private": {"personal_bonus": 1.4, "concentration_bonus": 1.3},
}

DEFAULT_FORMALITY = 5.0

MOOD_MODIFIERS: Dict[str, float] = {
    "happy": 3,
    "friendly": 2,
    "neutral": 0,
    "focused": -2,
    "busy": -3,
    "stressed": -2,
    "angry": -4,
}

BUSY_MOODS = ("busy", "focused")


@dataclass(frozen=True)
class LocationInfo:
    type: str
    name: str
    formality: float
    behaviors: Mapping[str, float] = field(default_factory=dict)


@dataclass(frozen=True)
class Crowdedness:
    count: int
    level: int
    description: str


@dataclass(frozen=True)
class Privacy:
    score: float
    level: str

    @property
    def suitable_for_personal(self) -> bool:
        return self.score >= 6


@dataclass(frozen=True)
class ConversationTarget:
    id: str
    name: str
    distance: float
    mood: str
    approachability: float
    conversation_type: str


@dataclass(frozen=True)
class SocialOpportunities:
    total_people: int
    conversation_targets: Tuple[ConversationTarget, ...] = ()
    clusters: Tuple[Tuple[str, ...], ...] = ()
    barriers: Tuple[str, ...] = ()


@dataclass(frozen=True)
class Resources:
    coffee: bool = False
    food: bool = False
    work_tools: bool = False
    communication: bool = False


@dataclass(frozen=True)
class TimeContext:
    hour: int
    minute: int
    period: str
    energy_trend: str
    is_working_hours: bool
    is_lunch_time: bool
    is_peak_productivity: bool


@dataclass(frozen=True)
class EnvironmentAnalysis:
    location: LocationInfo
    crowdedness: Crowdedness
    privacy: Privacy
    social: SocialOpportunities
    resources: Resources
    time: TimeContext
    modifiers: Mapping[str, float]
    flags: FrozenSet[str]

    @property
    def crowded(self) -> bool:
        return "crowded" in self.flags

    def summary(self) -> str:
        parts = [
            f"Location: {self.location.name or 'unknown'} ({self.location.type})",
            f"Crowdedness: {self.crowdedness.description} ({self.crowdedness.count} people)",
            f"Privacy: {self.privacy.level} ({self.privacy.score:g}/10)",
            f"Time: {self.time.period}",
        ]
        if self.social.barriers:
            parts.append(f"Barriers: {', '.join(self.social.barriers)}")
        return " | ".join(parts)


def approachability(person: NearbyPerson) -> float:
    score = 5 + MOOD_MODIFIERS.get(person.mood, 0)
    if person.distance <= 1:
        score += 2
    elif person.distance <= 2:
        score += 1
    elif person.distance >= 5:
        score -= 1
    return max(0.0, min(10.0, float(score)))


def conversation_type(person: NearbyPerson) -> str:
    if person.mood in BUSY_MOODS:
        return "brief_greeting"
    if person.mood == "stressed":
        return "supportive"
    if person.mood in ("happy", "friendly"):
        return "casual_chat"
    return "small_talk"


class ContextAnalyzer:
    """Derive an ``EnvironmentAnalysis`` from raw surroundings."""

    def __init__(self, config: EngineConfig = DEFAULT_CONFIG) -> None:
        self.config = config

    def analyze(self, surroundings: Surroundings, *, now: datetime) -> EnvironmentAnalysis:
        people = surroundings.nearby_people
        location = self.classify_location(surroundings.location)
        crowdedness = self.crowdedness(len(people))
        privacy = self.privacy(surroundings.privacy, len(people))
        social = self.social_opportunities(people)
        resources = self.resources(surroundings.available_actions)
        time_context = self.time_context(now)
        modifiers = self.behavioral_modifiers(location, crowdedness, privacy, time_context)
        flags = self._flags(location, crowdedness, social, resources, time_context)
        return EnvironmentAnalysis(
            location=location,
            crowdedness=crowdedness,
            privacy=privacy,
            social=social,
            resources=resources,
            time=time_context,
            modifiers=modifiers,
            flags=flags,
        )

    # ------------------------------------------------------------------

    @staticmethod
    def classify_location(name: Optional[str]) -> LocationInfo:
        if not name:
            return LocationInfo(type="unknown", name="", formality=DEFAULT_FORMALITY)
        lowered = name.lower()
        for location_type in _LOCATION_ORDER:
            if any(keyword in lowered for keyword in LOCATION_KEYWORDS[location_type]):
                behaviors = LOCATION_BEHAVIORS.get(location_type, {})
                return LocationInfo(
                    type=location_type,
                    name=name,
                    formality=behaviors.get("formality", DEFAULT_FORMALITY),
                    behaviors=dict(behaviors),
                )
        return LocationInfo(type="unknown", name=name, formality=DEFAULT_FORMALITY)

    @staticmethod
    def crowdedness(count: int) -> Crowdedness:
        if count == 0:
            return Crowdedness(count, 0, "empty")
        if count <= 2:
            return Crowdedness(count, 1, "sparse")
        if count <= 5:
            return Crowdedness(count, 3, "moderate")
        if count <= 9:
            return Crowdedness(count, 6, "crowded")
        return Crowdedness(count, 10, "packed")

    @staticmethod
    def privacy(score: Optional[float], people_count: int) -> Privacy:
        if score is None:
            if people_count == 0:
                score = 10
            elif people_count <= 2:
                score = 7
            elif people_count <= 5:
                score = 4
            else:
                score = 2
        if score >= 8:
            level = "private"
        elif score >= 5:
            level = "semi_private"
        else:
            level = "public"
        return Privacy(score=float(score), level=level)

    def social_opportunities(self, people: Sequence[NearbyPerson]) -> SocialOpportunities:
        settings = self.config.social
        targets = tuple(
            ConversationTarget(
                id=person.id,
                name=person.name,
                distance=person.distance,
                mood=person.mood,
                approachability=approachability(person),
                conversation_type=conversation_type(person),
            )
            for person in people
            if person.distance <= settings.conversation_distance
        )

        clusters: List[Tuple[str, ...]] = []
        if len(people) >= 3:
            close = tuple(person.name for person in people if person.distance <= 2)
            if len(close) >= 2:
                clusters.append(close)

        barriers: List[str] = []
        if len(people) > settings.crowd_threshold:
            barriers.append("too_crowded")
        busy = sum(1 for person in people if person.mood in BUSY_MOODS)
        if people and busy > len(people) * 0.5:
            barriers.append("people_busy")

        return SocialOpportunities(
            total_people=len(people),
            conversation_targets=targets,
            clusters=tuple(clusters),
            barriers=tuple(barriers),
        )

    @staticmethod
    def resources(actions: Sequence[AvailableAction]) -> Resources:
        coffee = food = work_tools = communication = False
        for action in actions:
            kind = action.type.value.lower()
            if "coffee" in kind or action.mentions("coffee", "drink"):
                coffee = True
            if "snack" in kind or "eat" in kind or action.mentions("food", "snack"):
                food = True
            if "work" in kind or action.mentions("computer", "task"):
                work_tools = True
            if "conversation" in kind or action.mentions("talk", "phone"):
                communication = True
        return Resources(coffee=coffee, food=food, work_tools=work_tools, communication=communication)

    def time_context(self, now: datetime) -> TimeContext:
        hour, minute = now.hour, now.minute
        if hour < 9:
            period, trend = "early_morning", "building"
        elif hour < 12:
            period, trend = "morning", "high"
        elif hour == 12 or (hour == 13 and minute < 30):
            period, trend = "lunch", "moderate"
        elif hour < 17:
            period, trend = "afternoon", "declining"
        elif hour < 19:
            period, trend = "evening", "low"
        else:
            period, trend = "night", "very_low"

        hours = self.config.working_hours
        return TimeContext(
            hour=hour,
            minute=minute,
            period=period,
            energy_trend=trend,
            is_working_hours=hours.start <= hour <= hours.end,
            is_lunch_time=hour == 12 or (hour == 13 and minute <= 30),
            is_peak_productivity=10 <= hour <= 11 or 14 <= hour <= 15,
        )

    @staticmethod
    def behavioral_modifiers(
        location: LocationInfo,
        crowdedness: Crowdedness,
        privacy: Privacy,
        time_context: TimeContext,
    ) -> Dict[str, float]:
        modifiers = {
            "work_preference": 1.0,
            "social_preference": 1.0,
            "movement_preference": 1.0,
            "rest_preference": 1.0,
            "formality_requirement": 1.0,
        }
        behaviors = location.behaviors
        for key, target in (
            ("work_bonus", "work_preference"),
            ("work_penalty", "work_preference"),
            ("social_bonus", "social_preference"),
            ("social_penalty", "social_preference"),
            ("movement_bonus", "movement_preference"),
        ):
            if key in behaviors:
                modifiers[target] *= behaviors[key]

        if crowdedness.level >= 6:
            modifiers["social_preference"] *= 0.8
            modifiers["work_preference"] *= 0.7
            modifiers["movement_preference"] *= 1.2
        elif crowdedness.level == 0:
            modifiers["social_preference"] *= 0.5
            modifiers["work_preference"] *= 1.1

        if privacy.score <= 3:
            modifiers["formality_requirement"] *= 1.3

        if time_context.is_lunch_time:
            modifiers["social_preference"] *= 1.4
        if time_context.is_peak_productivity:
            modifiers["work_preference"] *= 1.2
        if time_context.energy_trend in ("declining", "low"):
            modifiers["rest_preference"] *= 1.3
        return modifiers

    @staticmethod
    def _flags(
        location: LocationInfo,
        crowdedness: Crowdedness,
        social: SocialOpportunities,
        resources: Resources,
        time_context: TimeContext,
    ) -> FrozenSet[str]:
        flags = set()
        if crowdedness.level >= 3:
            flags.add("crowded")
        if crowdedness.level <= 1:
            flags.add("quiet_environment")
        if social.total_people > 0:
            flags.add("people_nearby")
        if (
            social.total_people > 0
            and crowdedness.level < 8
            and location.type != "private"
            and "people_busy" not in social.barriers
        ):
            flags.add("good_for_socializing")
        if (
            location.type in ("office", "private")
            and crowdedness.level < 6
            and resources.work_tools
            and time_context.is_working_hours
        ):
            flags.add("good_for_work")
        if location.type == "break_room" or resources.coffee or resources.food:
            flags.add("good_for_needs")
        if time_context.is_working_hours:
            flags.add("working_hours")
        if time_context.is_lunch_time:
            flags.add("lunch_time")
        return frozenset(flags)

    # ------------------------------------------------------------------

    @staticmethod
    def score_action(action: AvailableAction, analysis: EnvironmentAnalysis) -> float:
        """How well ``action`` fits the analysed environment, 0-10."""

        score = 5.0
        kind = action.type

        if analysis.location.type == "break_room":
            if kind in (ActionType.DRINK_COFFEE, ActionType.EAT_SNACK, ActionType.SOCIALIZE):
                score += 2
            if kind is ActionType.WORK_ON:
                score -= 2
        elif analysis.location.type == "office":
            if kind is ActionType.WORK_ON:
                score += 2
            if kind is ActionType.SOCIALIZE and analysis.crowdedness.level > 3:
                score -= 1

        if analysis.crowded:
            if kind is ActionType.START_CONVERSATION or action.mentions("talk"):
                score -= 1
            if kind is ActionType.MOVE_TO:
                score += 1

        if analysis.privacy.score < 4 and action.mentions("personal", "private"):
            score -= 2

        if analysis.time.is_lunch_time and kind is ActionType.EAT_SNACK:
            score += 2

        return max(0.0, min(10.0, score))

    def rank_actions(
        self, actions: Sequence[AvailableAction], analysis: EnvironmentAnalysis
    ) -> List[AvailableAction]:
        return sorted(actions, key=lambda action: self.score_action(action, analysis), reverse=True)
