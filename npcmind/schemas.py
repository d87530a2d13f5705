"""
Pydantic schemas for the npcmind decision engine.

Every value that crosses a component boundary is defined here: the closed
enums for needs, traits and action kinds, the host-supplied
``Surroundings`` snapshot, the engine's ``Decision`` and the stable
``StandardizedResponse`` shape delivered to callers regardless of which
path (local rules, external LLM, fallback) produced it.

Design notes:
- Enums are ``str`` subclasses so they serialise as plain strings.
- ``NeedsVector`` clamps on construction and on every assignment.
- Wire-level action types stay plain strings; ``ActionType.parse`` maps
  them back to the closed enum and reports unknown kinds as ``None``.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


# ============================================================================
# Enums
# ============================================================================


class Need(str, Enum):
    """Scalar drives tracked per agent."""

    ENERGY = "energy"
    HUNGER = "hunger"
    SOCIAL = "social"
    STRESS = "stress"
    COMFORT = "comfort"


class NeedLevel(str, Enum):
    CRITICAL = "critical"
    LOW = "low"
    MODERATE = "moderate"
    SATISFIED = "satisfied"
    HIGH = "high"


class Trait(str, Enum):
    """Personality tags. Traits are not mutually exclusive."""

    AMBITIOUS = "Ambitious"
    LAZY = "Lazy"
    EXTROVERTED = "Extroverted"
    INTROVERTED = "Introverted"
    ORGANIZED = "Organized"
    CHAOTIC = "Chaotic"
    GOSSIP = "Gossip"
    PROFESSIONAL = "Professional"


class ActionType(str, Enum):
    IDLE = "IDLE"
    MOVE_TO = "MOVE_TO"
    WORK_ON = "WORK_ON"
    DRINK_COFFEE = "DRINK_COFFEE"
    EAT_SNACK = "EAT_SNACK"
    SOCIALIZE = "SOCIALIZE"
    START_CONVERSATION = "START_CONVERSATION"

    @classmethod
    def parse(cls, value: Any) -> Optional["ActionType"]:
        """Return the matching member, or ``None`` for unknown kinds."""

        if isinstance(value, ActionType):
            return value
        if not isinstance(value, str):
            return None
        try:
            return cls(value.strip().upper())
        except ValueError:
            return None

    @property
    def is_social(self) -> bool:
        return self in (ActionType.SOCIALIZE, ActionType.START_CONVERSATION)


class ResponseType(str, Enum):
    ACTION = "ACTION"
    DIALOGUE = "DIALOGUE"
    IDLE = "IDLE"


class Priority(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


DEFAULT_DURATIONS_MS: Dict[ActionType, int] = {
    ActionType.IDLE: 5000,
    ActionType.MOVE_TO: 8000,
    ActionType.WORK_ON: 15000,
    ActionType.DRINK_COFFEE: 8000,
    ActionType.EAT_SNACK: 10000,
    ActionType.SOCIALIZE: 12000,
    ActionType.START_CONVERSATION: 5000,
}


def default_duration(action_type: Optional[ActionType]) -> int:
    if action_type is None:
        return DEFAULT_DURATIONS_MS[ActionType.IDLE]
    return DEFAULT_DURATIONS_MS[action_type]


# ============================================================================
# Agent state
# ============================================================================


def _clamp_need(value: float) -> float:
    return max(0.0, min(10.0, float(value)))


class NeedsVector(BaseModel):
    """Drive levels on a 0-10 scale.

    Lower is more urgent for every need except stress, which is more urgent
    when higher. Values outside [0, 10] are clamped rather than rejected so
    that repeated deltas can never push a need out of range.
    """

    model_config = ConfigDict(validate_assignment=True)

    energy: float = 5.0
    hunger: float = 5.0
    social: float = 5.0
    stress: float = 5.0
    comfort: float = 5.0

    @field_validator("energy", "hunger", "social", "stress", "comfort")
    @classmethod
    def _clamp(cls, value: float) -> float:
        return _clamp_need(value)

    def value(self, need: Need) -> float:
        return getattr(self, need.value)

    def as_dict(self) -> Dict[Need, float]:
        return {need: self.value(need) for need in Need}

    def adjust(self, deltas: Mapping[Need, float]) -> None:
        """Apply deltas in place (each result clamped)."""

        for need, delta in deltas.items():
            setattr(self, need.value, self.value(need) + delta)

    def with_deltas(self, deltas: Mapping[Need, float]) -> "NeedsVector":
        updated = self.model_copy()
        updated.adjust(deltas)
        return updated


class LongTermGoal(BaseModel):
    type: str = Field(..., description="Goal category, matched against memory action types")
    target: str = Field("", description="Goal target, matched against memory descriptions")


class MemoryEntry(BaseModel):
    """One observed event in an agent's memory."""

    description: str
    timestamp: datetime
    action_type: Optional[str] = Field(None, description="Derived action category (work, social, ...)")
    outcome: Optional[str] = Field(None, description="Derived outcome: success, failure or partial")
    emotion: Optional[str] = Field(None, description="Derived emotion: positive, negative or neutral")
    magnitude: float = Field(0.0, description="Impact on a 0-10 scale; >= threshold is significant")
    actor_id: Optional[str] = Field(None, description="Other agent involved, if any")
    target: Optional[str] = None


# ============================================================================
# Host-supplied surroundings
# ============================================================================


class NearbyPerson(BaseModel):
    id: str
    name: str
    distance: float = 10.0
    mood: str = "neutral"
    relation: Optional[str] = Field(
        None, description="Workplace relation supplied by the host: supervisor or subordinate"
    )


class AvailableAction(BaseModel):
    type: ActionType
    target: Optional[str] = None
    description: str = ""

    def mentions(self, *keywords: str) -> bool:
        text = f"{self.description} {self.target or ''}".lower()
        return any(keyword in text for keyword in keywords)


class Task(BaseModel):
    name: str
    urgent: bool = False
    location: Optional[str] = None


class Surroundings(BaseModel):
    """Raw situational snapshot the host gathers for one decision."""

    location: str = ""
    nearby_people: List[NearbyPerson] = Field(default_factory=list)
    available_actions: List[AvailableAction] = Field(default_factory=list)
    privacy: Optional[float] = Field(None, description="0-10; inferred from crowding when omitted")
    current_task: Optional[Task] = None
    tasks: List[Task] = Field(default_factory=list)

    def actions_of(self, action_type: ActionType) -> List[AvailableAction]:
        return [action for action in self.available_actions if action.type == action_type]


# ============================================================================
# Decisions and responses
# ============================================================================


class DecisionAction(BaseModel):
    type: ActionType
    target: Optional[str] = None
    duration: int = Field(5000, description="Milliseconds")
    systematic: bool = False
    abandon_chance: float = 0.0


class Decision(BaseModel):
    """Output of one engine evaluation. Never absent; IDLE is the fallback."""

    type: ResponseType
    action: Optional[DecisionAction] = None
    priority: Priority = Priority.MEDIUM
    source: str
    reasoning: List[str] = Field(default_factory=list)
    include_dialogue: bool = False
    dialogue_intent: Optional[str] = None
    dialogue: Optional[str] = None
    dialogue_pool: Optional[str] = None

    @property
    def is_critical(self) -> bool:
        return self.priority == Priority.CRITICAL

    @property
    def action_type(self) -> Optional[ActionType]:
        return self.action.type if self.action else None

    def reasoning_text(self) -> str:
        return "; ".join(self.reasoning) or "Following routine behavior"


class ResponseAction(BaseModel):
    type: str
    target: Optional[str] = None
    duration: int = 5000
    priority: Priority = Priority.MEDIUM


class StandardizedResponse(BaseModel):
    """Stable response shape delivered through the scheduler callback."""

    response_type: ResponseType
    character_id: str
    timestamp: datetime
    source: str
    action: Optional[ResponseAction] = None
    content: Optional[str] = None
    thought: Optional[str] = None
    dialogue_pool: Optional[str] = None

    @property
    def is_fallback(self) -> bool:
        return self.source == "fallback"


class ProviderDecision(BaseModel):
    """Structured output requested from the external LLM provider."""

    response_type: ResponseType = Field(..., description="ACTION, DIALOGUE or IDLE")
    thought: str = Field("", description="Internal reasoning for the decision")
    action_type: Optional[str] = Field(None, description="Action kind for ACTION responses")
    target: Optional[str] = Field(None, description="Location, object or person the action targets")
    duration_ms: Optional[int] = Field(None, description="Expected action duration in milliseconds")
    content: Optional[str] = Field(None, description="Spoken line for DIALOGUE responses")


class MemorySummary(BaseModel):
    """Structured output requested from the memory summarizer."""

    thought: str = ""
    is_significant: bool = False
    summary: str = ""


def fallback_response(character_id: str, *, timestamp: datetime) -> StandardizedResponse:
    """The safe response delivered when every other path failed."""

    return StandardizedResponse(
        response_type=ResponseType.ACTION,
        character_id=character_id or "unknown",
        timestamp=timestamp,
        source="fallback",
        action=ResponseAction(type=ActionType.IDLE.value, duration=5000, priority=Priority.LOW),
        thought="Taking a moment to think...",
    )
