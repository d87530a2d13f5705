"""
npcmind Configuration

Two layers:

* ``Config`` - process-level settings read from environment variables
  (optionally from a ``.env`` file) with sensible defaults.
* ``EngineConfig`` - the immutable tuning structure handed to every engine
  component. It is validated once when constructed and never mutated after.
"""

from __future__ import annotations

import os
from typing import Dict

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, model_validator

from npcmind.schemas import ActionType, Need, Trait

# Load .env file if it exists
load_dotenv()


class Config:
    """Application configuration loaded from environment variables."""

    # External decision provider (mirascope provider/model names)
    LLM_PROVIDER: str = os.getenv("LLM_PROVIDER", "openai")
    LLM_MODEL: str = os.getenv("LLM_MODEL", "gpt-4o-mini")

    # API Keys
    ANTHROPIC_API_KEY: str | None = os.getenv("ANTHROPIC_API_KEY")
    OPENAI_API_KEY: str | None = os.getenv("OPENAI_API_KEY")

    # Engine overrides
    DECISION_FREQUENCY_MS: int = int(os.getenv("NPCMIND_DECISION_FREQUENCY_MS", "2000"))
    RANDOM_SEED: str | None = os.getenv("NPCMIND_RANDOM_SEED")

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    @classmethod
    def validate(cls) -> None:
        """Validate configuration and raise errors if required values are missing."""
        if cls.DECISION_FREQUENCY_MS < 1000:
            raise ValueError(
                "NPCMIND_DECISION_FREQUENCY_MS must be at least 1000 (one decision per second)."
            )

        if cls.LLM_PROVIDER == "anthropic" and not cls.ANTHROPIC_API_KEY:
            raise ValueError(
                "ANTHROPIC_API_KEY is required when using the 'anthropic' provider"
            )

        if cls.LLM_PROVIDER == "openai" and not cls.OPENAI_API_KEY:
            raise ValueError(
                "OPENAI_API_KEY is required when using the 'openai' provider. "
                "Agents without an external provider can still run on the local engine."
            )

    @classmethod
    def display(cls) -> str:
        """Return a formatted string showing current configuration."""
        lines = [
            "npcmind Configuration:",
            f"  LLM Provider: {cls.LLM_PROVIDER}",
            f"  LLM Model: {cls.LLM_MODEL}",
            f"  Decision Frequency: {cls.DECISION_FREQUENCY_MS}ms",
            f"  Random Seed: {cls.RANDOM_SEED or '(unseeded)'}",
            f"  Log Level: {cls.LOG_LEVEL}",
        ]
        return "\n".join(lines)


# ============================================================================
# Engine tuning
# ============================================================================


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class DecisionSettings(_Frozen):
    frequency_ms: int = 2000
    idle_duration_ms: int = 5000


class NeedThresholds(_Frozen):
    critical: float = 2
    low: float = 4
    moderate: float = 6
    satisfied: float = 8


class SocialSettings(_Frozen):
    conversation_distance: float = 3
    crowd_threshold: int = 6
    familiarity_gain: float = 0.1
    sentiment_change: float = 0.05
    optimal_group_size: int = 3
    max_comfortable_group: int = 5


class ConversationSettings(_Frozen):
    base_duration_ms: int = 10000
    topic_change_probability: float = 0.3
    natural_ending_probability: float = 0.2
    max_turns_before_topic_shift: int = 8
    max_turns_before_end: int = 15
    history_limit: int = 20
    topic_limit: int = 10
    stale_after_seconds: int = 3600


class MemorySettings(_Frozen):
    max_short_term: int = 20
    pattern_detection_threshold: int = 3
    significance_magnitude: float = 7
    strong_relationship_high: float = 70
    strong_relationship_low: float = 30


class RoutineSettings(_Frozen):
    history_limit: int = 50


class SchedulerSettings(_Frozen):
    max_attempts: int = 3
    backoff_base_ms: int = 1000
    cache_timeout_ms: int = 30000
    default_priority: float = 5
    min_retry_priority: float = 1
    external_cooldown_ms: int = 2000


class WorkingHours(_Frozen):
    start: int = 9
    end: int = 17


def _default_decay() -> Dict[Need, float]:
    # Per simulated hour; negative rates make the need rise.
    return {
        Need.ENERGY: 0.8,
        Need.HUNGER: 0.6,
        Need.SOCIAL: 0.4,
        Need.STRESS: -0.3,
        Need.COMFORT: 0.2,
    }


def _default_satisfaction() -> Dict[ActionType, Dict[Need, float]]:
    return {
        ActionType.DRINK_COFFEE: {Need.ENERGY: 3, Need.COMFORT: 1, Need.STRESS: -0.5},
        ActionType.EAT_SNACK: {Need.HUNGER: 3, Need.COMFORT: 1, Need.ENERGY: 0.5},
        ActionType.START_CONVERSATION: {Need.SOCIAL: 2, Need.STRESS: -1},
        ActionType.SOCIALIZE: {Need.SOCIAL: 3, Need.STRESS: -1, Need.ENERGY: -0.5},
        ActionType.IDLE: {Need.STRESS: -2, Need.ENERGY: 1},
        ActionType.WORK_ON: {Need.STRESS: 1, Need.ENERGY: -1},
        ActionType.MOVE_TO: {Need.ENERGY: -0.5},
    }


def _default_trait_weights() -> Dict[Trait, Dict[str, float]]:
    return {
        Trait.AMBITIOUS: {"work": 1.8, "social": 1.2, "rest": 0.6, "duration": 1.5},
        Trait.LAZY: {"work": 0.4, "social": 0.8, "rest": 1.8, "duration": 0.7},
        Trait.EXTROVERTED: {"work": 0.9, "social": 2.0, "rest": 0.8, "crowd_tolerance": 1.5},
        Trait.INTROVERTED: {"work": 1.2, "social": 0.5, "rest": 1.3, "crowd_tolerance": 0.3},
        Trait.ORGANIZED: {"work": 1.4, "routine": 1.8, "completion": 1.6, "planning": 1.5},
        Trait.CHAOTIC: {"work": 0.8, "routine": 0.4, "completion": 0.6, "randomness": 1.8},
        Trait.GOSSIP: {"social": 1.6, "information": 1.8, "sharing": 1.5, "curiosity": 1.7},
        Trait.PROFESSIONAL: {"work": 1.3, "formal": 1.5, "personal": 0.6, "efficiency": 1.4},
    }


class EngineConfig(_Frozen):
    """Every tunable weight and threshold used by the decision engine.

    Pass one instance to the components that need it. Construction runs the
    consistency checks below; an invalid combination raises ``ValueError``
    (pydantic's ``ValidationError`` subclasses it).
    """

    decision: DecisionSettings = Field(default_factory=DecisionSettings)
    needs: NeedThresholds = Field(default_factory=NeedThresholds)
    decay_per_hour: Dict[Need, float] = Field(default_factory=_default_decay)
    satisfaction: Dict[ActionType, Dict[Need, float]] = Field(default_factory=_default_satisfaction)
    social: SocialSettings = Field(default_factory=SocialSettings)
    conversation: ConversationSettings = Field(default_factory=ConversationSettings)
    memory: MemorySettings = Field(default_factory=MemorySettings)
    routines: RoutineSettings = Field(default_factory=RoutineSettings)
    scheduler: SchedulerSettings = Field(default_factory=SchedulerSettings)
    working_hours: WorkingHours = Field(default_factory=WorkingHours)
    trait_weights: Dict[Trait, Dict[str, float]] = Field(default_factory=_default_trait_weights)

    @model_validator(mode="after")
    def _check_consistency(self) -> "EngineConfig":
        thresholds = self.needs
        if not (thresholds.critical < thresholds.low < thresholds.moderate < thresholds.satisfied):
            raise ValueError(
                "Need thresholds must be strictly increasing: critical < low < moderate < satisfied"
            )
        if self.decision.frequency_ms < 1000:
            raise ValueError("decision.frequency_ms must be at least 1000")
        for trait, table in self.trait_weights.items():
            for key, weight in table.items():
                if not 0 <= weight <= 3:
                    raise ValueError(
                        f"Trait weight {trait.value}.{key}={weight} is outside [0, 3]"
                    )
        if self.scheduler.max_attempts < 1:
            raise ValueError("scheduler.max_attempts must be at least 1")
        if self.memory.max_short_term < 1:
            raise ValueError("memory.max_short_term must be at least 1")
        if self.routines.history_limit < 1:
            raise ValueError("routines.history_limit must be at least 1")
        if not 0 <= self.working_hours.start < self.working_hours.end <= 24:
            raise ValueError("working_hours must satisfy 0 <= start < end <= 24")
        return self

    @classmethod
    def from_env(cls) -> "EngineConfig":
        """Build the default tuning with the env-level overrides from ``Config``."""

        return cls(decision=DecisionSettings(frequency_ms=Config.DECISION_FREQUENCY_MS))

    def satisfaction_for(self, action_type: ActionType) -> Dict[Need, float]:
        return dict(self.satisfaction.get(action_type, {}))


DEFAULT_CONFIG = EngineConfig()
