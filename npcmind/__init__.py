"""
npcmind - rule-based NPC behavior and dialogue decisions.

Agents pick their next action from needs, personality, memory, routines and
the people around them. An optional external LLM provider can stand in for
the local engine behind the same request scheduler.

No file I/O. No global state. All dependencies injected by the caller.
"""

__version__ = "0.1.0"

# Main entry points
from .runtime import NPCRuntime, TickReport
from .decision_engine import DecisionEngine
from .applier import ApplyResult, ResponseApplier
from .scheduler import (
    ActionRejectedError,
    DecisionRequest,
    LLMDecisionProvider,
    MalformedRequestError,
    ProviderRateLimitedError,
    ProviderUnavailableError,
    RequestScheduler,
    SchedulerStats,
)

# Components
from .agent import Agent, AgentRegistry
from .config import DEFAULT_CONFIG, Config, EngineConfig
from .context import DecisionContext, build_decision_context
from .context_analyzer import ContextAnalyzer, EnvironmentAnalysis
from .dialogue import ConversationThread, DialogueProvider, DialogueRouter, TemplateDialogueProvider
from .memory import LLMMemorySummarizer, MemoryConsolidator, MemoryStore, PatternExtractor
from .needs import NeedsModel, NeedsPriority
from .personality import PersonalityModel
from .routines import RoutineScheduler
from .social import SocialGraph
from .triggers import analyze_triggers, apply_triggers

# Core schemas
from .schemas import (
    ActionType,
    AvailableAction,
    Decision,
    DecisionAction,
    NearbyPerson,
    Need,
    NeedLevel,
    NeedsVector,
    Priority,
    ResponseAction,
    ResponseType,
    StandardizedResponse,
    Surroundings,
    Task,
    Trait,
)

__all__ = [
    # Main classes
    "NPCRuntime",
    "TickReport",
    "DecisionEngine",
    "ResponseApplier",
    "ApplyResult",
    "RequestScheduler",
    "DecisionRequest",
    "LLMDecisionProvider",
    "SchedulerStats",
    # Errors
    "MalformedRequestError",
    "ProviderUnavailableError",
    "ProviderRateLimitedError",
    "ActionRejectedError",
    # Components
    "Agent",
    "AgentRegistry",
    "Config",
    "EngineConfig",
    "DEFAULT_CONFIG",
    "DecisionContext",
    "build_decision_context",
    "ContextAnalyzer",
    "EnvironmentAnalysis",
    "DialogueRouter",
    "DialogueProvider",
    "TemplateDialogueProvider",
    "ConversationThread",
    "MemoryStore",
    "PatternExtractor",
    "MemoryConsolidator",
    "LLMMemorySummarizer",
    "NeedsModel",
    "NeedsPriority",
    "PersonalityModel",
    "RoutineScheduler",
    "SocialGraph",
    "analyze_triggers",
    "apply_triggers",
    # Schemas
    "ActionType",
    "AvailableAction",
    "Decision",
    "DecisionAction",
    "NearbyPerson",
    "Need",
    "NeedLevel",
    "NeedsVector",
    "Priority",
    "ResponseAction",
    "ResponseType",
    "StandardizedResponse",
    "Surroundings",
    "Task",
    "Trait",
]
