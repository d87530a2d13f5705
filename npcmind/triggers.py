"""Keyword triggers found in the raw prompt text.

A trigger category nudges the engine's decision (longer work under
deadline pressure, dialogue when a joke is in the air) and suggests which
dialogue pool should voice the result.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Tuple

from npcmind.schemas import ActionType, Decision, Priority


@dataclass(frozen=True)
class TriggerCategory:
    name: str
    keywords: Tuple[str, ...]
    modifiers: Mapping[str, float]
    dialogue_pool: str


TRIGGER_CATEGORIES: Tuple[TriggerCategory, ...] = (
    TriggerCategory(
        "work_pressure",
        ("deadline", "urgent", "asap", "rush", "pressure", "stress", "overload"),
        {"work_focus": 1.5, "stress_response": 1.3},
        "work",
    ),
    TriggerCategory(
        "social_opportunity",
        ("group", "everyone", "team", "together", "chat", "conversation"),
        {"social_seeking": 1.4, "group_interaction": 1.2},
        "general",
    ),
    TriggerCategory(
        "humor_context",
        ("funny", "joke", "hilarious", "laugh", "silly", "ridiculous", "absurd"),
        {"playfulness": 1.6, "social_engagement": 1.3},
        "banter",
    ),
    TriggerCategory(
        "break_context",
        ("coffee", "lunch", "break", "food", "hungry", "tired", "energy"),
        {"need_satisfaction": 1.4, "break_seeking": 1.2},
        "food",
    ),
    TriggerCategory(
        "interest_context",
        ("project", "hobby", "technology", "computer", "app", "gadget"),
        {"engagement": 1.3, "knowledge_sharing": 1.2},
        "technology",
    ),
    TriggerCategory(
        "entertainment_context",
        ("movie", "show", "music", "book", "celebrity", "weekend"),
        {"leisure_seeking": 1.3, "social_bonding": 1.2},
        "entertainment",
    ),
)


@dataclass(frozen=True)
class DetectedTrigger:
    type: str
    matches: Tuple[str, ...]
    strength: float


@dataclass(frozen=True)
class TriggerAnalysis:
    detected: Tuple[DetectedTrigger, ...] = ()
    modifiers: Mapping[str, float] = field(default_factory=dict)
    suggested_pool: str = "general"
    pressure: str = "normal"
    social_context: str = "neutral"

    @property
    def primary(self) -> Optional[DetectedTrigger]:
        return self.detected[0] if self.detected else None

    def has(self, trigger_type: str) -> bool:
        return any(trigger.type == trigger_type for trigger in self.detected)


def analyze_triggers(text: str, categories: Tuple[TriggerCategory, ...] = TRIGGER_CATEGORIES) -> TriggerAnalysis:
    """Scan ``text`` for every category's keywords (substring match)."""

    lowered = (text or "").lower()
    detected: List[DetectedTrigger] = []
    modifiers: Dict[str, float] = {}
    suggested = "general"

    for category in categories:
        matches = tuple(keyword for keyword in category.keywords if keyword in lowered)
        if not matches:
            continue
        detected.append(DetectedTrigger(category.name, matches, len(matches) / len(category.keywords)))
        for name, factor in category.modifiers.items():
            modifiers[name] = modifiers.get(name, 1.0) * factor
        # Later categories win the routing suggestion.
        suggested = category.dialogue_pool

    found = {trigger.type for trigger in detected}
    pressure = "high" if "work_pressure" in found else "low" if "break_context" in found else "normal"
    if "social_opportunity" in found:
        social_context = "social"
    elif "humor_context" in found:
        social_context = "playful"
    else:
        social_context = "neutral"
    return TriggerAnalysis(
        detected=tuple(detected),
        modifiers=modifiers,
        suggested_pool=suggested,
        pressure=pressure,
        social_context=social_context,
    )


def _raise_priority(decision: Decision) -> None:
    # Critical stays critical.
    if decision.priority in (Priority.MEDIUM, Priority.LOW):
        decision.priority = Priority.HIGH


def apply_triggers(decision: Decision, analysis: TriggerAnalysis) -> Decision:
    """Return a copy of ``decision`` nudged by the detected triggers."""

    if not analysis.detected:
        return decision

    modified = decision.model_copy(deep=True)
    action = modified.action

    for name, factor in analysis.modifiers.items():
        if name == "work_focus":
            if action is not None and action.type is ActionType.WORK_ON:
                action.duration = round(action.duration * factor)
                _raise_priority(modified)
        elif name == "social_seeking":
            if action is not None and action.type.is_social:
                action.duration = round(action.duration * factor)
                modified.include_dialogue = True
        elif name == "playfulness":
            modified.include_dialogue = True
            modified.dialogue_intent = "banter"
        elif name == "need_satisfaction":
            if action is not None and action.type in (ActionType.DRINK_COFFEE, ActionType.EAT_SNACK):
                _raise_priority(modified)

    modified.dialogue_pool = analysis.suggested_pool
    modified.reasoning.append(f"Environmental trigger: {analysis.primary.type}")
    if analysis.pressure != "normal":
        modified.reasoning.append(f"Environmental pressure: {analysis.pressure}")
    if analysis.social_context != "neutral":
        modified.reasoning.append(f"Social context: {analysis.social_context}")
    return modified
