"""Personality model: trait weights, conflict resolution and decision tweaks.

Traits are declared as a plain list on the agent and may contradict each
other (an agent can be both Ambitious and Lazy). ``PersonalityModel.resolve``
picks the trait that dominates *right now* from needs and crowd size; the
result is used for one evaluation and then discarded.
"""

from __future__ import annotations

import random
from typing import TYPE_CHECKING, Dict, Iterable, List, Optional, Sequence

from npcmind.config import DEFAULT_CONFIG, EngineConfig
from npcmind.schemas import (
    ActionType,
    AvailableAction,
    Decision,
    DecisionAction,
    NeedsVector,
    ResponseType,
    Trait,
)

if TYPE_CHECKING:
    from npcmind.context import DecisionContext


DEFAULT_WEIGHTS: Dict[str, float] = {
    "work": 1.0,
    "social": 1.0,
    "rest": 1.0,
    "duration": 1.0,
    "routine": 1.0,
    "completion": 1.0,
    "crowd_tolerance": 1.0,
}

WEIGHT_FLOOR = 0.1
WEIGHT_CEILING = 3.0

TRAIT_REASONING: Dict[Trait, Dict[Optional[ActionType], str]] = {
    Trait.AMBITIOUS: {
        ActionType.WORK_ON: "driven to excel",
        ActionType.START_CONVERSATION: "networking opportunity",
        None: "pursuing goals",
    },
    Trait.LAZY: {
        ActionType.IDLE: "conserving energy",
        ActionType.DRINK_COFFEE: "minimal effort solution",
        None: "avoiding exertion",
    },
    Trait.EXTROVERTED: {
        ActionType.START_CONVERSATION: "energized by social contact",
        ActionType.SOCIALIZE: "thriving in social environment",
        None: "seeking interaction",
    },
    Trait.INTROVERTED: {
        ActionType.IDLE: "needing quiet time",
        ActionType.WORK_ON: "preferring focused work",
        None: "avoiding crowds",
    },
    Trait.ORGANIZED: {
        ActionType.WORK_ON: "following systematic approach",
        None: "keeping things structured",
    },
    Trait.CHAOTIC: {None: "embracing spontaneity"},
    Trait.GOSSIP: {
        ActionType.START_CONVERSATION: "seeking information",
        ActionType.SOCIALIZE: "sharing knowledge",
        None: "staying connected",
    },
    Trait.PROFESSIONAL: {
        ActionType.WORK_ON: "maintaining standards",
        None: "focusing on efficiency",
    },
}

# First matching trait wins.
TONE_PRECEDENCE = (
    (Trait.PROFESSIONAL, "formal"),
    (Trait.GOSSIP, "chatty"),
    (Trait.EXTROVERTED, "warm"),
    (Trait.INTROVERTED, "reserved"),
    (Trait.AMBITIOUS, "driven"),
    (Trait.LAZY, "laid_back"),
    (Trait.CHAOTIC, "scattered"),
    (Trait.ORGANIZED, "precise"),
)


def _first(actions: Iterable[AvailableAction]) -> Optional[AvailableAction]:
    return next(iter(actions), None)


class PersonalityModel:
    """Trait weights, per-evaluation conflict resolution and decision modifiers."""

    def __init__(self, config: EngineConfig = DEFAULT_CONFIG, *, rng: Optional[random.Random] = None) -> None:
        self.config = config
        self.rng = rng or random.Random()

    # ------------------------------------------------------------------
    # Weights and resolution
    # ------------------------------------------------------------------

    def weights(self, traits: Sequence[Trait]) -> Dict[str, float]:
        weights = dict(DEFAULT_WEIGHTS)
        for trait in traits:
            for key, factor in self.config.trait_weights.get(trait, {}).items():
                weights[key] = weights.get(key, 1.0) * factor
        return {key: max(WEIGHT_FLOOR, min(WEIGHT_CEILING, value)) for key, value in weights.items()}

    def resolve(self, traits: Sequence[Trait], needs: NeedsVector, nearby_count: int) -> List[Trait]:
        """Drop the losing side of each conflicting trait pair for this evaluation."""

        present = set(traits)
        losers: set[Trait] = set()

        if {Trait.AMBITIOUS, Trait.LAZY} <= present:
            if needs.energy > 6:
                losers.add(Trait.LAZY)
            elif needs.energy < 4:
                losers.add(Trait.AMBITIOUS)
            else:
                losers.add(Trait.LAZY if self.rng.random() < 0.5 else Trait.AMBITIOUS)

        if {Trait.EXTROVERTED, Trait.INTROVERTED} <= present:
            if 0 < nearby_count <= 3:
                losers.add(Trait.INTROVERTED)
            else:
                losers.add(Trait.EXTROVERTED)

        if {Trait.ORGANIZED, Trait.CHAOTIC} <= present:
            losers.add(Trait.ORGANIZED if needs.stress > 7 else Trait.CHAOTIC)

        return [trait for trait in traits if trait not in losers]

    @staticmethod
    def dialogue_tone(traits: Sequence[Trait]) -> str:
        """Speaking tone from the declared (unresolved) traits."""

        for trait, tone in TONE_PRECEDENCE:
            if trait in traits:
                return tone
        return "neutral"

    # ------------------------------------------------------------------
    # Decision modification
    # ------------------------------------------------------------------

    def modify_decision(self, decision: Decision, context: "DecisionContext") -> Decision:
        """Apply each resolved trait's rules, then the duration weight."""

        modified = decision.model_copy(deep=True)
        critical = decision.is_critical

        for trait in context.resolved_traits:
            match trait:
                case Trait.AMBITIOUS:
                    self._ambitious(modified, context, critical)
                case Trait.LAZY:
                    self._lazy(modified, context, critical)
                case Trait.EXTROVERTED:
                    self._extroverted(modified, context, critical)
                case Trait.INTROVERTED:
                    self._introverted(modified, context, critical)
                case Trait.ORGANIZED:
                    self._organized(modified, context, critical)
                case Trait.CHAOTIC:
                    self._chaotic(modified, context, critical)
                case Trait.GOSSIP:
                    self._gossip(modified, context, critical)
                case Trait.PROFESSIONAL:
                    self._professional(modified, context, critical)

        if modified.action is not None:
            modified.action.duration = round(modified.action.duration * context.weight("duration"))

        notes = self.reasoning(modified, context.resolved_traits)
        if notes:
            modified.reasoning.append(f"Personality: {notes}")
        return modified

    @staticmethod
    def reasoning(decision: Decision, traits: Sequence[Trait]) -> str:
        action_type = decision.action_type
        parts = []
        for trait in traits:
            table = TRAIT_REASONING.get(trait, {})
            text = table.get(action_type) or table.get(None)
            if text:
                parts.append(text)
        return ", ".join(parts)

    @staticmethod
    def _redirect(
        decision: Decision,
        action_type: ActionType,
        target: Optional[str],
        duration: int,
        reason: str,
    ) -> None:
        decision.type = ResponseType.IDLE if action_type is ActionType.IDLE else ResponseType.ACTION
        decision.action = DecisionAction(type=action_type, target=target, duration=duration)
        decision.reasoning.append(reason)

    @staticmethod
    def _scale(decision: Decision, factor: float, *types: ActionType) -> None:
        if decision.action is not None and (not types or decision.action.type in types):
            decision.action.duration = round(decision.action.duration * factor)

    # Individual trait rules ------------------------------------------------

    def _ambitious(self, decision: Decision, context: "DecisionContext", critical: bool) -> None:
        if decision.action_type is ActionType.WORK_ON:
            decision.action.duration = max(decision.action.duration, 15000)
            if context.needs.energy >= 3:
                self._scale(decision, 1.3)

        advancement = _first(
            action
            for action in context.available_actions
            if action.mentions("presentation", "meeting", "project")
        )
        if advancement is not None and not critical and self.rng.random() < 0.3:
            self._redirect(
                decision,
                advancement.type,
                advancement.target,
                20000,
                "Ambitious - seeking advancement opportunity",
            )

        if decision.include_dialogue:
            decision.dialogue_intent = "professional"

    def _lazy(self, decision: Decision, context: "DecisionContext", critical: bool) -> None:
        if decision.action_type is ActionType.WORK_ON:
            decision.action.duration = min(decision.action.duration, 10000)
            if context.needs.energy < 4:
                self._redirect(decision, ActionType.IDLE, None, 8000, "Lazy - avoiding work due to low energy")

        comfort = _first(
            action
            for action in context.available_actions
            if action.type in (ActionType.DRINK_COFFEE, ActionType.EAT_SNACK) or action.mentions("comfortable")
        )
        if comfort is not None and not critical and self.rng.random() < 0.4:
            self._redirect(
                decision, comfort.type, comfort.target, 12000, "Lazy - choosing comfort over productivity"
            )

    def _extroverted(self, decision: Decision, context: "DecisionContext", critical: bool) -> None:
        self._scale(decision, 1.5, ActionType.START_CONVERSATION, ActionType.SOCIALIZE)

        if not decision.include_dialogue and self.rng.random() < 0.6:
            decision.include_dialogue = True
            decision.dialogue_intent = "friendly"

        close = _first(person for person in context.nearby_people if person.distance <= 2)
        if close is not None and not critical and self.rng.random() < 0.3:
            self._redirect(
                decision,
                ActionType.START_CONVERSATION,
                close.name,
                12000,
                "Extroverted - taking social opportunity",
            )
            decision.include_dialogue = True
            decision.dialogue_intent = "friendly"

    def _introverted(self, decision: Decision, context: "DecisionContext", critical: bool) -> None:
        self._scale(decision, 0.7, ActionType.START_CONVERSATION, ActionType.SOCIALIZE)

        if context.environment.crowded and not critical:
            quiet = _first(
                action
                for action in context.available_actions
                if action.target != "break_room" and action.mentions("quiet", "private")
            )
            if quiet is not None:
                duration = decision.action.duration if decision.action else 8000
                self._redirect(
                    decision, quiet.type, quiet.target, duration, "Introverted - seeking quieter environment"
                )

        if decision.include_dialogue and self.rng.random() < 0.5:
            decision.include_dialogue = False

    def _organized(self, decision: Decision, context: "DecisionContext", critical: bool) -> None:
        task = context.current_task
        if task and not critical and not (
            decision.action_type is ActionType.WORK_ON and decision.action.target == task
        ):
            self._redirect(
                decision,
                ActionType.WORK_ON,
                task,
                15000,
                "Organized - completing current task before starting new one",
            )

        if decision.action_type is ActionType.WORK_ON:
            decision.action.systematic = True
            self._scale(decision, 1.2)

        if decision.type is ResponseType.IDLE:
            tidy = _first(
                action
                for action in context.available_actions
                if action.mentions("organize", "clean", "arrange")
            )
            if tidy is not None:
                self._redirect(
                    decision, tidy.type, tidy.target, 10000, "Organized - maintaining workspace during free time"
                )

    def _chaotic(self, decision: Decision, context: "DecisionContext", critical: bool) -> None:
        if not critical and self.rng.random() < 0.2:
            candidates = [
                action
                for action in context.available_actions
                if action.type is not ActionType.WORK_ON or self.rng.random() < 0.3
            ]
            if candidates:
                pick = self.rng.choice(candidates)
                duration = int(self.rng.random() * 10000 + 3000)
                self._redirect(decision, pick.type, pick.target, duration, "Chaotic - random impulse decision")

        self._scale(decision, 0.8)
        if decision.action is not None:
            decision.action.abandon_chance = 0.15

    def _gossip(self, decision: Decision, context: "DecisionContext", critical: bool) -> None:
        if context.nearby_people:
            decision.include_dialogue = True
            decision.dialogue_intent = "gossip"

        if decision.action_type is ActionType.START_CONVERSATION:
            self._scale(decision, 1.3)
            decision.dialogue_intent = "information_seeking"

        stranger = _first(
            person for person in context.nearby_people if person.name not in context.known_people
        )
        if stranger is not None and not critical and self.rng.random() < 0.4:
            self._redirect(
                decision,
                ActionType.START_CONVERSATION,
                stranger.name,
                15000,
                "Gossip - seeking new information source",
            )
            decision.include_dialogue = True
            decision.dialogue_intent = "curious"

    def _professional(self, decision: Decision, context: "DecisionContext", critical: bool) -> None:
        if decision.include_dialogue:
            decision.dialogue_intent = "professional"

        if context.is_working_hours and not critical:
            work = _first(context.surroundings.actions_of(ActionType.WORK_ON))
            if work is not None:
                self._redirect(
                    decision,
                    ActionType.WORK_ON,
                    work.target,
                    15000,
                    "Professional - maintaining work focus during business hours",
                )
            if decision.dialogue_intent == "personal":
                decision.dialogue_intent = "professional"

        self._scale(decision, 0.9)
