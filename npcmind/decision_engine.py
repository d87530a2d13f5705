"""
Rule-based decision engine.

``DecisionEngine.evaluate`` walks five tiers in strict order and returns the
first match:

1. critical needs  - satisfy an energy, hunger or stress emergency
2. task assignment - work during office hours or on urgent tasks
3. social needs    - find someone to talk to when lonely
4. routine         - follow the active time-of-day routine
5. idle            - always succeeds

``decide`` runs the tier result through the personality model, the prompt
trigger pass and dialogue composition. ``respond`` wraps all of that into
the ``StandardizedResponse`` the request scheduler delivers.
"""

from __future__ import annotations

import random
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from npcmind.agent import Agent, AgentRegistry
from npcmind.config import DEFAULT_CONFIG, EngineConfig
from npcmind.context import DecisionContext, build_decision_context
from npcmind.context_analyzer import ContextAnalyzer
from npcmind.dialogue import GENERAL_POOL, DialogueRouter
from npcmind.logging_utils import log_deterministic
from npcmind.memory import PatternExtractor, action_category
from npcmind.needs import NeedsModel
from npcmind.personality import PersonalityModel
from npcmind.routines import RoutineScheduler
from npcmind.schemas import (
    ActionType,
    AvailableAction,
    Decision,
    DecisionAction,
    Need,
    Priority,
    ResponseAction,
    ResponseType,
    StandardizedResponse,
    Surroundings,
    Trait,
)
from npcmind.social import SocialGraph
from npcmind.triggers import TriggerAnalysis, analyze_triggers, apply_triggers


TIER_PRIORITIES: Dict[str, Priority] = {
    "critical_needs": Priority.CRITICAL,
    "task_assignment": Priority.HIGH,
    "social_needs": Priority.MEDIUM,
    "routine": Priority.LOW,
    "idle": Priority.LOW,
}

ACTION_LINES: Dict[ActionType, Tuple[str, ...]] = {
    ActionType.WORK_ON: (
        "Time to get this done.",
        "Let's tackle this project.",
        "Focus time.",
        "Back to work.",
        "Another day, another task.",
    ),
    ActionType.DRINK_COFFEE: (
        "Ah, sweet caffeine.",
        "This should help.",
        "Coffee saves the day again.",
        "Much needed fuel.",
        "Mmm, perfect.",
    ),
    ActionType.EAT_SNACK: (
        "Just what I needed.",
        "Fuel for the afternoon.",
        "Quick energy boost.",
        "Time for a bite.",
        "Perfect timing.",
    ),
    ActionType.MOVE_TO: (
        "Time to head over there.",
        "Let's see what's happening.",
        "Making my way over.",
        "Quick trip.",
        "Off I go.",
    ),
    ActionType.IDLE: (
        "Just taking a moment.",
        "Quick breather.",
        "Gathering my thoughts.",
        "Moment of zen.",
        "Pause and reset.",
    ),
}

BREAK_AREAS = ("break_room", "kitchen")
SOCIAL_AREAS = ("break_room", "lounge")


def _find(
    actions: List[AvailableAction],
    *types: ActionType,
    targets: Tuple[str, ...] = (),
    words: Tuple[str, ...] = (),
) -> List[AvailableAction]:
    return [
        action
        for action in actions
        if action.type in types or action.target in targets or (words and action.mentions(*words))
    ]


class DecisionEngine:
    """Combine needs, personality, memory, routines and company into one Decision."""

    def __init__(
        self,
        config: EngineConfig = DEFAULT_CONFIG,
        *,
        rng: Optional[random.Random] = None,
        registry: Optional[AgentRegistry] = None,
        needs_model: Optional[NeedsModel] = None,
        personality: Optional[PersonalityModel] = None,
        analyzer: Optional[ContextAnalyzer] = None,
        extractor: Optional[PatternExtractor] = None,
        social_graph: Optional[SocialGraph] = None,
        routines: Optional[RoutineScheduler] = None,
        dialogue: Optional[DialogueRouter] = None,
    ) -> None:
        self.config = config
        self.rng = rng or random.Random()
        self.registry = registry
        self.needs_model = needs_model or NeedsModel(config)
        self.personality = personality or PersonalityModel(config, rng=self.rng)
        self.analyzer = analyzer or ContextAnalyzer(config)
        self.extractor = extractor or PatternExtractor(config)
        self.social_graph = social_graph or SocialGraph(config, registry=registry)
        self.routines = routines or RoutineScheduler(config, rng=self.rng)
        self.dialogue = dialogue or DialogueRouter(config, rng=self.rng)

    def build_context(
        self,
        agent: Agent,
        surroundings: Surroundings,
        *,
        now: datetime,
        prompt_text: str = "",
    ) -> DecisionContext:
        return build_decision_context(
            agent,
            surroundings,
            now=now,
            needs_model=self.needs_model,
            personality=self.personality,
            analyzer=self.analyzer,
            extractor=self.extractor,
            social_graph=self.social_graph,
            routines=self.routines,
            prompt_text=prompt_text,
        )

    # ------------------------------------------------------------------
    # Tiers
    # ------------------------------------------------------------------

    def evaluate(self, context: DecisionContext) -> Decision:
        """Return the first tier that produces a decision. Never returns ``None``."""

        tiers = (
            ("critical_needs", self._critical_needs),
            ("task_assignment", self._task_assignment),
            ("social_needs", self._social_needs),
            ("routine", self._routine),
        )
        for source, tier in tiers:
            result = tier(context)
            if result is not None:
                action, reason = result
                return Decision(
                    type=ResponseType.ACTION,
                    action=action,
                    priority=TIER_PRIORITIES[source],
                    source=source,
                    reasoning=[reason],
                    include_dialogue=action.type.is_social,
                )
        return self._idle()

    def _critical_needs(self, ctx: DecisionContext) -> Optional[Tuple[DecisionAction, str]]:
        critical = ctx.needs_priority.critical
        if not critical:
            return None

        actions = ctx.available_actions
        weights = ctx.needs_priority.weightings
        for need in sorted(critical, key=lambda item: weights.get(item, 0.0), reverse=True):
            if need is Need.ENERGY:
                coffee = _find(actions, ActionType.DRINK_COFFEE, targets=("coffee_machine",), words=("coffee",))
                if coffee:
                    pick = self.needs_model.suggest_optimal_action(ctx.needs, coffee) or coffee[0]
                    return (
                        DecisionAction(type=pick.type, target=pick.target, duration=8000),
                        f"Critical energy level ({ctx.needs.energy:g}) - seeking coffee",
                    )
                move = [
                    action
                    for action in actions
                    if action.type is ActionType.MOVE_TO and action.target in BREAK_AREAS
                ]
                if move:
                    return (
                        DecisionAction(type=ActionType.MOVE_TO, target=move[0].target, duration=10000),
                        f"Critical energy level ({ctx.needs.energy:g}) - heading to break room",
                    )
            elif need is Need.HUNGER:
                food = _find(actions, ActionType.EAT_SNACK, words=("snack", "food"))
                if food:
                    pick = self.needs_model.suggest_optimal_action(ctx.needs, food) or food[0]
                    return (
                        DecisionAction(type=pick.type, target=pick.target, duration=10000),
                        f"Critical hunger level ({ctx.needs.hunger:g}) - seeking food",
                    )
            elif need is Need.STRESS:
                if _find(actions, ActionType.IDLE, words=("relax", "break")):
                    return (
                        DecisionAction(type=ActionType.IDLE, duration=15000),
                        f"Critical stress level ({ctx.needs.stress:g}) - taking a break",
                    )
        return None

    def _task_assignment(self, ctx: DecisionContext) -> Optional[Tuple[DecisionAction, str]]:
        surroundings = ctx.surroundings
        urgent = any(task.urgent for task in surroundings.tasks) or bool(
            surroundings.current_task and surroundings.current_task.urgent
        )
        if not ctx.is_working_hours and not urgent:
            return None

        work = _find(ctx.available_actions, ActionType.WORK_ON, words=("work", "task"))
        if not work:
            return None

        lazy = ctx.has_trait(Trait.LAZY)
        if lazy and ctx.needs.energy < 6:
            log_deterministic(f"{ctx.name} (lazy) avoiding work due to low energy")
            return None

        selected = work[0]
        if ctx.has_trait(Trait.ORGANIZED):
            planned = [action for action in work if action.mentions("organize", "plan")]
            selected = planned[0] if planned else selected

        if ctx.has_trait(Trait.AMBITIOUS):
            duration, manner = 20000, "ambitiously"
        elif lazy:
            duration, manner = 10000, "reluctantly"
        else:
            duration, manner = 15000, "normally"
        duration = round(duration * self.extractor.influence(ActionType.WORK_ON, ctx.memory_patterns))

        return (
            DecisionAction(type=selected.type, target=selected.target, duration=duration),
            f"Working on assigned task - {manner}",
        )

    def _social_needs(self, ctx: DecisionContext) -> Optional[Tuple[DecisionAction, str]]:
        if ctx.needs.social > self.config.needs.low:
            return None
        if ctx.has_trait(Trait.INTROVERTED) and ctx.environment.crowded:
            log_deterministic(f"{ctx.name} (introverted) avoiding crowded area")
            return None

        blocked = {
            barrier.target
            for barrier in ctx.social.barriers
            if barrier.target and "start_conversation" in barrier.affected_actions
        }
        partners = [
            person
            for person in ctx.nearby_people
            if person.id != ctx.agent_id
            and person.name != ctx.name
            and person.distance <= self.config.social.conversation_distance
            and person.name not in blocked
            and not ctx.memory_patterns.avoids_person(person.name)
        ]

        if not partners:
            if not ctx.has_trait(Trait.EXTROVERTED):
                return None
            moves = [
                action
                for action in ctx.available_actions
                if action.type is ActionType.MOVE_TO
                and (action.target in SOCIAL_AREAS or action.mentions("social"))
            ]
            if not moves:
                return None
            return (
                DecisionAction(type=ActionType.MOVE_TO, target=moves[0].target, duration=10000),
                "Seeking social interaction - moving to social area",
            )

        partner = partners[0]
        if ctx.has_trait(Trait.GOSSIP):
            known = [person for person in partners if person.name in ctx.known_people]
            partner = known[0] if known else partner

        if not _find(ctx.available_actions, ActionType.START_CONVERSATION, words=("talk", "conversation")):
            return None

        if ctx.has_trait(Trait.EXTROVERTED):
            duration = 15000
        elif ctx.has_trait(Trait.INTROVERTED):
            duration = 5000
        else:
            duration = 10000
        return (
            DecisionAction(type=ActionType.START_CONVERSATION, target=partner.name, duration=duration),
            f"Social need ({ctx.needs.social:g}) - starting conversation with {partner.name}",
        )

    def _routine(self, ctx: DecisionContext) -> Optional[Tuple[DecisionAction, str]]:
        if ctx.routine_interrupted or ctx.routine_action is None:
            return None
        step = ctx.routine_action
        return (
            DecisionAction(type=step.type, target=step.target, duration=step.duration),
            step.reasoning,
        )

    def _idle(self) -> Decision:
        return Decision(
            type=ResponseType.IDLE,
            action=DecisionAction(type=ActionType.IDLE, duration=self.config.decision.idle_duration_ms),
            priority=Priority.LOW,
            source="idle",
            reasoning=["Nothing pressing - idling"],
        )

    # ------------------------------------------------------------------
    # Full pipeline
    # ------------------------------------------------------------------

    def decide(self, context: DecisionContext, *, agent: Optional[Agent] = None) -> Decision:
        """Tier evaluation, personality, triggers and dialogue."""

        base = self.evaluate(context)
        decision = self.personality.modify_decision(base, context)

        triggers = analyze_triggers(context.prompt_text)
        decision = apply_triggers(decision, triggers)

        decision.reasoning.insert(0, self.needs_model.explain(context.needs_priority))

        speaker = agent
        if speaker is None and self.registry is not None:
            speaker = self.registry.get(context.agent_id)
        if speaker is not None and self.dialogue.requires_dialogue(decision):
            decision.include_dialogue = True
            decision.dialogue, decision.dialogue_pool = self._compose_dialogue(decision, context, triggers, speaker)
            decision.reasoning.append(f"Dialogue routed to: {decision.dialogue_pool}")
        return decision

    def _dialogue_context(self, decision: Decision, ctx: DecisionContext) -> Dict[str, object]:
        return {
            "location": ctx.location,
            "intent": decision.dialogue_intent or "casual_chat",
            "tone": self.personality.dialogue_tone(ctx.traits),
            "target": decision.action.target if decision.action and decision.action.target else "",
            "time_period": ctx.environment.time.period,
        }

    def _compose_dialogue(
        self,
        decision: Decision,
        ctx: DecisionContext,
        triggers: TriggerAnalysis,
        speaker: Agent,
    ) -> Tuple[str, str]:
        payload = self._dialogue_context(decision, ctx)
        action_type = decision.action_type

        if action_type is not None and action_type.is_social:
            if triggers.primary is not None:
                message = "Let's talk about " + " ".join(triggers.primary.matches)
            else:
                message = "How's everyone doing?"
            thread = None
            partner = next(
                (person for person in ctx.nearby_people if person.name == decision.action.target),
                None,
            )
            if partner is not None:
                thread = self.dialogue.thread(ctx.agent_id, partner.id, now=ctx.now)
            routed = self.dialogue.route(message, speaker, payload, thread=thread, preferred=decision.dialogue_pool)
            if thread is not None:
                self.dialogue.record_turn(thread, speaker.name, routed.text, now=ctx.now, pool=routed.pool)
            return routed.text, routed.pool

        lines = ACTION_LINES.get(action_type or ActionType.IDLE, ACTION_LINES[ActionType.IDLE])
        line = self.rng.choice(lines)
        if triggers.detected:
            action_name = action_type.value if action_type else ActionType.IDLE.value
            routed = self.dialogue.route(f"{action_name} {line}", speaker, payload, preferred=decision.dialogue_pool)
            if routed.pool != GENERAL_POOL and len(routed.text) > len(line):
                return routed.text, routed.pool
        return line, GENERAL_POOL

    # ------------------------------------------------------------------
    # Provider entry point
    # ------------------------------------------------------------------

    def respond(
        self,
        agent: Agent,
        surroundings: Optional[Surroundings] = None,
        *,
        prompt_text: str = "",
        now: datetime,
    ) -> StandardizedResponse:
        """Decide for ``agent`` and return the standard response shape."""

        surroundings = surroundings or Surroundings(location=agent.location)
        context = self.build_context(agent, surroundings, now=now, prompt_text=prompt_text)
        decision = self.decide(context, agent=agent)

        if context.routine is not None:
            if context.routine_interrupted:
                self.routines.record(agent, context.routine.active.name, completed=False)
            elif decision.source == "routine" and context.routine_action is not None:
                self.routines.record(
                    agent,
                    context.routine_action.routine,
                    completed=True,
                    duration_ms=decision.action.duration if decision.action else 0,
                )

        action_name = decision.action_type.value if decision.action_type else "NONE"
        category = action_category(decision.action_type) if decision.action_type else "idle"
        log_deterministic(
            f"{agent.name}: {action_name} ({category}) via {decision.source} [{decision.priority.value}]"
        )
        return self.to_response(decision, agent.id, now=now)

    @staticmethod
    def to_response(decision: Decision, character_id: str, *, now: datetime) -> StandardizedResponse:
        action = None
        if decision.action is not None:
            action = ResponseAction(
                type=decision.action.type.value,
                target=decision.action.target,
                duration=decision.action.duration,
                priority=decision.priority,
            )
        return StandardizedResponse(
            response_type=decision.type,
            character_id=character_id,
            timestamp=now,
            source=decision.source,
            action=action,
            content=decision.dialogue,
            thought=decision.reasoning_text(),
            dialogue_pool=decision.dialogue_pool,
        )
