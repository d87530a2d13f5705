"""Apply standardized responses to agent state.

Validation happens before anything is touched; a rejected action leaves the
agent exactly as it was. Execution marks the agent busy until an explicit
``busy_until`` deadline, applies the action's need deltas and records a
memory. ``tick`` is what eventually clears the busy flag and starts the next
queued action.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from npcmind.agent import Agent, AgentRegistry
from npcmind.config import DEFAULT_CONFIG, EngineConfig
from npcmind.logging_utils import log_error, log_info, log_success
from npcmind.needs import NeedsModel
from npcmind.schemas import (
    ActionType,
    Priority,
    ResponseAction,
    ResponseType,
    StandardizedResponse,
    default_duration,
)


@dataclass(frozen=True)
class ApplyResult:
    """What happened to one response."""

    status: str  # executed, queued, spoken, rejected
    action: Optional[ResponseAction] = None
    reason: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.status != "rejected"


class ResponseApplier:
    """Validate and execute responses with per-agent busy/queue semantics."""

    def __init__(
        self,
        config: EngineConfig = DEFAULT_CONFIG,
        *,
        registry: Optional[AgentRegistry] = None,
        needs_model: Optional[NeedsModel] = None,
    ) -> None:
        self.config = config
        self.registry = registry or AgentRegistry()
        self.needs_model = needs_model or NeedsModel(config)

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    @staticmethod
    def validate_response(response: StandardizedResponse) -> Optional[str]:
        if response.response_type is ResponseType.ACTION and response.action is None:
            return "ACTION response carries no action"
        if response.response_type is ResponseType.DIALOGUE and not (response.content or "").strip():
            return "DIALOGUE response carries no content"
        return None

    def validate_action(self, agent: Agent, action: ResponseAction) -> Optional[str]:
        """Return why ``action`` cannot run for ``agent``, or ``None`` if it can."""

        if action.duration < 0:
            return f"Negative duration {action.duration}ms"
        match ActionType.parse(action.type):
            case ActionType.MOVE_TO:
                if not action.target:
                    return "MOVE_TO requires a target location"
            case ActionType.START_CONVERSATION:
                if not action.target:
                    return "START_CONVERSATION requires a target agent"
                other = self.registry.resolve(action.target)
                if other is None:
                    return f"Conversation target '{action.target}' not found"
                if other.id == agent.id:
                    return "An agent cannot start a conversation with itself"
                if other.location != agent.location:
                    return f"{other.name} is not at {agent.location or 'the same location'}"
            case _:
                pass
        return None

    # ------------------------------------------------------------------
    # Apply
    # ------------------------------------------------------------------

    def apply(self, agent: Agent, response: StandardizedResponse, *, now: datetime) -> ApplyResult:
        problem = self.validate_response(response)
        if problem:
            log_error(f"Rejected response for {agent.name}: {problem}")
            return ApplyResult(status="rejected", reason=problem)

        if response.response_type is ResponseType.DIALOGUE:
            self.say(agent, response.content or "", now=now)
            agent.needs.social = agent.needs.social + 0.5
            return ApplyResult(status="spoken")

        action = response.action or ResponseAction(
            type=ActionType.IDLE.value,
            duration=default_duration(ActionType.IDLE),
            priority=Priority.LOW,
        )
        problem = self.validate_action(agent, action)
        if problem:
            log_error(f"Rejected {action.type} for {agent.name}: {problem}")
            return ApplyResult(status="rejected", action=action, reason=problem)

        if response.content:
            self.say(agent, response.content, now=now)

        if agent.is_busy and action.priority is not Priority.CRITICAL:
            agent.action_queue.append(action)
            log_info(f"{agent.name} is busy; queued {action.type} ({len(agent.action_queue)} waiting)")
            return ApplyResult(status="queued", action=action)

        if agent.is_busy and agent.current_action is not None:
            agent.memory.append(
                f"Interrupted {agent.current_action.type.lower()} for something urgent",
                timestamp=now,
                magnitude=3,
            )
            log_info(f"{agent.name}: critical {action.type} pre-empts {agent.current_action.type}")

        return self.execute(agent, action, now=now)

    def say(self, agent: Agent, content: str, *, now: datetime) -> None:
        agent.memory.append(f'Said: "{content}"', timestamp=now, magnitude=1)

    def execute(self, agent: Agent, action: ResponseAction, *, now: datetime) -> ApplyResult:
        """Run ``action`` now; a failing processor degrades to IDLE."""

        action_type = ActionType.parse(action.type)
        if action_type is None:
            log_error(f"Unknown action type '{action.type}' for {agent.name}; treating as IDLE")
            action_type = ActionType.IDLE

        try:
            self._process(agent, action_type, action, now=now)
        except Exception as exc:
            log_error(f"{action.type} failed for {agent.name}: {exc}; falling back to IDLE")
            action_type = ActionType.IDLE
            action = ResponseAction(
                type=ActionType.IDLE.value,
                duration=default_duration(ActionType.IDLE),
                priority=action.priority,
            )
            self._process(agent, action_type, action, now=now)

        agent.is_busy = True
        agent.current_action = action
        agent.busy_until = now + timedelta(milliseconds=action.duration)
        self.needs_model.apply_action(agent.needs, action_type)
        return ApplyResult(status="executed", action=action)

    def _process(self, agent: Agent, action_type: ActionType, action: ResponseAction, *, now: datetime) -> None:
        match action_type:
            case ActionType.MOVE_TO:
                self._on_move(agent, action, now=now)
            case ActionType.START_CONVERSATION:
                self._on_conversation(agent, action, now=now)
            case ActionType.WORK_ON:
                agent.memory.append(
                    f"Started working on {action.target or 'my tasks'}",
                    timestamp=now,
                    magnitude=2,
                    target=action.target,
                )
            case ActionType.DRINK_COFFEE:
                agent.memory.append("Drank some coffee and felt energized", timestamp=now, magnitude=1)
            case ActionType.EAT_SNACK:
                agent.memory.append("Ate a snack and felt satisfied", timestamp=now, magnitude=1)
            case ActionType.SOCIALIZE:
                agent.memory.append(
                    f"Chatted with people at {agent.location or 'the office'}",
                    timestamp=now,
                    magnitude=2,
                )
            case ActionType.IDLE:
                agent.memory.append("Paused to relax for a moment", timestamp=now, magnitude=0)

    def _on_move(self, agent: Agent, action: ResponseAction, *, now: datetime) -> None:
        origin = agent.location
        agent.location = action.target or origin
        agent.memory.append(
            f"Walked from {origin or 'somewhere'} to {agent.location}",
            timestamp=now,
            magnitude=1,
            target=agent.location,
        )

    def _on_conversation(self, agent: Agent, action: ResponseAction, *, now: datetime) -> None:
        other = self.registry.resolve(action.target or "")
        if other is None:
            raise LookupError(f"Conversation target '{action.target}' disappeared")
        agent.memory.append(
            f"Started a conversation with {other.name}",
            timestamp=now,
            magnitude=3,
            actor_id=other.id,
            target=other.name,
        )
        other.memory.append(
            f"{agent.name} started a conversation with me",
            timestamp=now,
            magnitude=3,
            actor_id=agent.id,
            target=agent.name,
        )

    # ------------------------------------------------------------------
    # Completion
    # ------------------------------------------------------------------

    def tick(self, agent: Agent, *, now: datetime) -> Optional[ResponseAction]:
        """Finish the current action once its deadline has passed.

        Returns the completed action. Exactly one queued action (if any) is
        started in its place.
        """

        if not agent.is_due(now):
            return None

        finished = agent.current_action
        agent.is_busy = False
        agent.current_action = None
        agent.busy_until = None

        if finished is not None:
            agent.memory.append(
                f"Finished {finished.type.lower().replace('_', ' ')}"
                + (f" ({finished.target})" if finished.target else ""),
                timestamp=now,
                magnitude=1,
                target=finished.target,
            )
            log_success(f"{agent.name} completed {finished.type}")

        if agent.action_queue:
            queued = agent.action_queue.popleft()
            problem = self.validate_action(agent, queued)
            if problem:
                log_error(f"Dropped queued {queued.type} for {agent.name}: {problem}")
            else:
                self.execute(agent, queued, now=now)
        return finished
