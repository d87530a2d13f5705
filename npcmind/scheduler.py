"""
Request scheduler: the admission layer in front of the decision engine.

Requests wait in a priority queue (higher first, ties in arrival order).
Each ``tick`` processes at most one due request: it is routed either to the
local ``DecisionEngine`` or to an external provider, served from a short
response cache when possible, retried with exponential backoff on failure
and, after the final attempt, answered with a safe IDLE fallback. Callers
always receive ``(error, response)`` with a usable response.
"""

from __future__ import annotations

import asyncio
import inspect
import itertools
import math
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol, Tuple, Union

from pydantic import BaseModel, Field

from npcmind.agent import Agent, AgentRegistry
from npcmind.applier import ResponseApplier
from npcmind.config import DEFAULT_CONFIG, Config, EngineConfig
from npcmind.decision_engine import DecisionEngine
from npcmind.llm_utils import call_llm_with_retries
from npcmind.logging_utils import log_deterministic, log_error, log_info, log_llm, log_success
from npcmind.prompts import render_decision_prompt
from npcmind.schemas import (
    ActionType,
    Need,
    NeedLevel,
    Priority,
    ProviderDecision,
    ResponseAction,
    ResponseType,
    StandardizedResponse,
    Surroundings,
    default_duration,
    fallback_response,
)


# =============================
# Module-level Exceptions
# =============================


class MalformedRequestError(ValueError):
    """Raised for requests that can never be served (blank or unknown agent)."""

    def __init__(self, *, reason: str, agent_id: Optional[str] = None) -> None:
        self.reason = reason
        self.agent_id = agent_id
        who = f" for agent '{agent_id}'" if agent_id else ""
        super().__init__(
            f"Malformed decision request{who}: {reason}\n\n"
            "Remediation tips:\n"
            "  - Register the agent with the AgentRegistry before requesting decisions\n"
            "  - Pass a non-empty agent_id"
        )


class ProviderUnavailableError(Exception):
    """Raised when a request routes to an external provider that is not configured."""

    def __init__(self, *, agent_id: str, reason: str) -> None:
        self.agent_id = agent_id
        self.reason = reason
        super().__init__(
            f"External decision provider unavailable for '{agent_id}': {reason}\n\n"
            "Remediation tips:\n"
            "  - Pass external=LLMDecisionProvider(...) to the RequestScheduler\n"
            "  - Set LLM_PROVIDER, LLM_MODEL and the provider's API key\n"
            "  - Or set agent.uses_local_engine = True"
        )


class ProviderRateLimitedError(Exception):
    """Raised when the external provider is called again inside its cooldown."""

    def __init__(self, *, provider: str, retry_after_ms: int) -> None:
        self.provider = provider
        self.retry_after_ms = retry_after_ms
        super().__init__(
            f"Provider '{provider}' is cooling down; retry in {retry_after_ms}ms"
        )


class ActionRejectedError(Exception):
    """Raised (via the callback) when a response could not be applied to its agent."""

    def __init__(self, *, agent_id: str, action_type: Optional[str], reason: str) -> None:
        self.agent_id = agent_id
        self.action_type = action_type
        self.reason = reason
        super().__init__(
            f"{action_type or 'Response'} rejected for '{agent_id}': {reason}\n\n"
            "Remediation tips:\n"
            "  - MOVE_TO needs a target location\n"
            "  - START_CONVERSATION needs a registered target at the same location"
        )


# =============================
# Requests
# =============================


class DecisionRequest(BaseModel):
    """Inbound request for one agent decision."""

    agent_id: str
    prompt_text: str = ""
    priority: Optional[float] = Field(None, description="Higher is served first; defaults from config")
    api_provider: Optional[str] = None
    api_key: Optional[str] = None
    surroundings: Optional[Surroundings] = None


Callback = Callable[[Optional[Exception], StandardizedResponse], Union[None, Awaitable[None]]]


@dataclass
class QueueItem:
    id: str
    request: DecisionRequest
    callback: Callback
    priority: float
    sequence: int
    attempts: int = 0
    max_attempts: int = 3
    not_before: Optional[datetime] = None

    def is_due(self, now: datetime) -> bool:
        return self.not_before is None or now >= self.not_before


@dataclass
class SchedulerStats:
    total_requests: int = 0
    local_requests: int = 0
    external_requests: int = 0
    cache_hits: int = 0
    errors: int = 0
    fallbacks: int = 0
    completed_requests: int = 0
    average_latency_ms: float = 0.0
    last_latency_ms: Optional[float] = None
    queue_length: int = 0
    cache_size: int = 0

    @property
    def local_percentage(self) -> int:
        served = self.local_requests + self.external_requests
        return round(self.local_requests / served * 100) if served else 0


# =============================
# External provider
# =============================


class ExternalDecisionProvider(Protocol):
    async def decide(self, agent: Agent, request: DecisionRequest, *, now: datetime) -> StandardizedResponse:
        ...


class LLMDecisionProvider:
    """External provider backed by a structured mirascope call.

    Enforces a minimum interval between calls; a call inside the cooldown
    raises ``ProviderRateLimitedError`` (which the scheduler retries).
    """

    def __init__(
        self,
        *,
        llm_provider: Optional[str] = None,
        llm_model: Optional[str] = None,
        cooldown_ms: Optional[int] = None,
        max_attempts: int = 3,
        config: EngineConfig = DEFAULT_CONFIG,
    ) -> None:
        self.llm_provider = llm_provider or Config.LLM_PROVIDER
        self.llm_model = llm_model or Config.LLM_MODEL
        self.cooldown_ms = config.scheduler.external_cooldown_ms if cooldown_ms is None else cooldown_ms
        self.max_attempts = max_attempts
        self._last_call: Optional[datetime] = None

    async def decide(self, agent: Agent, request: DecisionRequest, *, now: datetime) -> StandardizedResponse:
        provider = request.api_provider or self.llm_provider
        if self._last_call is not None:
            elapsed_ms = (now - self._last_call).total_seconds() * 1000
            if elapsed_ms < self.cooldown_ms:
                raise ProviderRateLimitedError(
                    provider=provider, retry_after_ms=math.ceil(self.cooldown_ms - elapsed_ms)
                )
        self._last_call = now

        prompt = render_decision_prompt(agent, request.surroundings, prompt_text=request.prompt_text, now=now)
        log_llm(f"Requesting decision for {agent.name} from {provider}/{self.llm_model}")
        result = await call_llm_with_retries(
            system_prompt=prompt.system,
            user_prompt=prompt.user,
            llm_provider=provider,
            llm_model=self.llm_model,
            response_model=ProviderDecision,
            max_attempts=self.max_attempts,
        )
        return self.to_response(result, agent.id, now=now)

    @staticmethod
    def to_response(decision: ProviderDecision, character_id: str, *, now: datetime) -> StandardizedResponse:
        action: Optional[ResponseAction] = None
        if decision.response_type is ResponseType.ACTION:
            raw_type = (decision.action_type or ActionType.IDLE.value).strip().upper()
            parsed = ActionType.parse(raw_type)
            action = ResponseAction(
                type=raw_type,
                target=decision.target,
                duration=decision.duration_ms or default_duration(parsed),
                priority=Priority.MEDIUM,
            )
        elif decision.response_type is ResponseType.IDLE:
            action = ResponseAction(
                type=ActionType.IDLE.value,
                duration=decision.duration_ms or default_duration(ActionType.IDLE),
                priority=Priority.LOW,
            )
        return StandardizedResponse(
            response_type=decision.response_type,
            character_id=character_id,
            timestamp=now,
            source="external_provider",
            action=action,
            content=decision.content,
            thought=decision.thought or None,
        )


# =============================
# Scheduler
# =============================

CACHEABLE_ACTIONS = frozenset(
    {ActionType.IDLE.value, ActionType.WORK_ON.value, ActionType.DRINK_COFFEE.value, ActionType.EAT_SNACK.value}
)

CacheKey = Tuple[Any, ...]


class RequestScheduler:
    """Priority queue of decision requests with routing, caching and retries."""

    def __init__(
        self,
        engine: DecisionEngine,
        registry: AgentRegistry,
        config: EngineConfig = DEFAULT_CONFIG,
        *,
        external: Optional[ExternalDecisionProvider] = None,
        applier: Optional[ResponseApplier] = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.engine = engine
        self.registry = registry
        self.config = config
        self.external = external
        self.applier = applier
        self.clock = clock
        self._queue: List[QueueItem] = []
        self._sequence = itertools.count()
        self._cache: Dict[CacheKey, Tuple[datetime, StandardizedResponse]] = {}
        self._stats = SchedulerStats()

    # ------------------------------------------------------------------
    # Queue
    # ------------------------------------------------------------------

    def enqueue(self, request: DecisionRequest, callback: Callback) -> QueueItem:
        if not request.agent_id or not request.agent_id.strip():
            raise MalformedRequestError(reason="agent_id is empty")

        sequence = next(self._sequence)
        settings = self.config.scheduler
        item = QueueItem(
            id=f"req_{sequence}",
            request=request,
            callback=callback,
            priority=settings.default_priority if request.priority is None else request.priority,
            sequence=sequence,
            max_attempts=settings.max_attempts,
        )
        self._insert(item)
        self._stats.total_requests += 1
        log_info(
            f"Queued decision for {request.agent_id} (priority {item.priority:g}, queue size {len(self._queue)})"
        )
        return item

    def _insert(self, item: QueueItem) -> None:
        # After every item of equal or higher priority.
        index = next(
            (position for position, queued in enumerate(self._queue) if queued.priority < item.priority),
            len(self._queue),
        )
        self._queue.insert(index, item)

    def pending(self) -> List[QueueItem]:
        return list(self._queue)

    def __len__(self) -> int:
        return len(self._queue)

    def _pop_due(self, now: datetime) -> Optional[QueueItem]:
        for position, item in enumerate(self._queue):
            if item.is_due(now):
                return self._queue.pop(position)
        return None

    # ------------------------------------------------------------------
    # Routing and cache
    # ------------------------------------------------------------------

    @staticmethod
    def route(agent: Agent, request: DecisionRequest) -> str:
        """``local`` or ``external`` for this agent and request."""

        if agent.uses_local_engine is not None:
            return "local" if agent.uses_local_engine else "external"
        if not (request.api_key or agent.api_key):
            return "local"
        if agent.is_player:
            return "external"
        return "local"

    def cache_key(self, agent: Agent, request: DecisionRequest, now: datetime) -> CacheKey:
        needs = agent.needs
        model = self.engine.needs_model
        critical = tuple(
            need.value for need in Need if model.level(need, needs.value(need)) is NeedLevel.CRITICAL
        )
        location = request.surroundings.location if request.surroundings is not None else agent.location
        return (
            agent.id,
            location,
            math.floor(needs.energy),
            math.floor(needs.hunger),
            math.floor(needs.social),
            critical,
            now.hour // 4,
        )

    def _cached(self, key: CacheKey, now: datetime) -> Optional[StandardizedResponse]:
        self._purge(now)
        entry = self._cache.get(key)
        if entry is None:
            return None
        return entry[1].model_copy(update={"timestamp": now})

    def _purge(self, now: datetime) -> None:
        limit = timedelta(milliseconds=self.config.scheduler.cache_timeout_ms)
        expired = [key for key, (stored, _) in self._cache.items() if now - stored >= limit]
        for key in expired:
            del self._cache[key]

    @staticmethod
    def is_cacheable(response: StandardizedResponse) -> bool:
        if response.is_fallback or response.action is None:
            return False
        return response.action.type in CACHEABLE_ACTIONS

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------

    async def tick(self, *, now: Optional[datetime] = None) -> Optional[QueueItem]:
        """Process at most one due request. Returns the item handled, if any."""

        now = now or self.clock()
        item = self._pop_due(now)
        if item is None:
            return None

        request = item.request
        agent = self.registry.get(request.agent_id)
        if agent is None:
            self._stats.errors += 1
            error = MalformedRequestError(reason="agent is not registered", agent_id=request.agent_id)
            log_error(f"Dropping request {item.id}: unknown agent '{request.agent_id}'")
            await self._deliver(item, error, self._fallback(request.agent_id, now), None, now)
            return item

        key = self.cache_key(agent, request, now)
        cached = self._cached(key, now)
        if cached is not None:
            self._stats.cache_hits += 1
            log_info(f"Using cached decision for {agent.name}")
            await self._deliver(item, None, cached, agent, now)
            return item

        started = time.perf_counter()
        try:
            response = await self._dispatch(agent, request, now)
        except Exception as exc:
            await self._fail(item, exc, now)
            return item
        self._record_latency((time.perf_counter() - started) * 1000)

        if self.is_cacheable(response):
            self._cache[key] = (now, response)
        await self._deliver(item, None, response, agent, now)
        return item

    async def _dispatch(self, agent: Agent, request: DecisionRequest, now: datetime) -> StandardizedResponse:
        if self.route(agent, request) == "external":
            if self.external is None:
                raise ProviderUnavailableError(agent_id=agent.id, reason="no external provider configured")
            self._stats.external_requests += 1
            return await self.external.decide(agent, request, now=now)

        self._stats.local_requests += 1
        return self.engine.respond(agent, request.surroundings, prompt_text=request.prompt_text, now=now)

    async def _fail(self, item: QueueItem, error: Exception, now: datetime) -> None:
        self._stats.errors += 1
        item.attempts += 1
        settings = self.config.scheduler
        if item.attempts < item.max_attempts:
            delay_ms = settings.backoff_base_ms * 2 ** item.attempts
            item.not_before = now + timedelta(milliseconds=delay_ms)
            item.priority = max(settings.min_retry_priority, item.priority - 1)
            self._insert(item)
            log_error(
                f"Decision for {item.request.agent_id} failed ({error.__class__.__name__}); "
                f"retry {item.attempts}/{item.max_attempts} in {delay_ms}ms"
            )
            return

        self._stats.fallbacks += 1
        log_error(
            f"Max retry attempts reached for {item.request.agent_id}; using fallback response"
        )
        await self._deliver(item, error, self._fallback(item.request.agent_id, now), None, now)

    @staticmethod
    def _fallback(agent_id: str, now: datetime) -> StandardizedResponse:
        return fallback_response(agent_id, timestamp=now)

    async def _deliver(
        self,
        item: QueueItem,
        error: Optional[Exception],
        response: StandardizedResponse,
        agent: Optional[Agent],
        now: datetime,
    ) -> None:
        if error is None and agent is not None and self.applier is not None:
            result = self.applier.apply(agent, response, now=now)
            if not result.success:
                error = ActionRejectedError(
                    agent_id=agent.id,
                    action_type=response.action.type if response.action else None,
                    reason=result.reason or "rejected",
                )
            elif response.source != "fallback":
                log_success(f"{agent.name}: {result.status} {result.action.type if result.action else 'dialogue'}")

        try:
            outcome = item.callback(error, response)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as exc:
            log_error(f"Callback for {item.request.agent_id} raised: {exc}")

    def _record_latency(self, latency_ms: float) -> None:
        stats = self._stats
        stats.completed_requests += 1
        stats.last_latency_ms = latency_ms
        stats.average_latency_ms += (latency_ms - stats.average_latency_ms) / stats.completed_requests

    # ------------------------------------------------------------------
    # Loop and stats
    # ------------------------------------------------------------------

    async def run(self, stop_event: asyncio.Event) -> None:
        """Tick every ``decision.frequency_ms`` until ``stop_event`` is set."""

        interval = self.config.decision.frequency_ms / 1000
        log_deterministic(f"Request scheduler running every {interval:g}s")
        while not stop_event.is_set():
            await self.tick()
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                continue

    def stats(self) -> SchedulerStats:
        snapshot = SchedulerStats(**{name: getattr(self._stats, name) for name in SchedulerStats.__dataclass_fields__})
        snapshot.queue_length = len(self._queue)
        snapshot.cache_size = len(self._cache)
        return snapshot

    def reset(self) -> None:
        self._queue.clear()
        self._cache.clear()
        self._stats = SchedulerStats()
