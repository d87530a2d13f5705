"""
Thin wiring object around the engine components.

``NPCRuntime`` owns one ``AgentRegistry`` and builds the decision engine,
response applier and request scheduler on top of it, all sharing a single
random source. A host game calls ``request_decision`` whenever an agent
needs something to do and ``tick`` from its own loop; ``run`` is a minimal
asyncio loop for headless use.
"""

from __future__ import annotations

import asyncio
import inspect
import random
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Mapping, Optional

from npcmind.agent import Agent, AgentRegistry
from npcmind.applier import ResponseApplier
from npcmind.config import DEFAULT_CONFIG, Config, EngineConfig
from npcmind.decision_engine import DecisionEngine
from npcmind.dialogue import DialogueProvider, DialogueRouter
from npcmind.logging_utils import log_error, log_info, log_success
from npcmind.memory import MemoryConsolidator
from npcmind.needs import NeedsModel
from npcmind.scheduler import (
    Callback,
    DecisionRequest,
    ExternalDecisionProvider,
    QueueItem,
    RequestScheduler,
    SchedulerStats,
)
from npcmind.schemas import ResponseAction, StandardizedResponse, Surroundings


@dataclass
class TickReport:
    """What one runtime tick did."""

    now: datetime
    processed: Optional[str] = None
    completed: Dict[str, ResponseAction] = field(default_factory=dict)
    consolidated: Dict[str, str] = field(default_factory=dict)
    threads_closed: int = 0


TickListener = Callable[[TickReport], None]


class NPCRuntime:
    """Registry plus engine, applier and scheduler, driven by ``tick``.

    All dependencies are optional; defaults give a fully local engine.
    """

    def __init__(
        self,
        config: EngineConfig = DEFAULT_CONFIG,
        *,
        agents: Optional[List[Agent]] = None,
        rng: Optional[random.Random] = None,
        external: Optional[ExternalDecisionProvider] = None,
        dialogue_providers: Optional[Mapping[str, DialogueProvider]] = None,
        consolidator: Optional[MemoryConsolidator] = None,
        consolidation_interval: int = 10,
        tick_listeners: Optional[List[TickListener]] = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.config = config
        if rng is None:
            rng = random.Random(Config.RANDOM_SEED) if Config.RANDOM_SEED else random.Random()
        self.rng = rng
        self.clock = clock

        self.registry = AgentRegistry(agents)
        self.needs_model = NeedsModel(config)
        self.dialogue = DialogueRouter(config, providers=dialogue_providers, rng=rng)
        self.engine = DecisionEngine(
            config,
            rng=rng,
            registry=self.registry,
            needs_model=self.needs_model,
            dialogue=self.dialogue,
        )
        self.applier = ResponseApplier(config, registry=self.registry, needs_model=self.needs_model)
        self.scheduler = RequestScheduler(
            self.engine,
            self.registry,
            config,
            external=external,
            applier=self.applier,
            clock=clock,
        )

        # Consolidation is optional; it needs an async summarizer.
        self.consolidator = consolidator
        self.consolidation_interval = max(1, consolidation_interval)

        self.tick_listeners = tick_listeners or []
        self.last_responses: Dict[str, StandardizedResponse] = {}
        self.tick_count = 0
        self._last_tick: Optional[datetime] = None

    # ------------------------------------------------------------------
    # Agents and requests
    # ------------------------------------------------------------------

    def add_agent(self, agent: Agent) -> Agent:
        return self.registry.register(agent)

    def remove_agent(self, agent_id: str) -> Optional[Agent]:
        return self.registry.remove(agent_id)

    def request_decision(
        self,
        agent_id: str,
        *,
        prompt_text: str = "",
        priority: Optional[float] = None,
        surroundings: Optional[Surroundings] = None,
        api_provider: Optional[str] = None,
        api_key: Optional[str] = None,
        callback: Optional[Callback] = None,
    ) -> QueueItem:
        """Queue a decision for ``agent_id``; the response lands in ``last_responses``."""

        request = DecisionRequest(
            agent_id=agent_id,
            prompt_text=prompt_text,
            priority=priority,
            api_provider=api_provider,
            api_key=api_key,
            surroundings=surroundings,
        )

        async def _store(error: Optional[Exception], response: StandardizedResponse) -> None:
            self.last_responses[response.character_id] = response
            if callback is not None:
                outcome = callback(error, response)
                if inspect.isawaitable(outcome):
                    await outcome

        return self.scheduler.enqueue(request, _store)

    # ------------------------------------------------------------------
    # Tick
    # ------------------------------------------------------------------

    async def tick(self, now: Optional[datetime] = None) -> TickReport:
        """Advance the simulation to ``now``.

        Order: need decay for the elapsed time, one scheduled decision,
        action completions, stale conversation cleanup and (every
        ``consolidation_interval`` ticks) memory consolidation.
        """

        now = now or self.clock()
        self.tick_count += 1
        report = TickReport(now=now)

        # 1. Needs drift by real elapsed time, never backwards.
        if self._last_tick is not None:
            hours = (now - self._last_tick).total_seconds() / 3600
            for agent in self.registry:
                self.needs_model.decay(agent.needs, hours)
        self._last_tick = now

        # 2. At most one queued decision per tick.
        item = await self.scheduler.tick(now=now)
        if item is not None:
            report.processed = item.request.agent_id

        # 3. Finish actions whose deadline passed and start the next queued one.
        for agent in self.registry:
            finished = self.applier.tick(agent, now=now)
            if finished is not None:
                report.completed[agent.id] = finished

        # 4. Forget conversations nobody has touched in a while.
        report.threads_closed = self.dialogue.cleanup(now=now)
        if report.threads_closed:
            log_info(f"Closed {report.threads_closed} stale conversation(s)")

        # 5. Periodic long-term memory consolidation.
        if self.consolidator is not None and self.tick_count % self.consolidation_interval == 0:
            for agent in self.registry:
                summary = await self.consolidator.consolidate(agent, now=now)
                if summary:
                    report.consolidated[agent.id] = summary
                    log_success(f"{agent.name} remembers: {summary}")

        for listener in self.tick_listeners:
            try:
                listener(report)
            except Exception as exc:  # pragma: no cover - diagnostic hook
                log_error(f"Tick listener failed: {exc}")

        return report

    async def run(self, stop_event: asyncio.Event, *, interval_ms: Optional[int] = None) -> None:
        """Tick until ``stop_event`` is set, every ``decision.frequency_ms`` by default."""

        interval = (interval_ms or self.config.decision.frequency_ms) / 1000
        log_info(f"Runtime started with {len(self.registry)} agent(s)")
        while not stop_event.is_set():
            await self.tick()
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                continue
        log_info(f"Runtime stopped after {self.tick_count} tick(s)")

    def stats(self) -> SchedulerStats:
        return self.scheduler.stats()
