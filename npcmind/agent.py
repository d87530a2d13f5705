"""Mutable agent state and the registry the runtime resolves agents from."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Deque, Dict, Iterator, List, Optional

from npcmind.memory import MemoryStore
from npcmind.schemas import LongTermGoal, NeedsVector, ResponseAction, Trait


@dataclass
class Agent:
    """An NPC (or player character) as the engine sees it.

    ``traits`` keeps the declared, unresolved trait list; conflicting pairs
    are resolved per evaluation and never written back. ``busy_until`` is the
    explicit completion deadline of ``current_action``; nothing clears the
    busy flag except a tick past that deadline.
    """

    id: str
    name: str
    needs: NeedsVector = field(default_factory=NeedsVector)
    traits: List[Trait] = field(default_factory=list)
    location: str = ""
    is_busy: bool = False
    current_action: Optional[ResponseAction] = None
    busy_until: Optional[datetime] = None
    action_queue: Deque[ResponseAction] = field(default_factory=deque)
    relationships: Dict[str, float] = field(default_factory=dict)
    long_term_goal: Optional[LongTermGoal] = None
    experience: float = 0.0
    current_task: Optional[str] = None
    memory: MemoryStore = field(default_factory=MemoryStore)
    uses_local_engine: Optional[bool] = None
    api_key: Optional[str] = None
    is_player: bool = False

    def __post_init__(self) -> None:
        if not self.id or not self.id.strip():
            raise ValueError("Agent id must be a non-empty string")
        self.traits = [trait if isinstance(trait, Trait) else Trait(trait) for trait in self.traits]

    def has_trait(self, trait: Trait) -> bool:
        return trait in self.traits

    def is_due(self, now: datetime) -> bool:
        return self.is_busy and self.busy_until is not None and now >= self.busy_until


class AgentRegistry:
    """Lookup table of agents by id, with name fallback for action targets."""

    def __init__(self, agents: Optional[List[Agent]] = None) -> None:
        self._agents: Dict[str, Agent] = {}
        for agent in agents or []:
            self.register(agent)

    def register(self, agent: Agent) -> Agent:
        if agent.id in self._agents:
            raise ValueError(f"Agent '{agent.id}' is already registered")
        self._agents[agent.id] = agent
        return agent

    def remove(self, agent_id: str) -> Optional[Agent]:
        return self._agents.pop(agent_id, None)

    def get(self, agent_id: str) -> Optional[Agent]:
        return self._agents.get(agent_id)

    def resolve(self, reference: str) -> Optional[Agent]:
        """Find an agent by id, then by case-insensitive name."""

        if not reference:
            return None
        agent = self._agents.get(reference)
        if agent is not None:
            return agent
        lowered = reference.lower()
        for candidate in self._agents.values():
            if candidate.name.lower() == lowered:
                return candidate
        return None

    def at(self, location: str) -> List[Agent]:
        return [agent for agent in self._agents.values() if agent.location == location]

    def __contains__(self, agent_id: object) -> bool:
        return agent_id in self._agents

    def __iter__(self) -> Iterator[Agent]:
        return iter(list(self._agents.values()))

    def __len__(self) -> int:
        return len(self._agents)
