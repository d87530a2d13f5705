"""
Dialogue routing and conversation threads.

The router never writes dialogue itself. It decides which named content
pool should answer a conversational turn by matching trigger keywords, and
then asks that pool's ``DialogueProvider`` for text. Pools without a
registered provider fall back to ``general``.

Conversation threads are kept per unordered pair of agents. They remember
recent turns and topics so a pair does not keep circling back to the same
subject, and they decide when a conversation has run its course.
"""

from __future__ import annotations

import random
import re
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Deque, Dict, List, Mapping, Optional, Protocol, Sequence, Tuple

from npcmind.agent import Agent
from npcmind.config import DEFAULT_CONFIG, EngineConfig
from npcmind.logging_utils import log_error
from npcmind.memory import classify_emotion
from npcmind.schemas import ActionType, Decision, Trait


GENERAL_POOL = "general"

DIALOGUE_TRIGGERS: Dict[str, Tuple[str, ...]] = {
    "work": ("work", "project", "deadline", "meeting", "task", "report", "email", "boss", "client"),
    "stress": ("stress", "stressed", "overwhelmed", "anxious", "worried", "pressure", "exhausted"),
    "banter": ("funny", "joke", "laugh", "hilarious", "silly", "kidding", "ridiculous"),
    "food": ("food", "lunch", "snack", "hungry", "eat", "pizza", "dinner", "breakfast", "sandwich"),
    "gossip": ("heard", "rumor", "gossip", "secret", "did you know", "apparently"),
    "compliment": ("great job", "well done", "awesome", "impressive", "love your", "nice work"),
    "complaint": ("ugh", "annoying", "hate", "terrible", "can't believe", "frustrated", "worst"),
    "question": ("?", "what", "how", "why", "when", "where", "who"),
    "time_of_day": ("morning", "afternoon", "evening", "weekend", "monday", "friday", "tonight"),
}

CONVERSATION_ENDERS = re.compile(r"\b(bye|goodbye|see you|talk later|gotta go|catch you later|take care)\b", re.I)

DEFAULT_GENERAL_LINES = ("Hey there!", "How's it going?", "What's up?", "Good to see you!")


class DialogueProvider(Protocol):
    """A named pool of dialogue content."""

    def generate(self, message: str, agent: Agent, context: Mapping[str, Any]) -> str:
        ...


class _Blank(dict):
    def __missing__(self, key: str) -> str:
        return "{" + key + "}"


class TemplateDialogueProvider:
    """Pick a line at random and fill ``{name}``-style placeholders from context."""

    def __init__(self, lines: Sequence[str], *, rng: Optional[random.Random] = None) -> None:
        if not lines:
            raise ValueError("TemplateDialogueProvider needs at least one line")
        self.lines = list(lines)
        self.rng = rng or random.Random()

    def generate(self, message: str, agent: Agent, context: Mapping[str, Any]) -> str:
        values = _Blank(context)
        values.setdefault("name", agent.name)
        return self.rng.choice(self.lines).format_map(values)


def _keyword_hit(text: str, keyword: str) -> bool:
    if not keyword[0].isalnum():
        return keyword in text
    return re.search(rf"\b{re.escape(keyword)}\b", text) is not None


def conversation_id(first: str, second: str) -> str:
    a, b = sorted((first, second))
    return f"conv_{a}_{b}"


@dataclass
class Turn:
    speaker: str
    message: str
    timestamp: datetime
    pool: str = GENERAL_POOL


@dataclass
class ConversationThread:
    """Running state of one pair's conversation."""

    id: str
    participants: Tuple[str, str]
    started_at: datetime
    last_activity: datetime
    history: Deque[Turn] = field(default_factory=lambda: deque(maxlen=20))
    topics: List[str] = field(default_factory=list)
    sentiment: float = 0.0
    state: str = "new"
    turn_count: int = 0

    def recent_topics(self, limit: int = 3) -> List[str]:
        return self.topics[-limit:]


@dataclass(frozen=True)
class RoutingResult:
    pool: str
    confidence: float
    matches: Tuple[str, ...]
    text: str


class DialogueRouter:
    """Route conversational turns to dialogue pools and track threads."""

    def __init__(
        self,
        config: EngineConfig = DEFAULT_CONFIG,
        *,
        providers: Optional[Mapping[str, DialogueProvider]] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.config = config
        self.rng = rng or random.Random()
        self.providers: Dict[str, DialogueProvider] = dict(providers or {})
        self.providers.setdefault(GENERAL_POOL, TemplateDialogueProvider(DEFAULT_GENERAL_LINES, rng=self.rng))
        self.threads: Dict[str, ConversationThread] = {}

    def register(self, pool: str, provider: DialogueProvider) -> None:
        self.providers[pool] = provider

    # ------------------------------------------------------------------
    # Routing
    # ------------------------------------------------------------------

    def score(self, message: str, thread: Optional[ConversationThread] = None) -> Dict[str, Tuple[float, Tuple[str, ...]]]:
        """Per-category match score; topics the pair just covered count half."""

        lowered = (message or "").lower()
        recent = set(thread.recent_topics()) if thread is not None else set()
        scores: Dict[str, Tuple[float, Tuple[str, ...]]] = {}
        for category, keywords in DIALOGUE_TRIGGERS.items():
            matches = tuple(keyword for keyword in keywords if _keyword_hit(lowered, keyword))
            if not matches:
                continue
            value = float(len(matches))
            if category in recent:
                value *= 0.5
            scores[category] = (value, matches)
        return scores

    def select_pool(
        self,
        message: str,
        thread: Optional[ConversationThread] = None,
        *,
        preferred: Optional[str] = None,
    ) -> Tuple[str, float, Tuple[str, ...]]:
        if preferred and preferred != GENERAL_POOL and preferred in self.providers:
            return preferred, 1.0, ()

        scores = self.score(message, thread)
        if not scores:
            return GENERAL_POOL, 0.0, ()
        # Ties keep category declaration order.
        pool = max(scores, key=lambda category: scores[category][0])
        value, matches = scores[pool]
        if pool not in self.providers:
            return GENERAL_POOL, 0.0, matches
        return pool, min(1.0, value / 3), matches

    def route(
        self,
        message: str,
        agent: Agent,
        context: Optional[Mapping[str, Any]] = None,
        *,
        thread: Optional[ConversationThread] = None,
        preferred: Optional[str] = None,
    ) -> RoutingResult:
        pool, confidence, matches = self.select_pool(message, thread, preferred=preferred)
        payload = dict(context or {})
        payload.setdefault("pool", pool)
        try:
            text = self.providers[pool].generate(message, agent, payload)
        except Exception as exc:
            if pool == GENERAL_POOL:
                raise
            log_error(f"Dialogue pool '{pool}' failed for {agent.name}: {exc}; using general")
            pool, confidence = GENERAL_POOL, 0.0
            text = self.providers[GENERAL_POOL].generate(message, agent, payload)
        return RoutingResult(pool=pool, confidence=confidence, matches=matches, text=text)

    def requires_dialogue(self, decision: Decision) -> bool:
        action_type = decision.action_type
        if action_type is not None and action_type.is_social:
            return True
        if decision.include_dialogue:
            return True
        if action_type is ActionType.WORK_ON:
            return self.rng.random() < 0.2
        if action_type is ActionType.DRINK_COFFEE:
            return self.rng.random() < 0.3
        return False

    # ------------------------------------------------------------------
    # Threads
    # ------------------------------------------------------------------

    def thread(self, first: str, second: str, *, now: datetime) -> ConversationThread:
        key = conversation_id(first, second)
        existing = self.threads.get(key)
        if existing is not None:
            return existing
        created = ConversationThread(
            id=key,
            participants=tuple(sorted((first, second))),
            started_at=now,
            last_activity=now,
            history=deque(maxlen=self.config.conversation.history_limit),
        )
        self.threads[key] = created
        return created

    def record_turn(
        self,
        thread: ConversationThread,
        speaker: str,
        message: str,
        *,
        now: datetime,
        pool: str = GENERAL_POOL,
    ) -> None:
        settings = self.config.conversation
        thread.history.append(Turn(speaker=speaker, message=message, timestamp=now, pool=pool))
        thread.turn_count += 1
        thread.last_activity = now

        if pool != GENERAL_POOL and (not thread.topics or thread.topics[-1] != pool):
            thread.topics.append(pool)
            del thread.topics[: -settings.topic_limit]

        emotion = classify_emotion(message)
        step = self.config.social.sentiment_change * 2
        if emotion == "positive":
            thread.sentiment = min(1.0, thread.sentiment + step)
        elif emotion == "negative":
            thread.sentiment = max(-1.0, thread.sentiment - step)

        if CONVERSATION_ENDERS.search(message):
            thread.state = "ending"
        elif thread.turn_count > settings.max_turns_before_end:
            thread.state = "winding_down"
        elif thread.turn_count > settings.max_turns_before_topic_shift and len(set(thread.topics)) <= 1:
            thread.state = "topic_exhausted"
        else:
            thread.state = "active"

    def end_probability(self, thread: ConversationThread, agent: Agent, *, now: datetime) -> float:
        settings = self.config.conversation
        if thread.state == "ending":
            return 1.0

        elapsed_ms = max(0.0, (now - thread.started_at).total_seconds() * 1000)
        probability = settings.natural_ending_probability * (thread.turn_count / settings.max_turns_before_end)
        probability += 0.1 * (elapsed_ms / settings.base_duration_ms)
        if thread.turn_count > settings.max_turns_before_end:
            probability += 0.5

        if Trait.EXTROVERTED in agent.traits:
            probability *= 0.7
        if Trait.INTROVERTED in agent.traits:
            probability *= 1.4
        return max(0.0, min(1.0, probability))

    def should_continue(self, thread: ConversationThread, agent: Agent, *, now: datetime) -> bool:
        return self.rng.random() >= self.end_probability(thread, agent, now=now)

    def should_shift_topic(self, thread: ConversationThread) -> bool:
        if thread.state == "topic_exhausted":
            return True
        settings = self.config.conversation
        return (
            thread.turn_count > settings.max_turns_before_topic_shift
            and self.rng.random() < settings.topic_change_probability
        )

    def cleanup(self, *, now: datetime) -> int:
        """Drop threads idle for longer than the configured staleness window."""

        limit = self.config.conversation.stale_after_seconds
        stale = [
            key
            for key, thread in self.threads.items()
            if (now - thread.last_activity).total_seconds() > limit
        ]
        for key in stale:
            del self.threads[key]
        return len(stale)
