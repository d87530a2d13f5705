"""
Agent memory: bounded stores, keyword pattern extraction and consolidation.

Three pieces live here:

- ``MemoryStore`` keeps a bounded short-term FIFO of observed events and a
  unbounded long-term list that only ever receives consolidated summaries.
- ``PatternExtractor`` reads entries back and derives behavioural hints
  (what worked, what failed, who the agent knows, current mood) using
  plain keyword classifiers. There is no language understanding here.
- ``MemoryConsolidator`` filters short-term entries for significance and
  asks a ``MemorySummarizer`` (LLM-backed by default) to distil them into a
  single long-term memory.
"""

from __future__ import annotations

import re
from collections import Counter, deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Deque, Dict, Iterable, List, Optional, Protocol, Sequence, Union

from npcmind.config import DEFAULT_CONFIG, Config, EngineConfig
from npcmind.llm_utils import call_llm_with_retries
from npcmind.logging_utils import log_error, log_llm
from npcmind.schemas import ActionType, MemoryEntry, MemorySummary

if TYPE_CHECKING:
    from npcmind.agent import Agent


# ============================================================================
# Keyword classifiers
# ============================================================================

ACTION_KEYWORDS: Dict[str, tuple[str, ...]] = {
    "work": ("work", "task", "project", "assignment", "job"),
    "social": ("talk", "conversation", "chat", "discuss", "meet", "said"),
    "needs": ("coffee", "drink", "eat", "snack", "break", "rest"),
    "movement": ("move", "go", "walk", "head", "visit"),
    "idle": ("idle", "wait", "pause", "think", "relax"),
}

OUTCOME_KEYWORDS: Dict[str, tuple[str, ...]] = {
    "success": ("completed", "finished", "successful", "worked", "achieved", "satisfied"),
    "failure": ("failed", "interrupted", "abandoned", "couldn't", "unable", "frustrated"),
    "partial": ("partially", "some progress", "started", "began", "attempted"),
}

EMOTION_KEYWORDS: Dict[str, tuple[str, ...]] = {
    "positive": ("happy", "satisfied", "pleased", "content", "energized", "motivated"),
    "negative": ("frustrated", "tired", "annoyed", "stressed", "overwhelmed", "bored"),
    "neutral": ("fine", "okay", "normal", "average", "routine"),
}

TOPIC_KEYWORDS: Dict[str, tuple[str, ...]] = {
    "work": ("project", "task", "deadline", "meeting", "report"),
    "personal": ("family", "weekend", "hobby", "vacation", "health"),
    "office": ("policy", "announcement", "event", "training", "equipment"),
    "social": ("party", "lunch", "coffee", "chat", "gossip"),
}

LOCATION_HINTS = ("room", "office", "kitchen", "hallway", "lobby", "desk", "break")
CONVERSATION_HINTS = (
    "talked", "said", "told", "asked", "mentioned", "discussed", "chat", "conversation",
)
NAME_STOP_WORDS = frozenset(
    {"The", "A", "An", "I", "He", "She", "They", "We", "Said", "Started", "Finished", "Completed"}
)

ACTION_CATEGORIES: Dict[ActionType, str] = {
    ActionType.WORK_ON: "work",
    ActionType.SOCIALIZE: "social",
    ActionType.START_CONVERSATION: "social",
    ActionType.DRINK_COFFEE: "needs",
    ActionType.EAT_SNACK: "needs",
    ActionType.MOVE_TO: "movement",
    ActionType.IDLE: "idle",
}

_TIME_PATTERN = re.compile(r"(\d{1,2}):(\d{2})|(\d{1,2})\s*(am|pm)", re.IGNORECASE)
_WORD_PATTERN = re.compile(r"[A-Za-z][A-Za-z'-]*")


def _first_match(text: str, table: Dict[str, tuple[str, ...]]) -> Optional[str]:
    lowered = text.lower()
    for category, keywords in table.items():
        if any(keyword in lowered for keyword in keywords):
            return category
    return None


def classify_action(text: str) -> Optional[str]:
    return _first_match(text, ACTION_KEYWORDS)


def classify_outcome(text: str) -> str:
    return _first_match(text, OUTCOME_KEYWORDS) or "neutral"


def classify_emotion(text: str) -> str:
    return _first_match(text, EMOTION_KEYWORDS) or "neutral"


def extract_names(text: str) -> List[str]:
    """Capitalised words longer than two letters, minus common stop-words."""

    names: List[str] = []
    for word in _WORD_PATTERN.findall(text):
        if len(word) <= 2 or word in NAME_STOP_WORDS:
            continue
        if word[0].isupper() and word[1:] == word[1:].lower() and word not in names:
            names.append(word)
    return names


def extract_location(text: str) -> Optional[str]:
    for word in text.split():
        if any(hint in word.lower() for hint in LOCATION_HINTS):
            return word.strip(".,!?\"'")
    return None


def extract_time(text: str) -> Optional[str]:
    lowered = text.lower()
    for period in ("morning", "afternoon", "evening"):
        if period in lowered:
            return period
    if "lunch" in lowered:
        return "lunch"
    match = _TIME_PATTERN.search(text)
    return match.group(0) if match else None


def extract_topics(text: str) -> List[str]:
    lowered = text.lower()
    return [topic for topic, keywords in TOPIC_KEYWORDS.items() if any(k in lowered for k in keywords)]


def is_conversation(text: str) -> bool:
    lowered = text.lower()
    return any(hint in lowered for hint in CONVERSATION_HINTS)


def action_category(action: Union[ActionType, str]) -> str:
    parsed = ActionType.parse(action)
    if parsed is not None:
        return ACTION_CATEGORIES[parsed]
    return str(action)


# ============================================================================
# Store
# ============================================================================


class MemoryStore:
    """Bounded short-term FIFO plus an unbounded long-term summary list."""

    def __init__(self, max_short_term: int = 20) -> None:
        if max_short_term < 1:
            raise ValueError("max_short_term must be at least 1")
        self.max_short_term = max_short_term
        self._short_term: Deque[MemoryEntry] = deque(maxlen=max_short_term)
        self._long_term: List[MemoryEntry] = []

    @classmethod
    def from_config(cls, config: EngineConfig = DEFAULT_CONFIG) -> "MemoryStore":
        return cls(config.memory.max_short_term)

    @staticmethod
    def classify(
        description: str,
        *,
        timestamp: datetime,
        magnitude: float = 0.0,
        actor_id: Optional[str] = None,
        target: Optional[str] = None,
    ) -> MemoryEntry:
        return MemoryEntry(
            description=description,
            timestamp=timestamp,
            action_type=classify_action(description),
            outcome=classify_outcome(description),
            emotion=classify_emotion(description),
            magnitude=magnitude,
            actor_id=actor_id,
            target=target,
        )

    def append(
        self,
        description: str,
        *,
        timestamp: datetime,
        magnitude: float = 0.0,
        actor_id: Optional[str] = None,
        target: Optional[str] = None,
    ) -> MemoryEntry:
        """Record a short-term event; the oldest entry is evicted at capacity."""

        entry = self.classify(
            description, timestamp=timestamp, magnitude=magnitude, actor_id=actor_id, target=target
        )
        self._short_term.append(entry)
        return entry

    def add_long_term(self, summary: str, *, timestamp: datetime) -> MemoryEntry:
        entry = self.classify(summary, timestamp=timestamp)
        self._long_term.append(entry)
        return entry

    def recent(self, limit: Optional[int] = None) -> List[MemoryEntry]:
        """Short-term entries, newest first."""

        entries = list(reversed(self._short_term))
        return entries if limit is None else entries[:limit]

    def long_term(self) -> List[MemoryEntry]:
        return list(reversed(self._long_term))

    def entries(self) -> List[MemoryEntry]:
        return self.recent() + self.long_term()

    def mentions(self, *names: str) -> List[MemoryEntry]:
        lowered = [name.lower() for name in names if name]
        return [
            entry
            for entry in self.entries()
            if entry.actor_id in names or any(name in entry.description.lower() for name in lowered)
        ]

    def __len__(self) -> int:
        return len(self._short_term) + len(self._long_term)


# ============================================================================
# Pattern extraction
# ============================================================================


@dataclass(frozen=True)
class Avoidance:
    kind: str  # "action" or "person"
    value: str
    reason: str


@dataclass(frozen=True)
class Preference:
    value: str
    confidence: float
    reason: str


@dataclass
class MemoryPatterns:
    recent_actions: List[str] = field(default_factory=list)
    recent_conversations: List[str] = field(default_factory=list)
    recent_locations: List[str] = field(default_factory=list)
    recent_mood: str = "neutral"
    frequent_actions: Dict[str, int] = field(default_factory=dict)
    known_people: Dict[str, int] = field(default_factory=dict)
    success_rates: Dict[str, float] = field(default_factory=dict)
    action_modifiers: Dict[str, float] = field(default_factory=dict)
    avoidance: List[Avoidance] = field(default_factory=list)
    preferences: List[Preference] = field(default_factory=list)
    topic_tags: Dict[str, int] = field(default_factory=dict)
    time_patterns: Dict[str, List[str]] = field(default_factory=dict)
    dominant_emotion: str = "neutral"

    def knows(self, name: str) -> bool:
        return name in self.known_people

    def avoids_action(self, category: str) -> bool:
        return any(item.kind == "action" and item.value == category for item in self.avoidance)

    def avoids_person(self, name: str) -> bool:
        return any(item.kind == "person" and item.value == name for item in self.avoidance)

    def prefers(self, category: str) -> bool:
        return any(item.value == category for item in self.preferences)


class PatternExtractor:
    """Keyword-driven analysis of memory entries."""

    RECENT_SUCCESS = 1.3
    RECENT_FAILURE = 0.7
    FREQUENT_SUCCESS = 1.2
    FREQUENT_FAILURE = 0.8

    def __init__(self, config: EngineConfig = DEFAULT_CONFIG) -> None:
        self.config = config

    def extract(
        self,
        recent: Sequence[MemoryEntry],
        long_term: Sequence[MemoryEntry] = (),
    ) -> MemoryPatterns:
        """Derive patterns; ``recent`` is short-term memory, newest first."""

        everything = list(recent) + list(long_term)
        patterns = MemoryPatterns()
        if not everything:
            return patterns

        self._recent(patterns, recent)
        self._frequencies(patterns, everything)
        self._outcomes(patterns, everything)
        self._avoidance(patterns, recent)
        return patterns

    def extract_from(self, store: MemoryStore) -> MemoryPatterns:
        return self.extract(store.recent(), store.long_term())

    # ------------------------------------------------------------------

    @staticmethod
    def _recent(patterns: MemoryPatterns, recent: Sequence[MemoryEntry]) -> None:
        successes = failures = 0
        for entry in recent:
            text = entry.description
            if entry.action_type and entry.action_type not in patterns.recent_actions:
                patterns.recent_actions.append(entry.action_type)
            if is_conversation(text):
                for name in extract_names(text):
                    if name not in patterns.recent_conversations:
                        patterns.recent_conversations.append(name)
            location = extract_location(text)
            if location and location not in patterns.recent_locations:
                patterns.recent_locations.append(location)
            if entry.action_type and entry.outcome == "success":
                successes += 1
            elif entry.action_type and entry.outcome == "failure":
                failures += 1

        if successes > failures * 1.5:
            patterns.recent_mood = "positive"
        elif failures > successes * 1.5:
            patterns.recent_mood = "negative"

    @staticmethod
    def _frequencies(patterns: MemoryPatterns, entries: Sequence[MemoryEntry]) -> None:
        actions: Counter[str] = Counter()
        people: Counter[str] = Counter()
        topics: Counter[str] = Counter()
        emotions: Counter[str] = Counter()
        by_time: Dict[str, List[str]] = {}
        for entry in entries:
            if entry.action_type:
                actions[entry.action_type] += 1
            people.update(extract_names(entry.description))
            topics.update(extract_topics(entry.description))
            emotions[entry.emotion or "neutral"] += 1
            when = extract_time(entry.description)
            if when and entry.action_type:
                by_time.setdefault(when, []).append(entry.action_type)

        patterns.frequent_actions = dict(actions.most_common())
        patterns.known_people = dict(people.most_common())
        patterns.topic_tags = dict(topics.most_common())
        patterns.time_patterns = by_time
        patterns.dominant_emotion = emotions.most_common(1)[0][0]

    def _outcomes(self, patterns: MemoryPatterns, entries: Sequence[MemoryEntry]) -> None:
        threshold = self.config.memory.pattern_detection_threshold
        totals: Counter[str] = Counter()
        wins: Counter[str] = Counter()
        for entry in entries:
            if not entry.action_type or entry.outcome in (None, "neutral"):
                continue
            totals[entry.action_type] += 1
            if entry.outcome == "success":
                wins[entry.action_type] += 1

        for category, total in totals.items():
            rate = wins[category] / total
            patterns.success_rates[category] = rate
            if total < threshold:
                continue
            if rate > 0.7:
                patterns.action_modifiers[category] = self.FREQUENT_SUCCESS
            elif rate < 0.3:
                patterns.action_modifiers[category] = self.FREQUENT_FAILURE
            else:
                patterns.action_modifiers[category] = 1.0
            if rate >= 0.6:
                patterns.preferences.append(
                    Preference(value=category, confidence=rate, reason=f"{round(rate * 100)}% success rate")
                )
        patterns.preferences.sort(key=lambda pref: pref.confidence, reverse=True)

    @staticmethod
    def _avoidance(patterns: MemoryPatterns, recent: Sequence[MemoryEntry]) -> None:
        for entry in recent:
            if entry.outcome == "failure" and entry.action_type:
                if not patterns.avoids_action(entry.action_type):
                    patterns.avoidance.append(Avoidance("action", entry.action_type, "Recently failed"))
            if is_conversation(entry.description) and entry.emotion == "negative":
                for name in extract_names(entry.description):
                    if not patterns.avoids_person(name):
                        patterns.avoidance.append(
                            Avoidance("person", name, "Recent negative interaction")
                        )

    def influence(self, action: Union[ActionType, str], patterns: MemoryPatterns) -> float:
        """Multiplier in [0.5, 1.5] memory applies to ``action``."""

        category = action_category(action)
        value = 1.0
        if patterns.avoids_action(category):
            value *= self.RECENT_FAILURE
        if patterns.prefers(category):
            value *= self.RECENT_SUCCESS
        value *= patterns.action_modifiers.get(category, 1.0)
        return max(0.5, min(1.5, value))


# ============================================================================
# Consolidation
# ============================================================================


class MemorySummarizer(Protocol):
    async def summarize(self, agent: "Agent", events: Sequence[MemoryEntry]) -> MemorySummary:
        ...


def render_consolidation_prompt(agent: "Agent", events: Iterable[MemoryEntry]) -> str:
    traits = ", ".join(trait.value for trait in agent.traits) or "no particular traits"
    lines = [
        f"You are {agent.name}. Your personality: {traits}.",
        "What is the single most important or memorable thing that just happened?",
        "",
        "Recent events:",
    ]
    lines.extend(f"- {event.description} ({event.timestamp.isoformat()})" for event in events)
    lines.extend(
        [
            "",
            "Summarize the most significant event in one concise sentence from your perspective.",
            "If nothing significant happened set is_significant to false.",
        ]
    )
    return "\n".join(lines)


class LLMMemorySummarizer:
    """Summarizer backed by a structured LLM call."""

    SYSTEM_PROMPT = (
        "You consolidate an office worker's short-term memories into one long-term memory. "
        "Respond with JSON containing thought, is_significant and summary."
    )

    def __init__(
        self,
        *,
        llm_provider: Optional[str] = None,
        llm_model: Optional[str] = None,
        max_attempts: int = 2,
    ) -> None:
        self.llm_provider = llm_provider or Config.LLM_PROVIDER
        self.llm_model = llm_model or Config.LLM_MODEL
        self.max_attempts = max_attempts

    async def summarize(self, agent: "Agent", events: Sequence[MemoryEntry]) -> MemorySummary:
        log_llm(f"Consolidating {len(events)} memories for {agent.name}")
        return await call_llm_with_retries(
            system_prompt=self.SYSTEM_PROMPT,
            user_prompt=render_consolidation_prompt(agent, events),
            llm_provider=self.llm_provider,
            llm_model=self.llm_model,
            response_model=MemorySummary,
            max_attempts=self.max_attempts,
        )


class MemoryConsolidator:
    """Promote significant short-term events to a long-term summary."""

    def __init__(self, summarizer: MemorySummarizer, config: EngineConfig = DEFAULT_CONFIG) -> None:
        self.summarizer = summarizer
        self.config = config

    def is_significant(self, entry: MemoryEntry, agent: "Agent") -> bool:
        settings = self.config.memory
        if entry.magnitude >= settings.significance_magnitude:
            return True

        if entry.actor_id and entry.actor_id in agent.relationships:
            score = agent.relationships[entry.actor_id]
            if score >= settings.strong_relationship_high or score <= settings.strong_relationship_low:
                return True

        goal = agent.long_term_goal
        if goal is not None:
            if goal.type and entry.action_type and goal.type in entry.action_type:
                return True
            if goal.target and entry.target and goal.target in entry.target:
                return True
        return False

    async def consolidate(self, agent: "Agent", *, now: datetime) -> Optional[str]:
        """Summarize significant recent events into long-term memory.

        Returns the stored summary, or ``None`` when nothing qualified, the
        summarizer judged it insignificant, or the summarizer failed.
        """

        events = [entry for entry in agent.memory.recent() if self.is_significant(entry, agent)]
        if not events:
            return None

        try:
            result = await self.summarizer.summarize(agent, events)
        except Exception as exc:
            log_error(f"Memory consolidation failed for {agent.name}: {exc}")
            return None

        if not result.is_significant or not result.summary.strip():
            return None
        agent.memory.add_long_term(result.summary.strip(), timestamp=now)
        return result.summary.strip()
