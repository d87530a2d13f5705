"""Tests for memory storage, pattern extraction and consolidation."""

from datetime import datetime, timedelta

import pytest

from npcmind.agent import Agent
from npcmind.memory import (
    LLMMemorySummarizer,
    MemoryConsolidator,
    MemoryStore,
    PatternExtractor,
    action_category,
    classify_emotion,
    extract_names,
)
from npcmind.schemas import ActionType, LongTermGoal, MemorySummary


T0 = datetime(2024, 3, 5, 9, 0)


def fill(store: MemoryStore, *descriptions: str) -> None:
    for offset, description in enumerate(descriptions):
        store.append(description, timestamp=T0 + timedelta(minutes=offset))


def test_short_term_is_bounded_fifo():
    store = MemoryStore(max_short_term=3)
    fill(store, "one", "two", "three", "four")

    assert [entry.description for entry in store.recent()] == ["four", "three", "two"]
    assert len(store) == 3


def test_long_term_only_from_consolidation():
    store = MemoryStore()
    fill(store, "Finished the report")
    assert store.long_term() == []

    store.add_long_term("Shipped the quarterly report", timestamp=T0)
    assert [entry.description for entry in store.long_term()] == ["Shipped the quarterly report"]


def test_long_term_keeps_every_summary():
    store = MemoryStore(max_short_term=3)
    for day in range(150):
        store.add_long_term(f"Summary {day}", timestamp=T0 + timedelta(days=day))

    summaries = store.long_term()
    assert len(summaries) == 150
    assert summaries[0].description == "Summary 149"
    assert summaries[-1].description == "Summary 0"


def test_entries_are_classified():
    store = MemoryStore()
    entry = store.append("Completed the project task and felt satisfied", timestamp=T0)

    assert entry.action_type == "work"
    assert entry.outcome == "success"
    assert entry.emotion == "positive"


def test_mentions_by_name_or_actor():
    store = MemoryStore()
    store.append("Talked with Dana about lunch", timestamp=T0)
    store.append("Walked to the kitchen", timestamp=T0, actor_id="d1")
    store.append("Worked alone", timestamp=T0)

    assert len(store.mentions("Dana", "d1")) == 2


def test_helpers():
    assert extract_names("met Dana and Sam at The cafe") == ["Dana", "Sam"]
    assert classify_emotion("I am so frustrated") == "negative"
    assert action_category(ActionType.DRINK_COFFEE) == "needs"
    assert action_category("DANCE") == "DANCE"


def test_patterns_recent_and_frequent():
    store = MemoryStore()
    fill(
        store,
        "Completed the report task",
        "Finished the budget task",
        "Completed the slides task",
        "Talked with Dana in the kitchen",
    )
    patterns = PatternExtractor().extract_from(store)

    assert "work" in patterns.recent_actions
    assert "Dana" in patterns.recent_conversations
    assert patterns.frequent_actions["work"] == 3
    assert patterns.success_rates["work"] == 1.0
    assert patterns.action_modifiers["work"] == PatternExtractor.FREQUENT_SUCCESS
    assert patterns.prefers("work")
    assert patterns.recent_mood == "positive"


def test_failure_creates_avoidance_and_lowers_influence():
    store = MemoryStore()
    fill(store, "Failed to finish the work assignment")
    extractor = PatternExtractor()
    patterns = extractor.extract_from(store)

    assert patterns.avoids_action("work")
    assert extractor.influence(ActionType.WORK_ON, patterns) == pytest.approx(0.7)


def test_negative_conversation_avoids_person():
    store = MemoryStore()
    fill(store, "Talked with Morgan and felt annoyed")
    patterns = PatternExtractor().extract_from(store)
    assert patterns.avoids_person("Morgan")


def test_empty_memory_gives_neutral_patterns():
    patterns = PatternExtractor().extract([])
    assert patterns.recent_mood == "neutral"
    assert PatternExtractor().influence(ActionType.IDLE, patterns) == 1.0


class StubSummarizer:
    def __init__(self, result: MemorySummary | None = None, error: Exception | None = None):
        self.result = result
        self.error = error
        self.calls = []

    async def summarize(self, agent, events):
        self.calls.append(list(events))
        if self.error is not None:
            raise self.error
        return self.result


def test_significance_rules():
    agent = Agent(id="a1", name="Avery", relationships={"b1": 85}, long_term_goal=LongTermGoal(type="work"))
    consolidator = MemoryConsolidator(StubSummarizer())
    store = agent.memory

    big = store.append("Something huge happened", timestamp=T0, magnitude=8)
    friend = store.append("Chatted", timestamp=T0, actor_id="b1")
    goal = store.append("Worked on the task", timestamp=T0)
    trivial = store.append("Looked outside", timestamp=T0)

    assert consolidator.is_significant(big, agent)
    assert consolidator.is_significant(friend, agent)
    assert consolidator.is_significant(goal, agent)
    assert not consolidator.is_significant(trivial, agent)


@pytest.mark.asyncio
async def test_consolidate_stores_summary():
    agent = Agent(id="a1", name="Avery")
    agent.memory.append("Got promoted to team lead", timestamp=T0, magnitude=9)
    agent.memory.append("Looked outside", timestamp=T0)
    summarizer = StubSummarizer(MemorySummary(thought="", is_significant=True, summary="  I got promoted.  "))

    result = await MemoryConsolidator(summarizer).consolidate(agent, now=T0)

    assert result == "I got promoted."
    assert [entry.description for entry in agent.memory.long_term()] == ["I got promoted."]
    assert len(summarizer.calls[0]) == 1


@pytest.mark.asyncio
async def test_consolidate_skips_when_nothing_significant():
    agent = Agent(id="a1", name="Avery")
    agent.memory.append("Looked outside", timestamp=T0)
    summarizer = StubSummarizer(MemorySummary(is_significant=True, summary="x"))

    assert await MemoryConsolidator(summarizer).consolidate(agent, now=T0) is None
    assert summarizer.calls == []


@pytest.mark.asyncio
async def test_consolidate_survives_summarizer_failure():
    agent = Agent(id="a1", name="Avery")
    agent.memory.append("Fire drill in the building", timestamp=T0, magnitude=9)
    summarizer = StubSummarizer(error=RuntimeError("provider down"))

    assert await MemoryConsolidator(summarizer).consolidate(agent, now=T0) is None
    assert agent.memory.long_term() == []


@pytest.mark.asyncio
async def test_llm_summarizer_sends_events(monkeypatch):
    captured = {}

    async def fake_call(**kwargs):
        captured.update(kwargs)
        return MemorySummary(is_significant=True, summary="Promoted.")

    monkeypatch.setattr("npcmind.memory.call_llm_with_retries", fake_call)
    agent = Agent(id="a1", name="Avery")
    event = agent.memory.append("Got promoted to team lead", timestamp=T0, magnitude=9)

    result = await LLMMemorySummarizer(llm_provider="openai", llm_model="gpt-4o-mini").summarize(agent, [event])

    assert result.summary == "Promoted."
    assert captured["response_model"] is MemorySummary
    assert "You are Avery." in captured["user_prompt"]
    assert "- Got promoted to team lead (2024-03-05T09:00:00)" in captured["user_prompt"]
