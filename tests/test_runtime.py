"""End-to-end tests for the runtime tick loop."""

import asyncio
import random
from datetime import datetime, timedelta

import pytest

from npcmind.agent import Agent
from npcmind.memory import MemoryConsolidator
from npcmind.runtime import NPCRuntime
from npcmind.schemas import MemorySummary


EVENING = datetime(2024, 3, 5, 21, 0)


class StubSummarizer:
    async def summarize(self, agent, events):
        return MemorySummary(is_significant=True, summary=f"{len(events)} big moment(s)")


def make_runtime(**kwargs) -> NPCRuntime:
    kwargs.setdefault("agents", [Agent(id="a1", name="Avery")])
    return NPCRuntime(rng=random.Random(7), clock=lambda: EVENING, **kwargs)


def test_duplicate_agents_are_rejected():
    runtime = make_runtime()
    with pytest.raises(ValueError):
        runtime.add_agent(Agent(id="a1", name="Other"))
    assert runtime.remove_agent("a1").name == "Avery"
    assert runtime.remove_agent("a1") is None


@pytest.mark.asyncio
async def test_request_is_decided_applied_and_stored():
    runtime = make_runtime()
    seen = []
    runtime.request_decision("a1", callback=lambda error, response: seen.append(error))

    report = await runtime.tick(EVENING)

    assert report.processed == "a1"
    assert seen == [None]
    response = runtime.last_responses["a1"]
    assert response.action.type == "IDLE"
    agent = runtime.registry.get("a1")
    assert agent.is_busy
    assert agent.busy_until == EVENING + timedelta(milliseconds=5000)
    assert runtime.stats().local_requests == 1


@pytest.mark.asyncio
async def test_actions_complete_on_later_tick():
    runtime = make_runtime()
    runtime.request_decision("a1")
    await runtime.tick(EVENING)

    early = await runtime.tick(EVENING + timedelta(seconds=1))
    assert early.completed == {}

    done = await runtime.tick(EVENING + timedelta(seconds=5))
    assert done.completed["a1"].type == "IDLE"
    assert not runtime.registry.get("a1").is_busy


@pytest.mark.asyncio
async def test_needs_decay_with_elapsed_time():
    runtime = make_runtime()
    await runtime.tick(EVENING)
    await runtime.tick(EVENING + timedelta(hours=1))

    needs = runtime.registry.get("a1").needs
    assert needs.energy == pytest.approx(4.2)
    assert needs.hunger == pytest.approx(4.4)
    assert needs.stress == pytest.approx(5.3)


@pytest.mark.asyncio
async def test_stale_threads_are_closed():
    runtime = make_runtime()
    runtime.dialogue.thread("a1", "b1", now=EVENING)

    report = await runtime.tick(EVENING + timedelta(hours=2))

    assert report.threads_closed == 1
    assert runtime.dialogue.threads == {}


@pytest.mark.asyncio
async def test_consolidation_runs_on_interval():
    agent = Agent(id="a1", name="Avery")
    agent.memory.append("Won the office chili contest", timestamp=EVENING, magnitude=8)
    reports = []
    runtime = make_runtime(
        agents=[agent],
        consolidator=MemoryConsolidator(StubSummarizer()),
        consolidation_interval=2,
        tick_listeners=[reports.append],
    )

    first = await runtime.tick(EVENING)
    second = await runtime.tick(EVENING + timedelta(seconds=1))

    assert first.consolidated == {}
    assert second.consolidated == {"a1": "1 big moment(s)"}
    assert reports == [first, second]
    assert [entry.description for entry in agent.memory.long_term()] == ["1 big moment(s)"]


@pytest.mark.asyncio
async def test_run_stops_on_event():
    runtime = make_runtime()
    stop = asyncio.Event()

    async def stopper():
        await asyncio.sleep(0.05)
        stop.set()

    await asyncio.gather(runtime.run(stop, interval_ms=10), stopper())

    assert runtime.tick_count >= 1
