"""Tests for the request scheduler: ordering, routing, caching and retries."""

import itertools
import random
from datetime import datetime, timedelta

import pytest

from npcmind.agent import Agent, AgentRegistry
from npcmind.applier import ResponseApplier
from npcmind.decision_engine import DecisionEngine
from npcmind.scheduler import (
    ActionRejectedError,
    DecisionRequest,
    LLMDecisionProvider,
    MalformedRequestError,
    ProviderRateLimitedError,
    ProviderUnavailableError,
    RequestScheduler,
)
from npcmind.schemas import (
    ProviderDecision,
    ResponseAction,
    ResponseType,
    StandardizedResponse,
)


EVENING = datetime(2024, 3, 5, 21, 0)


class FixedRandom(random.Random):
    def __init__(self, value: float) -> None:
        super().__init__(0)
        self.value = value

    def random(self) -> float:
        return self.value


class Recorder:
    def __init__(self):
        self.calls = []

    def __call__(self, error, response):
        self.calls.append((error, response))


class FailingProvider:
    def __init__(self):
        self.calls = 0

    async def decide(self, agent, request, *, now):
        self.calls += 1
        raise RuntimeError("provider exploded")


class FixedProvider:
    def __init__(self, action: ResponseAction):
        self.action = action

    async def decide(self, agent, request, *, now):
        return StandardizedResponse(
            response_type=ResponseType.ACTION,
            character_id=agent.id,
            timestamp=now,
            source="external_provider",
            action=self.action,
        )


def make_scheduler(*agents: Agent, external=None, applier=False):
    registry = AgentRegistry(list(agents))
    engine = DecisionEngine(rng=FixedRandom(0.99), registry=registry)
    return RequestScheduler(
        engine,
        registry,
        external=external,
        applier=ResponseApplier(registry=registry) if applier else None,
        clock=lambda: EVENING,
    )


def test_queue_orders_by_priority_then_arrival():
    scheduler = make_scheduler()
    for index, priority in enumerate([5, 9, 1, 9]):
        scheduler.enqueue(DecisionRequest(agent_id=f"a{index}", priority=priority), Recorder())

    pending = scheduler.pending()
    assert [item.priority for item in pending] == [9, 9, 5, 1]
    assert [item.request.agent_id for item in pending] == ["a1", "a3", "a0", "a2"]


def test_default_priority_and_blank_agent():
    scheduler = make_scheduler()
    assert scheduler.enqueue(DecisionRequest(agent_id="a1"), Recorder()).priority == 5

    with pytest.raises(MalformedRequestError):
        scheduler.enqueue(DecisionRequest(agent_id="  "), Recorder())
    assert len(scheduler) == 1


@pytest.mark.parametrize(
    "agent_kwargs, api_key, expected",
    [
        ({"uses_local_engine": True, "is_player": True}, "key", "local"),
        ({"uses_local_engine": False}, None, "external"),
        ({"is_player": True}, None, "local"),
        ({"is_player": True}, "key", "external"),
        ({}, "key", "local"),
    ],
)
def test_routing(agent_kwargs, api_key, expected):
    agent = Agent(id="a1", name="Avery", **agent_kwargs)
    assert RequestScheduler.route(agent, DecisionRequest(agent_id="a1", api_key=api_key)) == expected


@pytest.mark.asyncio
async def test_local_request_is_served():
    scheduler = make_scheduler(Agent(id="a1", name="Avery"))
    recorder = Recorder()
    scheduler.enqueue(DecisionRequest(agent_id="a1"), recorder)

    await scheduler.tick(now=EVENING)

    error, response = recorder.calls[0]
    assert error is None
    assert response.character_id == "a1"
    assert response.source == "idle"
    stats = scheduler.stats()
    assert (stats.total_requests, stats.local_requests, stats.queue_length) == (1, 1, 0)
    assert stats.local_percentage == 100


@pytest.mark.asyncio
async def test_unknown_agent_gets_fallback_without_retry():
    scheduler = make_scheduler()
    recorder = Recorder()
    scheduler.enqueue(DecisionRequest(agent_id="ghost"), recorder)

    await scheduler.tick(now=EVENING)

    error, response = recorder.calls[0]
    assert isinstance(error, MalformedRequestError)
    assert response.is_fallback
    assert response.action.type == "IDLE"
    assert len(scheduler) == 0
    assert scheduler.stats().errors == 1


@pytest.mark.asyncio
async def test_failures_retry_with_backoff_then_fall_back():
    provider = FailingProvider()
    scheduler = make_scheduler(Agent(id="p1", name="Pat", uses_local_engine=False), external=provider)
    recorder = Recorder()
    scheduler.enqueue(DecisionRequest(agent_id="p1"), recorder)

    await scheduler.tick(now=EVENING)
    retry = scheduler.pending()[0]
    assert retry.attempts == 1
    assert retry.priority == 4
    assert retry.not_before == EVENING + timedelta(seconds=2)

    assert await scheduler.tick(now=EVENING + timedelta(seconds=1)) is None

    await scheduler.tick(now=EVENING + timedelta(seconds=2))
    assert scheduler.pending()[0].not_before == EVENING + timedelta(seconds=6)
    assert recorder.calls == []

    await scheduler.tick(now=EVENING + timedelta(seconds=6))

    assert provider.calls == 3
    error, response = recorder.calls[0]
    assert isinstance(error, RuntimeError)
    assert response.is_fallback
    stats = scheduler.stats()
    assert (stats.errors, stats.fallbacks, stats.external_requests) == (3, 1, 3)
    assert len(scheduler) == 0


@pytest.mark.asyncio
async def test_latency_average_ignores_failed_dispatches(monkeypatch):
    ticks = itertools.count(0, 0.04)
    monkeypatch.setattr("npcmind.scheduler.time.perf_counter", lambda: next(ticks))
    scheduler = make_scheduler(
        Agent(id="p1", name="Pat", uses_local_engine=False),
        Agent(id="a1", name="Avery"),
        external=FailingProvider(),
    )
    scheduler.enqueue(DecisionRequest(agent_id="p1", priority=9), Recorder())
    scheduler.enqueue(DecisionRequest(agent_id="a1", priority=1), Recorder())

    await scheduler.tick(now=EVENING)
    await scheduler.tick(now=EVENING)

    stats = scheduler.stats()
    assert (stats.external_requests, stats.local_requests, stats.completed_requests) == (1, 1, 1)
    assert stats.last_latency_ms == pytest.approx(40)
    assert stats.average_latency_ms == pytest.approx(40)


@pytest.mark.asyncio
async def test_missing_external_provider_is_reported():
    scheduler = make_scheduler(Agent(id="p1", name="Pat", uses_local_engine=False))
    recorder = Recorder()
    scheduler.enqueue(DecisionRequest(agent_id="p1"), recorder)

    for seconds in (0, 2, 6):
        await scheduler.tick(now=EVENING + timedelta(seconds=seconds))

    error, response = recorder.calls[0]
    assert isinstance(error, ProviderUnavailableError)
    assert response.is_fallback


@pytest.mark.asyncio
async def test_cache_serves_repeat_requests_until_expiry():
    scheduler = make_scheduler(Agent(id="a1", name="Avery"))
    recorder = Recorder()
    for _ in range(3):
        scheduler.enqueue(DecisionRequest(agent_id="a1"), recorder)

    await scheduler.tick(now=EVENING)
    await scheduler.tick(now=EVENING + timedelta(seconds=1))
    stats = scheduler.stats()
    assert (stats.local_requests, stats.cache_hits, stats.cache_size) == (1, 1, 1)
    assert recorder.calls[1][1].timestamp == EVENING + timedelta(seconds=1)

    await scheduler.tick(now=EVENING + timedelta(seconds=31))
    assert scheduler.stats().local_requests == 2


@pytest.mark.asyncio
async def test_rejected_action_reaches_callback():
    agent = Agent(id="p1", name="Pat", uses_local_engine=False, location="office")
    scheduler = make_scheduler(
        agent, external=FixedProvider(ResponseAction(type="MOVE_TO")), applier=True
    )
    recorder = Recorder()
    scheduler.enqueue(DecisionRequest(agent_id="p1"), recorder)

    await scheduler.tick(now=EVENING)

    error, response = recorder.calls[0]
    assert isinstance(error, ActionRejectedError)
    assert error.action_type == "MOVE_TO"
    assert not agent.is_busy


@pytest.mark.asyncio
async def test_applier_runs_before_async_callback():
    agent = Agent(id="p1", name="Pat", uses_local_engine=False)
    scheduler = make_scheduler(
        agent, external=FixedProvider(ResponseAction(type="WORK_ON", duration=15000)), applier=True
    )
    seen = []

    async def callback(error, response):
        seen.append((error, agent.is_busy))

    scheduler.enqueue(DecisionRequest(agent_id="p1"), callback)
    await scheduler.tick(now=EVENING)

    assert seen == [(None, True)]


@pytest.mark.asyncio
async def test_callback_errors_do_not_escape():
    scheduler = make_scheduler(Agent(id="a1", name="Avery"))

    def callback(error, response):
        raise ValueError("host bug")

    scheduler.enqueue(DecisionRequest(agent_id="a1"), callback)
    assert await scheduler.tick(now=EVENING) is not None


def test_reset_clears_everything():
    scheduler = make_scheduler()
    scheduler.enqueue(DecisionRequest(agent_id="a1"), Recorder())
    scheduler.reset()

    stats = scheduler.stats()
    assert (stats.total_requests, stats.queue_length, stats.cache_size) == (0, 0, 0)


@pytest.mark.asyncio
async def test_llm_provider_cooldown():
    provider = LLMDecisionProvider(llm_provider="openai", llm_model="gpt-4o-mini", cooldown_ms=2000)
    provider._last_call = EVENING
    agent = Agent(id="a1", name="Avery")

    with pytest.raises(ProviderRateLimitedError) as excinfo:
        await provider.decide(agent, DecisionRequest(agent_id="a1"), now=EVENING + timedelta(milliseconds=500))
    assert excinfo.value.retry_after_ms == 1500


@pytest.mark.asyncio
async def test_llm_provider_renders_prompt_and_converts(monkeypatch):
    captured = {}

    async def fake_call(**kwargs):
        captured.update(kwargs)
        return ProviderDecision(response_type=ResponseType.ACTION, action_type="dance", thought="why not")

    monkeypatch.setattr("npcmind.scheduler.call_llm_with_retries", fake_call)
    provider = LLMDecisionProvider(llm_provider="anthropic", llm_model="claude-x")
    agent = Agent(id="a1", name="Avery")

    response = await provider.decide(agent, DecisionRequest(agent_id="a1", prompt_text="Big day"), now=EVENING)

    assert captured["response_model"] is ProviderDecision
    assert captured["llm_provider"] == "anthropic"
    assert "Name: Avery" in captured["user_prompt"]
    assert "Big day" in captured["user_prompt"]
    assert response.source == "external_provider"
    assert response.action.type == "DANCE"
    assert response.action.duration == 5000
    assert response.thought == "why not"
