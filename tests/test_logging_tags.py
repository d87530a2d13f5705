"""Tests for truthful logging tags ([•] vs [AI]) in scheduler output.

These tests assert that:
- Locally decided requests print [•] and never [AI]
- Requests sent to the external provider print [AI]
- Retries and fallbacks print [!]
"""

from __future__ import annotations

import contextlib
import io
import random
from datetime import datetime

import pytest

from npcmind.agent import Agent, AgentRegistry
from npcmind.decision_engine import DecisionEngine
from npcmind.logging_utils import colored, Color
from npcmind.scheduler import DecisionRequest, LLMDecisionProvider, RequestScheduler
from npcmind.schemas import ProviderDecision, ResponseType


NOW = datetime(2024, 3, 5, 21, 0)


def _scheduler(agent: Agent, external=None) -> RequestScheduler:
    registry = AgentRegistry([agent])
    return RequestScheduler(DecisionEngine(rng=random.Random(1), registry=registry), registry, external=external)


@pytest.fixture(autouse=True)
def no_color(monkeypatch):
    monkeypatch.setenv("NPCMIND_NO_COLOR", "1")


def test_colored_respects_no_color():
    assert colored("plain", Color.RED) == "plain"


@pytest.mark.asyncio
async def test_local_decision_tag():
    scheduler = _scheduler(Agent(id="a1", name="Avery"))
    scheduler.enqueue(DecisionRequest(agent_id="a1"), lambda error, response: None)

    buf = io.StringIO()
    with contextlib.redirect_stdout(buf):
        await scheduler.tick(now=NOW)
    out = buf.getvalue()

    assert "[•] Avery: IDLE" in out
    assert "[AI]" not in out


@pytest.mark.asyncio
async def test_external_decision_tag(monkeypatch):
    async def fake_call_llm_with_retries(**kwargs):
        return ProviderDecision(response_type=ResponseType.IDLE, thought="resting")

    monkeypatch.setattr("npcmind.scheduler.call_llm_with_retries", fake_call_llm_with_retries)

    agent = Agent(id="p1", name="Pat", uses_local_engine=False)
    scheduler = _scheduler(agent, external=LLMDecisionProvider(llm_provider="openai", llm_model="gpt-4o-mini"))
    scheduler.enqueue(DecisionRequest(agent_id="p1"), lambda error, response: None)

    buf = io.StringIO()
    with contextlib.redirect_stdout(buf):
        await scheduler.tick(now=NOW)
    out = buf.getvalue()

    assert "[AI] Requesting decision for Pat from openai/gpt-4o-mini" in out
    assert "[•] Pat:" not in out


@pytest.mark.asyncio
async def test_failure_tag():
    scheduler = _scheduler(Agent(id="p1", name="Pat", uses_local_engine=False))
    scheduler.enqueue(DecisionRequest(agent_id="p1"), lambda error, response: None)

    buf = io.StringIO()
    with contextlib.redirect_stdout(buf):
        await scheduler.tick(now=NOW)

    assert "[!] Decision for p1 failed (ProviderUnavailableError); retry 1/3 in 2000ms" in buf.getvalue()
