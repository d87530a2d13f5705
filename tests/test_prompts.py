"""Tests for decision prompt rendering."""

from datetime import datetime

from npcmind.agent import Agent
from npcmind.prompts import DECISION_PROMPT, PromptTemplate, render_decision_prompt
from npcmind.schemas import (
    ActionType,
    AvailableAction,
    LongTermGoal,
    NearbyPerson,
    NeedsVector,
    Surroundings,
    Task,
    Trait,
)


NOW = datetime(2024, 3, 5, 14, 30)


def test_render_fills_every_placeholder():
    agent = Agent(
        id="a1",
        name="Avery",
        needs=NeedsVector(energy=3.4),
        traits=[Trait.AMBITIOUS],
        location="office",
        long_term_goal=LongTermGoal(type="work", target="promotion"),
    )
    agent.memory.append("Finished the budget review", timestamp=NOW)
    surroundings = Surroundings(
        location="office",
        nearby_people=[NearbyPerson(id="b1", name="Bo", distance=2, mood="happy")],
        available_actions=[AvailableAction(type=ActionType.WORK_ON, target="report", description="quarterly")],
        tasks=[Task(name="Fix the printer", urgent=True)],
    )

    prompt = render_decision_prompt(agent, surroundings, prompt_text="  Big client visit today ", now=NOW)

    assert "{{" not in prompt.user
    assert prompt.system == DECISION_PROMPT.system
    assert "Name: Avery" in prompt.user
    assert "Energy 3.4/10" in prompt.user
    assert "- Finished the budget review" in prompt.user
    assert "- Long-term goal: work (promotion)" in prompt.user
    assert "- Pending task: Fix the printer [urgent]" in prompt.user
    assert "- Big client visit today" in prompt.user
    assert "- WORK_ON -> report: quarterly" in prompt.user
    assert "- Time: Tuesday 14:30" in prompt.user
    assert "- Bo (happy) at distance 2" in prompt.user


def test_render_with_nothing_known():
    prompt = render_decision_prompt(Agent(id="a1", name="Avery"), now=NOW)

    assert "- No memories yet" in prompt.user
    assert "- Nothing in particular" in prompt.user
    assert "AVAILABLE ACTIONS:\n- IDLE" in prompt.user
    assert "Location: unknown" in prompt.user


def test_custom_template():
    template = PromptTemplate(name="short", system="Decide for {{identity}}", user="{{actions}}")
    prompt = render_decision_prompt(Agent(id="a1", name="Avery"), now=NOW, template=template)

    assert prompt.system.startswith("Decide for Name: Avery")
    assert prompt.user == "- IDLE"
