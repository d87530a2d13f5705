"""Prompt rendering for the external decision provider."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional

from npcmind.agent import Agent
from npcmind.schemas import Surroundings


@dataclass
class PromptTemplate:
    """A system/user prompt pair with ``{{placeholder}}`` slots."""

    name: str
    system: str
    user: str
    description: str = ""


@dataclass
class RenderedPrompt:
    system: str
    user: str


DECISION_PROMPT = PromptTemplate(
    name="decision",
    system=(
        "You control one office worker in a life simulation. Read their status, memories and "
        "surroundings, then choose what they do next. Pick an action from AVAILABLE ACTIONS when "
        "acting, or speak a single short line when talking. Respond with JSON only."
    ),
    user=(
        "IDENTITY & STATUS:\n{{identity}}\n\n"
        "MEMORIES:\n{{memories}}\n\n"
        "GOALS & SITUATION:\n{{situation}}\n\n"
        "AVAILABLE ACTIONS:\n{{actions}}\n\n"
        "PERCEPTION:\n{{perception}}\n\n"
        "Reply with an object of the form\n"
        '{"response_type": "ACTION", "thought": "...", "action_type": "WORK_ON", '
        '"target": "report", "duration_ms": 15000, "content": null}'
    ),
    description="Asks an external model for the agent's next action.",
)


def _bullets(lines: List[str], empty: str) -> str:
    return "\n".join(f"- {line}" for line in lines) if lines else f"- {empty}"


def _identity(agent: Agent) -> str:
    needs = agent.needs
    traits = ", ".join(trait.value for trait in agent.traits) or "none"
    return (
        f"Name: {agent.name}\n"
        f"Personality: {traits}\n"
        f"Location: {agent.location or 'unknown'}\n"
        f"Energy {needs.energy:.1f}/10, Hunger {needs.hunger:.1f}/10, Social {needs.social:.1f}/10, "
        f"Stress {needs.stress:.1f}/10, Comfort {needs.comfort:.1f}/10"
    )


def _situation(agent: Agent, surroundings: Surroundings, prompt_text: str) -> str:
    lines: List[str] = []
    if agent.long_term_goal is not None:
        goal = agent.long_term_goal
        lines.append(f"Long-term goal: {goal.type}" + (f" ({goal.target})" if goal.target else ""))
    task = surroundings.current_task
    if task is not None:
        lines.append(f"Current task: {task.name}" + (" [urgent]" if task.urgent else ""))
    elif agent.current_task:
        lines.append(f"Current task: {agent.current_task}")
    for pending in surroundings.tasks:
        lines.append(f"Pending task: {pending.name}" + (" [urgent]" if pending.urgent else ""))
    if prompt_text:
        lines.append(prompt_text.strip())
    return _bullets(lines, "Nothing in particular")


def render_decision_prompt(
    agent: Agent,
    surroundings: Optional[Surroundings] = None,
    *,
    prompt_text: str = "",
    now: datetime,
    template: PromptTemplate = DECISION_PROMPT,
    memory_limit: int = 5,
) -> RenderedPrompt:
    """Fill ``template`` with the agent's state and surroundings."""

    surroundings = surroundings or Surroundings(location=agent.location)
    memories = [entry.description for entry in agent.memory.recent(memory_limit)]
    memories += [f"(long-term) {entry.description}" for entry in agent.memory.long_term()[:memory_limit]]
    actions = [
        f"{action.type.value}" + (f" -> {action.target}" if action.target else "")
        + (f": {action.description}" if action.description else "")
        for action in surroundings.available_actions
    ]
    perception = [f"Time: {now:%A %H:%M}"]
    perception += [
        f"{person.name} ({person.mood}) at distance {person.distance:g}"
        for person in surroundings.nearby_people
    ]

    replacements: Dict[str, str] = {
        "{{identity}}": _identity(agent),
        "{{memories}}": _bullets(memories, "No memories yet"),
        "{{situation}}": _situation(agent, surroundings, prompt_text),
        "{{actions}}": _bullets(actions, "IDLE"),
        "{{perception}}": _bullets(perception, "Nobody around"),
    }
    system = template.system
    user = template.user
    for placeholder, value in replacements.items():
        system = system.replace(placeholder, value)
        user = user.replace(placeholder, value)
    return RenderedPrompt(system=system, user=user)
