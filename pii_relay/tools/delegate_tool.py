"""
Delegation tools — let a triage agent hand questions to worker agents.

Each worker gets an ``ask<Name>`` tool taking ``{"assistantPrompt": str}``;
calling it returns a ``Delegation`` so the dispatcher runs the worker's own
loop and feeds its answer back as the tool response.
"""

from __future__ import annotations
import json
import re
from typing import TYPE_CHECKING, Iterable, Optional

from .base import BaseTool
from ..core.delegation import AgentDirectory, Delegation
from ..core.tool_registry import ToolRegistry
from ..core.tokenizer import TOKEN_PREFIX

if TYPE_CHECKING:
    from ..core.agent import Agent
    from ..core.providers.base import BaseLLMProvider
    from ..core.tokenizer import PIITokenizer


TRIAGE_AGENT_NAME = "Triage Assistant"


class DelegateToAgentTool(BaseTool):
    """Tool whose only effect is to delegate the prompt to ``target``."""

    input_schema = {
        "type": "object",
        "properties": {
            "assistantPrompt": {
                "type": "string",
                "description": "Prompt for the assistant to manage the task.",
            },
        },
        "required": ["assistantPrompt"],
    }

    def __init__(self, target: "Agent", name: Optional[str] = None, description: Optional[str] = None):
        self.target = target
        self.name = name or delegation_tool_name(target.name)
        self.description = description or (
            f"Transfer the question to {target.name} and wait for its answer. "
            f"{target.name} handles: {_summary(target.instructions)}"
        )

    async def execute(self, assistantPrompt: str = "", **kwargs) -> Delegation:
        if not isinstance(assistantPrompt, str) or not assistantPrompt.strip():
            raise ValueError("assistantPrompt must be a non-empty string")
        return Delegation(prompt=assistantPrompt, target_agent=self.target)


def delegation_tool_name(agent_name: str) -> str:
    """'Jira Agent' → 'askJiraAgent'."""
    words = re.findall(r"[A-Za-z0-9]+", agent_name)
    return "ask" + "".join(w[:1].upper() + w[1:] for w in words)


def _summary(instructions: str, limit: int = 200) -> str:
    text = " ".join(instructions.split())
    return text if len(text) <= limit else text[: limit - 3] + "..."


def triage_instructions(workers: Iterable["Agent"]) -> str:
    roles = json.dumps([w.instructions for w in workers], indent=2)
    return (
        "## Role\n"
        "You are a Triage Assistant that manages user inquiries and directs them "
        "to the right assistant.\n\n"
        "## Guidelines\n"
        "- Use only the provided functions.\n"
        "- Ask short, natural questions to gather missing information.\n"
        "- Trigger other assistants as needed and wait for their response.\n"
        "- Present the gathered information to the user; do not repeat greetings.\n\n"
        "## Roles of the assistants you can consult\n"
        f"{roles}\n\n"
        f"Personal information is replaced by placeholders starting with '{TOKEN_PREFIX}'. "
        "Treat them as the real values and return them unchanged; they are restored "
        "before the user sees the answer. Never mention the placeholders to the user.\n"
    )


def build_triage_agent(
    provider: "BaseLLMProvider",
    tokenizer: "PIITokenizer",
    directory: AgentDirectory,
    name: str = TRIAGE_AGENT_NAME,
    **agent_kwargs,
) -> "Agent":
    """Create a triage agent with one delegation tool per agent in ``directory``."""
    from ..core.agent import Agent

    workers = list(directory)
    registry = ToolRegistry([DelegateToAgentTool(worker) for worker in workers])
    triage = Agent(
        name=name,
        provider=provider,
        tokenizer=tokenizer,
        registry=registry,
        instructions=triage_instructions(workers),
        **agent_kwargs,
    )
    directory.register(triage)
    for worker in workers:
        directory.connect(triage.name, worker.name)
    return triage
