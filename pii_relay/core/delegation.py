"""
Delegation Protocol — a tool result that hands the turn to another agent.

A tool result delegates when it has the request shape: a string ``prompt``
and a ``target_agent`` that can ``ask``. Mappings and objects both qualify;
``Delegation`` is the explicit tagged form, and a mapping carrying a ``kind``
other than ``"delegate"`` is always a plain value. The target agent runs its
own full loop on its own message log; its final text becomes the content of
the tool response that asked for it.

Agents live as nodes in an ``AgentDirectory`` so the delegation graph can be
inspected. ContextVars track, per call chain, the nesting depth and which
agents are mid-turn, so a cycle fails fast instead of deadlocking.
"""

from __future__ import annotations
import contextvars
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Iterator, Optional

from .errors import DelegationDepthError
from .models import ChatMessage

if TYPE_CHECKING:
    from .agent import Agent

logger = logging.getLogger(__name__)

DELEGATE_KIND = "delegate"
DEFAULT_MAX_DELEGATION_DEPTH = 8

_delegation_depth: contextvars.ContextVar[int] = contextvars.ContextVar(
    "pii_relay_delegation_depth", default=0
)
_active_agents: contextvars.ContextVar[tuple] = contextvars.ContextVar(
    "pii_relay_active_agents", default=()
)


@dataclass(frozen=True)
class Delegation:
    """Tool outcome asking ``target_agent`` to answer ``prompt``."""
    prompt: str
    target_agent: "Agent"
    kind: str = DELEGATE_KIND


def as_delegation(result: Any) -> Optional[Delegation]:
    """Return the Delegation carried by a tool result, or None for plain values."""
    if isinstance(result, Delegation):
        return result
    if isinstance(result, dict):
        if result.get("kind", DELEGATE_KIND) != DELEGATE_KIND:
            return None
        prompt = result.get("prompt")
        target = result.get("target_agent")
    else:
        prompt = getattr(result, "prompt", None)
        target = getattr(result, "target_agent", None)
    if isinstance(prompt, str) and callable(getattr(target, "ask", None)):
        return Delegation(prompt=prompt, target_agent=target)
    return None


def current_depth() -> int:
    return _delegation_depth.get()


def is_active(agent: "Agent") -> bool:
    """True when ``agent`` is already mid-turn higher up this call chain."""
    return any(a is agent for a in _active_agents.get())


def enter_turn(agent: "Agent") -> contextvars.Token:
    return _active_agents.set(_active_agents.get() + (agent,))


def leave_turn(token: contextvars.Token) -> None:
    _active_agents.reset(token)


async def run_delegation(
    delegation: Delegation,
    max_depth: int = DEFAULT_MAX_DELEGATION_DEPTH,
) -> str:
    """Run the target agent's loop to completion and return its final text."""
    depth = _delegation_depth.get()
    target = delegation.target_agent
    if depth >= max_depth:
        raise DelegationDepthError(
            f"Delegation to '{target.name}' exceeds the maximum depth of {max_depth}"
        )

    logger.info(f"Delegating to {target.name} (depth {depth + 1})")
    reset_token = _delegation_depth.set(depth + 1)
    try:
        return await target.ask(ChatMessage(role="user", content=delegation.prompt))
    finally:
        _delegation_depth.reset(reset_token)


class AgentDirectory:
    """Top-level registry of agents and the delegation edges between them."""

    def __init__(self):
        self._agents: dict[str, "Agent"] = {}
        self._edges: dict[str, set[str]] = {}

    def register(self, agent: "Agent") -> "Agent":
        if agent.name in self._agents:
            raise ValueError(f"Agent '{agent.name}' already registered")
        self._agents[agent.name] = agent
        self._edges.setdefault(agent.name, set())
        return agent

    def get(self, name: str) -> "Agent":
        if name not in self._agents:
            raise KeyError(f"Unknown agent: {name}. Available: {self.names}")
        return self._agents[name]

    @property
    def names(self) -> list[str]:
        return list(self._agents.keys())

    def __iter__(self) -> Iterator["Agent"]:
        return iter(list(self._agents.values()))

    def __contains__(self, name: object) -> bool:
        return name in self._agents

    def connect(self, source: str, target: str) -> None:
        """Record that ``source`` may delegate to ``target``."""
        for name in (source, target):
            if name not in self._agents:
                raise KeyError(f"Unknown agent: {name}")
        self._edges[source].add(target)

    def edges(self) -> list[tuple[str, str]]:
        return [(src, dst) for src, targets in self._edges.items() for dst in sorted(targets)]

    def has_cycle(self) -> bool:
        visiting: set[str] = set()
        done: set[str] = set()

        def visit(node: str) -> bool:
            if node in done:
                return False
            if node in visiting:
                return True
            visiting.add(node)
            if any(visit(nxt) for nxt in self._edges.get(node, ())):
                return True
            visiting.discard(node)
            done.add(node)
            return False

        return any(visit(name) for name in self._agents)
