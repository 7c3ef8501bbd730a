"""
Agent Loop — the core orchestrator.
Sends the tokenized history to the model, dispatches tool calls, loops until
the model stops, then detokenizes the final text for the caller.
"""

from __future__ import annotations
import asyncio
import logging
from typing import Callable, Optional, Union

from .delegation import (
    DEFAULT_MAX_DELEGATION_DEPTH,
    current_depth,
    enter_turn,
    is_active,
    leave_turn,
)
from .dispatch import ToolDispatcher
from .errors import AgentDidNotConvergeError, DelegationDepthError
from .message_log import SecureMessageLog
from .models import ChatMessage, ModelResponse, SecureMessage
from .providers.base import BaseLLMProvider
from .structured_logger import StructuredLogger
from .tokenizer import PIITokenizer
from .tool_registry import ToolRegistry

logger = logging.getLogger(__name__)

StatusCallback = Callable[[str, str], None]


class Agent:
    """
    One conversational agent with its own tools and message log.

    Flow:
      request → tokenize + log → model call → log response
      → finish_reason "tool_calls": dispatch (may delegate) → loop
      → otherwise: detokenize final text and return it

    Agents share a tokenizer (one Token Store per conversation) but each
    owns its message log exclusively.
    """

    def __init__(
        self,
        name: str,
        provider: BaseLLMProvider,
        tokenizer: PIITokenizer,
        registry: Optional[ToolRegistry] = None,
        instructions: str = "",
        deployment: str = "gpt-4o",
        max_iterations: Optional[int] = 25,
        max_delegation_depth: int = DEFAULT_MAX_DELEGATION_DEPTH,
        on_status: Optional[StatusCallback] = None,
    ):
        self.name = name
        self.provider = provider
        self.tokenizer = tokenizer
        self.registry = registry if registry is not None else ToolRegistry()
        self.instructions = instructions
        self.deployment = deployment
        self.max_iterations = max_iterations
        self.on_status = on_status
        self._turn_lock = asyncio.Lock()

        self.log = SecureMessageLog(tokenizer)
        if instructions:
            self.log.seed(ChatMessage(role="system", content=instructions))
        self.dispatcher = ToolDispatcher(
            self.registry, tokenizer, self.log, max_delegation_depth=max_delegation_depth,
        )
        self._slog = StructuredLogger(__name__).with_context(
            agent_name=name, conversation_id=tokenizer.conversation_id,
        )

    @property
    def messages(self) -> list[SecureMessage]:
        return self.log.entries

    def __repr__(self) -> str:
        return f"Agent(name={self.name!r}, tools={self.registry.tool_names})"

    async def ask(self, request: Union[ChatMessage, str]) -> str:
        """
        Run the loop for one incoming message and return the final text.

        Turns on one agent run one at a time, so its log never sees two
        requests interleave. Raises DetectionError / ModelProviderError
        unchanged, AgentDidNotConvergeError when the iteration budget runs
        out, and DelegationDepthError when this agent is already mid-turn
        higher up the delegation chain.
        """
        if isinstance(request, str):
            request = ChatMessage(role="user", content=request)
        if is_active(self):
            raise DelegationDepthError(
                f"Agent '{self.name}' is already handling a request in this delegation chain"
            )

        reset_token = enter_turn(self)
        try:
            async with self._turn_lock:
                return await self._run_turn(request)
        finally:
            leave_turn(reset_token)

    async def _run_turn(self, request: ChatMessage) -> str:
        slog = self._slog.with_context(trace_id=StructuredLogger.generate_trace_id())
        slog.info("Turn started", delegation_depth=current_depth())

        await self.log.append(request)

        iteration = 0
        while True:
            if self.max_iterations is not None and iteration >= self.max_iterations:
                slog.error("Iteration budget exhausted", max_iterations=self.max_iterations)
                raise AgentDidNotConvergeError(self.name, self.max_iterations)
            iteration += 1

            response = await self._send()
            await self.log.append(response.message)
            slog.debug(
                "Model responded",
                iteration=iteration,
                finish_reason=response.finish_reason,
                tool_calls=len(response.message.tool_calls or []),
                usage=response.usage,
            )

            if response.finish_reason == "tool_calls":
                await self._handle_tool_calls(response)
                continue

            result = response.message.content or ""
            break

        if not result.strip():
            slog.warning("Empty result after processing completion")
        slog.info("Turn finished", iterations=iteration)
        return await self.tokenizer.detokenize(result)

    async def _send(self) -> ModelResponse:
        return await self.provider.complete(
            model=self.deployment,
            messages=self.log.snapshot_for_request(),
            tools=self.registry.get_schemas(),
        )

    async def _handle_tool_calls(self, response: ModelResponse) -> None:
        message = response.message
        if message.content and self.on_status:
            self.on_status(self.name, await self.tokenizer.detokenize(message.content))
        await self.dispatcher.dispatch(message.tool_calls or [])
