"""
Tool Dispatch — runs one model turn's tool calls for an agent.

Unregistered names are dropped silently. Each valid call is handled
concurrently: parse the JSON arguments, detokenize them, invoke the tool,
then either run a delegation or take the raw result. A failing tool never
aborts the batch; its error is tokenized and returned to the model instead.
"""

from __future__ import annotations
import asyncio
import logging
import time
from typing import Any

from .delegation import DEFAULT_MAX_DELEGATION_DEPTH, as_delegation, run_delegation
from .errors import DetectionError, ModelProviderError
from .message_log import SecureMessageLog
from .models import ChatMessage, SecureMessage, ToolCallRequest
from .tokenizer import PIITokenizer
from .tool_registry import ToolRegistry

logger = logging.getLogger(__name__)


class ToolDispatcher:
    """Executes tool calls against a registry and logs the tool responses."""

    def __init__(
        self,
        registry: ToolRegistry,
        tokenizer: PIITokenizer,
        log: SecureMessageLog,
        max_delegation_depth: int = DEFAULT_MAX_DELEGATION_DEPTH,
    ):
        self.registry = registry
        self.tokenizer = tokenizer
        self.log = log
        self.max_delegation_depth = max_delegation_depth

    async def dispatch(self, tool_calls: list[ToolCallRequest]) -> list[SecureMessage]:
        valid = [call for call in tool_calls if self.registry.is_valid(call)]
        dropped = len(tool_calls) - len(valid)
        if dropped:
            logger.warning(f"Dropped {dropped} tool call(s) for unregistered functions")
        if not valid:
            return []

        responses = await asyncio.gather(*(self._process(call) for call in valid))
        return await self.log.append_many(responses)

    async def _process(self, call: ToolCallRequest) -> ChatMessage:
        t0 = time.time()
        try:
            content = await self._invoke(call)
        except (DetectionError, ModelProviderError):
            # Collaborator failures inside a delegated turn abort this turn too
            raise
        except Exception as e:
            logger.error(
                f"Tool '{call.function_name}' failed with {type(e).__name__} "
                f"after {(time.time() - t0) * 1000:.0f}ms"
            )
            content = _error_payload(e)
        else:
            logger.debug(
                f"Tool '{call.function_name}' finished in {(time.time() - t0) * 1000:.0f}ms"
            )
        return ChatMessage(role="tool", tool_call_id=call.id, content=content)

    async def _invoke(self, call: ToolCallRequest) -> Any:
        tool = self.registry.get_tool(call.function_name)
        logger.info(f"Calling function {call.function_name}")

        arguments = await self.tokenizer.detokenize(call.parse_arguments())
        result = await tool.invoke(arguments)

        delegation = as_delegation(result)
        if delegation is not None:
            return await run_delegation(delegation, max_depth=self.max_delegation_depth)
        return "" if result is None else result


def _error_payload(error: Exception) -> dict:
    # Backends echo request data into messages, so the log tokenizes this like any result
    return {"error": str(error) or type(error).__name__}
