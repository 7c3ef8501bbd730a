"""
Shared fakes for the test-suite: scripted model provider, literal detector,
response builders and a sync runner for coroutines.
"""

from __future__ import annotations

import asyncio
import copy
import json
import re
from typing import Any, Callable, Iterable, Optional, Union

from pii_relay.core.detection import BaseDetector, StaticDetector
from pii_relay.core.models import (
    ChatMessage,
    DetectedSpan,
    ModelResponse,
    ToolCallRequest,
)
from pii_relay.core.providers.base import BaseLLMProvider
from pii_relay.core.token_store import TokenStore
from pii_relay.core.tokenizer import PIITokenizer


def run_async(coro):
    """Helper to run async coroutines in sync tests."""
    return asyncio.run(coro)


def find_literals(entities: dict[str, str], text: str) -> list[DetectedSpan]:
    spans = []
    for literal, entity_type in entities.items():
        for m in re.finditer(re.escape(literal), text):
            spans.append(DetectedSpan(m.start(), m.end(), entity_type, 0.9))
    return spans


def literal_detector(entities: dict[str, str]) -> StaticDetector:
    """Detector reporting every occurrence of the given literals."""
    return StaticDetector(lambda text: find_literals(entities, text))


class SlowDetector(BaseDetector):
    """Async detector whose latency depends on the text, to shuffle completion order."""

    def __init__(self, entities: dict[str, str], delays: dict[str, float]):
        self.entities = entities
        self.delays = delays
        self.recognizers = []
        self.completed: list[str] = []

    async def analyze(self, text: str) -> list[DetectedSpan]:
        await asyncio.sleep(self.delays.get(text, 0))
        self.completed.append(text)
        return find_literals(self.entities, text)


class FailingDetector(BaseDetector):
    def __init__(self, error: Exception):
        self.error = error
        self.recognizers = []

    async def analyze(self, text: str) -> list[DetectedSpan]:
        raise self.error


def make_tokenizer(detector: Optional[BaseDetector] = None, conversation_id: str = "test-convo") -> PIITokenizer:
    return PIITokenizer(detector or literal_detector({}), TokenStore(conversation_id))


def tool_call(name: str, args: Any = None, call_id: Optional[str] = None) -> ToolCallRequest:
    raw = args if isinstance(args, str) else json.dumps(args or {})
    return ToolCallRequest(id=call_id or f"call_{name}", function_name=name, raw_arguments=raw)


def tool_calls_response(*calls: ToolCallRequest, content: Optional[str] = None) -> ModelResponse:
    return ModelResponse(
        finish_reason="tool_calls",
        message=ChatMessage(role="assistant", content=content, tool_calls=list(calls)),
    )


def stop_response(text: Optional[str], finish_reason: str = "stop") -> ModelResponse:
    return ModelResponse(
        finish_reason=finish_reason,
        message=ChatMessage(role="assistant", content=text),
    )


Scripted = Union[ModelResponse, Callable[[list[dict]], ModelResponse]]


class ScriptedProvider(BaseLLMProvider):
    """Returns pre-configured responses; callables get the request messages."""

    def __init__(self, responses: Iterable[Scripted] = (), name: str = "scripted",
                 events: Optional[list] = None):
        super().__init__(model="mock")
        self.responses = list(responses)
        self.requests: list[dict] = []
        self.name = name
        self.events = events if events is not None else []

    @property
    def call_count(self) -> int:
        return len(self.requests)

    async def complete(self, model, messages, tools) -> ModelResponse:
        self.requests.append({
            "model": model,
            "messages": copy.deepcopy(messages),
            "tools": [t.to_dict() for t in tools],
        })
        self.events.append(f"{self.name}:{len(self.requests)}")
        if not self.responses:
            raise AssertionError(f"{self.name}: no more scripted responses")
        nxt = self.responses.pop(0)
        return nxt(messages) if callable(nxt) else nxt
