"""
Data models shared by the tokenization boundary and the agent loop.
Transport-agnostic — providers convert to/from their native format.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Literal, Optional
import json
import time


Role = Literal["system", "user", "assistant", "tool"]


@dataclass
class ToolSchema:
    """Tool definition handed to the model collaborator."""
    name: str
    description: str
    input_schema: dict  # JSON Schema format

    def to_dict(self) -> dict:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.input_schema,
            },
        }


@dataclass
class ToolCallRequest:
    """A single tool invocation requested by the model."""
    id: str
    function_name: str
    raw_arguments: str  # JSON-encoded

    def parse_arguments(self) -> Any:
        if not self.raw_arguments or not self.raw_arguments.strip():
            return {}
        return json.loads(self.raw_arguments)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": "function",
            "function": {
                "name": self.function_name,
                "arguments": self.raw_arguments,
            },
        }


@dataclass
class ChatMessage:
    """A conversation turn before it has crossed the tokenization boundary."""
    role: Role
    content: Any = None
    tool_calls: Optional[list[ToolCallRequest]] = None
    tool_call_id: Optional[str] = None


@dataclass
class SecureMessage:
    """A log entry; ``marked_secure`` certifies its content is tokenized."""
    role: Role
    content: Optional[str] = None
    tool_calls: Optional[list[ToolCallRequest]] = None
    tool_call_id: Optional[str] = None
    marked_secure: bool = False
    timestamp: float = field(default_factory=time.time)

    def to_transport(self) -> dict:
        """Chat-completions wire shape."""
        payload: dict = {"role": self.role, "content": self.content}
        if self.tool_calls:
            payload["tool_calls"] = [tc.to_dict() for tc in self.tool_calls]
        if self.tool_call_id is not None:
            payload["tool_call_id"] = self.tool_call_id
        return payload


@dataclass
class ModelResponse:
    """One completion choice from the model collaborator."""
    finish_reason: str
    message: ChatMessage
    usage: Optional[dict] = None


@dataclass(frozen=True)
class DetectedSpan:
    """A PII span reported by the detection collaborator."""
    start: int
    end: int
    entity_type: str
    score: float = 0.0


@dataclass(frozen=True)
class PIIMapping:
    """Token Store record. Never updated after insert."""
    token_id: str
    original_text: str
    conversation_id: str
