"""
Secure Message Log — one agent's append-only conversation history.

Every entry goes through the tokenizer before it is appended and marked
secure; only secure entries are ever handed to the model collaborator.
"""

from __future__ import annotations
import asyncio
import json
import logging
from typing import Any, Iterable

from .models import ChatMessage, SecureMessage
from .tokenizer import PIITokenizer

logger = logging.getLogger(__name__)


class SecureMessageLog:
    """Ordered, append-only history of tokenized messages."""

    def __init__(self, tokenizer: PIITokenizer):
        self.tokenizer = tokenizer
        self._entries: list[SecureMessage] = []

    @property
    def entries(self) -> list[SecureMessage]:
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def seed(self, message: ChatMessage) -> SecureMessage:
        """Append operator-authored content (system instructions) as-is.

        Only for text that never contains user data.
        """
        entry = SecureMessage(
            role=message.role,
            content=message.content,
            tool_calls=message.tool_calls,
            tool_call_id=message.tool_call_id,
            marked_secure=True,
        )
        self._entries.append(entry)
        return entry

    async def append(self, message: ChatMessage) -> SecureMessage:
        entry = await self._secure(message)
        self._entries.append(entry)
        return entry

    async def append_many(self, messages: Iterable[ChatMessage]) -> list[SecureMessage]:
        """Tokenize all messages concurrently, append in input order."""
        entries = await asyncio.gather(*(self._secure(m) for m in messages))
        self._entries.extend(entries)
        return list(entries)

    def snapshot_for_request(self) -> list[dict]:
        return [e.to_transport() for e in self._entries if e.marked_secure]

    async def _secure(self, message: ChatMessage) -> SecureMessage:
        # DetectionError propagates; the entry is never appended unsecured.
        content = await self._secure_content(message.content)
        return SecureMessage(
            role=message.role,
            content=content,
            tool_calls=message.tool_calls,
            tool_call_id=message.tool_call_id,
            marked_secure=True,
        )

    async def _secure_content(self, content: Any) -> Any:
        if content is None or content == "":
            return content
        if isinstance(content, str):
            structured = _maybe_json(content)
            if structured is None:
                return await self.tokenizer.tokenize(content)
            content = structured
        tokenized = await self.tokenizer.tokenize(content)
        return json.dumps(tokenized, default=str)


def _maybe_json(text: str) -> Any:
    """Parse JSON objects/arrays so each field is detected separately."""
    stripped = text.lstrip()
    if not stripped or stripped[0] not in "[{":
        return None
    try:
        value = json.loads(text)
    except ValueError:
        return None
    return value if isinstance(value, (dict, list)) else None
