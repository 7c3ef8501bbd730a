"""
Token Store — append-only table of token id → original text.

Conversation-scoped and in-memory: one store per conversation, gone when the
process ends. Records are never updated or deleted, and ``put`` always inserts
a fresh record, even for text seen before.
"""

from __future__ import annotations
import logging
import uuid
from typing import Iterator, Optional

from .models import PIIMapping

logger = logging.getLogger(__name__)


class TokenStore:
    """In-memory PII mapping table for a single conversation."""

    def __init__(self, conversation_id: Optional[str] = None):
        self.conversation_id = conversation_id or str(uuid.uuid4())
        self._records: dict[str, PIIMapping] = {}

    @staticmethod
    def generate_id() -> str:
        """Random 36-char identifier (canonical UUID4 form)."""
        return str(uuid.uuid4())

    def put(self, original_text: str, conversation_id: Optional[str] = None) -> str:
        """Insert a new record and return its token id."""
        token_id = self.generate_id()
        while token_id in self._records:
            token_id = self.generate_id()
        self._records[token_id] = PIIMapping(
            token_id=token_id,
            original_text=original_text,
            conversation_id=conversation_id or self.conversation_id,
        )
        return token_id

    def get(self, token_id: str) -> Optional[str]:
        """Original text for ``token_id``, or None when unknown."""
        record = self._records.get(token_id)
        return record.original_text if record else None

    def get_record(self, token_id: str) -> Optional[PIIMapping]:
        return self._records.get(token_id)

    def records(self) -> Iterator[PIIMapping]:
        return iter(list(self._records.values()))

    @property
    def size(self) -> int:
        return len(self._records)

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, token_id: object) -> bool:
        return token_id in self._records

    def __repr__(self) -> str:
        # Never print original text
        return f"TokenStore(conversation_id={self.conversation_id!r}, size={self.size})"
