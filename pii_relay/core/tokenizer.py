"""
PII Tokenization Engine.

Walks arbitrary nested data (str / list / tuple / dict), asks the detection
collaborator about every string leaf, and swaps each detected literal for an
opaque token ``__PII_<uuid>__`` backed by the Token Store. ``detokenize`` is
the inverse and runs on the way back to the user or into a tool.

Containers are processed concurrently (asyncio.gather) and reassembled in
input order; dict keys are never touched.
"""

from __future__ import annotations
import asyncio
import logging
import re
from typing import Any, Iterable, Optional

from .detection import BaseDetector, JIRA_TICKET_ENTITY, Recognizer
from .errors import ReservedNamespaceError
from .models import DetectedSpan
from .token_store import TokenStore

logger = logging.getLogger(__name__)


TOKEN_PREFIX = "__PII_"
TOKEN_SUFFIX = "__"
TOKEN_ID_LENGTH = 36
TOKEN_PATTERN = re.compile(
    re.escape(TOKEN_PREFIX) + r"([a-f0-9-]{%d})" % TOKEN_ID_LENGTH + re.escape(TOKEN_SUFFIX)
)

DEFAULT_EXCLUDED_ENTITIES = frozenset({JIRA_TICKET_ENTITY})

_SAMPLE_TOKEN = f"{TOKEN_PREFIX}00000000-0000-4000-8000-000000000000{TOKEN_SUFFIX}"


def make_token(token_id: str) -> str:
    return f"{TOKEN_PREFIX}{token_id}{TOKEN_SUFFIX}"


def is_tokenized(text: str) -> bool:
    """A string carrying the prefix is treated as already tokenized."""
    return TOKEN_PREFIX in text


def check_reserved_namespace(recognizers: Iterable[Recognizer]) -> None:
    """Fail if a recognizer pattern could match the token format itself."""
    if not TOKEN_PATTERN.fullmatch(_SAMPLE_TOKEN):
        raise ReservedNamespaceError("Sample token does not match TOKEN_PATTERN")
    for recognizer in recognizers:
        for rule in recognizer.patterns:
            try:
                pattern = re.compile(rule.regex)
            except re.error as e:
                raise ReservedNamespaceError(
                    f"Recognizer '{recognizer.name}' pattern '{rule.name}' is not a valid regex: {e}"
                ) from e
            if pattern.search(_SAMPLE_TOKEN) or pattern.search(TOKEN_PREFIX):
                raise ReservedNamespaceError(
                    f"Recognizer '{recognizer.name}' pattern '{rule.name}' "
                    f"matches the reserved token namespace {TOKEN_PREFIX!r}"
                )


class PIITokenizer:
    """Reversible PII tokenization over one conversation's Token Store."""

    def __init__(
        self,
        detector: BaseDetector,
        store: TokenStore,
        excluded_entities: Optional[Iterable[str]] = None,
    ):
        self.detector = detector
        self.store = store
        self.excluded_entities = frozenset(
            DEFAULT_EXCLUDED_ENTITIES if excluded_entities is None else excluded_entities
        )
        check_reserved_namespace(getattr(detector, "recognizers", []))

    @property
    def conversation_id(self) -> str:
        return self.store.conversation_id

    # ── Encrypt path ───────────────────────────────────────────

    async def tokenize(self, value: Any) -> Any:
        """Replace PII in every string leaf of ``value`` with tokens.

        Raises DetectionError if the detection collaborator fails.
        """
        if value is None:
            return None
        if isinstance(value, str):
            if not value.strip():
                return value
            return await self._tokenize_string(value)
        if isinstance(value, (list, tuple)):
            items = await asyncio.gather(*(self.tokenize(item) for item in value))
            return type(value)(items) if isinstance(value, tuple) else list(items)
        if isinstance(value, dict):
            keys = list(value.keys())
            tokenized = await asyncio.gather(*(self.tokenize(value[k]) for k in keys))
            return dict(zip(keys, tokenized))
        return value

    async def _tokenize_string(self, text: str) -> str:
        if is_tokenized(text):
            return text

        spans = await self.detector.analyze(text)
        literals = self._distinct_literals(text, spans)
        if not literals:
            return text

        replacements: dict[str, str] = {}
        for literal in literals:
            replacements[literal] = make_token(
                self.store.put(literal, self.store.conversation_id)
            )

        # One pass over the original text, longest literal first, so a token
        # inserted for one literal is never rewritten by a later one.
        alternation = re.compile(
            "|".join(re.escape(lit) for lit in sorted(replacements, key=len, reverse=True))
        )
        redacted = alternation.sub(lambda m: replacements[m.group(0)], text)
        logger.debug(f"Tokenized {len(replacements)} distinct literal(s)")
        return redacted

    def _distinct_literals(self, text: str, spans: list[DetectedSpan]) -> list[str]:
        # Descending start: later spans are extracted first so earlier
        # offsets are never consumed after a shift.
        ordered = sorted(spans, key=lambda s: s.start, reverse=True)
        literals: dict[str, None] = {}
        for span in ordered:
            if span.entity_type in self.excluded_entities:
                continue
            literal = text[span.start:span.end]
            if literal:
                literals.setdefault(literal, None)
        return list(literals)

    # ── Decrypt path ───────────────────────────────────────────

    async def detokenize(self, value: Any) -> Any:
        """Resolve every token in every string leaf of ``value``.

        Unknown tokens are left in place.
        """
        if isinstance(value, str):
            return self._detokenize_string(value)
        if isinstance(value, (list, tuple)):
            items = await asyncio.gather(*(self.detokenize(item) for item in value))
            return type(value)(items) if isinstance(value, tuple) else list(items)
        if isinstance(value, dict):
            keys = list(value.keys())
            resolved = await asyncio.gather(*(self.detokenize(value[k]) for k in keys))
            return dict(zip(keys, resolved))
        return value

    def _detokenize_string(self, text: str) -> str:
        if TOKEN_PREFIX not in text:
            return text

        def _resolve(match: re.Match) -> str:
            original = self.store.get(match.group(1))
            if original is None:
                logger.debug("Unresolvable token left in place")
                return match.group(0)
            return original

        # Matches are found on the untouched input; replacements are not rescanned.
        return TOKEN_PATTERN.sub(_resolve, text)
