"""
Detection collaborator clients.

The PII classifier runs out of process (a Presidio-style analyzer). The relay
only depends on its request/response contract:

    POST /analyze {text, language, ad_hoc_recognizers}
      → [{start, end, entity_type, score}, ...]

Any transport failure, non-2xx status or malformed body raises DetectionError.
Text is never passed through unprotected when detection fails.
"""

from __future__ import annotations
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Optional

import httpx

from .errors import DetectionError, ErrorCode
from .models import DetectedSpan

logger = logging.getLogger(__name__)


@dataclass
class PatternRule:
    """One regex inside an ad-hoc recognizer."""
    name: str
    regex: str
    score: float

    def to_dict(self) -> dict:
        return {"name": self.name, "regex": self.regex, "score": self.score}


@dataclass
class Recognizer:
    """Supplementary pattern recognizer sent alongside each analyze request."""
    name: str
    supported_entity: str
    patterns: list[PatternRule] = field(default_factory=list)
    context: list[str] = field(default_factory=list)
    supported_language: str = "en"

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "supported_language": self.supported_language,
            "patterns": [p.to_dict() for p in self.patterns],
            "context": list(self.context),
            "supported_entity": self.supported_entity,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Recognizer":
        return cls(
            name=data["name"],
            supported_entity=data["supported_entity"],
            patterns=[PatternRule(**p) for p in data.get("patterns", [])],
            context=list(data.get("context", [])),
            supported_language=data.get("supported_language", "en"),
        )


# Ticket keys look like names/IDs to the default model; recognise them
# explicitly so they can be excluded from tokenization afterwards.
JIRA_TICKET_ENTITY = "JIRA_TICKET_NUMBER"

JIRA_TICKET_RECOGNIZER = Recognizer(
    name="JIRA Ticket Recognizer",
    supported_entity=JIRA_TICKET_ENTITY,
    patterns=[
        PatternRule("jira_ticket_standard", r"([A-Z]{2,10}-[0-9]{1,5})", 0.85),
        PatternRule("jira_ticket_extended", r"(?:^|\s)([A-Z]{2,10}-\d+)(?:$|\s)", 0.95),
        PatternRule("jira_ticket_with_prefix", r"(?:jira|ticket|issue|#)\s*([A-Z]{2,10}-\d+)", 0.98),
    ],
    context=["jira", "ticket", "issue", "story", "bug", "task", "project"],
)

DEFAULT_RECOGNIZERS: tuple[Recognizer, ...] = (JIRA_TICKET_RECOGNIZER,)


class BaseDetector(ABC):
    """Abstract detection collaborator."""

    recognizers: list[Recognizer]

    @abstractmethod
    async def analyze(self, text: str) -> list[DetectedSpan]:
        """Return the PII spans found in ``text``."""

    @property
    def detector_name(self) -> str:
        return self.__class__.__name__


def parse_spans(payload: Any) -> list[DetectedSpan]:
    """Validate an analyzer response body into DetectedSpan objects."""
    if not isinstance(payload, list):
        raise DetectionError(
            f"Analyzer returned {type(payload).__name__}, expected a list",
            ErrorCode.DETECTION_MALFORMED_RESPONSE,
        )
    spans = []
    for item in payload:
        try:
            spans.append(DetectedSpan(
                start=int(item["start"]),
                end=int(item["end"]),
                entity_type=str(item["entity_type"]),
                score=float(item.get("score", 0.0)),
            ))
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise DetectionError(
                f"Malformed analyzer span {item!r}: {e}",
                ErrorCode.DETECTION_MALFORMED_RESPONSE,
            ) from e
    return spans


class PresidioAnalyzerClient(BaseDetector):
    """HTTP client for a Presidio analyzer service."""

    def __init__(
        self,
        base_url: str = "http://localhost:5002",
        language: str = "en",
        timeout: float = 30.0,
        recognizers: Optional[Iterable[Recognizer]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.language = language
        self.timeout = timeout
        self.recognizers = list(DEFAULT_RECOGNIZERS if recognizers is None else recognizers)
        self._transport = transport

    def build_request(self, text: str) -> dict:
        return {
            "text": text,
            "language": self.language,
            "ad_hoc_recognizers": [r.to_dict() for r in self.recognizers],
        }

    async def analyze(self, text: str) -> list[DetectedSpan]:
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(
                    f"{self.base_url}/analyze",
                    json=self.build_request(text),
                )
                response.raise_for_status()
                payload = response.json()
        except httpx.HTTPStatusError as e:
            raise DetectionError(
                f"Analyzer at {self.base_url} returned HTTP {e.response.status_code}",
                ErrorCode.DETECTION_BAD_STATUS,
            ) from e
        except httpx.HTTPError as e:
            raise DetectionError(
                f"Cannot reach analyzer at {self.base_url}: {e}",
                ErrorCode.DETECTION_UNREACHABLE,
            ) from e
        except ValueError as e:
            raise DetectionError(
                f"Analyzer returned a non-JSON body: {e}",
                ErrorCode.DETECTION_MALFORMED_RESPONSE,
            ) from e

        spans = parse_spans(payload)
        logger.debug(f"Analyzer reported {len(spans)} spans over {len(text)} chars")
        return spans


class StaticDetector(BaseDetector):
    """Offline detector driven by a callable; used by tests and local runs."""

    def __init__(
        self,
        detect: Callable[[str], Iterable[DetectedSpan]],
        recognizers: Optional[Iterable[Recognizer]] = None,
    ):
        self._detect = detect
        self.recognizers = list(recognizers or [])
        self.calls: list[str] = []

    async def analyze(self, text: str) -> list[DetectedSpan]:
        self.calls.append(text)
        return list(self._detect(text))


def create_detector(config) -> BaseDetector:
    """Build the analyzer client from the ``detection`` config section."""
    extra = [Recognizer.from_dict(r) for r in config.get("detection.recognizers", []) or []]
    return PresidioAnalyzerClient(
        base_url=config.get("detection.base_url", "http://localhost:5002"),
        language=config.get("detection.language", "en"),
        timeout=float(config.get("detection.timeout", 30.0)),
        recognizers=[*DEFAULT_RECOGNIZERS, *extra],
    )
