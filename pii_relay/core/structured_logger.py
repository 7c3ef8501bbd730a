"""
Structured Logger — JSON logging, trace IDs and conversation context.

Every ``Agent.ask`` call gets a short trace id; nested delegated loops get
their own, so interleaved log lines from a delegation chain can be told
apart. Two output modes:

- **JSON mode** (`PII_RELAY_LOG_FORMAT=json`): each line is a JSON object.
- **Human mode** (default): traditional format with a `[trace_id agent]` prefix.

Log calls in the relay never carry raw PII; pass tokenized text only.
"""

from __future__ import annotations

import json
import logging
import os
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Optional


_CONTEXT_FIELDS = ("trace_id", "agent_name", "conversation_id", "tool_name")


@dataclass
class LogContext:
    """Immutable bag of contextual fields attached to every log line."""
    trace_id: str = ""
    agent_name: str = ""
    conversation_id: str = ""
    tool_name: str = ""
    extra: Dict[str, Any] = field(default_factory=dict)

    def merged_with(self, **kwargs: Any) -> "LogContext":
        """Return a *new* LogContext with the given fields overridden."""
        new_extra = {**self.extra, **kwargs.pop("extra", {})}
        data = {name: getattr(self, name) for name in _CONTEXT_FIELDS}
        data["extra"] = new_extra
        data.update(kwargs)
        return LogContext(**data)


class StructuredFormatter(logging.Formatter):
    """Emits each log record as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for ctx_field in _CONTEXT_FIELDS:
            val = getattr(record, ctx_field, "")
            if val:
                entry[ctx_field] = val

        log_extra = getattr(record, "log_extra", None)
        if log_extra:
            entry["extra"] = log_extra

        if record.exc_info and record.exc_info[1]:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


class HumanFormatter(logging.Formatter):
    """Traditional format with an optional [trace_id agent] prefix."""

    def __init__(self, fmt: Optional[str] = None, datefmt: Optional[str] = None):
        super().__init__(
            fmt=fmt or "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt=datefmt or "%H:%M:%S",
        )

    def format(self, record: logging.LogRecord) -> str:
        tags = " ".join(
            t for t in (getattr(record, "trace_id", ""), getattr(record, "agent_name", "")) if t
        )
        line = super().format(record)
        if not tags:
            return line
        prefix, sep, message = line.partition(f"{record.name}: ")
        return f"{prefix}{sep}[{tags}] {message}" if sep else f"[{tags}] {line}"


class TraceIDFilter(logging.Filter):
    """Fills context fields on records that did not set them."""

    def __init__(self, context: Optional[LogContext] = None):
        super().__init__()
        self.context = context or LogContext()

    def filter(self, record: logging.LogRecord) -> bool:
        for name in _CONTEXT_FIELDS:
            setattr(record, name, getattr(record, name, "") or getattr(self.context, name))
        return True


class StructuredLogger:
    """
    Logger wrapper that stamps context onto every record.

    Usage::

        log = StructuredLogger(__name__).with_context(agent_name="triage")
        log = log.with_context(trace_id=StructuredLogger.generate_trace_id())
        log.info("Model call", iteration=2)
    """

    def __init__(self, name: str, context: Optional[LogContext] = None):
        self._name = name
        self._logger = logging.getLogger(name)
        self._context = context or LogContext()

    def with_context(self, **kwargs: Any) -> "StructuredLogger":
        """Return a **new** StructuredLogger with merged context."""
        return StructuredLogger(self._name, context=self._context.merged_with(**kwargs))

    def debug(self, msg: str, **extra: Any) -> None:
        self._log(logging.DEBUG, msg, extra)

    def info(self, msg: str, **extra: Any) -> None:
        self._log(logging.INFO, msg, extra)

    def warning(self, msg: str, **extra: Any) -> None:
        self._log(logging.WARNING, msg, extra)

    def error(self, msg: str, **extra: Any) -> None:
        self._log(logging.ERROR, msg, extra)

    def _log(self, level: int, msg: str, extra: Dict[str, Any]) -> None:
        if not self._logger.isEnabledFor(level):
            return
        record = self._logger.makeRecord(
            name=self._name, level=level, fn="", lno=0, msg=msg, args=(), exc_info=None,
        )
        for name in _CONTEXT_FIELDS:
            setattr(record, name, getattr(self._context, name))
        merged = {**self._context.extra, **extra}
        if merged:
            record.log_extra = merged  # type: ignore[attr-defined]
        self._logger.handle(record)

    @staticmethod
    def generate_trace_id() -> str:
        """Generate a short 12-char hex trace ID."""
        return uuid.uuid4().hex[:12]

    @property
    def context(self) -> LogContext:
        return self._context

    def __repr__(self) -> str:
        return f"StructuredLogger({self._name!r}, context={self._context})"


def setup_structured_logging(
    json_mode: Optional[bool] = None,
    level: str = "WARNING",
    conversation_id: str = "",
) -> None:
    """
    Configure the root logger for structured output.

    Parameters
    ----------
    json_mode : bool or None
        If None, auto-detect from ``PII_RELAY_LOG_FORMAT`` env var
        (set to ``"json"`` to enable JSON mode).
    level : str
        Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
    conversation_id : str
        Default conversation id stamped on every record.
    """
    if json_mode is None:
        json_mode = os.getenv("PII_RELAY_LOG_FORMAT", "").lower() == "json"

    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.WARNING))
    root.handlers.clear()

    handler = logging.StreamHandler()
    if json_mode:
        handler.setFormatter(StructuredFormatter(datefmt="%Y-%m-%dT%H:%M:%S"))
    else:
        handler.setFormatter(HumanFormatter())
    handler.addFilter(TraceIDFilter(LogContext(conversation_id=conversation_id)))
    root.addHandler(handler)
