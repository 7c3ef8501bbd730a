"""
Error Catalog — structured error codes and the exception hierarchy.

Every fatal error in the relay maps to a code (E1xxx–E5xxx) and a category.
Tool failures are not in here: those are caught per call and returned to the
model as tokenized ``{"error": ...}`` payloads.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCategory(Enum):
    DETECTION = "detection"    # E1xxx
    MODEL = "model"            # E2xxx
    TOOL = "tool"              # E3xxx
    AGENT = "agent"            # E4xxx
    CONFIG = "config"          # E5xxx


class ErrorCode(Enum):
    # Detection collaborator (E1xxx)
    DETECTION_UNREACHABLE = "E1001"
    DETECTION_BAD_STATUS = "E1002"
    DETECTION_MALFORMED_RESPONSE = "E1003"

    # Model collaborator (E2xxx)
    MODEL_REQUEST_FAILED = "E2001"
    MODEL_EMPTY_RESPONSE = "E2002"

    # Tools (E3xxx)
    TOOL_DELEGATION_TOO_DEEP = "E3002"

    # Agent loop (E4xxx)
    AGENT_DID_NOT_CONVERGE = "E4001"

    # Configuration (E5xxx)
    CONFIG_INVALID_VALUE = "E5001"
    CONFIG_RESERVED_NAMESPACE = "E5002"


_PREFIX_TO_CATEGORY: Dict[str, ErrorCategory] = {
    "1": ErrorCategory.DETECTION,
    "2": ErrorCategory.MODEL,
    "3": ErrorCategory.TOOL,
    "4": ErrorCategory.AGENT,
    "5": ErrorCategory.CONFIG,
}


def category_for(code: ErrorCode) -> ErrorCategory:
    return _PREFIX_TO_CATEGORY[code.value[1]]


class PIIRelayError(Exception):
    """Base class for every fatal relay error."""

    default_code: ErrorCode = ErrorCode.CONFIG_INVALID_VALUE

    def __init__(self, message: str, code: Optional[ErrorCode] = None):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code

    @property
    def category(self) -> ErrorCategory:
        return category_for(self.code)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code.value,
            "category": self.category.value,
            "message": self.message,
        }

    def __str__(self) -> str:
        return f"[{self.code.value}] {self.message}"


class DetectionError(PIIRelayError):
    """The detection collaborator failed; fatal to the current turn."""
    default_code = ErrorCode.DETECTION_UNREACHABLE


class ModelProviderError(PIIRelayError):
    """The model collaborator failed; propagates out of ``Agent.ask``."""
    default_code = ErrorCode.MODEL_REQUEST_FAILED


class AgentDidNotConvergeError(PIIRelayError):
    """The loop used its whole iteration budget without a terminal response."""
    default_code = ErrorCode.AGENT_DID_NOT_CONVERGE

    def __init__(self, agent_name: str, max_iterations: int):
        super().__init__(
            f"Agent '{agent_name}' did not reach a final answer "
            f"within {max_iterations} model calls"
        )
        self.agent_name = agent_name
        self.max_iterations = max_iterations


class DelegationDepthError(PIIRelayError):
    """Delegation nested deeper than the configured bound, or back into an agent mid-turn."""
    default_code = ErrorCode.TOOL_DELEGATION_TOO_DEEP


class ReservedNamespaceError(PIIRelayError):
    """The token format collides with a configured recognizer."""
    default_code = ErrorCode.CONFIG_RESERVED_NAMESPACE


class ConfigError(PIIRelayError):
    default_code = ErrorCode.CONFIG_INVALID_VALUE
