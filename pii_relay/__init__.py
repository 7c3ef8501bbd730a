"""PII-safe tool-calling agents: reversible tokenization around an LLM tool loop."""

from .core.agent import Agent
from .core.delegation import AgentDirectory, Delegation
from .core.detection import PresidioAnalyzerClient, StaticDetector
from .core.errors import (
    AgentDidNotConvergeError,
    DetectionError,
    ModelProviderError,
    PIIRelayError,
)
from .core.models import ChatMessage, DetectedSpan, ToolCallRequest
from .core.token_store import TokenStore
from .core.tokenizer import PIITokenizer
from .core.tool_registry import ToolRegistry

__version__ = "0.1.0"

__all__ = [
    "Agent",
    "AgentDirectory",
    "AgentDidNotConvergeError",
    "ChatMessage",
    "Delegation",
    "DetectedSpan",
    "DetectionError",
    "ModelProviderError",
    "PIIRelayError",
    "PIITokenizer",
    "PresidioAnalyzerClient",
    "StaticDetector",
    "TokenStore",
    "ToolCallRequest",
    "ToolRegistry",
]
