"""
Base tool class — all tools inherit from this.
Defines the standard interface: name, description, schema, execute().
"""

from __future__ import annotations
import inspect
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional

from ..core.models import ToolSchema


class BaseTool(ABC):
    """Abstract base class for agent tools.

    ``execute`` receives the detokenized arguments as keyword arguments and
    returns any value, or a ``Delegation`` to hand the turn to another agent.
    Raising is fine: the dispatcher turns exceptions into error payloads.
    """

    name: str = ""
    description: str = ""
    input_schema: dict = {"type": "object", "properties": {}}

    @abstractmethod
    async def execute(self, **kwargs) -> Any:
        pass

    async def invoke(self, arguments: Any) -> Any:
        if not isinstance(arguments, dict):
            raise TypeError(
                f"Tool '{self.name}' expects an object of arguments, "
                f"got {type(arguments).__name__}"
            )
        return await self.execute(**arguments)

    def get_schema(self) -> ToolSchema:
        return ToolSchema(
            name=self.name,
            description=self.description,
            input_schema=self.input_schema,
        )


class FunctionTool(BaseTool):
    """Wrap a plain (sync or async) callable as a tool."""

    def __init__(
        self,
        fn: Callable[..., Any],
        name: Optional[str] = None,
        description: Optional[str] = None,
        input_schema: Optional[dict] = None,
    ):
        self._fn = fn
        self.name = name or fn.__name__
        self.description = description or (inspect.getdoc(fn) or "").strip()
        self.input_schema = input_schema or {"type": "object", "properties": {}}

    async def execute(self, **kwargs) -> Any:
        result = self._fn(**kwargs)
        if inspect.isawaitable(result):
            result = await result
        return result

    def __repr__(self) -> str:
        return f"FunctionTool({self.name!r})"
