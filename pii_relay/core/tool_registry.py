"""
Tool Registry — the capability set of one agent.
Handles registration, validation of requested names and schema retrieval.
"""

from __future__ import annotations
from typing import Any, Callable, Optional

from .models import ToolCallRequest, ToolSchema


class ToolRegistry:
    """Name → tool mapping owned by a single agent."""

    def __init__(self, tools: Optional[list] = None):
        self._tools: dict = {}  # name -> BaseTool instance
        for tool in tools or []:
            self.register(tool)

    def register(self, tool) -> None:
        """Register a tool instance."""
        if not tool.name:
            raise ValueError(f"Tool {tool!r} has no name")
        self._tools[tool.name] = tool

    def register_function(
        self,
        fn: Callable[..., Any],
        name: Optional[str] = None,
        description: Optional[str] = None,
        input_schema: Optional[dict] = None,
    ):
        """Register a plain callable; returns the wrapping tool."""
        from ..tools.base import FunctionTool

        tool = FunctionTool(fn, name=name, description=description, input_schema=input_schema)
        self.register(tool)
        return tool

    def get_tool(self, name: str):
        if name not in self._tools:
            raise KeyError(f"Unknown tool: {name}. Available: {list(self._tools.keys())}")
        return self._tools[name]

    def is_valid(self, call: ToolCallRequest) -> bool:
        return bool(call.function_name) and call.function_name in self._tools

    def get_schemas(self) -> list[ToolSchema]:
        return [tool.get_schema() for tool in self._tools.values()]

    def list_tools(self) -> list[str]:
        return list(self._tools.keys())

    @property
    def tool_names(self) -> list[str]:
        return self.list_tools()

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)
