"""Tool registry: unique names and dispatch of serialized calls."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

import structlog

from pr_agent_tools.codec import SerializedCall, SerializedResult, TextFormat
from pr_agent_tools.parameters import ToolDescriptor
from pr_agent_tools.tools import AgentTool, ToolSpec

logger = structlog.get_logger()


class DuplicateToolError(ValueError):
    """Raised when two tools are registered under the same name."""


class UnknownToolError(LookupError):
    """Raised when a call names a tool that is not registered."""

    def __init__(self, tool_name: str, available: Iterable[str]) -> None:
        available_names = ", ".join(sorted(available)) or "none"
        super().__init__(f"Unknown tool '{tool_name}'. Available tools: {available_names}.")
        self.tool_name = tool_name


class ToolRegistry:
    """Collection of agent tools keyed by name."""

    def __init__(self, tools: Iterable[AgentTool[Any, Any]] = ()) -> None:
        self._tools: dict[str, AgentTool[Any, Any]] = {}
        for tool in tools:
            self.register(tool)

    @classmethod
    def from_specs(
        cls,
        specs: Iterable[ToolSpec[Any, Any]],
        *,
        text_format: TextFormat | None = None,
    ) -> ToolRegistry:
        """Build a registry wrapping every spec with the same result format."""
        registry = cls()
        for spec in specs:
            registry.register_spec(spec, text_format=text_format)
        return registry

    def register(self, tool: AgentTool[Any, Any]) -> None:
        """Register a tool, rejecting name clashes."""
        if tool.name in self._tools:
            raise DuplicateToolError(f"Tool '{tool.name}' is already registered.")
        self._tools[tool.name] = tool
        logger.debug(
            "tool_registered",
            tool_name=tool.name,
            parameters=[param.name for param in tool.descriptor.parameters],
        )

    def register_spec(
        self,
        spec: ToolSpec[Any, Any],
        *,
        text_format: TextFormat | None = None,
    ) -> AgentTool[Any, Any]:
        """Wrap and register a spec, returning the wrapper."""
        tool = AgentTool(spec, text_format=text_format)
        self.register(tool)
        return tool

    def get(self, name: str) -> AgentTool[Any, Any]:
        """Return a registered tool by name."""
        tool = self._tools.get(name)
        if tool is None:
            raise UnknownToolError(name, self._tools)
        return tool

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(self._tools)

    def descriptors(self) -> tuple[ToolDescriptor, ...]:
        """Return descriptors in registration order."""
        return tuple(tool.descriptor for tool in self._tools.values())

    def function_schemas(self) -> list[dict[str, Any]]:
        """Return function-calling schemas for every tool."""
        return [descriptor.to_function_schema() for descriptor in self.descriptors()]

    async def execute(self, call: SerializedCall) -> SerializedResult[Any]:
        """Dispatch a serialized call to the named tool."""
        return await self.get(call.tool_name).execute(call.payload)
