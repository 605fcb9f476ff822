"""Tool registry: runtime map from tool name to executor."""
from __future__ import annotations

import asyncio
import inspect
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Union

from trustee_llm.types.tools import ToolDefinition, ToolResult

# A raw result is normalised by the dispatcher: str, mapping, or ToolResult.
RawToolResult = Union[str, dict[str, Any], ToolResult, None]
ToolExecutor = Callable[[dict[str, Any]], Union[RawToolResult, Awaitable[RawToolResult]]]


@dataclass(frozen=True)
class RegisteredTool:
    """A tool definition paired with its executor.

    The executor takes the call input and returns a raw result. It may be a
    plain function (run in a worker thread) or a coroutine function.
    """

    definition: ToolDefinition
    executor: ToolExecutor

    @property
    def is_async(self) -> bool:
        return inspect.iscoroutinefunction(self.executor)


class ToolRegistry:
    """Registry of tools available to a session.

    Latest-wins on name collision. Insertion-order stable.
    """

    def __init__(self, tools: list[RegisteredTool] | None = None) -> None:
        self._tools: dict[str, RegisteredTool] = {}
        for tool in tools or []:
            self.register(tool)

    def register(self, tool: RegisteredTool) -> None:
        """Register a tool. Overwrites any existing tool with the same name."""
        self._tools[tool.definition.name] = tool

    def unregister(self, name: str) -> None:
        """Remove a tool by name. No-op if not found."""
        self._tools.pop(name, None)

    def get(self, name: str) -> RegisteredTool | None:
        return self._tools.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def list_tools(self) -> list[ToolDefinition]:
        """Return all tool definitions in registration order."""
        return [t.definition for t in self._tools.values()]

    def names(self) -> list[str]:
        return list(self._tools)

    async def execute(self, name: str, tool_input: dict[str, Any]) -> RawToolResult:
        """Run the named tool and return its raw result.

        Raises KeyError for an unknown name; executor exceptions propagate.
        """
        tool = self._tools[name]
        if tool.is_async:
            return await tool.executor(tool_input)
        result = await asyncio.to_thread(tool.executor, tool_input)
        if inspect.isawaitable(result):
            return await result
        return result
