"""Tool registry, dispatcher and built-in workspace tools."""

from trustee.tools.builtin import Workspace, build_builtin_registry
from trustee.tools.dispatcher import ToolDispatcher
from trustee.tools.registry import RegisteredTool, ToolRegistry

__all__ = [
    "RegisteredTool",
    "ToolDispatcher",
    "ToolRegistry",
    "Workspace",
    "build_builtin_registry",
]
