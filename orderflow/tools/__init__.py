"""Tool package exports."""

from .base import ToolContext, ToolResult, ToolSpec
from .executor import ToolBatch, ToolExecutor
from .registry import build_tool_registry

__all__ = [
    "ToolContext",
    "ToolResult",
    "ToolSpec",
    "ToolBatch",
    "ToolExecutor",
    "build_tool_registry",
]
