"""Tool layer — the only bridge from LLM tool calls to sandbox capabilities."""

from safeact.tools.base import (
    CapabilityTool,
    FailureKind,
    Tool,
    ToolContext,
    ToolResult,
)
from safeact.tools.registry import execute_tool, get_tool, get_tool_definitions, get_tools

__all__ = [
    "Tool",
    "CapabilityTool",
    "ToolContext",
    "ToolResult",
    "FailureKind",
    "execute_tool",
    "get_tool",
    "get_tools",
    "get_tool_definitions",
]
