"""Tool layer — the static, name-keyed tool catalog.

The catalog is built once at import time.  ``execute_tool`` is the single
entry point the ReAct loop and the plan executor use; an unknown name
returns a failed result without touching the sandbox.
"""

from __future__ import annotations

import uuid
from typing import Any

from safeact.events.models import ToolCallFinished, ToolCallStarted, dispatch_event
from safeact.logging import get_logger
from safeact.tools.base import FailureKind, Tool, ToolContext, ToolResult
from safeact.tools.filesystem import create_filesystem_tools
from safeact.tools.meta import create_meta_tools
from safeact.tools.system import (
    create_network_tools,
    create_scheduler_tools,
    create_shell_tools,
)

log = get_logger(__name__)


def _build_registry() -> dict[str, Tool]:
    tools: list[Tool] = [
        *create_filesystem_tools(),
        *create_shell_tools(),
        *create_network_tools(),
        *create_scheduler_tools(),
        *create_meta_tools(),
    ]
    registry: dict[str, Tool] = {}
    for tool in tools:
        if tool.name in registry:
            raise ValueError(f"Duplicate tool name: {tool.name}")
        registry[tool.name] = tool
    return registry


_REGISTRY: dict[str, Tool] = _build_registry()


def get_tools() -> list[Tool]:
    return list(_REGISTRY.values())


def get_tool(name: str) -> Tool | None:
    return _REGISTRY.get(name)


def get_tool_definitions() -> list[dict[str, Any]]:
    return [tool.definition() for tool in _REGISTRY.values()]


async def execute_tool(
    name: str,
    params: Any,
    context: ToolContext,
    call_id: str | None = None,
) -> ToolResult:
    """Run tool *name* with raw *params*.  Never raises for policy or input errors."""
    tool = _REGISTRY.get(name)
    if tool is None:
        log.warning("unknown_tool", tool=name)
        return ToolResult.fail(f"Unknown tool: {name}", FailureKind.UNKNOWN_TOOL)

    call_id = call_id or uuid.uuid4().hex[:12]
    await dispatch_event(context.on_event, ToolCallStarted(call_id=call_id, tool_name=name))
    result = await tool.run(params, context)
    await dispatch_event(
        context.on_event,
        ToolCallFinished(
            call_id=call_id, tool_name=name, success=result.success, error=result.error
        ),
    )
    log.debug(
        "tool_call_finished",
        tool=name,
        call_id=call_id,
        success=result.success,
        failure=result.failure.value if result.failure else None,
    )
    return result
