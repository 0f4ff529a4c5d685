"""Unit tests — tool catalog and execute_tool dispatch."""

from __future__ import annotations

from typing import Any
from unittest.mock import AsyncMock

import pytest

from safeact.events.models import ToolCallFinished, ToolCallStarted
from safeact.tools.base import CapabilityTool, FailureKind, ToolContext
from safeact.tools.registry import execute_tool, get_tool, get_tool_definitions, get_tools

pytestmark = pytest.mark.unit

EXPECTED_TOOLS = {
    "read_file", "write_file", "list_directory", "search_files", "move_file",
    "execute_command", "http_request",
    "create_scheduled_job", "list_scheduled_jobs", "manage_job",
    "ask_user", "report_progress",
}


class TestCatalog:
    def test_names(self) -> None:
        assert {tool.name for tool in get_tools()} == EXPECTED_TOOLS

    def test_definitions_match_catalog(self) -> None:
        definitions = get_tool_definitions()
        assert [d["name"] for d in definitions] == [t.name for t in get_tools()]
        assert all(d["description"] for d in definitions)

    def test_capability_bindings(self) -> None:
        bindings = {
            tool.name: (tool.capability, tool.action)
            for tool in get_tools()
            if isinstance(tool, CapabilityTool)
        }
        assert bindings["execute_command"] == ("shell", "run")
        assert bindings["http_request"] == ("network", "request")
        assert bindings["create_scheduled_job"] == ("scheduler", "create_job")
        assert "ask_user" not in bindings

    def test_get_unknown(self) -> None:
        assert get_tool("format_disk") is None


class TestExecuteTool:
    async def test_unknown_tool_skips_sandbox(self) -> None:
        sandbox = AsyncMock()
        events: list[Any] = []
        context = ToolContext(sandbox=sandbox, on_event=events.append)

        result = await execute_tool("format_disk", {}, context)

        assert result.success is False
        assert result.failure is FailureKind.UNKNOWN_TOOL
        assert result.error == "Unknown tool: format_disk"
        sandbox.execute.assert_not_called()
        assert events == []

    async def test_lifecycle_events(self, sandbox: Any) -> None:
        events: list[Any] = []
        context = ToolContext(sandbox=sandbox, on_event=events.append)

        result = await execute_tool(
            "read_file", {"path": "~/workspace/todo.txt"}, context, call_id="c1"
        )

        assert result.success is True
        assert events == [
            ToolCallStarted(call_id="c1", tool_name="read_file"),
            ToolCallFinished(call_id="c1", tool_name="read_file", success=True),
        ]

    async def test_async_callback_and_failure_event(self, sandbox: Any) -> None:
        events: list[Any] = []

        async def on_event(event: Any) -> None:
            events.append(event)

        context = ToolContext(sandbox=sandbox, on_event=on_event)
        await execute_tool("execute_command", {"command": "sudo reboot"}, context)

        finished = events[-1]
        assert isinstance(finished, ToolCallFinished)
        assert finished.success is False
        assert finished.error is not None
        assert events[0].call_id == finished.call_id
