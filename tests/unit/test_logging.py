"""Unit tests — structlog processors and context binding."""

from __future__ import annotations

import asyncio
import logging

import pytest

from safeact.logging import (
    _inject_context_vars,
    bind_plan_context,
    clear_plan_context,
    configure_logging,
    get_logger,
    redact_event,
)

pytestmark = pytest.mark.unit


class TestRedactEvent:
    def test_values_redacted_event_name_kept(self) -> None:
        event = {"event": "shell_run TOKEN=x", "command": "export API_TOKEN=abc123", "n": 3}
        out = redact_event(None, "info", event)
        assert out["event"] == "shell_run TOKEN=x"
        assert "abc123" not in out["command"]
        assert out["n"] == 3

    def test_nested_mapping(self) -> None:
        out = redact_event(None, "info", {"event": "e", "params": {"password": "p"}})
        assert out["params"] == {"password": "[REDACTED]"}


class TestPlanContext:
    async def test_context_injected_and_isolated_per_task(self) -> None:
        clear_plan_context()

        async def bound() -> dict:
            bind_plan_context(plan_id="abc", step_id=2, requested_by="cli")
            return _inject_context_vars(None, "info", {"event": "x"})

        inside = await asyncio.create_task(bound())
        assert inside == {"event": "x", "plan_id": "abc", "step_id": 2, "requested_by": "cli"}
        assert "plan_id" not in _inject_context_vars(None, "info", {"event": "y"})

    def test_clear(self) -> None:
        bind_plan_context(plan_id="p1")
        clear_plan_context()
        assert _inject_context_vars(None, "info", {"event": "x"}) == {"event": "x"}


class TestConfigure:
    def test_configure_sets_level_and_handler(self) -> None:
        root = logging.getLogger()
        saved_handlers, saved_level = root.handlers[:], root.level
        try:
            configure_logging(level="warning", format="json")
            assert root.level == logging.WARNING
            assert len(root.handlers) == 1
            assert logging.getLogger("httpx").level == logging.WARNING
            get_logger("safeact.test").info("ignored_below_level")
        finally:
            root.handlers = saved_handlers
            root.setLevel(saved_level)
