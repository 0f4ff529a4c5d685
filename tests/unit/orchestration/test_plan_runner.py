"""Unit tests — PlanRunner (planning gate, plan approval, event bridging)."""

from __future__ import annotations

import asyncio
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from safeact.events.bus import TOPIC_PLANS, TOPIC_TOOLS, LocalEventBus
from safeact.events.models import (
    PlanApprovalRequested,
    PlanCreated,
    PlanStepFinished,
    ToolCallStarted,
    dispatch_event,
)
from safeact.orchestration.executor import PlanExecutor
from safeact.orchestration.models import ExecutionPlan, ExecutionPlanStep, StepStatus
from safeact.orchestration.runner import PLAN_CANCELLED, PlanRunner
from safeact.tools.base import ToolContext, ToolResult

pytestmark = pytest.mark.unit

MULTI_STEP = "list my docs then archive the old ones"


def _plan(side_effects: bool) -> ExecutionPlan:
    return ExecutionPlan(
        goal="Archive docs",
        steps=[
            ExecutionPlanStep(id=1, description="List docs", tool="list_directory"),
            ExecutionPlanStep(
                id=2, description="Move file", tool="move_file", depends_on=[1]
            ),
        ],
        has_side_effects=side_effects,
    )


def _planner(plan: ExecutionPlan | None) -> Any:
    planner = MagicMock()
    planner.create_plan = AsyncMock(return_value=plan)
    return planner


async def _tool_fn(
    name: str, params: Any, context: ToolContext, call_id: str | None = None
) -> ToolResult:
    await dispatch_event(context.on_event, ToolCallStarted(call_id=call_id or "", tool_name=name))
    return ToolResult.ok(name)


def _runner(plan: ExecutionPlan | None, **kwargs: Any) -> tuple[PlanRunner, Any, AsyncMock]:
    tools = AsyncMock(side_effect=_tool_fn)
    planner = _planner(plan)
    runner = PlanRunner(planner, PlanExecutor(execute_tool_fn=tools), **kwargs)
    return runner, planner, tools


class TestPlanningGate:
    async def test_single_step_request_skips_planner(self) -> None:
        runner, planner, _ = _runner(_plan(False))
        assert await runner.run("read notes.md", sandbox=MagicMock()) is None
        planner.create_plan.assert_not_called()

    async def test_no_plan(self) -> None:
        runner, planner, tools = _runner(None)
        assert await runner.run(MULTI_STEP, sandbox=MagicMock()) is None
        planner.create_plan.assert_awaited_once()
        tools.assert_not_called()


class TestExecution:
    async def test_read_only_plan_runs_without_approval(self) -> None:
        runner, _, tools = _runner(_plan(False))
        approve = AsyncMock(return_value=False)

        outcome = await runner.run(MULTI_STEP, sandbox=MagicMock(), on_plan_approval=approve)

        assert outcome is not None
        assert outcome.cancelled is False
        approve.assert_not_called()
        assert outcome.execution is not None
        assert outcome.execution.completed_steps == 2
        assert tools.await_count == 2
        assert outcome.summary.startswith("Plan executed: Archive docs")

    async def test_approved_side_effect_plan(self) -> None:
        runner, _, tools = _runner(_plan(True))
        approve = AsyncMock(return_value=True)

        outcome = await runner.run(
            MULTI_STEP, sandbox=MagicMock(), requested_by="chat:7", on_plan_approval=approve
        )

        assert outcome is not None
        approve.assert_awaited_once_with(outcome.plan)
        assert [r.status for r in outcome.execution.results] == [StepStatus.SUCCEEDED] * 2
        context = tools.call_args.args[2]
        assert context.requested_by == "chat:7"


class TestPlanApproval:
    @pytest.mark.parametrize("answer", [False, None])
    async def test_rejected(self, answer: Any) -> None:
        runner, _, tools = _runner(_plan(True))
        on_plan_approval = AsyncMock(return_value=answer) if answer is not None else None

        outcome = await runner.run(
            MULTI_STEP, sandbox=MagicMock(), on_plan_approval=on_plan_approval
        )

        assert outcome is not None
        assert outcome.cancelled is True
        assert outcome.execution is None
        assert outcome.summary.endswith(PLAN_CANCELLED)
        assert "This plan has side effects" in outcome.summary
        tools.assert_not_called()

    async def test_timeout_cancels(self) -> None:
        runner, _, tools = _runner(_plan(True), plan_approval_timeout=0.05)

        async def never(plan: ExecutionPlan) -> bool:
            await asyncio.sleep(10)
            return True

        outcome = await runner.run(MULTI_STEP, sandbox=MagicMock(), on_plan_approval=never)

        assert outcome is not None
        assert outcome.cancelled is True
        tools.assert_not_called()

    async def test_callback_error_cancels(self) -> None:
        runner, _, tools = _runner(_plan(True))
        approve = AsyncMock(side_effect=ConnectionError("chat offline"))

        outcome = await runner.run(MULTI_STEP, sandbox=MagicMock(), on_plan_approval=approve)

        assert outcome is not None
        assert outcome.cancelled is True
        tools.assert_not_called()


class TestEvents:
    async def test_callback_and_bus(self) -> None:
        bus = LocalEventBus()
        published: list[tuple[str, str]] = []
        bus.subscribe(lambda topic, event: published.append((topic, event["type"])))
        runner, _, _ = _runner(_plan(True), bus=bus)
        events: list[Any] = []

        await runner.run(
            MULTI_STEP,
            sandbox=MagicMock(),
            on_plan_approval=AsyncMock(return_value=True),
            on_event=events.append,
        )

        assert isinstance(events[0], PlanCreated)
        assert isinstance(events[1], PlanApprovalRequested)
        assert events[0].plan["goal"] == "Archive docs"
        assert isinstance(events[-1], PlanStepFinished)
        assert events[-1].percent_complete == 100

        assert len(published) == len(events)
        assert published[0] == (TOPIC_PLANS, "plan_created")
        assert (TOPIC_TOOLS, "tool_call_started") in published
        assert all(
            topic == TOPIC_PLANS for topic, kind in published if not kind.startswith("tool_")
        )
