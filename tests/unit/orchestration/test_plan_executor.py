"""Unit tests — PlanExecutor (scheduling, abort cascade, retries, progress)."""

from __future__ import annotations

import asyncio
from typing import Any
from unittest.mock import MagicMock

import pytest

from safeact.events.models import PlanStepFinished, PlanStepStarted
from safeact.logging import _inject_context_vars, clear_plan_context
from safeact.orchestration.executor import SKIPPED_ABORTED, PlanExecutor
from safeact.orchestration.models import (
    ExecutionPlan,
    ExecutionPlanStep,
    PlanContext,
    RetryPolicy,
    StepStatus,
)
from safeact.tools.base import FailureKind, ToolContext, ToolResult

pytestmark = pytest.mark.unit

OK = ToolResult.ok("done")
ERROR = ToolResult.fail("disk busy", FailureKind.ERROR)
DENIED = ToolResult.fail("Path is denied: ~/.ssh", FailureKind.DENIED)


class FakeTools:
    """Stands in for ``execute_tool``: scripted outcomes keyed by tool name."""

    def __init__(self, script: dict[str, list[ToolResult]] | None = None, delay: float = 0.0):
        self.script = {name: list(outcomes) for name, outcomes in (script or {}).items()}
        self.delay = delay
        self.calls: list[tuple[str, str | None]] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def __call__(
        self, name: str, params: Any, context: ToolContext, call_id: str | None = None
    ) -> ToolResult:
        self.calls.append((name, call_id))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            delay = params.get("delay", self.delay) if isinstance(params, dict) else self.delay
            if delay:
                await asyncio.sleep(delay)
            outcomes = self.script.get(name)
            if not outcomes:
                return OK
            return outcomes.pop(0) if len(outcomes) > 1 else outcomes[0]
        finally:
            self.in_flight -= 1

    def called(self, name: str) -> int:
        return sum(1 for n, _ in self.calls if n == name)


def _step(step_id: int, tool: str, depends_on: list[int] | None = None, **kw: Any):
    return ExecutionPlanStep(
        id=step_id,
        description=f"step {step_id}",
        tool=tool,
        depends_on=depends_on or [],
        **kw,
    )


def _plan(*steps: ExecutionPlanStep) -> ExecutionPlan:
    return ExecutionPlan(goal="test", steps=list(steps))


def _context(events: list[Any] | None = None) -> PlanContext:
    return PlanContext(
        sandbox=MagicMock(),
        requested_by="test",
        on_event=events.append if events is not None else None,
    )


class TestHappyPath:
    async def test_sequential_dependencies(self) -> None:
        tools = FakeTools()
        plan = _plan(_step(1, "a"), _step(2, "b", [1]), _step(3, "c", [2]))

        result = await PlanExecutor(execute_tool_fn=tools).execute_plan(plan, _context())

        assert result.aborted is False
        assert [r.status for r in result.results] == [StepStatus.SUCCEEDED] * 3
        assert [name for name, _ in tools.calls] == ["a", "b", "c"]
        assert result.completed_steps == result.total_steps == 3
        assert result.get(1).output == "done"

    async def test_call_id_includes_plan_and_step(self) -> None:
        tools = FakeTools()
        plan = _plan(_step(4, "a"))
        await PlanExecutor(execute_tool_fn=tools).execute_plan(plan, _context())
        assert tools.calls == [("a", f"{plan.plan_id}:4")]

    async def test_events_per_step(self) -> None:
        events: list[Any] = []
        plan = _plan(_step(1, "a"), _step(2, "b", [1]))

        await PlanExecutor(execute_tool_fn=FakeTools()).execute_plan(plan, _context(events))

        assert [type(e) for e in events] == [
            PlanStepStarted, PlanStepFinished, PlanStepStarted, PlanStepFinished,
        ]
        assert [e.percent_complete for e in events if isinstance(e, PlanStepFinished)] == [50, 100]


class TestAbort:
    async def test_failure_skips_dependents(self) -> None:
        tools = FakeTools({"b": [DENIED]})
        events: list[Any] = []
        plan = _plan(_step(1, "a"), _step(2, "b", [1]), _step(3, "c", [2]))

        result = await PlanExecutor(execute_tool_fn=tools).execute_plan(plan, _context(events))

        assert result.aborted is True
        assert [r.status for r in result.results] == [
            StepStatus.SUCCEEDED, StepStatus.FAILED, StepStatus.SKIPPED,
        ]
        assert result.get(2).error == "Path is denied: ~/.ssh"
        assert result.get(3).error == SKIPPED_ABORTED
        assert tools.called("c") == 0
        # Skipped steps emit nothing.
        assert {e.step_id for e in events} == {1, 2}

    async def test_running_steps_finish_after_abort(self) -> None:
        tools = FakeTools({"fail": [DENIED]})
        plan = _plan(
            _step(1, "fail"),
            _step(2, "slow", params={"delay": 0.05}),
            _step(3, "after", [2]),
        )

        result = await PlanExecutor(execute_tool_fn=tools).execute_plan(plan, _context())

        assert result.aborted is True
        assert result.get(2).status is StepStatus.SUCCEEDED
        assert result.get(3).status is StepStatus.SKIPPED

    async def test_queued_steps_skip_after_abort(self) -> None:
        tools = FakeTools({"fail": [DENIED]}, delay=0.01)
        plan = _plan(_step(1, "fail"), _step(2, "x"), _step(3, "y"))

        result = await PlanExecutor(max_concurrency=1, execute_tool_fn=tools).execute_plan(
            plan, _context()
        )

        assert result.aborted is True
        assert result.get(1).status is StepStatus.FAILED
        assert [result.get(i).status for i in (2, 3)] == [StepStatus.SKIPPED] * 2
        assert tools.calls == [("fail", f"{plan.plan_id}:1")]

    async def test_can_fail_step_does_not_abort(self) -> None:
        tools = FakeTools({"optional": [DENIED]})
        plan = _plan(
            _step(1, "optional", can_fail=True, fallback="Ask the user instead"),
            _step(2, "b", [1]),
        )

        result = await PlanExecutor(execute_tool_fn=tools).execute_plan(plan, _context())

        assert result.aborted is False
        assert result.get(1).status is StepStatus.FAILED
        assert result.get(1).fallback == "Ask the user instead"
        assert result.get(2).status is StepStatus.SUCCEEDED

    async def test_invalid_graph_skips_everything(self) -> None:
        tools = FakeTools()
        events: list[Any] = []
        plan = _plan(_step(1, "a"), _step(2, "b", [9]))

        result = await PlanExecutor(execute_tool_fn=tools).execute_plan(plan, _context(events))

        assert result.aborted is True
        assert all(r.status is StepStatus.SKIPPED for r in result.results)
        assert result.get(2).error == "Step 2 depends on unknown step 9"
        assert tools.calls == []
        assert events == []


class TestRetry:
    async def test_retryable_error_retried(self) -> None:
        tools = FakeTools({"flaky": [ERROR, OK]})
        plan = _plan(_step(1, "flaky"))

        result = await PlanExecutor(
            retry=RetryPolicy(max_retries=2), execute_tool_fn=tools
        ).execute_plan(plan, _context())

        assert result.get(1).status is StepStatus.SUCCEEDED
        assert result.get(1).attempts == 2

    async def test_retries_bounded(self) -> None:
        tools = FakeTools({"broken": [ERROR]})
        plan = _plan(_step(1, "broken"))

        result = await PlanExecutor(
            retry=RetryPolicy(max_retries=1), execute_tool_fn=tools
        ).execute_plan(plan, _context())

        assert result.get(1).status is StepStatus.FAILED
        assert result.get(1).attempts == 2
        assert tools.called("broken") == 2

    @pytest.mark.parametrize("failure", [DENIED, ToolResult.fail("bad", FailureKind.INVALID)])
    async def test_non_retryable_not_retried(self, failure: ToolResult) -> None:
        tools = FakeTools({"t": [failure]})
        result = await PlanExecutor(
            retry=RetryPolicy(max_retries=3), execute_tool_fn=tools
        ).execute_plan(_plan(_step(1, "t")), _context())

        assert result.get(1).attempts == 1
        assert tools.called("t") == 1

    async def test_exception_becomes_failure(self) -> None:
        async def crashing(name: str, params: Any, context: Any, call_id: Any = None) -> Any:
            raise RuntimeError("tool exploded")

        result = await PlanExecutor(
            retry=RetryPolicy(max_retries=0), execute_tool_fn=crashing
        ).execute_plan(_plan(_step(1, "a")), _context())

        assert result.get(1).status is StepStatus.FAILED
        assert result.get(1).error == "tool exploded"
        assert result.aborted is True

    def test_backoff(self) -> None:
        policy = RetryPolicy(max_retries=3, delay_seconds=0.5, backoff_factor=2.0)
        assert policy.max_attempts == 4
        assert [policy.delay_for_attempt(n) for n in (1, 2, 3)] == [0.5, 1.0, 2.0]


class TestConcurrency:
    async def test_bounded_parallelism(self) -> None:
        tools = FakeTools(delay=0.02)
        plan = _plan(*(_step(i, f"t{i}") for i in range(1, 6)))

        result = await PlanExecutor(max_concurrency=2, execute_tool_fn=tools).execute_plan(
            plan, _context()
        )

        assert result.completed_steps == 5
        assert tools.max_in_flight == 2

    async def test_progress_is_monotonic(self) -> None:
        events: list[Any] = []
        tools = FakeTools(delay=0.01)
        plan = _plan(*(_step(i, f"t{i}") for i in range(1, 5)), _step(5, "last", [1, 2, 3, 4]))

        await PlanExecutor(max_concurrency=4, execute_tool_fn=tools).execute_plan(
            plan, _context(events)
        )

        percents = [e.percent_complete for e in events if isinstance(e, PlanStepFinished)]
        assert percents == sorted(percents)
        assert percents[-1] == 100

    def test_invalid_concurrency(self) -> None:
        with pytest.raises(ValueError):
            PlanExecutor(max_concurrency=0)


class TestLogContext:
    async def test_steps_log_with_plan_context(self) -> None:
        clear_plan_context()
        seen: list[dict[str, Any]] = []

        async def tool(name: str, params: Any, context: ToolContext, call_id: Any = None):
            seen.append(_inject_context_vars(None, "info", {"event": "tool"}))
            return OK

        plan = _plan(_step(1, "a"), _step(2, "b", [1]))
        await PlanExecutor(execute_tool_fn=tool).execute_plan(plan, _context())

        assert [record["step_id"] for record in seen] == [1, 2]
        assert {record["plan_id"] for record in seen} == {plan.plan_id}
        assert {record["requested_by"] for record in seen} == {"test"}

    async def test_context_cleared_after_run(self) -> None:
        clear_plan_context()
        await PlanExecutor(execute_tool_fn=FakeTools()).execute_plan(
            _plan(_step(1, "a")), _context()
        )
        assert _inject_context_vars(None, "info", {"event": "after"}) == {"event": "after"}

    async def test_context_cleared_when_plan_invalid(self) -> None:
        clear_plan_context()
        plan = _plan(_step(1, "a", [2]))
        result = await PlanExecutor(execute_tool_fn=FakeTools()).execute_plan(plan, _context())

        assert result.aborted is True
        assert _inject_context_vars(None, "info", {"event": "after"}) == {"event": "after"}
