"""Orchestration layer — Plan executor.

The PlanExecutor runs an :class:`ExecutionPlan` through the tool layer:
  1. Build the execution graph (DAGScheduler); an invalid graph skips every
     step and marks the run aborted
  2. Start every step whose dependencies are terminal, bounded by
     ``max_concurrency``
  3. Each step emits ``plan_step_started`` then exactly one
     ``plan_step_finished``
  4. Retry steps that failed with a retryable error (never denials)
  5. A failure on a step with ``can_fail=False`` aborts the plan: running
     steps finish, nothing new starts, and every pending step is skipped

Every step goes through ``execute_tool``; there is no path from here to a
capability that bypasses the sandbox.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable

from safeact.events.models import PlanStepFinished, PlanStepStarted, dispatch_event
from safeact.exceptions import PlanValidationError
from safeact.logging import bind_plan_context, clear_plan_context, get_logger
from safeact.orchestration.dag import DAGScheduler
from safeact.orchestration.models import (
    ExecutionPlan,
    ExecutionPlanStep,
    PlanContext,
    PlanExecutionResult,
    RetryPolicy,
    StepResult,
    StepStatus,
)
from safeact.tools.base import FailureKind, ToolContext, ToolResult
from safeact.tools.registry import execute_tool

log = get_logger(__name__)

SKIPPED_ABORTED = "Skipped: plan aborted"

ExecuteToolFn = Callable[..., Awaitable[ToolResult]]


@dataclass
class _RunState:
    """Mutable bookkeeping for one ``execute_plan`` call."""

    plan: ExecutionPlan
    context: PlanContext
    results: dict[int, StepResult]
    semaphore: asyncio.Semaphore
    progress_lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    terminal: int = 0
    last_percent: int = 0
    aborted: bool = False

    def percent(self) -> int:
        value = round(self.terminal / len(self.results) * 100) if self.results else 100
        # Never report less than what was already emitted.
        self.last_percent = max(self.last_percent, value)
        return self.last_percent


class PlanExecutor:
    """Executes an ExecutionPlan end-to-end.

    Usage::

        executor = PlanExecutor(retry=RetryPolicy(max_retries=2))
        result = await executor.execute_plan(
            plan, PlanContext(sandbox=sandbox, on_event=callback)
        )
    """

    def __init__(
        self,
        retry: RetryPolicy | None = None,
        max_concurrency: int = 4,
        execute_tool_fn: ExecuteToolFn = execute_tool,
    ) -> None:
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1")
        self._retry = retry or RetryPolicy()
        self._max_concurrency = max_concurrency
        self._execute_tool = execute_tool_fn

    @property
    def retry(self) -> RetryPolicy:
        return self._retry

    # ------------------------------------------------------------------
    # Public entry point
    # ------------------------------------------------------------------

    async def execute_plan(
        self, plan: ExecutionPlan, context: PlanContext
    ) -> PlanExecutionResult:
        """Run *plan* and return one :class:`StepResult` per step, in plan order."""
        bind_plan_context(plan_id=plan.plan_id, requested_by=context.requested_by)
        try:
            return await self._execute(plan, context)
        finally:
            clear_plan_context()

    async def _execute(self, plan: ExecutionPlan, context: PlanContext) -> PlanExecutionResult:
        results = {
            step.id: StepResult(
                step_id=step.id,
                description=step.description,
                tool=step.tool,
                fallback=step.fallback,
            )
            for step in plan.steps
        }

        try:
            scheduler = DAGScheduler(plan)
        except PlanValidationError as exc:
            log.error("plan_invalid", plan_id=plan.plan_id, error=exc.message)
            for result in results.values():
                result.status = StepStatus.SKIPPED
                result.error = exc.message
            return PlanExecutionResult(results=list(results.values()), aborted=True)

        state = _RunState(
            plan=plan,
            context=context,
            results=results,
            semaphore=asyncio.Semaphore(self._max_concurrency),
        )
        log.info("plan_started", plan_id=plan.plan_id, steps=len(plan.steps))

        steps = {step.id: step for step in plan.steps}
        started: set[int] = set()
        done: set[int] = set()
        running: dict[asyncio.Task[None], int] = {}
        try:
            while True:
                if not state.aborted:
                    for step_id in scheduler.ready(done, started):
                        step = steps[step_id]
                        started.add(step_id)
                        task = asyncio.create_task(
                            self._run_step(step, state), name=f"plan_step_{step_id}"
                        )
                        running[task] = step_id
                if not running:
                    break
                finished, _ = await asyncio.wait(
                    running.keys(), return_when=asyncio.FIRST_COMPLETED
                )
                for task in finished:
                    done.add(running.pop(task))
                    # A defect in _run_step is not a step failure; let it escape.
                    task.result()
        finally:
            for task in running:
                task.cancel()

        if state.aborted:
            for result in results.values():
                if result.status is StepStatus.PENDING:
                    result.status = StepStatus.SKIPPED
                    result.error = SKIPPED_ABORTED
                    result.percent_complete = state.last_percent
            log.warning("plan_aborted_on_failure", plan_id=plan.plan_id)

        execution = PlanExecutionResult(results=list(results.values()), aborted=state.aborted)
        log.info(
            "plan_finished",
            plan_id=plan.plan_id,
            aborted=execution.aborted,
            completed=execution.completed_steps,
            total=execution.total_steps,
        )
        return execution

    # ------------------------------------------------------------------
    # Step execution
    # ------------------------------------------------------------------

    async def _run_step(self, step: ExecutionPlanStep, state: _RunState) -> None:
        result = state.results[step.id]
        async with state.semaphore:
            # Another step may have aborted the plan while we waited for a slot.
            if state.aborted:
                return
            bind_plan_context(step_id=step.id)
            result.status = StepStatus.RUNNING
            await dispatch_event(
                state.context.on_event,
                PlanStepStarted(step_id=step.id, description=step.description, tool=step.tool),
            )
            log.info("plan_step_started", tool=step.tool)

            tool_context = ToolContext(
                sandbox=state.context.sandbox,
                requested_by=state.context.requested_by,
                on_event=state.context.on_event,
            )
            outcome = await self._attempt(step, result, tool_context, state)

            # Settle before releasing the slot so a queued step sees the abort.
            async with state.progress_lock:
                if outcome.success:
                    result.status = StepStatus.SUCCEEDED
                    result.output = outcome.output
                else:
                    result.status = StepStatus.FAILED
                    result.error = outcome.error
                    if not step.can_fail:
                        state.aborted = True
                state.terminal += 1
                result.percent_complete = state.percent()
                await dispatch_event(
                    state.context.on_event,
                    PlanStepFinished(
                        step_id=step.id,
                        description=step.description,
                        tool=step.tool,
                        status=result.status.value,
                        error=result.error,
                        attempts=result.attempts,
                        percent_complete=result.percent_complete,
                    ),
                )

        if outcome.success:
            log.info("plan_step_succeeded", attempts=result.attempts)
        elif step.can_fail:
            log.warning("plan_step_failed", error=outcome.error, can_fail=True)
        else:
            log.error("plan_step_failed", error=outcome.error, can_fail=False)

    async def _attempt(
        self,
        step: ExecutionPlanStep,
        result: StepResult,
        tool_context: ToolContext,
        state: _RunState,
    ) -> ToolResult:
        max_attempts = self._retry.max_attempts
        while True:
            result.attempts += 1
            try:
                outcome = await self._execute_tool(
                    step.tool, step.params, tool_context, call_id=f"{state.plan.plan_id}:{step.id}"
                )
            except Exception as exc:
                log.exception("plan_step_crashed", tool=step.tool)
                outcome = ToolResult.fail(str(exc) or exc.__class__.__name__, FailureKind.ERROR)

            if outcome.success:
                return outcome
            retryable = outcome.failure is not None and outcome.failure.retryable
            if not retryable or result.attempts >= max_attempts or state.aborted:
                return outcome

            delay = self._retry.delay_for_attempt(result.attempts)
            log.warning(
                "plan_step_retry", attempt=result.attempts, delay=delay, error=outcome.error
            )
            if delay > 0:
                await asyncio.sleep(delay)
            if state.aborted:
                return outcome
