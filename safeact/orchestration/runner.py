"""Orchestration layer — Plan runner.

Glues planner and executor into one agent turn:

    should_plan? ─no─► None (caller uses the ReAct loop)
        │yes
    create_plan ─None─► None
        │
    plan_created ─► side effects? ─yes─► plan_approval_requested ─► wait (bounded)
        │                                       │ no / timeout / no callback
        ▼                                       ▼
    execute_plan                         cancelled, executor never starts
        │
    PlanOutcome(summary)

Every typed event goes to the per-turn ``on_event`` callback and is
mirrored onto the process-wide ``EventBus``.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Sequence

from safeact.events.bus import TOPIC_PLANS, TOPIC_TOOLS, EventBus, NullEventBus
from safeact.events.models import (
    EventCallback,
    PlanApprovalRequested,
    PlanCreated,
    dispatch_event,
)
from safeact.llm.client import Message
from safeact.logging import get_logger
from safeact.orchestration.executor import PlanExecutor
from safeact.orchestration.models import ExecutionPlan, PlanContext, PlanExecutionResult
from safeact.orchestration.planner import Planner, should_plan
from safeact.orchestration.summary import format_execution_summary, format_plan_summary
from safeact.security.sandbox import SandboxExecutor

log = get_logger(__name__)

PlanApprovalCallback = Callable[[ExecutionPlan], Awaitable[bool]]

PLAN_CANCELLED = "Plan cancelled: approval was not granted."


@dataclass
class PlanOutcome:
    plan: ExecutionPlan
    execution: PlanExecutionResult | None
    cancelled: bool
    summary: str


class PlanRunner:
    def __init__(
        self,
        planner: Planner,
        executor: PlanExecutor,
        bus: EventBus | None = None,
        plan_approval_timeout: float = 300.0,
    ) -> None:
        self._planner = planner
        self._executor = executor
        self._bus = bus or NullEventBus()
        self._plan_approval_timeout = plan_approval_timeout

    async def run(
        self,
        goal: str,
        history: Sequence[Message] = (),
        *,
        sandbox: SandboxExecutor,
        requested_by: str = "agent",
        on_plan_approval: PlanApprovalCallback | None = None,
        on_event: EventCallback | None = None,
    ) -> PlanOutcome | None:
        """Plan and execute *goal*.  Returns None when no plan applies."""
        if not should_plan(goal):
            return None
        plan = await self._planner.create_plan(goal, history)
        if plan is None:
            return None

        emit = self._bridge(on_event)
        await emit(PlanCreated(plan=plan.to_dict()))

        if plan.has_side_effects:
            await emit(PlanApprovalRequested(plan=plan.to_dict()))
            if not await self._approve(plan, on_plan_approval):
                log.info("plan_cancelled", plan_id=plan.plan_id)
                summary = f"{format_plan_summary(plan)}\n{PLAN_CANCELLED}"
                return PlanOutcome(plan=plan, execution=None, cancelled=True, summary=summary)

        execution = await self._executor.execute_plan(
            plan, PlanContext(sandbox=sandbox, requested_by=requested_by, on_event=emit)
        )
        return PlanOutcome(
            plan=plan,
            execution=execution,
            cancelled=False,
            summary=format_execution_summary(plan, execution),
        )

    async def _approve(
        self, plan: ExecutionPlan, callback: PlanApprovalCallback | None
    ) -> bool:
        if callback is None:
            log.warning("plan_approval_unavailable", plan_id=plan.plan_id)
            return False
        try:
            return bool(
                await asyncio.wait_for(callback(plan), timeout=self._plan_approval_timeout)
            )
        except asyncio.TimeoutError:
            log.warning(
                "plan_approval_timeout",
                plan_id=plan.plan_id,
                timeout=self._plan_approval_timeout,
            )
            return False
        except Exception as exc:
            log.error("plan_approval_failed", plan_id=plan.plan_id, error=str(exc))
            return False

    def _bridge(self, on_event: EventCallback | None) -> Callable[[Any], Awaitable[None]]:
        async def _emit(event: Any) -> None:
            await dispatch_event(on_event, event)
            topic = TOPIC_TOOLS if event.type.startswith("tool_") else TOPIC_PLANS
            await self._bus.emit(topic, event.to_dict())

        return _emit
