"""Orchestration layer — planner, DAG scheduler, executor and plan runner."""

from safeact.orchestration.dag import DAGScheduler, validate_plan
from safeact.orchestration.executor import SKIPPED_ABORTED, PlanExecutor
from safeact.orchestration.models import (
    ExecutionPlan,
    ExecutionPlanStep,
    PlanContext,
    PlanExecutionResult,
    RetryPolicy,
    StepResult,
    StepStatus,
)
from safeact.orchestration.planner import (
    SIDE_EFFECT_TOOLS,
    Planner,
    extract_json_block,
    parse_plan_from_text,
    should_plan,
)
from safeact.orchestration.runner import PlanOutcome, PlanRunner
from safeact.orchestration.summary import format_execution_summary, format_plan_summary

__all__ = [
    "DAGScheduler",
    "validate_plan",
    "PlanExecutor",
    "SKIPPED_ABORTED",
    "ExecutionPlan",
    "ExecutionPlanStep",
    "PlanContext",
    "PlanExecutionResult",
    "RetryPolicy",
    "StepResult",
    "StepStatus",
    "SIDE_EFFECT_TOOLS",
    "Planner",
    "extract_json_block",
    "parse_plan_from_text",
    "should_plan",
    "PlanOutcome",
    "PlanRunner",
    "format_execution_summary",
    "format_plan_summary",
]
