"""Human-readable plan and execution summaries appended to the conversation."""

from __future__ import annotations

from safeact.orchestration.models import (
    ExecutionPlan,
    PlanExecutionResult,
    StepStatus,
)


def format_plan_summary(plan: ExecutionPlan) -> str:
    lines = [f"Plan: {plan.goal}"]
    for step in plan.steps:
        deps = f" (after {', '.join(str(d) for d in step.depends_on)})" if step.depends_on else ""
        lines.append(f"{step.id}. {step.description} [{step.tool}]{deps}")
    if plan.has_side_effects:
        lines.append("This plan has side effects and needs your approval.")
    if plan.risks:
        lines.append("Risks:")
        lines.extend(f"- {risk}" for risk in plan.risks)
    return "\n".join(lines)


def format_execution_summary(plan: ExecutionPlan, execution: PlanExecutionResult) -> str:
    lines = [f"Plan executed: {plan.goal}"]
    for result in execution.results:
        line = f"{result.step_id}. {result.description}: {result.status.value}"
        if result.error and result.status is not StepStatus.SUCCEEDED:
            line += f" ({result.error})"
        lines.append(line)
        if result.status is StepStatus.FAILED and result.fallback:
            lines.append(f"   Fallback: {result.fallback}")
    if execution.aborted:
        lines.append("Execution aborted due to a critical step failure.")
    return "\n".join(lines)
