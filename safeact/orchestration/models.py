"""Orchestration layer — plan and execution models.

``ExecutionPlan`` / ``ExecutionPlanStep`` are pydantic models: they are built
from untrusted LLM output by the planner and must be validated before the
executor sees them.  Execution records (``StepResult``,
``PlanExecutionResult``) are plain dataclasses mutated by the executor.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field

from safeact.events.models import EventCallback
from safeact.security.sandbox import SandboxExecutor


class ExecutionPlanStep(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: Annotated[int, Field(gt=0)]
    description: Annotated[str, Field(min_length=1)]
    tool: Annotated[str, Field(min_length=1)]
    params: dict[str, Any] = Field(default_factory=dict)
    depends_on: list[Annotated[int, Field(gt=0)]] = Field(default_factory=list)
    can_fail: bool = False
    fallback: str | None = None


class ExecutionPlan(BaseModel):
    plan_id: str = Field(default_factory=lambda: uuid.uuid4().hex[:12])
    goal: str
    steps: list[ExecutionPlanStep] = Field(min_length=1)
    has_side_effects: bool = False
    estimated_duration: str = "unknown"
    risks: list[str] = Field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


class StepStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"

    @property
    def is_terminal(self) -> bool:
        return self in (StepStatus.SUCCEEDED, StepStatus.FAILED, StepStatus.SKIPPED)


@dataclass
class StepResult:
    step_id: int
    description: str
    tool: str
    status: StepStatus = StepStatus.PENDING
    error: str | None = None
    output: Any = None
    attempts: int = 0
    percent_complete: int = 0
    fallback: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "step_id": self.step_id,
            "description": self.description,
            "tool": self.tool,
            "status": self.status.value,
            "error": self.error,
            "attempts": self.attempts,
            "percent_complete": self.percent_complete,
            "fallback": self.fallback,
        }


@dataclass
class PlanExecutionResult:
    results: list[StepResult]
    aborted: bool = False

    @property
    def completed_steps(self) -> int:
        return sum(1 for r in self.results if r.status is StepStatus.SUCCEEDED)

    @property
    def total_steps(self) -> int:
        return len(self.results)

    def get(self, step_id: int) -> StepResult | None:
        for result in self.results:
            if result.step_id == step_id:
                return result
        return None

    def to_dict(self) -> dict[str, Any]:
        return {"aborted": self.aborted, "results": [r.to_dict() for r in self.results]}


@dataclass
class PlanContext:
    """Per-run collaborators threaded through the executor into every tool call."""

    sandbox: SandboxExecutor
    requested_by: str = "agent"
    on_event: EventCallback | None = None


class RetryPolicy(BaseModel):
    """Bounded retry applied to steps that fail with a retryable error."""

    max_retries: Annotated[int, Field(ge=0, le=10)] = 1
    delay_seconds: Annotated[float, Field(ge=0)] = 0.0
    backoff_factor: Annotated[float, Field(ge=1.0, le=10.0)] = 2.0

    @property
    def max_attempts(self) -> int:
        return 1 + self.max_retries

    def delay_for_attempt(self, attempt: int) -> float:
        """Return the delay in seconds before the *attempt*-th retry (1-indexed)."""
        return self.delay_seconds * (self.backoff_factor ** (attempt - 1))
