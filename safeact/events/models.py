"""Agent events — typed progress notifications for channel adapters.

Producers construct one of the models below and hand it to an ``on_event``
callback (per turn) and/or an ``EventBus`` (process wide) via ``to_dict()``.
Consumers that receive raw dicts can rebuild the typed event with
``parse_event()``.

Example::

    event = PlanStepFinished(
        step_id=2, description="Write summary", tool="write_file",
        status="failed", error="Permission denied", attempts=2,
        percent_complete=50,
    )
    await bus.emit(TOPIC_PLANS, event.to_dict())
"""

from __future__ import annotations

import inspect
from typing import Annotated, Any, Awaitable, Callable, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter

StepStatusLiteral = Literal["pending", "running", "succeeded", "failed", "skipped"]


class _AgentEventBase(BaseModel):
    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


class ToolCallStarted(_AgentEventBase):
    type: Literal["tool_call_started"] = "tool_call_started"
    call_id: str
    tool_name: str


class ToolCallFinished(_AgentEventBase):
    type: Literal["tool_call_finished"] = "tool_call_finished"
    call_id: str
    tool_name: str
    success: bool
    error: str | None = None


class PlanCreated(_AgentEventBase):
    type: Literal["plan_created"] = "plan_created"
    plan: dict[str, Any]


class PlanApprovalRequested(_AgentEventBase):
    type: Literal["plan_approval_requested"] = "plan_approval_requested"
    plan: dict[str, Any]


class PlanStepStarted(_AgentEventBase):
    type: Literal["plan_step_started"] = "plan_step_started"
    step_id: int
    description: str
    tool: str


class PlanStepFinished(_AgentEventBase):
    type: Literal["plan_step_finished"] = "plan_step_finished"
    step_id: int
    description: str
    tool: str
    status: StepStatusLiteral
    error: str | None = None
    attempts: int = Field(ge=0)
    percent_complete: int = Field(ge=0, le=100)


AgentEvent = Annotated[
    Union[
        ToolCallStarted,
        ToolCallFinished,
        PlanCreated,
        PlanApprovalRequested,
        PlanStepStarted,
        PlanStepFinished,
    ],
    Field(discriminator="type"),
]

EventCallback = Callable[[Any], Union[None, Awaitable[None]]]

_event_adapter: TypeAdapter[Any] = TypeAdapter(AgentEvent)


def parse_event(data: dict[str, Any]) -> Any:
    """Rebuild a typed event from its ``to_dict()`` form."""
    return _event_adapter.validate_python(data)


async def dispatch_event(callback: EventCallback | None, event: Any) -> None:
    """Invoke a sync or async ``on_event`` callback, if one was provided."""
    if callback is None:
        return
    result = callback(event)
    if inspect.isawaitable(result):
        await result
