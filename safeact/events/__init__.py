"""Event layer — EventBus backends and typed agent events.

Quick start::

    from safeact.events import LocalEventBus, TOPIC_PLANS

    bus = LocalEventBus()
    bus.subscribe(lambda topic, event: print(topic, event["type"]))
"""

from safeact.events.bus import (
    TOPIC_AUDIT,
    TOPIC_PLANS,
    TOPIC_TOOLS,
    EventBus,
    FanoutEventBus,
    LocalEventBus,
    LogEventBus,
    NullEventBus,
)
from safeact.events.models import (
    AgentEvent,
    EventCallback,
    PlanApprovalRequested,
    PlanCreated,
    PlanStepFinished,
    PlanStepStarted,
    ToolCallFinished,
    ToolCallStarted,
    dispatch_event,
    parse_event,
)

__all__ = [
    "EventBus",
    "NullEventBus",
    "LogEventBus",
    "LocalEventBus",
    "FanoutEventBus",
    "TOPIC_PLANS",
    "TOPIC_TOOLS",
    "TOPIC_AUDIT",
    "AgentEvent",
    "EventCallback",
    "ToolCallStarted",
    "ToolCallFinished",
    "PlanCreated",
    "PlanApprovalRequested",
    "PlanStepStarted",
    "PlanStepFinished",
    "dispatch_event",
    "parse_event",
]
