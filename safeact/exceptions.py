"""SafeAct — Exception hierarchy.

All exceptions raised inside the agent core inherit from SafeActError so that
callers can catch the full family with a single except clause when needed.

Nothing below the tool layer lets an exception escape ``execute()``: the
sandbox converts capability failures into failed results with an audit
entry.

Hierarchy:
    SafeActError
    ├── ConfigError
    ├── AuditStoreError
    └── PlanningError
        ├── PlanParseError
        └── PlanValidationError
            └── DAGCycleError
"""

from __future__ import annotations

from typing import Any


class SafeActError(Exception):
    """Base exception for all SafeAct errors."""

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context: dict[str, Any] = context or {}

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, context={self.context})"


class ConfigError(SafeActError):
    """A configuration file or value could not be used."""


class AuditStoreError(SafeActError):
    """The audit store could not persist an entry."""


# ---------------------------------------------------------------------------
# Planning
# ---------------------------------------------------------------------------


class PlanningError(SafeActError):
    """Base for planner and plan-graph errors."""


class PlanParseError(PlanningError):
    """The LLM output did not contain a usable JSON plan."""

    def __init__(self, message: str, raw_text: str | None = None) -> None:
        super().__init__(message, context={"raw_text": raw_text})
        self.raw_text = raw_text


class PlanValidationError(PlanningError):
    """A parsed plan has inconsistent step ids or dependencies."""


class DAGCycleError(PlanValidationError):
    def __init__(self, cycle: list[int]) -> None:
        super().__init__(
            f"Circular dependency detected between steps: {cycle}",
            context={"cycle": cycle},
        )
        self.cycle = cycle
