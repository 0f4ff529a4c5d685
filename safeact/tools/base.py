"""Tool layer — Tool interface, context and result types.

A tool is what the LLM names.  Capability tools hard-code exactly one
``(capability, action)`` pair and forward to the sandbox; they never reach
the filesystem, a subprocess or the network by themselves.

    raw params ─► Tool.run ─► pydantic validation ─► Tool.execute
                                  │ fails                 │
                                  ▼                       ▼
                  "Invalid tool parameters: ..."   sandbox.execute(cap, action, ...)
                  (no audit entry)
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, ClassVar

from pydantic import BaseModel, ValidationError

from safeact.events.models import EventCallback
from safeact.security.models import AuditResult, CapabilityResult
from safeact.security.sandbox import SandboxExecutor


class FailureKind(str, Enum):
    """Why a tool call failed.  Only ERROR is worth retrying."""

    DENIED = "denied"
    INVALID = "invalid"
    ERROR = "error"
    UNKNOWN_TOOL = "unknown_tool"

    @property
    def retryable(self) -> bool:
        return self is FailureKind.ERROR


@dataclass
class ToolContext:
    sandbox: SandboxExecutor
    requested_by: str = "agent"
    on_event: EventCallback | None = None


@dataclass
class ToolResult:
    success: bool
    output: Any = None
    error: str | None = None
    failure: FailureKind | None = None

    @classmethod
    def ok(cls, output: Any) -> "ToolResult":
        return cls(success=True, output=output)

    @classmethod
    def fail(cls, error: str, failure: FailureKind = FailureKind.ERROR) -> "ToolResult":
        return cls(success=False, output=None, error=error, failure=failure)

    @classmethod
    def from_capability(cls, result: CapabilityResult) -> "ToolResult":
        if result.success:
            return cls(success=True, output=result.output)
        failure = (
            FailureKind.DENIED
            if result.audit_entry.result is AuditResult.DENIED
            else FailureKind.ERROR
        )
        return cls(success=False, output=result.output, error=result.error, failure=failure)


def format_validation_error(exc: ValidationError) -> str:
    parts = []
    for issue in exc.errors():
        loc = ".".join(str(p) for p in issue["loc"]) or "(root)"
        parts.append(f"{loc}: {issue['msg']}")
    return "; ".join(parts)


class Tool(ABC):
    name: ClassVar[str]
    description: ClassVar[str]
    params_model: ClassVar[type[BaseModel]]

    async def run(self, raw_params: Any, context: ToolContext) -> ToolResult:
        """Validate *raw_params* and execute.  Invalid input never reaches the sandbox."""
        try:
            params = self.params_model.model_validate(raw_params if raw_params is not None else {})
        except ValidationError as exc:
            return ToolResult.fail(
                f"Invalid tool parameters: {format_validation_error(exc)}", FailureKind.INVALID
            )
        return await self.execute(params, context)

    @abstractmethod
    async def execute(self, params: Any, context: ToolContext) -> ToolResult:
        """Execute with already-validated *params*."""

    def definition(self) -> dict[str, Any]:
        schema = self.params_model.model_json_schema()
        schema.pop("title", None)
        return {"name": self.name, "description": self.description, "parameters": schema}


class CapabilityTool(Tool):
    """A tool bound to one sandbox ``(capability, action)`` pair."""

    capability: ClassVar[str]
    action: ClassVar[str]

    def map_params(self, params: Any) -> dict[str, Any]:
        """Translate validated tool params into capability params."""
        return params.model_dump(exclude_none=True)

    async def execute(self, params: Any, context: ToolContext) -> ToolResult:
        result = await context.sandbox.execute(
            self.capability, self.action, self.map_params(params), context.requested_by
        )
        return ToolResult.from_capability(result)
