"""Security layer — Permission, approval and audit data models.

A permission decision is a tagged union of two frozen dataclasses:

    Allowed(level=DecisionLevel.AUTO)            → run immediately
    Allowed(level=DecisionLevel.USER_APPROVED)   → run after a human says yes
    Denied(reason="Path is denied: ~/.ssh/id_rsa")

``DecisionLevel.ASK`` is accepted from capabilities and treated exactly like
``USER_APPROVED``.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Union

from safeact.redaction import redact_secrets, redact_value

# Parameter key the sandbox adds after a human approved the call.  Capabilities
# with user-approved actions refuse to run without it.
APPROVAL_TOKEN_KEY = "__approved_by_user"


class DecisionLevel(str, Enum):
    AUTO = "auto"
    USER_APPROVED = "user-approved"
    ASK = "ask"

    @property
    def needs_approval(self) -> bool:
        return self is not DecisionLevel.AUTO


@dataclass(frozen=True)
class Allowed:
    level: DecisionLevel = DecisionLevel.AUTO

    allowed = True


@dataclass(frozen=True)
class Denied:
    reason: str

    allowed = False


PermissionDecision = Union[Allowed, Denied]


@dataclass(frozen=True)
class PermissionRequest:
    capability: str
    action: str
    resource: str
    requested_by: str = "agent"
    context: str | None = None


@dataclass(frozen=True)
class ApprovalRequest:
    """What a human sees before an action runs.  Strings are pre-redacted."""

    capability: str
    action: str
    resource: str
    context: str | None = None
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def cache_key(self) -> tuple[str, str, str]:
        return (self.capability, self.action, self.resource)

    def describe(self) -> str:
        text = f"{self.capability}.{self.action} on {self.resource or '(no resource)'}"
        if self.context:
            text += f"\nContext: {self.context}"
        return text


# ---------------------------------------------------------------------------
# Audit
# ---------------------------------------------------------------------------


class AuditDecision(str, Enum):
    AUTO_APPROVED = "auto-approved"
    USER_APPROVED = "user-approved"
    USER_DENIED = "user-denied"
    RULE_DENIED = "rule-denied"
    ERROR = "error"


class AuditResult(str, Enum):
    SUCCESS = "success"
    DENIED = "denied"
    ERROR = "error"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class AuditEntry:
    """Immutable record of one ``CapabilitySandbox.execute()`` call."""

    capability: str
    action: str
    resource: str
    decision: AuditDecision
    result: AuditResult
    params: dict[str, Any] = field(default_factory=dict)
    output: str | None = None
    error: str | None = None
    duration_ms: float = 0.0
    requested_by: str = "agent"
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = field(default_factory=_utcnow)

    def redacted(self) -> "AuditEntry":
        """Return a copy with secrets scrubbed from every free-text field."""
        params = {k: v for k, v in self.params.items() if k != APPROVAL_TOKEN_KEY}
        return replace(
            self,
            resource=redact_secrets(self.resource),
            params=redact_value(params),
            output=redact_secrets(self.output) if self.output is not None else None,
            error=redact_secrets(self.error) if self.error is not None else None,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "capability": self.capability,
            "action": self.action,
            "resource": self.resource,
            "params": self.params,
            "decision": self.decision.value,
            "result": self.result.value,
            "output": self.output,
            "error": self.error,
            "duration_ms": self.duration_ms,
            "requested_by": self.requested_by,
        }


@dataclass
class CapabilityResult:
    success: bool
    audit_entry: AuditEntry
    output: Any = None
    error: str | None = None
    duration_ms: float = 0.0
