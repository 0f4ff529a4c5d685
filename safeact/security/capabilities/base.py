"""Capabilities — abstract interface and shared helpers.

A capability is a named policy domain (``filesystem``, ``shell``, ...).  It
answers two questions:

    check_permission(request) → Allowed(level) | Denied(reason)   (pure, sync)
    execute(action, params)   → CapabilityResult with its own AuditEntry

Capabilities re-check their own rules inside ``execute()`` so that a caller
bypassing the sandbox gains nothing, and refuse user-approved actions unless
the sandbox added ``APPROVAL_TOKEN_KEY`` to the params.
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from typing import Any

from safeact.security.models import (
    APPROVAL_TOKEN_KEY,
    Allowed,
    AuditDecision,
    AuditEntry,
    AuditResult,
    CapabilityResult,
    Denied,
    PermissionDecision,
    PermissionRequest,
)

MISSING_APPROVAL_TOKEN = "Missing explicit user approval token"


class Capability(ABC):
    name: str = ""
    description: str = ""

    @abstractmethod
    def check_permission(self, request: PermissionRequest) -> PermissionDecision:
        """Decide from static rules only.  Must not perform I/O side effects."""

    @abstractmethod
    async def execute(self, action: str, params: dict[str, Any]) -> CapabilityResult:
        """Perform *action* and return a result carrying exactly one audit entry."""

    def check_call(
        self, action: str, resource: str, params: dict[str, Any]
    ) -> PermissionDecision:
        """Decision for a concrete call.

        Defaults to ``check_permission`` on the primary resource.  Override
        when an action touches more than one resource.
        """
        return self.check_permission(
            PermissionRequest(
                capability=self.name,
                action=action,
                resource=resource,
                requested_by=str(params.get("requested_by") or "agent"),
            )
        )


class BaseCapability(Capability):
    """Helpers for building audit entries and results consistently."""

    def _entry(
        self,
        action: str,
        resource: str,
        params: dict[str, Any],
        decision: AuditDecision,
        result: AuditResult,
        duration_ms: float = 0.0,
        output: str | None = None,
        error: str | None = None,
    ) -> AuditEntry:
        return AuditEntry(
            capability=self.name,
            action=action,
            resource=resource,
            params=dict(params),
            decision=decision,
            result=result,
            output=output,
            error=error,
            duration_ms=duration_ms,
            requested_by=str(params.get("requested_by") or "agent"),
        )

    def _fail(
        self,
        action: str,
        resource: str,
        params: dict[str, Any],
        error: str,
        decision: AuditDecision = AuditDecision.RULE_DENIED,
        result: AuditResult = AuditResult.DENIED,
        duration_ms: float = 0.0,
    ) -> CapabilityResult:
        entry = self._entry(
            action, resource, params, decision, result, duration_ms=duration_ms, error=error
        )
        return CapabilityResult(
            success=False, output=None, error=error, audit_entry=entry, duration_ms=duration_ms
        )

    def _succeed(
        self,
        action: str,
        resource: str,
        params: dict[str, Any],
        decision: PermissionDecision,
        output: Any,
        output_text: str,
        started: float,
    ) -> CapabilityResult:
        duration_ms = (time.perf_counter() - started) * 1000
        entry = self._entry(
            action,
            resource,
            params,
            approved_label(decision),
            AuditResult.SUCCESS,
            duration_ms=duration_ms,
            output=output_text,
        )
        return CapabilityResult(
            success=True, output=output, audit_entry=entry, duration_ms=duration_ms
        )

    def _guard(
        self, action: str, resource: str, params: dict[str, Any]
    ) -> tuple[PermissionDecision, CapabilityResult | None]:
        """Re-check rules and the approval token.  Returns a failure result if refused."""
        decision = self.check_call(action, resource, params)
        if isinstance(decision, Denied):
            return decision, self._fail(action, resource, params, decision.reason)
        if decision.level.needs_approval and not has_approval_token(params):
            return decision, self._fail(action, resource, params, MISSING_APPROVAL_TOKEN)
        return decision, None


def has_approval_token(params: dict[str, Any]) -> bool:
    return params.get(APPROVAL_TOKEN_KEY) is True


def approved_label(decision: PermissionDecision) -> AuditDecision:
    if isinstance(decision, Allowed) and decision.level.needs_approval:
        return AuditDecision.USER_APPROVED
    return AuditDecision.AUTO_APPROVED
