"""Security layer — Capability sandbox (the permission engine).

Every side effect the agent performs goes through ``CapabilitySandbox.execute``:

    1. strip caller-supplied approval tokens
    2. derive the resource (path | command | url | id | schedule)
    3. check the capability's static rules
    4. ask a human when the rule level is user-approved / ask
    5. run the capability
    6. write exactly one audit entry, whatever happened

Policy failures never raise.  They come back as ``CapabilityResult`` with
``success=False`` and a human-readable ``error``.
"""

from __future__ import annotations

import time
from typing import Any, Protocol

from safeact.logging import get_logger
from safeact.redaction import redact_secrets, redact_value
from safeact.security.approval import ApprovalHandler
from safeact.security.audit import AuditTrail
from safeact.security.capabilities.base import Capability
from safeact.security.models import (
    APPROVAL_TOKEN_KEY,
    Allowed,
    ApprovalRequest,
    AuditDecision,
    AuditEntry,
    AuditResult,
    CapabilityResult,
    Denied,
    PermissionDecision,
    PermissionRequest,
)

log = get_logger(__name__)

RESOURCE_KEYS = ("path", "command", "url", "id", "schedule")

NO_APPROVAL_HANDLER = "No approval handler available"
USER_DENIED = "User denied the action"


class SandboxExecutor(Protocol):
    """What the tool layer needs from the sandbox."""

    async def execute(
        self,
        capability: str,
        action: str,
        params: dict[str, Any],
        requested_by: str = "agent",
    ) -> CapabilityResult: ...


def derive_resource(params: dict[str, Any]) -> str:
    for key in RESOURCE_KEYS:
        value = params.get(key)
        if value is not None and value != "":
            return str(value)
    return ""


class CapabilitySandbox:
    """Registry of capabilities plus the single permission-checked execution path.

    Usage::

        sandbox = CapabilitySandbox(AuditTrail(store), approval_handler=gate)
        sandbox.register(FilesystemCapability(settings.sandbox.filesystem))
        result = await sandbox.execute("filesystem", "read", {"path": "~/notes.md"})
    """

    def __init__(
        self,
        audit: AuditTrail | None = None,
        approval_handler: ApprovalHandler | None = None,
    ) -> None:
        self._audit = audit or AuditTrail()
        self._approval_handler = approval_handler
        self._capabilities: dict[str, Capability] = {}

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------

    def register(self, capability: Capability) -> None:
        if capability.name in self._capabilities:
            log.warning("capability_replaced", capability=capability.name)
        self._capabilities[capability.name] = capability
        log.debug("capability_registered", capability=capability.name)

    def get_capability(self, name: str) -> Capability | None:
        return self._capabilities.get(name)

    @property
    def capabilities(self) -> list[str]:
        return sorted(self._capabilities)

    @property
    def audit(self) -> AuditTrail:
        return self._audit

    def set_approval_handler(self, handler: ApprovalHandler | None) -> None:
        """Install the process-wide approval handler.  The last call wins."""
        self._approval_handler = handler

    @property
    def approval_handler(self) -> ApprovalHandler | None:
        return self._approval_handler

    # ------------------------------------------------------------------
    # Permission check
    # ------------------------------------------------------------------

    def check(
        self,
        capability: str,
        action: str,
        resource: str,
        requested_by: str = "agent",
    ) -> PermissionDecision:
        cap = self._capabilities.get(capability)
        if cap is None:
            return Denied(f"Unknown capability: {capability}")
        return cap.check_permission(
            PermissionRequest(
                capability=capability,
                action=action,
                resource=resource,
                requested_by=requested_by,
            )
        )

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def execute(
        self,
        capability: str,
        action: str,
        params: dict[str, Any],
        requested_by: str = "agent",
    ) -> CapabilityResult:
        call_params = {k: v for k, v in params.items() if k != APPROVAL_TOKEN_KEY}
        call_params["requested_by"] = requested_by
        resource = derive_resource(call_params)

        try:
            cap = self._capabilities.get(capability)
            if cap is None:
                decision: PermissionDecision = Denied(f"Unknown capability: {capability}")
            else:
                decision = cap.check_call(action, resource, call_params)
        except Exception as exc:
            log.error(
                "capability_check_failed", capability=capability, action=action, error=str(exc)
            )
            return await self._reject(
                capability,
                action,
                resource,
                call_params,
                f"Permission check failed: {exc}",
                AuditDecision.ERROR,
                AuditResult.ERROR,
            )

        if isinstance(decision, Denied):
            log.info(
                "capability_denied",
                capability=capability,
                action=action,
                resource=resource,
                reason=decision.reason,
            )
            return await self._reject(
                capability, action, resource, call_params, decision.reason,
                AuditDecision.RULE_DENIED, AuditResult.DENIED,
            )

        if decision.level.needs_approval:
            if self._approval_handler is None:
                return await self._reject(
                    capability, action, resource, call_params, NO_APPROVAL_HANDLER,
                    AuditDecision.RULE_DENIED, AuditResult.DENIED,
                )
            if not await self._ask(capability, action, resource, call_params):
                return await self._reject(
                    capability, action, resource, call_params, USER_DENIED,
                    AuditDecision.USER_DENIED, AuditResult.DENIED,
                )
            call_params[APPROVAL_TOKEN_KEY] = True

        return await self._run(capability, action, resource, call_params, decision)

    async def _ask(
        self, capability: str, action: str, resource: str, params: dict[str, Any]
    ) -> bool:
        handler = self._approval_handler
        if handler is None:
            return False
        details = redact_value(
            {k: v for k, v in params.items() if k not in ("requested_by", APPROVAL_TOKEN_KEY)}
        )
        request = ApprovalRequest(
            capability=capability,
            action=action,
            resource=redact_secrets(resource),
            context=f"Requested by {params.get('requested_by', 'agent')}",
            details=details,
        )
        try:
            return bool(await handler(request))
        except Exception as exc:
            log.error(
                "approval_handler_failed", capability=capability, action=action, error=str(exc)
            )
            return False

    async def _run(
        self,
        capability: str,
        action: str,
        resource: str,
        params: dict[str, Any],
        decision: PermissionDecision,
    ) -> CapabilityResult:
        cap = self._capabilities[capability]
        started = time.perf_counter()
        try:
            result = await cap.execute(action, params)
        except Exception as exc:
            duration_ms = (time.perf_counter() - started) * 1000
            log.error(
                "capability_execution_failed",
                capability=capability,
                action=action,
                error=str(exc),
            )
            error = redact_secrets(str(exc))
            entry = AuditEntry(
                capability=capability,
                action=action,
                resource=resource,
                params=params,
                decision=AuditDecision.ERROR,
                result=AuditResult.ERROR,
                error=error,
                duration_ms=duration_ms,
                requested_by=str(params.get("requested_by", "agent")),
            )
            entry = await self._audit.log(entry)
            return CapabilityResult(
                success=False,
                output=None,
                error=error,
                audit_entry=entry,
                duration_ms=duration_ms,
            )

        result.audit_entry = await self._audit.log(result.audit_entry)
        log.debug(
            "capability_executed",
            capability=capability,
            action=action,
            level=decision.level.value if isinstance(decision, Allowed) else None,
            success=result.success,
            duration_ms=round(result.duration_ms, 2),
        )
        return result

    async def _reject(
        self,
        capability: str,
        action: str,
        resource: str,
        params: dict[str, Any],
        reason: str,
        decision: AuditDecision,
        result: AuditResult,
    ) -> CapabilityResult:
        reason = redact_secrets(reason)
        entry = AuditEntry(
            capability=capability,
            action=action,
            resource=resource,
            params=params,
            decision=decision,
            result=result,
            error=reason,
            requested_by=str(params.get("requested_by", "agent")),
        )
        entry = await self._audit.log(entry)
        return CapabilityResult(success=False, output=None, error=reason, audit_entry=entry)
