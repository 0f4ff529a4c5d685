"""Security layer — Approval gate.

The ApprovalGate is the channel-side half of the human-in-the-loop check.
The sandbox awaits the gate (it is a valid ``ApprovalHandler``); the channel
renders each pending request through the ``notify`` callback and later
signals the human's answer with ``resolve()``.

Usage (sandbox side)::

    gate = ApprovalGate(notify=telegram_prompt, timeout=300)
    sandbox = CapabilitySandbox(audit, approval_handler=gate)

Usage (channel side)::

    async def telegram_prompt(pending: PendingApproval) -> None:
        await bot.send(chat_id, pending.request.describe(), buttons=pending.id)

    gate.resolve(callback.approval_id, ApprovalDecision.APPROVE)

Every wait is bounded: when ``timeout`` seconds pass without an answer the
request is dropped from the pending table and resolves to ``False``.

``APPROVE_ALWAYS`` stores the ``(capability, action, resource)`` triple so
later identical requests are answered ``True`` without prompting.  The cache
lives here, never in the sandbox, which re-checks its rules on every call.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable

from safeact.logging import get_logger
from safeact.security.models import ApprovalRequest

log = get_logger(__name__)

ApprovalHandler = Callable[[ApprovalRequest], Awaitable[bool]]


class ApprovalDecision(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"
    APPROVE_ALWAYS = "approve_always"


@dataclass
class PendingApproval:
    """One request waiting for a human answer."""

    request: ApprovalRequest
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    requested_at: float = field(default_factory=time.time)


class _PendingEntry:
    __slots__ = ("pending", "event", "decision")

    def __init__(self, pending: PendingApproval) -> None:
        self.pending = pending
        self.event = asyncio.Event()
        self.decision: ApprovalDecision | None = None


class ApprovalGate:
    """Pending-request table with timeout expiry and an "always" cache.

    All methods are meant for single-event-loop use.
    """

    def __init__(
        self,
        notify: Callable[[PendingApproval], Awaitable[None]] | None = None,
        timeout: float = 300.0,
    ) -> None:
        self._notify = notify
        self._timeout = timeout
        self._pending: dict[str, _PendingEntry] = {}
        self._always: set[tuple[str, str, str]] = set()

    @property
    def timeout(self) -> float:
        return self._timeout

    async def __call__(self, request: ApprovalRequest) -> bool:
        return await self.request_approval(request)

    # ------------------------------------------------------------------
    # Sandbox side
    # ------------------------------------------------------------------

    async def request_approval(
        self, request: ApprovalRequest, timeout: float | None = None
    ) -> bool:
        """Wait for a human decision.  Returns False on reject or timeout."""
        if request.cache_key in self._always:
            log.debug(
                "approval_always_cached",
                capability=request.capability,
                action=request.action,
            )
            return True

        effective_timeout = timeout if timeout is not None else self._timeout
        entry = _PendingEntry(PendingApproval(request=request))
        approval_id = entry.pending.id
        self._pending[approval_id] = entry
        log.info(
            "approval_requested",
            approval_id=approval_id,
            capability=request.capability,
            action=request.action,
            resource=request.resource,
        )

        try:
            if self._notify is not None:
                try:
                    await self._notify(entry.pending)
                except Exception as exc:
                    log.error("approval_notify_failed", approval_id=approval_id, error=str(exc))
                    return False
            try:
                await asyncio.wait_for(entry.event.wait(), timeout=effective_timeout)
            except asyncio.TimeoutError:
                if entry.decision is None:
                    log.warning(
                        "approval_timed_out",
                        approval_id=approval_id,
                        timeout=effective_timeout,
                    )
                    return False
        finally:
            self._pending.pop(approval_id, None)

        return entry.decision in (ApprovalDecision.APPROVE, ApprovalDecision.APPROVE_ALWAYS)

    # ------------------------------------------------------------------
    # Channel side
    # ------------------------------------------------------------------

    def resolve(self, approval_id: str, decision: ApprovalDecision | str) -> bool:
        """Deliver a decision.  Returns False for unknown, expired or settled ids."""
        entry = self._pending.get(approval_id)
        if entry is None or entry.decision is not None:
            return False

        decision = ApprovalDecision(decision)
        if decision is ApprovalDecision.APPROVE_ALWAYS:
            self._always.add(entry.pending.request.cache_key)

        entry.decision = decision
        self._pending.pop(approval_id, None)
        entry.event.set()
        log.info("approval_resolved", approval_id=approval_id, decision=decision.value)
        return True

    def cancel_all(self) -> int:
        """Resolve every pending request as rejected.  Used when a channel stops."""
        ids = list(self._pending)
        for approval_id in ids:
            self.resolve(approval_id, ApprovalDecision.REJECT)
        return len(ids)

    # ------------------------------------------------------------------
    # Query
    # ------------------------------------------------------------------

    def get_pending(self) -> list[PendingApproval]:
        return [e.pending for e in self._pending.values()]

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def is_always_approved(self, capability: str, action: str, resource: str) -> bool:
        return (capability, action, resource) in self._always

    def clear_always_approved(self) -> None:
        self._always.clear()
