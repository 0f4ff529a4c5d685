"""Security layer — Wire a sandbox from settings.

Usage::

    settings = Settings.load()
    store = SQLiteAuditStore(settings.audit.db_path)
    await store.init()
    sandbox = build_sandbox(settings, audit_store=store, approval_handler=gate)
"""

from __future__ import annotations

from safeact.config import Settings
from safeact.events.bus import EventBus
from safeact.security.approval import ApprovalHandler
from safeact.security.audit import AuditStore, AuditTrail
from safeact.security.capabilities import (
    FilesystemCapability,
    JobScheduler,
    NetworkCapability,
    SchedulerCapability,
    ShellCapability,
)
from safeact.security.sandbox import CapabilitySandbox


def build_sandbox(
    settings: Settings,
    *,
    audit_store: AuditStore | None = None,
    bus: EventBus | None = None,
    approval_handler: ApprovalHandler | None = None,
    scheduler: JobScheduler | None = None,
    home: str | None = None,
) -> CapabilitySandbox:
    """Return a sandbox with the four built-in capabilities registered."""
    audit = AuditTrail(
        audit_store, bus=bus, output_max_bytes=settings.audit.output_max_bytes
    )
    sandbox = CapabilitySandbox(audit, approval_handler=approval_handler)
    policy = settings.sandbox
    sandbox.register(FilesystemCapability(policy.filesystem, home=home))
    sandbox.register(ShellCapability(policy.shell))
    sandbox.register(NetworkCapability(policy.network))
    sandbox.register(SchedulerCapability(scheduler))
    return sandbox
