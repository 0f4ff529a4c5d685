"""Capabilities — Scheduler.

Wraps an injected :class:`JobScheduler` (the cron/heartbeat backend lives
outside the agent core).  Reading is free; anything that changes persistent
state needs a human:

    list_jobs   → auto
    create_job  → user-approved
    manage_job  → user-approved   (operation: enable | disable | delete)
"""

from __future__ import annotations

import time
from dataclasses import asdict, dataclass
from typing import Any, Protocol

from safeact.logging import get_logger
from safeact.security.capabilities.base import BaseCapability
from safeact.security.models import (
    Allowed,
    AuditDecision,
    AuditResult,
    CapabilityResult,
    DecisionLevel,
    Denied,
    PermissionDecision,
    PermissionRequest,
)

log = get_logger(__name__)

ACTIONS = ("list_jobs", "create_job", "manage_job")
OPERATIONS = ("enable", "disable", "delete")


@dataclass
class ScheduledJob:
    id: str
    schedule: str
    task: str
    name: str | None = None
    enabled: bool = True

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class JobScheduler(Protocol):
    async def list_jobs(self) -> list[ScheduledJob]: ...

    async def create_job(self, name: str | None, schedule: str, task: str) -> str: ...

    async def get_job(self, job_id: str) -> ScheduledJob | None: ...

    async def enable_job(self, job_id: str) -> None: ...

    async def disable_job(self, job_id: str) -> None: ...

    async def delete_job(self, job_id: str) -> None: ...


class SchedulerCapability(BaseCapability):
    name = "scheduler"
    description = "Create, list and manage persistent scheduled jobs"

    def __init__(self, scheduler: JobScheduler | None = None) -> None:
        self._scheduler = scheduler

    def check_permission(self, request: PermissionRequest) -> PermissionDecision:
        if request.action not in ACTIONS:
            return Denied(f"Unknown scheduler action: {request.action}")
        if request.action == "list_jobs":
            return Allowed(DecisionLevel.AUTO)
        return Allowed(DecisionLevel.USER_APPROVED)

    async def execute(self, action: str, params: dict[str, Any]) -> CapabilityResult:
        resource = str(params.get("id") or params.get("schedule") or "")
        decision, refusal = self._guard(action, resource, params)
        if refusal is not None:
            return refusal

        scheduler = self._scheduler
        if scheduler is None:
            return self._fail(
                action, resource, params, "Scheduler is not available.",
                decision=AuditDecision.ERROR, result=AuditResult.ERROR,
            )

        started = time.perf_counter()
        handler = getattr(self, f"_action_{action}")
        try:
            output, text, resource = await handler(scheduler, params, resource)
        except (ValueError, RuntimeError) as exc:
            duration_ms = (time.perf_counter() - started) * 1000
            log.error("scheduler_action_failed", action=action, error=str(exc))
            return self._fail(
                action, resource, params, str(exc),
                decision=AuditDecision.ERROR, result=AuditResult.ERROR, duration_ms=duration_ms,
            )
        return self._succeed(action, resource, params, decision, output, text, started)

    async def _action_list_jobs(
        self, scheduler: JobScheduler, params: dict[str, Any], resource: str
    ) -> tuple[Any, str, str]:
        jobs = await scheduler.list_jobs()
        if params.get("enabled_only"):
            jobs = [job for job in jobs if job.enabled]
        return [job.to_dict() for job in jobs], f"jobs={len(jobs)}", resource

    async def _action_create_job(
        self, scheduler: JobScheduler, params: dict[str, Any], resource: str
    ) -> tuple[Any, str, str]:
        schedule = str(params.get("schedule") or "").strip()
        task = str(params.get("task") or "").strip()
        if not schedule or not task:
            raise ValueError("schedule and task are required")
        name = params.get("name") if isinstance(params.get("name"), str) else None
        job_id = await scheduler.create_job(name, schedule, task)
        created = await scheduler.get_job(job_id)
        output = created.to_dict() if created else {"id": job_id}
        log.info("scheduled_job_created", job_id=job_id, schedule=schedule)
        return output, f"created={job_id}", job_id

    async def _action_manage_job(
        self, scheduler: JobScheduler, params: dict[str, Any], resource: str
    ) -> tuple[Any, str, str]:
        job_id = str(params.get("id") or "").strip()
        operation = str(params.get("operation") or "").strip()
        if not job_id or operation not in OPERATIONS:
            raise ValueError("id and operation (enable|disable|delete) are required")
        if await scheduler.get_job(job_id) is None:
            raise ValueError(f"Job not found: {job_id}")
        await getattr(scheduler, f"{operation}_job")(job_id)
        log.info("scheduled_job_updated", job_id=job_id, operation=operation)
        return {"id": job_id, "operation": operation}, f"{operation}={job_id}", job_id
