"""Shell, network and scheduler tools."""

from __future__ import annotations

from typing import Any

from safeact.tools.base import CapabilityTool
from safeact.tools.params import (
    CreateScheduledJobParams,
    ExecuteCommandParams,
    HttpRequestParams,
    ListScheduledJobsParams,
    ManageJobParams,
)


class ExecuteCommandTool(CapabilityTool):
    name = "execute_command"
    description = (
        "Run a shell command. Safe read-only commands run immediately; "
        "anything else asks the user first."
    )
    params_model = ExecuteCommandParams
    capability = "shell"
    action = "run"


class HttpRequestTool(CapabilityTool):
    name = "http_request"
    description = "Send an HTTP request. Unknown domains require user approval."
    params_model = HttpRequestParams
    capability = "network"
    action = "request"


class CreateScheduledJobTool(CapabilityTool):
    name = "create_scheduled_job"
    description = "Create a persistent scheduled job for the agent."
    params_model = CreateScheduledJobParams
    capability = "scheduler"
    action = "create_job"


class ListScheduledJobsTool(CapabilityTool):
    name = "list_scheduled_jobs"
    description = "List all currently registered scheduled jobs."
    params_model = ListScheduledJobsParams
    capability = "scheduler"
    action = "list_jobs"


class ManageJobTool(CapabilityTool):
    name = "manage_job"
    description = "Enable, disable, or delete an existing scheduled job."
    params_model = ManageJobParams
    capability = "scheduler"
    action = "manage_job"

    def map_params(self, params: ManageJobParams) -> dict[str, Any]:
        return {"id": params.id, "operation": params.action}


def create_shell_tools() -> list[CapabilityTool]:
    return [ExecuteCommandTool()]


def create_network_tools() -> list[CapabilityTool]:
    return [HttpRequestTool()]


def create_scheduler_tools() -> list[CapabilityTool]:
    return [CreateScheduledJobTool(), ListScheduledJobsTool(), ManageJobTool()]
