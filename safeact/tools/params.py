"""Typed parameter models for the built-in tools.

The JSON schema shown to the LLM is generated from these models, so field
descriptions are written for the model, not for developers.
"""

from __future__ import annotations

from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field


class _ToolParams(BaseModel):
    model_config = ConfigDict(extra="ignore")


NonEmpty = Annotated[str, Field(min_length=1)]


# ---------------------------------------------------------------------------
# Filesystem
# ---------------------------------------------------------------------------


class ReadFileParams(_ToolParams):
    path: NonEmpty = Field(description="Path of the file to read. `~` is allowed.")


class WriteFileParams(_ToolParams):
    path: NonEmpty = Field(description="Path of the file to write.")
    content: str = Field(description="Full text content to write.")


class ListDirectoryParams(_ToolParams):
    path: NonEmpty = Field(description="Directory to list.")


class SearchFilesParams(_ToolParams):
    path: NonEmpty = Field(description="Directory root to search.")
    pattern: NonEmpty = Field(description="File name pattern, e.g. *.md")


class MoveFileParams(_ToolParams):
    source_path: NonEmpty = Field(description="Original file path.")
    destination_path: NonEmpty = Field(description="Destination file path.")


# ---------------------------------------------------------------------------
# Shell / network
# ---------------------------------------------------------------------------


class ExecuteCommandParams(_ToolParams):
    command: NonEmpty = Field(description="Shell command line to run.")
    cwd: str | None = Field(default=None, description="Working directory.")
    timeout: Annotated[float, Field(gt=0, le=600)] | None = Field(
        default=None, description="Timeout in seconds."
    )


class HttpRequestParams(_ToolParams):
    url: NonEmpty = Field(description="Absolute http(s) URL.")
    method: Literal["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE"] = "GET"
    headers: dict[str, str] | None = Field(default=None, description="Request headers.")
    body: str | None = Field(default=None, description="Request body for non-GET methods.")


# ---------------------------------------------------------------------------
# Scheduler
# ---------------------------------------------------------------------------


class CreateScheduledJobParams(_ToolParams):
    name: NonEmpty | None = Field(default=None, description="Optional job name.")
    schedule: NonEmpty = Field(
        description='Cron expression or natural language schedule (e.g. "every 30 minutes").'
    )
    task: NonEmpty = Field(description="Task to execute on each run.")


class ListScheduledJobsParams(_ToolParams):
    enabled_only: bool = Field(default=False, description="Only return enabled jobs.")


class ManageJobParams(_ToolParams):
    id: NonEmpty = Field(description="Job id.")
    action: Literal["enable", "disable", "delete"] = Field(description="Operation to apply.")


# ---------------------------------------------------------------------------
# Meta
# ---------------------------------------------------------------------------


class AskUserParams(_ToolParams):
    question: NonEmpty = Field(description="Question to ask the user.")
    context: str | None = Field(default=None, description="Context shown with the question.")


class ReportProgressParams(_ToolParams):
    message: NonEmpty = Field(description="Progress message.")
    percent: Annotated[float, Field(ge=0, le=100)] | None = Field(
        default=None, description="Completion percentage (0-100)."
    )
