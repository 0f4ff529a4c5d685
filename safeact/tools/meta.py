"""Meta tools — conversation helpers with no side effects.

They never touch the sandbox, so they produce no audit entries.
"""

from __future__ import annotations

from safeact.tools.base import Tool, ToolContext, ToolResult
from safeact.tools.params import AskUserParams, ReportProgressParams


class AskUserTool(Tool):
    name = "ask_user"
    description = "Request clarification from the user when task intent is ambiguous."
    params_model = AskUserParams

    async def execute(self, params: AskUserParams, context: ToolContext) -> ToolResult:
        return ToolResult.ok(
            {
                "type": "user-question",
                "requires_user_input": True,
                "question": params.question,
                "context": params.context,
            }
        )


class ReportProgressTool(Tool):
    name = "report_progress"
    description = "Emit structured progress updates during multi-step execution."
    params_model = ReportProgressParams

    async def execute(self, params: ReportProgressParams, context: ToolContext) -> ToolResult:
        return ToolResult.ok(
            {"type": "progress-update", "message": params.message, "percent": params.percent}
        )


def create_meta_tools() -> list[Tool]:
    return [AskUserTool(), ReportProgressTool()]
