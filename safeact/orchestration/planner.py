"""Orchestration layer — LLM-assisted planner.

Turns a multi-step request into an :class:`ExecutionPlan`.  The LLM output is
untrusted: every field is checked and normalised, and any failure yields
``None`` ("no plan") so the caller can fall back to the single-step loop.

Usage::

    planner = Planner(llm)
    if should_plan(text):
        plan = await planner.create_plan(text, history)
"""

from __future__ import annotations

import json
import re
from typing import Any, Sequence

from safeact.exceptions import PlanParseError, PlanValidationError
from safeact.llm.client import LLMClient, LLMRequest, Message, TaskType
from safeact.logging import get_logger
from safeact.orchestration.dag import validate_plan
from safeact.orchestration.models import ExecutionPlan, ExecutionPlanStep
from safeact.tools.base import Tool
from safeact.tools.registry import get_tools

log = get_logger(__name__)

DEFAULT_MAX_STEPS = 8
DEFAULT_GOAL = "Complete user request"

SIDE_EFFECT_TOOLS: frozenset[str] = frozenset(
    {
        "write_file",
        "move_file",
        "execute_command",
        "http_request",
        "create_scheduled_job",
        "manage_job",
    }
)

MULTI_STEP_HINTS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(p, re.IGNORECASE)
    for p in (
        r"\bthen\b",
        r"\band then\b",
        r"\bafter that\b",
        r"\bfirst\b.*\bthen\b",
        r"\bcreate\b.*\b(write|list|read|move|run)\b",
        r"\bmulti[- ]step\b",
    )
)

_FENCED_JSON = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```", re.IGNORECASE)

_PLAN_SHAPE = (
    '{"goal":"...","steps":[{"id":1,"description":"...","tool":"...","params":{},'
    '"depends_on":[],"can_fail":false,"fallback":"optional"}],'
    '"has_side_effects":true,"estimated_duration":"...","risks":["..."]}'
)


def should_plan(text: str) -> bool:
    """Cheap sequencing-language heuristic.  No LLM call."""
    return any(p.search(text) for p in MULTI_STEP_HINTS)


# ---------------------------------------------------------------------------
# Prompt
# ---------------------------------------------------------------------------


def build_planning_prompt(
    text: str,
    history: Sequence[Message],
    tools: Sequence[Tool],
    history_turns: int = 6,
) -> str:
    tool_lines = [f"- {t.name}: {t.description}" for t in tools]
    recent = list(history)[-history_turns:] if history_turns > 0 else []
    history_lines = [f"{m.role}: {m.content}" for m in recent] or ["(none)"]
    return "\n".join(
        [
            "You are planning steps for a tool-using agent.",
            "Return ONLY valid JSON with this shape:",
            _PLAN_SHAPE,
            "Rules:",
            "- Use only the listed tools",
            "- Keep steps minimal and ordered",
            "- Read before write when relevant",
            "- Mark has_side_effects true for write/move/shell/network mutating tasks",
            "Available tools:",
            *tool_lines,
            "Recent conversation:",
            *history_lines,
            f"User request: {text}",
        ]
    )


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def extract_json_block(text: str) -> str | None:
    """Return the first JSON object in *text*, preferring a fenced block.

    The fallback scan counts brace depth and ignores braces inside string
    literals, so ``{"a": "}"}`` is returned whole.
    """
    fenced = _FENCED_JSON.search(text)
    if fenced and fenced.group(1).strip():
        return fenced.group(1).strip()

    start = text.find("{")
    if start < 0:
        return None

    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[start : i + 1]
    return None


def _positive_int(value: Any) -> int | None:
    # bool is an int subclass; JSON true must not become step 1.
    if isinstance(value, bool):
        return None
    if isinstance(value, int) and value > 0:
        return value
    if isinstance(value, float) and value.is_integer() and value > 0:
        return int(value)
    return None


def _pick(raw: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in raw:
            return raw[key]
    return None


def normalize_step(raw: Any, index: int) -> ExecutionPlanStep | None:
    """Coerce one raw step dict, or return None if it is unusable."""
    if not isinstance(raw, dict):
        return None

    description = raw.get("description")
    tool = raw.get("tool")
    if not isinstance(description, str) or not description.strip():
        return None
    if not isinstance(tool, str) or not tool.strip():
        return None

    step_id = _positive_int(raw.get("id")) or index + 1
    params = raw.get("params")
    depends = _pick(raw, "depends_on", "dependsOn")
    fallback = raw.get("fallback")

    return ExecutionPlanStep(
        id=step_id,
        description=description.strip(),
        tool=tool.strip(),
        params=params if isinstance(params, dict) else {},
        depends_on=[d for d in (_positive_int(v) for v in depends) if d is not None]
        if isinstance(depends, list)
        else [],
        can_fail=bool(_pick(raw, "can_fail", "canFail")),
        fallback=fallback.strip() if isinstance(fallback, str) and fallback.strip() else None,
    )


def normalize_plan(candidate: Any, max_steps: int = DEFAULT_MAX_STEPS) -> ExecutionPlan:
    """Build a validated plan from decoded JSON.

    Raises:
        PlanParseError: no usable steps.
        PlanValidationError: duplicate ids or invalid dependencies.
    """
    if not isinstance(candidate, dict):
        raise PlanParseError("Plan JSON is not an object")
    raw_steps = candidate.get("steps")
    if not isinstance(raw_steps, list):
        raise PlanParseError("Plan JSON has no steps list")

    steps: list[ExecutionPlanStep] = []
    for index, raw in enumerate(raw_steps):
        if len(steps) >= max_steps:
            break
        step = normalize_step(raw, index)
        if step is not None:
            steps.append(step)
    if not steps:
        raise PlanParseError("Plan contains no valid steps")
    steps.sort(key=lambda s: s.id)

    goal = candidate.get("goal")
    duration = _pick(candidate, "estimated_duration", "estimatedDuration")
    risks = candidate.get("risks")
    declared = bool(_pick(candidate, "has_side_effects", "hasSideEffects"))

    plan = ExecutionPlan(
        goal=goal.strip() if isinstance(goal, str) and goal.strip() else DEFAULT_GOAL,
        steps=steps,
        has_side_effects=declared or any(s.tool in SIDE_EFFECT_TOOLS for s in steps),
        estimated_duration=duration if isinstance(duration, str) and duration else "unknown",
        risks=[str(r) for r in risks] if isinstance(risks, list) else [],
    )
    validate_plan(plan)
    return plan


def parse_plan_from_text(text: str, max_steps: int = DEFAULT_MAX_STEPS) -> ExecutionPlan | None:
    """Extract and normalise a plan from LLM output.  Never raises."""
    block = extract_json_block(text)
    if block is None:
        log.debug("plan_json_missing")
        return None
    try:
        return normalize_plan(json.loads(block), max_steps=max_steps)
    except (ValueError, RecursionError) as exc:
        log.debug("plan_json_invalid", error=str(exc))
    except (PlanParseError, PlanValidationError) as exc:
        log.info("plan_rejected", error=exc.message)
    return None


# ---------------------------------------------------------------------------
# Planner
# ---------------------------------------------------------------------------


class Planner:
    def __init__(
        self,
        llm: LLMClient,
        tools: Sequence[Tool] | None = None,
        max_steps: int = DEFAULT_MAX_STEPS,
        history_turns: int = 6,
        max_tokens: int = 1400,
    ) -> None:
        self._llm = llm
        self._tools = list(tools) if tools is not None else get_tools()
        self._max_steps = max_steps
        self._history_turns = history_turns
        self._max_tokens = max_tokens

    @property
    def max_steps(self) -> int:
        return self._max_steps

    async def create_plan(
        self, text: str, history: Sequence[Message] = ()
    ) -> ExecutionPlan | None:
        """Ask the LLM for a plan.  Returns None on any failure."""
        prompt = build_planning_prompt(text, history, self._tools, self._history_turns)
        request = LLMRequest(
            messages=[Message(role="user", content=prompt)],
            temperature=0,
            max_tokens=self._max_tokens,
            task_type=TaskType.COMPLEX_REASONING,
        )
        try:
            response = await self._llm.complete(request)
        except Exception as exc:
            log.warning("plan_llm_failed", error=str(exc))
            return None

        plan = parse_plan_from_text(response.content, max_steps=self._max_steps)
        if plan is None:
            log.info("plan_unavailable", model=response.model)
            return None
        log.info(
            "plan_created",
            plan_id=plan.plan_id,
            steps=len(plan.steps),
            has_side_effects=plan.has_side_effects,
        )
        return plan
