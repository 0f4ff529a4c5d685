"""SafeAct — policy-gated tool execution and planning for autonomous agents.

Architecture layers (bottom to top):
    1. Security      — Capability sandbox, approval gate, audit trail
    2. Tools         — Named tools, each bound to one (capability, action)
    3. Orchestration — LLM planner, DAG scheduler, plan executor, plan runner
    4. Events        — Typed progress events and event bus backends
    5. CLI           — Tool catalog, policy checks, plan parsing, audit reading
"""

__version__ = "0.1.0"
__author__ = "SafeAct Contributors"

from safeact.orchestration.models import ExecutionPlan, ExecutionPlanStep

__all__ = [
    "__version__",
    "ExecutionPlan",
    "ExecutionPlanStep",
]
