"""Unit tests — DAGScheduler."""

from __future__ import annotations

import pytest

from safeact.exceptions import DAGCycleError, PlanValidationError
from safeact.orchestration.dag import DAGScheduler, validate_plan
from safeact.orchestration.models import ExecutionPlan, ExecutionPlanStep


def _plan(*deps: list[int]) -> ExecutionPlan:
    return ExecutionPlan(
        goal="g",
        steps=[
            ExecutionPlanStep(id=i + 1, description=f"s{i + 1}", tool="read_file", depends_on=d)
            for i, d in enumerate(deps)
        ],
    )


@pytest.mark.unit
class TestDAGScheduler:
    def test_ready_respects_dependencies(self) -> None:
        # 1 ─► 2 ─► 4
        # 1 ─► 3 ─┘
        scheduler = DAGScheduler(_plan([], [1], [1], [2, 3]))

        assert scheduler.ready(done=set(), started=set()) == [1]
        assert scheduler.ready(done={1}, started={1}) == [2, 3]
        assert scheduler.ready(done={1, 2}, started={1, 2, 3}) == []
        assert scheduler.ready(done={1, 2, 3}, started={1, 2, 3}) == [4]

    def test_independent_steps_all_ready(self) -> None:
        assert DAGScheduler(_plan([], [], [])).ready(set(), set()) == [1, 2, 3]

    def test_topological_order(self) -> None:
        scheduler = DAGScheduler(_plan([3], [], []))
        order = scheduler.topological_order()
        assert order.index(3) < order.index(1)
        assert sorted(order) == [1, 2, 3]

    def test_descendants_and_predecessors(self) -> None:
        scheduler = DAGScheduler(_plan([], [1], [2], []))
        assert scheduler.descendants(1) == {2, 3}
        assert scheduler.descendants(4) == set()
        assert scheduler.predecessors(3) == [2]

    def test_cycle_detected(self) -> None:
        with pytest.raises(DAGCycleError) as exc_info:
            DAGScheduler(_plan([3], [1], [2]))
        assert set(exc_info.value.cycle) == {1, 2, 3}

    def test_self_dependency(self) -> None:
        with pytest.raises(PlanValidationError, match="Step 2 depends on itself"):
            DAGScheduler(_plan([], [2]))

    def test_unknown_dependency(self) -> None:
        with pytest.raises(PlanValidationError, match="Step 1 depends on unknown step 5"):
            validate_plan(_plan([5]))

    def test_duplicate_ids(self) -> None:
        step = ExecutionPlanStep(id=1, description="a", tool="t")
        plan = ExecutionPlan(goal="g", steps=[step, step])
        with pytest.raises(PlanValidationError, match="Duplicate step id: 1"):
            DAGScheduler(plan)
