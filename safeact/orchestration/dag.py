"""Orchestration layer — DAG Scheduler.

Builds a NetworkX DiGraph from an ExecutionPlan and answers the dependency
questions the executor needs: which steps are ready, which steps depend on
a failed one.
"""

from __future__ import annotations

from typing import Iterable

import networkx as nx

from safeact.exceptions import DAGCycleError, PlanValidationError
from safeact.orchestration.models import ExecutionPlan


class DAGScheduler:
    """Validated execution graph for a plan.

    Usage::

        scheduler = DAGScheduler(plan)        # raises PlanValidationError
        ready = scheduler.ready(done={1, 2}, started={1, 2})
    """

    def __init__(self, plan: ExecutionPlan) -> None:
        self._plan = plan
        self._graph = self._build_graph(plan)

    @staticmethod
    def _build_graph(plan: ExecutionPlan) -> nx.DiGraph:
        graph: nx.DiGraph = nx.DiGraph()
        for step in plan.steps:
            if step.id in graph:
                raise PlanValidationError(
                    f"Duplicate step id: {step.id}", context={"step_id": step.id}
                )
            graph.add_node(step.id)
        for step in plan.steps:
            for dep in step.depends_on:
                if dep == step.id:
                    raise PlanValidationError(
                        f"Step {step.id} depends on itself", context={"step_id": step.id}
                    )
                if dep not in graph:
                    raise PlanValidationError(
                        f"Step {step.id} depends on unknown step {dep}",
                        context={"step_id": step.id, "depends_on": dep},
                    )
                graph.add_edge(dep, step.id)

        if not nx.is_directed_acyclic_graph(graph):
            try:
                cycle = nx.find_cycle(graph)
                cycle_ids = [edge[0] for edge in cycle] + [cycle[-1][1]]
            except nx.NetworkXNoCycle:
                cycle_ids = []
            raise DAGCycleError(cycle_ids)

        return graph

    def ready(self, done: Iterable[int], started: Iterable[int]) -> list[int]:
        """Return step ids not yet started whose predecessors are all in *done*."""
        done_set = set(done)
        started_set = set(started)
        return sorted(
            n
            for n in self._graph.nodes
            if n not in started_set
            and all(p in done_set for p in self._graph.predecessors(n))
        )

    def topological_order(self) -> list[int]:
        return list(nx.lexicographical_topological_sort(self._graph))

    def predecessors(self, step_id: int) -> list[int]:
        return list(self._graph.predecessors(step_id))

    def descendants(self, step_id: int) -> set[int]:
        """Return all transitive successors of *step_id*."""
        return nx.descendants(self._graph, step_id)


def validate_plan(plan: ExecutionPlan) -> None:
    """Raise :class:`PlanValidationError` if *plan* is not a valid DAG."""
    DAGScheduler(plan)
