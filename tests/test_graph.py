"""Tests for the dependency graph."""

from __future__ import annotations

import pytest

from job_orchestrator.errors import (
    CircularDependencyError,
    DuplicateTaskError,
    GraphValidationError,
    MissingDependencyError,
)
from job_orchestrator.graph import TaskGraph
from job_orchestrator.models import Task


def _task(task_id: str, deps: list[str] | None = None) -> Task:
    return Task(id=task_id, service="svc", command="cmd", depends_on=deps or [])


def _diamond() -> TaskGraph:
    return TaskGraph(
        [
            _task("A"),
            _task("B", ["A"]),
            _task("C", ["A"]),
            _task("D", ["B", "C"]),
        ]
    )


class TestConstruction:
    def test_acyclic_graph_builds(self) -> None:
        graph = _diamond()
        assert graph.size() == 4
        assert len(graph) == 4
        assert graph.has_node("D")
        assert graph.get_node("B").id == "B"
        assert graph.get_node("missing") is None
        assert graph.has_edge("A", "B")
        assert not graph.has_edge("B", "A")

    def test_missing_dependency_names_task_and_target(self) -> None:
        with pytest.raises(MissingDependencyError, match="Task B depends on non-existent task X") as exc:
            TaskGraph([_task("A"), _task("B", ["X"])])
        assert exc.value.task_id == "B"
        assert exc.value.missing_id == "X"

    def test_self_loop_rejected(self) -> None:
        with pytest.raises(CircularDependencyError) as exc:
            TaskGraph([_task("A", ["A"])])
        assert exc.value.cycle == ["A", "A"]

    def test_two_cycle_rejected(self) -> None:
        with pytest.raises(CircularDependencyError, match="Circular dependencies detected"):
            TaskGraph([_task("A", ["B"]), _task("B", ["A"])])

    def test_long_cycle_rejected(self) -> None:
        with pytest.raises(CircularDependencyError) as exc:
            TaskGraph([_task("A", ["C"]), _task("B", ["A"]), _task("C", ["B"]), _task("D")])
        cycle = exc.value.cycle
        assert cycle[0] == cycle[-1]
        assert set(cycle) == {"A", "B", "C"}

    def test_dependency_order_independent_of_declaration_order(self) -> None:
        graph = TaskGraph([_task("B", ["A"]), _task("A")])
        assert graph.get_executable_tasks([]) == ["A"]


class TestMutation:
    def test_duplicate_node_rejected(self) -> None:
        graph = TaskGraph([_task("A")])
        with pytest.raises(DuplicateTaskError, match="already exists"):
            graph.add_node("A", _task("A"))

    def test_add_edge_requires_both_endpoints(self) -> None:
        graph = TaskGraph([_task("A")])
        with pytest.raises(GraphValidationError, match="source task X does not exist"):
            graph.add_edge("X", "A")
        with pytest.raises(GraphValidationError, match="target task Y does not exist"):
            graph.add_edge("A", "Y")

    def test_cycle_closing_edge_rejected_and_removed(self) -> None:
        graph = TaskGraph([_task("A"), _task("B", ["A"]), _task("C", ["B"])])
        with pytest.raises(CircularDependencyError) as exc:
            graph.add_edge("C", "A")
        assert exc.value.cycle[0] == exc.value.cycle[-1]
        assert not graph.has_edge("C", "A")
        graph.validate_no_cycles()

    def test_rejected_edge_leaves_other_edges_untouched(self) -> None:
        graph = TaskGraph([_task("A"), _task("B", ["A"]), _task("C", ["B"]), _task("X")])
        graph.add_edge("X", "C")
        before = sorted(graph.edges())
        with pytest.raises(CircularDependencyError):
            graph.add_edge("C", "A")
        assert sorted(graph.edges()) == before
        assert graph.get_dependencies("C") == ["B", "X"]

    def test_reverse_edge_between_spawned_siblings_names_both(self) -> None:
        graph = TaskGraph([_task("0")])
        graph.add_node("0-0", _task("0-0"))
        graph.add_node("0-1", _task("0-1"))
        graph.add_edge("0-0", "0-1")
        with pytest.raises(CircularDependencyError, match="Circular dependencies detected") as exc:
            graph.add_edge("0-1", "0-0")
        assert "0-0" in str(exc.value)
        assert "0-1" in str(exc.value)
        assert set(exc.value.cycle) == {"0-0", "0-1"}
        assert graph.edges() == [("0-0", "0-1")]

    def test_add_existing_edge_is_noop(self) -> None:
        graph = TaskGraph([_task("A"), _task("B", ["A"])])
        graph.add_edge("A", "B")
        assert graph.edges() == [("A", "B")]

    def test_remove_node_drops_edges(self) -> None:
        graph = _diamond()
        graph.remove_node("B")
        assert not graph.has_node("B")
        assert graph.get_dependencies("D") == ["C"]
        assert graph.get_dependents("A") == ["C"]


class TestQueries:
    def test_ready_set_is_idempotent(self) -> None:
        graph = _diamond()
        completed = {"A"}
        first = graph.get_executable_tasks(completed)
        second = graph.get_executable_tasks(completed)
        assert first == second == ["B", "C"]

    def test_diamond_progression(self) -> None:
        graph = _diamond()
        assert graph.get_executable_tasks([]) == ["A"]
        assert graph.get_executable_tasks(["A", "B"]) == ["C"]
        assert graph.get_executable_tasks(["A", "B", "C"]) == ["D"]
        assert graph.get_executable_tasks(["A", "B", "C", "D"]) == []

    def test_execution_batches_and_topological_order(self) -> None:
        graph = _diamond()
        assert graph.get_execution_batches() == [["A"], ["B", "C"], ["D"]]
        order = graph.get_topological_order()
        assert order.index("A") < order.index("B") < order.index("D")
        assert order.index("C") < order.index("D")

    def test_dependencies_and_dependents(self) -> None:
        graph = _diamond()
        assert graph.get_dependencies("D") == ["B", "C"]
        assert graph.get_dependents("A") == ["B", "C"]
        assert "A" in graph
