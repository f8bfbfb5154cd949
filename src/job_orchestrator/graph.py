"""Dependency graph over job tasks with eager cycle validation.

Nodes are task ids, an edge ``a -> b`` means *a must reach a terminal state
before b may start*. The graph is mutated while the job is running (children
spawn and dependents are extended), so every single edge insertion re-runs a
full cycle pass and is rolled back if it closed a cycle. Graphs are bounded by
the job's task limit, which keeps the full pass affordable.
"""

from __future__ import annotations

from collections import deque
from typing import Iterable, Optional

from .errors import CircularDependencyError, DuplicateTaskError, GraphValidationError, MissingDependencyError
from .models import Task


class TaskGraph:
    """Directed acyclic graph of tasks keyed by id."""

    def __init__(self, tasks: Iterable[Task] = ()) -> None:
        self._nodes: dict[str, Task] = {}
        self._successors: dict[str, list[str]] = {}
        self._predecessors: dict[str, list[str]] = {}

        tasks = list(tasks)
        for task in tasks:
            self.add_node(task.id, task)

        for task in tasks:
            for dep_id in task.depends_on:
                if dep_id not in self._nodes:
                    raise MissingDependencyError(
                        f"Task {task.id} depends on non-existent task {dep_id}",
                        task_id=task.id,
                        missing_id=dep_id,
                    )
                self._link(dep_id, task.id)

        self.validate_no_cycles()

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def add_node(self, task_id: str, task: Task) -> None:
        """Add a task node. A lone node cannot close a cycle."""
        if task_id in self._nodes:
            raise DuplicateTaskError(task_id)
        self._nodes[task_id] = task
        self._successors[task_id] = []
        self._predecessors[task_id] = []

    def add_edge(self, from_id: str, to_id: str) -> None:
        """Add ``from_id -> to_id`` and reject it immediately if it closes a cycle."""
        if from_id not in self._nodes:
            raise GraphValidationError(f"Cannot add edge: source task {from_id} does not exist")
        if to_id not in self._nodes:
            raise GraphValidationError(f"Cannot add edge: target task {to_id} does not exist")
        if to_id in self._successors[from_id]:
            return

        self._link(from_id, to_id)
        cycle = self.find_cycle()
        if cycle:
            self._unlink(from_id, to_id)
            raise CircularDependencyError(cycle)

    def remove_node(self, task_id: str) -> None:
        """Drop a node and every edge touching it (used to roll back a failed spawn)."""
        if task_id not in self._nodes:
            return
        for succ in list(self._successors[task_id]):
            self._unlink(task_id, succ)
        for pred in list(self._predecessors[task_id]):
            self._unlink(pred, task_id)
        del self._nodes[task_id]
        del self._successors[task_id]
        del self._predecessors[task_id]

    def _link(self, from_id: str, to_id: str) -> None:
        if to_id not in self._successors[from_id]:
            self._successors[from_id].append(to_id)
            self._predecessors[to_id].append(from_id)

    def _unlink(self, from_id: str, to_id: str) -> None:
        if to_id in self._successors[from_id]:
            self._successors[from_id].remove(to_id)
            self._predecessors[to_id].remove(from_id)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def has_node(self, task_id: str) -> bool:
        return task_id in self._nodes

    def get_node(self, task_id: str) -> Optional[Task]:
        return self._nodes.get(task_id)

    def size(self) -> int:
        return len(self._nodes)

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._nodes

    def nodes(self) -> list[str]:
        return list(self._nodes)

    def has_edge(self, from_id: str, to_id: str) -> bool:
        return to_id in self._successors.get(from_id, [])

    def edges(self) -> list[tuple[str, str]]:
        return [(src, dst) for src, succs in self._successors.items() for dst in succs]

    def get_dependencies(self, task_id: str) -> list[str]:
        return list(self._predecessors.get(task_id, []))

    def get_dependents(self, task_id: str) -> list[str]:
        return list(self._successors.get(task_id, []))

    def get_executable_tasks(self, completed: Iterable[str]) -> list[str]:
        """Return ids not yet completed whose every dependency is completed."""
        done = set(completed)
        return [
            node_id
            for node_id in self._nodes
            if node_id not in done and all(dep in done for dep in self._predecessors[node_id])
        ]

    # ------------------------------------------------------------------
    # Cycle detection and ordering
    # ------------------------------------------------------------------

    def find_cycle(self) -> Optional[list[str]]:
        """Return one cycle as ``[a, b, ..., a]`` or None if the graph is acyclic."""
        # 0 = unvisited, 1 = on the current DFS path, 2 = finished
        state: dict[str, int] = {node_id: 0 for node_id in self._nodes}

        for root in self._nodes:
            if state[root] != 0:
                continue
            path: list[str] = [root]
            stack: list[Iterable[str]] = [iter(self._successors[root])]
            state[root] = 1
            while stack:
                advanced = False
                for neighbor in stack[-1]:
                    if state[neighbor] == 1:
                        start = path.index(neighbor)
                        return path[start:] + [neighbor]
                    if state[neighbor] == 0:
                        state[neighbor] = 1
                        path.append(neighbor)
                        stack.append(iter(self._successors[neighbor]))
                        advanced = True
                        break
                if not advanced:
                    state[path.pop()] = 2
                    stack.pop()
        return None

    def validate_no_cycles(self) -> None:
        cycle = self.find_cycle()
        if cycle:
            raise CircularDependencyError(cycle)

    def get_execution_batches(self) -> list[list[str]]:
        """Group ids into layers where each layer only depends on earlier ones.

        Diagnostic only; the orchestrator is readiness-driven.
        """
        in_degree = {node_id: len(preds) for node_id, preds in self._predecessors.items()}
        queue = deque(node_id for node_id, degree in in_degree.items() if degree == 0)
        batches: list[list[str]] = []

        while queue:
            batch = list(queue)
            batches.append(batch)
            queue.clear()
            for node_id in batch:
                for dependent in self._successors[node_id]:
                    in_degree[dependent] -= 1
                    if in_degree[dependent] == 0:
                        queue.append(dependent)

        if sum(len(batch) for batch in batches) != len(self._nodes):
            self.validate_no_cycles()
        return batches

    def get_topological_order(self) -> list[str]:
        return [node_id for batch in self.get_execution_batches() for node_id in batch]
