"""Exception taxonomy for graph validation, spawning limits and job termination."""

from __future__ import annotations

from typing import Optional


class OrchestrationError(ValueError):
    """Base class for every error raised by the orchestration engine."""


# ---------------------------------------------------------------------------
# Structural / validation errors
# ---------------------------------------------------------------------------

class GraphValidationError(OrchestrationError):
    """The dependency graph rejected a mutation."""


class MissingDependencyError(GraphValidationError):
    def __init__(self, message: str, task_id: Optional[str] = None, missing_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.task_id = task_id
        self.missing_id = missing_id


class CircularDependencyError(GraphValidationError):
    def __init__(self, cycle: list[str]) -> None:
        self.cycle = list(cycle)
        super().__init__(f"Circular dependencies detected: {' -> '.join(self.cycle)}")


class DuplicateTaskError(GraphValidationError):
    def __init__(self, task_id: str, message: Optional[str] = None) -> None:
        self.task_id = task_id
        super().__init__(message or f"Task {task_id} already exists in graph - cannot add duplicate task")


class ChildTaskValidationError(OrchestrationError):
    def __init__(self, parent_id: str, errors: list[str]) -> None:
        self.parent_id = parent_id
        self.errors = list(errors)
        super().__init__(f"Child task validation failed for parent {parent_id}:\n" + "\n".join(self.errors))


class InvalidDependencyError(OrchestrationError):
    def __init__(self, child_id: str, dependency_id: str) -> None:
        self.child_id = child_id
        self.dependency_id = dependency_id
        super().__init__(
            f"Invalid dependency: Child task {child_id} depends on non-existent task {dependency_id}. "
            "Dependencies must reference existing tasks or siblings being spawned together."
        )


# ---------------------------------------------------------------------------
# Safety limits
# ---------------------------------------------------------------------------

class TaskLimitExceededError(OrchestrationError):
    def __init__(self, max_tasks: int, parent_id: str, child_id: str) -> None:
        self.max_tasks = max_tasks
        super().__init__(
            f"Task limit exceeded: {max_tasks} tasks maximum. "
            f"Task {parent_id} attempted to spawn child {child_id}. "
            "This may indicate a runaway AI or infinite loop."
        )


class DepthLimitExceededError(OrchestrationError):
    def __init__(self, max_depth: int, parent_id: str, child_id: str, depth: int) -> None:
        self.max_depth = max_depth
        self.depth = depth
        super().__init__(
            f"Task depth limit exceeded: {max_depth} levels maximum. "
            f"Task {parent_id} attempted to spawn child at depth {depth}. "
            f"Child ID: {child_id}"
        )


# ---------------------------------------------------------------------------
# Job-level termination
# ---------------------------------------------------------------------------

class DeadlockError(OrchestrationError):
    def __init__(self, incomplete: list[str]) -> None:
        self.incomplete = list(incomplete)
        super().__init__(
            f"Deadlock detected: {len(self.incomplete)} tasks cannot execute. "
            f"Incomplete tasks: {', '.join(self.incomplete)}"
        )


class JobTimeoutError(OrchestrationError):
    def __init__(self, timeout_ms: int, elapsed_ms: int, completed: int, total: int) -> None:
        self.timeout_ms = timeout_ms
        self.elapsed_ms = elapsed_ms
        super().__init__(
            f"Job execution timeout: {timeout_ms}ms limit exceeded. "
            f"Elapsed: {elapsed_ms}ms. Completed {completed}/{total} tasks."
        )


# ---------------------------------------------------------------------------
# Handlers and requests
# ---------------------------------------------------------------------------

class UnsupportedTaskError(OrchestrationError):
    """No handler is registered for a task's service/command pair."""


class InvalidJobRequestError(OrchestrationError):
    """A job request payload is malformed."""
