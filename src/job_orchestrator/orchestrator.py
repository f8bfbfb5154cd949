"""Dynamic orchestration loop.

The loop repeatedly asks the :class:`TaskGraph` for ready tasks, runs them
concurrently and settles each one: handler output is recorded, child tasks are
spawned into the running graph and tasks that depended on the parent are made
to wait for the new children as well.

All structural mutation (registry, graph, completed set, failure flag) happens
while holding a single ``asyncio.Lock``; handlers only ever see the read-only
:class:`JobContext`.
"""

from __future__ import annotations

import asyncio
import copy
import inspect
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Optional, Union

from loguru import logger
from pydantic import ValidationError

from .config import OrchestrationConfig
from .constants import ABORT_ON_FAILURE_MESSAGE
from .context import JobContext
from .errors import (
    ChildTaskValidationError,
    DeadlockError,
    DepthLimitExceededError,
    DuplicateTaskError,
    InvalidDependencyError,
    JobTimeoutError,
    OrchestrationError,
    TaskLimitExceededError,
    UnsupportedTaskError,
)
from .graph import TaskGraph
from .handlers import Handler, HandlerLookup, HandlerRegistry, handler_registry
from .models import JobStatus, Task, TaskStatus, build_initial_tasks, now_iso
from .scoping import scope_child_tasks
from .validation import format_validation_error, validate_child_tasks

ProgressCallback = Callable[["JobOrchestrator"], Any]

_RESERVED_RESULT_KEYS = ("childTasks", "audit")


# ---------------------------------------------------------------------------
# Result
# ---------------------------------------------------------------------------

@dataclass
class OrchestrationResult:
    """Outcome of one orchestration run."""

    status: JobStatus
    tasks: list[Task] = field(default_factory=list)
    error_message: Optional[str] = None
    elapsed_ms: int = 0

    @property
    def succeeded(self) -> bool:
        return self.status is JobStatus.SUCCEEDED

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "status": self.status.value,
            "tasks": [task.to_dict() for task in self.tasks],
            "elapsed_ms": self.elapsed_ms,
        }
        if self.error_message:
            data["error_message"] = self.error_message
        return data


def _sorted_by_start(tasks: Iterable[Task]) -> list[Task]:
    """Order tasks by start time; tasks that never started go last."""
    return sorted(tasks, key=lambda t: (t.started_at is None, t.started_at or ""))


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------

class JobOrchestrator:
    """Drive a job's tasks from ``started`` to a terminal state."""

    def __init__(
        self,
        initial_tasks: Iterable[Any],
        config: Optional[OrchestrationConfig] = None,
        handlers: Union[HandlerRegistry, HandlerLookup, None] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> None:
        """Build the registry and the initial graph.

        Args:
            initial_tasks: Task instances or task spec dicts (depth 0).
            config: Limits and toggles; defaults to ``OrchestrationConfig()``.
            handlers: A :class:`HandlerRegistry` or a bare
                ``(service, command) -> handler`` lookup function. Defaults to
                the global registry with the built-in handlers.
            on_progress: Called with the orchestrator after every tick.

        Raises:
            OrchestrationError: If the initial tasks do not form a valid DAG.
        """
        self.config = config or OrchestrationConfig()
        handlers = handler_registry if handlers is None else handlers
        if isinstance(handlers, HandlerRegistry):
            self._handler_registry: Optional[HandlerRegistry] = handlers
            self._lookup: HandlerLookup = handlers.lookup
        else:
            self._handler_registry = None
            self._lookup = handlers
        self._on_progress = on_progress

        self.tasks: dict[str, Task] = {}
        for task in build_initial_tasks(initial_tasks):
            if task.id in self.tasks:
                raise DuplicateTaskError(task.id, f"Duplicate task id in job: {task.id}")
            self.tasks[task.id] = task

        self.graph = TaskGraph(self.tasks.values())
        self.completed: set[str] = set()
        self.failed = False
        self.context = JobContext(self.tasks, self.config)
        self._lock: Optional[asyncio.Lock] = None
        self._start: Optional[float] = None

    # ------------------------------------------------------------------
    # Main loop
    # ------------------------------------------------------------------

    async def run(self) -> OrchestrationResult:
        """Run ticks until every task is terminal or the job is terminated."""
        self._lock = asyncio.Lock()
        self._start = time.monotonic()
        self._log("Starting job {} with {} task(s)", self.config.job_name, len(self.tasks))

        try:
            while len(self.completed) < len(self.tasks):
                await self.tick()
                await self._notify_progress()
        except (DeadlockError, JobTimeoutError) as exc:
            logger.error("Job {} terminated: {}", self.config.job_name, exc)
            return self._result(JobStatus.FAILED, str(exc))

        status = JobStatus.FAILED if self.failed else JobStatus.SUCCEEDED
        self._log(
            "Job {} finished: status={} tasks={} elapsed={}ms",
            self.config.job_name,
            status.value,
            len(self.tasks),
            self.elapsed_ms,
        )
        return self._result(status, None)

    async def tick(self) -> list[str]:
        """Execute one round of ready tasks and return their ids."""
        if self._lock is None:
            self._lock = asyncio.Lock()
        if self._start is None:
            self._start = time.monotonic()

        self._check_timeout()
        ready = self.graph.get_executable_tasks(self.completed)
        if not ready:
            incomplete = [task_id for task_id in self.tasks if task_id not in self.completed]
            raise DeadlockError(incomplete)

        # Decided once per tick: tasks ready alongside a failing task still run.
        abort_pending = self.failed and self.config.abort_on_failure
        self._log("Executing {} ready task(s): {}", len(ready), ", ".join(ready))
        await asyncio.gather(*(self._execute_task(self.tasks[task_id], abort_pending) for task_id in ready))
        return ready

    @property
    def elapsed_ms(self) -> int:
        if self._start is None:
            return 0
        return int((time.monotonic() - self._start) * 1000)

    def _check_timeout(self) -> None:
        if self.config.timeout is None:
            return
        elapsed = self.elapsed_ms
        if elapsed > self.config.timeout:
            raise JobTimeoutError(self.config.timeout, elapsed, len(self.completed), len(self.tasks))

    async def _notify_progress(self) -> None:
        if self._on_progress is None:
            return
        outcome = self._on_progress(self)
        if inspect.isawaitable(outcome):
            await outcome

    def _result(self, status: JobStatus, error_message: Optional[str]) -> OrchestrationResult:
        return OrchestrationResult(
            status=status,
            tasks=_sorted_by_start(self.tasks.values()),
            error_message=error_message,
            elapsed_ms=self.elapsed_ms,
        )

    def _log(self, message: str, *args: Any) -> None:
        if self.config.verbose:
            logger.info(message, *args)
        else:
            logger.debug(message, *args)

    # ------------------------------------------------------------------
    # Task execution
    # ------------------------------------------------------------------

    async def _execute_task(self, task: Task, abort_pending: bool = False) -> None:
        assert self._lock is not None

        if task.status is TaskStatus.FAILED:
            # Created invalid; it becomes a failure once it is scheduled.
            async with self._lock:
                logger.warning("Task {} failed before execution: {}", task.id, task.error)
                now = now_iso()
                task.update(started_at=task.started_at or now, completed_at=now)
                self.completed.add(task.id)
                self.failed = True
            return

        if abort_pending:
            async with self._lock:
                self._abort(task, ABORT_ON_FAILURE_MESSAGE)
            return

        failed_dep = next(
            (
                dep_id
                for dep_id in self.graph.get_dependencies(task.id)
                if self.tasks[dep_id].status in (TaskStatus.FAILED, TaskStatus.ABORTED)
            ),
            None,
        )
        if failed_dep is not None:
            async with self._lock:
                self._abort(task, f"Dependency {failed_dep} did not succeed")
            return

        task.update(started_at=now_iso())
        self._log("Task {} started ({}/{})", task.id, task.service, task.command)

        try:
            handler = self._resolve_handler(task)
            self._validate_input(task)
            result = handler(copy.deepcopy(task), self.context)
            if inspect.isawaitable(result):
                result = await result
            if result is None:
                result = {}
            if not isinstance(result, dict):
                raise TypeError(
                    f"Handler for {task.service}/{task.command} returned "
                    f"{type(result).__name__}, expected dict"
                )
        except Exception as exc:
            async with self._lock:
                self._fail(task, str(exc) or exc.__class__.__name__)
            return

        async with self._lock:
            self._settle_success(task, result)

    def _resolve_handler(self, task: Task) -> Handler:
        handler = self._lookup(task.service, task.command)
        if handler is not None:
            return handler
        if self._handler_registry is not None:
            raise self._handler_registry.unsupported_task_error(task.service, task.command)
        raise UnsupportedTaskError(f"No handler registered for {task.service}/{task.command}")

    def _validate_input(self, task: Task) -> None:
        if self._handler_registry is None:
            return
        definition = self._handler_registry.get_definition(task.service, task.command)
        if definition is None or definition.input_model is None:
            return
        try:
            definition.input_model.model_validate(task.input)
        except ValidationError as exc:
            errors = [format_validation_error("input", err) for err in exc.errors()]
            raise ValueError(f"Invalid input for {definition.key}: " + "; ".join(errors)) from exc

    # ------------------------------------------------------------------
    # Settling (always called with the lock held)
    # ------------------------------------------------------------------

    def _settle_success(self, task: Task, result: dict[str, Any]) -> None:
        output = self._extract_output(result)
        audit = result.get("audit")
        if audit is not None and not isinstance(audit, dict):
            audit = {"value": audit}

        child_specs = result.get("childTasks")
        if child_specs is not None:
            try:
                spawned = self._spawn_children(task, child_specs)
            except OrchestrationError as exc:
                self._fail(task, str(exc), audit=audit)
                return
            if spawned:
                self._log("Task {} spawned {} child task(s): {}", task.id, len(spawned), ", ".join(spawned))

        task.update(output=output, audit=audit, status=TaskStatus.SUCCEEDED, completed_at=now_iso())
        self.completed.add(task.id)
        self._log("Task {} succeeded", task.id)

    @staticmethod
    def _extract_output(result: dict[str, Any]) -> dict[str, Any]:
        if "output" in result:
            output = result["output"]
            if output is None:
                return {}
            return dict(output) if isinstance(output, dict) else {"value": output}
        return {k: v for k, v in result.items() if k not in _RESERVED_RESULT_KEYS}

    def _fail(self, task: Task, message: str, audit: Optional[dict[str, Any]] = None) -> None:
        logger.warning("Task {} failed: {}", task.id, message)
        now = now_iso()
        task.update(
            output={"error": message},
            audit=audit,
            status=TaskStatus.FAILED,
            started_at=task.started_at or now,
            completed_at=now,
        )
        self.completed.add(task.id)
        self.failed = True

    def _abort(self, task: Task, message: str) -> None:
        self._log("Task {} aborted: {}", task.id, message)
        task.update(output={"error": message}, status=TaskStatus.ABORTED, completed_at=now_iso())
        self.completed.add(task.id)

    # ------------------------------------------------------------------
    # Child spawning
    # ------------------------------------------------------------------

    def _spawn_children(self, parent: Task, raw_specs: Any) -> list[str]:
        """Validate, scope, limit-check and insert a batch of child tasks.

        Either the whole batch is inserted or nothing is: any failure rolls
        back the nodes and dependency extensions made so far and re-raises.
        """
        report, specs = validate_child_tasks(raw_specs, parent.id)
        if not report.is_valid:
            raise ChildTaskValidationError(parent.id, report.errors)
        if not specs:
            return []

        scoped = scope_child_tasks(parent.id, specs).scoped_children
        planned = [spec.id or "" for spec in scoped]
        self._check_duplicate_ids(parent.id, planned)
        planned_set = set(planned)

        child_depth = parent.depth + 1
        for index, spec in enumerate(scoped):
            child_id = planned[index]
            if len(self.tasks) + index >= self.config.max_tasks:
                raise TaskLimitExceededError(self.config.max_tasks, parent.id, child_id)
            if child_depth > self.config.max_depth:
                raise DepthLimitExceededError(self.config.max_depth, parent.id, child_id, child_depth)
            for dep_id in spec.depends_on:
                if dep_id not in self.tasks and dep_id not in planned_set:
                    raise InvalidDependencyError(child_id, dep_id)

        created: list[str] = []
        extended: dict[str, list[str]] = {}
        try:
            for spec in scoped:
                child = Task(
                    id=spec.id or "",
                    service=spec.service,
                    command=spec.command,
                    input=dict(spec.input),
                    depends_on=list(spec.depends_on),
                    depth=child_depth,
                )
                self.graph.add_node(child.id, child)
                self.tasks[child.id] = child
                created.append(child.id)

            for child_id in created:
                for dep_id in self.tasks[child_id].depends_on:
                    self.graph.add_edge(dep_id, child_id)

            dependents = [
                task
                for task in self.tasks.values()
                if parent.id in task.depends_on and task.id not in planned_set
            ]
            for dependent in dependents:
                added = dependent.add_dependencies(created)
                if added:
                    extended[dependent.id] = added
                for child_id in created:
                    self.graph.add_edge(child_id, dependent.id)
            self.graph.validate_no_cycles()
        except OrchestrationError:
            for dependent_id, added in extended.items():
                self.tasks[dependent_id].remove_dependencies(added)
            for child_id in created:
                self.graph.remove_node(child_id)
                self.tasks.pop(child_id, None)
            raise

        if extended:
            self._log(
                "Propagated {} new dependency(ies) of {} to: {}",
                len(created),
                parent.id,
                ", ".join(extended),
            )
        return created

    def _check_duplicate_ids(self, parent_id: str, planned: list[str]) -> None:
        problems: list[str] = []
        seen: set[str] = set()
        for child_id in planned:
            if child_id in seen:
                problems.append(f"{child_id} (repeated within the batch)")
            elif child_id in self.tasks:
                problems.append(f"{child_id} (already exists in the job)")
            seen.add(child_id)
        if problems:
            raise DuplicateTaskError(
                problems[0].split(" ", 1)[0],
                f"Duplicate child task IDs detected for parent {parent_id}: " + ", ".join(problems),
            )


# ---------------------------------------------------------------------------
# Functional entry point
# ---------------------------------------------------------------------------

async def execute_job_orchestration(
    initial_tasks: Iterable[Any],
    config: Optional[OrchestrationConfig] = None,
    handlers: Union[HandlerRegistry, HandlerLookup, None] = None,
    on_progress: Optional[ProgressCallback] = None,
) -> OrchestrationResult:
    """Run a job to completion and return the outcome.

    Structural problems with the initial tasks (missing dependency, cycle,
    duplicate id) are reported as a failed result instead of raised.
    """
    initial = build_initial_tasks(initial_tasks)
    try:
        orchestrator = JobOrchestrator(initial, config=config, handlers=handlers, on_progress=on_progress)
    except OrchestrationError as exc:
        logger.error("Job {} rejected: {}", (config or OrchestrationConfig()).job_name, exc)
        return OrchestrationResult(status=JobStatus.FAILED, tasks=initial, error_message=str(exc))
    return await orchestrator.run()
