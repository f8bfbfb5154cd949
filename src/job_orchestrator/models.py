"""Task and job entities for the dynamic orchestration engine.

A :class:`Task` is one unit of orchestrated work. Its ``depth`` is an explicit
field set once at creation (0 for tasks submitted with the job, parent + 1 for
spawned children); it is never recomputed from the shape of the id, because
ids may be arbitrary text that happens to contain the separator.

A :class:`Job` owns the initial task set, the safety limits and the overall
status. Both serialize to plain dicts for YAML/JSON persistence.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterable, Optional

from .constants import DEFAULT_ABORT_ON_FAILURE, DEFAULT_MAX_DEPTH, DEFAULT_MAX_TASKS


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class TaskStatus(str, Enum):
    """Lifecycle status of a single task."""

    STARTED = "started"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    ABORTED = "aborted"

    @property
    def is_terminal(self) -> bool:
        return self is not TaskStatus.STARTED


class JobStatus(str, Enum):
    STARTED = "started"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:10]}"


def _id_text(raw: Any) -> str:
    """Task ids may arrive as numbers; only a missing id is empty."""
    return "" if raw is None else str(raw)


def _dedupe(ids: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    out: list[str] = []
    for item in ids:
        if item in seen:
            continue
        seen.add(item)
        out.append(item)
    return out


def _coerce_status(enum_cls: type[Enum], raw: Any, default: Enum) -> Any:
    if raw is None:
        return default
    if isinstance(raw, enum_cls):
        return raw
    try:
        return enum_cls(str(raw))
    except ValueError:
        return default


# ---------------------------------------------------------------------------
# Task
# ---------------------------------------------------------------------------

@dataclass
class Task:
    """A unit of work identified by ``id`` and dispatched by ``service``/``command``."""

    service: str
    command: str
    id: str = ""
    input: dict[str, Any] = field(default_factory=dict)
    output: dict[str, Any] = field(default_factory=dict)
    audit: Optional[dict[str, Any]] = None
    depends_on: list[str] = field(default_factory=list)
    depth: int = 0
    status: TaskStatus = TaskStatus.STARTED
    started_at: Optional[str] = None
    completed_at: Optional[str] = None

    def __post_init__(self) -> None:
        if not isinstance(self.depth, int) or self.depth < 0:
            raise ValueError(f"Task depth must be a non-negative integer, got {self.depth!r}")
        self.depends_on = _dedupe(str(dep) for dep in (self.depends_on or []))
        self.input = dict(self.input or {})
        self.output = dict(self.output or {})

        error: Optional[str] = None
        if not isinstance(self.service, str) or not self.service.strip():
            error = "Invalid input: service must be a non-empty string"
        elif not isinstance(self.command, str) or not self.command.strip():
            error = "Invalid input: command must be a non-empty string"
        if error and self.status is TaskStatus.STARTED:
            self.status = TaskStatus.FAILED
            self.output = self.output or {"error": error}

    # ------------------------------------------------------------------
    # Status helpers
    # ------------------------------------------------------------------

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def error(self) -> Optional[str]:
        value = self.output.get("error") if isinstance(self.output, dict) else None
        return str(value) if value is not None else None

    def update(
        self,
        *,
        output: Optional[dict[str, Any]] = None,
        audit: Optional[dict[str, Any]] = None,
        status: Optional[TaskStatus] = None,
        started_at: Optional[str] = None,
        completed_at: Optional[str] = None,
    ) -> "Task":
        """Apply a status/output transition. A completed task can no longer change."""
        if self.completed_at is not None:
            raise ValueError(f"Task {self.id} is terminal ({self.status.value}) and cannot be updated")
        if output is not None:
            self.output = dict(output)
        if audit is not None:
            self.audit = dict(audit)
        if status is not None:
            self.status = status
        if started_at is not None:
            self.started_at = started_at
        if completed_at is not None:
            self.completed_at = completed_at
        return self

    # ------------------------------------------------------------------
    # Dependency helpers
    # ------------------------------------------------------------------

    def add_dependencies(self, task_ids: Iterable[str]) -> list[str]:
        """Append unseen ids to ``depends_on`` and return the ones actually added."""
        added: list[str] = []
        for task_id in task_ids:
            if task_id not in self.depends_on:
                self.depends_on.append(task_id)
                added.append(task_id)
        return added

    def remove_dependencies(self, task_ids: Iterable[str]) -> None:
        drop = set(task_ids)
        self.depends_on = [dep for dep in self.depends_on if dep not in drop]

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "service": self.service,
            "command": self.command,
            "input": dict(self.input),
            "output": dict(self.output),
            "status": self.status.value,
            "depth": self.depth,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
        }
        if self.depends_on:
            data["depends_on"] = list(self.depends_on)
        if self.audit is not None:
            data["audit"] = dict(self.audit)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Task":
        return cls(
            id=_id_text(data.get("id")),
            service=data.get("service") or "",
            command=data.get("command") or "",
            input=dict(data.get("input") or {}),
            output=dict(data.get("output") or {}),
            audit=dict(data["audit"]) if isinstance(data.get("audit"), dict) else None,
            depends_on=list(data.get("depends_on") or []),
            depth=int(data.get("depth") or 0),
            status=_coerce_status(TaskStatus, data.get("status"), TaskStatus.STARTED),
            started_at=data.get("started_at"),
            completed_at=data.get("completed_at"),
        )


def build_initial_tasks(specs: Iterable[Any]) -> list[Task]:
    """Normalize submitted task specs into depth-0 tasks.

    Specs may be :class:`Task` instances or dicts using either ``dependsOn`` or
    ``depends_on``. Tasks without an id are numbered by their position.
    """
    tasks: list[Task] = []
    for index, spec in enumerate(specs):
        if isinstance(spec, Task):
            task = spec
        elif isinstance(spec, dict):
            task = Task(
                id=_id_text(spec.get("id")),
                service=spec.get("service") or "",
                command=spec.get("command") or "",
                input=dict(spec.get("input") or {}),
                depends_on=list(spec.get("dependsOn") or spec.get("depends_on") or []),
            )
        else:
            raise TypeError(f"Task spec at position {index} must be a dict, got {type(spec).__name__}")
        if not task.id:
            task.id = str(index)
        task.depth = 0
        tasks.append(task)
    return tasks


# ---------------------------------------------------------------------------
# Job
# ---------------------------------------------------------------------------

@dataclass
class Job:
    """One orchestration run: the initial tasks plus limits and overall status."""

    name: str
    tasks: list[Task] = field(default_factory=list)
    abort_on_failure: bool = DEFAULT_ABORT_ON_FAILURE
    max_tasks: int = DEFAULT_MAX_TASKS
    max_depth: int = DEFAULT_MAX_DEPTH
    timeout: Optional[int] = None  # milliseconds
    verbose: bool = False
    ai_planning: bool = False
    ai_auditing: bool = False
    id: str = field(default_factory=lambda: _id("job"))
    status: JobStatus = JobStatus.STARTED
    error_message: Optional[str] = None
    created_at: str = field(default_factory=now_iso)
    updated_at: str = field(default_factory=now_iso)

    def __post_init__(self) -> None:
        for index, task in enumerate(self.tasks):
            if not task.id:
                task.id = str(index)

    def update(self, *, status: JobStatus, error_message: Optional[str] = None) -> "Job":
        self.status = status
        if error_message is not None:
            self.error_message = error_message
        self.updated_at = now_iso()
        return self

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "abort_on_failure": self.abort_on_failure,
            "status": self.status.value,
            "max_tasks": self.max_tasks,
            "max_depth": self.max_depth,
            "verbose": self.verbose,
            "ai_planning": self.ai_planning,
            "ai_auditing": self.ai_auditing,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "tasks": [task.to_dict() for task in self.tasks],
        }
        if self.timeout is not None:
            data["timeout"] = self.timeout
        if self.error_message:
            data["error_message"] = self.error_message
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Job":
        timeout = data.get("timeout")
        return cls(
            id=str(data.get("id") or _id("job")),
            name=str(data.get("name") or ""),
            tasks=[Task.from_dict(t) for t in list(data.get("tasks") or []) if isinstance(t, dict)],
            abort_on_failure=bool(data.get("abort_on_failure", DEFAULT_ABORT_ON_FAILURE)),
            max_tasks=int(data.get("max_tasks") or DEFAULT_MAX_TASKS),
            max_depth=int(data.get("max_depth") or DEFAULT_MAX_DEPTH),
            timeout=int(timeout) if timeout is not None else None,
            verbose=bool(data.get("verbose", False)),
            ai_planning=bool(data.get("ai_planning", False)),
            ai_auditing=bool(data.get("ai_auditing", False)),
            status=_coerce_status(JobStatus, data.get("status"), JobStatus.STARTED),
            error_message=data.get("error_message"),
            created_at=str(data.get("created_at") or now_iso()),
            updated_at=str(data.get("updated_at") or now_iso()),
        )
