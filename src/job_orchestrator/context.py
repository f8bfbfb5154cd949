"""Read-only view of a running job handed to task handlers.

Handlers must never mutate the registry; they describe desired changes (child
tasks) through their return value only. Everything returned here is a copy,
so a handler scribbling on a result cannot corrupt the orchestrator's state.
"""

from __future__ import annotations

import copy
from types import MappingProxyType
from typing import Any, Mapping, Optional

from .config import OrchestrationConfig
from .models import Task


class JobContext:
    """Inter-task lookups plus the job's configuration."""

    def __init__(self, registry: Mapping[str, Task], config: OrchestrationConfig) -> None:
        self._registry = registry
        self._config = config

    # -- job configuration --------------------------------------------------

    @property
    def verbose(self) -> bool:
        return self._config.verbose

    @property
    def max_tasks(self) -> int:
        return self._config.max_tasks

    @property
    def max_depth(self) -> int:
        return self._config.max_depth

    @property
    def timeout(self) -> Optional[int]:
        return self._config.timeout

    @property
    def ai_planning(self) -> bool:
        return self._config.ai_planning

    @property
    def ai_auditing(self) -> bool:
        return self._config.ai_auditing

    # -- task lookups -------------------------------------------------------

    def get_task(self, task_id: str) -> Optional[Task]:
        task = self._registry.get(task_id)
        return copy.deepcopy(task) if task is not None else None

    def get_task_output(self, task_id: str) -> Optional[Mapping[str, Any]]:
        task = self._registry.get(task_id)
        if task is None:
            return None
        return MappingProxyType(copy.deepcopy(task.output))

    def get_task_audit(self, task_id: str) -> Optional[Mapping[str, Any]]:
        task = self._registry.get(task_id)
        if task is None or task.audit is None:
            return None
        return MappingProxyType(copy.deepcopy(task.audit))

    def get_all_tasks(self) -> tuple[Task, ...]:
        return tuple(copy.deepcopy(task) for task in self._registry.values())

    def has_task(self, task_id: str) -> bool:
        return task_id in self._registry

    def is_task_completed(self, task_id: str) -> bool:
        task = self._registry.get(task_id)
        return task is not None and task.is_terminal
