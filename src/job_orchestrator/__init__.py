"""Dynamic job orchestration: dependency graphs that grow while they run."""

from .config import OrchestrationConfig, load_orchestrator_config
from .context import JobContext
from .errors import (
    ChildTaskValidationError,
    CircularDependencyError,
    DeadlockError,
    DepthLimitExceededError,
    DuplicateTaskError,
    GraphValidationError,
    InvalidDependencyError,
    InvalidJobRequestError,
    JobTimeoutError,
    MissingDependencyError,
    OrchestrationError,
    TaskLimitExceededError,
    UnsupportedTaskError,
)
from .graph import TaskGraph
from .handlers import HandlerRegistry, handler_registry
from .models import Job, JobStatus, Task, TaskStatus, build_initial_tasks
from .orchestrator import JobOrchestrator, OrchestrationResult, execute_job_orchestration
from .scoping import scope_child_tasks
from .service import process_job
from .storage import JobStore
from .validation import ChildTaskSpec, ValidationReport, validate_child_tasks

__all__ = [
    "ChildTaskSpec",
    "ChildTaskValidationError",
    "CircularDependencyError",
    "DeadlockError",
    "DepthLimitExceededError",
    "DuplicateTaskError",
    "GraphValidationError",
    "HandlerRegistry",
    "InvalidDependencyError",
    "InvalidJobRequestError",
    "Job",
    "JobContext",
    "JobOrchestrator",
    "JobStatus",
    "JobStore",
    "JobTimeoutError",
    "MissingDependencyError",
    "OrchestrationConfig",
    "OrchestrationError",
    "OrchestrationResult",
    "Task",
    "TaskGraph",
    "TaskLimitExceededError",
    "TaskStatus",
    "UnsupportedTaskError",
    "ValidationReport",
    "build_initial_tasks",
    "execute_job_orchestration",
    "handler_registry",
    "load_orchestrator_config",
    "process_job",
    "scope_child_tasks",
    "validate_child_tasks",
]
