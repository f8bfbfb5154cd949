"""Job processing: request validation, orchestration and persistence."""

from __future__ import annotations

import time
from typing import Any, Optional, Union

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .config import OrchestrationConfig
from .constants import DEFAULT_PERSIST_INTERVAL_SECONDS
from .errors import InvalidJobRequestError
from .handlers import HandlerLookup, HandlerRegistry
from .models import Job, build_initial_tasks, now_iso
from .orchestrator import JobOrchestrator, _sorted_by_start, execute_job_orchestration
from .storage import JobStore
from .validation import format_validation_error


class JobRequest(BaseModel):
    """Incoming job submission. Limits left unset fall back to the config."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: str
    tasks: list[dict[str, Any]]
    abort_on_failure: Optional[bool] = Field(default=None, alias="abortOnFailure")
    max_tasks: Optional[int] = Field(default=None, alias="maxTasks", ge=1)
    max_depth: Optional[int] = Field(default=None, alias="maxDepth", ge=0)
    timeout: Optional[int] = Field(default=None, gt=0)  # milliseconds
    verbose: Optional[bool] = None
    ai_planning: Optional[bool] = Field(default=None, alias="aiPlanning")
    ai_auditing: Optional[bool] = Field(default=None, alias="aiAuditing")

    @field_validator("name")
    @classmethod
    def _name_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("name must be a non-empty string")
        return value

    @field_validator("tasks")
    @classmethod
    def _tasks_not_empty(cls, value: list[dict[str, Any]]) -> list[dict[str, Any]]:
        if not value:
            raise ValueError("tasks must be a non-empty array")
        return value

    def to_config(self, base: OrchestrationConfig) -> OrchestrationConfig:
        return base.with_overrides(
            max_tasks=self.max_tasks,
            max_depth=self.max_depth,
            timeout=self.timeout,
            abort_on_failure=self.abort_on_failure,
            verbose=self.verbose,
            ai_planning=self.ai_planning,
            ai_auditing=self.ai_auditing,
            job_name=self.name,
        )


def parse_job_request(payload: Any) -> JobRequest:
    """Validate a raw payload, raising :class:`InvalidJobRequestError`."""
    if isinstance(payload, JobRequest):
        return payload
    if not isinstance(payload, dict):
        raise InvalidJobRequestError("Invalid input: job request must be an object")
    try:
        return JobRequest.model_validate(payload)
    except ValidationError as exc:
        errors = [format_validation_error("Invalid input", err) for err in exc.errors()]
        raise InvalidJobRequestError("; ".join(errors)) from exc


def job_response(job: Job) -> dict[str, Any]:
    data: dict[str, Any] = {
        "id": job.id,
        "name": job.name,
        "status": job.status.value,
        "tasks": [task.to_dict() for task in job.tasks],
        "created_at": job.created_at,
        "updated_at": job.updated_at,
    }
    if job.error_message:
        data["error_message"] = job.error_message
    return data


def build_job(request: JobRequest, config: OrchestrationConfig) -> Job:
    return Job(
        name=request.name,
        tasks=build_initial_tasks(request.tasks),
        abort_on_failure=config.abort_on_failure,
        max_tasks=config.max_tasks,
        max_depth=config.max_depth,
        timeout=config.timeout,
        verbose=config.verbose,
        ai_planning=config.ai_planning,
        ai_auditing=config.ai_auditing,
    )


async def process_job(
    payload: Any,
    *,
    config: Optional[OrchestrationConfig] = None,
    handlers: Union[HandlerRegistry, HandlerLookup, None] = None,
    store: Optional[JobStore] = None,
    persist_interval: float = DEFAULT_PERSIST_INTERVAL_SECONDS,
) -> dict[str, Any]:
    """Validate, run and (optionally) persist a job.

    Args:
        payload: Job request dict (``name``, ``tasks`` and optional limits).
        config: Base configuration that request fields override.
        handlers: Registry or lookup function; defaults to the global registry.
        store: When given, the job is saved before running, every
            ``persist_interval`` seconds while running, and once finished.
        persist_interval: Minimum seconds between progress saves.

    Returns:
        The job response dict.

    Raises:
        InvalidJobRequestError: If the payload is malformed.
    """
    request = parse_job_request(payload)
    job_config = request.to_config(config or OrchestrationConfig())
    job = build_job(request, job_config)
    logger.info("Processing job {} ({}) with {} task(s)", job.id, job.name, len(job.tasks))

    if store is not None:
        store.save(job)

    last_persist = time.monotonic()

    def _persist_progress(orchestrator: JobOrchestrator) -> None:
        nonlocal last_persist
        if store is None or time.monotonic() - last_persist < persist_interval:
            return
        job.tasks = _sorted_by_start(orchestrator.tasks.values())
        job.updated_at = now_iso()
        try:
            store.save(job)
        except (OSError, ValueError) as exc:
            logger.warning("Could not persist progress of job {}: {}", job.id, exc)
        last_persist = time.monotonic()

    result = await execute_job_orchestration(
        job.tasks,
        job_config,
        handlers=handlers,
        on_progress=_persist_progress if store is not None else None,
    )
    job.tasks = result.tasks
    job.update(status=result.status, error_message=result.error_message)

    if store is not None:
        store.save(job)

    if result.error_message:
        logger.warning("Job {} failed: {}", job.id, result.error_message)
    else:
        logger.info("Job {} finished with status {}", job.id, job.status.value)
    return job_response(job)
