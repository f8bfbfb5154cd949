"""FastAPI application exposing job submission and inspection."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Optional

from fastapi import Body, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from .config import OrchestrationConfig, load_orchestrator_config
from .constants import DEFAULT_PERSIST_INTERVAL_SECONDS, STATE_DIR_NAME
from .errors import InvalidJobRequestError
from .handlers import HandlerRegistry, handler_registry
from .service import job_response, process_job
from .storage import JobStore


def create_app(
    state_dir: Optional[Path] = None,
    handlers: Optional[HandlerRegistry] = None,
    config: Optional[OrchestrationConfig] = None,
    enable_cors: bool = True,
    persist_interval: float = DEFAULT_PERSIST_INTERVAL_SECONDS,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        state_dir: Directory holding ``config.yaml`` and ``jobs.yaml``.
            Defaults to ``./.job_orchestrator``.
        handlers: Handler registry; defaults to the global registry.
        config: Base orchestration config. When omitted it is loaded from
            ``config.yaml`` in ``state_dir``.
        enable_cors: Whether to enable CORS.
        persist_interval: Seconds between progress saves of running jobs.

    Returns:
        Configured FastAPI app.
    """
    state_dir = Path(state_dir) if state_dir is not None else Path.cwd() / STATE_DIR_NAME
    registry = handlers if handlers is not None else handler_registry
    if config is None:
        config, err = load_orchestrator_config(state_dir)
        if err:
            logger.warning("Using default orchestration config: {}", err)

    app = FastAPI(
        title="Job Orchestrator",
        description="Submit jobs of dependent tasks and inspect their results",
        version="1.0.0",
    )

    if enable_cors:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    app.state.state_dir = state_dir
    app.state.store = JobStore(state_dir)
    app.state.config = config
    app.state.handlers = registry

    @app.get("/")
    async def root() -> dict[str, Any]:
        return {"name": "Job Orchestrator", "version": "1.0.0", "status": "running"}

    @app.post("/api/jobs", status_code=201)
    async def create_job(payload: Any = Body(...)) -> dict[str, Any]:
        """Run a job to completion and return its final state."""
        try:
            return await process_job(
                payload,
                config=app.state.config,
                handlers=app.state.handlers,
                store=app.state.store,
                persist_interval=persist_interval,
            )
        except InvalidJobRequestError as e:
            raise HTTPException(status_code=400, detail=str(e))

    @app.get("/api/jobs")
    async def list_jobs() -> dict[str, Any]:
        jobs = [job_response(job) for job in app.state.store.list()]
        return {"jobs": jobs, "total": len(jobs)}

    @app.get("/api/jobs/{job_id}")
    async def get_job(job_id: str) -> dict[str, Any]:
        job = app.state.store.get(job_id)
        if job is None:
            raise HTTPException(status_code=404, detail=f"Job {job_id} not found")
        return job_response(job)

    @app.get("/api/handlers")
    async def list_handlers() -> dict[str, Any]:
        return {"handlers": [definition.to_dict() for definition in app.state.handlers.list_commands()]}

    return app
