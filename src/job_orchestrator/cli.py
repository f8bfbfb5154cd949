"""Command line interface for running and inspecting jobs."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any

from loguru import logger

from .config import load_orchestrator_config
from .constants import STATE_DIR_NAME
from .errors import OrchestrationError
from .graph import TaskGraph
from .handlers import handler_registry
from .io_utils import read_mapping
from .logging_utils import configure_logging, render_execution_plan, render_task_table, summarize_result
from .models import JobStatus, build_initial_tasks
from .service import job_response, parse_job_request, process_job
from .storage import JobStore


def _state_dir(args: argparse.Namespace) -> Path:
    if args.state_dir:
        return Path(args.state_dir).expanduser().resolve()
    return Path.cwd() / STATE_DIR_NAME


def _print_json(payload: Any) -> None:
    sys.stdout.write(json.dumps(payload, indent=2) + "\n")


def _load_job_file(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise ValueError(f"Job file not found: {path}")
    data, err = read_mapping(path)
    if err:
        raise ValueError(f"Unable to read job file: {err}")
    return data


def _run(args: argparse.Namespace) -> int:
    state_dir = _state_dir(args)
    config, err = load_orchestrator_config(state_dir)
    if err:
        logger.warning("Using default orchestration config: {}", err)

    try:
        payload = dict(_load_job_file(Path(args.job_file)))
    except ValueError as exc:
        sys.stderr.write(str(exc) + "\n")
        return 1

    if args.max_tasks is not None:
        payload["maxTasks"] = args.max_tasks
    if args.max_depth is not None:
        payload["maxDepth"] = args.max_depth
    if args.timeout is not None:
        payload["timeout"] = args.timeout
    if args.no_abort_on_failure:
        payload["abortOnFailure"] = False
    if args.verbose:
        payload["verbose"] = True

    store = JobStore(state_dir) if args.persist else None
    try:
        result = asyncio.run(process_job(payload, config=config, store=store))
    except OrchestrationError as exc:
        sys.stderr.write(str(exc) + "\n")
        return 1

    _print_json(summarize_result(result) if args.summary else result)
    return 0 if result["status"] == JobStatus.SUCCEEDED.value else 1


def _plan(args: argparse.Namespace) -> int:
    try:
        request = parse_job_request(_load_job_file(Path(args.job_file)))
        tasks = build_initial_tasks(request.tasks)
        graph = TaskGraph(tasks)
    except ValueError as exc:
        sys.stderr.write(str(exc) + "\n")
        return 1

    batches = graph.get_execution_batches()
    if args.json:
        _print_json({"name": request.name, "batches": batches})
    else:
        sys.stdout.write(render_execution_plan(batches, {t.id: t for t in tasks}, title=request.name))
    return 0


def _jobs_list(args: argparse.Namespace) -> int:
    store = JobStore(_state_dir(args))
    try:
        jobs = store.list()
    except ValueError as exc:
        sys.stderr.write(str(exc) + "\n")
        return 1
    _print_json({"jobs": [summarize_result(job_response(job)) for job in jobs]})
    return 0


def _jobs_show(args: argparse.Namespace) -> int:
    store = JobStore(_state_dir(args))
    try:
        job = store.get(args.job_id)
    except ValueError as exc:
        sys.stderr.write(str(exc) + "\n")
        return 1
    if job is None:
        sys.stderr.write(f"Job {args.job_id} not found\n")
        return 1
    if args.table:
        sys.stdout.write(render_task_table(job.tasks, title=f"{job.name} ({job.status.value})"))
    else:
        _print_json(job_response(job))
    return 0


def _handlers(args: argparse.Namespace) -> int:
    _print_json({"handlers": [d.to_dict() for d in handler_registry.list_commands()]})
    return 0


def _server(args: argparse.Namespace) -> int:
    try:
        import uvicorn
    except ImportError:
        sys.stderr.write("Install server extras: pip install 'job-orchestrator[server]'\n")
        return 1

    from .api import create_app

    app = create_app(state_dir=_state_dir(args))
    uvicorn.run(app, host=args.host, port=args.port)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Dynamic job orchestrator")
    parser.add_argument(
        "--state-dir",
        default=None,
        help=f"State directory for config and jobs (default: ./{STATE_DIR_NAME})",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    run = subparsers.add_parser("run", help="Run a job from a YAML/JSON file")
    run.add_argument("job_file")
    run.add_argument("--persist", action="store_true", help="Save the job to the state directory")
    run.add_argument("--max-tasks", type=int, default=None)
    run.add_argument("--max-depth", type=int, default=None)
    run.add_argument("--timeout", type=int, default=None, help="Job timeout in milliseconds")
    run.add_argument("--no-abort-on-failure", action="store_true")
    run.add_argument("--summary", action="store_true", help="Print a summary instead of the full job")
    run.add_argument("--verbose", action="store_true")
    run.set_defaults(func=_run)

    plan = subparsers.add_parser("plan", help="Validate a job file and show its execution batches")
    plan.add_argument("job_file")
    plan.add_argument("--json", action="store_true")
    plan.set_defaults(func=_plan)

    jobs = subparsers.add_parser("jobs", help="Inspect stored jobs")
    jobs_sub = jobs.add_subparsers(dest="jobs_cmd", required=True)
    jlist = jobs_sub.add_parser("list", help="List stored jobs")
    jlist.set_defaults(func=_jobs_list)
    jshow = jobs_sub.add_parser("show", help="Show one stored job")
    jshow.add_argument("job_id")
    jshow.add_argument("--table", action="store_true")
    jshow.set_defaults(func=_jobs_show)

    handlers = subparsers.add_parser("handlers", help="List registered handlers")
    handlers.set_defaults(func=_handlers)

    server = subparsers.add_parser("server", help="Start the HTTP API server")
    server.add_argument("--host", default="127.0.0.1")
    server.add_argument("--port", default=8000, type=int)
    server.set_defaults(func=_server)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging("DEBUG" if getattr(args, "verbose", False) else "INFO")
    handler = getattr(args, "func", None)
    if handler is None:
        parser.print_help()
        return 1
    return int(handler(args) or 0)


if __name__ == "__main__":
    raise SystemExit(main())
