"""Logging setup and human-readable summaries of jobs and plans."""

from __future__ import annotations

import sys
from typing import Any, Iterable, Optional

from loguru import logger
from rich.console import Console
from rich.table import Table
from rich.tree import Tree

from .models import Task, TaskStatus

_STATUS_STYLES = {
    TaskStatus.STARTED: "[yellow]started[/yellow]",
    TaskStatus.SUCCEEDED: "[green]✓ succeeded[/green]",
    TaskStatus.FAILED: "[red]✗ failed[/red]",
    TaskStatus.ABORTED: "[magenta]aborted[/magenta]",
}


def configure_logging(level: str = "INFO") -> None:
    """Configure the loguru stderr sink with the specified level."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=level.upper(),
        format=(
            "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{module}</cyan>:<cyan>{line}</cyan>\n"
            "{message}"
        ),
    )


def summarize_result(result: dict[str, Any]) -> dict[str, Any]:
    """Render a compact, JSON-friendly summary of a job response.

    Args:
        result: Job response dict as returned by ``process_job``.

    Returns:
        Counts per task status plus the failed task ids and their errors.
    """
    tasks = list(result.get("tasks") or [])
    counts: dict[str, int] = {status.value: 0 for status in TaskStatus}
    failures: dict[str, str] = {}
    for task in tasks:
        status = str(task.get("status") or "")
        counts[status] = counts.get(status, 0) + 1
        if status in (TaskStatus.FAILED.value, TaskStatus.ABORTED.value):
            failures[str(task.get("id"))] = str((task.get("output") or {}).get("error") or "")

    summary: dict[str, Any] = {
        "id": result.get("id"),
        "name": result.get("name"),
        "status": result.get("status"),
        "total": len(tasks),
        "counts": counts,
        "max_depth": max((int(t.get("depth") or 0) for t in tasks), default=0),
    }
    if failures:
        summary["failures"] = failures
    if result.get("error_message"):
        summary["error_message"] = result["error_message"]
    return summary


def render_task_table(tasks: Iterable[Task], title: str = "Job Tasks") -> str:
    """Render task states as a rich table and return it as plain text."""
    console = Console(record=True, width=120)
    table = Table(title=title, show_header=True)
    table.add_column("Task ID", style="cyan")
    table.add_column("Handler")
    table.add_column("Depth", justify="right")
    table.add_column("Status", style="bold")
    table.add_column("Error", style="red")

    for task in tasks:
        error = task.error or ""
        table.add_row(
            task.id,
            f"{task.service}/{task.command}",
            str(task.depth),
            _STATUS_STYLES.get(task.status, task.status.value),
            error[:60],
        )

    console.print(table)
    return console.export_text()


def render_execution_plan(
    batches: list[list[str]],
    tasks: dict[str, Task],
    title: Optional[str] = None,
) -> str:
    """Render execution batches as a rich tree and return it as plain text."""
    console = Console(record=True, width=100)
    tree = Tree(f"[bold]{title or 'Execution Plan'}[/bold]")

    for batch_idx, batch in enumerate(batches, 1):
        branch = tree.add(f"[bold cyan]Batch {batch_idx}[/bold cyan] ({len(batch)} task(s) in parallel)")
        for task_id in batch:
            task = tasks.get(task_id)
            label = f"{task_id} [dim]{task.service}/{task.command}[/dim]" if task else task_id
            if task and task.depends_on:
                label += f" [dim](depends on: {', '.join(task.depends_on)})[/dim]"
            branch.add(label)

    console.print(tree)
    return console.export_text()
