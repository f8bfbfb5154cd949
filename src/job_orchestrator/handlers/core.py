"""Built-in ``core`` service handlers.

These are small, deterministic handlers useful for smoke-testing a deployment
and for composing jobs by hand: echoing input, spawning children and waiting.
"""

from __future__ import annotations

import asyncio
from typing import Any

from pydantic import BaseModel, Field

from ..context import JobContext
from ..models import Task
from .registry import handler_registry


class SpawnInput(BaseModel):
    tasks: list[dict[str, Any]] = Field(default_factory=list)


class SleepInput(BaseModel):
    seconds: float = Field(default=0.0, ge=0.0)


@handler_registry.register("core", "echo", description="Return the task input as output.")
async def echo(task: Task, context: JobContext) -> dict[str, Any]:
    return {"output": dict(task.input)}


@handler_registry.register(
    "core",
    "spawn",
    description="Spawn the child tasks listed in input.tasks.",
    input_model=SpawnInput,
)
async def spawn(task: Task, context: JobContext) -> dict[str, Any]:
    children = list(task.input.get("tasks") or [])
    return {
        "output": {"spawned": len(children)},
        "childTasks": children,
    }


@handler_registry.register(
    "core",
    "sleep",
    description="Wait input.seconds before succeeding.",
    input_model=SleepInput,
)
async def sleep(task: Task, context: JobContext) -> dict[str, Any]:
    seconds = float(task.input.get("seconds") or 0.0)
    await asyncio.sleep(seconds)
    return {"output": {"slept": seconds}}
