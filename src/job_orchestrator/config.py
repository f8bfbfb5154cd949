"""Orchestration limits and toggles, plus loading them from ``config.yaml``."""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Any, Optional

from .constants import (
    CONFIG_FILE,
    DEFAULT_ABORT_ON_FAILURE,
    DEFAULT_MAX_DEPTH,
    DEFAULT_MAX_TASKS,
)
from .io_utils import read_mapping


@dataclass(frozen=True)
class OrchestrationConfig:
    """Safety limits and flags for one orchestration run.

    ``ai_planning`` and ``ai_auditing`` are not interpreted by the engine; they
    are forwarded to handlers through the job context.
    """

    max_tasks: int = DEFAULT_MAX_TASKS
    max_depth: int = DEFAULT_MAX_DEPTH
    timeout: Optional[int] = None  # milliseconds
    abort_on_failure: bool = DEFAULT_ABORT_ON_FAILURE
    verbose: bool = False
    ai_planning: bool = False
    ai_auditing: bool = False
    job_name: str = "job"

    def __post_init__(self) -> None:
        if not isinstance(self.max_tasks, int) or self.max_tasks < 1:
            raise ValueError(f"max_tasks must be a positive integer, got {self.max_tasks!r}")
        if not isinstance(self.max_depth, int) or self.max_depth < 0:
            raise ValueError(f"max_depth must be a non-negative integer, got {self.max_depth!r}")
        if self.timeout is not None and (not isinstance(self.timeout, int) or self.timeout <= 0):
            raise ValueError(f"timeout must be a positive number of milliseconds, got {self.timeout!r}")

    def with_overrides(self, **changes: Any) -> "OrchestrationConfig":
        """Return a copy with every non-None override applied."""
        known = {f.name for f in fields(self)}
        unknown = set(changes) - known
        if unknown:
            raise ValueError(f"Unknown orchestration settings: {', '.join(sorted(unknown))}")
        return replace(self, **{k: v for k, v in changes.items() if v is not None})

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "OrchestrationConfig":
        known = {f.name for f in fields(cls)}
        return cls().with_overrides(**{k: v for k, v in data.items() if k in known})


def get_orchestrator_block(config: dict[str, Any]) -> dict[str, Any]:
    """Extract the ``orchestrator`` block, or an empty dict if absent."""
    raw = config.get("orchestrator")
    return raw if isinstance(raw, dict) else {}


def load_orchestrator_config(state_dir: Path) -> tuple[OrchestrationConfig, str | None]:
    """Load defaults from ``<state_dir>/config.yaml``.

    Returns:
        ``(config, error_message)``. A missing file yields the built-in
        defaults and no error; an unreadable or invalid file yields the
        defaults plus a description of the problem.
    """
    path = state_dir / CONFIG_FILE
    data, err = read_mapping(path)
    if err:
        return OrchestrationConfig(), err
    try:
        return OrchestrationConfig.from_dict(get_orchestrator_block(data)), None
    except (TypeError, ValueError) as exc:
        return OrchestrationConfig(), f"{path.name}: {exc}"
