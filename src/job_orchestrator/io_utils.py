"""Job files, ``config.yaml`` and ``jobs.yaml`` on disk.

Job files may be JSON or YAML; everything the orchestrator writes back is
YAML. Locking is left to the callers (see :mod:`job_orchestrator.storage`).
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Optional

import yaml

YAML_SUFFIXES = (".yaml", ".yml")


def _parse(path: Path, text: str) -> Any:
    if path.suffix in YAML_SUFFIXES:
        return yaml.safe_load(text)
    return json.loads(text)


def read_mapping(
    path: Path,
    default: Optional[dict[str, Any]] = None,
) -> tuple[dict[str, Any], Optional[str]]:
    """Read a mapping document and return ``(data, error)``.

    A missing file is not an error and yields ``default``. Unreadable,
    unparsable or non-mapping documents yield ``default`` together with a
    message prefixed by the file name.
    """
    fallback: dict[str, Any] = {} if default is None else default
    if not path.exists():
        return fallback, None

    try:
        data = _parse(path, path.read_text(encoding="utf-8"))
    except OSError as exc:
        return fallback, f"{path.name}: {exc}"
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        return fallback, f"{path.name}: {type(exc).__name__}: {exc}"

    if not isinstance(data, dict):
        return fallback, f"{path.name}: expected a mapping at the top level, got {type(data).__name__}"
    return data, None


def write_yaml(path: Path, data: dict[str, Any]) -> None:
    """Replace ``path`` with ``data`` as YAML.

    The document is written next to the target and renamed over it, so
    readers see either the old or the new content.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    text = yaml.safe_dump(data, sort_keys=False, allow_unicode=True)
    staging = path.with_name(f".{path.name}.{os.getpid()}.tmp")
    try:
        with open(staging, "w", encoding="utf-8") as handle:
            handle.write(text)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(staging, path)
    finally:
        if staging.exists():
            staging.unlink()
