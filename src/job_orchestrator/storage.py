"""File-based job store with exclusive locking.

Stores jobs in a single YAML file (``jobs.yaml``) inside the state directory.
Every read and write holds the ``jobs.lock`` file lock; writes go through
write-tmp-then-rename so a crash never leaves a truncated file behind.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Optional

from filelock import FileLock

from .constants import JOBS_FILE, JOBS_LOCK_FILE
from .io_utils import read_mapping, write_yaml
from .models import Job

logger = logging.getLogger(__name__)

STORE_VERSION = 1


class JobStore:
    """File-backed store for :class:`Job` records.

    Parameters
    ----------
    state_dir:
        Directory holding ``jobs.yaml`` (created on first write).
    """

    def __init__(self, state_dir: Path) -> None:
        self._state_dir = Path(state_dir)
        self._store_path = self._state_dir / JOBS_FILE
        self._lock_path = self._state_dir / JOBS_LOCK_FILE

    @property
    def path(self) -> Path:
        return self._store_path

    # -- internal helpers ---------------------------------------------------

    def _load_raw(self) -> list[dict[str, Any]]:
        data, err = read_mapping(self._store_path, {"jobs": []})
        if err:
            raise ValueError(f"Unable to read job store: {err}")
        jobs = data.get("jobs")
        if not isinstance(jobs, list):
            logger.warning("Ignoring malformed jobs list in %s", self._store_path)
            return []
        return [item for item in jobs if isinstance(item, dict)]

    def _save_raw(self, jobs: list[dict[str, Any]]) -> None:
        write_yaml(self._store_path, {"version": STORE_VERSION, "jobs": jobs})

    def _lock(self) -> FileLock:
        self._state_dir.mkdir(parents=True, exist_ok=True)
        return FileLock(str(self._lock_path))

    @contextmanager
    def _locked_jobs(self) -> Iterator[list[dict[str, Any]]]:
        with self._lock():
            yield self._load_raw()

    # -- public API ---------------------------------------------------------

    def save(self, job: Job) -> None:
        """Insert or replace ``job`` by id."""
        record = job.to_dict()
        with self._lock():
            jobs = self._load_raw()
            for index, existing in enumerate(jobs):
                if existing.get("id") == job.id:
                    jobs[index] = record
                    break
            else:
                jobs.append(record)
            self._save_raw(jobs)
        logger.debug("Saved job %s (%s) to %s", job.id, job.status.value, self._store_path)

    def get(self, job_id: str) -> Optional[Job]:
        with self._locked_jobs() as jobs:
            for record in jobs:
                if record.get("id") == job_id:
                    return Job.from_dict(record)
        return None

    def list(self) -> list[Job]:
        with self._locked_jobs() as jobs:
            return [Job.from_dict(record) for record in jobs]

    def delete(self, job_id: str) -> bool:
        with self._lock():
            jobs = self._load_raw()
            remaining = [record for record in jobs if record.get("id") != job_id]
            if len(remaining) == len(jobs):
                return False
            self._save_raw(remaining)
        logger.debug("Deleted job %s from %s", job_id, self._store_path)
        return True
