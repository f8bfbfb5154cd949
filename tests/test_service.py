"""Tests for job request processing."""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from job_orchestrator.config import OrchestrationConfig
from job_orchestrator.errors import InvalidJobRequestError
from job_orchestrator.handlers import HandlerRegistry
from job_orchestrator.service import parse_job_request, process_job
from job_orchestrator.storage import JobStore


def _request(**overrides):
    payload = {
        "name": "demo",
        "tasks": [
            {"service": "core", "command": "echo", "input": {"msg": "hi"}},
            {"service": "core", "command": "echo", "dependsOn": ["0"]},
        ],
    }
    payload.update(overrides)
    return payload


class TestParseJobRequest:
    def test_aliases_accepted(self) -> None:
        request = parse_job_request(_request(maxTasks=5, maxDepth=2, abortOnFailure=False, aiPlanning=True))
        assert request.max_tasks == 5
        assert request.max_depth == 2
        assert request.abort_on_failure is False
        assert request.ai_planning is True

    @pytest.mark.parametrize(
        "payload",
        [
            "not-an-object",
            {"tasks": [{"service": "s", "command": "c"}]},
            {"name": "  ", "tasks": [{"service": "s", "command": "c"}]},
            {"name": "demo", "tasks": []},
            {"name": "demo", "tasks": "nope"},
            {"name": "demo", "tasks": [{"service": "s", "command": "c"}], "maxTasks": 0},
        ],
    )
    def test_invalid_requests(self, payload) -> None:
        with pytest.raises(InvalidJobRequestError, match="Invalid input"):
            parse_job_request(payload)

    def test_request_overrides_config(self) -> None:
        base = OrchestrationConfig(max_tasks=50, verbose=True)
        config = parse_job_request(_request(maxDepth=3)).to_config(base)
        assert config.max_tasks == 50
        assert config.max_depth == 3
        assert config.verbose is True
        assert config.job_name == "demo"


class TestProcessJob:
    def test_successful_job(self) -> None:
        response = asyncio.run(process_job(_request()))
        assert response["name"] == "demo"
        assert response["status"] == "succeeded"
        assert response["id"].startswith("job-")
        assert [t["id"] for t in response["tasks"]] == ["0", "1"]
        assert response["tasks"][0]["output"] == {"msg": "hi"}
        assert "error_message" not in response

    def test_abort_on_failure_defaults_to_true(self) -> None:
        reg = HandlerRegistry()

        @reg.register("t", "fail")
        async def fail(task, context):
            raise RuntimeError("nope")

        @reg.register("t", "ok")
        async def ok(task, context):
            return {"output": {}}

        payload = {
            "name": "failing",
            "tasks": [
                {"service": "t", "command": "fail"},
                {"service": "t", "command": "ok"},
                {"service": "t", "command": "ok", "dependsOn": ["1"]},
            ],
        }
        response = asyncio.run(process_job(payload, handlers=reg))
        statuses = {t["id"]: t["status"] for t in response["tasks"]}
        assert response["status"] == "failed"
        assert statuses == {"0": "failed", "1": "succeeded", "2": "aborted"}

    def test_job_level_error_is_reported(self) -> None:
        payload = _request(tasks=[{"service": "core", "command": "echo", "dependsOn": ["9"]}])
        response = asyncio.run(process_job(payload))
        assert response["status"] == "failed"
        assert "non-existent task 9" in response["error_message"]

    def test_persists_before_and_after(self, tmp_path: Path) -> None:
        store = JobStore(tmp_path)
        saved_statuses: list[str] = []
        original_save = store.save

        def recording_save(job):
            saved_statuses.append(job.status.value)
            original_save(job)

        store.save = recording_save  # type: ignore[method-assign]
        response = asyncio.run(process_job(_request(), store=store, persist_interval=3600))

        assert saved_statuses[0] == "started"
        assert saved_statuses[-1] == "succeeded"
        stored = JobStore(tmp_path).get(response["id"])
        assert stored is not None
        assert stored.status.value == "succeeded"
        assert len(stored.tasks) == 2

    def test_persists_progress_when_interval_elapses(self, tmp_path: Path) -> None:
        store = JobStore(tmp_path)
        saves: list[int] = []
        original_save = store.save

        def recording_save(job):
            saves.append(len(job.tasks))
            original_save(job)

        store.save = recording_save  # type: ignore[method-assign]
        asyncio.run(process_job(_request(), store=store, persist_interval=0))
        # before, once per tick (two ticks), after
        assert len(saves) == 4

    def test_failed_progress_save_does_not_stop_the_job(self, tmp_path: Path) -> None:
        store = JobStore(tmp_path)
        saves: list[str] = []
        original_save = store.save

        def flaky_save(job):
            saves.append(job.status.value)
            if len(saves) == 2:
                raise ValueError("Unable to read job store: jobs.yaml: YAMLError")
            original_save(job)

        store.save = flaky_save  # type: ignore[method-assign]
        response = asyncio.run(process_job(_request(), store=store, persist_interval=0))

        assert response["status"] == "succeeded"
        assert len(saves) == 4
        stored = JobStore(tmp_path).get(response["id"])
        assert stored is not None
        assert stored.status.value == "succeeded"
