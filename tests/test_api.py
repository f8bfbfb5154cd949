"""Tests for the job HTTP API."""

from __future__ import annotations

from pathlib import Path

import pytest
from httpx import ASGITransport, AsyncClient

from job_orchestrator.api import create_app
from job_orchestrator.handlers import HandlerRegistry


@pytest.fixture
def app(tmp_path: Path):
    state_dir = tmp_path / ".job_orchestrator"
    state_dir.mkdir()
    (state_dir / "config.yaml").write_text("orchestrator:\n  max_tasks: 3\n")
    return create_app(state_dir=state_dir, enable_cors=False)


@pytest.fixture
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


@pytest.mark.anyio
class TestJobsAPI:
    async def test_create_list_and_get(self, client: AsyncClient) -> None:
        resp = await client.post("/api/jobs", json={
            "name": "api-job",
            "tasks": [{"service": "core", "command": "echo", "input": {"x": 1}}],
        })
        assert resp.status_code == 201
        job = resp.json()
        assert job["status"] == "succeeded"
        assert job["tasks"][0]["output"] == {"x": 1}

        resp = await client.get("/api/jobs")
        assert resp.status_code == 200
        data = resp.json()
        assert data["total"] == 1
        assert data["jobs"][0]["id"] == job["id"]

        resp = await client.get(f"/api/jobs/{job['id']}")
        assert resp.status_code == 200
        assert resp.json()["name"] == "api-job"

    async def test_invalid_request_is_400(self, client: AsyncClient) -> None:
        resp = await client.post("/api/jobs", json={"name": "", "tasks": []})
        assert resp.status_code == 400
        assert "Invalid input" in resp.json()["detail"]

    async def test_unknown_job_is_404(self, client: AsyncClient) -> None:
        resp = await client.get("/api/jobs/job-missing")
        assert resp.status_code == 404

    async def test_config_file_limits_apply(self, client: AsyncClient) -> None:
        children = [{"service": "core", "command": "echo"} for _ in range(5)]
        resp = await client.post("/api/jobs", json={
            "name": "too-big",
            "tasks": [{"service": "core", "command": "spawn", "input": {"tasks": children}}],
        })
        assert resp.status_code == 201
        job = resp.json()
        assert job["status"] == "failed"
        assert "3 tasks maximum" in job["tasks"][0]["output"]["error"]

    async def test_handlers_listing(self, client: AsyncClient) -> None:
        resp = await client.get("/api/handlers")
        assert resp.status_code == 200
        keys = {(h["service"], h["command"]) for h in resp.json()["handlers"]}
        assert ("core", "echo") in keys


@pytest.mark.anyio
async def test_custom_registry(tmp_path: Path) -> None:
    reg = HandlerRegistry()

    @reg.register("math", "double")
    async def double(task, context):
        return {"output": {"value": task.input["value"] * 2}}

    app = create_app(state_dir=tmp_path, handlers=reg, enable_cors=False)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        resp = await client.post("/api/jobs", json={
            "name": "math",
            "tasks": [{"service": "math", "command": "double", "input": {"value": 21}}],
        })
        assert resp.json()["tasks"][0]["output"] == {"value": 42}
        resp = await client.get("/api/handlers")
        assert [h["command"] for h in resp.json()["handlers"]] == ["double"]
