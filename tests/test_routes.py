"""Tests for the FastAPI surface of the studio service."""

import asyncio

import httpx
import pytest
from fastapi.testclient import TestClient

from studio.main import app
from studio.pipeline.gateway import BackendGateway
from studio.pipeline.orchestrator import PipelineOrchestrator
from studio.pipeline.routes import get_orchestrator

from conftest import API_BASE, FakeBackend


async def _block_forever(request):
    await asyncio.Event().wait()


@pytest.fixture
def blocked_orchestrator() -> PipelineOrchestrator:
    """Orchestrator whose script creation never returns, so runs stay in flight."""
    backend = FakeBackend().on("POST", "/dramas", _block_forever)
    gateway = BackendGateway(base_url=API_BASE, transport=httpx.MockTransport(backend.handler))
    return PipelineOrchestrator(gateway)


@pytest.fixture
def client(blocked_orchestrator):
    app.dependency_overrides[get_orchestrator] = lambda: blocked_orchestrator
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


class TestPipelineRoutes:
    def test_status_before_any_run(self, client):
        response = client.get("/pipeline/status")

        assert response.status_code == 404

    def test_blank_prompt_rejected(self, client):
        response = client.post("/pipeline/run", json={"prompt": "   "})

        assert response.status_code == 400
        assert response.json()["detail"] == "Prompt must not be empty"

    def test_missing_prompt_rejected(self, client):
        response = client.post("/pipeline/run", json={})

        assert response.status_code == 422

    def test_run_returns_first_snapshot(self, client):
        response = client.post("/pipeline/run", json={"prompt": "张三丰大战张无忌"})

        assert response.status_code == 202
        body = response.json()
        assert body["outcome"] == "pending"
        assert [s["stage"] for s in body["steps"]] == [
            "CreateScript",
            "AttachEpisode",
            "TriggerStoryboardJob",
            "PollStoryboardJob",
            "FetchStoryboards",
        ]
        assert body["steps"][0]["status"] == "running"

        status = client.get("/pipeline/status").json()
        assert status["run_id"] == body["run_id"]

    def test_cancel_in_flight_run(self, client):
        started = client.post("/pipeline/run", json={"prompt": "prompt"}).json()

        response = client.post("/pipeline/cancel")

        assert response.status_code == 200
        body = response.json()
        assert body["run_id"] == started["run_id"]
        assert body["outcome"] == "cancelled"
        assert body["error"] == "Cancelled"

    def test_cancel_without_run(self, client):
        response = client.post("/pipeline/cancel")

        assert response.status_code == 409

    def test_second_run_supersedes_first(self, client, blocked_orchestrator):
        first = client.post("/pipeline/run", json={"prompt": "first"}).json()
        second = client.post("/pipeline/run", json={"prompt": "second"}).json()

        assert first["run_id"] != second["run_id"]
        assert client.get("/pipeline/status").json()["run_id"] == second["run_id"]
        assert blocked_orchestrator.current().prompt == "second"


class TestServiceRoutes:
    def test_health(self, client):
        body = client.get("/health").json()

        assert body["status"] == "ok"
        assert body["run_in_progress"] is False

    def test_health_reports_run_in_progress(self, client):
        client.post("/pipeline/run", json={"prompt": "prompt"})

        assert client.get("/health").json()["run_in_progress"] is True

    def test_metrics_snapshot(self, client):
        client.post("/pipeline/run", json={"prompt": "prompt"})

        body = client.get("/metrics").json()

        assert body["counters"]["runs.started"] == 1
        assert body["gauges"]["active_runs"] == 1
        assert "uptime_seconds" in body
