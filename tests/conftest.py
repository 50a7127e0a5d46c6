"""Shared test fixtures: an in-process fake of the creation backend."""

import asyncio
import inspect
import json

import httpx
import pytest

from studio import metrics
from studio.pipeline.gateway import BackendGateway
from studio.pipeline.orchestrator import PipelineOrchestrator

API_BASE = "http://backend.test/api/v1"

DRAMA_D1 = {
    "id": "d1",
    "episodes": [{"id": "e1", "episode_number": 1}],
    "characters": [1, 2, 3],
    "scenes": [1],
    "props": [1, 2],
}

STORYBOARDS_E1 = [{"action": f"Shot action {i}", "title": f"Shot {i}"} for i in range(1, 9)]


class FakeBackend:
    """Routes requests to queued responses and records every call.

    A route holds a queue of responses; each call pops the head, and the
    last response repeats forever. A response can be plain data (wrapped in
    a success envelope), an httpx.Response, an exception to raise, or a
    callable (sync or async) taking the request and returning any of those.
    """

    def __init__(self):
        self.calls: list[tuple[str, str, object]] = []
        self.routes: dict[tuple[str, str], list] = {}

    def on(self, method: str, path: str, *responses):
        self.routes[(method, path)] = list(responses)
        return self

    def count(self, method: str, path: str) -> int:
        return sum(1 for m, p, _ in self.calls if m == method and p == path)

    def bodies(self, method: str, path: str) -> list:
        return [body for m, p, body in self.calls if m == method and p == path]

    async def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path.removeprefix("/api/v1")
        body = json.loads(request.content) if request.content else None
        self.calls.append((request.method, path, body))

        queue = self.routes.get((request.method, path))
        if not queue:
            return httpx.Response(404, json={"success": False, "error": {"message": f"No route {path}"}})
        item = queue.pop(0) if len(queue) > 1 else queue[0]

        if callable(item) and not isinstance(item, type):
            item = item(request)
            if inspect.isawaitable(item):
                item = await item
        if isinstance(item, Exception):
            raise item
        if isinstance(item, httpx.Response):
            return item
        return httpx.Response(200, json={"success": True, "data": item})


class SleepRecorder:
    """Stands in for asyncio.sleep: records the delay, only yields."""

    def __init__(self):
        self.calls: list[float] = []

    async def __call__(self, seconds: float):
        self.calls.append(seconds)
        await asyncio.sleep(0)


def happy_backend() -> FakeBackend:
    return (
        FakeBackend()
        .on("POST", "/dramas", {"id": "d1", "title": "t"})
        .on("PUT", "/dramas/d1/episodes", None)
        .on("GET", "/dramas/d1", DRAMA_D1)
        .on("POST", "/episodes/e1/storyboards", {"task_id": "t1"})
        .on("GET", "/tasks/t1", {"status": "completed"})
        .on("GET", "/episodes/e1/storyboards", STORYBOARDS_E1)
    )


@pytest.fixture(autouse=True)
def _reset_metrics():
    metrics.reset()
    yield
    metrics.reset()


@pytest.fixture
def backend() -> FakeBackend:
    return happy_backend()


@pytest.fixture
def gateway(backend) -> BackendGateway:
    return BackendGateway(base_url=API_BASE, transport=httpx.MockTransport(backend.handler))


@pytest.fixture
def sleeper() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def orchestrator(gateway, sleeper) -> PipelineOrchestrator:
    return PipelineOrchestrator(gateway, poll_interval=0.8, sleep=sleeper)
