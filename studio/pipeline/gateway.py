"""
Backend Gateway: request execution and error normalization for the
drama/episode/storyboard API.

Every call goes through BackendGateway.request(), which unwraps the
response envelope:

    {"success": bool?, "data": ..., "error": {"message": ...}?, "message": ...?}

and returns `data`, or raises ApiError / NetworkError. The gateway holds no
state between calls; each call opens its own httpx.AsyncClient.
"""

import os
import time
import logging
from typing import Any, Optional

import httpx

from .. import metrics
from .errors import ApiError, NetworkError
from .models import RemoteJob

logger = logging.getLogger(__name__)

# ── Config ───────────────────────────────────────────────────────────────────

API_BASE = os.getenv("STUDIO_API_BASE", "http://localhost:5678/api/v1")
REQUEST_TIMEOUT = float(os.getenv("STUDIO_REQUEST_TIMEOUT", "30"))


def _error_message(body: Any, status_code: int) -> str:
    """Pick the most specific failure message an envelope offers."""
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str) and error:
            return error
        if body.get("message"):
            return str(body["message"])
    return f"Request failed with status {status_code}"


class BackendGateway:
    """
    Thin async client for the creation backend.

    Usage:
        gateway = BackendGateway()
        drama = await gateway.create_drama("title", "description", "realistic")
    """

    def __init__(
        self,
        base_url: str = API_BASE,
        timeout: float = REQUEST_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    async def request(self, method: str, path: str, body: Optional[dict] = None) -> Any:
        """
        Perform one API call and return the envelope's data payload.

        Raises:
            NetworkError: the request could not complete.
            ApiError:     non-2xx status, `success: false`, or unparseable body.
        """
        endpoint = f"{method} {path}"
        logger.debug(f"Backend request: {endpoint}")
        # Collapse ids so metrics stay per endpoint: "GET /tasks"
        label = f"{method} /{path.strip('/').split('/')[0]}"
        metrics.inc_counter(f"requests.{label}")
        started = time.perf_counter()

        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
            ) as client:
                response = await client.request(method, path, json=body)
        except httpx.HTTPError as e:
            metrics.inc_counter(f"requests_failed.{label}")
            raise NetworkError(f"{endpoint} failed: {e}") from e
        finally:
            metrics.record_latency(label, (time.perf_counter() - started) * 1000)

        try:
            payload = response.json()
        except ValueError:
            payload = None

        ok = response.is_success and isinstance(payload, dict) and payload.get("success") is not False
        if not ok:
            if response.is_success and not isinstance(payload, dict):
                message = f"Unparseable response from {endpoint}"
            else:
                message = _error_message(payload, response.status_code)
            logger.warning(f"Backend {endpoint} → {response.status_code}: {message}")
            metrics.inc_counter(f"requests_failed.{label}")
            raise ApiError(message, status_code=response.status_code)

        return payload.get("data")

    # ── Endpoints ────────────────────────────────────────────────────────

    async def create_drama(self, title: str, description: str, style: str) -> dict:
        data = await self.request("POST", "/dramas", {
            "title": title,
            "description": description,
            "style": style,
        })
        if not isinstance(data, dict) or not data.get("id"):
            raise ApiError("Script creation returned no id")
        return data

    async def save_episodes(self, drama_id: str, episodes: list[dict]):
        await self.request("PUT", f"/dramas/{drama_id}/episodes", {"episodes": episodes})

    async def get_drama(self, drama_id: str) -> dict:
        data = await self.request("GET", f"/dramas/{drama_id}")
        if not isinstance(data, dict):
            raise ApiError(f"Script {drama_id} lookup returned no data")
        return data

    async def generate_storyboards(self, episode_id: str) -> str:
        """Start the storyboard job for an episode. Returns the task id."""
        data = await self.request("POST", f"/episodes/{episode_id}/storyboards", {})
        task_id = data.get("task_id") if isinstance(data, dict) else None
        if not task_id:
            raise ApiError("Storyboard generation returned no task_id")
        return str(task_id)

    async def get_task(self, task_id: str) -> RemoteJob:
        data = await self.request("GET", f"/tasks/{task_id}")
        if not isinstance(data, dict):
            raise ApiError(f"Task {task_id} returned no status")
        error = data.get("error")
        if isinstance(error, dict):
            error = error.get("message")
        return RemoteJob(
            job_id=task_id,
            status=str(data.get("status", "")),
            error=str(error) if error else None,
        )

    async def list_storyboards(self, episode_id: str) -> list[dict]:
        data = await self.request("GET", f"/episodes/{episode_id}/storyboards")
        if data is None:
            return []
        if not isinstance(data, list):
            raise ApiError(f"Storyboards for episode {episode_id} are not a list")
        return data
