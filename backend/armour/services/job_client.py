"""Client side of the AI job protocol: enqueue on the remote handler, then poll the job store."""

import asyncio
import logging
from typing import Any, Dict, Optional

import httpx
from fastapi import Request

from armour.auth import bearer_token
from armour.config import settings
from armour.errors import ExternalServiceError, JobCancelledError, JobFailedError, JobTimeoutError

logger = logging.getLogger(__name__)

POLL_INTERVAL_SECONDS = 1.0
MAX_POLL_ATTEMPTS = 30
ENQUEUE_TIMEOUT_SECONDS = 30.0


class AsyncTaskClient:
    """Runs AI jobs through the remote handler.

    ``enqueue`` returns either the final result (fast path, HTTP 200) or
    ``{"jobId": ..., "queued": True}`` (HTTP 202). ``poll`` waits for a queued
    job to reach a terminal state. ``run`` does both.
    """

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        poll_interval: float = POLL_INTERVAL_SECONDS,
        max_attempts: int = MAX_POLL_ATTEMPTS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.poll_interval = poll_interval
        self.max_attempts = max_attempts
        self.transport = transport

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers=self._headers(),
            timeout=ENQUEUE_TIMEOUT_SECONDS,
            transport=self.transport,
        )

    async def enqueue(self, kind: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Invoke the handler once. Any status other than 200/202 is a hard failure."""
        async with self._client() as client:
            try:
                response = await client.post("/invoke", json={"kind": kind, "payload": payload})
            except httpx.HTTPError as e:
                raise ExternalServiceError(f"AI handler unreachable: {e}") from e

        if response.status_code == 200:
            return {"result": response.json().get("result"), "queued": False}

        if response.status_code == 202:
            job_id = response.json().get("jobId")
            if not job_id:
                raise ExternalServiceError("AI handler queued the task without a job id", status_code=202)
            logger.info(f"[Jobs] {kind} queued as job {job_id}")
            return {"jobId": job_id, "queued": True}

        try:
            error = response.json().get("error")
        except ValueError:
            error = None
        raise ExternalServiceError(
            error or f"AI handler returned HTTP {response.status_code}",
            details=response.text[:500],
            status_code=response.status_code,
        )

    async def _read_job(self, client: httpx.AsyncClient, job_id: str) -> Optional[Dict[str, Any]]:
        response = await client.get(f"/jobs/{job_id}")
        if response.status_code == 404:
            return None
        if response.status_code in (401, 403):
            raise JobFailedError(f"Not allowed to read AI job {job_id} (HTTP {response.status_code})", job_id)
        response.raise_for_status()
        return response.json()

    async def poll(self, job_id: str, cancel_event: Optional[asyncio.Event] = None) -> Any:
        """Wait for `job_id` to complete and return its result.

        Raises JobFailedError, JobTimeoutError after `max_attempts` reads, or
        JobCancelledError once `cancel_event` is set.
        """
        async with self._client() as client:
            for attempt in range(1, self.max_attempts + 1):
                if cancel_event is not None:
                    try:
                        await asyncio.wait_for(cancel_event.wait(), timeout=self.poll_interval)
                    except asyncio.TimeoutError:
                        pass
                    else:
                        raise JobCancelledError(f"Polling for job {job_id} was cancelled", job_id)
                else:
                    await asyncio.sleep(self.poll_interval)

                try:
                    job = await self._read_job(client, job_id)
                except httpx.HTTPError as e:
                    logger.warning(f"[Jobs] Poll {attempt} for job {job_id} failed: {e}")
                    continue

                status = (job or {}).get("status")
                if status == "completed":
                    return job.get("result")
                if status == "failed":
                    result = job.get("result") or {}
                    error = result.get("error") if isinstance(result, dict) else None
                    raise JobFailedError(error or "AI job failed", job_id)

        raise JobTimeoutError(
            f"AI job {job_id} timed out after {self.max_attempts} polls. "
            "It may still complete in the background.",
            job_id,
        )

    async def run(self, kind: str, payload: Dict[str, Any], cancel_event: Optional[asyncio.Event] = None) -> Any:
        """Enqueue, then poll when the handler deferred the work."""
        queued = await self.enqueue(kind, payload)
        if not queued["queued"]:
            return queued["result"]
        return await self.poll(queued["jobId"], cancel_event=cancel_event)


def get_task_client(request: Request) -> AsyncTaskClient:
    """Dependency: task client that forwards the caller's bearer token."""
    return AsyncTaskClient(settings.ai_handler_url, token=bearer_token(request))
