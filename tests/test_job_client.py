import asyncio
import json

import httpx
import pytest

from armour.errors import ExternalServiceError, JobCancelledError, JobFailedError, JobTimeoutError
from armour.services.job_client import AsyncTaskClient, MAX_POLL_ATTEMPTS, POLL_INTERVAL_SECONDS


def make_client(handler, **kwargs):
    kwargs.setdefault("poll_interval", 0)
    return AsyncTaskClient(
        "https://handler.test/api/ai",
        token="caller-token",
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


def job_sequence(*states):
    """Handler answering GET /jobs/{id} with `states` in order; the last one repeats."""
    remaining = list(states)
    seen = []

    def handler(request):
        seen.append(request)
        state = remaining.pop(0) if len(remaining) > 1 else remaining[0]
        if state is None:
            return httpx.Response(404, json={"error": "Job not found"})
        return httpx.Response(200, json=state)

    handler.seen = seen
    return handler


class TestEnqueue:
    """POST /invoke outcomes."""

    async def test_fast_path_returns_result(self):
        def handler(request):
            assert request.url.path == "/api/ai/invoke"
            assert request.headers["authorization"] == "Bearer caller-token"
            assert json.loads(request.content) == {"kind": "safe_clause", "payload": {"a": 1}}
            return httpx.Response(200, json={"result": {"safeClause": "cached"}})

        result = await make_client(handler).enqueue("safe_clause", {"a": 1})
        assert result == {"result": {"safeClause": "cached"}, "queued": False}

    async def test_accepted_returns_job_id(self):
        client = make_client(lambda request: httpx.Response(202, json={"jobId": "job-7"}))
        assert await client.enqueue("safe_clause", {}) == {"jobId": "job-7", "queued": True}

    async def test_other_status_is_external_failure(self):
        client = make_client(lambda request: httpx.Response(500, json={"error": "boom"}))
        with pytest.raises(ExternalServiceError) as exc_info:
            await client.enqueue("safe_clause", {})
        assert exc_info.value.status_code == 500
        assert exc_info.value.message == "boom"

    async def test_unreachable_handler(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(ExternalServiceError):
            await make_client(handler).enqueue("safe_clause", {})


class TestPoll:
    async def test_completed_returns_result_exactly(self):
        result = {"contractHtml": "<p>safe</p>", "nested": [1, 2]}
        handler = job_sequence(
            {"status": "pending"},
            {"status": "processing"},
            {"status": "completed", "result": result},
        )
        assert await make_client(handler).poll("job1") == result
        assert len(handler.seen) == 3

    async def test_failed_raises_result_error(self):
        handler = job_sequence({"status": "failed", "result": {"error": "model overloaded"}})
        with pytest.raises(JobFailedError, match="model overloaded"):
            await make_client(handler).poll("job1")

    async def test_failed_without_message(self):
        handler = job_sequence({"status": "failed", "result": None})
        with pytest.raises(JobFailedError, match="AI job failed"):
            await make_client(handler).poll("job1")

    async def test_missing_row_keeps_polling(self):
        handler = job_sequence(None, None, {"status": "completed", "result": "done"})
        assert await make_client(handler).poll("job1") == "done"

    async def test_transport_errors_keep_polling(self):
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) == 1:
                raise httpx.ReadTimeout("slow", request=request)
            return httpx.Response(200, json={"status": "completed", "result": 1})

        assert await make_client(handler).poll("job1") == 1

    @pytest.mark.parametrize("status_code", [401, 403])
    async def test_forbidden_job_read_fails_immediately(self, status_code):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(status_code, json={"success": False, "error": "Access denied"})

        with pytest.raises(JobFailedError, match=f"HTTP {status_code}") as exc_info:
            await make_client(handler).poll("job1")
        assert exc_info.value.job_id == "job1"
        assert len(calls) == 1

    async def test_stuck_job_times_out(self):
        handler = job_sequence({"id": "job1", "status": "processing"})
        with pytest.raises(JobTimeoutError) as exc_info:
            await make_client(handler).poll("job1")
        assert "timed out" in str(exc_info.value)
        assert "background" in str(exc_info.value)
        assert exc_info.value.job_id == "job1"
        assert len(handler.seen) == MAX_POLL_ATTEMPTS

    async def test_cancellation(self):
        handler = job_sequence({"status": "processing"})
        cancel = asyncio.Event()
        cancel.set()
        with pytest.raises(JobCancelledError):
            await make_client(handler, poll_interval=5).poll("job1", cancel_event=cancel)
        assert handler.seen == []


class TestRun:
    async def test_run_polls_queued_jobs(self):
        def handler(request):
            if request.method == "POST":
                return httpx.Response(202, json={"jobId": "job-9"})
            assert request.url.path == "/api/ai/jobs/job-9"
            return httpx.Response(200, json={"status": "completed", "result": {"message": "hi"}})

        assert await make_client(handler).run("negotiation_message", {}) == {"message": "hi"}

    async def test_run_fast_path_skips_polling(self):
        def handler(request):
            assert request.method == "POST"
            return httpx.Response(200, json={"result": "cached"})

        assert await make_client(handler).run("safe_contract", {}) == "cached"


def test_polling_defaults():
    assert POLL_INTERVAL_SECONDS == 1.0
    assert MAX_POLL_ATTEMPTS == 30
