import json
from datetime import datetime, timedelta

import pytest

from armour.errors import RateLimitedError
from armour.models import AIJob
from armour.services import job_worker
from armour.services.job_store import JobStore, make_cache_key
from armour.services.job_worker import JobWorker, MAX_RETRIES, MAX_RETRIES_MESSAGE, process_job_in_background

from fakes import FakeLLM

CLAUSE_PAYLOAD = {"originalClause": "Brand owns all content forever", "issueCategory": "IP", "issueContext": "Perpetual"}
CLAUSE_RESPONSE = json.dumps({"safeClause": "Brand may use content for 6 months", "explanation": "Caps usage"})


@pytest.fixture
def store(db):
    return JobStore(db)


class TestProcessJob:
    async def test_success_completes_and_caches(self, store):
        job = await store.create("safe_clause", CLAUSE_PAYLOAD, user_id="user-1")

        status = await JobWorker(store, FakeLLM(CLAUSE_RESPONSE)).process_job(job)

        assert status == "completed"
        job = await store.get(job.id)
        assert job.status == "completed"
        assert job.result == {"safeClause": "Brand may use content for 6 months", "explanation": "Caps usage"}
        assert job.processed_at is not None
        cached = await store.get_cached(make_cache_key("user-1", "safe_clause", CLAUSE_PAYLOAD))
        assert cached == job.result

    async def test_negotiation_messages_are_not_cached(self, store):
        payload = {"brandName": "Acme", "issues": [{"severity": "high", "title": "Late pay"}]}
        job = await store.create("negotiation_message", payload, user_id="user-1")

        assert await JobWorker(store, FakeLLM("Dear Acme,")).process_job(job) == "completed"
        assert (await store.get(job.id)).result == {"message": "Dear Acme,"}
        assert await store.get_cached(make_cache_key("user-1", "negotiation_message", payload)) is None

    async def test_rate_limit_schedules_backoff(self, store):
        job = await store.create("safe_clause", CLAUSE_PAYLOAD)
        job.retry_count = 3
        await store.db.commit()

        before = datetime.utcnow()
        status = await JobWorker(store, FakeLLM(RateLimitedError("429"))).process_job(job)

        assert status == "retrying"
        job = await store.get(job.id)
        assert job.status == "pending"
        assert job.retry_count == 4
        delay = (job.retry_after - before).total_seconds()
        assert 2 ** 3 - 1 <= delay <= 2 ** 3 + 1

    async def test_max_retries_marks_failed(self, store):
        job = await store.create("safe_clause", CLAUSE_PAYLOAD)
        job.retry_count = MAX_RETRIES
        await store.db.commit()

        status = await JobWorker(store, FakeLLM(RateLimitedError("429"))).process_job(job)

        assert status == "failed"
        job = await store.get(job.id)
        assert job.status == "failed"
        assert job.result == {"error": MAX_RETRIES_MESSAGE}

    async def test_other_errors_fail_with_message(self, store):
        job = await store.create("safe_clause", CLAUSE_PAYLOAD)

        assert await JobWorker(store, FakeLLM("not json at all")).process_job(job) == "failed"
        assert (await store.get(job.id)).result == {"error": "AI returned an invalid response"}

    async def test_unknown_kind(self, store):
        job = await store.create("summarize", {})
        assert await JobWorker(store, FakeLLM("{}")).process_job(job) == "failed"
        assert "Unknown job kind" in (await store.get(job.id)).result["error"]


class TestClaimNext:
    async def test_skips_jobs_waiting_for_retry(self, store, db):
        now = datetime.utcnow()
        db.add(AIJob(id="later", kind="safe_clause", payload={}, status="pending", retry_after=now + timedelta(minutes=5)))
        db.add(AIJob(id="done", kind="safe_clause", payload={}, status="completed"))
        await db.commit()

        assert await store.claim_next(now) is None

        db.add(AIJob(id="ready", kind="safe_clause", payload={}, status="pending", retry_after=now - timedelta(seconds=1)))
        await db.commit()
        assert (await store.claim_next(now)).id == "ready"
        assert (await store.claim_next(now + timedelta(minutes=10))).id in ("later", "ready")

    async def test_run_next_when_idle(self, store):
        assert await JobWorker(store, FakeLLM("{}")).run_next() is None


class TestClaim:
    async def test_claim_only_once(self, store):
        job = await store.create("safe_clause", CLAUSE_PAYLOAD)

        assert await store.claim(job) is True
        assert job.status == "processing"
        assert await store.claim(job) is False

    async def test_finished_job_is_not_run_again(self, session_factory):
        """A loop worker holding a stale claim must not reopen a job another worker completed."""
        async with session_factory() as loop_session, session_factory() as request_session:
            loop_store = JobStore(loop_session)
            request_store = JobStore(request_session)
            job = await request_store.create("safe_clause", CLAUSE_PAYLOAD)

            claimed = await loop_store.claim_next()
            assert claimed.id == job.id

            assert await JobWorker(request_store, FakeLLM(CLAUSE_RESPONSE)).drain(job.id) == "completed"

            late_llm = FakeLLM(CLAUSE_RESPONSE)
            assert await JobWorker(loop_store, late_llm).process_job(claimed) == "skipped"
            assert late_llm.prompts == []

            job = await request_store.get(job.id)
            assert job.status == "completed"
            assert job.result["safeClause"] == "Brand may use content for 6 months"

    async def test_drain_leaves_jobs_owned_by_another_worker(self, store):
        job = await store.create("safe_clause", CLAUSE_PAYLOAD)
        await store.claim(job)
        llm = FakeLLM(CLAUSE_RESPONSE)

        assert await JobWorker(store, llm).drain(job.id) == "processing"
        assert llm.prompts == []


class TestDrain:
    async def test_waits_out_rate_limits(self, store, monkeypatch):
        delays = []

        async def fake_sleep(seconds):
            delays.append(seconds)

        monkeypatch.setattr(job_worker.asyncio, "sleep", fake_sleep)
        job = await store.create("safe_clause", CLAUSE_PAYLOAD)
        llm = FakeLLM(RateLimitedError("429"), RateLimitedError("429"), CLAUSE_RESPONSE)

        assert await JobWorker(store, llm).drain(job.id) == "completed"
        assert len(delays) == 2
        assert len(llm.prompts) == 3
        assert (await store.get(job.id)).retry_count == 2

    async def test_background_entry_point_never_raises(self, store, session_factory):
        job = await store.create("safe_contract", {"contractText": "Agreement text", "issues": []})

        await process_job_in_background(job.id, session_factory, FakeLLM("```html\n<h1>Safe</h1>\n```"))

        job = await store.get(job.id)
        assert job.status == "completed"
        assert job.result == {"contractHtml": "<h1>Safe</h1>"}


class TestInvokeRoutes:
    async def test_unknown_kind_is_rejected(self, client):
        response = await client.post("/api/ai/invoke", json={"kind": "summarize", "payload": {}})
        assert response.status_code == 400
        assert response.json()["success"] is False

    async def test_cache_hit_fast_path(self, client, store, auth):
        await store.put_cached(make_cache_key(auth.user.id, "safe_clause", CLAUSE_PAYLOAD), {"safeClause": "cached"})

        response = await client.post("/api/ai/invoke", json={"kind": "safe_clause", "payload": CLAUSE_PAYLOAD})

        assert response.status_code == 200
        assert response.json() == {"result": {"safeClause": "cached"}}

    async def test_queued_job_is_processed(self, client, llm):
        llm.responses = [CLAUSE_RESPONSE]

        response = await client.post("/api/ai/invoke", json={"kind": "safe_clause", "payload": CLAUSE_PAYLOAD})
        assert response.status_code == 202
        job_id = response.json()["jobId"]

        job = (await client.get(f"/api/ai/jobs/{job_id}")).json()
        assert job["id"] == job_id
        assert job["kind"] == "safe_clause"
        assert job["status"] == "completed"
        assert job["result"]["safeClause"] == "Brand may use content for 6 months"

    async def test_missing_job(self, client):
        response = await client.get("/api/ai/jobs/does-not-exist")
        assert response.status_code == 404
