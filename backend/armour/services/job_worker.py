"""Job worker: runs pending AI jobs with rate-limit backoff and result caching."""

import asyncio
import logging
from datetime import datetime
from typing import Optional

from armour.errors import RateLimitedError
from armour.models import AIJob
from armour.services.ai_tasks import TASK_HANDLERS, CACHEABLE_KINDS
from armour.services.job_store import JobStore, TERMINAL_STATUSES, make_cache_key
from armour.services.llm_provider import LLMProviderService

logger = logging.getLogger(__name__)

MAX_RETRIES = 5
MAX_RETRIES_MESSAGE = "Max retries reached due to rate limiting. Please contact support."

# Cleared by stop_worker_loop()
worker_state = {"enabled": False}


class JobWorker:
    """Processes one job at a time against the configured LLM."""

    def __init__(self, store: JobStore, llm: LLMProviderService):
        self.store = store
        self.llm = llm

    async def process_job(self, job: AIJob) -> str:
        """Run `job` and record its outcome.

        Returns the resulting status: "completed", "failed" or "retrying", or
        "skipped" when the job was no longer pending.
        """
        if not await self.store.claim(job):
            logger.info(f"[Jobs] Job {job.id} is {job.status}; skipping")
            return "skipped"

        handler = TASK_HANDLERS.get(job.kind)
        if handler is None:
            await self.store.fail(job, f"Unknown job kind: {job.kind}")
            return "failed"

        try:
            result = await handler(self.llm, job.payload or {})
        except RateLimitedError:
            retry_count = job.retry_count or 0
            if retry_count < MAX_RETRIES:
                delay = 2 ** retry_count
                logger.info(f"[Jobs] Job {job.id}: Rate limited. Retrying in {delay}s.")
                await self.store.schedule_retry(job, delay)
                return "retrying"
            logger.error(f"[Jobs] Job {job.id}: Failed after max retries.")
            await self.store.fail(job, MAX_RETRIES_MESSAGE)
            return "failed"
        except Exception as e:
            logger.error(f"[Jobs] Job {job.id}: Execution failed: {e}")
            await self.store.fail(job, str(e) or type(e).__name__)
            return "failed"

        await self.store.complete(job, result)
        if job.kind in CACHEABLE_KINDS:
            try:
                await self.store.put_cached(make_cache_key(job.user_id, job.kind, job.payload or {}), result)
            except Exception as e:
                logger.warning(f"[Jobs] Failed to cache result of job {job.id}: {e}")
        logger.info(f"[Jobs] Job {job.id} completed")
        return "completed"

    async def run_next(self) -> Optional[str]:
        """Claim and process the next ready job. Returns its status, or None when idle."""
        job = await self.store.claim_next()
        if job is None:
            return None
        return await self.process_job(job)

    async def drain(self, job_id: str) -> Optional[str]:
        """Process one job until it completes or fails, waiting out rate-limit delays."""
        while True:
            job = await self.store.get(job_id)
            if job is None or job.status in TERMINAL_STATUSES:
                return job.status if job else None

            status = await self.process_job(job)
            if status == "skipped":
                return job.status
            if status != "retrying":
                return status

            delay = (job.retry_after - datetime.utcnow()).total_seconds() if job.retry_after else 0
            await asyncio.sleep(max(delay, 0))


async def process_job_in_background(job_id: str, session_factory, llm: LLMProviderService) -> None:
    """Background entry point: own session, drain one job, never raise."""
    try:
        async with session_factory() as session:
            await JobWorker(JobStore(session), llm).drain(job_id)
    except Exception as e:
        logger.error(f"[Jobs] Background processing of job {job_id} crashed: {e}")


async def worker_loop(session_factory, llm: LLMProviderService, interval_seconds: int = 5) -> None:
    """Continuous background loop that picks up pending and retried jobs."""
    logger.info("[Jobs] Worker loop started")
    worker_state["enabled"] = True

    while worker_state["enabled"]:
        try:
            async with session_factory() as session:
                worker = JobWorker(JobStore(session), llm)
                processed = 0
                while await worker.run_next() is not None:
                    processed += 1
            if processed:
                logger.info(f"[Jobs] Worker loop processed {processed} job(s)")
        except Exception as e:
            logger.error(f"[Jobs] Worker loop error: {e}")

        # Check every second to allow faster stopping
        for _ in range(max(int(interval_seconds), 1)):
            if not worker_state["enabled"]:
                break
            await asyncio.sleep(1)

    logger.info("[Jobs] Worker loop stopped")


def stop_worker_loop() -> None:
    worker_state["enabled"] = False
