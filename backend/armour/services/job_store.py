"""Durable AI job table and the response cache read on the handler fast path."""

import json
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from sqlalchemy import select, update, or_
from sqlalchemy.ext.asyncio import AsyncSession

from armour.models import AIJob, AICacheEntry

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = {"completed", "failed"}


def make_cache_key(user_id: Optional[str], kind: str, payload: Dict[str, Any]) -> str:
    """Cache key: `user_id:kind:canonical-json(payload)`."""
    return f"{user_id or ''}:{kind}:{json.dumps(payload, sort_keys=True, default=str)}"


def job_to_dict(job: AIJob) -> Dict[str, Any]:
    return {
        "id": job.id,
        "kind": job.kind,
        "status": job.status,
        "result": job.result,
        "retry_count": job.retry_count or 0,
        "created_at": job.created_at.isoformat() if job.created_at else None,
        "processed_at": job.processed_at.isoformat() if job.processed_at else None,
    }


class JobStore:
    """Reads and writes rows of `ai_jobs` and `ai_cache`."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(self, kind: str, payload: Dict[str, Any], user_id: Optional[str] = None) -> AIJob:
        job = AIJob(kind=kind, payload=payload, user_id=user_id, status="pending", retry_count=0)
        self.db.add(job)
        await self.db.commit()
        await self.db.refresh(job)
        logger.info(f"[Jobs] Created {kind} job {job.id}")
        return job

    async def get(self, job_id: str) -> Optional[AIJob]:
        return await self.db.get(AIJob, job_id, populate_existing=True)

    async def claim_next(self, now: Optional[datetime] = None) -> Optional[AIJob]:
        """Oldest pending job that is not waiting out a retry delay."""
        now = now or datetime.utcnow()
        result = await self.db.execute(
            select(AIJob)
            .where(AIJob.status == "pending")
            .where(or_(AIJob.retry_after.is_(None), AIJob.retry_after <= now))
            .order_by(AIJob.created_at.asc(), AIJob.id.asc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def claim(self, job: AIJob) -> bool:
        """Move a pending job to processing. False when another worker got there first
        or the job already finished; `job` is refreshed either way."""
        result = await self.db.execute(
            update(AIJob)
            .where(AIJob.id == job.id, AIJob.status == "pending")
            .values(status="processing", processed_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        await self.db.refresh(job)
        return result.rowcount == 1

    async def complete(self, job: AIJob, result: Any) -> None:
        job.status = "completed"
        job.result = result
        job.processed_at = datetime.utcnow()
        await self.db.commit()

    async def fail(self, job: AIJob, error: str) -> None:
        job.status = "failed"
        job.result = {"error": error}
        job.processed_at = datetime.utcnow()
        await self.db.commit()

    async def schedule_retry(self, job: AIJob, delay_seconds: float) -> None:
        """Put the job back to pending; it becomes claimable after `delay_seconds`."""
        job.status = "pending"
        job.retry_count = (job.retry_count or 0) + 1
        job.retry_after = datetime.utcnow() + timedelta(seconds=delay_seconds)
        job.processed_at = datetime.utcnow()
        await self.db.commit()

    # Cache

    async def get_cached(self, cache_key: str) -> Optional[Any]:
        result = await self.db.execute(
            select(AICacheEntry).where(AICacheEntry.cache_key == cache_key)
        )
        entry = result.scalar_one_or_none()
        return entry.response if entry else None

    async def put_cached(self, cache_key: str, response: Any) -> None:
        result = await self.db.execute(
            select(AICacheEntry).where(AICacheEntry.cache_key == cache_key)
        )
        entry = result.scalar_one_or_none()
        if entry:
            entry.response = response
            entry.updated_at = datetime.utcnow()
        else:
            self.db.add(AICacheEntry(cache_key=cache_key, response=response))
        await self.db.commit()
