"""Remote AI handler: accepts task invocations and exposes the job store."""

import logging
from typing import Any, Dict

from fastapi import APIRouter, BackgroundTasks, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from armour.auth import CurrentUser, get_current_user
from armour.database import get_db, async_session
from armour.errors import AccessDenied, BadRequest, NotFound
from armour.services.ai_tasks import TASK_HANDLERS, CACHEABLE_KINDS
from armour.services.job_store import JobStore, job_to_dict, make_cache_key
from armour.services.job_worker import process_job_in_background
from armour.services.llm_provider import LLMProviderService, get_llm_service

logger = logging.getLogger(__name__)

router = APIRouter()


class InvokeRequest(BaseModel):
    """A task to run on the AI handler."""
    kind: str
    payload: Dict[str, Any] = {}


def get_session_factory():
    """Dependency: session factory for work that outlives the request."""
    return async_session


@router.post("/invoke")
async def invoke(
    request: InvokeRequest,
    background_tasks: BackgroundTasks,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    llm: LLMProviderService = Depends(get_llm_service),
    session_factory=Depends(get_session_factory),
):
    """Return a cached result (200) or queue a job (202 with its id)."""
    if request.kind not in TASK_HANDLERS:
        raise BadRequest(f"Unknown task kind: {request.kind}")

    store = JobStore(db)
    if request.kind in CACHEABLE_KINDS:
        cached = await store.get_cached(make_cache_key(user.id, request.kind, request.payload))
        if cached is not None:
            logger.info(f"[Jobs] Cache hit for {request.kind}")
            return {"result": cached}

    job = await store.create(request.kind, request.payload, user_id=user.id)
    background_tasks.add_task(process_job_in_background, job.id, session_factory, llm)
    logger.info(f"[Jobs] Queued {request.kind} job {job.id} for user {user.id}")
    return JSONResponse(status_code=202, content={"jobId": job.id})


@router.get("/jobs/{job_id}")
async def get_job(
    job_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    job = await JobStore(db).get(job_id)
    if job is None:
        raise NotFound("Job not found")
    if job.user_id and job.user_id != user.id and not user.is_admin:
        raise AccessDenied()
    return job_to_dict(job)
