import asyncio
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager

from armour.config import settings
from armour.database import create_tables, async_session
from armour.errors import ProtectionError, AnalysisError, JobError
from armour.routers import protection, contracts, ai_jobs, storage
from armour.services.job_worker import worker_loop, stop_worker_loop
from armour.services.llm_provider import get_llm_service

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: Create database tables
    await create_tables()

    worker_task = None
    if settings.job_worker_enabled:
        worker_task = asyncio.create_task(
            worker_loop(async_session, get_llm_service(), settings.job_worker_interval_seconds)
        )
    yield

    # Shutdown: stop the job worker
    if worker_task is not None:
        stop_worker_loop()
        worker_task.cancel()
        try:
            await worker_task
        except asyncio.CancelledError:
            pass


app = FastAPI(
    title=settings.app_name,
    description="Contract protection analysis and AI job processing for creator brand deals",
    version="1.0.0",
    lifespan=lifespan
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ProtectionError)
async def protection_error_handler(request: Request, exc: ProtectionError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_body())


@app.exception_handler(AnalysisError)
async def analysis_error_handler(request: Request, exc: AnalysisError):
    logger.error(f"[Protection] {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=500, content={"success": False, "error": exc.message})


@app.exception_handler(JobError)
async def job_error_handler(request: Request, exc: JobError):
    logger.error(f"[Jobs] {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=500, content={"success": False, "error": exc.message, "jobId": exc.job_id})


# Include routers
app.include_router(protection.router, prefix="/protection", tags=["Protection"])
app.include_router(contracts.router, prefix="/contracts", tags=["Contracts"])
app.include_router(ai_jobs.router, prefix="/api/ai", tags=["AI Jobs"])
app.include_router(storage.router, prefix="/storage", tags=["Storage"])


@app.get("/api/health")
async def health_check():
    return {"status": "healthy", "service": settings.app_name}
