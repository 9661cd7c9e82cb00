import asyncio

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from sqlalchemy.ext.asyncio import AsyncSession
from fiefdom.config import get_settings
from fiefdom.database import get_db, init_db
from fiefdom.middleware.correlation import CorrelationMiddleware
from fiefdom.middleware.rate_limit import limiter
from fiefdom.routes import action_queue, actions, auth, state
from fiefdom.services import job_manager
from fiefdom.services.action_queue_service import ACTION_QUEUE_CHANNEL
from fiefdom.utils import metrics
from fiefdom.utils.logger import logger

settings = get_settings()

app = FastAPI(title=settings.app_name, version=settings.app_version)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# CORS - Explicit origins for security
allowed_origins = [origin.strip() for origin in settings.allowed_origins.split(",")]
app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "X-API-Key", "X-Correlation-ID"],
)
app.add_middleware(CorrelationMiddleware)

_worker_tasks = []


# Startup: Initialize database
@app.on_event("startup")
async def startup_event():
    logger.info("Starting Fiefdom backend...")
    await init_db()

    if settings.embedded_worker:
        from fiefdom import worker

        worker.register_default_handlers()
        _worker_tasks.append(asyncio.create_task(worker.worker_loop(queue=ACTION_QUEUE_CHANNEL)))
        _worker_tasks.append(asyncio.create_task(worker.run_maintenance()))
        logger.info("Embedded action queue worker started")

    logger.info(f"Backend ready at http://{settings.backend_host}:{settings.backend_port}")


@app.on_event("shutdown")
async def shutdown_event():
    for task in _worker_tasks:
        task.cancel()
    _worker_tasks.clear()


# Health check endpoint (minimal response to prevent information disclosure)
@app.get("/health")
async def health_check():
    return {"status": "ok"}


@app.get("/metrics")
async def get_metrics(db: AsyncSession = Depends(get_db)):
    snapshot = metrics.get_snapshot()
    snapshot["pending_jobs"] = await job_manager.count_pending(db)
    return snapshot


# Register routes
app.include_router(auth.router, prefix="/auth", tags=["Authentication"])
app.include_router(action_queue.router, prefix="/action-queue", tags=["Action Queue"])
app.include_router(actions.router, prefix="/actions", tags=["Actions"])
app.include_router(state.router, prefix="/state", tags=["State"])

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "fiefdom.main:app",
        host=settings.backend_host,
        port=settings.backend_port,
        reload=settings.debug
    )
