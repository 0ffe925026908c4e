"""
Subscription Reconciler - FastAPI Application
Hosts the reconciliation job scheduler and its operator API
"""
from fastapi import FastAPI, Depends
from contextlib import asynccontextmanager
import logging
from datetime import datetime, timezone

from app.database import init_db
from app.config import settings
from app.services.job_scheduler import JobScheduler
from app.api.dependencies import require_operator
from app.api.routes import health, jobs
from app.api.v1 import subscriptions

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)
scheduler = JobScheduler(poll_seconds=settings.scheduler_poll_seconds)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle startup and shutdown events."""
    logger.info("Starting %s...", settings.app_name)

    try:
        init_db()
        logger.info("Database initialized")
    except Exception as e:
        logger.error(f"Database initialization failed: {str(e)}")

    logger.info(f"API running on {settings.app_env} environment")
    if settings.scheduler_enabled:
        scheduler.start()
        app.state.job_scheduler = scheduler
        logger.info("Job scheduler started")
    yield
    if settings.scheduler_enabled:
        await scheduler.stop()
    logger.info("Shutting down %s...", settings.app_name)


app = FastAPI(
    title=settings.app_name,
    description="Reconciles subscriptions, user entitlements and billing providers",
    version="1.0.0",
    lifespan=lifespan,
)


@app.get("/")
async def root() -> dict:
    return {
        "name": settings.app_name,
        "environment": settings.app_env,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


app.include_router(health.router, prefix=settings.api_v1_prefix, tags=["Health"])
app.include_router(
    jobs.router,
    prefix=f"{settings.api_v1_prefix}/jobs",
    tags=["Jobs"],
    dependencies=[Depends(require_operator)],
)
app.include_router(
    subscriptions.router,
    prefix=f"{settings.api_v1_prefix}/subscriptions",
    tags=["Subscriptions"],
    dependencies=[Depends(require_operator)],
)
