"""
FastAPI application entry point.

Registers routers, middleware, exception handlers and the reminder scheduler.
"""

from contextlib import asynccontextmanager
from datetime import timedelta
from typing import AsyncIterator

from fastapi import FastAPI, Depends, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError, HTTPException
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from slowapi.errors import RateLimitExceeded
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from helpdesk.config.settings import settings
from helpdesk.utils.clock import utcnow
from helpdesk.utils.exceptions import BaseAPIException
from helpdesk.utils.exception_handlers import (
    base_api_exception_handler,
    request_validation_exception_handler,
    rate_limit_exceeded_handler,
    http_exception_handler,
    general_exception_handler,
)
from helpdesk.utils.logger import get_logger, setup_logging
from helpdesk.apps.auth.routers import router as auth_router, limiter
from helpdesk.apps.tickets.routers import router as tickets_router
from helpdesk.apps.users.routers import router as users_router
from helpdesk.apps.sla.services import StaleTicketSweep
from helpdesk.core.dependencies import get_notifier, get_redis, get_reminder_ledger
from helpdesk.core.scheduler import ReminderScheduler
from helpdesk.db.database import async_session_factory
from helpdesk.db.session import get_session

setup_logging(settings.LOG_LEVEL, settings.ENVIRONMENT)
logger = get_logger(__name__)


# ── Lifespan ──────────────────────────────────────────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Startup/shutdown lifecycle events."""
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION} [{settings.ENVIRONMENT}]")

    scheduler = ReminderScheduler(interval_seconds=settings.REMINDER_INTERVAL_SECONDS)
    if settings.SCHEDULER_ENABLED:
        sweep = StaleTicketSweep(
            session_factory=async_session_factory,
            notifier=get_notifier(),
            ledger=get_reminder_ledger(),
            stale_after=timedelta(minutes=settings.STALE_TICKET_MINUTES),
            batch_size=settings.REMINDER_BATCH_SIZE,
        )
        scheduler.start(sweep.run)

    yield

    scheduler.stop()
    await get_notifier().close()
    logger.info("Shutdown complete")


# ── App ───────────────────────────────────────────────────────────────────────

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="IT helpdesk ticketing with role-based access control and SLA monitoring",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)
app.state.limiter = limiter


# ── Middleware ────────────────────────────────────────────────────────────────

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.BACKEND_CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── Exception Handlers ────────────────────────────────────────────────────────

app.add_exception_handler(BaseAPIException, base_api_exception_handler)          # type: ignore[arg-type]
app.add_exception_handler(RequestValidationError, request_validation_exception_handler)  # type: ignore[arg-type]
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)         # type: ignore[arg-type]
app.add_exception_handler(HTTPException, http_exception_handler)                  # type: ignore[arg-type]
app.add_exception_handler(Exception, general_exception_handler)


# ── Routers ───────────────────────────────────────────────────────────────────

app.include_router(auth_router)
app.include_router(tickets_router)
app.include_router(users_router)


# ── Health ────────────────────────────────────────────────────────────────────

@app.get("/health", tags=["Infra"])
async def health():
    """Liveness probe."""
    return {"status": "ok", "version": settings.APP_VERSION}


@app.get("/ready", tags=["Infra"])
async def ready(session: AsyncSession = Depends(get_session)):
    """
    Readiness probe — verifies the database (and Redis, when it backs
    reminder/throttle state) is reachable. Returns 503 if any is down.
    """
    checks = {}
    healthy = True

    try:
        await session.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except Exception as e:
        logger.error(f"DB health check failed: {e}")
        checks["database"] = f"error: {str(e)[:80]}"
        healthy = False

    if settings.STATE_BACKEND.lower() == "redis":
        try:
            await get_redis().ping()
            checks["redis"] = "ok"
        except Exception as e:
            logger.error(f"Redis health check failed: {e}")
            checks["redis"] = f"error: {str(e)[:80]}"
            healthy = False

    payload = {
        "status": "ready" if healthy else "degraded",
        "checks": checks,
        "timestamp": utcnow().isoformat(),
    }

    if not healthy:
        return JSONResponse(status_code=503, content=payload)

    return payload


@app.get("/metrics", tags=["Infra"], include_in_schema=False)
async def metrics():
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
