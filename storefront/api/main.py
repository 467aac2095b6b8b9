"""Storefront analytics API — FastAPI application."""
from __future__ import annotations

import logging

from storefront.logging_config import setup_logging
setup_logging()
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from storefront.db.engine import engine, get_session
from storefront.db.tables import Base

VERSION = "0.3.0"

# ── Sentry Error Tracking ────────────────────────
if settings.SENTRY_DSN:
    import sentry_sdk
    from sentry_sdk.integrations.fastapi import FastApiIntegration
    from sentry_sdk.integrations.logging import LoggingIntegration
    from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        environment=settings.SENTRY_ENVIRONMENT,
        traces_sample_rate=settings.SENTRY_TRACES_SAMPLE_RATE,
        integrations=[
            FastApiIntegration(),
            SqlalchemyIntegration(),
            LoggingIntegration(level=logging.WARNING, event_level=logging.ERROR),
        ],
        # Tracking payloads carry IPs and session ids
        send_default_pii=False,
    )

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Validate settings and create tables on startup; dispose the pool on shutdown."""
    from storefront.startup_checks import validate_settings
    validate_settings()

    # Register analytics tables with Base.metadata
    import storefront.analytics.tables  # noqa: F401
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables ready")

    yield

    logger.info("Shutting down — draining connections...")
    await engine.dispose()
    logger.info("Shutdown complete")


app = FastAPI(
    title="Storefront Analytics API",
    version=VERSION,
    description="Event tracking, view counters and admin dashboards for the storefront",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Rate limiting, added first so it sits inside request id and metrics
from storefront.middleware.rate_limit import RateLimitMiddleware
app.add_middleware(RateLimitMiddleware)

# Prometheus metrics
from storefront.middleware.metrics import MetricsMiddleware
app.add_middleware(MetricsMiddleware)

# Request ID tracing
from storefront.middleware.request_id import RequestIDMiddleware
app.add_middleware(RequestIDMiddleware)

from storefront.api.errors import install_error_handlers
install_error_handlers(app)


# ---- Routers ----
from storefront.api.tracking import router as tracking_router
app.include_router(tracking_router)

from storefront.api.catalog import router as catalog_router
app.include_router(catalog_router)

from storefront.api.admin import router as admin_router
app.include_router(admin_router)


@app.get("/health")
async def health(session: AsyncSession = Depends(get_session)):
    """Deep health check — validates DB connectivity."""
    try:
        await session.execute(text("SELECT 1"))
        db_status = "connected"
    except SQLAlchemyError:
        logger.warning("Health check could not reach the database", exc_info=True)
        db_status = "error"
    status = "ok" if db_status == "connected" else "degraded"
    return {"status": status, "db": db_status, "version": VERSION}


@app.get("/ready")
async def readiness(session: AsyncSession = Depends(get_session)):
    """Readiness probe. Returns 503 if the database is unreachable."""
    try:
        await session.execute(text("SELECT 1"))
    except SQLAlchemyError:
        return JSONResponse(status_code=503, content={"ready": False, "reason": "database unavailable"})
    return {"ready": True}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("storefront.api.main:app", host=settings.API_HOST, port=settings.API_PORT)
