"""FastAPI application factory.

Creates the app with session, tenant, logging and metrics middleware, CORS,
Sentry, lifespan events for database initialization, and the v1 API router.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.requests import Request
from fastapi.responses import Response
from starlette.middleware.sessions import SessionMiddleware

from src.app.api.middleware.logging import LoggingMiddleware, configure_structlog
from src.app.api.middleware.tenant import TenantMiddleware
from src.app.api.v1.router import router as v1_router
from src.app.config import Environment, get_settings
from src.app.core.database import close_db, init_db
from src.app.core.monitoring import MetricsMiddleware, get_metrics_response, init_sentry
from src.app.core.redis import close_redis, get_redis_pool
from src.app.services.jobs import JobRegistry


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: init DB and Sentry on startup, close on shutdown."""
    log = structlog.get_logger(__name__)
    settings = get_settings()
    configure_structlog()
    await init_db()

    # Initialize Sentry if DSN is configured
    if settings.SENTRY_DSN:
        init_sentry(dsn=settings.SENTRY_DSN, environment=settings.ENVIRONMENT.value)

    log.info("app.started", environment=settings.ENVIRONMENT.value, data_dir=str(settings.data_path))
    yield

    await app.state.jobs.drain()
    await close_db()
    await close_redis()
    log.info("app.stopped")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Helpdesk Hub API",
        version="0.1.0",
        description="Multi-tenant help desk with a knowledge-grounded AI livechat",
        lifespan=lifespan,
    )
    app.state.jobs = JobRegistry(ttl_seconds=settings.JOB_TTL_SECONDS)

    # Middleware is added in reverse order (last added = outermost)

    # Tenant middleware (inner -- resolves tenant context from the session)
    app.add_middleware(TenantMiddleware, redis_client=get_redis_pool())

    # CORS middleware
    if settings.CORS_ALLOWED_ORIGINS == "*":
        origins = ["*"]
    else:
        origins = [o.strip() for o in settings.CORS_ALLOWED_ORIGINS.split(",")]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Logging middleware (logs every request with timing)
    app.add_middleware(LoggingMiddleware)

    # Metrics middleware (records Prometheus metrics for all requests)
    app.add_middleware(MetricsMiddleware)

    # Session middleware (outermost -- every other layer reads request.session)
    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.SESSION_SECRET_KEY,
        session_cookie=settings.SESSION_COOKIE_NAME,
        max_age=settings.SESSION_MAX_AGE_SECONDS,
        same_site="lax",
        https_only=settings.ENVIRONMENT == Environment.production,
    )

    app.include_router(v1_router)

    # Prometheus metrics endpoint (infrastructure route, outside v1 router)
    @app.get("/metrics", include_in_schema=False)
    async def metrics(request: Request) -> Response:
        """Prometheus metrics endpoint."""
        return get_metrics_response()

    return app


# Module-level app for uvicorn
app = create_app()
