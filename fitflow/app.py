"""FastAPI application factory — entry point for the API."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from redis.asyncio import Redis

from fitflow.cache import TTLCache
from fitflow.config import get_settings
from fitflow.exceptions import FitFlowError
from fitflow.rate_limit import RateLimiter
from fitflow.routers import cron, preorders, pricing, staff, subscriptions

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle."""
    # Auto-create tables for SQLite (dev mode); PostgreSQL uses Alembic
    from fitflow.db.session import engine
    from fitflow.models import Base

    settings = get_settings()
    if settings.database_url.startswith("sqlite"):
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    yield

    await app.state.rate_limiter.close()
    await engine.dispose()


def create_app() -> FastAPI:
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        debug=settings.debug,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url=None,
    )

    app.state.settings = settings
    app.state.catalog_cache = TTLCache(ttl_seconds=settings.catalog_cache_ttl)
    app.state.rate_limiter = RateLimiter(Redis.from_url(settings.redis_url))

    # --- Error handlers ---
    @app.exception_handler(FitFlowError)
    async def fitflow_error_handler(request: Request, exc: FitFlowError):
        body = {"error": exc.code, "message": exc.message}
        errors = getattr(exc, "errors", None)
        if errors:
            body["errors"] = errors
        return JSONResponse(body, status_code=exc.status_code)

    @app.exception_handler(Exception)
    async def server_error_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
        return JSONResponse(
            {"error": "internal_error", "message": "An unexpected error occurred. Please try again later."},
            status_code=500,
        )

    # --- Routers ---
    app.include_router(pricing.router)
    app.include_router(subscriptions.router)
    app.include_router(staff.router)
    app.include_router(preorders.router)
    app.include_router(cron.router)

    return app


app = create_app()
