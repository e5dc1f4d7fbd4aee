"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from questproof.config import Settings, get_settings
from questproof.database import close_db, create_schema, init_db
from questproof.health.router import router as health_router
from questproof.middleware import setup_middleware
from questproof.redis_client import close_redis, init_redis, redis_in_use
from questproof.services import Services, build_services
from questproof.verification.router import router as verification_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle.

    Services injected through ``create_app`` are used as-is; otherwise the
    configured database / Redis backends are initialised and wired here.
    """
    if getattr(app.state, "services", None) is not None:
        yield
        return

    settings: Settings = app.state.settings
    uses_sql = settings.store_backend == "sql"
    uses_redis = redis_in_use(settings)

    if uses_sql:
        await init_db(settings.database_url)
        if settings.auto_create_schema:
            await create_schema()
    if uses_redis:
        await init_redis(settings)

    app.state.services = build_services(settings)
    logger.info(
        "Verification services ready (store=%s cache=%s limiter=%s)",
        settings.store_backend, settings.cache_backend, settings.rate_limit_backend,
    )

    yield

    await app.state.services.close()
    app.state.services = None
    if uses_sql:
        await close_db()
    if uses_redis:
        await close_redis()


def create_app(settings: Settings | None = None, services: Services | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or (services.settings if services else get_settings())

    app = FastAPI(
        title="QuestProof API",
        description="Game account verification, fraud scoring and quest leaderboards",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.services = services

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(verification_router)

    return app


app = create_app()
