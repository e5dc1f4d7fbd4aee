"""Health, readiness, and version endpoints."""

from fastapi import APIRouter, Depends, Request
from sqlalchemy import text

from questproof.dependencies import get_services
from questproof.redis_client import redis_in_use, redis_status
from questproof.services import Services
from questproof.store import SqlStore

router = APIRouter()


@router.get("/health")
async def health() -> dict[str, str]:
    """Liveness check: 200 whenever the process is serving."""
    return {"status": "healthy"}


@router.get("/ready")
async def readiness(services: Services = Depends(get_services)) -> dict[str, object]:  # noqa: B008
    """Readiness: checks the configured database and Redis backends."""
    settings = services.settings
    checks: dict[str, object] = {}

    if isinstance(services.store, SqlStore):
        from questproof.database import get_engine

        try:
            async with get_engine().connect() as conn:
                result = await conn.execute(text("SELECT 1"))
                result.scalar()
            checks["database"] = "ok"
        except Exception as exc:
            checks["database"] = f"error: {exc}"
    else:
        checks["database"] = "memory"

    if redis_in_use(settings):
        checks["redis"] = await redis_status()
    else:
        checks["redis"] = "memory"

    all_ok = all(v in ("ok", "memory") for v in checks.values())
    return {"status": "ready" if all_ok else "degraded", "checks": checks}


@router.get("/version")
async def version(request: Request) -> dict[str, str]:
    """Return API version and environment."""
    settings = request.app.state.settings
    return {
        "version": settings.app_version,
        "environment": settings.environment,
    }
