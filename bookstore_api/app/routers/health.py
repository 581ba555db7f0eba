"""Health, readiness and liveness probes plus the Prometheus scrape endpoint."""

from __future__ import annotations

import structlog
from fastapi import APIRouter
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from sqlalchemy import text

from app.config import get_settings
from app.database import engine
from app.services.cache import get_redis

logger = structlog.get_logger()
router = APIRouter(tags=["Health"])


async def _database_ok() -> bool:
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as exc:
        logger.warning("readiness_database_failed", error=str(exc))
        return False
    return True


async def _redis_ok() -> bool:
    try:
        r = await get_redis()
        await r.ping()
    except Exception as exc:
        logger.warning("readiness_redis_failed", error=str(exc))
        return False
    return True


@router.get("/health")
async def health():
    return {"status": "healthy", "service": "bookstore_api"}


@router.get("/live")
async def liveness():
    return {"status": "alive"}


@router.get("/ready")
async def readiness():
    """Readiness probe — the database always, Redis only when something uses it."""
    settings = get_settings()
    checks = {"database": "ok" if await _database_ok() else "error"}
    if settings.cache_enabled or settings.rate_limit_enabled:
        checks["redis"] = "ok" if await _redis_ok() else "error"

    ready = all(v == "ok" for v in checks.values())
    return JSONResponse(
        status_code=200 if ready else 503,
        content={"status": "ready" if ready else "not_ready", "checks": checks},
    )


@router.get("/metrics", tags=["Monitoring"])
async def metrics():
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
