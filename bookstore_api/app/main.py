"""
FastAPI application — the entrypoint for the bookstore API.

Wires together:
- structured logging and domain error rendering
- CORS and Redis rate limiting
- per-route Prometheus request metrics
- the auth, catalog, review, user admin, analytics and probe routers

Run: uvicorn app.main:app
"""

from __future__ import annotations

import time
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from app.config import get_settings
from app.database import Base, engine
from app.errors import register_error_handlers
from app.logging_config import setup_logging
from app.metrics import REQUEST_COUNT, REQUEST_LATENCY
from app.middleware.rate_limiter import RateLimiterMiddleware
from app.routers import analytics, auth, books, health, reviews, users
from app.services import cache, image_host

settings = get_settings()
setup_logging(settings.log_level, settings.log_format)
logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("bookstore_api_starting", environment=settings.environment)

    # Deployed environments migrate with Alembic; development creates tables directly
    if settings.environment == "development":
        from app.models import book, inventory, review, user  # noqa: F401

        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("database_tables_created")

    yield

    logger.info("bookstore_api_shutting_down")
    await image_host.close_client()
    await cache.close_redis()
    await engine.dispose()


app = FastAPI(
    title="Online Bookstore API",
    description="Book catalog, reviews, user administration and inventory analytics",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

register_error_handlers(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RateLimiterMiddleware)


@app.middleware("http")
async def record_request_metrics(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    elapsed = time.perf_counter() - started

    # Route template, not the raw path, so ids don't explode the label space
    route = request.scope.get("route")
    endpoint = getattr(route, "path", request.url.path)
    REQUEST_COUNT.labels(method=request.method, endpoint=endpoint, status=response.status_code).inc()
    REQUEST_LATENCY.labels(method=request.method, endpoint=endpoint).observe(elapsed)
    return response


for module in (health, auth, books, reviews, users, analytics):
    app.include_router(module.router)
