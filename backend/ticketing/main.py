"""
Event Ticketing API - application entry point.

Run with:  uvicorn ticketing.main:app --app-dir backend

The interesting part lives in services/: per-event admission control that
never oversells an event or double-books a seat, whichever admission
strategy is configured. This module only wires the pieces together.
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from ticketing.api.errors import register_exception_handlers
from ticketing.api.middleware import RequestLoggingMiddleware
from ticketing.api.router import api_router
from ticketing.core.config import Settings, get_settings
from ticketing.core.logging import get_logger, setup_logging
from ticketing.core.metrics import metrics_endpoint
from ticketing.db.session import engine
from ticketing.services.cache_service import close_redis, get_cache_stats, get_redis
from ticketing.services.strategy_factory import get_admission

logger = get_logger(__name__)


async def check_database() -> dict:
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        return {"status": "error", "error": str(e)}
    return {"status": "connected", "backend": engine.dialect.name}


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings
    setup_logging()

    logger.info(
        "application_starting",
        app=settings.APP_NAME,
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
        admission_strategy=get_admission().name,
    )

    if await get_redis() is None:
        logger.warning("redis_unavailable", message="Serving listings without cache")

    yield

    await close_redis()
    await engine.dispose()
    logger.info("application_shutdown")


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="Event ticketing API with concurrency-safe booking admission",
        lifespan=lifespan,
    )
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Restrict in production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLoggingMiddleware)

    register_exception_handlers(app)
    app.include_router(api_router)

    @app.get("/health", tags=["Health"])
    async def health_check():
        """Liveness plus dependency status for load balancers."""
        database = await check_database()
        return {
            "status": "healthy" if database["status"] == "connected" else "degraded",
            "version": settings.APP_VERSION,
            "environment": settings.ENVIRONMENT,
            "admission_strategy": get_admission().name,
            "database": database,
            "cache": await get_cache_stats(),
        }

    @app.get("/metrics", tags=["Health"])
    async def metrics():
        return metrics_endpoint()

    @app.get("/", tags=["Root"])
    async def root():
        return {
            "message": f"Welcome to {settings.APP_NAME}",
            "version": settings.APP_VERSION,
            "docs": "/docs",
        }

    return app


app = create_app()
