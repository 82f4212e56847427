"""
Live State read API: half-split statistics plus /health and /ready.
"""
from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator

from fastapi import Depends, FastAPI

from shared.config import get_settings
from shared.utils.database import DatabaseManager
from shared.utils.logging import get_logger, setup_logging
from shared.utils.metrics import start_metrics_server

from api.dependencies import get_store, init_dependencies
from api.middleware import setup_middleware
from api.routes.matches import router as matches_router
from reconciler.store import MatchStateStore

logger = get_logger(__name__)

# Postgres may still be starting when the container comes up.
DB_CONNECT_DELAYS_S = (1.0, 2.0, 4.0, 8.0, 16.0, 30.0)


async def connect_database(db: DatabaseManager) -> None:
    for attempt, delay in enumerate(DB_CONNECT_DELAYS_S, start=1):
        try:
            await db.connect()
            return
        except Exception as exc:
            logger.warning("database_connect_failed", attempt=attempt, retry_in_s=delay, error=str(exc))
        await asyncio.sleep(delay)
    await db.connect()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    settings = get_settings()
    setup_logging("api", {"environment": settings.environment.value})
    start_metrics_server()

    db = DatabaseManager(settings)
    await connect_database(db)
    init_dependencies(db)
    logger.info("api_started", host=settings.api_host, port=settings.api_port)
    try:
        yield
    finally:
        await db.disconnect()
        logger.info("api_stopped")


def create_app(*, use_lifespan: bool = True) -> FastAPI:
    """use_lifespan=False skips database wiring; tests override the dependencies instead."""
    app = FastAPI(
        title="Live State API",
        description="Derived live match state: minutes and half-split statistics",
        version="1.0.0",
        lifespan=lifespan if use_lifespan else None,
    )
    setup_middleware(app)
    app.include_router(matches_router)

    @app.get("/health", tags=["system"])
    async def health() -> dict[str, str]:
        return {"status": "ok", "service": "api"}

    @app.get("/ready", tags=["system"])
    async def ready(store: MatchStateStore = Depends(get_store)) -> dict[str, Any]:
        """Database reachable, and whether the half-split columns exist."""
        try:
            caps = await store.capabilities()
        except Exception as exc:
            logger.warning("readiness_check_failed", error=str(exc))
            return {"status": "degraded", "database": False, "half_split": False}
        return {"status": "ok", "database": True, "half_split": caps.can_validate}

    return app


app = create_app()
