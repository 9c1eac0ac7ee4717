from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
import uvicorn
from fastapi import FastAPI

from ticketing.api.routes.health import router as health_router
from ticketing.api.routes.internal_orders import router as internal_orders_router
from ticketing.api.routes.internal_reps import router as internal_reps_router
from ticketing.core.config import get_settings
from ticketing.core.logging import configure_logging
from ticketing.db.store import SqlRecordStore
from ticketing.services.notifications import build_order_notifier

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    store = SqlRecordStore.from_settings()
    app.state.store = store
    logger.info("record_store_opened")
    try:
        yield
    finally:
        await store.close()
        logger.info("record_store_closed")


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(
        title="Ticketing Commerce API",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.notifier = build_order_notifier(settings)
    app.include_router(health_router)
    app.include_router(internal_orders_router)
    app.include_router(internal_reps_router)
    return app


app = create_app()


def run() -> None:
    settings = get_settings()
    uvicorn.run(
        "ticketing.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=settings.app_env == "dev",
    )


if __name__ == "__main__":
    run()
