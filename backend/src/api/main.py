"""
FastAPI application entry point for the solar tracker backend.

The lifespan owns the broker subscriber: it loads ``BackendSettings``,
configures JSON logging, initializes the database engine and, when
INGEST_ENABLED is true, starts the subscriber. On shutdown the subscriber is
stopped before the engine is disposed so no in-flight reconcile outlives its
connection pool.

Run with ``python -m backend.src.api.main`` or any ASGI server pointed at
``backend.src.api.main:app``.

CHANGELOG:
- 2026-10-18: Dispose the engine when the subscriber fails to start (STORY-112)
- 2026-10-18: Register registry router (STORY-110)
- 2026-10-18: Start and stop the broker subscriber in the lifespan (STORY-105)
"""

import logging
import os
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from backend.src.api.health import router as health_router
from backend.src.api.registry import router as registry_router
from backend.src.config import BackendSettings
from backend.src.db.session import dispose_engine, init_engine
from backend.src.logging_setup import configure_logging, log_config_summary
from backend.src.subscriber import Subscriber, mqtt_transport_factory

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: subscriber startup and ordered shutdown.

    Startup:
        - Loads and validates settings (fails fast on invalid config).
        - Initializes the database engine.
        - Starts the subscriber unless ingestion is disabled.

    Shutdown:
        - Stops the subscriber, then disposes the engine.
    """
    settings = BackendSettings()  # type: ignore[call-arg]
    configure_logging(settings.log_level)
    log_config_summary(settings)

    session_factory = init_engine(settings.database_url)
    subscriber = Subscriber(
        session_factory,
        mqtt_transport_factory(settings),
        topic_root=settings.topic_root,
    )
    app.state.settings = settings
    app.state.subscriber = subscriber

    try:
        if settings.ingest_enabled:
            await subscriber.start()
        else:
            logger.info("Ingestion disabled (INGEST_ENABLED=false), subscriber not started")

        logger.info("Solar tracker backend ready (client_id=%s)", subscriber.client_id)
        yield
    finally:
        logger.info("Solar tracker backend shutting down")
        await subscriber.stop()
        await dispose_engine()


app = FastAPI(
    title="Solar Tracker Sync",
    description="Telemetry ingestion and device registry for the solar tracker.",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(health_router)
app.include_router(registry_router)


def main() -> None:
    """Serve the app with uvicorn; uvicorn handles SIGTERM/SIGINT."""
    uvicorn.run(
        "backend.src.api.main:app",
        host=os.environ.get("HOST", "0.0.0.0"),  # noqa: S104
        port=int(os.environ.get("PORT", "8000")),
        log_config=None,
    )


if __name__ == "__main__":
    main()
