"""FastAPI application factory."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from inventory_media.api.camera import router as camera_router
from inventory_media.api.media import router as media_router
from inventory_media.api.queue import router as queue_router
from inventory_media.app_logging import configure_logging
from inventory_media.containers import AppContainer


def create_app(container: AppContainer) -> FastAPI:
    """Create a FastAPI app configured with dependencies."""
    configure_logging()
    logger = logging.getLogger(__name__)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info(
            "Capture station ready",
            extra={"media_api": app.state.container.settings.media_api_base_url},
        )
        yield
        try:
            await app.state.container.close_resources()
        except Exception:
            logger.exception("Failed to release capture station resources")

    app = FastAPI(lifespan=lifespan)
    app.state.container = container

    app.include_router(queue_router)
    app.include_router(camera_router)
    app.include_router(media_router)

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Simple health check endpoint."""
        return {"status": "ok"}

    return app
