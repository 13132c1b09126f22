"""FastAPI application entry point."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator

from fastapi import FastAPI

from .config import AppConfig, load_config
from .dependencies import include_routers
from .lifecycle import run_periodic_image_cleanup
from .logging import configure_logging
from .media.storage import MediaStorage

logger = logging.getLogger(__name__)


def create_app(
    config: AppConfig | None = None, *, storage: MediaStorage | None = None
) -> FastAPI:
    """Build FastAPI instance with configured dependencies."""
    configure_logging()
    cfg = config or load_config()

    async def _startup_image_cleanup(app: FastAPI) -> None:
        if getattr(app.state, "disable_image_cleanup", False):
            logger.info("Image cleanup startup skipped: disabled via app state")
            return
        shutdown_event = asyncio.Event()
        task = asyncio.create_task(
            run_periodic_image_cleanup(
                job=app.state.deletion_job,
                shutdown_event=shutdown_event,
                interval_seconds=cfg.cleanup.interval_seconds,
                run_timeout_seconds=cfg.cleanup.run_timeout_seconds,
            ),
            name="storefront-image-cleanup",
        )
        app.state.image_cleanup_task = task
        app.state.image_cleanup_shutdown_event = shutdown_event

    async def _shutdown_image_cleanup(app: FastAPI) -> None:
        shutdown_event = app.state.image_cleanup_shutdown_event
        if shutdown_event is not None:
            shutdown_event.set()
        task: asyncio.Task[None] | None = app.state.image_cleanup_task
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        app.state.image_cleanup_task = None
        app.state.image_cleanup_shutdown_event = None

    @contextlib.asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        await _startup_image_cleanup(app)
        try:
            yield
        finally:
            await _shutdown_image_cleanup(app)

    app = FastAPI(title="Storefront Media", lifespan=lifespan)
    include_routers(app, cfg, storage=storage)
    app.state.image_cleanup_task = None
    app.state.image_cleanup_shutdown_event = None
    return app
