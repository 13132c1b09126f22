"""Lifecycle helpers wiring the image purge job for FastAPI startup."""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Callable

import structlog

from .media.media_cleanup import CleanupReport, DeferredDeletionJob
from .utils.clock import utcnow

logger = structlog.get_logger(__name__)


async def image_cleanup_once(
    *,
    job: DeferredDeletionJob,
    now: datetime | None = None,
    run_timeout_seconds: float | None = None,
) -> CleanupReport | None:
    """Run a single purge iteration bounded by ``run_timeout_seconds``."""

    current = now or utcnow()
    if run_timeout_seconds is None:
        return await job.run_once(now=current)
    try:
        return await asyncio.wait_for(job.run_once(now=current), timeout=run_timeout_seconds)
    except asyncio.TimeoutError:
        # purges completed before the deadline are already persisted
        logger.error("media.cleanup.run_timeout", timeout_seconds=run_timeout_seconds)
        return None


async def run_periodic_image_cleanup(
    *,
    job: DeferredDeletionJob,
    shutdown_event: asyncio.Event,
    interval_seconds: float = 3600.0,
    run_timeout_seconds: float | None = None,
    clock: Callable[[], datetime] | None = None,
) -> None:
    """Execute image purges until ``shutdown_event`` is signalled."""

    interval = max(1.0, float(interval_seconds))
    tick = clock or utcnow
    while not shutdown_event.is_set():
        try:
            report = await image_cleanup_once(
                job=job,
                now=tick(),
                run_timeout_seconds=run_timeout_seconds,
            )
        except Exception:  # pragma: no cover - run_once already isolates failures
            logger.exception("media.cleanup.iteration_failed")
        else:
            if report is not None and report.purged_count:
                logger.info(
                    "media.cleanup.iteration_done",
                    purged=report.purged_count,
                    failed=report.assets_failed,
                )
        try:
            await asyncio.wait_for(shutdown_event.wait(), timeout=interval)
        except asyncio.TimeoutError:
            continue


__all__ = [
    "image_cleanup_once",
    "run_periodic_image_cleanup",
]
