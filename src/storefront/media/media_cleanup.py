"""Deferred purge of soft-deleted product images."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta

import structlog

from ..catalog.product_models import Product
from ..catalog.registry import AssetRegistry
from ..exceptions import BackendUnavailableError, PathTraversalError, RepositoryError
from ..utils.clock import to_naive_utc, utcnow
from .storage import MediaStorage

logger = structlog.get_logger(__name__)


@dataclass(slots=True)
class CleanupReport:
    """Counters describing one purge run."""

    cutoff: datetime
    products_examined: int = 0
    assets_purged: list[tuple[str, str]] = field(default_factory=list)
    assets_failed: int = 0
    products_failed: int = 0

    @property
    def purged_count(self) -> int:
        return len(self.assets_purged)


@dataclass(slots=True)
class DeferredDeletionJob:
    """Permanently remove images soft-deleted longer than ``grace_hours`` ago.

    Storage is always deleted before the descriptor is dropped, so a crash in
    between leaves a pending descriptor whose re-delete is a harmless no-op on
    the next run. Failures are logged per asset and per product; ``run_once``
    never raises. Products that failed in the previous run are queued behind
    the other candidates so they cannot starve the batch.
    """

    registry: AssetRegistry
    storage: MediaStorage
    grace_hours: float = 24
    batch_limit: int = 100
    _run_lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    _recently_failed: set[str] = field(default_factory=set)

    def cutoff_for(self, now: datetime) -> datetime:
        return to_naive_utc(now) - timedelta(hours=self.grace_hours)

    def preview(self, now: datetime | None = None) -> list[tuple[str, str]]:
        """Return ``(product_id, ref)`` pairs a run at ``now`` would purge."""
        cutoff = self.cutoff_for(now or utcnow())
        return [
            (product.id, image.ref)
            for product in self.registry.purge_candidates(cutoff, self.batch_limit)
            for image in product.images
            if image.is_purge_due(cutoff)
        ]

    async def run_once(self, now: datetime | None = None) -> CleanupReport | None:
        """Run a single purge pass; returns ``None`` when a run is already active."""
        if self._run_lock.locked():
            logger.warning("media.cleanup.skipped_overlap")
            return None
        async with self._run_lock:
            return await self._run(now or utcnow())

    async def _run(self, now: datetime) -> CleanupReport:
        cutoff = self.cutoff_for(now)
        report = CleanupReport(cutoff=cutoff)
        logger.info("media.cleanup.started", cutoff=cutoff.isoformat(), batch_limit=self.batch_limit)

        try:
            products = self._select_candidates(cutoff)
        except Exception:
            logger.exception("media.cleanup.candidates_failed")
            return report

        failed: set[str] = set()
        for product in products:
            report.products_examined += 1
            try:
                if not await self._purge_product(product, cutoff, report):
                    failed.add(product.id)
            except Exception:
                report.products_failed += 1
                failed.add(product.id)
                logger.exception("media.cleanup.product_failed", product_id=product.id)
        self._recently_failed = failed

        logger.info(
            "media.cleanup.finished",
            products_examined=report.products_examined,
            assets_purged=report.purged_count,
            assets_failed=report.assets_failed,
            products_failed=report.products_failed,
        )
        return report

    def _select_candidates(self, cutoff: datetime) -> list[Product]:
        if not self._recently_failed:
            return list(self.registry.purge_candidates(cutoff, self.batch_limit))
        fetched = self.registry.purge_candidates(
            cutoff, self.batch_limit + len(self._recently_failed)
        )
        fresh = [product for product in fetched if product.id not in self._recently_failed]
        retried = [product for product in fetched if product.id in self._recently_failed]
        return (fresh + retried)[: self.batch_limit]

    async def _purge_product(self, product: Product, cutoff: datetime, report: CleanupReport) -> bool:
        """Purge due images of ``product``; returns ``False`` when anything failed."""
        deleted_refs: list[str] = []
        clean = True
        for image in list(product.images):
            if not image.is_purge_due(cutoff):
                continue
            key = image.storage_key()
            if key is None:
                logger.warning("media.cleanup.no_key", product_id=product.id, ref=image.ref)
                deleted_refs.append(image.ref)
                continue
            try:
                outcome = await self.storage.delete(key)
            except PathTraversalError:
                # the stored key can never address an object; drop the descriptor
                logger.warning("media.cleanup.unaddressable_key", product_id=product.id, ref=image.ref)
                deleted_refs.append(image.ref)
                continue
            except BackendUnavailableError as exc:
                report.assets_failed += 1
                clean = False
                logger.warning(
                    "media.cleanup.delete_failed",
                    product_id=product.id,
                    key=key,
                    error=str(exc),
                )
                continue
            except Exception:
                report.assets_failed += 1
                clean = False
                logger.exception("media.cleanup.delete_error", product_id=product.id, key=key)
                continue
            deleted_refs.append(image.ref)
            logger.info(
                "media.cleanup.storage_deleted",
                product_id=product.id,
                key=key,
                outcome=outcome.value,
            )

        if not deleted_refs:
            return clean

        try:
            removed = await self.registry.remove_purged(product.id, deleted_refs)
        except RepositoryError as exc:
            # storage side already gone; descriptors stay pending and are retried
            report.products_failed += 1
            logger.error(
                "media.cleanup.persist_failed",
                product_id=product.id,
                refs=deleted_refs,
                error=str(exc),
            )
            return False
        for image in removed:
            report.assets_purged.append((product.id, image.ref))
            logger.info("media.cleanup.purged", product_id=product.id, ref=image.ref)
        return clean
