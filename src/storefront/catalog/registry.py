"""Per-product image registry with serialized mutations."""

from __future__ import annotations

import asyncio
import logging
import weakref
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import TypeVar

from ..exceptions import ConcurrentModificationError, NotFoundError
from ..media.media_models import ImageAsset
from ..utils.clock import utcnow
from .product_models import Product
from .product_repository import ProductRepository

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(slots=True)
class AssetRegistry:
    """Mutate product image lists one writer at a time.

    In-process writers queue on a per-product :class:`asyncio.Lock`; writers in
    other processes are detected by the repository version check, in which
    case the mutation is re-applied to a fresh read.
    """

    repo: ProductRepository
    max_conflict_retries: int = 3
    log: logging.Logger = field(default_factory=lambda: logger)
    _locks: weakref.WeakValueDictionary[str, asyncio.Lock] = field(
        default_factory=weakref.WeakValueDictionary
    )

    def product_lock(self, product_id: str) -> asyncio.Lock:
        lock = self._locks.get(product_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[product_id] = lock
        return lock

    def get_product(self, product_id: str) -> Product:
        return self.repo.get_product(product_id)

    async def append_image(self, product_id: str, image: ImageAsset) -> ImageAsset:
        """Register a freshly stored image at the end of the product's list."""

        def _append(product: Product) -> tuple[ImageAsset, bool]:
            product.append_image(image)
            return image, True

        result = await self._mutate(product_id, _append)
        self.log.info(
            "catalog.image.appended",
            extra={"product_id": product_id, "key": image.key},
        )
        return result

    async def mark_deleted(
        self, product_id: str, key: str, *, now: datetime | None = None
    ) -> ImageAsset:
        """Soft-delete an image; repeated calls keep the first ``deletedAt``."""
        current = now or utcnow()

        def _mark(product: Product) -> tuple[ImageAsset, bool]:
            index = product.find_image(key)
            if index is None:
                raise NotFoundError(f"image '{key}' not found on product '{product_id}'")
            image = product.images[index]
            if image.deleted:
                return image, False
            updated = image.mark_deleted(current)
            product.images[index] = updated
            return updated, True

        result = await self._mutate(product_id, _mark)
        self.log.info(
            "catalog.image.soft_deleted",
            extra={
                "product_id": product_id,
                "key": key,
                "deleted_at": result.deleted_since.isoformat() if result.deleted_since else None,
            },
        )
        return result

    async def remove_purged(self, product_id: str, refs: Iterable[str]) -> list[ImageAsset]:
        """Drop images whose stored bytes are gone; only pending ones are removed."""
        wanted = list(refs)

        def _remove(product: Product) -> tuple[list[ImageAsset], bool]:
            removed = product.remove_images(wanted)
            return [image.mark_purged() for image in removed], bool(removed)

        return await self._mutate(product_id, _remove)

    async def active_images(self, product_id: str) -> list[ImageAsset]:
        return self.repo.get_product(product_id).active_images()

    async def all_images(self, product_id: str) -> list[ImageAsset]:
        return list(self.repo.get_product(product_id).images)

    def purge_candidates(self, cutoff: datetime, limit: int) -> Sequence[Product]:
        return self.repo.list_purge_candidates(cutoff, limit)

    async def _mutate(
        self, product_id: str, mutation: Callable[[Product], tuple[T, bool]]
    ) -> T:
        attempts = max(1, self.max_conflict_retries)
        async with self.product_lock(product_id):
            for attempt in range(1, attempts + 1):
                product = self.repo.get_product(product_id)
                result, changed = mutation(product)
                if not changed:
                    return result
                try:
                    self.repo.save_images(product)
                except ConcurrentModificationError:
                    self.log.warning(
                        "catalog.product.version_conflict",
                        extra={"product_id": product_id, "attempt": attempt},
                    )
                    if attempt >= attempts:
                        raise
                    continue
                return result
        raise ConcurrentModificationError(f"product '{product_id}' could not be updated")
