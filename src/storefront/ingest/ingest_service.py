"""Domain service for image upload ingestion."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from fastapi import UploadFile

from ..catalog.registry import AssetRegistry
from ..exceptions import AppError, KeyConflictError
from ..media.media_models import ImageAsset
from ..media.storage import MediaStorage
from .ingest_models import IngestResult, NamingStrategy, ValidatedUpload
from .naming import KeyFactory
from .validation import UploadValidator

logger = logging.getLogger(__name__)

KEY_CONFLICT_ATTEMPTS = 3


@dataclass(slots=True)
class MediaIngestService:
    """Validate, name, store and register uploaded product images."""

    storage: MediaStorage
    registry: AssetRegistry
    validator: UploadValidator
    key_factory: KeyFactory = field(default_factory=KeyFactory)
    log: logging.Logger = field(default_factory=lambda: logger)

    async def ingest(
        self,
        product_id: str,
        upload: UploadFile | None,
        *,
        naming: NamingStrategy = NamingStrategy.ORIGINAL,
    ) -> IngestResult:
        """Store the upload and append its descriptor to ``product_id``."""
        # fail on unknown products before anything is written
        self.registry.get_product(product_id)
        validated = await self.validator.validate(upload)
        asset = await self._store(validated, naming)
        try:
            await self.registry.append_image(product_id, asset)
        except (AppError, ValueError):
            self.log.error(
                "ingest.upload.register_failed",
                extra={"product_id": product_id, "key": asset.key},
            )
            await self._discard(asset)
            raise
        self.log.info(
            "ingest.upload.attached",
            extra={"product_id": product_id, "key": asset.key, "size_bytes": validated.size_bytes},
        )
        return IngestResult(
            asset=asset,
            original_name=validated.filename,
            size_bytes=validated.size_bytes,
        )

    async def store_unattached(
        self,
        upload: UploadFile | None,
        *,
        naming: NamingStrategy = NamingStrategy.ORIGINAL,
    ) -> IngestResult:
        """Store the upload without registering it on a product."""
        validated = await self.validator.validate(upload)
        asset = await self._store(validated, naming)
        return IngestResult(
            asset=asset,
            original_name=validated.filename,
            size_bytes=validated.size_bytes,
        )

    async def _store(self, validated: ValidatedUpload, naming: NamingStrategy) -> ImageAsset:
        # another process may hold the same millisecond; take the next key
        for attempt in range(1, KEY_CONFLICT_ATTEMPTS + 1):
            key = self.key_factory.derive(validated.filename, naming)
            try:
                stored = await self.storage.put(
                    key, validated.data, content_type=validated.content_type
                )
            except KeyConflictError:
                if attempt >= KEY_CONFLICT_ATTEMPTS:
                    raise
                self.log.warning(
                    "ingest.upload.key_conflict",
                    extra={"key": key, "attempt": attempt},
                )
                continue
            break
        self.log.info(
            "ingest.upload.stored",
            extra={"key": stored.key, "backend": self.storage.name, "size_bytes": stored.size_bytes},
        )
        return ImageAsset(
            key=stored.key,
            url=stored.url,
            original_name=validated.filename,
            size_bytes=stored.size_bytes,
            content_type=validated.content_type,
        )

    async def _discard(self, asset: ImageAsset) -> None:
        try:
            await self.storage.delete(asset.key)
        except AppError:
            self.log.exception(
                "ingest.upload.discard_failed", extra={"key": asset.key}
            )
