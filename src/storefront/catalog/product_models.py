"""Product domain model owning the ordered image registry."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime

from ..media.media_models import ImageAsset


@dataclass(slots=True)
class Product:
    id: str
    name: str
    slug: str | None = None
    images: list[ImageAsset] = field(default_factory=list)
    version: int = 1
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def active_images(self) -> list[ImageAsset]:
        """Images visible to shoppers, in upload order."""
        return [image for image in self.images if image.is_active]

    def find_image(self, key: str) -> int | None:
        for index, image in enumerate(self.images):
            if image.key == key:
                return index
        return None

    def append_image(self, image: ImageAsset) -> None:
        if image.key and self.find_image(image.key) is not None:
            raise ValueError(f"image '{image.key}' already registered on product '{self.id}'")
        self.images.append(image)

    def remove_images(self, refs: Iterable[str]) -> list[ImageAsset]:
        """Drop pending-deletion images whose ``ref`` is listed; return them."""
        wanted = set(refs)
        kept: list[ImageAsset] = []
        removed: list[ImageAsset] = []
        for image in self.images:
            if image.ref in wanted and image.deleted:
                removed.append(image)
            else:
                kept.append(image)
        self.images = kept
        return removed

    def earliest_deleted_at(self) -> datetime | None:
        stamps = [image.deleted_since for image in self.images if image.deleted_since]
        return min(stamps) if stamps else None
