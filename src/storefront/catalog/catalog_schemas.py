"""Pydantic schemas for product image routes."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from ..media.media_models import ImageAsset


class ImageDescriptor(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    key: str
    url: str
    deleted: bool
    deleted_at: datetime | None = Field(default=None, alias="deletedAt")

    @classmethod
    def from_asset(cls, asset: ImageAsset) -> "ImageDescriptor":
        return cls(
            key=asset.key,
            url=asset.url,
            deleted=asset.deleted,
            deleted_at=asset.deleted_since,
        )


class ProductCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    slug: str | None = Field(default=None, max_length=255)


class ProductResponse(BaseModel):
    id: str
    name: str
    slug: str | None
    images: list[ImageDescriptor]
