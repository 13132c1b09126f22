"""HTTP routes for product image registry operations."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status

from ..exceptions import NotFoundError, PersistenceFailureError
from .catalog_schemas import ImageDescriptor, ProductCreateRequest, ProductResponse
from .product_repository import ProductRepository
from .registry import AssetRegistry

router = APIRouter(prefix="/api/products", tags=["products"])
logger = logging.getLogger(__name__)


def get_registry(request: Request) -> AssetRegistry:
    try:
        return request.app.state.asset_registry  # type: ignore[attr-defined]
    except AttributeError as exc:  # pragma: no cover - wiring error
        raise RuntimeError("AssetRegistry is not configured") from exc


def get_product_repo(request: Request) -> ProductRepository:
    try:
        return request.app.state.product_repo  # type: ignore[attr-defined]
    except AttributeError as exc:  # pragma: no cover - wiring error
        raise RuntimeError("ProductRepository is not configured") from exc


@router.post("", response_model=ProductResponse, status_code=status.HTTP_201_CREATED)
def create_product(
    payload: ProductCreateRequest,
    repo: ProductRepository = Depends(get_product_repo),
) -> ProductResponse:
    try:
        product = repo.create_product(name=payload.name, slug=payload.slug)
    except PersistenceFailureError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT, detail={"error": "product could not be created"}
        ) from exc
    return ProductResponse(id=product.id, name=product.name, slug=product.slug, images=[])


@router.get("/{product_id}/images", response_model=list[ImageDescriptor])
async def list_images(
    product_id: str,
    include_deleted: bool = False,
    registry: AssetRegistry = Depends(get_registry),
) -> list[ImageDescriptor]:
    """Active images in upload order; ``include_deleted`` returns the full list."""
    try:
        if include_deleted:
            images = await registry.all_images(product_id)
        else:
            images = await registry.active_images(product_id)
    except NotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail={"error": "product not found"}
        ) from exc
    return [ImageDescriptor.from_asset(image) for image in images]


@router.delete("/{product_id}/images/{key:path}", response_model=ImageDescriptor)
async def soft_delete_image(
    product_id: str,
    key: str,
    registry: AssetRegistry = Depends(get_registry),
) -> ImageDescriptor:
    """Hide the image now; its bytes are purged after the grace period."""
    try:
        image = await registry.mark_deleted(product_id, key)
    except NotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail={"error": str(exc)}
        ) from exc
    return ImageDescriptor.from_asset(image)
