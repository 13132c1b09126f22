"""HTTP routes for image uploads."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, File, Request, UploadFile, status
from fastapi.responses import JSONResponse

from ..exceptions import (
    NotFoundError,
    PathTraversalError,
    RepositoryError,
    WriteFailureError,
)
from .ingest_errors import MissingUploadError, PayloadTooLargeError
from .ingest_models import IngestResult, NamingStrategy
from .ingest_schemas import ErrorResponse, UploadResponse
from .ingest_service import MediaIngestService

router = APIRouter(prefix="/api", tags=["uploads"])
logger = logging.getLogger(__name__)

_ERROR_RESPONSES = {
    status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse},
    status.HTTP_404_NOT_FOUND: {"model": ErrorResponse},
    status.HTTP_413_REQUEST_ENTITY_TOO_LARGE: {"model": ErrorResponse},
    status.HTTP_500_INTERNAL_SERVER_ERROR: {"model": ErrorResponse},
}


def get_ingest_service(request: Request) -> MediaIngestService:
    """Fetch ingest service from application state."""
    try:
        return request.app.state.ingest_service  # type: ignore[attr-defined]
    except AttributeError as exc:  # pragma: no cover - wiring error
        raise RuntimeError("MediaIngestService is not configured") from exc


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def _to_response(result: IngestResult) -> UploadResponse:
    return UploadResponse(
        key=result.asset.key,
        original_name=result.original_name,
        size=result.size_bytes,
        url=result.asset.url,
    )


@router.post("/uploads", response_model=UploadResponse, responses=_ERROR_RESPONSES)
async def upload_unattached(
    naming: NamingStrategy = NamingStrategy.ORIGINAL,
    image: UploadFile | None = File(None),
    service: MediaIngestService = Depends(get_ingest_service),
):
    """Store an image that is not yet bound to a product (admin form preview)."""
    try:
        result = await service.store_unattached(image, naming=naming)
    except MissingUploadError as exc:
        return _error(status.HTTP_400_BAD_REQUEST, str(exc))
    except PayloadTooLargeError:
        return _error(status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, "file too large")
    except (WriteFailureError, PathTraversalError):
        logger.exception("ingest.upload.failed")
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "upload failed")
    return _to_response(result)


@router.post(
    "/products/{product_id}/images",
    response_model=UploadResponse,
    responses=_ERROR_RESPONSES,
)
async def upload_product_image(
    product_id: str,
    naming: NamingStrategy = NamingStrategy.ORIGINAL,
    image: UploadFile | None = File(None),
    service: MediaIngestService = Depends(get_ingest_service),
):
    """Store an image and append it to the product's image list."""
    try:
        result = await service.ingest(product_id, image, naming=naming)
    except NotFoundError:
        return _error(status.HTTP_404_NOT_FOUND, "product not found")
    except MissingUploadError as exc:
        return _error(status.HTTP_400_BAD_REQUEST, str(exc))
    except PayloadTooLargeError:
        return _error(status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, "file too large")
    except (WriteFailureError, PathTraversalError, RepositoryError):
        logger.exception("ingest.upload.failed", extra={"product_id": product_id})
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "upload failed")
    return _to_response(result)
