"""Public upload retrieval endpoint."""

from fastapi import APIRouter

from ..media.public_media_service import PublicUploadService


def build_public_media_router(service: PublicUploadService) -> APIRouter:
    router = APIRouter(prefix="/uploads", tags=["public-media"])

    @router.get("/{name:path}")
    def get_upload(name: str):
        return service.open_upload(name)

    return router
