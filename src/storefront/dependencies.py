"""Dependency wiring helpers."""

from __future__ import annotations

from fastapi import FastAPI

from .catalog.catalog_api import router as catalog_router
from .catalog.product_repository import ProductRepository
from .catalog.registry import AssetRegistry
from .config import BACKEND_LOCAL, AppConfig
from .ingest.ingest_api import router as ingest_router
from .ingest.ingest_service import MediaIngestService
from .ingest.validation import UploadValidator
from .media.media_cleanup import DeferredDeletionJob
from .media.public_media_service import PublicUploadService
from .media.storage import MediaStorage, build_storage
from .public.public_media_router import build_public_media_router


def include_routers(
    app: FastAPI, config: AppConfig, *, storage: MediaStorage | None = None
) -> None:
    """Mount module routers and attach services.

    The storage backend is resolved exactly once here and shared by ingestion
    and the deletion job.
    """
    backend = storage or build_storage(config.storage)
    product_repo = ProductRepository(config.session_factory)
    registry = AssetRegistry(repo=product_repo)
    ingest_service = MediaIngestService(
        storage=backend,
        registry=registry,
        validator=UploadValidator(config.upload_limits),
    )
    deletion_job = DeferredDeletionJob(
        registry=registry,
        storage=backend,
        grace_hours=config.cleanup.grace_hours,
        batch_limit=config.cleanup.batch_limit,
    )

    app.state.config = config
    app.state.storage = backend
    app.state.product_repo = product_repo
    app.state.asset_registry = registry
    app.state.ingest_service = ingest_service
    app.state.deletion_job = deletion_job

    app.include_router(ingest_router)
    app.include_router(catalog_router)
    if config.storage.backend == BACKEND_LOCAL:
        public_service = PublicUploadService(
            uploads_root=config.storage.uploads_root,
            frontend_origin=config.frontend_origin,
        )
        app.include_router(build_public_media_router(public_service))
