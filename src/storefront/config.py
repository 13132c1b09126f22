"""Application configuration builder."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from .db.db_init import init_db

BACKEND_LOCAL = "local"
BACKEND_S3 = "s3"
DEFAULT_DATABASE_URL = "sqlite:///storefront.db"


@dataclass(slots=True)
class StorageConfig:
    backend: str
    uploads_root: Path
    public_base_url: str
    s3_bucket: str | None = None
    s3_region: str | None = None
    s3_endpoint_url: str | None = None
    s3_key_prefix: str = "products/"
    s3_public_base_url: str | None = None
    aws_access_key_id: str | None = None
    aws_secret_access_key: str | None = None
    operation_timeout_seconds: float = 30.0
    delete_retry_attempts: int = 3
    delete_retry_backoff_seconds: float = 0.5


@dataclass(slots=True)
class UploadLimits:
    max_upload_bytes: int
    chunk_size_bytes: int


@dataclass(slots=True)
class CleanupSettings:
    grace_hours: float
    batch_limit: int
    interval_seconds: float
    run_timeout_seconds: float


@dataclass(slots=True)
class AppConfig:
    storage: StorageConfig
    upload_limits: UploadLimits
    cleanup: CleanupSettings
    frontend_origin: str
    database_url: str
    engine: Engine
    session_factory: sessionmaker[Session]


def _env_flag(name: str) -> bool:
    return os.getenv(name, "").strip().lower() in {"1", "true", "yes", "on"}


def _first_env(*names: str, default: str | None = None) -> str | None:
    for name in names:
        value = os.getenv(name)
        if value:
            return value
    return default


def _storage_backend() -> str:
    backend = os.getenv("MEDIA_STORAGE_BACKEND", "").strip().lower()
    if not backend:
        return BACKEND_S3 if _env_flag("USE_S3") else BACKEND_LOCAL
    if backend not in {BACKEND_LOCAL, BACKEND_S3}:
        raise ValueError(f"Unsupported MEDIA_STORAGE_BACKEND '{backend}'")
    return backend


def load_storage_config() -> StorageConfig:
    """Read storage backend settings from environment."""
    uploads_root = Path(os.getenv("UPLOADS_ROOT", "uploads")).absolute()
    storage = StorageConfig(
        backend=_storage_backend(),
        uploads_root=uploads_root,
        public_base_url=os.getenv("SERVER_URL", "http://localhost:4000").rstrip("/"),
        s3_bucket=_first_env("S3_BUCKET", "S3_BUCKET_NAME", "AWS_S3_BUCKET"),
        s3_region=_first_env("AWS_REGION", "AWS_DEFAULT_REGION"),
        s3_endpoint_url=os.getenv("S3_ENDPOINT_URL") or None,
        s3_key_prefix=os.getenv("S3_KEY_PREFIX", "products/"),
        s3_public_base_url=os.getenv("MEDIA_PUBLIC_BASE_URL") or None,
        aws_access_key_id=os.getenv("AWS_ACCESS_KEY_ID") or None,
        aws_secret_access_key=os.getenv("AWS_SECRET_ACCESS_KEY") or None,
        operation_timeout_seconds=float(os.getenv("STORAGE_TIMEOUT_SECONDS", 30)),
        delete_retry_attempts=int(os.getenv("STORAGE_DELETE_RETRIES", 3)),
        delete_retry_backoff_seconds=float(os.getenv("STORAGE_DELETE_BACKOFF_SECONDS", 0.5)),
    )
    if storage.backend == BACKEND_S3 and not (storage.s3_bucket and storage.s3_region):
        raise ValueError("S3 storage requires S3_BUCKET and AWS_REGION")
    return storage


def load_cleanup_settings() -> CleanupSettings:
    return CleanupSettings(
        grace_hours=float(os.getenv("DELETE_GRACE_HOURS", 24)),
        batch_limit=int(os.getenv("CLEANUP_BATCH_LIMIT", 100)),
        interval_seconds=float(os.getenv("CLEANUP_INTERVAL_SECONDS", 3600)),
        run_timeout_seconds=float(os.getenv("CLEANUP_RUN_TIMEOUT_SECONDS", 600)),
    )


def load_config() -> AppConfig:
    """Load configuration from environment (SQLite by default)."""
    load_dotenv(".env.local")
    load_dotenv(".env", override=False)

    storage = load_storage_config()
    if storage.backend == BACKEND_LOCAL:
        storage.uploads_root.mkdir(parents=True, exist_ok=True)

    upload_limits = UploadLimits(
        max_upload_bytes=int(os.getenv("MAX_UPLOAD_BYTES", 10 * 1024 * 1024)),
        chunk_size_bytes=int(os.getenv("UPLOAD_CHUNK_SIZE_BYTES", 1 * 1024 * 1024)),
    )

    database_url = os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL)
    connect_args = {"check_same_thread": False} if database_url.startswith("sqlite") else {}
    engine = create_engine(database_url, future=True, connect_args=connect_args)
    session_factory: sessionmaker[Session] = sessionmaker(bind=engine, expire_on_commit=False)

    init_db(engine)

    return AppConfig(
        storage=storage,
        upload_limits=upload_limits,
        cleanup=load_cleanup_settings(),
        frontend_origin=_first_env("FRONTEND_URL", "FRONTEND_ORIGIN", default="https://seemati.in"),
        database_url=database_url,
        engine=engine,
        session_factory=session_factory,
    )
