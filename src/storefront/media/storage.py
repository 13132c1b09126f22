"""Storage backends for product images."""

from __future__ import annotations

import asyncio
import logging
import os
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, NoReturn
from urllib.parse import quote

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from ..config import BACKEND_LOCAL, BACKEND_S3, StorageConfig
from ..exceptions import BackendUnavailableError, KeyConflictError, WriteFailureError
from .media_models import DeleteOutcome, StoredObject
from .safe_paths import resolve_safe_path

logger = logging.getLogger(__name__)

_NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}
_CONFLICT_CODES = {"PreconditionFailed", "ConditionalRequestConflict"}
_RETRYABLE_CODES = {"SlowDown", "Throttling", "ThrottlingException", "RequestTimeout", "InternalError"}


class MediaStorage:
    """Backend-neutral API used by ingestion and the deletion job."""

    name = "abstract"

    async def put(
        self, key: str, data: bytes, *, content_type: str | None = None
    ) -> StoredObject:
        """Persist ``data`` under ``key`` and return its descriptor."""

        raise NotImplementedError

    async def delete(self, key: str) -> DeleteOutcome:
        """Remove the object; a missing object is reported, not raised."""

        raise NotImplementedError

    async def exists(self, key: str) -> bool:
        raise NotImplementedError

    def public_url(self, key: str) -> str:
        """Return a publicly retrievable URL for ``key``."""

        raise NotImplementedError


@dataclass(slots=True)
class LocalDiskStorage(MediaStorage):
    """Store images as files below the uploads root."""

    root: Path
    public_base_url: str
    operation_timeout_seconds: float = 30.0
    log: logging.Logger = field(default_factory=lambda: logger)

    name = BACKEND_LOCAL

    async def put(
        self, key: str, data: bytes, *, content_type: str | None = None
    ) -> StoredObject:
        path = resolve_safe_path(self.root, key)
        try:
            await asyncio.wait_for(
                asyncio.to_thread(self._write_atomic, path, data),
                timeout=self.operation_timeout_seconds,
            )
        except KeyConflictError:
            self.log.warning("media.storage.local.key_conflict", extra={"key": key})
            raise
        except (OSError, asyncio.TimeoutError) as exc:
            self.log.error(
                "media.storage.local.write_failed",
                extra={"key": key, "error": repr(exc)},
            )
            raise WriteFailureError(f"could not store '{key}'") from exc
        self.log.info(
            "media.storage.local.stored",
            extra={"key": key, "size_bytes": len(data)},
        )
        return StoredObject(
            key=key,
            url=self.public_url(key),
            size_bytes=len(data),
            content_type=content_type,
        )

    async def delete(self, key: str) -> DeleteOutcome:
        path = resolve_safe_path(self.root, key)
        try:
            outcome = await asyncio.wait_for(
                asyncio.to_thread(self._unlink, path),
                timeout=self.operation_timeout_seconds,
            )
        except (OSError, asyncio.TimeoutError) as exc:
            raise BackendUnavailableError(f"could not delete '{key}': {exc!r}") from exc
        self.log.info(
            "media.storage.local.deleted",
            extra={"key": key, "outcome": outcome.value},
        )
        return outcome

    async def exists(self, key: str) -> bool:
        return resolve_safe_path(self.root, key).is_file()

    def public_url(self, key: str) -> str:
        return f"{self.public_base_url.rstrip('/')}/uploads/{quote(key)}"

    @staticmethod
    def _write_atomic(path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        partial = path.with_name(f".{path.name}.{uuid.uuid4().hex}.part")
        try:
            partial.write_bytes(data)
            # link fails when the key is taken, so a concurrent writer never replaces it
            try:
                os.link(partial, path)
            except FileExistsError as exc:
                raise KeyConflictError(f"'{path.name}' already exists") from exc
        finally:
            partial.unlink(missing_ok=True)

    @staticmethod
    def _unlink(path: Path) -> DeleteOutcome:
        try:
            path.unlink()
        except FileNotFoundError:
            return DeleteOutcome.ALREADY_ABSENT
        return DeleteOutcome.DELETED


@dataclass(slots=True)
class ObjectStoreStorage(MediaStorage):
    """Store images in an S3-compatible bucket via boto3."""

    bucket: str
    region: str
    client: Any
    key_prefix: str = "products/"
    public_base_url: str | None = None
    operation_timeout_seconds: float = 30.0
    delete_retry_attempts: int = 3
    delete_retry_backoff_seconds: float = 0.5
    log: logging.Logger = field(default_factory=lambda: logger)

    name = BACKEND_S3

    def object_key(self, key: str) -> str:
        if not key:
            raise ValueError("object key must not be empty")
        if self.key_prefix and not key.startswith(self.key_prefix):
            return f"{self.key_prefix}{key}"
        return key

    async def put(
        self, key: str, data: bytes, *, content_type: str | None = None
    ) -> StoredObject:
        object_key = self.object_key(key)
        params: dict[str, Any] = {
            "Bucket": self.bucket,
            "Key": object_key,
            "Body": data,
            "IfNoneMatch": "*",
        }
        # no ACL: buckets with "bucket owner enforced" reject it
        if content_type:
            params["ContentType"] = content_type
        try:
            await self._call(self.client.put_object, **params)
        except ClientError as exc:
            if not _is_conflict(exc):
                self._write_failed(object_key, exc)
            self.log.warning(
                "media.storage.s3.key_conflict",
                extra={"bucket": self.bucket, "key": object_key},
            )
            raise KeyConflictError(f"'{object_key}' already exists") from exc
        except (BotoCoreError, asyncio.TimeoutError) as exc:
            self._write_failed(object_key, exc)
        self.log.info(
            "media.storage.s3.stored",
            extra={"bucket": self.bucket, "key": object_key, "size_bytes": len(data)},
        )
        return StoredObject(
            key=object_key,
            url=self.public_url(object_key),
            size_bytes=len(data),
            content_type=content_type,
        )

    def _write_failed(self, object_key: str, exc: Exception) -> NoReturn:
        self.log.error(
            "media.storage.s3.write_failed",
            extra={"bucket": self.bucket, "key": object_key, "error": repr(exc)},
        )
        raise WriteFailureError(f"could not store '{object_key}'") from exc

    async def delete(self, key: str) -> DeleteOutcome:
        key = self.object_key(key)
        attempts = max(1, self.delete_retry_attempts)
        for attempt in range(1, attempts + 1):
            try:
                await self._call(self.client.delete_object, Bucket=self.bucket, Key=key)
            except ClientError as exc:
                code = _error_code(exc)
                if code in _NOT_FOUND_CODES:
                    return DeleteOutcome.ALREADY_ABSENT
                if not _is_retryable(exc) or attempt >= attempts:
                    raise BackendUnavailableError(
                        f"delete of '{key}' failed ({code})"
                    ) from exc
            except (BotoCoreError, asyncio.TimeoutError) as exc:
                if attempt >= attempts:
                    raise BackendUnavailableError(
                        f"delete of '{key}' failed: {exc!r}"
                    ) from exc
            else:
                self.log.info(
                    "media.storage.s3.deleted",
                    extra={"bucket": self.bucket, "key": key, "attempt": attempt},
                )
                return DeleteOutcome.DELETED
            self.log.warning(
                "media.storage.s3.delete_retry",
                extra={"bucket": self.bucket, "key": key, "attempt": attempt},
            )
            await asyncio.sleep(self.delete_retry_backoff_seconds)
        raise BackendUnavailableError(f"delete of '{key}' failed after retries")

    async def exists(self, key: str) -> bool:
        try:
            await self._call(
                self.client.head_object, Bucket=self.bucket, Key=self.object_key(key)
            )
        except ClientError as exc:
            code = _error_code(exc)
            if code in _NOT_FOUND_CODES:
                return False
            raise BackendUnavailableError(f"lookup of '{key}' failed ({code})") from exc
        except (BotoCoreError, asyncio.TimeoutError) as exc:
            raise BackendUnavailableError(f"lookup of '{key}' failed: {exc!r}") from exc
        return True

    def public_url(self, key: str) -> str:
        quoted = quote(key, safe="/")
        if self.public_base_url:
            return f"{self.public_base_url.rstrip('/')}/{quoted}"
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{quoted}"

    async def _call(self, func: Callable[..., Any], **kwargs: Any) -> Any:
        return await asyncio.wait_for(
            asyncio.to_thread(func, **kwargs),
            timeout=self.operation_timeout_seconds,
        )


def _error_code(exc: ClientError) -> str:
    error = exc.response.get("Error") or {}
    return str(error.get("Code") or exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode", ""))


def _is_conflict(exc: ClientError) -> bool:
    if _error_code(exc) in _CONFLICT_CODES:
        return True
    status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode") or 0
    return int(status) in (409, 412)


def _is_retryable(exc: ClientError) -> bool:
    if _error_code(exc) in _RETRYABLE_CODES:
        return True
    status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode") or 0
    return int(status) >= 500


def build_s3_client(config: StorageConfig) -> Any:
    """Create a boto3 S3 client with bounded connect/read timeouts."""
    timeout = max(1.0, config.operation_timeout_seconds)
    return boto3.client(
        "s3",
        region_name=config.s3_region,
        endpoint_url=config.s3_endpoint_url,
        aws_access_key_id=config.aws_access_key_id,
        aws_secret_access_key=config.aws_secret_access_key,
        config=BotoConfig(
            connect_timeout=timeout,
            read_timeout=timeout,
            retries={"max_attempts": 1, "mode": "standard"},
        ),
    )


def build_storage(config: StorageConfig, *, s3_client: Any | None = None) -> MediaStorage:
    """Select the storage backend once, at startup."""
    if config.backend == BACKEND_S3:
        if not config.s3_bucket or not config.s3_region:
            raise ValueError("S3 storage requires a bucket and a region")
        return ObjectStoreStorage(
            bucket=config.s3_bucket,
            region=config.s3_region,
            client=s3_client or build_s3_client(config),
            key_prefix=config.s3_key_prefix,
            public_base_url=config.s3_public_base_url,
            operation_timeout_seconds=config.operation_timeout_seconds,
            delete_retry_attempts=config.delete_retry_attempts,
            delete_retry_backoff_seconds=config.delete_retry_backoff_seconds,
        )
    if config.backend == BACKEND_LOCAL:
        return LocalDiskStorage(
            root=config.uploads_root,
            public_base_url=config.public_base_url,
            operation_timeout_seconds=config.operation_timeout_seconds,
        )
    raise ValueError(f"Unsupported storage backend '{config.backend}'")
