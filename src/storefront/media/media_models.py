"""Media data models."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Any
from urllib.parse import unquote, urlparse

from ..utils.clock import to_naive_utc

logger = logging.getLogger(__name__)


class AssetState(str, Enum):
    """Lifecycle of a stored product image."""

    ACTIVE = "active"
    PENDING_DELETION = "pending_deletion"
    PURGED = "purged"


class DeleteOutcome(str, Enum):
    """Result of a backend delete call; both values count as success."""

    DELETED = "deleted"
    ALREADY_ABSENT = "already_absent"


@dataclass(slots=True, frozen=True)
class StoredObject:
    """Descriptor returned by a storage backend after ``put``."""

    key: str
    url: str
    size_bytes: int
    content_type: str | None = None


@dataclass(slots=True, frozen=True)
class ImageAsset:
    """One stored image belonging to exactly one product."""

    key: str
    url: str
    state: AssetState = AssetState.ACTIVE
    deleted_since: datetime | None = None
    original_name: str | None = None
    size_bytes: int | None = None
    content_type: str | None = None

    def __post_init__(self) -> None:
        if self.state is AssetState.ACTIVE and self.deleted_since is not None:
            raise ValueError("active image cannot carry a deletion timestamp")
        if self.state is not AssetState.ACTIVE and self.deleted_since is None:
            raise ValueError(f"{self.state} image requires a deletion timestamp")

    @property
    def deleted(self) -> bool:
        return self.state is not AssetState.ACTIVE

    @property
    def is_active(self) -> bool:
        return self.state is AssetState.ACTIVE

    @property
    def ref(self) -> str:
        """Identity within the owning product (legacy entries may lack a key)."""
        return self.key or self.url

    def mark_deleted(self, now: datetime) -> ImageAsset:
        """Return the soft-deleted version; already deleted images are unchanged."""
        if self.state is not AssetState.ACTIVE:
            return self
        return replace(self, state=AssetState.PENDING_DELETION, deleted_since=to_naive_utc(now))

    def mark_purged(self) -> ImageAsset:
        if self.state is not AssetState.PENDING_DELETION:
            raise ValueError(f"cannot purge image '{self.key}' in state {self.state}")
        return replace(self, state=AssetState.PURGED)

    def is_purge_due(self, cutoff: datetime) -> bool:
        return (
            self.state is AssetState.PENDING_DELETION
            and self.deleted_since is not None
            and self.deleted_since <= cutoff
        )

    def storage_key(self) -> str | None:
        """Key used to address the backend object, falling back to the URL tail."""
        if self.key:
            return self.key
        return key_from_url(self.url)

    def to_document(self) -> dict[str, Any]:
        document: dict[str, Any] = {
            "key": self.key,
            "url": self.url,
            "deleted": self.deleted,
            "deletedAt": self.deleted_since.isoformat() if self.deleted_since else None,
        }
        if self.original_name is not None:
            document["originalName"] = self.original_name
        if self.size_bytes is not None:
            document["size"] = self.size_bytes
        if self.content_type is not None:
            document["contentType"] = self.content_type
        return document

    @classmethod
    def from_document(
        cls, document: dict[str, Any] | str, *, fallback_deleted_at: datetime
    ) -> ImageAsset:
        """Load a persisted descriptor, normalising legacy and inconsistent shapes."""
        if isinstance(document, str):
            return cls(key=key_from_url(document) or "", url=document)
        if not isinstance(document, dict):
            raise ValueError(f"unsupported image descriptor of type {type(document).__name__}")

        key = str(document.get("key") or document.get("filename") or "")
        url = str(document.get("url") or "")
        deleted = bool(document.get("deleted"))
        deleted_at = _parse_timestamp(document.get("deletedAt"))

        if deleted and deleted_at is None:
            logger.warning(
                "catalog.image.inconsistent",
                extra={"key": key, "reason": "deleted_without_timestamp"},
            )
            deleted_at = fallback_deleted_at
        elif not deleted and deleted_at is not None:
            logger.warning(
                "catalog.image.inconsistent",
                extra={"key": key, "reason": "timestamp_without_deleted"},
            )
            deleted_at = None

        return cls(
            key=key,
            url=url,
            state=AssetState.PENDING_DELETION if deleted else AssetState.ACTIVE,
            deleted_since=deleted_at,
            original_name=_optional_text(document.get("originalName")),
            size_bytes=_parse_size(document.get("size"), key=key),
            content_type=_optional_text(document.get("contentType")),
        )


def key_from_url(url: str | None) -> str | None:
    """Return the final path segment of ``url`` (``None`` when empty)."""
    if not url:
        return None
    path = urlparse(url).path
    segment = unquote(path.rstrip("/").rsplit("/", 1)[-1])
    return segment or None


def _parse_timestamp(value: Any) -> datetime | None:
    if not value:
        return None
    if isinstance(value, datetime):
        return to_naive_utc(value)
    text = str(value)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return to_naive_utc(datetime.fromisoformat(text))
    except ValueError:
        return None


def _parse_size(value: Any, *, key: str) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        size = int(value)
    except (TypeError, ValueError):
        logger.warning(
            "catalog.image.inconsistent",
            extra={"key": key, "reason": "invalid_size"},
        )
        return None
    return size if size >= 0 else None


def _optional_text(value: Any) -> str | None:
    return value if isinstance(value, str) else None
