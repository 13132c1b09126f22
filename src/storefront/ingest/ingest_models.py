"""Data structures for upload ingestion."""

from dataclasses import dataclass
from enum import Enum
from typing import Any

from ..media.media_models import ImageAsset


class NamingStrategy(str, Enum):
    """How storage keys are derived from the uploaded file name."""

    ORIGINAL = "original"  # <ts>-<sanitized-name>
    RANDOM = "random"  # <ts>-<random-suffix><ext>


@dataclass(slots=True)
class ValidatedUpload:
    """Upload bytes that passed size validation."""

    data: bytes
    size_bytes: int
    filename: str
    content_type: str | None


@dataclass(slots=True)
class IngestResult:
    asset: ImageAsset
    original_name: str
    size_bytes: int

    def to_payload(self) -> dict[str, Any]:
        return {
            "key": self.asset.key,
            "originalName": self.original_name,
            "size": self.size_bytes,
            "url": self.asset.url,
        }
