"""Upload validation utilities."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from fastapi import UploadFile

from ..config import UploadLimits
from .ingest_errors import MissingUploadError, PayloadTooLargeError
from .ingest_models import ValidatedUpload

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class UploadValidator:
    """Read an upload in chunks, enforcing the configured size cap.

    Content type and magic bytes are deliberately not inspected.
    """

    limits: UploadLimits

    async def validate(self, upload: UploadFile | None) -> ValidatedUpload:
        if upload is None:
            raise MissingUploadError("no file uploaded (field must be \"image\")")

        cap = self.limits.max_upload_bytes
        chunks: list[bytes] = []
        size = 0
        try:
            while True:
                chunk = await upload.read(self.limits.chunk_size_bytes)
                if not chunk:
                    break
                size += len(chunk)
                if size > cap:
                    logger.warning(
                        "ingest.upload.payload_too_large",
                        extra={"size_bytes": size, "limit_bytes": cap},
                    )
                    raise PayloadTooLargeError(size, cap)
                chunks.append(chunk)
        finally:
            await upload.seek(0)

        if size == 0:
            raise MissingUploadError("uploaded file is empty")

        result = ValidatedUpload(
            data=b"".join(chunks),
            size_bytes=size,
            filename=upload.filename or "upload",
            content_type=upload.content_type,
        )
        logger.info(
            "ingest.upload.validated",
            extra={"filename": result.filename, "size_bytes": result.size_bytes},
        )
        return result
