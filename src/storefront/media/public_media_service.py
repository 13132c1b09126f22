"""Serve locally stored uploads to browsers."""

from __future__ import annotations

import logging
import mimetypes
from dataclasses import dataclass
from pathlib import Path

from fastapi import status
from fastapi.responses import FileResponse, JSONResponse

from ..exceptions import PathTraversalError
from .safe_paths import resolve_safe_path

logger = logging.getLogger(__name__)

CACHE_CONTROL = "public, max-age=86400"


@dataclass(slots=True)
class PublicUploadService:
    """Stream files from the uploads root with cross-origin image headers."""

    uploads_root: Path
    frontend_origin: str

    def open_upload(self, name: str) -> FileResponse | JSONResponse:
        """Return the file for ``name`` or a 4xx that never echoes paths."""
        try:
            path = resolve_safe_path(self.uploads_root, name)
        except PathTraversalError:
            logger.warning("media.public.rejected_name", extra={"name_length": len(name or "")})
            return JSONResponse(
                status_code=status.HTTP_400_BAD_REQUEST, content={"error": "invalid file path"}
            )

        if not path.is_file():
            return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"error": "not found"})

        return FileResponse(
            path=path,
            media_type=_guess_mime(path),
            headers={
                "Access-Control-Allow-Origin": self.frontend_origin,
                "Cross-Origin-Resource-Policy": "cross-origin",
                "X-Content-Type-Options": "nosniff",
                "Cache-Control": CACHE_CONTROL,
            },
        )


def _guess_mime(path: Path) -> str:
    guessed, _ = mimetypes.guess_type(path.name)
    return guessed or "application/octet-stream"
