"""Upload validation errors."""

from ..exceptions import ValidationError


class MissingUploadError(ValidationError):
    """Raised when the multipart field is absent or the file is empty."""


class PayloadTooLargeError(ValidationError):
    """Raised when the uploaded file exceeds the configured maximum."""

    def __init__(self, size_bytes: int, limit_bytes: int) -> None:
        super().__init__(f"upload of {size_bytes} bytes exceeds limit of {limit_bytes} bytes")
        self.size_bytes = size_bytes
        self.limit_bytes = limit_bytes
