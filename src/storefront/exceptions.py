"""Domain level exceptions and helpers for storage and repository layers."""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator

from sqlalchemy import exc as sa_exc

__all__ = [
    "AppError",
    "PathTraversalError",
    "ValidationError",
    "StorageError",
    "WriteFailureError",
    "KeyConflictError",
    "BackendUnavailableError",
    "RepositoryError",
    "NotFoundError",
    "PersistenceFailureError",
    "ConcurrentModificationError",
    "ensure_found",
    "handle_sqlalchemy_errors",
]


class AppError(Exception):
    """Base class for application specific errors."""


class PathTraversalError(AppError):
    """Raised when an untrusted name resolves outside the storage root."""


class ValidationError(AppError):
    """Raised when an inbound upload is missing or violates limits."""


class StorageError(AppError):
    """Base class for storage backend failures."""


class WriteFailureError(StorageError):
    """Raised when a backend could not persist an object."""


class KeyConflictError(WriteFailureError):
    """Raised when an object already exists under the requested key."""


class BackendUnavailableError(StorageError):
    """Raised when a backend delete failed for transport reasons."""


class RepositoryError(AppError):
    """Base class for persistence layer failures."""


class NotFoundError(RepositoryError):
    """Raised when a product or image could not be located."""


class PersistenceFailureError(RepositoryError):
    """Raised for unexpected database errors."""


class ConcurrentModificationError(RepositoryError):
    """Raised when the optimistic version check keeps failing."""


@dataclass(slots=True)
class _EntityContext:
    """Internal helper describing the entity for error messages."""

    entity: str | None = None

    def format(self, message: str) -> str:
        if self.entity:
            return f"{self.entity}: {message}"
        return message


def ensure_found(record: object | None, *, entity: str, identifier: str) -> object:
    """Ensure a record exists, otherwise raise :class:`NotFoundError`."""

    if record is None:
        raise NotFoundError(f"{entity} '{identifier}' not found")
    return record


def _translate_sqlalchemy_error(exc: Exception, *, context: _EntityContext) -> RepositoryError:
    if isinstance(exc, sa_exc.IntegrityError):
        return PersistenceFailureError(context.format("integrity constraint violated"))
    if isinstance(exc, sa_exc.DBAPIError):
        return PersistenceFailureError(context.format("database operation failed"))
    return PersistenceFailureError(context.format(str(exc)))


@contextmanager
def handle_sqlalchemy_errors(*, entity: str | None = None) -> Iterator[None]:
    """Translate SQLAlchemy errors into domain specific ones."""

    context = _EntityContext(entity)
    try:
        yield
    except sa_exc.SQLAlchemyError as exc:
        raise _translate_sqlalchemy_error(exc, context=context) from exc
