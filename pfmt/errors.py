"""Data-layer exceptions, importable without pulling in a store."""

from pfmt.storage.interface import (
    AccessDeniedError,
    DuplicateError,
    MigrationFailedError,
    NotFoundError,
    StorageError,
    StoreIOError,
    UserNotFoundError,
    ValidationFailedError,
)

__all__ = [
    "AccessDeniedError",
    "DuplicateError",
    "MigrationFailedError",
    "NotFoundError",
    "StorageError",
    "StoreIOError",
    "UserNotFoundError",
    "ValidationFailedError",
]
