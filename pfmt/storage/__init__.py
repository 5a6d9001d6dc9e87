"""Document store implementations and the data-layer error taxonomy."""

from pfmt.storage.interface import (
    AccessDeniedError,
    DocumentStore,
    DuplicateError,
    MigrationFailedError,
    NotFoundError,
    StorageError,
    StoreIOError,
    UserNotFoundError,
    ValidationFailedError,
)
from pfmt.storage.json_file import JsonFileDocumentStore, read_json_file, write_json_file
from pfmt.storage.memory import InMemoryDocumentStore

__all__ = [
    "AccessDeniedError",
    "DocumentStore",
    "DuplicateError",
    "InMemoryDocumentStore",
    "JsonFileDocumentStore",
    "MigrationFailedError",
    "NotFoundError",
    "StorageError",
    "StoreIOError",
    "UserNotFoundError",
    "ValidationFailedError",
    "read_json_file",
    "write_json_file",
]
