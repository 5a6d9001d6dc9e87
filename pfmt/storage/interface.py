"""
Abstract Document Store Interface

DESIGN DECISION: The whole normalized store is one JSON document held in
memory and flushed to a single backing location. Concrete stores only
decide WHERE the document lives (a file, a dict); locking, deferred
writes and snapshot/restore are implemented once here.

The interface is intentionally simple - we're not building a database.
Just the operations the repositories and the migration manager need:
1. read() / write() around every mutation
2. A re-entrant critical section that serializes read-modify-write
3. Whole-document snapshot, replace and file backups
"""

import copy
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Iterator, Optional, Union

import structlog

from pfmt.config import StoreSettings, get_settings


logger = structlog.get_logger(__name__)


class StorageError(Exception):
    """Base exception for data-layer operations."""
    pass


class StoreIOError(StorageError):
    """The backing document could not be read or written."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""

    def __init__(self, entity: str, entity_id: Any, message: Optional[str] = None):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(message or f"{entity} with id {entity_id!r} not found")


class UserNotFoundError(NotFoundError):
    """A user referenced by an access check does not exist."""

    def __init__(self, user_id: Any):
        super().__init__("users", user_id, f"User {user_id!r} not found")


class ValidationFailedError(StorageError):
    """A record failed validation on create or update."""

    def __init__(self, message: str, issues: Optional[list[str]] = None):
        self.issues = issues or [message]
        super().__init__(message)


class DuplicateError(ValidationFailedError):
    """Attempted to insert a duplicate of a unique value."""
    pass


class AccessDeniedError(StorageError):
    """Access control refused a view/edit/approve/grant request."""

    def __init__(
        self,
        user_id: Any,
        project_id: Optional[str],
        permission: str,
        message: Optional[str] = None,
    ):
        self.user_id = user_id
        self.project_id = project_id
        self.permission = permission
        super().__init__(
            message or f"User {user_id} may not '{permission}' project {project_id}"
        )


class MigrationFailedError(StorageError):
    """Migration failed; the document was restored before this was raised."""
    pass


class DocumentStore(ABC):
    """
    Abstract single-document store.

    Subclasses implement _load() and _flush(); everything else, including
    the transaction semantics, is shared.
    """

    def __init__(self, settings: Optional[StoreSettings] = None):
        self._settings = settings or get_settings().store
        self._document: Optional[dict[str, Any]] = None
        self._lock = threading.RLock()
        self._depth = 0
        self._dirty = False
        self._on_commit: list[Callable[[], Any]] = []

    @property
    def settings(self) -> StoreSettings:
        return self._settings

    @property
    def lock(self) -> threading.RLock:
        """The store's critical section. Re-entrant."""
        return self._lock

    @property
    def in_transaction(self) -> bool:
        return self._depth > 0

    @abstractmethod
    def _load(self) -> dict[str, Any]:
        """
        Load the persisted document.

        Returns:
            The persisted document, or {} if nothing was persisted yet

        Raises:
            StoreIOError: If the backing location cannot be read
        """
        pass

    @abstractmethod
    def _flush(self, document: dict[str, Any]) -> None:
        """
        Persist the given document, replacing what was there.

        Raises:
            StoreIOError: If the backing location cannot be written
        """
        pass

    @abstractmethod
    def _write_backup(self, path: Path, document: dict[str, Any]) -> None:
        pass

    @abstractmethod
    def _read_backup(self, path: Path) -> dict[str, Any]:
        """
        Raises:
            NotFoundError: If there is no backup at path
        """
        pass

    # -------------------------------------------------------------------------
    # Document access
    # -------------------------------------------------------------------------

    def read(self, refresh: bool = False) -> dict[str, Any]:
        """
        Load the persisted document into memory.

        Loads only if nothing is loaded yet or refresh is requested. A
        refresh inside a transaction is ignored, the staged document wins.
        """
        with self._lock:
            if self._document is None or (refresh and self._depth == 0):
                self._document = self._load()
            return self._document

    def write(self) -> None:
        """
        Persist the in-memory document.

        Inside a transaction the write is deferred to the outermost exit.
        """
        with self._lock:
            if self._depth > 0:
                self._dirty = True
                return
            self._flush(self.read())

    @property
    def document(self) -> dict[str, Any]:
        return self.read()

    def rows(self, name: str) -> list[dict[str, Any]]:
        """Rows of one collection, or [] if the document lacks it. Never adds the key."""
        with self._lock:
            rows = self.read().get(name)
            return rows if isinstance(rows, list) else []

    def collection(self, name: str) -> list[dict[str, Any]]:
        """Rows of one collection for writing; created empty if the document lacks it."""
        with self._lock:
            return self.read().setdefault(name, [])

    def replace(self, document: dict[str, Any]) -> None:
        """Swap in a whole new in-memory document. Call write() to persist."""
        with self._lock:
            self._document = document
            if self._depth > 0:
                self._dirty = True

    def snapshot(self) -> dict[str, Any]:
        """Deep copy of the in-memory document."""
        with self._lock:
            return copy.deepcopy(self.read())

    @contextmanager
    def transaction(self) -> Iterator[dict[str, Any]]:
        """
        Serialize a read-modify-write against the document.

        The outermost entry snapshots the document; writes made inside are
        deferred and flushed once on clean exit. On any exception the
        snapshot is put back in memory and nothing is persisted.
        Nested entries share the outermost transaction.
        Callbacks registered through after_commit() run once the
        outermost entry has persisted, and are dropped if it fails.
        """
        with self._lock:
            outermost = self._depth == 0
            backup = self.snapshot() if outermost else None
            if outermost:
                self._dirty = False
                self._on_commit = []
            self._depth += 1
            try:
                yield self.read()
            except BaseException:
                self._depth -= 1
                if outermost:
                    self._document = backup
                    self._dirty = False
                    self._on_commit = []
                raise
            self._depth -= 1
            if not outermost:
                return
            callbacks, self._on_commit = self._on_commit, []
            if self._dirty:
                self._dirty = False
                try:
                    self._flush(self.read())
                except StoreIOError:
                    self._document = backup
                    raise
            for callback in callbacks:
                callback()

    def after_commit(self, callback: Callable[[], Any]) -> None:
        """Run callback when the enclosing transaction persists; at once outside one."""
        with self._lock:
            if self._depth > 0:
                self._on_commit.append(callback)
                return
        callback()

    # -------------------------------------------------------------------------
    # Backups
    # -------------------------------------------------------------------------

    def backup_to(self, path: Union[str, Path]) -> Path:
        """
        Copy the persisted document to a backup file.

        Returns:
            The backup path
        """
        path = Path(path)
        with self._lock:
            self._write_backup(path, self._load())
        logger.info("backup_written", path=str(path))
        return path

    def restore_from(self, path: Union[str, Path]) -> dict[str, Any]:
        """
        Replace the persisted and in-memory document with a backup file.

        Raises:
            NotFoundError: If the backup file does not exist
            StoreIOError: If it cannot be read or the store cannot be written
        """
        path = Path(path)
        with self._lock:
            document = self._read_backup(path)
            self._flush(document)
            self._document = document
        logger.info("backup_restored", path=str(path))
        return document
