"""
In-memory document store.

Same contract as the JSON file store, with the "persisted" document and
its backups kept as deep copies in process memory. Used by tests and by
migration dry runs.
"""

import copy
from pathlib import Path
from typing import Any, Optional

from pfmt.config import StoreSettings
from pfmt.storage.interface import DocumentStore, NotFoundError


class InMemoryDocumentStore(DocumentStore):

    def __init__(
        self,
        initial: Optional[dict[str, Any]] = None,
        settings: Optional[StoreSettings] = None,
    ):
        super().__init__(settings)
        self._persisted: dict[str, Any] = copy.deepcopy(initial) if initial else {}
        self._backups: dict[str, dict[str, Any]] = {}
        self.flush_count = 0

    @property
    def persisted(self) -> dict[str, Any]:
        """Deep copy of what was last flushed."""
        return copy.deepcopy(self._persisted)

    def _load(self) -> dict[str, Any]:
        return copy.deepcopy(self._persisted)

    def _flush(self, document: dict[str, Any]) -> None:
        self._persisted = copy.deepcopy(document)
        self.flush_count += 1

    def _write_backup(self, path: Path, document: dict[str, Any]) -> None:
        self._backups[str(path)] = copy.deepcopy(document)

    def _read_backup(self, path: Path) -> dict[str, Any]:
        if str(path) not in self._backups:
            raise NotFoundError("backup", str(path), f"Backup not found: {path}")
        return copy.deepcopy(self._backups[str(path)])

    def has_backup(self, path: Path) -> bool:
        return str(path) in self._backups
