"""
JSON File Storage Implementation

DESIGN DECISION: A single JSON file is the system of record because:
1. The whole store fits comfortably in memory
2. Operators can inspect and back it up with ordinary tools
3. No database setup required

TRADEOFFS:
- One process owns the file; there is no cross-process locking
- Every flush rewrites the whole document

Writes go to a temp file in the same directory and are moved into place
with os.replace, so a crash mid-write never leaves a truncated document.
Transient OS errors are retried with tenacity before surfacing.
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Callable, Optional, TypeVar

import structlog
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from pfmt.config import StoreSettings
from pfmt.storage.interface import DocumentStore, NotFoundError, StoreIOError


logger = structlog.get_logger(__name__)

T = TypeVar("T")


def _with_retry(settings: StoreSettings, func: Callable[[], T]) -> T:
    """Run func, retrying OSError per the store's retry policy."""
    retrying = retry(
        stop=stop_after_attempt(settings.io_retry_attempts),
        wait=wait_exponential(multiplier=0.05, max=settings.io_retry_max_wait),
        retry=retry_if_exception_type(OSError),
        reraise=True,
    )
    return retrying(func)()


def read_json_file(path: Path, settings: StoreSettings) -> Optional[dict[str, Any]]:
    """
    Read a JSON document from disk.

    Returns:
        The parsed document, or None if the file does not exist

    Raises:
        StoreIOError: If the file cannot be read or is not a JSON object
    """
    def _read() -> Optional[str]:
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    try:
        raw = _with_retry(settings, _read)
    except OSError as e:
        raise StoreIOError(f"Failed to read {path}: {e}") from e

    if raw is None:
        return None
    if not raw.strip():
        return {}

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise StoreIOError(f"{path} is not valid JSON: {e}") from e

    if not isinstance(data, dict):
        raise StoreIOError(f"{path} does not hold a JSON object")
    return data


def write_json_file(path: Path, document: dict[str, Any], settings: StoreSettings) -> None:
    """
    Atomically write a JSON document to disk.

    Raises:
        StoreIOError: If the document cannot be serialized or written
    """
    try:
        payload = json.dumps(document, indent=settings.indent or None, ensure_ascii=False)
    except (TypeError, ValueError) as e:
        raise StoreIOError(f"Document is not JSON serializable: {e}") from e

    def _write() -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(payload)
            os.replace(tmp_name, path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

    try:
        _with_retry(settings, _write)
    except OSError as e:
        raise StoreIOError(f"Failed to write {path}: {e}") from e


class JsonFileDocumentStore(DocumentStore):
    """
    Document store backed by one JSON file.

    A missing file loads as an empty document.
    """

    def __init__(
        self,
        path: Optional[Path] = None,
        settings: Optional[StoreSettings] = None,
    ):
        super().__init__(settings)
        self._path = Path(path) if path is not None else Path(self._settings.db_path)

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> dict[str, Any]:
        document = read_json_file(self._path, self._settings)
        if document is None:
            logger.debug("document_missing", path=str(self._path))
            return {}
        return document

    def _flush(self, document: dict[str, Any]) -> None:
        write_json_file(self._path, document, self._settings)
        logger.debug("document_flushed", path=str(self._path))

    def _write_backup(self, path: Path, document: dict[str, Any]) -> None:
        write_json_file(path, document, self._settings)

    def _read_backup(self, path: Path) -> dict[str, Any]:
        document = read_json_file(path, self._settings)
        if document is None:
            raise NotFoundError("backup", str(path), f"Backup file not found: {path}")
        return document
