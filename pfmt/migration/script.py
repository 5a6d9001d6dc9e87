"""
Script-level migration flow.

The outermost safety net around MigrationManager: before anything else
the persisted document is copied to a backup file, and if the migration
or its post-condition checks fail that file is restored over the store.
This is coarser than the manager's own in-memory backup and survives a
crash of the process.

Steps of run():
1. Write the backup file
2. Check whether the document needs migration (stop if not)
3. Migrate
4. Validate post-conditions: eight collections, _metadata, and the six
   structured groups on a sample project
5. Summarize collection counts
"""

from pathlib import Path
from typing import Optional, Union

import structlog
from pydantic import BaseModel, Field

from pfmt.audit import AuditLogger, create_correlation_id
from pfmt.config import Settings, get_settings
from pfmt.migration.integrity import PROJECT_GROUPS, IntegrityReport, check_integrity
from pfmt.migration.manager import MigrationManager, MigrationReport, MigrationStatus
from pfmt.schema.registry import ENTITY_COLLECTIONS
from pfmt.storage.interface import DocumentStore, MigrationFailedError


logger = structlog.get_logger(__name__)


class ScriptResult(BaseModel):
    migrated: bool
    backup_path: str
    report: Optional[MigrationReport] = None
    counts: dict[str, int] = Field(default_factory=dict)


class MigrationScript:
    """Backup-protected migration of one store, plus its operator commands."""

    def __init__(
        self,
        store: DocumentStore,
        backup_path: Optional[Union[str, Path]] = None,
        settings: Optional[Settings] = None,
        manager: Optional[MigrationManager] = None,
        audit: Optional[AuditLogger] = None,
    ):
        settings = settings or get_settings()
        self._store = store
        self._migration_settings = settings.migration
        self._audit = audit or AuditLogger()
        self._backup_path = Path(backup_path) if backup_path is not None else Path(settings.store.backup_path)
        self._manager = manager or MigrationManager(store, self._migration_settings, self._audit)

    @property
    def backup_path(self) -> Path:
        return self._backup_path

    @property
    def manager(self) -> MigrationManager:
        return self._manager

    def run(self) -> ScriptResult:
        """
        Back up, migrate, validate.

        Raises:
            MigrationFailedError: If migration or validation failed; the
                backup file has been restored over the store
        """
        correlation_id = create_correlation_id()
        backup_path = self.backup()

        try:
            self._store.read(refresh=True)
            if not self._manager.check_migration_needed():
                logger.info("migration_not_needed", backup=str(backup_path))
                return ScriptResult(migrated=False, backup_path=str(backup_path), counts=self.summary())

            report = self._manager.migrate_to_relational_model()

            if self._migration_settings.validate_after_migration:
                self.validate_post_conditions()

            result = ScriptResult(
                migrated=True,
                backup_path=str(backup_path),
                report=report,
                counts=self.summary(),
            )
        except Exception as exc:
            logger.error("migration_script_failed", error=str(exc), backup=str(backup_path))
            self._store.restore_from(backup_path)
            self._audit.log_backup_restored(str(backup_path), correlation_id)
            raise

        logger.info("migration_script_completed", counts=result.counts)
        return result

    def dry_run(self) -> MigrationReport:
        """What run() would create, without writing anything."""
        self._store.read(refresh=True)
        return self._manager.preview()

    def status(self) -> MigrationStatus:
        self._store.read(refresh=True)
        return self._manager.status()

    def backup(self) -> Path:
        path = self._store.backup_to(self._backup_path)
        self._audit.log_backup_created(str(path))
        return path

    def rollback(self) -> dict[str, int]:
        """
        Restore the backup file over the store.

        Raises:
            NotFoundError: If there is no backup to roll back to
        """
        self._store.restore_from(self._backup_path)
        self._audit.log_backup_restored(str(self._backup_path))
        return self.summary()

    def validate(self) -> IntegrityReport:
        """Integrity report of the persisted document."""
        report = check_integrity(self._store.read(refresh=True))
        self._audit.log_integrity_issues(report.issues)
        return report

    def validate_post_conditions(self) -> None:
        """
        Raises:
            MigrationFailedError: If the persisted document lacks a
                collection, its metadata, or a structured project group
        """
        document = self._store.read(refresh=True)

        missing = [name for name in ENTITY_COLLECTIONS if not isinstance(document.get(name), list)]
        if missing:
            raise MigrationFailedError(f"Missing entities after migration: {', '.join(missing)}")

        if not isinstance(document.get("_metadata"), dict):
            raise MigrationFailedError("Missing metadata after migration")

        projects = document.get("projects") or []
        if projects:
            sample = projects[0]
            missing_groups = [group for group in PROJECT_GROUPS if not sample.get(group)]
            if missing_groups:
                raise MigrationFailedError(
                    f"Projects missing required fields: {', '.join(missing_groups)}"
                )

    def summary(self) -> dict[str, int]:
        with self._store.lock:
            document = self._store.document
            return {
                name: len(document[name]) if isinstance(document.get(name), list) else 0
                for name in ENTITY_COLLECTIONS
            }
