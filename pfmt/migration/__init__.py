"""Legacy-to-normalized migration, integrity checks and the operator script."""

from pfmt.migration.integrity import PROJECT_GROUPS, IntegrityReport, check_integrity
from pfmt.migration.manager import (
    LegacyConverter,
    MigrationManager,
    MigrationReport,
    MigrationState,
    MigrationStatus,
    SkippedRow,
    describe_document,
    has_legacy_shape,
    has_relational_shape,
    needs_migration,
)
from pfmt.migration.script import MigrationScript, ScriptResult

__all__ = [
    "IntegrityReport",
    "LegacyConverter",
    "MigrationManager",
    "MigrationReport",
    "MigrationScript",
    "MigrationState",
    "MigrationStatus",
    "PROJECT_GROUPS",
    "ScriptResult",
    "SkippedRow",
    "check_integrity",
    "describe_document",
    "has_legacy_shape",
    "has_relational_shape",
    "needs_migration",
]
