"""
PFMT store migration command line.

Operator entry point around MigrationScript. Every command works on the
JSON document at --db (default: PFMT_STORE_DB_PATH) and the backup at
--backup (default: PFMT_STORE_BACKUP_PATH).

Usage:
    python -m app.migrate run        # backup, migrate, validate
    python -m app.migrate dry-run    # what run would create, nothing written
    python -m app.migrate status     # legacy / relational / mixed / empty
    python -m app.migrate backup     # copy the store to the backup file
    python -m app.migrate rollback   # restore the backup file over the store
    python -m app.migrate validate   # integrity report of the store

Exit status is 0 on success, 1 on any failure or integrity issue.
"""

import argparse
import logging
import sys
from typing import Optional

from pfmt.audit import configure_logging
from pfmt.config import get_settings
from pfmt.errors import StorageError
from pfmt.migration import MigrationScript
from pfmt.storage import JsonFileDocumentStore


logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Migrate the PFMT store to the relational document shape")
    parser.add_argument("--db", help="Path to the JSON store")
    parser.add_argument("--backup", help="Path of the pre-migration backup")

    commands = parser.add_subparsers(dest="command", required=True)
    commands.add_parser("run", help="Back up, migrate and validate")
    commands.add_parser("dry-run", help="Preview the migration without writing")
    commands.add_parser("status", help="Show the shape of the stored document")
    commands.add_parser("backup", help="Copy the store to the backup file")
    commands.add_parser("rollback", help="Restore the backup file over the store")
    commands.add_parser("validate", help="Check referential integrity")
    return parser


def _print_counts(counts: dict[str, int]) -> None:
    for name, count in counts.items():
        print(f"  {name}: {count}")


def run_command(script: MigrationScript, command: str) -> bool:
    """Run one command; True if it succeeded."""
    if command == "run":
        result = script.run()
        if not result.migrated:
            logger.info("Store is already relational or empty; nothing to migrate.")
        else:
            logger.info("Migration complete. Backup kept at %s", result.backup_path)
            for warning in result.report.warnings:
                logger.warning(warning)
            for row in result.report.skipped:
                logger.warning("Skipped %s[%d] of project %s: %s", row.collection, row.index, row.project_id, row.reason)
        _print_counts(result.counts)
        return True

    if command == "dry-run":
        report = script.dry_run()
        if not report.performed:
            logger.info("DRY RUN: store does not need migration.")
            return True
        logger.info("DRY RUN: %d legacy project(s), %d vendor(s) would be extracted.",
                    report.legacy_projects, report.vendors_extracted)
        _print_counts(report.counts)
        for warning in report.warnings:
            logger.warning(warning)
        return True

    if command == "status":
        status = script.status()
        print(f"Schema version: {status.schema_version or 'Legacy'}")
        print(f"Last migration: {status.last_migration or 'Never'}")
        print(f"Shape: {status.verdict}")
        print(f"Needs migration: {'yes' if status.needs_migration else 'no'}")
        _print_counts(status.counts)
        return True

    if command == "backup":
        path = script.backup()
        logger.info("Backup written to %s", path)
        return True

    if command == "rollback":
        counts = script.rollback()
        logger.info("Store restored from %s", script.backup_path)
        _print_counts(counts)
        return True

    if command == "validate":
        report = script.validate()
        for issue in report.issues:
            logger.error(issue)
        if report.ok:
            logger.info("No integrity issues found.")
        return report.ok

    raise ValueError(f"Unknown command: {command}")


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    settings = get_settings()
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
    configure_logging(settings.app.log_level)

    store = JsonFileDocumentStore(args.db, settings=settings.store)
    script = MigrationScript(store, backup_path=args.backup, settings=settings)

    try:
        ok = run_command(script, args.command)
    except StorageError:
        logger.exception("Command %s failed", args.command)
        return 1
    return 0 if ok else 1


if __name__ == "__main__":
    sys.exit(main())
