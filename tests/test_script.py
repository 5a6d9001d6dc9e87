"""Tests for the backup-protected migration script and its command line."""

import json

import pytest

from app.migrate import main
from pfmt.config import StoreSettings
from pfmt.migration import MigrationScript
from pfmt.storage import JsonFileDocumentStore, MigrationFailedError, NotFoundError, write_json_file


@pytest.fixture
def db_path(tmp_path, legacy_document):
    path = tmp_path / "db.json"
    write_json_file(path, legacy_document(), StoreSettings())
    return path


@pytest.fixture
def backup_path(tmp_path):
    return tmp_path / "backups" / "db_backup.json"


@pytest.fixture
def script(db_path, backup_path):
    return MigrationScript(JsonFileDocumentStore(db_path), backup_path=backup_path)


def load(path):
    return json.loads(path.read_text(encoding="utf-8"))


class TestMigrationScript:
    """Tests for MigrationScript."""

    def test_run_migrates_and_keeps_backup(self, script, db_path, backup_path, legacy_document):
        """Test run() writes a backup of the legacy file and migrates the store."""
        result = script.run()
        assert result.migrated
        assert result.backup_path == str(backup_path)
        assert result.counts["projectVendors"] == 3
        assert load(backup_path) == legacy_document()
        assert "fundingLines" in load(db_path)

    def test_run_on_migrated_store(self, script):
        """Test a second run reports nothing to do."""
        script.run()
        result = script.run()
        assert not result.migrated
        assert result.report is None
        assert result.counts["vendors"] == 2

    def test_post_condition_failure_restores_backup(self, script, db_path, legacy_document, monkeypatch):
        """Test a failed validation puts the legacy file back."""
        def fail():
            raise MigrationFailedError("Missing metadata after migration")

        monkeypatch.setattr(script, "validate_post_conditions", fail)
        with pytest.raises(MigrationFailedError, match="Missing metadata"):
            script.run()
        assert load(db_path) == legacy_document()

    def test_post_conditions(self, script, db_path):
        """Test the checks pass on a migrated store and fail on a stripped one."""
        script.run()
        script.validate_post_conditions()

        store = JsonFileDocumentStore(db_path)
        document = store.read()
        document["projects"][0].pop("financial")
        store.write()
        with pytest.raises(MigrationFailedError, match="Projects missing required fields: financial"):
            MigrationScript(store, backup_path=script.backup_path).validate_post_conditions()

    def test_rollback(self, script, db_path, legacy_document):
        """Test rollback restores the pre-migration document."""
        script.run()
        counts = script.rollback()
        assert load(db_path) == legacy_document()
        assert counts["projects"] == 2
        assert counts["fundingLines"] == 0

    def test_rollback_without_backup(self, script):
        """Test there is nothing to roll back to before a backup."""
        with pytest.raises(NotFoundError):
            script.rollback()

    def test_dry_run_and_status(self, script, db_path, legacy_document):
        """Test read-only commands leave the file alone."""
        assert script.status().verdict == "legacy"
        report = script.dry_run()
        assert report.dry_run
        assert report.counts["changeOrders"] == 1
        assert load(db_path) == legacy_document()

    def test_validate(self, script):
        """Test the integrity report before and after migration."""
        assert not script.validate().ok
        script.run()
        assert script.validate().ok


class TestCommandLine:
    """Tests for the app.migrate entry point."""

    def args(self, db_path, backup_path, *command):
        return ["--db", str(db_path), "--backup", str(backup_path), *command]

    def test_status(self, db_path, backup_path, capsys):
        """Test status prints the shape of the store."""
        assert main(self.args(db_path, backup_path, "status")) == 0
        out = capsys.readouterr().out
        assert "Shape: legacy" in out
        assert "Needs migration: yes" in out

    def test_run_then_validate(self, db_path, backup_path):
        """Test validate fails on a legacy store and passes after run."""
        assert main(self.args(db_path, backup_path, "validate")) == 1
        assert main(self.args(db_path, backup_path, "run")) == 0
        assert main(self.args(db_path, backup_path, "validate")) == 0
        assert backup_path.exists()

    def test_dry_run_writes_nothing(self, db_path, backup_path, legacy_document):
        """Test dry-run exits cleanly without touching the store."""
        assert main(self.args(db_path, backup_path, "dry-run")) == 0
        assert load(db_path) == legacy_document()
        assert not backup_path.exists()

    def test_rollback_without_backup_fails(self, db_path, backup_path):
        """Test storage errors become exit status 1."""
        assert main(self.args(db_path, backup_path, "rollback")) == 1

    def test_backup_command(self, db_path, backup_path, legacy_document):
        """Test backup copies the store."""
        assert main(self.args(db_path, backup_path, "backup")) == 0
        assert load(backup_path) == legacy_document()

    def test_command_required(self, db_path, backup_path):
        """Test argparse refuses a missing command."""
        with pytest.raises(SystemExit):
            main(self.args(db_path, backup_path))
