"""Tests for the Unit of Work."""

import pytest

from pfmt.audit import AuditLogger
from pfmt.models import AuditEventType
from pfmt.repositories import RepositoryRegistry
from pfmt.storage import DuplicateError, ValidationFailedError
from pfmt.unit_of_work import PendingResult, UnitOfWork, resolve_placeholders


class RecordingAuditLogger(AuditLogger):
    """Keeps events in memory instead of logging them."""

    def __init__(self):
        super().__init__()
        self.events = []

    def log(self, event):
        self.events.append(event)
        return True

    @property
    def types(self):
        return [event.event_type for event in self.events]


@pytest.fixture
def uow(repos):
    return UnitOfWork(repos)


class TestPlaceholders:
    """Tests for PendingResult and PendingField."""

    def test_unresolved_value_raises(self):
        """Test reading a placeholder before commit."""
        pending = PendingResult("create projects")
        assert not pending.resolved
        with pytest.raises(RuntimeError, match="has not been committed"):
            _ = pending.value

    def test_resolve_nested(self):
        """Test placeholders inside dicts and lists are replaced."""
        pending = PendingResult("create projects")
        pending._resolve({"id": "1:2:AB", "name": "Lab"})
        data = {"projectId": pending.field("id"), "tags": [pending.field("name")], "n": 3}
        assert resolve_placeholders(data) == {"projectId": "1:2:AB", "tags": ["Lab"], "n": 3}


class TestCommit:
    """Tests for commit()."""

    def test_staged_writes_wait_for_commit(self, uow, repos):
        """Test nothing is written until commit."""
        uow.projects.create({"name": "Lab", "ownerId": 1})
        assert uow.pending_count == 1
        assert repos.projects.count() == 0

    def test_commit_resolves_placeholders(self, uow, repos):
        """Test a later operation can use an earlier operation's id."""
        project = uow.projects.create({"name": "Lab", "ownerId": 1})
        line = uow.funding_lines.create({"projectId": project.field("id"), "approvedValue": 5e6})
        results = uow.commit()

        assert results == [project.value, line.value]
        assert line.value["projectId"] == project.value["id"]
        assert repos.funding_lines.find_by_project(project.value["id"])[0]["approvedValue"] == 5e6
        assert uow.pending_count == 0

    def test_single_flush(self, uow, store):
        """Test a multi-operation commit flushes the document once."""
        project = uow.projects.create({"name": "Lab", "ownerId": 1})
        uow.funding_lines.create({"projectId": project.field("id")})
        uow.project_assignments.create({
            "projectId": project.field("id"), "userId": 2, "grantedBy": 1, "accessLevel": "Editor",
        })
        uow.commit()
        assert store.flush_count == 1

    def test_failure_rolls_back_everything(self, uow, store, repos):
        """Test a failing operation undoes the earlier ones and persists nothing."""
        before = store.persisted
        project = uow.projects.create({"name": "Lab", "ownerId": 1})
        uow.funding_lines.create({"projectId": "0:0:ZZ"})

        with pytest.raises(ValidationFailedError):
            uow.commit()

        assert store.persisted == before
        assert store.flush_count == 0
        assert repos.projects.count() == 0
        assert not project.resolved
        assert uow.pending_count == 0

    def test_stage_arbitrary_callable(self, uow, repos, project):
        """Test staged closures run in order inside the transaction."""
        uow.vendors.create({"name": "ABC Construction Ltd."})
        found = uow.stage("lookup vendor", lambda: repos.vendors.find_by_name("ABC Construction Ltd."))
        uow.commit()
        assert found.value["name"] == "ABC Construction Ltd."

    def test_update_and_deactivate(self, uow, repos, project):
        """Test update and deactivate are staged like create."""
        assignment = repos.project_assignments.create({
            "projectId": project["id"], "userId": 2, "grantedBy": 1,
        })
        uow.projects.update(project["id"], {"description": "Phase 2"})
        uow.project_assignments.deactivate(assignment["id"])
        uow.commit()

        assert repos.projects.find_by_id(project["id"])["description"] == "Phase 2"
        assert repos.project_assignments.find_by_user(2) == []

    def test_deactivate_unsupported(self, uow):
        """Test hard-delete collections refuse deactivate at staging time."""
        with pytest.raises(AttributeError, match="cannot be deactivated"):
            uow.projects.deactivate("1:2:AB")


class TestContextManager:
    """Tests for the with-statement form."""

    def test_clean_exit_commits(self, repos):
        """Test leaving the block normally commits."""
        with UnitOfWork(repos) as uow:
            uow.projects.create({"name": "Lab", "ownerId": 1})
        assert repos.projects.count() == 1

    def test_exception_discards(self, repos, store):
        """Test an exception in the block commits nothing and propagates."""
        with pytest.raises(KeyError):
            with UnitOfWork(repos) as uow:
                uow.projects.create({"name": "Lab", "ownerId": 1})
                raise KeyError("abort")
        assert repos.projects.count() == 0
        assert store.flush_count == 0

    def test_rollback_discards_staged(self, uow, repos):
        """Test rollback() drops staged operations."""
        uow.projects.create({"name": "Lab", "ownerId": 1})
        uow.rollback()
        assert uow.pending_count == 0
        assert uow.commit() == []
        assert repos.projects.count() == 0


class TestStagedRepository:
    """Tests for the repository proxies."""

    def test_reads_pass_through(self, uow, project):
        """Test reads on a proxy see committed rows."""
        assert uow.projects.find_by_id(project["id"])["name"] == "Courthouse Renewal"
        assert uow["users"].count() == 4

    def test_reads_do_not_see_staged_rows(self, uow):
        """Test staged rows are invisible until commit."""
        uow.vendors.create({"name": "XYZ Corp"})
        assert uow.vendors.find_by_name("XYZ Corp") is None


class TestAuditTrail:
    """Tests for the audit events a commit produces."""

    def test_committed_writes_are_audited(self, store):
        """Test entity events follow a successful commit."""
        audit = RecordingAuditLogger()
        uow = UnitOfWork(RepositoryRegistry(store, audit), audit)
        uow.vendors.create({"name": "ABC Construction Ltd."})
        uow.vendors.create({"name": "XYZ Corp"})
        uow.commit()

        assert audit.types == [
            AuditEventType.ENTITY_CREATED,
            AuditEventType.ENTITY_CREATED,
            AuditEventType.TRANSACTION_COMMITTED,
        ]

    def test_rolled_back_writes_are_not_audited(self, store):
        """Test a failed commit reports the rollback and no entity writes."""
        audit = RecordingAuditLogger()
        uow = UnitOfWork(RepositoryRegistry(store, audit), audit)
        uow.vendors.create({"name": "ABC Construction Ltd."})
        uow.vendors.create({"name": "ABC Construction Ltd."})

        with pytest.raises(DuplicateError):
            uow.commit()

        assert audit.types == [AuditEventType.TRANSACTION_ROLLED_BACK]
        assert store.persisted["vendors"] == []
