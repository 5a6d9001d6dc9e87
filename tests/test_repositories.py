"""Tests for the generic and per-entity repositories."""

import random
import re
from datetime import datetime, timedelta, timezone

import pytest

from pfmt.config import StoreSettings
from pfmt.repositories import (
    RepositoryRegistry,
    generate_project_id,
    is_assignment_active,
    next_timestamp,
)
from pfmt.repositories.base import parse_timestamp
from pfmt.storage import (
    DuplicateError,
    InMemoryDocumentStore,
    NotFoundError,
    ValidationFailedError,
)


PROJECT_ID = re.compile(r"^\d{1,2}:\d{1,2}:[0-9A-Z]{2}$")


class TestTimestamps:
    """Tests for monotonic timestamps."""

    def test_strictly_after_previous(self):
        """Test a stamp is later than one taken in the future."""
        future = (datetime.now(timezone.utc) + timedelta(seconds=5)).isoformat()
        assert parse_timestamp(next_timestamp(future)) > parse_timestamp(future)

    def test_unparseable_previous_is_ignored(self):
        """Test garbage input still yields a valid stamp."""
        assert parse_timestamp(next_timestamp("yesterday")) is not None


class TestCreate:
    """Tests for Repository.create."""

    def test_assigns_dense_integer_ids(self, repos):
        """Test integer ids are max + 1."""
        vendor = repos.vendors.create({"name": "ABC Construction Ltd."})
        second = repos.vendors.create({"name": "XYZ Corp"})
        assert (vendor["id"], second["id"]) == (1, 2)

    def test_next_id_follows_the_maximum(self, repos):
        """Test gaps do not get reused below the maximum."""
        repos.vendors.create({"id": 10, "name": "ABC"})
        assert repos.vendors.create({"name": "XYZ"})["id"] == 11

    def test_stamps_timestamps(self, repos):
        """Test createdAt and updatedAt are set and equal."""
        vendor = repos.vendors.create({"name": "ABC"})
        assert vendor["createdAt"] == vendor["updatedAt"]
        assert parse_timestamp(vendor["createdAt"]) is not None

    def test_caller_timestamps_are_overwritten(self, repos):
        """Test createdAt cannot be back-dated through create."""
        vendor = repos.vendors.create({"name": "ABC", "createdAt": "1999-01-01T00:00:00+00:00"})
        assert not vendor["createdAt"].startswith("1999")

    def test_applies_model_defaults(self, repos):
        """Test stored rows carry the model defaults."""
        vendor = repos.vendors.create({"name": "ABC"})
        assert vendor["vendorType"] == "Contractor"
        assert vendor["address"]["country"] == "Canada"
        assert vendor["metadata"]["totalProjects"] == 0

    def test_persists(self, repos, store):
        """Test the created row reaches the backing store."""
        repos.vendors.create({"name": "ABC"})
        assert [v["name"] for v in store.persisted["vendors"]] == ["ABC"]

    def test_returns_a_copy(self, repos):
        """Test mutating the returned record does not change the store."""
        vendor = repos.vendors.create({"name": "ABC"})
        vendor["name"] = "Changed"
        assert repos.vendors.find_by_id(vendor["id"])["name"] == "ABC"

    def test_invalid_record(self, repos, store):
        """Test validation errors are reported and nothing is written."""
        with pytest.raises(ValidationFailedError) as exc_info:
            repos.users.create({"name": "Eve", "email": "nope", "role": "Admin"})
        assert any("email" in issue for issue in exc_info.value.issues)
        assert len(store.persisted["users"]) == 4

    def test_missing_required_field(self, repos):
        """Test a project without an owner is rejected."""
        with pytest.raises(ValidationFailedError):
            repos.projects.create({"name": "Orphan"})

    def test_unique_field(self, repos):
        """Test duplicate emails are rejected."""
        with pytest.raises(DuplicateError, match="email"):
            repos.users.create({"name": "Alice Two", "email": "alice@gov.ab.ca", "role": "Admin"})

    def test_duplicate_given_id(self, repos):
        """Test a caller-supplied id that is taken."""
        with pytest.raises(DuplicateError):
            repos.users.create({"id": 1, "name": "Zed", "email": "zed@gov.ab.ca", "role": "Admin"})

    def test_dangling_foreign_key(self, repos):
        """Test a reference to a missing row is rejected."""
        with pytest.raises(ValidationFailedError, match="ownerId"):
            repos.projects.create({"name": "Ghost", "ownerId": 99})

    def test_foreign_key_checks_can_be_disabled(self):
        """Test the store setting turns off reference checks."""
        store = InMemoryDocumentStore({"users": [], "projects": []}, StoreSettings(enforce_foreign_keys=False))
        repos = RepositoryRegistry(store)
        assert repos.projects.create({"name": "Ghost", "ownerId": 99})["ownerId"] == 99

    def test_nullable_foreign_key(self, repos, project):
        """Test a change order without a vendor is fine."""
        order = repos.change_orders.create({"projectId": project["id"], "vendorId": None})
        assert order["vendorId"] is None


class TestProjectIds:
    """Tests for project id generation."""

    def test_format(self):
        """Test generated ids look like 12:47:K3."""
        for _ in range(50):
            assert PROJECT_ID.match(generate_project_id())

    def test_created_project_gets_token(self, project):
        """Test created projects get string ids."""
        assert PROJECT_ID.match(project["id"])

    def test_collisions_are_redrawn(self, store):
        """Test a token already in use is never handed out twice."""
        taken = generate_project_id(random.Random(3))
        repos = RepositoryRegistry(store, rng=random.Random(3))
        repos.projects.create({"id": taken, "name": "First", "ownerId": 1})

        repos_again = RepositoryRegistry(store, rng=random.Random(3))
        second = repos_again.projects.create({"name": "Second", "ownerId": 1})
        assert second["id"] != taken


class TestReads:
    """Tests for the read operations."""

    def test_find_by_id(self, repos):
        """Test lookups by id, hit and miss."""
        assert repos.users.find_by_id(3)["name"] == "Dana Director"
        assert repos.users.find_by_id(42) is None

    def test_find_by_id_does_not_confuse_bool(self, repos):
        """Test True is not treated as id 1."""
        assert repos.users.find_by_id(True) is None

    def test_find_many_and_count(self, repos):
        """Test criteria filtering and counting agree."""
        managers = repos.users.find_many({"role": "Project Manager"})
        assert [u["id"] for u in managers] == [1, 2]
        assert repos.users.count({"role": "Project Manager"}) == 2
        assert repos.users.count() == 4

    def test_find_one(self, repos):
        """Test find_one returns the first match or None."""
        assert repos.users.find_one({"role": {"in": ["Director", "Admin"]}})["id"] == 3
        assert repos.users.find_one({"role": "Admin"}) is None

    def test_exists(self, repos):
        """Test exists for a present and an absent id."""
        assert repos.users.exists(1)
        assert not repos.users.exists(99)

    def test_find_by_email_and_role(self, repos):
        """Test the user lookups."""
        assert repos.users.find_by_email("sam@gov.ab.ca")["id"] == 4
        assert [u["id"] for u in repos.users.find_by_role("Director")] == [3]


class TestUpdate:
    """Tests for Repository.update."""

    def test_merges_patch(self, repos, project):
        """Test unspecified fields are kept."""
        updated = repos.projects.update(project["id"], {"description": "Phase 2"})
        assert updated["description"] == "Phase 2"
        assert updated["name"] == "Courthouse Renewal"

    def test_updated_at_strictly_increases(self, repos, project):
        """Test back-to-back updates get increasing stamps."""
        first = repos.projects.update(project["id"], {"description": "a"})
        second = repos.projects.update(project["id"], {"description": "b"})
        assert parse_timestamp(first["updatedAt"]) > parse_timestamp(project["updatedAt"])
        assert parse_timestamp(second["updatedAt"]) > parse_timestamp(first["updatedAt"])

    def test_id_and_created_at_are_fixed(self, repos, project):
        """Test a patch cannot move a row or rewrite its creation time."""
        updated = repos.projects.update(project["id"], {"id": "0:0:00", "createdAt": "1999-01-01"})
        assert updated["id"] == project["id"]
        assert updated["createdAt"] == project["createdAt"]

    def test_not_found(self, repos):
        """Test updating a missing row."""
        with pytest.raises(NotFoundError, match="not found"):
            repos.vendors.update(99, {"name": "X"})

    def test_invalid_patch_leaves_row_alone(self, repos, project):
        """Test a failed update changes nothing."""
        with pytest.raises(ValidationFailedError):
            repos.projects.update(project["id"], {"status": "Exploded"})
        assert repos.projects.find_by_id(project["id"]) == project

    def test_unique_on_update(self, repos):
        """Test renaming onto an existing vendor name."""
        repos.vendors.create({"name": "ABC"})
        xyz = repos.vendors.create({"name": "XYZ"})
        with pytest.raises(DuplicateError):
            repos.vendors.update(xyz["id"], {"name": "ABC"})

    def test_only_patched_keys_are_reference_checked(self, store, repos, project):
        """Test an existing dangling reference does not block unrelated edits."""
        store.collection("projects")[0]["ownerId"] = 77
        updated = repos.projects.update(project["id"], {"description": "still editable"})
        assert updated["description"] == "still editable"
        with pytest.raises(ValidationFailedError):
            repos.projects.update(project["id"], {"ownerId": 78})

    def test_hydrated_keys_are_not_stored(self, repos, project):
        """Test relationship keys in a patch never reach the document."""
        hydrated = repos.projects.find_by_id_with_relationships(project["id"])
        repos.projects.update(project["id"], hydrated)
        assert "owner" not in repos.projects.find_by_id(project["id"])


class TestDelete:
    """Tests for hard and soft deletion."""

    def test_hard_delete(self, repos):
        """Test delete removes and returns the row."""
        vendor = repos.vendors.create({"name": "ABC"})
        removed = repos.vendors.delete(vendor["id"])
        assert removed["name"] == "ABC"
        assert repos.vendors.find_by_id(vendor["id"]) is None

    def test_delete_missing(self, repos):
        """Test deleting a missing row."""
        with pytest.raises(NotFoundError):
            repos.vendors.delete(5)

    def test_deactivate(self, repos, project):
        """Test soft delete flips isActive and keeps the row."""
        line = repos.funding_lines.create({"projectId": project["id"], "approvedValue": 100})
        repos.funding_lines.deactivate(line["id"])
        assert repos.funding_lines.find_by_id(line["id"])["isActive"] is False
        assert repos.funding_lines.find_by_project(project["id"]) == []
        assert len(repos.funding_lines.find_by_project(project["id"], active_only=False)) == 1


class TestEntityLookups:
    """Tests for the per-entity query helpers."""

    def test_assignment_expiry(self):
        """Test expired or inactive assignments are not active."""
        now = datetime(2025, 1, 1, tzinfo=timezone.utc)
        assert is_assignment_active({"isActive": True}, now)
        assert not is_assignment_active({"isActive": False}, now)
        assert not is_assignment_active({"expiresAt": "2024-12-31T00:00:00+00:00"}, now)
        assert is_assignment_active({"expiresAt": "2025-06-01T00:00:00Z"}, now)

    def test_find_by_user_and_project(self, repos, project):
        """Test only the active, unexpired assignment is returned."""
        past = (datetime.now(timezone.utc) - timedelta(days=1)).isoformat()
        repos.project_assignments.create({
            "projectId": project["id"], "userId": 2, "grantedBy": 1, "expiresAt": past,
        })
        assert repos.project_assignments.find_by_user_and_project(2, project["id"]) is None
        assert repos.project_assignments.find_any_by_user_and_project(2, project["id"]) is not None
        assert repos.project_assignments.find_by_user(2) == []
        assert len(repos.project_assignments.find_by_user(2, active_only=False)) == 1

    def test_total_approved(self, repos, project):
        """Test only active funding lines count toward the total."""
        repos.funding_lines.create({"projectId": project["id"], "approvedValue": "$1,000.50"})
        line = repos.funding_lines.create({"projectId": project["id"], "approvedValue": 500})
        repos.funding_lines.deactivate(line["id"])
        assert repos.funding_lines.total_approved(project["id"]) == 1000.5

    def test_vendor_link_lookups(self, repos, project):
        """Test find_link and find_by_vendor skip retired links."""
        vendor = repos.vendors.create({"name": "ABC"})
        link = repos.project_vendors.create({"projectId": project["id"], "vendorId": vendor["id"]})
        assert repos.project_vendors.find_link(project["id"], vendor["id"])["id"] == link["id"]
        repos.project_vendors.deactivate(link["id"])
        assert repos.project_vendors.find_link(project["id"], vendor["id"]) is None
        assert repos.project_vendors.find_by_vendor(vendor["id"]) == []

    def test_change_orders_by_status(self, repos, project):
        """Test change orders filtered by status."""
        repos.change_orders.create({"projectId": project["id"], "status": "Approved"})
        repos.change_orders.create({"projectId": project["id"], "status": "Pending"})
        assert len(repos.change_orders.find_by_status(project["id"], "Approved")) == 1

    def test_file_versions(self, repos, project):
        """Test latest-version lookup ignores superseded rows."""
        first = repos.files.create({
            "projectId": project["id"], "fileName": "pfmt.xlsx", "filePath": "/uploads/1.xlsx",
        })
        repos.files.update(first["id"], {"isLatest": False})
        second = repos.files.create({
            "projectId": project["id"], "fileName": "pfmt.xlsx", "filePath": "/uploads/2.xlsx", "version": "2.0",
        })
        assert repos.files.find_latest(project["id"], "pfmt.xlsx")["id"] == second["id"]
        assert len(repos.files.find_versions(project["id"], "pfmt.xlsx")) == 2

    def test_active_vendors(self, repos):
        """Test inactive vendors are filtered out."""
        repos.vendors.create({"name": "ABC"})
        repos.vendors.create({"name": "Gone", "isActive": False})
        assert [v["name"] for v in repos.vendors.find_active_vendors()] == ["ABC"]


class TestRelationships:
    """Tests for relationship hydration."""

    def test_project_hydration(self, repos, project):
        """Test owner, vendor links and active children are attached."""
        vendor = repos.vendors.create({"name": "ABC"})
        repos.projects.update(project["id"], {"primaryVendorId": vendor["id"]})
        repos.project_vendors.create({"projectId": project["id"], "vendorId": vendor["id"]})
        repos.funding_lines.create({"projectId": project["id"], "approvedValue": 100})
        retired = repos.funding_lines.create({"projectId": project["id"], "approvedValue": 200})
        repos.funding_lines.deactivate(retired["id"])
        repos.project_assignments.create({"projectId": project["id"], "userId": 2, "grantedBy": 1})

        hydrated = repos.projects.find_by_id_with_relationships(project["id"])
        assert hydrated["owner"]["name"] == "Alice Manager"
        assert hydrated["primaryVendor"]["name"] == "ABC"
        assert [line["approvedValue"] for line in hydrated["fundingLines"]] == [100.0]
        assert hydrated["vendors"][0]["vendor"]["name"] == "ABC"
        assert hydrated["assignments"][0]["user"]["id"] == 2
        assert hydrated["changeOrders"] == [] and hydrated["files"] == []

    def test_hydration_missing_project(self, repos):
        """Test hydration of an unknown id."""
        assert repos.projects.find_by_id_with_relationships("0:0:ZZ") is None

    def test_find_many_with_relationships(self, repos, project):
        """Test criteria apply before hydration."""
        repos.projects.create({"name": "Other", "ownerId": 2})
        rows = repos.projects.find_many_with_relationships({"ownerId": 1})
        assert [row["id"] for row in rows] == [project["id"]]
        assert rows[0]["owner"]["id"] == 1

    def test_generic_load_relationships(self, repos, project):
        """Test the registry-driven loader for a user."""
        user = repos.users.find_by_id(1)
        loaded = repos.users.load_relationships(user, ["ownedProjects"])
        assert [p["id"] for p in loaded["ownedProjects"]] == [project["id"]]
        assert "projectAssignments" not in loaded

    def test_registry_lookup(self, repos):
        """Test repositories by collection name."""
        assert repos["fundingLines"] is repos.funding_lines
        assert "files" in repos
        assert len(repos.collections()) == 8
        with pytest.raises(KeyError):
            repos["invoices"]
