"""
Tests for the PFMT data layer

Test strategy:
1. Unit tests for individual components (models, registry, criteria)
2. Integration tests for flows over an in-memory store
3. File-system tests only where the JSON store itself is under test
"""

import pytest
from uuid import uuid4

from pfmt.models import (
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from pfmt.models.entities import (
    AccessLevel,
    ChangeOrder,
    ChangeOrderStatus,
    Financial,
    FundingLine,
    Project,
    ProjectAssignment,
    User,
    UserRole,
    Vendor,
    parse_amount,
    permissions_for_access_level,
    permissions_for_role,
)


class TestAmountParsing:
    """Tests for spreadsheet-style amounts."""

    def test_plain_numbers_round_to_cents(self):
        """Test ints and floats pass through rounded."""
        assert parse_amount(1500) == 1500.0
        assert parse_amount(10.005) == pytest.approx(10.0, abs=0.01)

    def test_currency_strings(self):
        """Test dollar signs, commas and spaces are stripped."""
        assert parse_amount("$1,250,000.00") == 1250000.0
        assert parse_amount(" 12.5% ") == 12.5

    def test_empty_is_zero(self):
        """Test None and empty string are zero."""
        assert parse_amount(None) == 0.0
        assert parse_amount("") == 0.0

    def test_garbage_is_an_error(self):
        """Test unparseable text is rejected, not zeroed."""
        with pytest.raises(ValueError, match="Not an amount"):
            parse_amount("about a million")

    def test_boolean_is_an_error(self):
        """Test booleans are not amounts."""
        with pytest.raises(ValueError):
            parse_amount(True)


class TestUserModel:
    """Tests for the User model."""

    def test_role_matches_case_insensitively(self):
        """Test legacy role spellings are normalized."""
        user = User(id=1, name="Alice", email="alice@gov.ab.ca", role="project manager")
        assert user.role == UserRole.PROJECT_MANAGER

    def test_permissions_default_from_role(self):
        """Test a Director gets the Director preset."""
        user = User.model_validate({"id": 3, "name": "Dana", "email": "dana@gov.ab.ca", "role": "Director"})
        assert user.permissions.can_manage_users is True
        assert user.permissions.can_view_all_projects is True

    def test_invalid_email_rejected(self):
        """Test malformed email addresses fail validation."""
        with pytest.raises(ValueError, match="Invalid email"):
            User(id=1, name="Alice", email="not-an-email", role="Admin")

    def test_unknown_role_rejected(self):
        """Test roles outside the enum fail validation."""
        with pytest.raises(ValueError):
            User(id=1, name="Alice", email="alice@gov.ab.ca", role="Intern")

    def test_document_shape_is_camel_case(self):
        """Test to_document emits the stored key names."""
        doc = User(id=1, name="Alice", email="alice@gov.ab.ca", role="Admin").to_document()
        assert doc["isActive"] is True
        assert "canManageUsers" in doc["permissions"]
        assert "is_active" not in doc


class TestVendorModel:
    """Tests for the Vendor model."""

    def test_email_optional_but_validated(self):
        """Test an empty email is fine and a bad one is not."""
        assert Vendor(id=1, name="ABC").email == ""
        with pytest.raises(ValueError):
            Vendor(id=1, name="ABC", email="abc at example")

    def test_capabilities_deduplicated(self):
        """Test certifications and capabilities behave as sets."""
        vendor = Vendor(id=1, name="ABC", capabilities=["Concrete", "Steel", "Concrete"])
        assert vendor.capabilities == ["Concrete", "Steel"]


class TestProjectModel:
    """Tests for the Project model and its groups."""

    def test_defaults(self):
        """Test a minimal project gets every structured group."""
        doc = Project(id="1:2:AB", name="Lab", owner_id=1).to_document()
        for group in ("location", "building", "financial", "statusTracking", "workflow", "pfmt", "comments"):
            assert isinstance(doc[group], dict)
        assert set(doc["milestones"]) == {"Planning", "Design", "Construction", "Closeout"}
        assert doc["status"] == "Active"

    def test_financial_keeps_tpc_alias(self):
        """Test approvedTPC keeps its capitalization on the wire."""
        financial = Financial.model_validate({"approvedTPC": "$2,000,000"})
        assert financial.approved_tpc == 2000000.0
        assert financial.to_document()["approvedTPC"] == 2000000.0

    def test_status_case_insensitive(self):
        """Test project status spellings are normalized."""
        project = Project(id="1", name="Lab", owner_id=1, status="on hold")
        assert project.status.value == "On Hold"

    def test_unknown_fields_ride_along(self):
        """Test fields outside the model survive a round through it."""
        doc = Project.model_validate({"id": "1", "name": "Lab", "ownerId": 1, "legacyCode": "X9"}).to_document()
        assert doc["legacyCode"] == "X9"

    def test_blank_name_rejected(self):
        """Test a project needs a name."""
        with pytest.raises(ValueError):
            Project(id="1", name="", owner_id=1)


class TestRelationshipModels:
    """Tests for assignment, funding line and change order models."""

    def test_assignment_permissions_from_level(self):
        """Test an Editor assignment gets the Editor preset."""
        assignment = ProjectAssignment.model_validate({
            "id": 1, "projectId": "1", "userId": 2, "grantedBy": 1, "accessLevel": "editor",
        })
        assert assignment.access_level == AccessLevel.EDITOR
        assert assignment.permissions.can_edit is True
        assert assignment.permissions.can_approve is False

    def test_funding_line_amounts_parsed(self):
        """Test funding line money fields accept currency strings."""
        line = FundingLine.model_validate({"id": 1, "projectId": "1", "approvedValue": "$5,000"})
        assert line.approved_value == 5000.0
        assert line.is_active is True

    def test_change_order_status(self):
        """Test change order status is matched case-insensitively."""
        order = ChangeOrder.model_validate({"id": 1, "projectId": "1", "status": "approved"})
        assert order.status == ChangeOrderStatus.APPROVED


class TestPermissionPresets:
    """Tests for the role and access level presets."""

    def test_admin_level_can_approve(self):
        """Test only the Admin level carries canApprove."""
        assert permissions_for_access_level("Admin")["canApprove"] is True
        assert permissions_for_access_level("Editor")["canApprove"] is False

    def test_unknown_level_falls_back_to_viewer(self):
        """Test unknown levels get the Viewer preset."""
        assert permissions_for_access_level("Owner") == permissions_for_access_level("Viewer")

    def test_presets_are_copies(self):
        """Test mutating a returned preset does not change the next one."""
        first = permissions_for_role("Director")
        first["canManageUsers"] = False
        assert permissions_for_role("Director")["canManageUsers"] is True


class TestAuditModels:
    """Tests for audit event models."""

    def test_entity_created_event(self):
        """Test entity_created builder."""
        event = AuditEventBuilder.entity_created("projects", "12:34:AB")
        assert event.event_type == AuditEventType.ENTITY_CREATED
        assert event.entity_id == "12:34:AB"
        assert event.severity == AuditSeverity.INFO

    def test_integer_ids_become_strings(self):
        """Test integer entity ids are stored as strings."""
        event = AuditEventBuilder.entity_deleted("vendors", 7)
        assert event.entity_id == "7"

    def test_migration_failed_event(self):
        """Test migration_failed carries the error."""
        correlation_id = uuid4()
        event = AuditEventBuilder.migration_failed(correlation_id, ValueError("bad row"))
        assert event.event_type == AuditEventType.MIGRATION_FAILED
        assert event.error_type == "ValueError"
        assert event.error_message == "bad row"
        assert event.correlation_id == correlation_id

    def test_to_log_dict(self):
        """Test conversion to log dictionary."""
        event = AuditEventBuilder.access_denied(2, "1:1:AA", "edit")
        log_dict = event.to_log_dict()
        assert log_dict["event_type"] == "access_denied"
        assert "event_id" in log_dict
        assert "timestamp" in log_dict
