"""
Migration Manager

Turns the legacy flat document (projects with vendors, funding lines and
change orders embedded as arrays) into the normalized document.

State machine:
    UNKNOWN -> NEEDS_MIGRATION -> MIGRATED
    UNKNOWN -> NO_MIGRATION_NEEDED
    NEEDS_MIGRATION -> FAILED (document restored)

DESIGN DECISION: The conversion is a pure function of the legacy document
(LegacyConverter). The manager wraps it in the safety net: deep-copy
backup, convert, swap the document in and flush; on ANY exception put the
backup back, flush it, and raise MigrationFailedError chained to the
cause. The store is never left half-migrated.

Vendor names are de-duplicated by exact string match, first seen wins.
"ABC Ltd" and "ABC Ltd." become two vendors.
"""

import copy
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID

import structlog
from pydantic import BaseModel, Field, ValidationError

from pfmt.audit import AuditLogger, create_correlation_id
from pfmt.config import MigrationSettings, get_settings
from pfmt.models.entities import (
    EMAIL_PATTERN,
    ChangeOrder,
    EntityModel,
    FundingLine,
    Project,
    ProjectStatus,
    ProjectVendor,
    TrafficLight,
    User,
    UserRole,
    Vendor,
    parse_amount,
    permissions_for_role,
)
from pfmt.repositories.project import generate_project_id
from pfmt.schema.registry import ENTITY_COLLECTIONS, default_document
from pfmt.storage.interface import (
    DocumentStore,
    MigrationFailedError,
    StoreIOError,
    ValidationFailedError,
)


logger = structlog.get_logger(__name__)

# Collections whose presence marks the normalized shape
RELATIONAL_MARKERS = ("projectAssignments", "fundingLines")

# Top-level keys of the normalized document
_NORMALIZED_KEYS = frozenset(ENTITY_COLLECTIONS) | {"_metadata", "roles", "systemConfig"}


class MigrationState(str, Enum):
    UNKNOWN = "unknown"
    NEEDS_MIGRATION = "needs_migration"
    MIGRATED = "migrated"
    NO_MIGRATION_NEEDED = "no_migration_needed"
    FAILED = "failed"


class SkippedRow(BaseModel):
    """A legacy row that was deliberately not migrated."""
    collection: str
    project_id: Optional[str] = None
    index: int
    reason: str


class MigrationReport(BaseModel):
    """What a migration (or a dry run) produced."""
    correlation_id: UUID
    dry_run: bool = False
    performed: bool = True
    started_at: datetime
    finished_at: Optional[datetime] = None
    legacy_projects: int = 0
    vendors_extracted: int = 0
    counts: dict[str, int] = Field(default_factory=dict)
    skipped: list[SkippedRow] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class MigrationStatus(BaseModel):
    """Shape of the stored document, as seen by the migration tooling."""
    schema_version: Optional[str] = None
    has_metadata: bool = False
    has_relational_structure: bool = False
    has_legacy_structure: bool = False
    needs_migration: bool = False
    last_migration: Optional[str] = None
    verdict: str = "empty"
    counts: dict[str, int] = Field(default_factory=dict)


# =============================================================================
# SHAPE DETECTION
# =============================================================================

def has_legacy_shape(document: dict[str, Any]) -> bool:
    """Projects exist and the first one embeds a vendors array."""
    projects = document.get("projects")
    if not isinstance(projects, list) or not projects:
        return False
    first = projects[0]
    return isinstance(first, dict) and isinstance(first.get("vendors"), list)


def has_relational_shape(document: dict[str, Any]) -> bool:
    return any(key in document for key in RELATIONAL_MARKERS)


def needs_migration(document: dict[str, Any]) -> bool:
    return has_legacy_shape(document) and not has_relational_shape(document)


def describe_document(document: dict[str, Any]) -> MigrationStatus:
    metadata = document.get("_metadata") if isinstance(document.get("_metadata"), dict) else None
    legacy = has_legacy_shape(document)
    relational = has_relational_shape(document)

    if relational and legacy:
        verdict = "mixed"
    elif relational:
        verdict = "relational"
    elif legacy:
        verdict = "legacy"
    else:
        verdict = "empty"

    return MigrationStatus(
        schema_version=metadata.get("version") if metadata else None,
        has_metadata=metadata is not None,
        has_relational_structure=relational,
        has_legacy_structure=legacy,
        needs_migration=legacy and not relational,
        last_migration=metadata.get("lastMigration") if metadata else None,
        verdict=verdict,
        counts={
            name: len(document[name])
            for name in ENTITY_COLLECTIONS
            if isinstance(document.get(name), list)
        },
    )


# =============================================================================
# CONVERSION
# =============================================================================

def _validated(model: type[EntityModel], record: dict[str, Any], where: str) -> dict[str, Any]:
    try:
        return model.model_validate(record).to_document()
    except ValidationError as e:
        issues = [
            f"{where}: {'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg')}"
            for err in e.errors()
        ]
        raise ValidationFailedError(f"Invalid legacy row at {where}", issues=issues) from e


def _match_role(role: Any) -> Optional[UserRole]:
    if isinstance(role, str):
        for member in UserRole:
            if member.value.lower() == role.strip().lower():
                return member
    return None


# Indicator and status spellings written by the legacy services and UI
LEGACY_TRAFFIC_LIGHTS = {
    "green": TrafficLight.GREEN,
    "on track": TrafficLight.GREEN,
    "yellow": TrafficLight.YELLOW,
    "at risk": TrafficLight.YELLOW,
    "caution": TrafficLight.YELLOW,
    "red": TrafficLight.RED,
    "off track": TrafficLight.RED,
    "behind": TrafficLight.RED,
}

LEGACY_PROJECT_STATUSES = {
    "active": ProjectStatus.ACTIVE,
    "planning": ProjectStatus.ACTIVE,
    "in progress": ProjectStatus.ACTIVE,
    "completed": ProjectStatus.COMPLETED,
    "complete": ProjectStatus.COMPLETED,
    "on hold": ProjectStatus.ON_HOLD,
    "cancelled": ProjectStatus.CANCELLED,
    "canceled": ProjectStatus.CANCELLED,
}


def _list(value: Any) -> list[Any]:
    return value if isinstance(value, list) else []


class LegacyConverter:
    """
    Pure conversion of one legacy document into the normalized shape.

    Never touches a store. Every produced row is validated through its
    pydantic model.
    """

    def __init__(self, settings: MigrationSettings, now: Optional[str] = None):
        self._settings = settings
        self._now = now or datetime.now(timezone.utc).isoformat()
        self.skipped: list[SkippedRow] = []
        self.warnings: list[str] = []

    def convert(self, legacy: dict[str, Any]) -> dict[str, Any]:
        document = default_document(created_at=self._now)
        projects = [p for p in _list(legacy.get("projects")) if isinstance(p, dict)]
        project_ids = self._assign_project_ids(projects)

        for key in legacy:
            if key not in _NORMALIZED_KEYS:
                self.warnings.append(f"Dropped top-level key '{key}'")
        for key in ("roles", "systemConfig"):
            if key in legacy:
                document[key] = copy.deepcopy(legacy[key])

        document["users"] = self.convert_users(_list(legacy.get("users")))

        vendor_map = self.extract_vendors(projects)

        for project, project_id in zip(projects, project_ids):
            document["projects"].append(self.convert_project(project, project_id, vendor_map))

        for project, project_id in zip(projects, project_ids):
            for row in _list(project.get("fundingLines")):
                document["fundingLines"].append(
                    self.convert_funding_line(row, project_id, len(document["fundingLines"]) + 1)
                )
            for index, row in enumerate(_list(project.get("vendors"))):
                link = self.convert_project_vendor(
                    row, index, project, project_id, vendor_map, len(document["projectVendors"]) + 1
                )
                if link is not None:
                    document["projectVendors"].append(link)
            for row in _list(project.get("changeOrders")):
                document["changeOrders"].append(
                    self.convert_change_order(row, project_id, vendor_map, len(document["changeOrders"]) + 1)
                )

        document["vendors"] = self.finalize_vendors(vendor_map, document)
        return document

    def _assign_project_ids(self, projects: list[dict[str, Any]]) -> list[str]:
        ids: list[str] = []
        for index, project in enumerate(projects):
            raw = project.get("id")
            if raw is None or raw == "":
                continue
            project_id = str(raw)
            if project_id in ids:
                raise ValidationFailedError(
                    f"Duplicate legacy project id {project_id!r}",
                    issues=[f"projects[{index}].id: duplicate value {project_id!r}"],
                )
            ids.append(project_id)

        taken = set(ids)
        result = []
        for project in projects:
            raw = project.get("id")
            if raw is None or raw == "":
                generated = generate_project_id()
                while generated in taken:
                    generated = generate_project_id()
                taken.add(generated)
                self.warnings.append(f"Project '{project.get('name')}' had no id; assigned {generated}")
                result.append(generated)
            else:
                result.append(str(raw))
        return result

    def convert_users(self, users: list[Any]) -> list[dict[str, Any]]:
        converted = []
        for index, user in enumerate(users):
            if not isinstance(user, dict):
                self.skipped.append(SkippedRow(collection="users", index=index, reason="not an object"))
                continue
            role = _match_role(user.get("role"))
            if role is None:
                self.warnings.append(
                    f"User {user.get('id')} has unknown role {user.get('role')!r}; set to Project Manager"
                )
                role = UserRole.PROJECT_MANAGER
            record = {
                **user,
                "role": role.value,
                "permissions": permissions_for_role(role.value),
                "isActive": user.get("isActive", True),
                "createdAt": user.get("createdAt") or self._now,
                "updatedAt": user.get("updatedAt") or self._now,
            }
            converted.append(_validated(User, record, f"users[{index}]"))
        return converted

    def extract_vendors(self, projects: list[dict[str, Any]]) -> dict[str, dict[str, Any]]:
        """
        Distinct vendor names, in first-seen order: each project's inline
        vendors, then its contractor.
        """
        vendor_map: dict[str, dict[str, Any]] = {}

        def _add(name: str, record: dict[str, Any]) -> None:
            vendor_map[name] = {
                "id": len(vendor_map) + 1,
                "name": name,
                "isActive": True,
                "createdAt": self._now,
                "updatedAt": self._now,
                **record,
            }

        for project in projects:
            for vendor in _list(project.get("vendors")):
                if not isinstance(vendor, dict):
                    continue
                name = vendor.get("name")
                if not isinstance(name, str) or not name or name in vendor_map:
                    continue
                email = vendor.get("email") or ""
                if email and not EMAIL_PATTERN.match(email):
                    self.warnings.append(f"Vendor {name!r} had invalid email {email!r}; dropped")
                    email = ""
                _add(name, {
                    "contactName": vendor.get("contactName") or "",
                    "email": email,
                    "phone": vendor.get("phone") or "",
                    "vendorType": "Contractor",
                })

            contractor = project.get("contractor")
            if isinstance(contractor, str) and contractor and contractor not in vendor_map:
                _add(contractor, {"vendorType": "Primary Contractor"})

        return vendor_map

    def finalize_vendors(
        self,
        vendor_map: dict[str, dict[str, Any]],
        document: dict[str, Any],
    ) -> list[dict[str, Any]]:
        """Fill the rollup metadata from the migrated links and projects."""
        status_by_project = {p["id"]: p.get("status") for p in document["projects"]}
        vendors = []
        for vendor in vendor_map.values():
            links = [link for link in document["projectVendors"] if link["vendorId"] == vendor["id"]]
            project_ids = {link["projectId"] for link in links}
            project_ids.update(
                p["id"] for p in document["projects"] if p.get("primaryVendorId") == vendor["id"]
            )
            vendor["metadata"] = {
                "totalProjects": len(project_ids),
                "activeProjects": sum(
                    1 for pid in project_ids
                    if status_by_project.get(pid) == ProjectStatus.ACTIVE.value
                ),
                "averageRating": self._settings.default_performance_rating,
                "lastContractDate": self._now,
                "totalContractValue": sum(link["contractValue"] for link in links),
            }
            vendors.append(_validated(Vendor, vendor, f"vendors[{vendor['name']!r}]"))
        return vendors

    def _legacy_value(
        self,
        project: dict[str, Any],
        project_id: str,
        key: str,
        mapping: dict[str, Enum],
        default: Enum,
    ) -> str:
        """Map a legacy spelling onto its enum value; unknown spellings get the default."""
        raw = project.get(key)
        if raw is None or raw == "":
            return default.value
        member = mapping.get(raw.strip().lower()) if isinstance(raw, str) else None
        if member is None:
            self.warnings.append(
                f"Project {project_id} has unknown {key} {raw!r}; set to {default.value}"
            )
            return default.value
        return member.value

    def convert_project(
        self,
        project: dict[str, Any],
        project_id: str,
        vendor_map: dict[str, dict[str, Any]],
    ) -> dict[str, Any]:
        """Regroup the flat legacy fields into the structured project shape."""
        primary = vendor_map.get(project.get("contractor")) if isinstance(project.get("contractor"), str) else None
        approved_tpc = parse_amount(project.get("approvedTPC"))
        eac = parse_amount(project.get("eac"))
        pfmt_data = project.get("pfmtData") if isinstance(project.get("pfmtData"), dict) else {}

        record = {
            "id": project_id,
            "name": project.get("name"),
            "description": project.get("description") or "",
            "status": self._legacy_value(
                project, project_id, "status", LEGACY_PROJECT_STATUSES, ProjectStatus.ACTIVE
            ),
            "reportStatus": project.get("reportStatus") or "Update Required",
            "phase": project.get("phase") or "Planning",
            "category": project.get("category") or "",
            "deliveryMethod": project.get("deliveryMethod") or "",
            "startDate": project.get("startDate"),
            "endDate": project.get("endDate"),
            "ownerId": project.get("ownerId") or self._settings.default_owner_id,
            "primaryVendorId": primary["id"] if primary else None,
            "clientMinistry": project.get("clientMinistry") or "",
            "projectType": project.get("projectType") or "",
            "branch": project.get("branch") or "",
            "location": {
                "geographicRegion": project.get("geographicRegion") or "",
                "municipality": project.get("municipality") or "",
                "address": project.get("projectAddress") or "",
                "constituency": project.get("constituency") or "",
                "coordinates": {
                    "latitude": project.get("latitude") or None,
                    "longitude": project.get("longitude") or None,
                },
            },
            "building": {
                "name": project.get("buildingName") or "",
                "type": project.get("buildingType") or "",
                "id": project.get("buildingId") or "",
                "primaryOwner": project.get("primaryOwner") or "",
                "squareMeters": project.get("squareMeters") or 0,
                "numberOfStructures": project.get("numberOfStructures") or 0,
                "numberOfJobs": project.get("numberOfJobs") or 0,
            },
            "financial": {
                "approvedTPC": approved_tpc,
                "totalBudget": project.get("totalBudget"),
                "amountSpent": project.get("amountSpent"),
                "taf": project.get("taf"),
                "eac": eac,
                "currentYearCashflow": project.get("currentYearCashflow"),
                "futureYearCashflow": project.get("futureYearCashflow"),
                "currentYearBudgetTarget": project.get("currentYearBudgetTarget"),
                "currentYearApprovedTarget": project.get("currentYearApprovedTarget"),
                "variance": round(eac - approved_tpc, 2),
                "lastFinancialUpdate": project.get("lastPfmtUpdate") or self._now,
            },
            "statusTracking": {
                "schedule": self._legacy_value(
                    project, project_id, "scheduleStatus", LEGACY_TRAFFIC_LIGHTS, TrafficLight.GREEN
                ),
                "budget": self._legacy_value(
                    project, project_id, "budgetStatus", LEGACY_TRAFFIC_LIGHTS, TrafficLight.GREEN
                ),
                "scope": self._legacy_value(
                    project, project_id, "scopeStatus", LEGACY_TRAFFIC_LIGHTS, TrafficLight.GREEN
                ),
                "scheduleReasonCode": project.get("scheduleReasonCode") or "",
                "budgetReasonCode": project.get("budgetReasonCode") or "",
                "lastStatusUpdate": self._now,
            },
            "workflow": {
                "submittedBy": project.get("submittedBy"),
                "submittedDate": project.get("submittedDate"),
                "approvedBy": project.get("approvedBy"),
                "approvedDate": project.get("approvedDate"),
                "directorApproved": bool(project.get("directorApproved")),
                "seniorPmReviewed": bool(project.get("seniorPmReviewed")),
                "currentStage": "In Progress",
                "nextApprovalRequired": None,
            },
            "pfmt": {
                "lastUpdate": project.get("lastPfmtUpdate"),
                "fileName": project.get("pfmtFileName"),
                "extractedAt": project.get("pfmtExtractedAt"),
                "sheetsProcessed": _list(pfmt_data.get("sheetsProcessed")),
                "dataQuality": "Good",
            },
            "comments": {
                "monthlyComments": project.get("monthlyComments") or "",
                "previousHighlights": project.get("previousHighlights") or "",
                "nextSteps": project.get("nextSteps") or "",
                "budgetVarianceExplanation": project.get("budgetVarianceExplanation") or "",
                "cashflowVarianceExplanation": project.get("cashflowVarianceExplanation") or "",
            },
            "createdAt": project.get("createdAt") or self._now,
            "updatedAt": project.get("updatedAt") or self._now,
            "createdFrom": project.get("createdFrom") or "Migration",
            "lastUpdated": project.get("lastUpdated") or self._now,
        }
        if isinstance(project.get("milestones"), dict) and project["milestones"]:
            record["milestones"] = project["milestones"]

        return _validated(Project, record, f"projects[{project_id}]")

    def convert_funding_line(self, row: dict[str, Any], project_id: str, new_id: int) -> dict[str, Any]:
        approved = parse_amount(row.get("approvedValue"))
        record = {
            "id": new_id,
            "projectId": project_id,
            "source": row.get("source") or "",
            "description": row.get("description") or "",
            "capitalPlanLine": row.get("capitalPlanLine") or "",
            "wbs": row.get("wbs") or "",
            "projectCode": str(row.get("projectId") or ""),
            "approvedValue": approved,
            "currentYearBudget": row.get("currentYearBudget"),
            "currentYearApproved": row.get("currentYearApproved"),
            "spentToDate": 0,
            "remainingBudget": approved,
            "fiscalYear": row.get("fiscalYear") or self._settings.default_fiscal_year,
            "fundingType": row.get("fundingType") or self._settings.default_funding_type,
            "isActive": True,
            "createdAt": self._now,
            "updatedAt": self._now,
        }
        return _validated(FundingLine, record, f"fundingLines[{project_id}]")

    def convert_project_vendor(
        self,
        row: Any,
        index: int,
        project: dict[str, Any],
        project_id: str,
        vendor_map: dict[str, dict[str, Any]],
        new_id: int,
    ) -> Optional[dict[str, Any]]:
        """The link row for one inline vendor; None (and reported) if it has no name."""
        name = row.get("name") if isinstance(row, dict) else None
        if not isinstance(name, str) or not name:
            self.skipped.append(SkippedRow(
                collection="projectVendors",
                project_id=project_id,
                index=index,
                reason="vendor entry without a name",
            ))
            return None

        commitment = row.get("currentCommitment")
        record = {
            "id": new_id,
            "projectId": project_id,
            "vendorId": vendor_map[name]["id"],
            "contractId": str(row.get("contractId") or ""),
            "vendorRole": "Primary Contractor" if name == project.get("contractor") else "Subcontractor",
            "contractValue": commitment,
            "currentCommitment": commitment,
            "billedToDate": row.get("billedToDate"),
            "holdback": row.get("holdback"),
            "percentComplete": row.get("percentSpent"),
            "contractStartDate": project.get("startDate"),
            "contractEndDate": project.get("endDate"),
            "status": "Active",
            "lastBillingDate": row.get("latestCostDate") or None,
            "cmsValue": row.get("cmsValue"),
            "cmsAsOfDate": row.get("cmsAsOfDate") or None,
            "variance": row.get("variance"),
            "performanceRating": self._settings.default_performance_rating,
            "isActive": True,
            "createdAt": self._now,
            "updatedAt": self._now,
        }
        return _validated(ProjectVendor, record, f"projectVendors[{project_id}][{index}]")

    def convert_change_order(
        self,
        row: dict[str, Any],
        project_id: str,
        vendor_map: dict[str, dict[str, Any]],
        new_id: int,
    ) -> dict[str, Any]:
        vendor_name = row.get("vendor")
        vendor = vendor_map.get(vendor_name) if isinstance(vendor_name, str) else None
        record = {
            "id": new_id,
            "projectId": project_id,
            "vendorId": vendor["id"] if vendor else None,
            "contractId": str(row.get("contractId") or ""),
            "referenceNumber": str(row.get("referenceNumber") or ""),
            "status": row.get("status") or "Pending",
            "requestDate": row.get("requestDate") or self._now,
            "approvedDate": row.get("approvedDate") or None,
            "value": row.get("value"),
            "reasonCode": row.get("reasonCode") or "",
            "description": row.get("description") or "",
            "justification": row.get("notes") or "",
            "approvedBy": None,
            "requestedBy": None,
            "attachments": [],
            "isActive": True,
            "createdAt": self._now,
            "updatedAt": self._now,
        }
        return _validated(ChangeOrder, record, f"changeOrders[{project_id}]")


# =============================================================================
# MANAGER
# =============================================================================

class MigrationManager:
    """
    Detects the document's shape and migrates legacy documents in place.
    """

    def __init__(
        self,
        store: DocumentStore,
        settings: Optional[MigrationSettings] = None,
        audit: Optional[AuditLogger] = None,
    ):
        self._store = store
        self._settings = settings or get_settings().migration
        self._audit = audit or AuditLogger()
        self._state = MigrationState.UNKNOWN

    @property
    def state(self) -> MigrationState:
        return self._state

    def check_migration_needed(self) -> bool:
        """True iff the document is legacy-shaped and not yet relational."""
        with self._store.lock:
            needed = needs_migration(self._store.document)
        if needed:
            self._state = MigrationState.NEEDS_MIGRATION
        elif self._state != MigrationState.MIGRATED:
            self._state = MigrationState.NO_MIGRATION_NEEDED
        return needed

    def status(self) -> MigrationStatus:
        with self._store.lock:
            return describe_document(self._store.document)

    def preview(self) -> MigrationReport:
        """Convert a copy of the document and report; the store is untouched."""
        correlation_id = create_correlation_id()
        started_at = datetime.now(timezone.utc)
        legacy = self._store.snapshot()

        if not needs_migration(legacy):
            return MigrationReport(
                correlation_id=correlation_id,
                dry_run=True,
                performed=False,
                started_at=started_at,
                finished_at=datetime.now(timezone.utc),
            )

        converter = LegacyConverter(self._settings)
        converted = converter.convert(legacy)
        return self._report(correlation_id, started_at, legacy, converted, converter, dry_run=True)

    def migrate_to_relational_model(self) -> MigrationReport:
        """
        Migrate the legacy document to the normalized shape.

        A document that does not need migration is left alone and the
        returned report has performed=False.

        Raises:
            MigrationFailedError: If anything failed; the document (in
                memory and persisted) is what it was before the call
        """
        correlation_id = create_correlation_id()
        started_at = datetime.now(timezone.utc)

        with self._store.lock:
            if not self.check_migration_needed():
                self._audit.log_migration_skipped("document is not in legacy shape")
                return MigrationReport(
                    correlation_id=correlation_id,
                    performed=False,
                    started_at=started_at,
                    finished_at=datetime.now(timezone.utc),
                )

            backup = self._store.snapshot()
            legacy_projects = len(_list(backup.get("projects")))
            self._audit.log_migration_started(correlation_id, legacy_projects)
            logger.info("migration_started", correlation_id=str(correlation_id), projects=legacy_projects)

            try:
                converter = LegacyConverter(self._settings, now=started_at.isoformat())
                converted = converter.convert(copy.deepcopy(backup))
                converted["_metadata"]["lastMigration"] = datetime.now(timezone.utc).isoformat()
                self._store.replace(converted)
                self._store.write()
            except Exception as exc:
                self._restore(backup, correlation_id)
                self._state = MigrationState.FAILED
                self._audit.log_migration_failed(correlation_id, exc)
                raise MigrationFailedError(f"Migration failed and was rolled back: {exc}") from exc

            self._state = MigrationState.MIGRATED

        report = self._report(correlation_id, started_at, backup, converted, converter)
        self._audit.log_migration_completed(correlation_id, report.counts)
        logger.info(
            "migration_completed",
            correlation_id=str(correlation_id),
            counts=report.counts,
            skipped=len(report.skipped),
        )
        return report

    def _restore(self, backup: dict[str, Any], correlation_id: UUID) -> None:
        self._store.replace(backup)
        try:
            self._store.write()
        except StoreIOError as e:
            # In-memory document is restored; the file may still be the old one
            logger.error("migration_restore_flush_failed", error=str(e))
            self._audit.log_error(
                "StoreIOError", str(e), {"stage": "migration_restore"}, correlation_id
            )

    def _report(
        self,
        correlation_id: UUID,
        started_at: datetime,
        legacy: dict[str, Any],
        converted: dict[str, Any],
        converter: LegacyConverter,
        dry_run: bool = False,
    ) -> MigrationReport:
        return MigrationReport(
            correlation_id=correlation_id,
            dry_run=dry_run,
            started_at=started_at,
            finished_at=datetime.now(timezone.utc),
            legacy_projects=len(_list(legacy.get("projects"))),
            vendors_extracted=len(converted["vendors"]),
            counts={name: len(converted[name]) for name in ENTITY_COLLECTIONS},
            skipped=converter.skipped,
            warnings=converter.warnings,
        )
