"""
Main Orchestrator for the PFMT Data Layer

This module ties together all the components and defines the
end-to-end project flows:
1. Listing and loading projects (access check -> query -> hydrate -> page)
2. Creating and updating projects (validate -> merge defaults -> unit of work)
3. Managing vendors, assignments and uploaded files
4. Applying data extracted from a PFMT workbook

DESIGN DECISION: DataLayer is an explicitly constructed object, not a
module-level singleton. Whoever builds it owns it, and tests build as
many as they need. initialize() is single-flight: concurrent callers
block until the first run finishes, and a run that raised leaves the
layer uninitialized so the next call tries again.

Multi-entity writes go through a UnitOfWork so a failure half way
leaves nothing behind.
"""

import functools
import random
import threading
from pathlib import Path
from typing import Any, Optional, Union

import structlog
from pydantic import Field

from pfmt.access import AccessControlManager, permissions_for_access_level
from pfmt.audit import AuditLogger, configure_logging
from pfmt.config import Settings, get_settings
from pfmt.migration import MigrationManager
from pfmt.models.entities import (
    AccessLevel,
    Building,
    DocumentModel,
    Financial,
    Location,
    PfmtInfo,
    ProjectComments,
    StatusTracking,
    Workflow,
)
from pfmt.repositories import RepositoryRegistry, next_timestamp
from pfmt.schema import default_document
from pfmt.storage import (
    DocumentStore,
    DuplicateError,
    JsonFileDocumentStore,
    NotFoundError,
    ValidationFailedError,
)
from pfmt.unit_of_work import UnitOfWork


logger = structlog.get_logger(__name__)

Record = dict[str, Any]

# Project groups merged key by key instead of replaced wholesale
NESTED_GROUPS = ("location", "building", "financial", "statusTracking", "workflow", "pfmt", "comments", "milestones")


class UserContext(DocumentModel):
    """The acting user of a request."""
    id: int
    role: Optional[str] = None


class Page(DocumentModel):
    items: list[Record] = Field(default_factory=list)
    page: int
    limit: int
    total: int
    total_pages: int
    has_next: bool
    has_prev: bool


def _user_context(user: Union[UserContext, Record, None]) -> Optional[UserContext]:
    if user is None or isinstance(user, UserContext):
        return user
    return UserContext.model_validate(user)


def merge_groups(base: Record, changes: Record) -> Record:
    """Overlay changes on base; dict values are merged one level deep."""
    merged = dict(base)
    for key, value in changes.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = {**merged[key], **value}
        else:
            merged[key] = value
    return merged


def project_defaults(now: str) -> Record:
    """A blank project, before the caller's fields are merged in."""
    return {
        "status": "Active",
        "reportStatus": "Update Required",
        "phase": "Planning",
        "category": "",
        "deliveryMethod": "",
        "description": "",
        "location": Location().to_document(),
        "building": Building().to_document(),
        "financial": {**Financial().to_document(), "lastFinancialUpdate": now},
        "statusTracking": {**StatusTracking().to_document(), "lastStatusUpdate": now},
        "workflow": Workflow().to_document(),
        "pfmt": PfmtInfo().to_document(),
        "comments": ProjectComments().to_document(),
        "createdFrom": "Manual",
        "lastUpdated": now,
    }


def next_file_version(previous: Any) -> str:
    """"1.0" -> "2.0"; unreadable versions restart the count."""
    try:
        return f"{int(float(previous)) + 1}.0"
    except (TypeError, ValueError):
        return "1.0"


class DataLayer:
    """
    The store and everything built on it.

    Owns the repositories, the access control manager, the migration
    manager and the audit logger.
    """

    def __init__(
        self,
        store: DocumentStore,
        settings: Optional[Settings] = None,
        audit: Optional[AuditLogger] = None,
        rng: Optional[random.Random] = None,
    ):
        self.settings = settings or get_settings()
        self.store = store
        self.audit = audit or AuditLogger()
        self.repos = RepositoryRegistry(store, self.audit, rng=rng)
        self.access = AccessControlManager(self.repos, self.audit)
        self.migration = MigrationManager(store, self.settings.migration, self.audit)

        self._init_lock = threading.Lock()
        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    def initialize(self) -> None:
        """
        Load the document, seed an empty store, migrate a legacy one.

        Runs once per instance. Errors propagate and leave the layer
        uninitialized.
        """
        if self._initialized:
            return

        with self._init_lock:
            if self._initialized:
                return

            self.store.read(refresh=True)
            with self.store.transaction() as document:
                if not document:
                    logger.info("seeding_empty_store")
                    self.store.replace(default_document())
                    self.store.write()

            migrated = False
            if self.migration.check_migration_needed():
                self.migration.migrate_to_relational_model()
                migrated = True

            self._initialized = True

        self.audit.log_initialized(migrated)
        logger.info("data_layer_initialized", migrated=migrated)

    def unit_of_work(self) -> UnitOfWork:
        return UnitOfWork(self.repos, self.audit)


def create_data_layer(
    settings: Optional[Settings] = None,
    store: Optional[DocumentStore] = None,
) -> DataLayer:
    """
    Factory function to create the data layer.

    Args:
        settings: Settings to use; defaults to get_settings()
        store: Store to use; defaults to the JSON file at the
               configured db_path

    Returns:
        An uninitialized DataLayer
    """
    settings = settings or get_settings()
    configure_logging(settings.app.log_level)
    store = store or JsonFileDocumentStore(settings=settings.store)
    return DataLayer(store, settings)


class ProjectService:
    """
    Project-level flows over a DataLayer.

    Every flow initializes the layer first. Access is only checked when
    a user context is given.
    """

    def __init__(self, layer: DataLayer):
        self._layer = layer

    @property
    def repos(self) -> RepositoryRegistry:
        return self._layer.repos

    def _require_project(self, project_id: str) -> Record:
        project = self.repos.projects.find_by_id(project_id)
        if project is None:
            raise NotFoundError("projects", project_id)
        return project

    def _hydrated(self, project_id: str) -> Record:
        project = self.repos.projects.find_by_id_with_relationships(project_id)
        if project is None:
            raise NotFoundError("projects", project_id)
        return project

    # -------------------------------------------------------------------------
    # Projects
    # -------------------------------------------------------------------------

    def get_projects_for_user(
        self,
        user_id: Optional[int],
        user_role: Optional[str] = None,
        filters: Optional[Record] = None,
        page: int = 1,
        limit: Optional[int] = None,
    ) -> Page:
        """
        One page of the projects the user may see, with relationships.

        Without a user every project is listed.

        Raises:
            UserNotFoundError: If the user does not exist
            ValidationFailedError: If page or limit is below 1
        """
        self._layer.initialize()
        limit = limit if limit is not None else self._layer.settings.app.default_page_size
        if page < 1 or limit < 1:
            raise ValidationFailedError(
                "page and limit must be at least 1",
                issues=[f"page={page}", f"limit={limit}"],
            )

        criteria = dict(filters or {})
        if user_id is not None:
            accessible = self._layer.access.get_accessible_project_ids(user_id, user_role)
            criteria["id"] = {"in": accessible}

        projects = self.repos.projects.find_many_with_relationships(criteria)
        total = len(projects)
        total_pages = -(-total // limit)
        start = (page - 1) * limit

        return Page(
            items=projects[start:start + limit],
            page=page,
            limit=limit,
            total=total,
            total_pages=total_pages,
            has_next=page < total_pages,
            has_prev=page > 1,
        )

    def get_project(
        self,
        project_id: str,
        user_id: Optional[int] = None,
        user_role: Optional[str] = None,
    ) -> Record:
        """
        Raises:
            NotFoundError: If the project does not exist
            AccessDeniedError: If a user is given and may not view it
        """
        self._layer.initialize()
        project = self._hydrated(project_id)
        if user_id is not None:
            self._layer.access.require_access(user_id, project_id, "view", user_role)
        return project

    def create_project(self, data: Record, user: Union[UserContext, Record, None]) -> Record:
        """
        Create a project owned by user, with its funding lines and vendor
        links, in one unit of work.

        Returns:
            The created project with relationships

        Raises:
            ValidationFailedError: If name or the user is missing, or any
                row is invalid (nothing is persisted then)
        """
        self._layer.initialize()
        if not data.get("name"):
            raise ValidationFailedError("Missing required field: name", issues=["name: required"])
        context = _user_context(user)
        if context is None:
            raise ValidationFailedError(
                "User context required for project creation", issues=["user: required"]
            )

        funding_lines = [row for row in data.get("fundingLines") or [] if isinstance(row, dict)]
        vendor_links = [row for row in data.get("vendors") or [] if isinstance(row, dict)]

        record = merge_groups(project_defaults(next_timestamp()), data)
        record["ownerId"] = context.id
        record.pop("id", None)

        uow = self._layer.unit_of_work()
        project = uow.projects.create(record)
        for row in funding_lines:
            uow.funding_lines.create({**row, "id": None, "projectId": project.field("id")})
        for row in vendor_links:
            uow.project_vendors.create({**row, "id": None, "projectId": project.field("id")})
        uow.commit()

        logger.info("project_created", project_id=project.value["id"], owner_id=context.id)
        return self._hydrated(project.value["id"])

    def update_project(
        self,
        project_id: str,
        updates: Record,
        user: Union[UserContext, Record, None] = None,
    ) -> Record:
        """
        Merge updates into the project; nested groups merge key by key.

        Stamps lastUpdated, and the group timestamps of financial and
        statusTracking when those groups change.

        Raises:
            NotFoundError: If the project does not exist
            AccessDeniedError: If a user is given and may not edit it
        """
        self._layer.initialize()
        existing = self._require_project(project_id)
        context = _user_context(user)
        if context is not None:
            self._layer.access.require_access(context.id, project_id, "edit", context.role)

        now = next_timestamp()
        patch = {}
        for key, value in updates.items():
            if key in NESTED_GROUPS and isinstance(value, dict) and isinstance(existing.get(key), dict):
                patch[key] = {**existing[key], **value}
            else:
                patch[key] = value
        patch.pop("id", None)
        patch["lastUpdated"] = now
        if isinstance(updates.get("financial"), dict):
            patch["financial"] = {**patch["financial"], "lastFinancialUpdate": now}
        if isinstance(updates.get("statusTracking"), dict):
            patch["statusTracking"] = {**patch["statusTracking"], "lastStatusUpdate": now}

        self.repos.projects.update(project_id, patch)
        return self._hydrated(project_id)

    def delete_project(self, project_id: str, user: Union[UserContext, Record, None] = None) -> Record:
        """
        Hard-delete a project. Its relationship rows are left in place.

        Raises:
            NotFoundError: If the project does not exist
            AccessDeniedError: If a user is given and may not edit it
        """
        self._layer.initialize()
        self._require_project(project_id)
        context = _user_context(user)
        if context is not None:
            self._layer.access.require_access(context.id, project_id, "edit", context.role)
        return self.repos.projects.delete(project_id)

    # -------------------------------------------------------------------------
    # Vendors and assignments
    # -------------------------------------------------------------------------

    def create_vendor(self, data: Record) -> Record:
        """
        Raises:
            ValidationFailedError: If the name is missing
            DuplicateError: If a vendor with this exact name exists
        """
        self._layer.initialize()
        name = data.get("name")
        if not name:
            raise ValidationFailedError("Vendor name is required", issues=["name: required"])
        if self.repos.vendors.find_by_name(name) is not None:
            raise DuplicateError(
                "Vendor with this name already exists", issues=[f"name: duplicate value {name!r}"]
            )
        return self.repos.vendors.create({**data, "id": None})

    def assign_user(
        self,
        project_id: str,
        user_id: int,
        access_level: str,
        granted_by: int,
    ) -> Record:
        """
        Give a user access to a project.

        An earlier assignment of the same user to the project is
        reactivated and updated instead of duplicated.

        Raises:
            ValidationFailedError: If the access level is unknown
            NotFoundError: If the project or the user does not exist
            AccessDeniedError: If granted_by may not grant access
        """
        self._layer.initialize()
        try:
            level = AccessLevel(access_level)
        except ValueError:
            raise ValidationFailedError(
                f"Invalid access level: {access_level!r}",
                issues=[f"accessLevel: must be one of {', '.join(m.value for m in AccessLevel)}"],
            )
        self._require_project(project_id)
        if not self.repos.users.exists(user_id):
            raise NotFoundError("users", user_id)
        self._layer.access.require_grant(granted_by, project_id)

        now = next_timestamp()
        values = {
            "accessLevel": level.value,
            "grantedBy": granted_by,
            "grantedAt": now,
            "expiresAt": None,
            "isActive": True,
            "permissions": permissions_for_access_level(level.value),
        }
        with self.repos.store.transaction():
            existing = self.repos.project_assignments.find_any_by_user_and_project(user_id, project_id)
            if existing is not None:
                assignment = self.repos.project_assignments.update(existing["id"], values)
            else:
                assignment = self.repos.project_assignments.create(
                    {"projectId": project_id, "userId": user_id, **values}
                )

        self._layer.audit.log_access_granted(project_id, user_id, level.value, granted_by)
        return assignment

    def remove_user(self, project_id: str, user_id: int, removed_by: int) -> Record:
        """
        Deactivate the user's active assignment to the project.

        Raises:
            NotFoundError: If there is no active assignment
            AccessDeniedError: If removed_by may not grant access
        """
        self._layer.initialize()
        with self.repos.store.transaction():
            assignment = self.repos.project_assignments.find_by_user_and_project(user_id, project_id)
            if assignment is None:
                raise NotFoundError(
                    "projectAssignments",
                    f"{project_id}/{user_id}",
                    f"User {user_id} has no active assignment to project {project_id}",
                )
            self._layer.access.require_grant(removed_by, project_id)

            removed = self.repos.project_assignments.deactivate(assignment["id"])
        self._layer.audit.log_access_revoked(project_id, user_id, removed_by)
        return removed

    # -------------------------------------------------------------------------
    # Workbook ingestion and uploads
    # -------------------------------------------------------------------------

    def apply_extracted_data(
        self,
        project_id: str,
        extracted: Record,
        file_name: Optional[str] = None,
    ) -> Record:
        """
        Write data extracted from a PFMT workbook onto a project.

        extracted may carry:
            financial: merged into the project's financial group
            fundingLines: replace the project's active funding lines
            vendors: rows with a vendor name and contract figures; the
                vendor is found by exact name or created, and its link to
                the project is updated or created
            changeOrders: created, with `vendor` resolved by exact name
            sheetsProcessed: recorded in the pfmt group

        All writes happen in one unit of work.

        Returns:
            The project with relationships

        Raises:
            NotFoundError: If the project does not exist
            ValidationFailedError: If any row is invalid (nothing is
                persisted then)
        """
        self._layer.initialize()
        self._require_project(project_id)
        funding_lines = [row for row in extracted.get("fundingLines") or [] if isinstance(row, dict)]

        # Staging and commit share one critical section
        with self.repos.store.transaction():
            uow = self._layer.unit_of_work()
            if funding_lines:
                for line in self.repos.funding_lines.find_by_project(project_id):
                    uow.funding_lines.deactivate(line["id"])
                for row in funding_lines:
                    uow.funding_lines.create({**row, "id": None, "projectId": project_id, "isActive": True})

            for row in extracted.get("vendors") or []:
                if isinstance(row, dict) and row.get("name"):
                    uow.stage(
                        f"upsert vendor link {row['name']}",
                        functools.partial(self._upsert_vendor_link, project_id, row),
                    )

            for row in extracted.get("changeOrders") or []:
                if isinstance(row, dict):
                    uow.stage(
                        f"create change order {row.get('referenceNumber', '')}",
                        functools.partial(self._create_change_order, project_id, row),
                    )

            uow.stage(
                f"stamp project {project_id}",
                functools.partial(self._stamp_extraction, project_id, extracted, file_name),
            )
            uow.commit()

        logger.info(
            "extracted_data_applied",
            project_id=project_id,
            funding_lines=len(funding_lines),
            file_name=file_name,
        )
        return self._hydrated(project_id)

    def _upsert_vendor_link(self, project_id: str, row: Record) -> Record:
        vendor = self.repos.vendors.find_by_name(row["name"])
        if vendor is None:
            vendor = self.repos.vendors.create({"name": row["name"], "vendorType": "Contractor", "isActive": True})

        commitment = row.get("currentCommitment") or 0
        values = {
            "projectId": project_id,
            "vendorId": vendor["id"],
            "contractId": str(row.get("contractId") or ""),
            "vendorRole": "Contractor",
            "contractValue": commitment,
            "currentCommitment": commitment,
            "billedToDate": row.get("billedToDate") or 0,
            "holdback": row.get("holdback") or 0,
            "percentComplete": row.get("percentSpent") or 0,
            "status": "Active",
            "isActive": True,
        }
        link = self.repos.project_vendors.find_link(project_id, vendor["id"])
        if link is not None:
            return self.repos.project_vendors.update(link["id"], values)
        return self.repos.project_vendors.create(values)

    def _create_change_order(self, project_id: str, row: Record) -> Record:
        vendor_id = None
        vendor_name = row.get("vendor")
        if isinstance(vendor_name, str) and vendor_name:
            vendor = self.repos.vendors.find_by_name(vendor_name)
            vendor_id = vendor["id"] if vendor else None

        record = {key: value for key, value in row.items() if key != "vendor"}
        return self.repos.change_orders.create(
            {**record, "id": None, "projectId": project_id, "vendorId": vendor_id, "isActive": True}
        )

    def _stamp_extraction(self, project_id: str, extracted: Record, file_name: Optional[str]) -> Record:
        project = self.repos.projects.find_by_id(project_id)
        now = next_timestamp(project.get("lastUpdated"))
        patch: Record = {"lastUpdated": now}

        if isinstance(extracted.get("financial"), dict):
            patch["financial"] = {
                **project.get("financial", {}),
                **extracted["financial"],
                "lastFinancialUpdate": now,
            }
        if file_name:
            patch["pfmt"] = {
                **project.get("pfmt", {}),
                "lastUpdate": now,
                "fileName": file_name,
                "extractedAt": now,
                "sheetsProcessed": list(extracted.get("sheetsProcessed") or []),
            }
        return self.repos.projects.update(project_id, patch)

    def register_file(
        self,
        project_id: str,
        path: Union[str, Path],
        original_name: str,
        size: int,
        mime_type: str,
        uploaded_by: Optional[int] = None,
        category: str = "General",
    ) -> Record:
        """
        Record an uploaded file against a project.

        Uploading a name that already exists adds a new version and
        clears isLatest on the previous one.

        Raises:
            ValidationFailedError: If the project or uploader does not
                exist, or the metadata is invalid
        """
        self._layer.initialize()

        # The version lookup and both writes share one critical section
        with self.repos.store.transaction():
            previous = self.repos.files.find_latest(project_id, original_name)

            uow = self._layer.unit_of_work()
            if previous is not None:
                uow.files.update(previous["id"], {"isLatest": False})
            created = uow.files.create({
                "projectId": project_id,
                "fileName": original_name,
                "originalName": original_name,
                "filePath": str(path),
                "fileSize": size,
                "mimeType": mime_type,
                "category": category,
                "uploadedBy": uploaded_by,
                "uploadedAt": next_timestamp(),
                "version": next_file_version(previous["version"]) if previous else "1.0",
                "isLatest": True,
            })
            uow.commit()
        return created.value
