"""
Schema Registry

Declares, per entity type, the required fields, the field hints and the
belongsTo/hasMany relationships between collections.

DESIGN DECISION: The registry is advisory. It is a process-wide constant
that other layers consult (foreign-key checks, hydration, integrity
reports); it enforces nothing by itself. Field-level validation lives in
the pydantic entity models.
"""

import copy
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


SCHEMA_VERSION = "2.0.0"

# Collections of the normalized document, in document order
ENTITY_COLLECTIONS = (
    "users",
    "vendors",
    "projects",
    "projectAssignments",
    "fundingLines",
    "projectVendors",
    "changeOrders",
    "files",
)

# Collections whose rows are retired by flipping isActive
SOFT_DELETE_COLLECTIONS = frozenset({
    "projectAssignments",
    "fundingLines",
    "projectVendors",
    "changeOrders",
    "files",
})


class RelationshipType(str, Enum):
    BELONGS_TO = "belongsTo"
    HAS_MANY = "hasMany"


class Relationship(BaseModel):
    """One declared link from an entity to another collection."""
    model_config = ConfigDict(frozen=True)

    name: str
    type: RelationshipType
    entity: str
    foreign_key: str
    nullable: bool = False


class EntitySchema(BaseModel):
    """Required fields, field hints and relationships for one entity type."""
    model_config = ConfigDict(frozen=True)

    name: str
    collection: str
    id_type: str = "int"
    required: tuple[str, ...] = ()
    fields: dict[str, dict[str, Any]] = Field(default_factory=dict)
    relationships: tuple[Relationship, ...] = ()

    @property
    def belongs_to(self) -> tuple[Relationship, ...]:
        return tuple(r for r in self.relationships if r.type == RelationshipType.BELONGS_TO)

    @property
    def has_many(self) -> tuple[Relationship, ...]:
        return tuple(r for r in self.relationships if r.type == RelationshipType.HAS_MANY)

    def relationship(self, name: str) -> Optional[Relationship]:
        for rel in self.relationships:
            if rel.name == name:
                return rel
        return None


def _belongs_to(name: str, entity: str, foreign_key: str, nullable: bool = False) -> Relationship:
    return Relationship(
        name=name,
        type=RelationshipType.BELONGS_TO,
        entity=entity,
        foreign_key=foreign_key,
        nullable=nullable,
    )


def _has_many(name: str, entity: str, foreign_key: str) -> Relationship:
    return Relationship(
        name=name,
        type=RelationshipType.HAS_MANY,
        entity=entity,
        foreign_key=foreign_key,
    )


_TIMESTAMPS = {
    "createdAt": {"type": "string", "format": "date-time", "autoGenerate": True},
    "updatedAt": {"type": "string", "format": "date-time", "autoUpdate": True},
}


ENTITY_SCHEMAS: dict[str, EntitySchema] = {
    "user": EntitySchema(
        name="user",
        collection="users",
        required=("name", "email", "role"),
        fields={
            "id": {"type": "number", "autoGenerate": True},
            "name": {"type": "string", "maxLength": 100},
            "email": {"type": "string", "format": "email", "unique": True},
            "role": {
                "type": "string",
                "enum": ["Project Manager", "Senior Project Manager", "Director", "Admin"],
            },
            "department": {"type": "string", "maxLength": 50},
            "isActive": {"type": "boolean", "default": True},
            "permissions": {"type": "object"},
            **_TIMESTAMPS,
        },
        relationships=(
            _has_many("ownedProjects", "projects", "ownerId"),
            _has_many("projectAssignments", "projectAssignments", "userId"),
        ),
    ),
    "vendor": EntitySchema(
        name="vendor",
        collection="vendors",
        required=("name",),
        fields={
            "id": {"type": "number", "autoGenerate": True},
            "name": {"type": "string", "maxLength": 200, "unique": True},
            "contactName": {"type": "string", "maxLength": 100},
            "email": {"type": "string", "format": "email"},
            "phone": {"type": "string", "maxLength": 30},
            "vendorType": {"type": "string", "maxLength": 50, "default": "Contractor"},
            "isActive": {"type": "boolean", "default": True},
            **_TIMESTAMPS,
        },
        relationships=(
            _has_many("primaryProjects", "projects", "primaryVendorId"),
            _has_many("projectVendors", "projectVendors", "vendorId"),
        ),
    ),
    "project": EntitySchema(
        name="project",
        collection="projects",
        id_type="str",
        required=("name", "ownerId"),
        fields={
            "id": {"type": "string", "autoGenerate": True},
            "name": {"type": "string", "maxLength": 200},
            "description": {"type": "string", "maxLength": 1000},
            "status": {"type": "string", "enum": ["Active", "Completed", "On Hold", "Cancelled"]},
            "ownerId": {"type": "number", "foreignKey": "users.id"},
            "primaryVendorId": {"type": "number", "foreignKey": "vendors.id", "nullable": True},
            **_TIMESTAMPS,
        },
        relationships=(
            _belongs_to("owner", "users", "ownerId"),
            _belongs_to("primaryVendor", "vendors", "primaryVendorId", nullable=True),
            _has_many("assignments", "projectAssignments", "projectId"),
            _has_many("fundingLines", "fundingLines", "projectId"),
            _has_many("vendors", "projectVendors", "projectId"),
            _has_many("changeOrders", "changeOrders", "projectId"),
            _has_many("files", "files", "projectId"),
        ),
    ),
    "projectAssignment": EntitySchema(
        name="projectAssignment",
        collection="projectAssignments",
        required=("projectId", "userId", "grantedBy"),
        fields={
            "id": {"type": "number", "autoGenerate": True},
            "projectId": {"type": "string", "foreignKey": "projects.id"},
            "userId": {"type": "number", "foreignKey": "users.id"},
            "grantedBy": {"type": "number", "foreignKey": "users.id"},
            "accessLevel": {"type": "string", "enum": ["Viewer", "Editor", "Admin"]},
            "isActive": {"type": "boolean", "default": True},
            **_TIMESTAMPS,
        },
        relationships=(
            _belongs_to("project", "projects", "projectId"),
            _belongs_to("user", "users", "userId"),
            _belongs_to("granter", "users", "grantedBy"),
        ),
    ),
    "fundingLine": EntitySchema(
        name="fundingLine",
        collection="fundingLines",
        required=("projectId",),
        fields={
            "id": {"type": "number", "autoGenerate": True},
            "projectId": {"type": "string", "foreignKey": "projects.id"},
            "approvedValue": {"type": "number"},
            "fiscalYear": {"type": "string"},
            "isActive": {"type": "boolean", "default": True},
            **_TIMESTAMPS,
        },
        relationships=(
            _belongs_to("project", "projects", "projectId"),
        ),
    ),
    "projectVendor": EntitySchema(
        name="projectVendor",
        collection="projectVendors",
        required=("projectId", "vendorId"),
        fields={
            "id": {"type": "number", "autoGenerate": True},
            "projectId": {"type": "string", "foreignKey": "projects.id"},
            "vendorId": {"type": "number", "foreignKey": "vendors.id"},
            "vendorRole": {"type": "string"},
            "isActive": {"type": "boolean", "default": True},
            **_TIMESTAMPS,
        },
        relationships=(
            _belongs_to("project", "projects", "projectId"),
            _belongs_to("vendor", "vendors", "vendorId"),
        ),
    ),
    "changeOrder": EntitySchema(
        name="changeOrder",
        collection="changeOrders",
        required=("projectId",),
        fields={
            "id": {"type": "number", "autoGenerate": True},
            "projectId": {"type": "string", "foreignKey": "projects.id"},
            "vendorId": {"type": "number", "foreignKey": "vendors.id", "nullable": True},
            "status": {"type": "string", "enum": ["Pending", "Approved", "Rejected"]},
            "isActive": {"type": "boolean", "default": True},
            **_TIMESTAMPS,
        },
        relationships=(
            _belongs_to("project", "projects", "projectId"),
            _belongs_to("vendor", "vendors", "vendorId", nullable=True),
        ),
    ),
    "file": EntitySchema(
        name="file",
        collection="files",
        required=("projectId", "fileName", "filePath"),
        fields={
            "id": {"type": "number", "autoGenerate": True},
            "projectId": {"type": "string", "foreignKey": "projects.id"},
            "uploadedBy": {"type": "number", "foreignKey": "users.id", "nullable": True},
            "isLatest": {"type": "boolean", "default": True},
            "isActive": {"type": "boolean", "default": True},
            **_TIMESTAMPS,
        },
        relationships=(
            _belongs_to("project", "projects", "projectId"),
            _belongs_to("uploader", "users", "uploadedBy", nullable=True),
        ),
    ),
}

_BY_COLLECTION = {schema.collection: schema for schema in ENTITY_SCHEMAS.values()}


def get_entity_schema(name: str) -> EntitySchema:
    """
    Look up an entity schema by entity name ("project") or collection
    name ("projects").

    Raises:
        KeyError: If the name is neither
    """
    if name in ENTITY_SCHEMAS:
        return ENTITY_SCHEMAS[name]
    if name in _BY_COLLECTION:
        return _BY_COLLECTION[name]
    raise KeyError(f"Unknown entity type: {name}")


def get_required_fields(name: str) -> tuple[str, ...]:
    return get_entity_schema(name).required


def get_relationships(name: str) -> tuple[Relationship, ...]:
    return get_entity_schema(name).relationships


_LOOKUP_TABLES = {
    "roles": [
        {
            "id": 1,
            "name": "Project Manager",
            "description": "Manages individual projects",
            "permissions": ["create_projects", "edit_own_projects", "view_own_projects"],
            "isActive": True,
        },
        {
            "id": 2,
            "name": "Senior Project Manager",
            "description": "Manages multiple projects and oversees project managers",
            "permissions": [
                "create_projects", "edit_all_projects", "view_all_projects", "approve_reports",
            ],
            "isActive": True,
        },
        {
            "id": 3,
            "name": "Director",
            "description": "Executive oversight of all projects",
            "permissions": [
                "create_projects", "edit_all_projects", "view_all_projects",
                "approve_reports", "manage_users",
            ],
            "isActive": True,
        },
    ],
    "systemConfig": {
        "accessControlEnabled": True,
        "auditLoggingEnabled": True,
        "defaultProjectStatus": "Active",
        "defaultReportStatus": "Update Required",
        "maxFileUploadSize": 10485760,
        "supportedFileTypes": [".pdf", ".docx", ".xlsx", ".jpg", ".png"],
        "dataRetentionDays": 2555,
        "backupFrequency": "daily",
    },
}


def default_document(created_at: Optional[str] = None) -> dict[str, Any]:
    """
    Build a fresh, empty normalized document.

    Every call returns a new object; the lookup tables are deep-copied so
    callers can mutate the result freely.
    """
    document: dict[str, Any] = {
        "_metadata": {
            "version": SCHEMA_VERSION,
            "createdAt": created_at or datetime.now(timezone.utc).isoformat(),
            "lastMigration": None,
            "entities": list(ENTITY_COLLECTIONS),
        },
    }
    for collection in ENTITY_COLLECTIONS:
        document[collection] = []
    document.update(copy.deepcopy(_LOOKUP_TABLES))
    return document
