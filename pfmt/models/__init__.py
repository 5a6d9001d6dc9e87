"""
Data Models Package

This package contains all Pydantic models used by the data layer.
Every record written to the document must conform to these schemas.
"""

from pfmt.models.entities import (
    ACCESS_LEVEL_PERMISSIONS,
    ENTITY_MODELS,
    ROLE_PERMISSIONS,
    UNIVERSAL_ROLES,
    AccessLevel,
    Address,
    AssignmentPermissions,
    Building,
    ChangeOrder,
    ChangeOrderStatus,
    EntityModel,
    File,
    Financial,
    FundingLine,
    Location,
    Project,
    ProjectAssignment,
    ProjectStatus,
    ProjectVendor,
    TrafficLight,
    User,
    UserPermissions,
    UserRole,
    Vendor,
    parse_amount,
    permissions_for_access_level,
    permissions_for_role,
)
from pfmt.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Entity models
    "ACCESS_LEVEL_PERMISSIONS",
    "ENTITY_MODELS",
    "ROLE_PERMISSIONS",
    "UNIVERSAL_ROLES",
    "AccessLevel",
    "Address",
    "AssignmentPermissions",
    "Building",
    "ChangeOrder",
    "ChangeOrderStatus",
    "EntityModel",
    "File",
    "Financial",
    "FundingLine",
    "Location",
    "Project",
    "ProjectAssignment",
    "ProjectStatus",
    "ProjectVendor",
    "TrafficLight",
    "User",
    "UserPermissions",
    "UserRole",
    "Vendor",
    "parse_amount",
    "permissions_for_access_level",
    "permissions_for_role",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
