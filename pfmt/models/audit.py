"""
Audit Models for the PFMT Data Layer

Every significant data-layer action produces an audit event.
This provides:
1. Traceability of who changed what
2. Debugging information when a migration or commit fails
3. A visible trail of access decisions

DESIGN DECISION: Audit events go to the structured log only.
They are never written into the document store, which holds entities
and nothing else.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class AuditEventType(str, Enum):
    """
    Types of events we audit.
    """
    # Entity lifecycle
    ENTITY_CREATED = "entity_created"
    ENTITY_UPDATED = "entity_updated"
    ENTITY_DELETED = "entity_deleted"
    ENTITY_DEACTIVATED = "entity_deactivated"

    # Access control
    ACCESS_GRANTED = "access_granted"
    ACCESS_REVOKED = "access_revoked"
    ACCESS_DENIED = "access_denied"

    # Transactions
    TRANSACTION_COMMITTED = "transaction_committed"
    TRANSACTION_ROLLED_BACK = "transaction_rolled_back"

    # Migration
    MIGRATION_STARTED = "migration_started"
    MIGRATION_COMPLETED = "migration_completed"
    MIGRATION_FAILED = "migration_failed"
    MIGRATION_SKIPPED = "migration_skipped"
    BACKUP_CREATED = "backup_created"
    BACKUP_RESTORED = "backup_restored"
    INTEGRITY_ISSUES_FOUND = "integrity_issues_found"

    # System events
    STORE_INITIALIZED = "store_initialized"
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=utc_now,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Collection of the entity (e.g., 'projects', 'vendors')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the entity, as a string (project ids are strings, others ints)"
    )

    # Who did it, when known
    actor_id: Optional[int] = Field(
        default=None,
        description="User that triggered the action"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., one migration run)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    error_type: Optional[str] = None
    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "actor_id": self.actor_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_type": self.error_type,
            "error_message": self.error_message,
        }


def _id(value: Any) -> Optional[str]:
    return None if value is None else str(value)


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.entity_created("projects", "12:34:AB")
        event = AuditEventBuilder.migration_failed(exc, correlation_id)
    """

    @staticmethod
    def entity_created(
        entity_type: str,
        entity_id: Any,
        actor_id: Optional[int] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ENTITY_CREATED,
            entity_type=entity_type,
            entity_id=_id(entity_id),
            actor_id=actor_id,
            description=f"Created {entity_type} {entity_id}",
        )

    @staticmethod
    def entity_updated(
        entity_type: str,
        entity_id: Any,
        fields: list[str],
        actor_id: Optional[int] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ENTITY_UPDATED,
            entity_type=entity_type,
            entity_id=_id(entity_id),
            actor_id=actor_id,
            description=f"Updated {entity_type} {entity_id}",
            details={"fields": fields},
        )

    @staticmethod
    def entity_deleted(
        entity_type: str,
        entity_id: Any,
        actor_id: Optional[int] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ENTITY_DELETED,
            severity=AuditSeverity.WARNING,
            entity_type=entity_type,
            entity_id=_id(entity_id),
            actor_id=actor_id,
            description=f"Deleted {entity_type} {entity_id}",
        )

    @staticmethod
    def entity_deactivated(
        entity_type: str,
        entity_id: Any,
        actor_id: Optional[int] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ENTITY_DEACTIVATED,
            entity_type=entity_type,
            entity_id=_id(entity_id),
            actor_id=actor_id,
            description=f"Deactivated {entity_type} {entity_id}",
        )

    @staticmethod
    def access_granted(
        project_id: str,
        user_id: int,
        access_level: str,
        granted_by: int,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCESS_GRANTED,
            entity_type="projects",
            entity_id=project_id,
            actor_id=granted_by,
            description=f"User {user_id} granted {access_level} access",
            details={"user_id": user_id, "access_level": access_level},
        )

    @staticmethod
    def access_revoked(
        project_id: str,
        user_id: int,
        removed_by: int,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCESS_REVOKED,
            entity_type="projects",
            entity_id=project_id,
            actor_id=removed_by,
            description=f"User {user_id} removed from project",
            details={"user_id": user_id},
        )

    @staticmethod
    def access_denied(
        user_id: int,
        project_id: Optional[str],
        permission: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCESS_DENIED,
            severity=AuditSeverity.WARNING,
            entity_type="projects",
            entity_id=project_id,
            actor_id=user_id,
            description=f"Denied '{permission}' on project {project_id}",
            details={"permission": permission},
        )

    @staticmethod
    def transaction_committed(
        operation_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_COMMITTED,
            correlation_id=correlation_id,
            description=f"Committed {operation_count} staged operations",
            details={"operation_count": operation_count},
        )

    @staticmethod
    def transaction_rolled_back(
        operation_count: int,
        reason: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_ROLLED_BACK,
            severity=AuditSeverity.WARNING,
            correlation_id=correlation_id,
            description=f"Discarded {operation_count} staged operations",
            details={"operation_count": operation_count, "reason": reason},
        )

    @staticmethod
    def migration_started(correlation_id: UUID, legacy_projects: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MIGRATION_STARTED,
            correlation_id=correlation_id,
            description="Migration to relational model started",
            details={"legacy_projects": legacy_projects},
        )

    @staticmethod
    def migration_completed(correlation_id: UUID, counts: dict[str, int]) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MIGRATION_COMPLETED,
            correlation_id=correlation_id,
            description="Migration to relational model completed",
            details={"counts": counts},
        )

    @staticmethod
    def migration_failed(correlation_id: UUID, error: BaseException) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MIGRATION_FAILED,
            severity=AuditSeverity.ERROR,
            correlation_id=correlation_id,
            description="Migration failed, document restored from backup",
            error_type=type(error).__name__,
            error_message=str(error),
        )

    @staticmethod
    def migration_skipped(reason: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MIGRATION_SKIPPED,
            description=f"Migration skipped: {reason}",
        )

    @staticmethod
    def backup_created(path: str, correlation_id: Optional[UUID] = None) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BACKUP_CREATED,
            correlation_id=correlation_id,
            description=f"Backup written to {path}",
            details={"path": path},
        )

    @staticmethod
    def backup_restored(path: str, correlation_id: Optional[UUID] = None) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BACKUP_RESTORED,
            severity=AuditSeverity.WARNING,
            correlation_id=correlation_id,
            description=f"Document restored from {path}",
            details={"path": path},
        )

    @staticmethod
    def integrity_issues_found(issues: list[str]) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.INTEGRITY_ISSUES_FOUND,
            severity=AuditSeverity.WARNING,
            description=f"Integrity check found {len(issues)} issues",
            details={"issues": issues[:50]},
        )

    @staticmethod
    def store_initialized(migrated: bool) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STORE_INITIALIZED,
            description="Data layer initialized",
            details={"migrated": migrated},
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_type=error_type,
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
