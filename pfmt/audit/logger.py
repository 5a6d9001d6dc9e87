"""
Audit Logger

DESIGN DECISION: Every significant data-layer action is logged.
This provides:
1. Traceability of mutations and access decisions
2. Debugging capability when a migration or commit fails
3. A record of which backups were written and restored

The audit logger:
- Writes structured JSON through structlog
- Never raises (a logging failure must not fail a data operation)
- Supports correlation IDs to trace related events
"""

import logging
from typing import Any, Optional
from uuid import UUID, uuid4

import structlog

from pfmt.models.audit import AuditEvent, AuditEventBuilder


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def configure_logging(level: str = "INFO") -> None:
    """Route structlog output through stdlib logging at the given level."""
    logging.basicConfig(format="%(message)s", level=getattr(logging, level.upper(), logging.INFO))
    logging.getLogger().setLevel(getattr(logging, level.upper(), logging.INFO))


class AuditLogger:
    """
    Central audit logging service.

    Events are rendered as structured log lines under the "pfmt.audit"
    logger. Nothing is persisted to the document store.
    """

    def __init__(self, logger: Optional[Any] = None):
        self._logger = logger or structlog.get_logger("pfmt.audit")

    def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Returns False if the event could not be rendered.
        """
        log_dict = event.to_log_dict()

        try:
            if event.severity.value in ("error", "critical"):
                self._logger.error("audit_event", **log_dict)
            elif event.severity.value == "warning":
                self._logger.warning("audit_event", **log_dict)
            elif event.severity.value == "debug":
                self._logger.debug("audit_event", **log_dict)
            else:
                self._logger.info("audit_event", **log_dict)
        except Exception as e:
            # Advisory only; report on stdlib logging and carry on
            logging.getLogger("pfmt.audit").error(
                "audit_log_failed event_id=%s error=%s", log_dict["event_id"], e
            )
            return False

        return True

    def log_created(self, entity_type: str, entity_id: Any, actor_id: Optional[int] = None) -> None:
        self.log(AuditEventBuilder.entity_created(entity_type, entity_id, actor_id))

    def log_updated(
        self,
        entity_type: str,
        entity_id: Any,
        fields: list[str],
        actor_id: Optional[int] = None,
    ) -> None:
        self.log(AuditEventBuilder.entity_updated(entity_type, entity_id, fields, actor_id))

    def log_deleted(self, entity_type: str, entity_id: Any, actor_id: Optional[int] = None) -> None:
        self.log(AuditEventBuilder.entity_deleted(entity_type, entity_id, actor_id))

    def log_deactivated(self, entity_type: str, entity_id: Any, actor_id: Optional[int] = None) -> None:
        self.log(AuditEventBuilder.entity_deactivated(entity_type, entity_id, actor_id))

    def log_access_granted(
        self,
        project_id: str,
        user_id: int,
        access_level: str,
        granted_by: int,
    ) -> None:
        self.log(AuditEventBuilder.access_granted(project_id, user_id, access_level, granted_by))

    def log_access_revoked(self, project_id: str, user_id: int, removed_by: int) -> None:
        self.log(AuditEventBuilder.access_revoked(project_id, user_id, removed_by))

    def log_access_denied(self, user_id: int, project_id: Optional[str], permission: str) -> None:
        self.log(AuditEventBuilder.access_denied(user_id, project_id, permission))

    def log_committed(self, operation_count: int, correlation_id: Optional[UUID] = None) -> None:
        self.log(AuditEventBuilder.transaction_committed(operation_count, correlation_id))

    def log_rolled_back(
        self,
        operation_count: int,
        reason: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(AuditEventBuilder.transaction_rolled_back(operation_count, reason, correlation_id))

    def log_migration_started(self, correlation_id: UUID, legacy_projects: int) -> None:
        self.log(AuditEventBuilder.migration_started(correlation_id, legacy_projects))

    def log_migration_completed(self, correlation_id: UUID, counts: dict[str, int]) -> None:
        self.log(AuditEventBuilder.migration_completed(correlation_id, counts))

    def log_migration_failed(self, correlation_id: UUID, error: BaseException) -> None:
        self.log(AuditEventBuilder.migration_failed(correlation_id, error))

    def log_migration_skipped(self, reason: str) -> None:
        self.log(AuditEventBuilder.migration_skipped(reason))

    def log_backup_created(self, path: str, correlation_id: Optional[UUID] = None) -> None:
        self.log(AuditEventBuilder.backup_created(path, correlation_id))

    def log_backup_restored(self, path: str, correlation_id: Optional[UUID] = None) -> None:
        self.log(AuditEventBuilder.backup_restored(path, correlation_id))

    def log_integrity_issues(self, issues: list[str]) -> None:
        if issues:
            self.log(AuditEventBuilder.integrity_issues_found(issues))

    def log_initialized(self, migrated: bool) -> None:
        self.log(AuditEventBuilder.store_initialized(migrated))

    def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a multi-step flow (e.g., a migration run).
    Pass it through all subsequent operations.
    """
    return uuid4()
