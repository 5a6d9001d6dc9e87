"""
Access Control Manager

Decides which projects a user may see, and what they may do on each.

Rules:
- Universal roles (Director, Admin, Senior Project Manager) see every project
- Everyone else sees the projects they own plus those with an active,
  unexpired assignment
- The owner holds every permission on their project
- Anyone else gets the flag of their assignment's permission set
- Only universal roles and the owner may grant access

DESIGN DECISION: The checks are pure reads and answer False rather than
raise. The only error is a missing user, which is a caller bug. The
require_* variants turn a refusal into AccessDeniedError and log it.
"""

from typing import Any, Optional

import structlog

from pfmt.audit import AuditLogger
from pfmt.models.entities import UNIVERSAL_ROLES
from pfmt.repositories.registry import RepositoryRegistry
from pfmt.storage.interface import AccessDeniedError, UserNotFoundError


logger = structlog.get_logger(__name__)

# Permission name -> flag on the assignment's permission set
PERMISSION_FLAGS = {
    "edit": "canEdit",
    "approve": "canApprove",
    "comment": "canComment",
    "viewFinancials": "canViewFinancials",
    "viewReports": "canViewReports",
}


def _role_value(role: Any) -> Optional[str]:
    return getattr(role, "value", role)


def is_universal_role(role: Any) -> bool:
    return _role_value(role) in UNIVERSAL_ROLES


class AccessControlManager:
    """Role, ownership and assignment based project access."""

    def __init__(self, repos: RepositoryRegistry, audit: Optional[AuditLogger] = None):
        self._repos = repos
        self._audit = audit or AuditLogger()

    def _require_user(self, user_id: int) -> dict[str, Any]:
        user = self._repos.users.find_by_id(user_id)
        if user is None:
            raise UserNotFoundError(user_id)
        return user

    def get_accessible_project_ids(self, user_id: int, user_role: Optional[Any] = None) -> list[str]:
        """
        Ids of every project the user may see.

        When no role is passed the stored user's role is used.

        Raises:
            UserNotFoundError: If the user does not exist
        """
        user = self._require_user(user_id)
        role = _role_value(user_role) or user.get("role")

        with self._repos.store.lock:
            project_ids = [project["id"] for project in self._repos.projects.find_all()]
            if is_universal_role(role):
                return project_ids

            known = set(project_ids)
            accessible = [
                project["id"] for project in self._repos.projects.find_by_owner(user_id)
            ]
            for assignment in self._repos.project_assignments.find_by_user(user_id):
                project_id = assignment.get("projectId")
                if project_id in known and project_id not in accessible:
                    accessible.append(project_id)
            return accessible

    def can_access_project(
        self,
        user_id: int,
        project_id: str,
        permission: str = "view",
        user_role: Optional[Any] = None,
    ) -> bool:
        if project_id not in self.get_accessible_project_ids(user_id, user_role):
            return False
        if permission == "view":
            return True
        return self.has_project_permission(user_id, project_id, permission)

    def has_project_permission(self, user_id: int, project_id: str, permission: str) -> bool:
        """
        Owner: always. Otherwise the mapped flag of the active assignment.
        Unknown permission names are refused.
        """
        project = self._repos.projects.find_by_id(project_id)
        if project is None:
            return False
        if project.get("ownerId") == user_id:
            return True

        assignment = self._repos.project_assignments.find_by_user_and_project(user_id, project_id)
        if assignment is None:
            return False
        if permission == "view":
            return True

        flag = PERMISSION_FLAGS.get(permission)
        if flag is None:
            logger.warning("unknown_permission", permission=permission, project_id=project_id)
            return False
        return bool((assignment.get("permissions") or {}).get(flag, False))

    def can_grant_access(self, granter_id: int, project_id: str) -> bool:
        """
        Raises:
            UserNotFoundError: If the granter does not exist
        """
        granter = self._require_user(granter_id)
        if is_universal_role(granter.get("role")):
            return True
        project = self._repos.projects.find_by_id(project_id)
        return project is not None and project.get("ownerId") == granter_id

    def require_access(
        self,
        user_id: int,
        project_id: str,
        permission: str = "view",
        user_role: Optional[Any] = None,
    ) -> None:
        """Raise AccessDeniedError unless can_access_project allows it."""
        if not self.can_access_project(user_id, project_id, permission, user_role):
            self._audit.log_access_denied(user_id, project_id, permission)
            raise AccessDeniedError(user_id, project_id, permission)

    def require_grant(self, granter_id: int, project_id: str) -> None:
        if not self.can_grant_access(granter_id, project_id):
            self._audit.log_access_denied(granter_id, project_id, "grant")
            raise AccessDeniedError(granter_id, project_id, "grant")
