"""Project access control."""

from pfmt.access.control import (
    PERMISSION_FLAGS,
    AccessControlManager,
    is_universal_role,
)
from pfmt.models.entities import permissions_for_access_level

__all__ = [
    "PERMISSION_FLAGS",
    "AccessControlManager",
    "is_universal_role",
    "permissions_for_access_level",
]
