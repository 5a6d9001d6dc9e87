"""
Per-entity repositories.

Thin subclasses of the generic repository that add the unique
constraints and the lookups the service layer needs.
"""

from datetime import datetime, timezone
from typing import Optional

from pfmt.repositories.base import Record, Repository, SoftDeleteRepository, parse_timestamp


class UserRepository(Repository):
    collection = "users"
    unique_fields = ("email",)

    def find_by_email(self, email: str) -> Optional[Record]:
        return self.find_one({"email": email})

    def find_by_role(self, role: str) -> list[Record]:
        return self.find_many({"role": role})


class VendorRepository(Repository):
    """Vendor names are unique and matched exactly."""
    collection = "vendors"
    unique_fields = ("name",)

    def find_by_name(self, name: str) -> Optional[Record]:
        return self.find_one({"name": name})

    def find_active_vendors(self) -> list[Record]:
        return self.find_many({"isActive": {"notEquals": False}})


def is_assignment_active(assignment: Record, now: Optional[datetime] = None) -> bool:
    """Active flag set and not past its expiry."""
    if assignment.get("isActive") is False:
        return False
    expires_at = parse_timestamp(assignment.get("expiresAt"))
    if expires_at is None:
        return True
    return expires_at > (now or datetime.now(timezone.utc))


class ProjectAssignmentRepository(SoftDeleteRepository):
    collection = "projectAssignments"

    def find_by_user(self, user_id: int, active_only: bool = True) -> list[Record]:
        rows = self.find_many({"userId": user_id})
        if active_only:
            rows = [row for row in rows if is_assignment_active(row)]
        return rows

    def find_by_user_and_project(self, user_id: int, project_id: str) -> Optional[Record]:
        """The active, unexpired assignment for (user, project), if any."""
        for row in self.find_many({"userId": user_id, "projectId": project_id}):
            if is_assignment_active(row):
                return row
        return None

    def find_any_by_user_and_project(self, user_id: int, project_id: str) -> Optional[Record]:
        """Latest assignment for (user, project), active or not."""
        rows = self.find_many({"userId": user_id, "projectId": project_id})
        return rows[-1] if rows else None


class FundingLineRepository(SoftDeleteRepository):
    collection = "fundingLines"

    def total_approved(self, project_id: str) -> float:
        return round(sum(row.get("approvedValue") or 0.0 for row in self.find_by_project(project_id)), 2)


class ProjectVendorRepository(SoftDeleteRepository):
    collection = "projectVendors"

    def find_link(self, project_id: str, vendor_id: int) -> Optional[Record]:
        """The active link between a project and a vendor."""
        return self.find_one({
            "projectId": project_id,
            "vendorId": vendor_id,
            "isActive": {"notEquals": False},
        })

    def find_by_vendor(self, vendor_id: int) -> list[Record]:
        return self.find_active({"vendorId": vendor_id})


class ChangeOrderRepository(SoftDeleteRepository):
    collection = "changeOrders"

    def find_by_status(self, project_id: str, status: str) -> list[Record]:
        return self.find_active({"projectId": project_id, "status": status})


class FileRepository(SoftDeleteRepository):
    collection = "files"

    def find_latest(self, project_id: str, file_name: str) -> Optional[Record]:
        return self.find_one({
            "projectId": project_id,
            "fileName": file_name,
            "isLatest": True,
            "isActive": {"notEquals": False},
        })

    def find_versions(self, project_id: str, file_name: str) -> list[Record]:
        return self.find_many({"projectId": project_id, "fileName": file_name})
