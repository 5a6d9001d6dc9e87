"""
Project Repository

Adds string ids and relationship hydration to the generic repository.

Project ids look like "12:47:K3": two 0-98 segments and a two-character
base-36 suffix. They are scannable by humans but not sequential; a token
that collides with an existing id is simply re-drawn.

Hydration is an in-memory join against the document under the store
lock. The cost is linear in the related collections per project.
"""

import copy
import random
import string
from typing import Any, Optional

from pfmt.repositories.base import Record, Repository, same_id
from pfmt.repositories.criteria import CriteriaInput


_BASE36 = string.digits + string.ascii_uppercase


def generate_project_id(rng: Optional[random.Random] = None) -> str:
    rng = rng or random
    suffix = "".join(rng.choice(_BASE36) for _ in range(2))
    return f"{rng.randint(0, 98)}:{rng.randint(0, 98)}:{suffix}"


def _find(rows: list[Record], entity_id: Any) -> Optional[Record]:
    if entity_id is None:
        return None
    return next((row for row in rows if same_id(row.get("id"), entity_id)), None)


def _active_for(rows: list[Record], project_id: str) -> list[Record]:
    return [
        row for row in rows
        if row.get("projectId") == project_id and row.get("isActive") is not False
    ]


def hydrate_project(document: dict[str, Any], project: Record) -> Record:
    """
    Attach the related entities of one project.

    owner and primaryVendor are rows or None; fundingLines, changeOrders,
    files, vendors and assignments are lists of active rows. Each vendors
    entry is a project-vendor link carrying its resolved `vendor`, each
    assignments entry carries its resolved `user`.
    """
    users = document.get("users") or []
    vendors = document.get("vendors") or []
    project_id = project.get("id")

    hydrated = copy.deepcopy(project)
    hydrated["owner"] = copy.deepcopy(_find(users, project.get("ownerId")))
    hydrated["primaryVendor"] = copy.deepcopy(_find(vendors, project.get("primaryVendorId")))
    hydrated["fundingLines"] = copy.deepcopy(_active_for(document.get("fundingLines") or [], project_id))
    hydrated["changeOrders"] = copy.deepcopy(_active_for(document.get("changeOrders") or [], project_id))
    hydrated["files"] = copy.deepcopy(_active_for(document.get("files") or [], project_id))
    hydrated["vendors"] = [
        {**copy.deepcopy(link), "vendor": copy.deepcopy(_find(vendors, link.get("vendorId")))}
        for link in _active_for(document.get("projectVendors") or [], project_id)
    ]
    hydrated["assignments"] = [
        {**copy.deepcopy(assignment), "user": copy.deepcopy(_find(users, assignment.get("userId")))}
        for assignment in _active_for(document.get("projectAssignments") or [], project_id)
    ]
    return hydrated


# Keys added by hydrate_project; never written back to the store
RELATIONSHIP_KEYS = ("owner", "primaryVendor", "fundingLines", "changeOrders", "files", "vendors", "assignments")


class ProjectRepository(Repository):
    collection = "projects"

    def __init__(self, *args: Any, rng: Optional[random.Random] = None, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self._rng = rng

    def _generate_id(self, rows: list[Record]) -> str:
        taken = {row.get("id") for row in rows}
        while True:
            candidate = generate_project_id(self._rng)
            if candidate not in taken:
                return candidate

    def create(self, data: Record) -> Record:
        return super().create(strip_relationships(data))

    def update(self, entity_id: Any, patch: Record) -> Record:
        return super().update(entity_id, strip_relationships(patch))

    def find_by_owner(self, owner_id: int) -> list[Record]:
        return self.find_many({"ownerId": owner_id})

    def find_by_id_with_relationships(self, project_id: str) -> Optional[Record]:
        with self._store.lock:
            project = self.find_by_id(project_id)
            if project is None:
                return None
            return hydrate_project(self._store.document, project)

    def find_many_with_relationships(self, criteria: Optional[CriteriaInput] = None) -> list[Record]:
        with self._store.lock:
            document = self._store.document
            return [hydrate_project(document, project) for project in self.find_many(criteria)]


def strip_relationships(data: Record) -> Record:
    """Drop hydrated relationship keys so they never reach the document."""
    return {key: value for key, value in data.items() if key not in RELATIONSHIP_KEYS}
