"""
Repository registry.

One repository per collection over a shared store, reachable by
attribute (repos.funding_lines) or by collection name
(repos["fundingLines"]).
"""

import random
from typing import Iterator, Optional

from pfmt.audit import AuditLogger
from pfmt.repositories.base import Repository
from pfmt.repositories.entities import (
    ChangeOrderRepository,
    FileRepository,
    FundingLineRepository,
    ProjectAssignmentRepository,
    ProjectVendorRepository,
    UserRepository,
    VendorRepository,
)
from pfmt.repositories.project import ProjectRepository
from pfmt.storage.interface import DocumentStore


class RepositoryRegistry:
    """The eight repositories of the normalized store."""

    def __init__(
        self,
        store: DocumentStore,
        audit: Optional[AuditLogger] = None,
        rng: Optional[random.Random] = None,
    ):
        self.store = store
        audit = audit or AuditLogger()

        self.users = UserRepository(store, audit)
        self.vendors = VendorRepository(store, audit)
        self.projects = ProjectRepository(store, audit, rng=rng)
        self.project_assignments = ProjectAssignmentRepository(store, audit)
        self.funding_lines = FundingLineRepository(store, audit)
        self.project_vendors = ProjectVendorRepository(store, audit)
        self.change_orders = ChangeOrderRepository(store, audit)
        self.files = FileRepository(store, audit)

        self._by_collection: dict[str, Repository] = {
            repo.collection: repo
            for repo in (
                self.users,
                self.vendors,
                self.projects,
                self.project_assignments,
                self.funding_lines,
                self.project_vendors,
                self.change_orders,
                self.files,
            )
        }

    def __getitem__(self, collection: str) -> Repository:
        try:
            return self._by_collection[collection]
        except KeyError:
            raise KeyError(f"No repository for collection: {collection}") from None

    def __contains__(self, collection: object) -> bool:
        return collection in self._by_collection

    def __iter__(self) -> Iterator[Repository]:
        return iter(self._by_collection.values())

    def collections(self) -> list[str]:
        return list(self._by_collection)
