"""Repositories over the normalized document."""

from pfmt.repositories.base import (
    Repository,
    SoftDeleteRepository,
    load_relationships,
    next_timestamp,
)
from pfmt.repositories.criteria import (
    Criterion,
    Equals,
    GreaterThan,
    In,
    LessThan,
    NotEquals,
    parse_criteria,
)
from pfmt.repositories.entities import (
    ChangeOrderRepository,
    FileRepository,
    FundingLineRepository,
    ProjectAssignmentRepository,
    ProjectVendorRepository,
    UserRepository,
    VendorRepository,
    is_assignment_active,
)
from pfmt.repositories.project import ProjectRepository, generate_project_id, hydrate_project
from pfmt.repositories.registry import RepositoryRegistry

__all__ = [
    "ChangeOrderRepository",
    "Criterion",
    "Equals",
    "FileRepository",
    "FundingLineRepository",
    "GreaterThan",
    "In",
    "LessThan",
    "NotEquals",
    "ProjectAssignmentRepository",
    "ProjectRepository",
    "ProjectVendorRepository",
    "Repository",
    "RepositoryRegistry",
    "SoftDeleteRepository",
    "UserRepository",
    "VendorRepository",
    "generate_project_id",
    "hydrate_project",
    "is_assignment_active",
    "load_relationships",
    "next_timestamp",
    "parse_criteria",
]
