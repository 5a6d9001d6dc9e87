"""
Entity Models for the Normalized Store

These models define the strict schemas for every record kept in the
relational JSON document. They are designed to:
1. Enforce type safety on every create and update
2. Provide clear validation error messages
3. Serialize back to the camelCase document shape
4. Let unknown legacy fields ride along untouched

DESIGN DECISION: Records are stored as plain dicts in the document.
The repository validates each record through its model and stores the
model's JSON dump, so the document always holds normalized values.
"""

import re
from enum import Enum
from typing import Annotated, Any, Optional

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel


# =============================================================================
# VALUE PARSING
# =============================================================================

_AMOUNT_NOISE = re.compile(r"[$,\s%]")

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def parse_amount(value: Any) -> float:
    """
    Parse a money-like value.

    Spreadsheet exports carry amounts as "$1,250,000.00" or "12.5%".
    Empty values are zero. Anything else that does not parse is an error,
    never a silent zero.
    """
    if value is None or value == "":
        return 0.0
    if isinstance(value, bool):
        raise ValueError("Boolean is not an amount")
    if isinstance(value, (int, float)):
        return round(float(value), 2)
    if isinstance(value, str):
        cleaned = _AMOUNT_NOISE.sub("", value)
        try:
            return round(float(cleaned), 2)
        except ValueError:
            raise ValueError(f"Not an amount: {value!r}")
    raise ValueError(f"Not an amount: {value!r}")


Amount = Annotated[float, BeforeValidator(parse_amount)]


def _lookup_enum(enum_cls: type[Enum], value: Any) -> Any:
    """Match enum values case-insensitively (legacy rows are inconsistent)."""
    if isinstance(value, str):
        for member in enum_cls:
            if member.value.lower() == value.strip().lower():
                return member
    return value


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class UserRole(str, Enum):
    """Roles a user can hold."""
    PROJECT_MANAGER = "Project Manager"
    SENIOR_PROJECT_MANAGER = "Senior Project Manager"
    DIRECTOR = "Director"
    ADMIN = "Admin"


UNIVERSAL_ROLES = frozenset({
    UserRole.DIRECTOR.value,
    UserRole.ADMIN.value,
    UserRole.SENIOR_PROJECT_MANAGER.value,
})


class ProjectStatus(str, Enum):
    ACTIVE = "Active"
    COMPLETED = "Completed"
    ON_HOLD = "On Hold"
    CANCELLED = "Cancelled"


class AccessLevel(str, Enum):
    """Access level granted by a project assignment."""
    VIEWER = "Viewer"
    EDITOR = "Editor"
    ADMIN = "Admin"


class ChangeOrderStatus(str, Enum):
    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"


class TrafficLight(str, Enum):
    """Schedule/budget/scope indicator."""
    GREEN = "Green"
    YELLOW = "Yellow"
    RED = "Red"


# =============================================================================
# BASE
# =============================================================================

class DocumentModel(BaseModel):
    """Base for anything stored in the document (camelCase on the wire)."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )

    def to_document(self) -> dict[str, Any]:
        """Dump to the camelCase JSON shape stored in the document."""
        return self.model_dump(by_alias=True, mode="json")


class EntityModel(DocumentModel):
    """A top-level row in one of the entity collections."""
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


# =============================================================================
# PERMISSION SETS
# =============================================================================

class UserPermissions(DocumentModel):
    """System-wide permissions derived from the user's role."""
    can_create_projects: bool = True
    can_view_all_projects: bool = False
    can_approve_reports: bool = False
    can_manage_users: bool = False
    can_manage_vendors: bool = False


class AssignmentPermissions(DocumentModel):
    """Per-project permissions derived from an assignment's access level."""
    can_edit: bool = False
    can_view_financials: bool = True
    can_view_reports: bool = True
    can_comment: bool = False
    can_approve: bool = False


ROLE_PERMISSIONS: dict[str, UserPermissions] = {
    UserRole.PROJECT_MANAGER.value: UserPermissions(),
    UserRole.SENIOR_PROJECT_MANAGER.value: UserPermissions(
        can_view_all_projects=True,
        can_approve_reports=True,
        can_manage_vendors=True,
    ),
    UserRole.DIRECTOR.value: UserPermissions(
        can_view_all_projects=True,
        can_approve_reports=True,
        can_manage_users=True,
        can_manage_vendors=True,
    ),
    UserRole.ADMIN.value: UserPermissions(
        can_view_all_projects=True,
        can_approve_reports=True,
        can_manage_users=True,
        can_manage_vendors=True,
    ),
}

ACCESS_LEVEL_PERMISSIONS: dict[str, AssignmentPermissions] = {
    AccessLevel.VIEWER.value: AssignmentPermissions(),
    AccessLevel.EDITOR.value: AssignmentPermissions(
        can_edit=True,
        can_comment=True,
    ),
    AccessLevel.ADMIN.value: AssignmentPermissions(
        can_edit=True,
        can_comment=True,
        can_approve=True,
    ),
}


def permissions_for_role(role: Optional[str]) -> dict[str, bool]:
    """Permission preset for a role. Unknown roles get the Project Manager preset."""
    preset = ROLE_PERMISSIONS.get(role or "", ROLE_PERMISSIONS[UserRole.PROJECT_MANAGER.value])
    return preset.to_document()


def permissions_for_access_level(access_level: Optional[str]) -> dict[str, bool]:
    """Permission preset for an access level. Unknown levels get the Viewer preset."""
    preset = ACCESS_LEVEL_PERMISSIONS.get(
        access_level or "", ACCESS_LEVEL_PERMISSIONS[AccessLevel.VIEWER.value]
    )
    return preset.to_document()


# =============================================================================
# USERS AND VENDORS
# =============================================================================

class User(EntityModel):
    id: int
    name: str = Field(..., min_length=1, max_length=100)
    email: str = Field(..., max_length=200)
    role: UserRole
    department: str = Field(default="", max_length=50)
    is_active: bool = True
    permissions: UserPermissions = Field(default_factory=UserPermissions)
    last_login_at: Optional[str] = None

    @model_validator(mode='before')
    @classmethod
    def default_permissions_from_role(cls, data: Any) -> Any:
        """Attach the role's preset when no permission set was given."""
        if isinstance(data, dict) and not data.get("permissions"):
            role = _lookup_enum(UserRole, data.get("role"))
            data = {**data, "permissions": permissions_for_role(getattr(role, "value", role))}
        return data

    @field_validator('role', mode='before')
    @classmethod
    def match_role(cls, v: Any) -> Any:
        return _lookup_enum(UserRole, v)

    @field_validator('email')
    @classmethod
    def validate_email(cls, v: str) -> str:
        if not EMAIL_PATTERN.match(v):
            raise ValueError(f"Invalid email address: {v!r}")
        return v


class Address(DocumentModel):
    street: str = ""
    city: str = ""
    province: str = ""
    postal_code: str = ""
    country: str = "Canada"


class VendorMetadata(DocumentModel):
    """Rollup figures kept on the vendor row."""
    total_projects: int = Field(default=0, ge=0)
    active_projects: int = Field(default=0, ge=0)
    average_rating: float = Field(default=0.0, ge=0.0, le=5.0)
    last_contract_date: Optional[str] = None
    total_contract_value: Amount = 0.0


class Vendor(EntityModel):
    """
    A company that holds contracts on projects.

    Vendor names are unique and compared exactly (case and whitespace
    sensitive), so they are deliberately not stripped.
    """
    id: int
    name: str = Field(..., min_length=1, max_length=200)
    contact_name: str = Field(default="", max_length=100)
    email: str = ""
    phone: str = Field(default="", max_length=30)
    address: Address = Field(default_factory=Address)
    vendor_type: str = Field(default="Contractor", max_length=50)
    certifications: list[str] = Field(default_factory=list)
    capabilities: list[str] = Field(default_factory=list)
    is_active: bool = True
    metadata: VendorMetadata = Field(default_factory=VendorMetadata)

    @field_validator('email')
    @classmethod
    def validate_optional_email(cls, v: str) -> str:
        if v and not EMAIL_PATTERN.match(v):
            raise ValueError(f"Invalid email address: {v!r}")
        return v

    @field_validator('certifications', 'capabilities')
    @classmethod
    def dedupe(cls, v: list[str]) -> list[str]:
        """These are sets; keep first-seen order."""
        return list(dict.fromkeys(v))


# =============================================================================
# PROJECT
# =============================================================================

class Coordinates(DocumentModel):
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)


class Location(DocumentModel):
    geographic_region: str = ""
    municipality: str = ""
    address: str = ""
    constituency: str = ""
    coordinates: Coordinates = Field(default_factory=Coordinates)


class Building(DocumentModel):
    name: str = ""
    type: str = ""
    id: str = ""
    primary_owner: str = ""
    square_meters: float = Field(default=0, ge=0)
    number_of_structures: int = Field(default=0, ge=0)
    number_of_jobs: int = Field(default=0, ge=0)


class Financial(DocumentModel):
    approved_tpc: Amount = Field(default=0.0, alias="approvedTPC")
    total_budget: Amount = 0.0
    amount_spent: Amount = 0.0
    taf: Amount = 0.0
    eac: Amount = 0.0
    current_year_cashflow: Amount = 0.0
    future_year_cashflow: Amount = 0.0
    current_year_budget_target: Amount = 0.0
    current_year_approved_target: Amount = 0.0
    variance: Amount = 0.0
    last_financial_update: Optional[str] = None


class StatusTracking(DocumentModel):
    schedule: TrafficLight = TrafficLight.GREEN
    budget: TrafficLight = TrafficLight.GREEN
    scope: TrafficLight = TrafficLight.GREEN
    schedule_reason_code: str = ""
    budget_reason_code: str = ""
    last_status_update: Optional[str] = None

    @field_validator('schedule', 'budget', 'scope', mode='before')
    @classmethod
    def match_light(cls, v: Any) -> Any:
        return _lookup_enum(TrafficLight, v)


class Workflow(DocumentModel):
    submitted_by: Optional[Any] = None
    submitted_date: Optional[str] = None
    approved_by: Optional[Any] = None
    approved_date: Optional[str] = None
    director_approved: bool = False
    senior_pm_reviewed: bool = False
    current_stage: str = "Planning"
    next_approval_required: Optional[str] = None


class PfmtInfo(DocumentModel):
    """Where the project's figures were last extracted from."""
    last_update: Optional[str] = None
    file_name: Optional[str] = None
    extracted_at: Optional[str] = None
    sheets_processed: list[str] = Field(default_factory=list)
    data_quality: str = "Good"


class ProjectComments(DocumentModel):
    monthly_comments: str = ""
    previous_highlights: str = ""
    next_steps: str = ""
    budget_variance_explanation: str = ""
    cashflow_variance_explanation: str = ""


class Milestone(DocumentModel):
    completed: bool = False
    date: Optional[str] = None


PROJECT_PHASES = ("Planning", "Design", "Construction", "Closeout")


def _default_milestones() -> dict[str, dict[str, Milestone]]:
    return {phase: {} for phase in PROJECT_PHASES}


class Project(EntityModel):
    """
    A tracked capital project.

    The structured groups (location, building, financial, ...) replace the
    flat field soup of the legacy records.
    """
    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=200)
    description: str = Field(default="", max_length=1000)
    status: ProjectStatus = ProjectStatus.ACTIVE
    report_status: str = "Update Required"
    phase: str = "Planning"
    category: str = ""
    delivery_method: str = ""
    start_date: Optional[str] = None
    end_date: Optional[str] = None

    # Foreign keys
    owner_id: int
    primary_vendor_id: Optional[int] = None

    client_ministry: str = ""
    project_type: str = ""
    branch: str = ""

    location: Location = Field(default_factory=Location)
    building: Building = Field(default_factory=Building)
    financial: Financial = Field(default_factory=Financial)
    status_tracking: StatusTracking = Field(default_factory=StatusTracking)
    workflow: Workflow = Field(default_factory=Workflow)
    pfmt: PfmtInfo = Field(default_factory=PfmtInfo)
    comments: ProjectComments = Field(default_factory=ProjectComments)
    milestones: dict[str, dict[str, Milestone]] = Field(default_factory=_default_milestones)

    created_from: str = "Manual"
    last_updated: Optional[str] = None

    @field_validator('status', mode='before')
    @classmethod
    def match_status(cls, v: Any) -> Any:
        return _lookup_enum(ProjectStatus, v)


# =============================================================================
# RELATIONSHIP ENTITIES
# =============================================================================

class ProjectAssignment(EntityModel):
    id: int
    project_id: str
    user_id: int
    granted_by: int
    access_level: AccessLevel = AccessLevel.VIEWER
    granted_at: Optional[str] = None
    expires_at: Optional[str] = None
    is_active: bool = True
    permissions: AssignmentPermissions = Field(default_factory=AssignmentPermissions)
    reason: str = ""

    @model_validator(mode='before')
    @classmethod
    def default_permissions_from_level(cls, data: Any) -> Any:
        """Attach the access level's preset when no permission set was given."""
        if isinstance(data, dict) and not data.get("permissions"):
            level = _lookup_enum(AccessLevel, data.get("accessLevel", data.get("access_level")))
            if isinstance(level, Enum):
                level = level.value
            data = {**data, "permissions": permissions_for_access_level(level)}
        return data

    @field_validator('access_level', mode='before')
    @classmethod
    def match_level(cls, v: Any) -> Any:
        return _lookup_enum(AccessLevel, v)


class FundingLine(EntityModel):
    id: int
    project_id: str
    source: str = ""
    description: str = ""
    capital_plan_line: str = ""
    wbs: str = ""
    project_code: str = ""
    approved_value: Amount = 0.0
    current_year_budget: Amount = 0.0
    current_year_approved: Amount = 0.0
    spent_to_date: Amount = 0.0
    remaining_budget: Amount = 0.0
    fiscal_year: str = ""
    funding_type: str = "Capital"
    is_active: bool = True


class ProjectVendor(EntityModel):
    """Join row between a project and a vendor, carrying the contract state."""
    id: int
    project_id: str
    vendor_id: int
    contract_id: str = ""
    vendor_role: str = "Contractor"
    contract_value: Amount = 0.0
    current_commitment: Amount = 0.0
    billed_to_date: Amount = 0.0
    holdback: Amount = 0.0
    percent_complete: Amount = 0.0
    contract_start_date: Optional[str] = None
    contract_end_date: Optional[str] = None
    status: str = "Active"
    last_billing_date: Optional[str] = None
    cms_value: Amount = 0.0
    cms_as_of_date: Optional[str] = None
    variance: Amount = 0.0
    performance_rating: Optional[float] = Field(default=None, ge=0.0, le=5.0)
    is_active: bool = True


class ImpactAnalysis(DocumentModel):
    schedule_impact: str = "None"
    budget_impact: str = "Increase"
    scope_impact: str = "Enhancement"
    risk_assessment: str = "Low"


class ChangeOrder(EntityModel):
    id: int
    project_id: str
    vendor_id: Optional[int] = None
    contract_id: str = ""
    reference_number: str = ""
    status: ChangeOrderStatus = ChangeOrderStatus.PENDING
    request_date: Optional[str] = None
    approved_date: Optional[str] = None
    value: Amount = 0.0
    reason_code: str = ""
    description: str = ""
    justification: str = ""
    approved_by: Optional[int] = None
    requested_by: Optional[int] = None
    impact_analysis: ImpactAnalysis = Field(default_factory=ImpactAnalysis)
    attachments: list[str] = Field(default_factory=list)
    is_active: bool = True

    @field_validator('status', mode='before')
    @classmethod
    def match_status(cls, v: Any) -> Any:
        return _lookup_enum(ChangeOrderStatus, v)


class File(EntityModel):
    """Metadata for a document uploaded against a project."""
    id: int
    project_id: str
    file_name: str = Field(..., min_length=1)
    original_name: str = ""
    file_path: str = Field(..., min_length=1)
    file_size: int = Field(default=0, ge=0)
    mime_type: str = "application/octet-stream"
    category: str = "General"
    uploaded_by: Optional[int] = None
    uploaded_at: Optional[str] = None
    version: str = "1.0"
    is_latest: bool = True
    access_level: str = "Project Team"
    checksum: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    is_active: bool = True


# Collection name -> model used to validate its rows
ENTITY_MODELS: dict[str, type[EntityModel]] = {
    "users": User,
    "vendors": Vendor,
    "projects": Project,
    "projectAssignments": ProjectAssignment,
    "fundingLines": FundingLine,
    "projectVendors": ProjectVendor,
    "changeOrders": ChangeOrder,
    "files": File,
}
