from pydantic import AfterValidator, AliasChoices, BaseModel, ConfigDict, Field
from typing import Annotated, Dict, List, Optional, Union
from datetime import datetime, timezone

from perfwork.models.performance import WorkflowStatus, WorkflowAction, WorkflowRole, RecordKind


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes; everything we store is UTC
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


UtcDatetime = Annotated[datetime, AfterValidator(as_utc)]


# --- Principal ---
class Principal(BaseModel):
    """Already-authenticated caller, resolved by the host."""
    employee_id: Optional[int] = None
    name: str = ""
    roles: List[str] = []
    permissions: List[str] = []
    is_privileged: bool = False  # HR/admin-equivalent capability, supplied by the host


# --- Embedded record data ---
class WorkflowComment(BaseModel):
    # Older threads were written as {userId, name, comment} with string user ids; accept both shapes
    model_config = ConfigDict(populate_by_name=True)

    id: str
    actor_id: Optional[Union[int, str]] = Field(None, validation_alias=AliasChoices("actor_id", "userId"))
    actor_name: str = Field("", validation_alias=AliasChoices("actor_name", "name"))
    text: str = Field("", validation_alias=AliasChoices("text", "comment"))
    action: WorkflowAction
    timestamp: UtcDatetime


class CategoryRating(BaseModel):
    name: str = ""
    rating: Optional[float] = None
    weight: Optional[float] = None


class Responsibility(BaseModel):
    description: str = ""
    weight: float = 0
    success_indicators: Optional[str] = None


class ResponsibilityInput(Responsibility):
    description: str = Field(..., min_length=1)
    weight: float = Field(0, ge=0, le=100)


# --- Workflow record snapshot ---
class WorkflowRecord(BaseModel):
    """Typed snapshot of a plan or appraisal, as read from storage."""
    model_config = ConfigDict(from_attributes=True)

    kind: RecordKind
    id: int
    employee_id: int
    supervisor_id: Optional[int] = None
    reviewer_id: Optional[int] = None
    status: WorkflowStatus = WorkflowStatus.DRAFT
    responsibilities: List[Responsibility] = []
    category_ratings: List[CategoryRating] = []
    overall_rating: Optional[float] = None
    supervisor_comments: List[WorkflowComment] = []
    reviewer_comments: List[WorkflowComment] = []
    submitted_at: Optional[UtcDatetime] = None
    supervisor_approved_at: Optional[UtcDatetime] = None
    reviewer_approved_at: Optional[UtcDatetime] = None
    created_at: Optional[UtcDatetime] = None
    updated_at: Optional[UtcDatetime] = None
    version: int = 1

    # Kind-specific
    plan_year: Optional[str] = None
    title: Optional[str] = None
    review_period: Optional[str] = None
    plan_id: Optional[int] = None


# --- Requests ---
class WorkflowActionRequest(BaseModel):
    action: WorkflowAction
    role: WorkflowRole
    comment: Optional[str] = None


class PlanCreate(BaseModel):
    employee_id: int
    supervisor_id: Optional[int] = None
    reviewer_id: Optional[int] = None
    plan_year: Optional[str] = None
    title: Optional[str] = None
    responsibilities: List[ResponsibilityInput] = []


class AppraisalCreate(BaseModel):
    employee_id: int
    supervisor_id: Optional[int] = None
    reviewer_id: Optional[int] = None
    review_period: Optional[str] = None
    plan_id: Optional[int] = None
    responsibilities: List[ResponsibilityInput] = []
    category_ratings: List[CategoryRating] = []
    overall_rating: Optional[float] = None


# --- Responses ---
class WorkflowHistoryResponse(BaseModel):
    id: int
    kind: RecordKind
    status: WorkflowStatus
    supervisor_comments: List[WorkflowComment]
    reviewer_comments: List[WorkflowComment]
    supervisor_approved_at: Optional[datetime] = None
    reviewer_approved_at: Optional[datetime] = None
    submitted_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    allowed_actions: Dict[str, List[str]] = {}

    @classmethod
    def from_record(
        cls, record: WorkflowRecord, allowed_actions: Optional[Dict[str, List[str]]] = None
    ) -> "WorkflowHistoryResponse":
        return cls(
            allowed_actions=allowed_actions or {},
            id=record.id,
            kind=record.kind,
            status=record.status,
            supervisor_comments=record.supervisor_comments,
            reviewer_comments=record.reviewer_comments,
            supervisor_approved_at=record.supervisor_approved_at,
            reviewer_approved_at=record.reviewer_approved_at,
            submitted_at=record.submitted_at,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )


class WorkflowRecordResponse(WorkflowRecord):
    derived_overall_rating: Optional[float] = None
    responsibility_weight_total: float = 0
    # Set when a create call handed back the employee's open draft for the period
    existing: bool = False


# --- Hierarchy ---
class EmployeeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    first_name: str
    last_name: str = ""
    email: Optional[str] = None
    position: Optional[str] = None
    department: Optional[str] = None
    supervisor_id: Optional[int] = None
    reviewer_id: Optional[int] = None
    is_supervisor: bool = False
    is_reviewer: bool = False
    is_active: bool = True


class HierarchyNode(BaseModel):
    employee_id: int
    name: str
    position: Optional[str] = None
    direct_reports: List["HierarchyNode"] = []


class HierarchyResponse(BaseModel):
    forest: List[HierarchyNode]
    candidate_supervisors: List[EmployeeResponse]
    depth: int


class SupervisedEmployeesResponse(BaseModel):
    is_supervisor: bool
    is_reviewer: bool
    supervised: List[EmployeeResponse]
    reviewed: List[EmployeeResponse]


# --- Notifications ---
class NotificationWindowCounts(BaseModel):
    due_this_week: int = 0
    progress_updates: int = 0
    completed_this_week: int = 0
    scope: str = "self"  # "organization" | "self"
    window_start: Optional[datetime] = None
    window_end: Optional[datetime] = None


# Resolve forward references for Pydantic V2
HierarchyNode.model_rebuild()
HierarchyResponse.model_rebuild()
