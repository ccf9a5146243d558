"""
Performance plans and appraisals.

Both records move through the same approval state machine, so they share
their workflow columns through ``WorkflowRecordMixin``. Comment threads and
rating/responsibility lines are stored as JSON and parsed into typed models
at the repository boundary (see ``perfwork.schemas.performance``).
"""
import enum
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, Float, DateTime, JSON
from perfwork.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class WorkflowStatus(str, enum.Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    SUPERVISOR_REVIEW = "supervisor_review"
    REVISION_REQUESTED = "revision_requested"
    SUPERVISOR_APPROVED = "supervisor_approved"
    REVIEWER_ASSESSMENT = "reviewer_assessment"
    APPROVED = "approved"

    @classmethod
    def from_stored(cls, value: str) -> "WorkflowStatus":
        """Normalize a stored status, including the legacy vocabulary."""
        normalized = (value or "").strip().lower()
        if normalized in LEGACY_STATUS_MAP:
            return LEGACY_STATUS_MAP[normalized]
        return cls(normalized)


# Status strings written by older plan/appraisal screens
LEGACY_STATUS_MAP = {
    "reviewer_approved": WorkflowStatus.APPROVED,
    "final_approved": WorkflowStatus.APPROVED,
    "completed": WorkflowStatus.APPROVED,
    "pending": WorkflowStatus.SUBMITTED,
    "pending_review": WorkflowStatus.SUBMITTED,
    "under_review": WorkflowStatus.SUPERVISOR_REVIEW,
    "in_review": WorkflowStatus.SUPERVISOR_REVIEW,
    "supervisor_pending": WorkflowStatus.SUPERVISOR_REVIEW,
    "changes_requested": WorkflowStatus.REVISION_REQUESTED,
    "returned": WorkflowStatus.REVISION_REQUESTED,
    "reviewer_pending": WorkflowStatus.REVIEWER_ASSESSMENT,
    "reviewer_review": WorkflowStatus.REVIEWER_ASSESSMENT,
}


class WorkflowAction(str, enum.Enum):
    COMMENT = "comment"
    REQUEST_CHANGES = "request_changes"
    APPROVE = "approve"
    FINAL_APPROVE = "final_approve"


class WorkflowRole(str, enum.Enum):
    SUPERVISOR = "supervisor"
    REVIEWER = "reviewer"


class RecordKind(str, enum.Enum):
    PLAN = "plan"
    APPRAISAL = "appraisal"


class WorkflowRecordMixin:
    id = Column(Integer, primary_key=True, index=True)
    employee_id = Column(Integer, index=True, nullable=False)
    supervisor_id = Column(Integer, index=True, nullable=True)
    reviewer_id = Column(Integer, index=True, nullable=True)

    status = Column(String, default=WorkflowStatus.DRAFT.value, nullable=False, index=True)

    responsibilities = Column(JSON, default=list)  # [{description, weight, success_indicators}]
    category_ratings = Column(JSON, default=list)  # [{name, rating, weight}]
    overall_rating = Column(Float, nullable=True)

    supervisor_comments = Column(JSON, default=list)
    reviewer_comments = Column(JSON, default=list)

    submitted_at = Column(DateTime(timezone=True), nullable=True)
    supervisor_approved_at = Column(DateTime(timezone=True), nullable=True)
    reviewer_approved_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow)

    # Optimistic concurrency guard, bumped by every conditional update
    version = Column(Integer, default=1, nullable=False)


class PerformancePlan(WorkflowRecordMixin, Base):
    __tablename__ = "performance_plans"

    plan_year = Column(String, nullable=True)
    title = Column(String, nullable=True)

    def __repr__(self):
        return f"<PerformancePlan {self.id} ({self.status})>"


class PerformanceAppraisal(WorkflowRecordMixin, Base):
    __tablename__ = "performance_appraisals"

    review_period = Column(String, nullable=True)
    plan_id = Column(Integer, nullable=True, index=True)

    def __repr__(self):
        return f"<PerformanceAppraisal {self.id} ({self.status})>"


RECORD_MODELS = {
    RecordKind.PLAN: PerformancePlan,
    RecordKind.APPRAISAL: PerformanceAppraisal,
}

# Column holding the period a record belongs to; one open record per employee and period
PERIOD_FIELDS = {
    RecordKind.PLAN: "plan_year",
    RecordKind.APPRAISAL: "review_period",
}
