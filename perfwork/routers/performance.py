from enum import Enum
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from perfwork.core.config import settings
from perfwork.core.exceptions import WriteConflictError
from perfwork.database import get_db
from perfwork.models.performance import RecordKind
from perfwork.routers.auth_deps import get_current_principal
from perfwork.schemas.performance import (
    AppraisalCreate,
    HierarchyResponse,
    NotificationWindowCounts,
    PlanCreate,
    Principal,
    SupervisedEmployeesResponse,
    WorkflowActionRequest,
    WorkflowHistoryResponse,
    WorkflowRecordResponse,
)
from perfwork.services.hierarchy_service import HierarchyService
from perfwork.services.notification_service import NotificationService
from perfwork.services.workflow_service import WorkflowService


router = APIRouter()


class RecordCollection(str, Enum):
    PLANS = "plans"
    APPRAISALS = "appraisals"

    @property
    def kind(self) -> RecordKind:
        return RecordKind.PLAN if self is RecordCollection.PLANS else RecordKind.APPRAISAL


@retry(
    stop=stop_after_attempt(max(1, settings.workflow_write_retries)),
    wait=wait_exponential(multiplier=0.05, max=1),
    retry=retry_if_exception_type(WriteConflictError),
    reraise=True,
)
def _write_with_retry(operation, *args, **kwargs):
    """Re-run a read-modify-write service call when another writer won the race."""
    return operation(*args, **kwargs)


# --- Hierarchy ---

@router.get("/hierarchy", response_model=HierarchyResponse)
def get_hierarchy(
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    """Supervision forest, selectable supervisors/reviewers and hierarchy depth."""
    return HierarchyService(db).get_hierarchy()


@router.get("/supervised", response_model=SupervisedEmployeesResponse)
def get_supervised(
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    return HierarchyService(db).get_supervised(principal)


# --- Notifications ---

@router.get("/notifications", response_model=NotificationWindowCounts)
def get_notification_counts(
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    return NotificationService(db).weekly_counts(principal)


# --- Records ---

def _created_or_existing(response: Response, record: WorkflowRecordResponse) -> WorkflowRecordResponse:
    if record.existing:
        response.status_code = status.HTTP_200_OK
    return record


@router.post("/plans", response_model=WorkflowRecordResponse, status_code=status.HTTP_201_CREATED)
def create_plan(
    payload: PlanCreate,
    response: Response,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    """Create a draft plan, or return the employee's open draft for the same plan year."""
    record = WorkflowService(db).create(RecordKind.PLAN, payload.model_dump(), principal)
    return _created_or_existing(response, record)


@router.post("/appraisals", response_model=WorkflowRecordResponse, status_code=status.HTTP_201_CREATED)
def create_appraisal(
    payload: AppraisalCreate,
    response: Response,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    record = WorkflowService(db).create(RecordKind.APPRAISAL, payload.model_dump(), principal)
    return _created_or_existing(response, record)


@router.get("/{collection}", response_model=List[WorkflowRecordResponse])
def list_records(
    collection: RecordCollection,
    period: Optional[str] = Query(None, description="Plan year or review period"),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    return WorkflowService(db).list_records(collection.kind, principal, period=period)


@router.get("/{collection}/{record_id}", response_model=WorkflowRecordResponse)
def get_record(
    collection: RecordCollection,
    record_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    return WorkflowService(db).get_record(collection.kind, record_id, principal)


@router.post("/{collection}/{record_id}/submit", response_model=WorkflowHistoryResponse)
def submit_record(
    collection: RecordCollection,
    record_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    return _write_with_retry(WorkflowService(db).submit, collection.kind, record_id, principal)


@router.post("/{collection}/{record_id}/advance", response_model=WorkflowHistoryResponse)
def advance_record(
    collection: RecordCollection,
    record_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    """Move a submitted record into supervisor review, or a supervisor-approved one on to the reviewer."""
    return _write_with_retry(WorkflowService(db).advance, collection.kind, record_id, principal)


@router.post("/{collection}/{record_id}/workflow", response_model=WorkflowHistoryResponse)
def apply_workflow_action(
    collection: RecordCollection,
    record_id: int,
    request: WorkflowActionRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    """
    Comment, request changes, approve or give final approval.

    Returns the updated status and both comment threads.
    """
    return _write_with_retry(
        WorkflowService(db).apply,
        collection.kind,
        record_id,
        principal,
        request.action,
        request.role,
        request.comment,
    )


@router.get("/{collection}/{record_id}/workflow", response_model=WorkflowHistoryResponse)
def get_workflow_history(
    collection: RecordCollection,
    record_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    return WorkflowService(db).get_history(collection.kind, record_id, principal)
