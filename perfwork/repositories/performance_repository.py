"""
Storage collaborator for the workflow engine.

Wraps the SQLAlchemy session and converts rows into typed ``WorkflowRecord``
snapshots. Stored JSON blobs (comment threads, ratings) are parsed here, so a
malformed entry surfaces as ``MalformedRecordError`` at read time instead of
somewhere downstream.

The repository flushes but never commits; the calling service owns the
transaction.
"""
import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import or_
from sqlalchemy.orm import Session

from perfwork.core.exceptions import MalformedRecordError, NotFoundError, WriteConflictError
from perfwork.models.employee import Employee
from perfwork.models.performance import PERIOD_FIELDS, RECORD_MODELS, RecordKind, WorkflowStatus
from perfwork.schemas.performance import WorkflowRecord

logger = logging.getLogger(__name__)

ENTITY_NAMES = {
    RecordKind.PLAN: "Performance plan",
    RecordKind.APPRAISAL: "Performance appraisal",
}

_JSON_FIELDS = ("responsibilities", "category_ratings", "supervisor_comments", "reviewer_comments")
_RECORD_FIELDS = tuple(WorkflowRecord.model_fields)


class PerformanceRepository:
    def __init__(self, db: Session):
        self.db = db

    # ------------------------------------------------------------------
    # Employees
    # ------------------------------------------------------------------
    def get_employee(self, employee_id: Optional[int]) -> Optional[Employee]:
        if employee_id is None:
            return None
        return self.db.query(Employee).filter(Employee.id == employee_id).first()

    def list_employees(self, active_only: bool = True) -> List[Employee]:
        query = self.db.query(Employee)
        if active_only:
            query = query.filter(Employee.is_active == True)  # noqa: E712
        return query.order_by(Employee.id).all()

    # ------------------------------------------------------------------
    # Plans / appraisals
    # ------------------------------------------------------------------
    def to_record(self, row: Any, kind: RecordKind) -> WorkflowRecord:
        data: Dict[str, Any] = {"kind": kind}
        for field in _RECORD_FIELDS:
            if field != "kind" and hasattr(row, field):
                data[field] = getattr(row, field)

        for field in _JSON_FIELDS:
            value = data.get(field)
            if isinstance(value, str):
                try:
                    value = json.loads(value) if value.strip() else []
                except ValueError as e:
                    raise MalformedRecordError(ENTITY_NAMES[kind], row.id, field, str(e)) from e
            data[field] = value or []

        try:
            data["status"] = WorkflowStatus.from_stored(data.get("status"))
        except ValueError as e:
            raise MalformedRecordError(ENTITY_NAMES[kind], row.id, "status", str(e)) from e

        try:
            return WorkflowRecord.model_validate(data)
        except PydanticValidationError as e:
            first = e.errors()[0]
            field = str(first["loc"][0]) if first.get("loc") else "record"
            logger.error(f"Malformed {kind.value} {row.id}: {first.get('msg')}", extra={"field": field})
            raise MalformedRecordError(ENTITY_NAMES[kind], row.id, field, first.get("msg", "invalid")) from e

    def get_plan(self, kind: RecordKind, record_id: int) -> WorkflowRecord:
        kind = RecordKind(kind)
        model = RECORD_MODELS[kind]
        row = self.db.query(model).populate_existing().filter(model.id == record_id).first()
        if row is None:
            raise NotFoundError(ENTITY_NAMES[kind], record_id)
        return self.to_record(row, kind)

    def list_plans(
        self,
        kind: RecordKind,
        employee_id: Optional[int] = None,
        touched_since: Optional[datetime] = None,
        involving: Optional[int] = None,
        period: Optional[str] = None,
    ) -> List[WorkflowRecord]:
        """
        Read-only scan of plans or appraisals.

        ``employee_id`` narrows to one employee's records; ``involving`` keeps
        records where the id is the employee, supervisor or reviewer;
        ``period`` matches the plan year or review period; ``touched_since``
        keeps records with any workflow timestamp at or after the given instant.
        """
        kind = RecordKind(kind)
        model = RECORD_MODELS[kind]
        query = self.db.query(model)
        if employee_id is not None:
            query = query.filter(model.employee_id == employee_id)
        if involving is not None:
            query = query.filter(or_(
                model.employee_id == involving,
                model.supervisor_id == involving,
                model.reviewer_id == involving,
            ))
        if period is not None:
            query = query.filter(getattr(model, PERIOD_FIELDS[kind]) == period)
        if touched_since is not None:
            since = touched_since.astimezone(timezone.utc)
            query = query.filter(or_(
                model.submitted_at >= since,
                model.updated_at >= since,
                model.supervisor_approved_at >= since,
                model.reviewer_approved_at >= since,
            ))
        return [self.to_record(row, kind) for row in query.order_by(model.id).all()]

    def create_plan(self, kind: RecordKind, data: Dict[str, Any]) -> WorkflowRecord:
        kind = RecordKind(kind)
        model = RECORD_MODELS[kind]
        now = datetime.now(timezone.utc)
        row = model(
            **data,
            status=WorkflowStatus.DRAFT.value,
            supervisor_comments=[],
            reviewer_comments=[],
            created_at=now,
            updated_at=now,
            version=1,
        )
        self.db.add(row)
        self.db.flush()
        return self.to_record(row, kind)

    def conditional_update_plan(
        self,
        kind: RecordKind,
        record_id: int,
        expected_version: int,
        new_state: WorkflowRecord,
    ) -> WorkflowRecord:
        """
        Write the workflow fields of ``new_state`` if the stored version still
        equals ``expected_version``.

        Raises:
            WriteConflictError: another writer got there first.
            NotFoundError: the record no longer exists.
        """
        kind = RecordKind(kind)
        model = RECORD_MODELS[kind]
        values: Dict[str, Any] = {
            "status": new_state.status.value,
            "supervisor_comments": [c.model_dump(mode="json") for c in new_state.supervisor_comments],
            "reviewer_comments": [c.model_dump(mode="json") for c in new_state.reviewer_comments],
            "submitted_at": new_state.submitted_at,
            "supervisor_approved_at": new_state.supervisor_approved_at,
            "reviewer_approved_at": new_state.reviewer_approved_at,
            "updated_at": new_state.updated_at,
            "version": expected_version + 1,
        }
        updated = (
            self.db.query(model)
            .filter(model.id == record_id, model.version == expected_version)
            .update(values, synchronize_session=False)
        )
        if updated == 0:
            exists = self.db.query(model.id).filter(model.id == record_id).first()
            if exists is None:
                raise NotFoundError(ENTITY_NAMES[kind], record_id)
            logger.warning(
                f"Write conflict on {kind.value} {record_id} (expected version {expected_version})"
            )
            raise WriteConflictError(ENTITY_NAMES[kind], record_id, expected_version)
        self.db.flush()
        return new_state.model_copy(update={"version": expected_version + 1})
