"""
Workflow Service Layer

Business entry points for plans and appraisals. Each mutating call performs
one logical read, computes the new state with the pure state machine in
``perfwork.services.workflow``, and issues one conditional write guarded by
the record's version. A lost race surfaces as ``WriteConflictError``; the
service itself never retries.

Architecture:
- Router -> Service (this module) -> Repository / pure engine
- Authorization and transition rules live in the pure engine
- Every successful action is written to the audit trail in the same transaction
"""
from datetime import datetime
from typing import Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from perfwork.core.exceptions import (
    AccessDeniedError,
    DuplicateRecordError,
    NotFoundError,
    ValidationError,
)
from perfwork.models.performance import (
    PERIOD_FIELDS,
    RecordKind,
    WorkflowAction,
    WorkflowRole,
    WorkflowStatus,
)
from perfwork.repositories.performance_repository import ENTITY_NAMES, PerformanceRepository
from perfwork.schemas.performance import (
    Principal,
    WorkflowHistoryResponse,
    WorkflowRecord,
    WorkflowRecordResponse,
)
from perfwork.services.audit import AuditService
from perfwork.services.base import BaseService
from perfwork.services.hierarchy import is_authorized_actor
from perfwork.services.rating import overall_rating, responsibility_weight_total
from perfwork.services.workflow import advance_record, allowed_actions, apply_action, submit_record


def _audit_state(record: WorkflowRecord) -> Dict[str, object]:
    return {
        "status": record.status,
        "supervisor_approved_at": record.supervisor_approved_at,
        "reviewer_approved_at": record.reviewer_approved_at,
        "supervisor_comment_count": len(record.supervisor_comments),
        "reviewer_comment_count": len(record.reviewer_comments),
        "version": record.version,
    }


class WorkflowService(BaseService):
    """Domain service for the plan/appraisal approval workflow."""

    def __init__(self, db: Session, repository: Optional[PerformanceRepository] = None):
        super().__init__(db)
        self.repository = repository or PerformanceRepository(db)
        self.audit = AuditService(db)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def _subject(self, record: WorkflowRecord):
        return self.repository.get_employee(record.employee_id)

    def _ensure_can_view(self, principal: Principal, record: WorkflowRecord, subject) -> None:
        if principal.employee_id is not None and principal.employee_id == record.employee_id:
            return
        if any(is_authorized_actor(principal, record, role, subject) for role in WorkflowRole):
            return
        raise AccessDeniedError(f"You are not allowed to view this {record.kind.value}")

    def _record_response(self, record: WorkflowRecord, existing: bool = False) -> WorkflowRecordResponse:
        return WorkflowRecordResponse(
            **record.model_dump(),
            derived_overall_rating=overall_rating(record),
            responsibility_weight_total=responsibility_weight_total(record.responsibilities),
            existing=existing,
        )

    def _allowed_actions(self, principal: Principal, record: WorkflowRecord, subject) -> Dict[str, List[str]]:
        return {
            role.value: [action.value for action in allowed_actions(record.status, role)]
            for role in WorkflowRole
            if is_authorized_actor(principal, record, role, subject)
        }

    def get_record(self, kind: RecordKind, record_id: int, principal: Principal) -> WorkflowRecordResponse:
        """
        Record view with the derived overall rating.

        The derived rating is computed on every read and never written back.
        """
        record = self.repository.get_plan(kind, record_id)
        self._ensure_can_view(principal, record, self._subject(record))

        response = self._record_response(record)
        if record.responsibilities and response.responsibility_weight_total != 100:
            self.log_warning(
                f"Responsibility weights of {kind.value} {record_id} total "
                f"{response.responsibility_weight_total}, expected 100"
            )
        return response

    def list_records(
        self, kind: RecordKind, principal: Principal, period: Optional[str] = None
    ) -> List[WorkflowRecordResponse]:
        """
        Records visible to the caller, optionally narrowed to one plan year or
        review period.

        HR sees every record; everyone else sees the records they own or are
        the designated supervisor or reviewer of.
        """
        kind = RecordKind(kind)
        if principal.is_privileged:
            records = self.repository.list_plans(kind, period=period)
        elif principal.employee_id is None:
            return []
        else:
            records = self.repository.list_plans(kind, involving=principal.employee_id, period=period)
        return [self._record_response(record) for record in records]

    def get_history(self, kind: RecordKind, record_id: int, principal: Principal) -> WorkflowHistoryResponse:
        record = self.repository.get_plan(kind, record_id)
        subject = self._subject(record)
        self._ensure_can_view(principal, record, subject)
        return WorkflowHistoryResponse.from_record(record, self._allowed_actions(principal, record, subject))

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    def _transition(
        self,
        kind: RecordKind,
        record_id: int,
        principal: Principal,
        audit_action: str,
        role: Optional[WorkflowRole],
        compute: Callable[[WorkflowRecord, object], WorkflowRecord],
        details: Optional[dict] = None,
    ) -> WorkflowHistoryResponse:
        record = self.repository.get_plan(kind, record_id)
        subject = self._subject(record)

        new_state = compute(record, subject)
        saved = self.repository.conditional_update_plan(kind, record_id, record.version, new_state)

        self.audit.log_action(
            action=audit_action,
            entity_type=kind.value,
            entity_id=record_id,
            actor_id=principal.employee_id,
            actor_role=role.value if role else None,
            details={"employee_id": record.employee_id, **(details or {})},
            before_state=_audit_state(record),
            after_state=_audit_state(saved),
        )
        self.commit()

        self.log_info(
            f"{kind.value} {record_id}: {audit_action} by {principal.employee_id} "
            f"({record.status.value} -> {saved.status.value})"
        )
        return WorkflowHistoryResponse.from_record(saved, self._allowed_actions(principal, saved, subject))

    def apply(
        self,
        kind: RecordKind,
        record_id: int,
        principal: Principal,
        action: WorkflowAction,
        role: WorkflowRole,
        comment: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> WorkflowHistoryResponse:
        """
        Apply a review action (comment / request_changes / approve / final_approve).

        Returns the updated status with both complete comment threads.

        Raises:
            NotFoundError, AccessDeniedError, InvalidTransitionError,
            WriteConflictError (retryable: re-fetch and resubmit).
        """
        action, role = WorkflowAction(action), WorkflowRole(role)
        return self._transition(
            kind,
            record_id,
            principal,
            audit_action=f"workflow_{action.value}",
            role=role,
            compute=lambda record, subject: apply_action(
                record, action, principal, role, comment, subject=subject, now=now
            ),
            details={"comment": comment},
        )

    def submit(
        self, kind: RecordKind, record_id: int, principal: Principal, now: Optional[datetime] = None
    ) -> WorkflowHistoryResponse:
        return self._transition(
            kind,
            record_id,
            principal,
            audit_action="workflow_submit",
            role=None,
            compute=lambda record, subject: submit_record(record, principal, now=now),
        )

    def advance(
        self, kind: RecordKind, record_id: int, principal: Principal, now: Optional[datetime] = None
    ) -> WorkflowHistoryResponse:
        return self._transition(
            kind,
            record_id,
            principal,
            audit_action="workflow_advance",
            role=WorkflowRole.SUPERVISOR,
            compute=lambda record, subject: advance_record(record, principal, subject=subject, now=now),
        )

    def create(self, kind: RecordKind, payload: dict, principal: Principal) -> WorkflowRecordResponse:
        """
        Create a plan/appraisal in ``draft``.

        Supervisor and reviewer default to the employee's current ones from
        the roster when the payload leaves them out. An employee holds one
        record per period: an open draft for the same period is handed back
        (``existing=True``) instead of creating a second one, and a record
        already past draft blocks the create.

        Raises:
            AccessDeniedError, NotFoundError,
            ValidationError (self-supervision, appraisal linked to another employee's plan),
            DuplicateRecordError.
        """
        kind = RecordKind(kind)
        employee_id = payload["employee_id"]
        if not (principal.is_privileged or principal.employee_id == employee_id):
            raise AccessDeniedError(f"Only the employee or HR may create this {kind.value}")

        employee = self.repository.get_employee(employee_id)
        if employee is None:
            raise NotFoundError("Employee", employee_id)

        data = dict(payload)
        if data.get("supervisor_id") is None:
            data["supervisor_id"] = employee.supervisor_id
        if data.get("reviewer_id") is None:
            data["reviewer_id"] = employee.reviewer_id
        self._validate_new_record(kind, data)

        period = data.get(PERIOD_FIELDS[kind])
        if period is not None:
            same_period = self.repository.list_plans(kind, employee_id=employee_id, period=period)
            drafts = [r for r in same_period if r.status == WorkflowStatus.DRAFT]
            if drafts:
                self.log_info(f"Returning open {kind.value} draft {drafts[-1].id} for employee {employee_id}")
                return self._record_response(drafts[-1], existing=True)
            if same_period:
                blocking = same_period[-1]
                raise DuplicateRecordError(ENTITY_NAMES[kind], blocking.id, period, blocking.status.value)

        record = self.repository.create_plan(kind, data)
        self.audit.log_action(
            action="workflow_create",
            entity_type=kind.value,
            entity_id=record.id,
            actor_id=principal.employee_id,
            actor_role=None,
            details={"employee_id": employee_id},
            after_state=_audit_state(record),
        )
        self.commit()
        self.log_info(f"Created {kind.value} {record.id} for employee {employee_id}")
        return self._record_response(record)

    def _validate_new_record(self, kind: RecordKind, data: dict) -> None:
        employee_id = data["employee_id"]
        for field in ("supervisor_id", "reviewer_id"):
            if data.get(field) == employee_id:
                raise ValidationError(
                    f"An employee cannot be their own {field[:-3]}",
                    details={"field": field, "employee_id": employee_id},
                )

        plan_id = data.get("plan_id")
        if kind == RecordKind.APPRAISAL and plan_id is not None:
            try:
                plan = self.repository.get_plan(RecordKind.PLAN, plan_id)
            except NotFoundError:
                raise ValidationError(
                    f"Performance plan {plan_id} does not exist", details={"field": "plan_id"}
                )
            if plan.employee_id != employee_id:
                raise ValidationError(
                    f"Performance plan {plan_id} belongs to another employee", details={"field": "plan_id"}
                )
