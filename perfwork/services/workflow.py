"""
Workflow State Machine

draft -> submitted -> supervisor_review -> {revision_requested | supervisor_approved}
      -> reviewer_assessment -> {revision_requested | approved}

The functions here take a typed ``WorkflowRecord`` snapshot and return a new
snapshot; they never touch storage. ``WorkflowService`` wraps them with the
single read / conditional write against the repository.
"""
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

from perfwork.core.exceptions import AccessDeniedError, InvalidTransitionError
from perfwork.models.performance import WorkflowAction, WorkflowRole, WorkflowStatus
from perfwork.schemas.performance import Principal, WorkflowComment, WorkflowRecord
from perfwork.services.hierarchy import is_authorized_actor

# (action, role) -> {current status: new status}. ``comment`` is legal from any
# status and never changes it, so it has no entry here.
TRANSITIONS: Dict[Tuple[WorkflowAction, WorkflowRole], Dict[WorkflowStatus, WorkflowStatus]] = {
    (WorkflowAction.REQUEST_CHANGES, WorkflowRole.SUPERVISOR): {
        WorkflowStatus.SUBMITTED: WorkflowStatus.REVISION_REQUESTED,
        WorkflowStatus.SUPERVISOR_REVIEW: WorkflowStatus.REVISION_REQUESTED,
    },
    (WorkflowAction.REQUEST_CHANGES, WorkflowRole.REVIEWER): {
        WorkflowStatus.SUBMITTED: WorkflowStatus.REVISION_REQUESTED,
        WorkflowStatus.SUPERVISOR_REVIEW: WorkflowStatus.REVISION_REQUESTED,
        WorkflowStatus.REVIEWER_ASSESSMENT: WorkflowStatus.REVISION_REQUESTED,
    },
    (WorkflowAction.APPROVE, WorkflowRole.SUPERVISOR): {
        WorkflowStatus.SUPERVISOR_REVIEW: WorkflowStatus.SUPERVISOR_APPROVED,
    },
    (WorkflowAction.FINAL_APPROVE, WorkflowRole.REVIEWER): {
        WorkflowStatus.REVIEWER_ASSESSMENT: WorkflowStatus.APPROVED,
    },
}

SUBMITTABLE = {WorkflowStatus.DRAFT, WorkflowStatus.REVISION_REQUESTED}


def _now(now: Optional[datetime]) -> datetime:
    return now or datetime.now(timezone.utc)


def next_status(
    current: WorkflowStatus, action: WorkflowAction, role: WorkflowRole
) -> WorkflowStatus:
    """Status after ``action``; raises InvalidTransitionError if the edge does not exist."""
    current, action, role = WorkflowStatus(current), WorkflowAction(action), WorkflowRole(role)
    if action == WorkflowAction.COMMENT:
        return current
    target = TRANSITIONS.get((action, role), {}).get(current)
    if target is None:
        raise InvalidTransitionError(current.value, action.value, role.value)
    return target


def allowed_actions(current: WorkflowStatus, role: WorkflowRole) -> list:
    """Actions ``role`` may take from ``current``, for rendering the action buttons."""
    actions = [WorkflowAction.COMMENT]
    for (action, action_role), edges in TRANSITIONS.items():
        if action_role == role and current in edges:
            actions.append(action)
    return actions


def apply_action(
    record: WorkflowRecord,
    action: WorkflowAction,
    actor: Principal,
    role: WorkflowRole,
    comment_text: Optional[str] = None,
    subject: Optional[Any] = None,
    now: Optional[datetime] = None,
) -> WorkflowRecord:
    """
    Apply a review action and return the updated snapshot.

    The actor must be authorized for ``role`` on the record (AccessDeniedError
    otherwise) and the action must be an edge from the current status
    (InvalidTransitionError otherwise). Either failure leaves ``record``
    untouched. Every successful action, including a plain comment, appends an
    entry to the role's comment thread.
    """
    action, role = WorkflowAction(action), WorkflowRole(role)
    if not is_authorized_actor(actor, record, role, subject):
        raise AccessDeniedError(
            f"You are not authorized to act as {role.value} for this {record.kind.value}",
            details={"role": role.value, "record_id": record.id},
        )

    new_status = next_status(record.status, action, role)
    timestamp = _now(now)

    entry = WorkflowComment(
        id=uuid.uuid4().hex,
        actor_id=actor.employee_id,
        actor_name=actor.name,
        text=comment_text or "",
        action=action,
        timestamp=timestamp,
    )

    updates: Dict[str, Any] = {"status": new_status, "updated_at": timestamp}
    if role == WorkflowRole.SUPERVISOR:
        updates["supervisor_comments"] = [*record.supervisor_comments, entry]
    else:
        updates["reviewer_comments"] = [*record.reviewer_comments, entry]

    if action == WorkflowAction.APPROVE:
        updates["supervisor_approved_at"] = timestamp
    elif action == WorkflowAction.FINAL_APPROVE:
        updates["reviewer_approved_at"] = timestamp
    elif action == WorkflowAction.REQUEST_CHANGES and role == WorkflowRole.REVIEWER:
        # Supervisor stage has to sign off again after the employee revises
        updates["supervisor_approved_at"] = None

    return record.model_copy(update=updates)


def submit_record(
    record: WorkflowRecord, actor: Principal, now: Optional[datetime] = None
) -> WorkflowRecord:
    """Employee (or HR) hands a draft or revised record in for review."""
    if not (actor.is_privileged or actor.employee_id == record.employee_id):
        raise AccessDeniedError(f"Only the employee or HR may submit this {record.kind.value}")
    if record.status not in SUBMITTABLE:
        raise InvalidTransitionError(record.status.value, "submit")
    timestamp = _now(now)
    return record.model_copy(
        update={"status": WorkflowStatus.SUBMITTED, "submitted_at": timestamp, "updated_at": timestamp}
    )


def advance_record(
    record: WorkflowRecord,
    actor: Principal,
    subject: Optional[Any] = None,
    now: Optional[datetime] = None,
) -> WorkflowRecord:
    """
    Move a record between stages outside the review table.

    submitted -> supervisor_review; supervisor_approved -> reviewer_assessment,
    or straight to approved when the record has no reviewer.
    """
    if not is_authorized_actor(actor, record, WorkflowRole.SUPERVISOR, subject):
        raise AccessDeniedError(f"Only the supervisor or HR may advance this {record.kind.value}")

    timestamp = _now(now)
    updates: Dict[str, Any] = {"updated_at": timestamp}
    if record.status == WorkflowStatus.SUBMITTED:
        updates["status"] = WorkflowStatus.SUPERVISOR_REVIEW
    elif record.status == WorkflowStatus.SUPERVISOR_APPROVED:
        if record.reviewer_id is not None:
            updates["status"] = WorkflowStatus.REVIEWER_ASSESSMENT
        else:
            updates["status"] = WorkflowStatus.APPROVED
    else:
        raise InvalidTransitionError(record.status.value, "advance")
    return record.model_copy(update=updates)
