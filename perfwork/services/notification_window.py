"""
Notification Window Aggregator

Counts plans/appraisals that entered a given state during the current week.
The counts are independent filters over the same record set, not partitions
of it: one record may contribute to several counts.
"""
from datetime import datetime, time, timedelta
from typing import Any, Iterable, Optional, Tuple

from perfwork.models.performance import WorkflowStatus
from perfwork.schemas.performance import NotificationWindowCounts, Principal, as_utc

WEEK_START_OFFSETS = {"monday": 0, "sunday": 1}


def week_bounds(now: datetime, week_start: str = "sunday") -> Tuple[datetime, datetime]:
    """First day of ``now``'s week at 00:00:00 through the seventh day at 23:59:59.999999."""
    now = as_utc(now)
    offset = WEEK_START_OFFSETS[week_start.lower()]
    days_into_week = (now.weekday() + offset) % 7
    first_day = (now - timedelta(days=days_into_week)).date()
    start = datetime.combine(first_day, time.min, tzinfo=now.tzinfo)
    end = datetime.combine(first_day + timedelta(days=6), time.max, tzinfo=now.tzinfo)
    return start, end


def _in_window(value: Optional[datetime], start: datetime, end: datetime) -> bool:
    value = as_utc(value)
    return value is not None and start <= value <= end


def completion_timestamp(record: Any) -> Optional[datetime]:
    # Without a reviewer stage the supervisor approval is the final one
    if record.reviewer_approved_at is not None:
        return record.reviewer_approved_at
    if record.reviewer_id is None:
        return record.supervisor_approved_at
    return None


def in_scope(principal: Principal, record: Any) -> bool:
    if principal.is_privileged:
        return True
    return principal.employee_id is not None and record.employee_id == principal.employee_id


def count_window(
    principal: Principal,
    records: Iterable[Any],
    now: datetime,
    week_start: str = "sunday",
) -> NotificationWindowCounts:
    """
    Compute the weekly counts for ``principal`` over ``records``.

    Records outside the principal's scope are ignored, so callers may pass an
    organization-wide list; a principal without an employee record who is not
    privileged always gets zeros.
    """
    start, end = week_bounds(now, week_start)
    counts = NotificationWindowCounts(
        scope="organization" if principal.is_privileged else "self",
        window_start=start,
        window_end=end,
    )
    for record in records:
        if not in_scope(principal, record):
            continue
        status = WorkflowStatus(record.status)
        if status == WorkflowStatus.SUBMITTED and _in_window(record.submitted_at, start, end):
            counts.due_this_week += 1
        if status == WorkflowStatus.DRAFT and _in_window(record.updated_at, start, end):
            counts.progress_updates += 1
        if status == WorkflowStatus.APPROVED and _in_window(completion_timestamp(record), start, end):
            counts.completed_this_week += 1
    return counts
