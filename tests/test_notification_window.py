from datetime import datetime, timedelta, timezone

import pytest

from perfwork.models.performance import WorkflowStatus
from perfwork.schemas.performance import Principal, WorkflowRecord
from perfwork.services.notification_window import completion_timestamp, count_window, week_bounds

# Thursday
NOW = datetime(2024, 5, 16, 12, 0, tzinfo=timezone.utc)
TUESDAY = datetime(2024, 5, 14, 9, 0, tzinfo=timezone.utc)
EIGHT_DAYS_AGO = NOW - timedelta(days=8)

EMPLOYEE = Principal(employee_id=10)
HR = Principal(roles=["HR"], is_privileged=True)


def _record(record_id=1, employee_id=10, status=WorkflowStatus.SUBMITTED, **kwargs):
    return WorkflowRecord(kind="plan", id=record_id, employee_id=employee_id, status=status, **kwargs)


def test_sunday_start_week_bounds():
    start, end = week_bounds(NOW, "sunday")
    assert start == datetime(2024, 5, 12, tzinfo=timezone.utc)
    assert end == datetime(2024, 5, 18, 23, 59, 59, 999999, tzinfo=timezone.utc)


def test_monday_start_week_bounds():
    start, end = week_bounds(NOW, "monday")
    assert start == datetime(2024, 5, 13, tzinfo=timezone.utc)
    assert end.date() == datetime(2024, 5, 19).date()


def test_week_bounds_on_the_first_day():
    sunday = datetime(2024, 5, 12, 0, 0, tzinfo=timezone.utc)
    assert week_bounds(sunday, "sunday")[0] == sunday


def test_submission_this_week_is_due():
    records = [_record(1, submitted_at=TUESDAY), _record(2, submitted_at=EIGHT_DAYS_AGO)]
    counts = count_window(EMPLOYEE, records, NOW)
    assert counts.due_this_week == 1
    assert counts.scope == "self"


def test_window_edges_are_inclusive():
    start, end = week_bounds(NOW)
    records = [
        _record(1, submitted_at=start),
        _record(2, submitted_at=end),
        _record(3, submitted_at=start - timedelta(microseconds=1)),
        _record(4, submitted_at=end + timedelta(microseconds=1)),
    ]
    assert count_window(EMPLOYEE, records, NOW).due_this_week == 2


def test_progress_updates_count_drafts_touched_this_week():
    records = [
        _record(1, status=WorkflowStatus.DRAFT, updated_at=TUESDAY),
        _record(2, status=WorkflowStatus.DRAFT, updated_at=EIGHT_DAYS_AGO),
        _record(3, status=WorkflowStatus.SUPERVISOR_REVIEW, updated_at=TUESDAY),
    ]
    counts = count_window(EMPLOYEE, records, NOW)
    assert counts.progress_updates == 1
    assert counts.due_this_week == 0


def test_completed_this_week():
    records = [
        _record(1, status=WorkflowStatus.APPROVED, reviewer_id=30, reviewer_approved_at=TUESDAY),
        # No reviewer stage: supervisor approval completes the record
        _record(2, status=WorkflowStatus.APPROVED, reviewer_id=None, supervisor_approved_at=TUESDAY),
        # Reviewer exists but has not signed off yet
        _record(3, status=WorkflowStatus.APPROVED, reviewer_id=30, supervisor_approved_at=TUESDAY),
        _record(4, status=WorkflowStatus.APPROVED, reviewer_id=30, reviewer_approved_at=EIGHT_DAYS_AGO),
    ]
    assert count_window(EMPLOYEE, records, NOW).completed_this_week == 2


def test_counts_are_independent_filters():
    records = [
        _record(1, status=WorkflowStatus.SUBMITTED, submitted_at=TUESDAY, updated_at=TUESDAY),
        _record(2, status=WorkflowStatus.DRAFT, submitted_at=TUESDAY, updated_at=TUESDAY),
        _record(3, status=WorkflowStatus.APPROVED, submitted_at=TUESDAY, reviewer_approved_at=TUESDAY),
    ]
    counts = count_window(EMPLOYEE, records, NOW)
    assert (counts.due_this_week, counts.progress_updates, counts.completed_this_week) == (1, 1, 1)


def test_non_privileged_sees_only_own_records():
    records = [_record(1, employee_id=10, submitted_at=TUESDAY), _record(2, employee_id=11, submitted_at=TUESDAY)]
    assert count_window(EMPLOYEE, records, NOW).due_this_week == 1

    counts = count_window(HR, records, NOW)
    assert counts.due_this_week == 2
    assert counts.scope == "organization"


def test_principal_without_employee_record_gets_zeros():
    records = [_record(1, submitted_at=TUESDAY)]
    counts = count_window(Principal(roles=["EMPLOYEE"]), records, NOW)
    assert (counts.due_this_week, counts.progress_updates, counts.completed_this_week) == (0, 0, 0)


def test_naive_timestamps_are_treated_as_utc():
    naive_now = datetime(2024, 5, 16, 12, 0)
    record = _record(1, submitted_at=datetime(2024, 5, 14, 9, 0))
    assert count_window(EMPLOYEE, [record], naive_now).due_this_week == 1


def test_counting_is_idempotent():
    records = [_record(1, submitted_at=TUESDAY)]
    assert count_window(EMPLOYEE, records, NOW) == count_window(EMPLOYEE, records, NOW)


@pytest.mark.parametrize("reviewer_id,expected", [(None, TUESDAY), (30, None)])
def test_completion_timestamp_without_reviewer_approval(reviewer_id, expected):
    record = _record(1, status=WorkflowStatus.APPROVED, reviewer_id=reviewer_id, supervisor_approved_at=TUESDAY)
    assert completion_timestamp(record) == expected
