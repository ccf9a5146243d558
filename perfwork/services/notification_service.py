from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy.orm import Session

from perfwork.core.config import settings
from perfwork.models.performance import RecordKind
from perfwork.repositories.performance_repository import PerformanceRepository
from perfwork.schemas.performance import NotificationWindowCounts, Principal, WorkflowRecord
from perfwork.services.base import BaseService
from perfwork.services.notification_window import count_window, week_bounds


class NotificationService(BaseService):
    def __init__(self, db: Session, repository: Optional[PerformanceRepository] = None):
        super().__init__(db)
        self.repository = repository or PerformanceRepository(db)

    def weekly_counts(self, principal: Principal, now: Optional[datetime] = None) -> NotificationWindowCounts:
        """
        Plans and appraisals due, in progress and completed this week.

        Privileged callers see the whole organization; everyone else sees
        only their own records. A non-privileged caller with no matching
        employee record gets zeros.
        """
        now = now or datetime.now(timezone.utc)
        week_start = settings.week_start

        if not principal.is_privileged and self.repository.get_employee(principal.employee_id) is None:
            start, end = week_bounds(now, week_start)
            return NotificationWindowCounts(scope="self", window_start=start, window_end=end)

        start, _ = week_bounds(now, week_start)
        employee_id = None if principal.is_privileged else principal.employee_id
        records: List[WorkflowRecord] = []
        for kind in RecordKind:
            records.extend(self.repository.list_plans(kind, employee_id=employee_id, touched_since=start))

        counts = count_window(principal, records, now, week_start)
        self.log_info(
            f"Notification window for {principal.employee_id}: "
            f"{counts.due_this_week} due, {counts.progress_updates} in progress, "
            f"{counts.completed_this_week} completed",
            scope=counts.scope,
        )
        return counts
