from typing import Optional

from sqlalchemy.orm import Session

from perfwork.repositories.performance_repository import PerformanceRepository
from perfwork.schemas.performance import (
    EmployeeResponse,
    HierarchyResponse,
    Principal,
    SupervisedEmployeesResponse,
)
from perfwork.services.base import BaseService
from perfwork.services.hierarchy import (
    build_forest,
    candidate_supervisors,
    hierarchy_depth,
    max_span_of_control,
    supervised_employees,
)


class HierarchyService(BaseService):
    """Roster-backed views over the supervision hierarchy."""

    def __init__(self, db: Session, repository: Optional[PerformanceRepository] = None):
        super().__init__(db)
        self.repository = repository or PerformanceRepository(db)

    def get_hierarchy(self) -> HierarchyResponse:
        employees = self.repository.list_employees(active_only=True)
        forest = build_forest(employees)
        depth = hierarchy_depth(forest)
        self.log_info(
            f"Hierarchy built: {len(employees)} employees, {len(forest)} roots, depth {depth}",
            max_span=max_span_of_control(forest),
        )
        return HierarchyResponse(
            forest=forest,
            candidate_supervisors=[
                EmployeeResponse.model_validate(emp) for emp in candidate_supervisors(employees)
            ],
            depth=depth,
        )

    def get_supervised(self, principal: Principal) -> SupervisedEmployeesResponse:
        """Employees the caller supervises or reviews. Empty for callers without an employee record."""
        if principal.employee_id is None:
            return SupervisedEmployeesResponse(is_supervisor=False, is_reviewer=False, supervised=[], reviewed=[])

        supervised, reviewed = supervised_employees(
            principal.employee_id, self.repository.list_employees(active_only=True)
        )
        return SupervisedEmployeesResponse(
            is_supervisor=bool(supervised),
            is_reviewer=bool(reviewed),
            supervised=[EmployeeResponse.model_validate(emp) for emp in supervised],
            reviewed=[EmployeeResponse.model_validate(emp) for emp in reviewed],
        )
