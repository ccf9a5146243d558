# Models package
# Importing modules here ensures they are registered with SQLAlchemy Base
from . import employee, performance, audit_log

# Explicit class exports for cleaner imports
from .employee import Employee
from .performance import (
    PerformancePlan,
    PerformanceAppraisal,
    WorkflowStatus,
    WorkflowAction,
    WorkflowRole,
    RecordKind,
)
from .audit_log import AuditLog

__all__ = [
    "Employee",
    "PerformancePlan",
    "PerformanceAppraisal",
    "WorkflowStatus",
    "WorkflowAction",
    "WorkflowRole",
    "RecordKind",
    "AuditLog",
]
