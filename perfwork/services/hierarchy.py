"""
Hierarchy Resolver

Builds the reporting forest from the employee roster and answers the
"who supervises / reviews whom" questions used by the workflow engine.

Every function here is pure: it only reads the snapshot it is given, so it
is safe to call from any number of request threads at once. Broken roster
data (dangling supervisor references, self-references, cycles) never raises;
the affected employees are placed as roots and a data-integrity warning is
logged instead.
"""
import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set, Tuple

from perfwork.core.config import settings
from perfwork.models.performance import WorkflowRole
from perfwork.schemas.performance import HierarchyNode, Principal

logger = logging.getLogger(__name__)


def display_name(employee: Any) -> str:
    full_name = getattr(employee, "full_name", None)
    if full_name:
        return full_name
    first = getattr(employee, "first_name", "") or ""
    last = getattr(employee, "last_name", "") or ""
    return f"{first} {last}".strip() or f"Employee #{employee.id}"


def _active_index(employees: Iterable[Any]) -> Dict[int, Any]:
    index: Dict[int, Any] = {}
    for emp in employees:
        if not getattr(emp, "is_active", True):
            continue
        # First occurrence wins if the roster repeats an id
        index.setdefault(emp.id, emp)
    return index


def _resolve_parents(index: Dict[int, Any]) -> Dict[int, int]:
    """
    Map employee id -> supervisor id for every usable supervisor reference.

    References to unknown/inactive employees, self-references and every edge
    on a supervisor cycle are dropped, so each dropped employee becomes a root.
    """
    parent: Dict[int, int] = {}
    for emp_id, emp in index.items():
        supervisor_id = emp.supervisor_id
        if supervisor_id is None:
            continue
        if supervisor_id == emp_id:
            logger.warning(f"Data integrity: employee {emp_id} is recorded as their own supervisor")
            continue
        if supervisor_id not in index:
            logger.warning(
                f"Data integrity: employee {emp_id} references missing or inactive supervisor {supervisor_id}"
            )
            continue
        parent[emp_id] = supervisor_id

    done: Set[int] = set()
    on_cycle: Set[int] = set()
    for start in index:
        path: List[int] = []
        position: Dict[int, int] = {}
        node: Optional[int] = start
        while node is not None and node not in done and node not in position:
            position[node] = len(path)
            path.append(node)
            node = parent.get(node)
        if node is not None and node in position:
            cycle = path[position[node]:]
            on_cycle.update(cycle)
            logger.warning(
                f"Data integrity: supervisor cycle detected between employees {sorted(cycle)}; "
                f"placing them as roots"
            )
        done.update(path)

    for emp_id in on_cycle:
        parent.pop(emp_id, None)
    return parent


def build_forest(employees: Iterable[Any]) -> List[HierarchyNode]:
    """
    Build the reporting forest from an employee roster.

    Args:
        employees: Employee records (ORM rows or schemas). Inactive employees
            are skipped.

    Returns:
        Root nodes in roster order. Every active employee appears exactly once.
    """
    index = _active_index(employees)
    parent = _resolve_parents(index)

    nodes = {
        emp_id: HierarchyNode(
            employee_id=emp_id,
            name=display_name(emp),
            position=getattr(emp, "position", None),
            direct_reports=[],
        )
        for emp_id, emp in index.items()
    }

    roots: List[HierarchyNode] = []
    for emp_id, node in nodes.items():
        supervisor_id = parent.get(emp_id)
        if supervisor_id is None:
            roots.append(node)
        else:
            nodes[supervisor_id].direct_reports.append(node)
    return roots


def span_of_control(node: HierarchyNode) -> int:
    return len(node.direct_reports)


def _node_depth(node: HierarchyNode, visiting: Set[int]) -> int:
    if node.employee_id in visiting:
        logger.warning(
            f"Data integrity: employee {node.employee_id} revisited while computing reporting depth"
        )
        return 1
    visiting.add(node.employee_id)
    try:
        return 1 + max((_node_depth(child, visiting) for child in node.direct_reports), default=0)
    finally:
        visiting.discard(node.employee_id)


def hierarchy_depth(forest: Sequence[HierarchyNode]) -> int:
    """Levels in the deepest reporting tree; 0 for an empty forest."""
    return max((_node_depth(root, set()) for root in forest), default=0)


def max_span_of_control(forest: Sequence[HierarchyNode]) -> int:
    best = 0
    stack = list(forest)
    seen: Set[int] = set()
    while stack:
        node = stack.pop()
        if node.employee_id in seen:
            continue
        seen.add(node.employee_id)
        best = max(best, span_of_control(node))
        stack.extend(node.direct_reports)
    return best


def _has_manager_title(position: Optional[str], keywords: Sequence[str]) -> bool:
    if not position:
        return False
    lowered = position.lower()
    return any(keyword.lower() in lowered for keyword in keywords)


def candidate_supervisors(
    employees: Iterable[Any],
    keywords: Optional[Sequence[str]] = None,
) -> List[Any]:
    """
    Employees selectable as supervisor or reviewer.

    An employee qualifies through the supervisor flag, the reviewer flag, or a
    manager-like position title; having direct reports is not required.
    Inactive employees never qualify. Deduplicated by id, roster order kept.
    """
    keywords = settings.manager_position_keywords if keywords is None else keywords
    candidates: List[Any] = []
    seen: Set[int] = set()
    for emp in employees:
        if not getattr(emp, "is_active", True) or emp.id in seen:
            continue
        if emp.is_supervisor or emp.is_reviewer or _has_manager_title(emp.position, keywords):
            seen.add(emp.id)
            candidates.append(emp)
    return candidates


def is_authorized_actor(
    principal: Principal,
    record: Any,
    role: WorkflowRole,
    subject: Optional[Any] = None,
) -> bool:
    """
    Whether ``principal`` may act on ``record`` in ``role``.

    The designated supervisor/reviewer on the record qualifies, as does the
    current supervisor/reviewer of the record's employee when ``subject`` (that
    employee's roster entry) is supplied. Privileged principals may act in
    either role.
    """
    if principal.is_privileged:
        return True
    if principal.employee_id is None:
        return False

    role = WorkflowRole(role)
    if role == WorkflowRole.SUPERVISOR:
        allowed = {record.supervisor_id, getattr(subject, "supervisor_id", None)}
    else:
        allowed = {record.reviewer_id, getattr(subject, "reviewer_id", None)}
    allowed.discard(None)
    return principal.employee_id in allowed


def reporting_chain(employee_id: int, employees: Iterable[Any]) -> List[Any]:
    """Supervisors above ``employee_id``, nearest first. Stops at cycles and broken links."""
    index = _active_index(employees)
    chain: List[Any] = []
    visited: Set[int] = {employee_id}
    current = index.get(employee_id)
    while current is not None and current.supervisor_id is not None:
        supervisor_id = current.supervisor_id
        if supervisor_id in visited:
            logger.warning(f"Data integrity: reporting chain of employee {employee_id} loops at {supervisor_id}")
            break
        visited.add(supervisor_id)
        current = index.get(supervisor_id)
        if current is not None:
            chain.append(current)
    return chain


def supervised_employees(employee_id: int, employees: Iterable[Any]) -> Tuple[List[Any], List[Any]]:
    """Active employees directly supervised by, and reviewed by, ``employee_id``."""
    supervised: List[Any] = []
    reviewed: List[Any] = []
    for emp in _active_index(employees).values():
        if emp.id == employee_id:
            continue
        if emp.supervisor_id == employee_id:
            supervised.append(emp)
        if emp.reviewer_id == employee_id:
            reviewed.append(emp)
    return supervised, reviewed
