import logging

from perfwork.models.employee import Employee
from perfwork.models.performance import WorkflowRole
from perfwork.schemas.performance import Principal, WorkflowRecord
from perfwork.services.hierarchy import (
    build_forest,
    candidate_supervisors,
    hierarchy_depth,
    is_authorized_actor,
    max_span_of_control,
    reporting_chain,
    span_of_control,
    supervised_employees,
)


def _emp(emp_id, supervisor_id=None, **kwargs):
    return Employee(
        id=emp_id,
        first_name=kwargs.pop("first_name", f"E{emp_id}"),
        last_name="",
        supervisor_id=supervisor_id,
        reviewer_id=kwargs.pop("reviewer_id", None),
        position=kwargs.pop("position", None),
        is_supervisor=kwargs.pop("is_supervisor", False),
        is_reviewer=kwargs.pop("is_reviewer", False),
        is_active=kwargs.pop("is_active", True),
    )


def _all_ids(forest):
    ids = []
    stack = list(forest)
    while stack:
        node = stack.pop()
        ids.append(node.employee_id)
        stack.extend(node.direct_reports)
    return sorted(ids)


def test_chain_builds_single_tree_of_depth_three():
    # A -> B -> C (C supervised by B, B by A)
    roster = [_emp(1), _emp(2, supervisor_id=1), _emp(3, supervisor_id=2)]
    forest = build_forest(roster)

    assert [root.employee_id for root in forest] == [1]
    assert forest[0].direct_reports[0].employee_id == 2
    assert forest[0].direct_reports[0].direct_reports[0].employee_id == 3
    assert hierarchy_depth(forest) == 3


def test_empty_roster():
    assert build_forest([]) == []
    assert hierarchy_depth([]) == 0
    assert max_span_of_control([]) == 0


def test_cyclic_pair_terminates_as_roots(caplog):
    roster = [_emp(1, supervisor_id=2), _emp(2, supervisor_id=1)]
    with caplog.at_level(logging.WARNING):
        forest = build_forest(roster)

    assert sorted(root.employee_id for root in forest) == [1, 2]
    assert hierarchy_depth(forest) == 1
    assert "cycle" in caplog.text


def test_cycle_below_a_healthy_root_keeps_the_rest_of_the_tree():
    # 1 is a clean root; 3 and 4 point at each other; 5 reports into the cycle
    roster = [_emp(1), _emp(2, supervisor_id=1), _emp(3, supervisor_id=4), _emp(4, supervisor_id=3),
              _emp(5, supervisor_id=3)]
    forest = build_forest(roster)

    assert _all_ids(forest) == [1, 2, 3, 4, 5]
    roots = {root.employee_id: root for root in forest}
    assert set(roots) == {1, 3, 4}
    assert [child.employee_id for child in roots[3].direct_reports] == [5]


def test_self_reference_and_dangling_supervisor_become_roots(caplog):
    roster = [_emp(1, supervisor_id=1), _emp(2, supervisor_id=99)]
    with caplog.at_level(logging.WARNING):
        forest = build_forest(roster)

    assert sorted(root.employee_id for root in forest) == [1, 2]
    assert "own supervisor" in caplog.text
    assert "missing or inactive supervisor 99" in caplog.text


def test_inactive_employees_are_left_out():
    roster = [_emp(1, is_active=False), _emp(2, supervisor_id=1), _emp(3, supervisor_id=2)]
    forest = build_forest(roster)

    assert _all_ids(forest) == [2, 3]
    assert [root.employee_id for root in forest] == [2]


def test_every_active_employee_appears_once():
    roster = [_emp(i, supervisor_id=(i // 2 or None)) for i in range(1, 12)]
    forest = build_forest(roster)
    assert _all_ids(forest) == list(range(1, 12))


def test_span_of_control():
    roster = [_emp(1), _emp(2, supervisor_id=1), _emp(3, supervisor_id=1), _emp(4, supervisor_id=1),
              _emp(5, supervisor_id=2)]
    forest = build_forest(roster)
    assert span_of_control(forest[0]) == 3
    assert max_span_of_control(forest) == 3


def test_candidate_supervisors():
    roster = [
        _emp(1, is_supervisor=True),
        _emp(2, is_reviewer=True),                          # reviewer without reports
        _emp(3, is_supervisor=True, is_active=False),       # inactive
        _emp(4, position="Regional Sales Manager"),
        _emp(5, position="Engineer", supervisor_id=1),
    ]
    ids = [emp.id for emp in candidate_supervisors(roster)]
    assert ids == [1, 2, 4]


def test_candidate_supervisors_with_custom_keywords():
    roster = [_emp(1, position="Chapter Lead"), _emp(2, position="Engineering Manager")]
    assert [emp.id for emp in candidate_supervisors(roster, keywords=["lead"])] == [1]


def _record(**kwargs):
    data = {"kind": "plan", "id": 1, "employee_id": 10, "supervisor_id": 20, "reviewer_id": 30}
    data.update(kwargs)
    return WorkflowRecord(**data)


def test_designated_actors_are_authorized():
    record = _record()
    assert is_authorized_actor(Principal(employee_id=20), record, WorkflowRole.SUPERVISOR)
    assert is_authorized_actor(Principal(employee_id=30), record, WorkflowRole.REVIEWER)
    assert not is_authorized_actor(Principal(employee_id=30), record, WorkflowRole.SUPERVISOR)
    assert not is_authorized_actor(Principal(employee_id=20), record, WorkflowRole.REVIEWER)


def test_current_supervisor_of_subject_is_authorized():
    record = _record(supervisor_id=None)
    subject = _emp(10, supervisor_id=21)
    assert is_authorized_actor(Principal(employee_id=21), record, WorkflowRole.SUPERVISOR, subject)
    assert not is_authorized_actor(Principal(employee_id=21), record, WorkflowRole.SUPERVISOR)


def test_privileged_principal_acts_in_any_role():
    record = _record()
    hr = Principal(roles=["HR_ADMIN"], is_privileged=True)
    assert is_authorized_actor(hr, record, WorkflowRole.SUPERVISOR)
    assert is_authorized_actor(hr, record, WorkflowRole.REVIEWER)


def test_principal_without_employee_record_is_not_authorized():
    record = _record(supervisor_id=None, reviewer_id=None)
    assert not is_authorized_actor(Principal(), record, WorkflowRole.SUPERVISOR)
    assert not is_authorized_actor(Principal(), record, WorkflowRole.REVIEWER)


def test_reporting_chain_stops_at_cycle():
    roster = [_emp(1, supervisor_id=3), _emp(2, supervisor_id=1), _emp(3, supervisor_id=2), _emp(4, supervisor_id=3)]
    chain = reporting_chain(4, roster)
    assert [emp.id for emp in chain] == [3, 2, 1]


def test_supervised_employees():
    roster = [_emp(1), _emp(2, supervisor_id=1), _emp(3, supervisor_id=1, reviewer_id=2),
              _emp(4, supervisor_id=1, is_active=False)]
    supervised, reviewed = supervised_employees(1, roster)
    assert [emp.id for emp in supervised] == [2, 3]
    assert reviewed == []

    _, reviewed = supervised_employees(2, roster)
    assert [emp.id for emp in reviewed] == [3]
