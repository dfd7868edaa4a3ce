from datetime import datetime

import pytest

from conftest import make_leave, make_meeting
from hr_workflow.auth.principal import Principal
from hr_workflow.domain.records import Schedule


def test_legal_edges(table):
    assert table.is_legal_edge("leaves", "pending", "approved")
    assert table.is_legal_edge("leaves", "approved", "completed")
    assert table.is_legal_edge("meetings", "Cancelled", "Scheduled")
    # No direct jump from Cancelled to Completed.
    assert not table.is_legal_edge("meetings", "Cancelled", "Completed")
    assert not table.is_legal_edge("leaves", "rejected", "approved")


def test_unknown_kind_raises(table):
    with pytest.raises(ValueError, match="Unknown record kind"):
        table.is_legal_edge("payroll", "pending", "approved")


def test_hrd_may_approve_pending_leave(table, leaves, hrd):
    decision = table.evaluate(make_leave(leaves, 42), "approved", hrd)
    assert decision.allowed
    assert decision.rule.to == "approved"
    assert not decision.requires_confirmation


def test_transition_from_wrong_status_denied(table, leaves, hrd):
    decision = table.evaluate(make_leave(leaves, 42, "rejected"), "approved", hrd)
    assert not decision.allowed
    assert "cannot move from 'rejected'" in decision.reasons[0]
    assert decision.rule is None


def test_reject_requires_remarks(table, leaves, hrd):
    record = make_leave(leaves, 42)

    missing = table.evaluate(record, "rejected", hrd, remarks="   ")
    assert not missing.allowed
    assert missing.field_errors == {"remarks": ["Remarks are required."]}

    given = table.evaluate(record, "rejected", hrd, remarks="Insufficient balance")
    assert given.allowed
    assert given.requires_confirmation


def test_force_approval_is_super_admin_only(table, leaves, admin, hrd, dept_manager):
    record = make_leave(leaves, 1)
    assert table.evaluate(record, "force_approved", admin, remarks="override").allowed

    for principal in (hrd, dept_manager):
        decision = table.evaluate(record, "force_approved", principal, remarks="override")
        assert not decision.allowed
        assert "super_admin" in decision.reasons[0]


def test_force_approval_writes_approved(table, leaves, admin):
    decision = table.evaluate(make_leave(leaves, 1), "force_approved", admin, remarks="override")
    assert decision.rule.result_status == "approved"
    assert decision.rule.force_approval


def test_department_manager_scoped_to_managed_departments(table, leaves, dept_manager):
    own = make_leave(leaves, 1)
    other = make_leave(
        leaves,
        2,
        employee={"Fname": "Jo", "Lname": "Lim", "idno": "E-2", "Department": "Finance"},
    )
    assert table.evaluate(own, "approved", dept_manager).allowed
    assert not table.evaluate(other, "approved", dept_manager).allowed


def test_department_manager_cannot_approve_travel_orders(table, travel_orders, dept_manager, hrd):
    record = make_leave(travel_orders, 9)
    assert not table.evaluate(record, "approved", dept_manager).allowed
    assert table.evaluate(record, "approved", hrd).allowed


def test_travel_order_cancel_requires_remarks(table, travel_orders, hrd):
    record = make_leave(travel_orders, 9, "approved")
    assert not table.evaluate(record, "cancelled", hrd).allowed
    assert table.evaluate(record, "cancelled", hrd, remarks="Trip called off").allowed


def test_reschedule_requires_valid_schedule(table, meetings, employee):
    record = make_meeting(meetings, 7, "Cancelled")

    missing = table.evaluate(record, "Scheduled", employee)
    assert not missing.allowed
    assert set(missing.field_errors) == {"start_time", "end_time"}

    start = datetime(2024, 7, 1, 9, 0)
    backwards = table.evaluate(record, "Scheduled", employee, schedule=Schedule(start, start))
    assert not backwards.allowed
    assert "end_time" in backwards.field_errors

    ok = table.evaluate(
        record, "Scheduled", employee, schedule=Schedule(start, datetime(2024, 7, 1, 10, 0))
    )
    assert ok.allowed
    assert ok.rule.reschedule


def test_available_and_can_select(table, leaves, hrd, employee):
    record = make_leave(leaves, 3)
    targets = {rule.to for rule in table.available(record, hrd)}
    assert targets == {"approved", "rejected", "completed", "cancelled"}
    assert table.can_select(record, hrd)
    assert not table.can_select(record, employee)


def test_travel_order_selection_only_for_pending(table, travel_orders, admin):
    assert table.can_select(make_leave(travel_orders, 1, "pending"), admin)
    assert not table.can_select(make_leave(travel_orders, 2, "rejected"), admin)


def test_can_delete_owner_while_pending(table, leaves, employee):
    assert table.can_delete(make_leave(leaves, 1), employee).allowed
    decision = table.can_delete(make_leave(leaves, 1, "approved"), employee)
    assert not decision.allowed
    assert "pending" in decision.reasons[0]


def test_can_delete_rejects_stranger(table, leaves):
    stranger = Principal(user_id=99)
    decision = table.can_delete(make_leave(leaves, 1), stranger)
    assert not decision.allowed
    assert "not authorized" in decision.reasons[0]


def test_owner_match_ignores_id_type(table, leaves):
    record = make_leave(leaves, 1, created_by="5")
    assert table.can_delete(record, Principal(user_id=5)).allowed
