from datetime import date, datetime, timezone

import pytest

from conftest import leave_payload, make_meeting, meeting_payload
from hr_workflow.domain.records import (
    AttendanceStatus,
    Record,
    Schedule,
    lookup_path,
    parse_datetime,
)


def test_parse_datetime_variants():
    assert parse_datetime(None) is None
    assert parse_datetime("") is None
    assert parse_datetime("2024-06-30") == datetime(2024, 6, 30)
    assert parse_datetime(date(2024, 6, 30)) == datetime(2024, 6, 30)
    assert parse_datetime("2024-06-30T23:00:00") == datetime(2024, 6, 30, 23, 0)


def test_parse_datetime_converts_aware_values_to_utc():
    aware = datetime(2024, 6, 30, 8, 0, tzinfo=timezone.utc)
    assert parse_datetime("2024-06-30T16:00:00+08:00") == datetime(2024, 6, 30, 8, 0)
    assert parse_datetime(aware) == datetime(2024, 6, 30, 8, 0)


def test_parse_datetime_invalid():
    with pytest.raises(ValueError, match="Invalid datetime"):
        parse_datetime("next tuesday")
    with pytest.raises(ValueError, match="Unsupported"):
        parse_datetime(12.5)


def test_schedule_parse_requires_both_bounds():
    with pytest.raises(ValueError):
        Schedule.parse("2024-06-30T09:00", None)
    schedule = Schedule.parse("2024-06-30T09:00", "2024-06-30T10:00")
    assert schedule.end > schedule.start


def test_lookup_path():
    data = {"employee": {"Department": "IT", "manager": None}}
    assert lookup_path(data, "employee.Department") == "IT"
    assert lookup_path(data, "employee.manager.name") is None
    assert lookup_path(data, "missing") is None


def test_from_payload_leave(leaves):
    record = Record.from_payload(leave_payload(42, approved_at="2024-06-01T10:00:00"), leaves)
    assert record.id == 42
    assert record.kind == "leaves"
    assert record.start == datetime(2024, 6, 10)
    assert record.end == datetime(2024, 6, 12)
    assert record.approved_at == datetime(2024, 6, 1, 10, 0)
    assert record.department(leaves) == "IT"
    assert record.lookup("employee.Fname") == "Ana"
    assert not record.force_approved


def test_from_payload_participants(meetings):
    payload = meeting_payload(
        7,
        participants=[
            {"id": 11, "pivot": {"attendance_status": "Attended"}},
            {"id": 11, "pivot": {"attendance_status": "Absent"}},
            {"id": 12, "pivot": {"attendance_status": "Sleeping"}},
            13,
        ],
    )
    record = Record.from_payload(payload, meetings)
    assert [p.employee_id for p in record.participants] == [11, 12, 13]
    assert record.participants[0].attendance_status is AttendanceStatus.ATTENDED
    assert record.participants[1].attendance_status is AttendanceStatus.INVITED
    assert record.participants[2].attendance_status is AttendanceStatus.INVITED


def test_from_payload_requires_id_and_status(leaves):
    with pytest.raises(ValueError, match="no id"):
        Record.from_payload({"status": "pending"}, leaves)
    with pytest.raises(ValueError, match="no status"):
        Record.from_payload({"id": 1}, leaves)


def test_records_are_immutable_and_compare_structurally(meetings):
    first = make_meeting(meetings, 7)
    second = make_meeting(meetings, 7)
    assert first == second
    with pytest.raises(AttributeError):
        first.status = "Cancelled"  # type: ignore[misc]
    with pytest.raises(TypeError):
        first.attributes["status"] = "Cancelled"  # type: ignore[index]
