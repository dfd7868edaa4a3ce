"""Domain objects for workflow records."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone
from enum import Enum
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from hr_workflow.workflow.models import RecordKindConfig

logger = logging.getLogger(__name__)

RecordId = int | str


class AttendanceStatus(str, Enum):
    INVITED = "Invited"
    CONFIRMED = "Confirmed"
    ATTENDED = "Attended"
    ABSENT = "Absent"
    DECLINED = "Declined"


@dataclass(frozen=True)
class Participant:
    employee_id: RecordId
    attendance_status: AttendanceStatus = AttendanceStatus.INVITED


@dataclass(frozen=True)
class Schedule:
    """New temporal bounds submitted with a reschedule."""

    start: datetime
    end: datetime

    @classmethod
    def parse(cls, start: object, end: object) -> "Schedule":
        parsed_start = parse_datetime(start)
        parsed_end = parse_datetime(end)
        if parsed_start is None or parsed_end is None:
            raise ValueError("Schedule needs both start and end")
        return cls(start=parsed_start, end=parsed_end)


def parse_datetime(value: object) -> datetime | None:
    """Parse service timestamps into naive wall-clock datetimes.

    Aware values are converted to UTC before the offset is dropped so that
    every datetime in the store compares against every other one.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime.combine(value, time.min)
    elif isinstance(value, str):
        text = value.strip()
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            raise ValueError(f"Invalid datetime value: {value!r}") from None
    else:
        raise ValueError(f"Unsupported datetime value: {value!r}")
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def lookup_path(data: Mapping[str, Any], path: str) -> Any:
    """Resolve a dotted path (``employee.Department``) in nested mappings."""
    current: Any = data
    for part in path.split("."):
        if not isinstance(current, Mapping):
            return None
        current = current.get(part)
        if current is None:
            return None
    return current


def _parse_participants(raw: object) -> tuple[Participant, ...]:
    if not isinstance(raw, list):
        return ()
    seen: set[RecordId] = set()
    participants: list[Participant] = []
    for item in raw:
        if isinstance(item, Mapping):
            employee_id = item.get("employee_id", item.get("id"))
            pivot = item.get("pivot") if isinstance(item.get("pivot"), Mapping) else {}
            status_value = pivot.get("attendance_status") or item.get("attendance_status")
        else:
            employee_id = item
            status_value = None
        if employee_id is None or employee_id in seen:
            continue
        seen.add(employee_id)
        try:
            attendance = AttendanceStatus(status_value) if status_value else AttendanceStatus.INVITED
        except ValueError:
            logger.warning(
                "Unknown attendance status %r for employee %s, treating as Invited",
                status_value,
                employee_id,
            )
            attendance = AttendanceStatus.INVITED
        participants.append(Participant(employee_id=employee_id, attendance_status=attendance))
    return tuple(participants)


@dataclass(frozen=True)
class Record:
    """
    Immutable snapshot of a Meeting, Event, Leave Request or Travel Order.

    Updates replace the whole value; readers never see a half-applied change.
    """

    id: RecordId
    kind: str
    status: str
    start: datetime | None = None
    end: datetime | None = None
    remarks: str | None = None
    participants: tuple[Participant, ...] = ()
    created_by: RecordId | None = None
    created_at: datetime | None = None
    approved_by: RecordId | None = None
    approved_at: datetime | None = None
    force_approved: bool = False
    force_approved_by: RecordId | None = None
    force_approved_at: datetime | None = None
    attributes: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    def __post_init__(self) -> None:
        object.__setattr__(self, "attributes", MappingProxyType(dict(self.attributes)))
        object.__setattr__(self, "participants", tuple(self.participants))

    def lookup(self, path: str) -> Any:
        return lookup_path(self.attributes, path)

    def department(self, kind: "RecordKindConfig") -> str | None:
        if not kind.department_field:
            return None
        value = self.lookup(kind.department_field)
        return str(value) if value is not None else None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any], kind: "RecordKindConfig") -> "Record":
        if "id" not in payload or payload["id"] is None:
            raise ValueError(f"{kind.label} payload has no id")
        status = payload.get("status")
        if not status:
            raise ValueError(f"{kind.label} {payload['id']} payload has no status")
        participants: tuple[Participant, ...] = ()
        if kind.participants_field:
            participants = _parse_participants(payload.get(kind.participants_field))
        return cls(
            id=payload["id"],
            kind=kind.name,
            status=str(status),
            start=parse_datetime(payload.get(kind.start_field)),
            end=parse_datetime(payload.get(kind.end_field)),
            remarks=payload.get("remarks"),
            participants=participants,
            created_by=payload.get("created_by"),
            created_at=parse_datetime(payload.get("created_at")),
            approved_by=payload.get("approved_by"),
            approved_at=parse_datetime(payload.get("approved_at")),
            force_approved=bool(payload.get("force_approved", False)),
            force_approved_by=payload.get("force_approved_by"),
            force_approved_at=parse_datetime(payload.get("force_approved_at")),
            attributes=payload,
        )
