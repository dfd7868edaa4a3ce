"""Client-side authoritative cache of the records shown on a page."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Iterator
from dataclasses import replace
from datetime import datetime

from hr_workflow.domain.records import Record, RecordId, Schedule
from hr_workflow.errors import RecordNotFound
from hr_workflow.utils.time import utc_now_naive
from hr_workflow.workflow.models import RecordKindConfig

logger = logging.getLogger(__name__)

StoreListener = Callable[[tuple[Record, ...]], None]


class RecordStore:
    """Ordered snapshot of records with a single writer.

    Every mutation swaps in a new tuple, so a reader holding ``snapshot()``
    never observes a partially applied update. Listeners fire only when the
    snapshot actually changed.
    """

    def __init__(self, kind: RecordKindConfig, records: Iterable[Record] = ()) -> None:
        self._kind = kind
        self._records: tuple[Record, ...] = ()
        self._index: dict[RecordId, int] = {}
        self._listeners: list[StoreListener] = []
        self._version = 0
        self._set(tuple(records))

    @property
    def kind(self) -> RecordKindConfig:
        return self._kind

    @property
    def version(self) -> int:
        """Incremented on every effective change."""
        return self._version

    def snapshot(self) -> tuple[Record, ...]:
        return self._records

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[Record]:
        return iter(self._records)

    def __contains__(self, record_id: object) -> bool:
        return record_id in self._index

    def find(self, record_id: RecordId) -> Record | None:
        position = self._index.get(record_id)
        if position is None:
            return None
        return self._records[position]

    def get(self, record_id: RecordId) -> Record:
        record = self.find(record_id)
        if record is None:
            raise RecordNotFound(record_id)
        return record

    def subscribe(self, listener: StoreListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def replace_all(self, records: Iterable[Record]) -> bool:
        """Replace the snapshot; returns False when the new data is structurally identical."""
        incoming = tuple(records)
        if incoming == self._records:
            logger.debug("Snapshot for %s unchanged, skipping update", self._kind.name)
            return False
        self._commit(incoming)
        return True

    def apply_transition(
        self,
        record_id: RecordId,
        new_status: str,
        remarks: str | None = None,
        *,
        actor: RecordId | None = None,
        at: datetime | None = None,
        force_approved: bool = False,
        schedule: Schedule | None = None,
    ) -> Record:
        position = self._index.get(record_id)
        if position is None:
            raise RecordNotFound(record_id)
        current = self._records[position]
        now = at or utc_now_naive()

        attributes = dict(current.attributes)
        attributes["status"] = new_status
        attributes["remarks"] = remarks
        changes: dict[str, object] = {"status": new_status, "remarks": remarks}

        leaving_initial = (
            current.status in self._kind.initial_statuses
            and new_status not in self._kind.initial_statuses
        )
        if leaving_initial and current.approved_at is None:
            changes["approved_at"] = now
            changes["approved_by"] = actor
            attributes["approved_at"] = now.isoformat()
            attributes["approved_by"] = actor

        if force_approved:
            changes["force_approved"] = True
            changes["force_approved_by"] = actor
            changes["force_approved_at"] = now
            attributes["force_approved"] = True
            attributes["force_approved_by"] = actor
            attributes["force_approved_at"] = now.isoformat()

        if schedule is not None:
            changes["start"] = schedule.start
            changes["end"] = schedule.end
            attributes[self._kind.start_field] = schedule.start.isoformat()
            attributes[self._kind.end_field] = schedule.end.isoformat()

        updated = replace(current, attributes=attributes, **changes)
        self._replace_at(position, updated)
        return updated

    def upsert(self, record: Record) -> Record:
        """Insert a new record at the top or replace an existing one in place."""
        position = self._index.get(record.id)
        if position is None:
            self._commit((record,) + self._records)
        elif self._records[position] != record:
            self._replace_at(position, record)
        return record

    def remove(self, record_id: RecordId) -> Record:
        position = self._index.get(record_id)
        if position is None:
            raise RecordNotFound(record_id)
        removed = self._records[position]
        self._commit(self._records[:position] + self._records[position + 1 :])
        return removed

    def _replace_at(self, position: int, record: Record) -> None:
        records = list(self._records)
        records[position] = record
        self._commit(tuple(records))

    def _set(self, records: tuple[Record, ...]) -> None:
        index: dict[RecordId, int] = {}
        for position, record in enumerate(records):
            if record.id in index:
                logger.warning("Duplicate %s id %s in snapshot", self._kind.name, record.id)
            index[record.id] = position
        self._records = records
        self._index = index

    def _commit(self, records: tuple[Record, ...]) -> None:
        self._set(records)
        self._version += 1
        for listener in list(self._listeners):
            listener(self._records)
