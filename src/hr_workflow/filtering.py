"""Visible-row projection of a RecordStore."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, replace
from datetime import date, datetime, time

from hr_workflow.domain.records import Record
from hr_workflow.store import RecordStore
from hr_workflow.utils.debounce import Debouncer
from hr_workflow.workflow.models import RecordKindConfig

logger = logging.getLogger(__name__)

ALL_STATUSES = "all"
MIN_DEBOUNCE_SECONDS = 0.25
DEFAULT_DEBOUNCE_SECONDS = 0.3
_END_OF_DAY = time(23, 59, 59)

_UNSET = object()

VisibleListener = Callable[[tuple[Record, ...]], None]


def _coerce_date(value: object) -> date | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError:
            raise ValueError(f"Invalid date filter value: {value!r}") from None
    raise ValueError(f"Unsupported date filter value: {value!r}")


@dataclass(frozen=True)
class FilterCriteria:
    status_tab: str = ALL_STATUSES
    search_text: str = ""
    date_from: date | None = None
    date_to: date | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "status_tab", self.status_tab or ALL_STATUSES)
        object.__setattr__(self, "search_text", self.search_text or "")
        object.__setattr__(self, "date_from", _coerce_date(self.date_from))
        object.__setattr__(self, "date_to", _coerce_date(self.date_to))

    @property
    def is_empty(self) -> bool:
        return (
            self.status_tab == ALL_STATUSES
            and not self.search_text.strip()
            and self.date_from is None
            and self.date_to is None
        )

    def to_query_params(self) -> dict[str, str]:
        """Query parameters understood by the service export endpoint."""
        params: dict[str, str] = {}
        if self.status_tab != ALL_STATUSES:
            params["status"] = self.status_tab
        if self.search_text.strip():
            params["search"] = self.search_text.strip()
        if self.date_from is not None:
            params["from_date"] = self.date_from.isoformat()
        if self.date_to is not None:
            params["to_date"] = self.date_to.isoformat()
        return params


def _matches_search(record: Record, needle: str, fields: list[str]) -> bool:
    for path in fields:
        value = record.lookup(path)
        if value is not None and needle in str(value).lower():
            return True
    return False


def filter_records(
    records: Iterable[Record],
    criteria: FilterCriteria,
    kind: RecordKindConfig,
) -> tuple[Record, ...]:
    result = list(records)

    if criteria.status_tab != ALL_STATUSES:
        result = [record for record in result if record.status == criteria.status_tab]

    needle = criteria.search_text.strip().lower()
    if needle:
        result = [
            record for record in result if _matches_search(record, needle, kind.searchable_fields)
        ]

    if criteria.date_from is not None or criteria.date_to is not None:
        lower = datetime.combine(criteria.date_from, time.min) if criteria.date_from else None
        upper = datetime.combine(criteria.date_to, _END_OF_DAY) if criteria.date_to else None
        result = [
            record
            for record in result
            if record.start is not None
            and (lower is None or record.start >= lower)
            and (upper is None or record.start <= upper)
        ]

    return tuple(result)


class FilterEngine:
    """Debounced filter over a store.

    Filter input changes are debounced; store changes recompute immediately.
    The store only notifies on effective changes, so an unchanged refresh
    costs no recompute.
    """

    def __init__(
        self,
        store: RecordStore,
        *,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        criteria: FilterCriteria | None = None,
    ) -> None:
        if debounce_seconds < MIN_DEBOUNCE_SECONDS:
            raise ValueError(
                f"debounce_seconds must be at least {MIN_DEBOUNCE_SECONDS}, got {debounce_seconds}"
            )
        self._store = store
        self._criteria = criteria or FilterCriteria()
        self._debouncer = Debouncer(debounce_seconds, self.recompute)
        self._listeners: list[VisibleListener] = []
        self._recompute_count = 0
        self._visible: tuple[Record, ...] = filter_records(
            store.snapshot(), self._criteria, store.kind
        )
        self._unsubscribe = store.subscribe(self._on_store_change)

    @property
    def criteria(self) -> FilterCriteria:
        return self._criteria

    @property
    def visible(self) -> tuple[Record, ...]:
        return self._visible

    @property
    def recompute_count(self) -> int:
        return self._recompute_count

    @property
    def pending(self) -> bool:
        return self._debouncer.pending

    def subscribe(self, listener: VisibleListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def update(
        self,
        *,
        status_tab: object = _UNSET,
        search_text: object = _UNSET,
        date_from: object = _UNSET,
        date_to: object = _UNSET,
    ) -> FilterCriteria:
        """Record new filter inputs and schedule a debounced recompute."""
        changes = {
            name: value
            for name, value in (
                ("status_tab", status_tab),
                ("search_text", search_text),
                ("date_from", date_from),
                ("date_to", date_to),
            )
            if value is not _UNSET
        }
        self._criteria = replace(self._criteria, **changes)
        self._debouncer.trigger()
        return self._criteria

    def reset(self) -> FilterCriteria:
        self._criteria = FilterCriteria()
        self._debouncer.trigger()
        return self._criteria

    def recompute(self) -> tuple[Record, ...]:
        self._debouncer.cancel()
        self._recompute_count += 1
        self._visible = filter_records(self._store.snapshot(), self._criteria, self._store.kind)
        logger.debug(
            "Recomputed %s view: %d of %d visible",
            self._store.kind.name,
            len(self._visible),
            len(self._store),
        )
        for listener in list(self._listeners):
            listener(self._visible)
        return self._visible

    def close(self) -> None:
        self._debouncer.cancel()
        self._unsubscribe()

    def _on_store_change(self, _records: tuple[Record, ...]) -> None:
        self.recompute()
