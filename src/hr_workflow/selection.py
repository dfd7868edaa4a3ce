"""Multi-select state for bulk actions."""

from __future__ import annotations

from collections.abc import Callable

from hr_workflow.auth.principal import Principal
from hr_workflow.domain.records import Record, RecordId
from hr_workflow.errors import ValidationError
from hr_workflow.workflow.table import StatusTransitionTable


class SelectionSet:
    """Ids picked for a bulk action, restricted to selectable visible records.

    ``visible`` returns the currently filtered records; selection never
    reaches beyond it.
    """

    def __init__(
        self,
        table: StatusTransitionTable,
        principal: Principal,
        visible: Callable[[], tuple[Record, ...]],
    ) -> None:
        self._table = table
        self._principal = principal
        self._visible = visible
        self._selected: dict[RecordId, None] = {}

    @property
    def selected(self) -> tuple[RecordId, ...]:
        """Selected ids in selection order."""
        return tuple(self._selected)

    def __len__(self) -> int:
        return len(self._selected)

    def __contains__(self, record_id: object) -> bool:
        return record_id in self._selected

    def can_select(self, record: Record) -> bool:
        return self._table.can_select(record, self._principal)

    def selectable_visible_ids(self) -> tuple[RecordId, ...]:
        return tuple(record.id for record in self._visible() if self.can_select(record))

    def toggle(self, record_id: RecordId) -> bool:
        """Flip selection of one visible record; returns whether it is now selected."""
        if record_id in self._selected:
            del self._selected[record_id]
            return False
        record = next((r for r in self._visible() if r.id == record_id), None)
        if record is None:
            raise ValidationError(f"Record {record_id} is not visible")
        if not self.can_select(record):
            raise ValidationError(f"Record {record_id} has no action available to you")
        self._selected[record_id] = None
        return True

    def select_all_visible(self) -> tuple[RecordId, ...]:
        """Select every selectable visible record, or clear when all already are."""
        selectable = self.selectable_visible_ids()
        if selectable and all(record_id in self._selected for record_id in selectable):
            self._selected.clear()
        else:
            self._selected = dict.fromkeys(selectable)
        return self.selected

    def deselect_all(self) -> None:
        self._selected.clear()

    clear = deselect_all

    def prune(self) -> tuple[RecordId, ...]:
        """Drop ids that are no longer visible or selectable; returns the dropped ids."""
        still_valid = set(self.selectable_visible_ids())
        dropped = tuple(record_id for record_id in self._selected if record_id not in still_valid)
        for record_id in dropped:
            del self._selected[record_id]
        return dropped
