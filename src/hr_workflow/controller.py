"""Single-record and bulk status transitions against the record service."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from enum import Enum
from typing import Any

from hr_workflow.auth.principal import Principal
from hr_workflow.domain.records import Record, RecordId, Schedule, parse_datetime
from hr_workflow.errors import (
    AlreadyProcessing,
    RecordNotFound,
    ValidationError,
    WorkflowError,
)
from hr_workflow.filtering import FilterCriteria
from hr_workflow.lifecycle import Liveness
from hr_workflow.notifications import ConfirmPrompt, Notifier
from hr_workflow.scheduler import AutoRefreshScheduler
from hr_workflow.selection import SelectionSet
from hr_workflow.service.client import RecordServiceClient
from hr_workflow.store import RecordStore
from hr_workflow.workflow.models import TransitionRule
from hr_workflow.workflow.table import StatusTransitionTable

logger = logging.getLogger(__name__)

# In-flight keys for operations that have no record id yet.
_CREATE_KEY = "__create__"
_EXPORT_KEY = "__export__"
_MODAL_REASON = "modal"


class OperationState(str, Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    SUBMITTING = "submitting"


class WorkflowController:
    """Drives record operations for one record kind on one page.

    The store is written only after the service confirms an operation; a
    failed call leaves it untouched. At most one operation per record id is
    in flight, a second one is refused with ``AlreadyProcessing``. Every
    terminal outcome is reported to the notifier exactly once and failures
    are re-raised as ``WorkflowError`` subclasses.
    """

    def __init__(
        self,
        store: RecordStore,
        table: StatusTransitionTable,
        client: RecordServiceClient,
        principal: Principal,
        notifier: Notifier,
        confirm: ConfirmPrompt,
        *,
        scheduler: AutoRefreshScheduler | None = None,
        selection: SelectionSet | None = None,
        liveness: Liveness | None = None,
    ) -> None:
        self._store = store
        self._kind = store.kind
        self._table = table
        self._client = client
        self._principal = principal
        self._notifier = notifier
        self._confirm = confirm
        self._scheduler = scheduler
        self._selection = selection
        self._liveness = liveness or Liveness()
        self._states: dict[object, OperationState] = {}
        self._modal: str | None = None

    @property
    def principal(self) -> Principal:
        return self._principal

    @property
    def modal(self) -> str | None:
        return self._modal

    def state_of(self, record_id: RecordId) -> OperationState:
        return self._states.get(record_id, OperationState.IDLE)

    def is_in_flight(self, record_id: RecordId) -> bool:
        return record_id in self._states

    # Modal slot -----------------------------------------------------------

    def open_modal(self, name: str) -> None:
        """Open the page's single modal slot, replacing whatever was open."""
        if self._modal is not None and self._modal != name:
            logger.debug("Replacing open modal %s with %s", self._modal, name)
        self._modal = name
        if self._scheduler is not None:
            self._scheduler.suspend(_MODAL_REASON)

    def close_modal(self) -> None:
        self._modal = None
        if self._scheduler is not None:
            self._scheduler.resume(_MODAL_REASON)

    # Transitions ----------------------------------------------------------

    async def transition(
        self,
        record_id: RecordId,
        to_status: str,
        remarks: str | None = "",
        *,
        schedule: Schedule | None = None,
    ) -> Record | None:
        """Move one record to ``to_status``.

        Returns the updated record, or None when the user declined a
        confirmation or the page closed before the response arrived.
        """
        self._claim([record_id])
        try:
            record = self._require(record_id)
            decision = self._table.evaluate(
                record, to_status, self._principal, remarks=remarks, schedule=schedule
            )
            if not decision.allowed or decision.rule is None:
                raise self._fail(
                    ValidationError("; ".join(decision.reasons), decision.field_errors)
                )
            rule = decision.rule
            if rule.reschedule and schedule is None:
                raise self._fail(ValidationError("A new schedule is required to reschedule"))

            if rule.destructive and not await self._confirmed(
                f"Set {self._kind.label.lower()} {record_id} to {to_status}?"
            ):
                return None

            self._mark([record_id], OperationState.SUBMITTING)
            try:
                if rule.reschedule and schedule is not None:
                    returned = await self._client.reschedule(
                        self._kind, record_id, schedule, endpoint=rule.endpoint
                    )
                else:
                    returned = await self._client.update_status(
                        self._kind, record_id, rule.to, remarks, endpoint=rule.endpoint
                    )
            except WorkflowError as exc:
                raise self._fail(exc) from exc

            if not self._liveness.alive:
                logger.info("Page closed before %s %s resolved, not applying", self._kind.name, record_id)
                return None

            updated = self._apply(record_id, rule, remarks, schedule, returned)
            logger.info(
                "%s %s: %s -> %s by %s",
                self._kind.label,
                record_id,
                record.status,
                updated.status,
                self._principal.user_id,
            )
            self._notifier.success(f"{self._kind.label} {self._describe(rule)} successfully")
            return updated
        finally:
            self._release([record_id])

    async def bulk_transition(
        self,
        record_ids: Iterable[RecordId],
        to_status: str,
        remarks: str | None = "",
    ) -> list[Record]:
        """Apply one transition to a whole selection, all or nothing from the caller's view."""
        ids = list(dict.fromkeys(record_ids))
        if not ids:
            raise self._fail(
                ValidationError(f"Please select at least one {self._kind.label.lower()}")
            )

        self._claim(ids)
        try:
            rule = self._validate_batch(ids, to_status, remarks)

            if rule.destructive and not await self._confirmed(
                f"Set {len(ids)} {self._kind.label.lower()}(s) to {to_status}?"
            ):
                return []

            self._mark(ids, OperationState.SUBMITTING)
            if self._kind.supports_bulk:
                try:
                    await self._client.bulk_update_status(self._kind, ids, rule.to, remarks)
                except WorkflowError as exc:
                    raise self._fail(exc) from exc
            else:
                await self._submit_sequentially(ids, rule, remarks)

            if not self._liveness.alive:
                logger.info("Page closed before bulk %s update resolved, not applying", self._kind.name)
                return []

            updated: list[Record] = []
            for record_id in ids:
                try:
                    updated.append(self._apply(record_id, rule, remarks, None, None))
                except RecordNotFound:
                    # Confirmed by the service; the next refresh brings it back.
                    logger.warning("%s %s vanished locally during bulk update", self._kind.label, record_id)
            if self._selection is not None:
                self._selection.clear()
            logger.info(
                "Bulk %s -> %s for %d record(s) by %s",
                self._kind.name,
                rule.result_status,
                len(ids),
                self._principal.user_id,
            )
            self._notifier.success(f"{len(ids)} {self._kind.label.lower()}(s) {self._describe(rule)} successfully")
            return updated
        finally:
            self._release(ids)

    async def delete(self, record_id: RecordId) -> bool:
        """Delete a record after confirmation; returns False when the user declines."""
        self._claim([record_id])
        try:
            record = self._require(record_id)
            decision = self._table.can_delete(record, self._principal)
            if not decision.allowed:
                raise self._fail(ValidationError("; ".join(decision.reasons)))

            if not await self._confirmed(self._kind.delete.confirmation_message):
                return False

            self._mark([record_id], OperationState.SUBMITTING)
            try:
                await self._client.delete(self._kind, record_id)
            except WorkflowError as exc:
                raise self._fail(exc) from exc

            if not self._liveness.alive:
                return True
            if record_id in self._store:
                self._store.remove(record_id)
            if self._selection is not None:
                self._selection.prune()
            logger.info("%s %s deleted by %s", self._kind.label, record_id, self._principal.user_id)
            self._notifier.success(f"{self._kind.label} deleted successfully")
            return True
        finally:
            self._release([record_id])

    # Filing, editing and export -------------------------------------------

    async def create(
        self,
        fields: Mapping[str, Any],
        employee_ids: Sequence[RecordId] | None = None,
    ) -> list[Record]:
        """File a new record, or one record per employee when ``employee_ids`` is given."""
        self._claim([_CREATE_KEY])
        try:
            self._validate_bounds(fields.get(self._kind.start_field), fields.get(self._kind.end_field))
            payload = dict(fields)
            if employee_ids is not None:
                unique = list(dict.fromkeys(employee_ids))
                if not unique:
                    raise self._fail(
                        ValidationError(
                            "Please select at least one employee",
                            {"employee_ids": ["Select at least one employee."]},
                        )
                    )
                payload["employee_ids"] = unique

            self._mark([_CREATE_KEY], OperationState.SUBMITTING)
            try:
                created = await self._client.create(self._kind, payload)
            except WorkflowError as exc:
                raise self._fail(exc) from exc

            if not self._liveness.alive:
                return created
            for record in reversed(created):
                self._store.upsert(record)
            logger.info("%d %s created by %s", len(created), self._kind.name, self._principal.user_id)
            self._notifier.success(f"{len(created)} {self._kind.label.lower()}(s) created successfully")
            return created
        finally:
            self._release([_CREATE_KEY])

    async def edit(self, record_id: RecordId, fields: Mapping[str, Any]) -> Record | None:
        """Full-field update; the status never changes through an edit."""
        self._claim([record_id])
        try:
            record = self._require(record_id)
            if "status" in fields and fields["status"] != record.status:
                raise self._fail(
                    ValidationError(
                        "Status cannot be changed by editing",
                        {"status": ["Use a status action to change the status."]},
                    )
                )
            start = fields.get(self._kind.start_field, record.start)
            end = fields.get(self._kind.end_field, record.end)
            self._validate_bounds(start, end)

            self._mark([record_id], OperationState.SUBMITTING)
            try:
                returned = await self._client.update(self._kind, record_id, fields)
            except WorkflowError as exc:
                raise self._fail(exc) from exc

            if not self._liveness.alive:
                return None
            if record_id not in self._store:
                raise self._fail(RecordNotFound(record_id))
            if returned is None:
                returned = Record.from_payload({**record.attributes, **fields}, self._kind)
            self._store.upsert(returned)
            self._notifier.success(f"{self._kind.label} updated successfully")
            return returned
        finally:
            self._release([record_id])

    async def export(self, criteria: FilterCriteria) -> bytes:
        """Download the spreadsheet for the current filters; content is passed through."""
        self._claim([_EXPORT_KEY])
        try:
            self._mark([_EXPORT_KEY], OperationState.SUBMITTING)
            try:
                content = await self._client.export(self._kind, criteria.to_query_params())
            except WorkflowError as exc:
                raise self._fail(exc) from exc
            self._notifier.success(f"{self._kind.label} export ready")
            return content
        finally:
            self._release([_EXPORT_KEY])

    # Internals ------------------------------------------------------------

    def _claim(self, keys: Sequence[object]) -> None:
        busy = [key for key in keys if key in self._states]
        if busy:
            self._notifier.info(f"{self._kind.label} is already being processed")
            raise AlreadyProcessing(busy)
        self._mark(keys, OperationState.VALIDATING)
        if self._scheduler is not None:
            for key in keys:
                self._scheduler.suspend(self._reason(key))

    def _mark(self, keys: Sequence[object], state: OperationState) -> None:
        for key in keys:
            self._states[key] = state

    def _release(self, keys: Sequence[object]) -> None:
        for key in keys:
            self._states.pop(key, None)
            if self._scheduler is not None:
                self._scheduler.resume(self._reason(key))

    def _reason(self, key: object) -> str:
        return f"op:{self._kind.name}:{key}"

    def _fail(self, exc: WorkflowError) -> WorkflowError:
        if self._liveness.alive:
            self._notifier.error(exc.message)
        return exc

    def _require(self, record_id: RecordId) -> Record:
        record = self._store.find(record_id)
        if record is None:
            raise self._fail(RecordNotFound(record_id))
        return record

    async def _confirmed(self, message: str) -> bool:
        confirmed = await self._confirm(message)
        if not confirmed:
            logger.info("User declined: %s", message)
        return confirmed

    def _validate_bounds(self, start: object, end: object) -> None:
        errors: dict[str, list[str]] = {}
        parsed: dict[str, Any] = {}
        for name, value in ((self._kind.start_field, start), (self._kind.end_field, end)):
            if value is None or value == "":
                errors[name] = ["This field is required."]
                continue
            try:
                parsed[name] = parse_datetime(value)
            except ValueError:
                errors[name] = ["Invalid date."]
        if not errors and parsed[self._kind.end_field] < parsed[self._kind.start_field]:
            errors[self._kind.end_field] = ["End must not be before start."]
        if errors:
            raise self._fail(ValidationError("Please correct the highlighted fields", errors))

    def _validate_batch(
        self,
        ids: Sequence[RecordId],
        to_status: str,
        remarks: str | None,
    ) -> TransitionRule:
        missing = [record_id for record_id in ids if record_id not in self._store]
        if missing:
            raise self._fail(RecordNotFound(missing[0]))

        rejected: dict[str, list[str]] = {}
        remarks_missing = False
        rule: TransitionRule | None = None
        for record_id in ids:
            record = self._store.get(record_id)
            decision = self._table.evaluate(record, to_status, self._principal, remarks=remarks)
            if decision.rule is not None and decision.rule.reschedule:
                raise self._fail(ValidationError("Rescheduling cannot be done in bulk"))
            if not decision.allowed or decision.rule is None:
                rejected[str(record_id)] = decision.reasons
                remarks_missing = remarks_missing or "remarks" in decision.field_errors
                continue
            rule = decision.rule

        if rejected:
            # Remarks are checked once for the whole batch.
            if remarks_missing:
                message = f"Remarks are required to set status '{to_status}'"
                raise self._fail(ValidationError(message, {"remarks": ["Remarks are required."]}))
            first = next(iter(rejected.values()))[0]
            message = f"{len(rejected)} of {len(ids)} selected record(s) cannot be updated: {first}"
            raise self._fail(ValidationError(message, rejected))
        if rule is None:
            raise self._fail(ValidationError(f"Cannot set status '{to_status}'"))
        return rule

    async def _submit_sequentially(
        self,
        ids: Sequence[RecordId],
        rule: TransitionRule,
        remarks: str | None,
    ) -> None:
        done = 0
        for record_id in ids:
            try:
                await self._client.update_status(
                    self._kind, record_id, rule.to, remarks, endpoint=rule.endpoint
                )
            except WorkflowError as exc:
                if done:
                    # Some records changed on the server; take its word for all of them.
                    logger.warning(
                        "Bulk %s stopped after %d of %d: %s", self._kind.name, done, len(ids), exc
                    )
                    await self._reconcile()
                raise self._fail(exc) from exc
            done += 1

    async def _reconcile(self) -> None:
        try:
            records = await self._client.list_records(self._kind)
        except WorkflowError as exc:
            logger.warning("Reconciling %s after partial bulk failure failed: %s", self._kind.name, exc)
            return
        if self._liveness.alive:
            self._store.replace_all(records)

    def _apply(
        self,
        record_id: RecordId,
        rule: TransitionRule,
        remarks: str | None,
        schedule: Schedule | None,
        returned: Record | None,
    ) -> Record:
        if record_id not in self._store:
            raise self._fail(RecordNotFound(record_id))
        if returned is not None and returned.id == record_id:
            return self._store.upsert(returned)
        return self._store.apply_transition(
            record_id,
            rule.result_status,
            remarks,
            actor=self._principal.user_id,
            force_approved=rule.force_approval,
            schedule=schedule,
        )

    @staticmethod
    def _describe(rule: TransitionRule) -> str:
        if rule.reschedule:
            return "rescheduled"
        return rule.to.replace("_", " ").lower()
