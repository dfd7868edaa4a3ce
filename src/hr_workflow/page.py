"""One open record page: store, filters, selection, refresh and operations."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from hr_workflow.auth.principal import Principal
from hr_workflow.controller import WorkflowController
from hr_workflow.domain.records import Record
from hr_workflow.errors import WorkflowError
from hr_workflow.filtering import DEFAULT_DEBOUNCE_SECONDS, FilterEngine
from hr_workflow.lifecycle import Liveness
from hr_workflow.notifications import ConfirmPrompt, Notifier
from hr_workflow.scheduler import DEFAULT_REFRESH_INTERVAL_SECONDS, AutoRefreshScheduler
from hr_workflow.selection import SelectionSet
from hr_workflow.service.client import RecordServiceClient
from hr_workflow.store import RecordStore
from hr_workflow.workflow.table import StatusTransitionTable

logger = logging.getLogger(__name__)


class RecordPage:
    """Wires the components for one record kind and owns their lifetime.

    The page is the only writer of its store. Closing it ends the shared
    liveness flag: requests already sent still complete, but nothing they
    return is applied.
    """

    def __init__(
        self,
        kind_name: str,
        *,
        table: StatusTransitionTable,
        client: RecordServiceClient,
        principal: Principal,
        notifier: Notifier,
        confirm: ConfirmPrompt,
        refresh_interval_seconds: float = DEFAULT_REFRESH_INTERVAL_SECONDS,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        auto_refresh: bool = True,
    ) -> None:
        self.kind = table.kind(kind_name)
        self._client = client
        self._notifier = notifier
        self._auto_refresh = auto_refresh
        self.liveness = Liveness()
        self.store = RecordStore(self.kind)
        self.filters = FilterEngine(self.store, debounce_seconds=debounce_seconds)
        self.selection = SelectionSet(table, principal, lambda: self.filters.visible)
        self.scheduler = AutoRefreshScheduler(
            self._fetch,
            self._apply_snapshot,
            interval_seconds=refresh_interval_seconds,
            liveness=self.liveness,
        )
        self.controller = WorkflowController(
            self.store,
            table,
            client,
            principal,
            notifier,
            confirm,
            scheduler=self.scheduler,
            selection=self.selection,
            liveness=self.liveness,
        )
        self._unsubscribe = self.filters.subscribe(self._on_visible_change)

    @property
    def visible(self) -> tuple[Record, ...]:
        return self.filters.visible

    async def __aenter__(self) -> "RecordPage":
        await self.load()
        return self

    async def __aexit__(self, *_exc: object) -> None:
        await self.aclose()

    async def load(self) -> tuple[Record, ...]:
        """Fetch the initial snapshot and start auto-refresh."""
        try:
            records = await self._fetch()
        except WorkflowError as exc:
            self._notifier.error(exc.message)
            raise
        if self.liveness.alive:
            self.store.replace_all(records)
            logger.info("Loaded %d %s", len(records), self.kind.name)
            if self._auto_refresh:
                self.scheduler.start()
        return self.store.snapshot()

    async def refresh(self) -> bool:
        """Fetch a snapshot now, honouring suspension like the timer does."""
        return await self.scheduler.refresh_now()

    def close(self) -> None:
        if not self.liveness.alive:
            return
        self.liveness.end()
        self.scheduler.stop()
        self.controller.close_modal()
        self.filters.close()
        self._unsubscribe()
        self.selection.clear()
        logger.debug("Closed %s page", self.kind.name)

    async def aclose(self) -> None:
        self.close()
        await self.scheduler.wait_idle()

    async def _fetch(self) -> list[Record]:
        return await self._client.list_records(self.kind)

    def _apply_snapshot(self, records: Sequence[Record]) -> None:
        if self.store.replace_all(records):
            logger.debug("Applied refreshed %s snapshot (%d records)", self.kind.name, len(records))

    def _on_visible_change(self, _visible: tuple[Record, ...]) -> None:
        dropped = self.selection.prune()
        if dropped:
            logger.debug("Dropped %d selection(s) no longer visible", len(dropped))
