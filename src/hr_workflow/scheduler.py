"""Periodic re-fetch of the authoritative record snapshot."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence

from hr_workflow.domain.records import Record
from hr_workflow.errors import WorkflowError
from hr_workflow.lifecycle import Liveness

logger = logging.getLogger(__name__)

Refresher = Callable[[], Awaitable[Sequence[Record]]]
SnapshotSink = Callable[[Sequence[Record]], object]

DEFAULT_REFRESH_INTERVAL_SECONDS = 5.0


class AutoRefreshScheduler:
    """Interval refresh that stands down while anything is being edited.

    Each open modal or in-flight operation holds a suspension reason. The
    interval timer is cancelled while any reason is held and re-armed when the
    last one is released. A fetch already on the wire is never cancelled; its
    snapshot is dropped if the scheduler was suspended or the page closed in
    the meantime.
    """

    def __init__(
        self,
        refresher: Refresher,
        sink: SnapshotSink,
        *,
        interval_seconds: float = DEFAULT_REFRESH_INTERVAL_SECONDS,
        liveness: Liveness | None = None,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self._refresher = refresher
        self._sink = sink
        self._interval = interval_seconds
        self._liveness = liveness or Liveness()
        self._started = False
        self._reasons: set[str] = set()
        self._timer: asyncio.Task[None] | None = None
        self._fetch: asyncio.Task[bool] | None = None
        self.refresh_count = 0
        self.failure_count = 0

    @property
    def interval_seconds(self) -> float:
        return self._interval

    @property
    def running(self) -> bool:
        """True while the interval timer is armed."""
        return self._timer is not None and not self._timer.done()

    @property
    def suspended(self) -> bool:
        return bool(self._reasons)

    @property
    def suspend_reasons(self) -> frozenset[str]:
        return frozenset(self._reasons)

    def start(self) -> None:
        self._started = True
        self._arm()

    def stop(self) -> None:
        self._started = False
        self._disarm()

    def suspend(self, reason: str) -> None:
        if reason not in self._reasons:
            logger.debug("Auto-refresh suspended: %s", reason)
        self._reasons.add(reason)
        self._disarm()

    def resume(self, reason: str) -> None:
        self._reasons.discard(reason)
        if not self._reasons:
            logger.debug("Auto-refresh resumed after %s", reason)
            self._arm()

    async def refresh_now(self, *, force: bool = False) -> bool:
        """Fetch and apply a snapshot immediately; returns whether it was applied.

        ``force`` applies the snapshot even while suspended.
        """
        try:
            records = await self._refresher()
        except WorkflowError as exc:
            self.failure_count += 1
            logger.warning("Refresh failed: %s", exc)
            return False
        if not self._liveness.alive:
            logger.debug("Page closed during refresh, dropping snapshot")
            return False
        if self.suspended and not force:
            logger.debug("Refresh finished while suspended (%s), dropping snapshot", self._reasons)
            return False
        try:
            self._sink(records)
        except Exception:
            # Nobody awaits the periodic fetch task.
            self.failure_count += 1
            logger.exception("Applying refreshed snapshot failed")
            return False
        self.refresh_count += 1
        return True

    async def wait_idle(self) -> None:
        """Wait for a fetch already on the wire to settle."""
        if self._fetch is not None and not self._fetch.done():
            await asyncio.gather(self._fetch, return_exceptions=True)

    def _arm(self) -> None:
        if not self._started or self._reasons or not self._liveness.alive:
            return
        if self.running:
            return
        self._timer = asyncio.get_running_loop().create_task(self._run())

    def _disarm(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            if self._fetch is not None and not self._fetch.done():
                logger.debug("Previous refresh still running, skipping tick")
                continue
            # Detached from the timer so cancelling the timer leaves the fetch alone.
            self._fetch = asyncio.get_running_loop().create_task(self.refresh_now())
