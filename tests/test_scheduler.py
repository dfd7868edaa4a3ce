import asyncio
import logging
from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import make_leave
from hr_workflow.errors import NetworkFailure
from hr_workflow.lifecycle import Liveness
from hr_workflow.scheduler import AutoRefreshScheduler


def test_interval_must_be_positive():
    with pytest.raises(ValueError):
        AutoRefreshScheduler(AsyncMock(), MagicMock(), interval_seconds=0)


@pytest.mark.asyncio
async def test_periodic_refresh_applies_snapshots(leaves):
    snapshot = [make_leave(leaves, 1)]
    refresher = AsyncMock(return_value=snapshot)
    sink = MagicMock()
    scheduler = AutoRefreshScheduler(refresher, sink, interval_seconds=0.05)

    scheduler.start()
    assert scheduler.running
    await asyncio.sleep(0.18)
    scheduler.stop()
    await scheduler.wait_idle()

    assert refresher.await_count >= 2
    sink.assert_called_with(snapshot)
    assert scheduler.refresh_count == sink.call_count
    assert not scheduler.running


@pytest.mark.asyncio
async def test_suspend_cancels_timer_until_last_reason_released():
    refresher = AsyncMock(return_value=[])
    scheduler = AutoRefreshScheduler(refresher, MagicMock(), interval_seconds=0.05)
    scheduler.start()

    scheduler.suspend("modal")
    scheduler.suspend("op:leaves:1")
    assert not scheduler.running
    await asyncio.sleep(0.12)
    refresher.assert_not_awaited()

    scheduler.resume("modal")
    assert not scheduler.running
    assert scheduler.suspend_reasons == frozenset({"op:leaves:1"})

    scheduler.resume("op:leaves:1")
    assert scheduler.running
    await asyncio.sleep(0.08)
    scheduler.stop()
    await scheduler.wait_idle()
    assert refresher.await_count >= 1


@pytest.mark.asyncio
async def test_snapshot_dropped_when_suspended_mid_fetch():
    gate = asyncio.Event()

    async def refresher():
        await gate.wait()
        return []

    sink = MagicMock()
    scheduler = AutoRefreshScheduler(refresher, sink)
    fetch = asyncio.create_task(scheduler.refresh_now())
    await asyncio.sleep(0)

    scheduler.suspend("modal")
    gate.set()

    assert await fetch is False
    sink.assert_not_called()


@pytest.mark.asyncio
async def test_forced_refresh_applies_while_suspended():
    sink = MagicMock()
    scheduler = AutoRefreshScheduler(AsyncMock(return_value=[]), sink)
    scheduler.suspend("op:leaves:1")
    assert await scheduler.refresh_now(force=True) is True
    sink.assert_called_once_with([])


@pytest.mark.asyncio
async def test_snapshot_dropped_after_page_closed():
    liveness = Liveness()
    gate = asyncio.Event()

    async def refresher():
        await gate.wait()
        return []

    sink = MagicMock()
    scheduler = AutoRefreshScheduler(refresher, sink, liveness=liveness)
    fetch = asyncio.create_task(scheduler.refresh_now(force=True))
    await asyncio.sleep(0)

    liveness.end()
    gate.set()

    assert await fetch is False
    sink.assert_not_called()


@pytest.mark.asyncio
async def test_failed_refresh_keeps_schedule():
    refresher = AsyncMock(side_effect=NetworkFailure("down"))
    scheduler = AutoRefreshScheduler(refresher, MagicMock(), interval_seconds=0.05)
    scheduler.start()
    await asyncio.sleep(0.2)
    assert scheduler.running
    scheduler.stop()
    await scheduler.wait_idle()
    assert scheduler.failure_count >= 2


@pytest.mark.asyncio
async def test_start_after_close_does_nothing():
    liveness = Liveness()
    liveness.end()
    scheduler = AutoRefreshScheduler(AsyncMock(return_value=[]), MagicMock(), liveness=liveness)
    scheduler.start()
    assert not scheduler.running


@pytest.mark.asyncio
async def test_failing_sink_is_logged_and_schedule_continues(caplog):
    refresher = AsyncMock(return_value=[])
    sink = MagicMock(side_effect=RuntimeError("listener broke"))
    scheduler = AutoRefreshScheduler(refresher, sink, interval_seconds=0.05)

    with caplog.at_level(logging.ERROR, logger="hr_workflow.scheduler"):
        scheduler.start()
        await asyncio.sleep(0.18)
        assert scheduler.running
        scheduler.stop()
        await scheduler.wait_idle()

    assert sink.call_count >= 2
    assert scheduler.refresh_count == 0
    assert scheduler.failure_count == sink.call_count
    assert "Applying refreshed snapshot failed" in caplog.text
