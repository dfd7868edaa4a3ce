"""Trailing-edge debounce on the running asyncio loop."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

logger = logging.getLogger(__name__)


class Debouncer:
    """Run ``callback`` once after ``delay_seconds`` of quiet.

    Each ``trigger()`` restarts the timer. The callback takes no arguments and
    is expected to read the latest state itself when it fires.
    """

    def __init__(self, delay_seconds: float, callback: Callable[[], object]) -> None:
        if delay_seconds < 0:
            raise ValueError("delay_seconds must be non-negative")
        self._delay = delay_seconds
        self._callback = callback
        self._handle: asyncio.TimerHandle | None = None

    @property
    def delay_seconds(self) -> float:
        return self._delay

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def trigger(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(self._delay, self._fire)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def flush(self) -> None:
        """Fire immediately if a call is pending."""
        if self._handle is None:
            return
        self._handle.cancel()
        self._fire()

    def _fire(self) -> None:
        self._handle = None
        try:
            self._callback()
        except Exception:
            logger.exception("Debounced callback failed")
