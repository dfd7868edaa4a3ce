"""Notification and confirmation collaborators."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal, Protocol

from hr_workflow.utils.time import utc_now

logger = logging.getLogger(__name__)

Level = Literal["success", "error", "info"]

# Asks the user a yes/no question; resolves to True when confirmed.
ConfirmPrompt = Callable[[str], Awaitable[bool]]


class Notifier(Protocol):
    def success(self, message: str) -> None: ...

    def error(self, message: str) -> None: ...

    def info(self, message: str) -> None: ...


@dataclass(frozen=True)
class Notification:
    level: Level
    message: str
    created_at: datetime = field(default_factory=utc_now)


class LoggingNotifier:
    """Notifier that only writes to the log."""

    def __init__(self, name: str = __name__) -> None:
        self._logger = logging.getLogger(name)

    def success(self, message: str) -> None:
        self._logger.info("%s", message)

    def error(self, message: str) -> None:
        self._logger.error("%s", message)

    def info(self, message: str) -> None:
        self._logger.info("%s", message)


class CollectingNotifier:
    """Keeps notifications in memory for a caller to render later."""

    def __init__(self) -> None:
        self.notifications: list[Notification] = []

    def _add(self, level: Level, message: str) -> None:
        self.notifications.append(Notification(level=level, message=message))

    def success(self, message: str) -> None:
        self._add("success", message)

    def error(self, message: str) -> None:
        self._add("error", message)

    def info(self, message: str) -> None:
        self._add("info", message)

    def drain(self) -> list[Notification]:
        drained, self.notifications = self.notifications, []
        return drained


async def always_confirm(message: str) -> bool:
    logger.debug("Auto-confirming: %s", message)
    return True


async def never_confirm(message: str) -> bool:
    logger.debug("Auto-declining: %s", message)
    return False
