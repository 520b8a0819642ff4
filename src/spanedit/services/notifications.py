"""Fire-and-forget user notices."""

from __future__ import annotations

import logging
from typing import Protocol

from ..events import EventBus, NoticePosted

LOGGER = logging.getLogger(__name__)

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


class NotificationSink(Protocol):
    def notify(self, level: str, message: str) -> None:
        ...


class EventBusNotifier:
    """Publish notices as :class:`NoticePosted` events."""

    def __init__(self, bus: EventBus) -> None:
        self._bus = bus

    def notify(self, level: str, message: str) -> None:
        self._bus.publish(NoticePosted(level=level, message=message))


class LoggingNotifier:
    """Write notices to a logger; used when no UI is attached."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._logger = logger or LOGGER

    def notify(self, level: str, message: str) -> None:
        self._logger.log(_LEVELS.get(level, logging.INFO), "%s", message)


__all__ = ["EventBusNotifier", "LoggingNotifier", "NotificationSink"]
