"""Bounded change ledger supporting per-message undo."""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Iterator

LOGGER = logging.getLogger(__name__)

DEFAULT_UNDO_STEPS = 15

HistoryListener = Callable[[tuple[str, ...]], None]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True, eq=False)
class ChangeRecord:
    """One committed edit: the raw text of a message before and after.

    Records compare by identity so that two edits producing the same text are
    still distinct ledger entries.
    """

    message_id: str
    original_content: str
    new_content: str
    swipe_id: int | None = None
    action: str = "edit"
    timestamp: datetime = field(default_factory=_utcnow)


class ChangeHistory:
    """Ring buffer of the most recent :class:`ChangeRecord` entries.

    Entries are kept in insertion order and the oldest entry is evicted once
    ``capacity`` is exceeded. Undo lookups scan backwards for the newest entry
    of a given message, so each message has its own last-in order while
    sharing the single bounded buffer.

    ``listener`` receives the ids of all messages that still have entries
    after every mutation; hosts use it to show or hide undo controls.
    """

    def __init__(self, capacity: int = DEFAULT_UNDO_STEPS, *, listener: HistoryListener | None = None) -> None:
        if capacity < 1:
            raise ValueError("History capacity must be at least 1")
        self._entries: deque[ChangeRecord] = deque(maxlen=capacity)
        self._listener = listener

    @property
    def capacity(self) -> int:
        return self._entries.maxlen or 0

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[ChangeRecord]:
        return iter(tuple(self._entries))

    def record(self, entry: ChangeRecord) -> ChangeRecord:
        """Append ``entry``, evicting the oldest entry when full."""

        if len(self._entries) == self.capacity:
            evicted = self._entries[0]
            LOGGER.debug("History full; evicting change for message %s", evicted.message_id)
        self._entries.append(entry)
        self._notify()
        return entry

    def record_change(
        self,
        message_id: str,
        original_content: str,
        new_content: str,
        *,
        swipe_id: int | None = None,
        action: str = "edit",
    ) -> ChangeRecord:
        return self.record(
            ChangeRecord(
                message_id=str(message_id),
                original_content=original_content,
                new_content=new_content,
                swipe_id=swipe_id,
                action=action,
            )
        )

    def latest_for(self, message_id: str) -> ChangeRecord | None:
        """Return the most recently recorded entry for ``message_id``."""

        key = str(message_id)
        for entry in reversed(self._entries):
            if entry.message_id == key:
                return entry
        return None

    def discard(self, entry: ChangeRecord) -> bool:
        """Remove exactly ``entry`` from the ledger."""

        for index, candidate in enumerate(self._entries):
            if candidate is entry:
                del self._entries[index]
                self._notify()
                return True
        return False

    def invalidate(self, message_id: str) -> int:
        """Drop every entry for ``message_id``; returns how many were removed."""

        key = str(message_id)
        kept = [entry for entry in self._entries if entry.message_id != key]
        removed = len(self._entries) - len(kept)
        if removed:
            self._entries.clear()
            self._entries.extend(kept)
            LOGGER.debug("Invalidated %d change(s) for message %s", removed, key)
        self._notify()
        return removed

    def reset(self) -> None:
        self._entries.clear()
        self._notify()

    def message_ids(self) -> tuple[str, ...]:
        """Return the ids of messages with at least one entry, oldest first."""

        return tuple(dict.fromkeys(entry.message_id for entry in self._entries))

    def _notify(self) -> None:
        if self._listener is None:
            return
        self._listener(self.message_ids())


__all__ = ["ChangeHistory", "ChangeRecord", "DEFAULT_UNDO_STEPS", "HistoryListener"]
