"""Message stores backing the edit session."""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from pathlib import Path
from typing import Any, Dict, Iterable, Protocol

from .message_model import ChatMessage

LOGGER = logging.getLogger(__name__)
_CHAT_FORMAT_VERSION = 1


class MessageStore(Protocol):
    """Collaborator owning chat messages; the edit core only mutates raw text."""

    def get_message(self, message_id: str) -> ChatMessage | None:
        ...

    def set_message(self, message_id: str, raw_text: str) -> None:
        ...

    def set_swipe(self, message_id: str, swipe_index: int, raw_text: str) -> None:
        ...

    async def persist(self) -> None:
        ...


class InMemoryChatStore:
    """Chat held in memory; message ids are the stringified list positions."""

    def __init__(self, messages: Iterable[ChatMessage] = (), *, chat_id: str | None = None) -> None:
        self.chat_id = chat_id or uuid.uuid4().hex
        self._messages: list[ChatMessage] = list(messages)
        self.persist_count = 0

    @property
    def messages(self) -> tuple[ChatMessage, ...]:
        return tuple(self._messages)

    def message_ids(self) -> tuple[str, ...]:
        return tuple(str(index) for index in range(len(self._messages)))

    def append(self, message: ChatMessage) -> str:
        self._messages.append(message)
        return str(len(self._messages) - 1)

    def get_message(self, message_id: str) -> ChatMessage | None:
        index = self._index(message_id)
        if index is None:
            return None
        return self._messages[index]

    def set_message(self, message_id: str, raw_text: str) -> None:
        self._require(message_id).mes = raw_text

    def set_swipe(self, message_id: str, swipe_index: int, raw_text: str) -> None:
        message = self._require(message_id)
        if not message.has_swipe(swipe_index):
            raise IndexError(f"Message {message_id} has no swipe {swipe_index}")
        message.swipes[swipe_index] = raw_text

    async def persist(self) -> None:
        self.persist_count += 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": _CHAT_FORMAT_VERSION,
            "chat_id": self.chat_id,
            "messages": [message.to_dict() for message in self._messages],
        }

    def _require(self, message_id: str) -> ChatMessage:
        message = self.get_message(message_id)
        if message is None:
            raise KeyError(f"Unknown message id {message_id!r}")
        return message

    def _index(self, message_id: str) -> int | None:
        try:
            index = int(str(message_id), 10)
        except (TypeError, ValueError):
            return None
        if 0 <= index < len(self._messages):
            return index
        return None


class JsonChatStore(InMemoryChatStore):
    """Chat persisted as a JSON document with atomic file writes."""

    def __init__(self, path: Path | str) -> None:
        self._path = Path(path)
        payload = self._read_payload()
        messages = [ChatMessage.from_dict(item) for item in payload.get("messages", []) if isinstance(item, dict)]
        super().__init__(messages, chat_id=payload.get("chat_id") or self._path.stem)
        self._pending_write: asyncio.Future[Path] | None = None

    @property
    def path(self) -> Path:
        return self._path

    async def persist(self) -> None:
        """Write the current messages to disk from a worker thread.

        The document is serialized before the hand-off and writes land in call
        order. A started write runs to completion even if the caller is
        cancelled, so a later persist always wins on disk.
        """

        body = self._serialize()
        write = asyncio.ensure_future(self._write_after(self._pending_write, body))
        self._pending_write = write
        await asyncio.shield(write)
        self.persist_count += 1

    def save(self) -> Path:
        """Write the chat to disk, replacing the previous file atomically."""

        return self._write(self._serialize())

    async def _write_after(self, previous: asyncio.Future[Path] | None, body: str) -> Path:
        if previous is not None:
            await asyncio.wait([previous])
        return await asyncio.to_thread(self._write, body)

    def _serialize(self) -> str:
        return json.dumps(self.to_dict(), indent=2, ensure_ascii=False)

    def _write(self, body: str) -> Path:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(".tmp")
        tmp_path.write_text(body, encoding="utf-8")
        tmp_path.replace(self._path)
        LOGGER.debug("Chat %s saved to %s (%d messages)", self.chat_id, self._path, len(self._messages))
        return self._path

    def _read_payload(self) -> Dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            payload = json.loads(self._path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            LOGGER.warning("Chat file %s is not valid JSON: %s", self._path, exc)
            return {}
        if isinstance(payload, list):
            return {"messages": payload}
        if not isinstance(payload, dict):
            return {}
        return payload


__all__ = ["InMemoryChatStore", "JsonChatStore", "MessageStore"]
