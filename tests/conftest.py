"""Shared pytest fixtures."""

from __future__ import annotations

from typing import Callable

import pytest

from spanedit.chat.message_model import ChatMessage
from spanedit.chat.store import InMemoryChatStore
from spanedit.events import Event, EventBus
from spanedit.rendering.markdown import MarkdownRenderer


class EventRecorder:
    """Collects every event of the subscribed types in publish order."""

    def __init__(self, bus: EventBus) -> None:
        self.bus = bus
        self.events: list[Event] = []

    def watch(self, *event_types: type[Event]) -> "EventRecorder":
        for event_type in event_types:
            self.bus.subscribe(event_type, self.events.append)
        return self

    def of_type(self, event_type: type[Event]) -> list[Event]:
        return [event for event in self.events if isinstance(event, event_type)]


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    for name in (
        "SPANEDIT_API_KEY",
        "SPANEDIT_BASE_URL",
        "SPANEDIT_MODEL",
        "SPANEDIT_BACKEND",
        "SPANEDIT_PRESET",
        "SPANEDIT_STREAM",
        "SPANEDIT_DEBUG_LOGGING",
        "SPANEDIT_REQUEST_TIMEOUT",
        "SPANEDIT_TEMPERATURE",
        "SPANEDIT_UNDO_STEPS",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("SPANEDIT_LOG_DIR", str(tmp_path / "logs"))


@pytest.fixture
def renderer() -> MarkdownRenderer:
    return MarkdownRenderer()


@pytest.fixture
def make_store() -> Callable[..., InMemoryChatStore]:
    def _factory(*texts: str) -> InMemoryChatStore:
        return InMemoryChatStore([ChatMessage(mes=text, name="Narrator") for text in texts], chat_id="chat-test")

    return _factory


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def recorder(bus: EventBus) -> EventRecorder:
    return EventRecorder(bus)
