"""Event bus infrastructure for decoupled UI refresh signals.

The edit session never touches a view directly. It publishes events such as
:class:`HistoryChanged` (which messages currently offer undo) or
:class:`MessageRendered` (fresh HTML for a message) and whatever hosts the
session subscribes to the ones it cares about.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import (
    Any,
    Callable,
    Generic,
    TypeVar,
    TYPE_CHECKING,
)
from weakref import WeakMethod, ref

if TYPE_CHECKING:  # pragma: no cover - imports for type checking only
    from typing import DefaultDict

logger = logging.getLogger(__name__)

# Type variable for event types
E = TypeVar("E", bound="Event")

# Handler type: a callable that takes an event and returns None
Handler = Callable[[E], None]


@dataclass(slots=True)
class Event:
    """Base class for all events in the system.

    All event classes should inherit from this base class and use
    the @dataclass decorator with slots=True for memory efficiency.

    Example::

        @dataclass(slots=True)
        class MessageRendered(Event):
            message_id: str
            html: str
    """

    pass


# High-frequency event types that should not log each publish
_QUIET_EVENT_TYPES: set[type] = set()


# =============================================================================
# Selection & Edit Events
# =============================================================================


@dataclass(slots=True)
class SelectionCaptured(Event):
    """Emitted when a non-empty selection inside one message is captured.

    Attributes:
        message_id: The message the selection belongs to.
        start: Formatted-text start offset.
        end: Formatted-text end offset.
        actions: Names of the edit actions offered for the selection.
    """

    message_id: str
    start: int
    end: int
    actions: tuple[str, ...] = ()


@dataclass(slots=True)
class EditApplied(Event):
    """Emitted when an edit is committed to a message.

    Attributes:
        message_id: The edited message.
        swipe_id: The swipe slot updated alongside the message, if any.
        action: ``"delete"``, ``"rewrite"`` or ``"generate"``.
        range: The raw span that was replaced, as ``(start, end)``.
        no_op: ``True`` when the edit left the text unchanged.
    """

    message_id: str
    swipe_id: int | None
    action: str
    range: tuple[int, int]
    no_op: bool = False


@dataclass(slots=True)
class EditFailed(Event):
    """Emitted when an edit attempt is aborted.

    Attributes:
        message_id: The message the edit targeted.
        action: The edit action that was attempted.
        error_code: Machine-readable failure code.
        reason: A description of why the edit failed.
        details: The error serialized with ``EditError.to_dict``.
    """

    message_id: str
    action: str
    error_code: str
    reason: str
    details: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class EditCancelled(Event):
    """Emitted when the user aborts a generation-backed edit."""

    message_id: str
    action: str


@dataclass(slots=True)
class EditUndone(Event):
    """Emitted when an undo restores a message's previous raw text."""

    message_id: str
    swipe_id: int | None


@dataclass(slots=True)
class MessageRendered(Event):
    """Emitted after a message was re-rendered from its new raw text.

    Attributes:
        message_id: The re-rendered message.
        html: The renderer output for the message.
    """

    message_id: str
    html: str


@dataclass(slots=True)
class HistoryChanged(Event):
    """Emitted whenever the change history is modified.

    Attributes:
        message_ids: Messages that currently have at least one undo entry.
    """

    message_ids: tuple[str, ...]


# =============================================================================
# Generation Events
# =============================================================================


@dataclass(slots=True)
class GenerationStarted(Event):
    """Emitted when a rewrite generation request is sent."""

    message_id: str
    backend: str
    streaming: bool


@dataclass(slots=True)
class GenerationStreamChunk(Event):
    """Emitted for each streamed chunk of a rewrite generation.

    Attributes:
        message_id: The message being rewritten.
        text: Text accumulated so far.
    """

    message_id: str
    text: str


# Register high-frequency event types (done after class definition)
_QUIET_EVENT_TYPES.add(GenerationStreamChunk)


# =============================================================================
# Session Events
# =============================================================================


@dataclass(slots=True)
class NoticePosted(Event):
    """Emitted when a notice should be shown to the user.

    Attributes:
        level: ``"info"``, ``"warning"`` or ``"error"``.
        message: The notice text to display to the user.
    """

    level: str
    message: str


@dataclass(slots=True)
class ChatReset(Event):
    """Emitted when the active chat changes and session state was cleared."""

    chat_id: str | None = None


class EventBus(Generic[E]):
    """A typed publish-subscribe event bus for decoupled communication.

    Handlers are stored as weak references where possible to prevent
    memory leaks.

    Example::

        bus = EventBus()

        def on_history_changed(event: HistoryChanged) -> None:
            print(f"Undo available for: {event.message_ids}")

        bus.subscribe(HistoryChanged, on_history_changed)
        bus.publish(HistoryChanged(message_ids=("5",)))
        bus.unsubscribe(HistoryChanged, on_history_changed)

    Thread Safety:
        This implementation is NOT thread-safe. All operations should be
        performed from the event loop thread.
    """

    __slots__ = ("_handlers",)

    def __init__(self) -> None:
        """Initialize an empty event bus."""
        self._handlers: DefaultDict[type[Event], list[_HandlerRef]] = defaultdict(list)

    def subscribe(self, event_type: type[E], handler: Handler[E]) -> None:
        """Register a handler to receive events of the specified type.

        Args:
            event_type: The class of events to subscribe to.
            handler: A callable that will be invoked with the event.

        Note:
            Subscribing the same handler multiple times will result in
            multiple invocations when an event is published.
        """
        handler_ref = _HandlerRef.create(handler)
        self._handlers[event_type].append(handler_ref)
        logger.debug(
            "Subscribed handler %s to event type %s",
            _handler_name(handler),
            event_type.__name__,
        )

    def unsubscribe(self, event_type: type[E], handler: Handler[E]) -> None:
        """Remove a previously registered handler.

        If the handler was registered multiple times, only the first
        occurrence is removed. Unknown handlers are ignored.
        """
        handlers = self._handlers.get(event_type)
        if handlers is None:
            return

        for i, handler_ref in enumerate(handlers):
            if handler_ref.matches(handler):
                handlers.pop(i)
                logger.debug(
                    "Unsubscribed handler %s from event type %s",
                    _handler_name(handler),
                    event_type.__name__,
                )
                return

    def publish(self, event: E) -> None:
        """Broadcast an event to all registered handlers.

        Handlers are invoked synchronously in the order they were
        registered. If a handler raises an exception, it is logged
        and remaining handlers continue to be invoked.
        """
        event_type = type(event)
        handlers = self._handlers.get(event_type)
        is_quiet = event_type in _QUIET_EVENT_TYPES

        if handlers is None:
            if not is_quiet:
                logger.debug("No handlers for event type %s", event_type.__name__)
            return

        if not is_quiet:
            logger.debug(
                "Publishing %s to %d handler(s)",
                event_type.__name__,
                len(handlers),
            )

        dead_indices: list[int] = []

        for i, handler_ref in enumerate(handlers):
            handler = handler_ref.resolve()
            if handler is None:
                dead_indices.append(i)
                continue

            try:
                handler(event)
            except Exception:
                logger.exception(
                    "Handler %s raised exception for event %s",
                    _handler_name(handler),
                    event_type.__name__,
                )

        # Clean up dead references (in reverse order to preserve indices)
        for i in reversed(dead_indices):
            handlers.pop(i)

    def clear(self) -> None:
        """Remove all registered handlers."""
        self._handlers.clear()
        logger.debug("Cleared all event handlers")

    def handler_count(self, event_type: type[E] | None = None) -> int:
        """Return the number of registered handlers.

        Args:
            event_type: If provided, return count for that event type only.
                       If None, return total count across all event types.
        """
        if event_type is not None:
            return len(self._handlers.get(event_type, []))
        return sum(len(handlers) for handlers in self._handlers.values())


class _HandlerRef:
    """Wrapper for handler references supporting both weak and strong refs.

    Bound methods are held through ``WeakMethod`` so subscribers can be
    garbage collected; plain functions and lambdas are held strongly.
    """

    __slots__ = ("_ref", "_is_weak")

    def __init__(self, handler_ref: WeakMethod | ref | Handler, is_weak: bool) -> None:
        self._ref = handler_ref
        self._is_weak = is_weak

    @classmethod
    def create(cls, handler: Handler) -> _HandlerRef:
        """Create a handler reference, using weak refs where possible."""
        if hasattr(handler, "__self__") and hasattr(handler, "__func__"):
            try:
                return cls(WeakMethod(handler), is_weak=True)
            except TypeError:
                # Some callables can't be weakly referenced
                pass

        return cls(handler, is_weak=False)

    def resolve(self) -> Handler | None:
        """Return the handler, or None if it was garbage collected."""
        if not self._is_weak:
            return self._ref  # type: ignore[return-value]
        return self._ref()  # type: ignore[operator]

    def matches(self, handler: Handler) -> bool:
        resolved = self.resolve()
        if resolved is None:
            return False
        return resolved == handler


def _handler_name(handler: Handler) -> str:
    """Get a human-readable name for a handler for logging purposes."""
    if hasattr(handler, "__self__") and hasattr(handler, "__func__"):
        cls_name = type(handler.__self__).__name__
        return f"{cls_name}.{handler.__func__.__name__}"
    if hasattr(handler, "__name__"):
        return handler.__name__
    return repr(handler)


__all__ = [
    # Core infrastructure
    "Event",
    "EventBus",
    "Handler",
    # Selection & edit events
    "SelectionCaptured",
    "EditApplied",
    "EditFailed",
    "EditCancelled",
    "EditUndone",
    "MessageRendered",
    "HistoryChanged",
    # Generation events
    "GenerationStarted",
    "GenerationStreamChunk",
    # Session events
    "NoticePosted",
    "ChatReset",
]
