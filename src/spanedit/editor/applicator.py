"""Splice replacement text into raw messages and commit the result."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from ..alignment.loose_match import find_loose
from ..chat.message_model import ChatMessage
from ..chat.store import MessageStore
from ..core.errors import MessageNotFound, PersistenceFailure, ResolutionFailure
from ..core.ranges import TextRange
from ..events import EditApplied, EventBus, MessageRendered
from ..rendering.markdown import Renderer
from .history import ChangeHistory, ChangeRecord
from .selection import ResolvedSelection

LOGGER = logging.getLogger(__name__)

ACTION_DELETE = "delete"
ACTION_REWRITE = "rewrite"
ACTION_GENERATE = "generate"


@dataclass(slots=True, frozen=True)
class AppliedEdit:
    """Outcome of a committed edit."""

    message_id: str
    swipe_id: int | None
    action: str
    span: TextRange
    original_text: str
    new_text: str
    replacement: str
    record: ChangeRecord
    html: str
    no_op: bool = False


def splice(raw: str, span: TextRange, replacement: str) -> str:
    """Return ``raw`` with ``span`` replaced by ``replacement``."""

    return f"{raw[: span.start]}{replacement}{raw[span.end :]}"


class EditApplicator:
    """Apply a replacement to a resolved span and persist it atomically.

    The message text, the addressed swipe slot, the re-render and the store
    persist either all succeed or the message is restored to its previous
    raw text; a change record is only written once everything succeeded.
    """

    def __init__(
        self,
        store: MessageStore,
        renderer: Renderer,
        history: ChangeHistory,
        *,
        bus: EventBus | None = None,
    ) -> None:
        self._store = store
        self._renderer = renderer
        self._history = history
        self._bus = bus

    def plan(self, raw: str, resolved: ResolvedSelection, replacement: str) -> tuple[TextRange, str, bool]:
        """Return ``(span, new_text, no_op)`` for applying ``replacement`` to ``raw``.

        When the splice reproduces ``raw`` exactly the span is relocated with
        the loose matcher and the splice retried once before the edit is
        accepted as a no-op.
        """

        span = resolved.span
        if raw != resolved.raw_text:
            relocated = find_loose(raw, resolved.fallback_fragment)
            if relocated is None:
                raise ResolutionFailure(
                    message="Message changed while the edit was pending",
                    message_id=resolved.message_id,
                    fragment=resolved.fallback_fragment,
                )
            LOGGER.info("Message %s changed since resolution; relocated span to %s", resolved.message_id, relocated)
            span = relocated
        span = span.clamp(upper=len(raw))

        new_text = splice(raw, span, replacement)
        if new_text != raw:
            return span, new_text, False

        retry = find_loose(raw, resolved.fallback_fragment)
        if retry is not None and retry != span:
            retried = splice(raw, retry, replacement)
            if retried != raw:
                LOGGER.info(
                    "Splice at %s was a no-op for message %s; loose match retry used %s",
                    span,
                    resolved.message_id,
                    retry,
                )
                return retry, retried, False
        return span, new_text, True

    async def apply(self, resolved: ResolvedSelection, replacement: str, *, action: str = ACTION_REWRITE) -> AppliedEdit:
        message_id = resolved.message_id
        message = self._store.get_message(message_id)
        if message is None:
            raise MessageNotFound(message_id=message_id)

        original = message.mes or ""
        span, new_text, no_op = self.plan(original, resolved, replacement)
        if no_op:
            LOGGER.warning("Edit of message %s left the text unchanged; recording as no-op", message_id)

        swipe_id = resolved.swipe_id if message.has_swipe(resolved.swipe_id) else None
        html = await self._commit(message_id, message, swipe_id, original, new_text)

        record = self._history.record_change(
            message_id,
            original,
            new_text,
            swipe_id=swipe_id,
            action=action,
        )
        LOGGER.info(
            "Applied %s to message %s at %d:%d (%+d chars)",
            action,
            message_id,
            span.start,
            span.end,
            len(new_text) - len(original),
        )
        self._publish(MessageRendered(message_id=message_id, html=html))
        self._publish(
            EditApplied(
                message_id=message_id,
                swipe_id=swipe_id,
                action=action,
                range=span.to_tuple(),
                no_op=no_op,
            )
        )
        return AppliedEdit(
            message_id=message_id,
            swipe_id=swipe_id,
            action=action,
            span=span,
            original_text=original,
            new_text=new_text,
            replacement=replacement,
            record=record,
            html=html,
            no_op=no_op,
        )

    async def write(self, message_id: str, message: ChatMessage, swipe_id: int | None, new_text: str) -> str:
        """Commit ``new_text`` without touching history; used by undo."""

        html = await self._commit(message_id, message, swipe_id, message.mes or "", new_text)
        self._publish(MessageRendered(message_id=message_id, html=html))
        return html

    async def _commit(
        self,
        message_id: str,
        message: ChatMessage,
        swipe_id: int | None,
        original: str,
        new_text: str,
    ) -> str:
        previous_swipe = message.swipes[swipe_id] if swipe_id is not None else None
        try:
            self._store.set_message(message_id, new_text)
            if swipe_id is not None:
                self._store.set_swipe(message_id, swipe_id, new_text)
            html = self._renderer.render(new_text, message.render_context(message_id))
            await self._store.persist()
        except asyncio.CancelledError:
            self._restore(message_id, swipe_id, original, previous_swipe)
            await self._persist_rollback(message_id)
            raise
        except Exception as exc:
            LOGGER.exception("Failed to commit edit of message %s; restoring previous text", message_id)
            self._restore(message_id, swipe_id, original, previous_swipe)
            raise PersistenceFailure(message_id=message_id, details={"reason": str(exc)}) from exc
        return html

    def _restore(self, message_id: str, swipe_id: int | None, original: str, previous_swipe: str | None) -> None:
        self._store.set_message(message_id, original)
        if swipe_id is not None and previous_swipe is not None:
            self._store.set_swipe(message_id, swipe_id, previous_swipe)

    async def _persist_rollback(self, message_id: str) -> None:
        # A persist interrupted by cancellation may still reach storage.
        try:
            await self._store.persist()
        except Exception:
            LOGGER.exception("Failed to persist rollback of message %s", message_id)

    def _publish(self, event) -> None:
        if self._bus is not None:
            self._bus.publish(event)


__all__ = [
    "ACTION_DELETE",
    "ACTION_GENERATE",
    "ACTION_REWRITE",
    "AppliedEdit",
    "EditApplicator",
    "splice",
]
