"""Edit session tying selection capture, edits, generation and undo together.

One :class:`EditSession` exists per loaded chat. It owns the change history,
the last captured selection and the single in-flight generation, and talks to
the host only through the :class:`~spanedit.chat.store.MessageStore`, the
renderer, the event bus and the notification sink.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import contextmanager
from enum import Enum
from typing import Iterator

from .ai.generation import (
    CancellationToken,
    GenerationChunk,
    GenerationOptions,
    GenerationService,
    collect_text,
    create_generation_backend,
)
from .ai.prompts import build_rewrite_prompt
from .chat.store import MessageStore
from .core.errors import (
    EditError,
    ErrorCode,
    GenerationCancelled,
    GenerationFailure,
    MessageNotFound,
    PersistenceFailure,
    ResolutionFailure,
    UndoTargetMissing,
)
from .editor.applicator import ACTION_DELETE, ACTION_GENERATE, ACTION_REWRITE, AppliedEdit, EditApplicator
from .editor.history import ChangeHistory
from .editor.selection import ResolvedSelection, Selection, SelectionResolver
from .events import (
    ChatReset,
    EditCancelled,
    EditFailed,
    EditUndone,
    Event,
    EventBus,
    GenerationStarted,
    GenerationStreamChunk,
    HistoryChanged,
    SelectionCaptured,
)
from .rendering.dom import DomRange, RenderedContainer
from .rendering.markdown import MarkdownRenderer, Renderer
from .services.notifications import EventBusNotifier, NotificationSink
from .services.settings import Settings

LOGGER = logging.getLogger(__name__)


class EditAction(str, Enum):
    """Actions offered for a captured selection, in menu order."""

    REWRITE = ACTION_REWRITE
    GENERATE = ACTION_GENERATE
    DELETE = ACTION_DELETE


class EditSession:
    """Per-chat edit state and the operations a selection menu triggers."""

    def __init__(
        self,
        store: MessageStore,
        *,
        settings: Settings | None = None,
        renderer: Renderer | None = None,
        generator: GenerationService | None = None,
        bus: EventBus | None = None,
        notifier: NotificationSink | None = None,
    ) -> None:
        self.settings = settings or Settings()
        self._store = store
        self._renderer = renderer or MarkdownRenderer()
        self._bus = bus or EventBus()
        self._notifier = notifier or EventBusNotifier(self._bus)
        self._generator = generator
        self._resolver = SelectionResolver(self._renderer)
        self._history = ChangeHistory(self.settings.undo_steps, listener=self._on_history_changed)
        self._applicator = EditApplicator(self._store, self._renderer, self._history, bus=self._bus)
        self._last_selection: Selection | None = None
        self._generation_task: asyncio.Task[str] | None = None
        self._generation_token: CancellationToken | None = None

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------
    @property
    def bus(self) -> EventBus:
        return self._bus

    @property
    def history(self) -> ChangeHistory:
        return self._history

    @property
    def store(self) -> MessageStore:
        return self._store

    @property
    def last_selection(self) -> Selection | None:
        return self._last_selection

    @property
    def generation_active(self) -> bool:
        return self._generation_task is not None and not self._generation_task.done()

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------
    def render_container(self, message_id: str) -> RenderedContainer:
        """Render ``message_id`` into a text-node container."""

        message = self._store.get_message(message_id)
        if message is None:
            raise MessageNotFound(message_id=str(message_id))
        html = self._renderer.render(message.mes, message.render_context(str(message_id)))
        return RenderedContainer.from_html(html, message_id=str(message_id))

    def capture_selection(
        self,
        message_id: str,
        container: RenderedContainer,
        dom_range: DomRange,
        *,
        swipe_id: int | None = None,
    ) -> Selection | None:
        selection = Selection.capture(message_id, container, dom_range, swipe_id=swipe_id)
        if selection is None:
            return None
        self._last_selection = selection
        actions = tuple(action.value for action in self.available_actions(selection))
        self._publish(
            SelectionCaptured(
                message_id=selection.message_id,
                start=selection.start,
                end=selection.end,
                actions=actions,
            )
        )
        return selection

    def available_actions(self, selection: Selection | None = None) -> tuple[EditAction, ...]:
        """Return the enabled actions for ``selection``; none for blank selections."""

        if selection is None or selection.is_blank:
            return ()
        enabled = {
            EditAction.REWRITE: self.settings.show_rewrite,
            EditAction.GENERATE: self.settings.show_generate,
            EditAction.DELETE: self.settings.show_delete,
        }
        return tuple(action for action in EditAction if enabled[action])

    def resolve(self, selection: Selection) -> ResolvedSelection:
        message = self._store.get_message(selection.message_id)
        if message is None:
            raise MessageNotFound(message_id=selection.message_id)
        return self._resolver.resolve(message, selection)

    # ------------------------------------------------------------------
    # Edits
    # ------------------------------------------------------------------
    async def delete_selection(self, selection: Selection | None = None) -> AppliedEdit | None:
        """Remove the selected text from its message."""

        return await self._edit(selection, "", ACTION_DELETE)

    async def rewrite_selection(self, selection: Selection | None, new_text: str | bool | None) -> AppliedEdit | None:
        """Replace the selected text with ``new_text``.

        ``None`` or ``False`` means the user dismissed the rewrite prompt; no
        edit is made.
        """

        selection = selection or self._last_selection
        if new_text is None or new_text is False:
            if selection is not None:
                LOGGER.debug("Rewrite prompt for message %s dismissed", selection.message_id)
                self._publish(EditCancelled(message_id=selection.message_id, action=ACTION_REWRITE))
            return None
        return await self._edit(selection, str(new_text), ACTION_REWRITE)

    async def generate_rewrite(
        self,
        selection: Selection | None = None,
        *,
        instructions: str | None = None,
        stream: bool | None = None,
        preset: str | None = None,
    ) -> AppliedEdit | None:
        """Replace the selection with text from the generation back-end.

        Returns ``None`` when the selection could not be resolved or the
        generation was cancelled. Raises :class:`GenerationFailure` after
        notifying the user when the back-end fails.
        """

        selection = selection or self._last_selection
        if selection is None or selection.is_blank:
            return None
        if self.generation_active:
            failure = GenerationFailure(
                error_code=ErrorCode.GENERATION_BUSY,
                message="A rewrite is already being generated",
                suggestion="Wait for it to finish or cancel it first",
            )
            self._report(failure, selection.message_id, ACTION_GENERATE)
            raise failure

        resolved = self._resolve_or_none(selection, ACTION_GENERATE)
        if resolved is None:
            return None

        token = CancellationToken()
        task = asyncio.create_task(self._generate_text(resolved, token, instructions, stream, preset))
        self._generation_token = token
        self._generation_task = task
        try:
            text = await task
        except asyncio.CancelledError:
            if not token.cancelled:
                raise
            self._cancelled(selection.message_id)
            return None
        except GenerationCancelled:
            self._cancelled(selection.message_id)
            return None
        except GenerationFailure as exc:
            self._report(exc, selection.message_id, ACTION_GENERATE)
            raise
        except Exception as exc:
            LOGGER.exception("Generation service failed for message %s", selection.message_id)
            failure = GenerationFailure(
                message=f"Generation failed: {exc}",
                details={"exception": type(exc).__name__},
                backend=getattr(self._generator, "name", None),
            )
            self._report(failure, selection.message_id, ACTION_GENERATE)
            raise failure from exc
        finally:
            self._generation_task = None
            self._generation_token = None

        return await self._apply(resolved, text, ACTION_GENERATE)

    def cancel_generation(self, reason: str | None = "user") -> bool:
        """Abort the in-flight generation; returns ``False`` when none is running."""

        if not self.generation_active:
            return False
        if self._generation_token is not None:
            self._generation_token.cancel(reason)
        if self._generation_task is not None:
            self._generation_task.cancel()
        LOGGER.info("Generation cancellation requested (%s)", reason)
        return True

    async def undo(self, message_id: str) -> bool:
        """Restore the raw text of ``message_id`` from before its latest edit."""

        key = str(message_id)
        record = self._history.latest_for(key)
        if record is None:
            LOGGER.debug("Nothing to undo for message %s", key)
            return False
        message = self._store.get_message(key)
        if message is None:
            error = UndoTargetMissing(message_id=key)
            LOGGER.warning("%s (message %s)", error, key)
            return False

        swipe_id = record.swipe_id if message.has_swipe(record.swipe_id) else None
        try:
            await self._applicator.write(key, message, swipe_id, record.original_content)
        except PersistenceFailure as exc:
            self._report(exc, key, "undo")
            raise
        self._history.discard(record)
        LOGGER.info("Undid %s of message %s", record.action, key)
        self._publish(EditUndone(message_id=key, swipe_id=swipe_id))
        return True

    def can_undo(self, message_id: str) -> bool:
        return self._history.latest_for(message_id) is not None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def handle_message_edited(self, message_id: str) -> int:
        """Drop undo entries for a message that was edited outside the session."""

        return self._history.invalidate(message_id)

    def reset(self, chat_id: str | None = None) -> None:
        """Clear per-chat state after the active chat changed."""

        self.cancel_generation("chat changed")
        self._last_selection = None
        self._history.reset()
        LOGGER.debug("Edit session reset for chat %s", chat_id)
        self._publish(ChatReset(chat_id=chat_id))

    async def close(self) -> None:
        task = self._generation_task
        self.cancel_generation("session closed")
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)
        aclose = getattr(self._generator, "aclose", None)
        if aclose is not None:
            await aclose()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    async def _edit(self, selection: Selection | None, replacement: str, action: str) -> AppliedEdit | None:
        selection = selection or self._last_selection
        if selection is None or selection.is_blank:
            return None
        resolved = self._resolve_or_none(selection, action)
        if resolved is None:
            return None
        return await self._apply(resolved, replacement, action)

    def _resolve_or_none(self, selection: Selection, action: str) -> ResolvedSelection | None:
        try:
            return self.resolve(selection)
        except ResolutionFailure as exc:
            LOGGER.info("Could not resolve selection in message %s: %s", selection.message_id, exc)
            self._publish_failure(exc, selection.message_id, action)
            return None
        except MessageNotFound as exc:
            self._report(exc, selection.message_id, action)
            raise

    async def _apply(self, resolved: ResolvedSelection, replacement: str, action: str) -> AppliedEdit | None:
        try:
            return await self._applicator.apply(resolved, replacement, action=action)
        except ResolutionFailure as exc:
            LOGGER.info("Edit of message %s aborted: %s", resolved.message_id, exc)
            self._publish_failure(exc, resolved.message_id, action)
            return None
        except EditError as exc:
            self._report(exc, resolved.message_id, action)
            raise

    async def _generate_text(
        self,
        resolved: ResolvedSelection,
        token: CancellationToken,
        instructions: str | None,
        stream: bool | None,
        preset: str | None,
    ) -> str:
        with self._preset_scope(preset):
            settings = self.settings
            prompt = build_rewrite_prompt(
                resolved.selected_raw_text,
                resolved.raw_text,
                instructions=instructions,
                template=settings.prompt_template,
            )
            options = GenerationOptions.from_settings(settings, stream=stream)
            generator = self._ensure_generator()
            backend = getattr(generator, "name", type(generator).__name__)
            self._publish(
                GenerationStarted(message_id=resolved.message_id, backend=backend, streaming=options.stream)
            )

            def on_progress(chunk: GenerationChunk) -> None:
                self._publish(GenerationStreamChunk(message_id=resolved.message_id, text=chunk.accumulated))

            result = await generator.generate(prompt, options, token)
            text = (await collect_text(result, token, on_progress)).strip()

        if not text:
            raise GenerationFailure(
                error_code=ErrorCode.GENERATION_EMPTY,
                message="The model returned an empty rewrite",
                suggestion="Retry or adjust the prompt",
                backend=backend,
            )
        return text

    @contextmanager
    def _preset_scope(self, preset: str | None) -> Iterator[None]:
        previous = self.settings
        resolved = previous.resolve_preset(preset)
        if resolved is not None:
            LOGGER.debug("Applying generation preset %s", preset or previous.rewrite_preset)
            self.settings = resolved.apply_to(previous)
        try:
            yield
        finally:
            self.settings = previous

    def _ensure_generator(self) -> GenerationService:
        if self._generator is None:
            self._generator = create_generation_backend(self.settings)
        return self._generator

    def _cancelled(self, message_id: str) -> None:
        LOGGER.info("Generation for message %s cancelled; nothing was changed", message_id)
        self._publish(EditCancelled(message_id=message_id, action=ACTION_GENERATE))

    def _report(self, error: EditError, message_id: str, action: str) -> None:
        if error.severity == "error":
            LOGGER.error("%s failed for message %s: %s", action, message_id, error)
        else:
            LOGGER.info("%s failed for message %s: %s", action, message_id, error)
        self._notifier.notify(error.severity, error.message)
        self._publish_failure(error, message_id, action)

    def _publish_failure(self, error: EditError, message_id: str, action: str) -> None:
        self._publish(
            EditFailed(
                message_id=message_id,
                action=action,
                error_code=error.error_code,
                reason=error.message,
                details=error.to_dict(),
            )
        )

    def _on_history_changed(self, message_ids: tuple[str, ...]) -> None:
        self._publish(HistoryChanged(message_ids=message_ids))

    def _publish(self, event: Event) -> None:
        self._bus.publish(event)


__all__ = ["EditAction", "EditSession"]
