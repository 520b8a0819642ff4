"""Async AI client wrapper built around OpenAI-compatible endpoints."""

from __future__ import annotations

import inspect
import json
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Callable, Dict, Iterable, List, Mapping, MutableMapping, cast

import httpx
from openai import AsyncOpenAI, APIConnectionError, APIError, APIStatusError, RateLimitError
from openai.types.chat import ChatCompletionMessageParam
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

LOGGER = logging.getLogger(__name__)

_TRANSIENT_ERRORS: tuple[type[BaseException], ...] = (
    APIError,
    APIStatusError,
    APIConnectionError,
    RateLimitError,
    httpx.TimeoutException,
)


@dataclass(slots=True)
class ClientSettings:
    """Subset of settings required to configure the AI client."""

    base_url: str
    api_key: str
    model: str
    organization: str | None = None
    request_timeout: float | None = 90.0
    max_retries: int = 3
    retry_min_seconds: float = 0.5
    retry_max_seconds: float = 6.0
    default_headers: Mapping[str, str] | None = None
    metadata: Mapping[str, str] | None = None
    debug_logging: bool = False

    @classmethod
    def from_settings(cls, settings: Any) -> ClientSettings:
        """Build client settings from a :class:`~spanedit.services.settings.Settings`."""

        return cls(
            base_url=settings.base_url,
            api_key=settings.api_key,
            model=settings.model,
            organization=getattr(settings, "organization", None),
            request_timeout=settings.request_timeout,
            max_retries=settings.max_retries,
            retry_min_seconds=settings.retry_min_seconds,
            retry_max_seconds=settings.retry_max_seconds,
            default_headers=getattr(settings, "default_headers", None) or None,
            metadata=settings.metadata or None,
            debug_logging=settings.debug_logging,
        )


@dataclass(slots=True)
class AIStreamEvent:
    """Normalized representation of streaming deltas."""

    type: str
    content: str | None = None


class AIClient:
    """Async client exposing chat, legacy text and Responses calls with retries."""

    def __init__(self, settings: ClientSettings, *, client: AsyncOpenAI | None = None) -> None:
        self._settings = settings
        self._client = client or self._build_client(settings)

    @property
    def settings(self) -> ClientSettings:
        return self._settings

    # ------------------------------------------------------------------
    # Chat completions
    # ------------------------------------------------------------------
    async def create_chat_completion(
        self,
        messages: Iterable[Mapping[str, Any] | ChatCompletionMessageParam],
        *,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        metadata: Mapping[str, str] | None = None,
        **extra_params: Any,
    ) -> Any:
        """Return a non-streamed chat completion for ``messages``."""

        payload = self._build_payload(
            {"messages": self._coerce_messages(messages)},
            model=model,
            temperature=temperature,
            limit=("max_tokens", max_tokens),
            metadata=metadata,
            extra_params=extra_params,
        )
        LOGGER.debug(
            "Requesting chat completion via %s with %s message(s)",
            payload["model"],
            len(payload["messages"]),
        )
        async for attempt in self._retrying():
            with attempt:
                return await self._client.chat.completions.create(**payload)
        raise RuntimeError("unreachable")  # pragma: no cover - AsyncRetrying reraises

    async def stream_chat_completion(
        self,
        messages: Iterable[Mapping[str, Any] | ChatCompletionMessageParam],
        *,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        metadata: Mapping[str, str] | None = None,
        **extra_params: Any,
    ) -> AsyncIterator[AIStreamEvent]:
        """Stream chat completion deltas for the provided messages."""

        payload = self._build_payload(
            {"messages": self._coerce_messages(messages)},
            model=model,
            temperature=temperature,
            limit=("max_tokens", max_tokens),
            metadata=metadata,
            extra_params=extra_params,
        )
        LOGGER.debug(
            "Starting streamed chat completion via %s with %s message(s)",
            payload["model"],
            len(payload["messages"]),
        )
        emitted = False
        async for attempt in self._retrying(replayable=lambda: not emitted):
            with attempt:
                async with self._client.chat.completions.stream(**payload) as stream:
                    async for event in stream:
                        normalized = self._normalize_chat_event(event)
                        if normalized is not None:
                            emitted = True
                            yield normalized
                break

    # ------------------------------------------------------------------
    # Legacy text completions
    # ------------------------------------------------------------------
    async def create_text_completion(
        self,
        prompt: str,
        *,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        **extra_params: Any,
    ) -> Any:
        payload = self._build_payload(
            {"prompt": prompt},
            model=model,
            temperature=temperature,
            limit=("max_tokens", max_tokens),
            metadata=None,
            extra_params=extra_params,
        )
        LOGGER.debug("Requesting text completion via %s (%d prompt chars)", payload["model"], len(prompt))
        async for attempt in self._retrying():
            with attempt:
                return await self._client.completions.create(**payload)
        raise RuntimeError("unreachable")  # pragma: no cover - AsyncRetrying reraises

    async def stream_text_completion(
        self,
        prompt: str,
        *,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        **extra_params: Any,
    ) -> AsyncIterator[AIStreamEvent]:
        payload = self._build_payload(
            {"prompt": prompt, "stream": True},
            model=model,
            temperature=temperature,
            limit=("max_tokens", max_tokens),
            metadata=None,
            extra_params=extra_params,
        )
        LOGGER.debug("Starting streamed text completion via %s", payload["model"])
        emitted = False
        async for attempt in self._retrying(replayable=lambda: not emitted):
            with attempt:
                stream = await self._client.completions.create(**payload)
                async for chunk in stream:
                    choices = getattr(chunk, "choices", None) or []
                    text = getattr(choices[0], "text", None) if choices else None
                    if text:
                        emitted = True
                        yield AIStreamEvent(type="content.delta", content=str(text))
                break

    # ------------------------------------------------------------------
    # Responses API
    # ------------------------------------------------------------------
    async def create_response(
        self,
        prompt: str,
        *,
        model: str | None = None,
        instructions: str | None = None,
        temperature: float | None = None,
        max_output_tokens: int | None = None,
        metadata: Mapping[str, str] | None = None,
        **extra_params: Any,
    ) -> Any:
        body: Dict[str, Any] = {"input": prompt}
        if instructions:
            body["instructions"] = instructions
        payload = self._build_payload(
            body,
            model=model,
            temperature=temperature,
            limit=("max_output_tokens", max_output_tokens),
            metadata=metadata,
            extra_params=extra_params,
        )
        LOGGER.debug("Requesting response via %s (%d prompt chars)", payload["model"], len(prompt))
        async for attempt in self._retrying():
            with attempt:
                return await self._client.responses.create(**payload)
        raise RuntimeError("unreachable")  # pragma: no cover - AsyncRetrying reraises

    async def stream_response(
        self,
        prompt: str,
        *,
        model: str | None = None,
        instructions: str | None = None,
        temperature: float | None = None,
        max_output_tokens: int | None = None,
        metadata: Mapping[str, str] | None = None,
        **extra_params: Any,
    ) -> AsyncIterator[AIStreamEvent]:
        body: Dict[str, Any] = {"input": prompt, "stream": True}
        if instructions:
            body["instructions"] = instructions
        payload = self._build_payload(
            body,
            model=model,
            temperature=temperature,
            limit=("max_output_tokens", max_output_tokens),
            metadata=metadata,
            extra_params=extra_params,
        )
        LOGGER.debug("Starting streamed response via %s", payload["model"])
        emitted = False
        async for attempt in self._retrying(replayable=lambda: not emitted):
            with attempt:
                stream = await self._client.responses.create(**payload)
                async for event in stream:
                    event_type = getattr(event, "type", None)
                    if event_type == "response.output_text.delta":
                        delta = getattr(event, "delta", None)
                        if delta:
                            emitted = True
                            yield AIStreamEvent(type="content.delta", content=str(delta))
                    elif event_type == "response.output_text.done":
                        emitted = True
                        yield AIStreamEvent(type="content.done", content=getattr(event, "text", None))
                break

    def _build_client(self, settings: ClientSettings) -> AsyncOpenAI:
        headers = dict(settings.default_headers) if settings.default_headers else None
        return AsyncOpenAI(
            api_key=settings.api_key,
            base_url=settings.base_url,
            organization=settings.organization,
            timeout=settings.request_timeout,
            default_headers=headers,
        )

    def _retrying(self, *, replayable: Callable[[], bool] | None = None) -> AsyncRetrying:
        """Retry transient failures; ``replayable`` gates retries of streams.

        A stream may only be reopened while nothing has been yielded from it,
        otherwise the consumer would receive the already delivered deltas twice.
        """

        retry = retry_if_exception_type(_TRANSIENT_ERRORS)
        if replayable is not None:
            retry = retry & retry_if_exception(lambda _exc: replayable())
        return AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt(max(1, self._settings.max_retries)),
            wait=wait_exponential(
                multiplier=self._settings.retry_min_seconds,
                max=self._settings.retry_max_seconds,
            ),
            retry=retry,
        )

    def _coerce_messages(
        self, messages: Iterable[Mapping[str, Any] | ChatCompletionMessageParam]
    ) -> List[ChatCompletionMessageParam]:
        normalized: List[ChatCompletionMessageParam] = []
        for message in messages:
            if isinstance(message, MutableMapping):
                normalized.append(cast(ChatCompletionMessageParam, dict(message)))
            else:
                try:
                    normalized.append(cast(ChatCompletionMessageParam, dict(message)))
                except TypeError as exc:
                    raise TypeError("Messages must be mapping-like objects") from exc
        if not normalized:
            raise ValueError("At least one message is required to start a chat")
        return normalized

    def _build_payload(
        self,
        body: Mapping[str, Any],
        *,
        model: str | None,
        temperature: float | None,
        limit: tuple[str, int | None],
        metadata: Mapping[str, str] | None,
        extra_params: Mapping[str, Any],
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"model": model or self._settings.model}
        payload.update(body)

        merged_metadata = self._merge_metadata(metadata)
        if merged_metadata:
            payload["metadata"] = merged_metadata
        if temperature is not None:
            payload["temperature"] = temperature
        limit_name, limit_value = limit
        if limit_value is not None:
            payload[limit_name] = limit_value
        if extra_params:
            payload.update(extra_params)

        if self._settings.debug_logging:
            self._log_prompt_payload(payload)
        return payload

    def _merge_metadata(self, runtime_metadata: Mapping[str, str] | None) -> Dict[str, str] | None:
        combined: Dict[str, str] = {}
        if self._settings.metadata:
            combined.update(self._settings.metadata)
        if runtime_metadata:
            combined.update(runtime_metadata)
        return combined or None

    def _normalize_chat_event(self, event: Any) -> AIStreamEvent | None:
        event_type = getattr(event, "type", None)
        if event_type == "content.delta":
            delta_text = getattr(event, "delta", None)
            if delta_text:
                return AIStreamEvent(type=event_type, content=str(delta_text))
            return None
        if event_type == "content.done":
            return AIStreamEvent(type=event_type, content=getattr(event, "content", None))
        return None

    def _log_prompt_payload(self, payload: Mapping[str, Any]) -> None:
        try:
            serialized = json.dumps(payload, ensure_ascii=False, indent=2)
        except (TypeError, ValueError):
            LOGGER.debug("AI prompt payload (unserializable): %s", payload)
        else:
            LOGGER.debug("AI prompt payload:\n%s", serialized)

    async def aclose(self) -> None:
        """Close the underlying OpenAI client to release network resources."""

        close = getattr(self._client, "close", None)
        if close is None:
            return
        result = close()
        if inspect.isawaitable(result):
            await result


__all__ = ["AIClient", "AIStreamEvent", "ClientSettings"]
