"""Generation back-ends producing replacement text for rewrites.

A back-end turns a prompt into either a :class:`Completed` result holding the
whole text or a :class:`Streaming` result whose chunks arrive over time. The
edit session treats both the same way through :func:`collect_text`, checking
the shared :class:`CancellationToken` between chunks.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Callable, Dict, Literal, Mapping, Protocol, Union

import httpx
from openai import OpenAIError

from ..core.errors import ErrorCode, GenerationCancelled, GenerationFailure
from .client import AIClient, AIStreamEvent, ClientSettings
from .prompts import build_rewrite_messages

LOGGER = logging.getLogger(__name__)

__all__ = [
    "CancellationToken",
    "ChatCompletionBackend",
    "Completed",
    "GenerationChunk",
    "GenerationOptions",
    "GenerationResult",
    "GenerationService",
    "ResponsesBackend",
    "Streaming",
    "TextCompletionBackend",
    "available_backends",
    "collect_text",
    "create_generation_backend",
    "extract_response_text",
    "register_backend",
]


@dataclass(slots=True)
class GenerationOptions:
    """Per-request generation parameters."""

    model: str | None = None
    temperature: float | None = None
    max_output_tokens: int | None = None
    system_prompt: str | None = None
    stream: bool = False

    @classmethod
    def from_settings(cls, settings: Any, *, stream: bool | None = None) -> GenerationOptions:
        return cls(
            model=settings.model or None,
            temperature=settings.temperature,
            max_output_tokens=settings.max_output_tokens,
            system_prompt=settings.system_prompt,
            stream=settings.stream if stream is None else stream,
        )


class CancellationToken:
    """Cooperative abort flag shared between the session and a generation."""

    __slots__ = ("_cancelled", "_reason")

    def __init__(self) -> None:
        self._cancelled = False
        self._reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def reason(self) -> str | None:
        return self._reason

    def cancel(self, reason: str | None = None) -> None:
        if not self._cancelled:
            self._cancelled = True
            self._reason = reason

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise GenerationCancelled(details={"reason": self._reason} if self._reason else {})


@dataclass(slots=True, frozen=True)
class GenerationChunk:
    """One streamed delta plus the text accumulated so far."""

    delta: str
    accumulated: str


@dataclass(slots=True, frozen=True)
class Completed:
    text: str
    kind: Literal["completed"] = "completed"


@dataclass(slots=True, frozen=True)
class Streaming:
    """Result whose text arrives as :class:`GenerationChunk` items."""

    chunks: AsyncIterator[GenerationChunk]
    kind: Literal["streaming"] = "streaming"


GenerationResult = Union[Completed, Streaming]
ProgressCallback = Callable[[GenerationChunk], None]


class GenerationService(Protocol):
    """Collaborator that generates replacement text for a prompt."""

    name: str

    async def generate(
        self,
        prompt: str,
        options: GenerationOptions,
        token: CancellationToken,
    ) -> GenerationResult:
        ...


def _field(source: Any, name: str) -> Any:
    if isinstance(source, Mapping):
        return source.get(name)
    return getattr(source, name, None)


def extract_response_text(response: Any) -> str:
    """Return the generated text from a completed response.

    Probes, in order, chat message content, legacy completion text and the
    Responses API output. Returns ``""`` when none carries text.
    """

    choices = _field(response, "choices") or []
    if choices:
        first = choices[0]
        content = _field(_field(first, "message"), "content")
        if isinstance(content, str) and content:
            return content
        text = _field(first, "text")
        if isinstance(text, str) and text:
            return text

    output_text = _field(response, "output_text")
    if isinstance(output_text, str) and output_text:
        return output_text
    output = _field(response, "output")
    if isinstance(output, str):
        return output
    parts: list[str] = []
    for item in output or []:
        for part in _field(item, "content") or []:
            text = _field(part, "text")
            if isinstance(text, str):
                parts.append(text)
    return "".join(parts)


async def collect_text(
    result: GenerationResult,
    token: CancellationToken,
    on_progress: ProgressCallback | None = None,
) -> str:
    """Resolve ``result`` into its full text, honouring ``token`` between chunks."""

    token.raise_if_cancelled()
    if isinstance(result, Completed):
        return result.text

    text = ""
    async for chunk in result.chunks:
        token.raise_if_cancelled()
        text = chunk.accumulated
        if on_progress is not None:
            on_progress(chunk)
    token.raise_if_cancelled()
    return text


class _ClientBackend:
    """Shared plumbing for back-ends talking to an :class:`AIClient`."""

    name = "client"

    def __init__(self, client: AIClient) -> None:
        self._client = client

    @property
    def client(self) -> AIClient:
        return self._client

    async def generate(
        self,
        prompt: str,
        options: GenerationOptions,
        token: CancellationToken,
    ) -> GenerationResult:
        token.raise_if_cancelled()
        LOGGER.debug("Generating via %s backend (stream=%s)", self.name, options.stream)
        if options.stream:
            return Streaming(self._accumulate(self._stream(prompt, options), token))
        try:
            response = await self._complete(prompt, options)
        except (OpenAIError, httpx.HTTPError) as exc:
            raise self._failure(exc) from exc
        token.raise_if_cancelled()
        return Completed(extract_response_text(response))

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _complete(self, prompt: str, options: GenerationOptions) -> Any:
        raise NotImplementedError

    def _stream(self, prompt: str, options: GenerationOptions) -> AsyncIterator[AIStreamEvent]:
        raise NotImplementedError

    async def _accumulate(
        self,
        events: AsyncIterator[AIStreamEvent],
        token: CancellationToken,
    ) -> AsyncIterator[GenerationChunk]:
        accumulated = ""
        try:
            async for event in events:
                token.raise_if_cancelled()
                if event.type != "content.delta" or not event.content:
                    continue
                accumulated += event.content
                yield GenerationChunk(delta=event.content, accumulated=accumulated)
        except (OpenAIError, httpx.HTTPError) as exc:
            raise self._failure(exc) from exc

    def _failure(self, exc: Exception) -> GenerationFailure:
        LOGGER.error("Generation via %s backend failed: %s", self.name, exc)
        return GenerationFailure(
            message=f"Generation request failed: {exc}",
            details={"exception": type(exc).__name__},
            backend=self.name,
        )


class ChatCompletionBackend(_ClientBackend):
    """Chat completions endpoint; the reply is ``choices[0].message.content``."""

    name = "chat"

    async def _complete(self, prompt: str, options: GenerationOptions) -> Any:
        return await self._client.create_chat_completion(
            build_rewrite_messages(prompt, options.system_prompt),
            model=options.model,
            temperature=options.temperature,
            max_tokens=options.max_output_tokens,
        )

    def _stream(self, prompt: str, options: GenerationOptions) -> AsyncIterator[AIStreamEvent]:
        return self._client.stream_chat_completion(
            build_rewrite_messages(prompt, options.system_prompt),
            model=options.model,
            temperature=options.temperature,
            max_tokens=options.max_output_tokens,
        )


class TextCompletionBackend(_ClientBackend):
    """Legacy completions endpoint; the reply is ``choices[0].text``."""

    name = "text"

    async def _complete(self, prompt: str, options: GenerationOptions) -> Any:
        return await self._client.create_text_completion(
            self._with_system(prompt, options),
            model=options.model,
            temperature=options.temperature,
            max_tokens=options.max_output_tokens,
        )

    def _stream(self, prompt: str, options: GenerationOptions) -> AsyncIterator[AIStreamEvent]:
        return self._client.stream_text_completion(
            self._with_system(prompt, options),
            model=options.model,
            temperature=options.temperature,
            max_tokens=options.max_output_tokens,
        )

    @staticmethod
    def _with_system(prompt: str, options: GenerationOptions) -> str:
        if options.system_prompt:
            return f"{options.system_prompt}\n\n{prompt}"
        return prompt


class ResponsesBackend(_ClientBackend):
    """Responses API; the reply is the ``output`` text."""

    name = "responses"

    async def _complete(self, prompt: str, options: GenerationOptions) -> Any:
        return await self._client.create_response(
            prompt,
            model=options.model,
            instructions=options.system_prompt,
            temperature=options.temperature,
            max_output_tokens=options.max_output_tokens,
        )

    def _stream(self, prompt: str, options: GenerationOptions) -> AsyncIterator[AIStreamEvent]:
        return self._client.stream_response(
            prompt,
            model=options.model,
            instructions=options.system_prompt,
            temperature=options.temperature,
            max_output_tokens=options.max_output_tokens,
        )


BackendFactory = Callable[[AIClient], GenerationService]

_BACKENDS: Dict[str, BackendFactory] = {
    ChatCompletionBackend.name: ChatCompletionBackend,
    TextCompletionBackend.name: TextCompletionBackend,
    ResponsesBackend.name: ResponsesBackend,
}


def register_backend(name: str, factory: BackendFactory) -> None:
    """Register ``factory`` under ``name`` for :func:`create_generation_backend`."""

    key = (name or "").strip().lower()
    if not key:
        raise ValueError("Backend name is required")
    _BACKENDS[key] = factory


def available_backends() -> tuple[str, ...]:
    return tuple(sorted(_BACKENDS))


def create_generation_backend(settings: Any, *, client: AIClient | None = None) -> GenerationService:
    """Instantiate the back-end named by ``settings.generation_backend``."""

    name = (settings.generation_backend or "").strip().lower()
    factory = _BACKENDS.get(name)
    if factory is None:
        raise GenerationFailure(
            error_code=ErrorCode.BACKEND_UNKNOWN,
            message=f"Unknown generation backend '{settings.generation_backend}'",
            suggestion=f"Use one of: {', '.join(available_backends())}",
            backend=name or None,
        )
    if client is None:
        client = AIClient(ClientSettings.from_settings(settings))
    LOGGER.debug("Created %s generation backend for model %s", name, client.settings.model)
    return factory(client)
