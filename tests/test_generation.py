"""Tests for generation back-ends and result handling."""

from __future__ import annotations

from types import SimpleNamespace
from typing import Any, cast

import httpx
import pytest

from openai import AsyncOpenAI

from spanedit.ai.client import AIClient, ClientSettings
from spanedit.ai.generation import (
    CancellationToken,
    ChatCompletionBackend,
    Completed,
    GenerationChunk,
    GenerationOptions,
    ResponsesBackend,
    Streaming,
    TextCompletionBackend,
    available_backends,
    collect_text,
    create_generation_backend,
    extract_response_text,
    register_backend,
)
from spanedit.core.errors import ErrorCode, GenerationCancelled, GenerationFailure
from spanedit.services.settings import Settings


class _Events:
    def __init__(self, items: list[Any]):
        self._items = iter(items)

    def __aiter__(self) -> "_Events":
        return self

    async def __anext__(self) -> Any:
        try:
            item = next(self._items)
        except StopIteration as exc:  # pragma: no cover - exhaust iterator
            raise StopAsyncIteration from exc
        if isinstance(item, BaseException):
            raise item
        return item


class _StreamContext:
    def __init__(self, items: list[Any]):
        self._items = items

    async def __aenter__(self) -> _Events:
        return _Events(self._items)

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        return False


class _Endpoint:
    def __init__(self, response: Any = None, *, events: list[Any] | None = None, error: Exception | None = None):
        self.response = response
        self.events = events or []
        self.error = error
        self.calls: list[dict[str, Any]] = []

    async def create(self, **kwargs: Any) -> Any:
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        if kwargs.get("stream"):
            return _Events(self.events)
        return self.response

    def stream(self, **kwargs: Any) -> _StreamContext:
        self.calls.append(kwargs)
        return _StreamContext(self.events)


def _ai_client(
    *,
    chat: _Endpoint | None = None,
    completions: _Endpoint | None = None,
    responses: _Endpoint | None = None,
    max_retries: int = 1,
) -> AIClient:
    fake = SimpleNamespace(
        chat=SimpleNamespace(completions=chat or _Endpoint()),
        completions=completions or _Endpoint(),
        responses=responses or _Endpoint(),
    )
    settings = ClientSettings(
        base_url="http://local",
        api_key="test",
        model="base-model",
        max_retries=max_retries,
        retry_min_seconds=0.0,
        retry_max_seconds=0.0,
    )
    return AIClient(settings, client=cast(AsyncOpenAI, fake))


def _chunks(*parts: str) -> Streaming:
    async def _iterate():
        text = ""
        for part in parts:
            text += part
            yield GenerationChunk(delta=part, accumulated=text)

    return Streaming(_iterate())


class TestExtractResponseText:
    def test_prefers_chat_message_content(self) -> None:
        response = SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content="chat"), text="legacy")],
            output_text="responses",
        )

        assert extract_response_text(response) == "chat"

    def test_falls_back_to_legacy_text(self) -> None:
        response = SimpleNamespace(choices=[SimpleNamespace(message=None, text="legacy")])

        assert extract_response_text(response) == "legacy"

    def test_reads_responses_output(self) -> None:
        assert extract_response_text(SimpleNamespace(output_text="flat")) == "flat"
        payload = {"output": [{"content": [{"text": "a"}, {"text": "b"}]}, {"content": None}]}
        assert extract_response_text(payload) == "ab"
        assert extract_response_text({"output": "plain"}) == "plain"

    def test_empty_response_yields_empty_text(self) -> None:
        assert extract_response_text(SimpleNamespace()) == ""
        assert extract_response_text({"choices": [{"message": {"content": ""}}]}) == ""


class TestCollectText:
    @pytest.mark.asyncio
    async def test_completed_result(self) -> None:
        assert await collect_text(Completed("done"), CancellationToken()) == "done"

    @pytest.mark.asyncio
    async def test_streaming_result_reports_progress(self) -> None:
        seen: list[str] = []

        text = await collect_text(_chunks("Hel", "lo"), CancellationToken(), lambda chunk: seen.append(chunk.accumulated))

        assert text == "Hello"
        assert seen == ["Hel", "Hello"]

    @pytest.mark.asyncio
    async def test_cancelling_mid_stream_discards_partial_text(self) -> None:
        token = CancellationToken()

        with pytest.raises(GenerationCancelled):
            await collect_text(_chunks("a", "b", "c"), token, lambda chunk: token.cancel("user"))

    @pytest.mark.asyncio
    async def test_cancelled_token_rejects_completed_result(self) -> None:
        token = CancellationToken()
        token.cancel()

        assert token.cancelled
        with pytest.raises(GenerationCancelled):
            await collect_text(Completed("late"), token)


class TestBackends:
    @pytest.mark.asyncio
    async def test_chat_backend_completed(self) -> None:
        chat = _Endpoint(SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content="Rewritten"))]))
        backend = ChatCompletionBackend(_ai_client(chat=chat))

        result = await backend.generate(
            "prompt",
            GenerationOptions(model="m1", temperature=0.4, max_output_tokens=30, system_prompt="sys"),
            CancellationToken(),
        )

        assert result == Completed("Rewritten")
        payload = chat.calls[0]
        assert payload["model"] == "m1"
        assert payload["max_tokens"] == 30
        assert payload["messages"] == [
            {"role": "system", "content": "sys"},
            {"role": "user", "content": "prompt"},
        ]

    @pytest.mark.asyncio
    async def test_chat_backend_streaming(self) -> None:
        events = [
            SimpleNamespace(type="content.delta", delta="Re"),
            SimpleNamespace(type="content.delta", delta="write"),
            SimpleNamespace(type="content.done", content="Rewrite"),
        ]
        backend = ChatCompletionBackend(_ai_client(chat=_Endpoint(events=events)))

        result = await backend.generate("prompt", GenerationOptions(stream=True), CancellationToken())

        assert isinstance(result, Streaming)
        assert result.kind == "streaming"
        assert await collect_text(result, CancellationToken()) == "Rewrite"

    @pytest.mark.asyncio
    async def test_stream_interrupted_after_output_fails_without_duplicates(self) -> None:
        events = [SimpleNamespace(type="content.delta", delta="Hello "), httpx.ReadTimeout("stalled")]
        chat = _Endpoint(events=events)
        backend = ChatCompletionBackend(_ai_client(chat=chat, max_retries=3))
        seen: list[str] = []

        result = await backend.generate("prompt", GenerationOptions(stream=True), CancellationToken())
        with pytest.raises(GenerationFailure) as excinfo:
            await collect_text(result, CancellationToken(), lambda chunk: seen.append(chunk.accumulated))

        assert seen == ["Hello "]
        assert len(chat.calls) == 1
        assert excinfo.value.details == {"exception": "ReadTimeout"}

    @pytest.mark.asyncio
    async def test_text_backend_prefixes_system_prompt(self) -> None:
        completions = _Endpoint(SimpleNamespace(choices=[SimpleNamespace(text="legacy text")]))
        backend = TextCompletionBackend(_ai_client(completions=completions))

        result = await backend.generate("prompt", GenerationOptions(system_prompt="sys"), CancellationToken())

        assert result == Completed("legacy text")
        assert completions.calls[0]["prompt"] == "sys\n\nprompt"
        assert completions.calls[0]["model"] == "base-model"

    @pytest.mark.asyncio
    async def test_text_backend_streaming(self) -> None:
        chunks = [SimpleNamespace(choices=[SimpleNamespace(text="one ")]), SimpleNamespace(choices=[SimpleNamespace(text="two")])]
        backend = TextCompletionBackend(_ai_client(completions=_Endpoint(events=chunks)))

        result = await backend.generate("prompt", GenerationOptions(stream=True), CancellationToken())

        assert await collect_text(result, CancellationToken()) == "one two"

    @pytest.mark.asyncio
    async def test_responses_backend_passes_instructions(self) -> None:
        responses = _Endpoint(SimpleNamespace(output_text="from responses"))
        backend = ResponsesBackend(_ai_client(responses=responses))

        result = await backend.generate(
            "prompt",
            GenerationOptions(system_prompt="sys", max_output_tokens=10),
            CancellationToken(),
        )

        assert result == Completed("from responses")
        assert responses.calls[0]["instructions"] == "sys"
        assert responses.calls[0]["max_output_tokens"] == 10

    @pytest.mark.asyncio
    async def test_transport_errors_become_generation_failures(self) -> None:
        chat = _Endpoint(error=httpx.ConnectError("offline"))
        backend = ChatCompletionBackend(_ai_client(chat=chat))

        with pytest.raises(GenerationFailure) as excinfo:
            await backend.generate("prompt", GenerationOptions(), CancellationToken())

        assert excinfo.value.backend == "chat"
        assert excinfo.value.error_code == ErrorCode.GENERATION_FAILED

    @pytest.mark.asyncio
    async def test_cancelled_token_short_circuits(self) -> None:
        chat = _Endpoint(SimpleNamespace(output_text="unused"))
        backend = ChatCompletionBackend(_ai_client(chat=chat))
        token = CancellationToken()
        token.cancel("user")

        with pytest.raises(GenerationCancelled):
            await backend.generate("prompt", GenerationOptions(), token)
        assert chat.calls == []


class TestBackendRegistry:
    def test_creates_backend_named_in_settings(self) -> None:
        client = _ai_client()

        assert isinstance(create_generation_backend(Settings(generation_backend="chat"), client=client), ChatCompletionBackend)
        assert isinstance(create_generation_backend(Settings(generation_backend="text"), client=client), TextCompletionBackend)
        assert isinstance(create_generation_backend(Settings(generation_backend="responses"), client=client), ResponsesBackend)

    def test_builds_client_from_settings(self) -> None:
        backend = create_generation_backend(Settings(api_key="k", model="from-settings"))

        assert isinstance(backend, ChatCompletionBackend)
        assert backend.client.settings.model == "from-settings"

    def test_unknown_backend_is_rejected(self) -> None:
        with pytest.raises(GenerationFailure) as excinfo:
            create_generation_backend(Settings(generation_backend="kobold"), client=_ai_client())

        assert excinfo.value.error_code == ErrorCode.BACKEND_UNKNOWN

    def test_register_custom_backend(self) -> None:
        class _EchoBackend:
            name = "echo"

            def __init__(self, client: AIClient) -> None:
                self.client = client

            async def generate(self, prompt, options, token):
                return Completed(prompt)

        register_backend("Echo", _EchoBackend)

        assert "echo" in available_backends()
        backend = create_generation_backend(Settings(generation_backend="echo"), client=_ai_client())
        assert isinstance(backend, _EchoBackend)
        with pytest.raises(ValueError):
            register_backend(" ", _EchoBackend)


def test_options_from_settings() -> None:
    settings = Settings(model="m", temperature=0.9, max_output_tokens=100, system_prompt="s", stream=True)

    options = GenerationOptions.from_settings(settings)

    assert options == GenerationOptions(model="m", temperature=0.9, max_output_tokens=100, system_prompt="s", stream=True)
    assert GenerationOptions.from_settings(settings, stream=False).stream is False
