"""Generation client, back-ends and rewrite prompts."""

from .client import AIClient, AIStreamEvent, ClientSettings
from .generation import (
    CancellationToken,
    ChatCompletionBackend,
    Completed,
    GenerationChunk,
    GenerationOptions,
    GenerationResult,
    GenerationService,
    ResponsesBackend,
    Streaming,
    TextCompletionBackend,
    collect_text,
    create_generation_backend,
    extract_response_text,
    register_backend,
)
from .prompts import build_rewrite_prompt, count_words

__all__ = [
    "AIClient",
    "AIStreamEvent",
    "CancellationToken",
    "ChatCompletionBackend",
    "ClientSettings",
    "Completed",
    "GenerationChunk",
    "GenerationOptions",
    "GenerationResult",
    "GenerationService",
    "ResponsesBackend",
    "Streaming",
    "TextCompletionBackend",
    "build_rewrite_prompt",
    "collect_text",
    "count_words",
    "create_generation_backend",
    "extract_response_text",
    "register_backend",
]
