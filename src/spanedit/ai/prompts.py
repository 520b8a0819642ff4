"""Prompt templates for generated rewrites."""

from __future__ import annotations

import re
from typing import Mapping

__all__ = [
    "DEFAULT_SYSTEM_PROMPT",
    "DEFAULT_REWRITE_TEMPLATE",
    "build_rewrite_prompt",
    "build_rewrite_messages",
    "count_words",
]

_WORD_PATTERN = re.compile(r"\b[\w'-]+\b")

DEFAULT_SYSTEM_PROMPT = (
    "You are an editing assistant for a role-play chat. Rewrite only the passage you are given, keep the "
    "voice, tense and formatting of the surrounding message, and answer with the rewritten passage alone."
)

DEFAULT_REWRITE_TEMPLATE = (
    "Full message for context:\n"
    "<message>\n{{message}}\n</message>\n\n"
    "Rewrite this passage from the message (about {{word_count}} words):\n"
    "<passage>\n{{selection}}\n</passage>\n"
    "{{instructions}}"
)


def count_words(text: str) -> int:
    """Return the number of words in ``text``."""

    return len(_WORD_PATTERN.findall(text or ""))


def build_rewrite_prompt(
    selected_text: str,
    full_message: str,
    *,
    instructions: str | None = None,
    template: str | None = None,
) -> str:
    """Render the user prompt asking for a rewrite of ``selected_text``."""

    extra = (instructions or "").strip()
    values: Mapping[str, str] = {
        "selection": selected_text,
        "message": full_message,
        "word_count": str(count_words(selected_text)),
        "instructions": f"\nAdditional instructions: {extra}\n" if extra else "",
    }
    prompt = template or DEFAULT_REWRITE_TEMPLATE
    for key, value in values.items():
        prompt = prompt.replace("{{" + key + "}}", value)
    return prompt


def build_rewrite_messages(prompt: str, system_prompt: str | None = None) -> list[dict[str, str]]:
    return [
        {"role": "system", "content": system_prompt or DEFAULT_SYSTEM_PROMPT},
        {"role": "user", "content": prompt},
    ]
