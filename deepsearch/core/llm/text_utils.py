"""
Text helpers shared by the LLM layer: lenient JSON extraction from model
replies and token-budget prompt trimming.
"""

import json
from functools import lru_cache
from typing import Any, Optional

import tiktoken

MIN_CHUNK_SIZE = 140

# Preferred cut points, coarsest first
_SEPARATORS = ["\n\n", "\n", ". ", " "]


def parse_json_response(response: str) -> Optional[Any]:
    """Parse JSON from LLM response, handling common formatting issues."""
    if not response:
        return None

    text = response.strip()

    # Remove markdown code fences if present
    if text.startswith("```"):
        lines = [l for l in text.split("\n") if not l.strip().startswith("```")]
        text = "\n".join(lines)

    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass

    # Look for { ... } or [ ... ] inside surrounding prose
    for start_char, end_char in [('{', '}'), ('[', ']')]:
        start = text.find(start_char)
        end = text.rfind(end_char)
        if start != -1 and end > start:
            try:
                return json.loads(text[start:end + 1])
            except json.JSONDecodeError:
                continue

    return None


@lru_cache(maxsize=1)
def _encoder():
    return tiktoken.get_encoding("o200k_base")


def count_tokens(text: str) -> int:
    return len(_encoder().encode(text))


def _cut_at_boundary(text: str, size: int) -> str:
    """Cut `text` to at most `size` chars, preferring the coarsest separator."""
    window = text[:size]
    for sep in _SEPARATORS:
        idx = window.rfind(sep)
        if idx >= MIN_CHUNK_SIZE:
            return window[:idx + (1 if sep == ". " else 0)]
    return window


def trim_prompt(prompt: str, context_size: int = 128_000) -> str:
    """
    Trim `prompt` so that it fits within `context_size` tokens.

    Every token covers at least one character, so prompts no longer than
    `context_size` characters are returned without encoding.
    """
    if not prompt:
        return ""
    if len(prompt) <= context_size:
        return prompt

    length = count_tokens(prompt)
    if length <= context_size:
        return prompt

    overflow = length - context_size
    # roughly 3 characters per token
    chunk_size = len(prompt) - overflow * 3
    if chunk_size < MIN_CHUNK_SIZE:
        return prompt[:MIN_CHUNK_SIZE]

    trimmed = _cut_at_boundary(prompt, chunk_size)
    if len(trimmed) >= len(prompt):
        trimmed = prompt[:chunk_size]

    return trim_prompt(trimmed, context_size)
