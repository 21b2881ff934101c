from __future__ import annotations

import math

CHARS_PER_TOKEN = 4


def estimate_tokens(text: str | None) -> int:
    """
    Approximate token count as ceil(len / 4).

    This is a character heuristic, not a tokenizer: it under-counts dense code or
    CJK text and over-counts long words. Chunk sizes and context budgets are all
    expressed in this unit.
    """
    if not text:
        return 0
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def tokens_to_chars(tokens: int) -> int:
    return max(0, int(tokens)) * CHARS_PER_TOKEN
