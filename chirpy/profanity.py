"""Masking of banned words in post bodies."""
from __future__ import annotations

from typing import Iterable

DEFAULT_BANNED_WORDS = frozenset({"kerfuffle", "sharbert", "fornax"})
MASK = "****"


def clean_profanity(text: str, banned_words: Iterable[str] = DEFAULT_BANNED_WORDS) -> str:
    """Replace whole banned words (case-insensitive) with ``****``.

    Words are split on whitespace, so ``"Sharbert!"`` is left untouched and
    runs of whitespace collapse to single spaces.
    """

    banned = {word.lower() for word in banned_words}
    return " ".join(MASK if word.lower() in banned else word for word in text.split())


__all__ = ["DEFAULT_BANNED_WORDS", "MASK", "clean_profanity"]
