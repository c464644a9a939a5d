"""Small text helpers shared by the chunker and the answer synthesizers."""

from __future__ import annotations

import functools
import logging
import re

import tiktoken

__all__ = [
    "ELLIPSIS",
    "count_tokens",
    "count_words",
    "encoding_available",
    "limit_text",
    "split_sentences",
    "take_last_words",
]

ELLIPSIS = "…"

logger = logging.getLogger(__name__)

_WORD_RE = re.compile(r"\S+")

# Sentence boundary: whitespace preceded by terminal punctuation.
_SENTENCE_BOUNDARY_RE = re.compile(r"(?<=[.!?])\s+")


@functools.lru_cache(maxsize=1)
def _get_encoding() -> tiktoken.Encoding:
    """Get the tiktoken encoding, lazily initialized and thread-safe."""
    return tiktoken.get_encoding("cl100k_base")


def count_tokens(text: str) -> int:
    """Count tokens in text using cl100k_base encoding."""
    if not text:
        return 0
    return len(_get_encoding().encode(text))


def encoding_available() -> bool:
    """Return True when the cl100k_base encoding can be loaded.

    tiktoken fetches the encoding on first use, so this is False offline.
    """
    try:
        _get_encoding()
    except Exception as e:
        logger.warning("Token counting unavailable, token counts left at 0: %s", e)
        return False
    return True


def count_words(text: str) -> int:
    """Count whitespace-separated words."""
    return len(_WORD_RE.findall(text))


def take_last_words(text: str, n: int) -> str:
    """Return the last ``n`` words of ``text`` joined by single spaces."""
    if n <= 0:
        return ""
    return " ".join(_WORD_RE.findall(text)[-n:])


def split_sentences(text: str) -> list[str]:
    """Split text after ``.``, ``!`` or ``?`` followed by whitespace."""
    return _SENTENCE_BOUNDARY_RE.split(text)


def limit_text(text: str, max_len: int) -> str:
    """Cap ``text`` at ``max_len`` characters, ending in an ellipsis when cut.

    The returned string never exceeds ``max_len`` characters.
    """
    if len(text) <= max_len:
        return text
    if max_len <= 0:
        return ""
    return text[: max_len - 1] + ELLIPSIS
