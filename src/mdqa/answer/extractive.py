"""Deterministic extractive answers from retrieved chunks.

Scores every sentence of the retrieved chunks by lexical overlap with the
question and stitches the best few together. No model involved; the same
input always yields the same answer.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

from mdqa.text import limit_text, split_sentences

if TYPE_CHECKING:
    from collections.abc import Sequence

    from mdqa.types import Chunk

__all__ = [
    "NO_ANSWER",
    "STOPWORDS",
    "ExtractiveSynthesizer",
    "Sentence",
    "score_sentence",
    "tokenize",
]

logger = logging.getLogger(__name__)

NO_ANSWER = "No relevant information found."

# Common English function words, ignored on both sides of the comparison.
STOPWORDS: frozenset[str] = frozenset(
    {
        "a",
        "an",
        "the",
        "and",
        "or",
        "of",
        "to",
        "in",
        "on",
        "for",
        "with",
        "as",
        "by",
        "at",
        "from",
        "is",
        "are",
        "was",
        "were",
        "be",
        "been",
        "being",
        "it",
        "its",
        "that",
        "this",
        "these",
        "those",
        "which",
        "what",
        "who",
        "whom",
        "into",
        "about",
        "how",
        "why",
        "when",
        "where",
        "can",
        "could",
        "should",
        "would",
        "may",
        "might",
        "than",
        "then",
        "also",
        "not",
        "no",
        "do",
        "does",
        "did",
        "done",
        "if",
        "else",
        "but",
        "so",
        "such",
        "using",
        "use",
        "used",
        "via",
        "like",
        "between",
        "within",
        "over",
        "under",
        "per",
        "each",
    }
)

_NON_ALNUM_RE = re.compile(r"[^a-z0-9\s]")

# Sentences with a token count strictly inside this range get a bonus point.
_MIN_SUBSTANTIVE_TOKENS = 4
_MAX_SUBSTANTIVE_TOKENS = 60


def tokenize(text: str) -> list[str]:
    """Lowercase, replace punctuation with spaces, split, drop stopwords."""
    cleaned = _NON_ALNUM_RE.sub(" ", text.lower())
    return [w for w in cleaned.split() if w not in STOPWORDS]


def score_sentence(sentence_tokens: Sequence[str], question_tokens: Sequence[str]) -> int:
    """Score a tokenized sentence against tokenized question terms.

    Each question term adds 2 for an exact token match, otherwise 1 when a
    sentence token and the term are prefixes of one another. Sentences
    with some lexical match and a substantive length get one more point.
    """
    present = set(sentence_tokens)
    score = 0
    for q in question_tokens:
        if q in present:
            score += 2
        elif any(w.startswith(q) or q.startswith(w) for w in sentence_tokens):
            score += 1

    if score and _MIN_SUBSTANTIVE_TOKENS < len(sentence_tokens) < _MAX_SUBSTANTIVE_TOKENS:
        score += 1
    return score


@dataclass(frozen=True)
class Sentence:
    """A candidate sentence with its source heading and score."""

    text: str
    heading_path: str
    score: int = 0


class ExtractiveSynthesizer:
    """Builds answers from the highest-scoring sentences of retrieved chunks.

    Args:
        limit: Maximum answer length in characters.
        fallback_limit: Maximum length of the first-chunk fallback answer.
        max_sentences: Number of sentences stitched into the answer.
    """

    def __init__(self, limit: int = 600, fallback_limit: int = 500, max_sentences: int = 3) -> None:
        self.limit = limit
        self.fallback_limit = fallback_limit
        self.max_sentences = max_sentences

    def select_sentences(self, question: str, chunks: Sequence[Chunk]) -> list[Sentence]:
        """Return the best-scoring sentences, highest first.

        Ties keep encounter order: earlier chunks first, then sentence order.
        """
        question_tokens = tokenize(question)
        scored: list[Sentence] = []
        for chunk in chunks:
            for raw in split_sentences(chunk.text):
                text = raw.strip()
                if not text:
                    continue
                score = score_sentence(tokenize(text), question_tokens)
                if score > 0:
                    scored.append(Sentence(text=text, heading_path=chunk.heading_path, score=score))

        # sort() is stable, so equal scores keep encounter order
        scored.sort(key=lambda s: -s.score)
        return scored[: self.max_sentences]

    def synthesize(
        self,
        question: str,
        chunks: Sequence[Chunk],
        limit: int | None = None,
    ) -> str:
        """Answer ``question`` from ``chunks`` without a model.

        Falls back to the first chunk's text when no sentence matches.
        """
        limit = self.limit if limit is None else limit
        selected = self.select_sentences(question, chunks)

        if not selected:
            if not chunks:
                return NO_ANSWER
            logger.debug("No sentence matched the question; using the top chunk")
            return limit_text(chunks[0].text, self.fallback_limit)

        return limit_text(" ".join(s.text for s in selected), limit)
