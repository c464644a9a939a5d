"""Pipeline data contracts for mdqa.

Frozen dataclasses that flow between pipeline stages:
  str → list[Block] → list[Chunk] → list[EmbeddedChunk] → list[ScoredChunk] → Answer
"""

from __future__ import annotations

from dataclasses import dataclass, field

__all__ = [
    "DEFAULT_HEADING",
    "Answer",
    "Block",
    "Chunk",
    "EmbeddedChunk",
    "ScoredChunk",
    "Vector",
]

# Heading label for text that appears before any heading.
DEFAULT_HEADING = "Document"

Vector = tuple[float, ...]


@dataclass(frozen=True)
class Block:
    """A cleaned paragraph tagged with its enclosing heading breadcrumb."""

    heading_path: str
    text: str


@dataclass(frozen=True)
class Chunk:
    """A retrievable passage of the loaded document."""

    id: int
    heading_path: str
    text: str
    token_count: int = 0


@dataclass(frozen=True)
class EmbeddedChunk:
    """A chunk with its embedding vector attached."""

    chunk: Chunk
    embedding: Vector = field(default_factory=tuple)


@dataclass(frozen=True)
class ScoredChunk:
    """A search result: chunk + cosine similarity to the query."""

    chunk: Chunk
    similarity: float


@dataclass(frozen=True)
class Answer:
    """Synthesized answer with the passages it was drawn from."""

    question: str
    text: str
    sources: tuple[ScoredChunk, ...] = ()
    mode: str = "extractive"
    fallback_reason: str = ""

    @property
    def fell_back(self) -> bool:
        """True when generation failed and the extractive answer was used."""
        return bool(self.fallback_reason)
