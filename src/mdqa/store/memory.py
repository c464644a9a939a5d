"""In-memory similarity index over normalized vectors.

Brute-force dot products with numpy: vectors are unit length, so the dot
product is the cosine similarity.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import numpy as np

from mdqa.exceptions import StoreError
from mdqa.store.base import BaseStore
from mdqa.types import ScoredChunk

if TYPE_CHECKING:
    from collections.abc import Sequence

    from mdqa.types import Chunk, EmbeddedChunk

__all__ = ["MemoryStore", "rank"]

logger = logging.getLogger(__name__)


def rank(
    query_vector: Sequence[float],
    vectors: Sequence[Sequence[float]] | np.ndarray,
) -> list[tuple[int, float]]:
    """Rank stored vectors against a query by cosine similarity.

    Args:
        query_vector: Normalized query vector.
        vectors: Normalized stored vectors, one per chunk.

    Returns:
        ``(index, similarity)`` pairs, highest similarity first, ties in
        index order. Empty when there is nothing to rank or the dimensions
        disagree.
    """
    if len(vectors) == 0 or len(query_vector) == 0:
        return []

    try:
        matrix = np.asarray(vectors, dtype=np.float64)
        query = np.asarray(query_vector, dtype=np.float64)
    except (TypeError, ValueError) as e:
        logger.warning("Cannot rank malformed vectors: %s", e)
        return []

    if matrix.ndim != 2 or query.ndim != 1 or matrix.shape[1] != query.shape[0]:
        logger.warning(
            "Cannot rank query of shape %s against vectors of shape %s",
            query.shape,
            matrix.shape,
        )
        return []

    sims = np.clip(matrix @ query, -1.0, 1.0)
    order = np.argsort(-sims, kind="stable")
    return [(int(i), float(sims[i])) for i in order]


class MemoryStore(BaseStore):
    """Similarity index kept entirely in process memory.

    Chunks and their vector matrix live together in one tuple that is
    swapped in a single assignment, so a search never sees a half-built
    index.

    Usage::

        store = MemoryStore()
        store.replace(embedded_chunks)
        results = store.search(query_vector, k=4)
    """

    def __init__(self) -> None:
        self._state: tuple[tuple[Chunk, ...], np.ndarray] = ((), np.empty((0, 0)))

    def replace(self, chunks: Sequence[EmbeddedChunk]) -> int:
        """Replace the index with new embedded chunks.

        Raises:
            StoreError: If a vector is missing or dimensions differ.
        """
        if not chunks:
            self.clear()
            return 0

        dims = {len(c.embedding) for c in chunks}
        if 0 in dims:
            raise StoreError("Cannot index a chunk without an embedding")
        if len(dims) != 1:
            raise StoreError(f"Embeddings have inconsistent dimensions: {sorted(dims)}")

        matrix = np.asarray([c.embedding for c in chunks], dtype=np.float64)
        self._state = (tuple(c.chunk for c in chunks), matrix)

        logger.info("Indexed %d chunks (dimension=%d)", len(chunks), matrix.shape[1])
        return len(chunks)

    def search(self, query_embedding: Sequence[float], k: int = 4) -> list[ScoredChunk]:
        """Return the top ``k`` chunks for a query vector."""
        stored, matrix = self._state
        if k <= 0 or not stored:
            return []

        ranked = rank(query_embedding, matrix)[:k]
        return [ScoredChunk(chunk=stored[i], similarity=sim) for i, sim in ranked]

    def clear(self) -> None:
        self._state = ((), np.empty((0, 0)))

    def chunks(self) -> list[Chunk]:
        return list(self._state[0])

    def count(self) -> int:
        return len(self._state[0])
