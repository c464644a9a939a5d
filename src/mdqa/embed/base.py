"""Abstract base class for embedding providers."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

import numpy as np

from mdqa.exceptions import EmbeddingError

if TYPE_CHECKING:
    from collections.abc import Sequence

    from mdqa.types import Vector

__all__ = ["BaseEmbedder", "normalize"]

logger = logging.getLogger(__name__)


def normalize(vectors: Sequence[Sequence[float]]) -> list[Vector]:
    """L2-normalize each vector.

    Zero vectors are returned unchanged since they have no direction.

    Raises:
        EmbeddingError: If the vectors are ragged or not numeric.
    """
    if len(vectors) == 0:
        return []
    try:
        matrix = np.asarray(vectors, dtype=np.float64)
    except (TypeError, ValueError) as e:
        raise EmbeddingError(f"Embedding provider returned malformed vectors: {e}") from e
    if matrix.ndim != 2:
        raise EmbeddingError(f"Expected a batch of vectors, got array of shape {matrix.shape}")

    norms = np.linalg.norm(matrix, axis=1, keepdims=True)
    norms[norms == 0.0] = 1.0
    return [tuple(float(x) for x in row) for row in matrix / norms]


class BaseEmbedder(ABC):
    """Base class for all embedding providers.

    Every call is a coroutine so the pipeline can await each batch in
    order. Returned vectors are L2-normalized and aligned with the input.
    """

    @abstractmethod
    async def embed(self, texts: Sequence[str]) -> list[Vector]:
        """Generate embeddings for a batch of texts.

        Args:
            texts: Texts to embed.

        Returns:
            One normalized vector per text, in input order.

        Raises:
            EmbeddingError: If the provider is unreachable or fails.
        """

    async def embed_query(self, text: str) -> Vector:
        """Generate an embedding for a single query string.

        Raises:
            EmbeddingError: If embedding generation fails.
        """
        vectors = await self.embed([text])
        if len(vectors) != 1:
            raise EmbeddingError(f"Expected 1 query embedding, got {len(vectors)}")
        return vectors[0]

    @property
    @abstractmethod
    def dimension(self) -> int:
        """Return the dimensionality of the embedding vectors (0 if unknown yet)."""
