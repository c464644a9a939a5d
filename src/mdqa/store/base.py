"""Abstract base class for similarity indexes."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence

    from mdqa.types import Chunk, EmbeddedChunk, ScoredChunk

__all__ = ["BaseStore"]

logger = logging.getLogger(__name__)


class BaseStore(ABC):
    """Base class for all similarity indexes.

    A store holds exactly one document's chunks and vectors at a time.
    """

    @abstractmethod
    def replace(self, chunks: Sequence[EmbeddedChunk]) -> int:
        """Replace the whole index with new embedded chunks.

        Readers see either the old contents or the new ones, never a mix.

        Args:
            chunks: Embedded chunks of the new document, in chunk order.

        Returns:
            Number of chunks stored.

        Raises:
            StoreError: If the chunks and vectors are inconsistent.
        """

    @abstractmethod
    def search(self, query_embedding: Sequence[float], k: int = 4) -> list[ScoredChunk]:
        """Return the ``k`` chunks most similar to the query vector.

        Args:
            query_embedding: Normalized query vector.
            k: Number of results to return.

        Returns:
            Results sorted by similarity, highest first.
        """

    @abstractmethod
    def clear(self) -> None:
        """Drop all stored chunks and vectors."""

    @abstractmethod
    def chunks(self) -> list[Chunk]:
        """Return the stored chunks in index order."""

    @abstractmethod
    def count(self) -> int:
        """Return the number of stored chunks."""
