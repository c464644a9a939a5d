"""Abstract base class for chunking strategies."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from mdqa.config import MdqaConfig
    from mdqa.types import Chunk

__all__ = ["BaseChunker"]

logger = logging.getLogger(__name__)


class BaseChunker(ABC):
    """Base class for all chunking strategies.

    Subclasses split raw document text into a list of ``Chunk`` objects.
    """

    @abstractmethod
    def chunk(self, text: str, config: MdqaConfig) -> list[Chunk]:
        """Split document text into chunks.

        Args:
            text: Raw markdown-flavored document text.
            config: Configuration (word budget, overlap, caps).

        Returns:
            Ordered chunks with ids assigned by position.

        Raises:
            ChunkError: If chunking fails.
        """
