"""Abstract base class for generative model providers."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from mdqa.llm.stream import TextStream

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from mdqa.llm.stream import CancellationToken

__all__ = ["BaseGenerator", "Message"]

logger = logging.getLogger(__name__)

Message = dict[str, str]


class BaseGenerator(ABC):
    """Base class for chat-completion providers.

    Subclasses implement ``fragments()`` as an async generator yielding
    text pieces until the model signals completion.
    """

    #: Seconds to wait for each fragment before giving up.
    fragment_timeout: float | None = None

    @abstractmethod
    def fragments(self, messages: list[Message]) -> AsyncIterator[str]:
        """Yield response text fragments for a chat request.

        Args:
            messages: Chat messages with ``role`` and ``content`` keys.

        Raises:
            GenerationError: If the model is unreachable or the stream is malformed.
        """

    def stream(
        self,
        messages: list[Message],
        *,
        token: CancellationToken | None = None,
    ) -> TextStream:
        """Start a streaming completion."""
        return TextStream(self.fragments(messages), token=token, timeout=self.fragment_timeout)

    async def complete(self, messages: list[Message]) -> str:
        """Run a completion to the end and return the full text.

        Raises:
            GenerationError: If generation fails.
        """
        async with self.stream(messages) as stream:
            text = await stream.collect()
        return text.strip()
