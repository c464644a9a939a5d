"""Streaming text abstraction with explicit cancellation and timeout.

A ``TextStream`` wraps a provider's async generator of text fragments.
Each fragment must arrive within ``timeout`` seconds, and a
``CancellationToken`` can end the stream between or during fragments.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import TYPE_CHECKING

from mdqa.exceptions import GenerationError, OperationCancelledError

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable

__all__ = ["CancellationToken", "TextStream"]

logger = logging.getLogger(__name__)

_END = object()


class CancellationToken:
    """Cooperative cancellation flag shared between a caller and a task.

    Not thread-safe: cancel from the same event loop that awaits the work.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        """Request cancellation."""
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        """Block until cancellation is requested."""
        await self._event.wait()

    def raise_if_cancelled(self) -> None:
        """Raise ``OperationCancelledError`` if cancellation was requested."""
        if self.cancelled:
            raise OperationCancelledError("Operation cancelled")


class TextStream:
    """Async iterator over text fragments from a generative model.

    Iteration ends normally when the model signals completion or when the
    token is cancelled (check ``cancelled`` afterwards). A fragment that
    does not arrive within ``timeout`` seconds raises ``GenerationError``.
    The underlying source is closed in every case.

    Usage::

        token = CancellationToken()
        async with generator.stream(messages, token=token) as stream:
            async for fragment in stream:
                print(fragment, end="")
    """

    def __init__(
        self,
        source: AsyncIterator[str],
        *,
        token: CancellationToken | None = None,
        timeout: float | None = None,
    ) -> None:
        self._source = source
        self._token = token or CancellationToken()
        self._timeout = timeout
        self._closed = False

    @property
    def cancelled(self) -> bool:
        return self._token.cancelled

    @property
    def closed(self) -> bool:
        return self._closed

    def __aiter__(self) -> TextStream:
        return self

    async def __aenter__(self) -> TextStream:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    async def _pull(self) -> object:
        try:
            return await anext(self._source)
        except StopAsyncIteration:
            return _END

    async def __anext__(self) -> str:
        if self._closed:
            raise StopAsyncIteration
        if self._token.cancelled:
            await self.aclose()
            raise StopAsyncIteration

        pull = asyncio.ensure_future(self._pull())
        cancel = asyncio.ensure_future(self._token.wait())
        try:
            done, _ = await asyncio.wait(
                {pull, cancel},
                timeout=self._timeout,
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            cancel.cancel()

        if pull in done:
            try:
                fragment = pull.result()
            except BaseException:
                await self.aclose()
                raise
            if fragment is _END:
                await self.aclose()
                raise StopAsyncIteration
            return fragment  # type: ignore[return-value]

        # Timed out or cancelled while waiting for the next fragment
        pull.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await pull
        await self.aclose()

        if self._token.cancelled:
            logger.info("Generation stream cancelled")
            raise StopAsyncIteration
        raise GenerationError(f"No response from the model within {self._timeout}s")

    async def collect(self, on_fragment: Callable[[str], None] | None = None) -> str:
        """Drain the stream and return all fragments joined together."""
        parts: list[str] = []
        async for fragment in self:
            parts.append(fragment)
            if on_fragment is not None:
                on_fragment(fragment)
        return "".join(parts)

    async def aclose(self) -> None:
        """Close the underlying source; safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        aclose = getattr(self._source, "aclose", None)
        if aclose is not None:
            await aclose()
