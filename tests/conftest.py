"""Shared fixtures for mdqa tests."""

from __future__ import annotations

import asyncio
import math
import re
import zlib
from typing import TYPE_CHECKING

import pytest

from mdqa.config import MdqaConfig
from mdqa.embed.base import BaseEmbedder
from mdqa.exceptions import GenerationError
from mdqa.llm.base import BaseGenerator

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Sequence
    from pathlib import Path

    from mdqa.llm.base import Message
    from mdqa.types import Vector

_WORD_RE = re.compile(r"[a-z0-9]+")


def bag_of_words_vector(text: str, dim: int = 256) -> Vector:
    """Deterministic hashed bag-of-words vector, L2-normalized."""
    counts = [0.0] * dim
    for word in _WORD_RE.findall(text.lower()):
        counts[zlib.crc32(word.encode("utf-8")) % dim] += 1.0
    norm = math.sqrt(sum(c * c for c in counts))
    if norm == 0.0:
        return tuple(counts)
    return tuple(c / norm for c in counts)


class FakeEmbedder(BaseEmbedder):
    """Embeds by hashed word counts; records every batch it sees."""

    def __init__(self, dim: int = 256, fail_on_batch: int | None = None) -> None:
        self.dim = dim
        self.fail_on_batch = fail_on_batch
        self.batches: list[list[str]] = []

    async def embed(self, texts: Sequence[str]) -> list[Vector]:
        self.batches.append(list(texts))
        if self.fail_on_batch is not None and len(self.batches) - 1 == self.fail_on_batch:
            raise RuntimeError("embedding backend crashed")
        return [bag_of_words_vector(t, self.dim) for t in texts]

    @property
    def dimension(self) -> int:
        return self.dim


class FakeGenerator(BaseGenerator):
    """Replays canned fragments, optionally failing or stalling."""

    def __init__(
        self,
        fragments: Sequence[str] = ("Retries ", "are configured."),
        *,
        error: Exception | None = None,
        delay: float = 0.0,
        fragment_timeout: float | None = None,
    ) -> None:
        self._fragments = list(fragments)
        self._error = error
        self._delay = delay
        self.fragment_timeout = fragment_timeout
        self.requests: list[list[Message]] = []

    async def fragments(self, messages: list[Message]) -> AsyncIterator[str]:
        self.requests.append(messages)
        for fragment in self._fragments:
            if self._delay:
                await asyncio.sleep(self._delay)
            yield fragment
        if self._error is not None:
            raise self._error


@pytest.fixture
def config() -> MdqaConfig:
    """Default configuration."""
    return MdqaConfig()


@pytest.fixture
def make_embedder() -> type[FakeEmbedder]:
    """Factory for fake embedders."""
    return FakeEmbedder


@pytest.fixture
def make_generator() -> type[FakeGenerator]:
    """Factory for fake generators."""
    return FakeGenerator


@pytest.fixture
def failing_generator() -> FakeGenerator:
    return FakeGenerator((), error=GenerationError("model offline"))


SAMPLE_MARKDOWN = """\
# Guide

Welcome to the client library. It talks to the service over HTTP and keeps
a small connection pool for every host it contacts during a session.

## Retries

The client retries failed requests up to three times. Retries use
exponential backoff starting at half a second. Set max_retries to zero to
disable retries entirely for latency sensitive callers.

## Timeouts

Every request has a timeout of thirty seconds by default. Long downloads
should raise the read timeout instead of the connect timeout, since the
connection itself is usually established quickly.
"""


@pytest.fixture
def sample_markdown() -> str:
    return SAMPLE_MARKDOWN


@pytest.fixture
def sample_file(tmp_path: Path) -> Path:
    """The sample guide written to disk."""
    f = tmp_path / "guide.md"
    f.write_text(SAMPLE_MARKDOWN, encoding="utf-8")
    return f
