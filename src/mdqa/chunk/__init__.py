"""Chunking engine — heading-aware packing with word overlap."""

from mdqa.chunk.base import BaseChunker
from mdqa.chunk.markdown import MarkdownChunker, chunk_markdown

__all__ = ["BaseChunker", "MarkdownChunker", "chunk_markdown"]
