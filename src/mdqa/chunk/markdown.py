"""Heading-aware markdown chunker with word budget and overlap.

Splits raw markdown into Chunk objects:
- Paragraph blocks are tagged with their heading breadcrumb ("A > B > C")
- Fenced code blocks are never split and become a ``[code block]`` token
- Blocks are greedily packed up to a word budget, with whole-block overlap
- Oversized packs are force-split by sentences with word overlap
- Tiny chunks are folded into their successor in a single forward pass
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING

from mdqa.chunk.base import BaseChunker
from mdqa.exceptions import ChunkError
from mdqa.text import (
    count_tokens,
    count_words,
    encoding_available,
    limit_text,
    split_sentences,
    take_last_words,
)
from mdqa.types import DEFAULT_HEADING, Block, Chunk

if TYPE_CHECKING:
    from mdqa.config import MdqaConfig

__all__ = [
    "MarkdownChunker",
    "chunk_markdown",
    "clean_text",
    "merge_small_blocks",
    "pack_blocks",
    "split_blocks",
]

logger = logging.getLogger(__name__)

HEADING_SEPARATOR = " > "
CODE_BLOCK_TOKEN = "[code block]"

# Packs larger than this multiple of max_words are re-split by sentences.
_OVERSIZE_FACTOR = 1.5

# Heading pattern: matches lines like "# Heading", "## Heading", etc.
_HEADING_RE = re.compile(r"^(#{1,6})\s+(.*)$")

# Optional closing hashes: "## Title ##"
_HEADING_CLOSE_RE = re.compile(r"\s+#+\s*$")

# Fenced code block opener: ``` or ~~~ with optional language.
# A backtick info string cannot contain backticks, so ```x``` is inline.
_FENCE_RE = re.compile(r"^\s*(`{3,}(?!.*`)|~{3,})")

# --- Cleaning patterns, applied in order ---

_FENCED_CODE_RE = re.compile(r"(`{3,}|~{3,})[\s\S]*?\1")
_UNCLOSED_FENCE_RE = re.compile(r"(`{3,}|~{3,})[\s\S]*$")
_INLINE_CODE_RE = re.compile(r"`([^`]+)`")
_BOLD_RE = re.compile(r"\*\*([^*]+)\*\*")
_ITALIC_RE = re.compile(r"\*([^*]+)\*")
_HTML_TAG_RE = re.compile(r"<[^>]+>")
_TAB_RE = re.compile(r"[\t\r]+")
_MULTI_SPACE_RE = re.compile(r"\s{2,}")


def clean_text(text: str) -> str:
    """Strip markdown decoration and collapse whitespace.

    Fenced code becomes ``[code block]``; inline code, bold and italic
    markers and HTML tags are removed.
    """
    text = _FENCED_CODE_RE.sub(CODE_BLOCK_TOKEN, text)
    text = _UNCLOSED_FENCE_RE.sub(CODE_BLOCK_TOKEN, text)
    text = _INLINE_CODE_RE.sub(r"\1", text)
    text = _BOLD_RE.sub(r"\1", text)
    text = _ITALIC_RE.sub(r"\1", text)
    text = _HTML_TAG_RE.sub("", text)
    text = _TAB_RE.sub(" ", text)
    text = _MULTI_SPACE_RE.sub(" ", text)
    return text.strip()


class _HeadingPath:
    """Heading breadcrumb as a list indexed by heading level."""

    def __init__(self) -> None:
        self._titles: list[str] = []

    @property
    def path(self) -> str:
        """Current breadcrumb, or the default label before any heading."""
        return HEADING_SEPARATOR.join(t for t in self._titles if t) or DEFAULT_HEADING

    def update(self, level: int, title: str) -> None:
        """Truncate to ``level - 1`` entries, then set the title at ``level``."""
        del self._titles[level - 1 :]
        # Skipped levels ("#" then "###") leave empty slots
        self._titles.extend([""] * (level - 1 - len(self._titles)))
        self._titles.append(title)


def _closes_fence(line: str, marker: str) -> bool:
    return re.match(rf"^\s*{re.escape(marker[0])}{{{len(marker)},}}\s*$", line) is not None


def split_blocks(text: str) -> list[Block]:
    """Split markdown into cleaned paragraph blocks tagged with headings.

    A heading line or a blank line after buffered text closes the current
    block. Fenced code is kept whole. Blocks that clean to nothing are dropped.
    """
    blocks: list[Block] = []
    headings = _HeadingPath()
    buf: list[str] = []
    fence: str | None = None

    def flush() -> None:
        if buf:
            cleaned = clean_text("\n".join(buf))
            if cleaned:
                blocks.append(Block(heading_path=headings.path, text=cleaned))
            buf.clear()

    for line in text.replace("\r\n", "\n").split("\n"):
        if fence is not None:
            buf.append(line)
            if _closes_fence(line, fence):
                fence = None
            continue

        fence_match = _FENCE_RE.match(line)
        if fence_match:
            fence = fence_match.group(1)
            buf.append(line)
            continue

        heading_match = _HEADING_RE.match(line)
        if heading_match:
            flush()
            title = clean_text(_HEADING_CLOSE_RE.sub("", heading_match.group(2)))
            headings.update(len(heading_match.group(1)), title)
            continue

        if not line.strip():
            flush()
            continue

        buf.append(line)

    flush()
    return blocks


def _merge_pack(pack: list[tuple[Block, bool]]) -> Block:
    """Join packed blocks with a blank line.

    The heading comes from the first block not carried over as overlap.
    """
    fresh = [b for b, carried in pack if not carried]
    heading = (fresh or [pack[0][0]])[0].heading_path
    text = "\n\n".join(b.text for b, _ in pack).strip()
    return Block(heading_path=heading, text=text)


def _take_from_end(blocks: list[Block], target_words: int) -> list[Block]:
    """Collect whole trailing blocks until at least ``target_words`` words."""
    if target_words <= 0:
        return []
    out: list[Block] = []
    count = 0
    for block in reversed(blocks):
        out.insert(0, block)
        count += count_words(block.text)
        if count >= target_words:
            break
    return out


def _split_by_sentences(
    text: str,
    max_words: int,
    overlap_words: int,
    heading: str,
) -> list[Block]:
    """Greedy sentence packing with trailing-word overlap between pieces."""
    pieces: list[Block] = []
    buf: list[str] = []
    words = 0

    for sentence in split_sentences(text):
        w = count_words(sentence)
        if words + w <= max_words:
            buf.append(sentence)
            words += w
            continue

        piece = " ".join(buf).strip()
        if piece:
            pieces.append(Block(heading_path=heading, text=piece))
        overlap = take_last_words(" ".join(buf), overlap_words)
        buf = [overlap] if overlap else []
        words = count_words(overlap)
        buf.append(sentence)
        words += w

    final = " ".join(buf).strip()
    if final:
        pieces.append(Block(heading_path=heading, text=final))
    return pieces


def pack_blocks(blocks: list[Block], max_words: int, overlap_words: int) -> list[Block]:
    """Greedily pack blocks into pieces of at most ``max_words`` words.

    When the next block would overflow the budget, the pack is emitted and
    the next one is seeded with trailing blocks worth ``overlap_words``.
    A pack that ends up above 1.5x the budget is split by sentences.
    """
    pieces: list[Block] = []
    pack: list[tuple[Block, bool]] = []
    pack_words = 0

    for block in blocks:
        w = count_words(block.text)
        if pack_words + w <= max_words:
            pack.append((block, False))
            pack_words += w
            continue

        if pack:
            pieces.append(_merge_pack(pack))
            seed = _take_from_end([b for b, _ in pack], overlap_words)
            pack = [(b, True) for b in seed]
            pack_words = sum(count_words(b.text) for b in seed)

        pack.append((block, False))
        pack_words += w

        if pack_words > max_words * _OVERSIZE_FACTOR:
            merged = _merge_pack(pack)
            pieces.extend(
                _split_by_sentences(merged.text, max_words, overlap_words, merged.heading_path)
            )
            pack = []
            pack_words = 0

    if pack:
        pieces.append(_merge_pack(pack))
    return pieces


def merge_small_blocks(blocks: list[Block], min_chars: int) -> list[Block]:
    """Fold each block shorter than ``min_chars`` into its successor.

    Single forward pass: a merged block is not examined again, and the
    block it absorbed is skipped.
    """
    result: list[Block] = []
    i = 0
    while i < len(blocks):
        current = blocks[i]
        if len(current.text) < min_chars and i + 1 < len(blocks):
            nxt = blocks[i + 1]
            result.append(
                Block(
                    heading_path=nxt.heading_path or current.heading_path,
                    text=f"{current.text}\n\n{nxt.text}".strip(),
                )
            )
            i += 2
        else:
            result.append(current)
            i += 1
    return result


def chunk_markdown(
    text: str,
    max_words: int = 350,
    overlap_words: int = 40,
    *,
    max_chars: int = 1200,
    min_chars: int = 200,
    max_chunks: int = 400,
) -> list[Chunk]:
    """Convert markdown text into an ordered list of chunks.

    Args:
        text: Raw markdown-flavored text.
        max_words: Word budget per packed chunk.
        overlap_words: Words carried from one chunk into the next.
        max_chars: Character cap per chunk text (ellipsis when cut).
        min_chars: Chunks shorter than this merge into their successor.
        max_chunks: Hard ceiling on the number of chunks returned.

    Returns:
        Chunks with ids equal to their position in the list.
    """
    if not text or not text.strip():
        return []

    blocks = split_blocks(text)
    pieces = pack_blocks(blocks, max_words, overlap_words)
    pieces = merge_small_blocks(pieces, min_chars)

    if len(pieces) > max_chunks:
        logger.debug("Truncating %d chunks to the %d chunk cap", len(pieces), max_chunks)
        pieces = pieces[:max_chunks]

    with_tokens = encoding_available()
    chunks: list[Chunk] = []
    for piece in pieces:
        chunk_text = limit_text(piece.text, max_chars)
        if not chunk_text:
            continue
        chunks.append(
            Chunk(
                id=len(chunks),
                heading_path=piece.heading_path,
                text=chunk_text,
                token_count=count_tokens(chunk_text) if with_tokens else 0,
            )
        )
    return chunks


class MarkdownChunker(BaseChunker):
    """Heading-aware markdown chunker driven by ``[chunk]`` config."""

    def chunk(self, text: str, config: MdqaConfig) -> list[Chunk]:
        """Split document text into chunks.

        Raises:
            ChunkError: If chunking fails unexpectedly.
        """
        cfg = config.chunk
        try:
            chunks = chunk_markdown(
                text,
                cfg.max_words,
                cfg.overlap_words,
                max_chars=cfg.max_chars,
                min_chars=cfg.min_chars,
                max_chunks=cfg.max_chunks,
            )
        except Exception as e:
            logger.error("Failed to chunk document: %s", e)
            raise ChunkError(f"Failed to chunk document: {e}") from e

        logger.info(
            "Chunked %d chars into %d chunks (max_words=%d, overlap=%d)",
            len(text),
            len(chunks),
            cfg.max_words,
            cfg.overlap_words,
        )
        return chunks
