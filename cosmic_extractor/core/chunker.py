"""Structure-aware splitting of oversized requirement documents.

Instead of cutting the text every N characters, this module:
1. Looks for heading lines and splits at them (one pattern wins, see below)
2. Splits any section still too large on sentence boundaries
3. Groups small adjacent sections so chunks are not tiny
4. Attaches a preview of the next chunk's opening for prompt context

Chunks never overlap in content: joining every ``chunk.content`` gives back
the document exactly. The preview lives in ``overlap_with_next`` only.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from cosmic_extractor.core.config import ChunkingConfig


@dataclass(frozen=True)
class Chunk:
    """One slice of a document."""

    content: str
    index: int
    total_chunks: int
    overlap_with_next: str = ""  # Start of the next chunk, prompt context only

    @property
    def size(self) -> int:
        return len(self.content)

    @property
    def is_last(self) -> bool:
        return self.index == self.total_chunks - 1


# Heading patterns in priority order. The first one with enough matches is
# used for the whole document; mixing patterns produces ragged sections.
HEADING_PATTERNS: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("markdown", re.compile(r"^[ \t]*#{1,6}[ \t]+\S", re.MULTILINE)),
    ("chapter", re.compile(r"^[ \t]*第[一二三四五六七八九十百零\d]+[章节部分篇]", re.MULTILINE)),
    ("numeric", re.compile(r"^[ \t]*\d+(?:\.\d+)*[、.．][ \t]*\S", re.MULTILINE)),
    ("chinese_numeral", re.compile(r"^[ \t]*[一二三四五六七八九十]+[、.．]", re.MULTILINE)),
)

_SENTENCE_END = re.compile(r"[。！？!?；;]+|\.(?=\s)|\n+")
_PARAGRAPH_BREAK = re.compile(r"\n[ \t]*\n+")


def chunk_document(
    text: str,
    max_chars: int = ChunkingConfig.MAX_CHUNK_CHARS,
    overlap_chars: int = ChunkingConfig.OVERLAP_PREVIEW_CHARS,
) -> list[Chunk]:
    """Split ``text`` into chunks of at most ``max_chars`` characters.

    Args:
        text: Document text.
        max_chars: Maximum characters per chunk.
        overlap_chars: Size of the next-chunk preview attached to each chunk.

    Returns:
        At least one chunk. A document that fits is returned whole.
    """
    if max_chars <= 0:
        raise ValueError("max_chars must be positive")

    if len(text) <= max_chars:
        return [Chunk(content=text, index=0, total_chunks=1)]

    sections = split_at_headings(text)
    if sections is None:
        sections = _split_keeping(text, _PARAGRAPH_BREAK)

    pieces: list[str] = []
    for section in sections:
        if len(section) > max_chars:
            pieces.extend(_split_sentences(section, max_chars))
        else:
            pieces.append(section)

    contents = _pack(pieces, max_chars)
    total = len(contents)
    return [
        Chunk(
            content=content,
            index=i,
            total_chunks=total,
            overlap_with_next=contents[i + 1][:overlap_chars] if i + 1 < total else "",
        )
        for i, content in enumerate(contents)
    ]


def detect_heading_pattern(text: str) -> str | None:
    """Name of the first heading pattern with enough matches, or None."""
    for name, pattern in HEADING_PATTERNS:
        if len(pattern.findall(text)) >= ChunkingConfig.MIN_HEADING_MATCHES:
            return name
    return None


def split_at_headings(text: str) -> list[str] | None:
    """Split at the winning heading pattern. None when no pattern qualifies."""
    name = detect_heading_pattern(text)
    if name is None:
        return None
    pattern = dict(HEADING_PATTERNS)[name]

    starts = [m.start() for m in pattern.finditer(text)]
    if starts[0] != 0:
        starts.insert(0, 0)
    starts.append(len(text))
    return [text[a:b] for a, b in zip(starts, starts[1:]) if b > a]


def _split_keeping(text: str, separator: re.Pattern[str]) -> list[str]:
    """Split after each separator match, keeping the separator on the left piece."""
    pieces = []
    start = 0
    for m in separator.finditer(text):
        pieces.append(text[start:m.end()])
        start = m.end()
    if start < len(text):
        pieces.append(text[start:])
    return [p for p in pieces if p]


def _split_sentences(section: str, max_chars: int) -> list[str]:
    """Break an oversized section into pieces no longer than ``max_chars``."""
    pieces = []
    for sentence in _split_keeping(section, _SENTENCE_END):
        if len(sentence) <= max_chars:
            pieces.append(sentence)
        else:
            # No usable boundary, hard cut
            pieces.extend(sentence[i:i + max_chars] for i in range(0, len(sentence), max_chars))
    return pieces


def _pack(pieces: list[str], max_chars: int) -> list[str]:
    """Greedily join adjacent pieces while the result fits."""
    chunks: list[str] = []
    current = ""
    for piece in pieces:
        if current and len(current) + len(piece) > max_chars:
            chunks.append(current)
            current = piece
        else:
            current += piece
    if current:
        chunks.append(current)
    return chunks
