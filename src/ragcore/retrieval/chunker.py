"""
Document chunking with provenance metadata.

Splits normalized document text into overlapping chunks using one of four
strategies:
    - fixed: sliding character window
    - paragraph: blank-line units accumulated up to chunk_size
    - sentence: sentence units accumulated up to chunk_size
    - hybrid: paragraph groups, re-split by sentence when oversized

Every chunk carries chunk_index, start/end character offsets, the strategy
name and, for markdown input, the nearest preceding section header.
"""

import re
from dataclasses import dataclass
from typing import Any, Optional

from langchain_text_splitters import RecursiveCharacterTextSplitter

from ragcore.config import ChunkingStrategyName
from ragcore.retrieval.models import Chunk

PARAGRAPH_BREAK = re.compile(r"\n\s*\n")
SENTENCE = re.compile(r"[^.!?]+(?:[.!?]+|\Z)|[.!?]+")
HEADER = re.compile(r"^(#{1,6})\s+(.+)$", re.MULTILINE)
WORD = re.compile(r"\S+")

# Approximate characters per word used to turn chunk_overlap into a word count
CHARS_PER_WORD = 5


@dataclass
class ChunkingOptions:
    """How a document is split into chunks."""

    strategy: ChunkingStrategyName = "paragraph"
    chunk_size: int = 1000
    """Soft maximum chunk size in characters."""

    chunk_overlap: int = 200
    """Characters of continuity carried into the next chunk."""

    separator: Optional[str] = None
    """Literal paragraph separator overriding blank lines (paragraph/hybrid only)."""


DEFAULT_CHUNKING_OPTIONS = ChunkingOptions()


@dataclass
class _Piece:
    text: str
    start: int
    end: int
    method: str
    has_offsets: bool = True


def chunk_document(
    document_id: str,
    content: str,
    options: ChunkingOptions = DEFAULT_CHUNKING_OPTIONS,
    metadata: Optional[dict[str, Any]] = None,
) -> list[Chunk]:
    """
    Split a document's text into chunks.

    Args:
        document_id: Id of the parent document
        content: Normalized document text
        options: Strategy, size and overlap
        metadata: Document metadata copied onto every chunk

    Returns:
        Chunks in document order with contiguous chunk_index values

    Raises:
        ValueError: If chunk_size <= 0, overlap < 0, overlap >= chunk_size
            or the strategy is unknown
    """
    _validate(options.chunk_size, options.chunk_overlap)

    if not content or not content.strip():
        return []

    strategy = options.strategy
    if strategy == "fixed":
        pieces = _split_fixed(content, options.chunk_size, options.chunk_overlap)
    elif strategy == "paragraph":
        units = _paragraph_units(content, options.separator)
        pieces = _accumulate(content, units, options.chunk_size, options.chunk_overlap, "\n\n", "paragraph")
    elif strategy == "sentence":
        units = _sentence_units(content, 0, len(content))
        pieces = _accumulate(content, units, options.chunk_size, options.chunk_overlap, " ", "sentence")
    elif strategy == "hybrid":
        pieces = _split_hybrid(content, options)
    else:
        raise ValueError(f"Unknown chunking strategy: {strategy}")

    headers = _extract_section_headers(content)
    base_metadata = dict(metadata or {})

    chunks: list[Chunk] = []
    for piece in pieces:
        if not piece.text.strip():
            continue
        chunk_metadata = {**base_metadata, "chunk_index": len(chunks), "strategy": strategy}
        if piece.has_offsets:
            chunk_metadata["start_offset"] = piece.start
            chunk_metadata["end_offset"] = piece.end
        else:
            chunk_metadata.pop("start_offset", None)
            chunk_metadata.pop("end_offset", None)
        if piece.method != strategy:
            chunk_metadata["chunking_method"] = piece.method
        section_header = _nearest_header(piece.start, headers)
        if section_header:
            chunk_metadata["section_header"] = section_header
        chunks.append(Chunk(document_id=document_id, content=piece.text, metadata=chunk_metadata))

    return chunks


def _validate(chunk_size: int, overlap: int) -> None:
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")
    if overlap < 0:
        raise ValueError(f"overlap must be non-negative, got {overlap}")
    if overlap >= chunk_size:
        raise ValueError(f"overlap ({overlap}) must be less than chunk_size ({chunk_size})")


def _split_fixed(content: str, chunk_size: int, overlap: int) -> list[_Piece]:
    """Slide a chunk_size window forward by chunk_size - overlap."""
    pieces: list[_Piece] = []
    step = chunk_size - overlap
    for start in range(0, len(content), step):
        end = min(start + chunk_size, len(content))
        window = content[start:end]
        if window.strip():
            pieces.append(_Piece(window, start, end, "fixed"))
    return pieces


def _strip_span(content: str, start: int, end: int) -> Optional[tuple[str, int, int]]:
    """Trim whitespace from content[start:end], returning the trimmed span."""
    raw = content[start:end]
    stripped = raw.strip()
    if not stripped:
        return None
    lead = len(raw) - len(raw.lstrip())
    return stripped, start + lead, start + lead + len(stripped)


def _paragraph_units(content: str, separator: Optional[str]) -> list[tuple[str, int, int]]:
    pattern = re.compile(re.escape(separator)) if separator else PARAGRAPH_BREAK
    units: list[tuple[str, int, int]] = []
    cursor = 0
    for match in pattern.finditer(content):
        span = _strip_span(content, cursor, match.start())
        if span:
            units.append(span)
        cursor = match.end()
    span = _strip_span(content, cursor, len(content))
    if span:
        units.append(span)
    return units


def _sentence_units(content: str, start: int, end: int) -> list[tuple[str, int, int]]:
    units: list[tuple[str, int, int]] = []
    for match in SENTENCE.finditer(content, start, end):
        span = _strip_span(content, match.start(), match.end())
        if span:
            units.append(span)
    return units


def _overlap_seed(content: str, start: int, end: int, overlap: int) -> tuple[str, int]:
    """
    Return the last overlap // CHARS_PER_WORD words of content[start:end].

    The seed is an exact slice of the document so the next chunk's start
    offset stays accurate.
    """
    word_count = overlap // CHARS_PER_WORD
    if word_count <= 0:
        return "", end
    word_starts = [m.start() for m in WORD.finditer(content, start, end)]
    if not word_starts:
        return "", end
    seed_start = word_starts[max(len(word_starts) - word_count, 0)]
    return content[seed_start:end], seed_start


def _accumulate(
    content: str,
    units: list[tuple[str, int, int]],
    chunk_size: int,
    overlap: int,
    joiner: str,
    method: str,
) -> list[_Piece]:
    """
    Greedily pack units into chunks of at most chunk_size characters.

    When the next unit would overflow the buffer, the buffer is emitted and
    the next one is seeded with the trailing words of the emitted chunk.
    A single unit longer than chunk_size becomes its own oversized chunk.
    """
    pieces: list[_Piece] = []
    buffer = ""
    buffer_start = 0
    buffer_end = 0

    for text, start, end in units:
        if buffer and len(buffer) + len(text) > chunk_size:
            pieces.append(_Piece(buffer, buffer_start, buffer_end, method))
            buffer, buffer_start = _overlap_seed(content, buffer_start, buffer_end, overlap)

        if buffer:
            buffer += joiner + text
        else:
            buffer = text
            buffer_start = start
        buffer_end = end

    if buffer.strip():
        pieces.append(_Piece(buffer, buffer_start, buffer_end, method))

    return pieces


def _split_hybrid(content: str, options: ChunkingOptions) -> list[_Piece]:
    """Group paragraphs up to chunk_size; re-split oversized groups by sentence."""
    chunk_size = options.chunk_size
    pieces: list[_Piece] = []
    group: list[tuple[str, int, int]] = []
    group_length = 0

    def flush() -> None:
        if not group:
            return
        text = "\n\n".join(unit[0] for unit in group)
        start, end = group[0][1], group[-1][2]
        if len(text) <= chunk_size:
            pieces.append(_Piece(text, start, end, "hybrid-paragraph"))
        else:
            pieces.extend(_split_oversized(content, start, end, options))

    for unit in _paragraph_units(content, options.separator):
        added = len(unit[0]) + (2 if group else 0)
        if group and group_length + added > chunk_size:
            flush()
            group = []
            group_length = 0
            added = len(unit[0])
        group.append(unit)
        group_length += added

    flush()
    return pieces


def _split_oversized(content: str, start: int, end: int, options: ChunkingOptions) -> list[_Piece]:
    """Sentence-split content[start:end]; hard-split any sentence still too long."""
    units = _sentence_units(content, start, end)
    sentence_pieces = _accumulate(
        content, units, options.chunk_size, options.chunk_overlap, " ", "hybrid-sentence"
    )

    splitter = RecursiveCharacterTextSplitter(
        chunk_size=options.chunk_size,
        chunk_overlap=options.chunk_overlap,
        length_function=len,
        is_separator_regex=False,
        separators=["\n", " ", ""],
    )

    pieces: list[_Piece] = []
    for piece in sentence_pieces:
        if len(piece.text) <= options.chunk_size:
            pieces.append(piece)
            continue
        # Split the source span, not the re-joined sentences, so parts map back to content
        source = content[piece.start:piece.end]
        cursor = 0
        for part in splitter.split_text(source):
            position = source.find(part, cursor)
            if position < 0:
                pieces.append(_Piece(part, piece.start, piece.start, "hybrid-split", has_offsets=False))
                continue
            part_start = piece.start + position
            pieces.append(_Piece(part, part_start, part_start + len(part), "hybrid-split"))
            cursor = position + 1
    return pieces


def _extract_section_headers(text: str) -> dict[int, str]:
    """
    Extract markdown section headers from text.

    Returns:
        Dictionary mapping character position to header text
    """
    return {match.start(): match.group(2).strip() for match in HEADER.finditer(text)}


def _nearest_header(position: int, section_headers: dict[int, str]) -> str:
    """Return the last header at or before position, or an empty string."""
    nearest = ""
    nearest_position = -1
    for header_position, header_text in section_headers.items():
        if nearest_position < header_position <= position:
            nearest_position = header_position
            nearest = header_text
    return nearest
