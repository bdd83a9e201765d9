"""Heading-aware document chunker with overlapping windows."""

import re
from dataclasses import dataclass

from cradle.app.knowledge.taxonomy import KeywordTaxonomy, default_taxonomy
from cradle.app.models.knowledge import ChunkDraft, ChunkMetadata

# ATX heading: up to 3 leading spaces, 1-6 hashes, text, optional closing hashes
_HEADING_RE = re.compile(r"^[ \t]{0,3}(#{1,6})[ \t]+(.+?)(?:[ \t]+#+)?[ \t]*$", re.MULTILINE)
_PARAGRAPH_BREAK_RE = re.compile(r"\n(?:[ \t]*\n)+")

_PARAGRAPH_SEPARATOR = "\n\n"


@dataclass(frozen=True)
class ChunkingOptions:
    """Chunk sizing and classification configuration."""

    max_chars: int = 1000
    overlap_words: int = 30
    taxonomy: KeywordTaxonomy | None = None


@dataclass(frozen=True)
class _Heading:
    level: int
    text: str
    offset: int


@dataclass(frozen=True)
class _Paragraph:
    text: str
    offset: int
    is_heading: bool


def _parse_headings(text: str) -> list[_Heading]:
    return [
        _Heading(level=len(match.group(1)), text=match.group(2).strip(), offset=match.start())
        for match in _HEADING_RE.finditer(text)
    ]


def _split_paragraphs(text: str) -> list[_Paragraph]:
    paragraphs: list[_Paragraph] = []

    def append(start: int, end: int) -> None:
        segment = text[start:end]
        stripped = segment.strip()
        if not stripped:
            return
        offset = start + len(segment) - len(segment.lstrip())
        is_heading = all(
            _HEADING_RE.match(line) for line in stripped.split("\n") if line.strip()
        )
        paragraphs.append(_Paragraph(text=stripped, offset=offset, is_heading=is_heading))

    start = 0
    for match in _PARAGRAPH_BREAK_RE.finditer(text):
        append(start, match.start())
        start = match.end()
    append(start, len(text))

    return paragraphs


def _heading_path(headings: list[_Heading], anchor: int) -> list[str]:
    """Resolve the heading breadcrumb active at a character offset.

    Walks headings in document order up to and including the anchor, keeping a
    stack keyed by level: entries at or below the incoming heading's depth are
    popped before it is pushed.
    """
    stack: list[_Heading] = []
    for heading in headings:
        if heading.offset > anchor:
            break
        while stack and stack[-1].level >= heading.level:
            stack.pop()
        stack.append(heading)
    return [heading.text for heading in stack]


def chunk_document(
    text: str,
    source_path: str,
    *,
    max_chars: int = 1000,
    overlap_words: int = 30,
    taxonomy: KeywordTaxonomy | None = None,
) -> list[ChunkDraft]:
    """Chunk Markdown-ish text into ordered, overlapping segments.

    Pure function with no I/O or randomness.

    Args:
        text: Raw document text to chunk
        source_path: Source identifier recorded in each chunk's metadata
        max_chars: Size at which a chunk is closed before adding a paragraph
        overlap_words: Words carried from the end of a closed chunk into the next
        taxonomy: Keyword tables for tags/topic (packaged default when omitted)

    Returns:
        ChunkDraft list with index 0, 1, 2, ... and metadata
        {source_path, headings, tags, topic}

    Strategy:
        1. Normalize line endings to \\n
        2. Record Markdown headings (level, text, offset)
        3. Split on blank lines into paragraphs (never split further)
        4. Pack paragraphs until the next one would exceed max_chars, then
           close the chunk (unless it holds only headings so far) and seed
           the next with its trailing words
        5. Breadcrumb = heading stack at the first non-heading paragraph the
           chunk contributes
        6. Tag and classify each chunk with the keyword taxonomy
    """
    if max_chars <= 0:
        raise ValueError("max_chars must be positive")
    if overlap_words < 0:
        raise ValueError("overlap_words must not be negative")

    if not text or not text.strip():
        return []

    keywords = taxonomy or default_taxonomy()

    normalized = text.replace("\r\n", "\n").replace("\r", "\n")
    headings = _parse_headings(normalized)
    paragraphs = _split_paragraphs(normalized)

    chunks: list[ChunkDraft] = []
    parts: list[str] = []
    length = 0
    has_new_content = False
    first_offset: int | None = None
    anchor: int | None = None

    def flush_chunk() -> str:
        content = _PARAGRAPH_SEPARATOR.join(parts).strip()
        breadcrumb_at = anchor if anchor is not None else first_offset
        chunks.append(
            ChunkDraft(
                index=len(chunks),
                content=content,
                metadata=ChunkMetadata(
                    source_path=source_path,
                    headings=_heading_path(headings, breadcrumb_at or 0),
                    tags=keywords.tags_for(content),
                    topic=keywords.topic_for(content),
                ),
            )
        )
        return content

    for para in paragraphs:
        needed = length + (len(_PARAGRAPH_SEPARATOR) if parts else 0) + len(para.text)

        # A chunk holding only headings stays open for its section body
        if anchor is not None and needed > max_chars:
            closed = flush_chunk()

            # Seed the next chunk with the tail of the one just closed
            tail = closed.split()[-overlap_words:] if overlap_words else []
            parts = [" ".join(tail)] if tail else []
            length = len(parts[0]) if parts else 0
            has_new_content = False
            first_offset = None
            anchor = None

        if parts:
            length += len(_PARAGRAPH_SEPARATOR)
        parts.append(para.text)
        length += len(para.text)
        has_new_content = True

        if first_offset is None:
            first_offset = para.offset
        if anchor is None and not para.is_heading:
            anchor = para.offset

    if has_new_content:
        flush_chunk()

    return chunks
