"""Context assembly - turn ranked chunks into prompt blocks and citations."""

from collections.abc import Sequence

from cradle.app.models.knowledge import ChunkMatch, Citation


def format_block(match: ChunkMatch) -> str:
    """Render one chunk as a context block.

    Format: "### h1 > h2" line when headings exist, the chunk content, then
    a "[Topic: X]" line when a topic is set.
    """
    block = ""
    if match.metadata.headings:
        block += f"### {' > '.join(match.metadata.headings)}\n"

    block += match.content

    if match.metadata.topic:
        block += f"\n[Topic: {match.metadata.topic}]"

    return block


def make_citation(match: ChunkMatch, preview_chars: int = 200) -> Citation:
    """Build the citation record shown alongside an answer."""
    return Citation(
        source=match.document_source,
        title=match.document_title,
        excerpt=match.content[:preview_chars] + "...",
        similarity=match.similarity,
    )


def format_context(
    matches: Sequence[ChunkMatch],
    *,
    preview_chars: int = 200,
    max_context_chars: int | None = None,
) -> tuple[list[str], list[Citation]]:
    """Format ranked matches into context blocks and citations.

    Blocks keep the ranking order. With max_context_chars, blocks are added
    until the next one would push the summed block length over the budget;
    the first block is always kept. Citations correspond 1:1 to kept blocks.

    Args:
        matches: Ranked chunk matches
        preview_chars: Excerpt length for citations
        max_context_chars: Optional budget over the summed block lengths

    Returns:
        (blocks, citations)
    """
    blocks: list[str] = []
    citations: list[Citation] = []
    used = 0

    for match in matches:
        block = format_block(match)
        if max_context_chars is not None and blocks and used + len(block) > max_context_chars:
            break
        blocks.append(block)
        citations.append(make_citation(match, preview_chars))
        used += len(block)

    return blocks, citations
