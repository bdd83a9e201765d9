"""Integration tests for knowledge retrieval (cosine ranking over SQLite)."""

import math
import uuid
from pathlib import Path

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from cradle.app.db.engine import create_session_factory
from cradle.app.db.models import KnowledgeChunk
from cradle.app.knowledge.errors import StorageError
from cradle.app.knowledge.ingest import ingest_document
from cradle.app.knowledge.retriever import search_chunks
from cradle.app.llm.embeddings import EmbeddingBatcher
from tests.fakes import FixedVectorProvider, RecordingProvider

VECTORS = {
    "Alpha content.": [1.0, 0.0, 0.0],
    "Beta content.": [0.0, 1.0, 0.0],
    "Gamma content.": [1.0, 1.0, 0.0],
    "alpha?": [1.0, 0.0, 0.0],
    "beta?": [0.0, 1.0, 0.0],
}


@pytest.fixture
def fixed_batcher() -> EmbeddingBatcher:
    """Batcher whose vectors are preassigned per text."""
    return EmbeddingBatcher(FixedVectorProvider(VECTORS, default=[0.0, 0.0, 1.0]), dimensions=3)


async def _seed(session_factory: async_sessionmaker[AsyncSession], batcher: EmbeddingBatcher) -> dict[str, uuid.UUID]:
    ids = {}
    for source, content, tags in [
        ("alpha.md", "Alpha content.", ["x"]),
        ("beta.md", "Beta content.", ["y"]),
        ("gamma.md", "Gamma content.", ["y", "z"]),
    ]:
        async with session_factory() as session:
            result = await ingest_document(
                source=source,
                title=source.removesuffix(".md").title(),
                content=content,
                tags=tags,
                session=session,
                batcher=batcher,
            )
        ids[source] = result.document_id
    return ids


async def _search(
    session_factory: async_sessionmaker[AsyncSession],
    batcher: EmbeddingBatcher,
    query: str,
    top_k: int = 5,
    tag_filter: list[str] | None = None,
):
    async with session_factory() as session:
        return await search_chunks(
            query=query, top_k=top_k, tag_filter=tag_filter, session=session, batcher=batcher
        )


@pytest.mark.asyncio
async def test_identical_vector_ranks_first_with_similarity_one(
    session_factory: async_sessionmaker[AsyncSession],
    fixed_batcher: EmbeddingBatcher,
) -> None:
    """Test cosine ranking: exact match first at ~1.0, then partial, then orthogonal."""
    ids = await _seed(session_factory, fixed_batcher)

    matches = await _search(session_factory, fixed_batcher, "alpha?")

    assert [match.document_source for match in matches] == ["alpha.md", "gamma.md", "beta.md"]
    assert math.isclose(matches[0].similarity, 1.0, abs_tol=1e-6)
    assert math.isclose(matches[1].similarity, 1 / math.sqrt(2), abs_tol=1e-6)
    assert math.isclose(matches[2].similarity, 0.0, abs_tol=1e-6)
    assert matches[0].document_id == ids["alpha.md"]
    assert matches[0].document_title == "Alpha"
    assert matches[0].chunk_index == 0
    assert matches[0].metadata.source_path == "alpha.md"


@pytest.mark.asyncio
async def test_top_k_limits_results(
    session_factory: async_sessionmaker[AsyncSession],
    fixed_batcher: EmbeddingBatcher,
) -> None:
    """Test that only top_k matches are returned."""
    await _seed(session_factory, fixed_batcher)

    matches = await _search(session_factory, fixed_batcher, "alpha?", top_k=2)

    assert [match.document_source for match in matches] == ["alpha.md", "gamma.md"]


@pytest.mark.asyncio
async def test_tag_filter_excludes_other_documents(
    session_factory: async_sessionmaker[AsyncSession],
    fixed_batcher: EmbeddingBatcher,
) -> None:
    """Test that a tag filter keeps only documents with at least one of the tags."""
    await _seed(session_factory, fixed_batcher)

    matches = await _search(session_factory, fixed_batcher, "alpha?", tag_filter=["y"])

    assert [match.document_source for match in matches] == ["gamma.md", "beta.md"]


@pytest.mark.asyncio
async def test_tag_filter_matches_any_tag(
    session_factory: async_sessionmaker[AsyncSession],
    fixed_batcher: EmbeddingBatcher,
) -> None:
    """Test that documents matching any filter tag are kept."""
    await _seed(session_factory, fixed_batcher)

    matches = await _search(session_factory, fixed_batcher, "beta?", tag_filter=["x", "z"])

    assert [match.document_source for match in matches] == ["gamma.md", "alpha.md"]


@pytest.mark.asyncio
async def test_empty_tag_filter_means_no_filter(
    session_factory: async_sessionmaker[AsyncSession],
    fixed_batcher: EmbeddingBatcher,
) -> None:
    """Test that an empty filter behaves like no filter."""
    await _seed(session_factory, fixed_batcher)

    matches = await _search(session_factory, fixed_batcher, "alpha?", tag_filter=[])

    assert len(matches) == 3


@pytest.mark.asyncio
@pytest.mark.parametrize("tag_filter", [[""], ["   "], ["", " "]])
async def test_blank_tag_filter_matches_nothing(
    session_factory: async_sessionmaker[AsyncSession],
    fixed_batcher: EmbeddingBatcher,
    tag_filter: list[str],
) -> None:
    """Test that a supplied filter of blank tags excludes every document."""
    await _seed(session_factory, fixed_batcher)

    matches = await _search(session_factory, fixed_batcher, "alpha?", tag_filter=tag_filter)

    assert matches == []


@pytest.mark.asyncio
async def test_tag_filter_is_stripped_like_stored_tags(
    session_factory: async_sessionmaker[AsyncSession],
    fixed_batcher: EmbeddingBatcher,
) -> None:
    """Test that surrounding whitespace in filter tags is ignored."""
    await _seed(session_factory, fixed_batcher)

    matches = await _search(session_factory, fixed_batcher, "alpha?", tag_filter=[" y ", ""])

    assert [match.document_source for match in matches] == ["gamma.md", "beta.md"]


@pytest.mark.asyncio
async def test_unknown_tag_returns_empty(
    session_factory: async_sessionmaker[AsyncSession],
    fixed_batcher: EmbeddingBatcher,
) -> None:
    """Test that a filter matching no document yields []."""
    await _seed(session_factory, fixed_batcher)

    assert await _search(session_factory, fixed_batcher, "alpha?", tag_filter=["missing"]) == []


@pytest.mark.asyncio
async def test_empty_index_returns_empty(
    session_factory: async_sessionmaker[AsyncSession],
    fixed_batcher: EmbeddingBatcher,
) -> None:
    """Test that searching an empty store is not an error."""
    assert await _search(session_factory, fixed_batcher, "alpha?") == []


@pytest.mark.asyncio
async def test_ties_are_broken_by_chunk_id(
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    """Test deterministic ordering when similarities are equal."""
    batcher = EmbeddingBatcher(FixedVectorProvider({}, default=[1.0, 0.0]), dimensions=2)
    for i in range(4):
        async with session_factory() as session:
            await ingest_document(
                source=f"doc{i}.md", title=f"Doc {i}", content=f"Same direction {i}.", session=session, batcher=batcher
            )

    matches = await _search(session_factory, batcher, "anything")

    assert len(matches) == 4
    assert [match.chunk_id for match in matches] == sorted(match.chunk_id for match in matches)


@pytest.mark.asyncio
async def test_chunks_without_embedding_are_skipped(
    session_factory: async_sessionmaker[AsyncSession],
    fixed_batcher: EmbeddingBatcher,
) -> None:
    """Test that chunks whose embedding is null are never candidates."""
    ids = await _seed(session_factory, fixed_batcher)
    async with session_factory() as session:
        session.add(
            KnowledgeChunk(
                chunk_id=uuid.uuid4(),
                document_id=ids["alpha.md"],
                chunk_index=1,
                content="Pending embedding.",
                embedding=None,
                metadata_={"source_path": "alpha.md"},
            )
        )
        await session.commit()

    matches = await _search(session_factory, fixed_batcher, "alpha?")

    assert "Pending embedding." not in [match.content for match in matches]
    assert len(matches) == 3


@pytest.mark.asyncio
async def test_provider_failure_degrades_to_empty(
    session_factory: async_sessionmaker[AsyncSession],
    batcher: EmbeddingBatcher,
    provider: RecordingProvider,
) -> None:
    """Test that a failing query embedding returns [] instead of raising."""
    async with session_factory() as session:
        await ingest_document(
            source="sleep.md", title="Sleep", content="# Sleep\n\nBabies need naps.", session=session, batcher=batcher
        )

    provider.fail = True

    assert await _search(session_factory, batcher, "naps") == []


@pytest.mark.asyncio
async def test_unexpected_provider_exception_degrades_to_empty(
    session_factory: async_sessionmaker[AsyncSession],
    batcher: EmbeddingBatcher,
    provider: RecordingProvider,
) -> None:
    """Test that a non-ProviderError failure while embedding the query still returns []."""
    async with session_factory() as session:
        await ingest_document(
            source="sleep.md", title="Sleep", content="# Sleep\n\nBabies need naps.", session=session, batcher=batcher
        )

    provider.error = RuntimeError("socket reset")

    assert await _search(session_factory, batcher, "naps") == []


@pytest.mark.asyncio
@pytest.mark.parametrize(("query", "top_k"), [("", 5), ("   ", 5), ("naps", 0), ("naps", -1)])
async def test_blank_query_or_non_positive_top_k_returns_empty(
    session_factory: async_sessionmaker[AsyncSession],
    batcher: EmbeddingBatcher,
    provider: RecordingProvider,
    query: str,
    top_k: int,
) -> None:
    """Test that degenerate requests return [] without calling the provider."""
    assert await _search(session_factory, batcher, query, top_k=top_k) == []
    assert provider.call_count == 0


@pytest.mark.asyncio
async def test_missing_schema_raises_storage_error(tmp_path: Path, batcher: EmbeddingBatcher) -> None:
    """Test that database failures surface as StorageError."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'empty.db'}", poolclass=NullPool)
    session_factory = create_session_factory(engine)

    try:
        with pytest.raises(StorageError):
            await _search(session_factory, batcher, "naps")
    finally:
        await engine.dispose()
