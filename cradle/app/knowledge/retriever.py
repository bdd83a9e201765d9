"""Knowledge retriever - semantic search over embedded chunks."""

import time
from collections.abc import Collection

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from cradle.app.db.vector_search import nearest_chunks
from cradle.app.knowledge.errors import ProviderError, StorageError
from cradle.app.knowledge.ingest import normalize_tags
from cradle.app.llm.embeddings import EmbeddingBatcher
from cradle.app.models.knowledge import ChunkMatch
from cradle.app.utils.logging import structured_logger
from cradle.app.utils.metrics import metrics


def _record(
    outcome: str,
    *,
    start_time: float,
    result_count: int,
    top_k: int,
    tags: list[str] | None,
    error_reason: str | None = None,
) -> None:
    latency_ms = (time.perf_counter() - start_time) * 1000
    metrics.record_search(outcome, latency_ms)
    structured_logger.log_search(
        outcome,
        result_count=result_count,
        top_k=top_k,
        latency_ms=latency_ms,
        tag_filter=tags,
        error_reason=error_reason,
    )


async def search_chunks(
    *,
    query: str,
    top_k: int,
    tag_filter: Collection[str] | None = None,
    session: AsyncSession,
    batcher: EmbeddingBatcher,
) -> list[ChunkMatch]:
    """Search chunks by cosine similarity to the query embedding.

    Strategy:
    - Blank query or non-positive top_k returns [] without any calls
    - Embed the query; a provider failure degrades to [] with a warning
    - Rank embedded chunks by cosine similarity (descending), ties by chunk_id
    - A non-empty tag_filter keeps chunks whose document has any of the tags

    Args:
        query: Natural-language query
        top_k: Maximum number of matches
        tag_filter: Document tags to restrict to (None or empty means no filter;
            tags are stripped like stored tags)
        session: Async database session
        batcher: Embedding batcher for the query vector

    Returns:
        List of ChunkMatch sorted by similarity

    Raises:
        StorageError: On database failure
    """
    if not query or not query.strip() or top_k <= 0:
        return []

    tags = sorted(normalize_tags(tag_filter)) if tag_filter else None
    if tags == []:
        # Every supplied tag was blank, so no document can match
        return []

    start_time = time.perf_counter()

    try:
        query_vector = await batcher.embed_one(query)
    except ProviderError as e:
        _record(
            "provider_error",
            start_time=start_time,
            result_count=0,
            top_k=top_k,
            tags=tags,
            error_reason=str(e),
        )
        return []

    try:
        matches = await nearest_chunks(session, query_vector, top_k=top_k, tags=tags)
    except SQLAlchemyError as e:
        _record(
            "storage_error",
            start_time=start_time,
            result_count=0,
            top_k=top_k,
            tags=tags,
            error_reason=str(e),
        )
        raise StorageError(f"Knowledge search failed: {e}") from e
    except StorageError as e:
        _record(
            "storage_error",
            start_time=start_time,
            result_count=0,
            top_k=top_k,
            tags=tags,
            error_reason=str(e),
        )
        raise

    _record("ok", start_time=start_time, result_count=len(matches), top_k=top_k, tags=tags)
    return matches
