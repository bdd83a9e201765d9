"""Nearest-neighbour chunk search strategies by database dialect."""

from collections.abc import Sequence
from typing import Any

import numpy as np
from sqlalchemy import Select, exists, select
from sqlalchemy.ext.asyncio import AsyncSession

from cradle.app.db.models import KnowledgeChunk, KnowledgeDocument, KnowledgeDocumentTag
from cradle.app.knowledge.errors import StorageError
from cradle.app.models.knowledge import ChunkMatch, ChunkMetadata


def _base_query(*columns: Any, tags: Sequence[str] | None) -> Select[Any]:
    """Select embedded chunks joined to their document, optionally tag-filtered."""
    stmt = (
        select(
            KnowledgeChunk.chunk_id,
            KnowledgeChunk.document_id,
            KnowledgeChunk.chunk_index,
            KnowledgeChunk.content,
            KnowledgeChunk.metadata_.label("chunk_metadata"),
            KnowledgeDocument.source,
            KnowledgeDocument.title,
            *columns,
        )
        .join(KnowledgeDocument, KnowledgeDocument.document_id == KnowledgeChunk.document_id)
        .where(KnowledgeChunk.embedding.is_not(None))
    )

    if tags:
        stmt = stmt.where(
            exists().where(
                KnowledgeDocumentTag.document_id == KnowledgeChunk.document_id,
                KnowledgeDocumentTag.tag.in_(list(tags)),
            )
        )

    return stmt


def _to_match(row: Any, similarity: float) -> ChunkMatch:
    return ChunkMatch(
        chunk_id=row.chunk_id,
        document_id=row.document_id,
        chunk_index=row.chunk_index,
        content=row.content,
        metadata=ChunkMetadata.model_validate(row.chunk_metadata),
        similarity=similarity,
        document_source=row.source,
        document_title=row.title,
    )


async def _pgvector_search(
    session: AsyncSession,
    query_vector: list[float],
    *,
    top_k: int,
    tags: Sequence[str] | None,
) -> list[ChunkMatch]:
    """Rank in the database with the pgvector cosine distance operator (<=>)."""
    distance = KnowledgeChunk.embedding.cosine_distance(query_vector)
    stmt = (
        _base_query((1 - distance).label("similarity"), tags=tags)
        .order_by(distance, KnowledgeChunk.chunk_id)
        .limit(top_k)
    )

    result = await session.execute(stmt)
    return [_to_match(row, float(row.similarity)) for row in result.all()]


async def _scan_search(
    session: AsyncSession,
    query_vector: list[float],
    *,
    top_k: int,
    tags: Sequence[str] | None,
) -> list[ChunkMatch]:
    """Load candidate rows and rank them with an in-process cosine scan.

    Used on dialects without a vector operator (SQLite in tests).
    """
    result = await session.execute(_base_query(KnowledgeChunk.embedding, tags=tags))
    rows = result.all()
    if not rows:
        return []

    query = np.asarray(query_vector, dtype=np.float64)
    try:
        matrix = np.vstack([np.asarray(row.embedding, dtype=np.float64) for row in rows])
    except ValueError as e:
        raise StorageError("Stored embeddings have inconsistent dimensions") from e

    if matrix.shape[1] != query.shape[0]:
        raise StorageError(
            f"Query dimension {query.shape[0]} does not match stored dimension {matrix.shape[1]}"
        )

    norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
    dots = matrix @ query
    # Zero vectors have no direction; score them 0
    similarities = np.divide(dots, norms, out=np.zeros_like(dots), where=norms > 0)
    similarities = np.clip(similarities, -1.0, 1.0)

    ranked = sorted(range(len(rows)), key=lambda i: (-similarities[i], rows[i].chunk_id))
    return [_to_match(rows[i], float(similarities[i])) for i in ranked[:top_k]]


async def nearest_chunks(
    session: AsyncSession,
    query_vector: list[float],
    *,
    top_k: int,
    tags: Sequence[str] | None = None,
) -> list[ChunkMatch]:
    """Return the top_k chunks most similar to query_vector.

    Ordered by cosine similarity descending, then chunk_id ascending. Only
    chunks with an embedding are candidates; when tags is non-empty, only
    chunks whose document carries at least one of them.

    Raises:
        SQLAlchemyError: On database failures (wrapped by the retriever)
        StorageError: If stored vectors disagree with the query dimension
    """
    if session.get_bind().dialect.name == "postgresql":
        return await _pgvector_search(session, query_vector, top_k=top_k, tags=tags)
    return await _scan_search(session, query_vector, top_k=top_k, tags=tags)
