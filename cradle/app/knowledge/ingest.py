"""Document ingestion - hash, chunk, embed and persist knowledge documents."""

import time
from collections.abc import Iterable
from datetime import datetime, timezone
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import delete, func, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from cradle.app.db.models import KnowledgeChunk, KnowledgeDocument, KnowledgeDocumentTag
from cradle.app.knowledge.chunker import ChunkingOptions, chunk_document
from cradle.app.knowledge.errors import KnowledgeBaseError, MalformedInputError, StorageError
from cradle.app.knowledge.hashing import content_hash
from cradle.app.llm.embeddings import EmbeddingBatcher
from cradle.app.models.knowledge import DocumentSummary, IngestResult, KnowledgeStats
from cradle.app.utils.logging import structured_logger
from cradle.app.utils.metrics import metrics

_ADVISORY_LOCK_SQL = text("SELECT pg_advisory_xact_lock(hashtextextended(:source, 0))")


def normalize_tags(tags: Iterable[str] | None) -> list[str]:
    """Strip, drop blanks and de-duplicate while keeping first-seen order."""
    seen: dict[str, None] = {}
    for tag in tags or []:
        cleaned = tag.strip()
        if cleaned:
            seen.setdefault(cleaned, None)
    return list(seen)


async def _chunk_count(session: AsyncSession, document_id: UUID) -> int:
    count = await session.scalar(
        select(func.count())
        .select_from(KnowledgeChunk)
        .where(KnowledgeChunk.document_id == document_id)
    )
    return int(count or 0)


async def ingest_document(
    *,
    source: str,
    title: str,
    content: str,
    tags: Iterable[str] | None = None,
    metadata: dict[str, Any] | None = None,
    session: AsyncSession,
    batcher: EmbeddingBatcher,
    options: ChunkingOptions | None = None,
) -> IngestResult:
    """Ingest a document: skip if unchanged, otherwise chunk, embed and persist.

    The session must not already be inside a transaction; each phase opens
    its own with session.begin().

    Args:
        source: Stable external identifier (file path, URL, manual key)
        title: Document title
        content: Exact source text (hashed as given)
        tags: Document tags used for retrieval filtering
        metadata: Arbitrary JSON-serializable document metadata
        session: Async database session
        batcher: Embedding batcher for chunk vectors
        options: Chunk sizing and taxonomy

    Returns:
        IngestResult with document_id, status and chunk_count

    Raises:
        MalformedInputError: If source or content is empty
        ProviderError: If embedding fails (stored state untouched)
        StorageError: If the write transaction fails (rolled back)
    """
    start_time = time.perf_counter()

    try:
        result = await _ingest(
            source=source,
            title=title,
            content=content,
            tags=normalize_tags(tags),
            metadata=dict(metadata or {}),
            session=session,
            batcher=batcher,
            options=options or ChunkingOptions(),
        )
    except KnowledgeBaseError as e:
        metrics.inc_ingest("failed")
        structured_logger.log_ingest(
            source,
            "failed",
            latency_ms=(time.perf_counter() - start_time) * 1000,
            error_reason=f"{type(e).__name__}: {e}",
        )
        raise

    metrics.inc_ingest(result.status)
    structured_logger.log_ingest(
        source,
        result.status,
        document_id=str(result.document_id),
        chunk_count=result.chunk_count,
        latency_ms=(time.perf_counter() - start_time) * 1000,
    )
    return result


async def _ingest(
    *,
    source: str,
    title: str,
    content: str,
    tags: list[str],
    metadata: dict[str, Any],
    session: AsyncSession,
    batcher: EmbeddingBatcher,
    options: ChunkingOptions,
) -> IngestResult:
    if not source or not source.strip():
        raise MalformedInputError("Document source must not be empty")
    if not content or not content.strip():
        raise MalformedInputError(f"Document content must not be empty: {source}")

    digest = content_hash(content)

    # Phase 1: change detection
    try:
        async with session.begin():
            row = (
                await session.execute(
                    select(KnowledgeDocument.document_id, KnowledgeDocument.content_hash).where(
                        KnowledgeDocument.source == source
                    )
                )
            ).one_or_none()
            if row is not None and row.content_hash == digest:
                return IngestResult(
                    document_id=row.document_id,
                    status="unchanged",
                    chunk_count=await _chunk_count(session, row.document_id),
                )
    except SQLAlchemyError as e:
        raise StorageError(f"Failed to look up document {source}: {e}") from e

    # Phase 2: chunk and embed before touching stored state
    drafts = chunk_document(
        content,
        source,
        max_chars=options.max_chars,
        overlap_words=options.overlap_words,
        taxonomy=options.taxonomy,
    )
    vectors = await batcher.embed_many([draft.content for draft in drafts])

    # Phase 3: replace document and chunks in one transaction
    try:
        async with session.begin():
            if session.get_bind().dialect.name == "postgresql":
                await session.execute(_ADVISORY_LOCK_SQL, {"source": source})

            document = await session.scalar(
                select(KnowledgeDocument).where(KnowledgeDocument.source == source)
            )

            # Another writer stored the same content while we were embedding
            if document is not None and document.content_hash == digest:
                return IngestResult(
                    document_id=document.document_id,
                    status="unchanged",
                    chunk_count=await _chunk_count(session, document.document_id),
                )

            now = datetime.now(timezone.utc)
            if document is None:
                status = "created"
                document = KnowledgeDocument(
                    document_id=uuid4(),
                    source=source,
                    title=title,
                    content_hash=digest,
                    metadata_=metadata,
                    created_at=now,
                    updated_at=now,
                )
                session.add(document)
            else:
                status = "updated"
                await session.execute(
                    delete(KnowledgeChunk).where(KnowledgeChunk.document_id == document.document_id)
                )
                await session.execute(
                    delete(KnowledgeDocumentTag).where(
                        KnowledgeDocumentTag.document_id == document.document_id
                    )
                )
                document.title = title
                document.content_hash = digest
                document.metadata_ = metadata
                document.updated_at = now

            document_id = document.document_id
            session.add_all(KnowledgeDocumentTag(document_id=document_id, tag=tag) for tag in tags)
            session.add_all(
                KnowledgeChunk(
                    chunk_id=uuid4(),
                    document_id=document_id,
                    chunk_index=draft.index,
                    content=draft.content,
                    embedding=vector,
                    metadata_=draft.metadata.model_dump(),
                )
                for draft, vector in zip(drafts, vectors, strict=True)
            )
    except SQLAlchemyError as e:
        raise StorageError(f"Failed to store document {source}: {e}") from e

    return IngestResult(document_id=document_id, status=status, chunk_count=len(drafts))


async def list_documents(*, session: AsyncSession) -> list[DocumentSummary]:
    """List stored documents with tag and chunk counts, newest first.

    Raises:
        StorageError: On database failure
    """
    chunk_counts = (
        select(KnowledgeChunk.document_id, func.count().label("chunk_count"))
        .group_by(KnowledgeChunk.document_id)
        .subquery()
    )
    stmt = (
        select(KnowledgeDocument, func.coalesce(chunk_counts.c.chunk_count, 0))
        .outerjoin(chunk_counts, chunk_counts.c.document_id == KnowledgeDocument.document_id)
        .options(selectinload(KnowledgeDocument.tags))
        .order_by(KnowledgeDocument.created_at.desc(), KnowledgeDocument.source)
    )

    try:
        result = await session.execute(stmt)
        rows = result.all()
    except SQLAlchemyError as e:
        raise StorageError(f"Failed to list documents: {e}") from e

    return [
        DocumentSummary(
            document_id=document.document_id,
            source=document.source,
            title=document.title,
            tags=[tag.tag for tag in document.tags],
            chunk_count=int(chunk_count),
            content_hash=document.content_hash,
            created_at=document.created_at,
            updated_at=document.updated_at,
        )
        for document, chunk_count in rows
    ]


async def delete_document(document_id: UUID, *, session: AsyncSession) -> bool:
    """Delete a document with its tags and chunks in one transaction.

    Chunks and tags are deleted explicitly so the result does not depend on
    the backend enforcing ON DELETE CASCADE.

    Returns:
        True if the document existed, False otherwise

    Raises:
        StorageError: On database failure
    """
    try:
        async with session.begin():
            await session.execute(
                delete(KnowledgeChunk).where(KnowledgeChunk.document_id == document_id)
            )
            await session.execute(
                delete(KnowledgeDocumentTag).where(KnowledgeDocumentTag.document_id == document_id)
            )
            result = await session.execute(
                delete(KnowledgeDocument).where(KnowledgeDocument.document_id == document_id)
            )
            deleted = result.rowcount > 0
    except SQLAlchemyError as e:
        raise StorageError(f"Failed to delete document {document_id}: {e}") from e

    if deleted:
        structured_logger.log_ingest(str(document_id), "deleted", document_id=str(document_id))
    return deleted


async def knowledge_stats(*, session: AsyncSession) -> KnowledgeStats:
    """Count stored documents and chunks."""
    try:
        documents = await session.scalar(select(func.count()).select_from(KnowledgeDocument))
        chunks = await session.scalar(select(func.count()).select_from(KnowledgeChunk))
    except SQLAlchemyError as e:
        raise StorageError(f"Failed to compute knowledge stats: {e}") from e

    return KnowledgeStats(documents=int(documents or 0), chunks=int(chunks or 0))


async def list_tags(*, session: AsyncSession) -> list[str]:
    """Return the distinct document tags, sorted."""
    try:
        result = await session.execute(
            select(KnowledgeDocumentTag.tag).distinct().order_by(KnowledgeDocumentTag.tag)
        )
    except SQLAlchemyError as e:
        raise StorageError(f"Failed to list tags: {e}") from e

    return list(result.scalars().all())
