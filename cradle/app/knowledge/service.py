"""Knowledge base service - dependency-injected entry point for ingestion and retrieval."""

import logging
from collections.abc import Collection, Iterable
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cradle.app.config import Settings
from cradle.app.db.engine import create_async_engine_from_settings, create_session_factory
from cradle.app.knowledge import ingest as ingest_ops
from cradle.app.knowledge.chunker import ChunkingOptions
from cradle.app.knowledge.context import format_context
from cradle.app.knowledge.errors import KnowledgeBaseError, StorageError
from cradle.app.knowledge.retriever import search_chunks
from cradle.app.knowledge.taxonomy import load_taxonomy
from cradle.app.llm.embeddings import EmbeddingBatcher, EmbeddingProvider, build_embedding_batcher
from cradle.app.models.knowledge import (
    ChunkMatch,
    Citation,
    DocumentSummary,
    GroundingContext,
    IngestFailure,
    IngestReport,
    IngestResult,
    KnowledgeStats,
    SourceDocument,
)

logger = logging.getLogger(__name__)


class KnowledgeBase:
    """Ingestion and retrieval over one knowledge store.

    Holds no mutable state beyond its collaborators; every operation opens
    its own session, so one instance can serve concurrent requests.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        batcher: EmbeddingBatcher,
        *,
        chunking: ChunkingOptions | None = None,
        default_top_k: int = 5,
        preview_chars: int = 200,
        max_context_chars: int | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.batcher = batcher
        self.chunking = chunking or ChunkingOptions()
        self.default_top_k = default_top_k
        self.preview_chars = preview_chars
        self.max_context_chars = max_context_chars

    async def ingest_document(
        self,
        source: str,
        title: str,
        content: str,
        tags: Iterable[str] | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> IngestResult:
        """Ingest one document and report whether it was created, updated or unchanged."""
        async with self.session_factory() as session:
            return await ingest_ops.ingest_document(
                source=source,
                title=title,
                content=content,
                tags=tags,
                metadata=metadata,
                session=session,
                batcher=self.batcher,
                options=self.chunking,
            )

    async def ingest(
        self,
        source: str,
        title: str,
        content: str,
        tags: Iterable[str] | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> UUID:
        """Ingest one document and return its id."""
        result = await self.ingest_document(source, title, content, tags, metadata)
        return result.document_id

    async def ingest_many(self, sources: Iterable[SourceDocument]) -> IngestReport:
        """Ingest documents one by one; a failing document is recorded and skipped."""
        report = IngestReport()

        for document in sources:
            try:
                result = await self.ingest_document(
                    document.source,
                    document.title,
                    document.content,
                    document.tags,
                    document.metadata,
                )
            except KnowledgeBaseError as e:
                report.failed.append(IngestFailure(source=document.source, error=str(e)))
                continue

            if result.status == "created":
                report.created += 1
            elif result.status == "updated":
                report.updated += 1
            else:
                report.unchanged += 1

        return report

    async def search(
        self,
        query: str,
        top_k: int | None = None,
        tag_filter: Collection[str] | None = None,
    ) -> list[ChunkMatch]:
        """Rank chunks against a query. Provider failures yield []."""
        async with self.session_factory() as session:
            return await search_chunks(
                query=query,
                top_k=self.default_top_k if top_k is None else top_k,
                tag_filter=tag_filter,
                session=session,
                batcher=self.batcher,
            )

    def format(self, matches: list[ChunkMatch]) -> tuple[list[str], list[Citation]]:
        """Context blocks and citations for ranked matches."""
        return format_context(
            matches,
            preview_chars=self.preview_chars,
            max_context_chars=self.max_context_chars,
        )

    async def ground(
        self,
        query: str,
        top_k: int | None = None,
        tag_filter: Collection[str] | None = None,
    ) -> GroundingContext:
        """Best-effort grounding for a chat turn; storage failures give empty context."""
        try:
            matches = await self.search(query, top_k=top_k, tag_filter=tag_filter)
        except StorageError as e:
            logger.warning(f"Grounding unavailable, answering without context: {e}")
            return GroundingContext()

        blocks, citations = self.format(matches)
        return GroundingContext(blocks=blocks, citations=citations)

    async def list_documents(self) -> list[DocumentSummary]:
        async with self.session_factory() as session:
            return await ingest_ops.list_documents(session=session)

    async def delete_document(self, document_id: UUID) -> bool:
        async with self.session_factory() as session:
            return await ingest_ops.delete_document(document_id, session=session)

    async def stats(self) -> KnowledgeStats:
        async with self.session_factory() as session:
            return await ingest_ops.knowledge_stats(session=session)

    async def list_tags(self) -> list[str]:
        async with self.session_factory() as session:
            return await ingest_ops.list_tags(session=session)


def build_knowledge_base(
    settings: Settings,
    *,
    provider: EmbeddingProvider | None = None,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
) -> KnowledgeBase:
    """Wire a KnowledgeBase from settings.

    Args:
        settings: Application settings
        provider: Embedding provider override (settings-selected when omitted)
        session_factory: Session factory override (engine built from settings when omitted)
    """
    if session_factory is None:
        session_factory = create_session_factory(create_async_engine_from_settings(settings))

    taxonomy = load_taxonomy(settings.knowledge_taxonomy_path) if settings.knowledge_taxonomy_path else None

    return KnowledgeBase(
        session_factory,
        build_embedding_batcher(settings, provider),
        chunking=ChunkingOptions(
            max_chars=settings.chunk_max_chars,
            overlap_words=settings.chunk_overlap_words,
            taxonomy=taxonomy,
        ),
        default_top_k=settings.rag_top_k,
        preview_chars=settings.citation_preview_chars,
        max_context_chars=settings.context_max_chars,
    )
