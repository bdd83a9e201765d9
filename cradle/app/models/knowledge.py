"""Knowledge base domain models."""

from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, Field


class ChunkMetadata(BaseModel):
    """Typed chunk metadata with an open extension map."""

    source_path: str
    headings: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    topic: str | None = None
    extra: dict[str, Any] = Field(default_factory=dict)


class ChunkDraft(BaseModel):
    """Chunk produced by the chunker, not yet embedded or persisted."""

    index: int  # 0-based
    content: str
    metadata: ChunkMetadata


class SourceDocument(BaseModel):
    """Raw document handed to ingestion."""

    source: str
    title: str
    content: str
    tags: list[str] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)


class IngestResult(BaseModel):
    """Outcome of ingesting one document."""

    document_id: UUID
    status: Literal["created", "updated", "unchanged"]
    chunk_count: int


class IngestFailure(BaseModel):
    """Document that could not be ingested during a batch run."""

    source: str
    error: str


class IngestReport(BaseModel):
    """Summary of a batch ingestion run."""

    created: int = 0
    updated: int = 0
    unchanged: int = 0
    failed: list[IngestFailure] = Field(default_factory=list)

    @property
    def processed(self) -> int:
        return self.created + self.updated + self.unchanged


class DocumentSummary(BaseModel):
    """Document listing entry."""

    document_id: UUID
    source: str
    title: str
    tags: list[str]
    chunk_count: int
    content_hash: str
    created_at: datetime | None = None
    updated_at: datetime | None = None


class KnowledgeStats(BaseModel):
    """Knowledge base totals."""

    documents: int
    chunks: int


class ChunkMatch(BaseModel):
    """Retrieved chunk with cosine similarity to the query."""

    chunk_id: UUID
    document_id: UUID
    chunk_index: int
    content: str
    metadata: ChunkMetadata
    similarity: float
    document_source: str
    document_title: str


class Citation(BaseModel):
    """Citation record for UI display."""

    source: str
    title: str
    excerpt: str
    similarity: float


class GroundingContext(BaseModel):
    """Context blocks and citations handed to the chat orchestration."""

    blocks: list[str] = Field(default_factory=list)
    citations: list[Citation] = Field(default_factory=list)
