"""Models package - re-exports for convenience."""

from cradle.app.models.knowledge import (
    ChunkDraft,
    ChunkMatch,
    ChunkMetadata,
    Citation,
    DocumentSummary,
    GroundingContext,
    IngestFailure,
    IngestReport,
    IngestResult,
    KnowledgeStats,
    SourceDocument,
)

__all__ = [
    "ChunkDraft",
    "ChunkMatch",
    "ChunkMetadata",
    "Citation",
    "DocumentSummary",
    "GroundingContext",
    "IngestFailure",
    "IngestReport",
    "IngestResult",
    "KnowledgeStats",
    "SourceDocument",
]
