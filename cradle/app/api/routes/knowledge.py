"""Knowledge admin endpoints - ingest, list, delete, search, tags, stats."""

from functools import lru_cache
from typing import Annotated, Any
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from pydantic import BaseModel, Field

from cradle.app.api.auth import require_admin_token
from cradle.app.config import get_settings
from cradle.app.knowledge.errors import MalformedInputError, ProviderError, StorageError
from cradle.app.knowledge.service import KnowledgeBase, build_knowledge_base
from cradle.app.models.knowledge import (
    ChunkMatch,
    Citation,
    DocumentSummary,
    IngestResult,
    KnowledgeStats,
)

router = APIRouter(
    prefix="/knowledge",
    tags=["knowledge"],
    dependencies=[Depends(require_admin_token)],
)


@lru_cache
def get_knowledge_base() -> KnowledgeBase:
    """Process-wide KnowledgeBase built from settings (overridable in tests)."""
    return build_knowledge_base(get_settings())


KnowledgeBaseDep = Annotated[KnowledgeBase, Depends(get_knowledge_base)]


class IngestRequest(BaseModel):
    """Request body for POST /knowledge/documents."""

    source: str = Field(..., min_length=1, max_length=500, description="Stable source identifier")
    title: str = Field(..., min_length=1, max_length=255, description="Document title")
    content: str = Field(..., min_length=1, description="Raw document text")
    tags: list[str] = Field(default_factory=list, description="Document tags")
    metadata: dict[str, Any] = Field(default_factory=dict)


class DocumentListResponse(BaseModel):
    """Response for GET /knowledge/documents."""

    documents: list[DocumentSummary]


class SearchResponse(BaseModel):
    """Response for GET /knowledge/search."""

    query: str
    matches: list[ChunkMatch]
    blocks: list[str]
    citations: list[Citation]


class TagListResponse(BaseModel):
    """Response for GET /knowledge/tags."""

    tags: list[str]


def _storage_unavailable(e: StorageError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=f"Knowledge store unavailable: {e}",
    )


@router.post("/documents", response_model=IngestResult)
async def ingest_document(
    request: IngestRequest,
    response: Response,
    kb: KnowledgeBaseDep,
) -> IngestResult:
    """Ingest or refresh a document.

    Returns:
        201 when the document was created or re-chunked, 200 when unchanged

    Raises:
        HTTPException: 422 on malformed input, 502 on embedding failure,
            503 on storage failure
    """
    try:
        result = await kb.ingest_document(
            request.source,
            request.title,
            request.content,
            request.tags,
            request.metadata,
        )
    except MalformedInputError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e)) from e
    except ProviderError as e:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Embedding provider failed: {e}",
        ) from e
    except StorageError as e:
        raise _storage_unavailable(e) from e

    response.status_code = (
        status.HTTP_200_OK if result.status == "unchanged" else status.HTTP_201_CREATED
    )
    return result


@router.get("/documents", response_model=DocumentListResponse)
async def list_documents(kb: KnowledgeBaseDep) -> DocumentListResponse:
    """List stored documents, newest first."""
    try:
        documents = await kb.list_documents()
    except StorageError as e:
        raise _storage_unavailable(e) from e
    return DocumentListResponse(documents=documents)


@router.delete("/documents/{document_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_document(document_id: UUID, kb: KnowledgeBaseDep) -> Response:
    """Delete a document with its chunks and tags.

    Raises:
        HTTPException: 404 if the document does not exist
    """
    try:
        deleted = await kb.delete_document(document_id)
    except StorageError as e:
        raise _storage_unavailable(e) from e

    if not deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Document not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/search", response_model=SearchResponse)
async def search(
    kb: KnowledgeBaseDep,
    query: Annotated[str, Query(min_length=1, description="Search query")],
    top_k: Annotated[int | None, Query(ge=1, le=50)] = None,
    tags: Annotated[list[str] | None, Query(description="Restrict to documents with any of these tags")] = None,
) -> SearchResponse:
    """Rank chunks for a query and return context blocks with citations."""
    try:
        matches = await kb.search(query, top_k=top_k, tag_filter=tags)
    except StorageError as e:
        raise _storage_unavailable(e) from e

    blocks, citations = kb.format(matches)
    return SearchResponse(query=query, matches=matches, blocks=blocks, citations=citations)


@router.get("/tags", response_model=TagListResponse)
async def list_tags(kb: KnowledgeBaseDep) -> TagListResponse:
    """Distinct document tags, sorted."""
    try:
        tags = await kb.list_tags()
    except StorageError as e:
        raise _storage_unavailable(e) from e
    return TagListResponse(tags=tags)


@router.get("/stats", response_model=KnowledgeStats)
async def stats(kb: KnowledgeBaseDep) -> KnowledgeStats:
    """Document and chunk totals."""
    try:
        return await kb.stats()
    except StorageError as e:
        raise _storage_unavailable(e) from e
