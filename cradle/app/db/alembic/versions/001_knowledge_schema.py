"""Knowledge schema

Revision ID: 001
Revises:
Create Date: 2026-10-19

Creates the knowledge base tables:
- knowledge_document (one row per source)
- knowledge_document_tag (tag filter for retrieval)
- knowledge_chunk (content + pgvector embedding)
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from pgvector.sqlalchemy import Vector
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

EMBEDDING_DIMENSIONS = 1536


def upgrade() -> None:
    """Create knowledge tables."""
    op.execute("CREATE EXTENSION IF NOT EXISTS vector")

    # knowledge_document table
    op.create_table(
        "knowledge_document",
        sa.Column("document_id", postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("source", sa.String(500), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("content_hash", sa.String(64), nullable=False),
        sa.Column("metadata", postgresql.JSONB(), server_default=sa.text("'{}'::jsonb"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.UniqueConstraint("source", name="uq_knowledge_document_source"),
    )

    # knowledge_document_tag table
    op.create_table(
        "knowledge_document_tag",
        sa.Column("document_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("tag", sa.String(100), nullable=False),
        sa.ForeignKeyConstraint(["document_id"], ["knowledge_document.document_id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("document_id", "tag"),
    )
    op.create_index("idx_knowledge_tag_tag", "knowledge_document_tag", ["tag"])

    # knowledge_chunk table
    op.create_table(
        "knowledge_chunk",
        sa.Column("chunk_id", postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("document_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("chunk_index", sa.Integer(), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("embedding", Vector(EMBEDDING_DIMENSIONS), nullable=True),
        sa.Column("metadata", postgresql.JSONB(), server_default=sa.text("'{}'::jsonb"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(["document_id"], ["knowledge_document.document_id"], ondelete="CASCADE"),
        sa.UniqueConstraint("document_id", "chunk_index", name="uq_knowledge_chunk_document_index"),
    )
    op.create_index("idx_knowledge_chunk_document", "knowledge_chunk", ["document_id"])

    # Approximate nearest-neighbour index for cosine distance
    op.execute(
        "CREATE INDEX idx_knowledge_chunk_embedding ON knowledge_chunk "
        "USING hnsw (embedding vector_cosine_ops)"
    )


def downgrade() -> None:
    """Drop knowledge tables."""
    op.execute("DROP INDEX IF EXISTS idx_knowledge_chunk_embedding")
    op.drop_index("idx_knowledge_chunk_document", table_name="knowledge_chunk")
    op.drop_table("knowledge_chunk")
    op.drop_index("idx_knowledge_tag_tag", table_name="knowledge_document_tag")
    op.drop_table("knowledge_document_tag")
    op.drop_table("knowledge_document")
