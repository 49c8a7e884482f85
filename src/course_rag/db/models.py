"""
SQLAlchemy Models

Defines the database schema for document chunks and their pgvector
embeddings. A document has no table of its own: it is the set of chunk rows
sharing (user_id, file_name, course_id).
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from pgvector.sqlalchemy import Vector

from ..embeddings.embedder import EMBEDDING_DIMENSIONS


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


# ---------------------------------------------------------------------
# Document Chunk Model
# ---------------------------------------------------------------------

class DocumentChunk(Base):
    """
    One embedded chunk of a course document.

    Uses pgvector for similarity search.
    """
    __tablename__ = "document_chunk"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    course_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    document_type: Mapped[str] = mapped_column(String(16), nullable=False)
    file_name: Mapped[str] = mapped_column(Text, nullable=False)
    chunk_index: Mapped[int] = mapped_column(Integer, nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    metadata_: Mapped[Optional[dict]] = mapped_column(
        "metadata",
        JSONB,
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    # pgvector column - 1536 dimensions for text-embedding-3-small
    embedding = Column(Vector(EMBEDDING_DIMENSIONS), nullable=False)

    __table_args__ = (
        CheckConstraint(
            "document_type IN ('syllabus', 'notes', 'other')",
            name="ck_document_chunk_type",
        ),
        UniqueConstraint(
            "user_id", "course_id", "file_name", "chunk_index",
            name="uq_document_chunk_position",
        ),
        Index("idx_document_chunk_owner", "user_id", "course_id"),
        Index("idx_document_chunk_document", "user_id", "file_name", "chunk_index"),
        Index(
            "idx_document_chunk_embedding",
            "embedding",
            postgresql_using="hnsw",
            postgresql_with={"m": 16, "ef_construction": 64},
            postgresql_ops={"embedding": "vector_cosine_ops"},
        ),
    )
