"""
Vector Store

PostgreSQL + pgvector based chunk storage and similarity search.

Every operation opens its own session from the session factory, so one
VectorStore can serve concurrent searches (one AsyncSession cannot run
statements concurrently). Store errors are never caught here: a failed query
must not look like an empty result.

Course scope: a blank or missing course_id applies no course filter in any
operation.
"""

from __future__ import annotations

import uuid
from typing import Any, Dict, List, Optional, Protocol, Sequence

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .models import DocumentChunk
from ..documents.models import DocumentKey, DocumentSummary
from ..retrieval.models import SearchResult, StoredChunk


class ChunkStore(Protocol):
    """Operations the retrieval and document layers need from a store."""

    async def add_chunks(
        self,
        key: DocumentKey,
        document_type: str,
        chunk_indices: Sequence[int],
        contents: Sequence[str],
        embeddings: Sequence[Sequence[float]],
        metadatas: Optional[Sequence[Dict[str, Any]]] = None,
    ) -> List[str]: ...

    async def nearest_chunks(
        self,
        query_embedding: Sequence[float],
        user_id: str,
        course_id: Optional[str] = None,
        limit: int = 5,
    ) -> List[SearchResult]: ...

    async def get_neighbor_chunks(
        self,
        user_id: str,
        course_id: str,
        file_name: str,
        chunk_indices: Sequence[int],
    ) -> List[StoredChunk]: ...

    async def get_document_chunks(self, key: DocumentKey) -> List[StoredChunk]: ...

    async def delete_document(self, key: DocumentKey) -> int: ...

    async def list_documents(
        self,
        user_id: str,
        course_id: Optional[str] = None,
    ) -> List[DocumentSummary]: ...

    async def count_chunks(self, user_id: str, course_id: Optional[str] = None) -> int: ...


def check_parallel_lengths(**columns: Sequence[Any]) -> int:
    lengths = {name: len(values) for name, values in columns.items()}
    if len(set(lengths.values())) > 1:
        raise ValueError(f"Chunk columns must have equal lengths, got {lengths}")
    return next(iter(lengths.values()), 0)


class VectorStore:
    """
    PostgreSQL-backed chunk store using pgvector for similarity search.
    """

    _CHUNK_COLUMNS = (
        DocumentChunk.id,
        DocumentChunk.course_id,
        DocumentChunk.document_type,
        DocumentChunk.file_name,
        DocumentChunk.chunk_index,
        DocumentChunk.content,
        DocumentChunk.metadata_.label("metadata"),
    )

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    ) -> None:
        """
        Initialize with an async session factory.

        Parameters
        ----------
        session_factory : Optional[async_sessionmaker[AsyncSession]]
            Factory used to open one session per operation.
            Defaults to the package's AsyncSessionLocal.
        """
        if session_factory is None:
            from .session import AsyncSessionLocal

            session_factory = AsyncSessionLocal
        self._session_factory = session_factory

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def add_chunks(
        self,
        key: DocumentKey,
        document_type: str,
        chunk_indices: Sequence[int],
        contents: Sequence[str],
        embeddings: Sequence[Sequence[float]],
        metadatas: Optional[Sequence[Dict[str, Any]]] = None,
    ) -> List[str]:
        """
        Persist a document's chunks and their embeddings in one transaction.

        Parameters
        ----------
        key : DocumentKey
            Owner, file name and optional course of the document.
        document_type : str
            One of "syllabus", "notes", "other".
        chunk_indices : Sequence[int]
            Position of each chunk within the document.
        contents : Sequence[str]
            Chunk texts.
        embeddings : Sequence[Sequence[float]]
            One vector per chunk.
        metadatas : Optional[Sequence[Dict[str, Any]]]
            Optional per-chunk metadata.

        Returns
        -------
        List[str]
            Ids of the created rows, in input order.
        """
        if metadatas is None:
            metadatas = [{} for _ in contents]

        count = check_parallel_lengths(
            chunk_indices=chunk_indices,
            contents=contents,
            embeddings=embeddings,
            metadatas=metadatas,
        )
        if count == 0:
            return []

        records = [
            DocumentChunk(
                id=uuid.uuid4(),
                user_id=key.user_id,
                course_id=key.course_id,
                document_type=document_type,
                file_name=key.file_name,
                chunk_index=index,
                content=content,
                metadata_=dict(metadata),
                embedding=list(embedding),
            )
            for index, content, embedding, metadata in zip(
                chunk_indices, contents, embeddings, metadatas
            )
        ]

        async with self._session_factory() as session:
            session.add_all(records)
            await session.commit()

        return [str(record.id) for record in records]

    async def delete_document(self, key: DocumentKey) -> int:
        """
        Remove every chunk of a document.

        Returns the number of deleted rows.
        """
        stmt = delete(DocumentChunk).where(
            DocumentChunk.user_id == key.user_id,
            DocumentChunk.file_name == key.file_name,
        )
        if key.course_id:
            stmt = stmt.where(DocumentChunk.course_id == key.course_id)

        async with self._session_factory() as session:
            result = await session.execute(stmt)
            await session.commit()
        return result.rowcount

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def nearest_chunks(
        self,
        query_embedding: Sequence[float],
        user_id: str,
        course_id: Optional[str] = None,
        limit: int = 5,
    ) -> List[SearchResult]:
        """
        Return the ``limit`` chunks closest to the query by cosine distance.

        Parameters
        ----------
        query_embedding : Sequence[float]
            Query vector.
        user_id : str
            Owner whose chunks are searched.
        course_id : Optional[str]
            If provided, only chunks of this course are searched.
        limit : int
            Number of rows to return. No similarity floor is applied here.

        Returns
        -------
        List[SearchResult]
            Hits ordered by descending similarity (``1 - cosine distance``).
        """
        # pgvector's <=> operator
        cosine_distance = DocumentChunk.embedding.cosine_distance(list(query_embedding))

        stmt = (
            select(*self._CHUNK_COLUMNS, (1 - cosine_distance).label("similarity"))
            .where(DocumentChunk.user_id == user_id)
            .order_by(cosine_distance)
            .limit(limit)
        )

        if course_id:
            stmt = stmt.where(DocumentChunk.course_id == course_id)

        async with self._session_factory() as session:
            result = await session.execute(stmt)
            rows = result.all()

        return [
            SearchResult(**self._row_fields(row), similarity=float(row._mapping["similarity"]))
            for row in rows
        ]

    async def get_neighbor_chunks(
        self,
        user_id: str,
        course_id: str,
        file_name: str,
        chunk_indices: Sequence[int],
    ) -> List[StoredChunk]:
        """
        Return the chunks of one document at the given positions, by position.
        """
        if not chunk_indices:
            return []

        stmt = (
            select(*self._CHUNK_COLUMNS)
            .where(
                DocumentChunk.user_id == user_id,
                DocumentChunk.course_id == course_id,
                DocumentChunk.file_name == file_name,
                DocumentChunk.chunk_index.in_(list(chunk_indices)),
            )
            .order_by(DocumentChunk.chunk_index)
        )

        async with self._session_factory() as session:
            result = await session.execute(stmt)
            rows = result.all()

        return [StoredChunk(**self._row_fields(row)) for row in rows]

    async def get_document_chunks(self, key: DocumentKey) -> List[StoredChunk]:
        """
        Return every chunk of a document ordered by chunk index.
        """
        stmt = (
            select(*self._CHUNK_COLUMNS)
            .where(
                DocumentChunk.user_id == key.user_id,
                DocumentChunk.file_name == key.file_name,
            )
            .order_by(DocumentChunk.chunk_index)
        )
        if key.course_id:
            stmt = stmt.where(DocumentChunk.course_id == key.course_id)

        async with self._session_factory() as session:
            result = await session.execute(stmt)
            rows = result.all()

        return [StoredChunk(**self._row_fields(row)) for row in rows]

    async def list_documents(
        self,
        user_id: str,
        course_id: Optional[str] = None,
    ) -> List[DocumentSummary]:
        """
        Return one summary per document, most recently created first.
        """
        stmt = (
            select(
                DocumentChunk.id,
                DocumentChunk.course_id,
                DocumentChunk.document_type,
                DocumentChunk.file_name,
                DocumentChunk.chunk_index,
                DocumentChunk.created_at,
            )
            .where(DocumentChunk.user_id == user_id)
            .order_by(DocumentChunk.created_at.desc(), DocumentChunk.chunk_index)
        )
        if course_id:
            stmt = stmt.where(DocumentChunk.course_id == course_id)

        async with self._session_factory() as session:
            result = await session.execute(stmt)
            rows = result.all()

        grouped: Dict[tuple, Dict[str, Any]] = {}
        for row in rows:
            group = (row.course_id, row.file_name)
            if group not in grouped:
                grouped[group] = {
                    "file_name": row.file_name,
                    "document_type": row.document_type,
                    "chunk_count": 0,
                    "created_at": row.created_at,
                    "first_chunk_id": str(row.id),
                    "course_id": row.course_id,
                }
            grouped[group]["chunk_count"] += 1

        return [DocumentSummary(**fields) for fields in grouped.values()]

    async def count_chunks(self, user_id: str, course_id: Optional[str] = None) -> int:
        """
        Count the chunks visible to a user, optionally within one course.
        """
        stmt = select(func.count()).select_from(DocumentChunk).where(
            DocumentChunk.user_id == user_id
        )
        if course_id:
            stmt = stmt.where(DocumentChunk.course_id == course_id)

        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return result.scalar() or 0

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _row_fields(row: Any) -> Dict[str, Any]:
        mapping = row._mapping
        return {
            "id": str(mapping["id"]),
            "course_id": mapping["course_id"],
            "document_type": mapping["document_type"],
            "file_name": mapping["file_name"],
            "chunk_index": mapping["chunk_index"],
            "content": mapping["content"],
            "metadata": mapping["metadata"] or {},
        }
