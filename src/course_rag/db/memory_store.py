"""
In-Memory Vector Store

A FAISS-backed implementation of the chunk store interface, for local
experiments and tests where PostgreSQL is unavailable.

Key Properties
--------------
- Same ranking contract as the pgvector store: cosine similarity, scope
  filters applied before the limit, no similarity floor
- Uses IndexFlatIP over L2-normalized vectors (inner product == cosine)
- Chunk rows kept in a Python dict keyed by FAISS ID
- Thread-safe (RLock around index and row map)
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from threading import RLock
from typing import Any, Dict, List, Optional, Sequence

import faiss
import numpy as np

from .vector_store import check_parallel_lengths
from ..documents.models import DocumentKey, DocumentSummary
from ..retrieval.models import SearchResult, StoredChunk


@dataclass
class _Row:
    id: str
    user_id: str
    course_id: Optional[str]
    document_type: str
    file_name: str
    chunk_index: int
    content: str
    metadata: Dict[str, Any]
    created_at: datetime

    def to_chunk(self) -> StoredChunk:
        return StoredChunk(
            id=self.id,
            course_id=self.course_id,
            document_type=self.document_type,
            file_name=self.file_name,
            chunk_index=self.chunk_index,
            content=self.content,
            metadata=dict(self.metadata),
        )

    def in_scope(self, user_id: str, course_id: Optional[str]) -> bool:
        return self.user_id == user_id and (not course_id or self.course_id == course_id)


def _matches(row: _Row, key: DocumentKey) -> bool:
    if row.user_id != key.user_id or row.file_name != key.file_name:
        return False
    return not key.course_id or row.course_id == key.course_id


class InMemoryVectorStore:
    """
    Process-local chunk store with exact cosine search.
    """

    def __init__(self) -> None:
        self._index: Optional[faiss.IndexIDMap2] = None
        self._rows: Dict[int, _Row] = {}
        self._next_id = 0
        self._lock = RLock()

    def _init_index(self, dim: int) -> None:
        base = faiss.IndexFlatIP(dim)
        self._index = faiss.IndexIDMap2(base)

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

        vectors = np.asarray(embeddings, dtype="float32")
        if vectors.ndim != 2 or vectors.shape[1] == 0:
            raise ValueError("Embeddings must be non-empty vectors of equal length")
        faiss.normalize_L2(vectors)

        created_at = datetime.now(timezone.utc)
        rows = [
            _Row(
                id=str(uuid.uuid4()),
                user_id=key.user_id,
                course_id=key.course_id,
                document_type=document_type,
                file_name=key.file_name,
                chunk_index=index,
                content=content,
                metadata=dict(metadata),
                created_at=created_at,
            )
            for index, content, metadata in zip(chunk_indices, contents, metadatas)
        ]

        with self._lock:
            if self._index is None:
                self._init_index(vectors.shape[1])
            if vectors.shape[1] != self._index.d:
                raise ValueError(
                    f"Expected {self._index.d} dimensions, got {vectors.shape[1]}"
                )

            ids = np.arange(self._next_id, self._next_id + count, dtype="int64")
            self._next_id += count

            self._index.add_with_ids(vectors, ids)
            for faiss_id, row in zip(ids, rows):
                self._rows[int(faiss_id)] = row

        return [row.id for row in rows]

    async def delete_document(self, key: DocumentKey) -> int:
        with self._lock:
            ids_to_remove = [
                faiss_id for faiss_id, row in self._rows.items() if _matches(row, key)
            ]
            if not ids_to_remove:
                return 0

            self._index.remove_ids(np.asarray(ids_to_remove, dtype="int64"))
            for faiss_id in ids_to_remove:
                del self._rows[faiss_id]

            return len(ids_to_remove)

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
        Rank the user's chunks by cosine similarity and return the top ``limit``.

        The whole index is ranked and then filtered by scope, so other users'
        chunks never displace in-scope ones.
        """
        if limit <= 0:
            return []

        with self._lock:
            if self._index is None or not self._rows:
                return []

            q = np.asarray([query_embedding], dtype="float32")
            faiss.normalize_L2(q)
            scores, ids = self._index.search(q, self._index.ntotal)

            results: List[SearchResult] = []
            for score, faiss_id in zip(scores[0], ids[0]):
                row = self._rows.get(int(faiss_id))
                if row is None or not row.in_scope(user_id, course_id):
                    continue
                results.append(
                    SearchResult.model_validate(
                        {**row.to_chunk().model_dump(), "similarity": float(score)}
                    )
                )
                if len(results) == limit:
                    break

        return results

    async def get_neighbor_chunks(
        self,
        user_id: str,
        course_id: str,
        file_name: str,
        chunk_indices: Sequence[int],
    ) -> List[StoredChunk]:
        wanted = set(chunk_indices)
        with self._lock:
            rows = [
                row for row in self._rows.values()
                if row.user_id == user_id
                and row.course_id == course_id
                and row.file_name == file_name
                and row.chunk_index in wanted
            ]
        return [row.to_chunk() for row in sorted(rows, key=lambda r: r.chunk_index)]

    async def get_document_chunks(self, key: DocumentKey) -> List[StoredChunk]:
        with self._lock:
            rows = [row for row in self._rows.values() if _matches(row, key)]
        return [row.to_chunk() for row in sorted(rows, key=lambda r: r.chunk_index)]

    async def list_documents(
        self,
        user_id: str,
        course_id: Optional[str] = None,
    ) -> List[DocumentSummary]:
        with self._lock:
            rows = [
                row for row in self._rows.values()
                if row.in_scope(user_id, course_id)
            ]

        rows.sort(key=lambda r: r.chunk_index)
        rows.sort(key=lambda r: r.created_at, reverse=True)

        grouped: Dict[tuple, Dict[str, Any]] = {}
        for row in rows:
            group = (row.course_id, row.file_name)
            if group not in grouped:
                grouped[group] = {
                    "file_name": row.file_name,
                    "document_type": row.document_type,
                    "chunk_count": 0,
                    "created_at": row.created_at,
                    "first_chunk_id": row.id,
                    "course_id": row.course_id,
                }
            grouped[group]["chunk_count"] += 1

        return [DocumentSummary(**fields) for fields in grouped.values()]

    async def count_chunks(self, user_id: str, course_id: Optional[str] = None) -> int:
        with self._lock:
            return sum(1 for row in self._rows.values() if row.in_scope(user_id, course_id))
