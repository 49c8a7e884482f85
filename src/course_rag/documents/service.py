"""
Document Service

Document-level operations expressed as chunk-set operations over the
composite key (user_id, file_name, course_id):

- save_text_document: chunk -> embed (one batch) -> persist
- list_documents / get_document_chunks: read views over the chunk rows
- delete_document: remove the whole chunk set
"""

from __future__ import annotations

import logging
import re
import time
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Callable, List, Optional, get_args

from ..chunking.chunker import chunk_text
from ..config import settings
from ..embeddings.embedder import Embedder
from ..retrieval.models import StoredChunk
from .models import DocumentKey, DocumentSummary, DocumentType, IngestionResult

if TYPE_CHECKING:
    from ..db.vector_store import ChunkStore

logger = logging.getLogger("rag.documents")

MAX_DOCUMENT_NAME_LENGTH = 200
MAX_FILE_STEM_LENGTH = 100

_INVALID_FILENAME_CHARS = re.compile(r'[/\\:*?"<>|]')
_WHITESPACE = re.compile(r"\s+")


class DocumentValidationError(ValueError):
    """Raised when a document cannot be ingested as submitted."""


def sanitize_file_name(name: str) -> str:
    """Lowercase, drop filesystem-invalid characters, underscore whitespace, cap length."""
    cleaned = _INVALID_FILENAME_CHARS.sub("", name.lower())
    cleaned = _WHITESPACE.sub("_", cleaned)
    return cleaned[:MAX_FILE_STEM_LENGTH]


def generate_file_name(document_name: str, now_ms: Optional[int] = None) -> str:
    """Return ``<sanitized name>_<epoch millis>.txt``."""
    timestamp = now_ms if now_ms is not None else int(time.time() * 1000)
    return f"{sanitize_file_name(document_name)}_{timestamp}.txt"


class DocumentService:
    """
    Ingests and manages course documents stored as embedded chunks.
    """

    def __init__(
        self,
        store: "ChunkStore",
        embedder: Embedder,
        max_tokens: Optional[int] = None,
        overlap_tokens: Optional[int] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._store = store
        self._embedder = embedder
        self._max_tokens = max_tokens or settings.chunk_max_tokens
        self._overlap_tokens = (
            overlap_tokens if overlap_tokens is not None else settings.chunk_overlap_tokens
        )
        self._clock = clock

    async def save_text_document(
        self,
        user_id: str,
        text: str,
        document_name: str,
        course_id: Optional[str] = None,
        document_type: DocumentType = "other",
        description: Optional[str] = None,
    ) -> IngestionResult:
        """
        Chunk, embed and persist a plain-text document.

        Raises
        ------
        DocumentValidationError
            If the name, type or text is invalid.
        EmbeddingError
            If the embedding provider fails.
        """
        name = document_name.strip()
        if not name:
            raise DocumentValidationError("Document name is required")
        if len(name) > MAX_DOCUMENT_NAME_LENGTH:
            raise DocumentValidationError("Document name is too long")
        if document_type not in get_args(DocumentType):
            raise DocumentValidationError(f"Invalid document type: {document_type!r}")

        content = text.strip()
        if not content:
            raise DocumentValidationError("Text content is empty")

        now = self._clock()
        key = DocumentKey(
            user_id=user_id,
            file_name=generate_file_name(name, int(now.timestamp() * 1000)),
            course_id=course_id,
        )

        chunks = chunk_text(content, self._max_tokens, self._overlap_tokens)
        if not chunks:
            raise DocumentValidationError("Failed to create chunks from text")

        embeddings = await self._embedder.embed_many([chunk.text for chunk in chunks])

        metadatas = [
            {
                "original_name": name,
                "description": description,
                "original_length": len(content),
                "chunk_count": len(chunks),
                "token_count": chunk.token_count,
                "start_char": chunk.metadata.start_char,
                "end_char": chunk.metadata.end_char,
                "saved_at": now.isoformat(),
            }
            for chunk in chunks
        ]

        ids = await self._store.add_chunks(
            key,
            document_type,
            chunk_indices=[chunk.index for chunk in chunks],
            contents=[chunk.text for chunk in chunks],
            embeddings=embeddings,
            metadatas=metadatas,
        )

        logger.info(
            "Saved document %s for user=%s course=%s (%d chunks)",
            key.file_name,
            user_id,
            course_id or "-",
            len(chunks),
        )
        return IngestionResult(
            file_name=key.file_name,
            document_id=ids[0] if ids else None,
            chunk_count=len(chunks),
            message=f'Successfully saved "{name}" with {len(chunks)} chunks',
        )

    async def list_documents(
        self,
        user_id: str,
        course_id: Optional[str] = None,
        query: Optional[str] = None,
    ) -> List[DocumentSummary]:
        """
        List the user's documents, newest first.

        A non-blank ``query`` keeps only documents whose file name contains it
        (case-insensitive), e.g. for document pickers.
        """
        documents = await self._store.list_documents(user_id, course_id)
        if query and query.strip():
            needle = query.strip().lower()
            documents = [d for d in documents if needle in d.file_name.lower()]
        return documents

    async def get_document_chunks(self, key: DocumentKey) -> List[StoredChunk]:
        return await self._store.get_document_chunks(key)

    async def delete_document(self, key: DocumentKey) -> int:
        """Delete every chunk of the document; returns the number removed."""
        deleted = await self._store.delete_document(key)
        logger.info("Deleted %d chunks of %s for user=%s", deleted, key.file_name, key.user_id)
        return deleted
