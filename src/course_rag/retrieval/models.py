"""
Retrieval Data Models

Canonical shapes for chunks read back from a store and for the ephemeral,
query-scoped retrieval hits built from them.

Hierarchy
---------
StoredChunk   -> a persisted chunk row (no score)
SearchResult  -> StoredChunk + cosine similarity
RankedResult  -> SearchResult + reciprocal rank fusion score
"""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, SerializeAsAny


class StoredChunk(BaseModel):
    """
    A persisted document chunk as returned by a store.
    """

    id: str = Field(..., min_length=1)
    course_id: Optional[str] = None
    document_type: str
    file_name: str
    chunk_index: Optional[int] = Field(default=None, ge=0)
    content: str
    metadata: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True)

    @property
    def key(self) -> str:
        """Identity used for fusion and dedup: ``"{id}-{chunk_index}"``."""
        return f"{self.id}-{self.chunk_index}"


class SearchResult(StoredChunk):
    """
    A retrieval hit.

    ``similarity`` is ``1 - cosine_distance``. Chunks added only for context
    (neighbors of a hit) carry ``similarity == 0``.
    """

    # Nominally in [-1, 1]; not bounded because store arithmetic can drift by an ulp.
    similarity: float


class RankedResult(SearchResult):
    """A retrieval hit after fusion. ``rrf_score`` is comparable, not a probability."""

    rrf_score: float = Field(..., ge=0.0)


RetrievalStrategy = Literal["simple", "medium", "full"]


class RetrievalResponse(BaseModel):
    """Outcome of one adaptive retrieval request."""

    # Fused hits are RankedResult; serialize them with their own fields (rrf_score)
    results: List[SerializeAsAny[SearchResult]]
    query_variations: List[str]
    strategy: RetrievalStrategy
    final_chunk_count: int = Field(..., ge=0)

    model_config = ConfigDict(frozen=True)
