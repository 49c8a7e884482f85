"""
Similarity Search

Ranks a user's stored chunks against a query vector (or raw query text).

Ranking Contract
----------------
- Scope: always the user's chunks, narrowed to one course when given
- The store returns the top ``top_k`` by cosine similarity
- ``min_similarity`` is applied afterwards; hits below the floor are dropped
  and NOT backfilled from deeper ranks
- Store and embedding failures propagate to the caller, so a failed search
  is never mistaken for "no relevant results"
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, List, Optional, Sequence

from ..config import settings
from ..embeddings.embedder import Embedder
from .models import SearchResult

if TYPE_CHECKING:
    from ..db.vector_store import ChunkStore

logger = logging.getLogger("rag.search")


class SimilaritySearch:
    """
    Vector search over a chunk store, with optional query embedding.
    """

    def __init__(self, store: "ChunkStore", embedder: Embedder) -> None:
        self._store = store
        self._embedder = embedder

    async def search_by_vector(
        self,
        query_vector: Sequence[float],
        user_id: str,
        course_id: Optional[str] = None,
        top_k: Optional[int] = None,
        min_similarity: Optional[float] = None,
    ) -> List[SearchResult]:
        """
        Return up to ``top_k`` chunks whose similarity is at least ``min_similarity``.

        Parameters
        ----------
        query_vector : Sequence[float]
            Query embedding.
        user_id : str
            Owner whose chunks are searched.
        course_id : Optional[str]
            Restrict to one course; None searches all of the user's documents.
        top_k : Optional[int]
            Rank cutoff applied before the similarity floor. Defaults to
            settings.search_top_k (5).
        min_similarity : Optional[float]
            Similarity floor. Defaults to settings.search_min_similarity (0.7).

        Returns
        -------
        List[SearchResult]
            Hits ordered by descending similarity. May hold fewer than
            ``top_k`` entries.
        """
        if top_k is None:
            top_k = settings.search_top_k
        if min_similarity is None:
            min_similarity = settings.search_min_similarity

        if top_k <= 0:
            return []

        candidates = await self._store.nearest_chunks(
            query_vector,
            user_id=user_id,
            course_id=course_id,
            limit=top_k,
        )
        results = [hit for hit in candidates if hit.similarity >= min_similarity]

        logger.debug(
            "Vector search (user=%s, course=%s): %d candidates, %d above %.2f",
            user_id,
            course_id or "*",
            len(candidates),
            len(results),
            min_similarity,
        )
        return results

    async def search_by_text(
        self,
        query: str,
        user_id: str,
        course_id: Optional[str] = None,
        top_k: Optional[int] = None,
        min_similarity: Optional[float] = None,
    ) -> List[SearchResult]:
        """Embed ``query`` and run :meth:`search_by_vector`."""
        query_vector = await self._embedder.embed_one(query)
        return await self.search_by_vector(
            query_vector,
            user_id=user_id,
            course_id=course_id,
            top_k=top_k,
            min_similarity=min_similarity,
        )
