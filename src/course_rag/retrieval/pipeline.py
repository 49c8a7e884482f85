"""
Adaptive Retrieval Pipeline

Answers a natural-language query over a user's course documents, choosing
how much machinery to apply from the size of the searchable chunk set.

Strategies
----------
- simple  (<= 15 chunks): one search with the original query
- medium  (<= 50 chunks): two query phrasings searched concurrently, fused
  with Reciprocal Rank Fusion
- full    (> 50 chunks):  up to three phrasings searched concurrently, fused,
  then widened with neighboring chunks for reading continuity

Failures of the variation LLM degrade to the original query; embedding and
store failures propagate.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, List, Optional, Sequence

from ..config import settings
from ..embeddings.embedder import Embedder
from .context import expand_context
from .models import RetrievalResponse, RetrievalStrategy, SearchResult
from .query_variations import QueryVariationGenerator
from .rrf import reciprocal_rank_fusion
from .search import SimilaritySearch

if TYPE_CHECKING:
    from ..db.vector_store import ChunkStore

logger = logging.getLogger("rag.pipeline")

SIMPLE_MAX_CHUNKS = 15
MEDIUM_MAX_CHUNKS = 50
MAX_TOP_K = 15
PIPELINE_MIN_SIMILARITY = 0.3
FULL_CANDIDATE_MARGIN = 5


def select_strategy(chunk_count: int) -> RetrievalStrategy:
    """Pick a retrieval strategy from the number of searchable chunks."""
    if chunk_count <= SIMPLE_MAX_CHUNKS:
        return "simple"
    if chunk_count <= MEDIUM_MAX_CHUNKS:
        return "medium"
    return "full"


class DocumentRetriever:
    """
    Multi-query retrieval over one user's documents.
    """

    def __init__(
        self,
        store: "ChunkStore",
        embedder: Embedder,
        variation_generator: QueryVariationGenerator,
        min_similarity: float = PIPELINE_MIN_SIMILARITY,
        rrf_k: Optional[int] = None,
    ) -> None:
        self._store = store
        self._search = SimilaritySearch(store, embedder)
        self._variations = variation_generator
        self._min_similarity = min_similarity
        self._rrf_k = rrf_k if rrf_k is not None else settings.rrf_k

    async def search(
        self,
        query: str,
        user_id: str,
        course_id: Optional[str] = None,
        top_k: int = 10,
        context_window: Optional[int] = None,
    ) -> RetrievalResponse:
        """
        Retrieve the chunks most relevant to ``query``.

        Parameters
        ----------
        query : str
            Natural-language query. Must not be blank.
        user_id : str
            Owner whose documents are searched.
        course_id : Optional[str]
            Restrict to one course.
        top_k : int
            Requested number of results, capped at 15.
        context_window : Optional[int]
            Neighbors fetched on each side of a hit (full strategy only).

        Returns
        -------
        RetrievalResponse
            Results, the queries actually used, and the chosen strategy.

        Raises
        ------
        ValueError
            If ``query`` is blank.
        """
        if not query or not query.strip():
            raise ValueError("Query cannot be empty")

        final_top_k = min(top_k, MAX_TOP_K)
        window = context_window if context_window is not None else settings.context_window

        chunk_count = await self._store.count_chunks(user_id, course_id)
        strategy = select_strategy(chunk_count)
        logger.info(
            "Retrieval for user=%s course=%s: %d chunks, strategy=%s, top_k=%d",
            user_id,
            course_id or "*",
            chunk_count,
            strategy,
            final_top_k,
        )

        if strategy == "simple":
            queries = [query]
            results = await self._search.search_by_text(
                query,
                user_id=user_id,
                course_id=course_id,
                top_k=min(chunk_count, final_top_k),
                min_similarity=self._min_similarity,
            )
        elif strategy == "medium":
            queries = await self._variations.generate(query)
            result_lists = await self._search_all(queries[:2], user_id, course_id, final_top_k)
            results = list(reciprocal_rank_fusion(result_lists, self._rrf_k)[:final_top_k])
        else:
            queries = await self._variations.generate(query)
            candidate_k = final_top_k + FULL_CANDIDATE_MARGIN
            result_lists = await self._search_all(queries, user_id, course_id, candidate_k)
            fused = reciprocal_rank_fusion(result_lists, self._rrf_k)[:candidate_k]
            expanded = await expand_context(self._store, user_id, fused, window)
            results = expanded[:final_top_k]

        logger.info("Retrieval returned %d results (strategy=%s)", len(results), strategy)
        return RetrievalResponse(
            results=results,
            query_variations=queries,
            strategy=strategy,
            final_chunk_count=len(results),
        )

    async def _search_all(
        self,
        queries: Sequence[str],
        user_id: str,
        course_id: Optional[str],
        top_k: int,
    ) -> List[List[SearchResult]]:
        """Run one text search per query concurrently, keeping query order."""
        return list(
            await asyncio.gather(
                *(
                    self._search.search_by_text(
                        q,
                        user_id=user_id,
                        course_id=course_id,
                        top_k=top_k,
                        min_similarity=self._min_similarity,
                    )
                    for q in queries
                )
            )
        )
