"""
Helpers for expanding retrieved chunks with neighboring chunks from the same
document.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, List, Sequence

from .models import SearchResult

if TYPE_CHECKING:
    from ..db.vector_store import ChunkStore

logger = logging.getLogger("rag.context")


def _neighbor_indices(center: int, window: int) -> List[int]:
    return [center + offset for offset in range(-window, window + 1) if offset != 0]


async def expand_context(
    store: "ChunkStore",
    user_id: str,
    results: Sequence[SearchResult],
    window: int = 2,
) -> List[SearchResult]:
    """
    Expand results with neighboring chunks from the same document.

    Args:
        store: Chunk store used to fetch neighbors.
        user_id: Owner of the documents.
        results: Ranked hits. Hits without a course_id or chunk_index are
            passed through unexpanded.
        window: Number of neighbors to include on each side.

    Returns:
        The original results in their order, followed by newly found
        neighbors in discovery order. Neighbors have ``similarity == 0`` to
        mark them as context rather than relevance hits. No chunk (by
        ``"{id}-{chunk_index}"``) appears twice.
    """
    expanded: List[SearchResult] = list(results)
    seen = {result.key for result in results}

    for result in results:
        if not result.course_id or result.chunk_index is None:
            continue

        indices = _neighbor_indices(result.chunk_index, window)
        if not indices:
            continue

        neighbors = await store.get_neighbor_chunks(
            user_id=user_id,
            course_id=result.course_id,
            file_name=result.file_name,
            chunk_indices=indices,
        )

        for neighbor in neighbors:
            if neighbor.key in seen:
                continue
            seen.add(neighbor.key)
            expanded.append(
                SearchResult.model_validate({**neighbor.model_dump(), "similarity": 0.0})
            )

    logger.debug(
        "Expanded %d results to %d with window +-%d",
        len(results),
        len(expanded),
        window,
    )
    return expanded
