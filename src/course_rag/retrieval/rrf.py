"""
Reciprocal Rank Fusion (RRF) for combining ranked result lists from several
query variations.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Dict, List, Sequence

from .models import RankedResult, SearchResult

logger = logging.getLogger("rag.rrf")


def reciprocal_rank_fusion(
    result_lists: Sequence[Sequence[SearchResult]],
    k: int = 60,
) -> List[RankedResult]:
    """
    Merge ranked lists using Reciprocal Rank Fusion.

    Args:
        result_lists: Ranked lists, each already in its own best-first order.
        k: Constant in 1 / (k + rank + 1), typically 60.

    Returns:
        One RankedResult per distinct ``"{id}-{chunk_index}"`` key, sorted by
        summed RRF score descending. The payload of a key's first occurrence
        (earliest list, then earliest rank) is kept; ties keep that emission
        order.
    """
    scores: Dict[str, float] = defaultdict(float)

    for results in result_lists:
        for rank, result in enumerate(results):
            scores[result.key] += 1.0 / (k + rank + 1)

    merged: List[RankedResult] = []
    seen: set[str] = set()
    for results in result_lists:
        for result in results:
            if result.key in seen:
                continue
            seen.add(result.key)
            merged.append(
                RankedResult.model_validate(
                    {**result.model_dump(), "rrf_score": scores[result.key]}
                )
            )

    # list.sort is stable
    merged.sort(key=lambda r: r.rrf_score, reverse=True)

    logger.debug(
        "Fused %d lists (k=%d) into %d unique results",
        len(result_lists),
        k,
        len(merged),
    )
    return merged
