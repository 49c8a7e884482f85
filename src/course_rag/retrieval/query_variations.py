"""
Query Variation Generation

Asks an LLM for alternative phrasings of a search query to widen recall.

Multi-query retrieval is an enhancement, not a correctness requirement: any
LLM failure (timeout, provider error, malformed output) degrades to the
original query alone and is never raised.
"""

from __future__ import annotations

import asyncio
import logging
from typing import List, Optional

from pydantic import BaseModel, Field

from ..config import settings
from ..llm.client import LLMClient

logger = logging.getLogger("rag.query_variations")

MAX_QUERIES = 3

VARIATION_PROMPT = """Generate 2 alternative phrasings of the user's search query to improve retrieval in a document search system. The variations should capture:
1. A rephrased version using different vocabulary
2. A more specific or more general version

User query: "{query}"

Generate 2 variations. Focus on academic/document search context.
Respond with a JSON object of the form {{"variations": ["...", "..."]}}."""


class QueryVariations(BaseModel):
    """Structured output expected from the LLM."""

    variations: List[str] = Field(default_factory=list)


class QueryVariationGenerator:
    """Produces ``[query, *variations]`` with at most three entries."""

    def __init__(
        self,
        llm: LLMClient,
        timeout: Optional[float] = None,
        temperature: float = 0.7,
    ) -> None:
        self._llm = llm
        self._timeout = timeout if timeout is not None else settings.llm_timeout
        self._temperature = temperature

    async def generate(self, query: str) -> List[str]:
        """
        Return the original query followed by up to two LLM variations.

        Always returns at least ``[query]``.
        """
        try:
            output = await asyncio.wait_for(
                self._llm.generate_object(
                    VARIATION_PROMPT.format(query=query),
                    QueryVariations,
                    temperature=self._temperature,
                ),
                timeout=self._timeout,
            )
        except Exception as exc:
            logger.warning(
                "Query variation generation failed (%s: %s); using original query only",
                type(exc).__name__,
                exc,
            )
            return [query]

        variations = [v.strip() for v in output.variations if v and v.strip()]
        queries = [query, *variations][:MAX_QUERIES]

        logger.debug("Generated %d queries for %r: %s", len(queries), query, queries)
        return queries
