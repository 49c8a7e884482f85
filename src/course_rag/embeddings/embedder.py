"""
Embedding Client

This module implements the embedding client used for document ingestion and
query embedding. It talks to the OpenAI embeddings API (or any compatible
provider) and is responsible for:

- Sending a whole batch of texts in a single request
- Strict response validation (dimensionality and count)
- Bounded, linear-backoff retries for rate-limit and timeout failures
- Deterministic output order matching the input order

The class is stateless and safe to reuse across requests. It performs no
caching.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional, Sequence

import httpx

from ..config import settings

logger = logging.getLogger("rag.embedder")

EMBEDDING_DIMENSIONS = 1536

_RATE_LIMIT_MARKERS = ("429", "rate limit", "quota")


class EmbeddingError(RuntimeError):
    """Raised when embedding generation fails."""

    def __init__(self, message: str, retryable: bool = False) -> None:
        super().__init__(message)
        self.retryable = retryable


def is_rate_limit_error(error: object) -> bool:
    """Return True if an error (or its message) carries a rate-limit or quota signature."""
    message = str(error).lower()
    return any(marker in message for marker in _RATE_LIMIT_MARKERS)


class Embedder:
    """
    Asynchronous embedding generator for batches of text.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        retry_delay: Optional[float] = None,
        dimensions: int = EMBEDDING_DIMENSIONS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """
        Initialize an Embedder.

        Parameters
        ----------
        api_key : Optional[str]
            Optional override for the API key. Defaults to settings.openai_api_key.

        model : Optional[str]
            Optional override for the embedding model. Defaults to settings.embedding_model.

        base_url : Optional[str]
            Full URL of the embeddings endpoint.

        timeout : Optional[float]
            HTTP timeout for each request, in seconds. A timeout is retried
            like a rate-limit failure.

        max_retries : Optional[int]
            Default number of extra attempts after the first one.

        retry_delay : Optional[float]
            Base backoff in seconds; attempt ``n`` waits ``retry_delay * n``.

        dimensions : int
            Required length of every returned vector.

        transport : Optional[httpx.AsyncBaseTransport]
            Custom transport, mainly for tests (httpx.MockTransport).

        sleep : Callable[[float], Awaitable[None]]
            Coroutine used to wait between retries.
        """
        self.api_key = api_key or settings.openai_api_key.get_secret_value()
        self.model = model or settings.embedding_model
        self.base_url = base_url or settings.embedding_base_url
        self.timeout = timeout if timeout is not None else settings.embedding_timeout
        self.max_retries = (
            max_retries if max_retries is not None else settings.embedding_max_retries
        )
        self.retry_delay = (
            retry_delay if retry_delay is not None else settings.embedding_retry_delay
        )
        self.dimensions = dimensions
        self._transport = transport
        self._sleep = sleep

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def embed_one(self, text: str) -> List[float]:
        """Embed a single text."""
        embeddings = await self.embed_many([text])
        return embeddings[0]

    async def embed_many(
        self,
        texts: Sequence[str],
        max_retries: Optional[int] = None,
    ) -> List[List[float]]:
        """
        Generate embeddings for a batch of texts in one request per attempt.

        Parameters
        ----------
        texts : Sequence[str]
            Input texts. Callers should pass a whole document's chunks at once.

        max_retries : Optional[int]
            Extra attempts allowed for rate-limit or timeout failures.

        Returns
        -------
        List[List[float]]
            One vector per input text, in input order.

        Raises
        ------
        EmbeddingError
            If every allowed attempt fails, or a non-retryable failure occurs.
        """
        if not texts:
            return []

        retries = self.max_retries if max_retries is None else max_retries
        batch = list(texts)
        last_error: Optional[EmbeddingError] = None
        attempts = 0

        for attempt in range(retries + 1):
            attempts = attempt + 1
            try:
                embeddings = await self._request(batch)
                self._validate(embeddings, expected_count=len(batch))
                return embeddings
            except EmbeddingError as exc:
                last_error = exc
                logger.warning(
                    "Embedding attempt %d/%d failed: %s",
                    attempts,
                    retries + 1,
                    exc,
                )

            if attempt < retries and last_error.retryable:
                delay = self.retry_delay * attempts
                logger.info("Rate limited, retrying embeddings in %.1fs", delay)
                await self._sleep(delay)
                continue
            break

        logger.error("Embedding generation failed after %d attempts: %s", attempts, last_error)
        raise EmbeddingError(
            f"Failed to generate embeddings after {attempts} attempt(s): {last_error}"
        ) from last_error

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _request(self, batch: List[str]) -> List[List[float]]:
        headers = {"Authorization": f"Bearer {self.api_key}"}
        payload = {"model": self.model, "input": batch}

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout,
                transport=self._transport,
            ) as client:
                response = await client.post(self.base_url, json=payload, headers=headers)
                response.raise_for_status()
        except httpx.TimeoutException as exc:
            raise EmbeddingError(
                f"Embedding request timed out after {self.timeout}s",
                retryable=True,
            ) from exc
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            message = f"Embedding request failed with HTTP {status}: {exc.response.text[:200]}"
            raise EmbeddingError(
                message,
                retryable=status == 429 or is_rate_limit_error(message),
            ) from exc
        except httpx.HTTPError as exc:
            message = f"Embedding request failed ({type(exc).__name__}): {exc}"
            raise EmbeddingError(message, retryable=is_rate_limit_error(exc)) from exc

        try:
            data = response.json()
        except ValueError as exc:
            raise EmbeddingError("Embedding response is not valid JSON.") from exc

        return self._extract_embeddings(data)

    def _validate(self, embeddings: List[List[float]], expected_count: int) -> None:
        for index, emb in enumerate(embeddings):
            if len(emb) != self.dimensions:
                raise EmbeddingError(
                    f"Expected {self.dimensions} dimensions, got {len(emb)} at index {index}"
                )

        if len(embeddings) != expected_count:
            raise EmbeddingError(
                f"Expected {expected_count} embeddings, got {len(embeddings)}"
            )

    @staticmethod
    def _extract_embeddings(data: dict) -> List[List[float]]:
        """
        Parse and validate embedding output format.

        OpenAI returns:
            { "data": [ {"index": 0, "embedding": [...]}, ... ] }

        Records are reordered by ``index`` when present.
        """
        if not isinstance(data, dict) or "data" not in data:
            raise EmbeddingError("Embedding response missing 'data' field.")

        records = data["data"]
        if not isinstance(records, list):
            raise EmbeddingError("'data' field must be a list.")

        for index, record in enumerate(records):
            if not isinstance(record, dict) or "embedding" not in record:
                raise EmbeddingError(
                    f"Malformed embedding record at index {index}: {record!r}"
                )

        if all(isinstance(r.get("index"), int) for r in records):
            records = sorted(records, key=lambda r: r["index"])

        embeddings: List[List[float]] = []
        for index, record in enumerate(records):
            emb = record["embedding"]
            if not isinstance(emb, list) or not all(
                isinstance(x, (float, int)) for x in emb
            ):
                raise EmbeddingError(
                    f"Invalid embedding vector at index {index}: must be float list."
                )
            embeddings.append([float(x) for x in emb])

        return embeddings
