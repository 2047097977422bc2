"""
Embedding Provider

The engine only depends on `EmbeddingProvider.embed(text) -> vector`. The
production implementation calls a local Ollama server; it is the only call
in the core with a timeout-and-retry policy. Exhausted retries surface as
`EmbeddingProviderUnavailable`, which semantic layers turn into a failed
layer outcome rather than failing the item.
"""

import asyncio
import logging
import math
import time
from typing import Protocol

import httpx

from exportgate.config import settings
from exportgate.errors import EmbeddingProviderUnavailable
from exportgate.middleware.metrics import embedding_requests_total, embedding_duration_seconds

logger = logging.getLogger(__name__)


class EmbeddingProvider(Protocol):
    dimensions: int

    async def embed(self, text: str) -> list[float]:
        ...


def cosine_similarity(a, b) -> float:
    if len(a) != len(b) or not a:
        return 0.0
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (norm_a * norm_b)


class OllamaEmbeddingProvider:
    """Embeddings via Ollama's /api/embeddings endpoint."""

    def __init__(
        self,
        base_url: str | None = None,
        model: str | None = None,
        *,
        dimensions: int | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        backoff: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = (base_url or settings.ollama_url).rstrip("/")
        self.model = model or settings.embedding_model
        self.dimensions = dimensions or settings.embedding_dimensions
        self.timeout = timeout if timeout is not None else settings.embedding_timeout_seconds
        self.max_retries = max_retries if max_retries is not None else settings.embedding_max_retries
        self.backoff = backoff if backoff is not None else settings.embedding_backoff_seconds
        self._transport = transport

    async def embed(self, text: str) -> list[float]:
        last_error: Exception | None = None
        start = time.time()
        timeout = httpx.Timeout(connect=min(self.timeout, 5.0), read=self.timeout, write=5.0, pool=5.0)

        async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
            for attempt in range(1, self.max_retries + 1):
                try:
                    resp = await client.post(
                        f"{self.base_url}/api/embeddings",
                        json={"model": self.model, "prompt": text},
                    )
                    # Don't retry on 4xx (except 429)
                    if 400 <= resp.status_code < 500 and resp.status_code != 429:
                        embedding_requests_total.labels(status="rejected").inc()
                        raise EmbeddingProviderUnavailable(
                            f"Embedding request rejected with HTTP {resp.status_code}",
                            status_code=resp.status_code,
                        )
                    resp.raise_for_status()
                    try:
                        vector = [float(v) for v in resp.json().get("embedding") or []]
                    except (ValueError, AttributeError, TypeError) as exc:
                        embedding_requests_total.labels(status="malformed").inc()
                        raise EmbeddingProviderUnavailable(f"Malformed embedding response: {exc}") from exc
                    if len(vector) != self.dimensions:
                        embedding_requests_total.labels(status="bad_dimensions").inc()
                        raise EmbeddingProviderUnavailable(
                            f"Expected {self.dimensions}-dim embedding, got {len(vector)}",
                        )
                    embedding_requests_total.labels(status="ok").inc()
                    embedding_duration_seconds.observe(time.time() - start)
                    return vector
                except (httpx.TimeoutException, httpx.TransportError, httpx.HTTPStatusError) as exc:
                    last_error = exc
                    logger.warning(
                        "Embedding attempt %d/%d failed: %s", attempt, self.max_retries, exc,
                    )
                    if attempt < self.max_retries:
                        await asyncio.sleep(self.backoff * (2 ** (attempt - 1)))

        embedding_requests_total.labels(status="unavailable").inc()
        embedding_duration_seconds.observe(time.time() - start)
        raise EmbeddingProviderUnavailable(
            f"Embedding provider unavailable after {self.max_retries} attempts: {last_error}",
        )
