"""Embedding provider clients and the order-preserving batcher.

Security: Reads API key from settings only, never hardcoded.
Provides a deterministic offline provider when no key is present.
"""

import asyncio
import hashlib
import logging
import math
from typing import Protocol

from openai import AsyncOpenAI, OpenAIError
from pydantic import BaseModel

from cradle.app.config import Settings
from cradle.app.knowledge.errors import ProviderError
from cradle.app.utils.metrics import metrics

logger = logging.getLogger(__name__)


class EmbeddingItem(BaseModel):
    """One vector returned by a provider, tagged with its input position."""

    index: int
    vector: list[float]


class EmbeddingResponse(BaseModel):
    """Provider response with usage accounting."""

    model: str
    items: list[EmbeddingItem]
    prompt_tokens: int = 0
    total_tokens: int = 0


class EmbeddingProvider(Protocol):
    """Protocol for embedding provider implementations."""

    async def embed(self, texts: list[str]) -> EmbeddingResponse:
        """Embed a batch of texts.

        Items may come back in any order; each carries the index of the input
        it belongs to.

        Raises:
            ProviderError: On network, auth, rate-limit or response failures
        """
        ...


class OpenAIEmbeddingProvider:
    """OpenAI-backed embedding provider."""

    def __init__(
        self,
        api_key: str,
        model: str = "text-embedding-3-small",
        dimensions: int | None = None,
        timeout_s: float = 30.0,
    ):
        """Initialize OpenAI client.

        Args:
            api_key: OpenAI API key (read from settings)
            model: Embedding model name
            dimensions: Requested output dimension (model default when None)
            timeout_s: Per-request timeout enforced by the HTTP client
        """
        self.client = AsyncOpenAI(api_key=api_key, timeout=timeout_s, max_retries=2)
        self.model = model
        self.dimensions = dimensions

    async def embed(self, texts: list[str]) -> EmbeddingResponse:
        """Embed texts with the embeddings endpoint."""
        kwargs: dict[str, object] = {"model": self.model, "input": texts}
        if self.dimensions is not None:
            kwargs["dimensions"] = self.dimensions

        try:
            response = await self.client.embeddings.create(**kwargs)  # type: ignore[call-overload]
        except OpenAIError as e:
            raise ProviderError(f"OpenAI embeddings call failed: {e}") from e

        usage = response.usage
        return EmbeddingResponse(
            model=response.model,
            items=[
                EmbeddingItem(index=item.index, vector=list(item.embedding))
                for item in response.data
            ],
            prompt_tokens=usage.prompt_tokens if usage else 0,
            total_tokens=usage.total_tokens if usage else 0,
        )


class DeterministicEmbeddingProvider:
    """Deterministic offline provider (no API key required).

    Hashes lowercase tokens into a fixed number of buckets and L2-normalizes
    the result, so texts sharing words land close to each other.
    """

    def __init__(self, dimensions: int = 1536):
        if dimensions <= 0:
            raise ValueError("dimensions must be positive")
        self.dimensions = dimensions
        self.model = f"deterministic-hash-{dimensions}"

    def vector_for(self, text: str) -> list[float]:
        """Return the embedding of a single text."""
        vector = [0.0] * self.dimensions
        for token in text.lower().split():
            digest = hashlib.sha256(token.encode("utf-8")).digest()
            bucket = int.from_bytes(digest[:4], "big") % self.dimensions
            sign = 1.0 if digest[4] % 2 == 0 else -1.0
            vector[bucket] += sign

        norm = math.sqrt(sum(component * component for component in vector))
        if norm == 0:
            return vector
        return [component / norm for component in vector]

    async def embed(self, texts: list[str]) -> EmbeddingResponse:
        """Embed texts locally."""
        return EmbeddingResponse(
            model=self.model,
            items=[
                EmbeddingItem(index=i, vector=self.vector_for(text)) for i, text in enumerate(texts)
            ],
            prompt_tokens=sum(len(text.split()) for text in texts),
            total_tokens=sum(len(text.split()) for text in texts),
        )


class EmbeddingBatcher:
    """Splits texts into bounded batches and embeds them sequentially.

    Guarantees:
    - Output order matches input order, whatever order the provider answers in
    - At most one provider call in flight per batcher call
    - Every call bounded by timeout_s
    - All-or-nothing: any failing batch raises ProviderError, no partial result
    """

    def __init__(
        self,
        provider: EmbeddingProvider,
        *,
        batch_size: int = 20,
        dimensions: int | None = None,
        timeout_s: float = 30.0,
    ) -> None:
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")
        self.provider = provider
        self.batch_size = batch_size
        self.dimensions = dimensions
        self.timeout_s = timeout_s

    async def embed_many(self, texts: list[str]) -> list[list[float]]:
        """Embed texts in input order.

        Args:
            texts: Ordered texts to embed

        Returns:
            One vector per input text, same order

        Raises:
            ProviderError: If any batch fails, times out or is malformed
        """
        if not texts:
            return []

        vectors: list[list[float]] = []
        total_batches = math.ceil(len(texts) / self.batch_size)

        for batch_number, start in enumerate(range(0, len(texts), self.batch_size), start=1):
            batch = texts[start : start + self.batch_size]
            vectors.extend(await self._embed_batch(batch))
            logger.info(
                f"Embedded batch {batch_number}/{total_batches}",
                extra={"structured": {"batch": batch_number, "batches": total_batches, "size": len(batch)}},
            )

        return vectors

    async def embed_one(self, text: str) -> list[float]:
        """Embed a single text (single-item batch)."""
        return (await self.embed_many([text]))[0]

    async def _embed_batch(self, batch: list[str]) -> list[list[float]]:
        try:
            response = await asyncio.wait_for(self.provider.embed(batch), timeout=self.timeout_s)
        except asyncio.TimeoutError as e:
            metrics.inc_embedding_batch("timeout")
            raise ProviderError(f"Embedding call timed out after {self.timeout_s}s") from e
        except ProviderError:
            metrics.inc_embedding_batch("error")
            raise
        except Exception as e:
            metrics.inc_embedding_batch("error")
            raise ProviderError(f"Embedding provider failed: {e}") from e

        try:
            vectors = self._ordered_vectors(response, expected=len(batch))
        except ProviderError:
            metrics.inc_embedding_batch("malformed")
            raise

        metrics.inc_embedding_batch("success", total_tokens=response.total_tokens)
        return vectors

    def _ordered_vectors(self, response: EmbeddingResponse, *, expected: int) -> list[list[float]]:
        """Re-sort provider items by index and validate shape."""
        items = sorted(response.items, key=lambda item: item.index)

        if [item.index for item in items] != list(range(expected)):
            raise ProviderError(
                f"Embedding response indices do not cover the batch "
                f"(expected {expected} items, got {len(items)})"
            )

        for item in items:
            if self.dimensions is not None and len(item.vector) != self.dimensions:
                raise ProviderError(
                    f"Embedding dimension mismatch: expected {self.dimensions}, "
                    f"got {len(item.vector)}"
                )

        return [item.vector for item in items]


def get_embedding_provider(settings: Settings) -> EmbeddingProvider:
    """Factory function to get appropriate embedding provider based on config.

    Returns:
        OpenAIEmbeddingProvider if API key is configured, DeterministicEmbeddingProvider otherwise
    """
    api_key = settings.openai_api_key

    if api_key and api_key.get_secret_value():
        logger.info("Using OpenAI embedding provider")
        return OpenAIEmbeddingProvider(
            api_key=api_key.get_secret_value(),
            model=settings.openai_embedding_model,
            dimensions=settings.embedding_dimensions,
            timeout_s=settings.embedding_timeout_s,
        )

    logger.warning("No OpenAI API key configured, using deterministic embedding provider")
    return DeterministicEmbeddingProvider(dimensions=settings.embedding_dimensions)


def build_embedding_batcher(settings: Settings, provider: EmbeddingProvider | None = None) -> EmbeddingBatcher:
    """Wire an EmbeddingBatcher from settings."""
    return EmbeddingBatcher(
        provider or get_embedding_provider(settings),
        batch_size=settings.embedding_batch_size,
        dimensions=settings.embedding_dimensions,
        timeout_s=settings.embedding_timeout_s,
    )
