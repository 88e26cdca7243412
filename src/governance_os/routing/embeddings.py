"""Batched, cached text embeddings and vector similarity helpers.

Used opportunistically by pipeline stages (for example to rank signals
against an issue); nothing in the pipeline depends on it for correctness.
"""

from __future__ import annotations

import hashlib
import math
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol

from governance_os.observability.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Sequence

    from governance_os.providers.base import InferenceProvider

log = get_logger(__name__)

DEFAULT_EMBEDDING_MODEL = "nomic-embed-text"
DEFAULT_BATCH_SIZE = 32
DEFAULT_CACHE_SIZE = 10_000

# Known embedding models and their output dimensions
EMBEDDING_MODEL_DIMENSIONS: dict[str, int] = {
    "nomic-embed-text": 768,
    "mxbai-embed-large": 1024,
    "bge-m3": 1024,
}


class EmbeddingCache(Protocol):
    """Storage for computed embeddings keyed by content hash."""

    def get(self, key: str) -> list[float] | None: ...

    def put(self, key: str, embedding: list[float]) -> None: ...

    def clear(self) -> None: ...

    def __len__(self) -> int: ...


class InMemoryEmbeddingCache:
    """Capacity-bounded cache evicting in insertion order."""

    def __init__(self, max_size: int = DEFAULT_CACHE_SIZE) -> None:
        if max_size < 1:
            raise ValueError("max_size must be positive")
        self.max_size = max_size
        self._entries: OrderedDict[str, list[float]] = OrderedDict()

    def get(self, key: str) -> list[float] | None:
        return self._entries.get(key)

    def put(self, key: str, embedding: list[float]) -> None:
        if key not in self._entries and len(self._entries) >= self.max_size:
            self._entries.popitem(last=False)
        self._entries[key] = embedding

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


@dataclass
class EmbeddingUsage:
    """Token usage of one :meth:`EmbeddingService.embed_texts` call."""

    prompt_tokens: int = 0
    total_tokens: int = 0


@dataclass
class EmbeddingResult:
    """Embeddings for a list of texts, in input order."""

    embeddings: list[list[float]]
    model: str
    dimensions: int
    usage: EmbeddingUsage
    latency_ms: float


@dataclass
class SimilarDocument:
    """A document scored against a query."""

    index: int
    document: str
    score: float


@dataclass
class EmbeddingStats:
    total_requests: int = 0
    total_texts: int = 0
    cache_hits: int = 0
    cache_misses: int = 0
    total_latency_ms: float = 0.0

    @property
    def average_latency_ms(self) -> float:
        return self.total_latency_ms / self.total_requests if self.total_requests else 0.0

    @property
    def cache_hit_rate(self) -> float:
        lookups = self.cache_hits + self.cache_misses
        return self.cache_hits / lookups if lookups else 0.0


def cache_key(model: str, text: str) -> str:
    """Content hash identifying an embedding of ``text`` under ``model``."""
    return hashlib.sha256(f"{model}:{text}".encode()).hexdigest()


class EmbeddingService:
    """Embed texts through an inference provider with batching and caching.

    Args:
        provider: Backend whose ``embed()`` is called for cache misses.
        default_model: Model used when a call does not name one.
        batch_size: Maximum texts per provider call.
        cache: Embedding cache; in-memory when omitted.
        cache_enabled: Disable to always hit the provider.
    """

    def __init__(
        self,
        provider: InferenceProvider,
        default_model: str = DEFAULT_EMBEDDING_MODEL,
        batch_size: int = DEFAULT_BATCH_SIZE,
        cache: EmbeddingCache | None = None,
        cache_enabled: bool = True,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be positive")
        self.provider = provider
        self.default_model = default_model
        self.batch_size = batch_size
        self.cache: EmbeddingCache = cache if cache is not None else InMemoryEmbeddingCache()
        self.cache_enabled = cache_enabled
        self._stats = EmbeddingStats()

    async def embed_text(self, text: str, model: str | None = None) -> list[float]:
        """Embed a single text."""
        result = await self.embed_texts([text], model)
        return result.embeddings[0]

    async def embed_texts(self, texts: Sequence[str], model: str | None = None) -> EmbeddingResult:
        """Embed texts, serving repeats from the cache.

        Raises:
            ProviderError: If a provider batch call fails.
        """
        model_id = model or self.default_model
        start = time.perf_counter()
        results: list[list[float] | None] = [None] * len(texts)
        pending: list[tuple[int, str]] = []

        for index, text in enumerate(texts):
            if self.cache_enabled:
                cached = self.cache.get(cache_key(model_id, text))
                if cached is not None:
                    self._stats.cache_hits += 1
                    results[index] = list(cached)
                    continue
                self._stats.cache_misses += 1
            pending.append((index, text))

        prompt_tokens = 0
        for offset in range(0, len(pending), self.batch_size):
            batch = pending[offset : offset + self.batch_size]
            response = await self.provider.embed(model_id, [text for _, text in batch])
            prompt_tokens += response.prompt_tokens
            for (index, text), embedding in zip(batch, response.embeddings, strict=True):
                results[index] = embedding
                if self.cache_enabled:
                    self.cache.put(cache_key(model_id, text), list(embedding))

        embeddings = [vector for vector in results if vector is not None]
        latency_ms = (time.perf_counter() - start) * 1000
        self._stats.total_requests += 1
        self._stats.total_texts += len(texts)
        self._stats.total_latency_ms += latency_ms
        log.debug(
            "texts_embedded",
            model=model_id,
            texts=len(texts),
            provider_calls=math.ceil(len(pending) / self.batch_size),
        )

        dimensions = len(embeddings[0]) if embeddings else EMBEDDING_MODEL_DIMENSIONS.get(model_id, 0)
        return EmbeddingResult(
            embeddings=embeddings,
            model=model_id,
            dimensions=dimensions,
            usage=EmbeddingUsage(prompt_tokens=prompt_tokens, total_tokens=prompt_tokens),
            latency_ms=latency_ms,
        )

    async def find_similar(
        self,
        query: str,
        documents: Sequence[str],
        *,
        top_k: int = 5,
        threshold: float = 0.0,
        model: str | None = None,
    ) -> list[SimilarDocument]:
        """Documents most similar to ``query`` by cosine similarity.

        Returns:
            At most ``top_k`` documents scoring at least ``threshold``,
            best first.
        """
        if not documents:
            return []
        result = await self.embed_texts([query, *documents], model)
        query_vector, *document_vectors = result.embeddings
        scored = [
            SimilarDocument(index=i, document=doc, score=cosine_similarity(query_vector, vector))
            for i, (doc, vector) in enumerate(zip(documents, document_vectors, strict=True))
        ]
        scored = [item for item in scored if item.score >= threshold]
        scored.sort(key=lambda item: item.score, reverse=True)
        return scored[:top_k]

    def stats(self) -> dict[str, Any]:
        s = self._stats
        return {
            "total_requests": s.total_requests,
            "total_texts": s.total_texts,
            "cache_hits": s.cache_hits,
            "cache_misses": s.cache_misses,
            "cache_hit_rate": s.cache_hit_rate,
            "cache_size": len(self.cache),
            "average_latency_ms": s.average_latency_ms,
        }

    def clear_cache(self) -> None:
        self.cache.clear()

    def model_info(self, model: str | None = None) -> dict[str, Any]:
        """Name and known dimensions of an embedding model."""
        model_id = model or self.default_model
        return {"model": model_id, "dimensions": EMBEDDING_MODEL_DIMENSIONS.get(model_id)}


# -- Vector math ---------------------------------------------------------------


def _check_dimensions(a: Sequence[float], b: Sequence[float]) -> None:
    if len(a) != len(b):
        raise ValueError(f"Vectors must have the same dimensions ({len(a)} != {len(b)})")


def dot_product(a: Sequence[float], b: Sequence[float]) -> float:
    _check_dimensions(a, b)
    return sum(x * y for x, y in zip(a, b, strict=True))


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine of the angle between two vectors; 0 when either has zero magnitude.

    Raises:
        ValueError: If the vectors differ in dimension.
    """
    _check_dimensions(a, b)
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot_product(a, b) / (norm_a * norm_b)


def euclidean_distance(a: Sequence[float], b: Sequence[float]) -> float:
    _check_dimensions(a, b)
    return math.sqrt(sum((x - y) ** 2 for x, y in zip(a, b, strict=True)))


def normalize(vector: Sequence[float]) -> list[float]:
    """Unit vector in the direction of ``vector`` (zero vectors returned unchanged)."""
    norm = math.sqrt(sum(x * x for x in vector))
    if norm == 0:
        return list(vector)
    return [x / norm for x in vector]
