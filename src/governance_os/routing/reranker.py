"""Document reranking and a two-step retrieval helper."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

from governance_os.observability.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Sequence

    from governance_os.routing.embeddings import EmbeddingService

log = get_logger(__name__)

DEFAULT_RERANKER_MODEL = "bge-reranker-v2-m3"


@dataclass
class RankedDocument:
    """A document with its position in the input list and a relevance score."""

    index: int
    document: str
    score: float


class RerankerProvider(Protocol):
    """Scores documents against a query; higher is more relevant."""

    async def rerank(
        self, query: str, documents: Sequence[str], model: str
    ) -> list[RankedDocument]: ...


class KeywordOverlapReranker:
    """Deterministic reranker scoring by query-word overlap (words over 2 chars)."""

    async def rerank(
        self, query: str, documents: Sequence[str], model: str
    ) -> list[RankedDocument]:
        query_words = {word for word in query.lower().split() if len(word) > 2}
        ranked = []
        for index, document in enumerate(documents):
            matches = sum(1 for word in document.lower().split() if word in query_words)
            score = min(1.0, matches / max(len(query_words), 1) * 1.5)
            ranked.append(RankedDocument(index=index, document=document, score=score))
        ranked.sort(key=lambda item: item.score, reverse=True)
        return ranked


class RerankerService:
    """Rerank documents for a query with an optional score floor.

    Args:
        provider: Scoring backend; keyword overlap when omitted.
        default_model: Reranker model passed to the provider.
        default_top_k: Results returned when a call gives no ``top_k``.
        min_score: Scores below this are dropped from every result.
    """

    def __init__(
        self,
        provider: RerankerProvider | None = None,
        default_model: str = DEFAULT_RERANKER_MODEL,
        default_top_k: int = 10,
        min_score: float | None = None,
    ) -> None:
        self.provider: RerankerProvider = provider or KeywordOverlapReranker()
        self.default_model = default_model
        self.default_top_k = default_top_k
        self.min_score = min_score
        self._requests = 0
        self._documents = 0
        self._latency_ms = 0.0

    async def rerank(
        self,
        query: str,
        documents: Sequence[str],
        *,
        top_k: int | None = None,
        min_score: float | None = None,
        model: str | None = None,
    ) -> list[RankedDocument]:
        """Documents ordered by relevance, best first."""
        if not documents:
            return []
        start = time.perf_counter()
        ranked = await self.provider.rerank(query, documents, model or self.default_model)
        floor = min_score if min_score is not None else self.min_score
        if floor is not None:
            ranked = [item for item in ranked if item.score >= floor]
        ranked = ranked[: top_k if top_k is not None else self.default_top_k]

        self._requests += 1
        self._documents += len(documents)
        self._latency_ms += (time.perf_counter() - start) * 1000
        return ranked

    async def filter_relevant(
        self, query: str, documents: Sequence[str], threshold: float = 0.5
    ) -> list[RankedDocument]:
        """Every document scoring at least ``threshold``."""
        return await self.rerank(query, documents, top_k=len(documents), min_score=threshold)

    async def most_relevant(self, query: str, documents: Sequence[str]) -> RankedDocument | None:
        ranked = await self.rerank(query, documents, top_k=1)
        return ranked[0] if ranked else None

    def stats(self) -> dict[str, float]:
        return {
            "total_requests": self._requests,
            "total_documents": self._documents,
            "average_latency_ms": self._latency_ms / self._requests if self._requests else 0.0,
            "average_docs_per_request": self._documents / self._requests if self._requests else 0.0,
        }


def reciprocal_rank_fusion(
    rankings: Sequence[Sequence[RankedDocument]], k: int = 60
) -> list[RankedDocument]:
    """Fuse several rankings of the same document list.

    Each document scores ``sum(1 / (k + rank + 1))`` over the rankings it
    appears in, keyed by its original index.
    """
    fused: dict[int, RankedDocument] = {}
    for ranking in rankings:
        for rank, item in enumerate(ranking):
            contribution = 1 / (k + rank + 1)
            if item.index in fused:
                fused[item.index].score += contribution
            else:
                fused[item.index] = RankedDocument(item.index, item.document, contribution)
    return sorted(fused.values(), key=lambda item: item.score, reverse=True)


async def rag_retrieve(
    query: str,
    documents: Sequence[str],
    embeddings: EmbeddingService,
    reranker: RerankerService | None = None,
    *,
    embedding_top_k: int = 20,
    reranker_top_k: int = 5,
) -> list[RankedDocument]:
    """Embedding retrieval followed by optional reranking.

    Indexes in the result refer to positions in ``documents``.
    """
    candidates = await embeddings.find_similar(query, documents, top_k=embedding_top_k)
    if reranker is None:
        return [
            RankedDocument(item.index, item.document, item.score)
            for item in candidates[:reranker_top_k]
        ]

    reranked = await reranker.rerank(
        query, [item.document for item in candidates], top_k=reranker_top_k
    )
    log.debug("rag_retrieved", candidates=len(candidates), returned=len(reranked))
    return [
        RankedDocument(candidates[item.index].index, item.document, item.score)
        for item in reranked
    ]
