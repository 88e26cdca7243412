"""Model routing: classification, catalog, quality gate, router, embeddings."""

from governance_os.routing.classifier import (
    TaskClassifier,
    classification_stats,
    estimate_tokens,
    quick_classify,
)
from governance_os.routing.embeddings import (
    EmbeddingResult,
    EmbeddingService,
    InMemoryEmbeddingCache,
    SimilarDocument,
    cosine_similarity,
    dot_product,
    euclidean_distance,
    normalize,
)
from governance_os.routing.quality_gate import (
    QualityCheckOptions,
    QualityGate,
    create_decision_packet_gate,
    create_quality_gate,
)
from governance_os.routing.registry import ModelCriteria, ModelRegistry
from governance_os.routing.reranker import (
    KeywordOverlapReranker,
    RankedDocument,
    RerankerService,
    rag_retrieve,
    reciprocal_rank_fusion,
)
from governance_os.routing.router import (
    AllModelsFailedError,
    ModelRouter,
    RouterError,
    RouterStats,
    RouterTaskExecutor,
    TaskOutput,
)
from governance_os.routing.selections import DEFAULT_MODEL_SELECTIONS, SelectionTemplate
from governance_os.routing.store import InMemoryModelStore, ModelStore

__all__ = [
    "DEFAULT_MODEL_SELECTIONS",
    "AllModelsFailedError",
    "EmbeddingResult",
    "EmbeddingService",
    "InMemoryEmbeddingCache",
    "InMemoryModelStore",
    "KeywordOverlapReranker",
    "ModelCriteria",
    "ModelRegistry",
    "ModelRouter",
    "ModelStore",
    "QualityCheckOptions",
    "QualityGate",
    "RankedDocument",
    "RerankerService",
    "RouterError",
    "RouterStats",
    "RouterTaskExecutor",
    "SelectionTemplate",
    "SimilarDocument",
    "TaskClassifier",
    "TaskOutput",
    "classification_stats",
    "cosine_similarity",
    "create_decision_packet_gate",
    "create_quality_gate",
    "dot_product",
    "estimate_tokens",
    "euclidean_distance",
    "normalize",
    "quick_classify",
    "rag_retrieve",
    "reciprocal_rank_fusion",
]
