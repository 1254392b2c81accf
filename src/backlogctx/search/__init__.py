"""Hybrid lexical + vector search over backlog items and documents."""

from backlogctx.search.embeddings import Embedder, HashedEmbedder
from backlogctx.search.index import RetrievalIndex, SearchFilters, SearchHit
from backlogctx.search.scoring import (
    DEFAULT_WEIGHTS,
    FusionWeights,
    ScoredHit,
    apply_coordination_bonus,
    linear_fusion,
    minmax_normalize,
)
from backlogctx.search.snippets import Snippet, generate_document_snippet, generate_item_snippet

__all__ = [
    "RetrievalIndex",
    "SearchHit",
    "SearchFilters",
    "Embedder",
    "HashedEmbedder",
    "ScoredHit",
    "FusionWeights",
    "DEFAULT_WEIGHTS",
    "minmax_normalize",
    "linear_fusion",
    "apply_coordination_bonus",
    "Snippet",
    "generate_item_snippet",
    "generate_document_snippet",
]
