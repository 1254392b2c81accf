"""Cosine-similarity retriever over precomputed unit vectors."""

from __future__ import annotations

from typing import Callable, Mapping

import numpy as np

from backlogctx.search.scoring import ScoredHit

DEFAULT_SIMILARITY = 0.2


class VectorIndex:
    """Immutable id -> vector table searched by brute-force cosine similarity."""

    def __init__(self, vectors: Mapping[str, np.ndarray], dim: int) -> None:
        self.dim = dim
        self.ids: tuple[str, ...] = tuple(vectors)
        if self.ids:
            self._matrix = np.vstack([np.asarray(vectors[i], dtype=np.float32) for i in self.ids])
        else:
            self._matrix = np.zeros((0, dim), dtype=np.float32)

    def __len__(self) -> int:
        return len(self.ids)

    def __contains__(self, doc_id: object) -> bool:
        return doc_id in self.ids

    def as_dict(self) -> dict[str, np.ndarray]:
        return {doc_id: self._matrix[i] for i, doc_id in enumerate(self.ids)}

    def with_vector(self, doc_id: str, vector: np.ndarray) -> VectorIndex:
        table = self.as_dict()
        table[doc_id] = vector
        return VectorIndex(table, self.dim)

    def without(self, doc_id: str) -> VectorIndex:
        if doc_id not in self.ids:
            return self
        table = self.as_dict()
        del table[doc_id]
        return VectorIndex(table, self.dim)

    def search(
        self,
        query_vector: np.ndarray,
        limit: int,
        similarity: float = DEFAULT_SIMILARITY,
        predicate: Callable[[str], bool] | None = None,
    ) -> list[ScoredHit]:
        """Top ``limit`` ids with cosine similarity at or above ``similarity``."""
        if not self.ids or limit <= 0:
            return []
        norm = np.linalg.norm(query_vector)
        if norm == 0:
            return []

        sims = self._matrix @ (np.asarray(query_vector, dtype=np.float32) / norm)
        order = np.argsort(-sims, kind="stable")
        hits: list[ScoredHit] = []
        for idx in order:
            score = float(sims[idx])
            if score < similarity:
                break
            doc_id = self.ids[idx]
            if predicate is not None and not predicate(doc_id):
                continue
            hits.append(ScoredHit(id=doc_id, score=score))
            if len(hits) >= limit:
                break
        return hits
