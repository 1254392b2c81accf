"""Score fusion for independently ranked retrievers.

    lexical hits -> min-max normalize -+
                                       +-> weighted sum -> coordination bonus -> ranking
    vector hits  -> min-max normalize -+

All functions here are pure and take plain ``ScoredHit`` sequences, so they
can be exercised without an index.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Callable, Sequence


@dataclass(frozen=True)
class ScoredHit:
    """A hit from a single retriever."""

    id: str
    score: float


@dataclass(frozen=True)
class FusionWeights:
    text: float = 0.7
    vector: float = 0.3


DEFAULT_WEIGHTS = FusionWeights()


def minmax_normalize(hits: Sequence[ScoredHit]) -> list[ScoredHit]:
    """Scale scores into [0, 1], preserving order and ids.

    A single hit, or hits that all share one score, all map to 1.0.
    """
    if not hits:
        return []
    scores = [h.score for h in hits]
    low = min(scores)
    span = max(scores) - low
    if span == 0:
        return [replace(h, score=1.0) for h in hits]
    return [replace(h, score=(h.score - low) / span) for h in hits]


def linear_fusion(
    lexical: Sequence[ScoredHit],
    vector: Sequence[ScoredHit],
    weights: FusionWeights = DEFAULT_WEIGHTS,
) -> list[ScoredHit]:
    """Weighted sum of normalized retriever scores over the union of ids.

    An id missing from one retriever gets 0 from it, so an empty vector
    sequence yields the lexical ranking scaled by ``weights.text``.
    """
    combined: dict[str, float] = {}
    for hit in lexical:
        combined[hit.id] = combined.get(hit.id, 0.0) + weights.text * hit.score
    for hit in vector:
        combined[hit.id] = combined.get(hit.id, 0.0) + weights.vector * hit.score

    fused = [ScoredHit(id=doc_id, score=score) for doc_id, score in combined.items()]
    # sorted() is stable, ties keep first-seen order
    return sorted(fused, key=lambda h: h.score, reverse=True)


def _query_terms(query: str) -> list[str]:
    return list(dict.fromkeys(query.lower().split()))


def apply_coordination_bonus(
    hits: Sequence[ScoredHit],
    query: str,
    get_text: Callable[[str], str],
    get_title: Callable[[str], str] | None = None,
    weight: float = 0.5,
    title_weight: float = 0.3,
) -> list[ScoredHit]:
    """Reward hits that contain more of the distinct query terms.

    Fusion alone lets a hit that matches one term strongly outrank a hit that
    matches every term. For queries with two or more distinct terms each hit
    gains ``matched / total * weight`` (case-insensitive substring match on
    ``get_text``) and, when ``get_title`` is given, ``title_matched / total *
    title_weight``. Single-term queries are returned untouched.
    """
    terms = _query_terms(query)
    if len(terms) <= 1:
        return list(hits)

    total = len(terms)
    adjusted: list[ScoredHit] = []
    for hit in hits:
        text = get_text(hit.id).lower()
        bonus = sum(1 for t in terms if t in text) / total * weight
        if get_title is not None:
            title = get_title(hit.id).lower()
            bonus += sum(1 for t in terms if t in title) / total * title_weight
        adjusted.append(replace(hit, score=hit.score + bonus))

    return sorted(adjusted, key=lambda h: h.score, reverse=True)
