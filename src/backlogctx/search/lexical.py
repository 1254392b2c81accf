"""BM25 lexical retriever over work items and documents."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Sequence

from rank_bm25 import BM25Plus

from backlogctx.backlog.models import Document, WorkItem
from backlogctx.search.scoring import ScoredHit
from backlogctx.search.tokenizer import tokenize

# Field boosts are applied by repeating a field's tokens in the bag.
ITEM_BOOSTS = {"id": 10, "title": 3}
DOCUMENT_BOOSTS = {"title": 2}

DOCUMENT_TYPE = "document"


@dataclass(frozen=True)
class IndexedDoc:
    """One searchable record, tagged with the class it came from.

    ``kind`` is ``"item"`` or ``"document"``. Only the filterable attributes
    are kept here; full objects live in the index caches.
    """

    kind: str
    id: str
    type: str
    tokens: tuple[str, ...]
    status: str = ""
    parent_id: str = ""
    updated_at: str = ""
    vocabulary: frozenset[str] = field(default_factory=frozenset)


def item_to_doc(item: WorkItem) -> IndexedDoc:
    bag: list[str] = []
    bag.extend(tokenize(item.id) * ITEM_BOOSTS["id"])
    bag.extend(tokenize(item.title) * ITEM_BOOSTS["title"])
    bag.extend(tokenize(item.description or ""))
    bag.extend(tokenize(" ".join(item.evidence)))
    bag.extend(tokenize(" ".join(item.blocked_reason)))
    bag.extend(tokenize(" ".join(f"{r.title or ''} {r.url}" for r in item.references)))
    return IndexedDoc(
        kind="item",
        id=item.id,
        type=item.type.value,
        tokens=tuple(bag),
        status=item.status,
        parent_id=item.effective_parent_id or "",
        updated_at=item.updated_at,
        vocabulary=frozenset(bag),
    )


def document_to_doc(document: Document) -> IndexedDoc:
    bag: list[str] = []
    bag.extend(tokenize(document.title) * DOCUMENT_BOOSTS["title"])
    bag.extend(tokenize(document.content))
    bag.extend(tokenize(document.path))
    return IndexedDoc(
        kind="document",
        id=document.id,
        type=DOCUMENT_TYPE,
        tokens=tuple(bag),
        vocabulary=frozenset(bag),
    )


class LexicalIndex:
    """Immutable BM25 index over a fixed list of records.

    Only records sharing at least one token with the query are candidates,
    so unrelated records never surface with a baseline score.
    """

    def __init__(self, docs: Sequence[IndexedDoc]) -> None:
        self.docs: tuple[IndexedDoc, ...] = tuple(docs)
        self._bm25 = BM25Plus([list(d.tokens) or [""] for d in self.docs]) if self.docs else None

    def __len__(self) -> int:
        return len(self.docs)

    def candidates(
        self,
        query: str,
        predicate: Callable[[IndexedDoc], bool] | None = None,
    ) -> list[tuple[IndexedDoc, float]]:
        """All matching records with their raw BM25 score, in index order."""
        terms = tokenize(query)
        if not terms or self._bm25 is None:
            return []

        scores = self._bm25.get_scores(terms)
        matches: list[tuple[IndexedDoc, float]] = []
        for doc, score in zip(self.docs, scores):
            if not any(t in doc.vocabulary for t in terms):
                continue
            if predicate is not None and not predicate(doc):
                continue
            matches.append((doc, float(score)))
        return matches

    def search(
        self,
        query: str,
        limit: int,
        predicate: Callable[[IndexedDoc], bool] | None = None,
    ) -> list[ScoredHit]:
        """Top ``limit`` matches by descending BM25 score."""
        matches = self.candidates(query, predicate)
        matches.sort(key=lambda m: m[1], reverse=True)
        return [ScoredHit(id=doc.id, score=score) for doc, score in matches[:limit]]
