"""Hybrid retrieval index over backlog items and documents.

Two independent retrievers feed one ranking:

  - BM25 over compound-word tokens (``search.lexical``)
  - cosine similarity over embedder vectors (``search.vector``), optional

Both run concurrently per query, over-fetching twice the requested limit;
their results are min-max normalized, fused and given a coordination bonus
(``search.scoring``). When the embedder is disabled, or fails to initialise
or to embed, the index silently serves lexical-only results from then on.

All index structures live in one immutable ``_IndexState``. Mutations build
a replacement state and swap it in with a single assignment, so a search
that is already running keeps reading the state it started with.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Iterable, Literal, Mapping, Sequence

import numpy as np
from pydantic import BaseModel, ValidationError

from backlogctx.backlog.models import Document, WorkItem
from backlogctx.config import SearchConfig
from backlogctx.exceptions import SearchIndexError
from backlogctx.search.embeddings import Embedder, HashedEmbedder
from backlogctx.search.lexical import (
    DOCUMENT_TYPE,
    IndexedDoc,
    LexicalIndex,
    document_to_doc,
    item_to_doc,
)
from backlogctx.search.persistence import Debouncer, SnapshotStore
from backlogctx.search.scoring import (
    FusionWeights,
    ScoredHit,
    apply_coordination_bonus,
    linear_fusion,
    minmax_normalize,
)
from backlogctx.search.snippets import Snippet, generate_document_snippet, generate_item_snippet
from backlogctx.search.vector import VectorIndex

logger = logging.getLogger("backlogctx.search")

SortMode = Literal["relevant", "recent"]


class SearchFilters(BaseModel):
    """Attribute filters for unified search. Unset fields do not filter."""

    status: list[str] | None = None
    type: str | None = None
    parent_id: str | None = None


@dataclass
class SearchHit:
    """A ranked result. Exactly one of ``item`` / ``document`` is set."""

    kind: str
    id: str
    score: float
    type: str
    item: WorkItem | None = None
    document: Document | None = None
    snippet: Snippet | None = None

    @property
    def title(self) -> str:
        target = self.item or self.document
        return target.title if target else ""


@dataclass(frozen=True)
class _IndexState:
    items: Mapping[str, WorkItem] = field(default_factory=dict)
    documents: Mapping[str, Document] = field(default_factory=dict)
    records: Mapping[str, IndexedDoc] = field(default_factory=dict)
    lexical: LexicalIndex = field(default_factory=lambda: LexicalIndex([]))
    vectors: VectorIndex | None = None

    def searchable_text(self, doc_id: str) -> str:
        if doc_id in self.items:
            return self.items[doc_id].searchable_text()
        if doc_id in self.documents:
            return self.documents[doc_id].searchable_text()
        return ""

    def title(self, doc_id: str) -> str:
        target = self.items.get(doc_id) or self.documents.get(doc_id)
        return target.title if target else ""


def _build_state(
    items: Mapping[str, WorkItem],
    documents: Mapping[str, Document],
    vectors: VectorIndex | None,
) -> _IndexState:
    records: dict[str, IndexedDoc] = {}
    for item in items.values():
        records[item.id] = item_to_doc(item)
    for doc in documents.values():
        records[doc.id] = document_to_doc(doc)
    return _IndexState(
        items=items,
        documents=documents,
        records=records,
        lexical=LexicalIndex(list(records.values())),
        vectors=vectors,
    )


def _make_predicate(
    kinds: Iterable[str] | None = None,
    types: Iterable[str] | None = None,
    filters: SearchFilters | Mapping[str, Any] | None = None,
) -> Callable[[IndexedDoc], bool] | None:
    if isinstance(filters, Mapping):
        filters = SearchFilters(**filters)
    kind_set = set(kinds) if kinds else None
    type_set = set(types) if types else None
    statuses = set(filters.status) if filters and filters.status else None
    type_eq = filters.type if filters else None
    parent_eq = filters.parent_id if filters else None

    if not any([kind_set, type_set, statuses, type_eq, parent_eq]):
        return None

    def predicate(doc: IndexedDoc) -> bool:
        if kind_set is not None and doc.kind not in kind_set:
            return False
        if type_set is not None and doc.type not in type_set:
            return False
        if statuses is not None and doc.status not in statuses:
            return False
        if type_eq and doc.type != type_eq:
            return False
        if parent_eq and doc.parent_id != parent_eq:
            return False
        return True

    return predicate


class RetrievalIndex:
    """Owns the lexical and vector indices, their snapshot and CRUD.

    Construct one per process (or per test) and hand it to whoever needs
    search; there is no module-level instance.
    """

    def __init__(
        self,
        config: SearchConfig | None = None,
        embedder: Embedder | None = None,
        snapshot_path: Path | str | None = None,
    ) -> None:
        self.config = config or SearchConfig()
        self.weights = FusionWeights(text=self.config.text_weight, vector=self.config.vector_weight)

        if not self.config.hybrid:
            self._embedder: Embedder | None = None
        else:
            self._embedder = embedder or HashedEmbedder(self.config.embedding_dim)
        self._embedder_task: asyncio.Task[bool] | None = None
        self._embedder_ready = False

        path = snapshot_path or self.config.snapshot_path
        self._store = SnapshotStore(path) if path else None
        self._debouncer = Debouncer(self.config.snapshot_debounce_s, self.persist)
        self._state = _IndexState()

    # -- Embeddings --------------------------------------------------------

    async def _ensure_embeddings(self) -> bool:
        """Initialise the embedder once; concurrent callers share one attempt."""
        if self._embedder is None:
            return False
        if self._embedder_ready:
            return True
        if self._embedder_task is None:
            self._embedder_task = asyncio.ensure_future(self._init_embedder())
        return await self._embedder_task

    async def _init_embedder(self) -> bool:
        embedder = self._embedder
        if embedder is None:
            return False
        try:
            await embedder.init()
        except Exception as e:
            self._disable_embedder(embedder, e)
            return False
        self._embedder_ready = True
        return True

    def _disable_embedder(self, embedder: Embedder, error: Exception) -> None:
        logger.warning(f"Embedder {getattr(embedder, 'name', embedder)!r} unavailable, "
                       f"falling back to lexical search: {error}")
        self._embedder = None
        self._embedder_ready = False

    @property
    def is_hybrid_active(self) -> bool:
        """True when vectors are indexed and the embedder is usable."""
        return self._state.vectors is not None and self._embedder_ready

    async def _embed(self, text: str) -> np.ndarray | None:
        """Embed ``text``, or None once the embedder has failed."""
        embedder = self._embedder
        if embedder is None:
            return None
        try:
            return await embedder.embed(text)
        except Exception as e:
            self._disable_embedder(embedder, e)
            return None

    async def _embed_many(self, entries: Iterable[tuple[str, str]]) -> dict[str, np.ndarray] | None:
        table: dict[str, np.ndarray] = {}
        for doc_id, text in entries:
            vector = await self._embed(text)
            if vector is None:
                return None
            table[doc_id] = vector
        return table

    # -- Lifecycle ---------------------------------------------------------

    async def build(
        self,
        items: Iterable[WorkItem],
        documents: Iterable[Document] = (),
        force: bool = False,
    ) -> bool:
        """Load the snapshot, or index the supplied corpus from scratch.

        Returns True when the index was rebuilt, False when a current
        snapshot was loaded instead. A loaded snapshot is reconciled with the
        supplied corpus: new and changed entries are re-indexed, missing ones
        dropped, and a snapshot write is scheduled if anything differed. A
        rebuilt index is written out at once.
        """
        item_map = {item.id: item for item in items}
        doc_map = {doc.id: doc for doc in documents}

        if not force and self._store is not None:
            snapshot = self._store.load()
            if snapshot is not None and await self._restore(snapshot):
                changes = await self._reconcile(item_map, doc_map)
                logger.debug(
                    f"Loaded index snapshot: {len(self._state.items)} items, "
                    f"{len(self._state.documents)} documents, {changes} changed since"
                )
                return False

        vectors = None
        if await self._ensure_embeddings():
            table = await self._embed_many(
                [(item.id, item.embedding_text()) for item in item_map.values()]
                + [(doc.id, doc.embedding_text()) for doc in doc_map.values()]
            )
            if table is not None:
                vectors = VectorIndex(table, self.config.embedding_dim)

        self._state = _build_state(item_map, doc_map, vectors)
        logger.debug(
            f"Built index: {len(item_map)} items, {len(doc_map)} documents, "
            f"hybrid={vectors is not None}"
        )
        self._debouncer.cancel()
        self.persist()
        return True

    async def _restore(self, snapshot: Mapping[str, Any]) -> bool:
        try:
            item_map = {
                d["id"]: WorkItem.model_validate(d) for d in snapshot.get("items", [])
            }
            doc_map = {
                d["id"]: Document.model_validate(d) for d in snapshot.get("documents", [])
            }
        except (ValidationError, KeyError, TypeError) as e:
            logger.warning(f"Index snapshot is corrupt, rebuilding: {e}")
            return False

        vectors = None
        if self._embedder is not None and not snapshot.get("has_embeddings"):
            logger.debug("Index snapshot has no vectors, rebuilding to embed")
            return False
        if snapshot.get("has_embeddings"):
            # Vectors from a different embedder are useless for querying
            if self._embedder is None or snapshot.get("embedder") != self._embedder.name:
                logger.warning("Index snapshot was built with another embedder, rebuilding")
                return False
            if not await self._ensure_embeddings():
                return False
            raw = snapshot.get("vectors") or {}
            vectors = VectorIndex(
                {k: np.asarray(v, dtype=np.float32) for k, v in raw.items()},
                self.config.embedding_dim,
            )

        self._state = _build_state(item_map, doc_map, vectors)
        return True

    async def _reconcile(
        self,
        item_map: Mapping[str, WorkItem],
        doc_map: Mapping[str, Document],
    ) -> int:
        """Apply corpus changes made since the snapshot was written."""
        state = self._state
        changed: list[WorkItem | Document] = [
            item for item in item_map.values() if state.items.get(item.id) != item
        ]
        changed += [doc for doc in doc_map.values() if state.documents.get(doc.id) != doc]
        removed = (state.items.keys() - item_map.keys()) | (state.documents.keys() - doc_map.keys())
        if not changed and not removed:
            return 0

        vectors = state.vectors
        if vectors is not None:
            table = await self._embed_many((c.id, c.embedding_text()) for c in changed)
            if table is None:
                vectors = None
            else:
                merged = {k: v for k, v in vectors.as_dict().items() if k not in removed}
                merged.update(table)
                vectors = VectorIndex(merged, self.config.embedding_dim)

        self._state = _build_state(dict(item_map), dict(doc_map), vectors)
        self._debouncer.schedule()
        return len(changed) + len(removed)

    def _snapshot_payload(self) -> dict[str, Any]:
        state = self._state
        has_embeddings = state.vectors is not None and self._embedder_ready
        payload: dict[str, Any] = {
            "items": [item.model_dump(mode="json") for item in state.items.values()],
            "documents": [doc.model_dump(mode="json") for doc in state.documents.values()],
            "has_embeddings": has_embeddings,
            "embedder": self._embedder.name if self._embedder else None,
            "vectors": {},
        }
        if has_embeddings:
            payload["vectors"] = {k: v.tolist() for k, v in state.vectors.as_dict().items()}
        return payload

    def persist(self) -> None:
        """Write the snapshot now (the debounced callback)."""
        if self._store is None:
            return
        self._store.save(self._snapshot_payload())

    def flush(self) -> None:
        """Write any pending debounced snapshot immediately."""
        self._debouncer.flush()

    @property
    def snapshot_pending(self) -> bool:
        return self._debouncer.pending

    # -- Introspection -----------------------------------------------------

    def __len__(self) -> int:
        return len(self._state.items) + len(self._state.documents)

    def get_item(self, item_id: str) -> WorkItem | None:
        return self._state.items.get(item_id)

    # -- Search ------------------------------------------------------------

    async def _lexical_hits(
        self,
        state: _IndexState,
        query: str,
        limit: int,
        predicate: Callable[[IndexedDoc], bool] | None,
    ) -> list[ScoredHit]:
        return state.lexical.search(query, limit, predicate)

    async def _vector_hits(
        self,
        state: _IndexState,
        query: str,
        limit: int,
        predicate: Callable[[IndexedDoc], bool] | None,
    ) -> list[ScoredHit]:
        if state.vectors is None or not await self._ensure_embeddings():
            return []
        query_vector = await self._embed(query)
        if query_vector is None:
            return []
        id_predicate = None
        if predicate is not None:
            id_predicate = lambda doc_id: doc_id in state.records and predicate(state.records[doc_id])  # noqa: E731
        return state.vectors.search(
            query_vector,
            limit,
            similarity=self.config.vector_similarity,
            predicate=id_predicate,
        )

    async def _ranked(
        self,
        state: _IndexState,
        query: str,
        limit: int,
        predicate: Callable[[IndexedDoc], bool] | None,
        sort: SortMode = "relevant",
    ) -> list[ScoredHit]:
        if sort == "recent":
            matches = state.lexical.candidates(query, predicate)
            matches.sort(key=lambda m: m[0].updated_at, reverse=True)
            return [ScoredHit(id=doc.id, score=score) for doc, score in matches[:limit]]

        fetch = limit * 2
        lexical, vector = await asyncio.gather(
            self._lexical_hits(state, query, fetch, predicate),
            self._vector_hits(state, query, fetch, predicate),
        )
        fused = linear_fusion(minmax_normalize(lexical), minmax_normalize(vector), self.weights)
        coordinated = apply_coordination_bonus(
            fused,
            query,
            state.searchable_text,
            state.title,
            weight=self.config.coordination_weight,
            title_weight=self.config.title_coordination_weight,
        )
        return coordinated[:limit]

    def _to_hit(self, state: _IndexState, scored: ScoredHit, query: str) -> SearchHit | None:
        item = state.items.get(scored.id)
        if item is not None:
            return SearchHit(
                kind="item",
                id=item.id,
                score=scored.score,
                type=item.type.value,
                item=item,
                snippet=generate_item_snippet(item, query),
            )
        doc = state.documents.get(scored.id)
        if doc is not None:
            return SearchHit(
                kind="document",
                id=doc.id,
                score=scored.score,
                type=DOCUMENT_TYPE,
                document=doc,
                snippet=generate_document_snippet(doc, query),
            )
        return None

    async def _search(
        self,
        query: str,
        limit: int,
        predicate: Callable[[IndexedDoc], bool] | None,
        sort: SortMode = "relevant",
    ) -> list[SearchHit]:
        if not query or not query.strip() or limit <= 0:
            return []
        state = self._state
        ranked = await self._ranked(state, query, limit, predicate, sort)
        hits = (self._to_hit(state, s, query) for s in ranked)
        return [h for h in hits if h is not None]

    async def search(
        self,
        query: str,
        limit: int = 20,
        filters: SearchFilters | Mapping[str, Any] | None = None,
    ) -> list[SearchHit]:
        """Ranked search over work items only."""
        return await self._search(query, limit, _make_predicate(kinds=["item"], filters=filters))

    async def search_all(
        self,
        query: str,
        limit: int = 20,
        types: Sequence[str] | None = None,
        filters: SearchFilters | Mapping[str, Any] | None = None,
        sort: SortMode = "relevant",
    ) -> list[SearchHit]:
        """Unified search across items and documents.

        ``types`` restricts results to the given entity types and/or
        ``"document"``. ``sort="recent"`` orders lexical matches by
        ``updated_at`` and skips fusion and the coordination bonus.
        """
        if sort not in ("relevant", "recent"):
            raise SearchIndexError(f"Unknown sort mode: {sort!r}")
        predicate = _make_predicate(types=types, filters=filters)
        return await self._search(query, limit, predicate, sort)

    async def search_documents(self, query: str, limit: int = 20) -> list[SearchHit]:
        """Ranked search over documents only."""
        return await self._search(query, limit, _make_predicate(kinds=["document"]))

    # -- CRUD --------------------------------------------------------------

    async def _vector_for(self, doc_id: str, text: str) -> VectorIndex | None:
        vectors = self._state.vectors
        if vectors is None or not await self._ensure_embeddings():
            return None
        vector = await self._embed(text)
        if vector is None:
            return None
        return vectors.with_vector(doc_id, vector)

    async def add_item(self, item: WorkItem) -> None:
        """Insert or replace a work item."""
        vectors = await self._vector_for(item.id, item.embedding_text())
        state = self._state
        items = {**state.items, item.id: item}
        self._state = _build_state(items, state.documents, vectors)
        self._debouncer.schedule()

    async def update_item(self, item: WorkItem) -> None:
        await self.add_item(item)

    async def remove_item(self, item_id: str) -> None:
        state = self._state
        if item_id not in state.items:
            return
        items = {k: v for k, v in state.items.items() if k != item_id}
        vectors = state.vectors.without(item_id) if state.vectors is not None else None
        self._state = _build_state(items, state.documents, vectors)
        self._debouncer.schedule()

    async def add_document(self, document: Document) -> None:
        """Insert or replace a document."""
        vectors = await self._vector_for(document.id, document.embedding_text())
        state = self._state
        documents = {**state.documents, document.id: document}
        self._state = _build_state(state.items, documents, vectors)
        self._debouncer.schedule()

    async def update_document(self, document: Document) -> None:
        await self.add_document(document)

    async def remove_document(self, doc_id: str) -> None:
        state = self._state
        if doc_id not in state.documents:
            return
        documents = {k: v for k, v in state.documents.items() if k != doc_id}
        vectors = state.vectors.without(doc_id) if state.vectors is not None else None
        self._state = _build_state(state.items, documents, vectors)
        self._debouncer.schedule()

    async def close(self) -> None:
        """Flush any pending snapshot write."""
        self.flush()
