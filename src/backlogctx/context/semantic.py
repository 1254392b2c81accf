"""Semantic enrichment: related items and documents found by search."""

from __future__ import annotations

from dataclasses import dataclass, field

from backlogctx.backlog.models import WorkItem
from backlogctx.backlog.protocols import SearchFn
from backlogctx.context.models import ContextDocument, ContextEntity, Fidelity
from backlogctx.exceptions import CollaboratorError

SEMANTIC_TYPES = ["task", "epic", "document"]
SEARCH_LIMIT = 20
MAX_ENTITIES = 5
MAX_DOCUMENTS = 5
QUERY_DESCRIPTION_CHARS = 200


@dataclass
class SemanticEnrichment:
    related: list[ContextEntity] = field(default_factory=list)
    related_resources: list[ContextDocument] = field(default_factory=list)


def build_query(focal: WorkItem) -> str:
    """Focal title plus the head of its description."""
    query = focal.title
    if focal.description:
        head = focal.description[:QUERY_DESCRIPTION_CHARS].strip()
        if head:
            query = f"{query} {head}"
    return query


async def enrich_semantic(
    focal: WorkItem,
    visited: set[str],
    seen_document_ids: set[str],
    search: SearchFn,
    max_entities: int = MAX_ENTITIES,
    max_documents: int = MAX_DOCUMENTS,
) -> SemanticEnrichment:
    """One search for "more like this", minus everything already collected.

    Entities already in ``visited`` are skipped, accepted ones are added to
    it. Documents already in ``seen_document_ids`` are skipped. Entity and
    document caps apply independently.
    """
    hits = await search(build_query(focal), types=SEMANTIC_TYPES, limit=SEARCH_LIMIT)
    if not isinstance(hits, list):
        raise CollaboratorError("search", f"expected a list, got {type(hits).__name__}")

    result = SemanticEnrichment()
    for hit in hits:
        score = round(float(hit.score), 4)
        if hit.document is not None:
            doc = hit.document
            if doc.id in seen_document_ids or len(result.related_resources) >= max_documents:
                continue
            seen_document_ids.add(doc.id)
            result.related_resources.append(
                ContextDocument.from_document(doc, Fidelity.SUMMARY, relevance_score=score)
            )
        elif hit.item is not None:
            item = hit.item
            if item.id in visited or len(result.related) >= max_entities:
                continue
            visited.add(item.id)
            result.related.append(
                ContextEntity.from_item(item, Fidelity.SUMMARY, relevance_score=score)
            )
    return result
