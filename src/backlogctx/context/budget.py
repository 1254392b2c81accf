"""Token budgeting for hydrated context.

Costs are estimated, not counted: one token per four characters plus a
fixed serialization overhead per record. The packer is greedy over a strict
priority order:

   1. focal             always, full
   2. parent            always, summary
   3. session summary
   4. children          5. siblings
   6. cross_referenced  7. referenced_by
   8. ancestors         9. descendants
  10. related documents (path matched)
  11. related entities (search)
  12. related documents (search)
  13. activity

Within an entity category, an item that does not fit is retried at
reference fidelity; if even that does not fit, the rest of the category is
dropped. Documents retry at reference fidelity the same way. Activity is
drop-only. Any downgrade or drop marks the result truncated.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field

from backlogctx.context.models import (
    ActivityEntry,
    ContextDocument,
    ContextEntity,
    Fidelity,
    SessionSummary,
)

ENTITY_OVERHEAD = 20
DOCUMENT_OVERHEAD = 15
ACTIVITY_OVERHEAD = 15
SESSION_OVERHEAD = 30
METADATA_OVERHEAD = 50

FIELD_OVERHEAD = 5
REFERENCE_OVERHEAD = 10
LIST_ENTRY_OVERHEAD = 3


class TokenEstimator:
    """Character-count token estimate (about four characters per token)."""

    chars_per_token = 4

    def estimate(self, text: str | None) -> int:
        if not text:
            return 0
        return math.ceil(len(text) / self.chars_per_token)


_estimator = TokenEstimator()


def estimate_tokens(text: str | None) -> int:
    return _estimator.estimate(text)


def entity_cost(entity: ContextEntity) -> int:
    cost = (
        estimate_tokens(entity.id)
        + estimate_tokens(entity.title)
        + estimate_tokens(entity.status)
        + estimate_tokens(entity.type)
        + ENTITY_OVERHEAD
    )
    if entity.fidelity == Fidelity.REFERENCE:
        return cost

    for value in (entity.parent_id, entity.created_at, entity.updated_at):
        if value:
            cost += estimate_tokens(value) + FIELD_OVERHEAD
    for ref in entity.references or []:
        cost += estimate_tokens(ref.url) + estimate_tokens(ref.title) + REFERENCE_OVERHEAD
    if entity.fidelity == Fidelity.SUMMARY:
        return cost

    cost += estimate_tokens(entity.description)
    for line in (entity.evidence or []) + (entity.blocked_reason or []):
        cost += estimate_tokens(line) + LIST_ENTRY_OVERHEAD
    return cost


def document_cost(document: ContextDocument) -> int:
    cost = (
        estimate_tokens(document.uri)
        + estimate_tokens(document.title)
        + estimate_tokens(document.path)
        + DOCUMENT_OVERHEAD
    )
    if document.fidelity == Fidelity.REFERENCE:
        return cost
    return cost + estimate_tokens(document.snippet)


def activity_cost(activity: ActivityEntry) -> int:
    return (
        estimate_tokens(activity.ts)
        + estimate_tokens(activity.tool)
        + estimate_tokens(activity.entity_id)
        + estimate_tokens(activity.actor)
        + estimate_tokens(activity.summary)
        + ACTIVITY_OVERHEAD
    )


def session_cost(session: SessionSummary) -> int:
    return (
        estimate_tokens(session.actor)
        + estimate_tokens(session.actor_type)
        + estimate_tokens(session.started_at)
        + estimate_tokens(session.ended_at)
        + estimate_tokens(session.summary)
        + SESSION_OVERHEAD
    )


def downgrade_entity(entity: ContextEntity, to: Fidelity) -> ContextEntity:
    """Project an entity down to ``to``. Never restores dropped fields."""
    if to == Fidelity.REFERENCE:
        return ContextEntity(
            id=entity.id,
            title=entity.title,
            status=entity.status,
            type=entity.type,
            fidelity=Fidelity.REFERENCE,
            graph_depth=entity.graph_depth,
        )
    if to == Fidelity.SUMMARY and entity.fidelity == Fidelity.FULL:
        return ContextEntity(
            id=entity.id,
            title=entity.title,
            status=entity.status,
            type=entity.type,
            fidelity=Fidelity.SUMMARY,
            parent_id=entity.parent_id,
            created_at=entity.created_at,
            updated_at=entity.updated_at,
            references=entity.references,
            relevance_score=entity.relevance_score,
            graph_depth=entity.graph_depth,
        )
    return entity


def downgrade_document(document: ContextDocument, to: Fidelity) -> ContextDocument:
    if to == Fidelity.REFERENCE:
        return ContextDocument(
            uri=document.uri,
            title=document.title,
            path=document.path,
            fidelity=Fidelity.REFERENCE,
        )
    return document


@dataclass
class BudgetInput:
    """Everything the pipeline collected, before budgeting."""

    focal: ContextEntity
    parent: ContextEntity | None = None
    session_summary: SessionSummary | None = None
    children: list[ContextEntity] = field(default_factory=list)
    siblings: list[ContextEntity] = field(default_factory=list)
    cross_referenced: list[ContextEntity] = field(default_factory=list)
    referenced_by: list[ContextEntity] = field(default_factory=list)
    ancestors: list[ContextEntity] = field(default_factory=list)
    descendants: list[ContextEntity] = field(default_factory=list)
    related_resources: list[ContextDocument] = field(default_factory=list)
    related: list[ContextEntity] = field(default_factory=list)
    semantic_resources: list[ContextDocument] = field(default_factory=list)
    activity: list[ActivityEntry] = field(default_factory=list)


@dataclass
class BudgetResult:
    """What survived the budget, by role."""

    focal: ContextEntity
    parent: ContextEntity | None = None
    session_summary: SessionSummary | None = None
    children: list[ContextEntity] = field(default_factory=list)
    siblings: list[ContextEntity] = field(default_factory=list)
    cross_referenced: list[ContextEntity] = field(default_factory=list)
    referenced_by: list[ContextEntity] = field(default_factory=list)
    ancestors: list[ContextEntity] = field(default_factory=list)
    descendants: list[ContextEntity] = field(default_factory=list)
    related: list[ContextEntity] = field(default_factory=list)
    related_resources: list[ContextDocument] = field(default_factory=list)
    activity: list[ActivityEntry] = field(default_factory=list)
    tokens_used: int = 0
    truncated: bool = False


class _Packer:
    def __init__(self, max_tokens: int) -> None:
        self.max_tokens = max_tokens
        self.used = 0
        self.truncated = False

    def fits(self, cost: int) -> bool:
        return self.used + cost <= self.max_tokens

    def take(self, cost: int) -> None:
        self.used += cost

    def entities(self, candidates: list[ContextEntity]) -> list[ContextEntity]:
        kept: list[ContextEntity] = []
        for entity in candidates:
            cost = entity_cost(entity)
            if self.fits(cost):
                self.take(cost)
                kept.append(entity)
                continue
            self.truncated = True
            ref = downgrade_entity(entity, Fidelity.REFERENCE)
            ref_cost = entity_cost(ref)
            if not self.fits(ref_cost):
                break
            self.take(ref_cost)
            kept.append(ref)
        return kept

    def documents(self, candidates: list[ContextDocument]) -> list[ContextDocument]:
        kept: list[ContextDocument] = []
        for doc in candidates:
            cost = document_cost(doc)
            if self.fits(cost):
                self.take(cost)
                kept.append(doc)
                continue
            self.truncated = True
            ref = downgrade_document(doc, Fidelity.REFERENCE)
            ref_cost = document_cost(ref)
            if not self.fits(ref_cost):
                break
            self.take(ref_cost)
            kept.append(ref)
        return kept

    def activity(self, candidates: list[ActivityEntry]) -> list[ActivityEntry]:
        kept: list[ActivityEntry] = []
        for entry in candidates:
            cost = activity_cost(entry)
            if not self.fits(cost):
                self.truncated = True
                break
            self.take(cost)
            kept.append(entry)
        return kept


def apply_budget(data: BudgetInput, max_tokens: int) -> BudgetResult:
    """Fit the collected context into ``max_tokens`` by strict priority.

    The focal entity and the parent are always included, even when they
    alone exceed the budget; the parent is never taken below summary.
    """
    packer = _Packer(max_tokens)
    packer.take(METADATA_OVERHEAD)

    packer.take(entity_cost(data.focal))
    parent = None
    if data.parent is not None:
        parent = downgrade_entity(data.parent, Fidelity.SUMMARY)
        packer.take(entity_cost(parent))
    if packer.used > max_tokens:
        packer.truncated = True

    result = BudgetResult(focal=data.focal, parent=parent)

    if data.session_summary is not None:
        cost = session_cost(data.session_summary)
        if packer.fits(cost):
            packer.take(cost)
            result.session_summary = data.session_summary
        else:
            packer.truncated = True

    result.children = packer.entities(data.children)
    result.siblings = packer.entities(data.siblings)
    result.cross_referenced = packer.entities(data.cross_referenced)
    result.referenced_by = packer.entities(data.referenced_by)
    result.ancestors = packer.entities(data.ancestors)
    result.descendants = packer.entities(data.descendants)
    relational_docs = packer.documents(data.related_resources)
    result.related = packer.entities(data.related)
    semantic_docs = packer.documents(data.semantic_resources)
    result.related_resources = relational_docs + semantic_docs
    result.activity = packer.activity(data.activity)

    result.tokens_used = packer.used
    result.truncated = packer.truncated
    return result
