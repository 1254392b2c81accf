"""Context hydration pipeline.

Given a focal work item (by id, or the best search match for a query),
collect everything an agent needs to work on it and fit it into a token
budget:

  1. focal_resolution           id lookup, or top task/epic search hit
  2. relational_expansion       parent, ancestors, children, descendants,
                                siblings, path-matched documents
  3. cross_reference_traversal  forward references, then referrers
  4. semantic_enrichment        search for related items and documents
  5. temporal_overlay           recent operations on focal/parent/children
  6. session_memory             the last work session on the focal item
  7. token_budgeting            priority packing with fidelity downgrade

Stages 3, 4, 5 and 6 are optional: they are skipped when their collaborator
is missing, when the request opts out, or (for 3 and 6) when they find
nothing. ``metadata.stages_executed`` lists what actually ran.

A single ``visited`` set is created per request and threaded through
stages 2 to 4, which is what keeps any id out of two role arrays.

Usage:
    engine = HydrationEngine(backlog, search=index.search_all, operations=backlog)
    result = await engine.hydrate(ContextRequest(id="TASK-0042", depth=2))
    print(result.render())
"""

from __future__ import annotations

import logging
import time
from typing import Any, Mapping

from pydantic import BaseModel, Field, field_validator

from backlogctx.backlog.models import WorkItem
from backlogctx.backlog.protocols import BacklogReader, OperationReader, SearchFn
from backlogctx.config import HydrationConfig
from backlogctx.context.budget import BudgetInput, apply_budget
from backlogctx.context.models import (
    ContextEntity,
    Fidelity,
    HydrationMetadata,
    HydrationResult,
)
from backlogctx.context.references import traverse_cross_references
from backlogctx.context.relational import clamp_depth, expand_relations
from backlogctx.context.semantic import enrich_semantic
from backlogctx.context.temporal import derive_session_summary, overlay_temporal

logger = logging.getLogger("backlogctx.context")

FOCAL_SEARCH_TYPES = ["task", "epic"]


class ContextRequest(BaseModel):
    """What to hydrate. One of ``id`` or ``query`` is needed."""

    id: str | None = None
    query: str | None = None
    depth: int = 1
    max_tokens: int = Field(default=4000, ge=1)
    include_related: bool = True
    include_activity: bool = True

    @field_validator("depth", mode="before")
    @classmethod
    def _clamp_depth(cls, value: Any) -> int:
        return clamp_depth(value)


class HydrationEngine:
    """Runs the hydration pipeline against host-supplied collaborators.

    ``search`` and ``operations`` are optional; without them the stages
    that depend on them are skipped.
    """

    def __init__(
        self,
        backlog: BacklogReader,
        search: SearchFn | None = None,
        operations: OperationReader | None = None,
        config: HydrationConfig | None = None,
    ) -> None:
        self.backlog = backlog
        self.search = search
        self.operations = operations
        self.config = config or HydrationConfig()

    async def _resolve_focal(self, request: ContextRequest) -> tuple[WorkItem, str] | None:
        if request.id:
            item = self.backlog.get_item(request.id)
            return (item, "id") if item is not None else None

        if request.query and request.query.strip() and self.search is not None:
            hits = await self.search(request.query, types=FOCAL_SEARCH_TYPES, limit=1)
            for hit in hits:
                if hit.item is not None:
                    return hit.item, "query"
        return None

    async def hydrate(self, request: ContextRequest | Mapping[str, Any]) -> HydrationResult | None:
        """Build the context bundle, or None when no focal item is found."""
        if not isinstance(request, ContextRequest):
            request = ContextRequest(**request)

        start = time.time()
        stages: list[str] = []
        cfg = self.config

        resolved = await self._resolve_focal(request)
        if resolved is None:
            logger.debug(f"No focal entity for id={request.id!r} query={request.query!r}")
            return None
        focal_item, resolved_from = resolved
        focal = ContextEntity.from_item(focal_item, Fidelity.FULL)
        stages.append("focal_resolution")

        visited: set[str] = {focal_item.id}

        expansion = expand_relations(focal_item, request.depth, visited, self.backlog)
        stages.append("relational_expansion")

        xrefs = traverse_cross_references(
            focal_item,
            expansion.parent_item,
            visited,
            self.backlog,
            reverse=cfg.reverse_references,
            cap=cfg.max_cross_references,
        )
        if xrefs:
            stages.append("cross_reference_traversal")

        related: list[ContextEntity] = []
        semantic_docs = []
        if request.include_related and self.search is not None:
            seen_docs = {d.uri for d in expansion.related_resources}
            enrichment = await enrich_semantic(
                focal_item,
                visited,
                seen_docs,
                self.search,
                max_entities=cfg.max_semantic_entities,
                max_documents=cfg.max_semantic_documents,
            )
            related = enrichment.related
            semantic_docs = enrichment.related_resources
            stages.append("semantic_enrichment")

        activity = []
        session = None
        if request.include_activity and self.operations is not None:
            activity_ids = [focal_item.id]
            if expansion.parent is not None:
                activity_ids.append(expansion.parent.id)
            activity_ids.extend(c.id for c in expansion.children)
            activity = overlay_temporal(activity_ids, self.operations, limit=cfg.activity_limit)
            stages.append("temporal_overlay")

            session = derive_session_summary(
                focal_item.id, self.operations, gap_minutes=cfg.session_gap_minutes
            )
            if session is not None:
                stages.append("session_memory")

        budget = apply_budget(
            BudgetInput(
                focal=focal,
                parent=expansion.parent,
                session_summary=session,
                children=expansion.children,
                siblings=expansion.siblings,
                cross_referenced=xrefs.cross_referenced,
                referenced_by=xrefs.referenced_by,
                ancestors=expansion.ancestors,
                descendants=expansion.descendants,
                related_resources=expansion.related_resources,
                related=related,
                semantic_resources=semantic_docs,
                activity=activity,
            ),
            request.max_tokens,
        )
        stages.append("token_budgeting")

        total_items = (
            1
            + (1 if budget.parent else 0)
            + len(budget.children)
            + len(budget.siblings)
            + len(budget.cross_referenced)
            + len(budget.referenced_by)
            + len(budget.ancestors)
            + len(budget.descendants)
            + len(budget.related)
            + len(budget.related_resources)
            + len(budget.activity)
            + (1 if budget.session_summary else 0)
        )

        elapsed_ms = (time.time() - start) * 1000
        logger.debug(
            f"Hydrated {focal_item.id} in {elapsed_ms:.1f}ms: {total_items} items, "
            f"~{budget.tokens_used} tokens, stages={stages}"
        )

        return HydrationResult(
            focal=budget.focal,
            parent=budget.parent,
            children=budget.children,
            siblings=budget.siblings,
            cross_referenced=budget.cross_referenced,
            referenced_by=budget.referenced_by,
            ancestors=budget.ancestors,
            descendants=budget.descendants,
            related=budget.related,
            related_resources=budget.related_resources,
            activity=budget.activity,
            session_summary=budget.session_summary,
            metadata=HydrationMetadata(
                depth=request.depth,
                total_items=total_items,
                token_estimate=budget.tokens_used,
                truncated=budget.truncated,
                stages_executed=stages,
                focal_resolved_from=resolved_from,
            ),
        )


async def hydrate_context(
    request: ContextRequest | Mapping[str, Any],
    backlog: BacklogReader,
    search: SearchFn | None = None,
    operations: OperationReader | None = None,
    config: HydrationConfig | None = None,
) -> HydrationResult | None:
    """Functional form of ``HydrationEngine(...).hydrate(request)``."""
    engine = HydrationEngine(backlog, search=search, operations=operations, config=config)
    return await engine.hydrate(request)
