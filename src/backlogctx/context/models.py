"""Data models for hydrated context bundles."""

from __future__ import annotations

from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field

from backlogctx.backlog.models import Document, Reference, WorkItem

DOCUMENT_SNIPPET_CHARS = 120


class Fidelity(str, Enum):
    """How much of an entity is projected into a response."""

    FULL = "full"  # Every field
    SUMMARY = "summary"  # Drops description / evidence / blocked_reason
    REFERENCE = "reference"  # id, title, status, type only


class ContextEntity(BaseModel):
    """A work item projected at a given fidelity."""

    id: str
    title: str
    status: str
    type: str
    fidelity: Fidelity
    parent_id: str | None = None
    created_at: str | None = None
    updated_at: str | None = None
    references: list[Reference] | None = None
    description: str | None = None
    evidence: list[str] | None = None
    blocked_reason: list[str] | None = None
    relevance_score: float | None = None
    graph_depth: int | None = None

    @classmethod
    def from_item(
        cls,
        item: WorkItem,
        fidelity: Fidelity = Fidelity.FULL,
        graph_depth: int | None = None,
        relevance_score: float | None = None,
    ) -> ContextEntity:
        entity = cls(
            id=item.id,
            title=item.title,
            status=item.status,
            type=item.type.value,
            fidelity=fidelity,
            graph_depth=graph_depth,
        )
        if fidelity == Fidelity.REFERENCE:
            return entity

        entity.parent_id = item.effective_parent_id
        entity.created_at = item.created_at or None
        entity.updated_at = item.updated_at or None
        if item.references:
            entity.references = list(item.references)
        entity.relevance_score = relevance_score
        if fidelity == Fidelity.SUMMARY:
            return entity

        entity.description = item.description or None
        if item.evidence:
            entity.evidence = list(item.evidence)
        if item.blocked_reason:
            entity.blocked_reason = list(item.blocked_reason)
        return entity


class ContextDocument(BaseModel):
    """A document projected at summary or reference fidelity."""

    uri: str
    title: str
    path: str
    fidelity: Fidelity = Fidelity.SUMMARY
    snippet: str | None = None
    relevance_score: float | None = None

    @classmethod
    def from_document(
        cls,
        document: Document,
        fidelity: Fidelity = Fidelity.SUMMARY,
        snippet: str | None = None,
        relevance_score: float | None = None,
    ) -> ContextDocument:
        ctx = cls(uri=document.id, title=document.title, path=document.path, fidelity=fidelity)
        if fidelity == Fidelity.REFERENCE:
            return ctx
        if snippet is None and document.content:
            text = document.content.strip()
            if len(text) > DOCUMENT_SNIPPET_CHARS:
                text = text[:DOCUMENT_SNIPPET_CHARS] + "..."
            snippet = text
        ctx.snippet = snippet or None
        ctx.relevance_score = relevance_score
        return ctx


class ActivityEntry(BaseModel):
    """One operation-log entry rendered for humans."""

    ts: str
    tool: str
    entity_id: str
    actor: str
    summary: str

    model_config = {"frozen": True}


class SessionSummary(BaseModel):
    """The most recent work session on the focal entity."""

    actor: str
    actor_type: Literal["user", "agent"]
    started_at: str
    ended_at: str
    operation_count: int
    summary: str


class HydrationMetadata(BaseModel):
    depth: int
    total_items: int
    token_estimate: int
    truncated: bool
    stages_executed: list[str] = Field(default_factory=list)
    focal_resolved_from: Literal["id", "query"] = "id"


# Role arrays in priority order, shared by rendering and counting
ENTITY_ROLES = (
    "children",
    "siblings",
    "cross_referenced",
    "referenced_by",
    "ancestors",
    "descendants",
    "related",
)


class HydrationResult(BaseModel):
    """Everything relevant about one focal entity, within a token budget."""

    focal: ContextEntity
    parent: ContextEntity | None = None
    children: list[ContextEntity] = Field(default_factory=list)
    siblings: list[ContextEntity] = Field(default_factory=list)
    cross_referenced: list[ContextEntity] = Field(default_factory=list)
    referenced_by: list[ContextEntity] = Field(default_factory=list)
    ancestors: list[ContextEntity] = Field(default_factory=list)
    descendants: list[ContextEntity] = Field(default_factory=list)
    related: list[ContextEntity] = Field(default_factory=list)
    related_resources: list[ContextDocument] = Field(default_factory=list)
    activity: list[ActivityEntry] = Field(default_factory=list)
    session_summary: SessionSummary | None = None
    metadata: HydrationMetadata

    def all_entity_ids(self) -> list[str]:
        """Ids of every entity in the bundle, focal first."""
        ids = [self.focal.id]
        if self.parent:
            ids.append(self.parent.id)
        for role in ENTITY_ROLES:
            ids.extend(e.id for e in getattr(self, role))
        return ids

    def to_payload(self) -> dict[str, Any]:
        """JSON-ready dict for agents: unset fields and empty arrays omitted."""
        data = self.model_dump(mode="json", exclude_none=True)
        return {
            key: value
            for key, value in data.items()
            if not (isinstance(value, list) and not value)
        }

    def render(self) -> str:
        """Render the bundle as markdown for a terminal or an LLM prompt."""
        sections: list[str] = []
        focal = self.focal
        meta = self.metadata

        sections.append(f"# {focal.id}: {focal.title}")
        sections.append(
            f"_{focal.type} | {focal.status} | depth {meta.depth} | "
            f"~{meta.token_estimate:,} tokens"
            f"{' | truncated' if meta.truncated else ''}_"
        )
        sections.append("")
        if focal.description:
            sections.append(focal.description)
            sections.append("")
        if focal.evidence:
            sections.append("**Evidence**")
            sections.extend(f"- {e}" for e in focal.evidence)
            sections.append("")
        if focal.blocked_reason:
            sections.append("**Blocked**")
            sections.extend(f"- {r}" for r in focal.blocked_reason)
            sections.append("")

        if self.parent:
            sections.append(f"## Parent\n{_entity_line(self.parent)}")
            sections.append("")

        if self.session_summary:
            s = self.session_summary
            sections.append("## Last session")
            sections.append(
                f"{s.actor} ({s.actor_type}), {s.operation_count} ops "
                f"{s.started_at} .. {s.ended_at}: {s.summary}"
            )
            sections.append("")

        for role in ENTITY_ROLES:
            entities: list[ContextEntity] = getattr(self, role)
            if not entities:
                continue
            sections.append(f"## {role.replace('_', ' ').capitalize()}")
            sections.extend(_entity_line(e) for e in entities)
            sections.append("")

        if self.related_resources:
            sections.append("## Documents")
            for doc in self.related_resources:
                line = f"- {doc.title} ({doc.path})"
                if doc.snippet:
                    line += f": {doc.snippet}"
                sections.append(line)
            sections.append("")

        if self.activity:
            sections.append("## Recent activity")
            sections.extend(f"- {a.ts} {a.actor}: {a.summary}" for a in self.activity)
            sections.append("")

        sections.append(f"_stages: {', '.join(meta.stages_executed)}_")
        return "\n".join(sections)


def _entity_line(entity: ContextEntity) -> str:
    line = f"- [{entity.status}] {entity.id}: {entity.title}"
    extras = []
    if entity.graph_depth is not None:
        extras.append(f"depth {entity.graph_depth}")
    if entity.relevance_score is not None:
        extras.append(f"score {entity.relevance_score:.2f}")
    if extras:
        line += f" ({', '.join(extras)})"
    return line
