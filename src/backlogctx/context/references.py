"""Cross-reference resolution in both directions.

Forward: ids mentioned in the focal (and parent) ``references`` are looked
up and returned as ``cross_referenced``.

Reverse: a ``ReferenceGraph`` built from every item's references answers
"who points at the focal item?" for ``referenced_by``.

Ids that do not resolve, or that are already in the caller's ``visited``
set, are skipped silently. Accepted ids are added to ``visited``, which is
why the two directions never overlap.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

import networkx as nx

from backlogctx.backlog.models import ID_SEARCH_PATTERN, Reference, WorkItem
from backlogctx.backlog.protocols import BacklogReader
from backlogctx.context.models import ContextEntity, Fidelity
from backlogctx.exceptions import CollaboratorError

MAX_CROSS_REFERENCES = 10


def extract_entity_ids(text: str | None) -> list[str]:
    """All entity ids embedded in a string, in order of appearance.

    "https://example.com/TASK-0041" -> ["TASK-0041"]
    "TASK-0041 and EPIC-0005" -> ["TASK-0041", "EPIC-0005"]
    """
    if not text:
        return []
    return ID_SEARCH_PATTERN.findall(text)


def _reference_ids(references: Iterable[Reference]) -> list[str]:
    ids: list[str] = []
    for ref in references:
        ids.extend(extract_entity_ids(ref.url))
        ids.extend(extract_entity_ids(ref.title))
    return ids


@dataclass
class CrossReferences:
    cross_referenced: list[ContextEntity] = field(default_factory=list)
    referenced_by: list[ContextEntity] = field(default_factory=list)

    def __bool__(self) -> bool:
        return bool(self.cross_referenced or self.referenced_by)


class ReferenceGraph:
    """Directed graph of item -> referenced item edges.

    Built once per request from a full listing. Self-references are dropped
    and repeated mentions of one target collapse to a single edge.
    """

    def __init__(self, items: Iterable[WorkItem]) -> None:
        self.graph = nx.DiGraph()
        for item in items:
            self.graph.add_node(item.id)
            for target in _reference_ids(item.references):
                if target == item.id:
                    continue
                self.graph.add_edge(item.id, target)

    def referrers(self, target: str) -> list[str]:
        """Ids of items whose references mention ``target``."""
        if target not in self.graph:
            return []
        return list(self.graph.predecessors(target))

    def references(self, source: str) -> list[str]:
        if source not in self.graph:
            return []
        return list(self.graph.successors(source))

    @classmethod
    def from_backlog(cls, backlog: BacklogReader) -> ReferenceGraph:
        items = backlog.list_items()
        if not isinstance(items, list):
            raise CollaboratorError("list_items", f"expected a list, got {type(items).__name__}")
        return cls(items)


def _resolve(
    candidate_ids: Iterable[str],
    exclude: str,
    visited: set[str],
    backlog: BacklogReader,
    cap: int,
) -> list[ContextEntity]:
    resolved: list[ContextEntity] = []
    for entity_id in dict.fromkeys(candidate_ids):
        if len(resolved) >= cap:
            break
        if entity_id == exclude or entity_id in visited:
            continue
        item = backlog.get_item(entity_id)
        if item is None:
            continue
        visited.add(entity_id)
        resolved.append(ContextEntity.from_item(item, Fidelity.SUMMARY))
    return resolved


def resolve_forward(
    focal: WorkItem,
    parent: WorkItem | None,
    visited: set[str],
    backlog: BacklogReader,
    cap: int = MAX_CROSS_REFERENCES,
) -> list[ContextEntity]:
    """Entities named in the focal's and its parent's references."""
    refs = list(focal.references)
    if parent is not None:
        refs.extend(parent.references)
    return _resolve(_reference_ids(refs), focal.id, visited, backlog, cap)


def resolve_reverse(
    focal_id: str,
    graph: ReferenceGraph,
    visited: set[str],
    backlog: BacklogReader,
    cap: int = MAX_CROSS_REFERENCES,
) -> list[ContextEntity]:
    """Entities whose references mention the focal item."""
    return _resolve(graph.referrers(focal_id), focal_id, visited, backlog, cap)


def traverse_cross_references(
    focal: WorkItem,
    parent: WorkItem | None,
    visited: set[str],
    backlog: BacklogReader,
    reverse: bool = True,
    cap: int = MAX_CROSS_REFERENCES,
) -> CrossReferences:
    """Forward references first, then (when ``reverse``) referrers of the focal."""
    result = CrossReferences()
    result.cross_referenced = resolve_forward(focal, parent, visited, backlog, cap)
    if reverse:
        graph = ReferenceGraph.from_backlog(backlog)
        result.referenced_by = resolve_reverse(focal.id, graph, visited, backlog, cap)
    return result
