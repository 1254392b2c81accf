"""Relational expansion: parent, ancestors, children, descendants, siblings.

Walks the parent/child hierarchy around a focal item using only
``get_item`` and ``list_items(parent_id=...)``. The caller-owned ``visited``
set is read and extended here; it is what keeps a cyclic parent chain from
looping and keeps one id out of two role arrays.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from backlogctx.backlog.models import Document, WorkItem
from backlogctx.backlog.protocols import BacklogReader
from backlogctx.context.models import ContextDocument, ContextEntity, Fidelity
from backlogctx.exceptions import CollaboratorError

MIN_DEPTH = 1
MAX_DEPTH = 3
CHILD_LIST_LIMIT = 50


@dataclass
class RelationalExpansion:
    parent: ContextEntity | None = None
    parent_item: WorkItem | None = None
    children: list[ContextEntity] = field(default_factory=list)
    siblings: list[ContextEntity] = field(default_factory=list)
    ancestors: list[ContextEntity] = field(default_factory=list)
    descendants: list[ContextEntity] = field(default_factory=list)
    related_resources: list[ContextDocument] = field(default_factory=list)


def clamp_depth(depth: int | None) -> int:
    if depth is None:
        return MIN_DEPTH
    return max(MIN_DEPTH, min(MAX_DEPTH, int(depth)))


def _list_children(backlog: BacklogReader, parent_id: str) -> list[WorkItem]:
    children = backlog.list_items(parent_id=parent_id, limit=CHILD_LIST_LIMIT)
    if not isinstance(children, list):
        raise CollaboratorError("list_items", f"expected a list, got {type(children).__name__}")
    return children


def _walk_ancestors(
    focal: WorkItem, max_hops: int, visited: set[str], backlog: BacklogReader
) -> list[WorkItem]:
    """Follow parent links upward, closest first, stopping at a gap or a cycle."""
    chain: list[WorkItem] = []
    current = focal
    for _ in range(max_hops):
        pid = current.effective_parent_id
        if not pid or pid in visited:
            break
        ancestor = backlog.get_item(pid)
        if ancestor is None:
            break
        visited.add(pid)
        chain.append(ancestor)
        current = ancestor
    return chain


def _walk_descendants(
    focal_id: str, max_depth: int, visited: set[str], backlog: BacklogReader
) -> list[tuple[WorkItem, int]]:
    """Breadth-first walk down the hierarchy, one level per hop."""
    found: list[tuple[WorkItem, int]] = []
    level = [focal_id]
    for hop in range(1, max_depth + 1):
        next_level: list[str] = []
        for parent_id in level:
            for child in _list_children(backlog, parent_id):
                if child.id in visited:
                    continue
                visited.add(child.id)
                found.append((child, hop))
                next_level.append(child.id)
        if not next_level:
            break
        level = next_level
    return found


def find_related_documents(entity_ids: list[str], documents: list[Document]) -> list[Document]:
    """Documents whose path mentions any of the ids (case-insensitive)."""
    needles = list(dict.fromkeys(i.lower() for i in entity_ids if i))
    if not needles:
        return []
    return [doc for doc in documents if any(n in doc.path.lower() for n in needles)]


def expand_relations(
    focal: WorkItem,
    depth: int,
    visited: set[str],
    backlog: BacklogReader,
) -> RelationalExpansion:
    """Collect the focal item's hierarchy neighbourhood.

    ``depth`` is clamped to [1, 3] and bounds hops in both directions.
    Parent, children and siblings come back at summary fidelity; ancestors
    beyond the parent and descendants below the children come back at
    reference fidelity with ``graph_depth`` set to their hop count.
    """
    depth = clamp_depth(depth)
    visited.add(focal.id)
    result = RelationalExpansion()

    chain = _walk_ancestors(focal, depth, visited, backlog)
    if chain:
        result.parent_item = chain[0]
        result.parent = ContextEntity.from_item(chain[0], Fidelity.SUMMARY)
    result.ancestors = [
        ContextEntity.from_item(item, Fidelity.REFERENCE, graph_depth=hop)
        for hop, item in enumerate(chain[1:], start=2)
    ]

    child_items: list[WorkItem] = []
    for item, hop in _walk_descendants(focal.id, depth, visited, backlog):
        if hop == 1:
            child_items.append(item)
            result.children.append(ContextEntity.from_item(item, Fidelity.SUMMARY))
        else:
            result.descendants.append(
                ContextEntity.from_item(item, Fidelity.REFERENCE, graph_depth=hop)
            )

    parent_id = focal.effective_parent_id
    if parent_id:
        for sibling in _list_children(backlog, parent_id):
            if sibling.id == focal.id or sibling.id in visited:
                continue
            visited.add(sibling.id)
            result.siblings.append(ContextEntity.from_item(sibling, Fidelity.SUMMARY))

    doc_ids = [focal.id]
    if parent_id:
        doc_ids.append(parent_id)
    doc_ids.extend(item.id for item in chain)
    doc_ids.extend(item.id for item in child_items)
    documents = backlog.list_documents()
    if not isinstance(documents, list):
        raise CollaboratorError("list_documents", f"expected a list, got {type(documents).__name__}")
    result.related_resources = [
        ContextDocument.from_document(doc, Fidelity.SUMMARY)
        for doc in find_related_documents(doc_ids, documents)
    ]
    return result
