"""Collaborator interfaces consumed by the hydration pipeline.

The engine never owns storage. A host hands it objects satisfying these
protocols; ``FileBacklog`` and ``InMemoryBacklog`` in ``backlog.store`` are
the implementations shipped with the package.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, Sequence, runtime_checkable

from backlogctx.backlog.models import Document, OperationEntry, WorkItem

if TYPE_CHECKING:
    from backlogctx.search.index import SearchHit


@runtime_checkable
class BacklogReader(Protocol):
    """Read access to work items and documents."""

    def get_item(self, item_id: str) -> WorkItem | None: ...

    def list_items(
        self, parent_id: str | None = None, limit: int | None = None
    ) -> list[WorkItem]: ...

    def list_documents(self) -> list[Document]: ...


class SearchFn(Protocol):
    """Free-text retrieval over items and documents."""

    async def __call__(
        self,
        query: str,
        types: Sequence[str] | None = None,
        limit: int = 20,
    ) -> list[SearchHit]: ...


@runtime_checkable
class OperationReader(Protocol):
    """Reverse-chronological access to the operation log."""

    def read(
        self, entity_id: str | None = None, limit: int | None = None
    ) -> list[OperationEntry]: ...
