"""Backlog storage collaborators.

``FileBacklog`` reads a backlog laid out on disk as::

    <root>/.backlog/items/*.json          one work item per file
    <root>/.backlog/documents/**/*.md     markdown documents
    <root>/.backlog/operations.jsonl      append-only operation log

``InMemoryBacklog`` holds the same data in lists, for embedding and tests.
Both satisfy ``BacklogReader`` and ``OperationReader``.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Iterable

from pydantic import ValidationError

from backlogctx.backlog.models import Document, OperationEntry, WorkItem
from backlogctx.exceptions import BacklogStoreError

logger = logging.getLogger("backlogctx.backlog")

ITEMS_DIR = "items"
DOCUMENTS_DIR = "documents"
OPERATIONS_FILE = "operations.jsonl"
DOCUMENT_URI_PREFIX = "backlog://"

DEFAULT_OPERATION_LIMIT = 50


def _document_title(text: str, fallback: str) -> str:
    for line in text.splitlines():
        if line.startswith("# "):
            return line[2:].strip()
    return fallback


def _filter_items(
    items: Iterable[WorkItem], parent_id: str | None, limit: int | None
) -> list[WorkItem]:
    result = [
        item for item in items if parent_id is None or item.effective_parent_id == parent_id
    ]
    if limit is not None:
        result = result[:limit]
    return result


def _filter_operations(
    entries: list[OperationEntry], entity_id: str | None, limit: int | None
) -> list[OperationEntry]:
    if entity_id:
        entries = [e for e in entries if e.resource_id == entity_id]
    # Newest first; among equal timestamps the later-logged entry wins
    entries = sorted(reversed(entries), key=lambda e: e.ts, reverse=True)
    return entries[: limit if limit is not None else DEFAULT_OPERATION_LIMIT]


class InMemoryBacklog:
    """A backlog held entirely in memory."""

    def __init__(
        self,
        items: Iterable[WorkItem] = (),
        documents: Iterable[Document] = (),
        operations: Iterable[OperationEntry] = (),
    ) -> None:
        self._items: dict[str, WorkItem] = {item.id: item for item in items}
        self._documents: list[Document] = list(documents)
        self._operations: list[OperationEntry] = list(operations)

    def get_item(self, item_id: str) -> WorkItem | None:
        return self._items.get(item_id)

    def list_items(self, parent_id: str | None = None, limit: int | None = None) -> list[WorkItem]:
        return _filter_items(self._items.values(), parent_id, limit)

    def list_documents(self) -> list[Document]:
        return list(self._documents)

    def read(self, entity_id: str | None = None, limit: int | None = None) -> list[OperationEntry]:
        return _filter_operations(self._operations, entity_id, limit)

    def put_item(self, item: WorkItem) -> None:
        self._items[item.id] = item

    def put_document(self, document: Document) -> None:
        self._documents = [d for d in self._documents if d.id != document.id] + [document]

    def log(self, entry: OperationEntry) -> None:
        self._operations.append(entry)


class FileBacklog:
    """A backlog read from a ``.backlog`` directory.

    Files are read on first access and cached; call ``reload()`` to pick up
    changes. Unreadable or invalid files are skipped with a warning.
    """

    def __init__(self, backlog_dir: str | Path) -> None:
        self.backlog_dir = Path(backlog_dir)
        self._items: dict[str, WorkItem] | None = None
        self._documents: list[Document] | None = None
        self._operations: list[OperationEntry] | None = None

    @classmethod
    def open(cls, root: str | Path, backlog_dir: str = ".backlog") -> FileBacklog:
        path = Path(root) / backlog_dir
        if not path.is_dir():
            raise BacklogStoreError(f"No backlog directory at {path}")
        return cls(path)

    def reload(self) -> None:
        self._items = None
        self._documents = None
        self._operations = None

    # -- Loading -----------------------------------------------------------

    def _load_items(self) -> dict[str, WorkItem]:
        items: dict[str, WorkItem] = {}
        items_dir = self.backlog_dir / ITEMS_DIR
        if not items_dir.is_dir():
            return items
        for path in sorted(items_dir.glob("*.json")):
            try:
                item = WorkItem.model_validate_json(path.read_text(encoding="utf-8"))
            except (OSError, ValidationError) as e:
                logger.warning(f"Skipping unreadable item file {path}: {e}")
                continue
            items[item.id] = item
        return items

    def _load_documents(self) -> list[Document]:
        docs: list[Document] = []
        docs_dir = self.backlog_dir / DOCUMENTS_DIR
        if not docs_dir.is_dir():
            return docs
        for path in sorted(docs_dir.rglob("*.md")):
            try:
                content = path.read_text(encoding="utf-8", errors="replace")
            except OSError as e:
                logger.warning(f"Skipping unreadable document {path}: {e}")
                continue
            rel = path.relative_to(self.backlog_dir).as_posix()
            docs.append(
                Document(
                    id=f"{DOCUMENT_URI_PREFIX}{rel}",
                    path=rel,
                    title=_document_title(content, path.stem),
                    content=content,
                )
            )
        return docs

    def _load_operations(self) -> list[OperationEntry]:
        entries: list[OperationEntry] = []
        log_path = self.backlog_dir / OPERATIONS_FILE
        if not log_path.exists():
            return entries
        try:
            lines = log_path.read_text(encoding="utf-8").splitlines()
        except OSError as e:
            logger.warning(f"Cannot read operation log {log_path}: {e}")
            return entries
        for lineno, line in enumerate(lines, 1):
            if not line.strip():
                continue
            try:
                entries.append(OperationEntry.model_validate(json.loads(line)))
            except (json.JSONDecodeError, ValidationError):
                logger.warning(f"Skipping malformed operation at {log_path}:{lineno}")
        return entries

    # -- BacklogReader -----------------------------------------------------

    def get_item(self, item_id: str) -> WorkItem | None:
        if self._items is None:
            self._items = self._load_items()
        return self._items.get(item_id)

    def list_items(self, parent_id: str | None = None, limit: int | None = None) -> list[WorkItem]:
        if self._items is None:
            self._items = self._load_items()
        return _filter_items(self._items.values(), parent_id, limit)

    def list_documents(self) -> list[Document]:
        if self._documents is None:
            self._documents = self._load_documents()
        return list(self._documents)

    # -- OperationReader ---------------------------------------------------

    def read(self, entity_id: str | None = None, limit: int | None = None) -> list[OperationEntry]:
        if self._operations is None:
            self._operations = self._load_operations()
        return _filter_operations(self._operations, entity_id, limit)
