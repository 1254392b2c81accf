"""Backlog data model and storage collaborators."""

from backlogctx.backlog.models import (
    Actor,
    Document,
    EntityType,
    OperationEntry,
    Reference,
    WorkItem,
)
from backlogctx.backlog.protocols import BacklogReader, OperationReader, SearchFn
from backlogctx.backlog.store import FileBacklog, InMemoryBacklog

__all__ = [
    "Actor",
    "Document",
    "EntityType",
    "OperationEntry",
    "Reference",
    "WorkItem",
    "BacklogReader",
    "OperationReader",
    "SearchFn",
    "FileBacklog",
    "InMemoryBacklog",
]
