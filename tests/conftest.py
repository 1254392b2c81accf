"""Shared test fixtures for backlogctx."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from backlogctx.backlog.models import (
    Actor,
    Document,
    EntityType,
    OperationEntry,
    Reference,
    WorkItem,
)
from backlogctx.backlog.store import InMemoryBacklog


def _items() -> list[WorkItem]:
    return [
        WorkItem(
            id="EPIC-0005",
            title="Search platform",
            type=EntityType.EPIC,
            status="in_progress",
            description="Everything needed to find backlog entries quickly.",
            created_at="2026-01-10T09:00:00Z",
            updated_at="2026-02-01T09:00:00Z",
        ),
        WorkItem(
            id="TASK-0042",
            title="Add BM25 ranking to backlog search",
            parent_id="EPIC-0005",
            status="in_progress",
            description="Replace substring matching with BM25 scoring over titles and descriptions.",
            evidence=["Prototype merged", "Benchmarks recorded"],
            references=[
                Reference(url="https://tracker.example.com/TASK-0050", title="Tokenizer work")
            ],
            created_at="2026-03-01T10:00:00Z",
            updated_at="2026-03-02T09:20:00Z",
        ),
        WorkItem(
            id="TASK-0043",
            title="Search result snippets",
            parent_id="EPIC-0005",
            description="Show where the query matched.",
            created_at="2026-03-01T11:00:00Z",
            updated_at="2026-03-01T11:00:00Z",
        ),
        WorkItem(
            id="TASK-0044",
            title="Legacy epic link cleanup",
            epic_id="EPIC-0005",
            status="done",
            created_at="2026-01-15T11:00:00Z",
            updated_at="2026-01-20T11:00:00Z",
        ),
        WorkItem(
            id="TASK-0045",
            title="Field boosts for ranking",
            parent_id="TASK-0042",
            created_at="2026-03-02T08:00:00Z",
            updated_at="2026-03-02T08:00:00Z",
        ),
        WorkItem(
            id="TASK-0046",
            title="Ranking regression tests",
            parent_id="TASK-0042",
            status="blocked",
            blocked_reason=["Waiting on fixture data"],
            created_at="2026-03-02T08:30:00Z",
            updated_at="2026-03-02T08:30:00Z",
        ),
        WorkItem(
            id="TASK-0047",
            title="Boost tuning notes",
            parent_id="TASK-0045",
            created_at="2026-03-03T08:00:00Z",
            updated_at="2026-03-03T08:00:00Z",
        ),
        WorkItem(
            id="TASK-0050",
            title="Compound word tokenizer",
            description="Split camelCase and hyphenated words.",
            references=[Reference(url="https://tracker.example.com/TASK-0042")],
            created_at="2026-02-20T08:00:00Z",
            updated_at="2026-02-25T08:00:00Z",
        ),
        WorkItem(
            id="TASK-0051",
            title="Ranking dashboard",
            references=[Reference(url="https://wiki.example.com/search", title="See TASK-0042")],
            created_at="2026-02-21T08:00:00Z",
            updated_at="2026-02-21T08:00:00Z",
        ),
        WorkItem(
            id="MLST-0001",
            title="Q2 release",
            type=EntityType.MILESTONE,
            created_at="2026-01-01T00:00:00Z",
            updated_at="2026-01-01T00:00:00Z",
        ),
        WorkItem(
            id="EPIC-0002",
            title="Offline mode",
            type=EntityType.EPIC,
            parent_id="MLST-0001",
            created_at="2026-01-02T00:00:00Z",
            updated_at="2026-01-02T00:00:00Z",
        ),
        WorkItem(
            id="TASK-0200",
            title="Local cache layer",
            parent_id="EPIC-0002",
            created_at="2026-01-03T00:00:00Z",
            updated_at="2026-01-03T00:00:00Z",
        ),
        WorkItem(
            id="TASK-0201",
            title="Cache eviction policy",
            parent_id="TASK-0200",
            created_at="2026-01-04T00:00:00Z",
            updated_at="2026-01-04T00:00:00Z",
        ),
    ]


def _documents() -> list[Document]:
    return [
        Document(
            id="backlog://documents/TASK-0042/design.md",
            path="documents/TASK-0042/design.md",
            title="BM25 design",
            content="# BM25 design\n\nWe rank backlog search results with BM25 and field boosts.",
        ),
        Document(
            id="backlog://documents/ranking-notes.md",
            path="documents/ranking-notes.md",
            title="Ranking notes",
            content="# Ranking notes\n\nObservations on search ranking quality and BM25 tuning.",
        ),
        Document(
            id="backlog://documents/onboarding.md",
            path="documents/onboarding.md",
            title="Onboarding",
            content="# Onboarding\n\nHow to set up a development machine.",
        ),
    ]


def _operations() -> list[OperationEntry]:
    alice = Actor(type="user", name="alice")
    agent = Actor(type="agent", name="codex")
    return [
        OperationEntry(
            ts="2026-02-01T09:00:00Z",
            tool="backlog_update",
            params={"id": "EPIC-0005", "status": "in_progress"},
            resource_id="EPIC-0005",
            actor=alice,
        ),
        OperationEntry(
            ts="2026-03-01T10:00:00Z",
            tool="backlog_create",
            params={"title": "Add BM25 ranking to backlog search", "type": "task"},
            resource_id="TASK-0042",
            actor=alice,
        ),
        OperationEntry(
            ts="2026-03-02T08:00:00Z",
            tool="backlog_create",
            params={"title": "Field boosts for ranking"},
            resource_id="TASK-0045",
            actor=agent,
        ),
        OperationEntry(
            ts="2026-03-02T09:00:00Z",
            tool="backlog_update",
            params={"id": "TASK-0042", "status": "in_progress"},
            resource_id="TASK-0042",
            actor=agent,
        ),
        OperationEntry(
            ts="2026-03-02T09:10:00Z",
            tool="backlog_update",
            params={"id": "TASK-0042", "add_evidence": "Prototype merged"},
            resource_id="TASK-0042",
            actor=agent,
        ),
        OperationEntry(
            ts="2026-03-02T09:20:00Z",
            tool="backlog_update",
            params={"id": "TASK-0042", "status": "done"},
            resource_id="TASK-0042",
            actor=agent,
        ),
    ]


@pytest.fixture
def sample_items() -> list[WorkItem]:
    return _items()


@pytest.fixture
def sample_documents() -> list[Document]:
    return _documents()


@pytest.fixture
def sample_operations() -> list[OperationEntry]:
    return _operations()


@pytest.fixture
def backlog(sample_items, sample_documents, sample_operations) -> InMemoryBacklog:
    """An in-memory backlog with a small search-platform epic."""
    return InMemoryBacklog(sample_items, sample_documents, sample_operations)


@pytest.fixture
def tmp_project(tmp_path: Path, sample_items, sample_documents, sample_operations) -> Path:
    """A project directory with the sample backlog written to .backlog/."""
    backlog_dir = tmp_path / ".backlog"
    items_dir = backlog_dir / "items"
    items_dir.mkdir(parents=True)
    for item in sample_items:
        (items_dir / f"{item.id}.json").write_text(item.model_dump_json())

    for doc in sample_documents:
        path = backlog_dir / doc.path
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(doc.content)

    lines = [json.dumps(op.model_dump(mode="json", by_alias=True)) for op in sample_operations]
    (backlog_dir / "operations.jsonl").write_text("\n".join(lines) + "\n")
    return tmp_path
