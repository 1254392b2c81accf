"""Tests for token estimation and budget packing."""

from __future__ import annotations

from backlogctx.backlog.models import Document, Reference, WorkItem
from backlogctx.context.budget import (
    METADATA_OVERHEAD,
    BudgetInput,
    apply_budget,
    document_cost,
    downgrade_entity,
    entity_cost,
    estimate_tokens,
)
from backlogctx.context.models import (
    ActivityEntry,
    ContextDocument,
    ContextEntity,
    Fidelity,
    SessionSummary,
)


def _entity(n: int, fidelity: Fidelity = Fidelity.SUMMARY, **kwargs) -> ContextEntity:
    item = WorkItem(
        id=f"TASK-{n:04d}",
        title=f"Work item number {n} with a reasonably long title",
        description="A description that only appears at full fidelity. " * 3,
        created_at="2026-01-01T00:00:00Z",
        updated_at="2026-01-02T00:00:00Z",
        **kwargs,
    )
    return ContextEntity.from_item(item, fidelity)


def _activity(n: int) -> ActivityEntry:
    return ActivityEntry(
        ts=f"2026-01-01T00:{n:02d}:00Z",
        tool="backlog_update",
        entity_id="TASK-0001",
        actor="codex",
        summary="Updated TASK-0001: status → in_progress",
    )


class TestEstimator:
    def test_ceil_quarter(self):
        assert estimate_tokens("") == 0
        assert estimate_tokens(None) == 0
        assert estimate_tokens("abcd") == 1
        assert estimate_tokens("abcde") == 2

    def test_fidelity_ordering(self):
        full = _entity(1, Fidelity.FULL)
        summary = downgrade_entity(full, Fidelity.SUMMARY)
        reference = downgrade_entity(full, Fidelity.REFERENCE)
        assert entity_cost(full) > entity_cost(summary) > entity_cost(reference)

    def test_reference_overhead(self):
        plain = _entity(1)
        linked = _entity(1, references=[Reference(url="https://x.example/TASK-0002")])
        assert entity_cost(linked) - entity_cost(plain) == estimate_tokens("https://x.example/TASK-0002") + 10


class TestDowngrade:
    def test_never_restores(self):
        reference = downgrade_entity(_entity(1, Fidelity.FULL), Fidelity.REFERENCE)
        again = downgrade_entity(reference, Fidelity.SUMMARY)
        assert again.fidelity == Fidelity.REFERENCE
        assert again.updated_at is None

    def test_summary_drops_full_fields(self):
        summary = downgrade_entity(_entity(1, Fidelity.FULL), Fidelity.SUMMARY)
        assert summary.description is None
        assert summary.updated_at == "2026-01-02T00:00:00Z"


class TestApplyBudget:
    def test_everything_fits(self):
        data = BudgetInput(
            focal=_entity(1, Fidelity.FULL),
            parent=_entity(2),
            children=[_entity(3), _entity(4)],
            activity=[_activity(1)],
        )
        result = apply_budget(data, 10_000)
        assert not result.truncated
        assert [c.id for c in result.children] == ["TASK-0003", "TASK-0004"]
        assert len(result.activity) == 1
        expected = (
            METADATA_OVERHEAD
            + entity_cost(data.focal)
            + entity_cost(data.parent)
            + sum(entity_cost(c) for c in data.children)
        )
        assert result.tokens_used > expected

    def test_focal_and_parent_always_kept(self):
        data = BudgetInput(
            focal=_entity(1, Fidelity.FULL), parent=_entity(2), children=[_entity(3)]
        )
        result = apply_budget(data, 1)
        assert result.focal.id == "TASK-0001"
        assert result.focal.fidelity == Fidelity.FULL
        assert result.parent.id == "TASK-0002"
        assert result.children == []
        assert result.truncated

    def test_parent_capped_at_summary(self):
        data = BudgetInput(focal=_entity(1, Fidelity.FULL), parent=_entity(2, Fidelity.FULL))
        result = apply_budget(data, 10_000)
        assert result.parent.fidelity == Fidelity.SUMMARY

    def test_downgrade_to_reference(self):
        focal = _entity(1, Fidelity.FULL)
        child = _entity(3)
        reference_cost = entity_cost(downgrade_entity(child, Fidelity.REFERENCE))
        budget = METADATA_OVERHEAD + entity_cost(focal) + reference_cost
        result = apply_budget(BudgetInput(focal=focal, children=[child]), budget)
        assert [c.fidelity for c in result.children] == [Fidelity.REFERENCE]
        assert result.truncated
        assert result.tokens_used == budget

    def test_category_stops_at_first_miss(self):
        focal = _entity(1, Fidelity.FULL)
        big = _entity(3, references=[Reference(url="https://x.example/" + "a" * 400)])
        small = _entity(4)
        budget = METADATA_OVERHEAD + entity_cost(focal) + entity_cost(small) + 1
        result = apply_budget(BudgetInput(focal=focal, children=[small, big, small]), budget)
        assert [c.id for c in result.children] == ["TASK-0004"]
        assert result.truncated

    def test_priority_order(self):
        focal = _entity(1, Fidelity.FULL)
        child = _entity(3)
        sibling = _entity(4)
        budget = METADATA_OVERHEAD + entity_cost(focal) + entity_cost(child)
        result = apply_budget(
            BudgetInput(focal=focal, children=[child], siblings=[sibling]), budget
        )
        assert [c.id for c in result.children] == ["TASK-0003"]
        assert result.siblings == []

    def test_session_before_children(self):
        focal = _entity(1, Fidelity.FULL)
        session = SessionSummary(
            actor="codex",
            actor_type="agent",
            started_at="2026-01-01T00:00:00Z",
            ended_at="2026-01-01T00:20:00Z",
            operation_count=3,
            summary="status → done",
        )
        result = apply_budget(
            BudgetInput(focal=focal, session_summary=session, children=[_entity(3)]),
            METADATA_OVERHEAD + entity_cost(focal) + 60,
        )
        assert result.session_summary is not None
        assert result.children == []

    def test_activity_is_drop_only(self):
        focal = _entity(1, Fidelity.FULL)
        budget = METADATA_OVERHEAD + entity_cost(focal) + 20
        result = apply_budget(
            BudgetInput(focal=focal, activity=[_activity(1), _activity(2)]), budget
        )
        assert result.activity == []
        assert result.truncated

    def test_documents_downgrade(self):
        focal = _entity(1, Fidelity.FULL)
        doc = ContextDocument.from_document(
            Document(id="backlog://a.md", path="a.md", title="A", content="x" * 400)
        )
        reference = ContextDocument(uri=doc.uri, title=doc.title, path=doc.path, fidelity=Fidelity.REFERENCE)
        budget = METADATA_OVERHEAD + entity_cost(focal) + document_cost(reference)
        result = apply_budget(BudgetInput(focal=focal, semantic_resources=[doc]), budget)
        assert [d.fidelity for d in result.related_resources] == [Fidelity.REFERENCE]
        assert result.related_resources[0].snippet is None
