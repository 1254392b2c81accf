"""Context hydration for backlog work items.

Assembles a token-budgeted, fidelity-graded bundle of everything relevant
to one work item: its hierarchy, cross-references, related search hits,
recent activity and last work session.

Usage:
    from backlogctx.context import ContextRequest, HydrationEngine

    engine = HydrationEngine(backlog, search=index.search_all, operations=backlog)
    result = await engine.hydrate(ContextRequest(id="TASK-0042"))
    print(result.render())
"""

from backlogctx.context.engine import ContextRequest, HydrationEngine, hydrate_context
from backlogctx.context.models import (
    ActivityEntry,
    ContextDocument,
    ContextEntity,
    Fidelity,
    HydrationMetadata,
    HydrationResult,
    SessionSummary,
)

__all__ = [
    "ContextRequest",
    "HydrationEngine",
    "hydrate_context",
    "ActivityEntry",
    "ContextDocument",
    "ContextEntity",
    "Fidelity",
    "HydrationMetadata",
    "HydrationResult",
    "SessionSummary",
]
