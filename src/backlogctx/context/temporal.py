"""Temporal overlay and session memory from the operation log."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Iterable

from backlogctx.backlog.models import OperationEntry
from backlogctx.backlog.protocols import OperationReader
from backlogctx.context.models import ActivityEntry, SessionSummary
from backlogctx.exceptions import CollaboratorError

TOOL_CREATE = "backlog_create"
TOOL_UPDATE = "backlog_update"
TOOL_DELETE = "backlog_delete"
TOOL_WRITE_RESOURCE = "write_resource"

ACTIVITY_LIMIT = 20
OPS_PER_ENTITY = 10
SESSION_GAP_MINUTES = 30
SESSION_READ_LIMIT = 50


def _read(operations: OperationReader, entity_id: str, limit: int) -> list[OperationEntry]:
    entries = operations.read(entity_id=entity_id, limit=limit)
    if not isinstance(entries, list):
        raise CollaboratorError("read_operations", f"expected a list, got {type(entries).__name__}")
    return entries


def parse_ts(ts: str) -> datetime | None:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC."""
    try:
        dt = datetime.fromisoformat(ts.replace("Z", "+00:00"))
    except (ValueError, AttributeError):
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def summarize_operation(op: OperationEntry) -> str:
    """One-line human description of an operation."""
    entity_id = op.resource_id or "unknown"
    params = op.params

    if op.tool == TOOL_CREATE:
        title = params.get("title") or ""
        etype = params.get("type") or "task"
        return f'Created {etype} {entity_id}' + (f': "{title}"' if title else "")

    if op.tool == TOOL_UPDATE:
        changes = []
        if params.get("status"):
            changes.append(f"status → {params['status']}")
        if params.get("title"):
            changes.append(f'title → "{params["title"]}"')
        if params.get("add_evidence"):
            changes.append("added evidence")
        if params.get("set_blocked"):
            changes.append(f'blocked: "{params["set_blocked"]}"')
        if params.get("clear_blocked"):
            changes.append("unblocked")
        if changes:
            return f"Updated {entity_id}: {', '.join(changes)}"
        return f"Updated {entity_id}"

    if op.tool == TOOL_DELETE:
        return f"Deleted {entity_id}"

    if op.tool == TOOL_WRITE_RESOURCE:
        return f"Wrote resource {params.get('uri') or entity_id}"

    return f"{op.tool} on {entity_id}"


def overlay_temporal(
    entity_ids: Iterable[str],
    operations: OperationReader,
    limit: int = ACTIVITY_LIMIT,
) -> list[ActivityEntry]:
    """Recent activity across several entities, newest first.

    Reads up to OPS_PER_ENTITY entries per id, drops repeats of the same
    (timestamp, entity) pair and keeps the newest ``limit`` overall.
    """
    seen: set[tuple[str, str]] = set()
    collected: list[tuple[OperationEntry, str]] = []
    for entity_id in entity_ids:
        for op in _read(operations, entity_id, OPS_PER_ENTITY):
            target = op.resource_id or entity_id
            key = (op.ts, target)
            if key in seen:
                continue
            seen.add(key)
            collected.append((op, target))

    collected.sort(key=lambda pair: pair[0].ts, reverse=True)
    return [
        ActivityEntry(
            ts=op.ts,
            tool=op.tool,
            entity_id=target,
            actor=op.actor.name,
            summary=summarize_operation(op),
        )
        for op, target in collected[:limit]
    ]


def _plural(count: int, noun: str) -> str:
    return f"{count} {noun}{'s' if count != 1 else ''}"


def _session_text(entity_id: str, ops: list[OperationEntry]) -> str:
    counts: dict[str, int] = {}
    statuses: list[str] = []
    added_evidence = False
    created = False

    for op in ops:
        counts[op.tool] = counts.get(op.tool, 0) + 1
        if op.tool == TOOL_UPDATE and op.params.get("status"):
            statuses.append(str(op.params["status"]))
        if op.tool == TOOL_UPDATE and op.params.get("add_evidence"):
            added_evidence = True
        if op.tool == TOOL_CREATE:
            created = True

    parts: list[str] = []
    if created:
        parts.append(f"Created {entity_id}")
    if statuses:
        # ops are newest first, so the first status is the latest transition
        parts.append(f"status → {statuses[0]}")
    if added_evidence:
        parts.append("added evidence")

    updates = counts.get(TOOL_UPDATE, 0)
    if updates and not statuses and not added_evidence:
        parts.append(_plural(updates, "update"))
    writes = counts.get(TOOL_WRITE_RESOURCE, 0)
    if writes:
        parts.append(f"wrote {_plural(writes, 'resource')}")

    if not parts:
        return f"{_plural(len(ops), 'operation')} on {entity_id}"
    return ", ".join(parts)


def derive_session_summary(
    entity_id: str,
    operations: OperationReader,
    gap_minutes: int = SESSION_GAP_MINUTES,
) -> SessionSummary | None:
    """Describe the most recent work session on an entity.

    The newest operation anchors the session. Walking back in time, an entry
    belongs to the session while it has the same actor name and is no more
    than ``gap_minutes`` older than the entry after it.
    """
    ops = _read(operations, entity_id, SESSION_READ_LIMIT)
    if not ops:
        return None

    newest = ops[0]
    gap = timedelta(minutes=gap_minutes)
    session = [newest]
    for prev, op in zip(ops, ops[1:]):
        if op.actor.name != newest.actor.name:
            break
        prev_ts, op_ts = parse_ts(prev.ts), parse_ts(op.ts)
        if prev_ts is None or op_ts is None or prev_ts - op_ts > gap:
            break
        session.append(op)

    return SessionSummary(
        actor=newest.actor.name,
        actor_type=newest.actor.type,
        started_at=session[-1].ts,
        ended_at=session[0].ts,
        operation_count=len(session),
        summary=_session_text(entity_id, session),
    )
