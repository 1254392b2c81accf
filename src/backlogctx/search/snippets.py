"""Plain-text match snippets for search results."""

from __future__ import annotations

import re

from pydantic import BaseModel, Field

from backlogctx.backlog.models import Document, WorkItem

SNIPPET_WINDOW = 120
SNIPPET_LEAD = 30

_WS_RE = re.compile(r"\s+")


class Snippet(BaseModel):
    """Where a query matched: the first matching field and an excerpt of it."""

    field: str
    text: str
    matched_fields: list[str] = Field(default_factory=list)


def generate_item_snippet(item: WorkItem, query: str) -> Snippet:
    fields = [
        ("title", item.title),
        ("description", item.description or ""),
        ("evidence", " ".join(item.evidence)),
        ("blocked_reason", " ".join(item.blocked_reason)),
        ("references", " ".join(f"{r.title or ''} {r.url}" for r in item.references)),
    ]
    return _snippet_from_fields(fields, query)


def generate_document_snippet(document: Document, query: str) -> Snippet:
    fields = [
        ("title", document.title),
        ("content", document.content),
    ]
    return _snippet_from_fields(fields, query)


def _snippet_from_fields(fields: list[tuple[str, str]], query: str) -> Snippet:
    """Excerpt the first field containing any query word.

    Fields are scanned in the given priority order. The excerpt starts
    SNIPPET_LEAD chars before the earliest match and spans at most
    SNIPPET_WINDOW chars, with "..." marking a cut on either side.
    """
    words = [w for w in query.lower().strip().split() if w]
    matched: list[str] = []
    first_field = ""
    first_text = ""

    for name, value in fields:
        if not value:
            continue
        lowered = value.lower()
        if not any(w in lowered for w in words):
            continue

        matched.append(name)
        if first_field:
            continue

        first_field = name
        earliest = min(pos for pos in (lowered.find(w) for w in words) if pos != -1)
        start = max(0, earliest - SNIPPET_LEAD)
        end = min(len(value), start + SNIPPET_WINDOW)
        text = value[start:end].strip()
        if start > 0:
            text = "..." + text
        if end < len(value):
            text = text + "..."
        first_text = _WS_RE.sub(" ", text)

    if not first_field:
        return Snippet(field="title", text=fields[0][1] if fields else "", matched_fields=[])

    return Snippet(field=first_field, text=first_text, matched_fields=matched)
