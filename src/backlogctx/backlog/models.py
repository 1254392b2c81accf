"""Backlog data models: work items, documents and operation log entries."""

from __future__ import annotations

import re
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field


class EntityType(str, Enum):
    """Kinds of work item a backlog holds."""

    TASK = "task"
    EPIC = "epic"
    FOLDER = "folder"
    ARTIFACT = "artifact"
    MILESTONE = "milestone"


TYPE_PREFIXES: dict[EntityType, str] = {
    EntityType.TASK: "TASK",
    EntityType.EPIC: "EPIC",
    EntityType.FOLDER: "FLDR",
    EntityType.ARTIFACT: "ARTF",
    EntityType.MILESTONE: "MLST",
}

_PREFIX_TO_TYPE = {prefix: etype for etype, prefix in TYPE_PREFIXES.items()}

_PREFIX_ALT = "|".join(TYPE_PREFIXES.values())

# Anchored form for validating a whole id
ID_PATTERN = re.compile(rf"^({_PREFIX_ALT})-(\d{{4,}})$")

# Unanchored form for finding ids embedded in urls and free text
ID_SEARCH_PATTERN = re.compile(rf"\b(?:{_PREFIX_ALT})-\d{{4,}}\b")

Status = Literal["open", "in_progress", "blocked", "done", "cancelled"]


def is_valid_entity_id(value: object) -> bool:
    return isinstance(value, str) and ID_PATTERN.match(value) is not None


def type_from_id(entity_id: str) -> EntityType:
    """Infer the entity type from an id prefix, defaulting to task."""
    match = ID_PATTERN.match(entity_id)
    if match:
        return _PREFIX_TO_TYPE[match.group(1)]
    return EntityType.TASK


def format_entity_id(num: int, etype: EntityType = EntityType.TASK) -> str:
    return f"{TYPE_PREFIXES[etype]}-{num:04d}"


class Reference(BaseModel):
    """An explicit link attached to a work item."""

    url: str
    title: str | None = None


class WorkItem(BaseModel):
    """A backlog entity (task, epic, folder, artifact or milestone).

    Read-only snapshot owned by storage. ``epic_id`` is the legacy name of
    ``parent_id`` and is only consulted when ``parent_id`` is unset.
    """

    id: str
    title: str
    status: Status = "open"
    type: EntityType = EntityType.TASK
    parent_id: str | None = None
    epic_id: str | None = None
    description: str | None = None
    evidence: list[str] = Field(default_factory=list)
    blocked_reason: list[str] = Field(default_factory=list)
    references: list[Reference] = Field(default_factory=list)
    created_at: str = ""
    updated_at: str = ""

    model_config = {"frozen": True, "extra": "ignore"}

    @property
    def effective_parent_id(self) -> str | None:
        return self.parent_id or self.epic_id or None

    def searchable_text(self) -> str:
        """Text used for term coverage checks (title, description, evidence)."""
        return " ".join([self.title, self.description or "", " ".join(self.evidence)])

    def embedding_text(self) -> str:
        return f"{self.title} {self.description or ''}".strip()


class Document(BaseModel):
    """A markdown document attached to the backlog."""

    id: str
    path: str
    title: str
    content: str = ""

    model_config = {"frozen": True, "extra": "ignore"}

    def searchable_text(self) -> str:
        return f"{self.title} {self.content}"

    def embedding_text(self) -> str:
        return f"{self.title} {self.content}".strip()


class Actor(BaseModel):
    """Who performed an operation."""

    type: Literal["user", "agent"] = "user"
    name: str = "unknown"


class OperationEntry(BaseModel):
    """One write operation recorded in the operation log."""

    ts: str
    tool: str
    params: dict[str, Any] = Field(default_factory=dict)
    result: Any = None
    # The log on disk writes this key as "resourceId"
    resource_id: str | None = Field(default=None, alias="resourceId")
    actor: Actor = Field(default_factory=Actor)

    model_config = {"frozen": True, "extra": "ignore", "populate_by_name": True}
