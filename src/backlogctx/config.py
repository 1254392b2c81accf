"""Configuration management for backlogctx."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from backlogctx.exceptions import ConfigError

BACKLOGCTX_DIR = ".backlogctx"
CONFIG_FILE = "config.json"
INDEX_FILE = "index.json"


class SearchConfig(BaseModel):
    """Retrieval index and fusion configuration."""

    hybrid: bool = True
    text_weight: float = Field(default=0.7, ge=0.0)
    vector_weight: float = Field(default=0.3, ge=0.0)
    coordination_weight: float = Field(default=0.5, ge=0.0)
    title_coordination_weight: float = Field(default=0.3, ge=0.0)
    vector_similarity: float = Field(default=0.2, ge=0.0, le=1.0)
    embedding_dim: int = Field(default=256, gt=0)
    snapshot_debounce_s: float = Field(default=1.0, ge=0.0)
    snapshot_path: str | None = None


class HydrationConfig(BaseModel):
    """Context hydration pipeline configuration."""

    default_depth: int = Field(default=1, ge=1, le=3)
    default_max_tokens: int = Field(default=4000, gt=0)
    activity_limit: int = Field(default=20, ge=0)
    session_gap_minutes: int = Field(default=30, gt=0)
    max_cross_references: int = Field(default=10, ge=0)
    reverse_references: bool = True
    max_semantic_entities: int = Field(default=5, ge=0)
    max_semantic_documents: int = Field(default=5, ge=0)


class ProjectConfig(BaseModel):
    """Full project configuration."""

    name: str = ""
    root_path: str = "."
    backlog_dir: str = ".backlog"
    search: SearchConfig = Field(default_factory=SearchConfig)
    hydration: HydrationConfig = Field(default_factory=HydrationConfig)


def find_project_root(start: Path | None = None) -> Path | None:
    """Walk up from `start` looking for a .backlogctx directory."""
    current = (start or Path.cwd()).resolve()
    while current != current.parent:
        if (current / BACKLOGCTX_DIR).is_dir():
            return current
        current = current.parent
    if (current / BACKLOGCTX_DIR).is_dir():
        return current
    return None


def get_backlogctx_dir(root: Path) -> Path:
    """Get the .backlogctx directory for a project root."""
    return root / BACKLOGCTX_DIR


def get_index_path(root: Path, config: ProjectConfig) -> Path:
    """Resolve where the retrieval index snapshot lives."""
    if config.search.snapshot_path:
        return Path(config.search.snapshot_path).expanduser()
    return get_backlogctx_dir(root) / INDEX_FILE


def load_config(root: Path) -> ProjectConfig:
    """Load configuration from .backlogctx/config.json."""
    config_path = get_backlogctx_dir(root) / CONFIG_FILE
    if config_path.exists():
        try:
            data = json.loads(config_path.read_text())
            return ProjectConfig(**data)
        except (json.JSONDecodeError, ValidationError) as exc:
            raise ConfigError(f"Invalid config file {config_path}: {exc}") from exc
    return ProjectConfig(name=root.name, root_path=str(root))


def save_config(root: Path, config: ProjectConfig) -> None:
    """Save configuration to .backlogctx/config.json."""
    ctx_dir = get_backlogctx_dir(root)
    ctx_dir.mkdir(parents=True, exist_ok=True)
    config_path = ctx_dir / CONFIG_FILE
    config_path.write_text(json.dumps(config.model_dump(), indent=2))


def set_config_value(config: ProjectConfig, key: str, value: Any) -> ProjectConfig:
    """Set a nested config value using dot notation (e.g., 'search.text_weight')."""
    parts = key.split(".")
    data = config.model_dump()
    target = data
    for part in parts[:-1]:
        if part not in target or not isinstance(target[part], dict):
            raise KeyError(f"Invalid config key: {key}")
        target = target[part]
    if parts[-1] not in target:
        raise KeyError(f"Invalid config key: {key}")
    target[parts[-1]] = value
    try:
        return ProjectConfig(**data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid value for {key}: {value!r}") from exc
