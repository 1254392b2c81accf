"""Command-line interface for backlogctx."""

from __future__ import annotations

import asyncio
import json
import logging
import sys
import time
from pathlib import Path

import click
from rich.logging import RichHandler

from backlogctx import __version__
from backlogctx.backlog.models import is_valid_entity_id
from backlogctx.backlog.store import FileBacklog
from backlogctx.config import (
    ProjectConfig,
    find_project_root,
    get_index_path,
    load_config,
    save_config,
    set_config_value,
)
from backlogctx.context.engine import ContextRequest, HydrationEngine
from backlogctx.exceptions import BacklogContextError, ConfigError
from backlogctx.search.index import RetrievalIndex
from backlogctx.ui.console import Console

console = Console()


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.WARNING
    logger = logging.getLogger("backlogctx")
    logger.handlers.clear()
    logger.addHandler(RichHandler(console=console.console, show_path=False))
    logger.setLevel(level)


def _get_project_root(path: str | None = None) -> Path:
    """Find the project root or error."""
    if path:
        root = Path(path).resolve()
        if not root.exists():
            console.error(f"Path does not exist: {path}")
            sys.exit(1)
        return root

    root = find_project_root()
    if root is None:
        console.error(
            "No backlogctx project found. Run 'backlogctx init' first, "
            "or specify a path with --path."
        )
        sys.exit(1)
    return root


def _load(root: Path) -> tuple[ProjectConfig, FileBacklog]:
    try:
        config = load_config(root)
        backlog = FileBacklog.open(root, config.backlog_dir)
    except BacklogContextError as e:
        console.error(str(e))
        sys.exit(1)
    return config, backlog


async def _open_index(
    root: Path, config: ProjectConfig, backlog: FileBacklog, force: bool = False
) -> tuple[RetrievalIndex, bool]:
    index = RetrievalIndex(config.search, snapshot_path=get_index_path(root, config))
    rebuilt = await index.build(backlog.list_items(), backlog.list_documents(), force=force)
    return index, rebuilt


async def _refresh_index(
    root: Path, config: ProjectConfig, backlog: FileBacklog, force: bool
) -> tuple[RetrievalIndex, bool]:
    index, rebuilt = await _open_index(root, config, backlog, force=force)
    await index.close()
    return index, rebuilt


@click.group()
@click.version_option(version=__version__, prog_name="backlogctx")
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging.")
def main(verbose: bool):
    """backlogctx - token-budgeted context for backlog work items."""
    _setup_logging(verbose)


@main.command()
@click.option("--path", "-p", default=None, help="Path to the project root.")
@click.option("--backlog-dir", default=None, help="Backlog directory relative to the root.")
@click.option("--no-hybrid", is_flag=True, help="Disable vector search (lexical only).")
def init(path: str | None, backlog_dir: str | None, no_hybrid: bool):
    """Initialize backlogctx for a project and build the search index."""
    root = Path(path or ".").resolve()
    if not root.exists():
        console.error(f"Path does not exist: {root}")
        sys.exit(1)

    console.banner()
    console.info(f"Initializing backlogctx for: {root}")

    try:
        config = load_config(root)
    except ConfigError as e:
        console.error(str(e))
        sys.exit(1)
    config.name = root.name
    config.root_path = str(root)
    if backlog_dir:
        config.backlog_dir = backlog_dir
    if no_hybrid:
        config.search.hybrid = False

    save_config(root, config)
    (root / config.backlog_dir / "items").mkdir(parents=True, exist_ok=True)
    console.success("Configuration saved")

    _do_index(root, force=True)


@main.command()
@click.option("--path", "-p", default=None, help="Path to the project root.")
@click.option("--full", is_flag=True, help="Ignore the snapshot and rebuild from the backlog.")
def reindex(path: str | None, full: bool):
    """Rebuild the retrieval index."""
    root = _get_project_root(path)
    _do_index(root, force=full)


def _do_index(root: Path, force: bool) -> None:
    config, backlog = _load(root)
    start_time = time.time()

    with console.indexing_progress() as progress:
        progress.add_task("Indexing backlog...", total=None)
        index, rebuilt = asyncio.run(_refresh_index(root, config, backlog, force))

    elapsed = time.time() - start_time
    items = len(backlog.list_items())
    documents = len(backlog.list_documents())
    console.success(f"Indexed {items} items and {documents} documents in {elapsed:.1f}s")
    console.show_index_stats(
        {
            "items": items,
            "documents": documents,
            "hybrid": index.is_hybrid_active,
            "rebuilt": rebuilt,
        }
    )


@main.command()
@click.argument("query")
@click.option("--path", "-p", default=None, help="Path to the project root.")
@click.option("--limit", "-n", default=20, type=int, help="Maximum results (default: 20).")
@click.option("--type", "-t", "types", multiple=True, help="Restrict to entity types / 'document'.")
@click.option("--status", "-s", "statuses", multiple=True, help="Filter by status.")
@click.option("--parent", default=None, help="Filter by parent id.")
@click.option(
    "--sort",
    type=click.Choice(["relevant", "recent"]),
    default="relevant",
    help="Ranking mode (default: relevant).",
)
@click.option("--json", "as_json", is_flag=True, help="Print results as JSON.")
def search(
    query: str,
    path: str | None,
    limit: int,
    types: tuple[str, ...],
    statuses: tuple[str, ...],
    parent: str | None,
    sort: str,
    as_json: bool,
):
    """Search backlog items and documents."""
    root = _get_project_root(path)
    config, backlog = _load(root)
    filters = {"status": list(statuses) or None, "parent_id": parent}

    async def _run():
        index, _ = await _open_index(root, config, backlog)
        try:
            return await index.search_all(
                query, limit=limit, types=list(types) or None, filters=filters, sort=sort
            )
        finally:
            await index.close()

    hits = asyncio.run(_run())

    if as_json:
        payload = [
            {
                "id": h.id,
                "type": h.type,
                "score": round(h.score, 4),
                "title": h.title,
                "snippet": h.snippet.model_dump() if h.snippet else None,
            }
            for h in hits
        ]
        click.echo(json.dumps(payload, indent=2))
    else:
        console.show_search_results(hits)


@main.command()
@click.argument("target")
@click.option("--path", "-p", default=None, help="Path to the project root.")
@click.option("--depth", "-d", default=None, type=int, help="Hierarchy depth, 1-3.")
@click.option("--max-tokens", "-b", default=None, type=int, help="Token budget.")
@click.option("--no-related", is_flag=True, help="Skip search-based enrichment.")
@click.option("--no-activity", is_flag=True, help="Skip activity and session memory.")
@click.option("--json", "as_json", is_flag=True, help="Print the agent payload as JSON.")
@click.option("--markdown", "as_markdown", is_flag=True, help="Print the markdown rendering.")
def context(
    target: str,
    path: str | None,
    depth: int | None,
    max_tokens: int | None,
    no_related: bool,
    no_activity: bool,
    as_json: bool,
    as_markdown: bool,
):
    """Hydrate context for a work item id or a free-text query.

    Examples:

        backlogctx context TASK-0042

        backlogctx context TASK-0042 --depth 2 --max-tokens 2000 --json

        backlogctx context "search ranking regression"
    """
    root = _get_project_root(path)
    config, backlog = _load(root)
    hcfg = config.hydration

    is_id = is_valid_entity_id(target.upper())
    request = ContextRequest(
        id=target.upper() if is_id else None,
        query=None if is_id else target,
        depth=depth if depth is not None else hcfg.default_depth,
        max_tokens=max_tokens if max_tokens is not None else hcfg.default_max_tokens,
        include_related=not no_related,
        include_activity=not no_activity,
    )

    async def _run():
        index, _ = await _open_index(root, config, backlog)
        try:
            engine = HydrationEngine(
                backlog, search=index.search_all, operations=backlog, config=hcfg
            )
            return await engine.hydrate(request)
        finally:
            await index.close()

    try:
        result = asyncio.run(_run())
    except BacklogContextError as e:
        console.error(str(e))
        sys.exit(1)

    if result is None:
        console.error(f"No work item found for: {target}")
        sys.exit(1)

    if as_json:
        click.echo(json.dumps(result.to_payload(), indent=2))
    elif as_markdown:
        click.echo(result.render())
    else:
        console.show_context(result)


# =========================================================================
# Config Management
# =========================================================================

@main.command("config")
@click.argument("action", type=click.Choice(["set", "get", "show"]))
@click.argument("key", required=False)
@click.argument("value", required=False)
@click.option("--path", "-p", default=None, help="Path to the project root.")
def config_cmd(action: str, key: str | None, value: str | None, path: str | None):
    """Manage backlogctx configuration."""
    root = _get_project_root(path)
    try:
        config = load_config(root)
    except ConfigError as e:
        console.error(str(e))
        sys.exit(1)

    if action == "show":
        console.console.print_json(json.dumps(config.model_dump(), indent=2))
    elif action == "get":
        if not key:
            console.error("Usage: backlogctx config get <key>")
            sys.exit(1)
        data = config.model_dump()
        for part in key.split("."):
            if isinstance(data, dict) and part in data:
                data = data[part]
            else:
                console.error(f"Unknown key: {key}")
                sys.exit(1)
        console.console.print(f"{key} = {data}")
    elif action == "set":
        if not key or value is None:
            console.error("Usage: backlogctx config set <key> <value>")
            sys.exit(1)
        try:
            # Try to parse as JSON for non-string values
            try:
                parsed_value = json.loads(value)
            except json.JSONDecodeError:
                parsed_value = value

            config = set_config_value(config, key, parsed_value)
            save_config(root, config)
            console.success(f"Set {key} = {parsed_value}")
        except KeyError:
            console.error(f"Unknown config key: {key}")
            sys.exit(1)
        except ConfigError as e:
            console.error(str(e))
            sys.exit(1)


if __name__ == "__main__":
    main()
