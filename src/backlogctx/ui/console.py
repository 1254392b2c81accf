"""Rich-powered console output for backlogctx."""

from __future__ import annotations

from rich.console import Console as RichConsole
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn
from rich.table import Table
from rich.tree import Tree

from backlogctx import __version__
from backlogctx.context.models import HydrationResult
from backlogctx.search.index import SearchHit

_STATUS_STYLES = {
    "open": "white",
    "in_progress": "cyan",
    "blocked": "red",
    "done": "green",
    "cancelled": "dim",
}


class Console:
    """Terminal output for backlogctx using Rich."""

    def __init__(self, console: RichConsole | None = None) -> None:
        self.console = console or RichConsole()

    def banner(self) -> None:
        self.console.print(
            Panel(
                f"[bold cyan]backlogctx[/bold cyan] [dim]v{__version__}[/dim]\n"
                "[dim]Token-budgeted context for backlog work items[/dim]",
                border_style="cyan",
                padding=(1, 2),
            )
        )

    def success(self, message: str) -> None:
        self.console.print(f"[green]✓[/green] {message}")

    def error(self, message: str) -> None:
        self.console.print(f"[red]✗[/red] {message}")

    def warning(self, message: str) -> None:
        self.console.print(f"[yellow]![/yellow] {message}")

    def info(self, message: str) -> None:
        self.console.print(f"[blue]i[/blue] {message}")

    def indexing_progress(self) -> Progress:
        """Spinner shown while the retrieval index builds."""
        return Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            TimeElapsedColumn(),
            console=self.console,
        )

    def show_index_stats(self, stats: dict) -> None:
        table = Table(title="Retrieval Index", border_style="cyan")
        table.add_column("Metric", style="bold")
        table.add_column("Value", justify="right", style="cyan")
        table.add_row("Items", str(stats.get("items", 0)))
        table.add_row("Documents", str(stats.get("documents", 0)))
        table.add_row("Hybrid search", "on" if stats.get("hybrid") else "off")
        table.add_row("Rebuilt", "yes" if stats.get("rebuilt") else "no (snapshot)")
        self.console.print(table)

    def show_search_results(self, hits: list[SearchHit]) -> None:
        if not hits:
            self.warning("No results")
            return

        table = Table(border_style="cyan", show_lines=False)
        table.add_column("Score", justify="right", style="cyan")
        table.add_column("Id", style="bold")
        table.add_column("Type", style="dim")
        table.add_column("Title")
        table.add_column("Match", style="dim", overflow="fold")

        for hit in hits:
            match = ""
            if hit.snippet and hit.snippet.matched_fields:
                match = f"[{hit.snippet.field}] {hit.snippet.text}"
            table.add_row(f"{hit.score:.3f}", hit.id, hit.type, hit.title, match)

        self.console.print(table)

    def show_context(self, result: HydrationResult) -> None:
        """Display a hydrated context bundle as a tree plus metadata panel."""
        focal = result.focal
        meta = result.metadata
        style = _STATUS_STYLES.get(focal.status, "white")

        body = f"[bold]{focal.title}[/bold]\n[{style}]{focal.status}[/{style}] [dim]{focal.type}[/dim]"
        if focal.description:
            body += f"\n\n{focal.description}"
        self.console.print(Panel(body, title=f"[bold cyan]{focal.id}[/bold cyan]", border_style="cyan"))

        tree = Tree(f"[bold cyan]{focal.id}[/bold cyan]")
        if result.parent:
            tree.add(f"[dim]parent[/dim] {result.parent.id} {result.parent.title}")
        for role in (
            "children",
            "siblings",
            "cross_referenced",
            "referenced_by",
            "ancestors",
            "descendants",
            "related",
        ):
            entities = getattr(result, role)
            if not entities:
                continue
            branch = tree.add(f"[bold]{role.replace('_', ' ')}[/bold] ({len(entities)})")
            for e in entities:
                depth = f" [dim]d{e.graph_depth}[/dim]" if e.graph_depth is not None else ""
                branch.add(f"{e.id} {e.title} [dim]({e.fidelity.value})[/dim]{depth}")
        if result.related_resources:
            branch = tree.add(f"[bold]documents[/bold] ({len(result.related_resources)})")
            for d in result.related_resources:
                branch.add(f"[cyan]{d.path}[/cyan] {d.title}")
        self.console.print(tree)

        if result.session_summary:
            s = result.session_summary
            self.console.print(
                f"\n[bold]Last session:[/bold] {s.actor} [dim]({s.actor_type})[/dim] "
                f"{s.operation_count} ops, {s.summary}"
            )
        if result.activity:
            self.console.print("\n[bold]Recent activity:[/bold]")
            for a in result.activity:
                self.console.print(f"  [dim]{a.ts}[/dim] {a.actor}: {a.summary}")

        truncated = "[yellow]yes[/yellow]" if meta.truncated else "no"
        self.console.print(
            f"\n[dim]{meta.total_items} items, ~{meta.token_estimate:,} tokens, "
            f"truncated: [/dim]{truncated}[dim], stages: {', '.join(meta.stages_executed)}[/dim]"
        )
