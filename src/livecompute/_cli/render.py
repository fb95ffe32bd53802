"""Rich rendering utilities for the CLI commands."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from rich.markup import escape
from rich.table import Table
from rich.tree import Tree

if TYPE_CHECKING:
    from rich.console import Console

    from livecompute._engine import ReactiveEngine


def render_results_table(engine: ReactiveEngine, results: dict[str, dict[str, Any]], console: Console) -> None:
    """Render computed outputs as a Rich table.

    Args:
        engine: The engine that computed the results.
        results: Collected results keyed by field name.
        console: Rich Console to output to.

    """
    if not results:
        console.print("[dim]The form declares no outputs[/dim]")
        return

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Output", style="bold")
    table.add_column("Expression", style="dim")
    table.add_column("Value", justify="right")
    table.add_column("Display", justify="right", style="green")

    for node in engine.nodes:
        entry = results[node.field]
        table.add_row(
            escape(node.field),
            escape(node.expression),
            escape(repr(entry["value"])),
            escape(entry["display"]),
        )

    console.print(table)


def render_dependency_tree(engine: ReactiveEngine, console: Console) -> None:
    """Render each output's dependencies and bidirectional links as a Rich tree.

    Args:
        engine: An engine that has scanned its tree.
        console: Rich Console to output to.

    """
    link_graph = engine.link_graph
    root = Tree("[bold]Outputs[/bold] [dim](evaluation order)[/dim]")

    for node_id in link_graph.order:
        node = engine.node(node_id)
        branch = root.add(f"[bold cyan]{escape(node_id)}[/bold cyan] = {escape(node.expression)}")
        reads = ", ".join(sorted(link_graph.dependency_map.get(node_id, ()))) or "-"
        branch.add(f"[yellow]reads:[/yellow] {escape(reads)}")
        peers = [peer for peer in link_graph.order if peer in link_graph.peers(node_id)]
        if peers:
            branch.add(f"[magenta]linked:[/magenta] {escape(', '.join(peers))}")

    if link_graph.graph.has_cycle():
        root.add("[yellow]Outputs reference each other in a cycle[/yellow]")

    console.print(root)
