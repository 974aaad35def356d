"""CLI interface for heapscope.

Provides commands for ranking leak candidates in a saved heap snapshot and
for inspecting the retainers and references of a single node.

Uses Click for command parsing and Rich for terminal output.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import click
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich import box

from heapscope import __version__
from heapscope.analysis.engine import DominatorEngine
from heapscope.analysis.ranker import LeakRanker
from heapscope.analysis.report import HeapReport, Orchestrator
from heapscope.analysis.report_generator import ReportGenerator, format_bytes
from heapscope.errors import HeapSnapshotError
from heapscope.snapshot.decoder import SnapshotDecoder
from heapscope.snapshot.graph import EdgeRef
from heapscope.snapshot.loader import load_snapshot

logger = logging.getLogger(__name__)

console = Console()

# ---------------------------------------------------------------------------
# Environment variable names
# ---------------------------------------------------------------------------
_ENV_LIMIT = "HEAPSCOPE_LIMIT"


# ============================================================================
# Helpers
# ============================================================================


def _error(message: str) -> None:
    """Print an error message and exit with code 1."""
    console.print(f"[bold red]Error:[/bold red] {escape(message)}")
    raise SystemExit(1)


def _load_and_report(path: str, limit: int, strict: bool) -> HeapReport:
    """Load *path* and run the full pipeline, exiting on snapshot errors."""
    try:
        raw: Dict[str, Any] = load_snapshot(path)
        orchestrator = Orchestrator(
            engine=DominatorEngine(),
            decoder=SnapshotDecoder(strict_schema=strict),
            limit=limit,
        )
        return orchestrator.produce_report(raw)
    except HeapSnapshotError as exc:
        logger.debug("Snapshot processing failed.", exc_info=True)
        _error(f"{type(exc).__name__}: {exc}")
    except OSError as exc:
        _error(f"Cannot read snapshot {path}: {exc}")

    # Unreachable, but satisfies type checker.
    raise SystemExit(1)  # pragma: no cover


def _edge_table(title: str, refs: list[EdgeRef], report: HeapReport) -> Table:
    table = Table(title=title, box=box.SIMPLE, title_style="bold")
    table.add_column("Id", style="cyan")
    table.add_column("Name")
    table.add_column("Edge type", style="dim")
    table.add_column("Label")
    graph = report.graph
    for ref in refs:
        other = graph.node_by_id(ref.id) if graph is not None else None
        table.add_row(
            ref.id, escape(other.name) if other else "?", ref.type, escape(ref.name_or_index),
        )
    return table


# ============================================================================
# CLI group
# ============================================================================


@click.group(name="heapscope")
@click.version_option(version=__version__, prog_name="heapscope")
@click.option(
    "--verbose", "-v",
    is_flag=True,
    default=False,
    help="Enable verbose debug logging.",
)
def cli(verbose: bool) -> None:
    """heapscope - Find what is leaking in a V8 heap snapshot."""
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
        datefmt="%H:%M:%S",
    )


# ============================================================================
# analyze
# ============================================================================


@cli.command()
@click.argument("snapshot_path", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--limit", "-n",
    type=click.IntRange(min=1),
    default=LeakRanker.DEFAULT_LIMIT,
    show_default=True,
    envvar=_ENV_LIMIT,
    help=f"Maximum number of leak candidates (env: {_ENV_LIMIT}).",
)
@click.option(
    "--format", "-f",
    "report_format",
    type=click.Choice(["terminal", "json"], case_sensitive=False),
    default="terminal",
    show_default=True,
    help="Report output format.",
)
@click.option(
    "--output", "-o",
    type=click.Path(),
    default=None,
    help="Output file path for the json format.",
)
@click.option(
    "--strict",
    is_flag=True,
    default=False,
    help="Reject snapshots whose type columns overflow the type tables up front.",
)
def analyze(
    snapshot_path: str,
    limit: int,
    report_format: str,
    output: Optional[str],
    strict: bool,
) -> None:
    """Rank the objects most likely responsible for a leak.

    Usage: heapscope analyze app.heapsnapshot --limit 10
    """
    if report_format == "terminal":
        console.print(
            Panel(
                f"[bold]Analyzing:[/bold] {snapshot_path}",
                border_style="cyan",
                padding=(0, 1),
            )
        )

    report = _load_and_report(snapshot_path, limit, strict)
    result_path = ReportGenerator(report, console=console).generate_report(
        format=report_format, output_path=output,
    )

    if result_path:
        console.print(f"[bold green]Report saved to:[/bold green] {result_path}")


# ============================================================================
# inspect
# ============================================================================


@cli.command()
@click.argument("snapshot_path", type=click.Path(exists=True, dir_okay=False))
@click.argument("node_id", type=str)
def inspect(snapshot_path: str, node_id: str) -> None:
    """Show one node with its retainers and references.

    NODE_ID is the node identity, e.g. @1234 (the leading @ is optional).

    Usage: heapscope inspect app.heapsnapshot @1234
    """
    if not node_id.startswith("@"):
        node_id = f"@{node_id}"

    report = _load_and_report(snapshot_path, LeakRanker.DEFAULT_LIMIT, strict=False)
    graph = report.graph
    node = graph.node_by_id(node_id) if graph is not None else None
    if node is None:
        _error(f"Node {node_id} not found in {snapshot_path}")

    info = Table(show_header=False, box=None, padding=(0, 2), expand=False)
    info.add_column("Key", style="dim")
    info.add_column("Value", style="bold")
    info.add_row("Id", node.id)
    info.add_row("Index", str(node.index))
    info.add_row("Name", escape(node.name))
    info.add_row("Type", node.type)
    info.add_row("Self size", format_bytes(node.self_size))
    info.add_row("Retained size", format_bytes(node.retained_size or node.self_size))
    info.add_row("Distance", str(node.distance))
    console.print(Panel(info, title=f"[bold]{node.id}[/bold]", border_style="cyan"))

    console.print(_edge_table("Retainers", graph.retainers(node_id), report))
    console.print(_edge_table("References", graph.references(node_id), report))


# ============================================================================
# Entry point
# ============================================================================


def main() -> None:
    """Entry point for the CLI.

    This function exists so the CLI can also be invoked via
    ``python -m heapscope.cli.main``.
    """
    cli()


if __name__ == "__main__":
    main()
