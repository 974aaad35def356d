"""Report rendering for heapscope.

Renders a :class:`HeapReport` either as Rich tables in the terminal or as a
structured JSON export for downstream tooling.  Terminal output shows the
heap-wide statistics, the leak candidates with their retainers, and the
classes holding the most memory.
"""

from __future__ import annotations

import datetime
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from heapscope import __version__
from heapscope.analysis.report import HeapReport

logger = logging.getLogger(__name__)

# Retainers listed per leak candidate in the terminal report.
_MAX_RETAINERS: int = 3

# Aggregate rows shown in the terminal report.
_TOP_AGGREGATES: int = 10


def format_bytes(n: float) -> str:
    """Format a byte count to a human-readable string."""
    for unit in ("B", "KB", "MB", "GB"):
        if abs(n) < 1024.0 or unit == "GB":
            return f"{n:.0f} {unit}" if unit == "B" else f"{n:.1f} {unit}"
        n /= 1024.0
    return f"{n:.1f} GB"  # pragma: no cover


def _truncate(name: str, max_len: int = 50) -> str:
    if len(name) <= max_len:
        return name
    return name[:max_len - 3] + "..."


# ============================================================================
# Report Generator
# ============================================================================


class ReportGenerator:
    """Render a heap report to the terminal or to a JSON file.

    Usage::

        generator = ReportGenerator(report)
        generator.generate_report(format="terminal")
        generator.generate_report(format="json", output_path="report.json")
    """

    def __init__(self, report: HeapReport, console: Optional[Console] = None) -> None:
        self._report = report
        self._console = console or Console()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def generate_report(
        self,
        format: str = "terminal",
        output_path: Optional[str] = None,
    ) -> Optional[str]:
        """Dispatch to the appropriate renderer.

        Parameters
        ----------
        format:
            ``"terminal"`` or ``"json"``.
        output_path:
            File path for JSON output.  Ignored for terminal format.

        Returns
        -------
        str | None
            The output file path for JSON, or ``None`` for terminal.

        Raises
        ------
        ValueError
            If *format* is not recognised.
        """
        fmt = format.lower().strip()
        if fmt == "terminal":
            self.generate_terminal_report()
            return None
        elif fmt == "json":
            if output_path is None:
                output_path = "heapscope_report.json"
            self.generate_json_report(output_path)
            return output_path
        else:
            raise ValueError(
                f"Unknown report format {fmt!r}. "
                f"Expected one of: 'terminal', 'json'."
            )

    # ==================================================================
    # Terminal report
    # ==================================================================

    def generate_terminal_report(self) -> None:
        """Print statistics, leak candidates and top classes."""
        console = self._console
        report = self._report

        header = Text()
        header.append("heapscope", style="bold magenta")
        header.append(" - Heap Snapshot Leak Report", style="bold white")
        console.print()
        console.print(Panel(header, border_style="magenta", padding=(1, 2)))

        self._print_statistics_table(console)
        console.print()

        if report.leak_candidates:
            self._print_candidates_table(console)
        else:
            console.print(
                Panel(
                    "No leak candidates: no reachable node deeper than distance 1.",
                    border_style="green",
                    padding=(0, 1),
                )
            )
        console.print()

        if report.aggregates:
            self._print_aggregates_table(console)
            console.print()

    def _print_statistics_table(self, console: Console) -> None:
        stats = self._report.statistics
        table = Table(show_header=False, box=None, padding=(0, 2), expand=False)
        table.add_column("Key", style="dim")
        table.add_column("Value", style="bold")
        table.add_row("Nodes", f"{stats.node_count:,}")
        table.add_row("Edges", f"{stats.edge_count:,}")
        table.add_row("Total reachable", format_bytes(stats.total))
        table.add_row("Code", format_bytes(stats.code))
        table.add_row("Strings", format_bytes(stats.strings))
        table.add_row("JS arrays", format_bytes(stats.js_arrays))
        table.add_row("Native", format_bytes(stats.native))
        table.add_row("System", format_bytes(stats.system))
        table.add_row("Root", f"#{self._report.root_index}")
        console.print(table)

    def _print_candidates_table(self, console: Console) -> None:
        report = self._report
        table = Table(
            title="Leak Candidates",
            box=box.ROUNDED,
            show_lines=False,
            title_style="bold red",
        )
        table.add_column("#", justify="right", style="dim")
        table.add_column("Id", style="cyan")
        table.add_column("Name")
        table.add_column("Type", style="dim")
        table.add_column("Distance", justify="right")
        table.add_column("Retained", justify="right", style="bold")
        table.add_column("Retainers")

        for rank, candidate in enumerate(report.leak_candidates, start=1):
            node = report.heap_map[candidate.index]
            table.add_row(
                str(rank),
                candidate.id,
                escape(_truncate(node.name)),
                node.type,
                str(node.distance) if node.distance is not None else "-",
                format_bytes(candidate.size),
                self._retainer_summary(candidate.id),
            )
        console.print(table)

    def _retainer_summary(self, node_id: str) -> str:
        graph = self._report.graph
        if graph is None:
            return ""
        refs = graph.retainers(node_id)
        parts = [f"{ref.id}.{ref.name_or_index}" for ref in refs[:_MAX_RETAINERS]]
        if len(refs) > _MAX_RETAINERS:
            parts.append(f"+{len(refs) - _MAX_RETAINERS} more")
        return escape(", ".join(parts))

    def _print_aggregates_table(self, console: Console) -> None:
        rows = sorted(
            self._report.aggregates.values(), key=lambda a: a.max_ret, reverse=True,
        )[:_TOP_AGGREGATES]
        table = Table(title="Top Classes by Retained Size", box=box.SIMPLE)
        table.add_column("Class")
        table.add_column("Count", justify="right")
        table.add_column("Self", justify="right")
        table.add_column("Max retained", justify="right", style="bold")
        table.add_column("Min distance", justify="right", style="dim")
        for agg in rows:
            table.add_row(
                escape(_truncate(agg.name)),
                f"{agg.count:,}",
                format_bytes(agg.self_size),
                format_bytes(agg.max_ret),
                str(agg.distance),
            )
        console.print(table)

    # ==================================================================
    # JSON report
    # ==================================================================

    def build_json(self) -> Dict[str, Any]:
        """Report payload including metadata and candidate retainers."""
        report = self._report
        data: Dict[str, Any] = {
            "metadata": {
                "tool": "heapscope",
                "version": __version__,
                "report_generated": datetime.datetime.now().isoformat(),
                "format_version": "1.0",
            },
        }
        data.update(report.to_dict())
        if report.graph is not None:
            retainers: Dict[str, List[Dict[str, object]]] = {}
            for candidate in report.leak_candidates:
                retainers[candidate.id] = [
                    ref.to_dict() for ref in report.graph.retainers(candidate.id)
                ]
            data["retainers"] = retainers
        return data

    def generate_json_report(self, output_path: str) -> None:
        """Write the report as indented JSON to *output_path*."""
        output = Path(output_path)
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(
            json.dumps(self.build_json(), indent=2, default=str),
            encoding="utf-8",
        )
        logger.info("JSON report written to %s", output_path)
