"""Terminal report rendered with rich."""

from __future__ import annotations

import io
from pathlib import Path

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from cometqa.reporters.base import BaseReporter
from cometqa.scenario.result import RunResult, ScenarioStatus

STATUS_STYLES = {
    ScenarioStatus.PASSED: "green",
    ScenarioStatus.FAILED: "red",
    ScenarioStatus.ERRORED: "red",
    ScenarioStatus.SETUP_FAILED: "yellow",
    ScenarioStatus.SKIPPED: "dim",
}


class ConsoleReporter(BaseReporter):
    """Print a results table and a summary panel."""

    def __init__(
        self,
        output_path: str | Path | None = None,
        console: Console | None = None,
        show_skipped: bool = True,
    ) -> None:
        super().__init__(output_path)
        self.console = console or Console()
        self.show_skipped = show_skipped

    @property
    def file_extension(self) -> str:
        return ".txt"

    def build_table(self, result: RunResult) -> Table:
        table = Table(title="[bold]Scenario Results[/bold]", show_header=True, header_style="bold")
        table.add_column("Status", width=13)
        table.add_column("Scenario", min_width=30)
        table.add_column("Stage", width=8)
        table.add_column("Duration", justify="right", width=10)
        table.add_column("Details")

        for execution in result.results:
            if execution.status == ScenarioStatus.SKIPPED and not self.show_skipped:
                continue
            style = STATUS_STYLES[execution.status]
            table.add_row(
                f"[{style}]{execution.status.value.upper()}[/{style}]",
                escape(execution.display_name),
                execution.stage or "",
                f"{execution.duration_ms:.1f}ms",
                escape(execution.error or execution.reason or ""),
            )
        return table

    def build_summary(self, result: RunResult) -> Panel:
        counts = result.counts()
        lines = [
            f"[green]{counts['passed']} passed[/green]",
            f"[red]{counts['failed']} failed[/red]",
            f"[red]{counts['errored']} errored[/red]",
            f"[yellow]{counts['setup_failed']} setup failed[/yellow]",
            f"[dim]{counts['skipped']} skipped[/dim]",
        ]
        style = "green" if result.success else "red"
        return Panel(
            " | ".join(lines) + f"\n{result.total_duration_ms / 1000:.2f}s",
            title="[bold]Summary[/bold]",
            border_style=style,
        )

    def print(self, result: RunResult) -> None:
        self.console.print(self.build_table(result))
        self.console.print(self.build_summary(result))

    def generate(self, result: RunResult) -> str:
        """Render the report as plain text."""
        console = Console(record=True, width=120, color_system=None, file=io.StringIO())
        console.print(self.build_table(result))
        console.print(self.build_summary(result))
        return console.export_text()
