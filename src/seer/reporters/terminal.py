"""Terminal reporter with rich output formatting."""

from __future__ import annotations

from typing import TYPE_CHECKING

from rich.console import Console
from rich.table import Table

if TYPE_CHECKING:
    from seer.models.result import Result

console = Console()

_GOOD_COVERAGE = 80.0
_FAIR_COVERAGE = 50.0
_SECONDS_PER_MINUTE = 60.0


def _coverage_color(coverage: float) -> str:
    """Return a Rich color name for a coverage percentage."""
    if coverage >= _GOOD_COVERAGE:
        return "green"
    if coverage >= _FAIR_COVERAGE:
        return "yellow"
    return "red"


def _format_duration(seconds: float) -> str:
    """Format a duration in seconds to a human-readable string."""
    if seconds >= _SECONDS_PER_MINUTE:
        return f"{seconds / _SECONDS_PER_MINUTE:.1f}m"
    return f"{seconds:.1f}s"


class TerminalReporter:
    """Prints per-run package summaries."""

    def __init__(self, output: Console | None = None) -> None:
        self.console = output or console

    def print_info(self, message: str) -> None:
        self.console.print(f"[dim]{message}[/dim]")

    def print_error(self, message: str) -> None:
        self.console.print(f"[red]✗[/red] {message}")

    def print_result(self, result: Result) -> None:
        """Print a table of packages followed by a one-line summary."""
        if not result.packages:
            self.console.print("  [dim]No packages reported results[/dim]")
            return

        table = Table(show_header=True, header_style="bold")
        table.add_column("Package")
        table.add_column("Status")
        table.add_column("Passed", justify="right")
        table.add_column("Failed", justify="right")
        table.add_column("Skipped", justify="right")
        table.add_column("Coverage", justify="right")
        table.add_column("Time", justify="right")

        for name in sorted(result.packages):
            pkg = result.packages[name]
            status = "[green]ok[/green]" if pkg.success else "[red]FAIL[/red]"
            color = _coverage_color(pkg.coverage)
            table.add_row(
                name,
                status,
                str(pkg.passed),
                str(pkg.failed),
                str(pkg.skipped),
                f"[{color}]{pkg.coverage:.1f}%[/{color}]",
                _format_duration(pkg.elapsed),
            )

        self.console.print(table)

        failed = result.failed_packages
        summary = (
            f"{result.total_passed} passed, {result.total_failed} failed, "
            f"{result.total_skipped} skipped in {_format_duration(result.duration)}"
        )
        if failed:
            self.console.print(f"[red]✗[/red] {summary} ({len(failed)} package(s) failed)")
        else:
            self.console.print(f"[green]✓[/green] {summary}")


reporter = TerminalReporter()
