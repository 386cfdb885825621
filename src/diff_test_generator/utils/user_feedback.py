"""User feedback utilities for the command line."""

import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

import rich.box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from diff_test_generator.models.data_models import (
    CoverageDelta,
    TestGenerationSummary,
    TestTarget,
)

logger = logging.getLogger(__name__)


class StatusIcon:
    """Status icons for CLI display."""

    SUCCESS = "[bold green]✓[/bold green]"
    ERROR = "[bold red]✗[/bold red]"
    WARNING = "[bold yellow]⚠[/bold yellow]"
    INFO = "[bold blue]●[/bold blue]"
    PROGRESS = "[bold cyan]▶[/bold cyan]"
    DEBUG = "[dim]◦[/dim]"
    TEST = "[cyan]⚗[/cyan]"
    COV = "[magenta]▦[/magenta]"


class UserFeedback:
    """Console output for pipeline progress and results."""

    def __init__(self, verbose: bool = False, quiet: bool = False, console: Optional[Console] = None,
                 error_console: Optional[Console] = None):
        self.verbose = verbose
        self.quiet = quiet
        self.console = console or Console()
        self.error_console = error_console or Console(stderr=True)

    def success(self, message: str, details: Optional[str] = None):
        if not self.quiet:
            self.console.print(f"{StatusIcon.SUCCESS} {message}")
            if details and self.verbose:
                self._print_details(details, "green")

    def error(self, message: str, suggestion: Optional[str] = None, details: Optional[str] = None):
        """Errors are shown even in quiet mode."""
        self.error_console.print(f"{StatusIcon.ERROR} [bold red]Error:[/bold red] {message}")
        if suggestion:
            self.error_console.print(f"  [yellow]Suggestion:[/yellow] {suggestion}")
        if details and self.verbose:
            self._print_details(details, "red", console=self.error_console)

    def warning(self, message: str, suggestion: Optional[str] = None):
        if not self.quiet:
            self.console.print(f"{StatusIcon.WARNING} [bold yellow]Warning:[/bold yellow] {message}")
            if suggestion:
                self.console.print(f"  [yellow]{suggestion}[/yellow]")

    def info(self, message: str, details: Optional[str] = None):
        if not self.quiet:
            self.console.print(f"{StatusIcon.INFO} {message}")
            if details and self.verbose:
                self._print_details(details, "blue")

    def debug(self, message: str, details: Optional[str] = None):
        if self.verbose and not self.quiet:
            self.console.print(f"{StatusIcon.DEBUG} [dim]{message}[/dim]")
            if details:
                self._print_details(details, "dim")

    def progress(self, message: str):
        if not self.quiet:
            self.console.print(f"{StatusIcon.PROGRESS} {message}")

    def section_header(self, title: str):
        if not self.quiet:
            self.console.print()
            self.console.print(Panel(Text(title, style="bold white", justify="center"),
                                     border_style="bright_blue", padding=(0, 1)))

    @contextmanager
    def status_spinner(self, message: str) -> Iterator[None]:
        if self.quiet:
            yield
            return
        with self.console.status(f"[bold cyan]{message}[/bold cyan]", spinner="dots"):
            yield

    def status_table(self, title: str, items: List[Tuple[str, str, str]]):
        """Display (status, name, description) rows."""
        if not self.quiet:
            table = Table(title=title, show_header=True, header_style="bold magenta")
            table.add_column("Status", style="bold", width=8, justify="center")
            table.add_column("Item", style="cyan", min_width=20)
            table.add_column("Description", style="white")
            for status, name, description in items:
                table.add_row(self._get_status_icon(status), name, description)
            self.console.print(table)

    def summary_panel(self, title: str, items: Dict[str, Any], style: str = "green"):
        if not self.quiet:
            content = [f"[bold]{key}:[/bold] {value}" for key, value in items.items()]
            self.console.print(Panel("\n".join(content), title=title, border_style=style,
                                     box=rich.box.ROUNDED, padding=(1, 2)))

    def targets_table(self, targets: Sequence[TestTarget]):
        """List the functions selected from the diff."""
        if self.quiet or not targets:
            return
        table = Table(title=f"{len(targets)} changed function(s)", header_style="bold magenta")
        table.add_column("File", style="cyan")
        table.add_column("Function", style="white")
        table.add_column("Kind", style="dim")
        table.add_column("Lines", justify="right")
        for target in targets:
            table.add_row(target.file_path, target.qualified_name, target.function_type.value,
                          f"{target.start_line}-{target.end_line}")
        self.console.print(table)

    def generation_summary(self, summary: TestGenerationSummary):
        """Render the run summary; failures go to the error console."""
        style = "red" if summary.has_failures or summary.aborted else "green"
        items: Dict[str, Any] = {
            "Targets processed": summary.targets_processed,
            "Tests generated": summary.tests_generated,
            "Failures": summary.tests_failed,
            "Test files": len(summary.test_files),
        }
        if summary.coverage_report is not None:
            items["Line coverage"] = f"{summary.coverage_report.total.lines.percentage:.2f}%"
        if summary.coverage_delta is not None:
            items["Coverage change"] = format_delta(summary.coverage_delta)
        if summary.aborted:
            items["Status"] = "aborted"
        self.summary_panel("Test generation summary", items, style=style)

        if summary.test_results:
            self.status_table("Test results", [
                ("success" if result.success else "error", result.test_file,
                 f"{result.passed}/{result.total} passed in {result.duration:.2f}s")
                for result in summary.test_results
            ])
        for error in summary.errors:
            self.error(f"{error.target}: {error.error}")

    def _print_details(self, details: str, style: str, console: Optional[Console] = None):
        target = console or self.console
        for line in details.splitlines():
            target.print(f"    [{style}]{line}[/{style}]")

    def _get_status_icon(self, status: str) -> str:
        return {
            "success": StatusIcon.SUCCESS,
            "error": StatusIcon.ERROR,
            "failed": StatusIcon.ERROR,
            "warning": StatusIcon.WARNING,
            "info": StatusIcon.INFO,
            "running": StatusIcon.PROGRESS,
        }.get(status.lower(), StatusIcon.INFO)


def format_delta(delta: CoverageDelta) -> str:
    return ", ".join(f"{name} {value:+.2f}%" for name, value in (
        ("lines", delta.lines),
        ("branches", delta.branches),
        ("functions", delta.functions),
        ("statements", delta.statements),
    ))
