"""
Output formatting module for the nhdquery CLI.

This module handles formatted output for the CLI, supporting both:
- Human-readable text output with Rich formatting
- Machine-readable JSON output for automation
"""

import json
import logging
import sys
from dataclasses import asdict, dataclass, field

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

logger = logging.getLogger(__name__)


@dataclass
class QueryRecord:
    """Result for a single query."""

    name: str
    kind: str
    counts: dict[str, int] = field(default_factory=dict)
    output_path: str | None = None  # Using str for JSON serialization
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


@dataclass
class RunResult:
    """Result from a batch run."""

    status: str  # "success", "partial_success", "failure"
    exit_code: int  # 0, 1, or 2
    queries: list[QueryRecord]
    total_processed: int
    total_failed: int
    failed_log: str | None  # Using str for JSON serialization

    def __post_init__(self) -> None:
        """Validate run result fields."""
        valid_statuses = {"success", "partial_success", "failure"}
        if self.status not in valid_statuses:
            raise ValueError(f"status must be one of {valid_statuses}, got '{self.status}'")

        valid_exit_codes = {0, 1, 2}
        if self.exit_code not in valid_exit_codes:
            raise ValueError(f"exit_code must be one of {valid_exit_codes}, got {self.exit_code}")

    @classmethod
    def from_records(cls, records: list[QueryRecord], failed_log: str | None = None) -> "RunResult":
        """Derive status and exit code from per-query records."""
        processed = sum(1 for r in records if r.succeeded)
        failed = len(records) - processed

        if failed == 0:
            status, exit_code = "success", 0
        elif processed > 0:
            status, exit_code = "partial_success", 1
        else:
            status, exit_code = "failure", 2

        return cls(
            status=status,
            exit_code=exit_code,
            queries=records,
            total_processed=processed,
            total_failed=failed,
            failed_log=failed_log,
        )


class OutputFormatter:
    """Handles CLI output formatting for text and JSON modes."""

    def __init__(self, output_format: str = "text", quiet: bool = False, verbose: bool = False) -> None:
        """
        Initialize the output formatter.

        Args:
            output_format: Output format ("text" or "json")
            quiet: Suppress progress output
            verbose: Show detailed progress information

        Raises:
            ValueError: If output_format is not "text" or "json"
        """
        if output_format not in ("text", "json"):
            raise ValueError(f"output_format must be 'text' or 'json', got '{output_format}'")

        self.output_format = output_format
        self.quiet = quiet
        self.verbose = verbose
        self.console = Console(file=sys.stdout)

    def print_result(self, result: RunResult) -> None:
        """Print a batch run result in text or JSON format."""
        if self.output_format == "json":
            print(json.dumps(asdict(result), indent=2))
            return

        if result.status == "success":
            status_icon, status_text = "✓", Text("Complete!", style="bold green")
        elif result.status == "partial_success":
            status_icon, status_text = "⚠", Text("Partially Complete", style="bold yellow")
        else:
            status_icon, status_text = "✗", Text("Failed", style="bold red")

        self.console.print()
        self.console.print(status_icon, status_text)
        self.console.print()

        for record in result.queries:
            if record.succeeded:
                counts = ", ".join(f"{name}={count}" for name, count in record.counts.items())
                self.console.print(f"  ✓ [bold]{record.name}[/bold] ({record.kind}): {counts}")
                if record.output_path:
                    self.console.print(f"    → {record.output_path}")
            else:
                self.console.print(f"  ✗ [bold]{record.name}[/bold] ({record.kind}): [red]{record.error}[/red]")

        self.console.print()
        self.console.print(
            f"  Total: [bold]{result.total_processed}[/bold] succeeded, [bold]{result.total_failed}[/bold] failed"
        )
        if result.failed_log:
            self.console.print(f"  Failed queries logged to: [yellow]{result.failed_log}[/yellow]")
        self.console.print()

    def print_layer_counts(self, title: str, counts: dict[str, int], crs: str | None = None) -> None:
        """Print the feature count of each selected layer."""
        if self.output_format == "json":
            print(json.dumps({"title": title, "crs": crs, "counts": counts}, indent=2))
            return

        table = Table(title=title, show_header=True, header_style="bold cyan")
        table.add_column("Layer", style="cyan")
        table.add_column("Features", style="white", justify="right")
        for name, count in counts.items():
            table.add_row(name, str(count))

        self.console.print(table)
        if crs:
            self.console.print(f"  [dim]CRS: {crs}[/dim]")

    def print_comids(self, kind: str, comids: list[int]) -> None:
        """Print the comids of a reach classification."""
        if self.output_format == "json":
            print(json.dumps({"kind": kind, "comids": comids}, indent=2))
            return

        self.console.print(f"[bold]{len(comids)}[/bold] {kind} reach(es)")
        if comids:
            self.console.print("  " + ", ".join(map(str, comids)))

    def print_error(self, message: str, hint: str | None = None, details: str | None = None) -> None:
        """
        Print error with optional hint and details.

        Args:
            message: The main error message
            hint: Optional hint for fixing the error
            details: Optional detailed error information
        """
        if self.output_format == "json":
            error_obj = {"error": message}
            if hint:
                error_obj["hint"] = hint
            if details:
                error_obj["details"] = details
            print(json.dumps(error_obj, indent=2))
        else:
            self.console.print()
            self.console.print(f"[bold red]Error:[/bold red] {message}")

            if details:
                self.console.print(Panel(details, title="Details", border_style="red", expand=False))

            if hint:
                self.console.print()
                self.console.print(f"[bold cyan]Fix:[/bold cyan] {hint}")

            self.console.print()

        logger.error(f"Error: {message}")

    def print_progress(self, message: str, style: str = "") -> None:
        """Print progress message (only if not quiet and format is text)."""
        if self.quiet or self.output_format == "json":
            return

        if style:
            self.console.print(message, style=style)
        else:
            self.console.print(message)

    def print_verbose(self, message: str, style: str = "") -> None:
        """Print verbose message (only if verbose mode is enabled and format is text)."""
        if not self.verbose:
            return
        self.print_progress(message, style=style)
