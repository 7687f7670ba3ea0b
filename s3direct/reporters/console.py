"""Console reporter using Rich library for formatted CLI output.

Provides colorful, formatted output during an upload including:
- Upload header with size and part count
- Per-part confirmations with running byte totals
- Final summary table
"""

from typing import Optional

from rich import box
from rich.console import Console
from rich.rule import Rule
from rich.table import Table

from s3direct.models import ResultStatus, UploadResult
from s3direct.reporters.base import Reporter


def format_size(size: int) -> str:
    """Render a byte count with a binary unit."""
    if size < 1024:
        return f"{size} B"
    value = size / 1024
    for unit in ("KiB", "MiB"):
        if value < 1024:
            return f"{value:.1f} {unit}"
        value /= 1024
    return f"{value:.1f} GiB"


class ConsoleReporter(Reporter):
    """Rich-based console reporter for CLI output.

    Args:
        quiet: If True, suppress per-part output (only show summary)
        console: Console to print to (defaults to stdout)
    """

    def __init__(self, quiet: bool = False, console: Optional[Console] = None):
        # Use legacy_windows=True for ASCII-safe output on Windows consoles
        self.console = console or Console(legacy_windows=True)
        self.quiet = quiet
        self._total_size = 0
        self._part_count = 0
        self._sent = 0
        self._parts_done = 0

    def on_upload_start(self, bucket: str, key: str, size: int, part_count: int) -> None:
        """Displays a header with the target object."""
        self._total_size = size
        self._part_count = part_count
        self._sent = 0
        self._parts_done = 0
        self.console.print()
        self.console.print(
            Rule(f"[bold cyan]Uploading: {bucket}/{key}[/bold cyan]", style="cyan", characters="-")
        )
        self.console.print(f"  {format_size(size)} in {part_count} part(s)")

    def on_part_complete(self, part_number: int, size: int, etag: str) -> None:
        self._sent += size
        self._parts_done += 1
        if self.quiet:
            return

        self.console.print(
            f"  [green][OK][/green] part {part_number} "
            f"({format_size(size)}) [dim]{etag}[/dim] "
            f"{self._parts_done}/{self._part_count} "
            f"[{format_size(self._sent)} of {format_size(self._total_size)}]"
        )

    def on_upload_complete(self, result: UploadResult) -> None:
        """Displays the summary table."""
        if result.status == ResultStatus.COMPLETED:
            status = "[bold green]COMPLETED[/bold green]"
        elif result.status == ResultStatus.CANCELED:
            status = "[bold yellow]CANCELED[/bold yellow]"
        else:
            status = "[bold red]FAILED[/bold red]"

        table = Table(title="Upload Summary", box=box.ROUNDED, show_header=False)
        table.add_column("Field", style="bold")
        table.add_column("Value")
        table.add_row("Status", status)
        table.add_row("Object", f"{result.bucket}/{result.key}")
        if result.upload_id:
            table.add_row("Upload ID", result.upload_id)
        table.add_row("Parts", str(len(result.parts)))
        table.add_row("Size", format_size(result.size))
        table.add_row("Duration", f"{result.duration_seconds:.1f}s")
        if result.location:
            table.add_row("Location", result.location)
        if result.sha256:
            table.add_row("SHA-256", result.sha256)
        if result.md5:
            table.add_row("MD5", result.md5)
        if result.error_message:
            table.add_row("Error", f"[red]{result.error_message}[/red]")

        self.console.print()
        self.console.print(table)
        self.console.print()
