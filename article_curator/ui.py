"""Console output for the article curator CLI."""

from typing import TYPE_CHECKING

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .models import CollectionError, Item

if TYPE_CHECKING:
    from .orchestrator import RunSummary


class CuratorUI:
    """Rich rendering of run results, item lists and status messages."""

    def __init__(self, verbose: bool = False, console: Console | None = None):
        self.verbose = verbose
        self.console = console or Console()

    def show_banner(self) -> None:
        title = Text("AI Article Curator", style="bold bright_cyan")
        subtitle = Text("Qiita • Zenn • Hacker News • Dev.to", style="dim")
        self.console.print(Panel(Text.assemble(title, "\n", subtitle), box=box.ROUNDED, expand=False))

    def _status(self, label: str, message: str, style: str) -> None:
        text = Text()
        text.append(f"{label} ", style=f"bold {style}")
        text.append(message, style=style)
        self.console.print(text)

    def info(self, message: str) -> None:
        self._status("INFO", message, "bright_cyan")

    def success(self, message: str) -> None:
        self._status("OK", message, "bright_green")

    def warning(self, message: str) -> None:
        self._status("WARN", message, "bright_yellow")

    def error(self, message: str) -> None:
        self._status("ERROR", message, "bright_red")

    def verbose_log(self, message: str) -> None:
        if self.verbose:
            self.console.print(Text(f"   · {message}", style="dim"))

    def show_source_results(self, breakdown: dict[str, int], errors: tuple[CollectionError, ...] | list[CollectionError]) -> None:
        """Per-source item counts and failures."""
        table = Table(show_header=True, header_style="bold cyan", box=box.SIMPLE)
        table.add_column("Source", style="dim")
        table.add_column("Items", justify="right")
        table.add_column("Status", justify="center")

        failed = {error.source: error for error in errors}
        for source in sorted(set(breakdown) | set(failed)):
            status = "✗" if source in failed else "✓"
            table.add_row(source, str(breakdown.get(source, 0)), status)

        self.console.print(table)
        for error in errors:
            self.warning(f"{error.source}: {error.message}")

    def show_items(self, items: list[Item], title: str = "Selected items") -> None:
        table = Table(title=title, box=box.SIMPLE_HEAVY, show_lines=False)
        table.add_column("#", justify="right", style="dim")
        table.add_column("Score", justify="right")
        table.add_column("Source")
        table.add_column("Title", overflow="fold")
        table.add_column("URL", style="blue", overflow="fold")

        for index, item in enumerate(items, start=1):
            table.add_row(str(index), f"{item.relevance_score:.3f}", item.source.value, item.title, item.url)

        self.console.print(table)
        if not items:
            self.info("No items matched")

    def show_run_summary(self, summary: "RunSummary") -> None:
        """Final panel after a full run."""
        result = summary.result
        table = Table(show_header=False, box=box.SIMPLE, padding=(0, 2))
        table.add_column("Metric", style="dim blue")
        table.add_column("Value", style="bold bright_blue")

        table.add_row("Items selected", str(len(result.items)))
        table.add_row("Sources failed", str(len(result.errors)))
        for source, count in sorted(summary.source_breakdown.items()):
            table.add_row(f"  {source}", str(count))
        if summary.notified is None:
            notified = "skipped"
        else:
            notified = "yes" if summary.notified else "FAILED"
        table.add_row("Notification", notified)
        table.add_row("Total time", f"{summary.duration:.1f}s")

        border = "bright_yellow" if result.has_errors or summary.notified is False else "bright_blue"
        self.console.print()
        self.console.print(Panel(table, title="[bold cyan]Collection complete[/bold cyan]", box=box.ROUNDED, border_style=border))

    def show_problems(self, problems: list[str]) -> None:
        for problem in problems:
            self.error(problem)
