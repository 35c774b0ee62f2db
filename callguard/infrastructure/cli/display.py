import logging
from datetime import datetime
from typing import Any, List, Optional

from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.box import ROUNDED
from rich.table import Table

from callguard.domain.interfaces.user_interface import UserInterface
from callguard.domain.models.calls import GatewayStats

logger = logging.getLogger(__name__)


class ConsoleDisplay(UserInterface):
    """Concrete implementation of UserInterface using the rich library for console output."""

    def __init__(self, console: Optional[Console] = None):
        """Initializes the rich Console."""
        self._console = console or Console()

    @property
    def console(self) -> Console:
        """Get the Rich console instance for direct operations."""
        return self._console

    def display_output(self, output: str, **kwargs: Any) -> None:
        """Displays output text in a panel, rendering Markdown.

        Args:
            output: The text to display.
            **kwargs: Additional arguments including:
                - title: The panel title (default: "Response")
                - markdown: Render as Markdown (default: True)
        """
        title = kwargs.get("title", "Response")
        timestamp = datetime.now().strftime("%H:%M:%S")
        renderable = Markdown(output) if kwargs.get("markdown", True) else output
        self._console.print(Panel(
            renderable,
            title=f"[bold cyan]{title}[/bold cyan] [dim]{timestamp}[/dim]",
            title_align="left",
            box=ROUNDED,
            border_style="cyan",
        ))

    def display_error(self, error_message: str, **kwargs: Any) -> None:
        self._console.print(f"[bold red]Error:[/bold red] {error_message}")

    def display_info(self, info_message: str, **kwargs: Any) -> None:
        self._console.print(f"[blue]{info_message}[/blue]")

    def display_stats(self, stats: List[GatewayStats]) -> None:
        """Renders one row per upstream with breaker, rate window and queue state."""
        table = Table(title="Upstream Resilience Status", box=ROUNDED)
        table.add_column("Upstream", style="bold")
        table.add_column("Circuit")
        table.add_column("Failures", justify="right")
        table.add_column("Rate window", justify="right")
        table.add_column("Queued", justify="right")
        table.add_column("Running", justify="right")
        table.add_column("Processed", justify="right")

        for item in stats:
            circuit_style = "green" if item.circuit.state == "Closed" else "bold red"
            queue_label = f"{item.queue.length}/{item.queue.capacity}"
            if item.queue.paused:
                queue_label += " (paused)"
            table.add_row(
                item.upstream,
                f"[{circuit_style}]{item.circuit.state}[/{circuit_style}]",
                f"{item.circuit.failure_count}/{item.circuit.failure_threshold}",
                f"{item.rate_window_used}/{item.rate_window_cap}",
                queue_label,
                f"{item.queue.running}/{item.queue.concurrency}",
                str(item.queue.processed),
            )
        self._console.print(table)
