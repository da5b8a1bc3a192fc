"""
Manages a Rich Live display for the download and install pools.
Shows one bar per phase, the bytes transferred so far and a small stats grid.
"""

import logging
import threading
from datetime import datetime

from rich.console import Console
from rich.live import Live
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table
from rich.text import Text

from nexus_bridge.utils.formatting import format_size

log = logging.getLogger("nexus_bridge")

PHASE_LABELS = {
    "download": "[cyan]Downloading[/cyan]",
    "install": "[green]Installing[/green]",
    "scan": "[magenta]Scanning plugins[/magenta]",
}


class ProgressManager:
    """
    A progress display that worker threads can update concurrently.

    Rich's `Progress` already serialises its own updates; the extra lock here
    only protects the byte counter and the phase table.
    """

    def __init__(self, console: Console, enabled: bool = True):
        self.console = console
        self.enabled = enabled

        self.progress = Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}", justify="left"),
            BarColumn(bar_width=40),
            MofNCompleteColumn(),
            "•",
            TimeElapsedColumn(),
            console=console,
            transient=False,
        )

        self._lock = threading.Lock()
        self._phases: dict[str, TaskID] = {}
        self._bytes = 0
        self._start_time: datetime | None = None
        self._live: Live | None = None

    def start_phase(self, name: str, total: int) -> None:
        """Adds (or resets) the bar for a phase."""
        with self._lock:
            description = PHASE_LABELS.get(name, name)
            if name in self._phases:
                self.progress.reset(self._phases[name], total=total)
            else:
                self._phases[name] = self.progress.add_task(description, total=total)

    def advance(self, name: str, count: int = 1) -> None:
        with self._lock:
            task_id = self._phases.get(name)
        if task_id is not None:
            self.progress.advance(task_id, count)

    def add_bytes(self, count: int) -> None:
        with self._lock:
            self._bytes += count

    @property
    def bytes_transferred(self) -> int:
        with self._lock:
            return self._bytes

    def _render(self) -> Panel:
        elapsed = "00:00:00"
        if self._start_time:
            seconds = int((datetime.now() - self._start_time).total_seconds())
            elapsed = f"{seconds // 3600:02d}:{(seconds % 3600) // 60:02d}:{seconds % 60:02d}"

        header = Text()
        header.append("Nexus Bridge ", style="bold cyan")
        header.append("│ ", style="dim")
        header.append(f"Session: {elapsed}", style="yellow")
        header.append(" │ ", style="dim")
        header.append(f"↓ {format_size(self.bytes_transferred)}", style="magenta")

        grid = Table.grid()
        grid.add_row(header)
        grid.add_row("")
        grid.add_row(self.progress)
        return Panel(grid, border_style="blue")

    def __enter__(self) -> "ProgressManager":
        self._start_time = datetime.now()
        if self.enabled:
            self._live = Live(
                self._render(),
                console=self.console,
                refresh_per_second=4,
                get_renderable=self._render,
            )
            self._live.start()
        return self

    def stop(self) -> None:
        """Stops the live display so the console can be used for prompts."""
        if self._live:
            self._live.stop()
            self._live = None

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.stop()
