"""CI-style terminal display for task workflows.

One line per task with a colored status icon, indented for nested
(parallel) tasks, followed by a compact summary. Task lines may come from
worker threads; each line is printed with a single console call.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, Optional

from rich.console import Console
from rich.markup import escape
from rich.table import Table
from rich.text import Text

from .stringify import stringify

if TYPE_CHECKING:
    from .config import TaskConfig, WorkflowConfig


@dataclass
class StatusIcons:
    """Status icons with colors for CI-style display."""

    RUNNING = "[cyan][bold]•[/bold][/cyan]"
    SUCCESS = "[green][bold]✓[/bold][/green]"
    FAILED = "[red][bold]✗[/bold][/red]"
    SKIPPED = "[yellow]⏭[/yellow]"
    GROUP = "[white]▶[/white]"


def format_duration(seconds: float) -> str:
    """Format duration in human-readable format."""
    if seconds < 60:
        return f"{seconds:.1f}s"
    elif seconds < 3600:
        minutes = int(seconds // 60)
        secs = int(seconds % 60)
        return f"{minutes}m {secs:02d}s"
    else:
        hours = int(seconds // 3600)
        minutes = int((seconds % 3600) // 60)
        return f"{hours}h {minutes:02d}m"


def preview(value: Any, limit: int = 60) -> str:
    """Single-line stringified preview of a stored value."""
    text = stringify(value).replace("\n", " ")
    if len(text) > limit:
        text = text[: limit - 3] + "..."
    return text


class WorkflowDisplay:
    """Terminal output for a workflow run."""

    def __init__(self, console: Optional[Console] = None) -> None:
        self.console = console or Console()

    @staticmethod
    def _indent(depth: int) -> str:
        return "    " * depth

    def print_header(self, config: "WorkflowConfig") -> None:
        """Print workflow name and key settings."""
        self.console.print()
        self.console.print(f"[bold]Workflow:[/bold] {escape(config.name)}")

        parts = [
            f"Tasks: {len(config.tasks)}",
            f"Missing variables: {config.missing_variables.value}",
        ]
        if config.connections:
            parts.append(f"Connections: {', '.join(sorted(config.connections))}")
        self.console.print(" | ".join(parts))
        self.console.print()

    def print_task_start(self, task: "TaskConfig", depth: int = 0) -> None:
        """Format: [•] Task name (type)"""
        indent = self._indent(depth)
        icon = StatusIcons.GROUP if task.tasks else StatusIcons.RUNNING
        self.console.print(f"{indent}[{icon}] {escape(task.display_name)} [dim]({task.type})[/dim]")

    def print_task_result(
        self,
        task: "TaskConfig",
        success: bool,
        duration: float,
        output: Optional[str] = None,
        error: Optional[str] = None,
        depth: int = 0,
    ) -> None:
        """Format: [✓] Task name -> output                        1.2s"""
        indent = self._indent(depth)
        duration_str = format_duration(duration)

        if success:
            line = f"{indent}[{StatusIcons.SUCCESS}] {escape(task.display_name)}"
            if output:
                line += f" [dim]-> {escape(output)}[/dim]"
            self.console.print(f"{line}  [dim]{duration_str}[/dim]")
            return

        self.console.print(
            f"{indent}[{StatusIcons.FAILED}] {escape(task.display_name)}  [dim]{duration_str}[/dim]"
        )
        if error:
            self.console.print(f"{indent}    [red]Error: {escape(error)}[/red]")

    def print_task_skipped(self, task: "TaskConfig", reason: str, depth: int = 0) -> None:
        """Format: [⏭] Task name - reason"""
        indent = self._indent(depth)
        self.console.print(
            f"{indent}[{StatusIcons.SKIPPED}] {escape(task.display_name)} [dim]- {escape(reason)}[/dim]"
        )

    def print_error(self, message: str) -> None:
        self.console.print(f"\n[bold red]Error: {escape(message)}[/bold red]")

    def print_interrupted(self) -> None:
        self.console.print()
        self.console.print("[yellow]Workflow interrupted by user[/yellow]")

    def print_variables(self, variables: Dict[str, Any]) -> None:
        """Print a table of stored variables and value previews."""
        table = Table(title="Variables", show_lines=False)
        table.add_column("Name", style="cyan", no_wrap=True)
        table.add_column("Type", style="dim")
        table.add_column("Value")

        for name in sorted(variables):
            value = variables[name]
            table.add_row(Text(name), type(value).__name__, Text(preview(value)))

        self.console.print()
        self.console.print(table)

    def print_summary(
        self,
        completed: int,
        failed: int,
        skipped: int,
        total_elapsed: float,
    ) -> None:
        """Format: ────────────────────────────────────
                ✓ Workflow complete | 3 tasks | 1.2s
        """
        self.console.print()
        self.console.print("─" * 40)

        duration_str = format_duration(total_elapsed)
        counts = f"{completed} tasks"
        if skipped:
            counts += f", {skipped} skipped"

        if failed:
            self.console.print(
                f"[red]✗ Workflow failed[/red] | {counts}, {failed} failed | {duration_str}"
            )
        else:
            self.console.print(f"[green]✓ Workflow complete[/green] | {counts} | {duration_str}")
        self.console.print()


_display: Optional[WorkflowDisplay] = None
_display_lock = threading.Lock()


def get_display() -> WorkflowDisplay:
    """Get or create the shared display instance."""
    global _display
    with _display_lock:
        if _display is None:
            _display = WorkflowDisplay()
        return _display


def reset_display() -> None:
    """Drop the shared display instance (useful for testing)."""
    global _display
    with _display_lock:
        _display = None
