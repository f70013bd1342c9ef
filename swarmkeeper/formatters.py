"""
Console output for Swarmkeeper operations.

Renders convergence progress and per-slot task listings with Rich, in the
spirit of the docker CLI's own progress output.
"""

from typing import Optional

from rich.console import Console
from rich.table import Table
from rich.text import Text

from .converge.progress import Progress
from .converge.states import TaskState
from .models import Task

STATE_STYLES = {
    TaskState.RUNNING: "green",
    TaskState.COMPLETE: "green",
    TaskState.SHUTDOWN: "dim",
    TaskState.FAILED: "red",
    TaskState.REJECTED: "red",
}


def state_text(state: TaskState, width: int = 0) -> Text:
    """Colored, padded state name."""
    return Text(f"{state.value:<{width}}", style=STATE_STYLES.get(state, "yellow"))


class ProgressPrinter:
    """Progress reporter that prints each evaluation to a Rich console.

    Pass an instance wherever a ``ProgressReporter`` is expected.
    """

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console()

    def __call__(self, progress: Progress) -> None:
        color = "green" if progress.converged else "cyan"
        header = Text(f"overall progress: {progress.running} out of {progress.replicas} tasks", style=color)
        if progress.rollback:
            header.append("  (rolling back)", style="bold yellow")
        self.console.print(header)

        for slot in progress.slots:
            line = Text(f"  {slot.index}/{progress.replicas}: ")
            line.append_text(state_text(slot.task.state, progress.state_width))
            line.append(f"  {slot.task.id[:12]}", style="dim")
            if slot.task.status.message:
                line.append(f"  {slot.task.status.message}", style="dim")
            self.console.print(line)


def tasks_table(service_name: str, slots: dict[int, Task]) -> Table:
    """Table of the authoritative task per slot."""
    table = Table(title=f"Tasks of {service_name}", title_style="bold blue")
    table.add_column("Slot", justify="right")
    table.add_column("Task")
    table.add_column("Node")
    table.add_column("Desired")
    table.add_column("Current")
    table.add_column("Message", style="dim")

    for slot in sorted(slots):
        task = slots[slot]
        table.add_row(
            str(slot),
            task.id[:12],
            task.node_id[:12] or "-",
            task.desired_state.value,
            state_text(task.state),
            Text(task.status.message),
        )
    return table
