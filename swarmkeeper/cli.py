"""
Swarmkeeper CLI - Declarative Docker Swarm services that converge.
"""

import logging
from pathlib import Path
from typing import Any, Callable

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel

from .client.base import get_active_nodes
from .converge.config import ConvergeConfig
from .converge.slots import tasks_by_slot
from .errors import CompensationError, ConvergenceError, DidNotConvergeError
from .formatters import ProgressPrinter, tasks_table
from .reconciler import ServiceReconciler
from .resources.service import ServiceResource
from .settings import get_settings

# Setup
app = typer.Typer(
    name="swarmkeeper",
    help="Declarative Docker Swarm services that converge",
    add_completion=False,
)
console = Console()


def configure_logging():
    """Configure logging based on settings."""
    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


# Configure logging on module import
configure_logging()


def _load_resource(resource_file: Path) -> ServiceResource:
    """Load a service resource from a JSON file.

    Raises:
        SystemExit: If the file does not exist
    """
    if not resource_file.exists():
        console.print(f"[bold red]✗ Error:[/bold red] {resource_file} not found")
        raise typer.Exit(code=1)
    try:
        return ServiceResource.model_validate_json(resource_file.read_text())
    except ValidationError as e:
        console.print(f"[bold red]✗ Invalid resource in {resource_file}:[/bold red]\n{escape(str(e))}")
        raise typer.Exit(code=1)


def _create_command_panel(title: str, color: str, subject: str) -> Panel:
    settings = get_settings()
    return Panel.fit(
        f"[bold {color}]{title}[/bold {color}]\n"
        f"Service: {subject}\n"
        f"Docker: {settings.docker_host or 'local daemon'}",
        border_style=color,
    )


def _handle_command_error(e: Exception, command_type: str) -> None:
    """Print a failed command and exit with code 1.

    Raises:
        SystemExit: Always exits with code 1
    """
    console.print(f"\n[bold red]✗ {command_type.capitalize()} failed:[/bold red] {escape(str(e))}")
    if isinstance(e, DidNotConvergeError) or (
        isinstance(e, CompensationError) and isinstance(e.original, DidNotConvergeError)
    ):
        console.print("[dim]Hint: increase converge_config.timeout or check the service's tasks[/dim]")
    elif isinstance(e, ConvergenceError):
        console.print(f"[dim]Hint: inspect the service with 'swarmkeeper tasks {e.service_id}'[/dim]")
    raise typer.Exit(code=1)


def _run_command(command_name: str, action: Callable[[ServiceReconciler], Any],
                 success_handler: Callable[[Any], None]) -> None:
    """Run ``action`` against a reconciler with common error handling."""
    try:
        reconciler = ServiceReconciler(reporter=ProgressPrinter(console))
        result = action(reconciler)
    except typer.Exit:
        raise
    except Exception as e:
        _handle_command_error(e, command_name)
    success_handler(result)


@app.command()
def apply(
    resource_file: Path = typer.Argument(..., help="JSON file describing the service"),
):
    """Create or update a service and wait for it if it has a converge_config."""
    resource = _load_resource(resource_file)
    console.print(_create_command_panel("Swarmkeeper Apply", "blue", resource.name))

    def _handle_success(result):
        verb = "created" if result["action"] == "create" else "updated"
        console.print(f"\n[bold green]✓ Service {verb}:[/bold green] {result['service_id']}")
        for warning in result.get("warnings", []):
            console.print(f"[yellow]⚠ {warning}[/yellow]")

    _run_command("apply", lambda reconciler: reconciler.apply(resource), _handle_success)


@app.command()
def destroy(
    resource_file: Path = typer.Argument(..., help="JSON file describing the service"),
):
    """Remove a service, reaping its containers after the stop grace period."""
    resource = _load_resource(resource_file)
    console.print(_create_command_panel("Swarmkeeper Destroy", "red", resource.name))

    def _handle_success(result):
        if result["removed"]:
            console.print(f"\n[bold green]✓ Service removed:[/bold green] {result['service_id']}")
        else:
            console.print(f"\n[dim]Service {resource.name} does not exist[/dim]")

    _run_command("destroy", lambda reconciler: reconciler.destroy(resource), _handle_success)


@app.command()
def converge(
    service_id: str = typer.Argument(..., help="Service ID or name"),
    update: bool = typer.Option(
        False, "--update", help="Wait for a rolling update instead of a create"
    ),
    delay: str = typer.Option(None, "--delay", help="Wait before the first poll, e.g. 7s"),
    timeout: str = typer.Option(None, "--timeout", help="Time budget, e.g. 3m"),
):
    """Wait for an existing service to converge."""
    console.print(_create_command_panel("Swarmkeeper Converge", "cyan", service_id))

    def _converge(reconciler: ServiceReconciler):
        options = {key: value for key, value in (("delay", delay), ("timeout", timeout)) if value}
        return reconciler.converge(service_id, ConvergeConfig(**options), update=update)

    def _handle_success(result):
        console.print(f"\n[bold green]✓ Service converged:[/bold green] {result.state.value}")

    _run_command("converge", _converge, _handle_success)


@app.command()
def tasks(
    service_id: str = typer.Argument(..., help="Service ID or name"),
):
    """Show the task the swarm currently runs in each slot."""

    def _tasks(reconciler: ServiceReconciler):
        client = reconciler.client
        service = client.inspect_service(service_id)
        slots = tasks_by_slot(
            client.list_tasks(service_id, desired_state="running"),
            get_active_nodes(client),
        )
        return service, slots

    def _handle_success(result):
        service, slots = result
        console.print(tasks_table(service.spec.name, slots))
        if service.replicas is not None:
            console.print(f"[dim]Replicas: {service.replicas}[/dim]")

    _run_command("tasks", _tasks, _handle_success)


@app.command()
def version():
    """Show Swarmkeeper version."""
    from . import __version__

    console.print(f"Swarmkeeper version: [bold]{__version__}[/bold]")


if __name__ == "__main__":
    app()
