"""Main CLI implementation using Typer."""

import asyncio
from pathlib import Path
from typing import Any, Callable, Coroutine, Optional

import typer
from rich.console import Console
from rich.markup import escape

from proxlite.cli.commands import (
    apply_deployment,
    install_deployment,
    plan_deployment,
    validate_deployment,
)
from proxlite.cli.reporter import StatusReporter
from proxlite.engine.config import default_config_dir
from proxlite.errors import ProxliteError, SpecValidationError


# Create Typer app
app = typer.Typer(
    name="proxlite",
    help="Proxlite - Declarative LiteLLM proxy provisioning on Proxmox VE",
    add_completion=False,
)

# Console for rich output
console = Console()


def _run_cli_command(handler: Callable[..., Coroutine[Any, Any, int]], **kwargs: Any):
    """Helper to run an async command with error handling and exit codes."""
    try:
        exit_code = asyncio.run(handler(**kwargs))
    except SpecValidationError as e:
        StatusReporter(console).render_validation_error(e)
        console.print(f"[red]Error:[/red] {len(e.issues)} validation issue(s), nothing was changed")
        raise typer.Exit(1) from e
    except ProxliteError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(1) from e
    except KeyboardInterrupt:
        console.print("[yellow]Interrupted[/yellow]")
        raise typer.Exit(130)
    if exit_code:
        raise typer.Exit(exit_code)


def _config_dir(config_dir: Optional[Path]) -> Path:
    return config_dir or default_config_dir()


@app.command("install")
def install_command(
    container_id: Optional[int] = typer.Option(
        None, "--container-id", help="Reuse or resume this container id"
    ),
    config_dir: Optional[Path] = typer.Option(
        None, "--config-dir", "-c", help="Configuration directory"
    ),
    json_output: bool = typer.Option(False, "--json", help="Print the report as JSON"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """Interactively provision a LiteLLM proxy container."""
    _run_cli_command(
        install_deployment,
        config_dir=_config_dir(config_dir),
        container_id=container_id,
        json_output=json_output,
        log_level="DEBUG" if verbose else None,
    )


@app.command("apply")
def apply_command(
    name: str = typer.Argument(..., help="Deployment name"),
    config_dir: Optional[Path] = typer.Option(
        None, "--config-dir", "-c", help="Configuration directory"
    ),
    json_output: bool = typer.Option(False, "--json", help="Print the report as JSON"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """Converge a configured deployment to its desired state."""
    _run_cli_command(
        apply_deployment,
        name=name,
        config_dir=_config_dir(config_dir),
        json_output=json_output,
        log_level="DEBUG" if verbose else None,
    )


@app.command("plan")
def plan_command(
    name: str = typer.Argument(..., help="Deployment name"),
    config_dir: Optional[Path] = typer.Option(
        None, "--config-dir", "-c", help="Configuration directory"
    ),
    json_output: bool = typer.Option(False, "--json", help="Print the plan as JSON"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """Show the steps apply would run, without changing anything."""
    _run_cli_command(
        plan_deployment,
        name=name,
        config_dir=_config_dir(config_dir),
        json_output=json_output,
        log_level="DEBUG" if verbose else None,
    )


@app.command("validate")
def validate_command(
    name: str = typer.Argument(..., help="Deployment name"),
    config_dir: Optional[Path] = typer.Option(
        None, "--config-dir", "-c", help="Configuration directory"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """Validate a deployment without changing anything."""
    _run_cli_command(
        validate_deployment,
        name=name,
        config_dir=_config_dir(config_dir),
        log_level="DEBUG" if verbose else None,
    )


def main():
    """Main entry point for CLI."""
    app()
