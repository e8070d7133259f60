"""Thin CLI wrapper for meda_builder.

This module provides the command-line interface using Typer.
All business logic is delegated to core modules.
"""

import json
import logging
import signal
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Annotated, Any

import typer
from pydantic import ValidationError
from rich.console import Console

from meda_builder import __version__
from meda_builder.config import get_settings, print_settings_json
from meda_builder.templates.io import load_build_config
from meda_builder.templates.schema import BuildConfig
from meda_builder.transport import TransportError

app = typer.Typer(
    name="meda-builder",
    help="Meda Builder - build, snapshot and push Meda VM images",
    no_args_is_help=True,
)
console = Console()

EXIT_CANCELLED = 130


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"meda-builder version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """Meda Builder - build, snapshot and push Meda VM images."""


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _load_template(path: Path, overrides: dict[str, Any] | None = None) -> BuildConfig:
    """Load a template or exit with a readable error."""
    if not path.exists():
        console.print(f"[red]Template not found: {path}[/red]")
        raise typer.Exit(code=1)
    try:
        return load_build_config(path, overrides)
    except ValidationError as e:
        console.print(f"[red]Invalid template {path}:[/red]")
        for error in e.errors():
            location = ".".join(str(part) for part in error["loc"])
            console.print(f"  {location}: {error['msg']}")
        raise typer.Exit(code=1) from None
    except ValueError as e:
        console.print(f"[red]Invalid template {path}: {e}[/red]")
        raise typer.Exit(code=1) from None


@contextmanager
def _cancel_on_signals(cancel_event: threading.Event) -> Iterator[None]:
    """Set cancel_event on SIGINT/SIGTERM for the duration of the block."""

    def _handler(signum: int, frame: Any) -> None:
        console.print("[yellow]Cancelling build, cleaning up...[/yellow]")
        cancel_event.set()

    original_int = signal.signal(signal.SIGINT, _handler)
    original_term = signal.signal(signal.SIGTERM, _handler)
    try:
        yield
    finally:
        signal.signal(signal.SIGINT, original_int)
        signal.signal(signal.SIGTERM, original_term)


@app.command()
def config(
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show effective configuration."""
    settings = get_settings()
    if json_output:
        console.print(print_settings_json(settings))
    else:
        console.print("[bold]Effective Configuration:[/bold]")
        console.print()
        console.print("[bold]Operational:[/bold]")
        console.print(f"  Log level:           {settings.log_level}")
        console.print()
        console.print("[bold]Timeouts (seconds):[/bold]")
        console.print(f"  Command timeout:     {settings.command_timeout}")
        console.print(f"  HTTP timeout:        {settings.http_timeout}")
        console.print(f"  Ready poll interval: {settings.ready_poll_interval}")
        console.print(f"  Ready timeout:       {settings.ready_timeout}")


@app.command()
def validate(
    template: Annotated[Path, typer.Argument(help="Build template (YAML/JSON)")],
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Validate a build template and show its effective values."""
    build_config = _load_template(template)
    if json_output:
        console.print(build_config.model_dump_json(indent=2))
        return

    console.print(f"[green]Template is valid: {template}[/green]")
    console.print(f"  Transport:    {build_config.transport_kind.value}")
    console.print(f"  Base image:   {build_config.base_image}")
    console.print(f"  Output image: {build_config.output_image_ref}")
    if build_config.push_to_registry:
        console.print(f"  Push target:  {build_config.publish_target}")


@app.command()
def build(
    template: Annotated[Path, typer.Argument(help="Build template (YAML/JSON)")],
    use_api: Annotated[
        bool | None,
        typer.Option("--use-api/--use-binary", help="Talk to the Meda API"),
    ] = None,
    push: Annotated[
        bool | None,
        typer.Option("--push/--no-push", help="Push the image after building"),
    ] = None,
    dry_run: Annotated[
        bool | None,
        typer.Option("--dry-run", help="Simulate the registry push"),
    ] = None,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output result as JSON"),
    ] = False,
) -> None:
    """Build an image from a template."""
    from meda_builder.builds.runner import (
        BuildCancelledError,
        BuildError,
        Builder,
        BuildHaltedError,
    )

    settings = get_settings()
    _configure_logging(settings.log_level)

    overrides = {"use_api": use_api, "push_to_registry": push, "dry_run": dry_run}
    build_config = _load_template(template, overrides)

    builder = Builder(build_config, settings=settings)
    cancel_event = threading.Event()
    try:
        with _cancel_on_signals(cancel_event):
            artifact = builder.run(cancel_event)
    except TransportError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1) from None
    except BuildCancelledError:
        console.print("[yellow]Build was cancelled[/yellow]")
        raise typer.Exit(code=EXIT_CANCELLED) from None
    except (BuildError, BuildHaltedError) as e:
        if json_output:
            output = {"success": False, "code": e.code, "error": str(e)}
            console.print(json.dumps(output))
        else:
            console.print(f"[red]Build failed: {e}[/red]")
        raise typer.Exit(code=1) from None

    warnings = builder.state.warnings if builder.state else []
    if json_output:
        output = {"success": True, **artifact.to_dict(), "warnings": warnings}
        console.print(json.dumps(output, indent=2))
        return

    for warning in warnings:
        console.print(f"[yellow]Warning: {warning}[/yellow]")
    console.print(f"[green]Build finished: {artifact}[/green]")


@app.command()
def destroy(
    template: Annotated[Path, typer.Argument(help="Build template (YAML/JSON)")],
    use_api: Annotated[
        bool | None,
        typer.Option("--use-api/--use-binary", help="Talk to the Meda API"),
    ] = None,
) -> None:
    """Delete the image a template produces."""
    from meda_builder.builds.artifact import Artifact, ArtifactError

    build_config = _load_template(template, {"use_api": use_api})
    artifact = Artifact(image_name=build_config.output_image_ref, config=build_config)
    try:
        artifact.destroy()
    except (ArtifactError, TransportError) as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1) from None
    console.print(f"[green]Destroyed image {artifact.image_name}[/green]")


__all__ = ["app"]
