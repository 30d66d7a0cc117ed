"""CLI commands for configuration management."""

from __future__ import annotations

import json
from typing import Annotated

import typer

from chunksync.cli._helpers import get_config

config_app = typer.Typer(help="Configuration management")


@config_app.command("show")
def config_show(
    json_output: Annotated[bool, typer.Option("--json", "-j", help="Output as JSON")] = False,
) -> None:
    """Show the current configuration. The password is masked.

    Examples:
        chunksync config show
    """
    config = get_config()
    data = config.to_dict()

    if json_output:
        typer.echo(json.dumps(data, indent=2))
        return

    typer.echo(f"Config file: {config.config_path}")
    for section in ("webdav", "sync"):
        typer.secho(f"\n[{section}]", fg=typer.colors.CYAN, bold=True)
        for key, value in data[section].items():
            typer.echo(f"  {key} = {value}")


@config_app.command("set")
def config_set(
    key: Annotated[str, typer.Argument(help="Setting as section.name, e.g. sync.direction")],
    value: Annotated[str, typer.Argument(help="New value")],
) -> None:
    """Change one setting.

    Examples:
        chunksync config set sync.direction upload_only
        chunksync config set sync.conflict_resolution manual
        chunksync config set sync.enable_compression true
        chunksync config set webdav.timeout 60
    """
    config = get_config()
    try:
        updated = config.with_value(key, value)
    except KeyError:
        typer.secho(f"Unknown setting: {key}", fg=typer.colors.RED, err=True)
        typer.echo("Run 'chunksync config show' to list settings.")
        raise typer.Exit(1) from None
    except ValueError as e:
        typer.secho(f"Invalid value for {key}: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1) from e

    updated.save()
    shown = "********" if key == "webdav.password" else value
    typer.secho(f"{key} = {shown}", fg=typer.colors.GREEN)
