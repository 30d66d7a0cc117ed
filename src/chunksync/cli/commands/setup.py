"""Setup commands: remote configuration, connection test, device identity."""

from __future__ import annotations

import json
import logging
from dataclasses import replace
from typing import Annotated, Any

import typer

from chunksync.cli._helpers import get_config, get_device, output_result, require_remote, run_async
from chunksync.config import WebDAVConfig
from chunksync.sync.device import get_device_name
from chunksync.transport.factory import create_transport

logger = logging.getLogger(__name__)


def init(
    url: Annotated[str, typer.Argument(help="WebDAV URL, or file:///path for a local folder")],
    username: Annotated[str, typer.Option("--username", "-u", help="WebDAV username")] = "",
    password: Annotated[
        str,
        typer.Option(
            "--password",
            "-p",
            help="WebDAV password (or set CHUNKSYNC_WEBDAV_PASSWORD)",
        ),
    ] = "",
    sync_path: Annotated[
        str, typer.Option("--path", help="Folder on the server that holds sync data")
    ] = "chunksync",
    insecure: Annotated[
        bool, typer.Option("--insecure", help="Skip TLS certificate verification")
    ] = False,
    timeout: Annotated[
        float, typer.Option("--timeout", "-t", help="Request timeout in seconds")
    ] = 30.0,
) -> None:
    """Configure the remote server.

    Examples:
        chunksync init https://dav.example.com/remote.php/dav/files/me -u me -p secret
        chunksync init file:///mnt/nas --path team-sync
    """
    config = get_config()
    try:
        webdav = WebDAVConfig(
            url=url.rstrip("/"),
            username=username,
            password=password or config.webdav.password,
            sync_path=sync_path,
            verify_tls=not insecure,
            timeout=timeout,
        )
    except ValueError as e:
        typer.secho(f"Error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1) from e

    config = replace(config, sync=replace(config.sync, webdav=webdav))
    config.save()

    typer.secho("Remote configured!", fg=typer.colors.GREEN)
    typer.echo(f"  URL: {webdav.url}")
    typer.echo(f"  Folder: {webdav.sync_path}")
    if username:
        typer.echo(f"  User: {username}")
    typer.echo(f"  Config: {config.config_path}")
    typer.secho("Run 'chunksync test' to check the connection.", fg=typer.colors.BRIGHT_BLACK)


def test(
    json_output: Annotated[bool, typer.Option("--json", "-j", help="Output as JSON")] = False,
) -> None:
    """Test the connection to the configured remote.

    Examples:
        chunksync test
    """
    config = get_config()
    require_remote(config)

    async def _test() -> dict[str, Any]:
        transport = create_transport(config.webdav)
        try:
            check = await transport.test_connection()
        finally:
            await transport.close()
        return {"url": config.webdav.url, "success": check.success, "error": check.error}

    result = run_async(_test())

    if json_output:
        output_result(result, as_json=True)
    elif result["success"]:
        typer.secho(f"[OK] Connected to {result['url']}", fg=typer.colors.GREEN)
    else:
        typer.secho(f"[FAILED] {result['error']}", fg=typer.colors.RED)

    if not result["success"]:
        raise typer.Exit(1)


def device(
    json_output: Annotated[bool, typer.Option("--json", "-j", help="Output as JSON")] = False,
) -> None:
    """Show this installation's device identity.

    Examples:
        chunksync device
    """
    config = get_config()
    identity = get_device(config)
    info = {
        "device_id": identity.get(),
        "device_name": get_device_name(),
        "path": str(identity.path),
        "ephemeral": identity.is_ephemeral,
    }

    if json_output:
        typer.echo(json.dumps(info, indent=2))
        return

    typer.echo(f"Device ID: {info['device_id']}")
    typer.echo(f"Device name: {info['device_name']}")
    if identity.is_ephemeral:
        typer.secho(
            f"Warning: could not save the device ID to {identity.path}", fg=typer.colors.YELLOW
        )
