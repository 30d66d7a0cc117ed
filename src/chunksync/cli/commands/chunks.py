"""Chunk inspection and editing commands."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Annotated, Any

import typer
from rich.console import Console
from rich.table import Table

from chunksync.cli._helpers import (
    get_config,
    get_device,
    open_engine,
    open_store,
    output_result,
    require_remote,
    run_async,
)
from chunksync.sync.errors import ChunkTooLargeError
from chunksync.sync.protocol import ChunkMetadata
from chunksync.transport.base import TransportError
from chunksync.utils.timeutils import ms_to_datetime

logger = logging.getLogger(__name__)

chunks_app = typer.Typer(help="Inspect and edit local chunks")


def _render_catalog(title: str, catalog: dict[str, ChunkMetadata]) -> None:
    table = Table(title=title)
    table.add_column("ID", style="cyan")
    table.add_column("Version", justify="right")
    table.add_column("Type")
    table.add_column("Size", justify="right")
    table.add_column("Updated")
    table.add_column("Device", style="dim")
    table.add_column("Checksum", style="dim")

    for chunk_id in sorted(catalog):
        meta = catalog[chunk_id]
        table.add_row(
            chunk_id,
            str(meta.version),
            meta.data_type,
            str(meta.size),
            ms_to_datetime(meta.updated_at).astimezone().strftime("%Y-%m-%d %H:%M"),
            meta.device_id,
            meta.checksum[:12],
        )
    Console().print(table)


@chunks_app.command("list")
def chunks_list(
    json_output: Annotated[bool, typer.Option("--json", "-j", help="Output as JSON")] = False,
) -> None:
    """List local chunks.

    Examples:
        chunksync chunks list
    """
    config = get_config()

    async def _list() -> dict[str, ChunkMetadata]:
        store = await open_store(config)
        return await store.get_local_chunks()

    catalog = run_async(_list())
    if json_output:
        typer.echo(json.dumps([meta.to_dict() for meta in catalog.values()], indent=2))
    elif not catalog:
        typer.echo("No local chunks.")
    else:
        _render_catalog("Local chunks", catalog)


@chunks_app.command("remote")
def chunks_remote(
    json_output: Annotated[bool, typer.Option("--json", "-j", help="Output as JSON")] = False,
) -> None:
    """List chunks stored on the remote.

    Examples:
        chunksync chunks remote
    """
    config = get_config()
    require_remote(config)

    async def _list() -> dict[str, ChunkMetadata]:
        async with open_engine(config) as engine:
            return await engine.list_remote_chunks()

    try:
        catalog = run_async(_list())
    except TransportError as e:
        typer.secho(f"Error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1) from e

    if json_output:
        typer.echo(json.dumps([meta.to_dict() for meta in catalog.values()], indent=2))
    elif not catalog:
        typer.echo("No remote chunks.")
    else:
        _render_catalog("Remote chunks", catalog)


@chunks_app.command("put")
def chunks_put(
    chunk_id: Annotated[str, typer.Argument(help="Chunk ID")],
    value: Annotated[
        str | None, typer.Argument(help="JSON payload (omit when using --file)")
    ] = None,
    file: Annotated[
        Path | None, typer.Option("--file", "-f", help="Read the JSON payload from a file")
    ] = None,
    text: Annotated[
        bool, typer.Option("--text", help="Store the value as a plain string, not JSON")
    ] = False,
    data_type: Annotated[str, typer.Option("--type", "-t", help="Data type label")] = "json",
    json_output: Annotated[bool, typer.Option("--json", "-j", help="Output as JSON")] = False,
) -> None:
    """Write a new local version of a chunk.

    Examples:
        chunksync chunks put settings '{"theme": "dark"}'
        chunksync chunks put notes "buy milk" --text --type note
        chunksync chunks put profile --file profile.json
    """
    if file is not None:
        raw = file.read_text(encoding="utf-8")
    elif value is not None:
        raw = value
    else:
        typer.secho("Provide a value or --file", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)

    payload: Any
    if text:
        payload = raw
    else:
        try:
            payload = json.loads(raw)
        except ValueError as e:
            typer.secho(
                f"Invalid JSON: {e} (use --text for strings)", fg=typer.colors.RED, err=True
            )
            raise typer.Exit(1) from e

    config = get_config()
    device_id = get_device(config).get()

    async def _put() -> dict[str, Any]:
        store = await open_store(config)
        try:
            meta = await store.put_chunk(
                chunk_id,
                payload,
                data_type,
                device_id,
                max_size=config.sync.max_chunk_size,
            )
        except ChunkTooLargeError as e:
            return {"error": str(e)}
        return {
            "message": f"Saved {chunk_id} v{meta.version} ({meta.size} bytes)",
            "chunk": meta.to_dict(),
        }

    result = run_async(_put())
    output_result(result, as_json=json_output)
    if "error" in result:
        raise typer.Exit(1)


@chunks_app.command("get")
def chunks_get(
    chunk_id: Annotated[str, typer.Argument(help="Chunk ID")],
    meta_only: Annotated[bool, typer.Option("--meta", help="Show metadata only")] = False,
) -> None:
    """Print a local chunk's payload as JSON.

    Examples:
        chunksync chunks get settings
        chunksync chunks get settings --meta
    """
    config = get_config()

    async def _get() -> Any:
        store = await open_store(config)
        return await store.get_chunk(chunk_id)

    chunk = run_async(_get())
    if chunk is None:
        typer.secho(f"Chunk not found: {chunk_id}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)

    if meta_only:
        typer.echo(json.dumps(chunk.meta.to_dict(), indent=2))
    else:
        typer.echo(json.dumps(chunk.data, indent=2, ensure_ascii=False))


@chunks_app.command("rm")
def chunks_rm(
    chunk_id: Annotated[str, typer.Argument(help="Chunk ID")],
    local_only: Annotated[
        bool, typer.Option("--local-only", help="Keep the remote copy")
    ] = False,
    force: Annotated[bool, typer.Option("--force", "-f", help="Skip confirmation")] = False,
) -> None:
    """Delete a chunk locally and from the remote.

    Other devices that still hold the chunk will upload it again on their
    next bidirectional sync.

    Examples:
        chunksync chunks rm settings
        chunksync chunks rm scratch --local-only --force
    """
    if not force:
        where = "locally" if local_only else "locally and on the remote"
        typer.confirm(f"Delete {chunk_id} {where}?", abort=True)

    config = get_config()
    remote = config.webdav.is_configured and not local_only

    async def _rm() -> None:
        if remote:
            async with open_engine(config) as engine:
                await engine.delete_chunk(chunk_id)
        else:
            store = await open_store(config)
            await store.remove_chunk(chunk_id)

    try:
        run_async(_rm())
    except TransportError as e:
        typer.secho(f"Error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1) from e
    typer.secho(f"Deleted {chunk_id}", fg=typer.colors.GREEN)
