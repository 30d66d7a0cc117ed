"""Sync commands: run a cycle, show state, resolve conflicts."""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime
from typing import Annotated, Any

import typer

from chunksync.cli._helpers import (
    get_config,
    open_engine,
    open_store,
    output_result,
    require_remote,
    run_async,
)
from chunksync.sync.events import ConflictEvent, SyncEvent
from chunksync.sync.protocol import ConflictStrategy, Resolution, SyncDirection, SyncState
from chunksync.transport.base import TransportError
from chunksync.utils.timeutils import ms_to_datetime

logger = logging.getLogger(__name__)


def _format_time(value: int | None) -> str:
    if value is None:
        return "never"
    stamp: datetime = ms_to_datetime(value).astimezone()
    return stamp.strftime("%Y-%m-%d %H:%M:%S")


def sync(
    direction: Annotated[
        SyncDirection | None,
        typer.Option("--direction", "-d", help="Override the configured direction"),
    ] = None,
    strategy: Annotated[
        ConflictStrategy | None,
        typer.Option("--strategy", "-s", help="Override the configured conflict strategy"),
    ] = None,
    json_output: Annotated[bool, typer.Option("--json", "-j", help="Output as JSON")] = False,
) -> None:
    """Run one sync cycle against the configured remote.

    Examples:
        chunksync sync
        chunksync sync --direction download_only
        chunksync sync --strategy manual --json
    """
    config = get_config()
    require_remote(config)

    sync_config = config.sync
    if direction is not None:
        sync_config = replace(sync_config, direction=direction)
    if strategy is not None:
        sync_config = replace(sync_config, conflict_resolution=strategy)
    config = replace(config, sync=sync_config)

    def _on_event(event: SyncEvent) -> None:
        if isinstance(event, ConflictEvent) and not json_output:
            typer.secho(f"  conflict: {event.chunk_id}", fg=typer.colors.YELLOW)

    async def _sync() -> dict[str, Any]:
        try:
            async with open_engine(config) as engine:
                engine.add_event_listener(_on_event)
                result = await engine.sync()
        except TransportError as e:
            return {"success": False, "status": "error", "error": str(e)}
        return result.to_dict()

    result = run_async(_sync())

    if json_output:
        output_result(result, as_json=True)
    elif not result["success"]:
        typer.secho(f"Sync failed: {result['error']}", fg=typer.colors.RED)
    else:
        color = typer.colors.YELLOW if result["conflicts"] else typer.colors.GREEN
        typer.secho(f"Sync {result['status']}", fg=color)
        typer.echo(f"  Uploaded:   {result['uploaded_chunks']}")
        typer.echo(f"  Downloaded: {result['downloaded_chunks']}")
        typer.echo(f"  Deleted:    {result['deleted_chunks']}")
        typer.echo(f"  Skipped:    {result['skipped_chunks']}")
        if result["conflicts"]:
            typer.secho(
                f"{len(result['conflicts'])} conflict(s). "
                "Use 'chunksync resolve <id> --keep local|remote'.",
                fg=typer.colors.YELLOW,
            )

    if not result["success"]:
        raise typer.Exit(1)


def status(
    json_output: Annotated[bool, typer.Option("--json", "-j", help="Output as JSON")] = False,
) -> None:
    """Show the outcome of the last sync and the local chunk count.

    Examples:
        chunksync status
        chunksync status --json
    """
    config = get_config()

    async def _status() -> dict[str, Any]:
        store = await open_store(config)
        state = await store.load_sync_state() or SyncState()
        chunks = await store.get_local_chunks()
        return {
            "remote": config.webdav.url or None,
            "local_chunks": len(chunks),
            **state.to_dict(),
        }

    info = run_async(_status())

    if json_output:
        output_result(info, as_json=True)
        return

    typer.echo(f"Remote: {info['remote'] or 'not configured'}")
    typer.echo(f"Local chunks: {info['local_chunks']}")
    typer.echo(f"Status: {info['status']}")
    typer.echo(f"Last sync: {_format_time(info['last_sync_time'])}")
    if info["last_error"]:
        typer.secho(f"Last error: {info['last_error']}", fg=typer.colors.RED)
    if info["pending_uploads"] or info["pending_downloads"]:
        typer.echo(f"Pending: {info['pending_uploads']} up, {info['pending_downloads']} down")
    for chunk_id in info["conflicts"]:
        typer.secho(f"  conflict: {chunk_id}", fg=typer.colors.YELLOW)


def resolve(
    chunk_id: Annotated[str, typer.Argument(help="Chunk to resolve")],
    keep: Annotated[str, typer.Option("--keep", "-k", help="Which copy wins: local or remote")],
    json_output: Annotated[bool, typer.Option("--json", "-j", help="Output as JSON")] = False,
) -> None:
    """Resolve a conflicting chunk by keeping one side.

    Examples:
        chunksync resolve settings --keep local
        chunksync resolve profile --keep remote
    """
    choices = {"local": Resolution.KEEP_LOCAL, "remote": Resolution.KEEP_REMOTE}
    resolution = choices.get(keep.strip().lower())
    if resolution is None:
        typer.secho("--keep must be 'local' or 'remote'", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)

    config = get_config()
    require_remote(config)

    async def _resolve() -> dict[str, Any]:
        try:
            async with open_engine(config) as engine:
                meta = await engine.resolve_manually(chunk_id, resolution)
        except KeyError:
            side = "locally" if resolution == Resolution.KEEP_LOCAL else "on the remote"
            return {"error": f"Chunk {chunk_id} does not exist {side}"}
        except TransportError as e:
            return {"error": str(e)}
        return {
            "message": f"Resolved {chunk_id}: kept {keep} copy (v{meta.version})",
            "chunk": meta.to_dict(),
        }

    result = run_async(_resolve())
    output_result(result, as_json=json_output)
    if "error" in result:
        raise typer.Exit(1)
