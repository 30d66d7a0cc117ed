"""Shared CLI helpers for configuration, engine setup, and output formatting."""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from collections.abc import AsyncIterator, Coroutine
from contextlib import asynccontextmanager
from dataclasses import replace
from typing import Any, TypeVar

import typer

from chunksync.config import AppConfig
from chunksync.storage.sqlite_store import SQLiteChunkStore
from chunksync.sync.device import DeviceIdentity
from chunksync.sync.sync_engine import SyncEngine
from chunksync.transport.factory import create_transport

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Stores opened during a CLI command, closed before the event loop shuts
# down so aiosqlite's worker thread does not outlive it.
_active_stores: list[SQLiteChunkStore] = []


def configure_logging(verbose: bool = False) -> None:
    """Send log records to stderr; WARNING by default, DEBUG with --verbose."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
        force=True,
    )


def get_config() -> AppConfig:
    """Load the configuration, exiting with a message if it is invalid."""
    try:
        return AppConfig.load()
    except ValueError as e:
        typer.secho(f"Invalid configuration: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1) from e


def get_device(config: AppConfig) -> DeviceIdentity:
    return DeviceIdentity(config.data_dir)


def run_async(coro: Coroutine[Any, Any, T]) -> T:
    """Run an async CLI command, closing chunk stores before the loop is torn down."""

    async def _with_cleanup() -> T:
        try:
            return await coro
        finally:
            for store in _active_stores:
                try:
                    await store.close()
                except Exception:
                    logger.debug("Failed to close chunk store during cleanup", exc_info=True)
            _active_stores.clear()
            await asyncio.sleep(0)

    return asyncio.run(_with_cleanup())


async def open_store(config: AppConfig) -> SQLiteChunkStore:
    store = SQLiteChunkStore(config.db_path)
    await store.initialize()
    _active_stores.append(store)
    return store


@asynccontextmanager
async def open_engine(config: AppConfig, *, connect: bool = True) -> AsyncIterator[SyncEngine]:
    """Build an engine over the local SQLite store and the configured remote.

    With ``connect`` the engine is initialized (connection checked, remote
    folders created); auto-sync is never started from the command line.
    """
    store = await open_store(config)
    transport = create_transport(config.webdav)
    sync_config = config.sync
    if sync_config.auto_sync:
        sync_config = replace(sync_config, auto_sync=False)

    engine = SyncEngine(sync_config, transport, store, get_device(config).get())
    try:
        if connect:
            await engine.initialize()
        yield engine
    finally:
        await engine.destroy()


def require_remote(config: AppConfig) -> None:
    if not config.webdav.is_configured:
        typer.secho(
            "No remote configured. Use 'chunksync init <url>' first.",
            fg=typer.colors.RED,
            err=True,
        )
        raise typer.Exit(1)


def output_result(data: dict[str, Any], as_json: bool = False) -> None:
    """Output result in appropriate format."""
    if as_json:
        typer.echo(json.dumps(data, indent=2, default=str))
        return

    if "error" in data and data["error"]:
        typer.secho(f"Error: {data['error']}", fg=typer.colors.RED)
    elif "message" in data:
        typer.secho(data["message"], fg=typer.colors.GREEN)
    else:
        for key, value in data.items():
            typer.echo(f"{key}: {value}")
