"""Pytest configuration and fixtures."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from pathlib import Path

import pytest
import pytest_asyncio

from chunksync.config import SyncConfig
from chunksync.storage.memory_store import InMemoryChunkStore
from chunksync.storage.sqlite_store import SQLiteChunkStore
from chunksync.sync.protocol import ConflictStrategy
from chunksync.sync.sync_engine import SyncEngine
from chunksync.transport.memory import InMemoryTransport


@pytest.fixture
def sync_config() -> SyncConfig:
    """Engine settings with a deterministic conflict strategy."""
    return SyncConfig(conflict_resolution=ConflictStrategy.TIMESTAMP)


@pytest.fixture
def remote() -> InMemoryTransport:
    """A remote shared by every device in a test."""
    return InMemoryTransport()


@pytest.fixture
def store_a() -> InMemoryChunkStore:
    return InMemoryChunkStore()


@pytest.fixture
def store_b() -> InMemoryChunkStore:
    return InMemoryChunkStore()


@pytest_asyncio.fixture
async def engine_a(
    sync_config: SyncConfig, remote: InMemoryTransport, store_a: InMemoryChunkStore
) -> AsyncGenerator[SyncEngine, None]:
    """Initialized engine for device A."""
    engine = SyncEngine(sync_config, remote, store_a, "device-a")
    await engine.initialize()
    yield engine
    await engine.destroy()


@pytest_asyncio.fixture
async def engine_b(
    sync_config: SyncConfig, remote: InMemoryTransport, store_b: InMemoryChunkStore
) -> AsyncGenerator[SyncEngine, None]:
    """Initialized engine for device B, sharing A's remote."""
    engine = SyncEngine(sync_config, remote, store_b, "device-b")
    await engine.initialize()
    yield engine
    await engine.destroy()


@pytest_asyncio.fixture
async def sqlite_store(tmp_path: Path) -> AsyncGenerator[SQLiteChunkStore, None]:
    """A SQLite chunk store in a temp directory."""
    store = SQLiteChunkStore(tmp_path / "chunks.db")
    await store.initialize()
    yield store
    await store.close()
