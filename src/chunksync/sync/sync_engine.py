"""Sync engine orchestrator for multi-device chunk sync."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field, replace
from typing import Any

from chunksync.config import SyncConfig
from chunksync.storage.base import ChunkSource, LocalChunkStore
from chunksync.sync.checksum import compute_checksum, encode_payload
from chunksync.sync.conflict import resolve_conflict, winning_version
from chunksync.sync.diff import compute_diff
from chunksync.sync.errors import (
    ChunkCorruptError,
    ChunkTooLargeError,
    EngineNotInitializedError,
    SyncInProgressError,
)
from chunksync.sync.events import (
    CompletedEvent,
    ConflictEvent,
    ErrorEvent,
    EventBus,
    EventListener,
    ProgressEvent,
    StatusChangedEvent,
    Subscription,
)
from chunksync.sync.protocol import (
    ChunkData,
    ChunkMetadata,
    Resolution,
    SyncDirection,
    SyncPhase,
    SyncProgress,
    SyncResult,
    SyncState,
    SyncStatus,
    VersionMismatch,
)
from chunksync.transport.base import RemoteTransport, TransportError
from chunksync.transport.remote_store import RemoteChunkStore
from chunksync.utils.timeutils import now_ms

logger = logging.getLogger(__name__)

CANCELLED_MESSAGE = "Sync cancelled"


@dataclass
class _Cycle:
    """Mutable bookkeeping for one running cycle."""

    source: ChunkSource
    start_time: int
    local_catalog: dict[str, ChunkMetadata] = field(default_factory=dict)
    remote_catalog: dict[str, ChunkMetadata] = field(default_factory=dict)
    total: int = 0
    processed: int = 0
    uploaded: int = 0
    downloaded: int = 0
    deleted: int = 0
    skipped: int = 0
    failed_uploads: int = 0
    failed_downloads: int = 0
    conflicts: list[str] = field(default_factory=list)
    cancelled: bool = False


class SyncEngine:
    """Top-level orchestrator for syncing a local chunk store with a remote.

    One cycle:
    1. Check the connection
    2. Build the local and remote catalogs
    3. Diff them
    4. Download remote-only chunks, upload local-only chunks
    5. Resolve chunks that changed on both sides
    6. Report the result and persist the state

    Usage:
        async with SyncEngine(config, transport, store, device_id) as engine:
            engine.add_event_listener(print)
            result = await engine.sync()

    Per-chunk failures are counted as skipped and never abort the cycle.
    Connection or listing failures end the cycle with status ``error``.
    """

    def __init__(
        self,
        config: SyncConfig,
        transport: RemoteTransport,
        local_store: ChunkSource,
        device_id: str,
        *,
        state_store: LocalChunkStore | None = None,
    ) -> None:
        """
        Initialize the engine.

        Args:
            config: Engine settings
            transport: Remote object store
            local_store: The application's chunks
            device_id: Identity recorded on chunks written by this engine
            state_store: Where :class:`SyncState` is persisted; defaults to
                ``local_store`` when it is a :class:`LocalChunkStore`
        """
        if not device_id:
            raise ValueError("device_id must not be empty")

        self._config = config
        self._transport = transport
        self._remote = RemoteChunkStore(
            transport,
            compress=config.enable_compression,
            read_concurrency=config.max_concurrency,
        )
        self._local = local_store
        self._device_id = device_id
        if state_store is None and isinstance(local_store, LocalChunkStore):
            state_store = local_store
        self._state_store = state_store

        self._state = SyncState()
        self._events = EventBus()
        self._initialized = False
        self._destroyed = False
        self._syncing = False
        self._aborted = False
        self._auto_sync_task: asyncio.Task[None] | None = None
        self._auto_cycle_task: asyncio.Task[None] | None = None
        self._idle = asyncio.Event()
        self._idle.set()

    # ── Properties ──

    @property
    def device_id(self) -> str:
        return self._device_id

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def is_syncing(self) -> bool:
        return self._syncing

    @property
    def auto_sync_running(self) -> bool:
        return self._auto_sync_task is not None and not self._auto_sync_task.done()

    def get_state(self) -> SyncState:
        return self._state

    def get_config(self) -> SyncConfig:
        return self._config

    # ── Lifecycle ──

    async def initialize(self) -> None:
        """Verify the connection, prepare the remote layout and load saved state.

        Raises:
            TransportError: If the remote cannot be reached or prepared.
            EngineNotInitializedError: If the engine was destroyed.
        """
        if self._destroyed:
            raise EngineNotInitializedError("Engine has been destroyed")
        if self._initialized:
            return

        if self._state_store is not None:
            saved = await self._state_store.load_sync_state()
            if saved is not None:
                self._state = saved

        try:
            check = await self._transport.test_connection()
            if not check.success:
                raise TransportError(check.error or "Failed to connect to remote")
            await self._remote.prepare()
        except TransportError as e:
            self._state = replace(self._state, status=SyncStatus.ERROR, last_error=str(e))
            logger.error("Failed to initialize sync engine: %s", e)
            raise

        self._initialized = True
        if self._config.auto_sync:
            self.start_auto_sync()

        self._events.emit(StatusChangedEvent(status=self._state.status))
        logger.info("Sync engine initialized (device %s)", self._device_id)

    async def destroy(self) -> None:
        """Stop auto-sync, drop listeners and close the transport.

        A running cycle finishes the chunks it has started, skips the rest and
        reports ``"Sync cancelled"`` before the transport is closed.
        """
        self._aborted = True
        self._initialized = False
        task = self._auto_sync_task
        self._auto_sync_task = None
        if self._syncing:
            await self._idle.wait()
        if task is not None and not task.done():
            task.cancel()
        self._events.clear()
        self._destroyed = True
        await self._transport.close()
        logger.info("Sync engine destroyed")

    async def __aenter__(self) -> SyncEngine:
        await self.initialize()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.destroy()

    def _require_initialized(self) -> None:
        if not self._initialized:
            raise EngineNotInitializedError("Sync engine not initialized. Call initialize() first.")

    # ── Events ──

    def add_event_listener(self, listener: EventListener) -> Subscription:
        return self._events.add_listener(listener)

    def remove_event_listener(self, listener: EventListener) -> None:
        self._events.remove_listener(listener)

    def _set_status(self, status: SyncStatus) -> None:
        self._state = replace(self._state, status=status)
        self._events.emit(StatusChangedEvent(status=status))

    def _emit_progress(self, phase: SyncPhase, cycle: _Cycle, current: str | None = None) -> None:
        fraction = cycle.processed / cycle.total if cycle.total else 0.0
        if phase == SyncPhase.COMPLETED:
            fraction = 1.0
        self._events.emit(
            ProgressEvent(
                progress=SyncProgress(
                    phase=phase,
                    total_progress=fraction,
                    processed_chunks=cycle.processed,
                    total_chunks=cycle.total,
                    current_chunk=current,
                )
            )
        )

    # ── Sync cycle ──

    async def sync(self, local: ChunkSource | None = None) -> SyncResult:
        """Run one sync cycle.

        Args:
            local: Chunk source for this cycle; defaults to the engine's store

        Returns:
            The cycle result. Connection and listing failures are reported
            through ``success=False`` rather than raised.

        Raises:
            SyncInProgressError: If a cycle is already running.
            EngineNotInitializedError: If :meth:`initialize` has not run.
        """
        self._require_initialized()
        if self._syncing:
            raise SyncInProgressError("A sync is already in progress")

        self._syncing = True
        self._idle.clear()
        cycle = _Cycle(source=local or self._local, start_time=now_ms())
        try:
            self._set_status(SyncStatus.SYNCING)
            return await self._run_cycle(cycle)
        except asyncio.CancelledError:
            cycle.cancelled = True
            await self._finish(cycle, error=CANCELLED_MESSAGE)
            raise
        finally:
            self._syncing = False
            self._idle.set()

    async def _run_cycle(self, cycle: _Cycle) -> SyncResult:
        try:
            self._emit_progress(SyncPhase.CONNECTING, cycle)
            check = await self._transport.test_connection()
            if not check.success:
                raise TransportError(check.error or "Failed to connect to remote")

            self._emit_progress(SyncPhase.LISTING, cycle)
            self._remote.clear_cache()
            cycle.local_catalog = dict(await cycle.source.get_local_chunks())
            cycle.remote_catalog, invalid = await self._remote.list_catalog()
        except Exception as e:
            logger.error("Sync failed before transfer: %s", e, exc_info=True)
            return await self._finish(cycle, error=str(e) or type(e).__name__)

        # Unreadable remote documents are left alone this cycle, on both sides.
        cycle.skipped += len(invalid)
        for chunk_id in invalid:
            cycle.local_catalog.pop(chunk_id, None)

        diff = compute_diff(cycle.local_catalog, cycle.remote_catalog)
        cycle.total = diff.total
        direction = self._config.direction
        uploads = 0 if direction == SyncDirection.DOWNLOAD_ONLY else len(diff.local_only)
        downloads = 0 if direction == SyncDirection.UPLOAD_ONLY else len(diff.remote_only)
        self._state = replace(self._state, pending_uploads=uploads, pending_downloads=downloads)
        logger.info(
            "Sync diff: %d remote-only, %d local-only, %d mismatched",
            len(diff.remote_only),
            len(diff.local_only),
            len(diff.version_mismatch),
        )

        phases: list[tuple[SyncPhase, Iterable[Any], Callable[[_Cycle, Any], Awaitable[None]]]] = [
            (SyncPhase.DOWNLOADING, diff.remote_only, self._handle_remote_only),
            (SyncPhase.UPLOADING, diff.local_only, self._handle_local_only),
            (SyncPhase.MERGING, diff.version_mismatch, self._handle_mismatch),
        ]
        for phase, items, handler in phases:
            await self._run_phase(cycle, phase, items, handler)
            if cycle.cancelled:
                return await self._finish(cycle, error=CANCELLED_MESSAGE)

        self._remote.clear_cache()
        return await self._finish(cycle)

    async def _run_phase(
        self,
        cycle: _Cycle,
        phase: SyncPhase,
        items: Iterable[Any],
        handler: Callable[[_Cycle, Any], Awaitable[None]],
    ) -> None:
        semaphore = asyncio.Semaphore(self._config.max_concurrency)

        async def _one(item: Any) -> None:
            async with semaphore:
                if self._aborted:
                    cycle.cancelled = True
                    return
                await handler(cycle, item)
                cycle.processed += 1
                chunk_id = item.id if isinstance(item, VersionMismatch) else item
                self._emit_progress(phase, cycle, chunk_id)

        await asyncio.gather(*(_one(item) for item in items))

    async def _finish(self, cycle: _Cycle, error: str | None = None) -> SyncResult:
        end_time = now_ms()
        if error is not None:
            status = SyncStatus.ERROR
        elif cycle.conflicts:
            status = SyncStatus.CONFLICT
        else:
            status = SyncStatus.SUCCESS

        conflicts = sorted(cycle.conflicts)
        result = SyncResult(
            success=error is None,
            status=status,
            uploaded_chunks=cycle.uploaded,
            downloaded_chunks=cycle.downloaded,
            deleted_chunks=cycle.deleted,
            skipped_chunks=cycle.skipped,
            conflicts=conflicts,
            start_time=cycle.start_time,
            end_time=end_time,
            error=error,
        )

        if error is None:
            self._state = SyncState(
                status=status,
                last_sync_time=end_time,
                last_error=None,
                pending_uploads=cycle.failed_uploads,
                pending_downloads=cycle.failed_downloads,
                conflicts=tuple(conflicts),
            )
        else:
            self._state = replace(self._state, status=status, last_error=error)
            self._events.emit(ErrorEvent(error=error))

        self._events.emit(StatusChangedEvent(status=status))
        self._emit_progress(SyncPhase.COMPLETED, cycle)
        self._events.emit(CompletedEvent(result=result))
        await self._persist_state()

        logger.info(
            "Sync %s: %d up, %d down, %d deleted, %d skipped, %d conflicts",
            status.value,
            result.uploaded_chunks,
            result.downloaded_chunks,
            result.deleted_chunks,
            result.skipped_chunks,
            len(conflicts),
        )
        return result

    async def _persist_state(self) -> None:
        if self._state_store is None:
            return
        try:
            await self._state_store.save_sync_state(self._state)
        except Exception:
            logger.warning("Could not persist sync state", exc_info=True)

    def _skip(self, cycle: _Cycle, chunk_id: str, action: str, error: Exception) -> None:
        cycle.skipped += 1
        if isinstance(error, TransportError | ChunkCorruptError | ChunkTooLargeError):
            logger.warning("Skipped %s of chunk %s: %s", action, chunk_id, error)
        else:
            logger.warning("Skipped %s of chunk %s", action, chunk_id, exc_info=True)

    # ── Item handlers ──

    async def _handle_remote_only(self, cycle: _Cycle, chunk_id: str) -> None:
        if self._config.direction == SyncDirection.UPLOAD_ONLY:
            return
        try:
            await self._pull(cycle.source, chunk_id)
        except Exception as e:
            cycle.failed_downloads += 1
            self._skip(cycle, chunk_id, "download", e)
            return
        cycle.downloaded += 1

    async def _handle_local_only(self, cycle: _Cycle, chunk_id: str) -> None:
        if self._config.direction == SyncDirection.DOWNLOAD_ONLY:
            # The remote is authoritative: a chunk it lacks was deleted there.
            try:
                await cycle.source.delete_local_data(chunk_id)
            except Exception as e:
                self._skip(cycle, chunk_id, "local delete", e)
                return
            cycle.deleted += 1
            return

        try:
            await self._push(cycle.source, cycle.local_catalog[chunk_id], None)
        except Exception as e:
            cycle.failed_uploads += 1
            self._skip(cycle, chunk_id, "upload", e)
            return
        cycle.uploaded += 1

    async def _handle_mismatch(self, cycle: _Cycle, mismatch: VersionMismatch) -> None:
        chunk_id = mismatch.id
        local = cycle.local_catalog[chunk_id]
        remote = cycle.remote_catalog[chunk_id]
        direction = self._config.direction

        if local.checksum == remote.checksum:
            await self._reconcile_metadata(cycle, local, remote)
            return

        resolution = resolve_conflict(chunk_id, local, remote, self._config.conflict_resolution)
        logger.debug(
            "Chunk %s diverged (local v%d, remote v%d): %s",
            chunk_id,
            local.version,
            remote.version,
            resolution.value,
        )

        if resolution == Resolution.UNRESOLVED:
            cycle.conflicts.append(chunk_id)
            self._events.emit(ConflictEvent(chunk_id=chunk_id))
            return

        if resolution == Resolution.KEEP_LOCAL:
            if direction == SyncDirection.DOWNLOAD_ONLY:
                cycle.skipped += 1
                return
            try:
                await self._push(cycle.source, local, remote)
            except Exception as e:
                cycle.failed_uploads += 1
                self._skip(cycle, chunk_id, "upload", e)
                return
            cycle.uploaded += 1
            return

        if direction == SyncDirection.UPLOAD_ONLY:
            cycle.skipped += 1
            return
        try:
            await self._pull(cycle.source, chunk_id)
        except Exception as e:
            cycle.failed_downloads += 1
            self._skip(cycle, chunk_id, "download", e)
            return
        cycle.downloaded += 1

    async def _reconcile_metadata(
        self, cycle: _Cycle, local: ChunkMetadata, remote: ChunkMetadata
    ) -> None:
        """Same payload, different versions: the lower side adopts the higher metadata."""
        chunk_id = local.id
        try:
            if remote.version > local.version:
                if self._config.direction == SyncDirection.UPLOAD_ONLY:
                    return
                await self._pull(cycle.source, chunk_id)
            else:
                if self._config.direction == SyncDirection.DOWNLOAD_ONLY:
                    return
                data = await cycle.source.get_local_data(chunk_id)
                await self._remote.upload(ChunkData(meta=local, data=data))
        except Exception as e:
            self._skip(cycle, chunk_id, "metadata update", e)
            return
        logger.debug("Reconciled metadata of chunk %s", chunk_id)

    async def _pull(self, source: ChunkSource, chunk_id: str) -> ChunkMetadata:
        """Download, verify and store one remote chunk."""
        chunk = await self._remote.download(chunk_id)
        await source.save_local_data(chunk_id, chunk)
        return chunk.meta

    async def _push(
        self,
        source: ChunkSource,
        local: ChunkMetadata,
        remote: ChunkMetadata | None,
    ) -> ChunkMetadata:
        """Upload the local copy of a chunk so it supersedes ``remote``.

        The checksum and size are recomputed from the stored payload. When a
        remote copy exists, the version is raised past it and the new
        metadata is written back locally so both catalogs agree.
        """
        chunk_id = local.id
        data = await source.get_local_data(chunk_id)
        encoded = encode_payload(data)
        if len(encoded) > self._config.max_chunk_size:
            raise ChunkTooLargeError(chunk_id, len(encoded), self._config.max_chunk_size)

        meta = replace(local, checksum=compute_checksum(encoded), size=len(encoded))
        if remote is not None:
            version = winning_version(local, remote)
            if version != local.version:
                meta = replace(meta, version=version, device_id=self._device_id)

        chunk = ChunkData(meta=meta, data=data)
        await self._remote.upload(chunk)
        if meta != local:
            await source.save_local_data(chunk_id, chunk)
        return meta

    # ── Chunk API ──

    def _require_chunk_store(self) -> LocalChunkStore:
        if not isinstance(self._local, LocalChunkStore):
            raise TypeError("Local store does not support versioned writes")
        return self._local

    async def save_chunk(self, chunk_id: str, data: Any, data_type: str = "json") -> ChunkMetadata:
        """Write a new local version of a chunk, attributed to this device.

        Raises:
            ChunkTooLargeError: If the payload exceeds ``max_chunk_size``.
        """
        store = self._require_chunk_store()
        meta = await store.put_chunk(
            chunk_id,
            data,
            data_type,
            self._device_id,
            max_size=self._config.max_chunk_size,
        )
        logger.debug("Saved chunk %s v%d", chunk_id, meta.version)
        return meta

    async def load_chunk(self, chunk_id: str) -> ChunkData | None:
        if isinstance(self._local, LocalChunkStore):
            return await self._local.get_chunk(chunk_id)
        meta = (await self._local.get_local_chunks()).get(chunk_id)
        if meta is None:
            return None
        return ChunkData(meta=meta, data=await self._local.get_local_data(chunk_id))

    async def list_chunks(self) -> dict[str, ChunkMetadata]:
        return dict(await self._local.get_local_chunks())

    async def delete_chunk(self, chunk_id: str) -> None:
        """Delete a chunk locally and, once initialized, remotely."""
        await self._local.delete_local_data(chunk_id)
        if self._initialized:
            await self._remote.delete(chunk_id)
        self._state = replace(
            self._state,
            conflicts=tuple(c for c in self._state.conflicts if c != chunk_id),
        )

    async def list_remote_chunks(self) -> dict[str, ChunkMetadata]:
        self._require_initialized()
        catalog, _ = await self._remote.list_catalog(cache=False)
        return catalog

    # ── Manual resolution ──

    async def resolve_manually(self, chunk_id: str, resolution: Resolution) -> ChunkMetadata:
        """Apply an explicit decision to one diverged chunk outside a cycle.

        Returns:
            The metadata both sides hold afterwards.

        Raises:
            ValueError: If ``resolution`` is UNRESOLVED.
            KeyError: If the chosen side does not hold the chunk.
            SyncInProgressError: If a cycle is running.
        """
        self._require_initialized()
        if self._syncing:
            raise SyncInProgressError("Cannot resolve conflicts while syncing")
        if resolution == Resolution.UNRESOLVED:
            raise ValueError("Choose KEEP_LOCAL or KEEP_REMOTE")

        local = (await self._local.get_local_chunks()).get(chunk_id)
        remote_chunk = await self._remote.fetch(chunk_id)
        remote = remote_chunk.meta if remote_chunk else None

        if resolution == Resolution.KEEP_LOCAL:
            if local is None:
                raise KeyError(chunk_id)
            meta = await self._push(self._local, local, remote)
        else:
            if remote is None:
                raise KeyError(chunk_id)
            meta = await self._pull(self._local, chunk_id)

        self._state = replace(
            self._state,
            conflicts=tuple(c for c in self._state.conflicts if c != chunk_id),
        )
        if not self._state.conflicts and self._state.status == SyncStatus.CONFLICT:
            self._set_status(SyncStatus.SUCCESS)
        await self._persist_state()
        logger.info("Resolved chunk %s manually: %s", chunk_id, resolution.value)
        return meta

    # ── Configuration ──

    async def update_config(
        self,
        config: SyncConfig,
        *,
        transport: RemoteTransport | None = None,
    ) -> None:
        """Replace the engine settings, and optionally the transport.

        Raises:
            SyncInProgressError: If a cycle is running.
        """
        if self._syncing:
            raise SyncInProgressError("Cannot change configuration while syncing")

        self._config = config
        if transport is not None and transport is not self._transport:
            await self._transport.close()
            self._transport = transport
            self._remote = RemoteChunkStore(
                transport,
                compress=config.enable_compression,
                read_concurrency=config.max_concurrency,
            )
            if self._initialized:
                await self._remote.prepare()
        else:
            self._remote.set_compression(config.enable_compression)

        if self._initialized:
            self.stop_auto_sync()
            if config.auto_sync:
                self.start_auto_sync()
        logger.debug("Sync configuration updated")

    # ── Auto-sync ──

    def start_auto_sync(self) -> asyncio.Task[None]:
        """Start the background sync loop. Guards against double-start."""
        self._require_initialized()
        if self._auto_sync_task is not None and not self._auto_sync_task.done():
            return self._auto_sync_task

        task = asyncio.create_task(self._auto_sync_loop())
        task.add_done_callback(_log_auto_sync_exception)
        self._auto_sync_task = task
        logger.info("Auto-sync started: every %.0fs", self._config.auto_sync_interval)
        return task

    def stop_auto_sync(self) -> None:
        """Stop the background loop.

        A pending tick is cancelled at once. A cycle the loop is running
        completes first, then the loop exits.
        """
        task = self._auto_sync_task
        self._auto_sync_task = None
        if task is None or task.done():
            return
        if task is self._auto_cycle_task:
            logger.debug("Auto-sync stops after the running cycle")
            return
        task.cancel()
        logger.debug("Auto-sync task cancelled")

    async def _auto_sync_loop(self) -> None:
        """Sleep for the interval, then sync unless a cycle is already running."""
        current = asyncio.current_task()
        while self._auto_sync_task is current:
            await asyncio.sleep(self._config.auto_sync_interval)
            if self._auto_sync_task is not current:
                return
            if self._syncing:
                logger.debug("Auto-sync tick skipped: sync in progress")
                continue
            self._auto_cycle_task = current
            try:
                await self.sync()
            except EngineNotInitializedError:
                return
            except SyncInProgressError:
                continue
            except Exception:
                logger.error("Auto-sync cycle failed", exc_info=True)
            finally:
                self._auto_cycle_task = None


def _log_auto_sync_exception(task: asyncio.Task[None]) -> None:
    """Log unhandled exceptions from the auto-sync task."""
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Auto-sync task raised unhandled exception: %s", exc)
