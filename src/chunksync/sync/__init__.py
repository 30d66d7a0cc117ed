"""Chunk diffing, conflict resolution and the sync data model.

The orchestrator lives in :mod:`chunksync.sync.sync_engine`; it is not
re-exported here because it depends on the transport and storage packages,
which themselves import from this package.
"""

from chunksync.sync.checksum import compute_checksum, encode_payload, verify_checksum
from chunksync.sync.conflict import resolve_conflict, winning_version
from chunksync.sync.device import DeviceIdentity, get_device_id, get_device_name
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
    ProgressEvent,
    StatusChangedEvent,
    Subscription,
    SyncEvent,
    SyncEventType,
)
from chunksync.sync.protocol import (
    ChunkData,
    ChunkDiff,
    ChunkMetadata,
    ConflictStrategy,
    Resolution,
    SyncDirection,
    SyncPhase,
    SyncProgress,
    SyncResult,
    SyncState,
    SyncStatus,
    VersionMismatch,
)

__all__ = [
    "ChunkCorruptError",
    "ChunkData",
    "ChunkDiff",
    "ChunkMetadata",
    "ChunkTooLargeError",
    "CompletedEvent",
    "ConflictEvent",
    "ConflictStrategy",
    "DeviceIdentity",
    "EngineNotInitializedError",
    "ErrorEvent",
    "EventBus",
    "ProgressEvent",
    "Resolution",
    "StatusChangedEvent",
    "Subscription",
    "SyncDirection",
    "SyncEvent",
    "SyncEventType",
    "SyncInProgressError",
    "SyncPhase",
    "SyncProgress",
    "SyncResult",
    "SyncState",
    "SyncStatus",
    "VersionMismatch",
    "compute_checksum",
    "compute_diff",
    "encode_payload",
    "get_device_id",
    "get_device_name",
    "resolve_conflict",
    "verify_checksum",
    "winning_version",
]
