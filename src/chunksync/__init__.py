"""chunksync - Multi-device sync of chunked application data over WebDAV."""

from chunksync.config import AppConfig, SyncConfig, WebDAVConfig
from chunksync.storage import (
    CallbackChunkSource,
    ChunkSource,
    InMemoryChunkStore,
    LocalChunkStore,
    SQLiteChunkStore,
)
from chunksync.sync import (
    ChunkData,
    ChunkMetadata,
    ConflictStrategy,
    DeviceIdentity,
    Resolution,
    SyncDirection,
    SyncEvent,
    SyncResult,
    SyncState,
    SyncStatus,
)
from chunksync.sync.sync_engine import SyncEngine
from chunksync.transport import (
    InMemoryTransport,
    LocalFolderTransport,
    RemoteTransport,
    TransportError,
    WebDAVTransport,
    create_transport,
)

__version__ = "0.1.0"

__all__ = [
    # Configuration
    "AppConfig",
    "SyncConfig",
    "WebDAVConfig",
    # Engine
    "SyncEngine",
    "DeviceIdentity",
    # Data model
    "ChunkData",
    "ChunkMetadata",
    "ConflictStrategy",
    "Resolution",
    "SyncDirection",
    "SyncEvent",
    "SyncResult",
    "SyncState",
    "SyncStatus",
    # Local stores
    "CallbackChunkSource",
    "ChunkSource",
    "InMemoryChunkStore",
    "LocalChunkStore",
    "SQLiteChunkStore",
    # Transports
    "InMemoryTransport",
    "LocalFolderTransport",
    "RemoteTransport",
    "TransportError",
    "WebDAVTransport",
    "create_transport",
    # Version
    "__version__",
]
