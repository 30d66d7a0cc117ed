"""Sync data structures shared by the engine, stores and transports."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any


class SyncStatus(StrEnum):
    """Engine status."""

    IDLE = "idle"
    SYNCING = "syncing"
    SUCCESS = "success"
    ERROR = "error"
    CONFLICT = "conflict"


class SyncDirection(StrEnum):
    """Which way chunks are allowed to travel."""

    BIDIRECTIONAL = "bidirectional"
    UPLOAD_ONLY = "upload_only"
    DOWNLOAD_ONLY = "download_only"


class ConflictStrategy(StrEnum):
    """How to resolve a chunk that diverged on both sides."""

    LOCAL = "local"
    REMOTE = "remote"
    MANUAL = "manual"
    TIMESTAMP = "timestamp"


class Resolution(StrEnum):
    """Outcome of conflict resolution for one chunk."""

    KEEP_LOCAL = "keep_local"
    KEEP_REMOTE = "keep_remote"
    UNRESOLVED = "unresolved"


class SyncPhase(StrEnum):
    """Phase reported in progress events."""

    CONNECTING = "connecting"
    LISTING = "listing"
    DOWNLOADING = "downloading"
    UPLOADING = "uploading"
    MERGING = "merging"
    COMPLETED = "completed"


@dataclass(frozen=True)
class ChunkMetadata:
    """Metadata for one version of a chunk.

    Timestamps are epoch milliseconds. The wire form produced by
    :meth:`to_dict` uses camelCase keys.
    """

    id: str
    version: int
    checksum: str
    created_at: int
    updated_at: int
    size: int
    data_type: str
    device_id: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "version": self.version,
            "checksum": self.checksum,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "size": self.size,
            "dataType": self.data_type,
            "deviceId": self.device_id,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ChunkMetadata:
        """Parse the wire form.

        Raises:
            KeyError: If a required key is missing.
            ValueError: If a field has the wrong type or a negative version.
        """
        version = data["version"]
        if not isinstance(version, int) or isinstance(version, bool) or version < 0:
            raise ValueError(f"Invalid chunk version: {version!r}")
        checksum = data["checksum"]
        if not isinstance(checksum, str) or not checksum:
            raise ValueError("Chunk checksum must be a non-empty string")
        return cls(
            id=str(data["id"]),
            version=version,
            checksum=checksum,
            created_at=int(data.get("createdAt", 0)),
            updated_at=int(data.get("updatedAt", 0)),
            size=int(data.get("size", 0)),
            data_type=str(data.get("dataType") or "unknown"),
            device_id=str(data.get("deviceId") or ""),
        )


@dataclass(frozen=True)
class ChunkData:
    """A chunk's metadata together with its payload."""

    meta: ChunkMetadata
    data: Any

    def to_dict(self) -> dict[str, Any]:
        return {"meta": self.meta.to_dict(), "data": self.data}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ChunkData:
        if "data" not in data:
            raise KeyError("data")
        return cls(meta=ChunkMetadata.from_dict(data["meta"]), data=data["data"])


@dataclass(frozen=True)
class VersionMismatch:
    """A chunk present on both sides whose versions or checksums differ."""

    id: str
    local_version: int
    remote_version: int


@dataclass(frozen=True)
class ChunkDiff:
    """Classification of every chunk id for one cycle."""

    local_only: list[str] = field(default_factory=list)
    remote_only: list[str] = field(default_factory=list)
    version_mismatch: list[VersionMismatch] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.local_only) + len(self.remote_only) + len(self.version_mismatch)

    @property
    def is_empty(self) -> bool:
        return self.total == 0


@dataclass(frozen=True)
class SyncState:
    """Snapshot of engine state. Replaced wholesale, never mutated."""

    status: SyncStatus = SyncStatus.IDLE
    last_sync_time: int | None = None
    last_error: str | None = None
    pending_uploads: int = 0
    pending_downloads: int = 0
    conflicts: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "last_sync_time": self.last_sync_time,
            "last_error": self.last_error,
            "pending_uploads": self.pending_uploads,
            "pending_downloads": self.pending_downloads,
            "conflicts": list(self.conflicts),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SyncState:
        try:
            status = SyncStatus(data.get("status", "idle"))
        except ValueError:
            status = SyncStatus.IDLE
        # A persisted "syncing" means the previous process died mid-cycle.
        if status == SyncStatus.SYNCING:
            status = SyncStatus.IDLE
        return cls(
            status=status,
            last_sync_time=data.get("last_sync_time"),
            last_error=data.get("last_error"),
            pending_uploads=int(data.get("pending_uploads", 0)),
            pending_downloads=int(data.get("pending_downloads", 0)),
            conflicts=tuple(data.get("conflicts", ())),
        )


@dataclass(frozen=True)
class SyncResult:
    """Summary of one sync cycle."""

    success: bool
    status: SyncStatus
    uploaded_chunks: int
    downloaded_chunks: int
    deleted_chunks: int
    skipped_chunks: int
    conflicts: list[str]
    start_time: int
    end_time: int
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "status": self.status.value,
            "uploaded_chunks": self.uploaded_chunks,
            "downloaded_chunks": self.downloaded_chunks,
            "deleted_chunks": self.deleted_chunks,
            "skipped_chunks": self.skipped_chunks,
            "conflicts": list(self.conflicts),
            "error": self.error,
            "start_time": self.start_time,
            "end_time": self.end_time,
        }


@dataclass(frozen=True)
class SyncProgress:
    """Progress of the running cycle."""

    phase: SyncPhase
    total_progress: float
    processed_chunks: int
    total_chunks: int
    current_chunk: str | None = None
