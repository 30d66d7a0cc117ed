"""Tests for the sync data model."""

from __future__ import annotations

import pytest

from chunksync.sync.protocol import (
    ChunkData,
    ChunkMetadata,
    SyncResult,
    SyncState,
    SyncStatus,
)


def _wire_meta(**overrides: object) -> dict[str, object]:
    data: dict[str, object] = {
        "id": "settings",
        "version": 2,
        "checksum": "abc",
        "createdAt": 1_700_000_000_000,
        "updatedAt": 1_700_000_500_000,
        "size": 16,
        "dataType": "json",
        "deviceId": "0123456789abcdef",
    }
    data.update(overrides)
    return data


class TestChunkMetadata:
    def test_from_wire(self) -> None:
        meta = ChunkMetadata.from_dict(_wire_meta())
        assert meta.id == "settings"
        assert meta.version == 2
        assert meta.updated_at == 1_700_000_500_000
        assert meta.data_type == "json"
        assert meta.device_id == "0123456789abcdef"

    def test_wire_keys_are_camel_case(self) -> None:
        meta = ChunkMetadata.from_dict(_wire_meta())
        assert meta.to_dict() == _wire_meta()

    def test_missing_data_type_defaults(self) -> None:
        wire = _wire_meta()
        del wire["dataType"]
        assert ChunkMetadata.from_dict(wire).data_type == "unknown"

    def test_missing_version_raises(self) -> None:
        wire = _wire_meta()
        del wire["version"]
        with pytest.raises(KeyError):
            ChunkMetadata.from_dict(wire)

    @pytest.mark.parametrize("version", [-1, "2", 1.5, True, None])
    def test_invalid_version_raises(self, version: object) -> None:
        with pytest.raises(ValueError):
            ChunkMetadata.from_dict(_wire_meta(version=version))

    def test_empty_checksum_raises(self) -> None:
        with pytest.raises(ValueError):
            ChunkMetadata.from_dict(_wire_meta(checksum=""))

    def test_frozen(self) -> None:
        meta = ChunkMetadata.from_dict(_wire_meta())
        with pytest.raises(AttributeError):
            meta.version = 3  # type: ignore[misc]


class TestChunkData:
    def test_document_shape(self) -> None:
        chunk = ChunkData(meta=ChunkMetadata.from_dict(_wire_meta()), data={"theme": "dark"})
        doc = chunk.to_dict()
        assert set(doc) == {"meta", "data"}
        assert doc["meta"]["dataType"] == "json"

    def test_missing_data_raises(self) -> None:
        with pytest.raises(KeyError):
            ChunkData.from_dict({"meta": _wire_meta()})

    def test_null_data_allowed(self) -> None:
        chunk = ChunkData.from_dict({"meta": _wire_meta(), "data": None})
        assert chunk.data is None


class TestSyncState:
    def test_defaults(self) -> None:
        state = SyncState()
        assert state.status == SyncStatus.IDLE
        assert state.last_sync_time is None
        assert state.conflicts == ()

    def test_persisted_syncing_loads_as_idle(self) -> None:
        state = SyncState.from_dict({"status": "syncing"})
        assert state.status == SyncStatus.IDLE

    def test_unknown_status_loads_as_idle(self) -> None:
        assert SyncState.from_dict({"status": "weird"}).status == SyncStatus.IDLE

    def test_to_dict_from_dict(self) -> None:
        state = SyncState(
            status=SyncStatus.CONFLICT,
            last_sync_time=123,
            conflicts=("a", "b"),
            pending_uploads=1,
        )
        assert SyncState.from_dict(state.to_dict()) == state


class TestSyncResult:
    def test_to_dict(self) -> None:
        result = SyncResult(
            success=True,
            status=SyncStatus.SUCCESS,
            uploaded_chunks=2,
            downloaded_chunks=1,
            deleted_chunks=0,
            skipped_chunks=1,
            conflicts=[],
            start_time=10,
            end_time=20,
        )
        data = result.to_dict()
        assert data["status"] == "success"
        assert data["uploaded_chunks"] == 2
        assert data["error"] is None
