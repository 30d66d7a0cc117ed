"""Catalog comparison between the local and remote chunk stores."""

from __future__ import annotations

from collections.abc import Mapping

from chunksync.sync.protocol import ChunkDiff, ChunkMetadata, VersionMismatch


def compute_diff(
    local_catalog: Mapping[str, ChunkMetadata],
    remote_catalog: Mapping[str, ChunkMetadata],
) -> ChunkDiff:
    """Classify every chunk id found in either catalog.

    - present only locally: ``local_only``
    - present only remotely: ``remote_only``
    - present on both sides with a different version, or with the same
      version but a different checksum: ``version_mismatch``

    Ids whose version and checksum agree need no work and are omitted.
    Every list is sorted by id.
    """
    local_only: list[str] = []
    remote_only: list[str] = []
    version_mismatch: list[VersionMismatch] = []

    for chunk_id in sorted(local_catalog):
        local = local_catalog[chunk_id]
        remote = remote_catalog.get(chunk_id)
        if remote is None:
            local_only.append(chunk_id)
            continue
        # Same version with different content means a version counter was reused.
        if local.version != remote.version or local.checksum != remote.checksum:
            version_mismatch.append(
                VersionMismatch(
                    id=chunk_id,
                    local_version=local.version,
                    remote_version=remote.version,
                )
            )

    for chunk_id in sorted(remote_catalog):
        if chunk_id not in local_catalog:
            remote_only.append(chunk_id)

    return ChunkDiff(
        local_only=local_only,
        remote_only=remote_only,
        version_mismatch=version_mismatch,
    )
