"""Conflict resolution for chunks that diverged on both sides."""

from __future__ import annotations

import logging

from chunksync.sync.protocol import ChunkMetadata, ConflictStrategy, Resolution

logger = logging.getLogger(__name__)


def resolve_conflict(
    chunk_id: str,
    local: ChunkMetadata,
    remote: ChunkMetadata,
    strategy: ConflictStrategy,
) -> Resolution:
    """Decide which side of a mismatched chunk wins.

    Rules:
    - ``local``: always keep local
    - ``remote``: always keep remote
    - ``timestamp``: the strictly newer ``updated_at`` wins; an exact tie
      keeps remote
    - ``manual``: unresolved, nothing is transferred

    Pure; the engine performs whatever transfer the decision implies.
    """
    if strategy == ConflictStrategy.LOCAL:
        return Resolution.KEEP_LOCAL
    if strategy == ConflictStrategy.REMOTE:
        return Resolution.KEEP_REMOTE
    if strategy == ConflictStrategy.TIMESTAMP:
        if local.updated_at > remote.updated_at:
            return Resolution.KEEP_LOCAL
        return Resolution.KEEP_REMOTE
    if strategy == ConflictStrategy.MANUAL:
        return Resolution.UNRESOLVED

    logger.warning("Unknown conflict strategy %r for chunk %s", strategy, chunk_id)
    return Resolution.UNRESOLVED


def winning_version(local: ChunkMetadata, remote: ChunkMetadata) -> int:
    """Version to stamp on a local chunk that overrides the remote copy.

    A local copy already ahead of the remote keeps its version; otherwise
    it jumps past the remote one so every other device sees it as newer.
    """
    if local.version > remote.version:
        return local.version
    return remote.version + 1
