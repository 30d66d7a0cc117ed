"""Chunk documents on top of a :class:`RemoteTransport`.

Each chunk is one object ``chunks/{quoted id}.json`` holding::

    {"meta": {"id": ..., "version": ..., "checksum": ..., "createdAt": ...,
              "updatedAt": ..., "size": ..., "dataType": ..., "deviceId": ...},
     "data": <payload>}

Bodies may be gzip-compressed; compression is detected from the gzip magic
bytes on read, so devices with different compression settings interoperate.
"""

from __future__ import annotations

import asyncio
import gzip
import json
import logging
import zlib
from urllib.parse import quote, unquote

from chunksync.sync.checksum import verify_checksum
from chunksync.sync.errors import ChunkCorruptError
from chunksync.sync.protocol import ChunkData, ChunkMetadata
from chunksync.transport.base import RemoteTransport, TransportError

logger = logging.getLogger(__name__)

CHUNKS_DIR = "chunks"
DOCUMENT_SUFFIX = ".json"
GZIP_MAGIC = b"\x1f\x8b"


def object_name(chunk_id: str) -> str:
    """Object name for a chunk id. Any character may appear in the id."""
    return f"{CHUNKS_DIR}/{quote(chunk_id, safe='')}{DOCUMENT_SUFFIX}"


def chunk_id_from_name(name: str) -> str | None:
    """Inverse of :func:`object_name`; None for objects that are not chunks."""
    leaf = name.rsplit("/", 1)[-1]
    if not leaf.endswith(DOCUMENT_SUFFIX) or leaf == DOCUMENT_SUFFIX:
        return None
    return unquote(leaf[: -len(DOCUMENT_SUFFIX)])


def encode_document(chunk: ChunkData, *, compress: bool = False) -> bytes:
    body = json.dumps(chunk.to_dict(), separators=(",", ":"), ensure_ascii=False).encode("utf-8")
    if compress:
        return gzip.compress(body)
    return body


def decode_document(chunk_id: str, body: bytes) -> ChunkData:
    """Parse a stored document.

    Raises:
        ChunkCorruptError: If the body is not a valid chunk document or
            belongs to a different id.
    """
    try:
        if body[:2] == GZIP_MAGIC:
            body = gzip.decompress(body)
        raw = json.loads(body.decode("utf-8"))
        chunk = ChunkData.from_dict(raw)
    except (OSError, EOFError, zlib.error, ValueError, KeyError, TypeError) as e:
        raise ChunkCorruptError(chunk_id, f"malformed document: {e}") from e
    if chunk.meta.id != chunk_id:
        raise ChunkCorruptError(chunk_id, f"document is for chunk {chunk.meta.id!r}")
    return chunk


class RemoteChunkStore:
    """Reads and writes chunk documents through a transport.

    Documents read while building the catalog are cached until
    :meth:`clear_cache`, so a download in the same cycle needs no second
    request.
    """

    def __init__(
        self,
        transport: RemoteTransport,
        *,
        compress: bool = False,
        read_concurrency: int = 4,
    ) -> None:
        self._transport = transport
        self._compress = compress
        self._read_concurrency = max(1, read_concurrency)
        self._cache: dict[str, ChunkData] = {}

    @property
    def transport(self) -> RemoteTransport:
        return self._transport

    def set_compression(self, compress: bool) -> None:
        self._compress = compress

    def clear_cache(self) -> None:
        self._cache.clear()

    async def prepare(self) -> None:
        """Create the remote folder layout."""
        await self._transport.ensure_directory(CHUNKS_DIR)

    async def list_ids(self) -> list[str]:
        ids: list[str] = []
        for name in await self._transport.list_objects(CHUNKS_DIR):
            chunk_id = chunk_id_from_name(name)
            if chunk_id is not None:
                ids.append(chunk_id)
        return ids

    async def list_catalog(
        self, *, cache: bool = True
    ) -> tuple[dict[str, ChunkMetadata], list[str]]:
        """Build the remote catalog.

        Returns ``(catalog, invalid_ids)``. Ids whose document is missing,
        malformed or cannot be read are left out of the catalog and reported
        in ``invalid_ids``. With ``cache`` the documents read are kept for
        :meth:`download`.

        Raises:
            TransportError: If the chunk folder cannot be listed.
        """
        ids = await self.list_ids()
        semaphore = asyncio.Semaphore(self._read_concurrency)

        async def _read(chunk_id: str) -> ChunkData | None:
            async with semaphore:
                try:
                    body = await self._transport.get_object(object_name(chunk_id))
                except TransportError as e:
                    logger.warning("Could not read remote chunk %s: %s", chunk_id, e)
                    return None
            if body is None:
                return None
            try:
                return decode_document(chunk_id, body)
            except ChunkCorruptError as e:
                logger.warning("Skipping remote chunk %s: %s", chunk_id, e.reason)
                return None

        documents = await asyncio.gather(*(_read(chunk_id) for chunk_id in ids))

        catalog: dict[str, ChunkMetadata] = {}
        invalid: list[str] = []
        for chunk_id, chunk in zip(ids, documents, strict=True):
            if chunk is None:
                invalid.append(chunk_id)
                continue
            if cache:
                self._cache[chunk_id] = chunk
            catalog[chunk_id] = chunk.meta
        return catalog, invalid

    async def download(self, chunk_id: str) -> ChunkData:
        """Fetch and verify one chunk.

        Raises:
            TransportError: If the object cannot be read or no longer exists.
            ChunkCorruptError: If the document is malformed or its payload
                does not match the recorded checksum.
        """
        chunk = self._cache.pop(chunk_id, None)
        if chunk is None:
            chunk = await self.fetch(chunk_id)
            if chunk is None:
                raise TransportError(f"Remote chunk {chunk_id} not found", status_code=404)

        if not verify_checksum(chunk.data, chunk.meta.checksum):
            raise ChunkCorruptError(chunk_id, "checksum mismatch")
        return chunk

    async def fetch(self, chunk_id: str) -> ChunkData | None:
        """Read one document without the cache or checksum verification."""
        body = await self._transport.get_object(object_name(chunk_id))
        if body is None:
            return None
        return decode_document(chunk_id, body)

    async def upload(self, chunk: ChunkData) -> int:
        """Write one chunk document. Returns the number of bytes sent."""
        body = encode_document(chunk, compress=self._compress)
        await self._transport.put_object(object_name(chunk.meta.id), body)
        self._cache.pop(chunk.meta.id, None)
        logger.debug(
            "Uploaded chunk %s v%d (%d bytes)", chunk.meta.id, chunk.meta.version, len(body)
        )
        return len(body)

    async def delete(self, chunk_id: str) -> None:
        await self._transport.delete_object(object_name(chunk_id))
        self._cache.pop(chunk_id, None)
