"""Transport for a local or mounted folder (USB drive, NAS share, synced folder)."""

from __future__ import annotations

import asyncio
import logging
import os
import tempfile
from pathlib import Path

from chunksync.transport.base import ConnectionCheck, RemoteTransport, TransportError

logger = logging.getLogger(__name__)


class LocalFolderTransport(RemoteTransport):
    """Objects stored as files below ``root``.

    Writes go through a temp file and ``os.replace`` so a reader never
    sees a partially written object. Blocking I/O runs in a worker thread.
    """

    def __init__(self, root: Path) -> None:
        self._root = root.expanduser()

    @property
    def root(self) -> Path:
        return self._root

    def _resolve(self, name: str) -> Path:
        parts = [p for p in name.strip("/").split("/") if p]
        if not parts or any(p in (".", "..") for p in parts):
            raise TransportError(f"Invalid object name: {name!r}")
        return self._root.joinpath(*parts)

    async def test_connection(self) -> ConnectionCheck:
        # The root itself may not exist yet; its nearest existing ancestor must be writable.
        existing = self._root
        while not existing.exists() and existing != existing.parent:
            existing = existing.parent
        if not existing.is_dir():
            return ConnectionCheck.failed(f"Not a folder: {existing}")
        if not os.access(existing, os.W_OK):
            return ConnectionCheck.failed(f"Folder is not writable: {existing}")
        return ConnectionCheck.ok()

    async def ensure_directory(self, path: str) -> None:
        target = self._resolve(path)
        try:
            await asyncio.to_thread(target.mkdir, parents=True, exist_ok=True)
        except OSError as e:
            raise TransportError(f"Could not create folder {path}: {e}") from e

    async def list_objects(self, prefix: str) -> list[str]:
        directory = self._resolve(prefix) if prefix.strip("/") else self._root
        head = prefix.strip("/")

        def _scan() -> list[str]:
            if not directory.is_dir():
                return []
            return sorted(
                f"{head}/{entry.name}" if head else entry.name
                for entry in directory.iterdir()
                if entry.is_file() and not entry.name.startswith(".tmp-")
            )

        try:
            return await asyncio.to_thread(_scan)
        except OSError as e:
            raise TransportError(f"Could not list {prefix}: {e}") from e

    async def get_object(self, name: str) -> bytes | None:
        path = self._resolve(name)

        def _read() -> bytes | None:
            try:
                return path.read_bytes()
            except FileNotFoundError:
                return None

        try:
            return await asyncio.to_thread(_read)
        except OSError as e:
            raise TransportError(f"Could not read {name}: {e}") from e

    async def put_object(self, name: str, body: bytes) -> None:
        path = self._resolve(name)

        def _write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=".tmp-")
            try:
                with os.fdopen(fd, "wb") as f:
                    f.write(body)
                os.replace(tmp_path, path)
            except BaseException:
                Path(tmp_path).unlink(missing_ok=True)
                raise

        try:
            await asyncio.to_thread(_write)
        except OSError as e:
            raise TransportError(f"Could not write {name}: {e}") from e
        logger.debug("Wrote %s (%d bytes)", path, len(body))

    async def delete_object(self, name: str) -> None:
        path = self._resolve(name)
        try:
            await asyncio.to_thread(path.unlink, missing_ok=True)
        except OSError as e:
            raise TransportError(f"Could not delete {name}: {e}") from e
