"""In-process transport backed by a dict."""

from __future__ import annotations

from chunksync.transport.base import ConnectionCheck, RemoteTransport, TransportError


class InMemoryTransport(RemoteTransport):
    """Remote store held in memory.

    Several engines can share one instance to simulate devices talking to
    the same server. ``fail_connection``, ``fail_listing`` and ``fail_objects``
    inject errors.
    """

    def __init__(self) -> None:
        self.objects: dict[str, bytes] = {}
        self.directories: set[str] = set()
        self.fail_connection: str | None = None
        self.fail_listing: str | None = None
        self.fail_objects: set[str] = set()
        self.closed = False

    def _check(self, name: str) -> None:
        if name in self.fail_objects:
            raise TransportError(f"Injected failure for {name}", status_code=500)

    async def test_connection(self) -> ConnectionCheck:
        if self.fail_connection:
            return ConnectionCheck.failed(self.fail_connection)
        return ConnectionCheck.ok()

    async def ensure_directory(self, path: str) -> None:
        self.directories.add(path.strip("/"))

    async def list_objects(self, prefix: str) -> list[str]:
        if self.fail_listing:
            raise TransportError(self.fail_listing, status_code=503)
        prefix = prefix.strip("/")
        head = f"{prefix}/" if prefix else ""
        return sorted(
            name
            for name in self.objects
            if name.startswith(head) and "/" not in name[len(head) :]
        )

    async def get_object(self, name: str) -> bytes | None:
        self._check(name)
        return self.objects.get(name)

    async def put_object(self, name: str, body: bytes) -> None:
        self._check(name)
        self.objects[name] = bytes(body)

    async def delete_object(self, name: str) -> None:
        self._check(name)
        self.objects.pop(name, None)

    async def close(self) -> None:
        self.closed = True
