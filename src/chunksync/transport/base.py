"""Abstract contract for a remote blob store.

A transport exposes a flat namespace of named objects below some root.
Object names are ``/``-separated relative paths such as
``chunks/settings.json``; what a name maps to (a WebDAV URL, a file, a dict
key) is up to the implementation.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any


class TransportError(Exception):
    """Error from a remote transport operation."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class AuthenticationError(TransportError):
    """The remote rejected the configured credentials."""


@dataclass(frozen=True)
class ConnectionCheck:
    """Outcome of :meth:`RemoteTransport.test_connection`."""

    success: bool
    error: str | None = None

    @classmethod
    def ok(cls) -> ConnectionCheck:
        return cls(success=True)

    @classmethod
    def failed(cls, error: str) -> ConnectionCheck:
        return cls(success=False, error=error)


class RemoteTransport(ABC):
    """Remote object store used by the sync engine.

    Every method raises :class:`TransportError` on failure, except
    :meth:`test_connection` which reports failure in its return value.
    """

    @abstractmethod
    async def test_connection(self) -> ConnectionCheck:
        """Check that the remote is reachable and the credentials work."""
        ...

    @abstractmethod
    async def ensure_directory(self, path: str) -> None:
        """Create ``path`` (relative to the root) and its parents if missing."""
        ...

    @abstractmethod
    async def list_objects(self, prefix: str) -> list[str]:
        """List object names directly under the ``prefix`` directory.

        Names are returned relative to the root, including the prefix. A
        missing directory lists as empty.
        """
        ...

    @abstractmethod
    async def get_object(self, name: str) -> bytes | None:
        """Return the body of an object, or None if it does not exist."""
        ...

    @abstractmethod
    async def put_object(self, name: str, body: bytes) -> None:
        """Create or replace an object."""
        ...

    @abstractmethod
    async def delete_object(self, name: str) -> None:
        """Delete an object. Deleting a missing object is not an error."""
        ...

    async def close(self) -> None:
        """Release connections or handles held by the transport."""
        return None

    async def __aenter__(self) -> RemoteTransport:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        await self.close()
