"""Remote transports and the chunk document layer on top of them."""

from chunksync.transport.base import (
    AuthenticationError,
    ConnectionCheck,
    RemoteTransport,
    TransportError,
)
from chunksync.transport.factory import create_transport
from chunksync.transport.local import LocalFolderTransport
from chunksync.transport.memory import InMemoryTransport
from chunksync.transport.remote_store import RemoteChunkStore, object_name
from chunksync.transport.webdav import WebDAVTransport

__all__ = [
    "AuthenticationError",
    "ConnectionCheck",
    "InMemoryTransport",
    "LocalFolderTransport",
    "RemoteChunkStore",
    "RemoteTransport",
    "TransportError",
    "WebDAVTransport",
    "create_transport",
    "object_name",
]
