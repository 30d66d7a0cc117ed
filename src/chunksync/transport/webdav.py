"""WebDAV transport over aiohttp."""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from typing import TYPE_CHECKING
from urllib.parse import quote, unquote, urlparse

import aiohttp

from chunksync.transport.base import (
    AuthenticationError,
    ConnectionCheck,
    RemoteTransport,
    TransportError,
)

if TYPE_CHECKING:
    from chunksync.config import WebDAVConfig

logger = logging.getLogger(__name__)

DAV_NS = "{DAV:}"

PROPFIND_BODY = (
    b'<?xml version="1.0" encoding="utf-8"?>'
    b'<d:propfind xmlns:d="DAV:"><d:prop><d:resourcetype/></d:prop></d:propfind>'
)

# MKCOL answers 405 when the collection already exists; some servers redirect.
_MKCOL_OK = frozenset({200, 201, 301, 405})


def parse_multistatus(body: bytes) -> list[tuple[str, bool]]:
    """Parse a PROPFIND ``207 Multi-Status`` body.

    Returns ``(decoded href path, is_collection)`` pairs in document order.

    Raises:
        TransportError: If the body is not well-formed XML.
    """
    try:
        root = ET.fromstring(body)
    except ET.ParseError as e:
        raise TransportError(f"Malformed PROPFIND response: {e}") from e

    entries: list[tuple[str, bool]] = []
    for response in root.iter(f"{DAV_NS}response"):
        href = response.findtext(f"{DAV_NS}href")
        if not href:
            continue
        path = unquote(urlparse(href.strip()).path)
        is_collection = response.find(f".//{DAV_NS}resourcetype/{DAV_NS}collection") is not None
        entries.append((path, is_collection))
    return entries


class WebDAVTransport(RemoteTransport):
    """
    Remote object store on a WebDAV server.

    Objects live below ``{url}/{sync_path}/``. Requests use HTTP Basic
    authentication and a per-request timeout.

    Usage:
        async with WebDAVTransport("https://dav.example.com/remote.php/dav", "me", "secret") as t:
            await t.ensure_directory("chunks")
            await t.put_object("chunks/a.json", b"{}")
    """

    def __init__(
        self,
        url: str,
        username: str = "",
        password: str = "",
        *,
        sync_path: str = "chunksync",
        verify_tls: bool = True,
        timeout: float = 30.0,
    ) -> None:
        """
        Initialize the transport.

        Args:
            url: Base WebDAV endpoint (``http://`` or ``https://``)
            username: Basic-auth user; empty disables authentication
            password: Basic-auth password
            sync_path: Folder below ``url`` that holds all sync objects
            verify_tls: Verify the server certificate for https URLs
            timeout: Total timeout per request in seconds
        """
        if not url.startswith(("http://", "https://")):
            raise ValueError("Invalid WebDAV URL scheme: must start with http:// or https://")
        if timeout <= 0:
            raise ValueError("timeout must be positive")

        self._base_url = url.rstrip("/")
        self._sync_path = sync_path.strip("/")
        self._auth = aiohttp.BasicAuth(username, password) if username else None
        self._verify_tls = verify_tls
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._session: aiohttp.ClientSession | None = None
        self._known_dirs: set[str] = set()

    @classmethod
    def from_config(cls, config: WebDAVConfig) -> WebDAVTransport:
        return cls(
            config.url,
            config.username,
            config.password,
            sync_path=config.sync_path,
            verify_tls=config.verify_tls,
            timeout=config.timeout,
        )

    @property
    def root_url(self) -> str:
        """URL of the sync folder."""
        if not self._sync_path:
            return self._base_url
        return f"{self._base_url}/{quote(self._sync_path)}"

    def object_url(self, name: str) -> str:
        return f"{self.root_url}/{quote(name.strip('/'))}"

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            connector = None if self._verify_tls else aiohttp.TCPConnector(ssl=False)
            self._session = aiohttp.ClientSession(
                auth=self._auth,
                timeout=self._timeout,
                connector=connector,
            )
        return self._session

    async def close(self) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None

    async def _request(
        self,
        method: str,
        url: str,
        *,
        data: bytes | None = None,
        headers: dict[str, str] | None = None,
    ) -> tuple[int, bytes]:
        """Send one request and return ``(status, body)``.

        Raises:
            AuthenticationError: On 401 or 403.
            TransportError: On network errors and timeouts.
        """
        session = await self._get_session()
        try:
            async with session.request(method, url, data=data, headers=headers) as response:
                status = response.status
                body = await response.read()
        except aiohttp.ClientError as e:
            raise TransportError(f"{method} {url} failed: {e}") from e
        except TimeoutError as e:
            raise TransportError(f"{method} {url} timed out") from e

        logger.debug("%s %s -> %d (%d bytes)", method, url, status, len(body))
        if status in (401, 403):
            raise AuthenticationError("WebDAV authentication failed", status_code=status)
        return status, body

    async def test_connection(self) -> ConnectionCheck:
        try:
            status, _ = await self._request(
                "PROPFIND",
                self._base_url + "/",
                data=PROPFIND_BODY,
                headers={"Depth": "0", "Content-Type": "application/xml"},
            )
        except AuthenticationError:
            return ConnectionCheck.failed("Authentication failed: check username and password")
        except TransportError as e:
            return ConnectionCheck.failed(str(e))

        if status >= 400:
            return ConnectionCheck.failed(f"Server returned HTTP {status}")
        return ConnectionCheck.ok()

    async def ensure_directory(self, path: str) -> None:
        segments = [s for s in f"{self._sync_path}/{path.strip('/')}".split("/") if s]
        current = ""
        for segment in segments:
            current = f"{current}/{segment}" if current else segment
            if current in self._known_dirs:
                continue
            url = f"{self._base_url}/{quote(current)}/"
            status, _ = await self._request("MKCOL", url)
            if status not in _MKCOL_OK:
                raise TransportError(f"Could not create folder {current}", status_code=status)
            if status == 201:
                logger.info("Created remote folder %s", current)
            self._known_dirs.add(current)

    async def list_objects(self, prefix: str) -> list[str]:
        prefix = prefix.strip("/")
        dir_url = self.object_url(prefix) + "/" if prefix else self.root_url + "/"
        status, body = await self._request(
            "PROPFIND",
            dir_url,
            data=PROPFIND_BODY,
            headers={"Depth": "1", "Content-Type": "application/xml"},
        )
        if status == 404:
            return []
        if status >= 400:
            raise TransportError(f"Could not list {prefix or '/'}", status_code=status)

        dir_path = unquote(urlparse(dir_url).path).rstrip("/")
        names: list[str] = []
        for path, is_collection in parse_multistatus(body):
            path = path.rstrip("/")
            if is_collection or path == dir_path:
                continue
            if not path.startswith(dir_path + "/"):
                logger.debug("Ignoring PROPFIND entry outside %s: %s", dir_path, path)
                continue
            leaf = path[len(dir_path) + 1 :]
            names.append(f"{prefix}/{leaf}" if prefix else leaf)
        return sorted(names)

    async def get_object(self, name: str) -> bytes | None:
        status, body = await self._request("GET", self.object_url(name))
        if status == 404:
            return None
        if status >= 400:
            raise TransportError(f"Could not download {name}", status_code=status)
        return body

    async def put_object(self, name: str, body: bytes) -> None:
        status, _ = await self._request(
            "PUT",
            self.object_url(name),
            data=body,
            headers={"Content-Type": "application/octet-stream"},
        )
        if status >= 400:
            raise TransportError(f"Could not upload {name}", status_code=status)

    async def delete_object(self, name: str) -> None:
        status, _ = await self._request("DELETE", self.object_url(name))
        if status >= 400 and status != 404:
            raise TransportError(f"Could not delete {name}", status_code=status)
