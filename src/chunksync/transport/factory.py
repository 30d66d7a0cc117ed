"""Transport factory for creating a transport from configuration."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING
from urllib.parse import unquote, urlparse

from chunksync.transport.local import LocalFolderTransport
from chunksync.transport.webdav import WebDAVTransport

if TYPE_CHECKING:
    from chunksync.config import WebDAVConfig
    from chunksync.transport.base import RemoteTransport

logger = logging.getLogger(__name__)


def create_transport(config: WebDAVConfig) -> RemoteTransport:
    """
    Create a transport for the configured remote.

    Examples:
        # WebDAV server
        create_transport(WebDAVConfig(url="https://dav.example.com", username="me"))

        # Mounted folder; objects go to /mnt/nas/chunksync/
        create_transport(WebDAVConfig(url="file:///mnt/nas"))

    Raises:
        ValueError: If no remote is configured or the URL scheme is unsupported.
    """
    if not config.url:
        raise ValueError("No remote configured. Run 'chunksync init' first.")

    if config.url.startswith("file://"):
        root = Path(unquote(urlparse(config.url).path))
        if config.sync_path.strip("/"):
            root = root / config.sync_path.strip("/")
        logger.debug("Using local folder transport at %s", root)
        return LocalFolderTransport(root)

    logger.debug("Using WebDAV transport at %s", config.url)
    return WebDAVTransport.from_config(config)
