"""Configuration for chunksync.

Configuration is stored in ~/.chunksync/config.toml
Device identity is stored in ~/.chunksync/device_id
Local chunks are stored in ~/.chunksync/chunks.db (SQLite)
"""

from __future__ import annotations

import dataclasses
import json
import os
import tempfile
import tomllib
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from chunksync.sync.protocol import ConflictStrategy, SyncDirection

CONFIG_FILE = "config.toml"
DB_FILE = "chunks.db"
PASSWORD_ENV = "CHUNKSYNC_WEBDAV_PASSWORD"

DEFAULT_MAX_CHUNK_SIZE = 1024 * 1024
DEFAULT_TIMEOUT = 30.0
DEFAULT_AUTO_SYNC_INTERVAL = 300.0

_URL_SCHEMES = ("http://", "https://", "file://")

_TRUE_WORDS = frozenset({"1", "true", "yes", "on"})
_FALSE_WORDS = frozenset({"0", "false", "no", "off"})


def get_chunksync_dir() -> Path:
    """Get chunksync data directory.

    Priority:
    1. CHUNKSYNC_DIR environment variable
    2. ~/.chunksync/
    """
    env_dir = os.environ.get("CHUNKSYNC_DIR")
    if env_dir:
        return Path(env_dir)
    return Path.home() / ".chunksync"


def _toml_bool(value: bool) -> str:
    return "true" if value else "false"


def _toml_str(value: str) -> str:
    # JSON string escapes are valid TOML basic-string escapes.
    return json.dumps(value, ensure_ascii=False)


@dataclass(frozen=True)
class WebDAVConfig:
    """Remote server connection settings.

    ``url`` may also be a ``file://`` URL to sync through a local or
    mounted folder instead of a WebDAV server.
    """

    url: str = ""
    username: str = ""
    password: str = ""
    sync_path: str = "chunksync"
    verify_tls: bool = True
    timeout: float = DEFAULT_TIMEOUT

    def __post_init__(self) -> None:
        if self.url and not self.url.startswith(_URL_SCHEMES):
            raise ValueError("url must start with http://, https:// or file://")
        if self.timeout <= 0:
            raise ValueError("timeout must be positive")

    @property
    def is_configured(self) -> bool:
        return bool(self.url)

    def to_dict(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "username": self.username,
            "password": self.password,
            "sync_path": self.sync_path,
            "verify_tls": self.verify_tls,
            "timeout": self.timeout,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> WebDAVConfig:
        return cls(
            url=data.get("url", ""),
            username=data.get("username", ""),
            password=data.get("password", ""),
            sync_path=data.get("sync_path", "chunksync"),
            verify_tls=data.get("verify_tls", True),
            timeout=float(data.get("timeout", DEFAULT_TIMEOUT)),
        )


@dataclass(frozen=True)
class SyncConfig:
    """Sync engine settings. Replaced wholesale, never mutated."""

    webdav: WebDAVConfig = field(default_factory=WebDAVConfig)
    direction: SyncDirection = SyncDirection.BIDIRECTIONAL
    conflict_resolution: ConflictStrategy = ConflictStrategy.TIMESTAMP
    auto_sync: bool = False
    auto_sync_interval: float = DEFAULT_AUTO_SYNC_INTERVAL  # seconds
    max_chunk_size: int = DEFAULT_MAX_CHUNK_SIZE  # bytes
    enable_compression: bool = False
    max_concurrency: int = 4

    def __post_init__(self) -> None:
        if self.auto_sync_interval <= 0:
            raise ValueError("auto_sync_interval must be positive")
        if self.max_chunk_size <= 0:
            raise ValueError("max_chunk_size must be positive")
        if self.max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")

    def to_dict(self) -> dict[str, Any]:
        """Engine settings; the ``webdav`` section is serialized separately."""
        return {
            "direction": self.direction.value,
            "conflict_resolution": self.conflict_resolution.value,
            "auto_sync": self.auto_sync,
            "auto_sync_interval": self.auto_sync_interval,
            "max_chunk_size": self.max_chunk_size,
            "enable_compression": self.enable_compression,
            "max_concurrency": self.max_concurrency,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any], webdav: WebDAVConfig | None = None) -> SyncConfig:
        """Build from a ``[sync]`` section.

        Raises:
            ValueError: On unknown direction or strategy names.
        """
        return cls(
            webdav=webdav or WebDAVConfig(),
            direction=SyncDirection(data.get("direction", SyncDirection.BIDIRECTIONAL.value)),
            conflict_resolution=ConflictStrategy(
                data.get("conflict_resolution", ConflictStrategy.TIMESTAMP.value)
            ),
            auto_sync=data.get("auto_sync", False),
            auto_sync_interval=float(data.get("auto_sync_interval", DEFAULT_AUTO_SYNC_INTERVAL)),
            max_chunk_size=int(data.get("max_chunk_size", DEFAULT_MAX_CHUNK_SIZE)),
            enable_compression=data.get("enable_compression", False),
            max_concurrency=int(data.get("max_concurrency", 4)),
        )


def _coerce(current: Any, raw: str) -> Any:
    """Parse a command-line string into the type of ``current``."""
    if isinstance(current, bool):
        word = raw.strip().lower()
        if word in _TRUE_WORDS:
            return True
        if word in _FALSE_WORDS:
            return False
        raise ValueError(f"Expected a boolean, got {raw!r}")
    if isinstance(current, Enum):
        return type(current)(raw.strip().lower().replace("-", "_"))
    if isinstance(current, int):
        return int(raw)
    if isinstance(current, float):
        return float(raw)
    return raw


@dataclass(frozen=True)
class AppConfig:
    """Everything the command-line tool persists.

    Storage location: ~/.chunksync/config.toml
    """

    data_dir: Path = field(default_factory=get_chunksync_dir)
    sync: SyncConfig = field(default_factory=SyncConfig)
    version: str = "1.0"

    @property
    def webdav(self) -> WebDAVConfig:
        return self.sync.webdav

    @property
    def config_path(self) -> Path:
        return self.data_dir / CONFIG_FILE

    @property
    def db_path(self) -> Path:
        return self.data_dir / DB_FILE

    @classmethod
    def load(cls, data_dir: Path | None = None) -> AppConfig:
        """Load configuration from file, or return defaults if it doesn't exist.

        ``CHUNKSYNC_WEBDAV_PASSWORD`` overrides the stored password.

        Raises:
            ValueError: If the file holds invalid values.
            tomllib.TOMLDecodeError: If the file is not valid TOML.
        """
        data_dir = data_dir or get_chunksync_dir()
        config_path = data_dir / CONFIG_FILE

        data: dict[str, Any] = {}
        if config_path.exists():
            with open(config_path, "rb") as f:
                data = tomllib.load(f)

        webdav_data = dict(data.get("webdav", {}))
        env_password = os.environ.get(PASSWORD_ENV)
        if env_password:
            webdav_data["password"] = env_password

        webdav = WebDAVConfig.from_dict(webdav_data)
        return cls(
            data_dir=data_dir,
            sync=SyncConfig.from_dict(data.get("sync", {}), webdav=webdav),
            version=data.get("version", "1.0"),
        )

    def save(self) -> None:
        """Save configuration to TOML file (atomic write via temp+rename).

        A password supplied through the environment is not written.
        """
        self.data_dir.mkdir(parents=True, exist_ok=True)

        webdav = self.sync.webdav
        password = webdav.password
        if password and password == os.environ.get(PASSWORD_ENV):
            password = ""

        lines = [
            "# chunksync configuration",
            "",
            f"version = {_toml_str(self.version)}",
            "",
            "# Remote server",
            "[webdav]",
            f"url = {_toml_str(webdav.url)}",
            f"username = {_toml_str(webdav.username)}",
            f"password = {_toml_str(password)}",
            f"sync_path = {_toml_str(webdav.sync_path)}",
            f"verify_tls = {_toml_bool(webdav.verify_tls)}",
            f"timeout = {float(webdav.timeout)}",
            "",
            "# Sync engine",
            "[sync]",
            f"direction = {_toml_str(self.sync.direction.value)}",
            f"conflict_resolution = {_toml_str(self.sync.conflict_resolution.value)}",
            f"auto_sync = {_toml_bool(self.sync.auto_sync)}",
            f"auto_sync_interval = {float(self.sync.auto_sync_interval)}",
            f"max_chunk_size = {self.sync.max_chunk_size}",
            f"enable_compression = {_toml_bool(self.sync.enable_compression)}",
            f"max_concurrency = {self.sync.max_concurrency}",
        ]

        # mkstemp creates the file with mode 0600, which keeps the password private.
        content = "\n".join(lines) + "\n"
        fd, tmp_path = tempfile.mkstemp(dir=str(self.data_dir), suffix=".toml.tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
            Path(tmp_path).replace(self.config_path)
        except BaseException:
            Path(tmp_path).unlink(missing_ok=True)
            raise

    def with_value(self, key: str, raw: str) -> AppConfig:
        """Return a copy with one ``section.name`` setting parsed from text.

        Raises:
            KeyError: If the key does not name a setting.
            ValueError: If the value cannot be parsed or is out of range.
        """
        section, _, name = key.partition(".")
        if section == "webdav":
            target: Any = self.sync.webdav
        elif section == "sync":
            target = self.sync
        else:
            raise KeyError(key)

        allowed = {f.name for f in dataclasses.fields(target)} - {"webdav"}
        if name not in allowed:
            raise KeyError(key)

        updated = dataclasses.replace(target, **{name: _coerce(getattr(target, name), raw)})
        if section == "webdav":
            return dataclasses.replace(self, sync=dataclasses.replace(self.sync, webdav=updated))
        return dataclasses.replace(self, sync=updated)

    def to_dict(self, *, redact: bool = True) -> dict[str, Any]:
        webdav = self.sync.webdav.to_dict()
        if redact and webdav["password"]:
            webdav["password"] = "********"
        return {
            "version": self.version,
            "data_dir": str(self.data_dir),
            "webdav": webdav,
            "sync": self.sync.to_dict(),
        }
