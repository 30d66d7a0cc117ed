"""Device identity for multi-device sync.

Provides stable device identification by persisting a generated device ID
to disk on first access. The device name is derived from the machine hostname.
"""

from __future__ import annotations

import logging
import platform
from pathlib import Path
from uuid import uuid4

logger = logging.getLogger(__name__)

DEVICE_ID_FILE = "device_id"


def _generate_device_id() -> str:
    return uuid4().hex[:16]


class DeviceIdentity:
    """Stable per-installation identifier.

    The ID is read from ``{config_dir}/device_id``. If the file does not
    exist, a new 16-character hex ID is generated and written there. If the
    file can be neither read nor written, an ephemeral ID is used for the
    lifetime of this object and :attr:`is_ephemeral` is set; sync still
    works, but writes from this process are attributed to a throwaway ID.
    """

    def __init__(self, config_dir: Path) -> None:
        self._config_dir = config_dir
        self._device_id: str | None = None
        self._ephemeral = False

    @property
    def path(self) -> Path:
        return self._config_dir / DEVICE_ID_FILE

    @property
    def is_ephemeral(self) -> bool:
        """True when the ID could not be persisted."""
        return self._ephemeral

    def get(self) -> str:
        """Return the device ID, creating and persisting it on first use."""
        if self._device_id is None:
            self._device_id = self._load_or_create()
        return self._device_id

    def _load_or_create(self) -> str:
        id_path = self.path

        if id_path.exists():
            try:
                existing = id_path.read_text(encoding="utf-8").strip()
                if existing:
                    return existing
            except OSError:
                logger.warning("Could not read device id from %s", id_path, exc_info=True)

        new_id = _generate_device_id()

        try:
            self._config_dir.mkdir(parents=True, exist_ok=True)
            id_path.write_text(new_id, encoding="utf-8")
        except OSError as e:
            self._ephemeral = True
            logger.warning(
                "Could not persist device id to %s (%s); using ephemeral id %s for this run",
                id_path,
                e,
                new_id,
            )

        return new_id


def get_device_id(config_dir: Path) -> str:
    """Return the persistent device ID stored under ``config_dir``."""
    return DeviceIdentity(config_dir).get()


def get_device_name() -> str:
    """Return the machine hostname as the device name.

    Falls back to ``"unknown"`` if the hostname cannot be determined.
    """
    name = platform.node()
    return name if name else "unknown"
