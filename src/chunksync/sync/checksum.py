"""Content checksums for chunk payloads.

Payloads are hashed over their compact JSON encoding (keys in insertion
order, no whitespace, UTF-8), which is the same text other installations
produce when they serialize a chunk. Raw ``bytes`` are hashed as-is.
"""

from __future__ import annotations

import hashlib
import json
from typing import Any


def encode_payload(payload: Any) -> bytes:
    """Return the canonical byte encoding of a payload.

    Raises:
        TypeError: If the payload is not JSON-serializable.
        ValueError: If the payload contains NaN or infinity.
    """
    if isinstance(payload, bytes | bytearray | memoryview):
        return bytes(payload)
    return json.dumps(
        payload,
        separators=(",", ":"),
        ensure_ascii=False,
        allow_nan=False,
    ).encode("utf-8")


def compute_checksum(payload: Any) -> str:
    """Compute the SHA-256 hex digest of a payload."""
    return hashlib.sha256(encode_payload(payload)).hexdigest()


def verify_checksum(payload: Any, expected: str) -> bool:
    """Return True if the payload hashes to ``expected``."""
    return compute_checksum(payload) == expected
