"""Tests for payload checksums."""

from __future__ import annotations

import hashlib

import pytest

from chunksync.sync.checksum import compute_checksum, encode_payload, verify_checksum


class TestEncodePayload:
    def test_compact_json(self) -> None:
        assert encode_payload({"a": 1, "b": [1, 2]}) == b'{"a":1,"b":[1,2]}'

    def test_keeps_insertion_order(self) -> None:
        assert encode_payload({"b": 1, "a": 2}) == b'{"b":1,"a":2}'

    def test_non_ascii_is_utf8(self) -> None:
        assert encode_payload("héllo") == '"héllo"'.encode()

    def test_bytes_pass_through(self) -> None:
        assert encode_payload(b"\x00\x01") == b"\x00\x01"

    def test_nan_rejected(self) -> None:
        with pytest.raises(ValueError):
            encode_payload(float("nan"))

    def test_unserializable_rejected(self) -> None:
        with pytest.raises(TypeError):
            encode_payload({"x": object()})


class TestComputeChecksum:
    def test_sha256_of_encoding(self) -> None:
        expected = hashlib.sha256(b'{"theme":"dark"}').hexdigest()
        assert compute_checksum({"theme": "dark"}) == expected

    def test_hex_digest_length(self) -> None:
        assert len(compute_checksum([1, 2, 3])) == 64

    def test_different_payloads_differ(self) -> None:
        assert compute_checksum({"v": 1}) != compute_checksum({"v": 2})

    def test_bytes_and_encoded_json_agree(self) -> None:
        payload = {"k": "v"}
        assert compute_checksum(payload) == compute_checksum(encode_payload(payload))


class TestVerifyChecksum:
    def test_matching(self) -> None:
        payload = {"n": 42}
        assert verify_checksum(payload, compute_checksum(payload)) is True

    def test_mismatch(self) -> None:
        assert verify_checksum({"n": 42}, compute_checksum({"n": 43})) is False

    def test_empty_expected(self) -> None:
        assert verify_checksum({"n": 42}, "") is False
