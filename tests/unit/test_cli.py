"""Tests for the chunksync CLI, run against a local-folder remote."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest
from typer.testing import CliRunner, Result

from chunksync.cli.main import app
from chunksync.config import PASSWORD_ENV

runner = CliRunner()


@pytest.fixture
def home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Data directory of the device under test."""
    data_dir = tmp_path / "device-a"
    monkeypatch.setenv("CHUNKSYNC_DIR", str(data_dir))
    monkeypatch.delenv(PASSWORD_ENV, raising=False)
    return data_dir


@pytest.fixture
def remote_dir(tmp_path: Path) -> Path:
    return tmp_path / "remote"


@pytest.fixture
def other_device(tmp_path: Path) -> dict[str, str]:
    """Environment for a second device sharing the remote."""
    return {"CHUNKSYNC_DIR": str(tmp_path / "device-b")}


def _invoke(*args: str, env: dict[str, str] | None = None) -> Result:
    return runner.invoke(app, list(args), env=env)


def _json(*args: str, env: dict[str, str] | None = None) -> Any:
    result = _invoke(*args, "--json", env=env)
    assert result.exit_code == 0, result.output
    return json.loads(result.stdout)


# ── Basics ───────────────────────────────────────────────────────


class TestBasics:
    def test_version(self) -> None:
        result = _invoke("version")
        assert result.exit_code == 0
        assert "chunksync v" in result.output

    def test_device_id_is_stable(self, home: Path) -> None:
        first = _json("device")
        second = _json("device")

        assert first["device_id"] == second["device_id"]
        assert len(first["device_id"]) == 16
        assert (home / "device_id").read_text() == first["device_id"]

    def test_status_before_any_sync(self, home: Path) -> None:
        result = _invoke("status")
        assert result.exit_code == 0
        assert "not configured" in result.output
        assert "Last sync: never" in result.output


# ── Remote setup ─────────────────────────────────────────────────


class TestSetup:
    def test_init_saves_config(self, home: Path, remote_dir: Path) -> None:
        result = _invoke("init", remote_dir.as_uri(), "--path", "team")

        assert result.exit_code == 0, result.output
        assert "Remote configured!" in result.output
        config = _json("config", "show")
        assert config["webdav"]["url"] == remote_dir.as_uri()
        assert config["webdav"]["sync_path"] == "team"

    def test_init_rejects_bad_url(self, home: Path) -> None:
        result = _invoke("init", "ftp://example.com")
        assert result.exit_code == 1
        assert not (home / "config.toml").exists()

    def test_password_is_masked(self, home: Path) -> None:
        _invoke("init", "https://dav.example.com", "-u", "me", "-p", "hunter2")
        result = _invoke("config", "show")
        assert "hunter2" not in result.output
        assert "********" in result.output

    def test_connection_without_remote(self, home: Path) -> None:
        result = _invoke("test")
        assert result.exit_code == 1
        assert "No remote configured" in result.output

    def test_connection_ok(self, home: Path, remote_dir: Path) -> None:
        _invoke("init", remote_dir.as_uri())
        result = _invoke("test")
        assert result.exit_code == 0, result.output
        assert "[OK]" in result.output


# ── Configuration ────────────────────────────────────────────────


class TestConfigCommands:
    def test_set_and_show(self, home: Path) -> None:
        result = _invoke("config", "set", "sync.direction", "upload_only")
        assert result.exit_code == 0, result.output
        assert _json("config", "show")["sync"]["direction"] == "upload_only"

    def test_set_unknown_key(self, home: Path) -> None:
        result = _invoke("config", "set", "sync.colour", "blue")
        assert result.exit_code == 1
        assert "Unknown setting" in result.output

    def test_set_invalid_value(self, home: Path) -> None:
        result = _invoke("config", "set", "sync.conflict_resolution", "coinflip")
        assert result.exit_code == 1
        assert "Invalid value" in result.output

    def test_set_password_not_echoed(self, home: Path) -> None:
        result = _invoke("config", "set", "webdav.password", "hunter2")
        assert result.exit_code == 0
        assert "hunter2" not in result.output


# ── Chunks ───────────────────────────────────────────────────────


class TestChunkCommands:
    def test_put_get(self, home: Path) -> None:
        result = _invoke("chunks", "put", "settings", '{"theme": "dark"}')
        assert result.exit_code == 0, result.output
        assert "Saved settings v1" in result.output

        result = _invoke("chunks", "get", "settings")
        assert json.loads(result.stdout) == {"theme": "dark"}

    def test_put_text_and_metadata(self, home: Path) -> None:
        _invoke("chunks", "put", "note", "buy milk", "--text", "--type", "note")
        meta = json.loads(_invoke("chunks", "get", "note", "--meta").stdout)
        assert meta["dataType"] == "note"
        assert meta["version"] == 1

    def test_put_from_file(self, home: Path, tmp_path: Path) -> None:
        payload = tmp_path / "profile.json"
        payload.write_text('{"name": "Ana"}')
        _invoke("chunks", "put", "profile", "--file", str(payload))
        assert json.loads(_invoke("chunks", "get", "profile").stdout) == {"name": "Ana"}

    def test_put_invalid_json(self, home: Path) -> None:
        result = _invoke("chunks", "put", "bad", "{nope")
        assert result.exit_code == 1
        assert "Invalid JSON" in result.output

    def test_put_requires_value(self, home: Path) -> None:
        assert _invoke("chunks", "put", "empty").exit_code == 1

    def test_put_too_large(self, home: Path) -> None:
        _invoke("config", "set", "sync.max_chunk_size", "16")
        result = _invoke("chunks", "put", "big", "x" * 100, "--text")
        assert result.exit_code == 1

    def test_get_missing(self, home: Path) -> None:
        result = _invoke("chunks", "get", "missing")
        assert result.exit_code == 1
        assert "not found" in result.output

    def test_list(self, home: Path) -> None:
        assert "No local chunks" in _invoke("chunks", "list").output

        _invoke("chunks", "put", "a", "1")
        _invoke("chunks", "put", "b", "2")

        assert "Local chunks" in _invoke("chunks", "list").output
        listed = _json("chunks", "list")
        assert sorted(meta["id"] for meta in listed) == ["a", "b"]

    def test_rm_local_only(self, home: Path) -> None:
        _invoke("chunks", "put", "a", "1")
        result = _invoke("chunks", "rm", "a", "--local-only", "--force")
        assert result.exit_code == 0
        assert _json("chunks", "list") == []

    def test_rm_asks_for_confirmation(self, home: Path) -> None:
        _invoke("chunks", "put", "a", "1")
        result = runner.invoke(app, ["chunks", "rm", "a", "--local-only"], input="n\n")
        assert result.exit_code == 1
        assert len(_json("chunks", "list")) == 1


# ── Syncing between two devices ──────────────────────────────────


class TestSyncCommands:
    def test_sync_requires_remote(self, home: Path) -> None:
        result = _invoke("sync")
        assert result.exit_code == 1

    def test_two_devices(
        self, home: Path, remote_dir: Path, other_device: dict[str, str]
    ) -> None:
        _invoke("init", remote_dir.as_uri())
        _invoke("chunks", "put", "settings", '{"theme": "dark"}')

        pushed = _json("sync")
        assert pushed["success"] is True
        assert pushed["uploaded_chunks"] == 1
        assert (remote_dir / "chunksync" / "chunks" / "settings.json").exists()

        _invoke("init", remote_dir.as_uri(), env=other_device)
        pulled = _json("sync", env=other_device)
        assert pulled["downloaded_chunks"] == 1

        result = _invoke("chunks", "get", "settings", env=other_device)
        assert json.loads(result.stdout) == {"theme": "dark"}
        remote = _json("chunks", "remote", env=other_device)
        assert [meta["id"] for meta in remote] == ["settings"]

    def test_human_output_and_status(self, home: Path, remote_dir: Path) -> None:
        _invoke("init", remote_dir.as_uri())
        _invoke("chunks", "put", "a", "1")

        result = _invoke("sync")
        assert result.exit_code == 0, result.output
        assert "Sync success" in result.output
        assert "Uploaded:   1" in result.output

        status = _json("status")
        assert status["status"] == "success"
        assert status["local_chunks"] == 1
        assert status["last_sync_time"] is not None

    def test_unreachable_remote(self, home: Path, tmp_path: Path) -> None:
        blocker = tmp_path / "not-a-folder"
        blocker.write_text("x")
        _invoke("init", blocker.as_uri())

        result = _invoke("sync")
        assert result.exit_code == 1
        assert "Sync failed" in result.output

    def test_manual_conflict_and_resolve(
        self, home: Path, remote_dir: Path, other_device: dict[str, str]
    ) -> None:
        _invoke("init", remote_dir.as_uri())
        _invoke("init", remote_dir.as_uri(), env=other_device)
        _invoke("chunks", "put", "doc", "first", "--text")
        _json("sync")
        _json("sync", env=other_device)

        _invoke("chunks", "put", "doc", "edit from A", "--text")
        _invoke("chunks", "put", "doc", "edit from B", "--text", env=other_device)
        _json("sync")

        conflicted = _json("sync", "--strategy", "manual", env=other_device)
        assert conflicted["success"] is True
        assert conflicted["status"] == "conflict"
        assert conflicted["conflicts"] == ["doc"]
        assert _json("status", env=other_device)["conflicts"] == ["doc"]

        result = _invoke("resolve", "doc", "--keep", "local", env=other_device)
        assert result.exit_code == 0, result.output
        assert "Resolved doc" in result.output
        assert _json("status", env=other_device)["conflicts"] == []

        assert _json("sync")["downloaded_chunks"] == 1
        assert json.loads(_invoke("chunks", "get", "doc").stdout) == "edit from B"

    def test_resolve_rejects_bad_choice(self, home: Path) -> None:
        result = _invoke("resolve", "doc", "--keep", "both")
        assert result.exit_code == 1

    def test_rm_deletes_remote_copy(self, home: Path, remote_dir: Path) -> None:
        _invoke("init", remote_dir.as_uri())
        _invoke("chunks", "put", "a", "1")
        _json("sync")

        result = _invoke("chunks", "rm", "a", "--force")

        assert result.exit_code == 0, result.output
        assert not (remote_dir / "chunksync" / "chunks" / "a.json").exists()
        assert _json("chunks", "list") == []
