"""Tests for config.py: TOML persistence, env overrides, key updates."""

from __future__ import annotations

import tomllib
from pathlib import Path

import pytest

from chunksync.config import (
    PASSWORD_ENV,
    AppConfig,
    SyncConfig,
    WebDAVConfig,
    get_chunksync_dir,
)
from chunksync.sync.protocol import ConflictStrategy, SyncDirection


@pytest.fixture(autouse=True)
def _no_password_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv(PASSWORD_ENV, raising=False)


def _make_config(data_dir: Path, **webdav: object) -> AppConfig:
    return AppConfig(
        data_dir=data_dir,
        sync=SyncConfig(webdav=WebDAVConfig(**webdav)),  # type: ignore[arg-type]
    )


# ── Data directory ───────────────────────────────────────────────


class TestDataDir:
    def test_env_override(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        monkeypatch.setenv("CHUNKSYNC_DIR", str(tmp_path / "custom"))
        assert get_chunksync_dir() == tmp_path / "custom"

    def test_default_under_home(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("CHUNKSYNC_DIR", raising=False)
        assert get_chunksync_dir() == Path.home() / ".chunksync"


# ── Validation ───────────────────────────────────────────────────


class TestValidation:
    def test_defaults(self) -> None:
        config = SyncConfig()
        assert config.direction == SyncDirection.BIDIRECTIONAL
        assert config.conflict_resolution == ConflictStrategy.TIMESTAMP
        assert config.max_chunk_size == 1024 * 1024
        assert config.auto_sync is False
        assert not config.webdav.is_configured

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"auto_sync_interval": 0},
            {"max_chunk_size": 0},
            {"max_concurrency": 0},
        ],
    )
    def test_rejects_out_of_range(self, kwargs: dict[str, int]) -> None:
        with pytest.raises(ValueError):
            SyncConfig(**kwargs)  # type: ignore[arg-type]

    def test_rejects_unknown_scheme(self) -> None:
        with pytest.raises(ValueError, match="url"):
            WebDAVConfig(url="ftp://example.com")

    def test_rejects_bad_timeout(self) -> None:
        with pytest.raises(ValueError):
            WebDAVConfig(url="https://example.com", timeout=0)

    def test_from_dict_rejects_unknown_direction(self) -> None:
        with pytest.raises(ValueError):
            SyncConfig.from_dict({"direction": "sideways"})


# ── Load / save ──────────────────────────────────────────────────


class TestLoadSave:
    def test_missing_file_gives_defaults(self, tmp_path: Path) -> None:
        config = AppConfig.load(tmp_path)
        assert config.data_dir == tmp_path
        assert config.sync == SyncConfig()

    def test_round_trip(self, tmp_path: Path) -> None:
        original = AppConfig(
            data_dir=tmp_path,
            sync=SyncConfig(
                webdav=WebDAVConfig(
                    url="https://dav.example.com/files",
                    username="me",
                    password='p"a\\ss',
                    sync_path="team sync",
                    verify_tls=False,
                    timeout=12.5,
                ),
                direction=SyncDirection.UPLOAD_ONLY,
                conflict_resolution=ConflictStrategy.MANUAL,
                auto_sync=True,
                auto_sync_interval=60.0,
                max_chunk_size=2048,
                enable_compression=True,
                max_concurrency=2,
            ),
        )
        original.save()

        assert AppConfig.load(tmp_path) == original

    def test_file_is_valid_toml(self, tmp_path: Path) -> None:
        _make_config(tmp_path, url="https://dav.example.com").save()

        with open(tmp_path / "config.toml", "rb") as f:
            data = tomllib.load(f)

        assert data["webdav"]["url"] == "https://dav.example.com"
        assert data["sync"]["direction"] == "bidirectional"

    def test_save_leaves_no_temp_files(self, tmp_path: Path) -> None:
        config = _make_config(tmp_path, url="https://dav.example.com")
        config.save()
        config.save()
        assert [p.name for p in tmp_path.iterdir()] == ["config.toml"]

    def test_invalid_values_raise(self, tmp_path: Path) -> None:
        (tmp_path / "config.toml").write_text('[sync]\nconflict_resolution = "coinflip"\n')
        with pytest.raises(ValueError):
            AppConfig.load(tmp_path)


# ── Password from the environment ────────────────────────────────


class TestPasswordEnv:
    def test_env_overrides_file(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        _make_config(tmp_path, url="https://dav.example.com", password="stored").save()
        monkeypatch.setenv(PASSWORD_ENV, "from-env")

        assert AppConfig.load(tmp_path).webdav.password == "from-env"

    def test_env_password_not_written(
        self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path
    ) -> None:
        monkeypatch.setenv(PASSWORD_ENV, "from-env")
        AppConfig.load(tmp_path).with_value("webdav.url", "https://dav.example.com").save()

        assert "from-env" not in (tmp_path / "config.toml").read_text()


# ── with_value ───────────────────────────────────────────────────


class TestWithValue:
    def test_enum_value(self, tmp_path: Path) -> None:
        config = _make_config(tmp_path).with_value("sync.direction", "download-only")
        assert config.sync.direction == SyncDirection.DOWNLOAD_ONLY

    @pytest.mark.parametrize(("raw", "expected"), [("yes", True), ("OFF", False), ("1", True)])
    def test_bool_words(self, tmp_path: Path, raw: str, expected: bool) -> None:
        config = _make_config(tmp_path).with_value("sync.enable_compression", raw)
        assert config.sync.enable_compression is expected

    def test_numbers(self, tmp_path: Path) -> None:
        config = (
            _make_config(tmp_path)
            .with_value("sync.max_chunk_size", "4096")
            .with_value("webdav.timeout", "5")
        )
        assert config.sync.max_chunk_size == 4096
        assert config.webdav.timeout == 5.0

    def test_webdav_value_keeps_sync_settings(self, tmp_path: Path) -> None:
        config = _make_config(tmp_path).with_value("sync.max_concurrency", "8")
        config = config.with_value("webdav.username", "me")
        assert config.sync.max_concurrency == 8
        assert config.webdav.username == "me"

    @pytest.mark.parametrize("key", ["sync.nope", "other.direction", "direction", "sync.webdav"])
    def test_unknown_key(self, tmp_path: Path, key: str) -> None:
        with pytest.raises(KeyError):
            _make_config(tmp_path).with_value(key, "x")

    @pytest.mark.parametrize(
        ("key", "raw"),
        [
            ("sync.direction", "sideways"),
            ("sync.auto_sync", "maybe"),
            ("sync.max_chunk_size", "big"),
            ("sync.max_chunk_size", "-1"),
            ("webdav.url", "gopher://x"),
        ],
    )
    def test_invalid_value(self, tmp_path: Path, key: str, raw: str) -> None:
        with pytest.raises(ValueError):
            _make_config(tmp_path).with_value(key, raw)


class TestToDict:
    def test_password_redacted(self, tmp_path: Path) -> None:
        config = _make_config(tmp_path, url="https://x.example", password="secret")
        assert config.to_dict()["webdav"]["password"] == "********"
        assert config.to_dict(redact=False)["webdav"]["password"] == "secret"

    def test_empty_password_not_masked(self, tmp_path: Path) -> None:
        assert _make_config(tmp_path).to_dict()["webdav"]["password"] == ""
