"""Tests for cachefront.config -- XDG paths, atomic writes, worker config resolution."""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import patch

import pytest
import yaml

from cachefront.config import (
    _atomic_write,
    find_project_config,
    get_cache_dir,
    get_config_dir,
    get_data_dir,
    get_storage_dir,
    load_global_config,
    load_worker_config,
    resolve_worker_config,
    save_global_config,
)
from cachefront.exceptions import ConfigError
from cachefront.models import GlobalConfig, OutputConfig, StorageConfig


WORKER = {
    "namespace": "admin-panel",
    "version": "1.0.0",
    "scope": "https://app.example.org/admin/",
    "manifest": ["", "index.html"],
}


def _write_json(path: Path, data) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2), encoding="utf-8")
    return path


# ---------------------------------------------------------------------------
# XDG path resolution
# ---------------------------------------------------------------------------


class TestXDGPaths:
    def test_config_dir_xdg_custom(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("cachefront.config._is_xdg_platform", lambda: True)
        monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "cfg"))

        result = get_config_dir()
        assert result == tmp_path / "cfg" / "cachefront"
        assert result.is_dir()

    def test_cache_dir_xdg_default(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("cachefront.config._is_xdg_platform", lambda: True)
        monkeypatch.delenv("XDG_CACHE_HOME", raising=False)
        monkeypatch.setattr(Path, "home", classmethod(lambda cls: tmp_path))

        assert get_cache_dir() == tmp_path / ".cache" / "cachefront"

    def test_data_dir_fallback(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("cachefront.config._is_xdg_platform", lambda: False)
        monkeypatch.setattr(Path, "home", classmethod(lambda cls: tmp_path))

        result = get_data_dir()
        assert result == tmp_path / ".cachefront" / "logs"
        assert result.is_dir()

    def test_storage_dir_default(self, isolated_config: Path) -> None:
        result = get_storage_dir()
        assert result == isolated_config / "cache" / "cachefront" / "stores"
        assert result.is_dir()

    def test_storage_dir_from_config(self, isolated_config: Path) -> None:
        config = GlobalConfig(storage=StorageConfig(directory=str(isolated_config / "elsewhere")))
        result = get_storage_dir(config)
        assert result == isolated_config / "elsewhere"
        assert result.is_dir()


# ---------------------------------------------------------------------------
# Atomic writes
# ---------------------------------------------------------------------------


class TestAtomicWrite:
    def test_creates_file_and_parents(self, tmp_path: Path) -> None:
        target = tmp_path / "a" / "b" / "config.json"
        _atomic_write(target, "content")
        assert target.read_text(encoding="utf-8") == "content"

    def test_overwrites_existing_file(self, tmp_path: Path) -> None:
        target = tmp_path / "config.json"
        target.write_text("old", encoding="utf-8")
        _atomic_write(target, "new")
        assert target.read_text(encoding="utf-8") == "new"
        assert list(tmp_path.iterdir()) == [target]

    def test_no_temp_files_left_on_error(self, tmp_path: Path) -> None:
        target = tmp_path / "config.json"
        with patch("cachefront.config.os.fsync", side_effect=OSError("disk error")):
            with pytest.raises(OSError, match="disk error"):
                _atomic_write(target, "will fail")
        assert list(tmp_path.iterdir()) == []


# ---------------------------------------------------------------------------
# Global config
# ---------------------------------------------------------------------------


class TestGlobalConfig:
    def test_defaults_when_missing(self, isolated_config: Path) -> None:
        config = load_global_config()
        assert config.output.format == "auto"
        assert config.storage.directory is None

    def test_save_and_load(self, isolated_config: Path) -> None:
        save_global_config(GlobalConfig(output=OutputConfig(format="json")))
        assert load_global_config().output.format == "json"

    def test_invalid_json_raises(self, isolated_config: Path) -> None:
        path = get_config_dir() / "config.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(ConfigError):
            load_global_config()


# ---------------------------------------------------------------------------
# Worker config
# ---------------------------------------------------------------------------


class TestLoadWorkerConfig:
    def test_json(self, tmp_path: Path) -> None:
        config = load_worker_config(_write_json(tmp_path / "cachefront.json", WORKER))
        assert config.store_name == "admin-panel-1.0.0"
        assert [e.url for e in config.manifest] == [
            "https://app.example.org/admin/",
            "https://app.example.org/admin/index.html",
        ]

    def test_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "cachefront.yaml"
        path.write_text(yaml.safe_dump(WORKER), encoding="utf-8")
        assert load_worker_config(path).version == "1.0.0"

    def test_version_env_override(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CACHEFRONT_VERSION", "9.9.9")
        config = load_worker_config(_write_json(tmp_path / "cachefront.json", WORKER))
        assert config.store_name == "admin-panel-9.9.9"

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="not found"):
            load_worker_config(tmp_path / "nope.json")

    def test_unparseable(self, tmp_path: Path) -> None:
        path = tmp_path / "cachefront.yaml"
        path.write_text("namespace: [unclosed", encoding="utf-8")
        with pytest.raises(ConfigError):
            load_worker_config(path)

    def test_not_a_mapping(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="mapping"):
            load_worker_config(_write_json(tmp_path / "cachefront.json", ["a", "b"]))

    def test_invalid_fields(self, tmp_path: Path) -> None:
        bad = dict(WORKER, scope="not-a-url")
        with pytest.raises(ConfigError, match="Invalid worker config"):
            load_worker_config(_write_json(tmp_path / "cachefront.json", bad))


class TestResolveWorkerConfig:
    def test_cli_path_wins(self, isolated_config: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        _write_json(isolated_config / "cachefront.json", dict(WORKER, version="project"))
        env = _write_json(isolated_config / "env.json", dict(WORKER, version="env"))
        cli = _write_json(isolated_config / "cli.json", dict(WORKER, version="cli"))
        monkeypatch.setenv("CACHEFRONT_CONFIG", str(env))

        assert resolve_worker_config(str(cli)).version == "cli"

    def test_env_before_project(self, isolated_config: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        _write_json(isolated_config / "cachefront.json", dict(WORKER, version="project"))
        env = _write_json(isolated_config / "env.json", dict(WORKER, version="env"))
        monkeypatch.setenv("CACHEFRONT_CONFIG", str(env))

        assert resolve_worker_config().version == "env"

    def test_project_file(self, isolated_config: Path) -> None:
        _write_json(isolated_config / "cachefront.json", dict(WORKER, version="project"))
        assert find_project_config() == isolated_config / "cachefront.json"
        assert resolve_worker_config().version == "project"

    def test_nothing_found(self, isolated_config: Path) -> None:
        with pytest.raises(ConfigError, match="No worker config"):
            resolve_worker_config()
