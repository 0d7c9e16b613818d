"""Configuration management with XDG paths, atomic writes, and precedence resolution.

This module handles all persistent configuration for cachefront:

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.cachefront/`` on macOS and Windows. See :func:`get_config_dir`,
  :func:`get_cache_dir`, :func:`get_data_dir`, :func:`get_storage_dir`.
* **Global config** -- A single :class:`~cachefront.models.GlobalConfig`
  JSON file storing user defaults (output format, storage root).
* **Worker config** -- One :class:`~cachefront.models.WorkerConfig` per
  deployed application, read from JSON or YAML. See
  :func:`load_worker_config` and :func:`resolve_worker_config`.

All file writes use an atomic temp-file-then-rename strategy
(:func:`_atomic_write`) to prevent data loss on crash or power failure.
"""

from __future__ import annotations

import json
import os
import platform
import tempfile
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import ValidationError

from cachefront.exceptions import ConfigError
from cachefront.models import GlobalConfig, WorkerConfig

_APP_NAME = "cachefront"
_CONFIG_FILENAME = "config.json"
_PROJECT_CONFIG_FILENAMES = ("cachefront.json", "cachefront.yaml", "cachefront.yml")


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    """Return True if the platform supports XDG Base Directory spec (Linux/FreeBSD)."""
    return platform.system() == "Linux" or platform.system().endswith("BSD")


def _fallback_base_dir() -> Path:
    """Fallback base directory for non-XDG platforms (macOS, Windows)."""
    return Path.home() / f".{_APP_NAME}"


def _xdg_base(env_var: str, default_segments: tuple[str, ...]) -> Path:
    """Resolve an XDG base directory from an env var with fallback segments under $HOME."""
    env_value = os.environ.get(env_var, "")
    if env_value:
        return Path(env_value)
    base = Path.home()
    for seg in default_segments:
        base = base / seg
    return base


def get_config_dir() -> Path:
    """Return the configuration directory, creating it if necessary.

    On Linux/BSD: ``$XDG_CONFIG_HOME/cachefront/`` (default ``~/.config/cachefront/``).
    On macOS/Windows: ``~/.cachefront/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_CONFIG_HOME", (".config",)) / _APP_NAME
    else:
        path = _fallback_base_dir()
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_cache_dir() -> Path:
    """Return the cache directory, creating it if necessary.

    On Linux/BSD: ``$XDG_CACHE_HOME/cachefront/`` (default ``~/.cache/cachefront/``).
    On macOS/Windows: ``~/.cachefront/cache/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_CACHE_HOME", (".cache",)) / _APP_NAME
    else:
        path = _fallback_base_dir() / "cache"
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_dir() -> Path:
    """Return the data directory (crash logs), creating it if necessary.

    On Linux/BSD: ``$XDG_DATA_HOME/cachefront/`` (default ``~/.local/share/cachefront/``).
    On macOS/Windows: ``~/.cachefront/logs/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_DATA_HOME", (".local", "share")) / _APP_NAME
    else:
        path = _fallback_base_dir() / "logs"
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_storage_dir(config: Optional[GlobalConfig] = None) -> Path:
    """Return the root directory holding every named cache store.

    Uses ``config.storage.directory`` when set, otherwise
    ``<cache dir>/stores``. The directory is created if necessary.
    """
    if config is not None and config.storage.directory:
        path = Path(config.storage.directory).expanduser()
    else:
        path = get_cache_dir() / "stores"
    path.mkdir(parents=True, exist_ok=True)
    return path


# --- Atomic file writes ---


def _atomic_write(path: Path, data: str) -> None:
    """Write data to file atomically using temp file + rename.

    The temporary file is created in the same directory as *path* so that
    ``os.replace`` is guaranteed to be an atomic rename on POSIX systems.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    fd = None
    tmp_path: Optional[str] = None
    try:
        fd = tempfile.NamedTemporaryFile(
            mode="w",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
            encoding="utf-8",
        )
        tmp_path = fd.name
        fd.write(data)
        fd.flush()
        os.fsync(fd.fileno())
        fd.close()
        fd = None  # prevent double-close below
        os.replace(tmp_path, path)
    except BaseException:
        if fd is not None:
            fd.close()
        if tmp_path is not None:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
        raise


# --- Global config ---


def _global_config_path() -> Path:
    return get_config_dir() / _CONFIG_FILENAME


def load_global_config() -> GlobalConfig:
    """Load the global configuration from the XDG config directory.

    Returns:
        The deserialised :class:`~cachefront.models.GlobalConfig`. If the
        file does not exist, a default instance is returned.

    Raises:
        ConfigError: If the file exists but contains invalid JSON or fails
            Pydantic validation.
    """
    path = _global_config_path()
    if not path.is_file():
        return GlobalConfig()
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return GlobalConfig.model_validate(data)
    except (json.JSONDecodeError, ValueError) as exc:
        raise ConfigError(f"Invalid global config at {path}: {exc}") from exc


def save_global_config(config: GlobalConfig) -> None:
    """Persist the global configuration atomically to disk."""
    data = config.model_dump(mode="json")
    _atomic_write(_global_config_path(), json.dumps(data, indent=2) + "\n")


# --- Worker config ---


def _parse_config_text(text: str, path: Path) -> dict[str, Any]:
    """Parse JSON or YAML, choosing by extension and falling back on content."""
    suffix = path.suffix.lower()
    try:
        if suffix == ".json":
            data = json.loads(text)
        else:
            # YAML is a superset of JSON, so this also covers unknown suffixes.
            data = yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise ConfigError(f"Cannot parse worker config at {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Worker config at {path} must be a mapping, got {type(data).__name__}")
    return data


def load_worker_config(path: str | Path) -> WorkerConfig:
    """Load and validate a worker configuration file.

    ``CACHEFRONT_VERSION``, when set, replaces the file's ``version`` so a
    deploy pipeline can stamp the build without rewriting the file.

    Args:
        path: Path to a ``.json``, ``.yaml`` or ``.yml`` file.

    Returns:
        The validated, frozen :class:`~cachefront.models.WorkerConfig`.

    Raises:
        ConfigError: If the file is missing, unparseable, or invalid.
    """
    path = Path(path).expanduser()
    if not path.is_file():
        raise ConfigError(f"Worker config not found at {path}")
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Cannot read worker config {path}: {exc}") from exc

    data = _parse_config_text(text, path)
    env_version = os.environ.get("CACHEFRONT_VERSION")
    if env_version:
        data["version"] = env_version

    try:
        return WorkerConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid worker config at {path}: {exc}") from exc


def find_project_config() -> Optional[Path]:
    """Return the first ``cachefront.{json,yaml,yml}`` in the working directory."""
    for name in _PROJECT_CONFIG_FILENAMES:
        candidate = Path.cwd() / name
        if candidate.is_file():
            return candidate
    return None


def resolve_worker_config(cli_path: Optional[str] = None) -> WorkerConfig:
    """Resolve the worker config with the full precedence chain.

    Precedence (high to low):
        1. CLI flag (``--config``)
        2. Environment variable (``CACHEFRONT_CONFIG``)
        3. Project file (``./cachefront.json``, ``.yaml``, ``.yml``)

    Raises:
        ConfigError: If no configuration can be found or it is invalid.
    """
    if cli_path is not None:
        return load_worker_config(cli_path)

    env_path = os.environ.get("CACHEFRONT_CONFIG")
    if env_path:
        return load_worker_config(env_path)

    project = find_project_config()
    if project is not None:
        return load_worker_config(project)

    raise ConfigError(
        "No worker config found. Pass --config, set CACHEFRONT_CONFIG, "
        "or create ./cachefront.json"
    )
