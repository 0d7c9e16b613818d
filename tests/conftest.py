"""Shared test fixtures for cachefront.

Provides isolated config directories, a quiet output manager, a sample
worker configuration, on-disk storage under ``tmp_path``, and a fake
origin server built on :class:`httpx.MockTransport`.  These fixtures are
discovered by pytest and available to every test module.
"""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Optional

import httpx
import pytest

from cachefront.cache import CacheStorage
from cachefront.models import WorkerConfig
from cachefront.output import OutputFormat, OutputManager, reset_output, set_output


SCOPE = "https://app.example.org/admin/"
CDN_URL = "https://cdn.example.com/app.css"


# ---------------------------------------------------------------------------
# Auto-reset global output state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager after every test.

    The OutputManager caches references to sys.stdout/sys.stderr at
    creation time.  When Typer's CliRunner redirects those streams the
    cached references go stale, so a fresh manager is created on next use.
    """
    yield
    reset_output()


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration to a temporary directory.

    Points the XDG directories at subdirectories of tmp_path, clears the
    CACHEFRONT_* environment variables, and changes the working directory
    to tmp_path.

    Returns:
        The tmp_path root directory for additional file creation.
    """
    monkeypatch.setattr("cachefront.config._is_xdg_platform", lambda: True)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_CACHE_HOME", str(tmp_path / "cache"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))

    for var in ["CACHEFRONT_CONFIG", "CACHEFRONT_VERSION"]:
        monkeypatch.delenv(var, raising=False)

    monkeypatch.chdir(tmp_path)
    return tmp_path


# ---------------------------------------------------------------------------
# Output fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def quiet_output() -> OutputManager:
    """Install a PLAIN-format, quiet OutputManager as the global output."""
    output = OutputManager(format=OutputFormat.PLAIN, quiet=True, no_color=True)
    set_output(output)
    yield output
    reset_output()


# ---------------------------------------------------------------------------
# Worker fixtures
# ---------------------------------------------------------------------------


def make_config(version: str = "1.0.0", **overrides) -> WorkerConfig:
    """Build a WorkerConfig for the sample admin application."""
    data = {
        "namespace": "admin-panel",
        "version": version,
        "scope": SCOPE,
        "manifest": ["", "index.html", "app.js", CDN_URL],
        "excluded_origins": ["firestore.googleapis.com"],
    }
    data.update(overrides)
    return WorkerConfig.model_validate(data)


@pytest.fixture
def worker_config() -> WorkerConfig:
    return make_config()


@pytest.fixture
def storage(tmp_path: Path) -> CacheStorage:
    """A CacheStorage rooted in tmp_path, closed after the test."""
    s = CacheStorage(tmp_path / "stores")
    yield s
    s.close()


class FakeOrigin:
    """A scriptable origin server for :class:`httpx.MockTransport`.

    Every path under the sample scope answers 200 with a body naming the
    path and a counter, so tests can tell fresh responses from cached
    ones.  ``offline`` makes every request fail with a connection error;
    ``routes`` overrides individual URLs.
    """

    def __init__(self) -> None:
        self.offline = False
        self.requests: list[httpx.Request] = []
        self.routes: dict[str, Callable[[httpx.Request], httpx.Response]] = {}
        self._counter = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.offline:
            raise httpx.ConnectError("network unreachable", request=request)
        handler = self.routes.get(str(request.url))
        if handler is not None:
            return handler(request)
        self._counter += 1
        content_type = "text/html" if request.url.path.endswith(("/", ".html")) else "text/plain"
        return httpx.Response(
            200,
            headers={"Content-Type": content_type},
            text=f"{request.url.path} #{self._counter}",
        )

    def hits(self, url: str) -> int:
        return sum(1 for r in self.requests if str(r.url) == url)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


@pytest.fixture
def origin() -> FakeOrigin:
    return FakeOrigin()


def status_response(status_code: int, text: Optional[str] = None) -> Callable[[httpx.Request], httpx.Response]:
    """Route handler that always answers *status_code*."""
    return lambda request: httpx.Response(status_code, text=text or f"HTTP {status_code}")


# ---------------------------------------------------------------------------
# CLI runner fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_runner():
    """Typer CLI test runner."""
    from typer.testing import CliRunner

    return CliRunner()
