"""Canonical Pydantic models shared across all cachefront modules.

This is the single source of truth for data shapes in the project. Every other
module imports from here rather than defining its own models. The models fall
into three groups:

**Configuration models** -- loaded from JSON or YAML files:
    :class:`RequestConfig`, :class:`OutputConfig`, :class:`StorageConfig`,
    :class:`GlobalConfig`, :class:`NotificationConfig`,
    :class:`ManifestEntry`, and :class:`WorkerConfig`.

**Cache models** -- persisted inside a store:
    :class:`CacheEntry`.

**Wire and report models** -- exchanged with clients or returned by the
lifecycle phases:
    :class:`CommandType`, :class:`ControlMessage`, :class:`VersionReply`,
    :class:`ClearCacheReply`, :class:`NetworkStatusMessage`,
    :class:`PushPayload`, :class:`Notification`, :class:`WarmUpResult`,
    :class:`WarmUpReport`, :class:`ActivationReport`, and
    :class:`WorkerState`.

All models use Pydantic v2. :class:`WorkerConfig` and :class:`CacheEntry`
are frozen: the worker configuration is fixed at construction time and a
cache entry is only ever replaced, never edited.
"""

from __future__ import annotations

import enum
import time
import uuid
from typing import Any, Optional
from urllib.parse import urljoin, urlsplit

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


def origin_of(url: str) -> str:
    """Return the ``scheme://host[:port]`` origin of *url*, lower-cased."""
    parts = urlsplit(url)
    return f"{parts.scheme.lower()}://{parts.netloc.lower()}"


# --- Global Config ---


class RequestConfig(BaseModel):
    """Network settings applied to every fetch the worker performs."""

    timeout: float = Field(default=30.0, description="Request timeout in seconds")
    verify_ssl: bool = Field(default=True, description="Verify SSL certificates")
    max_retries: int = Field(
        default=0, description="Retries on connection errors before giving up"
    )


class OutputConfig(BaseModel):
    """Default output format preferences stored in :class:`GlobalConfig`."""

    format: str = Field(
        default="auto", description="Output format: auto, json, plain, rich"
    )


class StorageConfig(BaseModel):
    """Where cache stores live on disk."""

    directory: Optional[str] = Field(
        default=None,
        description="Storage root; defaults to <cache dir>/stores",
    )


class GlobalConfig(BaseModel):
    """User-wide configuration persisted at ``~/.config/cachefront/config.json``.

    Loaded and saved by :func:`~cachefront.config.load_global_config` and
    :func:`~cachefront.config.save_global_config`.
    """

    output: OutputConfig = Field(default_factory=OutputConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)


# --- Worker Config ---


class NotificationConfig(BaseModel):
    """Presentation defaults for push notifications."""

    model_config = ConfigDict(frozen=True)

    title: str = "cachefront"
    default_body: str = "New notification"
    icon: Optional[str] = Field(
        default="favicon.ico", description="Icon path, resolved against the scope"
    )
    vibrate: tuple[int, ...] = (200, 100, 200)


class ManifestEntry(BaseModel):
    """A single asset to pre-warm during install.

    ``cross_origin`` entries are fetched in ``no-cors`` mode; their
    responses are opaque and cached as black boxes.
    """

    model_config = ConfigDict(frozen=True)

    url: str
    cross_origin: bool = False


class WorkerConfig(BaseModel):
    """Immutable configuration for one deployed version of the worker.

    Relative manifest URLs are resolved against ``scope`` at validation
    time, and ``cross_origin`` is derived from the scope's origin unless
    the entry sets it explicitly.

    Example::

        WorkerConfig(
            namespace="admin-panel",
            version="1.0.0",
            scope="https://example.org/admin/",
            manifest=["", "index.html", "https://cdn.example.com/app.css"],
            excluded_origins=["firestore.googleapis.com"],
        )
    """

    model_config = ConfigDict(frozen=True)

    namespace: str = Field(min_length=1)
    version: str = Field(min_length=1)
    scope: str = Field(description="Absolute base URL of the application")
    manifest: tuple[ManifestEntry, ...] = ()
    offline_document: str = Field(
        default="index.html",
        description="Application shell served to HTML requests when offline",
    )
    excluded_origins: tuple[str, ...] = Field(
        default=(), description="Host substrings that are never intercepted"
    )
    vary_headers: tuple[str, ...] = Field(
        default=(), description="Request headers that take part in the cache key"
    )
    eager_activation: bool = True
    request: RequestConfig = Field(default_factory=RequestConfig)
    notifications: NotificationConfig = Field(default_factory=NotificationConfig)
    sync_tag: str = "sync-data"

    @model_validator(mode="before")
    @classmethod
    def _resolve_manifest(cls, data: Any) -> Any:
        if not isinstance(data, dict) or not isinstance(data.get("scope"), str):
            return data
        data = dict(data)
        scope = data["scope"]
        if not scope.endswith("/"):
            scope += "/"
        data["scope"] = scope

        entries = []
        for item in data.get("manifest") or ():
            if isinstance(item, str):
                item = {"url": item}
            elif isinstance(item, ManifestEntry):
                item = item.model_dump()
            elif isinstance(item, dict):
                item = dict(item)
            else:
                entries.append(item)
                continue
            if isinstance(item.get("url"), str):
                item["url"] = urljoin(scope, item["url"])
                if item.get("cross_origin") is None:
                    item["cross_origin"] = origin_of(item["url"]) != origin_of(scope)
            entries.append(item)
        data["manifest"] = entries
        return data

    @field_validator("namespace", "version")
    @classmethod
    def _check_name_part(cls, value: str) -> str:
        if "/" in value or "\\" in value or value.startswith("."):
            raise ValueError(f"{value!r} cannot be used in a store name")
        return value

    @field_validator("scope")
    @classmethod
    def _check_scope(cls, value: str) -> str:
        parts = urlsplit(value)
        if parts.scheme not in ("http", "https") or not parts.netloc:
            raise ValueError(f"scope must be an absolute http(s) URL, got {value!r}")
        return value

    @property
    def store_name(self) -> str:
        """Name of the store owned by this version: ``<namespace>-<version>``."""
        return f"{self.namespace}-{self.version}"

    @property
    def scope_origin(self) -> str:
        return origin_of(self.scope)

    @property
    def offline_url(self) -> str:
        """Absolute URL of the cached application shell."""
        return urljoin(self.scope, self.offline_document)


# --- Cache Models ---


class CacheEntry(BaseModel):
    """Immutable snapshot of a response held in a store.

    Entries are written by the warm-up phase or by the interceptor and
    replaced wholesale on revalidation. ``opaque`` marks cross-origin
    responses fetched in ``no-cors`` mode.
    """

    model_config = ConfigDict(frozen=True)

    key: str
    method: str = "GET"
    url: str
    status_code: int
    reason_phrase: str = ""
    headers: tuple[tuple[str, str], ...] = ()
    body: bytes = b""
    store_name: str
    opaque: bool = False
    created_at: float = Field(default_factory=time.time)


# --- Control Channel ---


class CommandType(str, enum.Enum):
    """Commands understood by the control channel."""

    SKIP_WAITING = "SKIP_WAITING"
    CHECK_UPDATE = "CHECK_UPDATE"
    CLEAR_CACHE = "CLEAR_CACHE"
    NETWORK_STATUS = "NETWORK_STATUS"


class ControlMessage(BaseModel):
    """Inbound control message. ``type`` selects the command; extra fields are kept."""

    model_config = ConfigDict(extra="allow")

    type: str
    online: Optional[bool] = None


class VersionReply(BaseModel):
    version: str


class ClearCacheReply(BaseModel):
    success: bool
    error: Optional[str] = None


class NetworkStatusMessage(BaseModel):
    """Connectivity broadcast relayed to every connected client."""

    type: str = CommandType.NETWORK_STATUS.value
    online: bool
    timestamp: int = Field(description="Epoch milliseconds")


# --- Notifications ---


class PushPayload(BaseModel):
    """Inbound push payload. Every field is optional and strictly a string."""

    title: Optional[str] = None
    body: Optional[str] = None
    url: Optional[str] = None


class NotificationAction(BaseModel):
    action: str
    title: str


class NotificationData(BaseModel):
    url: str
    timestamp: int


class Notification(BaseModel):
    """A rendered, user-visible notification."""

    title: str
    body: str
    icon: Optional[str] = None
    badge: Optional[str] = None
    vibrate: tuple[int, ...] = ()
    data: NotificationData
    actions: tuple[NotificationAction, ...] = ()
    tag: str = Field(default_factory=lambda: uuid.uuid4().hex)


# --- Lifecycle Reports ---


class WorkerState(str, enum.Enum):
    """Lifecycle states of a :class:`~cachefront.worker.Worker`."""

    PARSED = "parsed"
    INSTALLING = "installing"
    INSTALLED = "installed"
    ACTIVATING = "activating"
    ACTIVATED = "activated"
    REDUNDANT = "redundant"


class WarmUpResult(BaseModel):
    """Outcome of pre-warming one manifest entry."""

    url: str
    ok: bool
    opaque: bool = False
    status_code: Optional[int] = None
    error: Optional[str] = None


class WarmUpReport(BaseModel):
    """Aggregate outcome of the install phase."""

    store_name: str
    results: list[WarmUpResult] = Field(default_factory=list)

    @property
    def cached_count(self) -> int:
        return sum(1 for r in self.results if r.ok)

    @property
    def failed_count(self) -> int:
        return sum(1 for r in self.results if not r.ok)


class ActivationReport(BaseModel):
    """Outcome of the activation phase."""

    store_name: str
    evicted: list[str] = Field(default_factory=list)
    claimed_clients: int = 0
