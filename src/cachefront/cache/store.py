"""Named, version-scoped response stores backed by :mod:`diskcache`.

A :class:`CacheStorage` owns a root directory; every named store is one
:class:`diskcache.Cache` directory beneath it, so stores survive process
restarts until they are deleted explicitly.  :class:`CacheStore` is the
handle returned by :meth:`CacheStorage.open`.

Entries are :class:`~cachefront.models.CacheEntry` snapshots keyed by a
SHA-256 hash of ``METHOD|URL|vary headers``.  The URL is absolute with
the fragment stripped, and only the configured vary headers take part in
the key, lower-cased and sorted so header order never matters.

diskcache is blocking, so every public operation is a coroutine that
runs the call on the storage's single worker thread.  diskcache opens
one SQLite connection per thread, and keeping them all on that thread
lets closing and deleting a store release its files.  Per-key writes are
atomic across threads and processes; the last writer for a key wins.

See Also:
    :class:`~cachefront.models.CacheEntry` -- the persisted snapshot.
"""

from __future__ import annotations

import asyncio
import functools
import hashlib
import shutil
import sqlite3
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, Callable, Iterable, Optional, TypeVar
from urllib.parse import urldefrag

import diskcache
import httpx
from diskcache.core import DBNAME

from cachefront.exceptions import InvalidUsageError, StoreError
from cachefront.models import CacheEntry
from cachefront.output import debug

SOURCE_EXTENSION = "cachefront_source"
OPAQUE_EXTENSION = "cachefront_opaque"

T = TypeVar("T")

# Headers describing the wire encoding; httpx has already decoded the body.
TRANSPORT_HEADERS = frozenset({"content-encoding", "content-length", "transfer-encoding"})


def normalize_url(url: httpx.URL | str) -> str:
    """Return *url* as an absolute string without its fragment."""
    return urldefrag(str(httpx.URL(url))).url


def is_opaque(response: httpx.Response) -> bool:
    """Whether *response* came from a cross-origin ``no-cors`` fetch."""
    return bool(response.extensions.get(OPAQUE_EXTENSION, False))


def entry_to_response(
    entry: CacheEntry,
    request: Optional[httpx.Request] = None,
    source: str = "cache",
) -> httpx.Response:
    """Rebuild an :class:`httpx.Response` from a stored entry.

    The returned response is tagged with ``extensions["cachefront_source"]``
    so callers can tell where it came from.
    """
    extensions = {SOURCE_EXTENSION: source, OPAQUE_EXTENSION: entry.opaque}
    if entry.reason_phrase:
        extensions["reason_phrase"] = entry.reason_phrase.encode("ascii", "replace")
    return httpx.Response(
        status_code=entry.status_code,
        headers=list(entry.headers),
        content=entry.body,
        request=request,
        extensions=extensions,
    )


class CacheStore:
    """Handle to one named store.

    Obtained from :meth:`CacheStorage.open`; do not construct directly.
    A ``put`` for an existing key replaces the previous entry wholesale.

    Args:
        name: The store name (``<namespace>-<version>``).
        cache: The open :class:`diskcache.Cache` for the store directory.
        executor: The owning storage's single-thread executor.  Every
            diskcache call for this store runs there.
        vary_headers: Request headers that take part in the key.
    """

    def __init__(
        self,
        name: str,
        cache: diskcache.Cache,
        executor: ThreadPoolExecutor,
        vary_headers: Iterable[str] = (),
    ) -> None:
        self._name = name
        self._cache = cache
        self._executor = executor
        self._vary_headers = tuple(sorted(h.lower() for h in vary_headers))

    @property
    def name(self) -> str:
        return self._name

    @property
    def directory(self) -> str:
        return self._cache.directory

    async def match(self, request: httpx.Request) -> Optional[CacheEntry]:
        """Look up the entry stored for *request*.

        Returns:
            The :class:`~cachefront.models.CacheEntry`, or ``None`` on a miss.

        Raises:
            StoreError: If the underlying store cannot be read.
        """
        key = self._make_key(request)
        try:
            data = await self._run(self._cache.get, key)
        except (OSError, sqlite3.Error) as exc:
            raise StoreError(f"Cannot read from store '{self._name}': {exc}") from exc
        if data is None:
            return None
        return CacheEntry.model_validate(data)

    async def put(
        self,
        request: httpx.Request,
        response: httpx.Response,
        opaque: Optional[bool] = None,
    ) -> CacheEntry:
        """Snapshot *response* and store it under the key of *request*.

        The response body must already be read.

        Args:
            request: The request the response answers.
            response: A fully read response.
            opaque: Override the opaque flag; defaults to the marker set by
                the fetcher.

        Returns:
            The stored entry.

        Raises:
            StoreError: If the entry cannot be written.
        """
        key = self._make_key(request)
        entry = CacheEntry(
            key=key,
            method=request.method.upper(),
            url=normalize_url(request.url),
            status_code=response.status_code,
            reason_phrase=response.reason_phrase or "",
            headers=tuple(
                (k, v)
                for k, v in response.headers.multi_items()
                if k.lower() not in TRANSPORT_HEADERS
            ),
            body=response.content,
            store_name=self._name,
            opaque=is_opaque(response) if opaque is None else opaque,
        )
        try:
            await self._run(self._cache.set, key, entry.model_dump())
        except (OSError, sqlite3.Error) as exc:
            raise StoreError(f"Cannot write to store '{self._name}': {exc}") from exc
        debug(f"Stored {entry.url} in {self._name}")
        return entry

    async def delete(self, request: httpx.Request) -> bool:
        """Remove the entry for *request*. Returns whether one existed."""
        key = self._make_key(request)
        return await self._run(self._cache.delete, key)

    async def keys(self) -> list[str]:
        """Return the URLs of every entry in the store."""

        def _urls() -> list[str]:
            urls = []
            for key in self._cache.iterkeys():
                data = self._cache.get(key)
                if data is not None:
                    urls.append(data["url"])
            return urls

        return await self._run(_urls)

    async def count(self) -> int:
        return await self._run(len, self._cache)

    def close(self) -> None:
        """Close the underlying :class:`diskcache.Cache`.

        diskcache keeps one SQLite connection per thread, so the close runs
        on the executor thread that opened it.  Blocks until it has.
        """
        self._executor.submit(self._cache.close).result()

    async def _run(self, func: Callable[..., T], *args: Any) -> T:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, functools.partial(func, *args))

    def _make_key(self, request: httpx.Request) -> str:
        """Generate a cache key from method, URL, and the vary headers."""
        parts = [request.method.upper(), normalize_url(request.url)]
        for name in self._vary_headers:
            parts.append(f"{name}={request.headers.get(name, '')}")
        raw = "|".join(parts)
        return hashlib.sha256(raw.encode()).hexdigest()


def is_store_name(name: str) -> bool:
    """Whether *name* can name a store directory."""
    return bool(name) and not name.startswith(".") and "/" not in name and "\\" not in name


class CacheStorage:
    """The set of named stores under one root directory.

    All diskcache work for the storage runs on one dedicated thread, so
    :meth:`close` and :meth:`delete_store` release every SQLite handle the
    stores opened.  The thread is started on first use and stopped by
    :meth:`close`; the storage may be used again afterwards.

    Example::

        storage = CacheStorage("/tmp/stores")
        store = await storage.open("admin-panel-1.0.0")
        await store.put(request, response)
        names = await storage.list_stores()
        await storage.delete_store("admin-panel-0.9.0")
        storage.close()

    Args:
        root: Directory holding one subdirectory per store.
        vary_headers: Request headers that take part in every store's keys.
    """

    def __init__(self, root: str | Path, vary_headers: Iterable[str] = ()) -> None:
        self._root = Path(root)
        self._vary_headers = tuple(vary_headers)
        self._handles: dict[str, CacheStore] = {}
        self._executor: Optional[ThreadPoolExecutor] = None

    @property
    def root(self) -> Path:
        return self._root

    async def open(self, name: str) -> CacheStore:
        """Open the store called *name*, creating it if it does not exist.

        Raises:
            InvalidUsageError: If *name* is not a usable store name.
            StoreError: If the store directory cannot be created or opened.
        """
        path = self._store_path(name)
        handle = self._handles.get(name)
        if handle is not None:
            return handle
        try:
            cache = await self._run(diskcache.Cache, str(path))
        except (OSError, sqlite3.Error) as exc:
            raise StoreError(f"Cannot open store '{name}' at {path}: {exc}") from exc

        handle = self._handles.setdefault(
            name, CacheStore(name, cache, self._get_executor(), self._vary_headers)
        )
        if handle._cache is not cache:
            # Lost a race with a concurrent open of the same store.
            await self._run(cache.close)
        return handle

    async def list_stores(self) -> set[str]:
        """Return the names of every store present on disk.

        Directories that could not be opened as a store (hidden names, for
        instance) are skipped.
        """

        def _scan() -> set[str]:
            if not self._root.is_dir():
                return set()
            return {
                p.name
                for p in self._root.iterdir()
                if is_store_name(p.name) and p.is_dir() and (p / DBNAME).is_file()
            }

        return await self._run(_scan)

    async def has_store(self, name: str) -> bool:
        return name in await self.list_stores()

    async def delete_store(self, name: str) -> bool:
        """Delete the store called *name* and every entry in it.

        An open handle for the store is closed first.

        Returns:
            ``True`` if a store was deleted, ``False`` if none existed.

        Raises:
            StoreError: If the store exists but cannot be removed.
        """
        path = self._store_path(name)
        handle = self._handles.pop(name, None)
        if handle is not None:
            await self._run(handle._cache.close)
        if not path.exists():
            return False
        try:
            await self._run(shutil.rmtree, path)
        except OSError as exc:
            raise StoreError(f"Cannot delete store '{name}': {exc}") from exc
        debug(f"Deleted store {name}")
        return True

    def close(self) -> None:
        """Close every open store handle and stop the storage thread."""
        for handle in self._handles.values():
            handle.close()
        self._handles.clear()
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    def _get_executor(self) -> ThreadPoolExecutor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="cachefront-store")
        return self._executor

    async def _run(self, func: Callable[..., T], *args: Any) -> T:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._get_executor(), functools.partial(func, *args))

    def _store_path(self, name: str) -> Path:
        if not is_store_name(name):
            raise InvalidUsageError(f"Invalid store name: {name!r}")
        return self._root / name
