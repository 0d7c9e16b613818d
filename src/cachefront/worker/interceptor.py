"""Cache-first request interception with background revalidation.

:class:`RequestInterceptor` decides how every outgoing request is served:

1. Requests that are not GET, not http(s), or aimed at an excluded origin
   go straight to the network and are never cached.
2. A cache hit is returned immediately.  A background task refetches the
   same request and, on a readable 200, replaces the stored entry; the
   caller only sees the fresher copy on its next request.
3. A miss is fetched; a readable 200 is stored before it is returned.
   Opaque and non-200 responses are returned as they are, uncached.
4. If the lookup or the fetch fails, HTML requests get the cached
   application shell and everything else gets a synthetic 503.

Every response handed back is tagged with
``extensions["cachefront_source"]``: ``cache``, ``network``,
``fallback``, ``offline`` or ``bypass``.

:class:`InterceptingTransport` mounts the interceptor under an
:class:`httpx.AsyncClient`, so application code is unchanged::

    client = httpx.AsyncClient(transport=InterceptingTransport(interceptor.handle))
    response = await client.get("https://example.org/admin/index.html")
"""

from __future__ import annotations

import asyncio
import functools
from typing import Awaitable, Callable, Optional

import httpx

from cachefront.cache import CacheStorage, CacheStore, entry_to_response, is_opaque
from cachefront.cache.store import OPAQUE_EXTENSION, SOURCE_EXTENSION, TRANSPORT_HEADERS
from cachefront.client import Fetcher
from cachefront.exceptions import FetchError, StoreError
from cachefront.models import WorkerConfig
from cachefront.output import debug, warning

OFFLINE_BODY = "Offline - no connection"


def offline_response(request: Optional[httpx.Request] = None) -> httpx.Response:
    """The synthetic response served when neither network nor cache can answer."""
    return httpx.Response(
        status_code=503,
        headers={"Content-Type": "text/plain"},
        content=OFFLINE_BODY.encode("utf-8"),
        request=request,
        extensions={SOURCE_EXTENSION: "offline", "reason_phrase": b"Service Unavailable"},
    )


class RequestInterceptor:
    """Serves requests cache-first, revalidating hits in the background.

    Args:
        config: The worker configuration (store name, exclusions, shell URL).
        storage: Storage holding the current version's store.
        fetcher: Network access.
    """

    def __init__(self, config: WorkerConfig, storage: CacheStorage, fetcher: Fetcher) -> None:
        self._config = config
        self._storage = storage
        self._fetcher = fetcher
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def pending_revalidations(self) -> int:
        return len(self._tasks)

    def is_excluded(self, request: httpx.Request) -> bool:
        """Whether *request* targets an origin that must never be cached."""
        url = str(request.url)
        return any(origin in url for origin in self._config.excluded_origins)

    def should_intercept(self, request: httpx.Request) -> bool:
        """Whether *request* is served by the cache-first strategy."""
        if request.method.upper() != "GET":
            return False
        if request.url.scheme not in ("http", "https"):
            return False
        return not self.is_excluded(request)

    async def handle(self, request: httpx.Request) -> httpx.Response:
        """Serve *request*.

        Raises:
            FetchError: Only for requests that bypass interception; those
                see the network's outcome unchanged.
        """
        if not self.should_intercept(request):
            response = await self._fetcher.fetch(request)
            response.extensions[SOURCE_EXTENSION] = "bypass"
            return response

        try:
            store = await self._storage.open(self._config.store_name)
            entry = await store.match(request)
            if entry is not None:
                debug(f"Cache hit: {request.url}")
                self._schedule_revalidation(request)
                return entry_to_response(entry, request)

            debug(f"Cache miss, fetching from network: {request.url}")
            return await self._fetch_and_cache(store, request)
        except (FetchError, StoreError) as exc:
            warning(f"Fetch failed for {request.url}: {exc}")
            return await self._fallback(request)

    async def drain(self) -> None:
        """Wait until every background revalidation has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    async def _fetch_and_cache(self, store: CacheStore, request: httpx.Request) -> httpx.Response:
        response = await self._fetcher.fetch(request)
        if response.status_code != 200 or is_opaque(response):
            return response
        try:
            await store.put(request, response)
        except StoreError as exc:
            warning(f"Could not cache {request.url}: {exc}")
        return response

    def _schedule_revalidation(self, request: httpx.Request) -> None:
        task = asyncio.create_task(self._revalidate(request))
        self._tasks.add(task)
        task.add_done_callback(functools.partial(self._log_crash, request.url))
        task.add_done_callback(self._tasks.discard)

    @staticmethod
    def _log_crash(url: httpx.URL, task: asyncio.Task[None]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            debug(f"Background revalidation of {url} crashed: {exc}")

    async def _revalidate(self, request: httpx.Request) -> None:
        try:
            response = await self._fetcher.fetch(request)
            if response.status_code != 200 or is_opaque(response):
                debug(f"Revalidation of {request.url} returned HTTP {response.status_code}; kept cached copy")
                return
            store = await self._storage.open(self._config.store_name)
            await store.put(request, response)
            debug(f"Revalidated {request.url}")
        except (FetchError, StoreError) as exc:
            debug(f"Background revalidation failed for {request.url}: {exc}")

    async def _fallback(self, request: httpx.Request) -> httpx.Response:
        if "text/html" in request.headers.get("accept", ""):
            try:
                store = await self._storage.open(self._config.store_name)
                entry = await store.match(httpx.Request("GET", self._config.offline_url))
            except StoreError as exc:
                debug(f"Offline document unavailable: {exc}")
                entry = None
            if entry is not None:
                return entry_to_response(entry, request, source="fallback")
        return offline_response(request)


class InterceptingTransport(httpx.AsyncBaseTransport):
    """httpx transport that serves every request through *handler*.

    *handler* is normally :meth:`RequestInterceptor.handle` or
    :meth:`~cachefront.worker.Worker.fetch`.
    """

    def __init__(self, handler: Callable[[httpx.Request], Awaitable[httpx.Response]]) -> None:
        self._handler = handler

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        response = await self._handler(request)
        # Hand the client an unread copy; the body is already decoded.
        extensions = {
            key: response.extensions[key]
            for key in (SOURCE_EXTENSION, OPAQUE_EXTENSION, "reason_phrase", "http_version")
            if key in response.extensions
        }
        return httpx.Response(
            status_code=response.status_code,
            headers=[
                (k, v) for k, v in response.headers.multi_items()
                if k.lower() not in TRANSPORT_HEADERS
            ],
            content=response.content,
            extensions=extensions,
        )
