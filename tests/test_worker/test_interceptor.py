"""Tests for cache-first interception, revalidation and the offline fallback."""

from __future__ import annotations

import asyncio

import httpx
import pytest

from cachefront.cache import CacheStorage, CacheStore
from cachefront.cache.store import SOURCE_EXTENSION
from cachefront.exceptions import FetchError, StoreError
from cachefront.worker import OFFLINE_BODY, Worker

from conftest import SCOPE, make_config, status_response


APP_JS = SCOPE + "app.js"
EXCLUDED = "https://firestore.googleapis.com/v1/projects/demo/documents"


def _get(url: str, **headers: str) -> httpx.Request:
    return httpx.Request("GET", url, headers=headers)


def _source(response: httpx.Response) -> str:
    return response.extensions[SOURCE_EXTENSION]


async def _cached_body(storage: CacheStorage, url: str, version: str = "1.0.0"):
    store = await storage.open(f"admin-panel-{version}")
    entry = await store.match(_get(url))
    return None if entry is None else entry.body


# ------------------------------------------------------------------ #
# Cache hits and background revalidation
# ------------------------------------------------------------------ #


class TestCacheFirst:
    def test_hit_served_from_cache(self, storage: CacheStorage, origin, quiet_output) -> None:
        async def run():
            async with Worker(make_config(), storage, transport=origin.transport()) as worker:
                await worker.start()
                cached = await _cached_body(storage, APP_JS)
                response = await worker.fetch(_get(APP_JS))
                return cached, response

        cached, response = asyncio.run(run())
        assert _source(response) == "cache"
        assert response.status_code == 200
        assert response.content == cached

    def test_hit_does_not_wait_for_network(self, storage: CacheStorage, origin, quiet_output) -> None:
        async def run():
            gate = asyncio.Event()
            revalidating = asyncio.Event()
            blocking = False

            async def handler(request: httpx.Request) -> httpx.Response:
                if blocking:
                    revalidating.set()
                    await gate.wait()
                return origin(request)

            async with Worker(make_config(), storage, transport=httpx.MockTransport(handler)) as worker:
                await worker.start()
                cached = await _cached_body(storage, APP_JS)
                blocking = True
                response = await asyncio.wait_for(worker.fetch(_get(APP_JS)), timeout=2)
                await asyncio.wait_for(revalidating.wait(), timeout=2)
                pending = worker.interceptor.pending_revalidations
                gate.set()
                await worker.interceptor.drain()
                return cached, response, pending

        cached, response, pending = asyncio.run(run())
        assert _source(response) == "cache"
        assert response.content == cached
        assert pending == 1

    def test_unexpected_revalidation_error_is_logged(self, storage: CacheStorage, origin, capfd) -> None:
        from cachefront.output import OutputFormat, OutputManager, set_output

        def boom(request: httpx.Request) -> httpx.Response:
            raise RuntimeError("boom")

        async def run():
            async with Worker(make_config(), storage, transport=origin.transport()) as worker:
                await worker.start()
                origin.routes[APP_JS] = boom
                response = await worker.fetch(_get(APP_JS))
                while worker.interceptor.pending_revalidations:
                    await asyncio.sleep(0.01)
                return response

        set_output(OutputManager(format=OutputFormat.PLAIN, no_color=True, quiet=True, verbose=True))
        response = asyncio.run(run())
        assert _source(response) == "cache"
        assert f"Background revalidation of {APP_JS} crashed: boom" in capfd.readouterr().err

    def test_hit_revalidates_in_background(self, storage: CacheStorage, origin, quiet_output) -> None:
        async def run():
            async with Worker(make_config(), storage, transport=origin.transport()) as worker:
                await worker.start()
                first = await worker.fetch(_get(APP_JS))
                assert worker.interceptor.pending_revalidations == 1
                await worker.interceptor.drain()
                refreshed = await _cached_body(storage, APP_JS)
                second = await worker.fetch(_get(APP_JS))
                return first, refreshed, second

        first, refreshed, second = asyncio.run(run())
        assert refreshed != first.content
        assert second.content == refreshed
        assert _source(second) == "cache"

    def test_failed_revalidation_keeps_entry(self, storage: CacheStorage, origin, quiet_output) -> None:
        async def run():
            async with Worker(make_config(), storage, transport=origin.transport()) as worker:
                await worker.start()
                before = await _cached_body(storage, APP_JS)
                origin.offline = True
                response = await worker.fetch(_get(APP_JS))
                await worker.interceptor.drain()
                return before, response, await _cached_body(storage, APP_JS)

        before, response, after = asyncio.run(run())
        assert _source(response) == "cache"
        assert after == before

    def test_non_200_revalidation_keeps_entry(self, storage: CacheStorage, origin, quiet_output) -> None:
        async def run():
            async with Worker(make_config(), storage, transport=origin.transport()) as worker:
                await worker.start()
                before = await _cached_body(storage, APP_JS)
                origin.routes[APP_JS] = status_response(500)
                await worker.fetch(_get(APP_JS))
                await worker.interceptor.drain()
                return before, await _cached_body(storage, APP_JS)

        before, after = asyncio.run(run())
        assert after == before

    def test_fragment_ignored_on_lookup(self, storage: CacheStorage, origin, quiet_output) -> None:
        async def run():
            async with Worker(make_config(), storage, transport=origin.transport()) as worker:
                await worker.start()
                return await worker.fetch(_get(APP_JS + "#main"))

        assert _source(asyncio.run(run())) == "cache"


# ------------------------------------------------------------------ #
# Cache misses
# ------------------------------------------------------------------ #


class TestMiss:
    def test_miss_fetched_and_stored(self, storage: CacheStorage, origin, quiet_output) -> None:
        url = SCOPE + "reports/2024.json"

        async def run():
            async with Worker(make_config(), storage, transport=origin.transport()) as worker:
                await worker.start()
                first = await worker.fetch(_get(url))
                stored = await _cached_body(storage, url)
                second = await worker.fetch(_get(url))
                return first, stored, second

        first, stored, second = asyncio.run(run())
        assert _source(first) == "network"
        assert stored == first.content
        assert _source(second) == "cache"

    def test_non_200_miss_not_stored(self, storage: CacheStorage, origin, quiet_output) -> None:
        url = SCOPE + "gone"
        origin.routes[url] = status_response(404)

        async def run():
            async with Worker(make_config(), storage, transport=origin.transport()) as worker:
                await worker.start()
                response = await worker.fetch(_get(url))
                return response, await _cached_body(storage, url)

        response, stored = asyncio.run(run())
        assert response.status_code == 404
        assert _source(response) == "network"
        assert stored is None

    def test_store_write_failure_still_serves(
        self, storage: CacheStorage, origin, quiet_output, monkeypatch
    ) -> None:
        url = SCOPE + "fresh.js"

        async def broken_put(self, request, response, opaque=None):
            raise StoreError("disk full")

        async def run():
            async with Worker(make_config(), storage, transport=origin.transport()) as worker:
                await worker.start()
                monkeypatch.setattr(CacheStore, "put", broken_put)
                return await worker.fetch(_get(url))

        response = asyncio.run(run())
        assert response.status_code == 200
        assert _source(response) == "network"

    def test_other_versions_never_served(self, storage: CacheStorage, origin, quiet_output) -> None:
        url = SCOPE + "legacy.js"

        async def run():
            old = await storage.open("admin-panel-0.9.0")
            await old.put(_get(url), httpx.Response(200, text="old build"))
            config = make_config(manifest=[])
            async with Worker(config, storage, transport=origin.transport()) as worker:
                await worker.start()
                origin.offline = True
                return await worker.fetch(_get(url))

        response = asyncio.run(run())
        assert response.status_code == 503
        assert response.text == OFFLINE_BODY


# ------------------------------------------------------------------ #
# Requests that are never intercepted
# ------------------------------------------------------------------ #


class TestBypass:
    def test_excluded_origin(self, storage: CacheStorage, origin, quiet_output) -> None:
        async def run():
            async with Worker(make_config(), storage, transport=origin.transport()) as worker:
                await worker.start()
                first = await worker.fetch(_get(EXCLUDED))
                second = await worker.fetch(_get(EXCLUDED))
                store = await storage.open(worker.config.store_name)
                return first, second, await store.match(_get(EXCLUDED))

        first, second, entry = asyncio.run(run())
        assert _source(first) == "bypass"
        assert _source(second) == "bypass"
        assert entry is None
        assert origin.hits(EXCLUDED) == 2

    def test_non_get(self, storage: CacheStorage, origin, quiet_output) -> None:
        async def run():
            async with Worker(make_config(), storage, transport=origin.transport()) as worker:
                await worker.start()
                return await worker.fetch(httpx.Request("POST", APP_JS, content=b"{}"))

        response = asyncio.run(run())
        assert _source(response) == "bypass"
        assert origin.requests[-1].method == "POST"

    def test_bypass_network_error_propagates(self, storage: CacheStorage, origin, quiet_output) -> None:
        async def run():
            async with Worker(make_config(), storage, transport=origin.transport()) as worker:
                await worker.start()
                origin.offline = True
                await worker.fetch(_get(EXCLUDED))

        with pytest.raises(FetchError):
            asyncio.run(run())

    def test_not_activated_goes_to_network(self, storage: CacheStorage, origin, quiet_output) -> None:
        config = make_config(eager_activation=False)

        async def run():
            async with Worker(config, storage, transport=origin.transport()) as worker:
                await worker.start()
                return await worker.fetch(_get(APP_JS))

        assert _source(asyncio.run(run())) == "bypass"


# ------------------------------------------------------------------ #
# Offline fallback chain
# ------------------------------------------------------------------ #


class TestOfflineFallback:
    def test_html_miss_gets_shell(self, storage: CacheStorage, origin, quiet_output) -> None:
        async def run():
            async with Worker(make_config(), storage, transport=origin.transport()) as worker:
                await worker.start()
                shell = await _cached_body(storage, SCOPE + "index.html")
                origin.offline = True
                response = await worker.fetch(_get(SCOPE + "reports", Accept="text/html,*/*"))
                return shell, response

        shell, response = asyncio.run(run())
        assert _source(response) == "fallback"
        assert response.status_code == 200
        assert response.content == shell

    def test_other_miss_gets_503(self, storage: CacheStorage, origin, quiet_output) -> None:
        async def run():
            async with Worker(make_config(), storage, transport=origin.transport()) as worker:
                await worker.start()
                origin.offline = True
                return await worker.fetch(_get(SCOPE + "data.json", Accept="application/json"))

        response = asyncio.run(run())
        assert _source(response) == "offline"
        assert response.status_code == 503
        assert response.reason_phrase == "Service Unavailable"
        assert response.headers["content-type"] == "text/plain"
        assert response.text == "Offline - no connection"

    def test_html_without_shell_gets_503(self, storage: CacheStorage, origin, quiet_output) -> None:
        config = make_config(manifest=["app.js"])

        async def run():
            async with Worker(config, storage, transport=origin.transport()) as worker:
                await worker.start()
                origin.offline = True
                return await worker.fetch(_get(SCOPE + "reports", Accept="text/html"))

        response = asyncio.run(run())
        assert response.status_code == 503

    def test_store_failure_falls_back(
        self, storage: CacheStorage, origin, quiet_output, monkeypatch
    ) -> None:
        async def broken_open(name: str):
            raise StoreError("corrupt database")

        async def run():
            async with Worker(make_config(), storage, transport=origin.transport()) as worker:
                await worker.start()
                monkeypatch.setattr(storage, "open", broken_open)
                return await worker.fetch(_get(APP_JS, Accept="text/html"))

        response = asyncio.run(run())
        assert _source(response) == "offline"
        assert response.status_code == 503


# ------------------------------------------------------------------ #
# httpx transport
# ------------------------------------------------------------------ #


class TestInterceptingTransport:
    def test_client_requests_go_through_worker(self, storage: CacheStorage, origin, quiet_output) -> None:
        async def run():
            async with Worker(make_config(), storage, transport=origin.transport()) as worker:
                await worker.start()
                cached = await _cached_body(storage, APP_JS)
                async with httpx.AsyncClient(transport=worker.transport()) as client:
                    response = await client.get(APP_JS)
                return cached, response

        cached, response = asyncio.run(run())
        assert response.content == cached
        assert response.extensions[SOURCE_EXTENSION] == "cache"

    def test_offline_response_through_client(self, storage: CacheStorage, origin, quiet_output) -> None:
        async def run():
            async with Worker(make_config(), storage, transport=origin.transport()) as worker:
                await worker.start()
                origin.offline = True
                async with httpx.AsyncClient(transport=worker.transport()) as client:
                    return await client.get(SCOPE + "data.json")

        response = asyncio.run(run())
        assert response.status_code == 503
        assert response.text == OFFLINE_BODY
