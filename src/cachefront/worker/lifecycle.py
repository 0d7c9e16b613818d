"""Install and activate phases.

:func:`install` pre-warms the current version's store from the manifest.
Each asset is fetched and stored independently and concurrently; one bad
asset is recorded in the report and never fails the phase.  Only a store
that cannot be opened is fatal.

:func:`activate` deletes every store other than the current version's and
then claims the connected clients.  Deletions run concurrently and must
all settle before the phase reports success.
"""

from __future__ import annotations

import asyncio

import httpx

from cachefront.cache import CacheStorage, CacheStore, is_opaque
from cachefront.client import Fetcher
from cachefront.exceptions import FetchError, StoreError
from cachefront.manifest import fetch_mode, iter_assets
from cachefront.models import (
    ActivationReport,
    ManifestEntry,
    WarmUpReport,
    WarmUpResult,
    WorkerConfig,
)
from cachefront.output import debug, info, warning
from cachefront.worker.clients import ClientRegistry


async def install(config: WorkerConfig, storage: CacheStorage, fetcher: Fetcher) -> WarmUpReport:
    """Populate the current store from the manifest.

    Returns:
        A :class:`~cachefront.models.WarmUpReport` with one result per
        manifest entry, in manifest order.

    Raises:
        StoreError: If the current store cannot be opened.
    """
    info(f"Installing version {config.version}...")
    store = await storage.open(config.store_name)
    debug(f"Store opened: {store.name}")

    results = await asyncio.gather(
        *(_warm(store, fetcher, entry, request) for entry, request in iter_assets(config))
    )
    report = WarmUpReport(store_name=store.name, results=list(results))
    info(
        f"Version {config.version}: cached {report.cached_count} of {len(report.results)} assets"
        + (f" ({report.failed_count} failed)" if report.failed_count else "")
    )
    return report


async def _warm(
    store: CacheStore, fetcher: Fetcher, entry: ManifestEntry, request: httpx.Request
) -> WarmUpResult:
    try:
        response = await fetcher.fetch(request, mode=fetch_mode(entry))
    except FetchError as exc:
        warning(f"Could not fetch {entry.url}: {exc}")
        return WarmUpResult(url=entry.url, ok=False, error=str(exc))

    opaque = is_opaque(response)
    if response.status_code != 200 and not opaque:
        warning(f"Not caching {entry.url}: HTTP {response.status_code}")
        return WarmUpResult(
            url=entry.url,
            ok=False,
            status_code=response.status_code,
            error=f"HTTP {response.status_code}",
        )

    try:
        await store.put(request, response)
    except StoreError as exc:
        warning(f"Could not cache {entry.url}: {exc}")
        return WarmUpResult(
            url=entry.url, ok=False, opaque=opaque, status_code=response.status_code, error=str(exc)
        )
    return WarmUpResult(url=entry.url, ok=True, opaque=opaque, status_code=response.status_code)


async def activate(
    config: WorkerConfig, storage: CacheStorage, clients: ClientRegistry
) -> ActivationReport:
    """Evict every stale store, then claim all connected clients.

    Version equality is the only retention rule: every store whose name
    differs from ``config.store_name`` is deleted, however recent.

    Raises:
        StoreError: If any stale store could not be deleted.  Raised only
            after every deletion has settled.
    """
    info(f"Activating version {config.version}...")
    names = await storage.list_stores()
    stale = sorted(name for name in names if name != config.store_name)

    outcomes = await asyncio.gather(
        *(storage.delete_store(name) for name in stale), return_exceptions=True
    )
    evicted = []
    failures = []
    for name, outcome in zip(stale, outcomes):
        if isinstance(outcome, Exception):
            failures.append((name, outcome))
        else:
            info(f"Removed stale store: {name}")
            evicted.append(name)

    if failures:
        name, exc = failures[0]
        names_failed = ", ".join(n for n, _ in failures)
        raise StoreError(f"Could not delete stale stores: {names_failed}") from exc

    claimed = clients.claim(config.version)
    info(f"Version {config.version} activated; controlling {claimed} client(s)")
    return ActivationReport(store_name=config.store_name, evicted=evicted, claimed_clients=claimed)
