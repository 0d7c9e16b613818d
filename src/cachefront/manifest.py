"""The asset manifest: what the install phase pre-warms.

A manifest is the ordered tuple of :class:`~cachefront.models.ManifestEntry`
objects on :attr:`WorkerConfig.manifest <cachefront.models.WorkerConfig.manifest>`,
already resolved to absolute URLs.  This module turns entries into the
requests the fetcher sends.
"""

from __future__ import annotations

from typing import Iterator, Optional

import httpx

from cachefront.client.fetcher import NO_CORS
from cachefront.models import ManifestEntry, WorkerConfig


def asset_request(entry: ManifestEntry) -> httpx.Request:
    """Build the GET request used to pre-warm *entry*.

    The request carries no headers, so its cache key matches a later
    lookup of the same URL regardless of which vary headers are configured.
    """
    return httpx.Request("GET", entry.url)


def fetch_mode(entry: ManifestEntry) -> Optional[str]:
    """Return ``"no-cors"`` for cross-origin entries, else ``None``."""
    return NO_CORS if entry.cross_origin else None


def iter_assets(config: WorkerConfig) -> Iterator[tuple[ManifestEntry, httpx.Request]]:
    """Yield every manifest entry with its pre-warm request, in manifest order."""
    for entry in config.manifest:
        yield entry, asset_request(entry)
