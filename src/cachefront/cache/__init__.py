"""Version-scoped response storage for cachefront.

This package provides :class:`CacheStorage`, the set of named stores on
disk, and :class:`CacheStore`, the handle to a single store.  Each store
is a :mod:`diskcache` directory; entries are immutable
:class:`~cachefront.models.CacheEntry` snapshots.

The storage is consumed by the install and activate phases in
:mod:`cachefront.worker.lifecycle` and by the request interceptor in
:mod:`cachefront.worker.interceptor`.
"""

from cachefront.cache.store import (
    CacheStorage,
    CacheStore,
    entry_to_response,
    is_opaque,
    normalize_url,
)

__all__ = ["CacheStorage", "CacheStore", "entry_to_response", "is_opaque", "normalize_url"]
