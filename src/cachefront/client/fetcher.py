"""Asynchronous network fetcher used by the worker.

:class:`Fetcher` wraps :class:`httpx.AsyncClient` and is the only place
cachefront touches the network.  It adds two things on top of httpx:

* **Retry with exponential backoff** on connection and timeout errors,
  up to ``RequestConfig.max_retries`` extra attempts.  Network failures
  that survive the retries are raised as
  :class:`~cachefront.exceptions.FetchError`.
* **Opaque marking** -- a ``no-cors`` fetch of a URL outside the
  application scope's origin returns a response tagged with
  ``extensions["cachefront_opaque"]``.  The interceptor never caches such
  responses; the install phase caches them as black boxes.

HTTP error statuses are *not* exceptions here: the caller decides what a
404 or 500 means.
"""

from __future__ import annotations

import asyncio
from typing import Optional

import httpx

from cachefront.cache.store import OPAQUE_EXTENSION, SOURCE_EXTENSION
from cachefront.exceptions import FetchError
from cachefront.models import WorkerConfig, origin_of
from cachefront.output import debug

NO_CORS = "no-cors"
MODE_EXTENSION = "cachefront_mode"


class Fetcher:
    """Network fetcher for the worker's origin and third-party assets.

    Args:
        config: The worker configuration (scope origin and request
            settings).
        transport: Optional httpx transport for the outbound connection;
            tests pass an :class:`httpx.MockTransport`.

    Example::

        async with Fetcher(config) as fetcher:
            response = await fetcher.fetch(httpx.Request("GET", url))
    """

    def __init__(
        self,
        config: WorkerConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._config = config
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    # ------------------------------------------------------------------ #
    # Async context manager
    # ------------------------------------------------------------------ #

    async def __aenter__(self) -> Fetcher:
        self._ensure_client()
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #

    async def fetch(self, request: httpx.Request, mode: Optional[str] = None) -> httpx.Response:
        """Send *request* over the network and return the fully read response.

        Args:
            request: The request to send.
            mode: ``"no-cors"`` to fetch a cross-origin asset opaquely.
                Defaults to ``request.extensions["cachefront_mode"]``.

        Returns:
            The :class:`httpx.Response`, tagged as ``network``.

        Raises:
            FetchError: On network / timeout errors after all retries.
        """
        mode = mode or request.extensions.get(MODE_EXTENSION)
        response = await self._send_with_retry(request)
        response.extensions[SOURCE_EXTENSION] = "network"
        if mode == NO_CORS and origin_of(str(request.url)) != self._config.scope_origin:
            response.extensions[OPAQUE_EXTENSION] = True
        return response

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            settings = self._config.request
            self._client = httpx.AsyncClient(
                timeout=settings.timeout,
                verify=settings.verify_ssl,
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    async def _send_with_retry(self, request: httpx.Request) -> httpx.Response:
        """Send with exponential-backoff retry on connection errors.

        The delay doubles each attempt: 1 s, 2 s, 4 s, ...
        """
        client = self._ensure_client()
        max_retries = self._config.request.max_retries
        # Requests built outside this client carry no timeout of their own.
        request.extensions.setdefault("timeout", client.timeout.as_dict())

        for attempt in range(max_retries + 1):
            try:
                return await client.send(request)
            except (httpx.ConnectError, httpx.TimeoutException, httpx.NetworkError) as exc:
                if attempt < max_retries:
                    delay = 2 ** attempt
                    debug(
                        f"Connection error: {exc}, retrying in {delay}s "
                        f"(attempt {attempt + 1}/{max_retries})"
                    )
                    await asyncio.sleep(delay)
                    continue
                raise FetchError(
                    f"Fetch of {request.url} failed after {max_retries + 1} attempts: {exc}"
                ) from exc
            except httpx.HTTPError as exc:
                raise FetchError(f"Fetch of {request.url} failed: {exc}") from exc

        raise FetchError(f"Fetch of {request.url} failed")  # pragma: no cover
