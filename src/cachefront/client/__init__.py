"""Network access for cachefront.

:class:`Fetcher` is the worker's only path to the network: a thin layer
over :class:`httpx.AsyncClient` with retry, exponential backoff, and
opaque marking of cross-origin ``no-cors`` fetches.

:func:`~cachefront.client.response.format_intercepted_response` renders an
intercepted response for the CLI.
"""

from cachefront.client.fetcher import MODE_EXTENSION, NO_CORS, Fetcher

__all__ = ["Fetcher", "MODE_EXTENSION", "NO_CORS"]
