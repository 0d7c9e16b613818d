"""Response formatting bridge -- maps an intercepted :class:`httpx.Response` to the output system.

After ``cachefront fetch`` sends a request through the interceptor,
:func:`format_intercepted_response` writes the status line and the
response's origin (``cache``, ``network``, ``fallback``, ``offline`` or
``bypass``) to stderr and routes the body to stdout through
:meth:`~cachefront.output.OutputManager.format_response`.
"""

from __future__ import annotations

from typing import Any

import httpx

from cachefront.cache.store import SOURCE_EXTENSION
from cachefront.output import get_output


def format_intercepted_response(response: httpx.Response) -> None:
    """Format and print an intercepted response using the global output system.

    Args:
        response: The :class:`httpx.Response` returned by the interceptor.
    """
    output = get_output()

    source = response.extensions.get(SOURCE_EXTENSION, "unknown")
    output.info(f"HTTP {response.status_code} {response.reason_phrase or ''} (source: {source})")

    content_type = response.headers.get("content-type", "text/plain")
    data = extract_response_data(response)
    if data is not None:
        output.format_response(data, content_type)


def extract_response_data(response: httpx.Response) -> Any:
    """Extract the body from an HTTP response.

    JSON bodies are decoded, textual bodies are returned as text, and
    binary bodies are summarised rather than dumped to the terminal.
    Returns ``None`` for responses with no content.
    """
    if not response.content:
        return None

    content_type = response.headers.get("content-type", "")
    if "json" in content_type:
        try:
            return response.json()
        except ValueError:
            pass

    if content_type.startswith("text/") or "xml" in content_type or "javascript" in content_type:
        return response.text

    try:
        return response.content.decode("utf-8")
    except UnicodeDecodeError:
        return f"<{len(response.content)} bytes of {content_type or 'binary data'}>"
