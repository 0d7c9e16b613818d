"""cachefront -- an offline-first, versioned response cache for web applications.

A *worker* sits between an application and the network.  On install it
pre-warms a version-scoped store from an asset manifest; on activation it
evicts every other version's store and takes control of the connected
clients.  From then on it serves requests cache-first, refreshes hits in
the background, and falls back to the cached application shell (or a
synthetic 503) when the network is gone.

Typical workflow::

    cachefront --config cachefront.yaml install    # warm up and activate
    cachefront fetch https://example.org/admin/    # one request, cache-first
    cachefront clear                               # drop the current store

Modules:
    app: Typer application and CLI entry point.
    models: Pydantic models shared across the entire package.
    config: XDG-aware configuration and worker config resolution.
    manifest: Turns manifest entries into pre-warm requests.
    exceptions: Exception hierarchy with exit-code mapping.
    exit_codes: Numeric exit codes following clig.dev conventions.
    output: stdout/stderr formatting system with Rich support.
"""

__version__ = "0.1.0"
