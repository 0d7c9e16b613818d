"""Worker commands -- drive one worker version from the command line.

Every command resolves the worker configuration (``--config``,
``CACHEFRONT_CONFIG`` or ``./cachefront.{json,yaml,yml}``), opens the
store collection under the configured storage directory, and runs a
:class:`~cachefront.worker.Worker` for the duration of the command.

* ``install`` -- warm up the current version's store and activate it.
* ``stores`` -- list every store on disk with its entry count.
* ``fetch`` -- send one GET through the interceptor.
* ``clear`` -- ``CLEAR_CACHE`` through the control channel.
* ``version`` -- ``CHECK_UPDATE`` through the control channel.
* ``push`` -- deliver a push payload to the notification gateway.

A :class:`~cachefront.exceptions.CachefrontError` raised while a command
runs is reported on stderr and turned into the error's exit code.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Optional, TypeVar

import httpx
import typer

from cachefront.exceptions import CachefrontError, ConfigError, PayloadError, StoreError
from cachefront.exit_codes import EXIT_CONNECTION_ERROR
from cachefront.output import debug, error, format_response, info, print_table, success, warning

if TYPE_CHECKING:
    from cachefront.models import CommandType
    from cachefront.worker import Worker

T = TypeVar("T")


def _transport(ctx: typer.Context) -> Optional[httpx.AsyncBaseTransport]:
    """Outbound transport from ``ctx.obj["transport"]``; ``None`` means a real connection.

    Programs that embed the CLI pass one with ``app(obj={"transport": ...})``.
    """
    return ctx.obj.get("transport") if ctx.obj else None


def _config_path(ctx: typer.Context) -> Optional[str]:
    return ctx.obj.get("config_path") if ctx.obj else None


def _run(ctx: typer.Context, body: Callable[[Worker], Awaitable[T]]) -> T:
    """Run *body* against a freshly constructed worker and return its result.

    Raises:
        typer.Exit: With the error's exit code on any cachefront error.
    """
    from cachefront.cache import CacheStorage
    from cachefront.config import get_storage_dir, load_global_config, resolve_worker_config
    from cachefront.worker import Worker

    async def _main() -> T:
        config = resolve_worker_config(_config_path(ctx))
        storage = CacheStorage(get_storage_dir(load_global_config()), config.vary_headers)
        try:
            async with Worker(config, storage, transport=_transport(ctx)) as worker:
                return await body(worker)
        finally:
            storage.close()

    try:
        return asyncio.run(_main())
    except CachefrontError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None


def install_command(
    ctx: typer.Context,
    force: bool = typer.Option(
        False, "--force", "-f", help="Warm up again even if this version is installed."
    ),
) -> None:
    """Install the configured version and activate it.

    Pre-warms the store from the manifest, then evicts every other
    version's store.  Assets that fail to download are reported but do not
    fail the install.

    Example::

        cachefront --config cachefront.yaml install
        cachefront install --force
    """
    force = force or bool(ctx.obj and ctx.obj.get("force"))

    async def _install(worker: Worker) -> Any:
        return await worker.start(force=force)

    warm_up, activation = _run(ctx, _install)

    if warm_up is None:
        info("Store already installed; pass --force to warm up again.")
    else:
        rows = [
            [
                result.url,
                "ok" if result.ok else "failed",
                str(result.status_code or "-"),
                "yes" if result.opaque else "no",
                result.error or "",
            ]
            for result in warm_up.results
        ]
        print_table(["URL", "Result", "Status", "Opaque", "Error"], rows, title=warm_up.store_name)
        if warm_up.failed_count:
            warning(f"{warm_up.failed_count} asset(s) could not be cached")

    if activation is None:
        info("Installed; waiting for SKIP_WAITING before activating.")
        return
    for name in activation.evicted:
        debug(f"Evicted {name}")
    success(
        f"Activated {activation.store_name} "
        f"({len(activation.evicted)} stale store(s) removed)"
    )


def stores_command(ctx: typer.Context) -> None:
    """List every cache store on disk.

    The store owned by the configured version, when a worker config can be
    resolved, is marked as current.

    Example::

        cachefront stores
        cachefront --json stores
    """
    from cachefront.cache import CacheStorage
    from cachefront.config import get_storage_dir, load_global_config, resolve_worker_config

    try:
        current: Optional[str] = resolve_worker_config(_config_path(ctx)).store_name
    except ConfigError as exc:
        debug(f"No current store: {exc}")
        current = None

    async def _list() -> list[list[str]]:
        storage = CacheStorage(get_storage_dir(load_global_config()))
        try:
            rows = []
            for name in sorted(await storage.list_stores()):
                store = await storage.open(name)
                count = await store.count()
                rows.append([name, str(count), "*" if name == current else ""])
            return rows
        finally:
            storage.close()

    try:
        rows = asyncio.run(_list())
    except CachefrontError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    if not rows:
        info("No stores.")
        return
    print_table(["Store", "Entries", "Current"], rows, title="Stores")


def fetch_command(
    ctx: typer.Context,
    url: str = typer.Argument(help="Absolute URL to request."),
    accept: Optional[str] = typer.Option(
        None, "--accept", "-a", help="Accept header, e.g. 'text/html'."
    ),
) -> None:
    """Request URL through the cache-first interceptor.

    The worker is installed and activated first if needed.  The response
    source (cache, network, fallback, offline or bypass) is printed to
    stderr and the body to stdout.  Background revalidation finishes before
    the command exits.  Exits with code 6 when only the synthetic offline
    response could be served.

    Example::

        cachefront fetch https://example.org/admin/
        cachefront fetch https://example.org/admin/missing --accept text/html
    """
    from cachefront.cache.store import SOURCE_EXTENSION
    from cachefront.client.response import format_intercepted_response

    headers = {"Accept": accept} if accept else {}

    async def _fetch(worker: Worker) -> httpx.Response:
        await worker.start()
        return await worker.fetch(httpx.Request("GET", url, headers=headers))

    response = _run(ctx, _fetch)
    format_intercepted_response(response)
    if response.extensions.get(SOURCE_EXTENSION) == "offline":
        raise typer.Exit(code=EXIT_CONNECTION_ERROR)


def clear_command(ctx: typer.Context) -> None:
    """Delete the configured version's store.

    Clearing a store that does not exist succeeds.

    Example::

        cachefront clear
    """
    from cachefront.models import CommandType

    reply = _run(ctx, lambda worker: _command(worker, CommandType.CLEAR_CACHE))
    format_response(reply)
    if not reply.get("success"):
        error(f"Could not clear cache: {reply.get('error')}")
        raise typer.Exit(code=StoreError.exit_code)
    success("Cache cleared.")


def version_command(ctx: typer.Context) -> None:
    """Print the configured worker version.

    Example::

        cachefront version
        CACHEFRONT_VERSION=1.2.0 cachefront version
    """
    from cachefront.models import CommandType

    reply = _run(ctx, lambda worker: _command(worker, CommandType.CHECK_UPDATE))
    format_response(reply)


def push_command(
    ctx: typer.Context,
    payload: str = typer.Argument(help='JSON payload, e.g. \'{"title": "Hi", "url": "/"}\'.'),
) -> None:
    """Deliver a push payload and show the resulting notification.

    Example::

        cachefront push '{"title": "Update", "body": "New data", "url": "reports"}'
    """

    async def _push(worker: Worker) -> Any:
        notification = await worker.push(payload)
        if notification is None:
            raise PayloadError("Push payload was dropped")
        return notification

    notification = _run(ctx, _push)
    format_response(notification.model_dump(mode="json"))


async def _command(worker: Worker, command: CommandType) -> dict[str, Any]:
    """Send one control command to *worker* and wait for its reply."""
    from cachefront.worker import MessagePort

    port = MessagePort()
    await worker.message({"type": command.value}, reply_port=port)
    return await port.receive(timeout=5.0)
