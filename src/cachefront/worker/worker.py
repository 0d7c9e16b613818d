"""The worker: one deployed version of the interception layer.

:class:`Worker` owns the lifecycle state machine and routes every inbound
event to the component that handles it:

==========================  ===============================================
Event                       Handler
==========================  ===============================================
install / activate          :mod:`cachefront.worker.lifecycle`
outgoing request            :class:`~cachefront.worker.interceptor.RequestInterceptor`
control message             :class:`~cachefront.worker.control.ControlChannel`
push / notification click   :class:`~cachefront.worker.notifications.NotificationGateway`
sync                        :class:`~cachefront.worker.sync.BackgroundSync`
connectivity change         :meth:`Worker.set_online`
==========================  ===============================================

Each event handler is a coroutine; the host runs one task per event and
many may be in flight at once.  Nothing is locked: the store's per-key
atomicity and the version tag are the only coordination.
"""

from __future__ import annotations

from typing import Any, Optional

import httpx

from cachefront.cache import CacheStorage
from cachefront.cache.store import SOURCE_EXTENSION
from cachefront.client import Fetcher
from cachefront.exceptions import InvalidUsageError, StoreError
from cachefront.models import (
    ActivationReport,
    Notification,
    WarmUpReport,
    WorkerConfig,
    WorkerState,
)
from cachefront.output import debug, info
from cachefront.worker import lifecycle
from cachefront.worker.clients import Client, ClientRegistry, MessagePort
from cachefront.worker.control import ControlChannel
from cachefront.worker.interceptor import InterceptingTransport, RequestInterceptor
from cachefront.worker.notifications import NotificationGateway, NotificationSink
from cachefront.worker.sync import BackgroundSync


class Worker:
    """A versioned cache worker.

    Args:
        config: Immutable configuration of this version.
        storage: The store collection shared with other versions.
        clients: Connected clients; a fresh registry by default.
        notification_sink: Where push notifications are shown.
        transport: Outbound httpx transport for the fetcher (tests use
            :class:`httpx.MockTransport`).

    Example::

        async with Worker(config, CacheStorage(root)) as worker:
            await worker.start()
            async with httpx.AsyncClient(transport=worker.transport()) as client:
                response = await client.get(config.offline_url)
    """

    def __init__(
        self,
        config: WorkerConfig,
        storage: CacheStorage,
        clients: Optional[ClientRegistry] = None,
        notification_sink: Optional[NotificationSink] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.config = config
        self.storage = storage
        self.clients = clients if clients is not None else ClientRegistry()
        self.fetcher = Fetcher(config, transport=transport)
        self.interceptor = RequestInterceptor(config, storage, self.fetcher)
        self.control = ControlChannel(config, storage, self.clients, self.skip_waiting)
        self.notifications = NotificationGateway(config, self.clients, notification_sink)
        self.background_sync = BackgroundSync(config.sync_tag)
        self._state = WorkerState.PARSED
        self._skip_waiting = False

    # ------------------------------------------------------------------ #
    # Async context manager
    # ------------------------------------------------------------------ #

    async def __aenter__(self) -> Worker:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()

    async def close(self) -> None:
        """Let background revalidations finish, then release the network client."""
        await self.interceptor.drain()
        await self.fetcher.aclose()

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    @property
    def state(self) -> WorkerState:
        return self._state

    @property
    def version(self) -> str:
        return self.config.version

    async def install(self) -> WarmUpReport:
        """Run the warm-up phase.

        Raises:
            StoreError: If the store cannot be opened; the worker becomes
                redundant.
        """
        self._state = WorkerState.INSTALLING
        try:
            report = await lifecycle.install(self.config, self.storage, self.fetcher)
        except StoreError:
            self._state = WorkerState.REDUNDANT
            raise
        self._state = WorkerState.INSTALLED
        if self.config.eager_activation:
            self._skip_waiting = True
        return report

    async def activate(self) -> ActivationReport:
        """Run the activation phase.

        Raises:
            InvalidUsageError: If the worker is not installed.
            StoreError: If a stale store cannot be deleted; the worker
                stays installed and may retry.
        """
        if self._state not in (WorkerState.INSTALLED, WorkerState.ACTIVATED):
            raise InvalidUsageError(f"Cannot activate a worker in state '{self._state.value}'")
        self._state = WorkerState.ACTIVATING
        try:
            report = await lifecycle.activate(self.config, self.storage, self.clients)
        except StoreError:
            self._state = WorkerState.INSTALLED
            raise
        self._state = WorkerState.ACTIVATED
        return report

    async def skip_waiting(self) -> Optional[ActivationReport]:
        """Activate as soon as installation has finished."""
        self._skip_waiting = True
        if self._state is WorkerState.INSTALLED:
            return await self.activate()
        return None

    async def start(
        self, force: bool = False
    ) -> tuple[Optional[WarmUpReport], Optional[ActivationReport]]:
        """Install (once per version tag) and, when allowed, activate.

        The warm-up is skipped when this version's store already exists,
        unless *force* is set.

        Returns:
            ``(warm_up_report, activation_report)``; either may be ``None``
            when the phase did not run.
        """
        warm_up = None
        if force or not await self.storage.has_store(self.config.store_name):
            warm_up = await self.install()
        else:
            debug(f"Store {self.config.store_name} already installed; skipping warm-up")
            self._state = WorkerState.INSTALLED
            if self.config.eager_activation:
                self._skip_waiting = True

        activation = None
        if self._skip_waiting:
            activation = await self.activate()
        return warm_up, activation

    # ------------------------------------------------------------------ #
    # Events
    # ------------------------------------------------------------------ #

    async def fetch(self, request: httpx.Request) -> httpx.Response:
        """Serve an outgoing request.

        Until the worker is activated it controls nothing, so requests go
        straight to the network.
        """
        if self._state is not WorkerState.ACTIVATED:
            response = await self.fetcher.fetch(request)
            response.extensions[SOURCE_EXTENSION] = "bypass"
            return response
        return await self.interceptor.handle(request)

    def transport(self) -> InterceptingTransport:
        """An httpx transport that serves requests the way :meth:`fetch` does."""
        return InterceptingTransport(self.fetch)

    async def message(
        self,
        data: Any,
        source: Optional[Client] = None,
        reply_port: Optional[MessagePort] = None,
    ) -> None:
        await self.control.dispatch(data, source=source, reply_port=reply_port)

    async def push(self, data: Any) -> Optional[Notification]:
        return self.notifications.push(data)

    async def notification_click(
        self, notification: Notification, action: Optional[str] = None
    ) -> Optional[Client]:
        return self.notifications.click(notification, action)

    async def sync(self, tag: str) -> bool:
        return await self.background_sync.handle(tag)

    async def set_online(self, online: bool) -> int:
        """Tell every client that connectivity changed."""
        info(f"Network {'online' if online else 'offline'}")
        return self.control.broadcast_network_status(online)
