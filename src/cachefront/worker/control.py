"""Control channel: commands sent to the running worker by its clients.

Messages are mappings with a ``type`` key:

* ``SKIP_WAITING`` -- activate the installed version now; no reply.
* ``CHECK_UPDATE`` -- reply ``{"version": ...}``.
* ``CLEAR_CACHE`` -- delete the current store; reply ``{"success": true}``
  or ``{"success": false, "error": ...}``.
* ``NETWORK_STATUS`` -- relay ``{"type", "online", "timestamp"}`` to every
  other connected client.  Nothing is persisted.

Unknown or malformed messages are ignored: no reply and no side effect.
Command failures are reported in the reply, never raised.
"""

from __future__ import annotations

import time
from typing import Any, Awaitable, Callable, Optional

from pydantic import BaseModel, ValidationError

from cachefront.cache import CacheStorage
from cachefront.exceptions import StoreError
from cachefront.models import (
    ClearCacheReply,
    CommandType,
    ControlMessage,
    NetworkStatusMessage,
    VersionReply,
    WorkerConfig,
)
from cachefront.output import debug, info, warning
from cachefront.worker.clients import Client, ClientRegistry, MessagePort


class ControlChannel:
    """Dispatches control messages to the worker's collaborators.

    Args:
        config: The worker configuration (version tag and store name).
        storage: Storage holding the current store.
        clients: Connected clients, for ``NETWORK_STATUS`` relays.
        skip_waiting: Coroutine function that forces activation.
    """

    def __init__(
        self,
        config: WorkerConfig,
        storage: CacheStorage,
        clients: ClientRegistry,
        skip_waiting: Callable[[], Awaitable[Any]],
    ) -> None:
        self._config = config
        self._storage = storage
        self._clients = clients
        self._skip_waiting = skip_waiting

    async def dispatch(
        self,
        data: Any,
        source: Optional[Client] = None,
        reply_port: Optional[MessagePort] = None,
    ) -> None:
        """Handle one inbound message.

        Args:
            data: The raw message, normally a ``dict``.
            source: The client that sent the message, if known.  It is
                left out of ``NETWORK_STATUS`` relays.
            reply_port: Where replies are posted.
        """
        try:
            message = ControlMessage.model_validate(data)
        except ValidationError:
            debug("Ignoring malformed control message")
            return
        try:
            command = CommandType(message.type)
        except ValueError:
            debug(f"Ignoring unknown control command: {message.type}")
            return

        debug(f"Control command: {command.value}")
        if command is CommandType.SKIP_WAITING:
            info("Skip waiting requested")
            await self._skip_waiting()
        elif command is CommandType.CHECK_UPDATE:
            self._reply(command, reply_port, VersionReply(version=self._config.version))
        elif command is CommandType.CLEAR_CACHE:
            reply = await self.clear_cache()
            self._reply(command, reply_port, reply)
        elif command is CommandType.NETWORK_STATUS:
            if message.online is None:
                debug("Ignoring NETWORK_STATUS without an online flag")
                return
            self.broadcast_network_status(message.online, exclude=source)

    async def clear_cache(self) -> ClearCacheReply:
        """Delete the current version's store. Deleting a missing store succeeds."""
        info("Clearing cache...")
        try:
            await self._storage.delete_store(self._config.store_name)
        except StoreError as exc:
            return ClearCacheReply(success=False, error=str(exc))
        return ClearCacheReply(success=True)

    def broadcast_network_status(self, online: bool, exclude: Optional[Client] = None) -> int:
        """Post a ``NETWORK_STATUS`` message to every connected client but *exclude*.

        Returns:
            The number of clients notified.
        """
        message = NetworkStatusMessage(online=online, timestamp=int(time.time() * 1000))
        payload = message.model_dump()
        notified = 0
        for client in self._clients.match_all():
            if exclude is not None and client.id == exclude.id:
                continue
            client.post_message(payload)
            notified += 1
        return notified

    def _reply(self, command: CommandType, port: Optional[MessagePort], reply: BaseModel) -> None:
        if port is None:
            warning(f"{command.value} needs a reply port; reply dropped")
            return
        port.post_message(reply.model_dump(exclude_none=True))
