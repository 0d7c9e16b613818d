"""Connected clients and the message ports used to talk to them.

A :class:`Client` stands for one application window (a tab, a webview, a
process) that the worker can control.  Messages for it are delivered to
its :class:`MessagePort`.  :class:`ClientRegistry` tracks every connected
client, records which worker version controls each one, and opens or
focuses windows for notification clicks.
"""

from __future__ import annotations

import asyncio
import uuid
from typing import Any, Callable, Optional

from cachefront.output import debug


class MessagePort:
    """One end of a message channel; messages queue until received.

    Used both as a client's inbox and as the reply channel a caller hands
    to :meth:`~cachefront.worker.control.ControlChannel.dispatch`.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue()

    def post_message(self, message: dict[str, Any]) -> None:
        self._queue.put_nowait(message)

    async def receive(self, timeout: Optional[float] = None) -> dict[str, Any]:
        """Wait for the next message.

        Raises:
            asyncio.TimeoutError: If *timeout* elapses first.
        """
        return await asyncio.wait_for(self._queue.get(), timeout)

    def pending(self) -> list[dict[str, Any]]:
        """Return and remove every queued message without waiting."""
        messages = []
        while not self._queue.empty():
            messages.append(self._queue.get_nowait())
        return messages


class Client:
    """An application window connected to the worker.

    Attributes:
        id: Unique client identifier.
        url: The URL the window currently shows.
        controller: Version tag of the worker controlling this client, or
            ``None`` while uncontrolled.
        focused: Whether the window was last brought to the foreground.
        port: Inbox for messages posted to the client.
    """

    def __init__(self, url: str, client_id: Optional[str] = None) -> None:
        self.id = client_id or uuid.uuid4().hex
        self.url = url
        self.controller: Optional[str] = None
        self.focused = False
        self.port = MessagePort()

    def post_message(self, message: dict[str, Any]) -> None:
        self.port.post_message(message)

    def __repr__(self) -> str:
        return f"Client(id={self.id!r}, url={self.url!r}, controller={self.controller!r})"


WindowOpener = Callable[[str], Client]


class ClientRegistry:
    """Every client currently connected to the worker.

    Args:
        window_opener: Called with a URL when a notification click needs a
            new window; must return the new :class:`Client`.  Defaults to
            connecting a fresh client at that URL.
    """

    def __init__(self, window_opener: Optional[WindowOpener] = None) -> None:
        self._clients: dict[str, Client] = {}
        self._window_opener = window_opener

    def __len__(self) -> int:
        return len(self._clients)

    def connect(self, url: str) -> Client:
        client = Client(url)
        self._clients[client.id] = client
        debug(f"Client connected: {client.id} at {url}")
        return client

    def disconnect(self, client: Client) -> None:
        self._clients.pop(client.id, None)

    def get(self, client_id: str) -> Optional[Client]:
        return self._clients.get(client_id)

    def match_all(self, include_uncontrolled: bool = True) -> list[Client]:
        """Return connected clients, optionally only the controlled ones."""
        return [
            c for c in self._clients.values()
            if include_uncontrolled or c.controller is not None
        ]

    def claim(self, version: str) -> int:
        """Make *version* the controller of every connected client.

        Returns:
            The number of clients claimed.
        """
        for client in self._clients.values():
            client.controller = version
        return len(self._clients)

    def open_window(self, url: str) -> Client:
        """Focus the client showing *url*, or open a new window for it."""
        for client in self._clients.values():
            if client.url == url:
                client.focused = True
                return client

        if self._window_opener is not None:
            client = self._window_opener(url)
            self._clients[client.id] = client
        else:
            client = self.connect(url)
        client.focused = True
        return client
