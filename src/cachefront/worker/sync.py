"""Background sync hook.

When connectivity returns, the host fires a sync event with a tag.  Only
the configured tag (``sync-data`` by default) runs the registered
handlers; other tags are ignored.
"""

from __future__ import annotations

from typing import Awaitable, Callable

from cachefront.output import debug, info

SyncHandler = Callable[[], Awaitable[None]]


async def sync_pending_data() -> None:
    """Default handler. Applications register their own to push queued writes."""
    info("Synchronising pending data...")


class BackgroundSync:
    """Runs sync handlers for one tag, in registration order."""

    def __init__(self, tag: str) -> None:
        self._tag = tag
        self._handlers: list[SyncHandler] = [sync_pending_data]

    @property
    def tag(self) -> str:
        return self._tag

    def register(self, handler: SyncHandler) -> None:
        self._handlers.append(handler)

    async def handle(self, tag: str) -> bool:
        """Run the handlers if *tag* matches. Returns whether they ran."""
        debug(f"Sync event: {tag}")
        if tag != self._tag:
            return False
        for handler in self._handlers:
            await handler()
        return True
