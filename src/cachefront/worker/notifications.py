"""Push notifications: render inbound payloads and route clicks.

The gateway holds no state and never touches the cache.  A payload is a
JSON object ``{"title"?, "body"?, "url"?}``; missing fields fall back to
the configured defaults, while anything that is not such an object is
dropped with a warning.

Notifications are handed to a :class:`NotificationSink`.  The default
:class:`ConsoleNotificationSink` prints them through the output manager.
"""

from __future__ import annotations

import json
import time
from typing import Any, Optional, Protocol
from urllib.parse import urljoin

from pydantic import ValidationError

from cachefront.exceptions import PayloadError
from cachefront.models import (
    Notification,
    NotificationAction,
    NotificationData,
    PushPayload,
    WorkerConfig,
)
from cachefront.output import debug, info, warning
from cachefront.worker.clients import Client, ClientRegistry

OPEN_ACTION = "open"
CLOSE_ACTION = "close"


class NotificationSink(Protocol):
    """Where rendered notifications are displayed."""

    def show(self, notification: Notification) -> None: ...

    def close(self, notification: Notification) -> None: ...


class ConsoleNotificationSink:
    """Shows notifications as lines on stderr."""

    def show(self, notification: Notification) -> None:
        info(f"Notification: {notification.title} - {notification.body}")

    def close(self, notification: Notification) -> None:
        debug(f"Notification closed: {notification.tag}")


def parse_payload(data: Any) -> PushPayload:
    """Decode a push payload from bytes, text, or a mapping.

    Raises:
        PayloadError: If the payload is not a JSON object with string fields.
    """
    if isinstance(data, (bytes, bytearray)):
        try:
            data = data.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise PayloadError(f"Payload is not UTF-8: {exc}") from exc
    if isinstance(data, str):
        try:
            data = json.loads(data)
        except json.JSONDecodeError as exc:
            raise PayloadError(f"Payload is not JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise PayloadError(f"Payload must be a JSON object, got {type(data).__name__}")
    try:
        return PushPayload.model_validate(data)
    except ValidationError as exc:
        raise PayloadError(f"Invalid payload fields: {exc}") from exc


class NotificationGateway:
    """Turns push payloads into notifications and clicks into windows.

    Args:
        config: The worker configuration (scope and notification defaults).
        clients: Connected clients, used to focus or open windows.
        sink: Where notifications are shown.
    """

    def __init__(
        self,
        config: WorkerConfig,
        clients: ClientRegistry,
        sink: Optional[NotificationSink] = None,
    ) -> None:
        self._config = config
        self._clients = clients
        self._sink = sink or ConsoleNotificationSink()

    def render(self, payload: PushPayload) -> Notification:
        defaults = self._config.notifications
        icon = urljoin(self._config.scope, defaults.icon) if defaults.icon else None
        url = urljoin(self._config.scope, payload.url) if payload.url else self._config.scope
        return Notification(
            title=payload.title or defaults.title,
            body=payload.body or defaults.default_body,
            icon=icon,
            badge=icon,
            vibrate=defaults.vibrate,
            data=NotificationData(url=url, timestamp=int(time.time() * 1000)),
            actions=(
                NotificationAction(action=OPEN_ACTION, title="Open"),
                NotificationAction(action=CLOSE_ACTION, title="Close"),
            ),
        )

    def push(self, data: Any) -> Optional[Notification]:
        """Show a notification for an inbound push.

        Returns:
            The shown notification, or ``None`` if the push carried no data
            or a malformed payload.
        """
        if data is None or data == b"" or data == "":
            debug("Push event without data; nothing to show")
            return None
        try:
            payload = parse_payload(data)
        except PayloadError as exc:
            warning(f"Dropping malformed push payload: {exc}")
            return None
        notification = self.render(payload)
        self._sink.show(notification)
        return notification

    def click(self, notification: Notification, action: Optional[str] = None) -> Optional[Client]:
        """Handle a click on *notification*.

        The notification is always closed.  A click on its body or on the
        ``open`` action focuses the window showing ``data.url``, or opens one.

        Returns:
            The focused or opened client, or ``None`` for the ``close`` action.
        """
        self._sink.close(notification)
        if action not in (None, "", OPEN_ACTION):
            return None
        return self._clients.open_window(notification.data.url or self._config.scope)
