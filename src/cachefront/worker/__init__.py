"""The cache worker and its collaborators.

* :class:`Worker` -- lifecycle state machine and event routing.
* :class:`RequestInterceptor` / :class:`InterceptingTransport` --
  cache-first serving with background revalidation.
* :class:`ControlChannel` -- ``SKIP_WAITING``, ``CHECK_UPDATE``,
  ``CLEAR_CACHE``, ``NETWORK_STATUS``.
* :class:`NotificationGateway` -- push payloads and notification clicks.
* :class:`ClientRegistry`, :class:`Client`, :class:`MessagePort` --
  connected windows and their message channels.
"""

from cachefront.worker.clients import Client, ClientRegistry, MessagePort
from cachefront.worker.control import ControlChannel
from cachefront.worker.interceptor import (
    OFFLINE_BODY,
    InterceptingTransport,
    RequestInterceptor,
    offline_response,
)
from cachefront.worker.notifications import NotificationGateway, NotificationSink
from cachefront.worker.sync import BackgroundSync
from cachefront.worker.worker import Worker

__all__ = [
    "BackgroundSync",
    "Client",
    "ClientRegistry",
    "ControlChannel",
    "InterceptingTransport",
    "MessagePort",
    "NotificationGateway",
    "NotificationSink",
    "OFFLINE_BODY",
    "RequestInterceptor",
    "Worker",
    "offline_response",
]
