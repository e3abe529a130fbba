"""
core/events.py -- In-process event hub and telemetry sink.

Events are observability only: nothing in the auth flows depends on a
subscriber running, and a failing subscriber never fails the request that
emitted the event. Handler errors are logged with the traceback.

Event names used by the auth flows:
  admin.auth.success  -- {"user": <sanitized user>, "provider": "local"}
  admin.auth.error    -- {"error": <exception>, "provider": "local"}
  admin.logout        -- {"user": <sanitized user>}

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Callable
from typing import Any

logger = logging.getLogger("cmsadmin.events")

EventHandler = Callable[[str, dict], Any]

AUTH_SUCCESS = "admin.auth.success"
AUTH_ERROR = "admin.auth.error"
LOGOUT = "admin.logout"


class EventHub:
    """Synchronous publish/subscribe hub.

    Usage:
        hub = EventHub()
        hub.subscribe("admin.logout", lambda name, payload: ...)
        hub.emit("admin.logout", {"user": {...}})
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[EventHandler]] = defaultdict(list)

    def subscribe(self, name: str, handler: EventHandler) -> None:
        self._handlers[name].append(handler)

    def emit(self, name: str, payload: dict) -> None:
        logger.info("event %s", name)
        for handler in list(self._handlers.get(name, ())):
            try:
                handler(name, payload)
            except Exception:
                logger.exception("Event handler for %s failed", name)


class Telemetry:
    """Fire-and-forget product telemetry.

    send() never raises. The default implementation only records the event
    name in the log; deployments can pass a transport callable.
    """

    def __init__(self, transport: Callable[[str], Any] | None = None, enabled: bool = True) -> None:
        self._transport = transport
        self.enabled = enabled

    def send(self, event: str) -> None:
        if not self.enabled:
            return
        logger.info("telemetry %s", event)
        if self._transport is None:
            return
        try:
            self._transport(event)
        except Exception:
            logger.warning("Telemetry event %s could not be sent", event, exc_info=True)
