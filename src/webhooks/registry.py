"""Named handlers for inbound webhook events.

The HTTP layer verifies the shared secret and hands ``{"event", "data"}``
payloads to :data:`webhook_registry`. Built-in events live in
``src.webhooks.events`` and register themselves on import.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any

logger = logging.getLogger(__name__)

EventHandler = Callable[[dict[str, Any]], Awaitable[None]]


class WebhookRegistry:
    """Event name -> async handler. One handler per event.

    Usage::

        @webhook_registry.handler("message.sent")
        async def on_message(data: dict) -> None:
            ...
    """

    def __init__(self) -> None:
        self._by_event: dict[str, EventHandler] = {}

    def handler(self, event: str) -> Callable[[EventHandler], EventHandler]:
        def register(fn: EventHandler) -> EventHandler:
            if event in self._by_event:
                msg = f"Webhook event already has a handler: {event}"
                raise ValueError(msg)
            self._by_event[event] = fn
            logger.debug("Registered webhook handler for %s", event)
            return fn

        return register

    def get(self, event: str) -> EventHandler | None:
        return self._by_event.get(event)

    @property
    def events(self) -> list[str]:
        return sorted(self._by_event)

    async def dispatch(self, event: str, data: dict[str, Any]) -> bool:
        """Await the handler for *event*; False when nothing handles it.

        Handler errors are not caught here; the HTTP layer reports them.
        """
        fn = self._by_event.get(event)
        if fn is None:
            logger.info("No handler for webhook event %s", event)
            return False
        logger.debug("Dispatching webhook event %s", event)
        await fn(data)
        return True


webhook_registry = WebhookRegistry()
