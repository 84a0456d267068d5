"""
Typed publish/subscribe bus for application events.

The dispatcher publishes here; UI-facing consumers subscribe by event
name and never see socket frames.
"""

import logging
from typing import Dict, List, Union

from .types import DomainChanged, EventHandler, EventName, NotificationPushed, Unsubscribe


logger = logging.getLogger("meucuidador.events")

RealtimeEvent = Union[NotificationPushed, DomainChanged]


class EventBus:
    """
    Fan-out of typed events to decoupled handlers.

    Handlers run synchronously, in subscription order, on the caller's
    thread (the event loop). A handler that raises is logged and skipped.
    """

    def __init__(self):
        self._handlers: Dict[EventName, List[EventHandler]] = {name: [] for name in EventName}

    def subscribe(self, name: Union[EventName, str], handler: EventHandler) -> Unsubscribe:
        """
        Subscribe a handler to one event name.

        Raises:
            ValueError: If ``name`` is not a known event name
        """
        event_name = EventName(name)
        handlers = self._handlers[event_name]
        if handler not in handlers:
            handlers.append(handler)
        return lambda: self.unsubscribe(event_name, handler)

    def unsubscribe(self, name: Union[EventName, str], handler: EventHandler) -> None:
        handlers = self._handlers.get(EventName(name), [])
        if handler in handlers:
            handlers.remove(handler)

    def publish(self, event: RealtimeEvent) -> int:
        """
        Deliver an event to every handler subscribed to its name.

        Returns:
            Number of handlers that completed without raising
        """
        delivered = 0
        for handler in list(self._handlers[event.name]):
            try:
                handler(event)
                delivered += 1
            except Exception as e:
                logger.error(f"Error in '{event.name.value}' handler: {e}", exc_info=True)

        logger.debug(f"Published '{event.name.value}' to {delivered} handler(s)")
        return delivered

    def handler_count(self, name: Union[EventName, str]) -> int:
        return len(self._handlers[EventName(name)])

    def clear(self) -> None:
        for handlers in self._handlers.values():
            handlers.clear()


# =============================================================================
# Process-wide bus
# =============================================================================

_event_bus: EventBus = EventBus()


def get_event_bus() -> EventBus:
    """Return the process-wide event bus."""
    return _event_bus
