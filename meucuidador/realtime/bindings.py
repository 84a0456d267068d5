"""
Consumer-side bindings for the notification socket.

``RealtimeBinding`` follows navigation and login state and drives the
manager through the eligibility gate. ``NotificationFeed`` turns pushed
events into cache invalidations for the REST-backed screens.
"""

import logging
from typing import Any, Callable, List, Optional

from .connection import ConnectionManager
from .events import EventBus
from .gate import describe_ineligibility, is_eligible
from .types import ChangeType, DomainChanged, EventName, NotificationPushed, Unsubscribe


logger = logging.getLogger("meucuidador.bindings")


# Query-cache keys refreshed when events arrive
NOTIFICATIONS_KEY = "/api/notifications"
MEDICATIONS_KEY = "/api/medications"
MEDICATION_LOGS_KEY = "/api/medication-logs"


class RealtimeBinding:
    """
    Keeps the manager in step with the current route and user.

    Every route or user change re-evaluates the gate and calls
    ``connect(eligible)``; the manager does the rest.

    Usage:
        binding = RealtimeBinding(manager, route="/home", user={"id": 3})
        binding.start()
        binding.set_route("/login")   # disconnects
    """

    def __init__(
        self,
        manager: ConnectionManager,
        route: Optional[str] = None,
        user: Any = None,
        on_change: Optional[Callable[[bool], None]] = None,
    ):
        self.manager = manager
        self.route = route
        self.user = user
        self._on_change = on_change
        self._unsubscribe: Optional[Unsubscribe] = None
        self.is_connected = False

    @property
    def eligible(self) -> bool:
        return is_eligible(self.route, self.user)

    @property
    def reconnect_attempts(self) -> int:
        return self.manager.reconnect_attempts

    @property
    def max_reconnect_attempts(self) -> int:
        return self.manager.max_reconnect_attempts

    def start(self) -> None:
        """Subscribe to connectivity and apply the current route/user."""
        if self._unsubscribe is None:
            self._unsubscribe = self.manager.subscribe(self._handle_connectivity)
            self.manager.set_eligibility_check(lambda: self.eligible)
        self.refresh()

    def close(self) -> None:
        """Stop following connectivity and drop the installed eligibility check.

        The connection itself is left alone.
        """
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self.manager.set_eligibility_check(None)

    def set_route(self, route: Optional[str]) -> None:
        self.route = route
        self.refresh()

    def set_user(self, user: Any) -> None:
        self.user = user
        self.refresh()

    def refresh(self) -> None:
        """Re-evaluate the gate and connect or disconnect accordingly."""
        reason = describe_ineligibility(self.route, self.user)
        if reason is None:
            logger.debug(f"Eligible on {self.route}, connecting")
        else:
            logger.debug(f"Not eligible ({reason}), disconnecting")
        self.manager.connect(reason is None)

    def _handle_connectivity(self, connected: bool) -> None:
        self.is_connected = connected
        if self._on_change is not None:
            self._on_change(connected)


class NotificationFeed:
    """
    Subscribes to pushed events and invalidates the matching cache keys.

    Keeps the most recent pushed notification in ``last_notification``.
    """

    def __init__(self, bus: EventBus, invalidate: Callable[[str], None]):
        """
        Args:
            bus: Event bus the dispatcher publishes on
            invalidate: Called once per cache key to refresh
        """
        self.bus = bus
        self._invalidate = invalidate
        self._unsubscribers: List[Unsubscribe] = []
        self.last_notification: Any = None

    def start(self) -> None:
        if self._unsubscribers:
            return
        self._unsubscribers = [
            self.bus.subscribe(EventName.NOTIFICATION_PUSHED, self._on_notification),
            self.bus.subscribe(EventName.DOMAIN_CHANGED, self._on_domain_change),
        ]

    def close(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []

    def _on_notification(self, event: NotificationPushed) -> None:
        logger.info("New notification pushed")
        self.last_notification = event.data
        self._refresh(NOTIFICATIONS_KEY, MEDICATION_LOGS_KEY)

    def _on_domain_change(self, event: DomainChanged) -> None:
        if event.change_type == ChangeType.NOTIFICATION_CREATED:
            self._refresh(NOTIFICATIONS_KEY)
        else:
            self._refresh(MEDICATIONS_KEY, MEDICATION_LOGS_KEY)

    def _refresh(self, *keys: str) -> None:
        for key in keys:
            try:
                self._invalidate(key)
            except Exception as e:
                logger.error(f"Failed to invalidate {key}: {e}", exc_info=True)
