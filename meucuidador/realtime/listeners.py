"""
Connectivity listener registry.

Holds the callbacks interested in "is the notification socket usable?".
Entries are added and removed explicitly; the registry keeps strong
references and never drops a callback on its own.
"""

import logging
from typing import Callable, List

from .types import ConnectivityListener, Unsubscribe


logger = logging.getLogger("meucuidador.connection")


class ListenerRegistry:
    """
    Ordered set of connectivity callbacks.

    Key behaviors:
    - A new listener is called immediately with the current state
    - Adding the same callback twice keeps a single entry
    - Removing an unknown callback is a no-op
    - A failing callback is logged and does not stop the fan-out
    """

    def __init__(self, is_connected: Callable[[], bool]):
        """
        Args:
            is_connected: Reads the current connectivity from the owner
        """
        self._is_connected = is_connected
        self._listeners: List[ConnectivityListener] = []

    def add(self, callback: ConnectivityListener) -> Unsubscribe:
        """
        Register a callback and deliver the current state to it.

        Returns:
            Function that removes the callback again
        """
        if callback not in self._listeners:
            self._listeners.append(callback)
        self._invoke(callback, self._is_connected())
        return lambda: self.remove(callback)

    def remove(self, callback: ConnectivityListener) -> None:
        try:
            self._listeners.remove(callback)
        except ValueError:
            pass

    def notify(self, connected: bool) -> None:
        """Call every registered listener with ``connected``."""
        # Snapshot: listeners may unsubscribe from inside their callback
        for callback in list(self._listeners):
            self._invoke(callback, connected)

    def clear(self) -> None:
        self._listeners.clear()

    def __len__(self) -> int:
        return len(self._listeners)

    def __contains__(self, callback: object) -> bool:
        return callback in self._listeners

    @staticmethod
    def _invoke(callback: ConnectivityListener, connected: bool) -> None:
        try:
            callback(connected)
        except Exception as e:
            logger.error(f"Error in connectivity listener: {e}", exc_info=True)
