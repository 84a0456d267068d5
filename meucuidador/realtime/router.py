"""
Message Dispatcher for inbound notification frames.

Handles:
- Frame parsing and validation
- Classification by ``kind``
- Republishing as typed application events on the event bus

Handshake frames (``auth_success``/``auth_error``) never reach the
dispatcher: the connection manager consumes them itself.
"""

import json
import logging
from typing import Optional, Set

from pydantic import ValidationError

from .config import FrameKind
from .events import EventBus, RealtimeEvent, get_event_bus
from .exceptions import FrameDecodeError
from .types import ChangeType, DomainChanged, InboundFrame, NotificationPushed


logger = logging.getLogger("meucuidador.router")


def parse_frame(raw_data: str | bytes) -> InboundFrame:
    """
    Parse a raw socket message into an InboundFrame.

    Args:
        raw_data: Text or binary message as received

    Raises:
        FrameDecodeError: If the message is not a JSON object with a string ``kind``
    """
    try:
        text = raw_data if isinstance(raw_data, str) else raw_data.decode("utf-8")
        data = json.loads(text)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise FrameDecodeError(f"Invalid JSON: {e}") from e

    if not isinstance(data, dict):
        raise FrameDecodeError(f"Expected a JSON object, got {type(data).__name__}")

    try:
        return InboundFrame.from_dict(data)
    except ValidationError as e:
        raise FrameDecodeError(f"Invalid frame envelope: {e.errors()}") from e


class MessageDispatcher:
    """
    Classifies authenticated frames and republishes them as events.

    Responsibilities:
    - ``enterprise_notification`` -> ``notification_pushed`` with ``data``
    - ``medication_updated`` / ``medication_created`` / ``notification_created``
      -> ``domain_changed`` with the change type and ``data``
    - Anything else is dropped with a diagnostic log
    """

    # Kinds handled by the connection manager (not forwarded)
    HANDSHAKE_KINDS: Set[str] = {FrameKind.AUTH_SUCCESS, FrameKind.AUTH_ERROR}

    DOMAIN_KINDS: Set[str] = {change.value for change in ChangeType}

    def __init__(self, bus: Optional[EventBus] = None):
        """
        Initialize the dispatcher.

        Args:
            bus: Event bus to publish on (defaults to the process-wide bus)
        """
        self.bus = bus or get_event_bus()
        self.dispatched_count = 0
        self.dropped_count = 0

    def classify(self, frame: InboundFrame) -> Optional[RealtimeEvent]:
        """Map a frame to its application event, or None for unknown kinds."""
        if frame.kind == FrameKind.ENTERPRISE_NOTIFICATION:
            return NotificationPushed(data=frame.data)

        if frame.kind in self.DOMAIN_KINDS:
            return DomainChanged(change_type=ChangeType(frame.kind), data=frame.data)

        return None

    def dispatch(self, frame: InboundFrame) -> bool:
        """
        Republish one frame.

        Returns:
            True if an event was published, False if the frame was dropped
        """
        event = self.classify(frame)
        if event is None:
            self.dropped_count += 1
            logger.debug(f"Dropping frame of unknown kind '{frame.kind}'")
            return False

        logger.info(f"Received '{frame.kind}' -> {event.name.value}")
        self.bus.publish(event)
        self.dispatched_count += 1
        return True

    def handle_raw(self, raw_data: str | bytes) -> bool:
        """
        Parse and dispatch one raw message; never raises.

        Returns:
            True if an event was published
        """
        try:
            frame = parse_frame(raw_data)
        except FrameDecodeError as e:
            self.dropped_count += 1
            logger.warning(f"Malformed frame dropped: {e}")
            return False
        return self.dispatch(frame)
