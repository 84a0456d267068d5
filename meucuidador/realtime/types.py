"""
Type definitions for the real-time notification client.

Frames follow the backend's JSON envelope; events are what consumers
receive from the event bus once a frame has been classified.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional

from pydantic import BaseModel, ConfigDict

from .config import FrameKind


class ConnectionState(str, Enum):
    """State of the single notification socket."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    AWAITING_AUTH = "awaiting_auth"
    AUTHENTICATED = "authenticated"


class InboundFrame(BaseModel):
    """
    Server-to-client frame.

    The backend writes the discriminator as ``type``; ``kind`` is the
    canonical name, so both are accepted on input.
    """
    model_config = ConfigDict(extra="ignore")

    kind: str
    data: Optional[Any] = None
    message: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "InboundFrame":
        if "kind" not in data and "type" in data:
            data = {**data, "kind": data["type"]}
        return cls.model_validate(data)


class OutboundFrame(BaseModel):
    """Client-to-server frame. Only the auth frame is sent by the core."""
    kind: str
    token: Optional[str] = None

    @classmethod
    def auth(cls, token: str) -> "OutboundFrame":
        return cls(kind=FrameKind.AUTH, token=token)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return self.model_dump(exclude_none=True)


@dataclass
class SessionCredential:
    """Bearer token plus its decoded (unverified) expiry."""
    token: str
    exp: float  # seconds since epoch

    def is_expired(self, now: Optional[float] = None) -> bool:
        now = time.time() if now is None else now
        return self.exp <= now

    def __repr__(self) -> str:
        return f"SessionCredential(token=<redacted>, exp={self.exp})"


# =============================================================================
# Application events
# =============================================================================

class EventName(str, Enum):
    """Names published on the process-wide event bus."""
    NOTIFICATION_PUSHED = "notification_pushed"
    DOMAIN_CHANGED = "domain_changed"


class ChangeType(str, Enum):
    """Kinds of domain change pushed by the server."""
    MEDICATION_UPDATED = FrameKind.MEDICATION_UPDATED
    MEDICATION_CREATED = FrameKind.MEDICATION_CREATED
    NOTIFICATION_CREATED = FrameKind.NOTIFICATION_CREATED


@dataclass(frozen=True)
class NotificationPushed:
    """A server-side notification was delivered to this session."""
    data: Any = None
    received_at: float = field(default_factory=time.time, compare=False)

    name = EventName.NOTIFICATION_PUSHED


@dataclass(frozen=True)
class DomainChanged:
    """A medication or notification record changed on the server."""
    change_type: ChangeType
    data: Any = None
    received_at: float = field(default_factory=time.time, compare=False)

    name = EventName.DOMAIN_CHANGED


# Callback type definitions
ConnectivityListener = Callable[[bool], None]
EventHandler = Callable[[Any], None]
Unsubscribe = Callable[[], None]
