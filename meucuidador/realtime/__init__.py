"""
MeuCuidador Real-time Notification Client

Keeps one authenticated WebSocket to the backend per process and fans
pushed medication/appointment/test events out to interested consumers.

Features:
- Single shared connection with a duplicate-socket guard
- Bearer-token handshake with timeout
- Capped exponential backoff after abnormal closes
- Connectivity listeners with immediate delivery of the current state
- Typed event bus for pushed notifications and domain changes
- Eligibility gate for public routes and anonymous viewers

Usage:
    from meucuidador.realtime import get_connection_manager, get_event_bus, EventName, is_eligible

    manager = get_connection_manager()
    get_event_bus().subscribe(EventName.NOTIFICATION_PUSHED, print)
    unsubscribe = manager.subscribe(lambda connected: print("connected:", connected))
    manager.connect(is_eligible("/home", {"id": 3}))
"""

# Type definitions
from .types import (
    ConnectionState,
    InboundFrame,
    OutboundFrame,
    SessionCredential,
    EventName,
    ChangeType,
    NotificationPushed,
    DomainChanged,
    ConnectivityListener,
)

# Configuration
from .config import (
    Config,
    ServerConfig,
    ViewerConfig,
    ConnectionConfig,
    ReconnectConfig,
    LogConfig,
    CloseCode,
    FrameKind,
    setup_logging,
)

# Errors
from .exceptions import (
    RealtimeError,
    InvalidCredentialError,
    CredentialExpiredError,
    FrameDecodeError,
)

# Credentials
from .credentials import (
    TokenSource,
    StaticTokenSource,
    EnvTokenSource,
    decode_credential,
    load_credential,
)

# Eligibility gate
from .gate import (
    PUBLIC_ROUTES,
    is_eligible,
    is_public_route,
)

# Reconnection policy
from .backoff import (
    ReconnectPolicy,
    ReconnectDecision,
)

# Event bus and dispatch
from .events import (
    EventBus,
    get_event_bus,
)
from .router import (
    MessageDispatcher,
    parse_frame,
)
from .listeners import ListenerRegistry

# Transport utilities
from .transport import (
    build_ws_url,
    serialize_frame,
    make_connector,
)

# Connection manager
from .connection import (
    ConnectionManager,
    ConnectionGuard,
    get_connection_manager,
    reset_connection_manager,
)

# Consumer bindings
from .bindings import (
    RealtimeBinding,
    NotificationFeed,
)

__all__ = [
    # Types
    "ConnectionState",
    "InboundFrame",
    "OutboundFrame",
    "SessionCredential",
    "EventName",
    "ChangeType",
    "NotificationPushed",
    "DomainChanged",
    "ConnectivityListener",

    # Configuration
    "Config",
    "ServerConfig",
    "ViewerConfig",
    "ConnectionConfig",
    "ReconnectConfig",
    "LogConfig",
    "CloseCode",
    "FrameKind",
    "setup_logging",

    # Errors
    "RealtimeError",
    "InvalidCredentialError",
    "CredentialExpiredError",
    "FrameDecodeError",

    # Credentials
    "TokenSource",
    "StaticTokenSource",
    "EnvTokenSource",
    "decode_credential",
    "load_credential",

    # Gate
    "PUBLIC_ROUTES",
    "is_eligible",
    "is_public_route",

    # Reconnection
    "ReconnectPolicy",
    "ReconnectDecision",

    # Events
    "EventBus",
    "get_event_bus",
    "MessageDispatcher",
    "parse_frame",
    "ListenerRegistry",

    # Transport
    "build_ws_url",
    "serialize_frame",
    "make_connector",

    # Manager
    "ConnectionManager",
    "ConnectionGuard",
    "get_connection_manager",
    "reset_connection_manager",

    # Bindings
    "RealtimeBinding",
    "NotificationFeed",
]

__version__ = "1.0.0"
