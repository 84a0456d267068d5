"""
Configuration and logging setup for the MeuCuidador real-time client.

Provides centralized configuration with environment variable support
and sensible defaults for the notification socket, its reconnection
policy and the component loggers.
"""

import os
import sys
import logging
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv

# Load environment variables
load_dotenv()


# =============================================================================
# Logging Configuration
# =============================================================================

class LogColors:
    """ANSI escapes used by the console formatter."""
    RESET = "\033[0m"
    DIM = "\033[2m"
    BOLD_RED = "\033[1;91m"

    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    BLUE = "\033[34m"
    MAGENTA = "\033[35m"
    CYAN = "\033[36m"
    GREY = "\033[90m"


class ColoredFormatter(logging.Formatter):
    """
    One line per record: time, level, component, message.

    Components are the children of the ``meucuidador`` logger; deeper
    loggers take the color of their nearest listed ancestor.
    """

    COMPONENT_COLORS = {
        "meucuidador": LogColors.CYAN,
        "meucuidador.connection": LogColors.MAGENTA,
        "meucuidador.router": LogColors.CYAN,
        "meucuidador.events": LogColors.BLUE,
        "meucuidador.gate": LogColors.YELLOW,
        "meucuidador.transport": LogColors.GREY,
        "meucuidador.bindings": LogColors.GREEN,
        "meucuidador.api": LogColors.BLUE,
    }

    LEVELS = {
        logging.DEBUG: ("DBG", LogColors.GREY),
        logging.INFO: ("INF", LogColors.GREEN),
        logging.WARNING: ("WRN", LogColors.YELLOW),
        logging.ERROR: ("ERR", LogColors.RED),
        logging.CRITICAL: ("CRT", LogColors.BOLD_RED),
    }

    def __init__(self, use_colors: bool = True):
        super().__init__(datefmt="%H:%M:%S")
        self.use_colors = use_colors and sys.stdout.isatty()

    def _component(self, name: str) -> tuple:
        owner = name
        while owner and owner not in self.COMPONENT_COLORS:
            owner = owner.rpartition(".")[0]
        label = "client" if name == "meucuidador" else name.split(".", 1)[-1]
        return label.upper(), self.COMPONENT_COLORS.get(owner, "")

    def format(self, record: logging.LogRecord) -> str:
        label, component_color = self._component(record.name)
        level, level_color = self.LEVELS.get(record.levelno, (record.levelname[:3], ""))
        parts = [self.formatTime(record, self.datefmt), level, f"{label:10}", record.getMessage()]

        if self.use_colors:
            parts[0] = f"{LogColors.DIM}{parts[0]}{LogColors.RESET}"
            parts[1] = f"{level_color}{level}{LogColors.RESET}"
            parts[2] = f"{component_color}{parts[2]}{LogColors.RESET}"

        line = " ".join(parts)
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


COMPONENT_LOGGERS = ["connection", "router", "events", "gate", "transport", "bindings", "api"]


class _ConsoleHandler(logging.StreamHandler):
    """Console handler installed by ``setup_logging``."""


def setup_logging(
    level: int = logging.INFO,
    use_colors: bool = True
) -> logging.Logger:
    """
    Configure and return the ``meucuidador`` logger.

    Calling it again swaps the console handler instead of stacking a
    second one.

    Args:
        level: Logging level for the package and its components
        use_colors: ANSI colors when stdout is a terminal
    """
    package_logger = logging.getLogger("meucuidador")
    for handler in list(package_logger.handlers):
        if isinstance(handler, _ConsoleHandler):
            package_logger.removeHandler(handler)

    handler = _ConsoleHandler(sys.stdout)
    handler.setFormatter(ColoredFormatter(use_colors=use_colors))
    handler.setLevel(level)
    package_logger.addHandler(handler)
    package_logger.setLevel(level)

    for component in COMPONENT_LOGGERS:
        logging.getLogger(f"meucuidador.{component}").setLevel(level)

    # websockets logs every frame at DEBUG
    for noisy in ("websockets", "asyncio"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    return package_logger


logger = logging.getLogger("meucuidador")


# =============================================================================
# Environment helpers
# =============================================================================

def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"Invalid value for {name}={raw!r}, using {default}")
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Invalid value for {name}={raw!r}, using {default}")
        return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


# =============================================================================
# Server Configuration
# =============================================================================

@dataclass
class ServerConfig:
    """Host process (status API) configuration."""
    host: str = "127.0.0.1"
    port: int = 8787

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """Create config from environment variables."""
        return cls(
            host=os.getenv("SERVER_HOST", "127.0.0.1"),
            port=_env_int("SERVER_PORT", 8787),
        )


@dataclass
class ViewerConfig:
    """Route and user the host process connects on behalf of."""
    route: str = "/home"
    user_id: Optional[int] = None

    @classmethod
    def from_env(cls) -> "ViewerConfig":
        return cls(
            route=os.getenv("REALTIME_ROUTE", "/home"),
            user_id=_env_int("REALTIME_USER_ID", 0) or None,
        )


# =============================================================================
# Connection Configuration
# =============================================================================

@dataclass
class ConnectionConfig:
    """Socket endpoint and handshake configuration."""
    ws_path: str = "/ws"
    page_url: str = "http://localhost:5000"

    # Timeout settings (in seconds)
    auth_timeout: float = 10.0
    open_timeout: float = 10.0

    # Limits
    max_message_size: int = 1024 * 1024  # 1MB

    @classmethod
    def from_env(cls) -> "ConnectionConfig":
        """Create config from environment variables."""
        return cls(
            ws_path=os.getenv("REALTIME_WS_PATH", "/ws"),
            page_url=os.getenv("REALTIME_PAGE_URL", "http://localhost:5000"),
            auth_timeout=_env_float("REALTIME_AUTH_TIMEOUT", 10.0),
            open_timeout=_env_float("REALTIME_OPEN_TIMEOUT", 10.0),
            max_message_size=_env_int("REALTIME_MAX_MESSAGE_SIZE", 1024 * 1024),
        )


@dataclass
class ReconnectConfig:
    """Backoff configuration for automatic reconnection."""
    base_delay: float = 1.0
    max_delay: float = 30.0
    max_attempts: int = 5

    @classmethod
    def from_env(cls) -> "ReconnectConfig":
        """Create config from environment variables."""
        return cls(
            base_delay=_env_float("REALTIME_RECONNECT_BASE_DELAY", 1.0),
            max_delay=_env_float("REALTIME_RECONNECT_MAX_DELAY", 30.0),
            max_attempts=_env_int("REALTIME_RECONNECT_MAX_ATTEMPTS", 5),
        )


@dataclass
class LogConfig:
    """Logging configuration."""
    level: str = "INFO"
    use_colors: bool = True

    @classmethod
    def from_env(cls) -> "LogConfig":
        return cls(
            level=os.getenv("LOG_LEVEL", "INFO").upper(),
            use_colors=_env_bool("LOG_COLORS", True),
        )


# =============================================================================
# Composite Configuration
# =============================================================================

@dataclass
class Config:
    """Complete real-time client configuration."""
    server: ServerConfig = field(default_factory=ServerConfig)
    viewer: ViewerConfig = field(default_factory=ViewerConfig)
    connection: ConnectionConfig = field(default_factory=ConnectionConfig)
    reconnect: ReconnectConfig = field(default_factory=ReconnectConfig)
    log: LogConfig = field(default_factory=LogConfig)

    @classmethod
    def from_env(cls) -> "Config":
        """Create complete config from environment."""
        return cls(
            server=ServerConfig.from_env(),
            viewer=ViewerConfig.from_env(),
            connection=ConnectionConfig.from_env(),
            reconnect=ReconnectConfig.from_env(),
            log=LogConfig.from_env(),
        )


# =============================================================================
# Constants
# =============================================================================

# WebSocket close codes
class CloseCode:
    """Standard WebSocket close codes seen by the client."""
    NORMAL = 1000
    GOING_AWAY = 1001
    ABNORMAL = 1006
    POLICY_VIOLATION = 1008  # auth failed, auth timeout, duplicate connection
    INTERNAL_ERROR = 1011


NORMAL_CLOSE_REASON = "User logout"


# Frame kinds
class FrameKind:
    """Discriminator values carried in the ``kind`` field."""
    # Handshake
    AUTH = "auth"
    AUTH_SUCCESS = "auth_success"
    AUTH_ERROR = "auth_error"

    # Pushed events
    ENTERPRISE_NOTIFICATION = "enterprise_notification"
    MEDICATION_UPDATED = "medication_updated"
    MEDICATION_CREATED = "medication_created"
    NOTIFICATION_CREATED = "notification_created"
