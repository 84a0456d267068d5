"""
Transport utilities for the notification socket.

Provides endpoint URL building, frame serialization and the small
send/close wrappers the connection manager uses, so that the manager
never deals with ``websockets`` exceptions directly.
"""

import json
import logging
from typing import Any, Awaitable, Callable, Optional, Union
from urllib.parse import urlsplit, urlunsplit

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from .config import CloseCode, ConnectionConfig, NORMAL_CLOSE_REASON
from .types import OutboundFrame


logger = logging.getLogger("meucuidador.transport")


# Opens a socket for a URL; injectable so the manager runs without a network
Connector = Callable[[str], Awaitable[Any]]


def build_ws_url(page_url: str, path: str = "/ws") -> str:
    """
    Build the socket endpoint for the page the client is served from.

    ``https`` pages get ``wss``; anything else gets ``ws``. Host and port
    are kept, query and fragment are dropped.

    Example:
        build_ws_url("https://app.example.com/home") -> "wss://app.example.com/ws"
    """
    parts = urlsplit(page_url)
    scheme = "wss" if parts.scheme in ("https", "wss") else "ws"
    if not path.startswith("/"):
        path = "/" + path
    return urlunsplit((scheme, parts.netloc, path, "", ""))


def serialize_frame(frame: Union[OutboundFrame, dict]) -> str:
    """Serialize an outbound frame to JSON text."""
    if isinstance(frame, OutboundFrame):
        frame = frame.to_dict()
    return json.dumps(frame, ensure_ascii=False)


def make_connector(config: Optional[ConnectionConfig] = None) -> Connector:
    """
    Create the default connector backed by ``websockets.connect``.

    Args:
        config: Connection configuration (timeouts, message size)
    """
    config = config or ConnectionConfig()

    async def connect(url: str) -> Any:
        return await websockets.connect(
            url,
            open_timeout=config.open_timeout,
            max_size=config.max_message_size,
        )

    return connect


def close_code_of(ws: Any, error: Optional[BaseException] = None) -> int:
    """
    Work out the close code of a finished socket.

    A socket that ended without a close frame counts as abnormal (1006).
    """
    if isinstance(error, ConnectionClosed):
        if error.rcvd is not None:
            return error.rcvd.code
        return CloseCode.ABNORMAL

    code = getattr(ws, "close_code", None)
    return code if isinstance(code, int) else CloseCode.ABNORMAL


async def send_frame(ws: Any, frame: Union[OutboundFrame, dict]) -> bool:
    """
    Send one frame.

    Returns:
        True if sent successfully, False otherwise
    """
    try:
        await ws.send(serialize_frame(frame))
        return True
    except ConnectionClosed:
        logger.debug("Cannot send - socket closed")
        return False
    except (WebSocketException, OSError) as e:
        logger.error(f"Failed to send frame: {e}")
        return False


async def close_socket(
    ws: Any,
    code: int = CloseCode.NORMAL,
    reason: str = NORMAL_CLOSE_REASON
) -> None:
    """Close a socket, logging instead of raising."""
    try:
        await ws.close(code=code, reason=reason)
    except (WebSocketException, OSError) as e:
        logger.debug(f"Error closing socket: {e}")
