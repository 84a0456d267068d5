"""
Connection Manager for the real-time notification socket.

Owns the single socket of the process and drives its state machine:

    DISCONNECTED -> CONNECTING -> AWAITING_AUTH -> AUTHENTICATED
          ^              |              |               |
          +--------------+--------------+---------------+

- Authentication handshake with timeout
- Exponential-backoff reconnection after abnormal closes
- Connectivity listeners and event dispatch for inbound frames
- Duplicate-socket guard shared by every manager in the process

All methods run on the asyncio event loop thread. Public operations
return immediately; outcomes arrive through listeners and the event bus.
"""

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional, Set, Union

from websockets.exceptions import ConnectionClosed

from .backoff import ReconnectPolicy
from .config import (
    CloseCode,
    Config,
    FrameKind,
    NORMAL_CLOSE_REASON,
)
from .credentials import EnvTokenSource, TokenSource, load_credential
from .events import EventBus, get_event_bus
from .exceptions import CredentialExpiredError, FrameDecodeError, InvalidCredentialError
from .listeners import ListenerRegistry
from .router import MessageDispatcher, parse_frame
from .transport import (
    Connector,
    build_ws_url,
    close_code_of,
    close_socket,
    make_connector,
    send_frame,
)
from .types import ConnectionState, ConnectivityListener, InboundFrame, OutboundFrame, Unsubscribe


logger = logging.getLogger("meucuidador.connection")


# Transitions allowed by the state machine. Every non-DISCONNECTED state may
# fall back to DISCONNECTED; a transition to the current state is a no-op.
VALID_TRANSITIONS: Dict[ConnectionState, Set[ConnectionState]] = {
    ConnectionState.DISCONNECTED: {ConnectionState.CONNECTING},
    ConnectionState.CONNECTING: {ConnectionState.AWAITING_AUTH, ConnectionState.DISCONNECTED},
    ConnectionState.AWAITING_AUTH: {ConnectionState.AUTHENTICATED, ConnectionState.DISCONNECTED},
    ConnectionState.AUTHENTICATED: {ConnectionState.DISCONNECTED},
}


class ConnectionGuard:
    """
    Process-wide "a socket is active" marker.

    Set by a manager the moment it starts an attempt and released only on
    terminal disconnect, so a second manager instance backs off instead of
    opening its own socket.
    """

    def __init__(self):
        self._owner: Optional[object] = None

    def acquire(self, owner: object) -> bool:
        if self._owner is None or self._owner is owner:
            self._owner = owner
            return True
        return False

    def release(self, owner: object) -> None:
        if self._owner is owner:
            self._owner = None

    def held_by(self, owner: object) -> bool:
        return self._owner is owner

    @property
    def active(self) -> bool:
        return self._owner is not None

    def reset(self) -> None:
        self._owner = None


_process_guard = ConnectionGuard()


def get_connection_guard() -> ConnectionGuard:
    return _process_guard


class ConnectionManager:
    """
    Manages the notification socket for one session.

    Features:
    - At most one socket and one in-flight attempt at a time
    - Bearer-token handshake with a fixed timeout
    - Automatic reconnection with capped exponential backoff
    - Listener registry for connectivity changes
    - Dispatch of pushed frames onto the event bus

    Usage:
        manager = get_connection_manager()
        unsubscribe = manager.subscribe(lambda connected: print(connected))
        manager.connect(eligible=True)
    """

    def __init__(
        self,
        token_source: Optional[TokenSource] = None,
        config: Optional[Config] = None,
        bus: Optional[EventBus] = None,
        connector: Optional[Connector] = None,
        eligibility: Optional[Callable[[], bool]] = None,
        guard: Optional[ConnectionGuard] = None,
        url: Optional[str] = None,
    ):
        """
        Initialize the connection manager.

        Args:
            token_source: Where the bearer token comes from
            config: Configuration (defaults to built-in defaults)
            bus: Event bus for dispatched events (defaults to the process-wide bus)
            connector: Opens a socket for a URL (defaults to websockets.connect)
            eligibility: Re-checked before each automatic reconnect
            guard: Duplicate-socket guard (defaults to the process-wide guard)
            url: Socket endpoint (defaults to one derived from config.connection)
        """
        self.config = config or Config()
        self._token_source = token_source or EnvTokenSource()
        self._connector = connector or make_connector(self.config.connection)
        self._eligibility = eligibility
        self._guard = guard or _process_guard
        self.url = url or build_ws_url(
            self.config.connection.page_url,
            self.config.connection.ws_path,
        )

        self.policy = ReconnectPolicy(self.config.reconnect)
        self.dispatcher = MessageDispatcher(bus or get_event_bus())
        self._listeners = ListenerRegistry(self.is_connected)

        self._state = ConnectionState.DISCONNECTED
        self._ws: Optional[Any] = None
        self._reader_task: Optional[asyncio.Task] = None
        self._token: Optional[str] = None  # transient copy for one attempt
        self._generation = 0
        self._eligible = False
        self._reconnect_attempts = 0

        self._auth_timer: Optional[asyncio.TimerHandle] = None
        self._reconnect_timer: Optional[asyncio.TimerHandle] = None

        self._background: Set[asyncio.Task] = set()

        # connect()/disconnect() issued by a listener wait for the fan-out to finish
        self._notifying = False
        self._deferred: List[Callable[[], None]] = []

    # =========================================================================
    # Public API
    # =========================================================================

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def reconnect_attempts(self) -> int:
        return self._reconnect_attempts

    @property
    def max_reconnect_attempts(self) -> int:
        return self.policy.max_attempts

    @property
    def reconnect_pending(self) -> bool:
        """True while a backoff timer is waiting to fire."""
        return self._reconnect_timer is not None

    def is_connected(self) -> bool:
        """True iff the handshake has completed on the current socket."""
        return self._state == ConnectionState.AUTHENTICATED

    def set_eligibility_check(self, check: Optional[Callable[[], bool]]) -> None:
        """Install the predicate re-evaluated before each automatic reconnect."""
        self._eligibility = check

    def connect(self, eligible: bool = True) -> None:
        """
        Request a live, authenticated connection.

        Idempotent: does nothing while an attempt is in flight, and only
        re-announces the state to listeners when already authenticated.
        With ``eligible=False`` this behaves as ``disconnect()``.
        """
        if self._notifying:
            self._deferred.append(lambda: self.connect(eligible))
            return

        if not eligible:
            logger.debug("Not eligible for a live connection, disconnecting")
            self.disconnect()
            return

        self._eligible = True

        if self._state == ConnectionState.AUTHENTICATED:
            logger.debug("Already connected and authenticated, reusing connection")
            self._notify(True)
            return

        if self._state in (ConnectionState.CONNECTING, ConnectionState.AWAITING_AUTH):
            logger.debug("Connection attempt already in flight")
            return

        # An explicit request supersedes a pending backoff
        self._cancel_reconnect_timer()
        self._start_attempt()

    def disconnect(self, reason: str = NORMAL_CLOSE_REASON) -> None:
        """
        Close the socket with a normal closure and stop all recovery.

        Cancels the auth timer and any pending reconnect, releases the
        duplicate-socket guard and settles in DISCONNECTED. Called from a
        connectivity listener, it runs once the current fan-out is complete.
        """
        if self._notifying:
            self._deferred.append(lambda: self.disconnect(reason))
            return

        self._eligible = False
        self._cancel_reconnect_timer()
        had_socket = self._ws is not None or self._reader_task is not None
        self._teardown(close_code=CloseCode.NORMAL, reason=reason)
        self._guard.release(self)

        if self._state != ConnectionState.DISCONNECTED:
            self._set_state(ConnectionState.DISCONNECTED)
        if had_socket:
            logger.info(f"Disconnected ({reason})")

    def send(self, frame: Union[OutboundFrame, dict]) -> bool:
        """
        Transmit a frame if authenticated; dropped otherwise (never queued).

        Returns:
            True if the frame was handed to the socket
        """
        if self._state != ConnectionState.AUTHENTICATED or self._ws is None:
            logger.debug("Not authenticated, dropping outbound frame")
            return False
        self._spawn(send_frame(self._ws, frame))
        return True

    def subscribe(self, callback: ConnectivityListener) -> Unsubscribe:
        """Register a connectivity listener; it is called at once with the current state."""
        return self._listeners.add(callback)

    add_listener = subscribe

    def remove_listener(self, callback: ConnectivityListener) -> None:
        self._listeners.remove(callback)

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    async def wait_idle(self) -> None:
        """Wait for pending background sends and closes to finish."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def aclose(self) -> None:
        """Disconnect and wait for the socket to be closed."""
        self.disconnect()
        await self.wait_idle()

    # =========================================================================
    # State machine
    # =========================================================================

    def _set_state(self, new_state: ConnectionState) -> bool:
        old_state = self._state
        if new_state == old_state:
            return False
        if new_state not in VALID_TRANSITIONS[old_state]:
            logger.error(f"Invalid transition {old_state.value} -> {new_state.value}")
            return False

        self._state = new_state
        logger.debug(f"State {old_state.value} -> {new_state.value}")

        was_connected = old_state == ConnectionState.AUTHENTICATED
        now_connected = new_state == ConnectionState.AUTHENTICATED
        if was_connected != now_connected:
            self._notify(now_connected)
        return True

    def _notify(self, connected: bool) -> None:
        """Fan out to every listener, then run the calls they deferred."""
        self._notifying = True
        try:
            self._listeners.notify(connected)
        finally:
            self._notifying = False

        while self._deferred and not self._notifying:
            self._deferred.pop(0)()

    def _start_attempt(self) -> None:
        try:
            credential = load_credential(self._token_source)
        except CredentialExpiredError:
            logger.warning("Token expired, not connecting")
            self._guard.release(self)
            return
        except InvalidCredentialError as e:
            logger.warning(f"Invalid token, not connecting: {e}")
            self._guard.release(self)
            return

        if credential is None:
            logger.warning("No token available, not connecting")
            self._guard.release(self)
            return

        if not self._guard.acquire(self):
            logger.warning("Another connection is already active in this process, ignoring attempt")
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.error("connect() called without a running event loop")
            self._guard.release(self)
            return

        self._generation += 1
        self._token = credential.token
        self._set_state(ConnectionState.CONNECTING)

        logger.info(f"Connecting to {self.url} (attempt {self._reconnect_attempts})")
        self._reader_task = loop.create_task(self._run(self._generation))

    async def _run(self, generation: int) -> None:
        """Open the socket, authenticate, then read frames until it closes."""
        try:
            ws = await self._connector(self.url)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"Failed to open socket: {e}")
            self._on_closed(generation, CloseCode.ABNORMAL)
            return

        if generation != self._generation:
            await close_socket(ws)
            return

        self._ws = ws
        error: Optional[BaseException] = None
        still_open = False
        try:
            await self._on_open(generation, ws)
            async for raw in ws:
                if generation != self._generation:
                    break
                self._on_message(generation, raw)
        except asyncio.CancelledError:
            raise
        except ConnectionClosed as e:
            error = e
        except Exception as e:
            logger.error(f"Socket error: {e}", exc_info=True)
            error = e
            still_open = True

        self._on_closed(generation, close_code_of(ws, error), abort=still_open)

    async def _on_open(self, generation: int, ws: Any) -> None:
        logger.info("Socket open, sending authentication")
        token = self._token
        if token is None or not await send_frame(ws, OutboundFrame.auth(token)):
            raise ConnectionError("could not send authentication frame")

        if generation != self._generation:
            return

        self._set_state(ConnectionState.AWAITING_AUTH)
        loop = asyncio.get_running_loop()
        self._auth_timer = loop.call_later(
            self.config.connection.auth_timeout,
            self._on_auth_timeout,
            generation,
        )

    def _on_message(self, generation: int, raw: Union[str, bytes]) -> None:
        if generation != self._generation:
            return

        try:
            frame = parse_frame(raw)
        except FrameDecodeError as e:
            logger.warning(f"Malformed frame dropped: {e}")
            return

        if frame.kind == FrameKind.AUTH_SUCCESS:
            self._on_auth_success(frame)
        elif frame.kind == FrameKind.AUTH_ERROR:
            logger.warning(f"Authentication rejected by server: {frame.message or 'no reason given'}")
        elif self._state != ConnectionState.AUTHENTICATED:
            logger.debug(f"Ignoring '{frame.kind}' before authentication")
        else:
            self.dispatcher.dispatch(frame)

    def _on_auth_success(self, frame: InboundFrame) -> None:
        if self._state != ConnectionState.AWAITING_AUTH:
            logger.debug(f"Unexpected auth_success in state {self._state.value}")
            return

        self._cancel_auth_timer()
        self._token = None
        self._reconnect_attempts = 0
        if frame.message:
            logger.debug(f"Server: {frame.message}")
        logger.info("Authenticated")
        self._set_state(ConnectionState.AUTHENTICATED)

    def _on_auth_timeout(self, generation: int) -> None:
        self._auth_timer = None
        if generation != self._generation or self._state != ConnectionState.AWAITING_AUTH:
            return

        logger.warning(
            f"Authentication timed out after {self.config.connection.auth_timeout}s"
        )
        self._teardown(close_code=CloseCode.GOING_AWAY, reason="Authentication timeout")
        self._handle_close(CloseCode.ABNORMAL)

    def _on_closed(self, generation: int, code: int, abort: bool = False) -> None:
        """
        Settle a finished attempt.

        With ``abort`` the socket failed on our side and may still be open,
        so it is closed before any reconnect is scheduled.
        """
        if generation != self._generation:
            return
        logger.info(f"Socket closed (code {code})")
        if abort:
            self._teardown(close_code=CloseCode.INTERNAL_ERROR, reason="Client error")
        else:
            self._teardown()
        self._handle_close(code)

    def _handle_close(self, code: int) -> None:
        """Settle in DISCONNECTED and apply the reconnection policy."""
        self._set_state(ConnectionState.DISCONNECTED)

        # A listener may already have started a new attempt
        if self._state != ConnectionState.DISCONNECTED:
            return

        if code == CloseCode.NORMAL:
            self._guard.release(self)
            return

        attempt = self._reconnect_attempts
        self._reconnect_attempts += 1
        decision = self.policy.decide(code, attempt, self._still_eligible())

        if not decision.reconnect:
            logger.warning(f"Not reconnecting: {decision.reason}")
            self._guard.release(self)
            return

        logger.info(
            f"Reconnecting in {decision.delay:g}s "
            f"(attempt {attempt + 1}/{self.policy.max_attempts})"
        )
        self._cancel_reconnect_timer()
        loop = asyncio.get_running_loop()
        self._reconnect_timer = loop.call_later(decision.delay, self._on_reconnect_timer)

    def _on_reconnect_timer(self) -> None:
        self._reconnect_timer = None
        if self._state != ConnectionState.DISCONNECTED:
            return
        if not self._still_eligible():
            logger.info("No longer eligible, dropping scheduled reconnect")
            self._guard.release(self)
            return
        self._start_attempt()

    def _still_eligible(self) -> bool:
        if not self._eligible:
            return False
        if self._eligibility is not None:
            try:
                return bool(self._eligibility())
            except Exception as e:
                logger.error(f"Error in eligibility check: {e}", exc_info=True)
                return False
        return self._token_source.is_authenticated()

    # =========================================================================
    # Private Implementation
    # =========================================================================

    def _teardown(self, close_code: Optional[int] = None, reason: str = "") -> None:
        """Drop the current socket and reader; optionally send a close frame."""
        self._cancel_auth_timer()
        self._generation += 1
        self._token = None

        task = self._reader_task
        self._reader_task = None
        if task is not None and not task.done() and task is not _current_task():
            task.cancel()

        ws = self._ws
        self._ws = None
        if ws is not None and close_code is not None:
            self._spawn(close_socket(ws, close_code, reason))

    def _cancel_auth_timer(self) -> None:
        if self._auth_timer is not None:
            self._auth_timer.cancel()
            self._auth_timer = None

    def _cancel_reconnect_timer(self) -> None:
        if self._reconnect_timer is not None:
            self._reconnect_timer.cancel()
            self._reconnect_timer = None

    def _spawn(self, coro) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)


def _current_task() -> Optional[asyncio.Task]:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None


# =============================================================================
# Process-wide instance
# =============================================================================

_manager: Optional[ConnectionManager] = None


def get_connection_manager() -> ConnectionManager:
    """Return the process-wide ConnectionManager, creating it on first use."""
    global _manager
    if _manager is None:
        _manager = ConnectionManager(config=Config.from_env(), bus=get_event_bus())
    return _manager


def reset_connection_manager() -> None:
    """Disconnect and drop the process-wide manager."""
    global _manager
    if _manager is not None:
        try:
            _manager.disconnect()
        except RuntimeError as e:
            logger.debug(f"Error disconnecting manager: {e}")
        _manager = None
