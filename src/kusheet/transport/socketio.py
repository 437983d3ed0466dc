"""
Socket.IO connection manager.

One connection per process, created lazily by ``get_connection()`` and
shared by every chat view and notification feed. Views only add and
remove their own listeners and join/leave rooms; they never close or
rebuild the socket. A listener that is never removed lives as long as
the connection does.
"""

import asyncio
import logging
from typing import Any, Callable, Optional

import socketio
from socketio.exceptions import ConnectionError as SocketConnectionError
from socketio.exceptions import TimeoutError as AckTimeoutError

from kusheet.errors import ConnectionError

logger = logging.getLogger(__name__)

Listener = Callable[..., None]

DEFAULT_TRANSPORTS = ["websocket", "polling"]
DEFAULT_ACK_TIMEOUT = 4.0


def socket_url_from_api(base_url: str) -> str:
    """The socket server lives at the API origin, without the ``/api`` prefix."""
    url = base_url.rstrip("/")
    if url.endswith("/api"):
        url = url[: -len("/api")]
    return url


class SocketIOManager:
    def __init__(
        self,
        url: str,
        token: Optional[str] = None,
        transports: Optional[list[str]] = None,
        reconnection: bool = True,
    ):
        self._url = url
        self._token = token
        self._transports = transports or list(DEFAULT_TRANSPORTS)
        self._listeners: dict[str, list[Listener]] = {}
        self._pending: set[asyncio.Task[Any]] = set()
        self._was_connected = False
        self._closed = False
        self._sio = socketio.AsyncClient(reconnection=reconnection)
        self._register_handlers()

    @property
    def url(self) -> str:
        return self._url

    @property
    def token(self) -> Optional[str]:
        return self._token

    @property
    def connected(self) -> bool:
        return not self._closed and self._sio.connected

    def _register_handlers(self) -> None:
        @self._sio.event
        async def connect() -> None:
            reconnected = self._was_connected
            self._was_connected = True
            self._dispatch("connect")
            if reconnected:
                self._dispatch("reconnect")

        @self._sio.event
        async def disconnect(*_args: Any) -> None:
            self._dispatch("disconnect")

        @self._sio.event
        async def connect_error(data: Any = None) -> None:
            logger.warning("socket connect_error: %s", data)
            self._dispatch("connect_error", data)

        @self._sio.on("*")
        async def on_any(event: str, *args: Any) -> None:
            self._dispatch(event, *args)

    def _auth(self) -> dict[str, Any]:
        # Called on every (re)connect so a rotated token is picked up
        return {"token": self._token}

    # -- listeners ---------------------------------------------------------

    def on(self, event: str, listener: Listener) -> Callable[[], None]:
        """Register a listener. Returns a remover that is safe to call more than once."""
        self._listeners.setdefault(event, []).append(listener)

        def remove() -> None:
            self.off(event, listener)
        return remove

    def off(self, event: str, listener: Listener) -> None:
        listeners = self._listeners.get(event)
        if not listeners:
            return
        try:
            listeners.remove(listener)
        except ValueError:
            return
        if not listeners:
            del self._listeners[event]

    def listener_count(self, event: Optional[str] = None) -> int:
        if event is not None:
            return len(self._listeners.get(event, ()))
        return sum(len(v) for v in self._listeners.values())

    def _dispatch(self, event: str, *args: Any) -> None:
        for listener in list(self._listeners.get(event, ())):
            try:
                listener(*args)
            except Exception:
                logger.exception("Listener for %s failed", event)

    # -- lifecycle ---------------------------------------------------------

    async def connect(self) -> None:
        if self._closed:
            raise ConnectionError("Socket connection was torn down")
        if self._sio.connected:
            return
        try:
            await self._sio.connect(
                self._url,
                auth=self._auth,
                transports=self._transports,
            )
        except SocketConnectionError as e:
            raise ConnectionError(f"Socket connect to {self._url} failed: {e}")

    def set_token(self, token: Optional[str]) -> None:
        """Apply a new auth token to the shared socket, reconnecting if it is live."""
        if not token or token == self._token:
            return
        self._token = token
        if self._sio.connected:
            self._spawn(self._reconnect())

    async def _reconnect(self) -> None:
        try:
            await self._sio.disconnect()
            await self.connect()
        except Exception as e:
            logger.warning("Socket reconnect after token change failed: %r", e)

    async def teardown(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._listeners.clear()
        for task in list(self._pending):
            task.cancel()
        if self._sio.connected:
            await self._sio.disconnect()

    # -- emit --------------------------------------------------------------

    def _spawn(self, coro: Any) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    def emit(self, event: str, data: Any) -> None:
        """Fire-and-forget emit, scheduled on the running loop. Failures are logged."""
        if not self.connected:
            raise ConnectionError("Socket.IO not connected")

        async def _do_emit() -> None:
            try:
                await self._sio.emit(event, data)
            except Exception as e:
                logger.error("Emit failed for %s: %r", event, e)

        self._spawn(_do_emit())

    async def emit_with_ack(self, event: str, data: Any, timeout: float = DEFAULT_ACK_TIMEOUT) -> dict[str, Any]:
        """Emit and wait for the server's acknowledgement.

        Never raises: ``{"ok": False, "timeout": True}`` when the ack does
        not arrive in time, ``{"ok": False}`` when the socket is down or the
        emit fails.
        """
        if not self.connected:
            return {"ok": False}
        try:
            resp = await self._sio.call(event, data, timeout=timeout)
        except AckTimeoutError:
            return {"ok": False, "timeout": True}
        except Exception as e:
            logger.warning("%s failed: %r", event, e)
            return {"ok": False}
        return resp if isinstance(resp, dict) else {"ok": False}


_connection: Optional[SocketIOManager] = None


def get_connection(base_url: str, token: Optional[str] = None) -> SocketIOManager:
    """Return the process-wide socket, creating it on first use."""
    global _connection
    if _connection is None:
        _connection = SocketIOManager(socket_url_from_api(base_url), token)
    else:
        _connection.set_token(token)
    return _connection


async def reset_connection() -> None:
    global _connection
    conn, _connection = _connection, None
    if conn is not None:
        await conn.teardown()
