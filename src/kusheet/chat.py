"""
Group chat view — keeps one local message list in sync with the server.

Messages can arrive over three channels:
- the ack of our own ``chat:send`` (or the REST response when the socket path fails)
- ``chat:message`` pushes in the joined socket room
- the SSE stream, open only while the room is not joined

All of them go through ``MessageList.add``, which drops ids already present,
so overlap between channels never shows a message twice. Order is arrival
order; ``MessageList.chronological()`` is there for callers that prefer the
server timestamps.
"""

import asyncio
import json
import logging
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Iterator, Optional, Protocol

from pydantic import ValidationError

from kusheet.errors import ConnectionError, ForbiddenError, KuSheetError, SendError
from kusheet.messages import ChatAPI, clean_content
from kusheet.models.message import ChatMessage, MessageId
from kusheet.transport.socketio import DEFAULT_ACK_TIMEOUT, SocketIOManager
from kusheet.transport.sse import ServerSentEvent

logger = logging.getLogger(__name__)

HISTORY_LIMIT = 100
DEFAULT_REST_TIMEOUT = 5.0


class ChatState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    UNMOUNTED = "unmounted"


class Stream(Protocol):
    @property
    def closed(self) -> bool: ...
    def open(self) -> None: ...
    def close(self) -> None: ...


StreamFactory = Callable[[str, Callable[[ServerSentEvent], None]], Stream]


class MessageList:
    """Append-only, id-unique list holding at most ``limit`` messages (oldest dropped first)."""

    def __init__(self, limit: int = HISTORY_LIMIT):
        self._limit = limit
        self._items: list[ChatMessage] = []
        self._ids: set[MessageId] = set()

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[ChatMessage]:
        return iter(list(self._items))

    def __contains__(self, message_id: object) -> bool:
        return message_id in self._ids

    @property
    def items(self) -> list[ChatMessage]:
        return list(self._items)

    def add(self, message: ChatMessage) -> bool:
        if message.id in self._ids:
            return False
        self._items.append(message)
        self._ids.add(message.id)
        overflow = len(self._items) - self._limit
        if overflow > 0:
            for old in self._items[:overflow]:
                self._ids.discard(old.id)
            del self._items[:overflow]
        return True

    def reset(self, messages: list[ChatMessage]) -> None:
        self.clear()
        for message in messages[-self._limit:]:
            self.add(message)

    def clear(self) -> None:
        self._items = []
        self._ids = set()

    def chronological(self) -> list[ChatMessage]:
        """Stable sort by server timestamp; messages without one keep their place at the end."""
        def key(m: ChatMessage) -> float:
            return m.created_at.timestamp() if isinstance(m.created_at, datetime) else float("inf")
        return sorted(self._items, key=key)


class GroupChat:
    def __init__(
        self,
        group_id: MessageId,
        socket: SocketIOManager,
        chat_api: ChatAPI,
        open_stream: StreamFactory,
        ack_timeout: float = DEFAULT_ACK_TIMEOUT,
        rest_timeout: float = DEFAULT_REST_TIMEOUT,
        history_limit: int = HISTORY_LIMIT,
    ):
        self.group_id = group_id
        self.messages = MessageList(history_limit)
        self.state = ChatState.IDLE
        self.can_chat = True
        self._socket = socket
        self._chat_api = chat_api
        self._open_stream = open_stream
        self._ack_timeout = ack_timeout
        self._rest_timeout = rest_timeout
        self._socket_ready = False
        self._joined = False
        self._join_task: Optional[asyncio.Task[Any]] = None
        self._join_generation = 0
        self._stream: Optional[Stream] = None
        self._removers: list[Callable[[], None]] = []
        self._listeners: list[Callable[[ChatMessage], None]] = []
        self._tasks: set[asyncio.Task[Any]] = set()

    def __repr__(self) -> str:
        return f"GroupChat(group_id={self.group_id!r}, state={self.state.value!r})"

    @property
    def socket_ready(self) -> bool:
        return self._socket_ready

    @property
    def fallback_active(self) -> bool:
        return self._stream is not None and not self._stream.closed

    @property
    def _active(self) -> bool:
        return self.state is ChatState.READY and self.can_chat

    def on_message(self, listener: Callable[[ChatMessage], None]) -> Callable[[], None]:
        """Call ``listener`` for every message newly added to the list."""
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)
        return remove

    # -- lifecycle ---------------------------------------------------------

    async def mount(self) -> None:
        if self.state is not ChatState.IDLE:
            return
        self.state = ChatState.LOADING
        await self._load()
        if self.state is ChatState.UNMOUNTED:
            return
        self.state = ChatState.READY
        if self.can_chat:
            self._subscribe()

    async def _load(self) -> None:
        try:
            room = await self._chat_api.get_or_create_chat(self.group_id)
        except ForbiddenError:
            if self.state is not ChatState.UNMOUNTED:
                self.can_chat = False
                self.messages.clear()
            return
        except (KuSheetError, ValidationError) as e:
            logger.error("Error loading messages for group %s: %r", self.group_id, e)
            return
        if self.state is ChatState.UNMOUNTED:
            return
        self.can_chat = True
        self.messages.reset(room.messages)

    def unmount(self) -> None:
        """Detach from the socket and the SSE stream. Safe to call more than once."""
        if self.state is ChatState.UNMOUNTED:
            return
        self.state = ChatState.UNMOUNTED
        self._unsubscribe()
        self._listeners.clear()

    async def __aenter__(self) -> "GroupChat":
        await self.mount()
        return self

    async def __aexit__(self, *_exc: Any) -> None:
        self.unmount()

    def _subscribe(self) -> None:
        sock = self._socket
        self._removers = [
            sock.on("connect", self._on_connect),
            sock.on("reconnect", self._on_reconnect),
            sock.on("connect_error", self._on_connect_error),
            sock.on("disconnect", self._on_disconnect),
            sock.on("chat:message", self._on_push),
        ]
        if sock.connected:
            self._start_join()
        self._sync_fallback()

    def _unsubscribe(self) -> None:
        removers, self._removers = self._removers, []
        for remove in removers:
            remove()
        if removers:
            try:
                self._socket.emit("chat:leave", {"groupId": self.group_id})
            except ConnectionError as e:
                logger.debug("chat:leave skipped for group %s: %s", self.group_id, e)
        for task in list(self._tasks):
            task.cancel()
        self._reset_join()
        self._socket_ready = False
        self._close_stream()

    def _lose_membership(self) -> None:
        self.can_chat = False
        self.messages.clear()
        self._unsubscribe()

    def _spawn(self, coro: Any) -> "asyncio.Task[Any]":
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    # -- socket room -------------------------------------------------------

    def _start_join(self) -> None:
        if self._joined or not self._active:
            return
        if self._join_task is not None and not self._join_task.done():
            return
        self._join_task = self._spawn(self._join(self._join_generation))

    def _reset_join(self) -> None:
        """Forget the room membership and abandon any join still waiting for its ack."""
        self._join_generation += 1
        self._joined = False
        task, self._join_task = self._join_task, None
        if task is not None and not task.done():
            task.cancel()

    async def _join(self, generation: int) -> None:
        if generation != self._join_generation or not self._active:
            return
        ack = await self._socket.emit_with_ack("chat:join", {"groupId": self.group_id}, timeout=self._ack_timeout)
        # acks from before a disconnect or reconnect are stale
        if generation != self._join_generation or not self._active:
            return
        if ack.get("ok"):
            self._joined = True
            self._set_socket_ready(True)
        else:
            reason = ack.get("error") or ("timeout" if ack.get("timeout") else "socket unavailable")
            logger.warning("chat:join failed for group %s: %s", self.group_id, reason)
            self._set_socket_ready(False)

    def _on_connect(self) -> None:
        self._start_join()

    def _on_reconnect(self) -> None:
        self._reset_join()
        self._set_socket_ready(False)
        self._start_join()

    def _on_connect_error(self, err: Any = None) -> None:
        logger.warning("Socket connect_error in group %s chat: %s", self.group_id, err)
        self._set_socket_ready(False)

    def _on_disconnect(self) -> None:
        self._reset_join()
        self._set_socket_ready(False)

    def _on_push(self, payload: Any) -> None:
        self._ingest(payload, "socket")

    # -- SSE fallback ------------------------------------------------------

    def _set_socket_ready(self, ready: bool) -> None:
        self._socket_ready = ready
        self._sync_fallback()

    def _sync_fallback(self) -> None:
        if self._active and not self._socket_ready:
            self._start_stream()
        else:
            self._close_stream()

    def _start_stream(self) -> None:
        if self.fallback_active:
            return
        self._stream = self._open_stream(ChatAPI.stream_path(self.group_id), self._on_sse_event)
        self._stream.open()

    def _close_stream(self) -> None:
        stream, self._stream = self._stream, None
        if stream is not None:
            stream.close()

    def _on_sse_event(self, event: ServerSentEvent) -> None:
        if event.event != "message":
            return
        try:
            payload = json.loads(event.data)
        except ValueError:
            logger.debug("Dropping malformed SSE event for group %s: %r", self.group_id, event.data[:200])
            return
        if not isinstance(payload, dict) or not payload.get("id"):
            return
        self._ingest(payload, "sse")

    # -- messages ----------------------------------------------------------

    def _ingest(self, payload: Any, source: str) -> None:
        try:
            message = ChatMessage.model_validate(payload)
        except ValidationError as e:
            logger.debug("Dropping invalid %s message for group %s: %s", source, self.group_id, e)
            return
        self._append(message)

    def _append(self, message: ChatMessage) -> bool:
        if self.state is ChatState.UNMOUNTED:
            return False
        if not self.messages.add(message):
            return False
        for listener in list(self._listeners):
            try:
                listener(message)
            except Exception:
                logger.exception("Message listener failed")
        return True

    async def send(self, content: str, message_type: str = "text") -> Optional[ChatMessage]:
        """Send over the socket with an ack, falling back to REST.

        The REST path is used only when the socket is down or the ack times
        out or reports failure; a successful ack is never re-sent. Exactly
        one of the two paths adds the message locally. Returns ``None`` when
        the server accepted the message but the ack carried no readable copy,
        in which case the room broadcast or SSE stream delivers it. Raises
        ``SendError`` carrying the original text when both paths fail.
        """
        if not self._active:
            raise SendError("Not a member of this group chat", content)
        text = clean_content(content)

        if self._socket.connected:
            ack = await self._socket.emit_with_ack(
                "chat:send",
                {"groupId": self.group_id, "content": text, "messageType": message_type},
                timeout=self._ack_timeout,
            )
            if ack.get("ok") and not ack.get("timeout"):
                try:
                    message = ChatMessage.model_validate(ack.get("data"))
                except ValidationError as e:
                    logger.warning("Unreadable chat:send ack for group %s: %s", self.group_id, e)
                    return None
                self._append(message)
                return message

        try:
            message = await self._chat_api.send_message(
                self.group_id, text, message_type, timeout=self._rest_timeout,
            )
        except ForbiddenError:
            if self.state is not ChatState.UNMOUNTED:
                self._lose_membership()
            raise SendError("No longer a member of this group chat", content)
        except (KuSheetError, ValidationError) as e:
            logger.error("REST send failed for group %s: %r", self.group_id, e)
            raise SendError("Message could not be sent", content)
        self._append(message)
        return message
