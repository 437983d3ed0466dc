"""
KuSheet / AsyncKuSheet — main SDK clients.
"""

import asyncio
from typing import Any, Callable, Optional

from kusheet.chat import DEFAULT_REST_TIMEOUT, HISTORY_LIMIT, GroupChat
from kusheet.messages import ChatAPI
from kusheet.models.message import ChatMessage, MessageId
from kusheet.models.notification import NotificationPage
from kusheet.models.payment import PromptPaySession, PromptPayStatus
from kusheet.notifications import NotificationFeed, NotificationsAPI
from kusheet.payments import PaymentsAPI
from kusheet.transport.http import DEFAULT_BASE_URL, HttpClient
from kusheet.transport.socketio import DEFAULT_ACK_TIMEOUT, SocketIOManager, get_connection, reset_connection
from kusheet.transport.sse import EventStream, ServerSentEvent


class AsyncKuSheet:
    """Async KU SHEET client (primary)."""

    def __init__(
        self,
        token: Optional[str] = None,
        base_url: str = DEFAULT_BASE_URL,
        ack_timeout: float = DEFAULT_ACK_TIMEOUT,
        rest_timeout: float = DEFAULT_REST_TIMEOUT,
        history_limit: int = HISTORY_LIMIT,
        http: Optional[HttpClient] = None,
    ):
        self._base_url = base_url
        self._ack_timeout = ack_timeout
        self._rest_timeout = rest_timeout
        self._history_limit = history_limit

        self.http = http or HttpClient(base_url=base_url, token=token)
        self.chat_api = ChatAPI(self.http)
        self.notifications = NotificationsAPI(self.http)
        self.payments = PaymentsAPI(self.http)

    @property
    def socket(self) -> SocketIOManager:
        """The process-wide socket, carrying this client's token."""
        return get_connection(self._base_url, self.http.token)

    @property
    def connected(self) -> bool:
        return self.socket.connected

    def set_token(self, token: str) -> None:
        self.http.set_token(token)
        self.socket.set_token(token)

    async def connect(self) -> None:
        await self.socket.connect()

    async def disconnect(self) -> None:
        await reset_connection()

    async def close(self) -> None:
        await self.disconnect()
        await self.http.close()

    def _open_stream(self, path: str, on_event: Callable[[ServerSentEvent], None]) -> EventStream:
        return EventStream(self.http, path, on_event)

    def group_chat(self, group_id: MessageId) -> GroupChat:
        """An unmounted chat view; ``await chat.mount()`` or use it with ``async with``."""
        return GroupChat(
            group_id,
            self.socket,
            self.chat_api,
            self._open_stream,
            ack_timeout=self._ack_timeout,
            rest_timeout=self._rest_timeout,
            history_limit=self._history_limit,
        )

    def notification_feed(self) -> NotificationFeed:
        return NotificationFeed(self.socket, self.notifications)


class KuSheet:
    """Sync wrapper around AsyncKuSheet for the REST calls. Runs the event loop internally."""

    def __init__(self, **kwargs: Any):
        self._async = AsyncKuSheet(**kwargs)
        self._loop = asyncio.new_event_loop()

    def _run(self, coro: Any) -> Any:
        return self._loop.run_until_complete(coro)

    @property
    def chat_api(self) -> ChatAPI:
        return self._async.chat_api

    def send_message(self, group_id: MessageId, content: str, message_type: str = "text") -> ChatMessage:
        return self._run(self._async.chat_api.send_message(group_id, content, message_type))

    def list_messages(self, group_id: MessageId, page: int = 1, limit: int = 50) -> list[ChatMessage]:
        messages, _ = self._run(self._async.chat_api.list_messages(group_id, page=page, limit=limit))
        return messages

    def notifications(self, limit: int = 10) -> NotificationPage:
        return self._run(self._async.notifications.list(limit=limit))

    def create_payment(self, items: list[dict[str, Any]], discount_code: Optional[str] = None) -> PromptPaySession:
        return self._run(self._async.payments.create_session(items, discount_code))

    def payment_status(self, session_id: str) -> PromptPayStatus:
        return self._run(self._async.payments.get_status(session_id))

    def close(self) -> None:
        self._run(self._async.http.close())
        self._loop.close()
