"""In-memory stand-ins for the socket, the chat REST API and the SSE stream."""

import asyncio
from typing import Any, Callable, Optional

import pytest

from kusheet.errors import ConnectionError


def make_message(i: Any, content: str = "hi", user_id: int = 1) -> dict[str, Any]:
    return {
        "id": i,
        "chatId": 7,
        "user": {"id": user_id, "fullName": f"User {user_id}", "picture": None},
        "content": content,
        "messageType": "text",
        "createdAt": f"2025-01-01T00:{int(i) % 60:02d}:00Z" if str(i).isdigit() else None,
    }


class FakeSocket:
    def __init__(self, connected: bool = True):
        self.connected = connected
        self.listeners: dict[str, list[Callable[..., None]]] = {}
        self.emitted: list[tuple[str, Any]] = []
        self.calls: list[tuple[str, Any]] = []
        self.acks: dict[str, Any] = {"chat:join": {"ok": True}}

    def on(self, event: str, listener: Callable[..., None]) -> Callable[[], None]:
        self.listeners.setdefault(event, []).append(listener)

        def remove() -> None:
            if listener in self.listeners.get(event, []):
                self.listeners[event].remove(listener)
        return remove

    def listener_count(self, event: Optional[str] = None) -> int:
        if event is not None:
            return len(self.listeners.get(event, []))
        return sum(len(v) for v in self.listeners.values())

    def fire(self, event: str, *args: Any) -> None:
        for listener in list(self.listeners.get(event, [])):
            listener(*args)

    def emit(self, event: str, data: Any) -> None:
        if not self.connected:
            raise ConnectionError("Socket.IO not connected")
        self.emitted.append((event, data))

    async def emit_with_ack(self, event: str, data: Any, timeout: float = 4.0) -> dict[str, Any]:
        self.calls.append((event, data))
        if not self.connected:
            return {"ok": False}
        ack = self.acks.get(event, {"ok": False})
        if callable(ack):
            ack = ack(data)
        await asyncio.sleep(0)
        return ack


class FakeChatAPI:
    def __init__(self, messages: Optional[list[dict[str, Any]]] = None):
        self.messages = messages or []
        self.load_error: Optional[Exception] = None
        self.send_error: Optional[Exception] = None
        self.sent: list[tuple[Any, str, str, Optional[float]]] = []
        self.next_id = 1000

    async def get_or_create_chat(self, group_id):
        from kusheet.models.message import ChatRoom
        if self.load_error:
            raise self.load_error
        return ChatRoom.model_validate({"id": 7, "groupId": group_id, "messages": self.messages})

    async def send_message(self, group_id, content, message_type="text", timeout=None):
        from kusheet.models.message import ChatMessage
        self.sent.append((group_id, content, message_type, timeout))
        if self.send_error:
            raise self.send_error
        self.next_id += 1
        return ChatMessage.model_validate(make_message(self.next_id, content))


class FakeStream:
    def __init__(self, path: str, on_event: Callable[[Any], None]):
        self.path = path
        self.on_event = on_event
        self.open_calls = 0
        self.close_calls = 0
        self.closed = False

    def open(self) -> None:
        self.open_calls += 1

    def close(self) -> None:
        self.close_calls += 1
        self.closed = True


class StreamRecorder:
    def __init__(self):
        self.streams: list[FakeStream] = []

    def __call__(self, path, on_event) -> FakeStream:
        stream = FakeStream(path, on_event)
        self.streams.append(stream)
        return stream

    @property
    def open_streams(self) -> list[FakeStream]:
        return [s for s in self.streams if not s.closed]


async def settle(rounds: int = 5) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def socket() -> FakeSocket:
    return FakeSocket()


@pytest.fixture
def chat_api() -> FakeChatAPI:
    return FakeChatAPI()


@pytest.fixture
def streams() -> StreamRecorder:
    return StreamRecorder()
