"""GroupChat reconciliation across socket pushes, acks, REST and the SSE fallback."""

import asyncio
import json

import pytest

from conftest import FakeChatAPI, FakeSocket, StreamRecorder, make_message, settle
from kusheet.chat import ChatState, GroupChat, MessageList
from kusheet.errors import ForbiddenError, HttpError, InvalidInputError, SendError
from kusheet.models.message import ChatMessage
from kusheet.transport.sse import ServerSentEvent


def make_chat(socket, chat_api, streams, group_id=3, **kwargs) -> GroupChat:
    return GroupChat(group_id, socket, chat_api, streams, **kwargs)


def sse(payload, event="message") -> ServerSentEvent:
    data = payload if isinstance(payload, str) else json.dumps(payload)
    return ServerSentEvent(event=event, data=data)


def ids(chat: GroupChat) -> list:
    return [m.id for m in chat.messages]


class TestMessageList:
    def test_drops_duplicate_ids(self):
        messages = MessageList()
        assert messages.add(ChatMessage.model_validate(make_message(1)))
        assert not messages.add(ChatMessage.model_validate(make_message(1, "again")))
        assert len(messages) == 1
        assert messages.items[0].content == "hi"

    def test_caps_oldest_first(self):
        messages = MessageList(limit=3)
        for i in range(1, 6):
            messages.add(ChatMessage.model_validate(make_message(i)))
        assert [m.id for m in messages] == [3, 4, 5]
        assert 1 not in messages
        # a trimmed id may come back
        assert messages.add(ChatMessage.model_validate(make_message(1)))

    def test_reset_keeps_most_recent(self):
        messages = MessageList(limit=2)
        messages.reset([ChatMessage.model_validate(make_message(i)) for i in range(1, 5)])
        assert [m.id for m in messages] == [3, 4]

    def test_chronological(self):
        messages = MessageList()
        for i in (5, "temp", 2, 9):
            messages.add(ChatMessage.model_validate(make_message(i)))
        assert [m.id for m in messages.chronological()] == [2, 5, 9, "temp"]
        assert [m.id for m in messages] == [5, "temp", 2, 9]


@pytest.mark.asyncio
class TestMount:
    async def test_loads_history_capped(self, socket, streams):
        api = FakeChatAPI([make_message(i) for i in range(1, 151)])
        chat = make_chat(socket, api, streams)
        await chat.mount()
        assert chat.state is ChatState.READY
        assert len(chat.messages) == 100
        assert ids(chat)[0] == 51
        assert ids(chat)[-1] == 150
        chat.unmount()

    async def test_forbidden_is_read_only(self, socket, chat_api, streams):
        chat_api.load_error = ForbiddenError("Not a member")
        chat = make_chat(socket, chat_api, streams)
        await chat.mount()
        assert chat.can_chat is False
        assert len(chat.messages) == 0
        assert socket.listener_count() == 0
        assert streams.streams == []
        assert socket.calls == []
        with pytest.raises(SendError):
            await chat.send("hello")

    async def test_other_load_error_keeps_chatting(self, socket, chat_api, streams):
        chat_api.load_error = HttpError(500, "boom")
        chat = make_chat(socket, chat_api, streams)
        await chat.mount()
        assert chat.can_chat is True
        assert chat.state is ChatState.READY
        assert len(chat.messages) == 0
        chat.unmount()

    async def test_join_closes_fallback_exactly_once(self, socket, chat_api, streams):
        chat = make_chat(socket, chat_api, streams)
        await chat.mount()
        await settle()
        assert ("chat:join", {"groupId": 3}) in socket.calls
        assert chat.socket_ready is True
        assert len(streams.streams) == 1
        assert streams.streams[0].path == "/groups/3/chat/stream"
        assert streams.streams[0].close_calls == 1
        assert not chat.fallback_active
        chat.unmount()
        assert streams.streams[0].close_calls == 1

    async def test_disconnected_socket_uses_sse(self, chat_api, streams):
        socket = FakeSocket(connected=False)
        chat = make_chat(socket, chat_api, streams)
        await chat.mount()
        await settle()
        assert socket.calls == []
        assert chat.fallback_active
        assert len(streams.open_streams) == 1

        socket.connected = True
        socket.fire("connect")
        await settle()
        assert chat.socket_ready
        assert streams.open_streams == []
        chat.unmount()

    async def test_failed_join_stays_on_sse(self, socket, chat_api, streams):
        socket.acks["chat:join"] = {"ok": False, "error": "Not a member"}
        chat = make_chat(socket, chat_api, streams)
        await chat.mount()
        await settle()
        assert not chat.socket_ready
        assert chat.fallback_active
        assert len(streams.streams) == 1
        chat.unmount()

    async def test_join_timeout_stays_on_sse(self, socket, chat_api, streams):
        socket.acks["chat:join"] = {"ok": False, "timeout": True}
        chat = make_chat(socket, chat_api, streams)
        await chat.mount()
        await settle()
        assert chat.fallback_active
        chat.unmount()

    async def test_unmount_during_load(self, socket, streams):
        gate = asyncio.Event()

        class SlowAPI(FakeChatAPI):
            async def get_or_create_chat(self, group_id):
                await gate.wait()
                return await super().get_or_create_chat(group_id)

        api = SlowAPI([make_message(1)])
        chat = make_chat(socket, api, streams)
        task = asyncio.create_task(chat.mount())
        await settle()
        chat.unmount()
        gate.set()
        await task
        assert chat.state is ChatState.UNMOUNTED
        assert len(chat.messages) == 0
        assert socket.listener_count() == 0
        assert streams.streams == []

    async def test_async_context_manager(self, socket, chat_api, streams):
        async with make_chat(socket, chat_api, streams) as chat:
            assert chat.state is ChatState.READY
        assert chat.state is ChatState.UNMOUNTED
        assert socket.listener_count() == 0


@pytest.mark.asyncio
class TestConnectionChanges:
    async def test_disconnect_reopens_sse(self, socket, chat_api, streams):
        chat = make_chat(socket, chat_api, streams)
        await chat.mount()
        await settle()
        assert streams.open_streams == []

        socket.connected = False
        socket.fire("disconnect")
        assert not chat.socket_ready
        assert len(streams.open_streams) == 1
        chat.unmount()

    async def test_connect_error_reopens_sse(self, socket, chat_api, streams):
        chat = make_chat(socket, chat_api, streams)
        await chat.mount()
        await settle()
        socket.fire("connect_error", "xhr poll error")
        assert chat.fallback_active
        chat.unmount()

    async def test_reconnect_rejoins(self, socket, chat_api, streams):
        chat = make_chat(socket, chat_api, streams)
        await chat.mount()
        await settle()
        socket.fire("disconnect")
        socket.fire("connect")
        socket.fire("reconnect")
        await settle()
        joins = [c for c in socket.calls if c[0] == "chat:join"]
        assert len(joins) == 2
        assert chat.socket_ready
        assert streams.open_streams == []
        assert len(streams.streams) == 2
        chat.unmount()

    async def test_rejoins_while_stale_join_is_pending(self, socket, chat_api, streams):
        gate = asyncio.Event()
        joins = []

        async def emit_with_ack(event, data, timeout=4.0):
            socket.calls.append((event, data))
            joins.append(data)
            if len(joins) == 1:
                await gate.wait()
                return {"ok": False, "timeout": True}
            return {"ok": True}

        socket.emit_with_ack = emit_with_ack
        chat = make_chat(socket, chat_api, streams)
        await chat.mount()
        await settle()
        assert len(joins) == 1

        socket.fire("disconnect")
        socket.fire("connect")
        socket.fire("reconnect")
        await settle()
        gate.set()
        await settle()

        assert len(joins) == 2
        assert chat.socket_ready
        assert not chat.fallback_active
        assert streams.open_streams == []
        chat.unmount()

    async def test_stale_join_ack_is_ignored(self, socket, chat_api, streams):
        gate = asyncio.Event()
        acks = iter([{"ok": True}, {"ok": False, "error": "Not a member"}])

        async def emit_with_ack(event, data, timeout=4.0):
            socket.calls.append((event, data))
            ack = next(acks)
            if ack["ok"]:
                await gate.wait()
            return ack

        socket.emit_with_ack = emit_with_ack
        chat = make_chat(socket, chat_api, streams)
        await chat.mount()
        await settle()

        # the first join is still waiting when the socket drops and returns
        socket.fire("disconnect")
        socket.fire("connect")
        await settle()
        gate.set()
        await settle()

        assert not chat.socket_ready
        assert chat.fallback_active
        chat.unmount()

    async def test_connect_while_joined_is_noop(self, socket, chat_api, streams):
        chat = make_chat(socket, chat_api, streams)
        await chat.mount()
        await settle()
        socket.fire("connect")
        await settle()
        assert [c[0] for c in socket.calls].count("chat:join") == 1
        assert len(streams.streams) == 1
        chat.unmount()

    async def test_single_fallback_stream(self, chat_api, streams):
        socket = FakeSocket(connected=False)
        chat = make_chat(socket, chat_api, streams)
        await chat.mount()
        socket.fire("disconnect")
        socket.fire("connect_error", None)
        assert len(streams.open_streams) == 1
        chat.unmount()


@pytest.mark.asyncio
class TestIncoming:
    async def test_push_then_sse_duplicate(self, socket, chat_api, streams):
        chat = make_chat(socket, chat_api, streams)
        await chat.mount()
        received = []
        chat.on_message(received.append)

        socket.fire("chat:message", make_message(10, "from socket"))
        stream = streams.streams[0]
        stream.on_event(sse(make_message(10, "from sse")))
        assert ids(chat) == [10]
        assert chat.messages.items[0].content == "from socket"
        assert [m.id for m in received] == [10]
        chat.unmount()

    async def test_sse_ignores_noise(self, chat_api, streams):
        socket = FakeSocket(connected=False)
        chat = make_chat(socket, chat_api, streams)
        await chat.mount()
        on_event = streams.streams[0].on_event
        on_event(sse("not json"))
        on_event(sse({"type": "ping"}))
        on_event(sse({"id": None, "content": "x"}))
        on_event(sse([1, 2, 3]))
        on_event(sse(make_message(4), event="ping"))
        on_event(sse({"id": 5}))
        assert len(chat.messages) == 0

        on_event(sse(make_message(6)))
        assert ids(chat) == [6]
        chat.unmount()

    async def test_invalid_push_is_dropped(self, socket, chat_api, streams):
        chat = make_chat(socket, chat_api, streams)
        await chat.mount()
        socket.fire("chat:message", {"content": "no id"})
        socket.fire("chat:message", "garbage")
        assert len(chat.messages) == 0
        chat.unmount()

    async def test_live_cap_drops_oldest(self, socket, streams):
        api = FakeChatAPI([make_message(i) for i in range(1, 101)])
        chat = make_chat(socket, api, streams)
        await chat.mount()
        socket.fire("chat:message", make_message(101))
        assert len(chat.messages) == 100
        assert ids(chat)[0] == 2
        assert ids(chat)[-1] == 101
        chat.unmount()

    async def test_listener_errors_do_not_stop_delivery(self, socket, chat_api, streams):
        chat = make_chat(socket, chat_api, streams)
        await chat.mount()

        def broken(message):
            raise RuntimeError("listener bug")

        received = []
        chat.on_message(broken)
        chat.on_message(received.append)
        socket.fire("chat:message", make_message(1))
        assert len(received) == 1
        chat.unmount()


@pytest.mark.asyncio
class TestSend:
    async def test_send_via_ack(self, socket, chat_api, streams):
        socket.acks["chat:send"] = lambda data: {"ok": True, "data": make_message(500, data["content"])}
        chat = make_chat(socket, chat_api, streams)
        await chat.mount()
        await settle()

        message = await chat.send("  hello  ")
        assert message.id == 500
        assert message.content == "hello"
        assert ("chat:send", {"groupId": 3, "content": "hello", "messageType": "text"}) in socket.calls
        assert chat_api.sent == []
        assert ids(chat) == [500]

        # the room broadcast of our own message
        socket.fire("chat:message", make_message(500, "hello"))
        assert ids(chat) == [500]
        chat.unmount()

    async def test_ack_timeout_falls_back_to_rest(self, socket, chat_api, streams):
        socket.acks["chat:send"] = {"ok": False, "timeout": True}
        chat = make_chat(socket, chat_api, streams)
        await chat.mount()
        await settle()

        message = await chat.send("hello")
        assert chat_api.sent == [(3, "hello", "text", 5.0)]
        assert ids(chat) == [message.id]
        chat.unmount()

    async def test_accepted_ack_without_data_is_not_resent(self, socket, chat_api, streams):
        socket.acks["chat:send"] = {"ok": True}
        chat = make_chat(socket, chat_api, streams)
        await chat.mount()
        await settle()
        assert await chat.send("hello") is None
        assert chat_api.sent == []
        assert len(chat.messages) == 0

        # the room broadcast still delivers it
        socket.fire("chat:message", make_message(500, "hello"))
        assert ids(chat) == [500]
        chat.unmount()

    async def test_accepted_ack_with_unreadable_data_is_not_resent(self, socket, chat_api, streams):
        socket.acks["chat:send"] = {"ok": True, "data": {"id": 500, "content": "hello"}}
        chat = make_chat(socket, chat_api, streams)
        await chat.mount()
        await settle()
        assert await chat.send("hello") is None
        assert [c[0] for c in socket.calls].count("chat:send") == 1
        assert chat_api.sent == []
        assert len(chat.messages) == 0
        chat.unmount()

    async def test_disconnected_sends_over_rest(self, chat_api, streams):
        socket = FakeSocket(connected=False)
        chat = make_chat(socket, chat_api, streams)
        await chat.mount()
        message = await chat.send("hello")
        assert socket.calls == []
        assert chat_api.sent[0][1] == "hello"
        assert ids(chat) == [message.id]

        # the same message arriving over SSE afterwards
        streams.streams[0].on_event(sse(message.model_dump(by_alias=True, mode="json")))
        assert len(chat.messages) == 1
        chat.unmount()

    async def test_both_paths_fail(self, socket, chat_api, streams):
        socket.acks["chat:send"] = {"ok": False, "error": "Failed to send message"}
        chat_api.send_error = HttpError(500, "Internal server error")
        chat = make_chat(socket, chat_api, streams)
        await chat.mount()
        await settle()

        with pytest.raises(SendError) as exc_info:
            await chat.send("keep me")
        assert exc_info.value.content == "keep me"
        assert len(chat.messages) == 0
        chat.unmount()

    async def test_forbidden_on_send_drops_membership(self, socket, chat_api, streams):
        chat_api.messages = [make_message(1)]
        chat_api.send_error = ForbiddenError("Not a member")
        socket.connected = False
        chat = make_chat(socket, chat_api, streams)
        await chat.mount()

        with pytest.raises(SendError):
            await chat.send("hello")
        assert chat.can_chat is False
        assert len(chat.messages) == 0
        assert socket.listener_count() == 0
        assert streams.open_streams == []

    async def test_empty_content_rejected(self, socket, chat_api, streams):
        chat = make_chat(socket, chat_api, streams)
        await chat.mount()
        with pytest.raises(InvalidInputError):
            await chat.send("   ")
        assert chat_api.sent == []
        chat.unmount()

    async def test_send_before_mount(self, socket, chat_api, streams):
        chat = make_chat(socket, chat_api, streams)
        with pytest.raises(SendError):
            await chat.send("hello")


@pytest.mark.asyncio
class TestUnmount:
    async def test_removes_everything(self, socket, chat_api, streams):
        chat = make_chat(socket, chat_api, streams)
        await chat.mount()
        await settle()
        assert socket.listener_count() == 5

        chat.unmount()
        assert socket.listener_count() == 0
        assert ("chat:leave", {"groupId": 3}) in socket.emitted
        assert streams.open_streams == []
        chat.unmount()
        assert socket.emitted.count(("chat:leave", {"groupId": 3})) == 1

    async def test_nothing_mutates_after_unmount(self, chat_api, streams):
        socket = FakeSocket(connected=False)
        chat = make_chat(socket, chat_api, streams)
        await chat.mount()
        on_event = streams.streams[0].on_event
        chat.unmount()

        on_event(sse(make_message(1)))
        socket.fire("chat:message", make_message(2))
        assert len(chat.messages) == 0
        assert chat.state is ChatState.UNMOUNTED

    async def test_pending_join_is_cancelled(self, socket, chat_api, streams):
        gate = asyncio.Event()

        async def slow_ack(event, data, timeout=4.0):
            socket.calls.append((event, data))
            await gate.wait()
            return {"ok": True}

        socket.emit_with_ack = slow_ack
        chat = make_chat(socket, chat_api, streams)
        await chat.mount()
        await settle()
        chat.unmount()
        gate.set()
        await settle()
        assert not chat.socket_ready
        assert streams.open_streams == []

    async def test_leave_skipped_when_disconnected(self, chat_api, streams):
        socket = FakeSocket(connected=False)
        chat = make_chat(socket, chat_api, streams)
        await chat.mount()
        chat.unmount()
        assert socket.emitted == []
        assert socket.listener_count() == 0
