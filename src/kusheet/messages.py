"""
Group chat REST API.
"""

from __future__ import annotations

from typing import Any, Optional

from kusheet.errors import InvalidInputError
from kusheet.models.message import ChatMessage, ChatRoom, MessageId
from kusheet.transport.http import HttpClient

MESSAGE_TYPES = {"text", "image", "file"}
MAX_CONTENT_LENGTH = 2000


def clean_content(content: str) -> str:
    text = (content or "").strip()
    if not text:
        raise InvalidInputError("Message content is required")
    return text[:MAX_CONTENT_LENGTH]


class ChatAPI:
    def __init__(self, http: HttpClient):
        self._http = http

    async def get_or_create_chat(self, group_id: MessageId) -> ChatRoom:
        """Fetch the group's chat with its recent messages; the server creates it on first access."""
        data = await self._http.get(f"/groups/{group_id}/chat")
        return ChatRoom.model_validate(data)

    async def list_messages(
        self, group_id: MessageId, page: int = 1, limit: int = 50,
    ) -> tuple[list[ChatMessage], dict[str, Any]]:
        """Page through history, newest page first; each page is oldest-first."""
        data = await self._http.get(f"/groups/{group_id}/chat/messages", params={"page": page, "limit": limit})
        messages = [ChatMessage.model_validate(m) for m in data.get("messages", [])]
        return messages, data.get("pagination", {})

    async def send_message(
        self,
        group_id: MessageId,
        content: str,
        message_type: str = "text",
        timeout: Optional[float] = None,
    ) -> ChatMessage:
        if message_type not in MESSAGE_TYPES:
            message_type = "text"
        data = await self._http.post(
            f"/groups/{group_id}/chat/messages",
            {"content": clean_content(content), "messageType": message_type},
            timeout=timeout,
        )
        return ChatMessage.model_validate(data)

    @staticmethod
    def stream_path(group_id: MessageId) -> str:
        return f"/groups/{group_id}/chat/stream"
