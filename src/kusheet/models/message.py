"""
Group chat records, as sent by the REST API, the socket and the SSE stream.
"""

from datetime import datetime
from typing import Optional, Union

from pydantic import BaseModel, Field

MessageId = Union[int, str]


class ChatUser(BaseModel):
    id: MessageId
    full_name: Optional[str] = Field(default=None, alias="fullName")
    picture: Optional[str] = None

    model_config = {"populate_by_name": True}


class ChatMessage(BaseModel):
    id: MessageId
    chat_id: Optional[MessageId] = Field(default=None, alias="chatId")
    user: ChatUser
    content: str = ""
    message_type: str = Field(default="text", alias="messageType")
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")

    model_config = {"populate_by_name": True}


class ChatRoom(BaseModel):
    """GET /groups/{id}/chat payload.data"""
    id: MessageId
    group_id: Optional[MessageId] = Field(default=None, alias="groupId")
    messages: list[ChatMessage] = Field(default_factory=list)

    model_config = {"populate_by_name": True}
