"""
Notification records — GET /notifications and the notify:new push.
"""

from datetime import datetime
from typing import Any, Optional, Union

from pydantic import BaseModel, Field


class Notification(BaseModel):
    id: Union[int, str]
    user_id: Optional[Union[int, str]] = Field(default=None, alias="userId")
    type: str = "system"
    title: str = ""
    body: Optional[str] = None
    link: Optional[str] = None
    data: Optional[Any] = None
    read_at: Optional[datetime] = Field(default=None, alias="readAt")
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")

    model_config = {"populate_by_name": True}

    @property
    def is_read(self) -> bool:
        return self.read_at is not None


class NotificationPage(BaseModel):
    items: list[Notification] = Field(default_factory=list)
    unread_count: int = Field(default=0, alias="unreadCount")
    next_cursor: Optional[Union[int, str]] = Field(default=None, alias="nextCursor")

    model_config = {"populate_by_name": True}
