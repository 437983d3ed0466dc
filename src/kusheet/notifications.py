"""
User notifications — REST listing plus the ``notify:new`` socket push.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Optional, Union

from pydantic import ValidationError

from kusheet.errors import KuSheetError
from kusheet.models.notification import Notification, NotificationPage
from kusheet.transport.http import HttpClient
from kusheet.transport.socketio import SocketIOManager

logger = logging.getLogger(__name__)

FEED_LIMIT = 20
PAGE_SIZE = 10

NotificationId = Union[int, str]


class NotificationsAPI:
    def __init__(self, http: HttpClient):
        self._http = http

    async def list(self, limit: int = PAGE_SIZE, cursor: Optional[NotificationId] = None) -> NotificationPage:
        params: dict[str, Any] = {"limit": limit}
        if cursor is not None:
            params["cursor"] = cursor
        return NotificationPage.model_validate(await self._http.get("/notifications", params=params))

    async def mark_read(self, notification_id: NotificationId) -> dict[str, Any]:
        return await self._http.patch(f"/notifications/{notification_id}/read")

    async def mark_all_read(self) -> dict[str, Any]:
        return await self._http.patch("/notifications/read-all")


class NotificationFeed:
    """Most recent notifications for the signed-in user, kept live over the shared socket."""

    def __init__(self, socket: SocketIOManager, api: NotificationsAPI, limit: int = FEED_LIMIT):
        self._socket = socket
        self._api = api
        self._limit = limit
        self.items: list[Notification] = []
        self.unread_count = 0
        self.next_cursor: Optional[NotificationId] = None
        self.loading = False
        self._remove: Optional[Callable[[], None]] = None

    async def load(self, limit: int = PAGE_SIZE) -> None:
        self.loading = True
        try:
            page = await self._api.list(limit=limit)
        except (KuSheetError, ValidationError) as e:
            logger.warning("Failed to load notifications: %r", e)
            page = NotificationPage()
        finally:
            self.loading = False
        self.items = page.items
        self.unread_count = page.unread_count
        self.next_cursor = page.next_cursor

    async def load_more(self, limit: int = PAGE_SIZE) -> list[Notification]:
        """Append the next older page. Returns what was added."""
        if self.next_cursor is None:
            return []
        try:
            page = await self._api.list(limit=limit, cursor=self.next_cursor)
        except (KuSheetError, ValidationError) as e:
            logger.warning("Failed to load more notifications: %r", e)
            return []
        seen = {n.id for n in self.items}
        added = [n for n in page.items if n.id not in seen]
        self.items.extend(added)
        self.next_cursor = page.next_cursor
        return added

    def start(self) -> None:
        if self._remove is None:
            self._remove = self._socket.on("notify:new", self._on_notify)

    def stop(self) -> None:
        remove, self._remove = self._remove, None
        if remove is not None:
            remove()

    def _on_notify(self, payload: Any) -> None:
        try:
            item = Notification.model_validate(payload)
        except ValidationError as e:
            logger.debug("Dropping invalid notification push: %s", e)
            return
        self.add(item)

    def add(self, item: Notification) -> bool:
        if any(n.id == item.id for n in self.items):
            return False
        self.items = [item, *self.items][: self._limit]
        self.unread_count += 1
        return True

    async def mark_read(self, notification_id: NotificationId) -> None:
        try:
            await self._api.mark_read(notification_id)
        except KuSheetError as e:
            logger.warning("Failed to mark notification %s read: %r", notification_id, e)
            return
        now = datetime.now(timezone.utc)
        self.items = [
            n.model_copy(update={"read_at": now}) if n.id == notification_id else n
            for n in self.items
        ]
        self.unread_count = max(0, self.unread_count - 1)

    async def mark_all_read(self) -> None:
        try:
            await self._api.mark_all_read()
        except KuSheetError as e:
            logger.warning("Failed to mark all notifications read: %r", e)
            return
        now = datetime.now(timezone.utc)
        self.items = [n if n.read_at else n.model_copy(update={"read_at": now}) for n in self.items]
        self.unread_count = 0
