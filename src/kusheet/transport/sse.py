"""
Server-Sent Events reader.

Used as the read-only fallback channel for group chat while the socket
room is not joined.
"""

import asyncio
import logging
from typing import AsyncIterator, Callable, Optional

from kusheet.transport.http import HttpClient

logger = logging.getLogger(__name__)


class ServerSentEvent:
    __slots__ = ("event", "data", "id")

    def __init__(self, event: str = "message", data: str = "", id: Optional[str] = None):
        self.event = event
        self.data = data
        self.id = id

    def __repr__(self) -> str:
        return f"ServerSentEvent(event={self.event!r}, id={self.id!r})"


async def iter_sse(lines: AsyncIterator[str]) -> AsyncIterator[ServerSentEvent]:
    """Turn a line stream into events. A blank line ends an event."""
    event = "message"
    data: list[str] = []
    last_id: Optional[str] = None
    async for line in lines:
        if not line:
            if data:
                yield ServerSentEvent(event, "\n".join(data), last_id)
            event, data = "message", []
            continue
        if line.startswith(":"):
            continue
        name, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if name == "event":
            event = value or "message"
        elif name == "data":
            data.append(value)
        elif name == "id":
            last_id = value
    if data:
        yield ServerSentEvent(event, "\n".join(data), last_id)


class EventStream:
    """One SSE connection running as a background task until closed or ended."""

    def __init__(
        self,
        http: HttpClient,
        path: str,
        on_event: Callable[[ServerSentEvent], None],
    ):
        self._http = http
        self._path = path
        self._on_event = on_event
        self._task: Optional[asyncio.Task[None]] = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def open(self) -> None:
        if self._task is not None or self._closed:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def _run(self) -> None:
        try:
            async with self._http.stream(self._path) as resp:
                async for event in iter_sse(resp.aiter_lines()):
                    if self._closed:
                        return
                    self._on_event(event)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning("SSE stream %s failed: %r", self._path, e)
        finally:
            self._closed = True

    def close(self) -> None:
        if self._closed and (self._task is None or self._task.done()):
            return
        self._closed = True
        if self._task is not None and not self._task.done():
            self._task.cancel()
