"""
Internal Server-Sent Events transport for Pendulum SDK.

This module provides the low-level push-stream connection used by
StreamClient. It is internal to the SDK and should not be used directly.

One SSEConnection object represents one connection attempt. It reports
lifecycle through callbacks (on_open, on_message, on_error) and never
reconnects on its own; StreamClient replaces it with a fresh object.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Iterator, Protocol, Union

import httpx

from .errors import StreamConnectionError

logger = logging.getLogger(__name__)

Headers = Union[Dict[str, str], Callable[[], Dict[str, str]]]


class ReadyState(Enum):
    """Connection lifecycle, mirroring the browser EventSource."""

    CONNECTING = 0
    OPEN = 1
    CLOSED = 2


@dataclass
class SSEMessage:
    """One dispatched server-sent event."""

    data: str
    event: str = "message"
    id: str | None = None


class SSEParser:
    """Incremental parser for the text/event-stream line protocol.

    Feed it decoded lines (without trailing newline); it yields a message
    for every blank line that terminates an event with data.
    """

    def __init__(self) -> None:
        self._data: list[str] = []
        self._event = ""
        self.last_event_id: str | None = None
        self.retry_ms: int | None = None

    def feed(self, line: str) -> Iterator[SSEMessage]:
        """Process one line, yielding a message if it completes an event."""
        if line == "":
            message = self._dispatch()
            if message is not None:
                yield message
            return

        if line.startswith(":"):
            return

        name, sep, value = line.partition(":")
        if sep and value.startswith(" "):
            value = value[1:]

        if name == "data":
            self._data.append(value)
        elif name == "event":
            self._event = value
        elif name == "id":
            if "\0" not in value:
                self.last_event_id = value
        elif name == "retry":
            if value.isdigit():
                self.retry_ms = int(value)

    def _dispatch(self) -> SSEMessage | None:
        data, event = self._data, self._event
        self._data, self._event = [], ""
        if not data:
            return None
        return SSEMessage(
            data="\n".join(data),
            event=event or "message",
            id=self.last_event_id,
        )


class EventConnection(Protocol):
    """What StreamClient needs from a push-stream connection."""

    url: str
    on_open: Callable[[], None] | None
    on_message: Callable[[str], None] | None
    on_error: Callable[[BaseException], None] | None

    @property
    def ready_state(self) -> ReadyState: ...

    def open(self) -> None: ...

    def close(self) -> None: ...


class SSEConnection:
    """One SSE connection over httpx.

    open() schedules a reader task on the running event loop. The task
    fires on_open once the response headers arrive, on_message for every
    default-type event, and on_error exactly once when the stream fails
    or the server ends it.
    """

    def __init__(
        self,
        url: str,
        *,
        headers: Headers | None = None,
        timeout: httpx.Timeout | float | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the connection.

        Args:
            url: Events endpoint
            headers: Extra request headers (e.g. Authorization), or a callable
                returning them, evaluated when the request is sent
            timeout: httpx timeout; reads never time out by default
            client: Shared AsyncClient; a private one is created otherwise
        """
        self.url = url
        self.on_open: Callable[[], None] | None = None
        self.on_message: Callable[[str], None] | None = None
        self.on_error: Callable[[BaseException], None] | None = None
        self._headers = headers
        self._timeout = timeout if timeout is not None else httpx.Timeout(10.0, read=None)
        self._client = client
        self._ready_state = ReadyState.CONNECTING
        self._task: asyncio.Task[None] | None = None
        self._parser = SSEParser()

    @property
    def ready_state(self) -> ReadyState:
        return self._ready_state

    @property
    def last_event_id(self) -> str | None:
        return self._parser.last_event_id

    def request_headers(self) -> dict[str, str]:
        """Headers for the stream request, including the extra headers."""
        extra = self._headers() if callable(self._headers) else self._headers
        headers = {"Accept": "text/event-stream", "Cache-Control": "no-cache"}
        headers.update(extra or {})
        return headers

    def open(self) -> None:
        """Start reading the stream on the running event loop."""
        if self._task is not None:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    def close(self) -> None:
        """Close the stream. No callbacks fire after this."""
        self._ready_state = ReadyState.CLOSED
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def _run(self) -> None:
        request_headers = self.request_headers()

        try:
            if self._client is not None:
                await self._consume(self._client, request_headers)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    await self._consume(client, request_headers)
            error: BaseException = StreamConnectionError(
                "Event stream closed by server", url=self.url
            )
        except asyncio.CancelledError:
            raise
        except httpx.HTTPStatusError as e:
            error = StreamConnectionError(
                f"Event stream rejected: HTTP {e.response.status_code}",
                url=self.url,
                status_code=e.response.status_code,
            )
        except (httpx.HTTPError, httpx.InvalidURL, httpx.StreamError, OSError) as e:
            error = StreamConnectionError(f"Event stream failed: {e}", url=self.url)

        if self._ready_state is ReadyState.CLOSED:
            return
        self._ready_state = ReadyState.CLOSED
        self._fire(self.on_error, error)

    async def _consume(self, client: httpx.AsyncClient, headers: dict[str, str]) -> None:
        async with client.stream("GET", self.url, headers=headers) as response:
            response.raise_for_status()
            if self._ready_state is ReadyState.CLOSED:
                return
            self._ready_state = ReadyState.OPEN
            self._fire(self.on_open)

            async for line in response.aiter_lines():
                for message in self._parser.feed(line.rstrip("\r")):
                    if self._ready_state is ReadyState.CLOSED:
                        return
                    if message.event == "message":
                        self._fire(self.on_message, message.data)

    def _fire(self, callback: Callable[..., Any] | None, *args: Any) -> None:
        if callback is not None:
            callback(*args)
