"""
Realtime client for Pendulum SDK.

This module provides the realtime subscription interface:
- StreamClient: Consumes the server's change event stream and fans
  events out to per-collection subscribers
- ConnectionState: Lifecycle of the stream
- backoff_delay: Delay before a reconnection attempt

Example:
    >>> async with StreamClient("http://localhost:3000/pendulum-events") as stream:
    ...     stream.subscribe("users", lambda event: print(event.action, event.payload))
    ...     await asyncio.sleep(60)

Invariants:
    - Events caused by this client's own pending mutations are not delivered
    - Every subscriber of a topic sees each delivered event once
    - A failing subscriber never affects other subscribers or the stream
    - CLOSED and FAILED are terminal; create a new client to resume
"""

from __future__ import annotations

import asyncio
import functools
import inspect
import logging
from enum import Enum
from typing import Any, Callable

from ._sse import EventConnection, Headers, SSEConnection
from .echo import EchoSuppressor, get_suppressor
from .errors import EventParseError, ReconnectExhaustedError
from .events import ChangeEvent, EventCallback, parse_event

logger = logging.getLogger(__name__)

DEFAULT_BASE_DELAY = 1.0
DEFAULT_MAX_RECONNECT_ATTEMPTS = 5

ConnectionFactory = Callable[[str], EventConnection]


class ConnectionState(Enum):
    """Stream client lifecycle."""

    CONNECTING = "connecting"
    OPEN = "open"
    RECONNECTING = "reconnecting"
    CLOSED = "closed"
    FAILED = "failed"


def backoff_delay(attempt: int, base_delay: float = DEFAULT_BASE_DELAY) -> float:
    """Linear backoff: seconds to wait before reconnection attempt N (1-based)."""
    if attempt < 1:
        raise ValueError(f"attempt must be >= 1, got {attempt}")
    return base_delay * attempt


class StreamClient:
    """Consumer of the Pendulum change event stream.

    Owns one live connection at a time. On a connection error it waits
    base_delay * attempt seconds and opens a replacement connection, up to
    max_reconnect_attempts times in a row without a successful open. After
    that the client is FAILED and stays that way.

    Subscriber callbacks take one ChangeEvent. A callback may be a
    coroutine function; its coroutine is scheduled, not awaited.
    """

    def __init__(
        self,
        url: str,
        suppressor: EchoSuppressor | None = None,
        *,
        headers: Headers | None = None,
        connection_factory: ConnectionFactory | None = None,
        base_delay: float = DEFAULT_BASE_DELAY,
        max_reconnect_attempts: int = DEFAULT_MAX_RECONNECT_ATTEMPTS,
        on_failure: Callable[[ReconnectExhaustedError], None] | None = None,
        autoconnect: bool = True,
    ) -> None:
        """Initialize the client.

        Args:
            url: Events endpoint, reused for every reconnection
            suppressor: Echo suppressor shared with the mutating client
            headers: Extra headers for the default SSE transport, or a
                callable returning them, evaluated on every connection attempt
            connection_factory: Builds a connection for a URL (defaults to SSEConnection)
            base_delay: Seconds per attempt in the reconnect backoff
            max_reconnect_attempts: Reconnections allowed before giving up
            on_failure: Called once when reconnection is exhausted
            autoconnect: Open the stream immediately
        """
        self.url = url
        self.suppressor = suppressor or get_suppressor()
        self.base_delay = base_delay
        self.max_reconnect_attempts = max_reconnect_attempts
        self.on_failure = on_failure
        self.last_error: BaseException | None = None

        if connection_factory is None:
            connection_factory = functools.partial(SSEConnection, headers=headers)
        self._connection_factory = connection_factory

        self._subscriptions: dict[str, set[EventCallback]] = {}
        self._connection: EventConnection | None = None
        self._state = ConnectionState.CONNECTING
        self._reconnect_attempts = 0
        self._reconnect_handle: asyncio.TimerHandle | None = None
        self._callback_tasks: set[asyncio.Task[Any]] = set()

        if autoconnect:
            self.connect()

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def reconnect_attempts(self) -> int:
        return self._reconnect_attempts

    @property
    def failed(self) -> bool:
        """Whether reconnection was exhausted."""
        return self._state is ConnectionState.FAILED

    @property
    def closed(self) -> bool:
        """Whether the client is in a terminal state."""
        return self._state in (ConnectionState.CLOSED, ConnectionState.FAILED)

    @property
    def connection(self) -> EventConnection | None:
        """The current connection object, if any."""
        return self._connection

    # Connection lifecycle

    def connect(self) -> None:
        """Open a fresh connection, replacing any existing one."""
        if self.closed:
            logger.warning(f"Stream client for {self.url} is {self._state.value}; not connecting")
            return

        if self._reconnect_handle is not None:
            self._reconnect_handle.cancel()
            self._reconnect_handle = None
        if self._connection is not None:
            self._connection.close()

        connection = self._connection_factory(self.url)
        connection.on_open = lambda: self._handle_open(connection)
        connection.on_message = lambda data: self._handle_message(connection, data)
        connection.on_error = lambda error: self._handle_error(connection, error)

        self._connection = connection
        self._state = ConnectionState.CONNECTING
        connection.open()

    def disconnect(self) -> None:
        """Close the stream and drop every subscription.

        No reconnection is attempted afterwards. Safe to call repeatedly.
        """
        if self._reconnect_handle is not None:
            self._reconnect_handle.cancel()
            self._reconnect_handle = None

        if self._connection is not None:
            self._connection.close()
            self._connection = None

        self._subscriptions.clear()

        if not self.closed:
            logger.info(f"Stream client for {self.url} disconnected")
            self._state = ConnectionState.CLOSED

    async def __aenter__(self) -> StreamClient:
        if self._connection is None and not self.closed:
            self.connect()
        return self

    async def __aexit__(self, *args: Any) -> None:
        self.disconnect()

    def _is_current(self, connection: EventConnection) -> bool:
        return connection is self._connection and not self.closed

    def _handle_open(self, connection: EventConnection) -> None:
        if not self._is_current(connection):
            return
        self._state = ConnectionState.OPEN
        self._reconnect_attempts = 0
        logger.info(f"Event stream connection opened: {self.url}")

    def _handle_error(self, connection: EventConnection, error: BaseException | None) -> None:
        if not self._is_current(connection):
            return

        self.last_error = error
        logger.warning(f"Event stream connection error: {error}")

        if self._reconnect_attempts >= self.max_reconnect_attempts:
            self._fail()
            return

        self._reconnect_attempts += 1
        delay = backoff_delay(self._reconnect_attempts, self.base_delay)
        self._state = ConnectionState.RECONNECTING
        logger.info(
            f"Attempting to reconnect in {delay:.1f}s "
            f"(attempt {self._reconnect_attempts}/{self.max_reconnect_attempts})"
        )

        loop = asyncio.get_running_loop()
        self._reconnect_handle = loop.call_later(delay, self.connect)

    def _fail(self) -> None:
        error = ReconnectExhaustedError(self.url, self._reconnect_attempts)
        self.last_error = error
        self._state = ConnectionState.FAILED

        if self._connection is not None:
            self._connection.close()
            self._connection = None

        logger.error(f"{error.message}. Create a new client to resume.")

        if self.on_failure is not None:
            try:
                self.on_failure(error)
            except Exception:
                logger.exception("on_failure handler raised")

    # Event delivery

    def _handle_message(self, connection: EventConnection, data: str) -> None:
        if not self._is_current(connection):
            return

        try:
            event = parse_event(data)
        except EventParseError as e:
            logger.warning(f"Discarding malformed event frame: {e.message}")
            return

        if self.suppressor.should_suppress(event):
            return

        self.dispatch(event)

    def dispatch(self, event: ChangeEvent) -> int:
        """Deliver an event to every subscriber of its topic.

        Args:
            event: Event to deliver

        Returns:
            Number of callbacks invoked
        """
        callbacks = tuple(self._subscriptions.get(event.topic, ()))
        for callback in callbacks:
            try:
                result = callback(event)
            except Exception:
                logger.exception(f"Subscriber for '{event.topic}' raised; continuing")
                continue

            if inspect.isawaitable(result):
                self._track(result, event.topic)

        return len(callbacks)

    def _track(self, awaitable: Any, topic: str) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.error(f"Async subscriber for '{topic}' called outside an event loop; dropped")
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            return

        task = asyncio.ensure_future(awaitable, loop=loop)
        self._callback_tasks.add(task)

        def _done(t: asyncio.Future[Any]) -> None:
            self._callback_tasks.discard(t)
            if not t.cancelled() and t.exception() is not None:
                logger.error(
                    f"Async subscriber for '{topic}' raised; continuing",
                    exc_info=t.exception(),
                )

        task.add_done_callback(_done)

    # Subscriptions

    def subscribe(self, topic: str, callback: EventCallback) -> None:
        """Register callback for a topic. Registering the same pair twice is a no-op."""
        self._subscriptions.setdefault(topic, set()).add(callback)

    def unsubscribe(self, topic: str, callback: EventCallback) -> None:
        """Remove a registration. Unknown pairs are ignored."""
        callbacks = self._subscriptions.get(topic)
        if callbacks is None:
            return
        callbacks.discard(callback)
        if not callbacks:
            del self._subscriptions[topic]

    def subscriber_count(self, topic: str | None = None) -> int:
        """Number of callbacks registered for a topic, or in total."""
        if topic is not None:
            return len(self._subscriptions.get(topic, ()))
        return sum(len(callbacks) for callbacks in self._subscriptions.values())

    def topics(self) -> list[str]:
        """Topics with at least one subscriber."""
        return list(self._subscriptions)
