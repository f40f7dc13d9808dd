"""
Echo suppression for Pendulum SDK.

When this client mutates a collection, the server publishes the resulting
change event to every connected client, including this one. The
EchoSuppressor lets the realtime stream recognise that echo and drop it:

- The mutating caller generates an operation id and registers it as pending
- The id travels with the request and comes back on the change event
- The stream asks should_suppress() before delivering the event

Pending entries are single-use and expire. An echo that arrives after its
entry expired is delivered as if it came from another client.

Example:
    >>> suppressor = EchoSuppressor()
    >>> op_id = suppressor.generate_operation_id()
    >>> suppressor.register_pending(op_id, "users", "insert")
    >>> # ... send request with operationId=op_id ...
    >>> suppressor.should_suppress(event)  # event.operation_id == op_id
    True

Invariants:
    - An operation id suppresses at most one event
    - Expired entries never suppress
    - No operation raises; all state is in memory
"""

from __future__ import annotations

import asyncio
import logging
import random
import string
import threading
import time
from dataclasses import dataclass
from typing import Callable

from .events import Action, ChangeEvent

logger = logging.getLogger(__name__)

DEFAULT_OPERATION_TTL = 30.0
DEFAULT_SWEEP_INTERVAL = 10.0

_SUFFIX_ALPHABET = string.digits + string.ascii_lowercase

# Global suppressor
_global_suppressor: EchoSuppressor | None = None
_suppressor_lock = threading.Lock()


@dataclass(frozen=True)
class PendingOperation:
    """A local mutation whose change event has not arrived yet.

    Attributes:
        operation_id: Correlation id sent with the request
        topic: Collection being mutated
        action: Kind of mutation
        created_at: Clock reading when the operation was registered
    """

    operation_id: str
    topic: str
    action: Action
    created_at: float


class EchoSuppressor:
    """Registry of in-flight local mutations.

    Thread safety:
        All access to pending entries goes through one lock, so ids can be
        registered from worker threads while the event loop consumes them.

    Attributes:
        ttl: Seconds a pending entry stays suppressible
        sweep_interval: Seconds between expiry sweeps
    """

    def __init__(
        self,
        ttl: float = DEFAULT_OPERATION_TTL,
        sweep_interval: float = DEFAULT_SWEEP_INTERVAL,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize suppressor.

        Args:
            ttl: Seconds a pending entry stays suppressible
            sweep_interval: Seconds between expiry sweeps
            clock: Time source for entry ages
        """
        self.ttl = ttl
        self.sweep_interval = sweep_interval
        self._clock = clock
        self._pending: dict[str, PendingOperation] = {}
        self._lock = threading.Lock()
        self._sweep_task: asyncio.Task[None] | None = None
        self.start()

    @property
    def sweeping(self) -> bool:
        """Whether the background sweep is running."""
        task = self._sweep_task
        return task is not None and not task.done() and not task.get_loop().is_closed()

    @staticmethod
    def generate_operation_id() -> str:
        """Generate a new operation id.

        Millisecond timestamp plus a random base36 suffix. Unique with
        overwhelming probability among concurrently pending operations.
        """
        suffix = "".join(random.choices(_SUFFIX_ALPHABET, k=7))
        return f"{int(time.time() * 1000)}-{suffix}"

    def register_pending(
        self,
        operation_id: str,
        topic: str,
        action: Action | str,
    ) -> None:
        """Record a mutation that is about to be sent.

        Must be called once per id, before the request goes out.

        Args:
            operation_id: Id from generate_operation_id()
            topic: Collection being mutated
            action: Kind of mutation
        """
        if isinstance(action, str):
            action = Action.from_str(action)

        operation = PendingOperation(
            operation_id=operation_id,
            topic=topic,
            action=action,
            created_at=self._clock(),
        )
        with self._lock:
            self._pending[operation_id] = operation

        self.start()
        logger.debug(f"Added pending operation {operation_id}: {action.value} on {topic}")

    def should_suppress(self, event: ChangeEvent) -> bool:
        """Decide whether an event is this client's own echo.

        Consumes the pending entry on a match, so a duplicate frame with the
        same operation id is delivered.

        Args:
            event: Inbound change event

        Returns:
            True if the event should be dropped
        """
        with self._lock:
            operation = self._pending.pop(event.operation_id, None)

        if operation is None:
            return False

        logger.debug(
            f"Ignoring event {event.operation_id}; "
            f"{event.action.value} on {event.topic} triggered by this client"
        )
        return True

    def discard(self, operation_id: str) -> None:
        """Forget a pending operation without suppressing anything.

        Used when the mutation request failed and no echo will come.
        """
        with self._lock:
            self._pending.pop(operation_id, None)

    def sweep(self, now: float | None = None) -> int:
        """Remove every pending entry older than the TTL.

        Args:
            now: Clock reading to measure ages against (defaults to clock())

        Returns:
            Number of entries removed
        """
        if now is None:
            now = self._clock()

        with self._lock:
            expired = [
                op_id
                for op_id, operation in self._pending.items()
                if now - operation.created_at > self.ttl
            ]
            for op_id in expired:
                del self._pending[op_id]

        for op_id in expired:
            logger.debug(f"Cleaned up expired operation {op_id}")
        if expired:
            logger.info(f"Cleaned up {len(expired)} expired operations")

        return len(expired)

    def start(self) -> None:
        """Start the background sweep on the running event loop.

        No-op when already sweeping or when called outside an event loop.
        """
        if self.sweeping:
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return

        self._sweep_task = loop.create_task(self._sweep_loop())

    async def _sweep_loop(self) -> None:
        """Run sweep() every sweep_interval seconds until cancelled."""
        try:
            while True:
                await asyncio.sleep(self.sweep_interval)
                self.sweep()
        except asyncio.CancelledError:
            logger.debug("Pending operation sweep cancelled")
            raise

    def reset(self) -> None:
        """Clear all pending entries and stop the sweep.

        Safe to call more than once.
        """
        task, self._sweep_task = self._sweep_task, None
        if task is not None and not task.done() and not task.get_loop().is_closed():
            task.cancel()

        with self._lock:
            self._pending.clear()

        logger.debug("EchoSuppressor reset")

    def pending_count(self) -> int:
        """Number of pending operations."""
        with self._lock:
            return len(self._pending)

    def list_pending(self) -> list[PendingOperation]:
        """Snapshot of pending operations."""
        with self._lock:
            return list(self._pending.values())


def get_suppressor() -> EchoSuppressor:
    """Get the process-wide echo suppressor."""
    global _global_suppressor
    with _suppressor_lock:
        if _global_suppressor is None:
            _global_suppressor = EchoSuppressor()
        return _global_suppressor


def reset_suppressor() -> None:
    """Reset the process-wide suppressor (for testing only)."""
    global _global_suppressor
    with _suppressor_lock:
        if _global_suppressor is not None:
            _global_suppressor.reset()
        _global_suppressor = None
