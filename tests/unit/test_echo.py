"""
Unit tests for echo suppression.

Tests cover:
- Operation id generation
- Single-use suppression
- Expiry sweeps
- Reset and introspection
- Background sweep lifecycle
- Process-wide suppressor
"""

import asyncio
import re
from concurrent.futures import ThreadPoolExecutor

import pytest

from pendulum_sdk.echo import (
    EchoSuppressor,
    PendingOperation,
    get_suppressor,
    reset_suppressor,
)
from pendulum_sdk.events import Action, parse_event


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_event(operation_id: str, topic: str = "users", action: str = "insert"):
    """Build a parsed change event."""
    return parse_event(
        {
            "collection": topic,
            "action": action,
            "operationId": operation_id,
            "eventData": {"affected": [{"id": "1"}], "ids": ["1"]},
        }
    )


class TestOperationIds:
    """Tests for generate_operation_id."""

    def test_format(self):
        """Ids are a millisecond timestamp and a base36 suffix."""
        op_id = EchoSuppressor.generate_operation_id()
        assert re.fullmatch(r"\d{13}-[0-9a-z]{7}", op_id)

    def test_unique(self):
        """Ids do not collide across many calls."""
        suppressor = EchoSuppressor()
        ids = {suppressor.generate_operation_id() for _ in range(5000)}
        assert len(ids) == 5000

    def test_no_side_effects(self):
        """Generating an id does not register it."""
        suppressor = EchoSuppressor()
        suppressor.generate_operation_id()
        assert suppressor.pending_count() == 0


class TestSuppression:
    """Tests for register_pending / should_suppress."""

    @pytest.fixture
    def clock(self):
        return FakeClock()

    @pytest.fixture
    def suppressor(self, clock):
        suppressor = EchoSuppressor(ttl=30.0, sweep_interval=10.0, clock=clock)
        yield suppressor
        suppressor.reset()

    def test_own_event_suppressed_once(self, suppressor):
        """A matching event is suppressed exactly once."""
        suppressor.register_pending("op-1", "users", "insert")
        event = make_event("op-1")

        assert suppressor.should_suppress(event) is True
        assert suppressor.should_suppress(event) is False
        assert suppressor.pending_count() == 0

    def test_foreign_event_delivered(self, suppressor):
        """Events with unknown ids are not suppressed."""
        suppressor.register_pending("op-1", "users", "insert")

        assert suppressor.should_suppress(make_event("op-2")) is False
        assert suppressor.pending_count() == 1

    def test_register_records_metadata(self, suppressor, clock):
        """Pending entries carry topic, action and timestamp."""
        suppressor.register_pending("op-1", "posts", Action.DELETE)

        assert suppressor.list_pending() == [
            PendingOperation(
                operation_id="op-1",
                topic="posts",
                action=Action.DELETE,
                created_at=clock.now,
            )
        ]

    def test_string_action_converted(self, suppressor):
        """Actions may be given as strings."""
        suppressor.register_pending("op-1", "posts", "update")
        assert suppressor.list_pending()[0].action is Action.UPDATE

    def test_discard(self, suppressor):
        """Discarded operations no longer suppress; discard is idempotent."""
        suppressor.register_pending("op-1", "users", "insert")

        suppressor.discard("op-1")
        suppressor.discard("op-1")

        assert suppressor.should_suppress(make_event("op-1")) is False

    def test_list_pending_is_snapshot(self, suppressor):
        """Mutating the returned list does not touch the registry."""
        suppressor.register_pending("op-1", "users", "insert")
        pending = suppressor.list_pending()
        pending.clear()

        assert suppressor.pending_count() == 1

    def test_concurrent_registration(self, suppressor):
        """Registrations from worker threads are all recorded."""

        def register(i):
            suppressor.register_pending(f"op-{i}", "users", "insert")

        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(register, range(200)))

        assert suppressor.pending_count() == 200


class TestSweep:
    """Tests for expiry."""

    @pytest.fixture
    def clock(self):
        return FakeClock()

    @pytest.fixture
    def suppressor(self, clock):
        suppressor = EchoSuppressor(ttl=30.0, clock=clock)
        yield suppressor
        suppressor.reset()

    def test_expired_entries_removed(self, suppressor, clock):
        """Entries older than the TTL are swept."""
        suppressor.register_pending("old", "users", "insert")
        clock.advance(20)
        suppressor.register_pending("new", "users", "insert")
        clock.advance(11)

        removed = suppressor.sweep()

        assert removed == 1
        assert [op.operation_id for op in suppressor.list_pending()] == ["new"]

    def test_expired_entry_never_suppresses(self, suppressor, clock):
        """A late echo is delivered as a foreign event."""
        suppressor.register_pending("op-1", "users", "insert")
        clock.advance(31)
        suppressor.sweep()

        assert suppressor.should_suppress(make_event("op-1")) is False

    def test_entry_at_ttl_kept(self, suppressor, clock):
        """Entries are removed only once strictly older than the TTL."""
        suppressor.register_pending("op-1", "users", "insert")
        clock.advance(30)

        assert suppressor.sweep() == 0
        assert suppressor.pending_count() == 1

    def test_sweep_with_explicit_now(self, suppressor, clock):
        """sweep() accepts the reference time."""
        suppressor.register_pending("op-1", "users", "insert")

        assert suppressor.sweep(now=clock.now + 60) == 1


class TestLifecycle:
    """Tests for the background sweep and reset."""

    def test_no_sweep_outside_event_loop(self):
        """Constructed outside a loop, the sweep waits to be started."""
        suppressor = EchoSuppressor()
        assert not suppressor.sweeping

    def test_reset_clears_and_is_idempotent(self):
        """reset() empties the registry and can be repeated."""
        suppressor = EchoSuppressor()
        suppressor.register_pending("op-1", "users", "insert")

        suppressor.reset()
        suppressor.reset()

        assert suppressor.pending_count() == 0
        assert suppressor.list_pending() == []

    @pytest.mark.asyncio
    async def test_sweep_starts_in_event_loop(self):
        """Constructed inside a loop, the sweep runs immediately."""
        suppressor = EchoSuppressor()
        try:
            assert suppressor.sweeping
        finally:
            suppressor.reset()

        assert not suppressor.sweeping

    @pytest.mark.asyncio
    async def test_background_sweep_expires_entries(self):
        """The periodic sweep removes expired entries on its own."""
        suppressor = EchoSuppressor(ttl=0.0, sweep_interval=0.01)
        try:
            suppressor.register_pending("op-1", "users", "insert")
            await asyncio.sleep(0.1)

            assert suppressor.pending_count() == 0
        finally:
            suppressor.reset()

    @pytest.mark.asyncio
    async def test_register_restarts_sweep_after_reset(self):
        """A suppressor reused after reset() sweeps again."""
        suppressor = EchoSuppressor()
        suppressor.reset()

        suppressor.register_pending("op-1", "users", "insert")
        try:
            assert suppressor.sweeping
        finally:
            suppressor.reset()


class TestGlobalSuppressor:
    """Tests for the process-wide suppressor."""

    @pytest.fixture(autouse=True)
    def clean(self):
        reset_suppressor()
        yield
        reset_suppressor()

    def test_same_instance(self):
        assert get_suppressor() is get_suppressor()

    def test_reset_replaces_instance(self):
        """reset_suppressor() drops pending state with the instance."""
        first = get_suppressor()
        first.register_pending("op-1", "users", "insert")

        reset_suppressor()

        assert get_suppressor() is not first
        assert first.pending_count() == 0
