"""
Unit tests for change event parsing.

Tests cover:
- Parsing each action into its payload variant
- Wire name mapping
- Rejection of malformed frames
- Per-action payload requirements
"""

import json

import pytest

from pendulum_sdk.errors import EventParseError
from pendulum_sdk.events import (
    Action,
    ChangeEvent,
    DeleteData,
    InsertData,
    UpdateData,
    parse_event,
)


def frame(**overrides):
    """Build a valid insert frame, with overrides."""
    data = {
        "collection": "users",
        "action": "insert",
        "operationId": "op-1",
        "eventData": {"affected": [{"id": "1", "name": "Ada"}], "count": 1, "ids": ["1"]},
    }
    data.update(overrides)
    return data


class TestParseEvent:
    """Tests for parse_event on well-formed frames."""

    def test_parse_insert(self):
        """Insert frame becomes InsertData."""
        event = parse_event(json.dumps(frame()))

        assert isinstance(event, ChangeEvent)
        assert event.topic == "users"
        assert event.collection == "users"
        assert event.action is Action.INSERT
        assert event.operation_id == "op-1"
        assert event.payload == InsertData(
            affected=[{"id": "1", "name": "Ada"}],
            count=1,
            ids=["1"],
        )

    def test_parse_update(self):
        """updateOperation maps to update_operation."""
        event = parse_event(
            frame(
                action="update",
                eventData={
                    "filter": {"age": {"$gt": 30}},
                    "updateOperation": {"$set": {"active": True}},
                    "count": 2,
                },
            )
        )

        assert event.action is Action.UPDATE
        assert isinstance(event.payload, UpdateData)
        assert event.payload.filter == {"age": {"$gt": 30}}
        assert event.payload.update_operation == {"$set": {"active": True}}
        assert event.payload.count == 2
        assert event.payload.ids is None

    def test_parse_delete_with_count_only(self):
        """Delete needs only one of its expected fields."""
        event = parse_event(frame(action="delete", eventData={"count": 3}))

        assert isinstance(event.payload, DeleteData)
        assert event.payload.count == 3

    def test_parse_bytes(self):
        """Frames may arrive as bytes."""
        event = parse_event(json.dumps(frame()).encode("utf-8"))
        assert event.operation_id == "op-1"

    def test_insert_ignores_fields_it_does_not_carry(self):
        """updateOperation on an insert is dropped, not an error."""
        event = parse_event(
            frame(eventData={"ids": ["1"], "updateOperation": {"$set": {"x": 1}}})
        )

        assert event.payload == InsertData(ids=["1"])

    def test_raw_frame_kept(self):
        """The decoded frame is available on the event."""
        data = frame(extra="value")
        event = parse_event(data)

        assert event.raw["extra"] == "value"

    def test_to_dict_uses_wire_names(self):
        """to_dict produces the wire format."""
        data = frame(
            action="update",
            eventData={"ids": ["1"], "updateOperation": {"$set": {"x": 1}}},
        )

        assert parse_event(data).to_dict() == data


class TestParseEventErrors:
    """Tests for parse_event on malformed frames."""

    def test_invalid_json(self):
        """Non-JSON text is rejected."""
        with pytest.raises(EventParseError, match="not valid JSON"):
            parse_event("{not json")

    def test_non_object(self):
        """A JSON array is rejected."""
        with pytest.raises(EventParseError, match="JSON object"):
            parse_event("[1, 2]")

    def test_missing_collection(self):
        """collection is required."""
        data = frame()
        del data["collection"]

        with pytest.raises(EventParseError, match="collection"):
            parse_event(data)

    def test_missing_operation_id(self):
        """operationId is required."""
        with pytest.raises(EventParseError, match="operationId"):
            parse_event(frame(operationId=None))

    def test_unknown_action(self):
        """Only insert, update and delete are accepted."""
        with pytest.raises(EventParseError, match="action"):
            parse_event(frame(action="upsert"))

    def test_all_errors_reported(self):
        """Every top-level problem is listed."""
        with pytest.raises(EventParseError) as exc_info:
            parse_event({"action": "nope", "eventData": []})

        assert len(exc_info.value.errors) == 4
        assert exc_info.value.code == "EVENT_PARSE_ERROR"

    def test_insert_needs_affected_or_ids(self):
        """An insert payload with only a count is rejected."""
        with pytest.raises(EventParseError, match="at least one of"):
            parse_event(frame(eventData={"count": 1}))

    def test_missing_event_data(self):
        """A frame without eventData has nothing to describe the change."""
        data = frame()
        del data["eventData"]

        with pytest.raises(EventParseError):
            parse_event(data)

    def test_ids_must_be_strings(self):
        """ids entries must be strings."""
        with pytest.raises(EventParseError, match=r"ids\[1\]"):
            parse_event(frame(eventData={"ids": ["1", 2]}))

    def test_count_rejects_bool(self):
        """count must be a real integer."""
        with pytest.raises(EventParseError, match="count"):
            parse_event(frame(action="delete", eventData={"count": True}))

    def test_filter_must_be_object(self):
        """filter must be a JSON object."""
        with pytest.raises(EventParseError, match="filter"):
            parse_event(frame(action="delete", eventData={"filter": "age > 3"}))


class TestAction:
    """Tests for Action."""

    def test_from_str(self):
        assert Action.from_str("delete") is Action.DELETE

    def test_from_str_invalid(self):
        with pytest.raises(ValueError, match="Invalid action"):
            Action.from_str("drop")
