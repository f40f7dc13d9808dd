"""
Change event types for Pendulum SDK.

This module provides the types delivered over the realtime stream:
- Action: Kind of mutation that produced the event
- InsertData / UpdateData / DeleteData: Payload variant per action
- ChangeEvent: One parsed stream frame

Frames are parsed and validated once, at the stream boundary, by
parse_event(). Everything downstream works with typed events.

Wire format:
    {
        "collection": "users",
        "action": "insert",
        "operationId": "1718000000000-k3j9x2a",
        "eventData": {"affected": [...], "count": 1, "ids": ["1"]}
    }

Invariants:
    - topic, action and operation_id are always present
    - The payload type always matches the action
    - Each payload carries at least one of the fields its action implies
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from dataclasses import field as dataclass_field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from .errors import EventParseError


class Action(Enum):
    """Mutation kinds reported by the server."""

    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"

    @classmethod
    def from_str(cls, value: str) -> Action:
        """Convert string to Action."""
        for action in cls:
            if action.value == value:
                return action
        raise ValueError(f"Invalid action: {value}")


@dataclass(frozen=True)
class InsertData:
    """Payload of an insert event.

    Attributes:
        affected: Inserted records
        count: Number of inserted records
        ids: IDs of inserted records
    """

    affected: Optional[List[Any]] = None
    count: Optional[int] = None
    ids: Optional[List[str]] = None


@dataclass(frozen=True)
class UpdateData:
    """Payload of an update event.

    Attributes:
        affected: Records after the update
        filter: Filter that selected the records
        update_operation: Changes that were applied
        count: Number of updated records
        ids: IDs of updated records
    """

    affected: Optional[List[Any]] = None
    filter: Optional[Dict[str, Any]] = None
    update_operation: Optional[Dict[str, Any]] = None
    count: Optional[int] = None
    ids: Optional[List[str]] = None


@dataclass(frozen=True)
class DeleteData:
    """Payload of a delete event.

    Attributes:
        affected: Deleted records, when the server reports them
        filter: Filter that selected the records
        count: Number of deleted records
        ids: IDs of deleted records
    """

    affected: Optional[List[Any]] = None
    filter: Optional[Dict[str, Any]] = None
    count: Optional[int] = None
    ids: Optional[List[str]] = None


EventPayload = Union[InsertData, UpdateData, DeleteData]

# action -> (payload type, fields of which at least one must be present)
_PAYLOAD_VARIANTS: Dict[Action, Tuple[type, Tuple[str, ...]]] = {
    Action.INSERT: (InsertData, ("affected", "ids")),
    Action.UPDATE: (UpdateData, ("affected", "ids", "count", "update_operation")),
    Action.DELETE: (DeleteData, ("ids", "count", "filter", "affected")),
}

# wire name -> attribute name
_PAYLOAD_FIELDS = {
    "affected": "affected",
    "filter": "filter",
    "updateOperation": "update_operation",
    "count": "count",
    "ids": "ids",
}


@dataclass(frozen=True)
class ChangeEvent:
    """A database change delivered over the realtime stream.

    Attributes:
        topic: Collection the change happened in
        action: Kind of mutation
        operation_id: Correlation id echoed from the originating request
        payload: Action-specific payload
        raw: The decoded frame as received
    """

    topic: str
    action: Action
    operation_id: str
    payload: EventPayload
    raw: Dict[str, Any] = dataclass_field(default_factory=dict, compare=False, repr=False)

    @property
    def collection(self) -> str:
        """Wire name of the topic."""
        return self.topic

    def to_dict(self) -> Dict[str, Any]:
        """Convert to wire format."""
        event_data: Dict[str, Any] = {}
        for wire_name, attr in _PAYLOAD_FIELDS.items():
            value = getattr(self.payload, attr, None)
            if value is not None:
                event_data[wire_name] = value
        return {
            "collection": self.topic,
            "action": self.action.value,
            "operationId": self.operation_id,
            "eventData": event_data,
        }


EventCallback = Callable[[ChangeEvent], Any]


def parse_event(data: Union[str, bytes, Dict[str, Any]]) -> ChangeEvent:
    """Parse one stream frame into a ChangeEvent.

    Args:
        data: Frame body (JSON text) or an already decoded dict

    Returns:
        Validated ChangeEvent

    Raises:
        EventParseError: If the frame is not JSON or fails validation
    """
    if isinstance(data, (str, bytes)):
        try:
            decoded = json.loads(data)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise EventParseError(f"Frame is not valid JSON: {e}") from e
    else:
        decoded = data

    if not isinstance(decoded, dict):
        raise EventParseError(
            f"Frame must be a JSON object, got {type(decoded).__name__}"
        )

    errors: List[str] = []

    topic = decoded.get("collection")
    if not isinstance(topic, str) or not topic:
        errors.append("Field 'collection' must be a non-empty string")

    operation_id = decoded.get("operationId")
    if not isinstance(operation_id, str) or not operation_id:
        errors.append("Field 'operationId' must be a non-empty string")

    action: Optional[Action] = None
    raw_action = decoded.get("action")
    try:
        action = Action.from_str(raw_action)
    except ValueError:
        errors.append(f"Field 'action' must be one of insert, update, delete, got {raw_action!r}")

    event_data = decoded.get("eventData", {})
    if not isinstance(event_data, dict):
        errors.append(f"Field 'eventData' must be an object, got {type(event_data).__name__}")
        event_data = {}

    if errors:
        raise EventParseError("; ".join(errors), errors=errors)

    payload = _parse_payload(action, event_data)

    return ChangeEvent(
        topic=topic,
        action=action,
        operation_id=operation_id,
        payload=payload,
        raw=decoded,
    )


def _parse_payload(action: Action, event_data: Dict[str, Any]) -> EventPayload:
    """Build the payload variant for an action.

    Raises:
        EventParseError: If a field has the wrong type or no expected field is present
    """
    payload_type, expected = _PAYLOAD_VARIANTS[action]
    allowed = set(payload_type.__dataclass_fields__)
    errors: List[str] = []
    values: Dict[str, Any] = {}

    for wire_name, attr in _PAYLOAD_FIELDS.items():
        value = event_data.get(wire_name)
        if value is None or attr not in allowed:
            continue
        error = _validate_payload_field(wire_name, value)
        if error:
            errors.append(error)
        else:
            values[attr] = value

    if errors:
        raise EventParseError("; ".join(errors), errors=errors)

    if not any(name in values for name in expected):
        wire_names = [k for k, v in _PAYLOAD_FIELDS.items() if v in expected]
        raise EventParseError(
            f"'{action.value}' event needs at least one of {wire_names} in eventData",
            field_name="eventData",
        )

    return payload_type(**values)


def _validate_payload_field(name: str, value: Any) -> Optional[str]:
    """Validate a single eventData field.

    Returns error message if invalid, None if valid.
    """
    if name == "affected":
        if not isinstance(value, list):
            return f"Field 'eventData.{name}' must be a list, got {type(value).__name__}"

    elif name == "ids":
        if not isinstance(value, list):
            return f"Field 'eventData.{name}' must be a list, got {type(value).__name__}"
        for i, item in enumerate(value):
            if not isinstance(item, str):
                return f"Field 'eventData.{name}[{i}]' must be a string"

    elif name == "count":
        if not isinstance(value, int) or isinstance(value, bool) or value < 0:
            return f"Field 'eventData.{name}' must be a non-negative integer"

    elif name in ("filter", "updateOperation"):
        if not isinstance(value, dict):
            return f"Field 'eventData.{name}' must be an object, got {type(value).__name__}"

    return None
