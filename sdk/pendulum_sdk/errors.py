"""
Error types for Pendulum SDK.

This module defines all exception types raised by the SDK:
- PendulumError: Base exception
- StreamConnectionError: Event stream transport failure (retryable)
- ReconnectExhaustedError: Event stream gave up reconnecting (terminal)
- EventParseError: Inbound event frame could not be parsed
- RequestError: HTTP request to the Pendulum API failed
- ValidationError: Caller passed arguments the API cannot accept

Invariants:
    - All errors inherit from PendulumError
    - Errors include context for debugging
    - Credentials never appear in error messages or details
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional


class PendulumError(Exception):
    """Base exception for all Pendulum SDK errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "PENDULUM_ERROR"
        self.details = details or {}


class StreamConnectionError(PendulumError):
    """The event stream connection failed or was dropped.

    Raised (and passed to error handlers) when:
    - The events endpoint is unreachable
    - The server answers with a non-success status
    - The server closes the stream
    """

    def __init__(
        self,
        message: str,
        url: Optional[str] = None,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(
            message,
            code="STREAM_CONNECTION_ERROR",
            details={"url": url, "status_code": status_code},
        )
        self.url = url
        self.status_code = status_code


class ReconnectExhaustedError(PendulumError):
    """Max reconnection attempts reached.

    The stream client is permanently closed after this; a new
    StreamClient must be created to resume delivery.
    """

    def __init__(self, url: str, attempts: int) -> None:
        super().__init__(
            f"Max reconnection attempts ({attempts}) reached for {url}",
            code="RECONNECT_EXHAUSTED",
            details={"url": url, "attempts": attempts},
        )
        self.url = url
        self.attempts = attempts


class EventParseError(PendulumError):
    """An inbound event frame is malformed.

    Raised when:
    - The frame is not valid JSON
    - A required field is missing or has the wrong type
    - The payload does not match the event action
    """

    def __init__(
        self,
        message: str,
        field_name: Optional[str] = None,
        errors: Optional[List[str]] = None,
    ) -> None:
        super().__init__(
            message,
            code="EVENT_PARSE_ERROR",
            details={"field": field_name, "errors": errors or []},
        )
        self.field_name = field_name
        self.errors = errors or []


class RequestError(PendulumError):
    """An HTTP request to the Pendulum API failed.

    Attributes:
        status_code: HTTP status, or None for transport failures
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(
            message,
            code="REQUEST_ERROR",
            details={"status_code": status_code},
        )
        self.status_code = status_code


class ValidationError(PendulumError):
    """Arguments were rejected before any request was sent.

    Raised when:
    - A bulk delete is given no ids
    - A required argument is empty
    """

    def __init__(
        self,
        message: str,
        field_name: Optional[str] = None,
    ) -> None:
        super().__init__(
            message,
            code="VALIDATION_ERROR",
            details={"field": field_name},
        )
        self.field_name = field_name
