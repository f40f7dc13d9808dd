"""
Pendulum Python SDK - Client library for the Pendulum backend.

This SDK provides:
- PendulumClient bundling database, auth and realtime access
- Database for record CRUD
- StreamClient for per-collection change events over SSE
- EchoSuppressor so a client does not re-process its own mutations

Example:
    >>> from pendulum_sdk import PendulumClient
    >>>
    >>> async with PendulumClient(enable_realtime=True) as client:
    ...     client.realtime.subscribe("posts", lambda event: print(event.action))
    ...     await client.db.insert("posts", [{"title": "Hello"}])

Invariants:
    - Change events caused by this client's pending mutations are suppressed once
    - REST methods report failures in result objects instead of raising
    - The stream reconnects with linear backoff and gives up after a bounded
      number of attempts

Version: 1.0.0
"""

__version__ = "1.0.0"

from .auth import Auth, AuthResult, LoginResult
from .client import PendulumClient
from .config import Settings
from .db import Database, DatabaseResult
from .echo import EchoSuppressor, PendingOperation, get_suppressor, reset_suppressor
from .errors import (
    EventParseError,
    PendulumError,
    ReconnectExhaustedError,
    RequestError,
    StreamConnectionError,
    ValidationError,
)
from .events import (
    Action,
    ChangeEvent,
    DeleteData,
    EventCallback,
    InsertData,
    UpdateData,
    parse_event,
)
from .realtime import ConnectionState, StreamClient, backoff_delay
from .storage import CredentialStore, get_credential_store

__all__ = [
    # Version
    "__version__",
    # Client
    "PendulumClient",
    "Settings",
    "Database",
    "DatabaseResult",
    "Auth",
    "AuthResult",
    "LoginResult",
    "CredentialStore",
    "get_credential_store",
    # Realtime
    "StreamClient",
    "ConnectionState",
    "backoff_delay",
    "EchoSuppressor",
    "PendingOperation",
    "get_suppressor",
    "reset_suppressor",
    # Events
    "Action",
    "ChangeEvent",
    "InsertData",
    "UpdateData",
    "DeleteData",
    "EventCallback",
    "parse_event",
    # Errors
    "PendulumError",
    "StreamConnectionError",
    "ReconnectExhaustedError",
    "EventParseError",
    "RequestError",
    "ValidationError",
]
