"""
Pendulum client for Python SDK.

This module provides the main client interface:
- PendulumClient: Entry point bundling the database, auth and realtime
  clients around one set of credentials and one echo suppressor

Example:
    >>> async with PendulumClient(enable_realtime=True) as client:
    ...     client.realtime.subscribe("users", on_user_change)
    ...     await client.db.insert("users", [{"name": "Ada"}])

Invariants:
    - The admin key takes precedence over the user token for auth headers
    - db and realtime share one EchoSuppressor, so this client's own
      mutations are not delivered back to its subscribers
    - A 401 from an admin call clears all stored credentials
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from ._http import response_data, send
from .auth import Auth
from .config import Settings
from .db import Database, DatabaseResult
from .echo import EchoSuppressor
from .errors import RequestError
from .realtime import StreamClient
from .storage import ADMIN_KEY_KEY, AUTH_TOKEN_KEY, CredentialStore, get_credential_store

logger = logging.getLogger(__name__)


class PendulumClient:
    """Client for a Pendulum backend.

    Attributes:
        db: Record CRUD client
        auth: Register/login/logout client
        realtime: Change event stream client (only with enable_realtime)
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        enable_realtime: bool = False,
        store: CredentialStore | None = None,
        http_client: httpx.AsyncClient | None = None,
        suppressor: EchoSuppressor | None = None,
    ) -> None:
        """Initialize client.

        Args:
            settings: SDK settings (defaults loaded from environment)
            enable_realtime: Open the change event stream
            store: Credential store (defaults to the process-wide store)
            http_client: Shared AsyncClient for REST calls
            suppressor: Echo suppressor (a private one is created otherwise)
        """
        self.settings = settings or Settings()
        self._store = store or get_credential_store(self.settings.credentials_path)
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=self.settings.request_timeout)

        self._owns_suppressor = suppressor is None
        self.suppressor = suppressor or EchoSuppressor(
            ttl=self.settings.operation_ttl,
            sweep_interval=self.settings.sweep_interval,
        )

        self._auth_token = self._store.get(AUTH_TOKEN_KEY)
        self._admin_key = self._store.get(ADMIN_KEY_KEY)

        self.db = Database(
            self.settings.api_url,
            self.get_auth_headers,
            self.suppressor,
            http_client=self._http,
        )
        self.auth = Auth(self.settings.app_url, self.get_auth_headers, http_client=self._http)
        self.realtime: StreamClient | None = None
        if enable_realtime:
            self.realtime = StreamClient(
                self.settings.events_url,
                self.suppressor,
                headers=self.get_auth_headers,
                base_delay=self.settings.reconnect_base_delay,
                max_reconnect_attempts=self.settings.max_reconnect_attempts,
            )

    async def close(self) -> None:
        """Stop the stream, plus the expiry sweep and HTTP client this client created."""
        if self.realtime is not None:
            self.realtime.disconnect()
        if self._owns_suppressor:
            self.suppressor.reset()
        if self._owns_client:
            await self._http.aclose()

    async def __aenter__(self) -> PendulumClient:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    # Credentials

    def set_auth_token(self, token: str) -> None:
        self._auth_token = token
        self._store.set(AUTH_TOKEN_KEY, token)

    def get_auth_token(self) -> str | None:
        return self._auth_token

    def clear_auth_token(self) -> None:
        self._auth_token = None
        self._store.remove(AUTH_TOKEN_KEY)

    def set_admin_key(self, key: str) -> None:
        self._admin_key = key
        self._store.set(ADMIN_KEY_KEY, key)

    def get_admin_key(self) -> str | None:
        return self._admin_key

    def clear_admin_key(self) -> None:
        self._admin_key = None
        self._store.remove(ADMIN_KEY_KEY)

    def is_authenticated(self) -> bool:
        return bool(self._auth_token) or bool(self._admin_key)

    def is_admin(self) -> bool:
        return bool(self._admin_key)

    def get_auth_headers(self) -> dict[str, str]:
        """Bearer header for the admin key, else the user token, else nothing."""
        if self._admin_key:
            return {"Authorization": f"Bearer {self._admin_key}"}
        if self._auth_token:
            return {"Authorization": f"Bearer {self._auth_token}"}
        return {}

    # Administration

    async def validate_admin_key(self, key: str) -> DatabaseResult[None]:
        """Check an admin key with the server without storing it."""
        try:
            response = await send(
                self._http,
                "POST",
                f"{self.settings.app_url}/auth/admin/validate",
                default_error="Invalid admin key",
                json={"adminKey": key},
            )
        except RequestError as e:
            if e.status_code is None:
                return DatabaseResult(success=False, error="Failed to validate admin key")
            return DatabaseResult(success=False, error=e.message)

        data = response_data(response)
        if isinstance(data, dict) and data.get("success") and data.get("role") == "admin":
            return DatabaseResult(success=True)
        return DatabaseResult(success=False, error="Invalid admin key")

    async def get_collection_permissions(self, collection: str) -> DatabaseResult[Any]:
        """Get a collection's create/read/update/delete permissions."""
        return await self._admin_request(
            "GET",
            f"{self.settings.app_url}/permissions/{collection}/permissions",
            "Failed to get collection permissions",
        )

    async def update_collection_permissions(
        self,
        collection: str,
        permissions: dict[str, list[str]],
    ) -> DatabaseResult[Any]:
        """Replace a collection's permissions.

        Args:
            collection: Collection name
            permissions: Roles per operation, keyed create/read/update/delete
        """
        return await self._admin_request(
            "PUT",
            f"{self.settings.app_url}/permissions/{collection}/permissions",
            "Failed to update collection permissions",
            json={"newPermissions": permissions},
        )

    async def create_collection(self, collection: str) -> DatabaseResult[Any]:
        return await self._admin_request(
            "POST",
            f"{self.settings.app_url}/collections",
            "Failed to create collection",
            json={"newCollection": collection},
        )

    async def get_all_collections(self) -> DatabaseResult[Any]:
        return await self._admin_request(
            "GET",
            f"{self.settings.app_url}/collections",
            "Failed to get collections",
        )

    async def delete_collection(self, collection: str) -> DatabaseResult[Any]:
        return await self._admin_request(
            "DELETE",
            f"{self.settings.app_url}/collections",
            "Failed to delete collection",
            params={"collection": collection},
        )

    async def _admin_request(
        self,
        method: str,
        url: str,
        default_error: str,
        *,
        json: Any = None,
        params: dict[str, Any] | None = None,
    ) -> DatabaseResult[Any]:
        try:
            response = await send(
                self._http,
                method,
                url,
                default_error=default_error,
                headers=self.get_auth_headers(),
                params=params,
                json=json,
            )
        except RequestError as e:
            if e.status_code == 401:
                logger.warning("Credentials rejected; clearing stored auth token and admin key")
                self.clear_auth_token()
                self.clear_admin_key()
            return DatabaseResult(success=False, error=e.message)

        return DatabaseResult(success=True, data=response_data(response))
