"""
Database client for Pendulum SDK.

Record CRUD over the Pendulum REST API. Every mutation takes part in echo
suppression: it generates an operation id, registers it as pending with
the EchoSuppressor, and sends it as operationId so the change event the
server publishes can be recognised as this client's own.

Example:
    >>> db = Database("http://localhost:3000/pendulum/api", suppressor=suppressor)
    >>> result = await db.insert("users", [{"name": "Ada"}])
    >>> if result.success:
    ...     print(result.data)

Invariants:
    - Methods never raise for HTTP or transport errors; they return a
      DatabaseResult with success=False
    - A mutation registers its operation id before the request is sent
    - A failed mutation leaves no pending operation behind
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

import httpx

from ._http import HeadersProvider, no_auth_headers, response_data, send
from .echo import EchoSuppressor, get_suppressor
from .errors import RequestError, ValidationError
from .events import Action

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class DatabaseResult(Generic[T]):
    """Outcome of a database call.

    Attributes:
        success: Whether the call succeeded
        data: Response body on success
        error: Error message on failure
    """

    success: bool
    data: T | None = None
    error: str | None = None


class Database:
    """Client for record CRUD endpoints."""

    def __init__(
        self,
        api_url: str,
        get_auth_headers: HeadersProvider = no_auth_headers,
        suppressor: EchoSuppressor | None = None,
        *,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ) -> None:
        """Initialize the client.

        Args:
            api_url: Root of the CRUD endpoints (".../pendulum/api")
            get_auth_headers: Returns headers to attach to every request
            suppressor: Echo suppressor shared with the realtime client
            http_client: Shared AsyncClient; a private one is created otherwise
            timeout: Request timeout for the private client
        """
        self._base_url = api_url.rstrip("/")
        self._get_auth_headers = get_auth_headers
        self.suppressor = suppressor or get_suppressor()
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=timeout)

    async def close(self) -> None:
        """Close the private HTTP client, if any."""
        if self._owns_client:
            await self._http.aclose()

    # Reads

    async def get_one(self, collection: str, id: str) -> DatabaseResult[Any]:
        """Get a single record by ID."""
        return await self._read(
            f"{self._base_url}/{id}",
            {"collection": collection},
            "Failed to fetch record",
        )

    async def get_some(
        self,
        collection: str,
        limit: int = 10,
        offset: int = 0,
        sort_key: str | None = None,
    ) -> DatabaseResult[Any]:
        """Get a page of records."""
        return await self._read(
            f"{self._base_url}/some",
            {"collection": collection, "limit": limit, "offset": offset, "sortKey": sort_key},
            "Failed to fetch records",
        )

    async def get_all(self, collection: str) -> DatabaseResult[Any]:
        """Get every record in a collection."""
        return await self._read(
            self._base_url,
            {"collection": collection},
            "Failed to fetch records",
        )

    # Mutations

    async def insert(self, collection: str, new_items: list[dict[str, Any]]) -> DatabaseResult[Any]:
        """Insert new records."""
        return await self._mutate(
            "POST",
            self._base_url,
            collection,
            Action.INSERT,
            "Failed to insert records",
            body={"collection": collection, "newItems": new_items},
        )

    async def update_one(
        self,
        collection: str,
        id: str,
        update_operation: dict[str, Any],
    ) -> DatabaseResult[Any]:
        """Apply an update operation to one record."""
        return await self._mutate(
            "PATCH",
            f"{self._base_url}/{id}",
            collection,
            Action.UPDATE,
            "Failed to update record",
            body={"collection": collection, "updateOperation": update_operation},
        )

    async def update_some(
        self,
        collection: str,
        filter: dict[str, Any],
        update_operation: dict[str, Any],
    ) -> DatabaseResult[Any]:
        """Apply an update operation to records matching a filter."""
        return await self._mutate(
            "PATCH",
            f"{self._base_url}/some",
            collection,
            Action.UPDATE,
            "Failed to update records",
            body={"collection": collection, "filter": filter, "updateOperation": update_operation},
        )

    async def update_all(self, collection: str, update_operation: dict[str, Any]) -> DatabaseResult[Any]:
        """Apply an update operation to every record."""
        return await self._mutate(
            "PATCH",
            self._base_url,
            collection,
            Action.UPDATE,
            "Failed to update records",
            body={"collection": collection, "updateOperation": update_operation},
        )

    async def replace(self, collection: str, id: str, new_item: dict[str, Any]) -> DatabaseResult[Any]:
        """Replace one record entirely."""
        return await self._mutate(
            "PUT",
            f"{self._base_url}/{id}",
            collection,
            Action.UPDATE,
            "Failed to replace record",
            body={"collection": collection, "newItem": new_item},
        )

    async def remove_one(self, collection: str, id: str) -> DatabaseResult[Any]:
        """Delete one record."""
        return await self._mutate(
            "DELETE",
            f"{self._base_url}/{id}",
            collection,
            Action.DELETE,
            "Failed to delete record",
            params={"collection": collection},
        )

    async def remove_some(self, collection: str, ids: list[str]) -> DatabaseResult[Any]:
        """Delete records by ID. At least one ID is required."""
        if not ids:
            error = ValidationError("At least one id is required to delete records", field_name="ids")
            return DatabaseResult(success=False, error=error.message)

        return await self._mutate(
            "DELETE",
            f"{self._base_url}/some",
            collection,
            Action.DELETE,
            "Failed to delete records",
            params={"collection": collection, "ids": ",".join(ids)},
        )

    async def remove_all(self, collection: str) -> DatabaseResult[Any]:
        """Delete every record in a collection."""
        return await self._mutate(
            "DELETE",
            self._base_url,
            collection,
            Action.DELETE,
            "Failed to delete records",
            params={"collection": collection},
        )

    async def _read(self, url: str, params: dict[str, Any], default_error: str) -> DatabaseResult[Any]:
        try:
            response = await send(
                self._http,
                "GET",
                url,
                default_error=default_error,
                headers=self._get_auth_headers(),
                params=params,
            )
        except RequestError as e:
            return DatabaseResult(success=False, error=e.message)

        return DatabaseResult(success=True, data=response_data(response))

    async def _mutate(
        self,
        method: str,
        url: str,
        collection: str,
        action: Action,
        default_error: str,
        *,
        body: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> DatabaseResult[Any]:
        """Send a mutation tagged with a fresh, pending operation id.

        The id goes in the JSON body when there is one, in the query otherwise.
        """
        operation_id = self.suppressor.generate_operation_id()
        self.suppressor.register_pending(operation_id, collection, action)

        if body is not None:
            body = {**body, "operationId": operation_id}
        else:
            params = {**(params or {}), "operationId": operation_id}

        try:
            response = await send(
                self._http,
                method,
                url,
                default_error=default_error,
                headers=self._get_auth_headers(),
                params=params,
                json=body,
            )
        except RequestError as e:
            self.suppressor.discard(operation_id)
            return DatabaseResult(success=False, error=e.message)

        return DatabaseResult(success=True, data=response_data(response))
