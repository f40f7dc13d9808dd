"""
Auth client for Pendulum SDK.

Thin wrappers over the register/login/logout endpoints. Errors are
returned in the result objects, never raised.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx

from ._http import HeadersProvider, no_auth_headers, response_data, send
from .errors import RequestError

logger = logging.getLogger(__name__)


@dataclass
class AuthResult:
    """Outcome of an auth call."""

    success: bool
    error: str | None = None


@dataclass
class LoginResult(AuthResult):
    """Outcome of a login; carries the user ID on success."""

    user_id: str | None = None


class Auth:
    """Client for the auth endpoints."""

    def __init__(
        self,
        app_url: str,
        get_auth_headers: HeadersProvider = no_auth_headers,
        *,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ) -> None:
        self._base_url = f"{app_url.rstrip('/')}/auth"
        self._get_auth_headers = get_auth_headers
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=timeout)

    async def close(self) -> None:
        """Close the private HTTP client, if any."""
        if self._owns_client:
            await self._http.aclose()

    async def register(self, username: str, email: str, password: str) -> AuthResult:
        """Create a user account."""
        try:
            await self._post(
                "register",
                {"username": username, "email": email, "password": password},
                "Registration failed",
            )
        except RequestError as e:
            return AuthResult(success=False, error=e.message)
        return AuthResult(success=True)

    async def login(self, identifier: str, password: str) -> LoginResult:
        """Log in with a username or email."""
        try:
            response = await self._post(
                "login",
                {"identifier": identifier, "password": password},
                "Login failed",
            )
        except RequestError as e:
            return LoginResult(success=False, error=e.message)

        data = response_data(response)
        user_id = data.get("userId") if isinstance(data, dict) else None
        logger.info("Logged in" + (f" as {user_id}" if user_id else ""))
        return LoginResult(success=True, user_id=user_id)

    async def logout(self) -> AuthResult:
        """End the current session."""
        try:
            await self._post("logout", {}, "Logout failed")
        except RequestError as e:
            return AuthResult(success=False, error=e.message)
        return AuthResult(success=True)

    async def _post(self, endpoint: str, body: dict[str, str], default_error: str) -> httpx.Response:
        return await send(
            self._http,
            "POST",
            f"{self._base_url}/{endpoint}",
            default_error=default_error,
            headers=self._get_auth_headers(),
            json=body,
        )
