"""
Internal HTTP helpers shared by the REST clients.

Translates httpx failures into RequestError so the public clients can
turn them into result objects uniformly.
"""

from __future__ import annotations

import logging
from typing import Any, Callable

import httpx

from .errors import RequestError

logger = logging.getLogger(__name__)

HeadersProvider = Callable[[], dict[str, str]]


def no_auth_headers() -> dict[str, str]:
    return {}


def extract_error_message(response: httpx.Response, default: str) -> str:
    """Pull the server's error message out of a failed response.

    The API reports errors as {"error": {"message": ...}}, {"message": ...}
    or {"error": "..."}; anything else falls back to default.
    """
    try:
        body = response.json()
    except ValueError:
        return default

    if not isinstance(body, dict):
        return default

    error = body.get("error")
    if isinstance(error, dict) and isinstance(error.get("message"), str):
        return error["message"]
    if isinstance(body.get("message"), str):
        return body["message"]
    if isinstance(error, str):
        return error
    return default


def response_data(response: httpx.Response) -> Any:
    """Decoded JSON body, the raw text if it is not JSON, or None if empty."""
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


async def send(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    default_error: str,
    headers: dict[str, str] | None = None,
    params: dict[str, Any] | None = None,
    json: Any = None,
) -> httpx.Response:
    """Send a request and raise RequestError on any failure.

    Args:
        client: HTTP client
        method: HTTP method
        url: Absolute URL
        default_error: Message used when the server gives none
        headers: Request headers
        params: Query parameters (None values are dropped)
        json: JSON body

    Returns:
        The successful response

    Raises:
        RequestError: On transport failure or non-2xx status
    """
    if params is not None:
        params = {k: v for k, v in params.items() if v is not None}

    try:
        response = await client.request(method, url, headers=headers, params=params, json=json)
    except httpx.HTTPError as e:
        logger.warning(f"{method} {url} failed: {e}")
        raise RequestError(default_error) from e

    if response.is_error:
        message = extract_error_message(response, default_error)
        logger.debug(f"{method} {url} returned {response.status_code}: {message}")
        raise RequestError(message, status_code=response.status_code)

    return response
