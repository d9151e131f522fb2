"""HTTP client helpers for the REST and auth endpoints of the store."""

from typing import Any

import httpx

CLIENT_INFO = "smart-bookmarks-py"


def get_headers(
    api_key: str,
    token: str | None = None,
    extra: dict[str, str] | None = None,
) -> dict[str, str]:
    """
    Get common headers for store requests.

    Args:
        api_key: The public (anon) API key, sent on every request.
        token: The user's access token. Falls back to the API key, which
            makes the request anonymous.
        extra: Additional headers (e.g. Prefer) merged on top.
    """
    headers = {
        "apikey": api_key,
        "Authorization": f"Bearer {token or api_key}",
        "X-Client-Info": CLIENT_INFO,
    }
    if extra:
        headers.update(extra)
    return headers


async def api_get(
    client: httpx.AsyncClient,
    url: str,
    headers: dict[str, str],
    params: dict[str, Any] | None = None,
) -> Any:
    """Make an authenticated GET request and return the decoded JSON body."""
    response = await client.get(url, params=params, headers=headers)
    response.raise_for_status()
    return response.json()


async def api_post(
    client: httpx.AsyncClient,
    url: str,
    headers: dict[str, str],
    json: Any = None,
    params: dict[str, Any] | None = None,
) -> Any:
    """Make an authenticated POST request; returns None for empty bodies."""
    response = await client.post(url, json=json, params=params, headers=headers)
    response.raise_for_status()
    if not response.content:
        return None
    return response.json()


async def api_delete(
    client: httpx.AsyncClient,
    url: str,
    headers: dict[str, str],
    params: dict[str, Any] | None = None,
) -> None:
    """Make an authenticated DELETE request."""
    response = await client.delete(url, params=params, headers=headers)
    response.raise_for_status()
