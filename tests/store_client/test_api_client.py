"""Tests for the store HTTP client helper functions."""

import httpx
import pytest
import respx
from httpx import Response

from store_client.api_client import api_delete, api_get, api_post, get_headers

BASE_URL = "http://localhost:54321"


@pytest.fixture
def mock_api() -> respx.MockRouter:
    """Context manager for mocking API responses."""
    with respx.mock(base_url=BASE_URL) as respx_mock:
        yield respx_mock


def test__get_headers__falls_back_to_api_key() -> None:
    """Test that anonymous requests authorize with the public key."""
    headers = get_headers("anon-key")

    assert headers["apikey"] == "anon-key"
    assert headers["Authorization"] == "Bearer anon-key"


def test__get_headers__uses_token_and_extra_headers() -> None:
    """Test that a user token and extra headers are applied."""
    headers = get_headers("anon-key", "user-token", {"Prefer": "return=representation"})

    assert headers["Authorization"] == "Bearer user-token"
    assert headers["Prefer"] == "return=representation"
    assert headers["apikey"] == "anon-key"


@pytest.mark.asyncio
async def test__api_get__sends_headers_and_params(mock_api: respx.MockRouter) -> None:
    """Test that GET forwards headers and query parameters."""
    route = mock_api.get("/rest/v1/bookmarks").mock(return_value=Response(200, json=[]))

    async with httpx.AsyncClient() as client:
        result = await api_get(
            client,
            f"{BASE_URL}/rest/v1/bookmarks",
            get_headers("anon-key", "tok"),
            params={"user_id": "eq.u1"},
        )

    assert result == []
    request = route.calls[0].request
    assert request.headers["authorization"] == "Bearer tok"
    assert request.url.params["user_id"] == "eq.u1"


@pytest.mark.asyncio
async def test__api_post__empty_body_returns_none(mock_api: respx.MockRouter) -> None:
    """Test that 204 responses decode to None."""
    mock_api.post("/auth/v1/logout").mock(return_value=Response(204))

    async with httpx.AsyncClient() as client:
        result = await api_post(client, f"{BASE_URL}/auth/v1/logout", get_headers("k"))

    assert result is None


@pytest.mark.asyncio
async def test__api_delete__raises_on_error_status(mock_api: respx.MockRouter) -> None:
    """Test that error statuses raise HTTPStatusError."""
    mock_api.delete("/rest/v1/bookmarks").mock(return_value=Response(500))

    async with httpx.AsyncClient() as client:
        with pytest.raises(httpx.HTTPStatusError):
            await api_delete(client, f"{BASE_URL}/rest/v1/bookmarks", get_headers("k"))
