"""Tests for the Supabase-backed store using mocked HTTP."""
import json
from collections.abc import AsyncGenerator
from datetime import UTC, datetime, timedelta
from pathlib import Path

import httpx
import pytest
import respx
from httpx import Response

from core.config import Settings
from schemas.bookmark import BookmarkCreate
from schemas.session import AuthSession, Identity
from store_client.auth import AuthenticationError, SessionStorage
from store_client.errors import StoreError
from store_client.store import SupabaseStore

BASE_URL = "http://localhost:54321"

ROW = {
    "id": 1,
    "title": "A",
    "url": "https://a.com",
    "user_id": "u1",
    "created_at": "2024-01-01T00:00:01+00:00",
}
USER = {
    "id": "u1",
    "email": "u1@example.com",
    "user_metadata": {"full_name": "User One", "avatar_url": "https://img/u1.png"},
}


def _session_body(expires_at: int | None = None) -> dict:
    return {
        "access_token": "access-1",
        "refresh_token": "refresh-1",
        "token_type": "bearer",
        "expires_in": 3600,
        "expires_at": expires_at or int(datetime.now(UTC).timestamp()) + 3600,
        "user": USER,
    }


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        _env_file=None,
        supabase_url=BASE_URL,
        supabase_anon_key="anon-key",
        session_file=tmp_path / "session.json",
    )


@pytest.fixture
def mock_api() -> respx.MockRouter:
    """Context manager for mocking API responses."""
    with respx.mock(base_url=BASE_URL, assert_all_called=False) as respx_mock:
        yield respx_mock


@pytest.fixture
async def signed_in(settings: Settings) -> AsyncGenerator[SupabaseStore]:
    """Store with a persisted, unexpired session."""
    SessionStorage(settings.session_file).save(AuthSession.model_validate(_session_body()))
    store = SupabaseStore(settings)
    yield store
    await store.aclose()


@pytest.fixture
async def anonymous(settings: Settings) -> AsyncGenerator[SupabaseStore]:
    store = SupabaseStore(settings)
    yield store
    await store.aclose()


# =============================================================================
# Rows
# =============================================================================


async def test__fetch__filters_by_owner_newest_first(
    mock_api: respx.MockRouter,
    signed_in: SupabaseStore,
) -> None:
    """Test that fetch scopes to the identity and orders by created_at desc."""
    route = mock_api.get("/rest/v1/bookmarks").mock(return_value=Response(200, json=[ROW]))

    result = await signed_in.fetch(Identity(id="u1"))

    assert [b.id for b in result] == [1]
    params = route.calls[0].request.url.params
    assert params["user_id"] == "eq.u1"
    assert params["order"] == "created_at.desc"
    assert params["select"] == "*"
    headers = route.calls[0].request.headers
    assert headers["authorization"] == "Bearer access-1"
    assert headers["apikey"] == "anon-key"


async def test__fetch__http_error_becomes_store_error(
    mock_api: respx.MockRouter,
    signed_in: SupabaseStore,
) -> None:
    """Test that a rejected fetch raises a categorized StoreError."""
    mock_api.get("/rest/v1/bookmarks").mock(
        return_value=Response(401, json={"message": "JWT expired"}),
    )

    with pytest.raises(StoreError) as exc_info:
        await signed_in.fetch(Identity(id="u1"))

    assert exc_info.value.category == "auth"
    assert exc_info.value.message == "JWT expired"


async def test__fetch__transport_error_is_unavailable(
    mock_api: respx.MockRouter,
    signed_in: SupabaseStore,
) -> None:
    """Test that an unreachable store raises StoreError(unavailable)."""
    mock_api.get("/rest/v1/bookmarks").mock(side_effect=httpx.ConnectError("refused"))

    with pytest.raises(StoreError) as exc_info:
        await signed_in.fetch(Identity(id="u1"))

    assert exc_info.value.category == "unavailable"


async def test__fetch__malformed_row_is_internal_error(
    mock_api: respx.MockRouter,
    signed_in: SupabaseStore,
) -> None:
    """Test that rows missing required columns are rejected."""
    mock_api.get("/rest/v1/bookmarks").mock(return_value=Response(200, json=[{"id": 1}]))

    with pytest.raises(StoreError) as exc_info:
        await signed_in.fetch(Identity(id="u1"))

    assert exc_info.value.category == "internal"


async def test__insert__posts_owned_row_and_returns_canonical_record(
    mock_api: respx.MockRouter,
    signed_in: SupabaseStore,
) -> None:
    """Test that insert sends the owner and asks for the stored row back."""
    route = mock_api.post("/rest/v1/bookmarks").mock(return_value=Response(201, json=[ROW]))

    record = await signed_in.insert(
        BookmarkCreate(title="A", url="a.com"), Identity(id="u1"),
    )

    assert record.id == 1
    request = route.calls[0].request
    assert json.loads(request.content) == [
        {"title": "A", "url": "https://a.com", "user_id": "u1"},
    ]
    assert request.headers["prefer"] == "return=representation"


async def test__insert__empty_response_is_error(
    mock_api: respx.MockRouter,
    signed_in: SupabaseStore,
) -> None:
    """Test that an insert returning no row fails."""
    mock_api.post("/rest/v1/bookmarks").mock(return_value=Response(201, json=[]))

    with pytest.raises(StoreError):
        await signed_in.insert(BookmarkCreate(title="A", url="a.com"), Identity(id="u1"))


async def test__delete__filters_by_id(
    mock_api: respx.MockRouter,
    signed_in: SupabaseStore,
) -> None:
    """Test that delete targets a single id."""
    route = mock_api.delete("/rest/v1/bookmarks").mock(return_value=Response(204))

    await signed_in.delete(42)

    assert route.calls[0].request.url.params["id"] == "eq.42"


async def test__delete__forbidden_raises(
    mock_api: respx.MockRouter,
    signed_in: SupabaseStore,
) -> None:
    mock_api.delete("/rest/v1/bookmarks").mock(return_value=Response(403, json={}))

    with pytest.raises(StoreError) as exc_info:
        await signed_in.delete(42)

    assert exc_info.value.category == "forbidden"


# =============================================================================
# Auth
# =============================================================================


async def test__sign_in_with_password__persists_session(
    mock_api: respx.MockRouter,
    anonymous: SupabaseStore,
    settings: Settings,
) -> None:
    """Test that a successful sign-in stores the session and returns the identity."""
    route = mock_api.post("/auth/v1/token").mock(return_value=Response(200, json=_session_body()))

    identity = await anonymous.sign_in_with_password("u1@example.com", "pw")

    assert identity.id == "u1"
    assert identity.display_name == "User One"
    assert route.calls[0].request.url.params["grant_type"] == "password"
    stored = SessionStorage(settings.session_file).load()
    assert stored is not None
    assert stored.access_token == "access-1"


async def test__sign_in_with_password__bad_credentials(
    mock_api: respx.MockRouter,
    anonymous: SupabaseStore,
) -> None:
    """Test that rejected credentials raise AuthenticationError."""
    mock_api.post("/auth/v1/token").mock(
        return_value=Response(
            400, json={"error": "invalid_grant", "error_description": "Invalid login credentials"},
        ),
    )

    with pytest.raises(AuthenticationError, match="Invalid login credentials"):
        await anonymous.sign_in_with_password("u1@example.com", "wrong")


async def test__get_current_identity__no_session_skips_request(
    mock_api: respx.MockRouter,
    anonymous: SupabaseStore,
) -> None:
    """Test that without a session the identity is absent and nothing is called."""
    assert await anonymous.get_current_identity() is None
    assert not mock_api.calls


async def test__get_current_identity__returns_user(
    mock_api: respx.MockRouter,
    signed_in: SupabaseStore,
) -> None:
    mock_api.get("/auth/v1/user").mock(return_value=Response(200, json=USER))

    identity = await signed_in.get_current_identity()

    assert identity == Identity(
        id="u1",
        email="u1@example.com",
        display_name="User One",
        avatar_url="https://img/u1.png",
    )


async def test__get_current_identity__rejected_token_is_absent(
    mock_api: respx.MockRouter,
    signed_in: SupabaseStore,
) -> None:
    """Test that a revoked session resolves to no identity."""
    mock_api.get("/auth/v1/user").mock(return_value=Response(401, json={"msg": "bad jwt"}))

    assert await signed_in.get_current_identity() is None


async def test__get_current_identity__refreshes_expired_session(
    mock_api: respx.MockRouter,
    settings: Settings,
) -> None:
    """Test that an expired access token is refreshed before resolving."""
    expired = int((datetime.now(UTC) - timedelta(hours=1)).timestamp())
    SessionStorage(settings.session_file).save(
        AuthSession.model_validate(_session_body(expires_at=expired)),
    )
    refreshed = {**_session_body(), "access_token": "access-2"}
    token_route = mock_api.post("/auth/v1/token").mock(
        return_value=Response(200, json=refreshed),
    )
    user_route = mock_api.get("/auth/v1/user").mock(return_value=Response(200, json=USER))

    async with SupabaseStore(settings) as store:
        identity = await store.get_current_identity()

    assert identity is not None
    assert token_route.calls[0].request.url.params["grant_type"] == "refresh_token"
    assert user_route.calls[0].request.headers["authorization"] == "Bearer access-2"


async def test__end_session__clears_local_session_even_if_remote_fails(
    mock_api: respx.MockRouter,
    signed_in: SupabaseStore,
    settings: Settings,
) -> None:
    """Test that logout always forgets the session locally."""
    mock_api.post("/auth/v1/logout").mock(return_value=Response(500))

    await signed_in.end_session()

    assert signed_in.session is None
    assert not settings.session_file.exists()


async def test__end_session__posts_logout(
    mock_api: respx.MockRouter,
    signed_in: SupabaseStore,
) -> None:
    route = mock_api.post("/auth/v1/logout").mock(return_value=Response(204))

    await signed_in.end_session()

    assert route.called
    assert route.calls[0].request.headers["authorization"] == "Bearer access-1"
