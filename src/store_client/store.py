"""
Remote store backed by a Supabase project.

Rows go through the PostgREST API, identity through the auth API, and change
events through the realtime websocket. One SupabaseStore is created per
process and passed explicitly to whatever needs it; call aclose() (or use it
as an async context manager) to release the HTTP client and any live
subscriptions.
"""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import httpx
from pydantic import ValidationError

from core.config import Settings
from schemas.bookmark import Bookmark, BookmarkCreate, BookmarkId
from schemas.session import AuthSession, Identity

from .api_client import api_delete, api_get, api_post, get_headers
from .auth import AuthenticationError, SessionStorage
from .errors import StoreError, from_transport_error, parse_http_error
from .protocol import ChangeHandler
from .realtime import Connect, RealtimeSubscription, build_join_payload, channel_topic

logger = logging.getLogger(__name__)


@contextmanager
def _store_errors(entity_type: str = "bookmark") -> Iterator[None]:
    """Translate httpx and row-parsing failures into StoreError."""
    try:
        yield
    except httpx.HTTPStatusError as e:
        raise parse_http_error(e, entity_type) from e
    except httpx.TransportError as e:
        raise from_transport_error(e) from e
    except ValidationError as e:
        raise StoreError("internal", f"Malformed {entity_type} row from store: {e}") from e


class SupabaseStore:
    """RemoteStore implementation over the Supabase REST, auth and realtime APIs."""

    def __init__(
        self,
        settings: Settings,
        http_client: httpx.AsyncClient | None = None,
        session_storage: SessionStorage | None = None,
        connect: Connect | None = None,
    ) -> None:
        self.settings = settings
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=settings.request_timeout)
        self._storage = session_storage or SessionStorage(settings.session_file)
        self._session: AuthSession | None = self._storage.load()
        self._connect = connect
        self._subscriptions: set[RealtimeSubscription] = set()

    async def __aenter__(self) -> "SupabaseStore":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close live subscriptions and the HTTP client (if owned)."""
        for subscription in list(self._subscriptions):
            await subscription.close()
        self._subscriptions.clear()
        if self._owns_client and not self._client.is_closed:
            await self._client.aclose()

    @property
    def session(self) -> AuthSession | None:
        return self._session

    @property
    def _table_url(self) -> str:
        return f"{self.settings.rest_url}/{self.settings.bookmarks_table}"

    def _headers(self, extra: dict[str, str] | None = None) -> dict[str, str]:
        token = self._session.access_token if self._session else None
        return get_headers(self.settings.supabase_anon_key, token, extra)

    # Rows

    async def fetch(self, identity: Identity) -> list[Bookmark]:
        """Fetch all bookmarks owned by identity, newest first."""
        with _store_errors():
            rows = await api_get(
                self._client,
                self._table_url,
                self._headers(),
                params={
                    "select": "*",
                    "user_id": f"eq.{identity.id}",
                    "order": "created_at.desc",
                },
            )
            if not isinstance(rows, list):
                raise StoreError("internal", "Expected a list of bookmark rows")
            return [Bookmark.model_validate(row) for row in rows]

    async def insert(self, fields: BookmarkCreate, identity: Identity) -> Bookmark:
        """Insert a bookmark owned by identity and return the stored row."""
        with _store_errors():
            rows = await api_post(
                self._client,
                self._table_url,
                self._headers({"Prefer": "return=representation"}),
                json=[{"title": fields.title, "url": fields.url, "user_id": identity.id}],
                params={"select": "*"},
            )
            if not rows:
                raise StoreError("internal", "Insert returned no row")
            row = rows[0] if isinstance(rows, list) else rows
            return Bookmark.model_validate(row)

    async def delete(self, bookmark_id: BookmarkId) -> None:
        """Delete a bookmark by id."""
        with _store_errors():
            await api_delete(
                self._client,
                self._table_url,
                self._headers({"Prefer": "return=minimal"}),
                params={"id": f"eq.{bookmark_id}"},
            )

    # Realtime

    async def subscribe(self, identity: Identity, handler: ChangeHandler) -> RealtimeSubscription:
        """Open a fresh change-event subscription for identity."""
        subscription = RealtimeSubscription(
            url=self.settings.realtime_url,
            topic=channel_topic(identity.id),
            join_payload=build_join_payload(
                identity.id,
                self.settings.bookmarks_table,
                self._session.access_token if self._session else None,
            ),
            handler=handler,
            heartbeat_interval=self.settings.realtime_heartbeat_interval,
            connect=self._connect,
        )
        await subscription.open()
        self._subscriptions.add(subscription)
        return subscription

    # Auth

    async def sign_in_with_password(self, email: str, password: str) -> Identity:
        """
        Sign in with email and password and persist the session.

        Raises:
            AuthenticationError: If the credentials are rejected.
            StoreError: If the auth service can't be reached.
        """
        try:
            body = await api_post(
                self._client,
                f"{self.settings.auth_url}/token",
                get_headers(self.settings.supabase_anon_key),
                json={"email": email, "password": password},
                params={"grant_type": "password"},
            )
        except httpx.HTTPStatusError as e:
            error = parse_http_error(e, "user")
            if error.category in ("auth", "validation", "forbidden"):
                raise AuthenticationError(error.message) from e
            raise error from e
        except httpx.TransportError as e:
            raise from_transport_error(e) from e
        return self._store_session(body)

    async def _refresh_session(self) -> bool:
        """Exchange the refresh token for a new session; False if that fails."""
        if self._session is None or not self._session.refresh_token:
            return False
        try:
            body = await api_post(
                self._client,
                f"{self.settings.auth_url}/token",
                get_headers(self.settings.supabase_anon_key),
                json={"refresh_token": self._session.refresh_token},
                params={"grant_type": "refresh_token"},
            )
        except httpx.HTTPStatusError as e:
            logger.info("Session refresh rejected: %s", parse_http_error(e, "user").message)
            return False
        except httpx.TransportError as e:
            raise from_transport_error(e) from e
        self._store_session(body)
        return True

    def _store_session(self, body: Any) -> Identity:
        try:
            session = AuthSession.model_validate(body)
        except ValidationError as e:
            raise StoreError("internal", f"Malformed session from auth service: {e}") from e
        self._session = session
        self._storage.save(session)
        if session.user is None:
            raise StoreError("internal", "Auth service returned no user")
        return session.user

    async def get_current_identity(self) -> Identity | None:
        """
        Resolve the signed-in identity.

        Returns None when there is no session or the auth service no longer
        accepts it. Transport failures raise StoreError.
        """
        if self._session is None:
            return None
        if self._session.is_expired() and not await self._refresh_session():
            return None
        with _store_errors("user"):
            try:
                body = await api_get(
                    self._client, f"{self.settings.auth_url}/user", self._headers(),
                )
            except httpx.HTTPStatusError as e:
                if e.response.status_code in (401, 403):
                    return None
                raise
            return Identity.model_validate(body)

    async def end_session(self) -> None:
        """
        Invalidate the session remotely and forget it locally.

        The local session is dropped even if the remote call fails.
        """
        if self._session is None:
            return
        try:
            with _store_errors("user"):
                await api_post(self._client, f"{self.settings.auth_url}/logout", self._headers())
        except StoreError as e:
            logger.warning("Remote sign-out failed (%s): %s", e.category, e.message)
        finally:
            self._session = None
            self._storage.clear()
