"""Resolves the signed-in identity once per view activation."""

import logging

from schemas.session import Identity
from store_client.protocol import RemoteStore

logger = logging.getLogger(__name__)

_UNRESOLVED = object()


class SessionGate:
    """
    Gate in front of the bookmark view.

    resolve() asks the store for the current identity once and caches the
    answer for the rest of the activation. When it returns None the caller
    must send the user to the sign-in entry point and must not touch the
    bookmark collection. Create a new gate for each activation.
    """

    def __init__(self, store: RemoteStore) -> None:
        self._store = store
        self._identity: Identity | None | object = _UNRESOLVED

    @property
    def is_resolved(self) -> bool:
        return self._identity is not _UNRESOLVED

    async def resolve(self) -> Identity | None:
        """
        Return the current identity, or None if nobody is signed in.

        Raises:
            StoreError: If the auth service can't be reached.
        """
        if self._identity is _UNRESOLVED:
            identity = await self._store.get_current_identity()
            if identity is None:
                logger.info("No signed-in identity")
            else:
                logger.debug("Resolved identity %s", identity.id)
            self._identity = identity
        return self._identity  # type: ignore[return-value]

    async def logout(self) -> None:
        """Invalidate the session with the store and forget the identity."""
        await self._store.end_session()
        self._identity = None

    async def sign_in(self, email: str, password: str) -> Identity:
        """
        Sign in with email and password; the session is persisted by the store.

        Raises:
            AuthenticationError: If the credentials are rejected.
        """
        identity = await self._store.sign_in_with_password(email, password)
        self._identity = identity
        logger.info("Signed in as %s", identity.id)
        return identity
