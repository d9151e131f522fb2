"""Interface the reconciliation layer consumes from a remote store."""
from collections.abc import Callable
from typing import Protocol

from schemas.bookmark import Bookmark, BookmarkCreate, BookmarkId, ChangeEvent
from schemas.session import Identity

ChangeHandler = Callable[[ChangeEvent], None]


class Subscription(Protocol):
    """Handle for a live change-event subscription."""

    @property
    def is_closed(self) -> bool: ...

    async def close(self) -> None:
        """Release the subscription. Safe to call more than once."""
        ...


class RemoteStore(Protocol):
    """
    Row CRUD, auth and change-event delivery for bookmarks.

    fetch/insert are scoped to an identity; delete is by id only. The
    subscription filters insert/update events to the identity server-side,
    but delete events are not filtered and carry only the deleted id.
    """

    async def fetch(self, identity: Identity) -> list[Bookmark]: ...

    async def insert(self, fields: BookmarkCreate, identity: Identity) -> Bookmark: ...

    async def delete(self, bookmark_id: BookmarkId) -> None: ...

    async def subscribe(self, identity: Identity, handler: ChangeHandler) -> Subscription: ...

    async def sign_in_with_password(self, email: str, password: str) -> Identity: ...

    async def get_current_identity(self) -> Identity | None: ...

    async def end_session(self) -> None: ...
