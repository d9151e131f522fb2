"""
Client-side reconciliation of a user's bookmarks.

BookmarkCollection is the single source of truth for what bookmarks the
active identity sees. Three independent inputs feed it:

1. The bulk fetch (activation and resync), which replaces the collection.
2. Local intents: inserts are merged after the store returns the canonical
   row; deletes are applied optimistically before the store call.
3. Change events pushed by the store's subscription.

Every merge is keyed on id and checks presence first, so applying the same
logical change twice (e.g. a local insert and its realtime echo) or in either
order yields the same collection. All mutation happens on the event loop
between awaits; nothing here is thread-safe and nothing needs to be.
"""

import logging
from collections.abc import Callable
from enum import StrEnum

from schemas.bookmark import (
    Bookmark,
    BookmarkDeleted,
    BookmarkDraft,
    BookmarkId,
    BookmarkInserted,
    BookmarkUpdated,
    ChangeEvent,
)
from schemas.session import Identity
from services.exceptions import InvalidStateError
from store_client.errors import StoreError
from store_client.protocol import RemoteStore, Subscription

logger = logging.getLogger(__name__)

Listener = Callable[[], None]


class CollectionState(StrEnum):
    """Lifecycle of a collection, one per view activation."""

    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    LOAD_FAILED = "load_failed"
    READY = "ready"
    TORN_DOWN = "torn_down"


class BookmarkCollection:
    """
    Ordered, duplicate-free bookmarks of one identity.

    A collection is bound to the first identity it is activated (or
    initialized) with and never holds another identity's records. Switching
    accounts means tearing this collection down and creating a new one.
    """

    def __init__(self, store: RemoteStore) -> None:
        self._store = store
        self._records: list[Bookmark] = []
        self._state = CollectionState.UNINITIALIZED
        self._identity: Identity | None = None
        self._subscription: Subscription | None = None
        self._listeners: list[Listener] = []
        # Incremented per fetch so only the latest fetch may replace the records
        self._fetch_generation = 0
        # Changes applied while a fetch is in flight, replayed on top of its result
        self._replay: list[ChangeEvent] | None = None
        self.last_error: StoreError | None = None

    @property
    def state(self) -> CollectionState:
        return self._state

    @property
    def identity(self) -> Identity | None:
        return self._identity

    @property
    def is_subscribed(self) -> bool:
        return self._subscription is not None

    def snapshot(self) -> tuple[Bookmark, ...]:
        """Immutable view of the records, newest first."""
        return tuple(self._records)

    def __len__(self) -> int:
        return len(self._records)

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        """
        Register a callback run after every change to records or state.

        Returns:
            A function that unregisters the listener.
        """
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener()

    def _set_state(self, state: CollectionState) -> None:
        if state is self._state:
            return
        logger.debug("Bookmark collection %s -> %s", self._state, state)
        self._state = state
        self._notify()

    def _bind(self, identity: Identity) -> None:
        if self._identity is None:
            self._identity = identity
        elif self._identity.id != identity.id:
            raise InvalidStateError(
                f"Collection is bound to identity {self._identity.id}, not {identity.id}",
            )

    def _require_active(self) -> Identity:
        if self._identity is None or self._state in (
            CollectionState.UNINITIALIZED,
            CollectionState.TORN_DOWN,
        ):
            raise InvalidStateError(f"Collection is not active (state: {self._state})")
        return self._identity

    # Lifecycle

    async def activate(self, identity: Identity) -> None:
        """
        Subscribe to change events for identity, then load its bookmarks.

        A subscription failure is logged and the collection still loads,
        just without live updates.

        Raises:
            InvalidStateError: If the collection was already activated.
        """
        if self._state is not CollectionState.UNINITIALIZED:
            raise InvalidStateError(f"Cannot activate collection in state {self._state}")
        self._bind(identity)
        self._set_state(CollectionState.LOADING)

        try:
            subscription = await self._store.subscribe(identity, self.apply_change)
        except StoreError as e:
            logger.warning(
                "Live updates unavailable for %s (%s): %s", identity.id, e.category, e.message,
            )
            subscription = None

        if self._state is CollectionState.TORN_DOWN:
            # Deactivated while subscribing
            if subscription is not None:
                await subscription.close()
            return
        self._subscription = subscription
        await self.initialize(identity)

    async def initialize(self, identity: Identity | None = None) -> bool:
        """
        Fetch identity's bookmarks and replace the collection with them.

        Changes applied while the fetch is in flight are replayed on top of
        the fetched rows. If a newer fetch was started in the meantime, this
        one's result is discarded.

        Args:
            identity: Owner to fetch for. Defaults to the bound identity.

        Returns:
            True if the fetched rows were applied.

        Raises:
            InvalidStateError: If torn down, or identity differs from the bound one.
        """
        if self._state is CollectionState.TORN_DOWN:
            raise InvalidStateError("Cannot initialize a torn down collection")
        identity = identity or self._identity
        if identity is None:
            raise InvalidStateError("No identity to initialize for")
        self._bind(identity)

        if self._state is not CollectionState.READY:
            self._set_state(CollectionState.LOADING)
        self._fetch_generation += 1
        generation = self._fetch_generation
        if self._replay is None:
            self._replay = []

        try:
            records = await self._store.fetch(identity)
        except StoreError as e:
            if generation != self._fetch_generation:
                return False
            self._replay = None
            self.last_error = e
            if self._state is CollectionState.LOADING:
                logger.warning("Loading bookmarks failed (%s): %s", e.category, e.message)
                self._set_state(CollectionState.LOAD_FAILED)
            else:
                logger.warning("Bookmark resync failed (%s): %s", e.category, e.message)
            return False

        if generation != self._fetch_generation:
            logger.debug("Discarding superseded bookmark fetch %s", generation)
            return False

        replay, self._replay = self._replay or [], None
        owned = [r for r in records if r.user_id == identity.id]
        if len(owned) != len(records):
            logger.warning("Dropped %d fetched bookmarks of another identity", len(records) - len(owned))
        self._records = sorted(owned, key=lambda r: r.created_at, reverse=True)
        for event in replay:
            self._apply(event, record=False)
        self.last_error = None
        if self._state is CollectionState.READY:
            self._notify()
        else:
            self._set_state(CollectionState.READY)
        return True

    async def teardown(self) -> None:
        """
        Release the subscription and drop the records.

        Safe to call more than once, and before activation.
        """
        if self._state is CollectionState.TORN_DOWN:
            return
        subscription, self._subscription = self._subscription, None
        self._replay = None
        self._fetch_generation += 1
        self._records = []
        self._set_state(CollectionState.TORN_DOWN)
        if subscription is not None:
            await subscription.close()

    # Local intents

    async def apply_local_insert(self, draft: BookmarkDraft) -> Bookmark | None:
        """
        Insert the drafted bookmark and merge the stored row.

        Incomplete drafts are ignored. The draft is cleared once the store
        accepts the insert, whether or not the row was merged (the realtime
        echo may have merged it first). On store failure the draft is left
        as typed and the collection is unchanged.

        Returns:
            The stored bookmark, or None if nothing was inserted.
        """
        if not draft.is_complete:
            return None
        identity = self._require_active()
        fields = draft.to_create()

        try:
            record = await self._store.insert(fields, identity)
        except StoreError as e:
            logger.warning("Adding bookmark failed (%s): %s", e.category, e.message)
            return None

        if self._state is not CollectionState.TORN_DOWN:
            self._apply(BookmarkInserted(record=record))
        draft.clear()
        return record

    async def apply_local_delete(self, bookmark_id: BookmarkId) -> bool:
        """
        Remove a bookmark immediately, then delete it remotely.

        If the remote delete fails the collection is resynced from the store,
        which restores the bookmark if it still exists.

        Returns:
            True if the store confirmed the delete.
        """
        self._require_active()
        optimistic = BookmarkDeleted(id=bookmark_id)
        self._apply(optimistic)

        try:
            await self._store.delete(bookmark_id)
        except StoreError as e:
            logger.warning(
                "Deleting bookmark %s failed (%s), resyncing: %s",
                bookmark_id, e.category, e.message,
            )
            # A fetch in flight must not replay the delete that just failed
            if self._replay is not None:
                self._replay = [event for event in self._replay if event is not optimistic]
            if self._state is not CollectionState.TORN_DOWN:
                await self.initialize()
            return False
        return True

    # Remote change events

    def apply_change(self, event: ChangeEvent) -> None:
        """Apply a change event delivered by the subscription."""
        if self._state in (CollectionState.UNINITIALIZED, CollectionState.TORN_DOWN):
            logger.debug("Ignoring %s in state %s", type(event).__name__, self._state)
            return
        self._apply(event)

    def on_remote_insert(self, record: Bookmark) -> None:
        self.apply_change(BookmarkInserted(record=record))

    def on_remote_update(self, record: Bookmark) -> None:
        self.apply_change(BookmarkUpdated(record=record))

    def on_remote_delete(self, bookmark_id: BookmarkId) -> None:
        self.apply_change(BookmarkDeleted(id=bookmark_id))

    # Merging

    def _apply(self, event: ChangeEvent, record: bool = True) -> bool:
        if record and self._replay is not None:
            self._replay.append(event)

        if isinstance(event, BookmarkInserted):
            changed = self._merge(event.record)
        elif isinstance(event, BookmarkUpdated):
            changed = self._replace(event.record)
        else:
            changed = self._remove(event.id)

        if changed:
            self._notify()
        return changed

    def _owned(self, record: Bookmark) -> bool:
        if self._identity is not None and record.user_id == self._identity.id:
            return True
        logger.debug("Rejecting bookmark %s owned by %s", record.id, record.user_id)
        return False

    def _index_of(self, bookmark_id: BookmarkId) -> int | None:
        for i, existing in enumerate(self._records):
            if existing.id == bookmark_id:
                return i
        return None

    def _merge(self, record: Bookmark) -> bool:
        if not self._owned(record) or self._index_of(record.id) is not None:
            return False
        # Ahead of the first record that isn't newer, so equal timestamps
        # put the latest arrival first
        position = len(self._records)
        for i, existing in enumerate(self._records):
            if existing.created_at <= record.created_at:
                position = i
                break
        self._records.insert(position, record)
        return True

    def _replace(self, record: Bookmark) -> bool:
        if not self._owned(record):
            return False
        index = self._index_of(record.id)
        if index is None:
            return False
        if self._records[index].created_at == record.created_at:
            self._records[index] = record
        else:
            del self._records[index]
            self._merge(record)
        return True

    def _remove(self, bookmark_id: BookmarkId) -> bool:
        index = self._index_of(bookmark_id)
        if index is None:
            return False
        del self._records[index]
        return True
