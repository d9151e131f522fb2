"""Client for the remote bookmark store: rows, auth and realtime change events."""

from .auth import AuthenticationError, SessionStorage
from .errors import StoreError
from .protocol import ChangeHandler, RemoteStore, Subscription
from .realtime import RealtimeSubscription
from .store import SupabaseStore

__all__ = [
    "AuthenticationError",
    "ChangeHandler",
    "RealtimeSubscription",
    "RemoteStore",
    "SessionStorage",
    "StoreError",
    "Subscription",
    "SupabaseStore",
]
