"""
Realtime change-event subscription over a Phoenix channel websocket.

One RealtimeSubscription owns one websocket connection joined to one channel
topic. It runs a reader task that turns postgres_changes messages into typed
ChangeEvents and a heartbeat task that keeps the socket alive. Both run on the
caller's event loop, so the handler is invoked on the same loop that owns the
bookmark collection.
"""

import asyncio
import itertools
import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any

import websockets
from pydantic import ValidationError
from websockets.exceptions import ConnectionClosed, WebSocketException

from schemas.bookmark import (
    Bookmark,
    BookmarkDeleted,
    BookmarkInserted,
    BookmarkUpdated,
    ChangeEvent,
)

from .errors import StoreError
from .protocol import ChangeHandler

logger = logging.getLogger(__name__)

PHOENIX_TOPIC = "phoenix"
JOIN_TIMEOUT = 10.0

Connect = Callable[[str], Awaitable[Any]]


def channel_topic(user_id: str) -> str:
    """Channel topic used for one user's bookmark changes."""
    return f"realtime:bookmarks-channel-{user_id}"


def build_join_payload(
    user_id: str,
    table: str,
    access_token: str | None,
    schema: str = "public",
) -> dict[str, Any]:
    """
    Build the phx_join payload subscribing to bookmark row changes.

    INSERT and UPDATE are filtered to the user's rows server-side. DELETE is
    not filtered: delete notifications only carry the primary key, so the
    server can't evaluate a user_id filter against them.
    """
    owner_filter = f"user_id=eq.{user_id}"
    payload: dict[str, Any] = {
        "config": {
            "broadcast": {"ack": False, "self": False},
            "presence": {"key": ""},
            "private": False,
            "postgres_changes": [
                {"event": "INSERT", "schema": schema, "table": table, "filter": owner_filter},
                {"event": "UPDATE", "schema": schema, "table": table, "filter": owner_filter},
                {"event": "DELETE", "schema": schema, "table": table},
            ],
        },
    }
    if access_token:
        payload["access_token"] = access_token
    return payload


def parse_change_message(message: dict[str, Any]) -> ChangeEvent | None:
    """
    Convert a postgres_changes message into a ChangeEvent.

    Returns None for anything that isn't a well-formed bookmark change. A
    delete only needs old_record.id; the rest of the old row is optional.
    """
    if message.get("event") != "postgres_changes":
        return None
    payload = message.get("payload")
    data = payload.get("data") if isinstance(payload, dict) else None
    if not isinstance(data, dict):
        return None

    change_type = str(data.get("type", "")).upper()
    try:
        if change_type == "INSERT":
            return BookmarkInserted(record=Bookmark.model_validate(data.get("record")))
        if change_type == "UPDATE":
            return BookmarkUpdated(record=Bookmark.model_validate(data.get("record")))
        if change_type == "DELETE":
            old_record = data.get("old_record") or {}
            return BookmarkDeleted(id=old_record.get("id"))
    except (ValidationError, AttributeError) as e:
        logger.warning("Dropping malformed %s change event: %s", change_type, e)
        return None
    return None


class RealtimeSubscription:
    """
    A live subscription to one channel topic.

    Use open() to connect and join; close() to leave and disconnect. close()
    is idempotent. A closed subscription can't be reopened: activate a new
    one instead.
    """

    def __init__(
        self,
        url: str,
        topic: str,
        join_payload: dict[str, Any],
        handler: ChangeHandler,
        heartbeat_interval: float = 25.0,
        connect: Connect | None = None,
    ) -> None:
        self.url = url
        self.topic = topic
        self.join_payload = join_payload
        self._handler = handler
        self._heartbeat_interval = heartbeat_interval
        self._connect = connect or websockets.connect
        self._refs = itertools.count(1)
        self._join_ref: str | None = None
        self._join_reply: asyncio.Future[dict[str, Any]] | None = None
        self._ws: Any = None
        self._tasks: set[asyncio.Task] = set()
        self._closed = False

    @property
    def is_closed(self) -> bool:
        return self._closed

    def _next_ref(self) -> str:
        return str(next(self._refs))

    async def _send(self, topic: str, event: str, payload: dict[str, Any]) -> str:
        ref = self._next_ref()
        message = {
            "topic": topic,
            "event": event,
            "payload": payload,
            "ref": ref,
            "join_ref": self._join_ref,
        }
        await self._ws.send(json.dumps(message))
        return ref

    async def open(self) -> None:
        """
        Connect, join the channel and wait for the join reply.

        Raises:
            StoreError: If the connection fails or the join is rejected.
        """
        if self._closed:
            raise StoreError("internal", "Subscription already closed")
        loop = asyncio.get_running_loop()
        self._join_reply = loop.create_future()
        self._join_ref = self._next_ref()
        join_message = {
            "topic": self.topic,
            "event": "phx_join",
            "payload": self.join_payload,
            "ref": self._join_ref,
            "join_ref": self._join_ref,
        }
        try:
            self._ws = await self._connect(self.url)
            await self._ws.send(json.dumps(join_message))
        except (OSError, WebSocketException) as e:
            await self.close()
            raise StoreError("unavailable", f"Realtime connection failed: {e}") from e
        self._spawn(self._read_loop())

        try:
            reply = await asyncio.wait_for(self._join_reply, timeout=JOIN_TIMEOUT)
        except TimeoutError as e:
            await self.close()
            raise StoreError("unavailable", "Timed out joining realtime channel") from e
        except ConnectionClosed as e:
            await self.close()
            raise StoreError("unavailable", "Realtime connection closed during join") from e

        if reply.get("status") != "ok":
            await self.close()
            response = reply.get("response") or {}
            reason = response.get("reason") if isinstance(response, dict) else None
            raise StoreError("forbidden", f"Realtime join rejected: {reason or reply}")

        self._spawn(self._heartbeat_loop())
        logger.debug("Joined realtime channel %s", self.topic)

    def _spawn(self, coro: Awaitable[None]) -> None:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _read_loop(self) -> None:
        try:
            async for raw in self._ws:
                self._dispatch(raw)
        except ConnectionClosed as e:
            if self._join_reply is not None and not self._join_reply.done():
                self._join_reply.set_exception(e)
            if not self._closed:
                logger.warning("Realtime connection for %s closed: %s", self.topic, e)
        else:
            if self._join_reply is not None and not self._join_reply.done():
                self._join_reply.set_exception(ConnectionClosed(None, None))
            if not self._closed:
                logger.warning("Realtime connection for %s ended", self.topic)

    def _dispatch(self, raw: str | bytes) -> None:
        try:
            message = json.loads(raw)
        except ValueError:
            logger.warning("Ignoring non-JSON realtime frame")
            return
        if not isinstance(message, dict):
            return

        event = message.get("event")
        if event == "phx_reply":
            if (
                message.get("ref") == self._join_ref
                and self._join_reply is not None
                and not self._join_reply.done()
            ):
                payload = message.get("payload")
                self._join_reply.set_result(payload if isinstance(payload, dict) else {})
            return
        if event in ("phx_error", "phx_close"):
            logger.warning("Realtime channel %s reported %s", self.topic, event)
            return
        if event != "postgres_changes" or message.get("topic") != self.topic:
            logger.debug("Ignoring realtime %s on %s", event, message.get("topic"))
            return

        change = parse_change_message(message)
        if change is None:
            return
        if self._closed:
            return
        try:
            self._handler(change)
        except Exception:
            logger.exception("Change handler failed for %s", type(change).__name__)

    async def _heartbeat_loop(self) -> None:
        try:
            while not self._closed:
                await asyncio.sleep(self._heartbeat_interval)
                await self._send(PHOENIX_TOPIC, "heartbeat", {})
        except ConnectionClosed:
            return

    async def close(self) -> None:
        """Leave the channel, stop background tasks and close the socket."""
        if self._closed:
            return
        self._closed = True
        if self._ws is not None:
            try:
                await self._send(self.topic, "phx_leave", {})
            except ConnectionClosed:
                pass
            except OSError as e:
                logger.debug("Could not send phx_leave for %s: %s", self.topic, e)
        current = asyncio.current_task()
        pending = [t for t in self._tasks if t is not current and not t.done()]
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        self._tasks.clear()
        if self._ws is not None:
            await self._ws.close()
        logger.debug("Closed realtime subscription %s", self.topic)
