"""
Interactive terminal view of the live bookmark collection.

The dashboard owns one activation: it resolves the identity through a
SessionGate, activates a BookmarkCollection, forwards typed intents to it,
and tears everything down when the user quits or logs out.
"""

import asyncio
import logging
import shlex
from collections.abc import Awaitable, Callable
from enum import StrEnum

from rich.console import Console

from schemas.bookmark import Bookmark, BookmarkDraft
from schemas.session import Identity
from services.bookmark_collection import BookmarkCollection, CollectionState
from services.exceptions import InvalidStateError
from services.session_gate import SessionGate
from store_client.protocol import RemoteStore

from .render import render_bookmarks, render_header

logger = logging.getLogger(__name__)

ReadLine = Callable[[str], Awaitable[str]]

HELP_TEXT = (
    "Commands: add | rm <number> | reload | logout | quit | help\n"
    "  add      prompt for a title and URL (e.g. google.com)\n"
    "  rm 2     delete bookmark #2\n"
    "  reload   fetch the list again"
)


class DashboardExit(StrEnum):
    """Why the interactive loop ended."""

    QUIT = "quit"
    LOGGED_OUT = "logged_out"
    UNAUTHENTICATED = "unauthenticated"


class Dashboard:
    """One activation of the bookmark view."""

    def __init__(
        self,
        store: RemoteStore,
        console: Console | None = None,
        read_line: ReadLine | None = None,
    ) -> None:
        self.store = store
        self.console = console or Console()
        self.gate = SessionGate(store)
        self.collection: BookmarkCollection | None = None
        self.identity: Identity | None = None
        self.draft = BookmarkDraft()
        self._read_line = read_line or self._console_input
        self._waiting_for_input = False

    async def _console_input(self, prompt: str) -> str:
        return await asyncio.to_thread(self.console.input, prompt)

    # Lifecycle hooks

    async def activate(self) -> Identity | None:
        """
        Resolve the identity and activate its collection.

        Returns:
            The identity, or None if nobody is signed in (nothing is activated).
        """
        identity = await self.gate.resolve()
        if identity is None:
            return None
        self.identity = identity
        self.collection = BookmarkCollection(self.store)
        self.collection.add_listener(self._on_change)
        await self.collection.activate(identity)
        return identity

    async def deactivate(self) -> None:
        if self.collection is not None:
            await self.collection.teardown()

    def _on_change(self) -> None:
        # Remote changes while the prompt is showing get a one-line notice;
        # the full list is re-rendered before the next prompt
        if self._waiting_for_input and self.collection is not None:
            if self.collection.state is CollectionState.READY:
                self.console.print(
                    f"\n[dim]Bookmarks updated ({len(self.collection)}). "
                    "Press Enter to refresh.[/dim]",
                )

    # Intents

    def _active_collection(self) -> BookmarkCollection:
        if self.collection is None:
            raise InvalidStateError("Dashboard is not active")
        return self.collection

    async def submit_new_bookmark(self) -> Bookmark | None:
        return await self._active_collection().apply_local_insert(self.draft)

    async def delete_bookmark(self, position: int) -> bool:
        """Delete the bookmark shown at 1-based position; False if there is none."""
        collection = self._active_collection()
        bookmarks = collection.snapshot()
        if not 1 <= position <= len(bookmarks):
            return False
        await collection.apply_local_delete(bookmarks[position - 1].id)
        return True

    async def logout(self) -> None:
        await self.deactivate()
        await self.gate.logout()

    # Loop

    def render(self) -> None:
        if self.collection is None or self.identity is None:
            return
        self.console.print(render_header(self.identity))
        self.console.print(render_bookmarks(self.collection.snapshot(), self.collection.state))

    async def _prompt(self, prompt: str) -> str:
        self._waiting_for_input = True
        try:
            return (await self._read_line(prompt)).strip()
        finally:
            self._waiting_for_input = False

    async def _add(self) -> None:
        title = await self._prompt(f"Title [{self.draft.title}]: " if self.draft.title else "Title: ")
        url = await self._prompt(f"URL [{self.draft.url}]: " if self.draft.url else "URL: ")
        if title:
            self.draft.title = title
        if url:
            self.draft.url = url
        if not self.draft.is_complete:
            self.console.print("[yellow]Both a title and a URL are required.[/yellow]")
            return
        record = await self.submit_new_bookmark()
        if record is None:
            self.console.print(
                "[red]Could not add the bookmark.[/red] Your input was kept, run 'add' to retry.",
            )

    async def _remove(self, args: list[str]) -> None:
        if len(args) != 1 or not args[0].isdigit():
            self.console.print("[yellow]Usage: rm <number>[/yellow]")
            return
        if not await self.delete_bookmark(int(args[0])):
            self.console.print(f"[yellow]No bookmark #{args[0]}.[/yellow]")

    async def handle(self, line: str) -> DashboardExit | None:
        """Run one command line; returns a DashboardExit when the loop should stop."""
        try:
            parts = shlex.split(line)
        except ValueError:
            parts = line.split()
        if not parts:
            return None
        command, args = parts[0].lower(), parts[1:]

        if command in ("quit", "exit", "q"):
            return DashboardExit.QUIT
        if command == "logout":
            await self.logout()
            return DashboardExit.LOGGED_OUT
        if command == "add":
            await self._add()
        elif command in ("rm", "del", "delete"):
            await self._remove(args)
        elif command in ("reload", "refresh"):
            await self._active_collection().initialize()
        elif command == "help":
            self.console.print(HELP_TEXT)
        else:
            self.console.print(f"[yellow]Unknown command '{command}'.[/yellow] Type 'help'.")
        return None

    async def run(self) -> DashboardExit:
        """Activate, then process commands until quit or logout."""
        try:
            if await self.activate() is None:
                return DashboardExit.UNAUTHENTICATED
            self.console.print(HELP_TEXT)
            while True:
                self.render()
                try:
                    line = await self._prompt("> ")
                except EOFError:
                    return DashboardExit.QUIT
                result = await self.handle(line)
                if result is not None:
                    return result
        finally:
            await self.deactivate()
