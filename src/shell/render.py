"""Rich renderables for the bookmark view."""
from urllib.parse import urlparse

from rich.console import Group, RenderableType
from rich.table import Table
from rich.text import Text

from schemas.bookmark import Bookmark
from schemas.session import Identity
from services.bookmark_collection import CollectionState


def host_of(url: str) -> str:
    """Host part of a bookmark URL, shown in place of a favicon."""
    return urlparse(url).hostname or ""


def render_header(identity: Identity) -> Text:
    header = Text("Smart Bookmarks", style="bold")
    header.append(f"  {identity.label}", style="dim")
    return header


def render_bookmarks(
    bookmarks: tuple[Bookmark, ...],
    state: CollectionState = CollectionState.READY,
) -> RenderableType:
    """
    Render the collection for its current state.

    Loading and failed states never show rows, so a partial or stale list
    is never displayed.
    """
    if state in (CollectionState.UNINITIALIZED, CollectionState.LOADING):
        return Text("Loading...", style="dim")
    if state is CollectionState.LOAD_FAILED:
        return Text("Could not load bookmarks. Type 'reload' to retry.", style="red")

    title = Text(f"My Bookmarks ({len(bookmarks)})", style="bold")
    if not bookmarks:
        return Group(title, Text("No bookmarks yet. Add your first one!", style="dim"))

    table = Table(show_header=True, header_style="bold", expand=False)
    table.add_column("#", justify="right", style="dim")
    table.add_column("Title", overflow="fold")
    table.add_column("Site", style="cyan")
    table.add_column("URL", style="dim", overflow="fold")
    for position, bookmark in enumerate(bookmarks, start=1):
        table.add_row(str(position), bookmark.title, host_of(bookmark.url), bookmark.url)
    return Group(title, table)
