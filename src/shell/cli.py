"""Typer entry point: login, logout, list and the live dashboard."""
import asyncio
import logging

import typer
from rich import print

from core.config import ConfigurationError, Settings, load_settings
from services.bookmark_collection import BookmarkCollection, CollectionState
from services.session_gate import SessionGate
from store_client import AuthenticationError, StoreError, SupabaseStore

from .dashboard import Dashboard, DashboardExit
from .render import render_bookmarks, render_header

app = typer.Typer(help="smart-bookmarks: personal bookmarks with live sync", no_args_is_help=True)

NOT_SIGNED_IN = "[yellow]Not signed in.[/yellow] Run 'smart-bookmarks login' first."


def create_store(settings: Settings) -> SupabaseStore:
    return SupabaseStore(settings)


def _settings_or_exit() -> Settings:
    try:
        settings = load_settings()
    except ConfigurationError as e:
        print(f"[red]Configuration error:[/red] {e}")
        raise typer.Exit(code=1) from e
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    return settings


def _exit_on_store_error(e: StoreError) -> None:
    print(f"[red]Could not reach the bookmark service ({e.category}):[/red] {e.message}")
    raise typer.Exit(code=1) from e


@app.command()
def login(
    email: str = typer.Option(..., prompt=True, help="Account email"),
    password: str = typer.Option(..., prompt=True, hide_input=True, help="Account password"),
) -> None:
    """Sign in and remember the session."""
    settings = _settings_or_exit()

    async def _run() -> None:
        async with create_store(settings) as store:
            identity = await SessionGate(store).sign_in(email, password)
        print(f"Signed in as [bold]{identity.label}[/bold].")

    try:
        asyncio.run(_run())
    except AuthenticationError as e:
        print(f"[red]Sign-in failed:[/red] {e}")
        raise typer.Exit(code=1) from e
    except StoreError as e:
        _exit_on_store_error(e)


@app.command()
def logout() -> None:
    """End the session."""
    settings = _settings_or_exit()

    async def _run() -> None:
        async with create_store(settings) as store:
            await SessionGate(store).logout()

    asyncio.run(_run())
    print("Signed out.")


@app.command("list")
def list_bookmarks() -> None:
    """Print your bookmarks, newest first."""
    settings = _settings_or_exit()

    async def _run() -> bool:
        async with create_store(settings) as store:
            identity = await SessionGate(store).resolve()
            if identity is None:
                print(NOT_SIGNED_IN)
                return False
            collection = BookmarkCollection(store)
            try:
                await collection.initialize(identity)
                print(render_header(identity))
                print(render_bookmarks(collection.snapshot(), collection.state))
                return collection.state is CollectionState.READY
            finally:
                await collection.teardown()

    try:
        ok = asyncio.run(_run())
    except StoreError as e:
        _exit_on_store_error(e)
    if not ok:
        raise typer.Exit(code=1)


@app.command()
def dashboard() -> None:
    """Open the live bookmark view."""
    settings = _settings_or_exit()

    async def _run() -> DashboardExit:
        async with create_store(settings) as store:
            return await Dashboard(store).run()

    try:
        result = asyncio.run(_run())
    except StoreError as e:
        _exit_on_store_error(e)
    if result is DashboardExit.UNAUTHENTICATED:
        print(NOT_SIGNED_IN)
        raise typer.Exit(code=1)
    if result is DashboardExit.LOGGED_OUT:
        print("Signed out.")
