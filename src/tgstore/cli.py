"""CLI for tgstore."""

import logging
import os
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.table import Table

from .config import StoreConfig, load_store_config
from .context import OperationContext
from .errors import (
    AuthError,
    CatalogWindowExhaustedError,
    ConfigError,
    ConflictError,
    CorruptCatalogError,
    RateLimitedError,
    StoreError,
)
from .service_types import PutResult
from .store import ChannelObjectStore


app = typer.Typer(help="""\
Store files on a Telegram chat and keep a catalog of them there.
Every upload is a document message; the list of stored names lives
in the latest filelist.json sent to the same chat.""")

console = Console()

_state = {"config_path": None, "timeout": None}


@app.callback()
def main_options(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
    config: Optional[Path] = typer.Option(None, "--config", help="Config file (default: ~/.tgstore/config.yaml)"),
    timeout: Optional[float] = typer.Option(None, "--timeout", help="Deadline for the whole command, in seconds"),
):
    """Global options."""
    level = logging.DEBUG if verbose or os.environ.get("DEBUG") else logging.WARNING
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")
    _state["config_path"] = config
    _state["timeout"] = timeout


def _load_config() -> StoreConfig:
    try:
        return load_store_config(_state["config_path"])
    except ConfigError as e:
        console.print(f"[red]✗[/red] {e}")
        raise typer.Exit(1)


def _open_store() -> ChannelObjectStore:
    return ChannelObjectStore.from_config(_load_config())


def _context() -> OperationContext:
    return OperationContext(timeout=_state["timeout"])


def _fail(e: Exception) -> None:
    """Print an error with a hint where one helps, then exit 1."""
    console.print(f"[red]✗[/red] {e}")
    if isinstance(e, AuthError):
        console.print("[dim]Check the bot token and that the bot is a member of the chat[/dim]")
    elif isinstance(e, RateLimitedError):
        console.print("[dim]Telegram is throttling this bot; try again later[/dim]")
    elif isinstance(e, ConflictError):
        console.print("[dim]Other writers kept updating the catalog; the uploaded document is unlisted. Retry the put.[/dim]")
    elif isinstance(e, CatalogWindowExhaustedError):
        console.print("[dim]Raise lookback_window in the config file or set TGSTORE_LOOKBACK_WINDOW[/dim]")
    elif isinstance(e, CorruptCatalogError):
        console.print("[dim]The latest filelist.json is unreadable; it was not replaced[/dim]")
    raise typer.Exit(1)


@app.command()
def put(
    files: List[Path] = typer.Argument(..., help="Files to upload"),
    name: Optional[str] = typer.Option(None, "--name", "-n", help="Object name (single file only)"),
):
    """Upload files and add them to the catalog."""
    if name and len(files) > 1:
        console.print("[red]✗[/red] --name can only be used with a single file")
        raise typer.Exit(1)

    for file in files:
        if not file.is_file():
            console.print(f"[red]✗[/red] File not found: {file}")
            raise typer.Exit(1)

    store = _open_store()
    ctx = _context()
    for file in files:
        try:
            handle = store.put_file(file, name=name, ctx=ctx)
        except (StoreError, ValueError) as e:
            _fail(e)
        result = PutResult(
            name=handle.name,
            file_id=handle.ref.file_id,
            size=handle.size,
            catalog_version=handle.catalog_version.short(),
        )
        console.print(f"[green]✓[/green] {result.name} ({result.size} bytes) → catalog {result.catalog_version}")


@app.command("ls")
def list_objects(
    prefix: str = typer.Argument("", help="Only list names starting with this prefix"),
):
    """List stored objects in catalog order."""
    store = _open_store()
    try:
        records = store.list(prefix, ctx=_context())
    except StoreError as e:
        _fail(e)

    if not records:
        console.print("[yellow]No objects stored[/yellow]" if not prefix else f"[yellow]No objects under '{prefix}'[/yellow]")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Name")
    for i, record in enumerate(records, 1):
        table.add_row(str(i), record.name)
    console.print(table)


@app.command()
def catalog():
    """Show the catalog version currently considered latest."""
    store = _open_store()
    try:
        info = store.catalog_info(ctx=_context())
    except StoreError as e:
        _fail(e)

    if info.version is None:
        console.print(f"[yellow]No catalog in the last {info.window} messages[/yellow]")
        if info.window_exhausted:
            console.print("[dim]The window was full: an older catalog may exist beyond it[/dim]")
        return
    console.print(f"Version: [cyan]{info.version}[/cyan]")
    console.print(f"Entries: {info.entries}")
    console.print(f"[dim]Lookback window: {info.window} messages[/dim]")


@app.command()
def check():
    """Validate configuration without touching the network."""
    config = _load_config()
    console.print(f"[green]✓[/green] Provider: {config.provider}")
    if config.provider == "telegram":
        console.print(f"[green]✓[/green] Chat: {config.chat_id}")
        console.print("[green]✓[/green] Bot token: set")
    console.print(f"[dim]Lookback window: {config.lookback_window}, "
                  f"conflict retries: {config.max_conflict_retries}, "
                  f"transport retries: {config.max_transport_retries}[/dim]")


def main():
    """Entry point for CLI."""
    app()


if __name__ == "__main__":
    main()
