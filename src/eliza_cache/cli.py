"""Maintenance CLI for eliza-cache using Typer + Rich."""

import asyncio
import json
from pathlib import Path
from typing import Any, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .cache import ExpirySweeper, expires_in
from .config import get_config
from .database import is_database_ready, run_migrations, sqlite_path, sqlite_url
from .models import BackendType
from .runtime import open_cache

console = Console()
app = typer.Typer(
    name="eliza-cache",
    help="Inspect and maintain eliza-cache stores",
    rich_markup_mode="rich",
    add_completion=False,
)


def _open(ctx: typer.Context):
    options = ctx.obj or {}
    return open_cache(
        options.get("backend"),
        agent_id=options.get("agent_id"),
        data_dir=options.get("root"),
        database_url=options.get("database_url"),
        sweep_interval=0,
    )


@app.callback()
def main(
    ctx: typer.Context,
    backend: Optional[BackendType] = typer.Option(None, "--backend", "-b", help="Cache backend (default from config)"),
    root: Optional[Path] = typer.Option(None, "--root", help="Filesystem cache root"),
    db_path: Optional[Path] = typer.Option(None, "--db-path", help="SQLite database file"),
    agent_id: Optional[str] = typer.Option(None, "--agent-id", help="Agent owning database cache rows"),
):
    """Global options shared by every command."""
    get_config().configure_logging()
    ctx.obj = {
        "backend": backend,
        "root": root,
        "database_url": sqlite_url(db_path) if db_path else None,
        "agent_id": agent_id,
    }


@app.command()
def get(ctx: typer.Context, key: str = typer.Argument(..., help="Cache key")):
    """Print the cached value as JSON (exit code 1 on a miss)."""

    async def _get() -> Any:
        async with _open(ctx) as cache:
            return await cache.get(key)

    try:
        value = asyncio.run(_get())
    except ValueError as e:
        console.print(f"[red]Malformed cache entry for {key}: {e}[/red]")
        raise typer.Exit(2)

    if value is None:
        console.print(f"[yellow]Miss: {key}[/yellow]")
        raise typer.Exit(1)
    typer.echo(json.dumps(value))


@app.command("set")
def set_value(
    ctx: typer.Context,
    key: str = typer.Argument(..., help="Cache key"),
    value: str = typer.Argument(..., help="JSON value (or plain text with --raw)"),
    ttl: Optional[float] = typer.Option(None, "--ttl", help="Expire after N seconds"),
    raw: bool = typer.Option(False, "--raw", help="Store VALUE as a string without JSON parsing"),
):
    """Store a value."""
    if raw:
        payload: Any = value
    else:
        try:
            payload = json.loads(value)
        except json.JSONDecodeError as e:
            console.print(f"[red]VALUE is not valid JSON ({e}); pass --raw to store text[/red]")
            raise typer.Exit(2)

    opts = {"expires": expires_in(ttl)} if ttl else None

    async def _set() -> None:
        async with _open(ctx) as cache:
            await cache.set(key, payload, opts)

    asyncio.run(_set())
    console.print(f"[green]Stored {key}[/green]")


@app.command()
def delete(ctx: typer.Context, key: str = typer.Argument(..., help="Cache key")):
    """Delete a key (missing keys are fine)."""

    async def _delete() -> None:
        async with _open(ctx) as cache:
            await cache.delete(key)

    asyncio.run(_delete())
    console.print(f"[green]Deleted {key}[/green]")


@app.command()
def keys(ctx: typer.Context):
    """List stored keys."""

    async def _keys() -> list[str]:
        async with _open(ctx) as cache:
            return await cache.store.keys()

    found = asyncio.run(_keys())

    table = Table(title=f"Cache keys ({len(found)})")
    table.add_column("Key", style="cyan")
    for key in found:
        table.add_row(key)
    console.print(table)


@app.command()
def sweep(ctx: typer.Context):
    """Purge every expired entry now."""

    async def _sweep() -> int:
        async with _open(ctx) as cache:
            return await ExpirySweeper(cache.store).sweep_once()

    purged = asyncio.run(_sweep())
    console.print(f"[green]Purged {purged} expired entries[/green]")


@app.command("init-db")
def init_db(ctx: typer.Context):
    """Create or migrate the cache table."""
    options = ctx.obj or {}
    url = options.get("database_url") or get_config().database_url()

    asyncio.run(run_migrations(url))

    db_file = sqlite_path(url)
    if db_file is not None and not is_database_ready(db_file):
        console.print(f"[red]Cache table missing in {db_file}[/red]")
        raise typer.Exit(1)

    console.print(Panel.fit(f"Cache database ready\n[blue]{url}[/blue]", title="init-db"))


if __name__ == "__main__":
    app()
