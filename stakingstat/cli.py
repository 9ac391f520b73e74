"""
Command line interface for the staking stats collector.

    stakingstat --config config.json init-db --store 1
    stakingstat --config config.json clear-db --store 2
    stakingstat --config config.json reconcile --last 100
    stakingstat --config config.json run
"""

import asyncio
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from stakingstat.collector.main import build_stores, run_collector, STORE_NAMES
from stakingstat.core.config import Settings, load_settings
from stakingstat.core.exceptions import ConfigurationError, StakingStatException
from stakingstat.core.logging import setup_logging
from stakingstat.services.reconciliation import ReconciliationEngine
from stakingstat.services.sample_store import SampleStore

console = Console()
app = typer.Typer(help="Particl staking reward statistics collector")


def _settings(ctx: typer.Context) -> Settings:
    return ctx.obj["settings"]


def _fail(message: str) -> None:
    console.print(f"❌ {message}")
    raise typer.Exit(code=1)


@app.callback()
def main(
    ctx: typer.Context,
    config: Optional[str] = typer.Option(None, "--config", "-c", help="JSON config file"),
):
    """Load configuration and set up logging."""
    try:
        settings = load_settings(config)
    except ConfigurationError as e:
        _fail(e.message)
    setup_logging(settings)
    ctx.obj = {"settings": settings}


def _select_store_url(settings: Settings, ordinal: int) -> str:
    urls = settings.database_urls
    if ordinal < 1 or ordinal > len(STORE_NAMES):
        _fail(f"Store must be 1 or 2, got {ordinal}")
    if ordinal > len(urls):
        _fail(f"Store {ordinal} ({STORE_NAMES[ordinal - 1]}) is not configured")
    return urls[ordinal - 1]


async def _with_store(settings: Settings, ordinal: int, url: str, operation: str) -> None:
    store = SampleStore.from_url(STORE_NAMES[ordinal - 1], url, settings)
    try:
        if operation == "create":
            await store.create_schema()
        else:
            await store.drop_schema()
    finally:
        await store.close()


@app.command("init-db")
def init_db(
    ctx: typer.Context,
    store: int = typer.Option(1, "--store", "-s", help="Store ordinal (1 or 2)"),
):
    """Create the stakingratestats table."""
    settings = _settings(ctx)
    url = _select_store_url(settings, store)
    try:
        asyncio.run(_with_store(settings, store, url, "create"))
    except StakingStatException as e:
        _fail(f"Failed to initialize database: {e.message}")
    console.print(f"✅ Database {store} initialized successfully!")


@app.command("clear-db")
def clear_db(
    ctx: typer.Context,
    store: int = typer.Option(1, "--store", "-s", help="Store ordinal (1 or 2)"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
):
    """Drop the stakingratestats table."""
    if not yes and not typer.confirm(f"Drop all staking stats in store {store}?"):
        console.print("❌ Operation cancelled")
        return
    settings = _settings(ctx)
    url = _select_store_url(settings, store)
    try:
        asyncio.run(_with_store(settings, store, url, "drop"))
    except StakingStatException as e:
        _fail(f"Failed to clear database: {e.message}")
    console.print(f"🗑️ Database {store} cleared!")


@app.command()
def reconcile(
    ctx: typer.Context,
    last: Optional[int] = typer.Option(None, "--last", "-n", help="Number of most recent blocks to compare"),
):
    """Copy samples missing from either store's recent window into the other."""
    settings = _settings(ctx)
    window = last if last is not None else settings.reconcile_window
    if window < 0:
        _fail("--last must not be negative")
    if not settings.secondary_database_url:
        _fail("Reconciliation needs a secondary database (secondary_database_url)")

    async def _reconcile():
        store_a, store_b = build_stores(settings)
        try:
            return await ReconciliationEngine().reconcile(store_a, store_b, window)
        finally:
            await store_a.close()
            await store_b.close()

    try:
        result = asyncio.run(_reconcile())
    except StakingStatException as e:
        _fail(f"Reconciliation failed: {e.message}")

    table = Table(title=f"Reconciliation (last {window} blocks)")
    table.add_column("Direction", style="cyan")
    table.add_column("Blocks copied", style="green")
    table.add_row("primary → secondary", str(len(result.copied_a_to_b)))
    table.add_row("secondary → primary", str(len(result.copied_b_to_a)))
    console.print(table)


@app.command()
def run(ctx: typer.Context):
    """Collect staking stats from block notifications until interrupted."""
    try:
        asyncio.run(run_collector(_settings(ctx)))
    except StakingStatException as e:
        _fail(f"Collector failed: {e.message}")


@app.command()
def health(ctx: typer.Context):
    """Check connectivity of every configured store."""
    settings = _settings(ctx)

    async def _health():
        stores = build_stores(settings)
        try:
            return [(store.name, await store.health_check()) for store in stores]
        finally:
            for store in stores:
                await store.close()

    table = Table(title="Database Status")
    table.add_column("Store", style="cyan")
    table.add_column("Status", style="green")

    results = asyncio.run(_health())
    for name, healthy in results:
        table.add_row(name, "✅ Connected" if healthy else "❌ Disconnected")
    console.print(table)

    if not all(healthy for _, healthy in results):
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
