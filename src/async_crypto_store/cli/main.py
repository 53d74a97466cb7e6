"""CLI entry point for async-crypto-store.

Invoked as::

    async-crypto-store [OPTIONS] COMMAND [ARGS]...

or, during development::

    python -m async_crypto_store.cli.main

Commands
--------
- version      — Show detailed version information
- store        — Inspection and maintenance command group

Store sub-commands
------------------
- store keys   — List the keys in the crypto namespace
- store stats  — Show entity counts
- store export — Dump every entry in the namespace as JSON or YAML
- store wipe   — Delete every key in the namespace
"""
from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Awaitable, TypeVar

import click
import yaml
from rich.console import Console
from rich.table import Table

from async_crypto_store.config import CryptoStoreConfig
from async_crypto_store.storage.async_base import AsyncKeyValueBackend
from async_crypto_store.store import keys as k
from async_crypto_store.store.codec import EntityCodec, MalformedEntryError
from async_crypto_store.store.crypto_store import MODE_READONLY, AsyncCryptoStore

console = Console()

T = TypeVar("T")

#: ``--kind`` choices for ``store keys``, mapped to entity tags.
KINDS: dict[str, str] = {
    "sessions": k.SESSIONS,
    "problems": k.SESSION_PROBLEMS,
    "group-sessions": k.INBOUND_GROUP_SESSIONS,
    "withheld": k.INBOUND_GROUP_SESSIONS_WITHHELD,
    "rooms": k.ROOMS,
    "key-requests": k.OUTGOING_KEY_REQUESTS,
    "secrets": k.SECRET_STORE_PRIVATE_KEYS,
    "shared-history": k.SHARED_HISTORY_INBOUND_GROUP_SESSIONS,
    "parked": k.PARKED_SHARED_HISTORY,
}

# ---------------------------------------------------------------------------
# Storage backend factory
# ---------------------------------------------------------------------------


def _make_backend(
    storage: str,
    db_path: str | None,
    redis_url: str | None,
) -> AsyncKeyValueBackend:
    """Instantiate the requested storage backend.

    Parameters
    ----------
    storage:
        Backend name: ``"memory"``, ``"sqlite"`` or ``"redis"``.
    db_path:
        Path to the SQLite database (used when ``storage="sqlite"``).
    redis_url:
        Redis connection URL (used when ``storage="redis"``).

    Returns
    -------
    AsyncKeyValueBackend
        A configured storage backend instance.
    """
    from async_crypto_store.storage.async_memory import AsyncInMemoryBackend

    if storage == "memory":
        return AsyncInMemoryBackend()
    if storage == "sqlite":
        from async_crypto_store.storage.async_sqlite import AsyncSQLiteBackend

        return AsyncSQLiteBackend(db_path=Path(db_path) if db_path else None)
    if storage == "redis":
        from async_crypto_store.storage.async_redis import AsyncRedisBackend

        return AsyncRedisBackend(url=redis_url or "redis://localhost:6379/0")
    console.print(f"[red]Unknown storage backend: {storage!r}[/red]")
    sys.exit(1)


def _store(ctx: click.Context) -> AsyncCryptoStore:
    return ctx.obj["store"]


def _run(store: AsyncCryptoStore, coro: Awaitable[T]) -> T:
    """Run ``coro`` to completion, then close the store's backend."""

    async def runner() -> T:
        try:
            return await coro
        finally:
            await store.backend.close()

    return asyncio.run(runner())


# ---------------------------------------------------------------------------
# Root group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(package_name="async-crypto-store")
def cli() -> None:
    """End-to-end encryption storage over a flat key-value store"""


@cli.command(name="version")
def version_command() -> None:
    """Show detailed version information."""
    from async_crypto_store import __version__

    console.print(f"[bold]async-crypto-store[/bold] v{__version__}")


# ---------------------------------------------------------------------------
# store command group
# ---------------------------------------------------------------------------


@cli.group(name="store")
@click.option(
    "--storage",
    default="sqlite",
    show_default=True,
    type=click.Choice(["memory", "sqlite", "redis"], case_sensitive=False),
    help="Storage backend to use.",
)
@click.option("--db-path", default=None, help="Path to SQLite database (sqlite backend).")
@click.option("--redis-url", default=None, help="Redis connection URL (redis backend).")
@click.option(
    "--config",
    "config_path",
    default=None,
    type=click.Path(exists=True, dir_okay=False),
    help="YAML file with crypto store settings.",
)
@click.pass_context
def store_group(
    ctx: click.Context,
    storage: str,
    db_path: str | None,
    redis_url: str | None,
    config_path: str | None,
) -> None:
    """Inspect and maintain a crypto store."""
    config = CryptoStoreConfig.from_yaml(config_path) if config_path else CryptoStoreConfig()
    ctx.ensure_object(dict)
    ctx.obj["store"] = AsyncCryptoStore(_make_backend(storage, db_path, redis_url), config=config)


# ---------------------------------------------------------------------------
# store keys
# ---------------------------------------------------------------------------


@store_group.command(name="keys")
@click.option(
    "--kind",
    default=None,
    type=click.Choice(sorted(KINDS)),
    help="Only list keys of this entity kind.",
)
@click.pass_context
def store_keys(ctx: click.Context, kind: str | None) -> None:
    """List the keys in the crypto namespace."""
    store = _store(ctx)
    prefix = store.keys.prefix(KINDS[kind]) if kind else store.keys.namespace

    all_keys = _run(store, store.backend.list_all_keys())
    matching = sorted(store.keys.filter(all_keys, prefix))

    if not matching:
        console.print("[yellow]No keys found.[/yellow]")
        return

    table = Table(title="Keys", show_lines=False)
    table.add_column("Key", style="cyan")
    for key in matching:
        table.add_row(key)
    console.print(table)
    console.print(f"\n[dim]{len(matching)} keys under {prefix!r}.[/dim]")


# ---------------------------------------------------------------------------
# store stats
# ---------------------------------------------------------------------------


async def _collect_stats(store: AsyncCryptoStore) -> dict[str, int]:
    stats: dict[str, int] = {}

    def read(txn: Any) -> None:
        store.count_end_to_end_sessions(txn, lambda n: stats.__setitem__("sessions", n))
        store.get_end_to_end_rooms(txn, lambda rooms: stats.__setitem__("rooms", len(rooms)))

    await store.do_txn(MODE_READONLY, ["sessions", "rooms"], read)
    stats["group_sessions"] = await store.count_end_to_end_inbound_group_sessions()
    stats["sessions_needing_backup"] = await store.count_sessions_needing_backup()

    all_keys = await store.backend.list_all_keys()
    stats["outgoing_key_requests"] = len(
        store.keys.filter(all_keys, store.keys.prefix(k.OUTGOING_KEY_REQUESTS))
    )
    return stats


@store_group.command(name="stats")
@click.option("--json-output", is_flag=True, help="Output raw JSON instead of a table.")
@click.pass_context
def store_stats(ctx: click.Context, json_output: bool) -> None:
    """Show how many entities of each kind are stored."""
    store = _store(ctx)
    stats = _run(store, _collect_stats(store))

    if json_output:
        console.print_json(json.dumps(stats))
        return

    table = Table(title="Crypto store", show_lines=False)
    table.add_column("Entity", style="bold cyan")
    table.add_column("Count", justify="right")
    for name, count in stats.items():
        table.add_row(name, str(count))
    console.print(table)


# ---------------------------------------------------------------------------
# store export
# ---------------------------------------------------------------------------


async def _export(store: AsyncCryptoStore) -> dict[str, Any]:
    codec = EntityCodec()
    entries: dict[str, Any] = {}
    for key in sorted(store.keys.filter(await store.backend.list_all_keys(), store.keys.namespace)):
        entries[key] = codec.decode(key, await store.backend.get_item(key))
    return entries


@store_group.command(name="export")
@click.option(
    "--format",
    "output_format",
    default="json",
    show_default=True,
    type=click.Choice(["json", "yaml"]),
    help="Output format.",
)
@click.pass_context
def store_export(ctx: click.Context, output_format: str) -> None:
    """Dump every entry in the crypto namespace."""
    store = _store(ctx)
    try:
        entries = _run(store, _export(store))
    except MalformedEntryError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        sys.exit(1)
    if output_format == "yaml":
        click.echo(yaml.safe_dump(entries, default_flow_style=False, allow_unicode=True, sort_keys=True))
    else:
        click.echo(json.dumps(entries, indent=2, sort_keys=True))


# ---------------------------------------------------------------------------
# store wipe
# ---------------------------------------------------------------------------


@store_group.command(name="wipe")
@click.option("--yes", is_flag=True, help="Do not ask for confirmation.")
@click.pass_context
def store_wipe(ctx: click.Context, yes: bool) -> None:
    """Delete every key in the crypto namespace."""
    store = _store(ctx)
    if not yes:
        click.confirm(f"Delete all keys under {store.keys.namespace!r}?", abort=True)
    _run(store, store.delete_all_data())
    console.print("[green]Crypto store wiped.[/green]")


if __name__ == "__main__":
    cli()
