"""Async SQLite key-value storage backend — requires aiosqlite (guarded import).

Every key lives in one ``kv_store`` table so the flat namespace of the
crypto store maps one-to-one onto rows.

Classes
-------
- AsyncSQLiteBackend  — aiosqlite-backed async key-value storage
"""

from __future__ import annotations

from pathlib import Path
from typing import Sequence

from async_crypto_store.storage.async_base import AsyncKeyValueBackend

_AIOSQLITE_IMPORT_ERROR = (
    "AsyncSQLiteBackend requires the 'aiosqlite' package. "
    "Install it with: pip install aiosqlite  or  pip install 'async-crypto-store[sqlite]'"
)

_DEFAULT_DB_PATH: Path = Path.home() / ".async-crypto-store" / "crypto.db"

_CREATE_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS kv_store (
    key   TEXT PRIMARY KEY,
    value TEXT NOT NULL
)
"""

_UPSERT_SQL = """
INSERT INTO kv_store (key, value)
VALUES (?, ?)
ON CONFLICT(key) DO UPDATE SET value = excluded.value
"""


class AsyncSQLiteBackend(AsyncKeyValueBackend):
    """Persists key-value pairs in a local SQLite database using aiosqlite.

    Parameters
    ----------
    db_path:
        Path to the SQLite file.  Defaults to
        ``~/.async-crypto-store/crypto.db``.  The parent directory and table
        are created automatically on first use.
    """

    def __init__(self, db_path: str | Path | None = None) -> None:
        try:
            import aiosqlite as _aiosqlite  # noqa: F401
        except ImportError as exc:
            raise ImportError(_AIOSQLITE_IMPORT_ERROR) from exc

        self._db_path: Path = (
            Path(db_path) if db_path is not None else _DEFAULT_DB_PATH
        )
        self._schema_initialised = False

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _ensure_schema(self) -> None:
        """Create the kv_store table on first use."""
        if self._schema_initialised:
            return
        import aiosqlite

        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with aiosqlite.connect(str(self._db_path)) as conn:
            await conn.execute("PRAGMA journal_mode=WAL")
            await conn.execute(_CREATE_TABLE_SQL)
            await conn.commit()
        self._schema_initialised = True

    # ------------------------------------------------------------------
    # AsyncKeyValueBackend interface
    # ------------------------------------------------------------------

    async def list_all_keys(self) -> Sequence[str]:
        """Return every key stored in the database."""
        import aiosqlite

        await self._ensure_schema()
        async with aiosqlite.connect(str(self._db_path)) as conn:
            async with conn.execute("SELECT key FROM kv_store") as cursor:
                rows = await cursor.fetchall()
        return [str(row[0]) for row in rows]

    async def get_item(self, key: str) -> str | None:
        """Return the value row for ``key``, or ``None`` if absent."""
        import aiosqlite

        await self._ensure_schema()
        async with aiosqlite.connect(str(self._db_path)) as conn:
            conn.row_factory = aiosqlite.Row
            async with conn.execute(
                "SELECT value FROM kv_store WHERE key = ?", (key,)
            ) as cursor:
                row = await cursor.fetchone()

        if row is None:
            return None
        return str(row["value"])

    async def set_item(self, key: str, value: str) -> None:
        """Upsert ``value`` for ``key`` in the kv_store table."""
        import aiosqlite

        await self._ensure_schema()
        async with aiosqlite.connect(str(self._db_path)) as conn:
            await conn.execute("PRAGMA journal_mode=WAL")
            await conn.execute(_UPSERT_SQL, (key, value))
            await conn.commit()

    async def remove_item(self, key: str) -> None:
        """Delete the row for ``key`` if it exists."""
        import aiosqlite

        await self._ensure_schema()
        async with aiosqlite.connect(str(self._db_path)) as conn:
            await conn.execute("PRAGMA journal_mode=WAL")
            await conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
            await conn.commit()

    def __repr__(self) -> str:
        return f"AsyncSQLiteBackend(db_path={str(self._db_path)!r})"


__all__ = ["AsyncSQLiteBackend"]
