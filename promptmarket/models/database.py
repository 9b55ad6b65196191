"""Async SQLite database layer using aiosqlite.

Provides connection management, automatic schema migrations, convenience
helpers for common query patterns, and an exclusive ``transaction()`` block
used by the order store to make read-check-write steps atomic.  The
``Database`` class is intended to be used as a long-lived singleton and
supports the async context-manager protocol.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

import aiosqlite

from promptmarket.utils.logger import get_logger

log = get_logger(__name__, component="database")

# Columns that hold JSON payloads and are decoded on read.
JSON_COLUMNS: frozenset[str] = frozenset(
    {"service_snapshot", "prompt_data", "asset_urls", "tags", "packages"}
)


class Database:
    """Thin async wrapper around an aiosqlite connection.

    Parameters
    ----------
    db_path:
        File-system path to the SQLite database, or ``:memory:``.  Parent
        directories are created automatically if they do not exist.
    """

    def __init__(self, db_path: str = "data/promptmarket.db") -> None:
        self._db_path = Path(db_path)
        self._conn: aiosqlite.Connection | None = None
        # Guards the shared connection; held for the whole of a transaction
        # so other tasks never see uncommitted rows.
        self._lock = asyncio.Lock()
        self._tx_owner: asyncio.Task[Any] | None = None

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """Open the database connection, enable WAL mode, and run migrations."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        # Autocommit mode: transactions are opened explicitly in transaction().
        self._conn = await aiosqlite.connect(str(self._db_path), isolation_level=None)
        self._conn.row_factory = aiosqlite.Row
        await self._conn.execute("PRAGMA journal_mode=WAL")
        await self._conn.execute("PRAGMA foreign_keys=ON")
        log.info("database_connected", path=str(self._db_path))
        await self.migrate()

    async def close(self) -> None:
        """Close the database connection gracefully."""
        if self._conn is not None:
            await self._conn.close()
            self._conn = None
            log.info("database_closed")

    async def __aenter__(self) -> "Database":
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Migrations
    # ------------------------------------------------------------------

    async def migrate(self) -> None:
        """Create all application tables if they do not already exist."""
        assert self._conn is not None, "Database is not connected"

        await self._conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS profiles (
                id           TEXT    PRIMARY KEY,
                display_name TEXT    NOT NULL,
                avatar_url   TEXT    NOT NULL DEFAULT '',
                bio          TEXT    NOT NULL DEFAULT '',
                is_creator   INTEGER NOT NULL DEFAULT 0,
                created_at   TEXT    NOT NULL
            );

            CREATE TABLE IF NOT EXISTS services (
                id          TEXT PRIMARY KEY,
                creator_id  TEXT NOT NULL,
                title       TEXT NOT NULL,
                description TEXT NOT NULL DEFAULT '',
                category    TEXT NOT NULL DEFAULT 'other',
                price       REAL NOT NULL CHECK(price >= 0),
                tags        TEXT NOT NULL DEFAULT '[]',
                cover_url   TEXT NOT NULL DEFAULT '',
                packages    TEXT NOT NULL DEFAULT '[]',
                created_at  TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS orders (
                id               TEXT PRIMARY KEY,
                buyer_id         TEXT NOT NULL,
                service_owner_id TEXT NOT NULL,
                service_id       TEXT REFERENCES services(id) ON DELETE SET NULL,
                amount           REAL NOT NULL DEFAULT 0,
                status           TEXT NOT NULL DEFAULT 'pending'
                    CHECK(status IN ('pending', 'processing', 'delivered',
                                     'completed', 'cancelled')),
                service_snapshot TEXT NOT NULL,
                created_at       TEXT NOT NULL,
                updated_at       TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_orders_buyer ON orders(buyer_id);
            CREATE INDEX IF NOT EXISTS idx_orders_owner ON orders(service_owner_id);

            CREATE TABLE IF NOT EXISTS order_versions (
                id             TEXT    PRIMARY KEY,
                order_id       TEXT    NOT NULL REFERENCES orders(id) ON DELETE CASCADE,
                version_number INTEGER NOT NULL CHECK(version_number >= 1),
                content_url    TEXT    NOT NULL,
                asset_urls     TEXT    NOT NULL DEFAULT '[]',
                prompt_data    TEXT    NOT NULL DEFAULT '{}',
                creator_notes  TEXT    NOT NULL DEFAULT '',
                status         TEXT    NOT NULL DEFAULT 'pending_review'
                    CHECK(status IN ('pending_review', 'rejected', 'approved')),
                buyer_feedback TEXT,
                created_at     TEXT    NOT NULL,
                UNIQUE(order_id, version_number)
            );

            CREATE TABLE IF NOT EXISTS messages (
                id         TEXT PRIMARY KEY,
                order_id   TEXT NOT NULL REFERENCES orders(id) ON DELETE CASCADE,
                sender_id  TEXT NOT NULL,
                content    TEXT NOT NULL,
                kind       TEXT NOT NULL DEFAULT 'user' CHECK(kind IN ('user', 'system')),
                created_at TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_messages_order ON messages(order_id, created_at);
            """
        )
        log.info("database_migrated")

    # ------------------------------------------------------------------
    # Query helpers
    # ------------------------------------------------------------------

    @property
    def conn(self) -> aiosqlite.Connection:
        """Return the raw connection, raising if not connected."""
        if self._conn is None:
            raise RuntimeError("Database is not connected. Call connect() first.")
        return self._conn

    @property
    def in_transaction(self) -> bool:
        """``True`` when the running task holds the open transaction."""
        return self._tx_owner is not None and self._tx_owner is asyncio.current_task()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator["Database"]:
        """Run the enclosed statements as one ``BEGIN IMMEDIATE`` transaction.

        Writers are serialised on this connection, and ``IMMEDIATE`` takes
        the SQLite write lock up front so other connections wait as well.
        Any exception rolls the whole block back and propagates.
        """
        async with self._lock:
            self._tx_owner = asyncio.current_task()
            await self.conn.execute("BEGIN IMMEDIATE")
            try:
                yield self
            except BaseException:
                await self.conn.execute("ROLLBACK")
                raise
            else:
                await self.conn.execute("COMMIT")
            finally:
                self._tx_owner = None

    async def execute(
        self, sql: str, params: tuple[Any, ...] = ()
    ) -> aiosqlite.Cursor:
        """Execute a SQL statement.

        Outside a transaction the statement is committed on its own.  Inside
        ``transaction()`` it joins the open transaction.

        Returns
        -------
        aiosqlite.Cursor
            The cursor after execution (useful for ``rowcount``, etc.).
        """
        async with self._exclusive():
            return await self.conn.execute(sql, params)

    async def fetch_one(
        self, sql: str, params: tuple[Any, ...] = ()
    ) -> dict[str, Any] | None:
        """Fetch a single row as a dictionary.

        JSON-encoded columns are automatically deserialised.  Returns
        ``None`` when the query matches no rows.  A read issued while another
        task holds a transaction waits for it to commit or roll back.
        """
        async with self._exclusive():
            cursor = await self.conn.execute(sql, params)
            row = await cursor.fetchone()
        if row is None:
            return None
        return self._row_to_dict(row)

    async def fetch_all(
        self, sql: str, params: tuple[Any, ...] = ()
    ) -> list[dict[str, Any]]:
        """Fetch all matching rows, each returned as a dictionary."""
        async with self._exclusive():
            cursor = await self.conn.execute(sql, params)
            rows = await cursor.fetchall()
        return [self._row_to_dict(row) for row in rows]

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def _exclusive(self) -> AsyncIterator[None]:
        """Hold the connection lock unless this task already owns the transaction."""
        if self.in_transaction:
            yield
            return
        async with self._lock:
            yield

    @staticmethod
    def _row_to_dict(row: aiosqlite.Row) -> dict[str, Any]:
        """Convert an ``aiosqlite.Row`` to a plain ``dict``, decoding JSON columns."""
        data: dict[str, Any] = dict(row)
        for json_field in JSON_COLUMNS:
            if json_field in data and isinstance(data[json_field], str):
                try:
                    data[json_field] = json.loads(data[json_field])
                except (json.JSONDecodeError, TypeError):
                    pass
        return data
