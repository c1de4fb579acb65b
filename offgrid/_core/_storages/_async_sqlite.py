from __future__ import annotations

import time
from pathlib import Path
from typing import List, Optional, Union

import anysqlite

from offgrid._core._storages._async_base import AsyncBaseStorage
from offgrid._core._storages._packing import pack, unpack
from offgrid._core.models import Record
from offgrid._synchronization import AsyncLock
from offgrid._utils import ensure_cache_dict


class AsyncSqliteStorage(AsyncBaseStorage):
    """
    Durable storage backed by a single sqlite database.

    Each (store, key) pair is one row. ``INSERT OR REPLACE`` allocates a fresh
    rowid on every write, so ordering by rowid gives insertion order.

    Args:
        connection: An already opened connection, mostly useful for ``":memory:"`` databases.
        database_path: Where to create the database when no connection is passed.
    """

    def __init__(
        self,
        *,
        connection: Optional[anysqlite.Connection] = None,
        database_path: Union[str, Path] = "offgrid_cache.db",
    ) -> None:
        self.connection = connection
        self.database_path: Path = database_path if isinstance(database_path, Path) else Path(database_path)
        self._initialized = False
        self._lock = AsyncLock()

    async def _ensure_connection(self) -> anysqlite.Connection:
        """Ensure connection is established and database is initialized."""
        if self.connection is None:
            parent = self.database_path.parent if self.database_path.parent != Path(".") else None
            full_path = ensure_cache_dict(parent) / self.database_path.name
            self.connection = await anysqlite.connect(str(full_path))
        if not self._initialized:
            await self._initialize_database()
            self._initialized = True
        return self.connection

    async def _initialize_database(self) -> None:
        assert self.connection is not None
        cursor = await self.connection.cursor()

        await cursor.execute("""
            CREATE TABLE IF NOT EXISTS stores (
                name TEXT PRIMARY KEY,
                created_at REAL NOT NULL
            )
        """)

        await cursor.execute("""
            CREATE TABLE IF NOT EXISTS records (
                store TEXT NOT NULL,
                cache_key TEXT NOT NULL,
                data BLOB NOT NULL,
                created_at REAL NOT NULL,
                PRIMARY KEY (store, cache_key)
            )
        """)

        await self.connection.commit()

    async def create_store(self, name: str) -> bool:
        async with self._lock:
            connection = await self._ensure_connection()
            cursor = await connection.cursor()
            if await self._store_exists(name, cursor):
                return False
            await cursor.execute(
                "INSERT INTO stores (name, created_at) VALUES (?, ?)",
                (name, time.time()),
            )
            await connection.commit()
            return True

    async def delete_store(self, name: str) -> bool:
        async with self._lock:
            connection = await self._ensure_connection()
            cursor = await connection.cursor()
            existed = await self._store_exists(name, cursor)
            await cursor.execute("DELETE FROM records WHERE store = ?", (name,))
            await cursor.execute("DELETE FROM stores WHERE name = ?", (name,))
            await connection.commit()
            return existed

    async def _store_exists(self, name: str, cursor: anysqlite.Cursor) -> bool:
        await cursor.execute("SELECT 1 FROM stores WHERE name = ? LIMIT 1", (name,))
        return await cursor.fetchone() is not None

    async def list_stores(self) -> List[str]:
        async with self._lock:
            connection = await self._ensure_connection()
            cursor = await connection.cursor()
            await cursor.execute("SELECT name FROM stores ORDER BY rowid")
            return [row[0] for row in await cursor.fetchall()]

    async def get_record(self, store: str, key: str) -> Optional[Record]:
        async with self._lock:
            connection = await self._ensure_connection()
            cursor = await connection.cursor()
            await cursor.execute(
                "SELECT data FROM records WHERE store = ? AND cache_key = ?",
                (store, key),
            )
            row = await cursor.fetchone()
        return unpack(row[0]) if row is not None else None

    async def put_record(self, store: str, key: str, record: Record) -> None:
        data = pack(record)
        async with self._lock:
            connection = await self._ensure_connection()
            cursor = await connection.cursor()
            await cursor.execute(
                "INSERT OR IGNORE INTO stores (name, created_at) VALUES (?, ?)",
                (store, time.time()),
            )
            await cursor.execute(
                "INSERT OR REPLACE INTO records (store, cache_key, data, created_at) VALUES (?, ?, ?, ?)",
                (store, key, data, record.created_at),
            )
            await connection.commit()

    async def list_keys(self, store: str) -> List[str]:
        async with self._lock:
            connection = await self._ensure_connection()
            cursor = await connection.cursor()
            await cursor.execute("SELECT cache_key FROM records WHERE store = ? ORDER BY rowid", (store,))
            return [row[0] for row in await cursor.fetchall()]

    async def close(self) -> None:
        if self.connection is not None:
            await self.connection.close()
            self.connection = None
            self._initialized = False
