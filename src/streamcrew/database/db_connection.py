"""
SQLite access for the moderation action log.

One aiosqlite connection is kept open for the life of the crew. SQLite allows
a single writer, so every write goes through ``write()``, which serialises
callers on a semaphore and commits or rolls back as one unit. Reads in WAL
mode run without the lock.

Usage
-----
    manager = ConnectionManager(path)
    await manager.open()
    await manager.ensure_schema(statements)

    rowcount = await manager.execute_write("DELETE FROM ...", params)
    rows = await manager.fetch_all("SELECT ...", params)

    await manager.close()
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Iterable, List, Sequence

import aiosqlite

from streamcrew.util.logger import get_logger

logger = get_logger("db_connection")

MEMORY_PATH = ":memory:"

_PRAGMAS = (
    "PRAGMA journal_mode = WAL",
    "PRAGMA synchronous = NORMAL",
    "PRAGMA busy_timeout = 5000",
    "PRAGMA journal_size_limit = 8388608",
)


class ConnectionManager:
    """
    Long-lived aiosqlite connection bound to one database file.

    Args:
        path: Database file, created with its parent directory on ``open()``.
            ``":memory:"`` opens a private in-memory database.
    """

    def __init__(self, path: Path | str = MEMORY_PATH) -> None:
        self.path = path
        self._conn: aiosqlite.Connection | None = None
        self._write_lock = asyncio.Semaphore(1)

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    @property
    def connection(self) -> aiosqlite.Connection:
        """
        Raises:
            RuntimeError: If ``open()`` has not been awaited yet.
        """
        if self._conn is None:
            raise RuntimeError(f"Database {self.path} is not open")
        return self._conn

    async def open(self) -> None:
        if self._conn is not None:
            return

        if str(self.path) != MEMORY_PATH:
            Path(self.path).parent.mkdir(parents=True, exist_ok=True)

        conn = await aiosqlite.connect(self.path)
        conn.row_factory = aiosqlite.Row
        try:
            for pragma in _PRAGMAS:
                await conn.execute(pragma)
            await conn.commit()
        except aiosqlite.Error:
            await conn.close()
            raise

        self._conn = conn
        logger.info("[DB] Opened %s", self.path)

    async def close(self) -> None:
        """Fold the WAL back into the main file, then close."""
        conn, self._conn = self._conn, None
        if conn is None:
            return
        try:
            await conn.execute("PRAGMA wal_checkpoint(TRUNCATE)")
        except aiosqlite.Error as exc:
            logger.warning("[DB] WAL checkpoint on close failed: %s", exc)
        finally:
            await conn.close()
        logger.info("[DB] Closed %s", self.path)

    @asynccontextmanager
    async def write(self) -> AsyncIterator[aiosqlite.Connection]:
        """Exclusive write unit: committed on clean exit, rolled back on error."""
        conn = self.connection
        async with self._write_lock:
            try:
                yield conn
            except BaseException:
                await conn.rollback()
                raise
            await conn.commit()

    async def ensure_schema(self, statements: Iterable[str]) -> None:
        async with self.write() as conn:
            for statement in statements:
                await conn.execute(statement)

    async def execute_write(self, sql: str, params: Sequence[object] = ()) -> int:
        """Run one write statement and return the affected row count."""
        async with self.write() as conn:
            cursor = await conn.execute(sql, params)
            return cursor.rowcount

    async def fetch_all(self, sql: str, params: Sequence[object] = ()) -> List[aiosqlite.Row]:
        async with self.connection.execute(sql, params) as cursor:
            return list(await cursor.fetchall())
