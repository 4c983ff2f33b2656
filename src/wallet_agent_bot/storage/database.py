"""SQLite store shared by the keystore and conversation memory.

One ``aiosqlite`` connection serves every chat user. Reads run freely;
writes are funnelled through :meth:`Database.write` so each statement (or
batch) commits or rolls back as a unit even when many users' handlers
interleave on the event loop.
"""

from __future__ import annotations

import asyncio
import sqlite3
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Iterable, Optional

import aiosqlite

SCHEMA = """\
CREATE TABLE IF NOT EXISTS accounts (
    user_id TEXT PRIMARY KEY,
    public_key TEXT NOT NULL,
    private_key TEXT NOT NULL,
    alerts_enabled INTEGER NOT NULL DEFAULT 0,
    in_progress INTEGER NOT NULL DEFAULT 0,
    in_game INTEGER NOT NULL DEFAULT 0,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS agent_messages (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    thread_id TEXT NOT NULL,
    role TEXT NOT NULL,
    content TEXT NOT NULL DEFAULT '',
    tool_calls_json TEXT,
    tool_call_id TEXT,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE INDEX IF NOT EXISTS idx_agent_messages_thread
    ON agent_messages (thread_id, id);
"""


class Database:
    """Async access to the bot's SQLite file.

    Parameters
    ----------
    db_path:
        Location of the database file; parent directories are created on
        :meth:`connect`. ``":memory:"`` gives a throwaway database.
    """

    def __init__(self, db_path: Path | str) -> None:
        self.db_path = db_path if db_path == ":memory:" else Path(db_path)
        self._conn: Optional[aiosqlite.Connection] = None
        self._write_lock = asyncio.Lock()

    async def connect(self) -> None:
        """Open the connection in WAL mode and create missing tables."""
        if isinstance(self.db_path, Path):
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = await aiosqlite.connect(str(self.db_path))
        await conn.execute("PRAGMA journal_mode=WAL;")
        conn.row_factory = sqlite3.Row
        await conn.executescript(SCHEMA)
        await conn.commit()
        self._conn = conn

    async def close(self) -> None:
        if self._conn is not None:
            await self._conn.close()
            self._conn = None

    @property
    def connected(self) -> bool:
        return self._conn is not None

    def _require(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise RuntimeError("Database is not connected; call connect() first")
        return self._conn

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def write(self) -> AsyncIterator[aiosqlite.Connection]:
        """Hold the write lock; commit on success, roll back on error."""
        conn = self._require()
        async with self._write_lock:
            try:
                yield conn
            except BaseException:
                await conn.rollback()
                raise
            await conn.commit()

    async def execute(self, sql: str, params: tuple = ()) -> aiosqlite.Cursor:
        """Run one write statement; the cursor exposes ``rowcount``."""
        async with self.write() as conn:
            return await conn.execute(sql, params)

    async def executemany(self, sql: str, rows: Iterable[tuple]) -> None:
        async with self.write() as conn:
            await conn.executemany(sql, rows)

    async def insert_if_absent(self, sql: str, params: tuple = ()) -> bool:
        """Run an ``INSERT ... ON CONFLICT DO NOTHING``; ``True`` if a row was written."""
        cursor = await self.execute(sql, params)
        return cursor.rowcount == 1

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def fetch_one(self, sql: str, params: tuple = ()) -> Optional[dict]:
        async with self._require().execute(sql, params) as cursor:
            row = await cursor.fetchone()
        return dict(row) if row is not None else None

    async def fetch_all(self, sql: str, params: tuple = ()) -> list[dict]:
        async with self._require().execute(sql, params) as cursor:
            rows = await cursor.fetchall()
        return [dict(r) for r in rows]


def get_database(path: Path | str) -> Database:
    """Return an unconnected :class:`Database` for *path*."""
    return Database(path)
