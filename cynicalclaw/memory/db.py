"""Async SQLite connection manager and schema for the memory store."""

from __future__ import annotations

from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator

import aiosqlite
from loguru import logger

_SCHEMA = [
    """CREATE TABLE IF NOT EXISTS memories (
        id TEXT PRIMARY KEY,
        content TEXT NOT NULL,
        embedding TEXT,
        timestamp TEXT NOT NULL,
        mood TEXT DEFAULT 'existential',
        source_file TEXT,
        tags TEXT,
        metadata TEXT
    )""",
    "CREATE INDEX IF NOT EXISTS idx_memories_timestamp ON memories(timestamp)",
    "CREATE INDEX IF NOT EXISTS idx_memories_mood ON memories(mood)",
    """CREATE TABLE IF NOT EXISTS messages (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        session_id TEXT NOT NULL,
        role TEXT NOT NULL,
        content TEXT NOT NULL,
        timestamp TEXT NOT NULL,
        metadata TEXT
    )""",
    "CREATE INDEX IF NOT EXISTS idx_messages_session ON messages(session_id, timestamp)",
]


class Database:
    """Async SQLite connection provider with auto-commit/rollback.

    Every operation opens its own connection, so concurrent sessions never
    share a cursor; WAL mode lets readers proceed while one writer commits.
    """

    def __init__(self, db_path: str | Path):
        self.db_path = Path(db_path)

    @asynccontextmanager
    async def acquire(self) -> AsyncIterator[aiosqlite.Connection]:
        """Yield a connection. Commits on success, rolls back on exception."""
        async with aiosqlite.connect(self.db_path) as conn:
            conn.row_factory = aiosqlite.Row
            try:
                yield conn
                await conn.commit()
            except Exception:
                await conn.rollback()
                logger.exception("Database operation failed, transaction rolled back.")
                raise

    async def initialize(self) -> None:
        """Create the database file and tables if missing."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        async with self.acquire() as conn:
            await conn.execute("PRAGMA journal_mode = WAL")
            for statement in _SCHEMA:
                await conn.execute(statement)
        logger.info(f"Memory database ready at {self.db_path}")
