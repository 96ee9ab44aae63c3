"""Memory store: session message history plus MemoryEntry rows with hybrid search."""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional, Sequence

from loguru import logger

from cynicalclaw.memory.db import Database
from cynicalclaw.memory.embeddings import EMBEDDING_DIMENSION, cosine_distance


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def new_memory_id() -> str:
    return f"mem-{uuid.uuid4().hex[:12]}"


@dataclass
class MemoryEntry:
    """A persisted memory. Never mutated once written."""

    id: str
    content: str
    timestamp: str = field(default_factory=now_iso)
    mood: str = "existential"
    embedding: Optional[list[float]] = None
    source_file: Optional[str] = None
    tags: list[str] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class StoredMessage:
    """One appended turn of a session's history."""

    id: int
    session_id: str
    role: str
    content: str
    timestamp: str
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class SessionStats:
    session_id: str
    message_count: int
    last_timestamp: str


def _loads(value: Optional[str], default: Any) -> Any:
    if not value:
        return default
    try:
        return json.loads(value)
    except (json.JSONDecodeError, ValueError):
        return default


def _escape_like(query: str) -> str:
    return query.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class MemoryStore:
    """Persistent store backing the compressor and hybrid retrieval.

    Messages are append-only per session and read back in insertion order.
    Memory entries carry an optional vector of fixed dimension; vectors of
    any other size are dropped at write time.
    """

    def __init__(self, db: Database, dimension: int = EMBEDDING_DIMENSION):
        self.db = db
        self.dimension = dimension

    async def initialize(self) -> None:
        await self.db.initialize()

    # ========== Session messages ==========

    async def append_message(
        self,
        session_id: str,
        role: str,
        content: str,
        timestamp: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> StoredMessage:
        ts = timestamp or now_iso()
        async with self.db.acquire() as conn:
            cursor = await conn.execute(
                """INSERT INTO messages (session_id, role, content, timestamp, metadata)
                   VALUES (?, ?, ?, ?, ?)""",
                (session_id, role, content, ts, json.dumps(metadata) if metadata else None),
            )
            message_id = cursor.lastrowid
        return StoredMessage(
            id=message_id,
            session_id=session_id,
            role=role,
            content=content,
            timestamp=ts,
            metadata=metadata or {},
        )

    async def get_session_messages(self, session_id: str) -> list[StoredMessage]:
        """All messages of a session, oldest first."""
        async with self.db.acquire() as conn:
            rows = await conn.execute_fetchall(
                """SELECT id, session_id, role, content, timestamp, metadata
                   FROM messages WHERE session_id = ?
                   ORDER BY timestamp ASC, id ASC""",
                (session_id,),
            )
        return [
            StoredMessage(
                id=row["id"],
                session_id=row["session_id"],
                role=row["role"],
                content=row["content"],
                timestamp=row["timestamp"],
                metadata=_loads(row["metadata"], {}),
            )
            for row in rows
        ]

    async def count_session_messages(self, session_id: str) -> int:
        async with self.db.acquire() as conn:
            rows = await conn.execute_fetchall(
                "SELECT COUNT(*) AS n FROM messages WHERE session_id = ?", (session_id,)
            )
        return rows[0]["n"] if rows else 0

    async def delete_session_messages(self, session_id: str, up_to_id: Optional[int] = None) -> int:
        """Delete a session's messages, only those with id <= ``up_to_id`` when given."""
        async with self.db.acquire() as conn:
            if up_to_id is None:
                cursor = await conn.execute("DELETE FROM messages WHERE session_id = ?", (session_id,))
            else:
                cursor = await conn.execute(
                    "DELETE FROM messages WHERE session_id = ? AND id <= ?", (session_id, up_to_id)
                )
            return cursor.rowcount

    async def find_stale_sessions(self, cutoff: str, min_messages: int) -> list[SessionStats]:
        """Sessions whose latest message predates ``cutoff`` and that hold more than ``min_messages``."""
        async with self.db.acquire() as conn:
            rows = await conn.execute_fetchall(
                """SELECT session_id, COUNT(*) AS message_count, MAX(timestamp) AS last_ts
                   FROM messages
                   GROUP BY session_id
                   HAVING last_ts < ? AND message_count > ?
                   ORDER BY last_ts ASC""",
                (cutoff, min_messages),
            )
        return [
            SessionStats(
                session_id=row["session_id"],
                message_count=row["message_count"],
                last_timestamp=row["last_ts"],
            )
            for row in rows
        ]

    # ========== Memory entries ==========

    async def add_entry(self, entry: MemoryEntry) -> None:
        embedding = entry.embedding
        if embedding is not None and len(embedding) != self.dimension:
            logger.warning(
                f"Memory {entry.id}: embedding has {len(embedding)} dims, expected "
                f"{self.dimension}; storing without vector"
            )
            embedding = None

        async with self.db.acquire() as conn:
            await conn.execute(
                """INSERT INTO memories
                   (id, content, embedding, timestamp, mood, source_file, tags, metadata)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    entry.id,
                    entry.content,
                    json.dumps(embedding) if embedding is not None else None,
                    entry.timestamp,
                    entry.mood,
                    entry.source_file,
                    json.dumps(entry.tags),
                    json.dumps(entry.metadata) if entry.metadata else None,
                ),
            )
        logger.debug(f"Stored memory {entry.id}{' with vector' if embedding else ''}")

    async def get_entry(self, entry_id: str) -> Optional[MemoryEntry]:
        async with self.db.acquire() as conn:
            rows = await conn.execute_fetchall("SELECT * FROM memories WHERE id = ?", (entry_id,))
        return self._row_to_entry(rows[0]) if rows else None

    async def find_by_tag(self, tag: str, limit: int = 10) -> list[MemoryEntry]:
        """Entries carrying ``tag``, newest first."""
        async with self.db.acquire() as conn:
            rows = await conn.execute_fetchall(
                """SELECT m.* FROM memories m, json_each(m.tags) t
                   WHERE t.value = ?
                   ORDER BY m.timestamp DESC LIMIT ?""",
                (tag, limit),
            )
        return [self._row_to_entry(r) for r in rows]

    # ========== Retrieval ==========

    async def search_lexical(self, query: str, limit: int = 5) -> list[MemoryEntry]:
        """Substring match on content, newest first."""
        async with self.db.acquire() as conn:
            rows = await conn.execute_fetchall(
                """SELECT * FROM memories
                   WHERE content LIKE ? ESCAPE '\\'
                   ORDER BY timestamp DESC LIMIT ?""",
                (f"%{_escape_like(query)}%", limit),
            )
        return [self._row_to_entry(r) for r in rows]

    async def search_similar(self, embedding: Sequence[float], limit: int = 5) -> list[MemoryEntry]:
        """Entries ranked by cosine distance to ``embedding``, closest first."""
        if len(embedding) != self.dimension:
            logger.warning(f"Vector search skipped: query has {len(embedding)} dims")
            return []

        async with self.db.acquire() as conn:
            rows = await conn.execute_fetchall(
                "SELECT * FROM memories WHERE embedding IS NOT NULL"
            )

        scored: list[tuple[float, MemoryEntry]] = []
        for row in rows:
            entry = self._row_to_entry(row)
            if entry.embedding is None or len(entry.embedding) != self.dimension:
                continue
            scored.append((cosine_distance(embedding, entry.embedding), entry))
        scored.sort(key=lambda pair: pair[0])
        return [entry for _, entry in scored[:limit]]

    async def search(
        self,
        query: str,
        embedding: Optional[Sequence[float]] = None,
        limit: int = 5,
    ) -> list[MemoryEntry]:
        """Hybrid search: lexical hits first, then vector hits, deduped by id."""
        lexical = await self.search_lexical(query, limit)

        semantic: list[MemoryEntry] = []
        if embedding is not None:
            try:
                semantic = await self.search_similar(embedding, limit)
            except Exception as e:
                logger.error(f"Vector search failed, using lexical results only: {e}")

        seen: set[str] = set()
        merged: list[MemoryEntry] = []
        for entry in lexical + semantic:
            if entry.id not in seen:
                seen.add(entry.id)
                merged.append(entry)
        return merged[:limit]

    @staticmethod
    def _row_to_entry(row) -> MemoryEntry:
        return MemoryEntry(
            id=row["id"],
            content=row["content"],
            timestamp=row["timestamp"],
            mood=row["mood"] or "existential",
            embedding=_loads(row["embedding"], None),
            source_file=row["source_file"],
            tags=_loads(row["tags"], []),
            metadata=_loads(row["metadata"], {}),
        )
