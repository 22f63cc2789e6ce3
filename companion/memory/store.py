"""MemoryStore — aiosqlite persistence for long-term memories and their embeddings."""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator
from datetime import datetime
from typing import TYPE_CHECKING

import aiosqlite

from companion.config import settings
from companion.memory.models import MemoryEntry
from companion.notify import ChangeNotifier

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

_CREATE_TABLE = """
CREATE TABLE IF NOT EXISTS memories (
    id TEXT PRIMARY KEY,
    conversation_id TEXT NOT NULL,
    source_message_id TEXT NOT NULL,
    fact TEXT NOT NULL,
    created_at TEXT NOT NULL,
    is_archived INTEGER NOT NULL DEFAULT 0,
    embedding TEXT
)
"""

_COLUMNS = "id, conversation_id, source_message_id, fact, created_at, is_archived, embedding"

_ALL = "all"


def _from_row(row: tuple) -> tuple[MemoryEntry, list[float] | None]:
    entry = MemoryEntry(
        id=row[0],
        conversation_id=row[1],
        source_message_id=row[2],
        fact=row[3],
        created_at=datetime.fromisoformat(row[4]),
        is_archived=bool(row[5]),
    )
    embedding = json.loads(row[6]) if row[6] else None
    return entry, embedding


class MemoryStore:
    """Persists memories in SQLite.

    Singleton accessed via ``MemoryStore.get()``.  Pass an explicit *db_path*
    for test isolation (e.g. ``tmp_path / "test.db"``).
    """

    _instance: MemoryStore | None = None

    def __init__(self, db_path: Path | None = None) -> None:
        self._db_path = db_path or settings.database_path
        self._initialised = False
        self._notifier = ChangeNotifier()

    @classmethod
    def get(cls) -> MemoryStore:
        """Return the shared MemoryStore instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def _reset(cls) -> None:
        """Reset the singleton (for testing)."""
        cls._instance = None

    # -- Internal helpers ------------------------------------------------------

    async def _connect(self) -> aiosqlite.Connection:
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        db = await aiosqlite.connect(str(self._db_path))
        if not self._initialised:
            await db.execute(_CREATE_TABLE)
            await db.commit()
            self._initialised = True
        return db

    # -- Write -----------------------------------------------------------------

    async def add(self, entry: MemoryEntry, embedding: list[float] | None = None) -> MemoryEntry:
        """Insert a memory with its (optional) pre-computed embedding."""
        db = await self._connect()
        try:
            await db.execute(
                f"INSERT INTO memories ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?)",
                (
                    entry.id,
                    entry.conversation_id,
                    entry.source_message_id,
                    entry.fact,
                    entry.created_at.isoformat(),
                    int(entry.is_archived),
                    json.dumps(embedding) if embedding is not None else None,
                ),
            )
            await db.commit()
        finally:
            await db.close()
        logger.debug("Stored memory %s: %s", entry.id, entry.fact[:80])
        self._notifier.notify(_ALL)
        return entry

    async def update(self, entry: MemoryEntry, embedding: list[float] | None = None) -> bool:
        """Replace a memory's fact (user edit) and its embedding."""
        db = await self._connect()
        try:
            cursor = await db.execute(
                "UPDATE memories SET fact = ?, is_archived = ?, embedding = ? WHERE id = ?",
                (
                    entry.fact,
                    int(entry.is_archived),
                    json.dumps(embedding) if embedding is not None else None,
                    entry.id,
                ),
            )
            await db.commit()
            updated = cursor.rowcount > 0
        finally:
            await db.close()
        if updated:
            self._notifier.notify(_ALL)
        return updated

    async def set_embedding(self, memory_id: str, embedding: list[float]) -> None:
        db = await self._connect()
        try:
            await db.execute(
                "UPDATE memories SET embedding = ? WHERE id = ?",
                (json.dumps(embedding), memory_id),
            )
            await db.commit()
        finally:
            await db.close()

    async def archive(self, memory_id: str) -> bool:
        """Soft-delete a memory. Archived memories are never retrieved."""
        db = await self._connect()
        try:
            cursor = await db.execute(
                "UPDATE memories SET is_archived = 1 WHERE id = ?", (memory_id,)
            )
            await db.commit()
            updated = cursor.rowcount > 0
        finally:
            await db.close()
        if updated:
            self._notifier.notify(_ALL)
        return updated

    async def delete(self, memory_id: str) -> bool:
        """Delete a memory by ID. Returns True if a row was removed."""
        db = await self._connect()
        try:
            cursor = await db.execute("DELETE FROM memories WHERE id = ?", (memory_id,))
            await db.commit()
            deleted = cursor.rowcount > 0
        finally:
            await db.close()
        if deleted:
            logger.info("Deleted memory: %s", memory_id)
            self._notifier.notify(_ALL)
        return deleted

    async def delete_for_conversation(self, conversation_id: str) -> int:
        db = await self._connect()
        try:
            cursor = await db.execute(
                "DELETE FROM memories WHERE conversation_id = ?", (conversation_id,)
            )
            await db.commit()
            count = cursor.rowcount
        finally:
            await db.close()
        if count:
            self._notifier.notify(_ALL)
        return count

    # -- Read ------------------------------------------------------------------

    async def get_all(self) -> list[MemoryEntry]:
        """All memories, newest first."""
        return [entry for entry, _ in await self._select(include_archived=True)]

    async def list_with_embeddings(
        self, created_before: datetime | None = None
    ) -> list[tuple[MemoryEntry, list[float] | None]]:
        """Non-archived memories with their embeddings, newest first.

        Args:
            created_before: Only return memories created at or before this
                instant (used for the minimum-age filter).
        """
        rows = await self._select(include_archived=False)
        if created_before is None:
            return rows
        return [(entry, emb) for entry, emb in rows if entry.created_at <= created_before]

    async def observe_memories(self) -> AsyncIterator[list[MemoryEntry]]:
        """Yield the full memory list now and after every change."""
        async for entries in self._notifier.observe(_ALL, self.get_all):
            yield entries

    async def _select(self, *, include_archived: bool) -> list[tuple[MemoryEntry, list[float] | None]]:
        where = "" if include_archived else "WHERE is_archived = 0"
        db = await self._connect()
        try:
            cursor = await db.execute(
                f"SELECT {_COLUMNS} FROM memories {where} ORDER BY created_at DESC"
            )
            rows = await cursor.fetchall()
        finally:
            await db.close()
        return [_from_row(row) for row in rows]
