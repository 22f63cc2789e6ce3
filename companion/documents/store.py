"""DocumentStore — aiosqlite persistence for knowledge documents and their chunks."""

from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import TYPE_CHECKING

import aiosqlite

from companion.config import settings
from companion.documents.models import Document, DocumentChunk

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

_CREATE_TABLES = (
    """
    CREATE TABLE IF NOT EXISTS documents (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        content TEXT NOT NULL,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS document_chunks (
        id TEXT PRIMARY KEY,
        document_id TEXT NOT NULL REFERENCES documents(id) ON DELETE CASCADE,
        chunk_index INTEGER NOT NULL,
        content TEXT NOT NULL,
        embedding TEXT
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_chunks_document ON document_chunks(document_id)",
)


def _chunk_from_row(row: tuple) -> DocumentChunk:
    return DocumentChunk(
        id=row[0],
        document_id=row[1],
        chunk_index=row[2],
        content=row[3],
        embedding=json.loads(row[4]) if row[4] else None,
    )


class DocumentStore:
    """Persists documents and chunks in SQLite.

    Singleton accessed via ``DocumentStore.get()``.  Pass an explicit
    *db_path* for test isolation.
    """

    _instance: DocumentStore | None = None

    def __init__(self, db_path: Path | None = None) -> None:
        self._db_path = db_path or settings.database_path
        self._initialised = False

    @classmethod
    def get(cls) -> DocumentStore:
        """Return the shared DocumentStore instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def _reset(cls) -> None:
        """Reset the singleton (for testing)."""
        cls._instance = None

    async def _connect(self) -> aiosqlite.Connection:
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        db = await aiosqlite.connect(str(self._db_path))
        await db.execute("PRAGMA foreign_keys = ON")
        if not self._initialised:
            for statement in _CREATE_TABLES:
                await db.execute(statement)
            await db.commit()
            self._initialised = True
        return db

    # -- Documents -------------------------------------------------------------

    async def add_document(self, document: Document) -> Document:
        db = await self._connect()
        try:
            await db.execute(
                "INSERT INTO documents (id, name, content, created_at) VALUES (?, ?, ?, ?)",
                (document.id, document.name, document.content, document.created_at.isoformat()),
            )
            await db.commit()
        finally:
            await db.close()
        logger.info("Added document: %s (%s)", document.name, document.id)
        return document

    async def update_document(self, document: Document) -> bool:
        db = await self._connect()
        try:
            cursor = await db.execute(
                "UPDATE documents SET name = ?, content = ? WHERE id = ?",
                (document.name, document.content, document.id),
            )
            await db.commit()
            return cursor.rowcount > 0
        finally:
            await db.close()

    async def get_document(self, document_id: str) -> Document | None:
        db = await self._connect()
        try:
            cursor = await db.execute(
                "SELECT id, name, content, created_at FROM documents WHERE id = ?",
                (document_id,),
            )
            row = await cursor.fetchone()
        finally:
            await db.close()
        if row is None:
            return None
        return Document(
            id=row[0], name=row[1], content=row[2], created_at=datetime.fromisoformat(row[3])
        )

    async def list_documents(self) -> list[Document]:
        db = await self._connect()
        try:
            cursor = await db.execute(
                "SELECT id, name, content, created_at FROM documents ORDER BY created_at"
            )
            rows = await cursor.fetchall()
        finally:
            await db.close()
        return [
            Document(id=r[0], name=r[1], content=r[2], created_at=datetime.fromisoformat(r[3]))
            for r in rows
        ]

    async def delete_document(self, document_id: str) -> bool:
        """Delete a document and, by cascade, all of its chunks."""
        db = await self._connect()
        try:
            cursor = await db.execute("DELETE FROM documents WHERE id = ?", (document_id,))
            await db.commit()
            deleted = cursor.rowcount > 0
        finally:
            await db.close()
        if deleted:
            logger.info("Deleted document: %s", document_id)
        return deleted

    # -- Chunks ----------------------------------------------------------------

    async def replace_chunks(self, document_id: str, chunks: list[DocumentChunk]) -> None:
        """Atomically swap a document's chunks for a freshly computed set."""
        db = await self._connect()
        try:
            await db.execute("DELETE FROM document_chunks WHERE document_id = ?", (document_id,))
            await db.executemany(
                "INSERT INTO document_chunks (id, document_id, chunk_index, content, embedding) "
                "VALUES (?, ?, ?, ?, ?)",
                [
                    (
                        c.id,
                        c.document_id,
                        c.chunk_index,
                        c.content,
                        json.dumps(c.embedding) if c.embedding is not None else None,
                    )
                    for c in chunks
                ],
            )
            await db.commit()
        finally:
            await db.close()

    async def delete_chunks(self, document_id: str) -> int:
        db = await self._connect()
        try:
            cursor = await db.execute(
                "DELETE FROM document_chunks WHERE document_id = ?", (document_id,)
            )
            await db.commit()
            return cursor.rowcount
        finally:
            await db.close()

    async def list_chunks(self, document_id: str | None = None) -> list[DocumentChunk]:
        """Chunks of one document, or of every document when *document_id* is None."""
        sql = "SELECT id, document_id, chunk_index, content, embedding FROM document_chunks"
        params: tuple = ()
        if document_id is not None:
            sql += " WHERE document_id = ?"
            params = (document_id,)
        sql += " ORDER BY document_id, chunk_index"
        db = await self._connect()
        try:
            cursor = await db.execute(sql, params)
            rows = await cursor.fetchall()
        finally:
            await db.close()
        return [_chunk_from_row(row) for row in rows]
