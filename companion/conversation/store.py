"""ConversationStore — aiosqlite CRUD for conversations and messages."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from datetime import UTC, datetime
from typing import TYPE_CHECKING

import aiosqlite

from companion.config import settings
from companion.conversation.models import Conversation, Message
from companion.notify import ChangeNotifier

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

_CREATE_TABLES = (
    """
    CREATE TABLE IF NOT EXISTS conversations (
        id TEXT PRIMARY KEY,
        title TEXT NOT NULL,
        system_prompt TEXT NOT NULL DEFAULT '',
        model TEXT NOT NULL DEFAULT '',
        provider TEXT NOT NULL DEFAULT '',
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    # Message fields beyond the keys live in a pydantic JSON document
    """
    CREATE TABLE IF NOT EXISTS messages (
        id TEXT PRIMARY KEY,
        conversation_id TEXT NOT NULL REFERENCES conversations(id) ON DELETE CASCADE,
        created_at TEXT NOT NULL,
        data TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_messages_conversation ON messages(conversation_id, created_at)",
)

_CONVERSATION_COLUMNS = "id, title, system_prompt, model, provider, created_at, updated_at"


def _conversation_from_row(row: tuple, messages: list[Message]) -> Conversation:
    return Conversation(
        id=row[0],
        title=row[1],
        system_prompt=row[2],
        model=row[3],
        provider=row[4],
        created_at=datetime.fromisoformat(row[5]),
        updated_at=datetime.fromisoformat(row[6]),
        messages=messages,
    )


class ConversationStore:
    """Persists conversations and their messages in SQLite.

    Singleton accessed via ``ConversationStore.get()``.  Pass an explicit
    *db_path* for test isolation (e.g. ``tmp_path / "test.db"``).
    """

    _instance: ConversationStore | None = None

    def __init__(self, db_path: Path | None = None) -> None:
        self._db_path = db_path or settings.database_path
        self._initialised = False
        self._notifier = ChangeNotifier()

    @classmethod
    def get(cls) -> ConversationStore:
        """Return the shared ConversationStore instance."""
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
        await db.execute("PRAGMA foreign_keys = ON")
        if not self._initialised:
            for statement in _CREATE_TABLES:
                await db.execute(statement)
            await self._sweep_placeholders(db)
            await db.commit()
            self._initialised = True
        return db

    async def _sweep_placeholders(self, db: aiosqlite.Connection) -> None:
        """Delete empty assistant placeholders left by a turn that never finished.

        Runs once per store, before any turn of this process can have written
        a placeholder, so every empty assistant row found here is orphaned.
        """
        cursor = await db.execute(
            "DELETE FROM messages WHERE json_extract(data, '$.role') = 'assistant' "
            "AND trim(json_extract(data, '$.content')) = ''"
        )
        if cursor.rowcount > 0:
            logger.warning("Removed %d unfinished assistant placeholder(s)", cursor.rowcount)

    async def _touch(self, db: aiosqlite.Connection, conversation_id: str) -> None:
        await db.execute(
            "UPDATE conversations SET updated_at = ? WHERE id = ?",
            (datetime.now(UTC).isoformat(), conversation_id),
        )

    # -- Conversations ---------------------------------------------------------

    async def create_conversation(self, conversation: Conversation) -> Conversation:
        db = await self._connect()
        try:
            await db.execute(
                f"INSERT INTO conversations ({_CONVERSATION_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?)",
                (
                    conversation.id,
                    conversation.title,
                    conversation.system_prompt,
                    conversation.model,
                    conversation.provider,
                    conversation.created_at.isoformat(),
                    conversation.updated_at.isoformat(),
                ),
            )
            await db.commit()
        finally:
            await db.close()
        logger.info("Created conversation: %s (%s)", conversation.title, conversation.id)
        self._notifier.notify(conversation.id)
        return conversation

    async def get_conversation(self, conversation_id: str) -> Conversation | None:
        """Fetch a conversation with its messages, or None if not found."""
        db = await self._connect()
        try:
            cursor = await db.execute(
                f"SELECT {_CONVERSATION_COLUMNS} FROM conversations WHERE id = ?",
                (conversation_id,),
            )
            row = await cursor.fetchone()
        finally:
            await db.close()
        if row is None:
            return None
        return _conversation_from_row(row, await self.list_messages(conversation_id))

    async def list_conversations(self) -> list[Conversation]:
        """All conversations without messages, most recently updated first."""
        db = await self._connect()
        try:
            cursor = await db.execute(
                f"SELECT {_CONVERSATION_COLUMNS} FROM conversations ORDER BY updated_at DESC"
            )
            rows = await cursor.fetchall()
        finally:
            await db.close()
        return [_conversation_from_row(row, []) for row in rows]

    async def update_conversation_model(self, conversation_id: str, model: str, provider: str) -> None:
        db = await self._connect()
        try:
            await db.execute(
                "UPDATE conversations SET model = ?, provider = ? WHERE id = ?",
                (model, provider, conversation_id),
            )
            await self._touch(db, conversation_id)
            await db.commit()
        finally:
            await db.close()
        self._notifier.notify(conversation_id)

    async def delete_conversation(self, conversation_id: str) -> bool:
        """Delete a conversation and, by cascade, its messages."""
        db = await self._connect()
        try:
            cursor = await db.execute("DELETE FROM conversations WHERE id = ?", (conversation_id,))
            await db.commit()
            deleted = cursor.rowcount > 0
        finally:
            await db.close()
        if deleted:
            logger.info("Deleted conversation: %s", conversation_id)
            self._notifier.notify(conversation_id)
        return deleted

    async def observe_conversation(self, conversation_id: str) -> AsyncIterator[Conversation | None]:
        """Yield the conversation now and after every mutation to it."""
        async def load() -> Conversation | None:
            return await self.get_conversation(conversation_id)

        async for conversation in self._notifier.observe(conversation_id, load):
            yield conversation

    # -- Messages --------------------------------------------------------------

    async def create_message(self, message: Message) -> Message:
        db = await self._connect()
        try:
            await db.execute(
                "INSERT INTO messages (id, conversation_id, created_at, data) VALUES (?, ?, ?, ?)",
                (
                    message.id,
                    message.conversation_id,
                    message.created_at.isoformat(),
                    message.model_dump_json(),
                ),
            )
            await self._touch(db, message.conversation_id)
            await db.commit()
        finally:
            await db.close()
        self._notifier.notify(message.conversation_id)
        return message

    async def update_message(self, message: Message) -> bool:
        """Overwrite a stored message. Returns True if a row was updated."""
        db = await self._connect()
        try:
            cursor = await db.execute(
                "UPDATE messages SET data = ? WHERE id = ?",
                (message.model_dump_json(), message.id),
            )
            await self._touch(db, message.conversation_id)
            await db.commit()
            updated = cursor.rowcount > 0
        finally:
            await db.close()
        if updated:
            self._notifier.notify(message.conversation_id)
        return updated

    async def get_message(self, message_id: str) -> Message | None:
        db = await self._connect()
        try:
            cursor = await db.execute("SELECT data FROM messages WHERE id = ?", (message_id,))
            row = await cursor.fetchone()
        finally:
            await db.close()
        return Message.model_validate_json(row[0]) if row else None

    async def delete_message(self, message_id: str) -> bool:
        """Delete a message by ID. Returns True if a row was removed."""
        message = await self.get_message(message_id)
        if message is None:
            return False
        db = await self._connect()
        try:
            cursor = await db.execute("DELETE FROM messages WHERE id = ?", (message_id,))
            await db.commit()
            deleted = cursor.rowcount > 0
        finally:
            await db.close()
        if deleted:
            logger.debug("Deleted message: %s", message_id)
            self._notifier.notify(message.conversation_id)
        return deleted

    async def list_messages(self, conversation_id: str) -> list[Message]:
        """Messages of a conversation, oldest first."""
        db = await self._connect()
        try:
            cursor = await db.execute(
                "SELECT data FROM messages WHERE conversation_id = ? ORDER BY created_at, rowid",
                (conversation_id,),
            )
            rows = await cursor.fetchall()
        finally:
            await db.close()
        return [Message.model_validate_json(row[0]) for row in rows]

    async def toggle_like(self, message_id: str) -> Message | None:
        message = await self.get_message(message_id)
        if message is None:
            return None
        liked = message.model_copy(update={"is_liked": not message.is_liked})
        await self.update_message(liked)
        return liked
