"""Data models for long-term memory."""

import uuid
from datetime import UTC, datetime

from pydantic import BaseModel, Field


def make_memory_id() -> str:
    return f"mem_{uuid.uuid4().hex}"


class MemoryEntry(BaseModel):
    """A single durable fact about the user, written in the third person."""

    id: str = Field(default_factory=make_memory_id)
    fact: str
    conversation_id: str
    source_message_id: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    is_archived: bool = False


class RecencyBucket(BaseModel):
    """Memories sharing one human-readable age label, e.g. "3 days ago"."""

    label: str
    memories: list[MemoryEntry] = Field(default_factory=list)
