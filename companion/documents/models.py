"""Knowledge document models."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class Document(BaseModel):
    """A user-supplied knowledge document."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    name: str
    content: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class DocumentChunk(BaseModel):
    """An immutable slice of a document plus its embedding."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    document_id: str
    chunk_index: int
    content: str
    embedding: list[float] | None = None


class ProcessingState(StrEnum):
    IDLE = "idle"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    DELETING = "deleting"


class ProcessingStatus(BaseModel):
    """Progress of the document currently being (re)indexed or deleted."""

    model_config = ConfigDict(frozen=True)

    state: ProcessingState = ProcessingState.IDLE
    document_id: str | None = None
    document_name: str | None = None
    progress: int = 0
    error: str | None = None
