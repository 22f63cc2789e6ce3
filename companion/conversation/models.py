"""Conversation, message and turn-state models."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, Field


def _now() -> datetime:
    return datetime.now(UTC)


def make_id() -> str:
    return uuid.uuid4().hex


class MessageRole(StrEnum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class Message(BaseModel):
    """A single conversation message.

    Assistant messages are first persisted as empty placeholders and then
    overwritten once with their final content.
    """

    id: str = Field(default_factory=make_id)
    conversation_id: str
    role: MessageRole
    content: str
    created_at: datetime = Field(default_factory=_now)
    model_name: str | None = None
    is_liked: bool = False
    is_error: bool = False
    error_detail: str | None = None
    quoted_message_id: str | None = None
    quoted_message_text: str | None = None

    # Settings snapshot used to produce an assistant message
    temperature: float | None = None
    top_p: float | None = None
    deep_empathy: bool = False
    memory_enabled: bool = False
    message_history_limit: int | None = None
    system_prompt: str | None = None
    request_snapshot: str | None = None

    def to_api(self) -> dict[str, str]:
        """Format for a provider ``messages`` list."""
        return {"role": str(self.role), "content": self.content}


class Conversation(BaseModel):
    id: str = Field(default_factory=make_id)
    title: str
    system_prompt: str = ""
    model: str = ""
    provider: str = ""
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)
    messages: list[Message] = Field(default_factory=list)


class TurnPhase(StrEnum):
    IDLE = "idle"
    SENDING = "sending"
    ENRICHING = "enriching"
    STREAMING = "streaming"
    FINALIZING = "finalizing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class PendingError:
    """A failed turn awaiting an explicit retry or cancel.

    ``assistant_message_id`` is set only when the placeholder assistant
    message was actually written, so cleanup knows whether it exists.
    Never persisted.
    """

    error_message: str
    user_message_id: str
    user_message_content: str
    model_name: str
    assistant_message_id: str | None = None


@dataclass(frozen=True)
class TurnState:
    """Immutable snapshot of a conversation's turn state."""

    phase: TurnPhase = TurnPhase.IDLE
    input_text: str = ""
    quoted_message: Message | None = None
    streaming_message: Message | None = None
    pending_error: PendingError | None = None
    scroll_to_latest: bool = False

    @property
    def is_busy(self) -> bool:
        return self.phase in (
            TurnPhase.SENDING,
            TurnPhase.ENRICHING,
            TurnPhase.STREAMING,
            TurnPhase.FINALIZING,
        )
