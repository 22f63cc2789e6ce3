"""The conversation turn pipeline.

One ``TurnPipeline`` owns the turn state of one conversation. It is the only
writer of that state; observers get immutable ``TurnState`` snapshots through
``subscribe()``.

A turn moves through::

    IDLE → SENDING → ENRICHING → STREAMING → FINALIZING → COMPLETED
                                                        ↘ FAILED

A failed turn leaves a ``PendingError`` in the state instead of an error
message in history. ``retry()`` and ``cancel()`` clean up the persisted user
message and, if it was written, the empty assistant placeholder. No new turn
starts until one of them has been called.
"""

from __future__ import annotations

import asyncio
import dataclasses
import inspect
import json
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from companion.config import AIConfig
from companion.conversation.context import ContextAssembler
from companion.conversation.models import (
    Message,
    MessageRole,
    PendingError,
    TurnPhase,
    TurnState,
)
from companion.llm.client import EmptyResponseError, truncate_history
from companion.llm.models import LocalModel, ModelManager, RemoteModel
from companion.memory.recency import group_by_recency

if TYPE_CHECKING:
    from companion.conversation.empathy import EmpathyFocusExtractor
    from companion.conversation.store import ConversationStore
    from companion.documents.models import DocumentChunk
    from companion.documents.retriever import DocumentRetriever
    from companion.llm.client import GenerationClient
    from companion.llm.models import ModelTarget
    from companion.memory.automatic import MemoryExtractor
    from companion.memory.models import MemoryEntry
    from companion.memory.retriever import MemoryRetriever

logger = logging.getLogger(__name__)

# Longest message preview kept in a request snapshot
SNAPSHOT_PREVIEW_CHARS = 200

TextDeltaCallback = Callable[[str], Awaitable[None]]
Handoff = Callable[[str], Awaitable[None] | None]


def build_request_snapshot(
    target: ModelTarget,
    config: AIConfig,
    system_prompt: str,
    user_context: str,
    all_messages: list[Message],
    sent_messages: list[dict[str, str]],
) -> str:
    """Pretty JSON describing exactly what a turn sent to the model."""
    match target:
        case LocalModel(name=name, display_name=display_name):
            model_info = {"type": "local", "modelName": name, "displayName": display_name}
        case RemoteModel(provider=provider, model_id=model_id, display_name=display_name):
            model_info = {
                "type": "api",
                "provider": str(provider),
                "modelId": model_id,
                "displayName": display_name,
            }

    def preview(content: str) -> str:
        if len(content) > SNAPSHOT_PREVIEW_CHARS:
            return content[:SNAPSHOT_PREVIEW_CHARS] + "..."
        return content

    snapshot = {
        "timestamp": datetime.now(UTC).isoformat(),
        "model": model_info,
        "parameters": {
            "temperature": config.temperature,
            "top_p": config.top_p,
            "max_tokens": config.max_tokens,
            "message_history_limit": config.message_history_limit,
        },
        "flags": {
            "deep_empathy": config.deep_empathy,
            "memory_enabled": config.memory_enabled,
            "rag_enabled": config.rag_enabled,
        },
        "system_prompt": system_prompt,
        "user_context": user_context,
        "message_count": {"total": len(all_messages), "sent_to_model": len(sent_messages)},
        "messages": [
            {"role": m["role"], "content": preview(m["content"])} for m in sent_messages
        ],
    }
    return json.dumps(snapshot, ensure_ascii=False, indent=2)


class TurnPipeline:
    """Runs user turns for one conversation."""

    def __init__(
        self,
        conversation_id: str,
        store: ConversationStore,
        generation: GenerationClient,
        *,
        config: AIConfig | None = None,
        models: ModelManager | None = None,
        empathy: EmpathyFocusExtractor | None = None,
        memory_retriever: MemoryRetriever | None = None,
        document_retriever: DocumentRetriever | None = None,
        memory_extractor: MemoryExtractor | None = None,
    ) -> None:
        self.conversation_id = conversation_id
        self.config = config or AIConfig()
        self._store = store
        self._generation = generation
        self._models = models or ModelManager.get()
        self._empathy = empathy
        self._memory_retriever = memory_retriever
        self._document_retriever = document_retriever
        self._memory_extractor = memory_extractor

        self._state = TurnState()
        self._subscribers: set[asyncio.Queue[TurnState]] = set()
        self._turn_lock = asyncio.Lock()

    # -- State publishing ------------------------------------------------------

    @property
    def state(self) -> TurnState:
        return self._state

    def _publish(self, **changes: Any) -> None:
        self._state = dataclasses.replace(self._state, **changes)
        for queue in self._subscribers:
            queue.put_nowait(self._state)

    async def subscribe(self) -> AsyncIterator[TurnState]:
        """Yield the current state, then every published snapshot in order."""
        queue: asyncio.Queue[TurnState] = asyncio.Queue()
        self._subscribers.add(queue)
        try:
            yield self._state
            while True:
                yield await queue.get()
        finally:
            self._subscribers.discard(queue)

    def update_input(self, text: str) -> None:
        self._publish(input_text=text)

    def set_quote(self, message: Message) -> None:
        """Quote *message* in the next user turn."""
        self._publish(quoted_message=message)

    def clear_quote(self) -> None:
        self._publish(quoted_message=None)

    def acknowledge_scroll(self) -> None:
        self._publish(scroll_to_latest=False)

    # -- Turn ------------------------------------------------------------------

    async def send(
        self,
        text: str | None = None,
        on_text_delta: TextDeltaCallback | None = None,
    ) -> bool:
        """Run one turn for *text* (or the current input text).

        Returns False without doing anything when the text is blank, no model
        is selected, another turn is still running, or a failed turn is
        waiting for ``retry()`` or ``cancel()``. Also returns False when the
        user message cannot be stored; the input is kept in that case.
        """
        text = (self._state.input_text if text is None else text).strip()
        if not text:
            logger.debug("Ignoring blank message")
            return False
        target = self._ready_target("send")
        if target is None:
            return False

        async with self._turn_lock:
            return await self._run_turn(text, target, self.config, on_text_delta)

    def _ready_target(self, action: str) -> ModelTarget | None:
        """The selected target if a new turn may start now, else None."""
        target = self._models.selected
        if target is None:
            logger.info("Cannot %s: no model selected", action)
            return None
        if self._turn_lock.locked():
            logger.info("Cannot %s: a turn is already running in %s", action, self.conversation_id)
            return None
        if self._state.pending_error is not None and action != "retry":
            logger.info("Cannot %s: a failed turn must be retried or cancelled first", action)
            return None
        return target

    async def _run_turn(
        self,
        text: str,
        target: ModelTarget,
        config: AIConfig,
        on_text_delta: TextDeltaCallback | None,
    ) -> bool:
        quoted = self._state.quoted_message
        user_message = Message(
            conversation_id=self.conversation_id,
            role=MessageRole.USER,
            content=text,
            quoted_message_id=quoted.id if quoted else None,
            quoted_message_text=quoted.content if quoted else None,
        )
        self._publish(
            phase=TurnPhase.SENDING,
            streaming_message=None,
            scroll_to_latest=False,
        )
        try:
            await self._store.create_message(user_message)
        except Exception:
            logger.exception("Could not store user message in %s", self.conversation_id)
            self._publish(phase=TurnPhase.IDLE, input_text=text)
            return False

        self._publish(input_text="", quoted_message=None)
        logger.info("Turn started in %s: %s", self.conversation_id, text[:80])

        placeholder_id: str | None = None
        try:
            self._publish(phase=TurnPhase.ENRICHING)
            history = [
                m
                for m in await self._store.list_messages(self.conversation_id)
                if m.role != MessageRole.SYSTEM and m.content
            ]

            match target:
                case LocalModel():
                    api_messages = [user_message.to_api()]
                    system_prompt = config.local_system_prompt
                    user_context = ""
                case RemoteModel():
                    api_messages = [m.to_api() for m in history]
                    system_prompt = config.system_prompt
                    user_context = await self._enrich(user_message, target, config)

            placeholder = Message(
                conversation_id=self.conversation_id,
                role=MessageRole.ASSISTANT,
                content="",
                model_name=target.model_name,
                temperature=config.temperature,
                top_p=config.top_p,
                deep_empathy=config.deep_empathy,
                memory_enabled=config.memory_enabled,
                message_history_limit=config.message_history_limit,
                system_prompt=system_prompt,
                request_snapshot=build_request_snapshot(
                    target,
                    config,
                    system_prompt,
                    user_context,
                    history,
                    truncate_history(api_messages, config.message_history_limit),
                ),
            )
            await self._store.create_message(placeholder)
            placeholder_id = placeholder.id
            self._publish(phase=TurnPhase.STREAMING, streaming_message=placeholder)

            # Fragments update the visible message only; storage is written once below
            parts: list[str] = []
            async for fragment in self._generation.stream(
                target, api_messages, system_prompt, user_context or None, config
            ):
                parts.append(fragment)
                self._publish(
                    streaming_message=placeholder.model_copy(update={"content": "".join(parts)})
                )
                if on_text_delta:
                    await on_text_delta(fragment)

            self._publish(phase=TurnPhase.FINALIZING)
            content = "".join(parts).strip()
            if not content:
                raise EmptyResponseError(f"{target.model_name} returned an empty response")
            await self._store.update_message(placeholder.model_copy(update={"content": content}))

        except Exception as exc:
            logger.exception("Turn failed in %s", self.conversation_id)
            self._publish(
                phase=TurnPhase.FAILED,
                streaming_message=None,
                pending_error=PendingError(
                    error_message=str(exc) or type(exc).__name__,
                    user_message_id=user_message.id,
                    user_message_content=text,
                    model_name=target.model_name,
                    assistant_message_id=placeholder_id,
                ),
            )
            return True

        if config.memory_enabled and self._memory_extractor is not None:
            self._memory_extractor.schedule(
                text, self.conversation_id, user_message.id, target, config
            )

        logger.info("Turn completed in %s (%d chars)", self.conversation_id, len(content))
        self._publish(phase=TurnPhase.COMPLETED, streaming_message=None, scroll_to_latest=True)
        return True

    # -- Enrichment ------------------------------------------------------------

    async def _enrich(self, user_message: Message, target: ModelTarget, config: AIConfig) -> str:
        """Collect focus, memories and documents into the turn context.

        Every source degrades to an empty contribution on failure.
        """
        text = user_message.content

        focus = ""
        if config.deep_empathy and self._empathy is not None:
            focus = await self._empathy.focus_prompt(text, target, config)

        memories: list[MemoryEntry] = []
        if config.memory_enabled and self._memory_retriever is not None:
            try:
                memories = await self._memory_retriever.find_relevant(
                    text, config.memory_limit, config.memory_min_age_days
                )
            except Exception:
                logger.exception("Memory retrieval failed")

        chunks: list[DocumentChunk] = []
        if config.rag_enabled and self._document_retriever is not None:
            try:
                chunks = await self._document_retriever.find_relevant_chunks(
                    text, config.rag_chunk_limit
                )
            except Exception:
                logger.exception("Document retrieval failed")

        return ContextAssembler(config).assemble(
            base=config.user_context,
            empathy_focus=focus,
            quoted_text=user_message.quoted_message_text,
            memories=group_by_recency(memories),
            chunks=chunks,
        )

    # -- Recovery --------------------------------------------------------------

    async def _discard_failed_turn(self, pending: PendingError) -> None:
        await self._store.delete_message(pending.user_message_id)
        if pending.assistant_message_id is not None:
            await self._store.delete_message(pending.assistant_message_id)

    async def retry(self, on_text_delta: TextDeltaCallback | None = None) -> bool:
        """Drop the failed turn's messages and send its text again."""
        pending = self._state.pending_error
        if pending is None:
            return False
        target = self._ready_target("retry")
        if target is None:
            return False

        async with self._turn_lock:
            await self._discard_failed_turn(pending)
            self._publish(phase=TurnPhase.IDLE, pending_error=None)
            logger.info("Retrying failed turn in %s", self.conversation_id)
            return await self._run_turn(
                pending.user_message_content, target, self.config, on_text_delta
            )

    async def cancel(self, handoff: Handoff | None = None) -> bool:
        """Drop the failed turn, handing its text to *handoff* first.

        *handoff* (e.g. a clipboard writer) may be sync or async.
        """
        pending = self._state.pending_error
        if pending is None:
            return False
        if handoff is not None:
            result = handoff(pending.user_message_content)
            if inspect.isawaitable(result):
                await result
        await self._discard_failed_turn(pending)
        self._publish(phase=TurnPhase.IDLE, pending_error=None)
        logger.info("Cancelled failed turn in %s", self.conversation_id)
        return True

    async def regenerate(
        self, message_id: str, on_text_delta: TextDeltaCallback | None = None
    ) -> bool:
        """Replace an assistant reply by re-sending the user message before it."""
        target = self._ready_target("regenerate")
        if target is None:
            return False

        async with self._turn_lock:
            messages = await self._store.list_messages(self.conversation_id)
            index = next((i for i, m in enumerate(messages) if m.id == message_id), None)
            if index is None or messages[index].role != MessageRole.ASSISTANT:
                logger.info("Cannot regenerate %s: not an assistant message", message_id)
                return False
            if index == 0 or messages[index - 1].role != MessageRole.USER:
                logger.info("Cannot regenerate %s: no preceding user message", message_id)
                return False

            user_message = messages[index - 1]
            await self._store.delete_message(user_message.id)
            await self._store.delete_message(message_id)
            self._publish(input_text=user_message.content)
            return await self._run_turn(
                user_message.content, target, self.config, on_text_delta
            )
