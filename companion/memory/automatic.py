"""Automatic ("unconscious") memory extraction.

After each completed turn, a background task asks the model to condense the
user's message into at most one durable fact. The task only talks to the
memory store; it never touches the turn state of the conversation it came
from.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from companion.llm.prompts import fill
from companion.memory.models import MemoryEntry

if TYPE_CHECKING:
    from companion.config import AIConfig
    from companion.embeddings.service import EmbeddingService
    from companion.llm.client import GenerationClient
    from companion.llm.models import ModelTarget
    from companion.memory.store import MemoryStore

logger = logging.getLogger(__name__)


def parse_memory_fact(response: str, sentinel: str) -> str | None:
    """Return the fact in *response*, or None when there is nothing to keep.

    The sentinel comparison is exact (after trimming whitespace).
    """
    fact = response.strip()
    if not fact or fact == sentinel:
        return None
    return fact


class MemoryExtractor:
    def __init__(
        self,
        store: MemoryStore,
        generation: GenerationClient,
        embeddings: EmbeddingService | None = None,
    ) -> None:
        self._store = store
        self._generation = generation
        self._embeddings = embeddings
        self._tasks: set[asyncio.Task] = set()

    def schedule(
        self,
        user_text: str,
        conversation_id: str,
        message_id: str,
        target: ModelTarget,
        config: AIConfig,
    ) -> asyncio.Task:
        """Start extraction in the background and return immediately."""
        task = asyncio.create_task(
            self.extract_and_save(user_text, conversation_id, message_id, target, config)
        )
        # Keep a strong reference until the task finishes
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def wait_idle(self) -> None:
        """Wait for every scheduled extraction to finish."""
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    async def extract_and_save(
        self,
        user_text: str,
        conversation_id: str,
        message_id: str,
        target: ModelTarget,
        config: AIConfig,
    ) -> MemoryEntry | None:
        """Extract one memory from *user_text* and store it.

        Never raises: failures are logged and yield None.
        """
        try:
            prompt = fill(config.memory_extraction_prompt, text=user_text)
            response = await self._generation.complete(
                target,
                [{"role": "user", "content": prompt}],
                system_prompt=config.memory_extraction_system,
                config=config,
                history_limit=1,
            )

            fact = parse_memory_fact(response, config.no_memory_sentinel)
            if fact is None:
                logger.debug("No key information in message %s", message_id)
                return None

            embedding = None
            if self._embeddings is not None and self._embeddings.is_model_loaded():
                try:
                    embedding = await self._embeddings.embed(fact)
                except Exception:
                    logger.warning("Embedding for new memory failed; stored without one")

            entry = MemoryEntry(
                fact=fact,
                conversation_id=conversation_id,
                source_message_id=message_id,
            )
            await self._store.add(entry, embedding=embedding)
            logger.info("Extracted memory from message %s", message_id)
            return entry

        except Exception:
            logger.exception("Memory extraction failed (non-fatal)")
            return None
