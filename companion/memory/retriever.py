"""Semantic retrieval over stored memories."""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from companion.retrieval.similarity import rank

if TYPE_CHECKING:
    from companion.embeddings.service import EmbeddingService
    from companion.memory.models import MemoryEntry
    from companion.memory.store import MemoryStore

logger = logging.getLogger(__name__)


class MemoryRetriever:
    """Finds the memories most similar to a query."""

    def __init__(self, store: MemoryStore, embeddings: EmbeddingService) -> None:
        self._store = store
        self._embeddings = embeddings

    async def find_relevant(
        self,
        query: str,
        limit: int = 5,
        min_age_days: int = 0,
        now: datetime | None = None,
    ) -> list[MemoryEntry]:
        """Return up to *limit* memories ranked by similarity to *query*.

        Only memories at least *min_age_days* old are considered, so facts
        from the current conversation are not echoed straight back.

        Returns an empty list when no embedding model is loaded.
        """
        if not self._embeddings.is_model_loaded():
            logger.warning("Memory retrieval skipped: no embedding model loaded")
            return []

        now = now or datetime.now(UTC)
        cutoff = now - timedelta(days=min_age_days) if min_age_days > 0 else None
        stored = await self._store.list_with_embeddings(created_before=cutoff)
        if not stored:
            return []

        query_vector = await self._embeddings.embed(query)

        candidates: list[tuple[MemoryEntry, list[float]]] = []
        for entry, embedding in stored:
            if embedding is None:
                logger.warning("Missing embedding for memory %s, generating", entry.id)
                embedding = await self._embeddings.embed(entry.fact)
                await self._store.set_embedding(entry.id, embedding)
            candidates.append((entry, embedding))

        results = rank(query_vector, candidates, limit)
        logger.debug("Found %d similar memories for query", len(results))
        return [r.item for r in results]
