"""Semantic retrieval over document chunks (RAG)."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from companion.retrieval.similarity import rank

if TYPE_CHECKING:
    from companion.documents.models import DocumentChunk
    from companion.documents.store import DocumentStore
    from companion.embeddings.service import EmbeddingService

logger = logging.getLogger(__name__)


class DocumentRetriever:
    def __init__(self, store: DocumentStore, embeddings: EmbeddingService) -> None:
        self._store = store
        self._embeddings = embeddings

    async def find_relevant_chunks(self, query: str, top_k: int = 5) -> list[DocumentChunk]:
        """Return up to *top_k* chunks ranked by similarity to *query*.

        An empty corpus or a missing embedding model yields an empty list.
        """
        if not self._embeddings.is_model_loaded():
            logger.warning("Document retrieval skipped: no embedding model loaded")
            return []

        chunks = [c for c in await self._store.list_chunks() if c.embedding]
        if not chunks:
            logger.debug("No chunks available for document retrieval")
            return []

        query_vector = await self._embeddings.embed(query)
        results = rank(query_vector, [(c, c.embedding) for c in chunks], top_k)
        logger.debug("Found %d similar chunks", len(results))
        return [r.item for r in results]
