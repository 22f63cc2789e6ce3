"""Split knowledge documents into overlapping chunks and embed them."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from typing import TYPE_CHECKING

from companion.documents.models import (
    Document,
    DocumentChunk,
    ProcessingState,
    ProcessingStatus,
)
from companion.notify import ChangeNotifier

if TYPE_CHECKING:
    from companion.documents.store import DocumentStore
    from companion.embeddings.service import EmbeddingService

logger = logging.getLogger(__name__)


class DocumentProcessingError(RuntimeError):
    """Raised when a document cannot be chunked, embedded or stored."""


def chunk_text(text: str, chunk_size: int = 512, overlap: int = 64) -> list[str]:
    """Cut *text* into windows of *chunk_size* characters.

    Consecutive windows share *overlap* characters. Windows are stripped and
    blank ones dropped.
    """
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    if not 0 <= overlap < chunk_size:
        raise ValueError("overlap must be in [0, chunk_size)")

    chunks: list[str] = []
    step = chunk_size - overlap
    start = 0
    while start < len(text):
        end = min(start + chunk_size, len(text))
        piece = text[start:end].strip()
        if piece:
            chunks.append(piece)
        if end >= len(text):
            break
        start += step
    return chunks


class DocumentIndexer:
    """(Re)builds the chunk index for documents and reports progress."""

    def __init__(self, store: DocumentStore, embeddings: EmbeddingService) -> None:
        self._store = store
        self._embeddings = embeddings
        self._status = ProcessingStatus()
        self._notifier = ChangeNotifier()

    @property
    def status(self) -> ProcessingStatus:
        return self._status

    def _set_status(self, status: ProcessingStatus) -> None:
        self._status = status
        self._notifier.notify("status")

    async def observe_processing_status(self) -> AsyncIterator[ProcessingStatus]:
        async def current() -> ProcessingStatus:
            return self._status

        async for status in self._notifier.observe("status", current):
            yield status

    async def process_document(
        self, document: Document, chunk_size: int = 512, overlap: int = 64
    ) -> list[DocumentChunk]:
        """Chunk, embed and store *document*, replacing any previous chunks."""
        self._set_status(
            ProcessingStatus(
                state=ProcessingState.PROCESSING,
                document_id=document.id,
                document_name=document.name,
            )
        )
        try:
            texts = chunk_text(document.content, chunk_size, overlap)
            self._set_status(self._status.model_copy(update={"progress": 30}))

            vectors = await self._embeddings.embed_batch(texts) if texts else []
            self._set_status(self._status.model_copy(update={"progress": 80}))

            chunks = [
                DocumentChunk(
                    document_id=document.id,
                    chunk_index=index,
                    content=text,
                    embedding=vector,
                )
                for index, (text, vector) in enumerate(zip(texts, vectors, strict=True))
            ]
            await self._store.replace_chunks(document.id, chunks)
        except Exception as exc:
            logger.exception("Failed to process document %s", document.id)
            self._set_status(
                self._status.model_copy(
                    update={"state": ProcessingState.FAILED, "error": str(exc)}
                )
            )
            raise DocumentProcessingError(f"Failed to process {document.name}: {exc}") from exc

        logger.info("Indexed document %s into %d chunks", document.name, len(chunks))
        self._set_status(
            self._status.model_copy(update={"state": ProcessingState.COMPLETED, "progress": 100})
        )
        return chunks

    async def delete_document(self, document_id: str) -> bool:
        """Delete a document together with its chunks."""
        document = await self._store.get_document(document_id)
        name = document.name if document else None
        self._set_status(
            ProcessingStatus(
                state=ProcessingState.DELETING, document_id=document_id, document_name=name
            )
        )
        try:
            await self._store.delete_chunks(document_id)
            deleted = await self._store.delete_document(document_id)
        except Exception as exc:
            logger.exception("Failed to delete document %s", document_id)
            self._set_status(
                self._status.model_copy(
                    update={"state": ProcessingState.FAILED, "error": str(exc)}
                )
            )
            raise DocumentProcessingError(f"Failed to delete {document_id}: {exc}") from exc

        self._set_status(ProcessingStatus())
        return deleted

    def reset_status(self) -> None:
        self._set_status(ProcessingStatus())
