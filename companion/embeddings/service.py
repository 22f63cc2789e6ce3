"""Embedding model collaborator.

The retrievers only depend on the ``EmbeddingService`` protocol. The bundled
implementation talks to an OpenAI-compatible ``/embeddings`` endpoint, which
covers both the hosted API and local servers such as llama.cpp.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from companion.config import settings
from companion.retrieval.similarity import cosine_similarity

if TYPE_CHECKING:
    from openai import AsyncOpenAI

logger = logging.getLogger(__name__)


class EmbeddingUnavailableError(RuntimeError):
    """Raised when an embedding is requested with no model loaded."""


@dataclass(frozen=True)
class EmbeddingModel:
    """Descriptor of an embedding model."""

    name: str
    dimensions: int | None = None


@runtime_checkable
class EmbeddingService(Protocol):
    async def load_model(self, model: EmbeddingModel) -> None: ...

    async def unload_model(self) -> None: ...

    def is_model_loaded(self) -> bool: ...

    async def embed(self, text: str) -> list[float]: ...

    async def embed_batch(self, texts: list[str]) -> list[list[float]]: ...

    def cosine_similarity(self, a: list[float], b: list[float]) -> float: ...


class OpenAIEmbeddingService:
    """Embeddings over the OpenAI SDK.

    Load, unload and embed calls share one lock, so only one operation on the
    model handle is in flight at a time.
    """

    def __init__(self, client: AsyncOpenAI | None = None) -> None:
        self._client = client
        self._model: EmbeddingModel | None = None
        self._lock = asyncio.Lock()

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            from openai import AsyncOpenAI

            self._client = AsyncOpenAI(
                api_key=settings.embedding_api_key or settings.openai_api_key,
                base_url=settings.embedding_base_url or None,
            )
        return self._client

    @property
    def current_model(self) -> EmbeddingModel | None:
        return self._model

    async def load_model(self, model: EmbeddingModel) -> None:
        async with self._lock:
            self._get_client()
            self._model = model
            logger.info("Embedding model loaded: %s", model.name)

    async def unload_model(self) -> None:
        async with self._lock:
            if self._model is not None:
                logger.info("Embedding model unloaded: %s", self._model.name)
            self._model = None

    def is_model_loaded(self) -> bool:
        return self._model is not None

    async def embed(self, text: str) -> list[float]:
        vectors = await self.embed_batch([text])
        return vectors[0]

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        async with self._lock:
            if self._model is None:
                raise EmbeddingUnavailableError("No embedding model loaded")
            if not texts:
                return []
            kwargs = {"model": self._model.name, "input": texts}
            if self._model.dimensions:
                kwargs["dimensions"] = self._model.dimensions
            response = await self._get_client().embeddings.create(**kwargs)
        return [item.embedding for item in sorted(response.data, key=lambda d: d.index)]

    def cosine_similarity(self, a: list[float], b: list[float]) -> float:
        return cosine_similarity(a, b)
