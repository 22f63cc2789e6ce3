"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import AsyncIterator
from pathlib import Path

import pytest

from companion.conversation.models import Conversation
from companion.conversation.store import ConversationStore
from companion.documents.store import DocumentStore
from companion.llm.client import GenerationError
from companion.llm.models import ModelManager
from companion.memory.store import MemoryStore
from companion.retrieval.similarity import cosine_similarity


class FakeEmbeddings:
    """EmbeddingService backed by a fixed text → vector table.

    Unknown texts embed to ``default``. Every embedded text is recorded.
    """

    def __init__(
        self,
        vectors: dict[str, list[float]] | None = None,
        default: list[float] | None = None,
        loaded: bool = True,
    ) -> None:
        self.vectors = dict(vectors or {})
        self.default = default or [0.0, 0.0, 1.0]
        self.loaded = loaded
        self.calls: list[str] = []

    async def load_model(self, model) -> None:
        self.loaded = True

    async def unload_model(self) -> None:
        self.loaded = False

    def is_model_loaded(self) -> bool:
        return self.loaded

    async def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        return self.vectors.get(text, self.default)

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        return [await self.embed(t) for t in texts]

    def cosine_similarity(self, a: list[float], b: list[float]) -> float:
        return cosine_similarity(a, b)


class FakeGeneration:
    """GenerationClient stand-in with scripted output.

    ``chunks`` are streamed by ``stream()``. Setting ``fail_after`` raises a
    GenerationError after that many fragments. ``responses`` are returned by
    ``complete()`` in order (``""`` once exhausted); an Exception instance in
    the list is raised instead.
    """

    def __init__(
        self,
        chunks: list[str] | None = None,
        responses: list[str | Exception] | None = None,
        fail_after: int | None = None,
    ) -> None:
        self.chunks = list(chunks if chunks is not None else ["Hi", " there"])
        self.responses = list(responses or [])
        self.fail_after = fail_after
        self.stream_calls: list[dict] = []
        self.complete_calls: list[dict] = []

    async def stream(
        self, target, messages, system_prompt, user_context=None, config=None
    ) -> AsyncIterator[str]:
        self.stream_calls.append(
            {
                "target": target,
                "messages": messages,
                "system_prompt": system_prompt,
                "user_context": user_context,
                "config": config,
            }
        )
        for index, chunk in enumerate(self.chunks):
            if self.fail_after is not None and index >= self.fail_after:
                raise GenerationError("connection reset")
            yield chunk
        if self.fail_after is not None and self.fail_after >= len(self.chunks):
            raise GenerationError("connection reset")

    async def complete(
        self,
        target,
        messages,
        *,
        system_prompt,
        config=None,
        temperature=None,
        history_limit=None,
    ) -> str:
        self.complete_calls.append(
            {
                "target": target,
                "messages": messages,
                "system_prompt": system_prompt,
                "temperature": temperature,
                "history_limit": history_limit,
            }
        )
        if not self.responses:
            return ""
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "test.db"


@pytest.fixture
def conversation_store(db_path: Path) -> ConversationStore:
    return ConversationStore(db_path=db_path)


@pytest.fixture
def memory_store(db_path: Path) -> MemoryStore:
    return MemoryStore(db_path=db_path)


@pytest.fixture
def document_store(db_path: Path) -> DocumentStore:
    return DocumentStore(db_path=db_path)


@pytest.fixture
async def conversation(conversation_store: ConversationStore) -> Conversation:
    return await conversation_store.create_conversation(Conversation(title="Test chat"))


@pytest.fixture
def embeddings() -> FakeEmbeddings:
    return FakeEmbeddings()


@pytest.fixture
def generation() -> FakeGeneration:
    return FakeGeneration()


@pytest.fixture(autouse=True)
def _reset_singletons():
    """Each test gets fresh singletons."""
    ModelManager._reset()
    ConversationStore._reset()
    MemoryStore._reset()
    DocumentStore._reset()
    yield
    ModelManager._reset()
    ConversationStore._reset()
    MemoryStore._reset()
    DocumentStore._reset()
