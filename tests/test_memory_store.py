"""Tests for MemoryStore — aiosqlite CRUD."""

import asyncio
from datetime import UTC, datetime, timedelta

from companion.memory.models import MemoryEntry
from companion.memory.store import MemoryStore


def _entry(fact: str = "Likes tea", age_days: float = 0, **kwargs) -> MemoryEntry:
    defaults = {"conversation_id": "c1", "source_message_id": "m1"}
    defaults.update(kwargs)
    return MemoryEntry(
        fact=fact,
        created_at=datetime.now(UTC) - timedelta(days=age_days),
        **defaults,
    )


async def test_add_and_get_all(memory_store: MemoryStore) -> None:
    await memory_store.add(_entry("older", age_days=2))
    await memory_store.add(_entry("newer"))

    entries = await memory_store.get_all()
    assert [e.fact for e in entries] == ["newer", "older"]
    assert entries[0].id.startswith("mem_")


async def test_embedding_round_trip(memory_store: MemoryStore) -> None:
    entry = await memory_store.add(_entry(), embedding=[0.1, 0.2, 0.3])
    rows = await memory_store.list_with_embeddings()
    assert rows == [(entry, [0.1, 0.2, 0.3])]


async def test_missing_embedding_is_none(memory_store: MemoryStore) -> None:
    await memory_store.add(_entry())
    [(_, embedding)] = await memory_store.list_with_embeddings()
    assert embedding is None


async def test_set_embedding(memory_store: MemoryStore) -> None:
    entry = await memory_store.add(_entry())
    await memory_store.set_embedding(entry.id, [1.0, 0.0])
    [(_, embedding)] = await memory_store.list_with_embeddings()
    assert embedding == [1.0, 0.0]


async def test_archived_excluded_from_retrieval(memory_store: MemoryStore) -> None:
    entry = await memory_store.add(_entry())
    assert await memory_store.archive(entry.id) is True

    assert await memory_store.list_with_embeddings() == []
    [archived] = await memory_store.get_all()
    assert archived.is_archived is True


async def test_created_before_filter(memory_store: MemoryStore) -> None:
    await memory_store.add(_entry("old", age_days=5))
    await memory_store.add(_entry("fresh", age_days=0))

    cutoff = datetime.now(UTC) - timedelta(days=2)
    rows = await memory_store.list_with_embeddings(created_before=cutoff)
    assert [e.fact for e, _ in rows] == ["old"]


async def test_update_fact(memory_store: MemoryStore) -> None:
    entry = await memory_store.add(_entry("Likes tea"))
    edited = entry.model_copy(update={"fact": "Likes green tea"})
    assert await memory_store.update(edited, embedding=[0.5, 0.5]) is True

    [(stored, embedding)] = await memory_store.list_with_embeddings()
    assert stored.fact == "Likes green tea"
    assert embedding == [0.5, 0.5]


async def test_delete(memory_store: MemoryStore) -> None:
    entry = await memory_store.add(_entry())
    assert await memory_store.delete(entry.id) is True
    assert await memory_store.delete(entry.id) is False
    assert await memory_store.get_all() == []


async def test_delete_for_conversation(memory_store: MemoryStore) -> None:
    await memory_store.add(_entry("a", conversation_id="c1"))
    await memory_store.add(_entry("b", conversation_id="c1"))
    await memory_store.add(_entry("c", conversation_id="c2"))

    assert await memory_store.delete_for_conversation("c1") == 2
    assert [e.fact for e in await memory_store.get_all()] == ["c"]


async def test_observe_emits_on_every_mutation(memory_store: MemoryStore) -> None:
    seen: list[list[str]] = []

    async def watch() -> None:
        async for entries in memory_store.observe_memories():
            seen.append([e.fact for e in entries])
            if len(seen) == 3:
                return

    watcher = asyncio.create_task(watch())
    await asyncio.sleep(0.05)
    entry = await memory_store.add(_entry("first"))
    await asyncio.sleep(0.05)
    await memory_store.delete(entry.id)
    await asyncio.wait_for(watcher, timeout=2)

    assert seen == [[], ["first"], []]
