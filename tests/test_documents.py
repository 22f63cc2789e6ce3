"""Tests for document chunking, indexing, storage and retrieval."""

import pytest
from conftest import FakeEmbeddings

from companion.documents.indexer import DocumentIndexer, DocumentProcessingError, chunk_text
from companion.documents.models import Document, DocumentChunk, ProcessingState
from companion.documents.retriever import DocumentRetriever
from companion.documents.store import DocumentStore

# -- chunk_text ----------------------------------------------------------------


def test_chunk_short_text_is_one_chunk() -> None:
    assert chunk_text("hello world", chunk_size=128, overlap=16) == ["hello world"]


def test_chunks_overlap() -> None:
    text = "abcdefghij"
    assert chunk_text(text, chunk_size=4, overlap=2) == ["abcd", "cdef", "efgh", "ghij"]


def test_chunks_cover_whole_text() -> None:
    text = "x" * 1000
    chunks = chunk_text(text, chunk_size=300, overlap=0)
    assert "".join(chunks) == text


def test_blank_windows_dropped() -> None:
    assert chunk_text("   ", chunk_size=128, overlap=0) == []
    assert chunk_text("", chunk_size=128, overlap=0) == []


@pytest.mark.parametrize(("size", "overlap"), [(0, 0), (10, 10), (10, -1)])
def test_invalid_chunk_arguments(size: int, overlap: int) -> None:
    with pytest.raises(ValueError):
        chunk_text("text", chunk_size=size, overlap=overlap)


# -- DocumentStore -------------------------------------------------------------


async def test_document_crud(document_store: DocumentStore) -> None:
    doc = await document_store.add_document(Document(name="notes.txt", content="Hello"))
    fetched = await document_store.get_document(doc.id)
    assert fetched is not None
    assert fetched.name == "notes.txt"

    renamed = doc.model_copy(update={"name": "renamed.txt"})
    assert await document_store.update_document(renamed) is True
    assert [d.name for d in await document_store.list_documents()] == ["renamed.txt"]

    assert await document_store.delete_document(doc.id) is True
    assert await document_store.get_document(doc.id) is None


async def test_deleting_document_cascades_to_chunks(document_store: DocumentStore) -> None:
    doc = await document_store.add_document(Document(name="a", content="text"))
    await document_store.replace_chunks(
        doc.id, [DocumentChunk(document_id=doc.id, chunk_index=0, content="text")]
    )
    await document_store.delete_document(doc.id)
    assert await document_store.list_chunks() == []


async def test_replace_chunks_swaps_set(document_store: DocumentStore) -> None:
    doc = await document_store.add_document(Document(name="a", content="text"))
    await document_store.replace_chunks(
        doc.id, [DocumentChunk(document_id=doc.id, chunk_index=0, content="old")]
    )
    await document_store.replace_chunks(
        doc.id,
        [
            DocumentChunk(document_id=doc.id, chunk_index=0, content="new 0", embedding=[1.0]),
            DocumentChunk(document_id=doc.id, chunk_index=1, content="new 1", embedding=[0.5]),
        ],
    )
    chunks = await document_store.list_chunks(doc.id)
    assert [c.content for c in chunks] == ["new 0", "new 1"]
    assert chunks[1].embedding == [0.5]


# -- DocumentIndexer -----------------------------------------------------------


async def test_process_document(document_store: DocumentStore) -> None:
    embeddings = FakeEmbeddings()
    indexer = DocumentIndexer(document_store, embeddings)
    doc = await document_store.add_document(Document(name="book", content="a" * 300))

    chunks = await indexer.process_document(doc, chunk_size=128, overlap=0)

    assert len(chunks) == 3
    assert [c.chunk_index for c in chunks] == [0, 1, 2]
    assert all(c.embedding == embeddings.default for c in chunks)
    assert len(await document_store.list_chunks(doc.id)) == 3
    assert indexer.status.state == ProcessingState.COMPLETED
    assert indexer.status.progress == 100


async def test_process_document_failure(document_store: DocumentStore) -> None:
    indexer = DocumentIndexer(document_store, FakeEmbeddings())
    doc = await document_store.add_document(Document(name="book", content="some text"))

    with pytest.raises(DocumentProcessingError):
        await indexer.process_document(doc, chunk_size=10, overlap=10)

    assert indexer.status.state == ProcessingState.FAILED
    assert indexer.status.error
    assert await document_store.list_chunks(doc.id) == []


async def test_indexer_delete_document(document_store: DocumentStore) -> None:
    indexer = DocumentIndexer(document_store, FakeEmbeddings())
    doc = await document_store.add_document(Document(name="book", content="some text"))
    await indexer.process_document(doc, chunk_size=128, overlap=0)

    assert await indexer.delete_document(doc.id) is True
    assert await document_store.list_chunks() == []
    assert indexer.status.state == ProcessingState.IDLE


# -- DocumentRetriever ---------------------------------------------------------


async def _seed(store: DocumentStore) -> Document:
    doc = await store.add_document(Document(name="guide", content="..."))
    await store.replace_chunks(
        doc.id,
        [
            DocumentChunk(document_id=doc.id, chunk_index=0, content="gardening", embedding=[0.0, 1.0]),
            DocumentChunk(document_id=doc.id, chunk_index=1, content="baking", embedding=[1.0, 0.0]),
            DocumentChunk(document_id=doc.id, chunk_index=2, content="pastry", embedding=[0.8, 0.2]),
            DocumentChunk(document_id=doc.id, chunk_index=3, content="no vector"),
        ],
    )
    return doc


async def test_retrieves_top_chunks(document_store: DocumentStore) -> None:
    await _seed(document_store)
    retriever = DocumentRetriever(document_store, FakeEmbeddings({"bread": [1.0, 0.0]}))

    chunks = await retriever.find_relevant_chunks("bread", top_k=2)
    assert [c.content for c in chunks] == ["baking", "pastry"]


async def test_chunks_without_embeddings_are_skipped(document_store: DocumentStore) -> None:
    await _seed(document_store)
    retriever = DocumentRetriever(document_store, FakeEmbeddings({"q": [1.0, 1.0]}))

    chunks = await retriever.find_relevant_chunks("q", top_k=10)
    assert "no vector" not in [c.content for c in chunks]
    assert len(chunks) == 3


async def test_no_model_returns_empty(document_store: DocumentStore) -> None:
    await _seed(document_store)
    retriever = DocumentRetriever(document_store, FakeEmbeddings(loaded=False))
    assert await retriever.find_relevant_chunks("q") == []


async def test_empty_corpus(document_store: DocumentStore) -> None:
    embeddings = FakeEmbeddings()
    retriever = DocumentRetriever(document_store, embeddings)
    assert await retriever.find_relevant_chunks("q") == []
    assert embeddings.calls == []
