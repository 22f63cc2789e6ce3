"""Companion console entry point.

Wires the stores, model clients and retrievers into a ``TurnPipeline`` and
chats over stdin/stdout. Commands:

    /model <id>     switch model (catalog ID or ``local:<name>``)
    /retry          resend a failed message
    /cancel         drop a failed message
    /regenerate     regenerate the last reply
    /memories       list stored memories
    /index <path>   add a text file to the document library
    /quit
"""

import asyncio
import logging
import sys
from pathlib import Path

from companion.config import settings
from companion.conversation.empathy import EmpathyFocusExtractor
from companion.conversation.models import Conversation, MessageRole
from companion.conversation.pipeline import TurnPipeline
from companion.conversation.store import ConversationStore
from companion.documents.indexer import DocumentIndexer, DocumentProcessingError
from companion.documents.models import Document
from companion.documents.retriever import DocumentRetriever
from companion.documents.store import DocumentStore
from companion.embeddings.service import EmbeddingModel, OpenAIEmbeddingService
from companion.llm.client import GenerationClient
from companion.llm.models import ModelManager, describe
from companion.memory.automatic import MemoryExtractor
from companion.memory.retriever import MemoryRetriever
from companion.memory.store import MemoryStore

logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=getattr(logging, settings.log_level),
)
logger = logging.getLogger(__name__)


async def _print_delta(text: str) -> None:
    sys.stdout.write(text)
    sys.stdout.flush()


async def _read_line(prompt: str) -> str | None:
    try:
        return await asyncio.to_thread(input, prompt)
    except EOFError:
        return None


async def _handle_command(
    line: str,
    pipeline: TurnPipeline,
    store: ConversationStore,
    memory_store: MemoryStore,
    document_store: DocumentStore,
    indexer: DocumentIndexer,
) -> bool:
    """Run a slash command. Returns False when the session should end."""
    command, _, arg = line.partition(" ")
    arg = arg.strip()

    if command == "/quit":
        return False
    if command == "/model":
        target = ModelManager.get().select_by_name(arg)
        print(f"Model: {describe(target)}" if target else f"Unknown model: {arg}")
    elif command == "/retry":
        await pipeline.retry(on_text_delta=_print_delta)
        print()
    elif command == "/cancel":
        await pipeline.cancel(handoff=lambda text: print(f"Dropped: {text}"))
    elif command == "/regenerate":
        messages = await store.list_messages(pipeline.conversation_id)
        last = next((m for m in reversed(messages) if m.role == MessageRole.ASSISTANT), None)
        if last is not None:
            await pipeline.regenerate(last.id, on_text_delta=_print_delta)
            print()
    elif command == "/memories":
        for entry in await memory_store.get_all():
            print(f"- {entry.fact}")
    elif command == "/index":
        path = Path(arg)
        try:
            document = Document(name=path.name, content=path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError) as exc:
            print(f"Cannot read {path}: {exc}")
            return True
        await document_store.add_document(document)
        config = pipeline.config
        try:
            chunks = await indexer.process_document(
                document, config.rag_chunk_size, config.rag_chunk_overlap
            )
        except DocumentProcessingError as exc:
            print(exc)
            return True
        print(f"Indexed {document.name}: {len(chunks)} chunks")
    else:
        print(f"Unknown command: {command}")
    return True


async def run() -> None:
    """Run an interactive chat session."""
    store = ConversationStore.get()
    memory_store = MemoryStore.get()
    document_store = DocumentStore.get()
    generation = GenerationClient()

    embeddings = OpenAIEmbeddingService()
    if settings.embedding_api_key or settings.openai_api_key or settings.embedding_base_url:
        await embeddings.load_model(EmbeddingModel(settings.embedding_model))
    else:
        logger.warning("No embedding credentials; memory and document retrieval are disabled")

    extractor = MemoryExtractor(memory_store, generation, embeddings)
    indexer = DocumentIndexer(document_store, embeddings)

    target = ModelManager.get().selected
    conversation = await store.create_conversation(
        Conversation(
            title="Console chat",
            model=target.model_name if target else "",
            provider=describe(target) if target else "",
        )
    )
    pipeline = TurnPipeline(
        conversation.id,
        store,
        generation,
        config=settings.ai_config(),
        empathy=EmpathyFocusExtractor(generation),
        memory_retriever=MemoryRetriever(memory_store, embeddings),
        document_retriever=DocumentRetriever(document_store, embeddings),
        memory_extractor=extractor,
    )

    logger.info("Starting companion in conversation %s", conversation.id)
    while True:
        line = await _read_line("> ")
        if line is None:
            break
        line = line.strip()
        if not line:
            continue
        if line.startswith("/"):
            if not await _handle_command(
                line, pipeline, store, memory_store, document_store, indexer
            ):
                break
            continue

        sent = await pipeline.send(line, on_text_delta=_print_delta)
        print()
        pending = pipeline.state.pending_error
        if pending is not None:
            print(f"[error] {pending.error_message} (/retry or /cancel)")
        elif not sent:
            print("[not sent]")

    await extractor.wait_idle()


def main() -> None:
    """Start the console companion."""
    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
