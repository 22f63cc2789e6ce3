"""Turn context assembly: focus, quote, memories and documents in one block."""

from __future__ import annotations

from typing import TYPE_CHECKING

from companion.llm.prompts import fill

if TYPE_CHECKING:
    from companion.config import AIConfig
    from companion.documents.models import DocumentChunk
    from companion.memory.models import RecencyBucket


def _format_memories(config: AIConfig, buckets: list[RecencyBucket]) -> str:
    """Format recency-bucketed memories under the configured title."""
    if not buckets:
        return ""

    parts = []
    if config.memory_title.strip():
        parts.append(config.memory_title.strip())
    if config.memory_instructions.strip():
        parts.append(config.memory_instructions.strip())

    groups = []
    for bucket in buckets:
        lines = [f"{bucket.label}:"]
        lines.extend(f"- {m.fact.strip()}" for m in bucket.memories)
        groups.append("\n".join(lines))
    parts.append("\n\n".join(groups))
    return "\n\n".join(parts)


def _format_chunks(config: AIConfig, chunks: list[DocumentChunk]) -> str:
    """Format retrieved document chunks as a numbered list."""
    if not chunks:
        return ""

    parts = []
    if config.rag_title.strip():
        parts.append(config.rag_title.strip())
    if config.rag_instructions.strip():
        parts.append(config.rag_instructions.strip())
    parts.append(
        "\n\n".join(f"{index}. {chunk.content.strip()}" for index, chunk in enumerate(chunks, 1))
    )
    return "\n\n".join(parts)


def _quote_prompt(template: str, quoted_text: str) -> str:
    if "{swipe_message}" in template:
        return fill(template, swipe_message=quoted_text)
    return f"{template}\n{quoted_text}"


class ContextAssembler:
    """Builds the context block appended to the system prompt.

    Sections, in order, each only when non-empty:

    1. empathy focus
    2. quoted-message prompt
    3. how-to-use-context instructions (only alongside memories or documents)
    4. the user's personal context
    5. memory digest
    6. document digest
    """

    def __init__(self, config: AIConfig) -> None:
        self._config = config

    def assemble(
        self,
        base: str = "",
        empathy_focus: str | None = None,
        quoted_text: str | None = None,
        memories: list[RecencyBucket] | None = None,
        chunks: list[DocumentChunk] | None = None,
    ) -> str:
        """Join the non-empty sections with blank lines. ``""`` means no enrichment."""
        config = self._config
        memories = [b for b in memories or [] if b.memories]
        chunks = chunks or []

        sections: list[str] = []
        if empathy_focus:
            sections.append(empathy_focus)
        if quoted_text and quoted_text.strip() and config.swipe_message_prompt.strip():
            sections.append(_quote_prompt(config.swipe_message_prompt.strip(), quoted_text.strip()))
        if (memories or chunks) and config.context_instructions.strip():
            sections.append(config.context_instructions)
        if base:
            sections.append(base)
        sections.append(_format_memories(config, memories))
        sections.append(_format_chunks(config, chunks))

        return "\n\n".join(s.strip() for s in sections if s and s.strip())
