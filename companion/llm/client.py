"""Async text-generation client with streaming, across providers.

Anthropic models go through the anthropic SDK. Every other provider, and the
local model server, speaks the OpenAI chat-completions protocol and goes
through the openai SDK with a provider-specific base URL.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from typing import TYPE_CHECKING, Any

import anthropic
import openai

from companion.config import AIConfig, settings
from companion.llm.models import LocalModel, Provider, RemoteModel, describe

if TYPE_CHECKING:
    from companion.llm.models import ModelTarget

logger = logging.getLogger(__name__)

_BASE_URLS: dict[Provider, str | None] = {
    Provider.OPENAI: None,
    Provider.DEEPSEEK: "https://api.deepseek.com",
    Provider.XAI: "https://api.x.ai/v1",
}


class GenerationError(RuntimeError):
    """A provider call failed or returned something unusable."""


class EmptyResponseError(GenerationError):
    """The model finished without producing any text."""


def truncate_history(
    messages: list[dict[str, str]], limit_pairs: int | None
) -> list[dict[str, str]]:
    """Keep the last *limit_pairs* user+assistant pairs (``2 * limit`` messages)."""
    if limit_pairs is None:
        return list(messages)
    return list(messages[-limit_pairs * 2 :])


def _system_with_context(system_prompt: str, user_context: str | None) -> str:
    if user_context and user_context.strip():
        return f"{system_prompt}\n\n{user_context.strip()}"
    return system_prompt


def _anthropic_messages(messages: list[dict[str, str]]) -> list[dict[str, str]]:
    """Drop system turns and leading assistant turns, which the API rejects."""
    result = [m for m in messages if m["role"] in ("user", "assistant")]
    while result and result[0]["role"] != "user":
        result.pop(0)
    return result


class GenerationClient:
    """Streaming and single-shot generation for any ``ModelTarget``."""

    def __init__(
        self,
        anthropic_client: anthropic.AsyncAnthropic | None = None,
        openai_clients: dict[str, openai.AsyncOpenAI] | None = None,
    ) -> None:
        self._anthropic_client = anthropic_client
        self._openai_clients: dict[str, openai.AsyncOpenAI] = dict(openai_clients or {})

    # -- Clients ---------------------------------------------------------------

    def _get_anthropic(self) -> anthropic.AsyncAnthropic:
        """Lazily initialize the Anthropic client."""
        if self._anthropic_client is None:
            self._anthropic_client = anthropic.AsyncAnthropic(api_key=settings.anthropic_api_key)
        return self._anthropic_client

    def _get_openai(self, target: ModelTarget) -> openai.AsyncOpenAI:
        """Lazily initialize one OpenAI-compatible client per provider."""
        key = "local" if isinstance(target, LocalModel) else str(target.provider)
        if key not in self._openai_clients:
            match target:
                case LocalModel():
                    # llama.cpp's server ignores the key but the SDK requires one
                    client = openai.AsyncOpenAI(api_key="local", base_url=settings.local_base_url)
                case RemoteModel(provider=Provider.CUSTOM):
                    client = openai.AsyncOpenAI(
                        api_key=settings.custom_api_key, base_url=settings.custom_base_url
                    )
                case RemoteModel(provider=provider):
                    api_key = {
                        Provider.OPENAI: settings.openai_api_key,
                        Provider.DEEPSEEK: settings.deepseek_api_key,
                        Provider.XAI: settings.xai_api_key,
                    }[provider]
                    client = openai.AsyncOpenAI(api_key=api_key, base_url=_BASE_URLS[provider])
            self._openai_clients[key] = client
        return self._openai_clients[key]

    # -- Public API ------------------------------------------------------------

    async def stream(
        self,
        target: ModelTarget,
        messages: list[dict[str, str]],
        system_prompt: str,
        user_context: str | None = None,
        config: AIConfig | None = None,
    ) -> AsyncIterator[str]:
        """Stream response text fragments.

        Args:
            target: Model to call.
            messages: Conversation history in ``{"role", "content"}`` form,
                oldest first. Truncated to the configured history limit.
            system_prompt: Base system instruction.
            user_context: Assembled turn context, appended to the system prompt.
            config: Sampling settings snapshot.

        Raises:
            GenerationError: The provider call failed.
        """
        config = config or AIConfig()
        history = truncate_history(messages, config.message_history_limit)
        system = _system_with_context(system_prompt, user_context)
        logger.debug("Streaming from %s with %d messages", describe(target), len(history))

        try:
            if isinstance(target, RemoteModel) and target.provider == Provider.ANTHROPIC:
                async for text in self._stream_anthropic(target, history, system, config):
                    yield text
            else:
                async for text in self._stream_openai(target, history, system, config):
                    yield text
        except (anthropic.APIError, openai.APIError) as exc:
            raise GenerationError(f"{describe(target)}: {exc}") from exc

    async def complete(
        self,
        target: ModelTarget,
        messages: list[dict[str, str]],
        *,
        system_prompt: str,
        config: AIConfig | None = None,
        temperature: float | None = None,
        history_limit: int | None = None,
    ) -> str:
        """Single-shot call, no streaming.

        Use this for isolated tasks (focus analysis, memory extraction) where
        the full turn pipeline is not needed. *temperature* and
        *history_limit* override the config snapshot.
        """
        config = config or AIConfig()
        limit = history_limit if history_limit is not None else config.message_history_limit
        history = truncate_history(messages, limit)
        temp = config.temperature if temperature is None else temperature

        try:
            if isinstance(target, RemoteModel) and target.provider == Provider.ANTHROPIC:
                response = await self._get_anthropic().messages.create(
                    model=target.model_id,
                    max_tokens=config.max_tokens,
                    system=system_prompt,
                    messages=_anthropic_messages(history),
                    temperature=temp,
                )
                return "".join(b.text for b in response.content if b.type == "text")

            response = await self._get_openai(target).chat.completions.create(
                **self._openai_kwargs(target, history, system_prompt, config, temp)
            )
        except (anthropic.APIError, openai.APIError) as exc:
            raise GenerationError(f"{describe(target)}: {exc}") from exc

        if not response.choices:
            return ""
        return response.choices[0].message.content or ""

    # -- Provider implementations ----------------------------------------------

    async def _stream_anthropic(
        self,
        target: RemoteModel,
        history: list[dict[str, str]],
        system: str,
        config: AIConfig,
    ) -> AsyncIterator[str]:
        kwargs: dict[str, Any] = {
            "model": target.model_id,
            "max_tokens": config.max_tokens,
            "system": system,
            "messages": _anthropic_messages(history),
            "temperature": config.temperature,
        }
        async with self._get_anthropic().messages.stream(**kwargs) as stream:
            async for text in stream.text_stream:
                if text:
                    yield text

    async def _stream_openai(
        self,
        target: ModelTarget,
        history: list[dict[str, str]],
        system: str,
        config: AIConfig,
    ) -> AsyncIterator[str]:
        kwargs = self._openai_kwargs(target, history, system, config, config.temperature)
        stream = await self._get_openai(target).chat.completions.create(stream=True, **kwargs)
        async for chunk in stream:
            if not chunk.choices:
                continue
            text = chunk.choices[0].delta.content
            if text:
                yield text

    @staticmethod
    def _openai_kwargs(
        target: ModelTarget,
        history: list[dict[str, str]],
        system: str,
        config: AIConfig,
        temperature: float,
    ) -> dict[str, Any]:
        return {
            "model": target.model_name,
            "messages": [{"role": "system", "content": system}, *history],
            "temperature": temperature,
            "top_p": config.top_p,
            "max_tokens": config.max_tokens,
        }
