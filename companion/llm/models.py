"""Model targets and runtime model selection."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import StrEnum

from companion.config import settings

logger = logging.getLogger(__name__)


class Provider(StrEnum):
    ANTHROPIC = "anthropic"
    OPENAI = "openai"
    DEEPSEEK = "deepseek"
    XAI = "xai"
    CUSTOM = "custom"


@dataclass(frozen=True)
class LocalModel:
    """An on-device model served by a local OpenAI-compatible server."""

    name: str
    display_name: str = ""

    @property
    def model_name(self) -> str:
        return self.name

    @property
    def is_remote(self) -> bool:
        return False


@dataclass(frozen=True)
class RemoteModel:
    """A hosted model reached through a provider API."""

    provider: Provider
    model_id: str
    display_name: str = ""

    @property
    def model_name(self) -> str:
        return self.model_id

    @property
    def is_remote(self) -> bool:
        return True


ModelTarget = LocalModel | RemoteModel


MODEL_MAP: dict[str, RemoteModel] = {
    m.model_id: m
    for m in (
        RemoteModel(Provider.DEEPSEEK, "deepseek-chat", "DeepSeek Chat"),
        RemoteModel(Provider.DEEPSEEK, "deepseek-reasoner", "DeepSeek Reasoner"),
        RemoteModel(Provider.OPENAI, "gpt-4o-2024-05-13", "GPT-4o"),
        RemoteModel(Provider.OPENAI, "gpt-5.1", "GPT-5.1"),
        RemoteModel(Provider.XAI, "grok-4-1-fast-non-reasoning", "Grok 4.1 Fast"),
        RemoteModel(Provider.XAI, "grok-3", "Grok 3"),
        RemoteModel(Provider.ANTHROPIC, "claude-sonnet-4-5-20250929", "Claude Sonnet 4.5"),
        RemoteModel(Provider.ANTHROPIC, "claude-haiku-4-5-20251001", "Claude Haiku 4.5"),
    )
}


def _resolve(name: str) -> ModelTarget | None:
    """Resolve a catalog model ID, or ``local:<name>`` for a local model."""
    if name in MODEL_MAP:
        return MODEL_MAP[name]
    if name.startswith("local:") and name[len("local:") :]:
        return LocalModel(name=name[len("local:") :])
    return None


def describe(target: ModelTarget) -> str:
    """Return a short human-readable description of a target."""
    match target:
        case LocalModel(name=name):
            return f"local/{name}"
        case RemoteModel(provider=provider, model_id=model_id):
            return f"{provider}/{model_id}"


class ModelManager:
    """Singleton that tracks which model the next turn should target."""

    _instance: ModelManager | None = None

    def __init__(self) -> None:
        self._selected: ModelTarget | None = _resolve(settings.default_chat_model)
        if self._selected is None and settings.local_model_name:
            self._selected = LocalModel(name=settings.local_model_name)
        if self._selected is not None:
            logger.info("Model: %s", describe(self._selected))
        else:
            logger.warning("No model selected; set DEFAULT_CHAT_MODEL")

    @classmethod
    def get(cls) -> ModelManager:
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def _reset(cls) -> None:
        """Reset the singleton (for testing)."""
        cls._instance = None

    @property
    def selected(self) -> ModelTarget | None:
        return self._selected

    def select(self, target: ModelTarget | None) -> None:
        self._selected = target
        if target is not None:
            logger.info("Model → %s", describe(target))

    def select_by_name(self, name: str) -> ModelTarget | None:
        """Select by catalog ID or ``local:<name>``. Returns the target or None if invalid."""
        target = _resolve(name)
        if target:
            self.select(target)
        return target
