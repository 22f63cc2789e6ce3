"""Application settings loaded from environment variables."""

import os
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from companion.llm import prompts


def _env_file() -> str | None:
    if os.getenv("PYTEST_CURRENT_TEST"):
        return None
    return ".env"


class AIConfig(BaseModel):
    """Immutable snapshot of generation and context settings for one turn.

    A new snapshot is taken at the start of every turn, so changing settings
    mid-turn never affects a turn already in flight.
    """

    model_config = ConfigDict(frozen=True)

    # Prompts
    system_prompt: str = prompts.DEFAULT_SYSTEM_PROMPT
    local_system_prompt: str = prompts.DEFAULT_LOCAL_SYSTEM_PROMPT
    memory_extraction_prompt: str = prompts.DEFAULT_MEMORY_EXTRACTION_PROMPT
    memory_extraction_system: str = prompts.MEMORY_EXTRACTION_SYSTEM
    no_memory_sentinel: str = prompts.NO_KEY_INFORMATION
    swipe_message_prompt: str = prompts.DEFAULT_SWIPE_MESSAGE_PROMPT
    context_instructions: str = prompts.DEFAULT_CONTEXT_INSTRUCTIONS

    # Sampling
    temperature: float = Field(default=0.7, ge=0.0, le=1.0)
    top_p: float = Field(default=0.9, ge=0.0, le=1.0)
    max_tokens: int = Field(default=4096, ge=256, le=8192)
    message_history_limit: int = Field(default=10, ge=1, le=25)

    # Deep empathy
    deep_empathy: bool = False
    deep_empathy_prompt: str = prompts.DEFAULT_DEEP_EMPATHY_PROMPT
    deep_empathy_analysis_prompt: str = prompts.DEFAULT_DEEP_EMPATHY_ANALYSIS_PROMPT

    # Memory
    memory_enabled: bool = False
    memory_limit: int = Field(default=5, ge=1, le=10)
    memory_min_age_days: int = Field(default=2, ge=0, le=30)
    memory_title: str = prompts.DEFAULT_MEMORY_TITLE
    memory_instructions: str = prompts.DEFAULT_MEMORY_INSTRUCTIONS

    # RAG
    rag_enabled: bool = False
    rag_chunk_size: int = Field(default=512, ge=128, le=2048)
    rag_chunk_overlap: int = Field(default=64, ge=0, le=256)
    rag_chunk_limit: int = Field(default=5, ge=1, le=10)
    rag_title: str = prompts.DEFAULT_RAG_TITLE
    rag_instructions: str = prompts.DEFAULT_RAG_INSTRUCTIONS

    # Personal context written by the user about themselves
    user_context: str = ""


class Settings(BaseSettings):
    """Companion configuration. All values come from environment variables."""

    # Providers
    anthropic_api_key: str = Field(default="")
    openai_api_key: str = Field(default="")
    deepseek_api_key: str = Field(default="")
    xai_api_key: str = Field(default="")
    custom_api_key: str = Field(default="")
    custom_base_url: str = Field(default="")
    default_chat_model: str = Field(default="deepseek-chat")

    # Local model server (llama.cpp / OpenAI-compatible)
    local_base_url: str = Field(default="http://127.0.0.1:8080/v1")
    local_model_name: str = Field(default="")

    # Embeddings
    embedding_api_key: str = Field(default="")
    embedding_base_url: str = Field(default="")
    embedding_model: str = Field(default="text-embedding-3-small")

    # Database
    database_path: Path = Field(default=Path("data/companion.db"))

    # Feature gates (defaults for every turn's AIConfig snapshot)
    deep_empathy: bool = Field(default=False)
    memory_enabled: bool = Field(default=False)
    rag_enabled: bool = Field(default=False)
    message_history_limit: int = Field(default=10)
    temperature: float = Field(default=0.7)
    top_p: float = Field(default=0.9)
    max_tokens: int = Field(default=4096)
    memory_limit: int = Field(default=5)
    memory_min_age_days: int = Field(default=2)
    rag_chunk_limit: int = Field(default=5)
    user_context: str = Field(default="")

    # Logging
    log_level: str = Field(default="INFO")

    model_config = SettingsConfigDict(env_file=_env_file(), env_file_encoding="utf-8")

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        if os.getenv("PYTEST_CURRENT_TEST"):
            return (init_settings,)
        return (init_settings, env_settings, dotenv_settings, file_secret_settings)

    def ai_config(self, **overrides) -> AIConfig:
        """Build a per-turn AIConfig snapshot from the configured defaults."""
        values = {
            "deep_empathy": self.deep_empathy,
            "memory_enabled": self.memory_enabled,
            "rag_enabled": self.rag_enabled,
            "message_history_limit": self.message_history_limit,
            "temperature": self.temperature,
            "top_p": self.top_p,
            "max_tokens": self.max_tokens,
            "memory_limit": self.memory_limit,
            "memory_min_age_days": self.memory_min_age_days,
            "rag_chunk_limit": self.rag_chunk_limit,
            "user_context": self.user_context,
        }
        values.update(overrides)
        return AIConfig(**values)


settings = Settings()
