"""Tests for Settings and the per-turn AIConfig snapshot."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from companion.config import AIConfig, Settings
from companion.llm.prompts import NO_KEY_INFORMATION


class TestDefaults:
    def test_default_chat_model(self):
        assert Settings().default_chat_model == "deepseek-chat"

    def test_default_database_path(self):
        assert Settings().database_path == Path("data/companion.db")

    def test_features_off_by_default(self):
        s = Settings()
        assert s.deep_empathy is False
        assert s.memory_enabled is False
        assert s.rag_enabled is False

    def test_default_log_level(self):
        assert Settings().log_level == "INFO"


class TestAIConfig:
    def test_defaults(self):
        config = AIConfig()
        assert config.temperature == 0.7
        assert config.message_history_limit == 10
        assert config.memory_limit == 5
        assert config.memory_min_age_days == 2
        assert config.rag_chunk_limit == 5
        assert config.no_memory_sentinel == NO_KEY_INFORMATION

    def test_is_frozen(self):
        config = AIConfig()
        with pytest.raises(ValidationError):
            config.temperature = 0.1

    @pytest.mark.parametrize(
        ("field", "value"),
        [
            ("temperature", 1.5),
            ("temperature", -0.1),
            ("max_tokens", 100),
            ("message_history_limit", 0),
            ("message_history_limit", 26),
            ("memory_limit", 11),
            ("memory_min_age_days", 31),
            ("rag_chunk_size", 64),
            ("rag_chunk_limit", 0),
        ],
    )
    def test_out_of_range_rejected(self, field, value):
        with pytest.raises(ValidationError):
            AIConfig(**{field: value})

    def test_boundaries_accepted(self):
        config = AIConfig(temperature=1.0, message_history_limit=25, memory_min_age_days=0)
        assert config.message_history_limit == 25


class TestSnapshot:
    def test_snapshot_uses_settings(self):
        s = Settings(memory_enabled=True, memory_limit=7, user_context="I'm a nurse.")
        config = s.ai_config()
        assert config.memory_enabled is True
        assert config.memory_limit == 7
        assert config.user_context == "I'm a nurse."

    def test_overrides_win(self):
        config = Settings(temperature=0.2).ai_config(temperature=0.9, rag_enabled=True)
        assert config.temperature == 0.9
        assert config.rag_enabled is True

    def test_invalid_setting_fails_snapshot(self):
        with pytest.raises(ValidationError):
            Settings(message_history_limit=100).ai_config()
