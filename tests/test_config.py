"""Tests for environment-driven settings."""

from unittest.mock import patch

import pytest
from pydantic import ValidationError

from chatloop.config import ControllerConfig, ModelConfig, SearchConfig, Settings


class TestSettingsFromEnv:
    def test_defaults(self):
        with patch.dict("os.environ", {}, clear=True):
            settings = Settings.from_env()

        assert settings.model.provider == "groq"
        assert settings.model.model == "openai/gpt-oss-120b"
        assert settings.model.temperature == 0.0
        assert settings.model.max_retries == 2
        assert settings.search.max_results == 3
        assert settings.search.topic == "general"
        assert settings.controller.max_tool_rounds == 5
        assert settings.log.level == "INFO"

    def test_overrides(self):
        env = {
            "CHATLOOP_PROVIDER": "Anthropic",
            "CHATLOOP_MAX_TOOL_ROUNDS": "2",
            "CHATLOOP_TOOL_TIMEOUT": "2.5",
            "CHATLOOP_SEARCH_TOPIC": "news",
            "CHATLOOP_SEARCH_MAX_RESULTS": "",
            "LOG_LEVEL": "debug",
        }
        with patch.dict("os.environ", env, clear=True):
            settings = Settings.from_env()

        assert settings.model.provider == "anthropic"
        assert settings.model.model == "claude-3-5-sonnet-20241022"
        assert settings.controller.max_tool_rounds == 2
        assert settings.controller.tool_timeout == 2.5
        assert settings.search.topic == "news"
        assert settings.search.max_results == 3
        assert settings.log.level == "DEBUG"

    def test_explicit_model_wins_over_provider_default(self):
        with patch.dict("os.environ", {"CHATLOOP_PROVIDER": "groq", "CHATLOOP_MODEL": "llama-3.3-70b"}, clear=True):
            assert Settings.from_env().model.model == "llama-3.3-70b"

    def test_cli_log_default(self):
        with patch.dict("os.environ", {}, clear=True):
            assert Settings.from_env(default_log_level="WARNING").log.level == "WARNING"

    def test_reads_dotenv_file(self, tmp_path, monkeypatch):
        (tmp_path / ".env").write_text(
            "CHATLOOP_MAX_TOOL_ROUNDS=3\nCHATLOOP_SEARCH_TOPIC=finance\nGROQ_API_KEY=from-dotenv\nTAVILY_API_KEY=tvly\n"
        )
        monkeypatch.chdir(tmp_path)

        with patch.dict("os.environ", {}, clear=True):
            settings = Settings.from_env()

        assert settings.controller.max_tool_rounds == 3
        assert settings.search.topic == "finance"
        assert settings.search.api_key == "tvly"
        assert settings.model.resolve_api_key() == "from-dotenv"

    @pytest.mark.parametrize(
        ("name", "value", "expected"),
        [
            ("CHATLOOP_PROVIDER", "openai", "Input should be 'groq' or 'anthropic'"),
            ("CHATLOOP_MAX_TOOL_ROUNDS", "many", "valid integer"),
            ("CHATLOOP_MAX_RETRIES", "-1", "greater than or equal to 0"),
            ("CHATLOOP_TEMPERATURE", "hot", "valid number"),
            ("CHATLOOP_TOOL_TIMEOUT", "0", "greater than 0"),
            ("CHATLOOP_SEARCH_TOPIC", "sports", "Input should be 'general', 'news' or 'finance'"),
        ],
    )
    def test_invalid_values(self, name, value, expected):
        with patch.dict("os.environ", {name: value}, clear=True):
            with pytest.raises(ValidationError, match=expected):
                Settings.from_env()

    def test_invalid_values_are_value_errors(self):
        with patch.dict("os.environ", {"CHATLOOP_MAX_RETRIES": "-1"}, clear=True):
            with pytest.raises(ValueError):
                Settings.from_env()


class TestSectionConfigs:
    def test_keyword_arguments_override_environment(self):
        with patch.dict("os.environ", {"CHATLOOP_MAX_TOOL_ROUNDS": "9"}, clear=True):
            assert ControllerConfig(max_tool_rounds=1).max_tool_rounds == 1
            assert ControllerConfig().max_tool_rounds == 9

    def test_search_prefix(self):
        with patch.dict("os.environ", {"CHATLOOP_SEARCH_MAX_RESULTS": "7"}, clear=True):
            assert SearchConfig().max_results == 7


class TestModelConfig:
    def test_explicit_api_key_wins(self):
        with patch.dict("os.environ", {"GROQ_API_KEY": "from-env"}):
            assert ModelConfig(api_key="explicit").resolve_api_key() == "explicit"

    def test_api_key_from_environment(self):
        with patch.dict("os.environ", {"ANTHROPIC_API_KEY": "from-env"}, clear=True):
            assert ModelConfig(provider="anthropic").resolve_api_key() == "from-env"

    def test_missing_api_key_names_the_variable(self):
        with patch.dict("os.environ", {"GROQ_API_KEY": "groq-only"}, clear=True):
            with pytest.raises(ValueError, match="ANTHROPIC_API_KEY"):
                ModelConfig(provider="anthropic").resolve_api_key()
