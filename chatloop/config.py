"""Runtime configuration loaded from environment variables and ``.env``."""

from dataclasses import dataclass, field
from typing import Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from chatloop.utils.logging import LogConfig

Provider = Literal["groq", "anthropic"]
SearchTopic = Literal["general", "news", "finance"]

DEFAULT_MODELS: dict[str, str] = {
    "groq": "openai/gpt-oss-120b",
    "anthropic": "claude-3-5-sonnet-20241022",
}

API_KEY_VARIABLES: dict[str, str] = {
    "groq": "GROQ_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
}


def _settings_config(env_prefix: str = "") -> SettingsConfigDict:
    return SettingsConfigDict(
        env_prefix=env_prefix,
        env_file=".env",
        env_file_encoding="utf-8",
        env_ignore_empty=True,
        extra="ignore",
    )


class ModelConfig(BaseSettings):
    """Configuration for the chat model client (``CHATLOOP_*``)."""

    model_config = _settings_config("CHATLOOP_")

    provider: Provider = "groq"
    model: str = ""  # Defaults to the provider's model
    temperature: float = Field(0.0, ge=0)
    max_tokens: int = Field(4096, gt=0)
    max_retries: int = Field(2, ge=0)
    retry_delay: float = Field(1.0, ge=0)
    request_timeout: float = Field(60.0, gt=0)
    api_key: str | None = None

    # Provider keys under their conventional names
    groq_api_key: str | None = Field(None, validation_alias="GROQ_API_KEY")
    anthropic_api_key: str | None = Field(None, validation_alias="ANTHROPIC_API_KEY")

    # Pacing in front of the provider, 0 disables a check
    requests_per_minute: int = Field(30, ge=0)
    tokens_per_minute: int = Field(60_000, ge=0)

    @field_validator("provider", mode="before")
    @classmethod
    def normalize_provider(cls, value: object) -> object:
        return value.strip().lower() if isinstance(value, str) else value

    @model_validator(mode="after")
    def default_model(self) -> "ModelConfig":
        if not self.model:
            self.model = DEFAULT_MODELS[self.provider]
        return self

    def resolve_api_key(self) -> str:
        """Return the explicit key or the provider's key.

        Raises:
            ValueError: If no key is configured for the provider
        """
        provider_key = self.anthropic_api_key if self.provider == "anthropic" else self.groq_api_key
        api_key = self.api_key or provider_key
        if not api_key:
            raise ValueError(f"{API_KEY_VARIABLES[self.provider]} environment variable is required")
        return api_key


class SearchConfig(BaseSettings):
    """Configuration for the web search tool (``CHATLOOP_SEARCH_*``)."""

    model_config = _settings_config("CHATLOOP_SEARCH_")

    max_results: int = Field(3, gt=0)
    topic: SearchTopic = "general"
    api_key: str | None = Field(None, validation_alias="TAVILY_API_KEY")

    @field_validator("topic", mode="before")
    @classmethod
    def normalize_topic(cls, value: object) -> object:
        return value.strip().lower() if isinstance(value, str) else value


class ControllerConfig(BaseSettings):
    """Limits applied to each turn (``CHATLOOP_*``)."""

    model_config = _settings_config("CHATLOOP_")

    max_tool_rounds: int = Field(5, ge=0)
    tool_timeout: float = Field(30.0, gt=0)
    max_message_tokens: int = Field(1000, ge=0)


class LogSettings(BaseSettings):
    """``LOG_LEVEL`` from the environment, unset by default."""

    model_config = _settings_config()

    log_level: str | None = None


@dataclass
class Settings:
    """Top-level settings bundle."""

    model: ModelConfig = field(default_factory=ModelConfig)
    search: SearchConfig = field(default_factory=SearchConfig)
    controller: ControllerConfig = field(default_factory=ControllerConfig)
    log: LogConfig = field(default_factory=LogConfig)

    @classmethod
    def from_env(cls, default_log_level: str = "INFO") -> "Settings":
        """Load every section from the environment and ``.env``.

        Raises:
            pydantic.ValidationError: If a variable holds an unusable value
        """
        level = LogSettings().log_level or default_log_level
        return cls(
            model=ModelConfig(),
            search=SearchConfig(),
            controller=ControllerConfig(),
            log=LogConfig(level=level.upper()),
        )
