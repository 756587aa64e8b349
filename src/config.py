"""Application settings loaded from environment variables."""

import os
from pathlib import Path

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _env_file() -> str | None:
    if os.getenv("PYTEST_CURRENT_TEST"):
        return None
    return ".env"


class Settings(BaseSettings):
    """Zoxaa configuration. All values come from environment variables."""

    # Server
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=3001)
    environment: str = Field(
        default="development",
        validation_alias=AliasChoices("environment", "node_env"),
    )
    debug_endpoints_enabled: bool | None = Field(default=None)

    # OpenAI
    openai_api_key: str = Field(default="")

    # Chat relay
    chat_model: str = Field(default="gpt-4")
    chat_temperature: float = Field(default=0.8)
    chat_max_tokens: int = Field(default=300)
    chat_presence_penalty: float = Field(default=0.05)
    chat_frequency_penalty: float = Field(default=0.05)
    chat_timeout_seconds: float = Field(default=30.0)

    # Embeddings
    embedding_model: str = Field(default="text-embedding-3-small")
    embedding_dimensions: int = Field(default=1536)

    # Text-to-speech
    tts_model: str = Field(default="tts-1")
    tts_default_voice: str = Field(default="alloy")
    tts_max_text_length: int = Field(default=4000)
    tts_speed_multiplier: float = Field(default=1.0)
    tts_max_speed: float = Field(default=2.0)
    tts_response_format: str = Field(default="json")

    # Conversation
    conversation_window_size: int = Field(default=50)
    max_sessions: int = Field(default=1000)
    history_turns: int = Field(default=10)
    memory_context_limit: int = Field(default=3)

    # Memory extraction
    memory_extraction_enabled: bool = Field(default=True)
    extraction_model: str = Field(default="gpt-4")

    # Database
    database_path: Path = Field(default=Path("data/zoxaa.db"))

    # Turso (hosted libSQL): when set, overrides local database_path
    turso_database_url: str = Field(default="")
    turso_auth_token: str = Field(default="")

    # Logging
    log_level: str = Field(default="INFO")

    model_config = SettingsConfigDict(
        env_file=_env_file(), env_file_encoding="utf-8", populate_by_name=True
    )

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

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    def debug_endpoints(self) -> bool:
        """Whether /api/debug and /api/test are served.

        Follows DEBUG_ENDPOINTS_ENABLED when set, otherwise everything but
        production gets them.
        """
        if self.debug_endpoints_enabled is not None:
            return self.debug_endpoints_enabled
        return not self.is_production

    def masked_api_key(self) -> str:
        """First 10 characters of the OpenAI key, for log lines."""
        if not self.openai_api_key:
            return "NOT FOUND"
        return self.openai_api_key[:10] + "..."


settings = Settings()
