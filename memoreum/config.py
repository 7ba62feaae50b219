"""Application settings loaded from environment variables."""

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from memoreum.llm.base import ProviderConfig

MAINNET_BASE_URL = "https://api.memoreum.app"
TESTNET_BASE_URL = "https://testnet-api.memoreum.app"


def _env_file() -> str | None:
    if os.getenv("PYTEST_CURRENT_TEST"):
        return None
    return ".env"


class Settings(BaseSettings):
    """Memoreum configuration. All values come from environment variables."""

    # Marketplace API
    memoreum_api_key: str = Field(default="")
    memoreum_base_url: str = Field(default="")
    memoreum_network: str = Field(default="mainnet")

    # AI provider
    ai_provider: str = Field(default="openai")
    ai_api_key: str = Field(default="")
    ai_model: str = Field(default="")
    ai_temperature: float = Field(default=0.7)
    ai_max_tokens: int = Field(default=4096)

    # Agent behaviour
    auto_store: bool = Field(default=False)
    system_prompt: str = Field(default="")
    autonomous_interval_ms: int = Field(default=60000)

    # HTTP
    http_timeout: float = Field(default=60.0)

    # Persisted CLI config
    config_path: Path = Field(default=Path.home() / ".config" / "memoreum" / "config.json")

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

    def get_base_url(self) -> str:
        """Explicit MEMOREUM_BASE_URL, else the URL for the configured network."""
        if self.memoreum_base_url.strip():
            return self.memoreum_base_url.strip().rstrip("/")
        if self.memoreum_network == "testnet":
            return TESTNET_BASE_URL
        return MAINNET_BASE_URL

    def get_provider_config(self) -> ProviderConfig | None:
        """Build a ProviderConfig from AI_* variables, or None if no key is set.

        Ollama needs no credential, so it is returned even without a key.
        """
        if not self.ai_api_key and self.ai_provider != "ollama":
            return None
        return ProviderConfig(
            provider=self.ai_provider,
            api_key=self.ai_api_key,
            model=self.ai_model or None,
            temperature=self.ai_temperature,
            max_tokens=self.ai_max_tokens,
        )


settings = Settings()
