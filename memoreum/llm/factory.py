"""Provider factory: maps a configuration tag to a constructed adapter."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from memoreum.errors import UnsupportedProviderError
from memoreum.llm.providers import (
    AnthropicProvider,
    GoogleProvider,
    GroqProvider,
    OllamaProvider,
    OpenAIProvider,
    TogetherProvider,
)

if TYPE_CHECKING:
    from collections.abc import Callable

    from memoreum.llm.base import BaseProvider, ProviderConfig

logger = logging.getLogger(__name__)

DEEPSEEK_API_URL = "https://api.deepseek.com/v1/chat/completions"
MISTRAL_API_URL = "https://api.mistral.ai/v1/chat/completions"

# OpenAI-compatible vendors served by OpenAIProvider with their own
# endpoint, default model and advisory model list.
_OPENAI_ALIASES: dict[str, tuple[str, str, list[str]]] = {
    "deepseek": (DEEPSEEK_API_URL, "deepseek-chat", ["deepseek-chat", "deepseek-coder"]),
    "mistral": (
        MISTRAL_API_URL,
        "mistral-large-latest",
        [
            "mistral-large-latest",
            "mistral-medium-latest",
            "mistral-small-latest",
            "codestral-latest",
        ],
    ),
}

_ADAPTERS: dict[str, type[BaseProvider]] = {
    "openai": OpenAIProvider,
    "anthropic": AnthropicProvider,
    "google": GoogleProvider,
    "groq": GroqProvider,
    "together": TogetherProvider,
    # api_key is the server base URL for ollama
    "ollama": OllamaProvider,
}


def _timeout_kwargs(timeout: float | None) -> dict[str, float]:
    return {} if timeout is None else {"timeout": timeout}


def _adapter_builder(cls: type[BaseProvider]) -> Callable[..., BaseProvider]:
    def build(config: ProviderConfig, timeout: float | None = None) -> BaseProvider:
        return cls(
            config.api_key,
            config.model,
            config.temperature,
            config.max_tokens,
            **_timeout_kwargs(timeout),
        )

    return build


def _alias_builder(tag: str) -> Callable[..., BaseProvider]:
    api_url, default_model, models = _OPENAI_ALIASES[tag]

    def build(config: ProviderConfig, timeout: float | None = None) -> BaseProvider:
        return OpenAIProvider(
            config.api_key,
            config.model or default_model,
            config.temperature,
            config.max_tokens,
            api_url=api_url,
            provider_name=tag,
            supported_models=list(models),
            **_timeout_kwargs(timeout),
        )

    return build


_REGISTRY: dict[str, Callable[..., BaseProvider]] = {
    **{tag: _adapter_builder(cls) for tag, cls in _ADAPTERS.items()},
    **{tag: _alias_builder(tag) for tag in _OPENAI_ALIASES},
}


def create_provider(config: ProviderConfig, *, timeout: float | None = None) -> BaseProvider:
    """Build the adapter for ``config.provider``.

    Raises:
        UnsupportedProviderError: If the tag is not registered. Nothing
            touches the network before this check.
    """
    builder = _REGISTRY.get(config.provider)
    if builder is None:
        raise UnsupportedProviderError(config.provider)
    provider = builder(config, timeout)
    logger.info("AI provider: %s (model=%s)", config.provider, provider.get_model())
    return provider


def available_providers() -> list[str]:
    """All registered provider tags."""
    return list(_REGISTRY.keys())


def get_available_models(tag: str) -> list[str]:
    """Advisory model list for a tag, or [] if unknown."""
    if tag in _OPENAI_ALIASES:
        return list(_OPENAI_ALIASES[tag][2])
    cls = _ADAPTERS.get(tag)
    return list(cls.supported_models) if cls else []


def get_default_model(tag: str) -> str:
    """Default model for a tag. Unknown tags fall back to OpenAI's default."""
    if tag in _OPENAI_ALIASES:
        return _OPENAI_ALIASES[tag][1]
    cls = _ADAPTERS.get(tag, OpenAIProvider)
    return cls.default_model
