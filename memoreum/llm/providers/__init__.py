"""AI vendor adapters."""

from memoreum.llm.providers.anthropic import AnthropicProvider
from memoreum.llm.providers.google import GoogleProvider
from memoreum.llm.providers.ollama import OllamaProvider
from memoreum.llm.providers.openai import GroqProvider, OpenAIProvider, TogetherProvider

__all__ = [
    "AnthropicProvider",
    "GoogleProvider",
    "GroqProvider",
    "OllamaProvider",
    "OpenAIProvider",
    "TogetherProvider",
]
