"""Memoreum agent SDK: marketplace client, AI providers and the conversational agent."""

from memoreum.agent.agent import AgentConfig, MemoreumAgent
from memoreum.client import APIResponse, MemoreumClient
from memoreum.errors import ConfigError, MemoreumError, ProviderError, UnsupportedProviderError
from memoreum.llm.base import BaseProvider, CompletionResult, Message, ProviderConfig, StreamChunk
from memoreum.llm.factory import create_provider

__all__ = [
    "AgentConfig",
    "APIResponse",
    "BaseProvider",
    "CompletionResult",
    "ConfigError",
    "MemoreumAgent",
    "MemoreumClient",
    "MemoreumError",
    "Message",
    "ProviderConfig",
    "ProviderError",
    "StreamChunk",
    "UnsupportedProviderError",
    "create_provider",
]
