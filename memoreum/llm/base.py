"""Provider contract shared by every AI vendor adapter."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Literal

from pydantic import BaseModel, ConfigDict, Field

from memoreum.errors import ProviderError

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

logger = logging.getLogger(__name__)

DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_TOKENS = 4096
DEFAULT_TIMEOUT = 60.0

Role = Literal["system", "user", "assistant"]


class Message(BaseModel):
    """A single chat message."""

    role: Role
    content: str


class CompletionOptions(BaseModel):
    """Per-call overrides layered onto the provider's defaults."""

    temperature: float | None = None
    max_tokens: int | None = None
    stop_sequences: list[str] | None = None


class Usage(BaseModel):
    """Token accounting for one completion."""

    model_config = ConfigDict(frozen=True)

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class CompletionResult(BaseModel):
    """Result of a non-streaming completion."""

    model_config = ConfigDict(frozen=True)

    content: str
    model: str
    usage: Usage = Field(default_factory=Usage)
    finish_reason: str = "stop"


class StreamChunk(BaseModel):
    """One decoded delta of a streaming completion."""

    content: str = ""
    done: bool = False


class ProviderConfig(BaseModel):
    """Input to the provider factory.

    For ``ollama`` the ``api_key`` field carries the server base URL
    (e.g. ``http://localhost:11434``), not a credential.
    """

    model_config = ConfigDict(frozen=True)

    provider: str
    api_key: str = ""
    model: str | None = None
    temperature: float | None = None
    max_tokens: int | None = None


class BaseProvider(ABC):
    """Abstract base for AI completion providers.

    Subclasses declare ``provider_name``, ``supported_models`` and
    ``default_model`` and implement ``complete`` and ``stream``. Every
    failure that escapes either call must be a ``ProviderError``.
    """

    provider_name: str = ""
    supported_models: list[str] = []
    default_model: str = ""

    def __init__(
        self,
        api_key: str,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        *,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.api_key = api_key
        self.model = model or self.default_model
        self.default_temperature = DEFAULT_TEMPERATURE if temperature is None else temperature
        self.default_max_tokens = max_tokens or DEFAULT_MAX_TOKENS
        self.timeout = timeout

    @abstractmethod
    async def complete(
        self,
        messages: list[Message],
        options: CompletionOptions | None = None,
    ) -> CompletionResult:
        """Send a completion request and return the full result."""
        ...

    @abstractmethod
    def stream(
        self,
        messages: list[Message],
        options: CompletionOptions | None = None,
    ) -> AsyncIterator[StreamChunk]:
        """Send a streaming request, yielding chunks as they are decoded.

        The iterator is single-use and stops after the vendor's end
        sentinel.
        """
        ...

    async def aclose(self) -> None:
        """Release network resources held by the provider."""

    # -- Model -----------------------------------------------------------------

    def get_model(self) -> str:
        return self.model

    def set_model(self, model: str) -> None:
        """Switch models. Unknown names are accepted with a warning."""
        if model not in self.supported_models:
            logger.warning("Model %s may not be supported by %s", model, self.provider_name)
        self.model = model

    def validate_api_key(self) -> bool:
        return len(self.api_key) > 0

    # -- Option resolution -----------------------------------------------------

    def _temperature(self, options: CompletionOptions | None) -> float:
        if options is not None and options.temperature is not None:
            return options.temperature
        return self.default_temperature

    def _max_tokens(self, options: CompletionOptions | None) -> int:
        if options is not None and options.max_tokens is not None:
            return options.max_tokens
        return self.default_max_tokens

    @staticmethod
    def _stop(options: CompletionOptions | None) -> list[str] | None:
        if options is not None and options.stop_sequences:
            return list(options.stop_sequences)
        return None

    def _error(self, message: str, status_code: int | None = None) -> ProviderError:
        return ProviderError(self.provider_name, message, status_code)
