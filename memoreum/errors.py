"""Exception types shared across the package."""


class MemoreumError(Exception):
    """Base class for all memoreum errors."""


class ProviderError(MemoreumError):
    """A completion or stream call to an AI provider failed.

    Covers transport failures, non-success HTTP statuses and malformed
    response bodies. ``status_code`` is set when the vendor answered.
    """

    def __init__(self, provider: str, message: str, status_code: int | None = None) -> None:
        self.provider = provider
        self.message = message
        self.status_code = status_code
        super().__init__(f"[{provider}] {message}")


class UnsupportedProviderError(MemoreumError):
    """Raised by the provider factory for an unknown provider tag."""

    def __init__(self, tag: str) -> None:
        self.tag = tag
        super().__init__(f"Unsupported AI provider: {tag}")


class ConfigError(MemoreumError):
    """Required configuration (API key, provider) is missing."""
