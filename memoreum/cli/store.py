"""Persisted CLI configuration, stored as a JSON file."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

from memoreum.errors import ConfigError
from memoreum.llm.base import ProviderConfig

logger = logging.getLogger(__name__)

DEFAULT_PROVIDER_KEY = "default"


class CLIConfig(BaseModel):
    api_key: str | None = None
    agent_id: str | None = None
    base_url: str | None = None
    network: str = "mainnet"


class LocalAgent(BaseModel):
    """An agent registered from this machine."""

    id: str
    name: str
    api_key: str
    wallet_address: str = ""
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class StoredState(BaseModel):
    config: CLIConfig = Field(default_factory=CLIConfig)
    agents: list[LocalAgent] = Field(default_factory=list)
    current_agent: str | None = None
    ai_providers: dict[str, ProviderConfig] = Field(default_factory=dict)


class ConfigStore:
    """Read-modify-write access to the CLI's config file.

    Every mutation is written to disk immediately. A missing file reads
    as defaults; a corrupt one raises ``ConfigError``.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path).expanduser()
        self._state = self._load()

    def _load(self) -> StoredState:
        if not self.path.exists():
            return StoredState()
        try:
            return StoredState.model_validate_json(self.path.read_text(encoding="utf-8"))
        except ValidationError as e:
            msg = f"Invalid config file {self.path}: {e.error_count()} error(s)"
            raise ConfigError(msg) from e

    def _save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(self._state.model_dump_json(indent=2), encoding="utf-8")
        logger.debug("Saved config to %s", self.path)

    # -- Connection ------------------------------------------------------------

    def get_config(self) -> CLIConfig:
        return self._state.config.model_copy()

    def set_config(self, **updates: str | None) -> CLIConfig:
        self._state.config = self._state.config.model_copy(update=updates)
        self._save()
        return self.get_config()

    def set_api_key(self, api_key: str) -> None:
        self.set_config(api_key=api_key)

    def set_network(self, network: str) -> None:
        if network not in ("mainnet", "testnet"):
            msg = f"Unknown network: {network}"
            raise ConfigError(msg)
        self.set_config(network=network)

    # -- Agents ----------------------------------------------------------------

    def get_agents(self) -> list[LocalAgent]:
        return list(self._state.agents)

    def add_agent(self, agent: LocalAgent) -> None:
        self._state.agents = [a for a in self._state.agents if a.id != agent.id]
        self._state.agents.append(agent)
        self._save()

    def remove_agent(self, agent_id: str) -> bool:
        before = len(self._state.agents)
        self._state.agents = [a for a in self._state.agents if a.id != agent_id]
        if self._state.current_agent == agent_id:
            self._state.current_agent = None
        self._save()
        return len(self._state.agents) < before

    def set_current_agent(self, agent_id: str | None) -> None:
        if agent_id is not None and not any(a.id == agent_id for a in self._state.agents):
            msg = f"No local agent with id {agent_id}"
            raise ConfigError(msg)
        self._state.current_agent = agent_id
        self._save()

    def get_current_agent(self) -> LocalAgent | None:
        current = self._state.current_agent
        if current is None:
            return None
        return next((a for a in self._state.agents if a.id == current), None)

    # -- AI providers ----------------------------------------------------------

    def get_providers(self) -> dict[str, ProviderConfig]:
        return dict(self._state.ai_providers)

    def set_provider(self, name: str, config: ProviderConfig) -> None:
        self._state.ai_providers[name] = config
        self._save()

    def get_provider(self, name: str) -> ProviderConfig | None:
        return self._state.ai_providers.get(name)

    def remove_provider(self, name: str) -> bool:
        removed = self._state.ai_providers.pop(name, None) is not None
        if removed:
            self._save()
        return removed

    def get_default_provider(self) -> ProviderConfig | None:
        """The ``default`` entry, else the first one added."""
        providers = self._state.ai_providers
        if DEFAULT_PROVIDER_KEY in providers:
            return providers[DEFAULT_PROVIDER_KEY]
        return next(iter(providers.values()), None)

    def clear(self) -> None:
        self._state = StoredState()
        self._save()

    # -- Resolution ------------------------------------------------------------

    def resolve_api_key(self) -> str | None:
        """Current agent's key, else the configured key."""
        agent = self.get_current_agent()
        if agent is not None:
            return agent.api_key
        return self._state.config.api_key
