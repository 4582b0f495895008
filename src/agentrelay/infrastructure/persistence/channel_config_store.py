"""Read-only channel configuration stores.

``YamlChannelConfigStore`` loads definitions from a YAML file of the form::

    channels:
      - id: support-slack
        channel_type: slack
        session_strategy: per-thread
        system_prompt: You are the support bot.
        agent_name: support
        metadata:
          model: {providerID: anthropic, modelID: claude-sonnet}
"""

from __future__ import annotations

from pathlib import Path

import structlog
import yaml

from agentrelay.core.domain.channels import ChannelConfig
from agentrelay.core.domain.config_schema import parse_channel_configs
from agentrelay.core.domain.errors import ConfigError

logger = structlog.get_logger(__name__)


class InMemoryChannelConfigStore:
    """Channel configs held in a dict; also the base of the YAML store."""

    def __init__(self, configs: list[ChannelConfig] | None = None) -> None:
        self._configs: dict[str, ChannelConfig] = {c.id: c for c in configs or []}

    async def get_enabled(self, config_id: str) -> ChannelConfig | None:
        config = self._configs.get(config_id)
        if config is None or not config.enabled:
            return None
        return config

    def list_configs(self) -> list[ChannelConfig]:
        return list(self._configs.values())


class YamlChannelConfigStore(InMemoryChannelConfigStore):
    """Channel configs loaded once from a YAML file.

    Raises:
        ConfigError: If the file cannot be read or fails validation.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        super().__init__(self._read())
        logger.info(
            "channel_config_store.loaded", path=str(self._path), channels=len(self._configs)
        )

    def reload(self) -> None:
        """Re-read the file, replacing the current configs on success."""
        configs = self._read()
        self._configs = {c.id: c for c in configs}
        logger.info(
            "channel_config_store.reloaded", path=str(self._path), channels=len(self._configs)
        )

    def _read(self) -> list[ChannelConfig]:
        try:
            with self._path.open(encoding="utf-8") as handle:
                data = yaml.safe_load(handle)
        except FileNotFoundError as exc:
            raise ConfigError(f"Channel config file not found: {self._path}") from exc
        except yaml.YAMLError as exc:
            raise ConfigError(
                f"Invalid YAML in channel config file: {self._path}",
                details={"error": str(exc)},
            ) from exc
        if data is not None and not isinstance(data, dict):
            raise ConfigError(f"Channel config file must contain a mapping: {self._path}")
        return parse_channel_configs(data)
