"""
Configuration Schema Validation

Pydantic models for the relay's runtime settings and for channel
definitions loaded from YAML. Validation failures surface as
``ConfigError`` with the offending fields in ``details``.
"""

from __future__ import annotations

import os
from typing import Any, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from agentrelay.core.domain.channels import ChannelConfig, ChannelType, SessionStrategy
from agentrelay.core.domain.errors import ConfigError

ENV_PREFIX = "AGENTRELAY_"

_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


class RelaySettings(BaseModel):
    """Process-wide settings for the relay core."""

    model_config = ConfigDict(extra="forbid")

    agent_url: str = Field("http://localhost:8000", description="Backend agent base URL")
    work_dir: str = Field(".agentrelay", description="Directory for file-based stores")
    channels_file: Optional[str] = Field(None, description="YAML file with channel definitions")
    log_level: str = Field("INFO", description="Minimum structlog level")

    config_rate_limit: int = Field(60, gt=0)
    user_rate_limit: int = Field(20, gt=0)
    rate_window_ms: int = Field(60_000, gt=0)

    session_ttl_hours: float = Field(24, gt=0)
    queue_poll_interval_seconds: float = Field(3.0, gt=0)
    queue_max_wait_seconds: float = Field(90.0, gt=0)
    permission_timeout_seconds: float = Field(300.0, gt=0)
    housekeeping_interval_seconds: float = Field(300.0, gt=0)

    @field_validator("agent_url")
    @classmethod
    def validate_agent_url(cls, value: str) -> str:
        if not value.startswith(("http://", "https://")):
            raise ValueError("agent_url must be an http(s) URL")
        return value.rstrip("/")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in _LOG_LEVELS:
            raise ValueError(f"log_level must be one of {sorted(_LOG_LEVELS)}")
        return level


class ChannelConfigSchema(BaseModel):
    """Schema for one entry of the ``channels:`` list in a YAML file."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    id: str = Field(..., min_length=1)
    channel_type: ChannelType
    name: str = ""
    enabled: bool = True
    session_strategy: SessionStrategy = SessionStrategy.PER_USER
    system_prompt: Optional[str] = None
    agent_name: Optional[str] = None
    platform_config: dict[str, Any] = Field(default_factory=dict)
    metadata: dict[str, Any] = Field(default_factory=dict)

    def to_domain(self) -> ChannelConfig:
        return ChannelConfig(
            id=self.id,
            channel_type=self.channel_type.value,
            name=self.name or self.id,
            enabled=self.enabled,
            session_strategy=self.session_strategy,
            system_prompt=self.system_prompt,
            agent_name=self.agent_name,
            platform_config=dict(self.platform_config),
            metadata=dict(self.metadata),
        )


def _format_errors(exc: ValidationError) -> list[dict[str, Any]]:
    return [
        {"field": ".".join(str(part) for part in err["loc"]), "error": err["msg"]}
        for err in exc.errors()
    ]


def load_settings(env: Mapping[str, str] | None = None) -> RelaySettings:
    """Build settings from ``AGENTRELAY_*`` environment variables.

    Unset variables are dropped so model defaults apply. ``OPENCODE_URL``
    is accepted as a fallback for ``agent_url``.

    Raises:
        ConfigError: If any provided value fails validation.
    """
    source = os.environ if env is None else env
    raw: dict[str, Any] = {}
    for name in RelaySettings.model_fields:
        value = source.get(f"{ENV_PREFIX}{name.upper()}")
        if value is not None and value != "":
            raw[name] = value
    if "agent_url" not in raw and source.get("OPENCODE_URL"):
        raw["agent_url"] = source["OPENCODE_URL"]

    try:
        return RelaySettings(**raw)
    except ValidationError as exc:
        raise ConfigError(
            "Invalid relay settings", details={"errors": _format_errors(exc)}
        ) from exc


def parse_channel_configs(data: Mapping[str, Any] | None) -> list[ChannelConfig]:
    """Validate a parsed YAML document and return its channel configs.

    Raises:
        ConfigError: If the document is malformed or ids are duplicated.
    """
    if not data:
        return []
    entries = data.get("channels") or []
    if not isinstance(entries, list):
        raise ConfigError("'channels' must be a list")

    configs: list[ChannelConfig] = []
    seen: set[str] = set()
    for index, entry in enumerate(entries):
        try:
            schema = ChannelConfigSchema.model_validate(entry)
        except ValidationError as exc:
            raise ConfigError(
                f"Invalid channel definition at index {index}",
                details={"errors": _format_errors(exc)},
            ) from exc
        if schema.id in seen:
            raise ConfigError(f"Duplicate channel id '{schema.id}'")
        seen.add(schema.id)
        configs.append(schema.to_domain())
    return configs
