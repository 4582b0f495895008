"""Tests for relay settings and channel-definition validation."""

import pytest

from agentrelay.core.domain.channels import SessionStrategy
from agentrelay.core.domain.config_schema import (
    RelaySettings,
    load_settings,
    parse_channel_configs,
)
from agentrelay.core.domain.errors import AgentRelayError, ConfigError


class TestLoadSettings:
    def test_defaults_when_environment_is_empty(self) -> None:
        settings = load_settings({})

        assert settings == RelaySettings()
        assert settings.agent_url == "http://localhost:8000"
        assert settings.config_rate_limit == 60
        assert settings.user_rate_limit == 20
        assert settings.queue_max_wait_seconds == 90.0
        assert settings.permission_timeout_seconds == 300.0

    def test_prefixed_variables_are_coerced(self) -> None:
        settings = load_settings(
            {
                "AGENTRELAY_AGENT_URL": "https://agent.internal:9000/",
                "AGENTRELAY_USER_RATE_LIMIT": "5",
                "AGENTRELAY_LOG_LEVEL": "debug",
                "AGENTRELAY_SESSION_TTL_HOURS": "1.5",
            }
        )

        assert settings.agent_url == "https://agent.internal:9000"
        assert settings.user_rate_limit == 5
        assert settings.log_level == "DEBUG"
        assert settings.session_ttl_hours == 1.5

    def test_opencode_url_is_a_fallback(self) -> None:
        assert load_settings({"OPENCODE_URL": "http://oc:4096"}).agent_url == "http://oc:4096"
        assert (
            load_settings(
                {"OPENCODE_URL": "http://oc:4096", "AGENTRELAY_AGENT_URL": "http://main:1"}
            ).agent_url
            == "http://main:1"
        )

    def test_empty_values_fall_back_to_defaults(self) -> None:
        assert load_settings({"AGENTRELAY_WORK_DIR": ""}).work_dir == ".agentrelay"

    @pytest.mark.parametrize(
        "env",
        [
            {"AGENTRELAY_AGENT_URL": "ftp://agent"},
            {"AGENTRELAY_CONFIG_RATE_LIMIT": "0"},
            {"AGENTRELAY_LOG_LEVEL": "LOUD"},
            {"AGENTRELAY_QUEUE_MAX_WAIT_SECONDS": "soon"},
        ],
    )
    def test_invalid_values_raise_config_error(self, env) -> None:
        with pytest.raises(ConfigError) as exc_info:
            load_settings(env)

        assert exc_info.value.code == "config_error"
        assert exc_info.value.details["errors"]
        assert isinstance(exc_info.value, AgentRelayError)


class TestParseChannelConfigs:
    def test_parses_channel_list(self) -> None:
        configs = parse_channel_configs(
            {
                "channels": [
                    {
                        "id": "support-slack",
                        "channel_type": "slack",
                        "session_strategy": "per-thread",
                        "agent_name": "support",
                        "metadata": {"model": {"providerID": "a", "modelID": "b"}},
                    },
                    {"id": "tg", "channel_type": "telegram", "enabled": False},
                ]
            }
        )

        assert [c.id for c in configs] == ["support-slack", "tg"]
        assert configs[0].channel_type == "slack"
        assert configs[0].session_strategy == SessionStrategy.PER_THREAD
        assert configs[0].name == "support-slack"
        assert configs[1].session_strategy == SessionStrategy.PER_USER
        assert configs[1].enabled is False

    def test_empty_document_yields_no_configs(self) -> None:
        assert parse_channel_configs(None) == []
        assert parse_channel_configs({"channels": []}) == []

    def test_channels_must_be_a_list(self) -> None:
        with pytest.raises(ConfigError, match="must be a list"):
            parse_channel_configs({"channels": {"id": "x"}})

    def test_invalid_entry_reports_index(self) -> None:
        with pytest.raises(ConfigError, match="index 1") as exc_info:
            parse_channel_configs(
                {
                    "channels": [
                        {"id": "ok", "channel_type": "slack"},
                        {"id": "bad", "channel_type": "fax"},
                    ]
                }
            )

        assert exc_info.value.details["errors"][0]["field"] == "channel_type"

    def test_duplicate_ids_are_rejected(self) -> None:
        entry = {"id": "dup", "channel_type": "slack"}

        with pytest.raises(ConfigError, match="Duplicate"):
            parse_channel_configs({"channels": [entry, dict(entry)]})
