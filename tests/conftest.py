"""Test configuration and shared fixtures."""

from __future__ import annotations

from typing import Any, Callable

import pytest

from agentrelay.core.domain.channels import (
    ChannelConfig,
    NormalizedMessage,
    PlatformUser,
    SessionStrategy,
)


@pytest.fixture
def make_config() -> Callable[..., ChannelConfig]:
    """Factory for channel configs with sensible defaults."""

    def _make(
        config_id: str = "cfg-1",
        *,
        channel_type: str = "slack",
        strategy: SessionStrategy = SessionStrategy.PER_USER,
        **kwargs: Any,
    ) -> ChannelConfig:
        return ChannelConfig(
            id=config_id,
            channel_type=channel_type,
            name=kwargs.pop("name", config_id),
            session_strategy=strategy,
            **kwargs,
        )

    return _make


@pytest.fixture
def make_message() -> Callable[..., NormalizedMessage]:
    """Factory for normalized inbound messages."""
    counter = {"n": 0}

    def _make(
        content: str = "hello",
        *,
        config_id: str = "cfg-1",
        channel_type: str = "slack",
        user_id: str = "U1",
        user_name: str = "",
        external_id: str | None = None,
        **kwargs: Any,
    ) -> NormalizedMessage:
        counter["n"] += 1
        return NormalizedMessage(
            external_id=external_id or f"msg-{counter['n']}",
            channel_type=channel_type,
            channel_config_id=config_id,
            content=content,
            platform_user=PlatformUser(id=user_id, name=user_name),
            **kwargs,
        )

    return _make
