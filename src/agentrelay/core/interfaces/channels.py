"""Protocol definitions for the chat-platform side of the relay.

- PermissionPromptAdapterProtocol: the one adapter call permission bridging needs
- ChannelAdapterProtocol: full adapter surface used by the engine
- ChannelConfigStoreProtocol: read access to channel configurations
- MessageLogProtocol: inbound/outbound message logging
"""

from __future__ import annotations

from typing import Protocol

from agentrelay.core.domain.channels import (
    AgentResponse,
    ChannelConfig,
    MessageRecord,
    NormalizedMessage,
    PermissionRequest,
)


class PermissionPromptAdapterProtocol(Protocol):
    """Render an approve/reject prompt in the user's chat.

    When the user answers, the adapter calls the engine's (or the
    permission registry's) ``reply`` with the decision.
    """

    async def send_permission_request(
        self,
        config: ChannelConfig,
        message: NormalizedMessage,
        permission: PermissionRequest,
    ) -> None:
        ...


class ChannelAdapterProtocol(Protocol):
    """Platform adapter (Slack, Telegram, Discord, ...).

    Only ``channel_type`` and ``send_response`` are required. The engine
    probes for the optional hooks with ``getattr`` and treats them as
    best-effort:

    - ``send_permission_request(config, message, permission)``, see
      PermissionPromptAdapterProtocol; without it permissions are denied
    - ``send_error(config, message, text)``
    - ``send_stream_update(config, message, text_so_far)``
    - ``send_typing_indicator(config, message)``
    - ``remove_typing_indicator(config, message)``, awaited once the turn
      ends, whether it succeeded or failed
    - ``send_files(config, message, files)``
    - ``react_complete(config, message)`` / ``react_error(config, message)``
    - ``react_files_changed(config, message)``, after files were sent
    """

    @property
    def channel_type(self) -> str:
        """Platform identifier (e.g. 'slack', 'telegram')."""
        ...

    async def send_response(
        self,
        config: ChannelConfig,
        message: NormalizedMessage,
        response: AgentResponse,
    ) -> None:
        """Deliver the final agent reply."""
        ...


class ChannelConfigStoreProtocol(Protocol):
    async def get_enabled(self, config_id: str) -> ChannelConfig | None:
        """Return the config if it exists and is enabled, else None."""
        ...


class MessageLogProtocol(Protocol):
    """Append-only log of relayed messages."""

    async def append(self, record: MessageRecord) -> None:
        ...

    async def list_messages(self, config_id: str, limit: int = 50) -> list[MessageRecord]:
        """Return up to ``limit`` most recent records, oldest first."""
        ...
