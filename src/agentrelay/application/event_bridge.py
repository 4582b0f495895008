"""Bridge backend permission events to the chat UI and back.

When a turn emits a permission event:

1. A pending entry is registered in the PermissionRegistry.
2. The channel adapter renders approve/reject buttons.
3. The turn waits for the user's click (or the registry timeout).
4. The decision is relayed to the backend so the tool call proceeds or aborts.
"""

from __future__ import annotations

import asyncio

import structlog

from agentrelay.application.permission_registry import PermissionRegistry
from agentrelay.core.domain.channels import ChannelConfig, NormalizedMessage, PermissionRequest
from agentrelay.core.interfaces.agent_client import AgentClientProtocol
from agentrelay.core.interfaces.channels import PermissionPromptAdapterProtocol
from agentrelay.core.interfaces.logging import LoggerProtocol


class EventBridge:
    """Orchestrates one permission round-trip for a live agent turn."""

    def __init__(
        self,
        registry: PermissionRegistry,
        *,
        logger: LoggerProtocol | None = None,
    ) -> None:
        self._registry = registry
        self._logger = logger or structlog.get_logger().bind(component="event_bridge")

    async def handle_permission_event(
        self,
        config: ChannelConfig,
        message: NormalizedMessage,
        permission: PermissionRequest,
        adapter: PermissionPromptAdapterProtocol,
        client: AgentClientProtocol,
    ) -> bool:
        """Ask the user for approval and relay the decision to the backend.

        Returns:
            Whether the user approved. Timeouts and prompt failures deny.
            Cancelling the wait denies too, before re-raising.
        """
        decision = self._registry.register(permission.id)

        try:
            await adapter.send_permission_request(config, message, permission)
        except Exception as exc:
            self._logger.error(
                "event_bridge.prompt_failed",
                permission_id=permission.id,
                tool=permission.tool,
                error=str(exc),
            )
            self._registry.reply(permission.id, False)
            await self._relay(client, permission, False)
            return False

        try:
            approved = await decision
        except asyncio.CancelledError:
            # The turn went away; deny so the backend does not wait on it.
            self._registry.reply(permission.id, False)
            self._logger.info("event_bridge.cancelled", permission_id=permission.id)
            await asyncio.shield(self._relay(client, permission, False))
            raise
        self._logger.info(
            "event_bridge.decided",
            permission_id=permission.id,
            tool=permission.tool,
            approved=approved,
        )
        await self._relay(client, permission, approved)
        return approved

    async def _relay(
        self, client: AgentClientProtocol, permission: PermissionRequest, approved: bool
    ) -> None:
        try:
            await client.reply_permission(permission.id, approved)
        except Exception as exc:
            self._logger.error(
                "event_bridge.relay_failed",
                permission_id=permission.id,
                approved=approved,
                error=str(exc),
            )
