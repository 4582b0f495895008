"""Protocol for the backend conversational agent client.

The relay core talks to exactly one backend agent. Every call is
asynchronous and may fail; classifying failures is up to the caller.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Sequence
from typing import Any, Protocol

from agentrelay.core.domain.channels import ModelRef, StreamEvent


class AgentClientProtocol(Protocol):
    """Backend agent operations consumed by the relay core."""

    async def is_ready(self) -> bool:
        """Return True once the backend accepts turns.

        Implementations must not raise; unreachable means not ready.
        """
        ...

    async def create_session(self, agent_name: str | None = None) -> str:
        """Create a backend session, optionally pinned to an agent.

        Returns:
            The backend session id.
        """
        ...

    def run_turn(
        self,
        session_id: str,
        prompt: str,
        *,
        agent_name: str | None = None,
        model: ModelRef | None = None,
        file_parts: Sequence[dict[str, Any]] | None = None,
    ) -> AsyncIterator[StreamEvent]:
        """Start a turn and return its ordered event stream.

        The returned iterator supports ``aclose()`` so a consumer that
        stops early can release the underlying connection.
        """
        ...

    async def reply_permission(self, permission_id: str, approved: bool) -> None:
        """Deliver a human approval decision for a pending tool call."""
        ...


class ReadinessProbe(Protocol):
    """Minimal surface the message queue needs from a backend handle."""

    async def is_ready(self) -> bool:
        ...
